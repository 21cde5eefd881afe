from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.bucket import Bucket

"""Progress display for bucket submissions with tqdm (TTY only).

One bar over the buckets a CLI run submits. In non-TTY environments (CI,
piped output) the bar is disabled so the labeled log lines stay clean.
"""

__all__ = [
    "BucketProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class BucketProgress:
    """Progress bar advancing once per submitted bucket."""

    def __init__(self, total_buckets: int, *, description: str = "Submitting buckets") -> None:
        self.total_buckets = total_buckets
        self.description = description
        self.current = 0
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_buckets,
                desc=description,
                unit="bucket",
                leave=True,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_bucket(self, bucket: Bucket) -> None:
        self.current += 1
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({bucket.title})")

    def finish_bucket(self, created: int = 0) -> None:
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_postfix(created=created)
            self.pbar.set_description(self.description)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> BucketProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
