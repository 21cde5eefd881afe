from __future__ import annotations

import logging
import mimetypes
from collections.abc import Iterable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Protocol

from ..config.loader import ACCEPTED_MIME_TYPES, MAX_UPLOAD_BYTES
from ..errors import ApiError, FileTooLarge, UnsupportedFileType, UploadParseFailure
from ..models.preview import PreviewData

"""Upload intake: local file guards followed by the backend parse call.

Guards run before any network traffic:
- MIME type must be one of the accepted Excel types
- size must not exceed the configured limit (10 MiB by default)
"""

__all__ = [
    "SelectedFile",
    "guess_content_type",
    "validate_file",
    "read_selected_file",
    "submit_for_preview",
]

logger = logging.getLogger(__name__)

# mimetypes does not know .xlsx on every platform
_EXTENSION_TYPES = {
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".xls": "application/vnd.ms-excel",
    ".csv": "text/csv",
}


class PreviewUploader(Protocol):
    def upload_file(self, name: str, content: bytes, content_type: str) -> PreviewData: ...


@dataclass(frozen=True)
class SelectedFile:
    name: str
    content_type: str
    size: int
    path: Path | None = None
    content: bytes | None = None

    def read(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.path is None:
            raise ValueError(f"no content for {self.name}")
        return self.path.read_bytes()


def guess_content_type(name: str) -> str:
    suffix = Path(name).suffix.lower()
    if suffix in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"


def validate_file(
    selected: SelectedFile,
    accepted_types: Iterable[str] = ACCEPTED_MIME_TYPES,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> None:
    """Raise UnsupportedFileType / FileTooLarge; type is checked before size."""
    if selected.content_type not in set(accepted_types):
        raise UnsupportedFileType(
            f"Please select a valid Excel file (.xlsx or .xls); got {selected.content_type}"
        )
    if selected.size > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        raise FileTooLarge(f"File size must be less than {limit_mb}MB ({selected.size} bytes)")


def read_selected_file(path: Path, content_type: str | None = None) -> SelectedFile:
    """Describe a file on disk without loading it (the size guard runs on stat())."""
    if not path.is_file():
        raise UploadParseFailure(f"file not found: {path}")
    return SelectedFile(
        name=path.name,
        content_type=content_type or guess_content_type(path.name),
        size=path.stat().st_size,
        path=path,
    )


def submit_for_preview(
    api: PreviewUploader,
    selected: SelectedFile,
    accepted_types: Iterable[str] = ACCEPTED_MIME_TYPES,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> PreviewData:
    """Validate ``selected`` and send it to the backend parser.

    Returns the PreviewData with every row starting un-rejected.
    Raises UnsupportedFileType / FileTooLarge (no request made) or UploadParseFailure.
    """
    validate_file(selected, accepted_types, max_bytes)
    logger.info("uploading %s (%d bytes)", selected.name, selected.size)
    try:
        preview = api.upload_file(selected.name, selected.read(), selected.content_type)
    except ApiError as e:
        raise UploadParseFailure(str(e)) from e
    except OSError as e:
        raise UploadParseFailure(f"cannot read {selected.name}: {e}") from e
    if any(r.is_rejected for r in preview.rows):
        preview = replace(preview, rows=tuple(replace(r, is_rejected=False) for r in preview.rows))
    return preview
