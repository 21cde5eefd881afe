from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ..models.bucket import Bucket
from ..models.upload_row import UploadRow, ValidationStatus

"""Row categorization into the four upload buckets.

Bucket membership is never stored on a row: it is recomputed from
(``is_valid``, ``is_rejected``, duplicate marker) every time the row array
changes, so there is a single source of truth.
"""

__all__ = [
    "CategorizedRows",
    "bucket_of",
    "categorize",
]

_STATUS_TO_BUCKET = {
    ValidationStatus.VALID: Bucket.VALID,
    ValidationStatus.INVALID: Bucket.ERROR,
    ValidationStatus.DUPLICATE_IN_FILE: Bucket.XLS_DUPLICATE,
    ValidationStatus.DUPLICATE_IN_DB: Bucket.DB_DUPLICATE,
}


@dataclass(frozen=True)
class CategorizedRows:
    valid: tuple[UploadRow, ...] = ()
    error: tuple[UploadRow, ...] = ()
    xls_duplicate: tuple[UploadRow, ...] = ()
    db_duplicate: tuple[UploadRow, ...] = ()
    rejected: tuple[UploadRow, ...] = ()

    def rows(self, bucket: Bucket) -> tuple[UploadRow, ...]:
        return getattr(self, bucket.value)

    def row_numbers(self, bucket: Bucket) -> set[int]:
        return {r.row_number for r in self.rows(bucket)}

    def counts(self) -> dict[str, int]:
        counts = {b.value: len(self.rows(b)) for b in Bucket}
        counts["rejected"] = len(self.rejected)
        return counts


def bucket_of(row: UploadRow) -> Bucket | None:
    """Bucket of a single row; rejected rows belong to no bucket."""
    if row.is_rejected:
        return None
    return _STATUS_TO_BUCKET[row.validation_status]


def categorize(rows: Iterable[UploadRow]) -> CategorizedRows:
    """Partition rows into disjoint buckets, each ordered by row_number.

    Pure: the input rows are not modified.
    """
    grouped: dict[Bucket | None, list[UploadRow]] = {b: [] for b in Bucket}
    grouped[None] = []
    for row in sorted(rows, key=lambda r: r.row_number):
        grouped[bucket_of(row)].append(row)
    return CategorizedRows(
        valid=tuple(grouped[Bucket.VALID]),
        error=tuple(grouped[Bucket.ERROR]),
        xls_duplicate=tuple(grouped[Bucket.XLS_DUPLICATE]),
        db_duplicate=tuple(grouped[Bucket.DB_DUPLICATE]),
        rejected=tuple(grouped[None]),
    )
