from __future__ import annotations

from enum import Enum

"""Bucket enum: the four mutually exclusive upload categories."""

__all__ = [
    "Bucket",
]


class Bucket(Enum):
    """Category a non-rejected row falls into.

    - VALID: backend validation passed
    - ERROR: validation failed for a reason other than duplication
    - XLS_DUPLICATE: duplicate of another row in the same workbook
    - DB_DUPLICATE: duplicate of a job already persisted
    """
    VALID = "valid"
    ERROR = "error"
    XLS_DUPLICATE = "xls_duplicate"
    DB_DUPLICATE = "db_duplicate"

    @property
    def title(self) -> str:
        return _TITLES[self]


_TITLES = {
    Bucket.VALID: "Valid Jobs",
    Bucket.ERROR: "Jobs With Errors",
    Bucket.XLS_DUPLICATE: "Duplicates In File",
    Bucket.DB_DUPLICATE: "Duplicates In Database",
}
