from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from .upload_row import UploadRow

"""PreviewData model: the backend's parse-and-validate response for one file."""

__all__ = [
    "PreviewData",
]


@dataclass(frozen=True)
class PreviewData:
    """Rows plus counters and the column mapping used by later re-validation calls.

    ``valid_count`` / ``error_count`` are taken from the backend on first load and
    recomputed from non-rejected rows by ``with_rows`` afterwards.
    """
    rows: tuple[UploadRow, ...]
    valid_count: int = 0
    error_count: int = 0
    column_mapping: dict[str, str] = field(default_factory=dict)
    available_columns: list[str] = field(default_factory=list)

    @staticmethod
    def from_api(data: dict[str, Any]) -> PreviewData:
        raw_rows = data.get("rows") or []
        if not isinstance(raw_rows, list):
            raise ValueError(f"'rows' must be a list, got {type(raw_rows).__name__}")
        rows = tuple(sorted((UploadRow.from_api(r) for r in raw_rows), key=lambda r: r.row_number))
        mapping = data.get("column_mapping") or {}
        columns = data.get("available_columns") or []
        return PreviewData(
            rows=rows,
            valid_count=int(data.get("valid_count", sum(1 for r in rows if r.is_valid))),
            error_count=int(data.get("error_count", sum(1 for r in rows if not r.is_valid))),
            column_mapping={str(k): str(v) for k, v in dict(mapping).items()},
            available_columns=[str(c) for c in columns],
        )

    def with_rows(self, rows: Iterable[UploadRow]) -> PreviewData:
        """New PreviewData over ``rows`` with counters recomputed (rejected rows excluded)."""
        new_rows = tuple(rows)
        return replace(
            self,
            rows=new_rows,
            valid_count=sum(1 for r in new_rows if r.is_valid and not r.is_rejected),
            error_count=sum(1 for r in new_rows if not r.is_valid and not r.is_rejected),
        )

    def row(self, row_number: int) -> UploadRow | None:
        for r in self.rows:
            if r.row_number == row_number:
                return r
        return None

    def to_payload(self, rows: Iterable[UploadRow] | None = None) -> dict[str, Any]:
        """Request body for confirm-upload: the preview with ``rows`` substituted."""
        selected = list(self.rows if rows is None else rows)
        return {
            "rows": [r.to_payload() for r in selected],
            "valid_count": sum(1 for r in selected if r.is_valid),
            "error_count": sum(1 for r in selected if not r.is_valid),
            "column_mapping": dict(self.column_mapping),
            "available_columns": list(self.available_columns),
        }
