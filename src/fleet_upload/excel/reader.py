from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

"""Local workbook preview with pandas.

Used by ``fleet-upload inspect`` to look at a file before it is sent to the
backend parser. Nothing here validates rows; that is the backend's job.
"""

__all__ = [
    "SheetPreview",
    "WorkbookReadError",
    "read_workbook_preview",
]


class WorkbookReadError(Exception):
    """Raised when the workbook cannot be opened or a header row is missing."""


@dataclass(frozen=True)
class SheetPreview:
    sheet_name: str
    columns: list[str]
    row_count: int
    rows: list[dict[str, Any]]  # first ``limit`` rows, NaN -> None


def _clean(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def read_workbook_preview(path: Path, header_row: int = 0, limit: int = 5) -> list[SheetPreview]:
    """Read every sheet of ``path`` and return column names, row counts and sample rows.

    Fully empty rows are dropped before counting.
    """
    try:
        xls = pd.ExcelFile(path)
    except (OSError, ValueError) as e:
        raise WorkbookReadError(f"cannot open {path}: {e}") from e

    previews: list[SheetPreview] = []
    for name in xls.sheet_names:
        df = xls.parse(name, header=header_row)
        df = df.dropna(how="all")
        columns = [str(c).strip() for c in df.columns]
        if not columns:
            raise WorkbookReadError(f"sheet '{name}' has no header row")
        df.columns = columns
        sample = [
            {k: _clean(v) for k, v in record.items()}
            for record in df.head(limit).to_dict(orient="records")
        ]
        previews.append(
            SheetPreview(
                sheet_name=str(name),
                columns=columns,
                row_count=len(df.index),
                rows=sample,
            )
        )
    return previews
