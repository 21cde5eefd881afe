from __future__ import annotations

from pathlib import Path

import pandas as pd

from ..models.bucket import Bucket
from ..models.upload_row import TEXT_FIELDS, UploadRow
from ..services.categorizer import CategorizedRows

"""Bucket report: one worksheet per bucket, written with pandas + openpyxl."""

__all__ = [
    "REPORT_COLUMNS",
    "write_bucket_report",
]

REPORT_COLUMNS: list[str] = ["row_number", *TEXT_FIELDS, "error_message", "job_id"]

# Excel limits sheet names to 31 characters
_SHEET_NAMES = {b: b.title[:31] for b in Bucket}


def _frame(rows: tuple[UploadRow, ...]) -> pd.DataFrame:
    records = [{col: getattr(r, col) for col in REPORT_COLUMNS} for r in rows]
    return pd.DataFrame.from_records(records, columns=REPORT_COLUMNS)


def write_bucket_report(path: Path, categorized: CategorizedRows) -> Path:
    """Write one sheet per bucket (plus "Rejected" when any row was rejected)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for bucket in Bucket:
            _frame(categorized.rows(bucket)).to_excel(writer, sheet_name=_SHEET_NAMES[bucket], index=False)
        if categorized.rejected:
            _frame(categorized.rejected).to_excel(writer, sheet_name="Rejected", index=False)
    return path
