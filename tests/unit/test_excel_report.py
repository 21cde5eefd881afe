from __future__ import annotations

from pathlib import Path

import pandas as pd

from fleet_upload.excel.report import REPORT_COLUMNS, write_bucket_report
from fleet_upload.services.categorizer import categorize


def test_report_has_one_sheet_per_bucket(tmp_path: Path, mixed_rows):
    path = write_bucket_report(tmp_path / "out" / "report.xlsx", categorize(mixed_rows))
    sheets = pd.read_excel(path, sheet_name=None)
    assert list(sheets) == [
        "Valid Jobs",
        "Jobs With Errors",
        "Duplicates In File",
        "Duplicates In Database",
        "Rejected",
    ]
    valid = sheets["Valid Jobs"]
    assert list(valid.columns) == REPORT_COLUMNS
    assert valid["row_number"].tolist() == [1, 2]
    assert sheets["Duplicates In Database"]["row_number"].tolist() == [7, 8]


def test_report_without_rejected_rows_and_empty_buckets(tmp_path: Path, make_row):
    path = write_bucket_report(tmp_path / "report.xlsx", categorize([make_row(1)]))
    sheets = pd.read_excel(path, sheet_name=None)
    assert "Rejected" not in sheets
    assert sheets["Jobs With Errors"].empty
