from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the upload error log.

Supports row=-1 as a sentinel for failures that are not tied to one
spreadsheet row (intake, whole-bucket submission, reference fetch).
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Workbook name of the current session ("" before a file is selected)
        bucket: Bucket value, or "<SESSION>" for session-level failures
        row: Row number (1-based). -1 when the failure is not row specific
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Backend message or description
    """
    timestamp: str
    file: str
    bucket: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, bucket: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            bucket=bucket,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
