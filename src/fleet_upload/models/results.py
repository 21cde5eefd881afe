from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .bucket import Bucket
from .upload_row import UploadRow, parse_job_id

"""Result models returned by the upload, edit and confirm operations."""

__all__ = [
    "CreatedJob",
    "SkippedRow",
    "ConfirmResult",
    "BucketUploadResult",
    "SaveOutcome",
    "SaveResult",
    "Notice",
]


@dataclass(frozen=True)
class CreatedJob:
    row_number: int
    job_id: int


@dataclass(frozen=True)
class SkippedRow:
    row_number: int | None
    reason: str


@dataclass(frozen=True)
class ConfirmResult:
    """Response of the confirm-upload endpoint."""
    processed_count: int
    skipped_count: int
    created_jobs: tuple[CreatedJob, ...] = ()
    skipped_rows: tuple[SkippedRow, ...] = ()
    errors: tuple[str, ...] = ()

    @staticmethod
    def from_api(data: dict[str, Any]) -> ConfirmResult:
        created: list[CreatedJob] = []
        for item in data.get("created_jobs") or []:
            if not isinstance(item, dict):
                continue
            job_id = parse_job_id(item.get("job_id"))
            try:
                row_number = int(item.get("row_number"))
            except (TypeError, ValueError):
                continue
            if job_id is not None:
                created.append(CreatedJob(row_number=row_number, job_id=job_id))
        skipped: list[SkippedRow] = []
        for item in data.get("skipped_rows") or []:
            if not isinstance(item, dict):
                continue
            raw_row = item.get("row_number")
            skipped.append(
                SkippedRow(
                    row_number=raw_row if isinstance(raw_row, int) else None,
                    reason=str(item.get("reason", "")),
                )
            )
        skipped_count = data.get("skipped_count")
        return ConfirmResult(
            processed_count=int(data.get("processed_count", len(created))),
            skipped_count=int(skipped_count) if skipped_count is not None else len(skipped),
            created_jobs=tuple(created),
            skipped_rows=tuple(skipped),
            errors=tuple(str(e) for e in data.get("errors") or []),
        )

    def job_ids_by_row(self) -> dict[int, int]:
        return {c.row_number: c.job_id for c in self.created_jobs}


@dataclass(frozen=True)
class BucketUploadResult:
    """Outcome of one bucket submission.

    ``rows`` is the full row array after merging created job ids (or the
    unchanged array when nothing was submitted).
    """
    bucket: Bucket
    submitted_row_numbers: tuple[int, ...]
    rows: tuple[UploadRow, ...]
    confirm: ConfirmResult | None = None
    declined: bool = False
    still_failing: tuple[UploadRow, ...] = ()

    @property
    def created_count(self) -> int:
        return len(self.confirm.created_jobs) if self.confirm else 0


class SaveOutcome(Enum):
    SAVED_VALIDATED = "saved_validated"
    SAVED_UNVALIDATED = "saved_unvalidated"
    FAILED = "failed"


@dataclass(frozen=True)
class SaveResult:
    """Outcome of saving an edited row.

    ``fresh_is_valid`` / ``fresh_error_message`` hold the backend's verdict on the
    edited row even though the stored row keeps its pre-edit validity.
    """
    outcome: SaveOutcome
    row_number: int
    rows: tuple[UploadRow, ...]
    errors: tuple[str, ...] = ()
    fresh_is_valid: bool | None = None
    fresh_error_message: str | None = None

    @property
    def saved(self) -> bool:
        return self.outcome is not SaveOutcome.FAILED


@dataclass(frozen=True)
class Notice:
    """Transient operator notification (the UI toast)."""
    level: str  # success / error / info
    message: str
    error_type: str | None = field(default=None, compare=False)
