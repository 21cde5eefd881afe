from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Any

from ..api.client import JobUploadApi
from ..config.loader import ClientConfig
from ..errors import ApiError, DbDuplicateNotConfirmed, FleetUploadError, NoRowsSelected, RevalidationFailure
from ..logging.error_log import ErrorLogBuffer
from ..models.bucket import Bucket
from ..models.error_record import ErrorRecord
from ..models.preview import PreviewData
from ..models.results import BucketUploadResult, Notice, SaveOutcome, SaveResult
from ..models.upload_row import UploadRow
from .categorizer import CategorizedRows, categorize
from .editor import RowEditor
from .intake import SelectedFile, read_selected_file, submit_for_preview
from .reference_cache import ReferenceDataCache
from .uploader import CategoryUploader, ConfirmCallback

"""Upload session: the operation boundary of the bulk upload workflow.

Every public operation catches FleetUploadError, turns it into a Notice and a
structured error record, and leaves the row array as it was. Operations that
change rows swap in a new PreviewData built with ``with_rows`` so the counts
always follow the non-rejected rows.
"""

__all__ = [
    "Step",
    "UploadSession",
    "SESSION_BUCKET",
    "EDIT_REJECTED",
]

logger = logging.getLogger(__name__)

# bucket column of error records that are not tied to a bucket
SESSION_BUCKET = "<SESSION>"
EDIT_REJECTED = "EDIT_REJECTED"


class Step(Enum):
    UPLOAD = "upload"
    PREVIEW = "preview"


def _decline_all(rows: Any) -> bool:
    return False


class UploadSession:
    def __init__(
        self,
        config: ClientConfig,
        api: JobUploadApi | None = None,
        error_log: ErrorLogBuffer | None = None,
        confirm_create: ConfirmCallback | None = None,
    ) -> None:
        self.config = config
        self.api = api if api is not None else JobUploadApi(config)
        self.reference = ReferenceDataCache(self.api, max_workers=config.reference_workers)
        self.uploader = CategoryUploader(self.api, config.dedupe_key)
        self.editor = RowEditor(self.api, self.reference, config.role)
        self.error_log = error_log if error_log is not None else ErrorLogBuffer(Path(config.error_log_dir))
        # database duplicates are never force-created without an explicit yes
        self.confirm_create: ConfirmCallback = confirm_create or _decline_all
        self.step = Step.UPLOAD
        self.preview: PreviewData | None = None
        self.selected_file: SelectedFile | None = None
        self.notices: list[Notice] = []
        self.created_count = 0
        self.failed_operations = 0

    # ------------------------------------------------------------------
    # state helpers
    # ------------------------------------------------------------------
    @property
    def rows(self) -> tuple[UploadRow, ...]:
        return self.preview.rows if self.preview is not None else ()

    @property
    def file_name(self) -> str:
        return self.selected_file.name if self.selected_file is not None else ""

    def categorized(self) -> CategorizedRows:
        return categorize(self.rows)

    def _notify(self, level: str, message: str, error_type: str | None = None) -> Notice:
        notice = Notice(level=level, message=message, error_type=error_type)
        self.notices.append(notice)
        return notice

    def _record(self, error_type: str, message: str, bucket: str = SESSION_BUCKET, row: int = -1) -> None:
        self.error_log.append(ErrorRecord.create(self.file_name, bucket, row, error_type, message))

    def _fail(self, error: FleetUploadError, bucket: str = SESSION_BUCKET) -> Notice:
        self.failed_operations += 1
        message = str(error)
        logger.error("%s: %s", error.error_type, message)
        self._record(error.error_type, message, bucket)
        return self._notify("error", message, error.error_type)

    def _require_preview(self) -> PreviewData:
        if self.preview is None:
            raise NoRowsSelected("Upload a file before working with rows")
        return self.preview

    def _replace_rows(self, rows: Iterable[UploadRow]) -> None:
        self.preview = self._require_preview().with_rows(rows)

    # ------------------------------------------------------------------
    # intake
    # ------------------------------------------------------------------
    def select_file(self, path: Path, content_type: str | None = None) -> PreviewData | None:
        try:
            selected = read_selected_file(Path(path), content_type)
            self.selected_file = selected
            preview = submit_for_preview(
                self.api,
                selected,
                self.config.accepted_mime_types,
                self.config.max_upload_bytes,
            )
        except FleetUploadError as e:
            self._fail(e)
            self.selected_file = None
            self.step = Step.UPLOAD
            return None

        self.preview = preview
        self.step = Step.PREVIEW
        self.editor.cancel_edit()
        logger.info(
            "parsed %s rows=%d valid=%d error=%d",
            selected.name,
            len(preview.rows),
            preview.valid_count,
            preview.error_count,
        )
        self._notify(
            "success",
            f"File processed: {preview.valid_count} valid row(s), {preview.error_count} row(s) with errors",
        )
        return preview

    def download_template(self, dest: Path) -> Path | None:
        try:
            path = self.api.download_template(Path(dest))
        except FleetUploadError as e:
            self._fail(e)
            return None
        self._notify("success", f"Template downloaded to {path}")
        return path

    # ------------------------------------------------------------------
    # row state
    # ------------------------------------------------------------------
    def revalidate_all(self) -> bool:
        """Re-validate every row against the backend, keeping rejection flags and job ids."""
        try:
            preview = self._require_preview()
            try:
                fresh = self.api.revalidate(preview.column_mapping, preview.rows)
            except ApiError as e:
                raise RevalidationFailure(e.backend_message or "Failed to revalidate data") from e
        except FleetUploadError as e:
            self._fail(e)
            return False

        fresh_by_row = {r.row_number: r for r in fresh}
        merged = []
        for row in preview.rows:
            new = fresh_by_row.get(row.row_number)
            if new is None:
                merged.append(row)
                continue
            merged.append(replace(new, is_rejected=row.is_rejected, job_id=row.job_id if row.job_id is not None else new.job_id))
        self._replace_rows(merged)
        self._notify("success", "Data revalidated successfully")
        return True

    def toggle_reject(self, row_number: int) -> bool:
        """Flip the rejected flag of one row; returns the new flag (False when the row is unknown)."""
        try:
            preview = self._require_preview()
            row = preview.row(row_number)
            if row is None:
                raise NoRowsSelected(f"Row {row_number} is not in the current upload")
        except FleetUploadError as e:
            self._fail(e)
            return False
        flipped = not row.is_rejected
        self._replace_rows(
            replace(r, is_rejected=flipped) if r.row_number == row_number else r
            for r in preview.rows
        )
        logger.debug("row=%d rejected=%s", row_number, flipped)
        return flipped

    def select_all(self, bucket: Bucket) -> tuple[int, ...]:
        return tuple(sorted(self.categorized().row_numbers(bucket)))

    # ------------------------------------------------------------------
    # editing
    # ------------------------------------------------------------------
    def start_edit(self, row_number: int) -> bool:
        row = self.preview.row(row_number) if self.preview is not None else None
        if row is None:
            self._fail(NoRowsSelected(f"Row {row_number} is not in the current upload"))
            return False
        self.editor.start_edit(row)
        return True

    def _reject_edit(self, row_number: int, error: KeyError | ValueError) -> None:
        # KeyError reprs its message in quotes
        message = error.args[0] if error.args else str(error)
        self.failed_operations += 1
        logger.error("%s: row=%d %s", EDIT_REJECTED, row_number, message)
        self._record(EDIT_REJECTED, str(message), row=row_number)
        self._notify("error", str(message), EDIT_REJECTED)

    def update_field(self, row_number: int, field: str, value: Any) -> bool:
        """Change one buffered field; False when the edit was refused."""
        try:
            self.editor.update_field(row_number, field, value)
        except (KeyError, ValueError) as e:
            self._reject_edit(row_number, e)
            return False
        return True

    def save_edit(self, row_number: int) -> SaveResult | None:
        try:
            preview = self._require_preview()
        except FleetUploadError as e:
            self._fail(e)
            return None
        try:
            result = self.editor.save_edit(row_number, preview.rows, preview.column_mapping)
        except KeyError as e:
            self._reject_edit(row_number, e)
            return None
        if result.outcome is SaveOutcome.FAILED:
            message = "; ".join(result.errors)
            self._record("ROW_CHECK_FAILED", message, row=row_number)
            self._notify("error", message, "ROW_CHECK_FAILED")
            return result

        self._replace_rows(result.rows)
        if result.outcome is SaveOutcome.SAVED_UNVALIDATED:
            self._notify("info", f"Row {row_number} saved without re-validation")
        elif result.fresh_is_valid is False:
            self._notify("info", f"Row {row_number} saved; still reported: {result.fresh_error_message}")
        else:
            self._notify("success", f"Row {row_number} saved")
        return result

    def cancel_edit(self, row_number: int | None = None) -> None:
        self.editor.cancel_edit(row_number)

    # ------------------------------------------------------------------
    # bucket uploads
    # ------------------------------------------------------------------
    def _run_upload(
        self,
        bucket: Bucket,
        submit: Callable[[PreviewData], BucketUploadResult],
    ) -> BucketUploadResult | None:
        try:
            result = submit(self._require_preview())
        except DbDuplicateNotConfirmed as e:
            # declining is a no-op, not a failure
            self._notify("info", str(e))
            return BucketUploadResult(bucket=bucket, submitted_row_numbers=(), rows=self.rows, declined=True)
        except FleetUploadError as e:
            self._fail(e, bucket.value)
            return None

        for row in result.still_failing:
            self._record("STILL_INVALID", row.error_message or "validation failed", bucket.value, row.row_number)
        if result.still_failing:
            logger.warning(
                "%d row(s) still have errors and were not uploaded: %s",
                len(result.still_failing),
                [r.row_number for r in result.still_failing],
            )
            self._notify(
                "error",
                f"{len(result.still_failing)} row(s) still have errors and were not uploaded",
                "STILL_INVALID",
            )

        if result.confirm is None:
            return result

        self._replace_rows(result.rows)
        confirm = result.confirm
        self.created_count += result.created_count
        for skipped in confirm.skipped_rows:
            row = skipped.row_number if skipped.row_number is not None else -1
            self._record("SKIPPED_ROW", skipped.reason, bucket.value, row)
        for message in confirm.errors:
            self._record("CONFIRM_ROW_ERROR", message, bucket.value)

        text = f"{result.created_count} job(s) created successfully."
        if confirm.skipped_count:
            text += f" {confirm.skipped_count} duplicate(s) skipped."
        self._notify("success", text)
        return result

    def upload_valid(self, selected: Iterable[int]) -> BucketUploadResult | None:
        return self._run_upload(Bucket.VALID, lambda p: self.uploader.upload_valid(p, selected))

    def upload_error(self, selected: Iterable[int]) -> BucketUploadResult | None:
        return self._run_upload(Bucket.ERROR, lambda p: self.uploader.upload_error(p, selected))

    def upload_xls_duplicates(self, selected: Iterable[int]) -> BucketUploadResult | None:
        return self._run_upload(Bucket.XLS_DUPLICATE, lambda p: self.uploader.upload_xls_duplicates(p, selected))

    def upload_db_duplicates(
        self,
        selected: Iterable[int],
        confirm_create: ConfirmCallback | None = None,
    ) -> BucketUploadResult | None:
        callback = confirm_create or self.confirm_create
        return self._run_upload(
            Bucket.DB_DUPLICATE,
            lambda p: self.uploader.upload_db_duplicates(p, selected, callback),
        )

    def upload_bucket(self, bucket: Bucket, selected: Iterable[int]) -> BucketUploadResult | None:
        dispatch = {
            Bucket.VALID: self.upload_valid,
            Bucket.ERROR: self.upload_error,
            Bucket.XLS_DUPLICATE: self.upload_xls_duplicates,
            Bucket.DB_DUPLICATE: self.upload_db_duplicates,
        }
        return dispatch[bucket](selected)

    # ------------------------------------------------------------------
    # export / reset
    # ------------------------------------------------------------------
    def download_selected(self, row_numbers: Iterable[int], dest: Path) -> Path | None:
        try:
            preview = self._require_preview()
            wanted = set(row_numbers)
            rows = [r for r in preview.rows if r.row_number in wanted]
            if not rows:
                raise NoRowsSelected("Please select at least one row to download")
            path = self.api.download_selected(rows, Path(dest))
        except FleetUploadError as e:
            self._fail(e)
            return None
        self._notify("success", f"{len(rows)} row(s) downloaded to {path}")
        return path

    def reset(self) -> None:
        """Upload Another File: drop rows, preview and edit buffers, back to the upload step."""
        self.preview = None
        self.selected_file = None
        self.step = Step.UPLOAD
        self.editor.cancel_edit()
        self.reference.invalidate()
        logger.debug("session reset")

    def flush_errors(self) -> Path | None:
        return self.error_log.flush()
