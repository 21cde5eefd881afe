from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Protocol

from ..config.loader import DEFAULT_DEDUPE_KEY
from ..errors import (
    ApiError,
    BucketBusy,
    ConfirmUploadFailure,
    DbDuplicateNotConfirmed,
    NoRowsSelected,
    RevalidationFailure,
)
from ..models.bucket import Bucket
from ..models.preview import PreviewData
from ..models.results import BucketUploadResult, ConfirmResult
from ..models.upload_row import UploadRow
from .categorizer import categorize

"""Category uploader: one confirm flow per bucket.

- valid: submit the selected valid rows as-is
- error: batch re-validate first, submit only the rows that now pass
- xls_duplicate: keep the first row per composite key, force-mark valid, submit
- db_duplicate: ask for confirmation, force-mark valid, submit with force_create

Only one bucket may be in flight at a time. The gate is a real lock, so an
overlapping call fails with BucketBusy instead of racing. The row array is
only replaced after a successful confirm response.
"""

__all__ = [
    "CategoryUploader",
    "ConfirmCallback",
    "dedupe_by_key",
    "merge_created_jobs",
]

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[Sequence[UploadRow]], bool]

GENERIC_CONFIRM_FAILURE = "Upload confirmation failed"


class UploadBackend(Protocol):
    def revalidate(self, column_mapping: dict[str, str], rows: Iterable[UploadRow]) -> list[UploadRow]: ...

    def confirm_upload(
        self, preview: PreviewData, rows: Iterable[UploadRow], force_create: bool = False
    ) -> ConfirmResult: ...


def dedupe_by_key(rows: Iterable[UploadRow], key: Sequence[str] = DEFAULT_DEDUPE_KEY) -> tuple[UploadRow, ...]:
    """Keep the first row (by row_number) for each composite key value."""
    seen: set[tuple[str, ...]] = set()
    kept: list[UploadRow] = []
    for row in sorted(rows, key=lambda r: r.row_number):
        k = tuple(str(getattr(row, name, "")).strip() for name in key)
        if k in seen:
            continue
        seen.add(k)
        kept.append(row)
    return tuple(kept)


def merge_created_jobs(rows: Iterable[UploadRow], confirm: ConfirmResult) -> tuple[UploadRow, ...]:
    """New row tuple with job ids attached; other rows and existing job ids are untouched."""
    job_ids = confirm.job_ids_by_row()
    merged: list[UploadRow] = []
    for row in rows:
        job_id = job_ids.get(row.row_number)
        if job_id is None:
            merged.append(row)
            continue
        if row.job_id is not None and row.job_id != job_id:
            logger.warning("row=%d already has job_id=%d, ignoring %d", row.row_number, row.job_id, job_id)
        merged.append(row.with_job_id(job_id))
    return tuple(merged)


class CategoryUploader:
    def __init__(self, api: UploadBackend, dedupe_key: Sequence[str] = DEFAULT_DEDUPE_KEY) -> None:
        self._api = api
        self._dedupe_key = tuple(dedupe_key)
        self._lock = threading.Lock()
        self._loading: Bucket | None = None

    @property
    def loading_category(self) -> Bucket | None:
        return self._loading

    @contextmanager
    def _gate(self, bucket: Bucket) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            loading = self._loading.value if self._loading else None
            raise BucketBusy(bucket.value, loading)
        self._loading = bucket
        try:
            yield
        finally:
            self._loading = None
            self._lock.release()

    @staticmethod
    def _select(preview: PreviewData, bucket: Bucket, selected: Iterable[int]) -> tuple[UploadRow, ...]:
        wanted = set(selected)
        rows = tuple(r for r in categorize(preview.rows).rows(bucket) if r.row_number in wanted)
        if not rows:
            raise NoRowsSelected(f"Please select at least one row from '{bucket.title}' to upload")
        return rows

    def _confirm(self, preview: PreviewData, rows: Sequence[UploadRow], force_create: bool = False) -> ConfirmResult:
        ordered = sorted(rows, key=lambda r: r.row_number)
        try:
            result = self._api.confirm_upload(preview, ordered, force_create=force_create)
        except ApiError as e:
            raise ConfirmUploadFailure(e.backend_message or GENERIC_CONFIRM_FAILURE) from e
        logger.info(
            "confirm-upload rows=%d processed=%d skipped=%d force_create=%s",
            len(ordered),
            result.processed_count,
            result.skipped_count,
            force_create,
        )
        return result

    def _finish(
        self,
        bucket: Bucket,
        preview: PreviewData,
        submitted: Sequence[UploadRow],
        confirm: ConfirmResult,
    ) -> BucketUploadResult:
        return BucketUploadResult(
            bucket=bucket,
            submitted_row_numbers=tuple(r.row_number for r in submitted),
            rows=merge_created_jobs(preview.rows, confirm),
            confirm=confirm,
        )

    # ------------------------------------------------------------------
    # bucket flows
    # ------------------------------------------------------------------
    def upload_valid(self, preview: PreviewData, selected: Iterable[int]) -> BucketUploadResult:
        with self._gate(Bucket.VALID):
            rows = self._select(preview, Bucket.VALID, selected)
            confirm = self._confirm(preview, rows)
            return self._finish(Bucket.VALID, preview, rows, confirm)

    def upload_error(self, preview: PreviewData, selected: Iterable[int]) -> BucketUploadResult:
        with self._gate(Bucket.ERROR):
            rows = self._select(preview, Bucket.ERROR, selected)
            try:
                fresh = self._api.revalidate(preview.column_mapping, rows)
            except ApiError as e:
                raise RevalidationFailure(e.backend_message or "Failed to revalidate rows") from e
            fresh_by_row = {r.row_number: r for r in fresh}
            passing = [fresh_by_row[r.row_number] for r in rows if r.row_number in fresh_by_row and fresh_by_row[r.row_number].is_valid]
            passing_numbers = {r.row_number for r in passing}
            still_failing = tuple(r for r in rows if r.row_number not in passing_numbers)
            logger.info("error bucket revalidated rows=%d passing=%d", len(rows), len(passing))
            if not passing:
                return BucketUploadResult(
                    bucket=Bucket.ERROR,
                    submitted_row_numbers=(),
                    rows=preview.rows,
                    still_failing=still_failing,
                )
            confirm = self._confirm(preview, passing)
            result = self._finish(Bucket.ERROR, preview, passing, confirm)
            return BucketUploadResult(
                bucket=result.bucket,
                submitted_row_numbers=result.submitted_row_numbers,
                rows=result.rows,
                confirm=confirm,
                still_failing=still_failing,
            )

    def upload_xls_duplicates(self, preview: PreviewData, selected: Iterable[int]) -> BucketUploadResult:
        with self._gate(Bucket.XLS_DUPLICATE):
            rows = self._select(preview, Bucket.XLS_DUPLICATE, selected)
            kept = dedupe_by_key(rows, self._dedupe_key)
            if len(kept) < len(rows):
                logger.info("xls duplicates: dropped %d repeated row(s) before submit", len(rows) - len(kept))
            forced = [r.force_valid() for r in kept]
            confirm = self._confirm(preview, forced)
            return self._finish(Bucket.XLS_DUPLICATE, preview, forced, confirm)

    def upload_db_duplicates(
        self,
        preview: PreviewData,
        selected: Iterable[int],
        confirm_create: ConfirmCallback,
    ) -> BucketUploadResult:
        """Force-create database duplicates after an explicit, blocking confirmation.

        A declined confirmation raises DbDuplicateNotConfirmed before any request
        is made; callers treat it as a no-op.
        """
        with self._gate(Bucket.DB_DUPLICATE):
            rows = self._select(preview, Bucket.DB_DUPLICATE, selected)
            if not confirm_create(rows):
                logger.info("db duplicates: force create declined for %d row(s)", len(rows))
                raise DbDuplicateNotConfirmed("Force create cancelled; no jobs were created")
            forced = [r.force_valid() for r in rows]
            confirm = self._confirm(preview, forced, force_create=True)
            return self._finish(Bucket.DB_DUPLICATE, preview, forced, confirm)
