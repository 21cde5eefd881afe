from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from fleet_upload.errors import (
    ApiError,
    BucketBusy,
    ConfirmUploadFailure,
    DbDuplicateNotConfirmed,
    NoRowsSelected,
    RevalidationFailure,
)
from fleet_upload.models.bucket import Bucket
from fleet_upload.models.results import ConfirmResult, CreatedJob
from fleet_upload.models.upload_row import FILE_DUPLICATE_MARKER
from fleet_upload.services.categorizer import categorize
from fleet_upload.services.uploader import CategoryUploader, dedupe_by_key, merge_created_jobs


def _submitted(api: MagicMock) -> list[int]:
    _, rows = api.confirm_upload.call_args.args[:2]
    return [r.row_number for r in rows]


def test_upload_valid_attaches_job_ids_without_moving_rows(fake_api, preview):
    uploader = CategoryUploader(fake_api)
    result = uploader.upload_valid(preview, [2, 1, 3])  # 3 is not in the valid bucket
    assert _submitted(fake_api) == [1, 2]
    assert fake_api.confirm_upload.call_args.kwargs["force_create"] is False
    by_row = {r.row_number: r for r in result.rows}
    assert by_row[1].job_id == 500 and by_row[2].job_id == 501
    assert by_row[3].job_id is None
    # bucket membership is unchanged by the upload
    assert categorize(result.rows).row_numbers(Bucket.VALID) == {1, 2}
    assert result.created_count == 2
    assert uploader.loading_category is None


def test_empty_selection_raises_no_rows_selected(fake_api, preview):
    with pytest.raises(NoRowsSelected, match="Valid Jobs"):
        CategoryUploader(fake_api).upload_valid(preview, [])
    with pytest.raises(NoRowsSelected):
        CategoryUploader(fake_api).upload_valid(preview, [3, 9])
    fake_api.confirm_upload.assert_not_called()


@pytest.mark.parametrize(
    "method,title,outside",
    [
        ("upload_error", "Jobs With Errors", [1, 5]),
        ("upload_xls_duplicates", "Duplicates In File", [3, 7]),
        ("upload_db_duplicates", "Duplicates In Database", [5, 9]),
    ],
)
@pytest.mark.parametrize("use_outside", [False, True])
def test_empty_selection_guard_for_every_bucket(fake_api, preview, method, title, outside, use_outside):
    asked = []
    uploader = CategoryUploader(fake_api)
    args = [preview, outside if use_outside else []]
    if method == "upload_db_duplicates":
        args.append(lambda rows: asked.append(rows) or True)
    with pytest.raises(NoRowsSelected, match=title):
        getattr(uploader, method)(*args)
    fake_api.revalidate.assert_not_called()
    fake_api.confirm_upload.assert_not_called()
    assert asked == []
    assert uploader.loading_category is None


def test_confirm_failure_keeps_rows_and_carries_backend_message(fake_api, preview):
    fake_api.confirm_upload.side_effect = ApiError("Customer inactive", status_code=400, backend_message="Customer inactive")
    with pytest.raises(ConfirmUploadFailure, match="Customer inactive"):
        CategoryUploader(fake_api).upload_valid(preview, [1])


def test_confirm_failure_without_backend_message_uses_generic_text(fake_api, preview):
    fake_api.confirm_upload.side_effect = ApiError("confirm: request failed: timeout")
    with pytest.raises(ConfirmUploadFailure, match="Upload confirmation failed"):
        CategoryUploader(fake_api).upload_valid(preview, [1])


def test_upload_error_submits_only_rows_that_now_pass(fake_api, preview):
    fake_api.revalidate.side_effect = lambda mapping, rows: [
        r.force_valid() if r.row_number == 3 else r for r in rows
    ]
    result = CategoryUploader(fake_api).upload_error(preview, [3, 4])
    fake_api.revalidate.assert_called_once()
    assert fake_api.revalidate.call_args.args[0] == {"Customer": "customer"}
    assert _submitted(fake_api) == [3]
    assert [r.row_number for r in result.still_failing] == [4]
    by_row = {r.row_number: r for r in result.rows}
    assert by_row[3].job_id == 500
    # stored row keeps its bucket
    assert by_row[3].is_valid is False


def test_upload_error_with_nothing_passing_makes_no_confirm_call(fake_api, preview):
    fake_api.revalidate.side_effect = lambda mapping, rows: list(rows)
    result = CategoryUploader(fake_api).upload_error(preview, [3, 4])
    fake_api.confirm_upload.assert_not_called()
    assert result.confirm is None
    assert result.rows == preview.rows
    assert len(result.still_failing) == 2


def test_upload_error_revalidation_failure_aborts(fake_api, preview):
    fake_api.revalidate.side_effect = ApiError("boom")
    with pytest.raises(RevalidationFailure):
        CategoryUploader(fake_api).upload_error(preview, [3])
    fake_api.confirm_upload.assert_not_called()


def test_upload_xls_duplicates_dedupes_and_forces_valid(fake_api, preview):
    # rows 5 and 6 share customer/service/pickup_date in the fixture
    result = CategoryUploader(fake_api).upload_xls_duplicates(preview, [6, 5])
    assert _submitted(fake_api) == [5]
    _, rows = fake_api.confirm_upload.call_args.args[:2]
    assert rows[0].is_valid is True and rows[0].error_message == ""
    by_row = {r.row_number: r for r in result.rows}
    assert by_row[5].job_id == 500
    assert by_row[5].error_message == FILE_DUPLICATE_MARKER
    assert by_row[6].job_id is None


def test_upload_db_duplicates_declined_makes_no_request(fake_api, preview):
    uploader = CategoryUploader(fake_api)
    with pytest.raises(DbDuplicateNotConfirmed):
        uploader.upload_db_duplicates(preview, [7, 8], lambda rows: False)
    fake_api.confirm_upload.assert_not_called()
    # the gate is released for the next bucket
    assert uploader.loading_category is None


def test_upload_db_duplicates_confirmed_sends_force_create(fake_api, preview):
    asked = []

    def confirm(rows):
        asked.append([r.row_number for r in rows])
        return True

    result = CategoryUploader(fake_api).upload_db_duplicates(preview, [8, 7], confirm)
    assert asked == [[7, 8]]
    assert fake_api.confirm_upload.call_args.kwargs["force_create"] is True
    _, rows = fake_api.confirm_upload.call_args.args[:2]
    assert all(r.is_valid and r.error_message == "" for r in rows)
    assert result.created_count == 2


def test_second_submission_while_in_flight_raises_bucket_busy(fake_api, preview, confirm_factory):
    entered = threading.Event()
    release = threading.Event()

    def slow_confirm(preview_arg, rows, force_create=False):
        entered.set()
        release.wait(timeout=5)
        return confirm_factory(list(rows))

    fake_api.confirm_upload.side_effect = slow_confirm
    uploader = CategoryUploader(fake_api)
    results = []
    worker = threading.Thread(target=lambda: results.append(uploader.upload_valid(preview, [1, 2])))
    worker.start()
    assert entered.wait(timeout=5)
    try:
        assert uploader.loading_category is Bucket.VALID
        with pytest.raises(BucketBusy) as e:
            uploader.upload_xls_duplicates(preview, [5])
        assert e.value.loading == "valid"
    finally:
        release.set()
        worker.join(timeout=5)
    assert results and results[0].created_count == 2
    assert uploader.loading_category is None
    assert fake_api.confirm_upload.call_count == 1


def test_lock_is_released_after_failure(fake_api, preview):
    fake_api.confirm_upload.side_effect = [ApiError("x"), ConfirmResult(1, 0, (CreatedJob(1, 9),))]
    uploader = CategoryUploader(fake_api)
    with pytest.raises(ConfirmUploadFailure):
        uploader.upload_valid(preview, [1])
    assert uploader.upload_valid(preview, [1]).created_count == 1


def test_dedupe_by_key_keeps_first_in_row_order(make_row):
    rows = [
        make_row(9, pickup_date="2025-03-01"),
        make_row(4, pickup_date="2025-03-01"),
        make_row(6, pickup_date="2025-03-02"),
    ]
    assert [r.row_number for r in dedupe_by_key(rows)] == [4, 6]
    assert [r.row_number for r in dedupe_by_key(rows, ("customer",))] == [4]


def test_merge_created_jobs_only_touches_named_rows(make_row):
    rows = (make_row(1), make_row(2, job_id=77), make_row(3))
    confirm = ConfirmResult(2, 0, (CreatedJob(1, 501), CreatedJob(2, 502)))
    merged = merge_created_jobs(rows, confirm)
    assert [r.job_id for r in merged] == [501, 77, None]
    assert merged[2] is rows[2]
