# Shared pytest fixtures
from __future__ import annotations
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from fleet_upload.api.client import JobUploadApi
from fleet_upload.config.loader import ClientConfig
from fleet_upload.logging.init import reset_logging
from fleet_upload.models.preview import PreviewData
from fleet_upload.models.results import ConfirmResult, CreatedJob
from fleet_upload.models.upload_row import DB_DUPLICATE_MARKER, FILE_DUPLICATE_MARKER, UploadRow


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("FLEET_API_BASE_URL", "FLEET_API_TOKEN", "FLEET_ROLE"):
        monkeypatch.delenv(name, raising=False)
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """base_url: http://backend.test/
timeout_seconds: 15
role: admin
max_upload_bytes: 1048576
dedupe_key: [customer, service, pickup_date]
error_log_dir: ./logs
endpoints:
  confirm: /api/v2/jobs/confirm-upload
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "client.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def client_config(tmp_path: Path) -> ClientConfig:
    return ClientConfig(base_url="http://backend.test", error_log_dir=str(tmp_path / "logs"))


def _row(row_number: int, **kwargs) -> UploadRow:
    values = dict(
        customer="Acme Logistics",
        service="Airport Transfer",
        vehicle="SG1234A",
        driver="Alice Tan",
        pickup_date="2025-03-01",
        pickup_time="09:00",
        pickup_location="Changi T3",
        dropoff_location="Marina Bay",
        passenger_name="P. Lim",
        is_valid=True,
    )
    values.update(kwargs)
    return UploadRow(row_number=row_number, **values)


@pytest.fixture()
def make_row():
    """Factory for complete rows; pass overrides as keyword arguments."""
    return _row


@pytest.fixture()
def mixed_rows() -> tuple[UploadRow, ...]:
    """Two rows per bucket plus one rejected row."""
    return (
        _row(1),
        _row(2, pickup_date="2025-03-02"),
        _row(3, is_valid=False, error_message="Invalid service"),
        _row(4, is_valid=False, error_message="Pickup time is required; Driver not found"),
        _row(5, is_valid=False, error_message=FILE_DUPLICATE_MARKER),
        _row(6, is_valid=False, error_message=FILE_DUPLICATE_MARKER),
        _row(7, is_valid=False, error_message=DB_DUPLICATE_MARKER),
        _row(8, is_valid=False, error_message=f"{DB_DUPLICATE_MARKER} (JOB-40)"),
        _row(9, is_rejected=True),
    )


@pytest.fixture()
def preview(mixed_rows) -> PreviewData:
    return PreviewData(rows=tuple(mixed_rows), column_mapping={"Customer": "customer"}).with_rows(mixed_rows)


def confirm_for(rows, start_job_id: int = 500, skipped: int = 0) -> ConfirmResult:
    created = tuple(CreatedJob(row_number=r.row_number, job_id=start_job_id + i) for i, r in enumerate(rows))
    return ConfirmResult(processed_count=len(created), skipped_count=skipped, created_jobs=created)


@pytest.fixture()
def fake_api() -> MagicMock:
    """JobUploadApi double whose confirm-upload creates one job per submitted row."""
    api = MagicMock(spec=JobUploadApi)
    api.confirm_upload.side_effect = lambda preview, rows, force_create=False: confirm_for(list(rows))
    api.fetch_reference.return_value = []
    return api


@pytest.fixture()
def confirm_factory():
    return confirm_for
