# Fake fleet backend for end-to-end session tests
from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import pandas as pd
import pytest

from fleet_upload.api.client import JobUploadApi
from fleet_upload.config.loader import ClientConfig

COLUMN_MAPPING = {
    "Customer": "customer",
    "Service": "service",
    "Vehicle": "vehicle",
    "Driver": "driver",
    "Pickup Date": "pickup_date",
    "Pickup Time": "pickup_time",
    "Pickup Location": "pickup_location",
    "Drop-off Location": "dropoff_location",
    "Passenger Name": "passenger_name",
}


class FakeResponse:
    def __init__(self, status: int, payload: Any = None, content: bytes | None = None) -> None:
        self.status_code = status
        self._payload = payload
        self._content = content

    def json(self) -> Any:
        if self._content is not None:
            raise ValueError("binary body")
        return json.loads(json.dumps(self._payload))

    def iter_content(self, chunk_size: int = 1024):
        data = self._content or b""
        for i in range(0, len(data), chunk_size):
            yield data[i:i + chunk_size]


class FakeBackend:
    """Routes requests.Session.request calls to an in-memory job store."""

    def __init__(self) -> None:
        self.headers: dict[str, str] = {}
        self.customers = {1: "Acme Logistics", 2: "Harbour Hotels"}
        self.services = {10: "Airport Transfer", 11: "Hourly Charter"}
        self.existing_keys: set[tuple[str, str, str]] = set()
        self.jobs: dict[int, dict[str, Any]] = {}
        self.next_job_id = 501
        self.fail_next: dict[str, tuple[int, dict[str, Any]]] = {}
        self.calls: list[tuple[str, str, Any]] = []

    # --- validation rules -------------------------------------------------
    @staticmethod
    def key(row: dict[str, Any]) -> tuple[str, str, str]:
        return (str(row.get("customer", "")), str(row.get("service", "")), str(row.get("pickup_date", "")))

    def validate(self, row: dict[str, Any], seen: set[tuple[str, str, str]]) -> tuple[bool, str]:
        errors = []
        if not row.get("customer"):
            errors.append("Customer is required")
        elif row["customer"] not in self.customers.values():
            errors.append(f"Invalid customer: {row['customer']}")
        if row.get("service") not in self.services.values():
            errors.append(f"Invalid service: {row.get('service')}")
        k = self.key(row)
        if not errors:
            if k in seen:
                errors.append("Duplicate in file")
            elif k in self.existing_keys:
                errors.append("Duplicate in database")
        seen.add(k)
        return (not errors, "; ".join(errors))

    def _validated(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        seen: set[tuple[str, str, str]] = set()
        out = []
        for row in rows:
            ok, message = self.validate(row, seen)
            out.append({**row, "is_valid": ok, "error_message": message})
        return out

    # --- endpoints --------------------------------------------------------
    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        path = urlparse(url).path
        self.calls.append((method, path, kwargs.get("json")))
        if path in self.fail_next:
            status, payload = self.fail_next.pop(path)
            return FakeResponse(status, payload)
        handler = {
            ("POST", "/api/jobs/upload"): self._upload,
            ("GET", "/api/jobs/template"): self._template,
            ("POST", "/api/jobs/revalidate"): self._revalidate,
            ("POST", "/api/jobs/confirm-upload"): self._confirm,
            ("POST", "/api/jobs/download-selected"): self._download_selected,
            ("GET", "/api/customers"): lambda kw: FakeResponse(200, [{"id": i, "name": n} for i, n in self.customers.items()]),
            ("GET", "/api/services"): lambda kw: FakeResponse(200, {"items": [{"id": i, "name": n} for i, n in self.services.items()]}),
            ("GET", "/api/vehicles"): lambda kw: FakeResponse(200, [{"id": 20, "number": "SG1234A"}]),
            ("GET", "/api/drivers"): lambda kw: FakeResponse(200, [{"id": 30, "name": "Alice Tan"}]),
            ("GET", "/api/contractors"): lambda kw: FakeResponse(200, [{"id": 40, "name": "AG (Internal)"}]),
            ("GET", "/api/vehicle-types"): lambda kw: FakeResponse(500, {"error": "vehicle types unavailable"}),
        }.get((method, path))
        if handler is None:
            return FakeResponse(404, {"error": f"no route {method} {path}"})
        return handler(kwargs)

    def _upload(self, kwargs: dict[str, Any]) -> FakeResponse:
        name, content, _ = kwargs["files"]["file"]
        df = pd.read_excel(io.BytesIO(content), dtype=str).fillna("")
        missing = [c for c in ("Customer", "Service") if c not in df.columns]
        if missing:
            return FakeResponse(400, {"error": f"Missing required columns: {', '.join(missing)}"})
        rows = []
        for i, record in enumerate(df.to_dict(orient="records")):
            row = {field: record.get(col, "") for col, field in COLUMN_MAPPING.items()}
            row["row_number"] = i + 2
            rows.append(row)
        validated = self._validated(rows)
        return FakeResponse(
            200,
            {
                "rows": validated,
                "valid_count": sum(1 for r in validated if r["is_valid"]),
                "error_count": sum(1 for r in validated if not r["is_valid"]),
                "column_mapping": COLUMN_MAPPING,
                "available_columns": list(df.columns),
            },
        )

    def _template(self, kwargs: dict[str, Any]) -> FakeResponse:
        return FakeResponse(200, content=b"PK\x03\x04template")

    def _revalidate(self, kwargs: dict[str, Any]) -> FakeResponse:
        body = kwargs["json"]
        return FakeResponse(200, {"success": True, "preview_data": {"rows": self._validated(body["data"])}})

    def _confirm(self, kwargs: dict[str, Any]) -> FakeResponse:
        body = kwargs["json"]
        force = bool(body.get("force_create"))
        created, skipped = [], []
        for row in body["rows"]:
            k = self.key(row)
            if not row.get("is_valid"):
                skipped.append({"row_number": row["row_number"], "reason": row.get("error_message") or "invalid"})
                continue
            if k in self.existing_keys and not force:
                skipped.append({"row_number": row["row_number"], "reason": "Duplicate in database"})
                continue
            job_id = self.next_job_id
            self.next_job_id += 1
            self.jobs[job_id] = row
            self.existing_keys.add(k)
            created.append({"job_id": f"JOB-{job_id}", "row_number": row["row_number"], "customer": row["customer"]})
        return FakeResponse(
            200,
            {
                "success": True,
                "processed_count": len(created),
                "skipped_count": len(skipped),
                "skipped_rows": skipped,
                "errors": [],
                "created_jobs": created,
            },
        )

    def _download_selected(self, kwargs: dict[str, Any]) -> FakeResponse:
        numbers = ",".join(str(r["row_number"]) for r in kwargs["json"]["selected_rows"])
        return FakeResponse(200, content=f"rows:{numbers}".encode())


@pytest.fixture()
def backend() -> FakeBackend:
    b = FakeBackend()
    # a job created in an earlier session
    b.existing_keys.add(("Harbour Hotels", "Hourly Charter", "2025-04-05"))
    return b


@pytest.fixture()
def live_config(tmp_path: Path) -> ClientConfig:
    return ClientConfig(base_url="http://backend.test", error_log_dir=str(tmp_path / "logs"))


@pytest.fixture()
def live_api(backend: FakeBackend, live_config: ClientConfig) -> JobUploadApi:
    return JobUploadApi(live_config, session=backend)  # type: ignore[arg-type]


@pytest.fixture()
def jobs_workbook(tmp_path: Path) -> Path:
    """Row numbers start at 2 (row 1 is the header)."""
    base = {
        "Vehicle": "SG1234A",
        "Driver": "Alice Tan",
        "Pickup Time": "09:00",
        "Pickup Location": "Changi T3",
        "Drop-off Location": "Marina Bay",
        "Passenger Name": "P. Lim",
    }
    records = [
        {"Customer": "Acme Logistics", "Service": "Airport Transfer", "Pickup Date": "2025-04-01"},  # 2 valid
        {"Customer": "Acme Logistics", "Service": "Hourly Charter", "Pickup Date": "2025-04-02"},  # 3 valid
        {"Customer": "Acme Logistics", "Service": "Limousine", "Pickup Date": "2025-04-03"},  # 4 error
        {"Customer": "Acme Logistics", "Service": "Airport Transfer", "Pickup Date": "2025-04-01"},  # 5 dup of 2
        {"Customer": "Harbour Hotels", "Service": "Hourly Charter", "Pickup Date": "2025-04-05"},  # 6 db dup
        {"Customer": "Harbour Hotels", "Service": "Airport Transfer", "Pickup Date": "2025-04-06"},  # 7 valid
    ]
    df = pd.DataFrame([{**base, **r} for r in records])
    path = tmp_path / "jobs.xlsx"
    df.to_excel(path, index=False)
    return path
