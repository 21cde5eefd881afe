from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any

"""UploadRow domain model for the bulk job upload workflow.

One UploadRow per spreadsheet row as returned by the backend parser. Rows are
frozen: editing, rejecting or attaching a job id always yields a new row, and
the session swaps in a whole new row tuple (copy-on-write) so derived bucket
views never go stale.
"""

__all__ = [
    "UploadRow",
    "ValidationStatus",
    "derive_status",
    "FILE_DUPLICATE_MARKER",
    "DB_DUPLICATE_MARKER",
    "TEXT_FIELDS",
    "EDITABLE_FIELDS",
    "REFERENCE_FIELDS",
    "parse_job_id",
    "ID_FIELDS",
]

FILE_DUPLICATE_MARKER = "Duplicate in file"
DB_DUPLICATE_MARKER = "Duplicate in database"

# Free-text / display columns, in template order
TEXT_FIELDS: tuple[str, ...] = (
    "customer",
    "customer_reference_no",
    "department",
    "service",
    "vehicle_type",
    "vehicle",
    "driver",
    "contractor",
    "pickup_date",
    "pickup_time",
    "pickup_location",
    "dropoff_location",
    "passenger_name",
    "passenger_mobile",
    "status",
    "remarks",
)

# display name field -> (reference category, resolved id field)
REFERENCE_FIELDS: dict[str, tuple[str, str]] = {
    "customer": ("customers", "customer_id"),
    "service": ("services", "service_id"),
    "vehicle": ("vehicles", "vehicle_id"),
    "driver": ("drivers", "driver_id"),
    "contractor": ("contractors", "contractor_id"),
    "vehicle_type": ("vehicle_types", "vehicle_type_id"),
}

ID_FIELDS: tuple[str, ...] = tuple(id_field for _, id_field in REFERENCE_FIELDS.values())

EDITABLE_FIELDS: frozenset[str] = frozenset(
    [f for f in TEXT_FIELDS if f != "status"] + list(ID_FIELDS)
)

_JOB_ID_RE = re.compile(r"^\s*(?:JOB-)?(\d+)\s*$", re.IGNORECASE)


class ValidationStatus(Enum):
    """Validation outcome of a row, independent of the rejected flag."""
    VALID = "valid"
    INVALID = "invalid"
    DUPLICATE_IN_FILE = "duplicate_in_file"
    DUPLICATE_IN_DB = "duplicate_in_db"


def derive_status(is_valid: bool, error_message: str, duplicate_kind: str | None = None) -> ValidationStatus:
    """Derive the ValidationStatus of a row.

    A structured ``duplicate_kind`` (``none`` / ``file`` / ``db``) from the backend
    wins over the error text. Without it, the error message is searched for the
    literal duplicate markers; an in-file duplicate is checked first so that a
    message carrying both markers still maps to a single status.
    """
    if is_valid:
        return ValidationStatus.VALID
    kind = (duplicate_kind or "").strip().lower()
    if kind == "file":
        return ValidationStatus.DUPLICATE_IN_FILE
    if kind == "db":
        return ValidationStatus.DUPLICATE_IN_DB
    if kind == "none":
        return ValidationStatus.INVALID
    message = error_message or ""
    if FILE_DUPLICATE_MARKER in message:
        return ValidationStatus.DUPLICATE_IN_FILE
    if DB_DUPLICATE_MARKER in message:
        return ValidationStatus.DUPLICATE_IN_DB
    return ValidationStatus.INVALID


def parse_job_id(value: Any) -> int | None:
    """Accept ``501``, ``"501"`` or the backend's ``"JOB-501"`` label."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = _JOB_ID_RE.match(str(value))
    return int(match.group(1)) if match else None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _opt_int(value: Any) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


@dataclass(frozen=True)
class UploadRow:
    """A single spreadsheet row after backend parsing and validation."""
    row_number: int
    customer: str = ""
    customer_reference_no: str = ""
    department: str = ""
    service: str = ""
    vehicle_type: str = ""
    vehicle: str = ""
    driver: str = ""
    contractor: str = ""
    pickup_date: str = ""
    pickup_time: str = ""
    pickup_location: str = ""
    dropoff_location: str = ""
    passenger_name: str = ""
    passenger_mobile: str = ""
    status: str = ""
    remarks: str = ""
    is_valid: bool = False
    error_message: str = ""
    is_rejected: bool = False  # client-only
    job_id: int | None = None  # read-only once set
    duplicate_kind: str | None = None  # structured duplicate marker when the backend sends one
    customer_id: int | None = None
    service_id: int | None = None
    vehicle_id: int | None = None
    driver_id: int | None = None
    contractor_id: int | None = None
    vehicle_type_id: int | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def validation_status(self) -> ValidationStatus:
        return derive_status(self.is_valid, self.error_message, self.duplicate_kind)

    @property
    def sub_errors(self) -> list[str]:
        """Individual messages of a combined ``error_message``."""
        parts = re.split(r"[;,]", self.error_message or "")
        return [p.strip() for p in parts if p.strip()]

    @staticmethod
    def from_api(data: dict[str, Any]) -> UploadRow:
        """Build a row from backend JSON, tolerating missing or loosely typed keys."""
        known = {f.name for f in fields(UploadRow)}
        row_number = _opt_int(data.get("row_number"))
        if row_number is None:
            raise ValueError(f"row without a usable row_number: {data!r}")
        kwargs: dict[str, Any] = {"row_number": row_number}
        for name in TEXT_FIELDS:
            kwargs[name] = _text(data.get(name))
        for name in ID_FIELDS:
            kwargs[name] = _opt_int(data.get(name))
        kwargs["is_valid"] = _flag(data.get("is_valid", False))
        kwargs["error_message"] = _text(data.get("error_message"))
        kwargs["is_rejected"] = _flag(data.get("is_rejected", False))
        kwargs["job_id"] = parse_job_id(data.get("job_id"))
        kind = data.get("duplicate_kind")
        kwargs["duplicate_kind"] = str(kind) if kind is not None else None
        kwargs["extra"] = {k: v for k, v in data.items() if k not in known}
        return UploadRow(**kwargs)

    def to_payload(self) -> dict[str, Any]:
        """JSON body for this row as the backend expects it (client-only flags omitted)."""
        payload: dict[str, Any] = dict(self.extra)
        payload["row_number"] = self.row_number
        for name in TEXT_FIELDS:
            payload[name] = getattr(self, name)
        for name in ID_FIELDS:
            value = getattr(self, name)
            if value is not None:
                payload[name] = value
        payload["is_valid"] = self.is_valid
        payload["error_message"] = self.error_message
        if self.job_id is not None:
            payload["job_id"] = self.job_id
        if self.duplicate_kind is not None:
            payload["duplicate_kind"] = self.duplicate_kind
        return payload

    def editable_values(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in sorted(EDITABLE_FIELDS)}

    def force_valid(self) -> UploadRow:
        """Copy marked valid with no error, used for operator-overridden duplicates."""
        return replace(self, is_valid=True, error_message="")

    def with_job_id(self, job_id: int) -> UploadRow:
        if self.job_id is not None:
            return self
        return replace(self, job_id=job_id)
