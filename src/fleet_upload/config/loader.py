from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Client configuration loader.

Responsibilities:
- Load YAML config (default ``config/client.yml``)
- Validate against the bundled JSON schema (client_schema.json)
- Apply defaults (endpoints, timeout, upload limits, role)
- Apply environment overrides (FLEET_API_BASE_URL / FLEET_API_TOKEN / FLEET_ROLE)
"""

__all__ = [
    "ConfigError",
    "ClientConfig",
    "DEFAULT_ENDPOINTS",
    "ACCEPTED_MIME_TYPES",
    "MAX_UPLOAD_BYTES",
    "load_config",
]

SCHEMA_PATH = Path(__file__).with_name("client_schema.json")
DEFAULT_CONFIG_PATH = Path("config/client.yml")

ACCEPTED_MIME_TYPES: tuple[str, ...] = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
)
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_DEDUPE_KEY: tuple[str, ...] = ("customer", "service", "pickup_date")

DEFAULT_ENDPOINTS: dict[str, str] = {
    "upload": "/api/jobs/upload",
    "template": "/api/jobs/template",
    "revalidate": "/api/jobs/revalidate",
    "confirm": "/api/jobs/confirm-upload",
    "download_selected": "/api/jobs/download-selected",
    "customers": "/api/customers",
    "services": "/api/services",
    "vehicles": "/api/vehicles",
    "drivers": "/api/drivers",
    "contractors": "/api/contractors",
    "vehicle_types": "/api/vehicle-types",
}


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    endpoints: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    role: str = "admin"
    customer_id: int | None = None
    api_token: str | None = None
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    accepted_mime_types: tuple[str, ...] = ACCEPTED_MIME_TYPES
    dedupe_key: tuple[str, ...] = DEFAULT_DEDUPE_KEY
    error_log_dir: str = "./logs"
    reference_workers: int = 6


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the data fails
            validation (missing ``base_url``, wrong types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ClientConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    # Environment wins over the file (.env is loaded by the CLI beforehand)
    if os.getenv("FLEET_API_BASE_URL"):
        data["base_url"] = os.environ["FLEET_API_BASE_URL"]
    if os.getenv("FLEET_ROLE"):
        data["role"] = os.environ["FLEET_ROLE"]

    _validate_config_schema(data)

    endpoints = dict(DEFAULT_ENDPOINTS)
    endpoints.update(data.get("endpoints") or {})
    return ClientConfig(
        base_url=str(data["base_url"]).rstrip("/"),
        endpoints=endpoints,
        timeout_seconds=float(data.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
        role=str(data.get("role", "admin")).strip().lower(),
        customer_id=data.get("customer_id"),
        api_token=os.getenv("FLEET_API_TOKEN") or None,
        max_upload_bytes=int(data.get("max_upload_bytes", MAX_UPLOAD_BYTES)),
        accepted_mime_types=tuple(data.get("accepted_mime_types") or ACCEPTED_MIME_TYPES),
        dedupe_key=tuple(data.get("dedupe_key") or DEFAULT_DEDUPE_KEY),
        error_log_dir=str(data.get("error_log_dir", "./logs")),
        reference_workers=int(data.get("reference_workers", 6)),
    )
