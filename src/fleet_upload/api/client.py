from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import requests

from fleet_upload.config.loader import ClientConfig
from fleet_upload.errors import ApiError
from fleet_upload.models.preview import PreviewData
from fleet_upload.models.results import ConfirmResult
from fleet_upload.models.upload_row import UploadRow

"""HTTP client for the job upload endpoints of the fleet backend.

All calls go through one ``requests.Session``. The backend reports some
failures as HTTP 200 with ``{"success": false, "message": ...}``, so both the
status code and the ``success`` flag are checked. Error text from the
``error`` / ``message`` keys is carried on ApiError for the operator notice.
"""

__all__ = [
    "JobUploadApi",
]

logger = logging.getLogger(__name__)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _backend_message(payload: Any) -> str | None:
    if isinstance(payload, dict):
        for key in ("error", "message"):
            value = payload.get(key)
            if value:
                return str(value)
    return None


class JobUploadApi:
    """Thin wrapper over the backend's upload, validation, confirm and lookup endpoints."""

    def __init__(self, config: ClientConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()
        if config.api_token:
            self.session.headers["Authorization"] = f"Bearer {config.api_token}"

    def url(self, endpoint: str) -> str:
        path = self.config.endpoints[endpoint]
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.config.base_url}/{path.lstrip('/')}"

    # ------------------------------------------------------------------
    # transport helpers
    # ------------------------------------------------------------------
    def _request(self, method: str, endpoint: str, **kwargs: Any) -> requests.Response:
        url = self.url(endpoint)
        kwargs.setdefault("timeout", self.config.timeout_seconds)
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise ApiError(f"{endpoint}: request failed: {e}") from e
        if response.status_code >= 400:
            backend = None
            try:
                backend = _backend_message(response.json())
            except ValueError:
                backend = None
            raise ApiError(
                backend or f"{endpoint}: HTTP {response.status_code}",
                status_code=response.status_code,
                backend_message=backend,
            )
        return response

    def _json(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        response = self._request(method, endpoint, **kwargs)
        try:
            payload = response.json()
        except ValueError as e:
            raise ApiError(f"{endpoint}: response is not JSON", status_code=response.status_code) from e
        if isinstance(payload, dict) and payload.get("success") is False:
            backend = _backend_message(payload)
            raise ApiError(
                backend or f"{endpoint}: backend reported failure",
                status_code=response.status_code,
                backend_message=backend,
            )
        return payload

    def _download(self, method: str, endpoint: str, dest: Path, **kwargs: Any) -> Path:
        response = self._request(method, endpoint, stream=True, **kwargs)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with dest.open("wb") as f:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    if chunk:
                        f.write(chunk)
        except OSError as e:
            raise ApiError(f"{endpoint}: cannot write {dest}: {e}") from e
        except requests.RequestException as e:
            raise ApiError(f"{endpoint}: download interrupted: {e}") from e
        return dest

    # ------------------------------------------------------------------
    # endpoints
    # ------------------------------------------------------------------
    def upload_file(self, name: str, content: bytes, content_type: str) -> PreviewData:
        """POST the workbook as multipart ``file``; returns the parsed preview."""
        payload = self._json("POST", "upload", files={"file": (name, content, content_type)})
        if not isinstance(payload, dict):
            raise ApiError("upload: unexpected response shape")
        try:
            return PreviewData.from_api(payload)
        except (TypeError, ValueError) as e:
            raise ApiError(f"upload: malformed preview: {e}") from e

    def download_template(self, dest: Path) -> Path:
        return self._download("GET", "template", dest)

    def revalidate(self, column_mapping: dict[str, str], rows: Iterable[UploadRow]) -> list[UploadRow]:
        """Batch re-validation; returns the rows with refreshed ``is_valid`` / ``error_message``."""
        body = {
            "column_mapping": dict(column_mapping),
            "data": [r.to_payload() for r in rows],
        }
        payload = self._json("POST", "revalidate", json=body)
        preview = payload.get("preview_data", payload) if isinstance(payload, dict) else None
        if not isinstance(preview, dict):
            raise ApiError("revalidate: unexpected response shape")
        try:
            return [UploadRow.from_api(r) for r in preview.get("rows") or []]
        except (TypeError, ValueError) as e:
            raise ApiError(f"revalidate: malformed rows: {e}") from e

    def confirm_upload(
        self,
        preview: PreviewData,
        rows: Iterable[UploadRow],
        force_create: bool = False,
    ) -> ConfirmResult:
        body = preview.to_payload(rows)
        if force_create:
            body["force_create"] = True
        payload = self._json("POST", "confirm", json=body)
        if not isinstance(payload, dict):
            raise ApiError("confirm: unexpected response shape")
        try:
            return ConfirmResult.from_api(payload)
        except (TypeError, ValueError) as e:
            raise ApiError(f"confirm: malformed response: {e}") from e

    def download_selected(self, rows: Iterable[UploadRow], dest: Path) -> Path:
        body = {"selected_rows": [r.to_payload() for r in rows]}
        return self._download("POST", "download_selected", dest, json=body)

    def fetch_reference(self, category: str) -> list[Any]:
        """GET one lookup list; a ``{"items": [...]}`` / ``{"data": [...]}`` envelope is unwrapped."""
        payload = self._json("GET", category)
        if isinstance(payload, dict):
            for key in ("items", "data", category):
                if isinstance(payload.get(key), list):
                    return payload[key]
            return []
        return payload if isinstance(payload, list) else []
