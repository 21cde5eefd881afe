from __future__ import annotations

"""Error taxonomy for the bulk upload workflow.

Every error carries an ``error_type`` in UPPER_SNAKE_CASE, used as the
``error_type`` column of the JSON Lines error log.
"""

__all__ = [
    "FleetUploadError",
    "ApiError",
    "UnsupportedFileType",
    "FileTooLarge",
    "UploadParseFailure",
    "NoRowsSelected",
    "RevalidationFailure",
    "ConfirmUploadFailure",
    "DbDuplicateNotConfirmed",
    "BucketBusy",
]


class FleetUploadError(Exception):
    """Base class for all workflow errors surfaced to the operator."""

    error_type = "UNEXPECTED_ERROR"


class ApiError(FleetUploadError):
    """Transport or backend failure for a single HTTP call.

    ``message`` is the backend's own text (``error`` / ``message`` key) when the
    response carried one, otherwise a generic description.
    """

    error_type = "API_ERROR"

    def __init__(self, message: str, status_code: int | None = None, backend_message: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.backend_message = backend_message


class UnsupportedFileType(FleetUploadError):
    error_type = "UNSUPPORTED_FILE_TYPE"


class FileTooLarge(FleetUploadError):
    error_type = "FILE_TOO_LARGE"


class UploadParseFailure(FleetUploadError):
    error_type = "UPLOAD_PARSE_FAILURE"


class NoRowsSelected(FleetUploadError):
    error_type = "NO_ROWS_SELECTED"


class RevalidationFailure(FleetUploadError):
    error_type = "REVALIDATION_FAILURE"


class ConfirmUploadFailure(FleetUploadError):
    error_type = "CONFIRM_UPLOAD_FAILURE"


class DbDuplicateNotConfirmed(FleetUploadError):
    """Operator declined the forced create of database duplicates (a no-op)."""

    error_type = "DB_DUPLICATE_NOT_CONFIRMED"


class BucketBusy(FleetUploadError):
    """Another bucket submission is still in flight."""

    error_type = "BUCKET_BUSY"

    def __init__(self, requested: str, loading: str | None) -> None:
        super().__init__(f"cannot submit '{requested}' while '{loading}' is uploading")
        self.requested = requested
        self.loading = loading
