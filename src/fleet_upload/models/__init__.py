"""Domain models for the bulk job upload client.

Rows, preview data, reference lists and operation results are frozen
dataclasses; every state change produces new instances.
"""

from .bucket import Bucket
from .error_record import ErrorRecord
from .preview import PreviewData
from .reference import ReferenceData, ReferenceItem
from .results import (
    BucketUploadResult,
    ConfirmResult,
    CreatedJob,
    Notice,
    SaveOutcome,
    SaveResult,
    SkippedRow,
)
from .upload_row import UploadRow, ValidationStatus

__all__ = [
    # Row models
    "UploadRow",
    "ValidationStatus",
    "PreviewData",
    "Bucket",
    # Reference models
    "ReferenceData",
    "ReferenceItem",
    # Results
    "BucketUploadResult",
    "ConfirmResult",
    "CreatedJob",
    "SkippedRow",
    "SaveOutcome",
    "SaveResult",
    "Notice",
    "ErrorRecord",
]
