from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import Any, Protocol

from ..errors import ApiError
from ..models.reference import ReferenceData
from ..models.results import SaveOutcome, SaveResult
from ..models.upload_row import EDITABLE_FIELDS, ID_FIELDS, REFERENCE_FIELDS, TEXT_FIELDS, UploadRow
from .permissions import can_view, is_restricted
from .reference_cache import ReferenceDataCache, internal_contractors

"""Row editor: edit buffers, local reference checks and single-row re-validation.

Saving an edit never moves a row between buckets. The backend's fresh
verdict is reported on the SaveResult, but the stored row keeps the
``is_valid`` / ``error_message`` it had when editing started; validity only
changes through the bucket upload flows or an explicit revalidate-all.
"""

__all__ = [
    "RowEditor",
    "check_against_reference",
]

logger = logging.getLogger(__name__)

NO_CHANGES_MESSAGE = "Please make changes to fix the validation errors before saving."

_REQUIRED_TEXT = {
    "pickup_date": "Pickup date is required",
    "pickup_time": "Pickup time is required",
    "pickup_location": "Pickup location is required",
    "dropoff_location": "Dropoff location is required",
}

_ID_TO_NAME = {id_field: name for name, (_, id_field) in REFERENCE_FIELDS.items()}


class RowValidator(Protocol):
    def revalidate(self, column_mapping: dict[str, str], rows: Iterable[UploadRow]) -> list[UploadRow]: ...


def _blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and value.strip() == ""


def _known(reference: ReferenceData, field: str, row: UploadRow) -> bool:
    category, id_field = REFERENCE_FIELDS[field]
    item_id = getattr(row, id_field)
    if item_id is not None and reference.by_id(category, item_id) is not None:
        return True
    return reference.has_name(category, getattr(row, field))


def check_against_reference(row: UploadRow, reference: ReferenceData, role: str | None) -> list[str]:
    """Local checks run before an edited row is sent to the backend.

    Required fields are always checked; existence checks only run for
    categories that were actually loaded.
    """
    errors: list[str] = []

    if _blank(row.customer) and row.customer_id is None:
        errors.append("Customer is required")
    elif reference.customers and not _known(reference, "customer", row):
        errors.append("Invalid customer selected")

    if _blank(row.service):
        errors.append("Service is required")
    elif reference.services and not _known(reference, "service", row):
        errors.append("Invalid service - please select a valid service from the dropdown")

    if not _blank(row.contractor) and reference.contractors:
        if not _known(reference, "contractor", row):
            errors.append("Invalid contractor - please select a valid contractor from the dropdown")
        elif is_restricted(role) and row.contractor.strip().lower() not in {
            c.name.lower() for c in internal_contractors(reference.contractors)
        }:
            errors.append("Customer users can only select AG (Internal) contractor")

    if not _blank(row.vehicle_type) and reference.vehicle_types and not _known(reference, "vehicle_type", row):
        errors.append("Invalid vehicle type - please select a valid vehicle type from the dropdown")

    for field, label in (("vehicle", "Vehicle"), ("driver", "Driver")):
        if not can_view(field, role):
            continue
        _, id_field = REFERENCE_FIELDS[field]
        if _blank(getattr(row, field)) and getattr(row, id_field) is None:
            errors.append(f"{label} is required")
        elif reference.items(REFERENCE_FIELDS[field][0]) and not _known(reference, field, row):
            errors.append(f"Invalid {field} selected")

    for field, message in _REQUIRED_TEXT.items():
        if _blank(getattr(row, field)):
            errors.append(message)
    return errors


class RowEditor:
    """Edit buffers keyed by row_number."""

    def __init__(
        self,
        api: RowValidator,
        reference: ReferenceDataCache | None = None,
        role: str | None = "admin",
    ) -> None:
        self._api = api
        self._reference = reference
        self._role = role
        self._buffers: dict[int, dict[str, Any]] = {}
        self._originals: dict[int, UploadRow] = {}

    @property
    def editing(self) -> tuple[int, ...]:
        return tuple(sorted(self._buffers))

    def buffer(self, row_number: int) -> dict[str, Any]:
        return dict(self._buffers[row_number])

    def start_edit(self, row: UploadRow) -> None:
        self._originals[row.row_number] = row
        self._buffers[row.row_number] = row.editable_values()

    def update_field(self, row_number: int, field: str, value: Any) -> None:
        if row_number not in self._buffers:
            raise KeyError(f"row {row_number} is not being edited")
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"field '{field}' is not editable")
        if not can_view(field, self._role):
            raise ValueError(f"field '{field}' is not available for role '{self._role}'")
        buf = self._buffers[row_number]
        if field in ID_FIELDS:
            buf[field] = None if _blank(value) else int(value)
        else:
            buf[field] = "" if value is None else str(value)
        self._resolve(buf, field)

    def _resolve(self, buf: dict[str, Any], field: str) -> None:
        """Keep the display name and the resolved id of a reference field in step."""
        if self._reference is None or (field not in REFERENCE_FIELDS and field not in _ID_TO_NAME):
            return
        reference = self._reference.get(self._role)
        if field in REFERENCE_FIELDS:
            category, id_field = REFERENCE_FIELDS[field]
            matches = reference.by_name(category, buf[field])
            if len(matches) > 1:
                logger.warning("%s name '%s' is ambiguous (%d matches); id cleared", field, buf[field], len(matches))
            buf[id_field] = matches[0].id if len(matches) == 1 else None
        else:
            name_field = _ID_TO_NAME[field]
            category = REFERENCE_FIELDS[name_field][0]
            item = reference.by_id(category, buf[field])
            if item is not None:
                buf[name_field] = item.name

    def cancel_edit(self, row_number: int | None = None) -> None:
        """Discard one buffer (or all) without touching the row array."""
        if row_number is None:
            self._buffers.clear()
            self._originals.clear()
            return
        self._buffers.pop(row_number, None)
        self._originals.pop(row_number, None)

    def save_edit(
        self,
        row_number: int,
        rows: Sequence[UploadRow],
        column_mapping: dict[str, str],
    ) -> SaveResult:
        if row_number not in self._buffers:
            raise KeyError(f"row {row_number} is not being edited")
        current = next((r for r in rows if r.row_number == row_number), None)
        if current is None:
            raise KeyError(f"row {row_number} is not in the current upload")
        original = self._originals[row_number]
        edited = replace(current, **self._buffers[row_number])
        unchanged = tuple(rows)

        if not original.is_valid and edited.editable_values() == original.editable_values():
            return SaveResult(SaveOutcome.FAILED, row_number, unchanged, errors=(NO_CHANGES_MESSAGE,))

        if self._reference is not None:
            errors = check_against_reference(edited, self._reference.get(self._role), self._role)
            if errors:
                return SaveResult(SaveOutcome.FAILED, row_number, unchanged, errors=tuple(errors))

        fresh_row: UploadRow | None = None
        try:
            fresh = self._api.revalidate(column_mapping, [edited])
            fresh_row = next((r for r in fresh if r.row_number == row_number), None)
            if fresh_row is None:
                logger.warning("revalidate response did not include row=%d", row_number)
        except ApiError as e:
            logger.warning("row=%d saved without re-validation: %s", row_number, e)

        if fresh_row is None:
            merged = edited
            outcome = SaveOutcome.SAVED_UNVALIDATED
        else:
            merged = self._merge(edited, fresh_row)
            outcome = SaveOutcome.SAVED_VALIDATED

        # validity stays as it was when editing started
        merged = replace(
            merged,
            is_valid=original.is_valid,
            error_message=original.error_message,
            duplicate_kind=original.duplicate_kind,
        )
        new_rows = tuple(merged if r.row_number == row_number else r for r in rows)
        self.cancel_edit(row_number)
        return SaveResult(
            outcome,
            row_number,
            new_rows,
            fresh_is_valid=fresh_row.is_valid if fresh_row is not None else None,
            fresh_error_message=fresh_row.error_message if fresh_row is not None else None,
        )

    @staticmethod
    def _merge(edited: UploadRow, fresh: UploadRow) -> UploadRow:
        updates: dict[str, Any] = {name: getattr(fresh, name) for name in TEXT_FIELDS}
        for name in ID_FIELDS:
            value = getattr(fresh, name)
            if value is not None:
                updates[name] = value
        extra = dict(edited.extra)
        extra.update(fresh.extra)
        updates["extra"] = extra
        return replace(edited, **updates)
