from __future__ import annotations

"""Role capabilities for reference lookups and edit-row fields.

A role missing from the table falls back to the ``default`` entry, so new
staff roles get full visibility without touching call sites.
"""

__all__ = [
    "can_view",
    "is_restricted",
    "INTERNAL_CONTRACTOR_NAMES",
]

INTERNAL_CONTRACTOR_NAMES = frozenset({"ag", "ag (internal)"})

_HIDDEN_FIELDS: dict[str, frozenset[str]] = {
    "customer": frozenset({"vehicles", "drivers", "vehicle", "driver", "vehicle_id", "driver_id"}),
    "guest": frozenset({"vehicles", "drivers", "vehicle", "driver", "vehicle_id", "driver_id"}),
    "default": frozenset(),
}

# Roles whose customer / contractor choices are narrowed to their own records
_RESTRICTED_ROLES = frozenset({"customer"})


def _normalize(role: str | None) -> str:
    return (role or "guest").strip().lower()


def can_view(field: str, role: str | None) -> bool:
    """True when ``role`` may fetch or edit ``field`` (a reference category or row field)."""
    hidden = _HIDDEN_FIELDS.get(_normalize(role), _HIDDEN_FIELDS["default"])
    return field not in hidden


def is_restricted(role: str | None) -> bool:
    return _normalize(role) in _RESTRICTED_ROLES
