from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Reference data models (customers, services, vehicles, drivers, contractors, vehicle types)."""

__all__ = [
    "ReferenceItem",
    "ReferenceData",
    "CATEGORIES",
]

CATEGORIES: tuple[str, ...] = (
    "customers",
    "services",
    "vehicles",
    "drivers",
    "contractors",
    "vehicle_types",
)


@dataclass(frozen=True)
class ReferenceItem:
    id: int
    name: str

    @staticmethod
    def from_api(data: Any) -> ReferenceItem | None:
        """Map one backend record to ``{id, name}``; vehicles use ``number`` as name."""
        if not isinstance(data, dict):
            return None
        raw_id = data.get("id")
        try:
            item_id = int(raw_id)
        except (TypeError, ValueError):
            return None
        name = data.get("name") or data.get("number") or ""
        return ReferenceItem(id=item_id, name=str(name))


@dataclass(frozen=True)
class ReferenceData:
    """Six independent lookup lists, immutable once fetched."""
    customers: tuple[ReferenceItem, ...] = field(default_factory=tuple)
    services: tuple[ReferenceItem, ...] = field(default_factory=tuple)
    vehicles: tuple[ReferenceItem, ...] = field(default_factory=tuple)
    drivers: tuple[ReferenceItem, ...] = field(default_factory=tuple)
    contractors: tuple[ReferenceItem, ...] = field(default_factory=tuple)
    vehicle_types: tuple[ReferenceItem, ...] = field(default_factory=tuple)

    def items(self, category: str) -> tuple[ReferenceItem, ...]:
        if category not in CATEGORIES:
            raise KeyError(f"unknown reference category: {category}")
        return getattr(self, category)

    def by_id(self, category: str, item_id: int | None) -> ReferenceItem | None:
        if item_id is None:
            return None
        for item in self.items(category):
            if item.id == item_id:
                return item
        return None

    def by_name(self, category: str, name: str) -> list[ReferenceItem]:
        """All items whose name matches exactly; more than one means the name is ambiguous."""
        return [item for item in self.items(category) if item.name == name]

    def has_name(self, category: str, name: str) -> bool:
        return bool(self.by_name(category, name))

    @property
    def is_empty(self) -> bool:
        return not any(self.items(c) for c in CATEGORIES)
