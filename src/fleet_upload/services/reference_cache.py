from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

from ..errors import ApiError
from ..models.reference import CATEGORIES, ReferenceData, ReferenceItem
from .permissions import INTERNAL_CONTRACTOR_NAMES, can_view, is_restricted

"""Reference data cache for edit-row dropdowns and local row checks.

Fetched once per session on first use. Every category is requested in
parallel; a category the role may not see is skipped, and a category whose
request fails becomes an empty list without failing the others.
"""

__all__ = [
    "ReferenceDataCache",
    "ReferenceSource",
    "internal_contractors",
]

logger = logging.getLogger(__name__)


class ReferenceSource(Protocol):
    def fetch_reference(self, category: str) -> list[Any]: ...


def internal_contractors(contractors: tuple[ReferenceItem, ...]) -> tuple[ReferenceItem, ...]:
    """The single contractor a restricted role may pick, or nothing."""
    internal = [c for c in contractors if c.name.lower() in INTERNAL_CONTRACTOR_NAMES]
    if not internal:
        internal = [c for c in contractors if "ag" in c.name.lower()]
    return tuple(internal[:1])


def _coerce_items(payload: Any) -> tuple[ReferenceItem, ...]:
    if not isinstance(payload, list):
        return ()
    items = (ReferenceItem.from_api(p) for p in payload)
    return tuple(i for i in items if i is not None)


class ReferenceDataCache:
    def __init__(self, source: ReferenceSource, max_workers: int = 6) -> None:
        self._source = source
        self._max_workers = max_workers
        self._data: ReferenceData | None = None
        self._role: str | None = None
        self._lock = threading.Lock()
        self.failed_categories: set[str] = set()

    @property
    def loaded(self) -> bool:
        return self._data is not None

    def get(self, role: str | None) -> ReferenceData:
        """Return cached reference data, fetching it on first call for ``role``."""
        with self._lock:
            if self._data is None or self._role != role:
                self._data = self._fetch_all(role)
                self._role = role
            return self._data

    def invalidate(self) -> None:
        with self._lock:
            self._data = None
            self._role = None
            self.failed_categories = set()

    def _fetch_one(self, category: str) -> tuple[ReferenceItem, ...]:
        try:
            items = _coerce_items(self._source.fetch_reference(category))
        except ApiError as e:
            logger.warning("failed to load %s: %s", category, e)
            self.failed_categories.add(category)
            return ()
        logger.debug("loaded %s count=%d", category, len(items))
        return items

    def _fetch_all(self, role: str | None) -> ReferenceData:
        wanted = [c for c in CATEGORIES if can_view(c, role)]
        skipped = [c for c in CATEGORIES if c not in wanted]
        if skipped:
            logger.debug("reference categories skipped for role=%s: %s", role, skipped)
        self.failed_categories = set()
        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="reference") as pool:
            futures = {c: pool.submit(self._fetch_one, c) for c in wanted}
            results = {c: f.result() for c, f in futures.items()}
        return ReferenceData(**{c: results.get(c, ()) for c in CATEGORIES})

    # ------------------------------------------------------------------
    # role-filtered views
    # ------------------------------------------------------------------
    def customers_for(self, role: str | None, customer_id: int | None) -> tuple[ReferenceItem, ...]:
        """Customer choices: a customer user only sees their own customer."""
        customers = self.get(role).customers
        if is_restricted(role) and customer_id is not None:
            return tuple(c for c in customers if c.id == customer_id)
        return customers

    def contractors_for(self, role: str | None) -> tuple[ReferenceItem, ...]:
        """Contractor choices: a customer user is limited to the internal contractor."""
        contractors = self.get(role).contractors
        if not is_restricted(role):
            return contractors
        return internal_contractors(contractors)
