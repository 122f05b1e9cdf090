"""
In-memory cache for online aircraft rectangle queries.

The map asks for aircraft inside the visible rectangle on every redraw.
Querying the database each time is wasteful since the online feed only
changes every few minutes, so results are kept for the region they were
loaded from:

- The query rectangle is inflated (factor plus increment) and loaded
  once; small pans inside the inflated box are served from memory.
- Any growth beyond the inflated box, a change of detail level, a change
  of the set of simulator registrations or a new feed clears the whole
  cache. It is never patched.

Online clients that are also flying in the simulator (same registration,
closer than 30 NM) are dropped so the aircraft is not drawn twice.
"""

import logging
import threading
from typing import Generic, Hashable, List, Optional, TypeVar

from onlinedata.config import config
from onlinedata.geo import Rect, distances_meter, nm_to_meter, split_at_anti_meridian
from onlinedata.models import Client
from onlinedata.simulator import RegistrationSnapshot
from onlinedata.store import OnlineDataManager

logger = logging.getLogger(__name__)

# Drop duplicates with simulator aircraft closer than this (500 kts for 3 min)
MIN_DISTANCE_DUPLICATE_METER = nm_to_meter(30)

T = TypeVar('T')


class RectCache(Generic[T]):
    """
    List of results valid for one query rectangle and detail level.

    Not thread-safe on its own - guarded by the owner.
    """

    def __init__(self, inflation_factor: float, inflation_increment: float):
        self.inflation_factor = inflation_factor
        self.inflation_increment = inflation_increment
        self.items: List[T] = []
        self.rect: Optional[Rect] = None
        self.detail_level: Optional[Hashable] = None
        self.max_rows_reached = False

    def update(self, rect: Rect, detail_level: Optional[Hashable], lazy: bool) -> bool:
        """
        Clear the cache if rect grows beyond the inflated cached rectangle
        or the detail level changed. Lazy calls never clear.

        Returns True if the cache was cleared.
        """
        if lazy:
            return False

        if (
            self.rect is None or
            detail_level != self.detail_level or
            not self.rect.inflated(self.inflation_factor, self.inflation_increment).contains(rect)
        ):
            self.clear()
            return True
        return False

    def mark_loaded(self, rect: Rect, detail_level: Optional[Hashable]) -> None:
        """Remember the region the current items were loaded for."""
        self.rect = rect
        self.detail_level = detail_level

    def validate(self, max_rows: int) -> None:
        """
        Trim to max_rows.

        A full result is likely truncated, so the region is forgotten and
        the next non-lazy query loads again.
        """
        if len(self.items) >= max_rows:
            del self.items[max_rows:]
            self.max_rows_reached = True
            self.rect = None
        else:
            self.max_rows_reached = False

    def clear(self) -> None:
        self.items.clear()
        self.rect = None
        self.detail_level = None
        self.max_rows_reached = False

    def __len__(self) -> int:
        return len(self.items)


class AircraftQueryCache:
    """
    Thread-safe cache for online aircraft by rectangle.

    The registration snapshot of simulator traffic is passed into every
    query. The cache only remembers the key set of the last snapshot used
    for loading.
    """

    def __init__(
        self,
        store: OnlineDataManager,
        inflation_factor: Optional[float] = None,
        inflation_increment: Optional[float] = None,
        max_rows: Optional[int] = None,
        min_duplicate_distance_meter: float = MIN_DISTANCE_DUPLICATE_METER,
    ):
        self.store = store
        self.inflation_factor = config.cache.inflation_factor if inflation_factor is None else inflation_factor
        self.inflation_increment = (
            config.cache.inflation_increment if inflation_increment is None else inflation_increment
        )
        self.max_rows = max_rows or config.cache.max_rows
        self.min_duplicate_distance_meter = min_duplicate_distance_meter

        self._cache: RectCache[Client] = RectCache(self.inflation_factor, self.inflation_increment)
        self._registrations = RegistrationSnapshot()
        self._lock = threading.RLock()

        # Statistics
        self._hits = 0
        self._misses = 0

    def get_aircraft(
        self,
        rect: Rect,
        detail_level: Optional[Hashable] = None,
        lazy: bool = False,
        registrations: Optional[RegistrationSnapshot] = None,
    ) -> List[Client]:
        """
        Get online aircraft inside rect.

        Args:
            rect: Visible map rectangle, may cross the anti-meridian
            detail_level: Map detail level, a change clears the cache
            lazy: Do not load from the database, return what is cached
            registrations: Current simulator traffic for deduplication

        Returns:
            List of clients, empty if nothing is loaded
        """
        registrations = registrations or RegistrationSnapshot()

        with self._lock:
            self._cache.update(rect, detail_level, lazy)

            if not registrations.same_registrations(self._registrations):
                # Online clients may now collide with new or removed simulator aircraft
                logger.debug('Simulator registrations changed - clearing aircraft cache')
                self._cache.clear()

            if not self._cache.items and not lazy:
                self._misses += 1
                for part in split_at_anti_meridian(rect, self.inflation_factor, self.inflation_increment):
                    rows = self.store.query_by_rect(part, self.max_rows)
                    self._cache.items.extend(self._filter_duplicates(rows, registrations))
                self._cache.mark_loaded(rect, detail_level)
                self._registrations = registrations
                logger.debug(f'Aircraft cache loaded {len(self._cache)} clients for {rect}')
            else:
                self._hits += 1

            self._cache.validate(self.max_rows)
            return list(self._cache.items)

    def _filter_duplicates(self, rows: List[Client], registrations: RegistrationSnapshot) -> List[Client]:
        """Drop clients that are simulator aircraft nearby."""
        if not rows or not len(registrations):
            return rows

        candidates = [
            i for i, row in enumerate(rows)
            if row.registration in registrations and row.latitude is not None and row.longitude is not None
        ]
        if not candidates:
            return rows

        sim_positions = [registrations.get(rows[i].registration) for i in candidates]
        distances = distances_meter(
            [rows[i].latitude for i in candidates],
            [rows[i].longitude for i in candidates],
            [pos.latitude for pos in sim_positions],
            [pos.longitude for pos in sim_positions],
        )

        duplicates = {i for i, dist in zip(candidates, distances) if dist <= self.min_duplicate_distance_meter}
        if duplicates:
            logger.debug(f'Dropped {len(duplicates)} online clients duplicating simulator aircraft')
        return [row for i, row in enumerate(rows) if i not in duplicates]

    def get_cached(self) -> List[Client]:
        """Current cache contents without any query."""
        with self._lock:
            return list(self._cache.items)

    def clear(self) -> None:
        """Clear cached aircraft."""
        with self._lock:
            self._cache.clear()

    def clear_registrations(self) -> None:
        """Forget the simulator registrations used for the last load."""
        with self._lock:
            self._registrations = RegistrationSnapshot()

    def invalidate(self) -> None:
        """Clear cached aircraft and remembered registrations."""
        with self._lock:
            self._cache.clear()
            self._registrations = RegistrationSnapshot()

    @property
    def registrations(self) -> RegistrationSnapshot:
        with self._lock:
            return self._registrations

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            return {
                'entries': len(self._cache),
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / (self._hits + self._misses) if (self._hits + self._misses) > 0 else 0,
                'rect': self._cache.rect.to_dict() if self._cache.rect else None,
                'max_rows_reached': self._cache.max_rows_reached,
            }
