"""
Concurrent get-or-create store of EntityTrackers keyed by entity id.

Reads take no lock. Creation is serialized per key through a sharded lock
table, so two batches seeing a new entity at the same time end up with the
same tracker instance. Entries are never evicted.
"""

import logging
from threading import Lock
from typing import Dict, Hashable, List, Optional, Tuple

from universe_selection.tracker import EntityTracker

logger = logging.getLogger(__name__)


class TrackerStore:
    """Thread-safe entity_id -> EntityTracker mapping."""

    def __init__(self, shard_count: int = 16):
        if shard_count <= 0:
            raise ValueError(f"shard_count must be positive, got {shard_count}")
        self._trackers: Dict[Hashable, EntityTracker] = {}
        self._shards = [Lock() for _ in range(shard_count)]
        # Guards dict mutation against concurrent snapshot iteration
        self._index_lock = Lock()

    def __len__(self) -> int:
        return len(self._trackers)

    def __contains__(self, entity_id: Hashable) -> bool:
        return entity_id in self._trackers

    def get(self, entity_id: Hashable) -> Optional[EntityTracker]:
        return self._trackers.get(entity_id)

    def get_or_create(
        self,
        entity_id: Hashable,
        fast_window: int,
        slow_window: int,
    ) -> EntityTracker:
        """
        Return the tracker for ``entity_id``, creating it on first sight.

        Window arguments only apply on creation; an existing tracker keeps
        its own configuration.

        Raises:
            ValueError: a window is not positive (nothing is inserted).
        """
        return self.lookup_or_create(entity_id, fast_window, slow_window)[0]

    def lookup_or_create(
        self,
        entity_id: Hashable,
        fast_window: int,
        slow_window: int,
    ) -> Tuple[EntityTracker, bool]:
        """Same as ``get_or_create``, also reporting whether this call created it."""
        tracker = self._trackers.get(entity_id)
        if tracker is not None:
            return tracker, False

        with self._shards[hash(entity_id) % len(self._shards)]:
            tracker = self._trackers.get(entity_id)
            if tracker is not None:
                return tracker, False

            tracker = EntityTracker(fast_window, slow_window, entity_id=entity_id)
            with self._index_lock:
                self._trackers[entity_id] = tracker
            logger.debug(
                f"Created tracker for {entity_id!r} "
                f"(fast={fast_window}, slow={slow_window})"
            )
            return tracker, True

    def snapshot(self) -> List[Tuple[Hashable, EntityTracker]]:
        """(entity_id, tracker) pairs in creation order."""
        with self._index_lock:
            return list(self._trackers.items())
