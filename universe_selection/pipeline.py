"""
EMA Cross Selection Pipeline - per-batch orchestrator.

Executes three stages for every observation batch:
  Stage 1: Update (get-or-create each entity's tracker, feed the sample)
  Stage 2: Filter (ready and fast EMA above slow EMA by the threshold)
  Stage 3: Rank (scaled delta descending, stable) + cap at max_count

Output: ordered list of entity ids.
"""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple

from universe_selection.config import (
    EmaCrossSelectionConfig,
    validate_selection,
    validate_windows,
)
from universe_selection.indicator import InvalidObservationError, to_decimal
from universe_selection.store import TrackerStore
from universe_selection.tracker import TrackerSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Observation:
    """A single (entity_id, timestamp, value) sample."""
    entity_id: Hashable
    timestamp: Any
    value: Any


@dataclass
class SelectedCandidate:
    """An entity that passed the crossover filter, with its ranking score."""
    entity_id: Hashable
    scaled_delta: Decimal
    fast_value: Decimal
    slow_value: Decimal
    rank: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_id': self.entity_id,
            'scaled_delta': float(self.scaled_delta),
            'fast_value': float(self.fast_value),
            'slow_value': float(self.slow_value),
            'rank': self.rank,
        }


class SelectionPipeline:
    """
    Selects entities whose fast EMA has crossed above their slow EMA.

    Tracker state persists across calls for the life of the pipeline; each
    batch only advances the entities it contains. Safe to call from several
    threads at once.
    """

    def __init__(
        self,
        config: Optional[EmaCrossSelectionConfig] = None,
        store: Optional[TrackerStore] = None,
    ):
        self.config = config or EmaCrossSelectionConfig()
        self.config.validate()
        self.store = store if store is not None else TrackerStore(self.config.store_shards)
        # Stats of whichever rank() call finished last
        self.last_stats: Dict[str, Any] = {}

    def select(
        self,
        batch: Iterable,
        fast_window: Optional[int] = None,
        slow_window: Optional[int] = None,
        threshold: Optional[float] = None,
        max_count: Optional[int] = None,
    ) -> List[Hashable]:
        """
        Process one batch and return the selected entity ids.

        Args:
            batch: Observations or (entity_id, timestamp, value) tuples.
            fast_window, slow_window: Windows for newly created trackers.
            threshold: Required fractional excess of fast over slow.
            max_count: Cap on returned ids. Falls back to the config cap,
                which defaults to unbounded.

        Returns:
            Entity ids ordered by descending scaled delta.
        """
        ranked = self.rank(
            batch,
            fast_window=fast_window,
            slow_window=slow_window,
            threshold=threshold,
            max_count=max_count,
        )
        return [c.entity_id for c in ranked]

    def rank(
        self,
        batch: Iterable,
        fast_window: Optional[int] = None,
        slow_window: Optional[int] = None,
        threshold: Optional[float] = None,
        max_count: Optional[int] = None,
    ) -> List[SelectedCandidate]:
        """Same as ``select`` but returns scored, ranked candidates."""
        cfg = self.config
        fast_window = cfg.fast_window if fast_window is None else fast_window
        slow_window = cfg.slow_window if slow_window is None else slow_window
        threshold = cfg.threshold if threshold is None else threshold
        max_count = cfg.max_count if max_count is None else max_count

        # Preconditions fail the whole call before any tracker is touched
        validate_windows(fast_window, slow_window)
        validate_selection(threshold, max_count)
        tolerance = to_decimal(threshold)

        start = time.time()
        stats = {
            'observations': 0,
            'trackers_created': 0,
            'failed': 0,
            'ready': 0,
            'candidates': 0,
            'selected': 0,
            'duration_seconds': 0.0,
        }

        # Stage 1 + 2: update every tracker, keep the latest verdict per entity
        candidates: Dict[Hashable, SelectedCandidate] = {}
        for entity_id, timestamp, value in self._iter_observations(batch):
            stats['observations'] += 1
            tracker, created = self.store.lookup_or_create(entity_id, fast_window, slow_window)
            if created:
                stats['trackers_created'] += 1

            try:
                snap = tracker.observe(timestamp, value)
            except (InvalidObservationError, ArithmeticError) as e:
                stats['failed'] += 1
                candidates.pop(entity_id, None)
                logger.warning(f"Rejected observation for {entity_id!r}: {e}")
                continue

            if snap.is_ready:
                stats['ready'] += 1

            candidate = self._evaluate(entity_id, snap, tolerance)
            if candidate is None:
                candidates.pop(entity_id, None)
            else:
                # Re-assigning an existing key keeps its batch position
                candidates[entity_id] = candidate

        stats['candidates'] = len(candidates)

        # Stage 3: rank + cap
        final = self._sort_and_cap(list(candidates.values()), max_count)
        stats['selected'] = len(final)
        stats['duration_seconds'] = round(time.time() - start, 6)
        self.last_stats = stats

        logger.info(
            f"Selection: {stats['observations']} observations "
            f"({stats['failed']} rejected, {stats['trackers_created']} new) -> "
            f"{stats['ready']} ready -> {stats['candidates']} candidates -> "
            f"{stats['selected']} selected"
        )
        return final

    def current_selection(
        self,
        threshold: Optional[float] = None,
        max_count: Optional[int] = None,
    ) -> List[Hashable]:
        """
        Rank every tracked entity from its stored state, without updating.

        Uses the same filter and score ordering as ``select``. Equal scores
        follow tracker creation order, not the order of the last batch, so
        tied entities can come out in a different order than the last
        ``select`` returned them.
        """
        ranked = self.current_ranking(threshold=threshold, max_count=max_count)
        return [c.entity_id for c in ranked]

    def current_ranking(
        self,
        threshold: Optional[float] = None,
        max_count: Optional[int] = None,
    ) -> List[SelectedCandidate]:
        """Scored form of ``current_selection``."""
        threshold = self.config.threshold if threshold is None else threshold
        max_count = self.config.max_count if max_count is None else max_count
        validate_selection(threshold, max_count)
        tolerance = to_decimal(threshold)

        candidates = []
        for entity_id, tracker in self.store.snapshot():
            candidate = self._evaluate(entity_id, tracker.snapshot(), tolerance)
            if candidate is not None:
                candidates.append(candidate)

        return self._sort_and_cap(candidates, max_count)

    def select_frame(self, frame, **kwargs) -> List[Hashable]:
        """Run ``select`` on a pandas DataFrame batch (see frames.batch_from_frame)."""
        from universe_selection.frames import batch_from_frame

        column_args = {
            k: kwargs.pop(k) for k in ('entity_col', 'time_col', 'value_col') if k in kwargs
        }
        return self.select(batch_from_frame(frame, **column_args), **kwargs)

    @staticmethod
    def _iter_observations(batch: Iterable) -> Iterable[Tuple[Hashable, Any, Any]]:
        for item in batch:
            if isinstance(item, Observation):
                yield item.entity_id, item.timestamp, item.value
            else:
                entity_id, timestamp, value = item
                yield entity_id, timestamp, value

    @staticmethod
    def _evaluate(
        entity_id: Hashable,
        snap: TrackerSnapshot,
        tolerance: Decimal,
    ) -> Optional[SelectedCandidate]:
        """Return a candidate if ready and above the threshold, else None."""
        if not snap.exceeds(tolerance):
            return None

        score = snap.scaled_delta
        if score is None:
            logger.debug(f"Skipping {entity_id!r}: fast + slow is zero")
            return None

        return SelectedCandidate(
            entity_id=entity_id,
            scaled_delta=score,
            fast_value=snap.fast_value,
            slow_value=snap.slow_value,
        )

    @staticmethod
    def _sort_and_cap(
        candidates: List[SelectedCandidate],
        max_count: Optional[int],
    ) -> List[SelectedCandidate]:
        """Sort by scaled delta desc (stable), cap, and assign ranks."""
        candidates.sort(key=lambda c: c.scaled_delta, reverse=True)
        if max_count is not None:
            candidates = candidates[:max_count]
        for i, c in enumerate(candidates):
            c.rank = i + 1
        return candidates


def run_selection(
    batch: Iterable,
    pipeline: Optional[SelectionPipeline] = None,
) -> List[Hashable]:
    """
    Convenience function for running one batch from a host loop.

    Builds a pipeline from the environment when none is given. Pass the same
    pipeline on every call; tracker state lives in it.
    """
    if pipeline is None:
        pipeline = SelectionPipeline(EmaCrossSelectionConfig.from_env())
    return pipeline.select(batch)
