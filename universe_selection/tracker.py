"""
Per-entity fast/slow EMA pair used by the crossover selection.

Usage:
    tracker = EntityTracker(fast_window=12, slow_window=26, entity_id='AAPL')

    # On each batch
    if tracker.update(timestamp, price):
        score = tracker.scaled_delta
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from threading import Lock
from typing import Any, Hashable, Optional, Union

from universe_selection.indicator import ExponentialMovingAverage, to_decimal

logger = logging.getLogger(__name__)

_TWO = Decimal(2)


class TrackerNotReadyError(RuntimeError):
    """Raised when the spread is read before both averages are ready."""


@dataclass(frozen=True)
class TrackerSnapshot:
    """Consistent view of a tracker taken right after an update."""
    is_ready: bool
    fast_value: Optional[Decimal]
    slow_value: Optional[Decimal]
    sample_count: int

    @property
    def scaled_delta(self) -> Optional[Decimal]:
        """
        Spread between the averages as a fraction of their midpoint.

        None while warming up, and when fast + slow == 0 (the midpoint is
        zero and no meaningful score exists).
        """
        if not self.is_ready:
            return None
        midpoint = (self.fast_value + self.slow_value) / _TWO
        if midpoint == 0:
            return None
        return (self.fast_value - self.slow_value) / midpoint

    def exceeds(self, threshold: Union[Decimal, float]) -> bool:
        """True when fast is above slow by more than ``threshold``."""
        if not self.is_ready:
            return False
        return self.fast_value > self.slow_value * (1 + to_decimal(threshold))


class EntityTracker:
    """
    Pairs a fast and a slow ExponentialMovingAverage for one entity.

    Both averages see every sample. The pair is updated under one lock so
    concurrent batches touching the same entity apply each observation to
    each average exactly once.
    """

    def __init__(self, fast_window: int, slow_window: int, entity_id: Optional[Hashable] = None):
        self.entity_id = entity_id
        self.fast = ExponentialMovingAverage(fast_window)
        self.slow = ExponentialMovingAverage(slow_window)
        self.last_timestamp: Any = None
        self.out_of_order_count = 0
        self._lock = Lock()

    def __repr__(self) -> str:
        return f"EntityTracker({self.entity_id!r}, fast={self.fast!r}, slow={self.slow!r})"

    def is_ready(self) -> bool:
        return self.fast.is_ready and self.slow.is_ready

    @property
    def scaled_delta(self) -> Decimal:
        """(fast - slow) / ((fast + slow) / 2). Only valid once ready."""
        snap = self.snapshot()
        if not snap.is_ready:
            raise TrackerNotReadyError(
                f"Tracker {self.entity_id!r} not ready "
                f"({snap.sample_count}/{self.slow.window_length} samples)"
            )
        fast = snap.fast_value
        slow = snap.slow_value
        return (fast - slow) / ((fast + slow) / _TWO)

    def update(self, timestamp: Any, value: Any) -> bool:
        """Feed one sample to both averages; True once both are ready."""
        return self.observe(timestamp, value).is_ready

    def observe(self, timestamp: Any, value: Any) -> TrackerSnapshot:
        """
        Feed one sample to both averages and return the resulting state.

        Raises:
            InvalidObservationError: value rejected before either average
                changed.
            decimal.DecimalException: arithmetic failed in either average;
                neither average changed.
        """
        price = to_decimal(value)

        with self._lock:
            # Stage both first so a failure in slow cannot leave fast ahead
            fast_next = self.fast.prepare(price)
            slow_next = self.slow.prepare(price)

            fast_ready = self.fast.commit(timestamp, fast_next)
            slow_ready = self.slow.commit(timestamp, slow_next)
            self._check_order(timestamp)

            return TrackerSnapshot(
                is_ready=fast_ready and slow_ready,
                fast_value=self.fast.current_value,
                slow_value=self.slow.current_value,
                sample_count=self.slow.sample_count,
            )

    def snapshot(self) -> TrackerSnapshot:
        """Current state without updating."""
        with self._lock:
            return TrackerSnapshot(
                is_ready=self.is_ready(),
                fast_value=self.fast.current_value,
                slow_value=self.slow.current_value,
                sample_count=self.slow.sample_count,
            )

    def _check_order(self, timestamp: Any) -> None:
        """Flag timestamps earlier than the last one seen. Never raises."""
        previous = self.last_timestamp
        if timestamp is None:
            return
        if previous is not None:
            try:
                out_of_order = timestamp < previous
            except TypeError:
                logger.debug(
                    f"Cannot order timestamps for {self.entity_id!r}: "
                    f"{previous!r} vs {timestamp!r}"
                )
                out_of_order = False

            if out_of_order:
                self.out_of_order_count += 1
                logger.warning(
                    f"Out-of-order timestamp for {self.entity_id!r}: "
                    f"{timestamp} < {previous} (accepted)"
                )
                return
        self.last_timestamp = timestamp
