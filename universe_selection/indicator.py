"""
Incremental exponential moving average over decimal values.

The average is seeded with the simple mean of the first ``window_length``
samples and then smoothed with ``alpha = 2 / (window_length + 1)``. Values
are held as ``Decimal`` so long-running price streams do not accumulate
binary floating point error.
"""

import logging
import numbers
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from threading import Lock
from typing import Any, Optional

logger = logging.getLogger(__name__)


class InvalidObservationError(ValueError):
    """Raised when an observation value is non-numeric or non-finite."""


@dataclass(frozen=True)
class PendingUpdate:
    """Indicator state computed for the next sample but not yet applied."""
    sample_count: int
    seed_sum: Decimal
    current_value: Optional[Decimal]


def to_decimal(value: Any) -> Decimal:
    """
    Convert an observation value to a finite Decimal.

    Floats go through ``str()`` so 0.1 becomes Decimal('0.1') rather than
    its binary expansion.

    Raises:
        InvalidObservationError: value is not a real number, or is NaN/inf.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidObservationError(f"Non-numeric observation value: {value!r}")
    else:
        try:
            if isinstance(value, numbers.Integral):
                result = Decimal(int(value))
            else:
                result = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as e:
            raise InvalidObservationError(f"Unparseable observation value: {value!r}") from e

    if not result.is_finite():
        raise InvalidObservationError(f"Non-finite observation value: {value!r}")
    return result


class ExponentialMovingAverage:
    """
    Exponential moving average with a simple-average seed.

    Not ready until ``window_length`` samples have been seen. Each update is
    applied atomically, so ``sample_count`` and ``current_value`` never
    disagree when read from another thread.
    """

    def __init__(self, window_length: int):
        if isinstance(window_length, bool) or not isinstance(window_length, int):
            raise ValueError(f"window_length must be an integer, got {window_length!r}")
        if window_length <= 0:
            raise ValueError(f"window_length must be positive, got {window_length}")

        self._window_length = window_length
        self._alpha = Decimal(2) / Decimal(window_length + 1)
        self._sample_count = 0
        self._seed_sum = Decimal(0)
        self._current_value: Optional[Decimal] = None
        self._last_timestamp: Any = None
        self._lock = Lock()

    def __repr__(self) -> str:
        return (
            f"ExponentialMovingAverage(window_length={self._window_length}, "
            f"samples={self._sample_count}, value={self._current_value})"
        )

    @property
    def window_length(self) -> int:
        return self._window_length

    @property
    def smoothing_factor(self) -> Decimal:
        return self._alpha

    @property
    def sample_count(self) -> int:
        return self._sample_count

    @property
    def current_value(self) -> Optional[Decimal]:
        """Smoothed value, or None while warming up."""
        return self._current_value

    @property
    def last_timestamp(self) -> Any:
        return self._last_timestamp

    @property
    def is_ready(self) -> bool:
        return self._sample_count >= self._window_length

    def update(self, timestamp: Any, value: Any) -> bool:
        """
        Advance the average by one sample.

        Args:
            timestamp: Observation time. Recorded only, not used in the math.
            value: Observation value (int, float or Decimal).

        Returns:
            True once the indicator is ready.

        Raises:
            InvalidObservationError: value rejected; state is left unchanged.
            decimal.DecimalException: arithmetic failed (e.g. Overflow);
                state is left unchanged.
        """
        price = to_decimal(value)

        with self._lock:
            return self._apply(timestamp, self._next_state(price))

    def prepare(self, value: Any) -> PendingUpdate:
        """
        Compute the state one more sample would produce, without applying it.

        Lets an owner stage several indicators and commit only if all of them
        succeeded. The owner must serialize prepare/commit pairs.
        """
        price = to_decimal(value)

        with self._lock:
            return self._next_state(price)

    def commit(self, timestamp: Any, pending: PendingUpdate) -> bool:
        """
        Apply a prepared update. Returns the new readiness.

        Raises:
            RuntimeError: another update was applied after ``pending`` was
                prepared.
        """
        with self._lock:
            if pending.sample_count != self._sample_count + 1:
                raise RuntimeError(
                    f"Stale update: prepared for sample {pending.sample_count}, "
                    f"indicator at {self._sample_count}"
                )
            return self._apply(timestamp, pending)

    def _next_state(self, price: Decimal) -> PendingUpdate:
        # Arithmetic only; nothing is assigned until _apply
        count = self._sample_count + 1
        seed_sum = self._seed_sum
        current = self._current_value

        if count <= self._window_length:
            seed_sum = seed_sum + price
            if count == self._window_length:
                current = seed_sum / self._window_length
        else:
            # Same as alpha*price + (1-alpha)*prev; exact for a flat series
            current = current + self._alpha * (price - current)

        return PendingUpdate(sample_count=count, seed_sum=seed_sum, current_value=current)

    def _apply(self, timestamp: Any, pending: PendingUpdate) -> bool:
        self._sample_count = pending.sample_count
        self._seed_sum = pending.seed_sum
        self._current_value = pending.current_value
        self._last_timestamp = timestamp
        return self._sample_count >= self._window_length
