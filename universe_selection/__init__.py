"""
EMA Cross Universe Selection.

Tracks a fast and a slow exponential moving average per entity from a
periodic stream of prices and selects the entities trending up:
  Batch -> TrackerStore (get-or-create) -> EntityTracker update
  -> fast > slow * (1 + threshold) -> rank by scaled delta -> top N
"""

from universe_selection.config import EmaCrossSelectionConfig
from universe_selection.indicator import ExponentialMovingAverage, InvalidObservationError
from universe_selection.pipeline import (
    Observation,
    SelectedCandidate,
    SelectionPipeline,
    run_selection,
)
from universe_selection.store import TrackerStore
from universe_selection.tracker import EntityTracker, TrackerNotReadyError, TrackerSnapshot

__all__ = [
    'EmaCrossSelectionConfig',
    'EntityTracker',
    'ExponentialMovingAverage',
    'InvalidObservationError',
    'Observation',
    'SelectedCandidate',
    'SelectionPipeline',
    'TrackerNotReadyError',
    'TrackerSnapshot',
    'TrackerStore',
    'run_selection',
]
