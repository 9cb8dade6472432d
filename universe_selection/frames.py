"""
pandas adapters for the selection pipeline.

Hosts that hold a refresh as a DataFrame (one row per entity) can turn it
into a batch here, and inspect the current ranking as a DataFrame.
"""

import logging
from typing import List

import pandas as pd

from universe_selection.pipeline import Observation, SelectionPipeline

logger = logging.getLogger(__name__)

_RANKING_COLUMNS = ['entity_id', 'rank', 'scaled_delta', 'fast_value', 'slow_value', 'samples']


def batch_from_frame(
    frame: pd.DataFrame,
    entity_col: str = 'symbol',
    time_col: str = 'time',
    value_col: str = 'price',
) -> List[Observation]:
    """
    Convert a DataFrame to a list of Observations, preserving row order.

    Raises:
        KeyError: a required column is missing.
    """
    missing = [c for c in (entity_col, time_col, value_col) if c not in frame.columns]
    if missing:
        raise KeyError(f"Batch frame missing columns: {missing}")

    batch = [
        Observation(entity_id=entity, timestamp=ts, value=value)
        for entity, ts, value in zip(frame[entity_col], frame[time_col], frame[value_col])
    ]
    logger.debug(f"Built batch of {len(batch)} observations from frame")
    return batch


def ranking_frame(pipeline: SelectionPipeline, threshold=None) -> pd.DataFrame:
    """
    Ranked candidates from the pipeline's stored state as a DataFrame.

    Nothing is updated. Columns: entity_id, rank, scaled_delta, fast_value,
    slow_value, samples.
    """
    rows = []
    for candidate in pipeline.current_ranking(threshold=threshold):
        row = candidate.to_dict()
        row['samples'] = pipeline.store.get(candidate.entity_id).slow.sample_count
        rows.append(row)
    return pd.DataFrame(rows, columns=_RANKING_COLUMNS)
