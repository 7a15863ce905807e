"""
Group aggregation for Multi-MA normalization.

Collapses a samples × targets matrix into a groups × targets matrix of
representative values (one value per plate per target). Targets that have no
representative value in any group are flagged so they can be excluded from
the MA geometry and reinstated as missing afterwards.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Union
import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


RepresentFunction = Callable[[pd.Series], float]


REPRESENT_FUNCTIONS: Dict[str, RepresentFunction] = {
    'mean': lambda values: values.mean(skipna=True),
    'median': lambda values: values.median(skipna=True),
}


@dataclass
class GroupRepresentatives:
    """
    Representative values of every group for every target.

    Attributes:
        values: DataFrame with groups as rows and targets as columns (X)
        group_labels: Ordered distinct group labels (row order of values)
        all_missing: Boolean array, True for targets missing in every group
    """
    values: pd.DataFrame
    group_labels: pd.Index
    all_missing: np.ndarray

    @property
    def excluded_targets(self) -> pd.Index:
        """Target labels with no representative value in any group."""
        return self.values.columns[self.all_missing]

    @property
    def retained_positions(self) -> np.ndarray:
        """Column positions of targets that enter the MA geometry."""
        return np.flatnonzero(~self.all_missing)


def resolve_represent_function(
    represent: Union[str, RepresentFunction],
) -> RepresentFunction:
    """Look up a named aggregator, or pass a callable through."""
    if callable(represent):
        return represent
    if represent not in REPRESENT_FUNCTIONS:
        raise ValueError(
            f"Unknown represent function: {represent!r}. "
            f"Available: {sorted(REPRESENT_FUNCTIONS)}"
        )
    return REPRESENT_FUNCTIONS[represent]


def _summarize_group(block: pd.DataFrame, func: RepresentFunction, label) -> pd.Series:
    """Apply func to every target column of one group's rows."""
    summary = block.apply(func, axis=0)
    if not isinstance(summary, pd.Series):
        raise ValueError(
            f"Represent function must return one value per target "
            f"(group {label!r} returned {type(summary).__name__})"
        )
    try:
        return pd.to_numeric(summary, errors='raise').astype(float)
    except (TypeError, ValueError) as e:
        raise ValueError(
            f"Represent function must return a real number or missing "
            f"(group {label!r}): {e}"
        ) from e


def compute_group_representatives(
    data: pd.DataFrame,
    group_codes: np.ndarray,
    group_labels: pd.Index,
    represent: Union[str, RepresentFunction] = 'mean',
) -> GroupRepresentatives:
    """
    Compute the representative matrix X (groups × targets).

    Args:
        data: Samples × targets matrix (rows are samples)
        group_codes: Integer group index for every row, into group_labels
        group_labels: Ordered distinct group labels
        represent: Name of a registered aggregator ('mean', 'median') or a
            callable receiving one target's values within one group and
            returning a single number. Default is the mean ignoring NaN.

    Returns:
        GroupRepresentatives with X and the all-missing target flags
    """
    func = resolve_represent_function(represent)

    rows = []
    for code, label in enumerate(group_labels):
        block = data.iloc[np.flatnonzero(group_codes == code)]
        rows.append(_summarize_group(block, func, label).to_numpy())

    values = pd.DataFrame(
        np.vstack(rows),
        index=group_labels,
        columns=data.columns,
    )

    all_missing = values.isna().all(axis=0).to_numpy()
    if all_missing.any():
        names = ', '.join(str(t) for t in data.columns[all_missing])
        logger.warning(
            f"{int(all_missing.sum())} target(s) contain only missing values "
            f"and are excluded from normalization: {names}"
        )

    return GroupRepresentatives(
        values=values,
        group_labels=group_labels,
        all_missing=all_missing,
    )
