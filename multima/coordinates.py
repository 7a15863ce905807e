"""
MA coordinates of group representative values.

Each target's representative vector (one value per group) is rotated by the
orthonormal basis. The first coordinate, A, is the component along the line
of identity and summarizes the group-independent intensity. The remaining
nP - 1 coordinates, M, are the deviations among groups.
"""

from dataclasses import dataclass
from typing import Tuple
import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


@dataclass
class MACoordinates:
    """
    Targets expressed in MA coordinates.

    Attributes:
        A: Grand-mean component, one value per retained target
        M: Deviation components, shape (nP - 1, retained targets)
    """
    A: np.ndarray
    M: np.ndarray

    @property
    def n_dimensions(self) -> int:
        """Number of deviation dimensions (nP - 1)."""
        return self.M.shape[0]


def fill_partial_missing(X: pd.DataFrame) -> Tuple[pd.DataFrame, int]:
    """
    Fill missing group representatives with the mean of the other groups.

    A target measured in some groups only would otherwise have undefined
    A and M. Filling with the mean of the available groups puts the missing
    groups on the line of identity for that target, i.e. zero deviation,
    so the observed groups are still normalized against each other.
    Columns missing in every group must already be removed.

    Args:
        X: Groups × targets representative matrix

    Returns:
        Tuple of (filled copy of X, number of targets that were filled)
    """
    values = X.to_numpy(dtype=float)
    missing = np.isnan(values)
    n_filled = int(missing.any(axis=0).sum())
    if n_filled == 0:
        return X.copy(), 0

    observed_mean = np.nanmean(values, axis=0)
    filled = pd.DataFrame(
        np.where(missing, observed_mean[np.newaxis, :], values),
        index=X.index,
        columns=X.columns,
    )
    logger.info(
        f"{n_filled} target(s) lack a representative value in some groups; "
        f"filled with the mean of the observed groups"
    )
    return filled, n_filled


def to_ma_coordinates(X: np.ndarray, orth: np.ndarray) -> MACoordinates:
    """
    Project representative values onto the MA axes.

    Args:
        X: Groups × targets matrix of representative values
        orth: Orthonormal basis from orthonormal_basis()

    Returns:
        MACoordinates with A (first rotated coordinate) and M (the rest)
    """
    X = np.asarray(X, dtype=float)
    if X.shape[0] != orth.shape[0]:
        raise ValueError(
            f"Representative matrix has {X.shape[0]} groups but basis is "
            f"{orth.shape[0]} × {orth.shape[1]}"
        )

    ma = orth @ X
    return MACoordinates(A=ma[0].copy(), M=ma[1:].copy())


def from_ma_coordinates(
    A: np.ndarray,
    M: np.ndarray,
    orth: np.ndarray,
) -> np.ndarray:
    """Rotate MA coordinates back to group space (orth is orthonormal, so its inverse is orth.T)."""
    ma = np.vstack([np.asarray(A, dtype=float)[np.newaxis, :], np.asarray(M, dtype=float)])
    return orth.T @ ma
