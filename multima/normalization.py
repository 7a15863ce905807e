"""
Multi-dimensional MA normalization for plate effects.

Removes systematic differences among groups of samples produced by a discrete
experimental factor such as the assay plate. Assumptions:

1. The representative (e.g. mean) value of a target in each plate is ideally
   the same in every plate.
2. The plate effects on those representative values depend on the values
   themselves (intensity-dependent effects).

Pipeline:
    1. Representative matrix X (plates × targets), all-missing targets excluded
    2. Orthonormal basis with the line of identity as first axis
    3. MA coordinates: A (grand mean), M (nP - 1 deviation dimensions)
    4. Fitted bias Md per deviation dimension (Multi-MA: Md = M)
    5. Bias per plate and target: Xn = orth.T @ [0; Md]
    6. Every sample minus the bias of its plate

Reference:
    Hong M-G, Lee W, Nilsson P, Pawitan Y, Schwenk JM (2016) Multidimensional
    normalization to minimize plate effects of suspension bead array data.
    J. Proteome Res. 15(10):3473-80.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union
import logging

import numpy as np
import pandas as pd

from .aggregation import (
    GroupRepresentatives,
    RepresentFunction,
    compute_group_representatives,
)
from .basis import orthonormal_basis
from .coordinates import (
    MACoordinates,
    fill_partial_missing,
    to_ma_coordinates,
)
from .fitting import FittingFunction, fit_deviations
from .reconstruction import reconstruct_bias

logger = logging.getLogger(__name__)


@dataclass
class MANormalizationResult:
    """
    Result of Multi-MA normalization.

    Attributes:
        normalized_data: Samples × targets matrix after normalization
            (same index and columns as the input)
        representatives: Representative values per group (before fitting)
        basis: Orthonormal rotation matrix (nP × nP)
        coordinates: MA coordinates of the retained targets
        fitted_deviation: Fitted bias in deviation space (nP - 1 × retained)
        bias: Bias subtracted from every group (groups × targets, log scale
            when is_log was set)
        excluded_targets: Targets with no representative value in any group
        method_log: List of processing steps
    """
    normalized_data: pd.DataFrame
    representatives: GroupRepresentatives
    basis: np.ndarray
    coordinates: MACoordinates
    fitted_deviation: np.ndarray
    bias: pd.DataFrame
    excluded_targets: pd.Index
    method_log: List[str] = field(default_factory=list)


# ============================================================================
# Input Validation
# ============================================================================

def _as_matrix(data) -> Tuple[pd.DataFrame, np.ndarray]:
    """Return data as a DataFrame plus its float values."""
    if data is None:
        raise ValueError("Measurement matrix is required")

    if not isinstance(data, pd.DataFrame):
        values = np.asarray(data)
        if values.ndim != 2:
            raise ValueError(
                f"Measurement matrix must be 2-dimensional, got {values.ndim} dimension(s)"
            )
        data = pd.DataFrame(values)

    try:
        values = data.to_numpy(dtype=float)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Measurement matrix must be numeric: {e}") from e

    return data, values


def encode_groups(groups, n_samples: int) -> Tuple[np.ndarray, pd.Index]:
    """
    Encode group labels as integer codes with a stable label order.

    Categorical labels keep their category order (unused categories are
    dropped); any other labels are ordered by sorting the distinct values.

    Args:
        groups: One label per sample
        n_samples: Number of rows of the measurement matrix

    Returns:
        Tuple of (integer code per sample, ordered distinct labels)
    """
    if groups is None:
        raise ValueError("Group labels are required")
    if np.ndim(groups) != 1:
        raise ValueError("Group labels must be a one-dimensional sequence")

    categorical = pd.Categorical(groups)
    if len(categorical) != n_samples:
        raise ValueError(
            f"Number of group labels ({len(categorical)}) does not match "
            f"number of samples ({n_samples})"
        )
    if (categorical.codes == -1).any():
        raise ValueError("Group labels must not contain missing values")

    categorical = categorical.remove_unused_categories()
    n_groups = len(categorical.categories)
    if n_groups < 2:
        raise ValueError(
            f"At least 2 distinct groups are required for MA normalization, got {n_groups}"
        )

    return np.asarray(categorical.codes, dtype=int), pd.Index(categorical.categories)


# ============================================================================
# Sample Correction
# ============================================================================

def correct_samples(
    values: np.ndarray,
    bias: np.ndarray,
    group_codes: np.ndarray,
) -> np.ndarray:
    """
    Subtract from every sample the bias row of its group.

    Args:
        values: Samples × targets matrix
        bias: Groups × targets bias matrix
        group_codes: Row index into bias for every sample

    Returns:
        New samples × targets matrix
    """
    return values - bias[group_codes, :]


def _mask_unrepresented(
    bias: pd.DataFrame,
    representatives: GroupRepresentatives,
    values: np.ndarray,
    group_codes: np.ndarray,
    method_log: List[str],
) -> pd.DataFrame:
    """
    Set the bias to NaN where a group had no representative value.

    Such entries were filled before projection, so they carry no estimate
    of that group's plate effect. Samples of those groups come out missing
    for the affected targets instead of passing through uncorrected.
    A warning names the entries where the group did have measurements
    (e.g. an aggregator that does not skip NaN).
    """
    unrepresented = representatives.values.isna().to_numpy(copy=True)
    unrepresented[:, representatives.all_missing] = False

    observed = (
        pd.DataFrame(~np.isnan(values))
        .groupby(group_codes)
        .any()
        .reindex(range(len(representatives.group_labels)), fill_value=False)
        .to_numpy()
    )
    dropped = unrepresented & observed
    if dropped.any():
        pairs = [
            f"{representatives.group_labels[g]}/{bias.columns[t]}"
            for g, t in zip(*np.nonzero(dropped))
        ]
        logger.warning(
            f"{len(pairs)} group/target pair(s) have measurements but no "
            f"representative value; their samples are set to missing: "
            + ', '.join(pairs)
        )
        method_log.append(f"Set {len(pairs)} unrepresented group/target pair(s) to missing")

    masked = bias.to_numpy(copy=True)
    masked[unrepresented] = np.nan
    return pd.DataFrame(masked, index=bias.index, columns=bias.columns)


# ============================================================================
# Pipeline
# ============================================================================

def normalize_ma_detailed(
    data: pd.DataFrame,
    groups,
    represent: Union[str, RepresentFunction] = 'mean',
    fitting_fn: Optional[FittingFunction] = None,
    is_log: bool = True,
    n_workers: int = 1,
) -> MANormalizationResult:
    """
    Run Multi-MA normalization and keep all intermediate results.

    Args:
        data: Samples × targets matrix (rows are samples, columns targets)
        groups: Group (plate) label for every row of data
        represent: Aggregator for representative values per group; a name
            ('mean', 'median') or a callable. Default is the mean ignoring NaN.
        fitting_fn: None for Multi-MA, otherwise f(m_j, A) returning the
            fitted deviation for one dimension (see multima.fitting)
        is_log: Normalize on natural-log scale and exponentiate afterwards
        n_workers: Threads used for fitting deviation dimensions

    Returns:
        MANormalizationResult with the normalized matrix and diagnostics

    Raises:
        ValueError: On missing inputs, dimension mismatch, fewer than two
            groups or non-positive values with is_log
        FittingError: If fitting_fn fails for a deviation dimension
    """
    data, values = _as_matrix(data)
    group_codes, group_labels = encode_groups(groups, values.shape[0])

    if is_log:
        observed = values[~np.isnan(values)]
        if (observed <= 0).any():
            raise ValueError(
                "Log transformation requires positive values; "
                f"found {int((observed <= 0).sum())} non-positive value(s)"
            )
        values = np.log(values)

    method_log = []
    n_groups = len(group_labels)
    method = 'Multi-MA' if fitting_fn is None else getattr(fitting_fn, '__name__', 'custom fit')
    logger.info(
        f"MA normalization of {values.shape[0]} samples × {values.shape[1]} targets "
        f"across {n_groups} groups ({method})"
    )
    method_log.append(f"MA normalization: {n_groups} groups, method={method}, log={is_log}")

    # 1. Representative values per group
    work = pd.DataFrame(values, index=data.index, columns=data.columns)
    representatives = compute_group_representatives(
        work, group_codes, group_labels, represent=represent,
    )
    retained = representatives.retained_positions
    excluded = representatives.excluded_targets
    if len(excluded) > 0:
        method_log.append(
            f"Excluded {len(excluded)} all-missing target(s): "
            + ', '.join(str(t) for t in excluded)
        )

    X, n_filled = fill_partial_missing(representatives.values.iloc[:, retained])
    if n_filled > 0:
        method_log.append(f"Filled partially missing representatives for {n_filled} target(s)")

    # 2-3. Rotation to MA coordinates
    orth = orthonormal_basis(n_groups)
    coordinates = to_ma_coordinates(X.to_numpy(), orth)

    # 4. Fitted bias in deviation space
    fitted = fit_deviations(coordinates.M, coordinates.A, fitting_fn, n_workers=n_workers)
    method_log.append(f"Fitted {coordinates.n_dimensions} deviation dimension(s) over {len(retained)} target(s)")

    # 5. Bias back in group space
    bias = reconstruct_bias(fitted, orth, group_labels, data.columns, retained)
    if n_filled > 0:
        bias = _mask_unrepresented(
            bias, representatives, values, group_codes, method_log,
        )

    # 6. Correct every sample
    normalized = correct_samples(values, bias.to_numpy(), group_codes)
    if is_log:
        normalized = np.exp(normalized)

    normalized_data = pd.DataFrame(normalized, index=data.index, columns=data.columns)
    logger.info(f"  Normalized {len(retained)} targets, {len(excluded)} excluded")

    return MANormalizationResult(
        normalized_data=normalized_data,
        representatives=representatives,
        basis=orth,
        coordinates=coordinates,
        fitted_deviation=fitted,
        bias=bias,
        excluded_targets=excluded,
        method_log=method_log,
    )


def normalize_ma(
    data: pd.DataFrame,
    groups,
    represent: Union[str, RepresentFunction] = 'mean',
    fitting_fn: Optional[FittingFunction] = None,
    is_log: bool = True,
    n_workers: int = 1,
) -> pd.DataFrame:
    """
    Normalize plate effects with Multi-MA (or MA-fitting) normalization.

    Args:
        data: Samples × targets matrix (rows are samples, columns targets)
        groups: Group (plate) label for every row of data
        represent: Aggregator for representative values per group
        fitting_fn: None for Multi-MA, otherwise f(m_j, A) -> fitted m_j
        is_log: Normalize on natural-log scale and exponentiate afterwards
        n_workers: Threads used for fitting deviation dimensions

    Returns:
        Normalized matrix with the same shape, index and columns as data.
        Targets missing in every group are returned as all NaN.

    Example:
        >>> # Multi-MA
        >>> normalized = normalize_ma(mfi, plates)
        >>>
        >>> # MA-loess
        >>> normalized = normalize_ma(mfi, plates, fitting_fn=lowess_fitter())
    """
    return normalize_ma_detailed(
        data,
        groups,
        represent=represent,
        fitting_fn=fitting_fn,
        is_log=is_log,
        n_workers=n_workers,
    ).normalized_data


def normalize_ma_from_config(
    data: pd.DataFrame,
    groups,
    config: dict,
) -> MANormalizationResult:
    """Run normalize_ma_detailed() with settings from a load_config() dict."""
    from .config import fitting_function_from_config

    settings = config.get('normalization', {})
    return normalize_ma_detailed(
        data,
        groups,
        represent=settings.get('represent', 'mean'),
        fitting_fn=fitting_function_from_config(config),
        is_log=settings.get('log_transform', True),
        n_workers=settings.get('n_workers', 1),
    )
