"""Map fitted deviations back to per-group, per-target bias values."""

import numpy as np
import pandas as pd


def reconstruct_bias(
    fitted_deviation: np.ndarray,
    orth: np.ndarray,
    group_labels: pd.Index,
    targets: pd.Index,
    retained_positions: np.ndarray,
) -> pd.DataFrame:
    """
    Rotate the fitted deviations back into group space.

    The A component is never corrected, so a zero row is prepended to Md
    before applying the inverse rotation (orth.T). Retained targets are then
    placed at their original column positions; excluded targets stay NaN.

    Args:
        fitted_deviation: Md, shape (nP - 1, retained targets)
        orth: Orthonormal basis from orthonormal_basis()
        group_labels: Ordered distinct group labels (nP)
        targets: All original target labels, in input order
        retained_positions: Column position in targets of every Md column

    Returns:
        Bias matrix Xn with groups as rows and all original targets as columns
    """
    fitted_deviation = np.asarray(fitted_deviation, dtype=float)
    n_groups = orth.shape[0]

    if fitted_deviation.shape != (n_groups - 1, len(retained_positions)):
        raise ValueError(
            f"Fitted deviation has shape {fitted_deviation.shape}, expected "
            f"({n_groups - 1}, {len(retained_positions)})"
        )

    with_a = np.vstack([np.zeros((1, fitted_deviation.shape[1])), fitted_deviation])
    retained_bias = orth.T @ with_a

    bias = np.full((n_groups, len(targets)), np.nan)
    bias[:, retained_positions] = retained_bias

    return pd.DataFrame(bias, index=group_labels, columns=targets)
