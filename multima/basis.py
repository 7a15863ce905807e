"""Orthonormal basis separating the grand-mean axis from group deviations."""

import numpy as np


def orthonormal_basis(n_groups: int) -> np.ndarray:
    """
    Build the n_groups × n_groups rotation used for MA coordinates.

    The first row is the unit vector along the line of identity
    (1, 1, ..., 1) / sqrt(n_groups); the remaining rows complete an
    orthonormal basis of its orthogonal complement. The basis comes from
    the full left singular vectors of the all-ones column. The whole matrix
    is negated when the leading coefficient comes out negative, so the
    result does not depend on the sign convention of the LAPACK driver.

    Args:
        n_groups: Number of distinct groups (plates), at least 2

    Returns:
        Orthonormal matrix whose rows are the basis vectors
    """
    if n_groups < 2:
        raise ValueError(
            f"At least 2 groups are required for MA normalization, got {n_groups}"
        )

    u, _, _ = np.linalg.svd(np.ones((n_groups, 1)), full_matrices=True)
    orth = u.T

    if orth[0, 0] < 0:
        orth = -orth

    return orth
