"""
Bias fitting on MA coordinates.

For every deviation dimension m_j (a row of M) a fitted bias of the same
length is produced as a function of the grand-mean intensity A:

- Multi-MA (the default, fitting_fn=None): the fitted bias is m_j itself,
  so the whole deviation from the line of identity is removed.
- Any callable f(m_j, A) -> fitted m_j: an intensity-dependent trend
  (loess, weighted or robust regression, ...) is removed instead.

The reference fitting functions below reproduce the documented usage of
Multi-MA normalization for suspension bead array data (Hong et al. 2016,
J. Proteome Res. 15(10):3473-80).
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional
import logging

import numpy as np

logger = logging.getLogger(__name__)


FittingFunction = Callable[[np.ndarray, np.ndarray], np.ndarray]


class FittingError(RuntimeError):
    """A fitting function failed or returned a misaligned result."""

    def __init__(self, dimension: int, message: str):
        self.dimension = dimension
        super().__init__(f"Fitting failed on deviation dimension {dimension}: {message}")


# ============================================================================
# Fitting Dispatch
# ============================================================================

def _fit_dimension(
    j: int,
    m_j: np.ndarray,
    A: np.ndarray,
    fitting_fn: FittingFunction,
) -> np.ndarray:
    """Fit one deviation dimension and validate the result."""
    dimension = j + 1
    try:
        fitted = fitting_fn(m_j.copy(), A.copy())
    except Exception as e:
        raise FittingError(dimension, f"{type(e).__name__}: {e}") from e

    try:
        fitted = np.asarray(fitted, dtype=float)
    except (TypeError, ValueError) as e:
        raise FittingError(dimension, f"result is not numeric ({e})") from e

    if fitted.ndim != 1 or fitted.shape[0] != m_j.shape[0]:
        raise FittingError(
            dimension,
            f"expected a vector of length {m_j.shape[0]}, got shape {fitted.shape}",
        )

    logger.debug(f"Fitted deviation dimension {dimension}")
    return fitted


def fit_deviations(
    M: np.ndarray,
    A: np.ndarray,
    fitting_fn: Optional[FittingFunction] = None,
    n_workers: int = 1,
) -> np.ndarray:
    """
    Fit the bias for every deviation dimension.

    Args:
        M: Deviation coordinates, shape (nP - 1, n_targets)
        A: Grand-mean coordinates, length n_targets
        fitting_fn: None for Multi-MA, otherwise f(m_j, A) returning a
            vector aligned with m_j
        n_workers: Number of threads used to fit dimensions concurrently

    Returns:
        Fitted deviation matrix Md with the same shape as M

    Raises:
        FittingError: If fitting_fn raises or returns a wrong-length result
    """
    M = np.asarray(M, dtype=float)
    A = np.asarray(A, dtype=float)

    if fitting_fn is None:
        return M.copy()

    n_dimensions, n_targets = M.shape
    if n_targets == 0:
        return M.copy()

    if n_workers > 1 and n_dimensions > 1:
        with ThreadPoolExecutor(max_workers=min(n_workers, n_dimensions)) as executor:
            futures = [
                executor.submit(_fit_dimension, j, M[j], A, fitting_fn)
                for j in range(n_dimensions)
            ]
            rows = [future.result() for future in futures]
    else:
        rows = [_fit_dimension(j, M[j], A, fitting_fn) for j in range(n_dimensions)]

    return np.vstack(rows)


# ============================================================================
# Reference Fitting Functions
# ============================================================================

def zero_fitter(m_j: np.ndarray, A: np.ndarray) -> np.ndarray:
    """No bias: leaves every group untouched."""
    return np.zeros_like(m_j, dtype=float)


def lowess_fitter(frac: float = 0.75, iterations: int = 3) -> FittingFunction:
    """
    MA-loess: locally weighted smoothing of m_j against A.

    Args:
        frac: Fraction of targets used for each local fit (span)
        iterations: Robustifying iterations of LOWESS

    Returns:
        Fitting function for fit_deviations()
    """
    from statsmodels.nonparametric.smoothers_lowess import lowess

    def lowess_fit(m_j: np.ndarray, A: np.ndarray) -> np.ndarray:
        return lowess(m_j, A, frac=frac, it=iterations, return_sorted=False)

    return lowess_fit


def linear_fitter(weights: Optional[str] = None) -> FittingFunction:
    """
    Least-squares line of m_j on A.

    Args:
        weights: None for ordinary least squares, or 'inverse_intensity'
            to weight every target by 1 / A

    Returns:
        Fitting function for fit_deviations()
    """
    import statsmodels.api as sm

    if weights not in (None, 'inverse_intensity'):
        raise ValueError(f"Unknown weights: {weights!r}")

    def linear_fit(m_j: np.ndarray, A: np.ndarray) -> np.ndarray:
        design = sm.add_constant(A, has_constant='add')
        if weights == 'inverse_intensity':
            if not (A > 0).all():
                raise ValueError(
                    "Inverse-intensity weights require positive A; "
                    f"found {int((A <= 0).sum())} target(s) with A <= 0"
                )
            model = sm.WLS(m_j, design, weights=1.0 / A)
        else:
            model = sm.OLS(m_j, design)
        beta = model.fit().params
        return beta[0] + beta[1] * A

    return linear_fit


def robust_linear_fitter(max_iterations: int = 100) -> FittingFunction:
    """
    Robust (Huber M-estimator) line of m_j on A.

    Args:
        max_iterations: Maximum IRLS iterations

    Returns:
        Fitting function for fit_deviations()
    """
    import statsmodels.api as sm

    def robust_linear_fit(m_j: np.ndarray, A: np.ndarray) -> np.ndarray:
        design = sm.add_constant(A, has_constant='add')
        model = sm.RLM(m_j, design, M=sm.robust.norms.HuberT())
        beta = model.fit(maxiter=max_iterations).params
        return beta[0] + beta[1] * A

    return robust_linear_fit


FITTER_PARAMETERS = {
    'multi_ma': set(),
    'none': set(),
    'lowess': {'frac', 'iterations'},
    'linear': set(),
    'weighted_linear': set(),
    'robust_linear': {'max_iterations'},
}


def make_fitter(method: str = 'multi_ma', **params) -> Optional[FittingFunction]:
    """
    Build a fitting function by name.

    Args:
        method: 'multi_ma', 'lowess', 'linear', 'weighted_linear',
            'robust_linear' or 'none'
        **params: Method-specific parameters (frac, iterations,
            max_iterations)

    Returns:
        Fitting function, or None for Multi-MA
    """
    if method not in FITTER_PARAMETERS:
        raise ValueError(f"Unknown fitting method: {method}")
    unknown = set(params) - FITTER_PARAMETERS[method]
    if unknown:
        raise ValueError(
            f"Unknown parameter(s) for fitting method {method}: {sorted(unknown)}. "
            f"Accepted: {sorted(FITTER_PARAMETERS[method])}"
        )

    if method == 'multi_ma':
        return None
    elif method == 'none':
        return zero_fitter
    elif method == 'lowess':
        return lowess_fitter(
            frac=params.get('frac', 0.75),
            iterations=params.get('iterations', 3),
        )
    elif method == 'linear':
        return linear_fitter()
    elif method == 'weighted_linear':
        return linear_fitter(weights='inverse_intensity')
    elif method == 'robust_linear':
        return robust_linear_fitter(max_iterations=params.get('max_iterations', 100))
    else:
        raise ValueError(f"Unknown fitting method: {method}")
