"""
multima: Multi-dimensional MA normalization for plate effects

Removes systematic plate (batch) effects from affinity proteomics data such
as suspension bead array intensities, by fitting and subtracting the
deviation of each plate from the line of identity in MA coordinates.

See: Hong et al. (2016) J. Proteome Res. 15(10):3473-80.
"""

__version__ = "0.1.0"

from .normalization import (
    normalize_ma,
    normalize_ma_detailed,
    normalize_ma_from_config,
    MANormalizationResult,
)
from .aggregation import (
    compute_group_representatives,
    GroupRepresentatives,
    REPRESENT_FUNCTIONS,
)
from .basis import orthonormal_basis
from .coordinates import (
    to_ma_coordinates,
    from_ma_coordinates,
    MACoordinates,
)
from .fitting import (
    fit_deviations,
    make_fitter,
    lowess_fitter,
    linear_fitter,
    robust_linear_fitter,
    zero_fitter,
    FittingError,
)
from .reconstruction import reconstruct_bias
from .config import load_config
