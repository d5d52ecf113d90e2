"""
Central location for numerical constants.

These constants are used consistently across priors, objectives, and minimizers.
"""

import torch

# All weights, gradients and per-example intermediates are double precision
DTYPE = torch.float64

# Default prior hyperparameters (sigma for Gaussian-style priors, epsilon for Huber)
DEFAULT_SIGMA = 1.0
DEFAULT_EPSILON = 0.1

# Default convergence tolerance on relative change of the objective value
DEFAULT_TOL = 1e-4
DEFAULT_MAX_ITER = 1000

# Default mixing coefficient for semi-supervised objectives
DEFAULT_CONVEX_COMBO = 0.5

# Laplace smoothing for generalized-expectation label distributions
DEFAULT_GE_SMOOTHING = 1.0

# Confusion matrix rows must sum to 1 within this tolerance
ROW_SUM_TOL = 1e-6

# Above this L1 norm log(cosh(n)) is replaced by n - log(2)
# - cosh(710) overflows float64, the asymptote is exact to ~1e-26 at 30
COSH_CUTOFF = 30.0

# Finite-difference step used by gradient checks
FD_EPS = 1e-5
