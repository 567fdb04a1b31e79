"""
Configuration Module

Centralized default parameters for subsampled co-clustering.

All default values are defined here for consistency across modules.
Users can override these in function calls.
"""

# ==============================================================================
# Subsampling Parameters
# ==============================================================================

N_SUBSAMPLES = 100
"""Number of subsamples to draw and cluster"""

SUBSAMPLE_FRAC = 0.7
"""Fraction of observations included in each subsample (70%)"""

RANDOM_SEED = 42
"""Random seed for reproducibility"""


# ==============================================================================
# Classification
# ==============================================================================

CLASSIFY_METHOD = "All"
"""Which observations receive a label in each subsample (All | InSample | OutOfSample)"""

CLASSIFY_METHODS = ("All", "InSample", "OutOfSample")
"""Valid classification modes"""


# ==============================================================================
# Execution
# ==============================================================================

N_JOBS = 1
"""Number of parallel workers (1 = sequential)"""


# ==============================================================================
# Dissimilarity
# ==============================================================================

DEFAULT_METRIC = "euclidean"
"""scipy pdist metric used when a dissimilarity must be computed from features"""

SYMMETRY_ATOL = 1e-8
"""Absolute tolerance when checking that a dissimilarity matrix is symmetric"""
