# -*- coding: utf-8 -*-
"""
fabisearch - Factorized Binary Search
=====================================

Change point detection in the network structure of multivariate
high-dimensional time series, motivated by functional connectivity in
resting-state and task fMRI.

Non-negative matrix factorization clusters the variables of a segment;
a binary search over time locates the split whose two sides are best
described by separate factorizations; a permutation test decides
whether the split is a real change; the search recurses on both sides.

Modules
-------
config
    Defaults, NMF algorithm registry, FaBiSearchConfig.
exceptions
    InvalidInputError, InvalidRankError, DegenerateNullError,
    InsufficientDataError, ConvergenceWarning.
nmf
    Repeated NMF restarts and consensus matrices.
rank
    Rank selection (consensus dispersion, residual comparison).
statistics
    Split statistics and the permutation test.
search
    Segments, change points, the binary search engine.
detect
    ``detect_cps`` entry point and result table.
network
    Stationary network estimation from the consensus matrix.
viz
    3D network plots on atlas coordinates.
io
    Loading series, saving change point tables.
utils
    Seeds, surrogates, formatting.

Quick start
-----------
    from fabisearch import detect_cps, estimate_network

    result = detect_cps(Y, mindist=35, nruns=50, nreps=100, seed=1)
    print(result.change_points)

    # network of the first stationary segment
    first = result.change_points["time"].iloc[0] - 1
    adj = estimate_network(Y[:first], lam=0.5)

References
----------
- Ondrus, Olds & Cribben (2021). Factorized binary search: change point
  detection in the network structure of multivariate high-dimensional
  time series.  arXiv:2103.06347.
"""

__version__ = "0.1.0"

from . import config
from .exceptions import (
    ConvergenceWarning,
    DegenerateNullError,
    FaBiSearchError,
    InsufficientDataError,
    InvalidInputError,
    InvalidRankError,
)
from .config import FaBiSearchConfig
from .nmf import run_nmf, consensus_matrix, NMFResult
from .rank import select_rank, rank_selection, dispersion_coefficient
from .statistics import (
    consensus_distance,
    split_statistic,
    permutation_test,
    PermutationResult,
)
from .search import BinarySearchEngine, ChangePoint, Segment
from .detect import detect_cps, DetectionResult
from .network import estimate_network
from .viz import load_atlas, plot_network_3d
from . import io

__all__ = [
    # --- errors ---
    "FaBiSearchError",
    "InvalidInputError",
    "InvalidRankError",
    "DegenerateNullError",
    "InsufficientDataError",
    "ConvergenceWarning",
    # --- config ---
    "config",
    "FaBiSearchConfig",
    # --- core ---
    "run_nmf",
    "consensus_matrix",
    "NMFResult",
    "select_rank",
    "rank_selection",
    "dispersion_coefficient",
    "consensus_distance",
    "split_statistic",
    "permutation_test",
    "PermutationResult",
    "BinarySearchEngine",
    "ChangePoint",
    "Segment",
    "detect_cps",
    "DetectionResult",
    # --- network / viz / io ---
    "estimate_network",
    "load_atlas",
    "plot_network_3d",
    "io",
]
