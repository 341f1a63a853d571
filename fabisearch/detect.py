# -*- coding: utf-8 -*-
"""
fabisearch.detect
=================

Entry point of the change point procedure: input validation, the
factorized binary search, and assembly of the result table.

Usage
-----
    from fabisearch import detect_cps

    result = detect_cps(Y, mindist=35, nruns=50, nreps=100, seed=1)
    result.rank
    result.change_points          # DataFrame: time, stat_test, rank
    result.compute_time           # seconds
"""

import logging
import time
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .config import (
    DEFAULT_ALGTYPE,
    DEFAULT_LEVEL,
    DEFAULT_MAX_RANK,
    DEFAULT_MINDIST,
    DEFAULT_NREPS,
    DEFAULT_NRUNS,
    DEFAULT_TESTTYPE,
    FaBiSearchConfig,
)
from .exceptions import ConvergenceWarning, InvalidInputError, InvalidRankError
from .search import BinarySearchEngine, ChangePoint
from .utils import SeedManager

logger = logging.getLogger(__name__)

CHANGE_POINT_COLUMNS = ["time", "stat_test", "rank"]


# =============================================================================
# RESULT
# =============================================================================

@dataclass
class DetectionResult:
    """
    Result of ``detect_cps``.

    Parameters
    ----------
    rank : int, optional
        Fixed rank, global rank, or the rank selected for the full series.
        None when nothing was searched and no rank was fixed.
    change_points : pd.DataFrame
        One row per change point ordered by time: ``time`` (1-based row
        of the first observation after the change), ``stat_test``
        (p-value, or decision when alpha was given), ``rank``.
    compute_time : float
        Wall-clock seconds.
    candidates : list of ChangePoint
        Full detail of every accepted change point.
    n_unconverged : int
        NMF restarts that stopped at the iteration limit.
    config : FaBiSearchConfig
    """

    rank: Optional[int]
    change_points: pd.DataFrame
    compute_time: float
    candidates: List[ChangePoint] = field(default_factory=list, repr=False)
    n_unconverged: int = 0
    config: Optional[FaBiSearchConfig] = field(default=None, repr=False)

    @property
    def times(self) -> List[int]:
        return [cp.time for cp in self.candidates]

    def as_dict(self) -> Dict:
        return {
            "rank": self.rank,
            "change_points": self.change_points,
            "compute_time": self.compute_time,
        }


def assemble_change_points(change_points: List[ChangePoint]) -> pd.DataFrame:
    """Tabulate accepted change points ordered by time."""
    ordered = sorted(change_points, key=lambda cp: cp.time)
    table = pd.DataFrame(
        [(cp.time, cp.stat_test, cp.rank) for cp in ordered],
        columns=CHANGE_POINT_COLUMNS,
    )
    return table.astype({"time": int, "rank": int})


# =============================================================================
# INPUT VALIDATION
# =============================================================================

def validate_timeseries(Y) -> np.ndarray:
    """
    Convert ``Y`` to a float matrix and check its preconditions.

    Raises
    ------
    InvalidInputError
        Not a non-empty 2-D numeric array, non-finite or negative entries.
    """
    if isinstance(Y, pd.DataFrame):
        Y = Y.to_numpy()
    try:
        data = np.asarray(Y, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Y must be a numeric matrix: {e}") from e

    if data.ndim != 2:
        raise InvalidInputError(
            f"Y must be a 2-D matrix (time points x variables), got "
            f"{data.ndim} dimension(s)"
        )
    if data.size == 0:
        raise InvalidInputError(f"Y is empty (shape {data.shape})")
    if not np.all(np.isfinite(data)):
        raise InvalidInputError("Y contains NaN or infinite values")
    if np.any(data < 0):
        n_neg = int(np.sum(data < 0))
        raise InvalidInputError(
            f"Y must be non-negative for NMF; found {n_neg} negative "
            f"entr{'y' if n_neg == 1 else 'ies'}"
        )
    return data


# =============================================================================
# ENTRY POINT
# =============================================================================

def detect_cps(
    Y,
    mindist: int = DEFAULT_MINDIST,
    nruns: int = DEFAULT_NRUNS,
    nreps: int = DEFAULT_NREPS,
    alpha: Optional[float] = None,
    rank: Optional[int] = None,
    algtype: str = DEFAULT_ALGTYPE,
    testtype: str = DEFAULT_TESTTYPE,
    ncore: int = 1,
    *,
    rank_method: str = "dispersion",
    rank_scope: str = "segment",
    statistic: str = "fit",
    search: str = "exhaustive",
    level: float = DEFAULT_LEVEL,
    max_rank: int = DEFAULT_MAX_RANK,
    seed: Optional[int] = None,
    verbose: bool = False,
) -> DetectionResult:
    """
    Detect change points in the network structure of a multivariate
    time series with factorized binary search.

    Parameters
    ----------
    Y : array-like (T, p)
        Non-negative series, rows are time points, columns variables.
    mindist : int
        Minimum distance between change points (default 35).
    nruns : int
        NMF restarts per factorization (default 50).
    nreps : int
        Permutation test repetitions (default 100).
    alpha : float, optional
        Significance level.  None (default) reports p-values and accepts
        splits with ``p < level``; a value reports decisions.
    rank : int, optional
        Fixed factorization rank.  None (default) selects it.
    algtype : str
        NMF variant: 'brunet' (default), 'lee', 'als', 'snmf/r', 'snmf/l'.
    testtype : str
        't-test' (default), 'ks' or 'wilcoxon'.
    ncore : int
        Worker processes (default 1).
    rank_method : str
        'dispersion' or 'residuals'.
    rank_scope : str
        'segment' (rank selected per searched segment) or 'global'.
    statistic : str
        'fit' or 'consensus'.
    search : str
        'exhaustive' (default, scores every candidate split) or 'binary'
        (bisection, fewer factorizations).
    level : float
        Acceptance level used when ``alpha`` is None.
    max_rank : int
        Largest candidate rank for selection.
    seed : int, optional
        Master seed; fixes every random draw of the procedure.
    verbose : bool
        Progress bars over permutation repetitions.

    Returns
    -------
    DetectionResult

    Raises
    ------
    InvalidInputError, InvalidRankError
        Before any computation, on invalid input or options.
    """
    start_time = time.perf_counter()

    config = FaBiSearchConfig(
        mindist=mindist, nruns=nruns, nreps=nreps, alpha=alpha, rank=rank,
        algtype=algtype, testtype=testtype, ncore=ncore,
        rank_method=rank_method, rank_scope=rank_scope, statistic=statistic,
        search=search, level=level, max_rank=max_rank, seed=seed,
        verbose=verbose,
    ).validate()
    data = validate_timeseries(Y)

    n_rows, n_cols = data.shape
    if config.rank is not None and config.rank > n_cols:
        raise InvalidRankError(
            f"rank {config.rank} exceeds the number of variables ({n_cols})"
        )
    if config.rank is None and n_cols < config.min_rank:
        raise InvalidRankError(
            f"Rank selection needs at least {config.min_rank} variables, "
            f"Y has {n_cols}"
        )

    logger.info(
        f"FaBiSearch on {n_rows} x {n_cols} series: mindist={config.mindist}, "
        f"nruns={config.nruns}, nreps={config.nreps}, algtype={config.algtype}, "
        f"testtype={config.testtype}"
    )

    engine = BinarySearchEngine(data, config, SeedManager(config.seed))
    change_points = engine.run()

    if engine.n_unconverged:
        message = (
            f"{engine.n_unconverged} NMF runs reached the iteration limit "
            f"without converging; they were kept in the consensus"
        )
        logger.warning(message)
        warnings.warn(message, ConvergenceWarning, stacklevel=2)

    compute_time = time.perf_counter() - start_time
    logger.info(
        f"Found {len(change_points)} change point(s) in "
        f"{engine.n_segments} segment(s), {compute_time:.1f}s"
    )

    return DetectionResult(
        rank=engine.root_rank,
        change_points=assemble_change_points(change_points),
        compute_time=compute_time,
        candidates=change_points,
        n_unconverged=engine.n_unconverged,
        config=config,
    )
