# -*- coding: utf-8 -*-
"""
fabisearch.rank
===============

Selection of the NMF rank (number of latent clusters) for a segment.

Two heuristics are available:

**dispersion**: for each candidate k, run ``nruns`` restarts and score
the stability of the consensus matrix with the dispersion coefficient

    ρ(k) = 1/p² Σᵢⱼ 4 (Cᵢⱼ − ½)²

which is 1 when every restart agrees on every pair and falls toward 0
as the clusterings disagree.  The most stable rank wins; ties go to the
smallest rank.

**residuals**: compare the drop in residual error from k to k + 1 on
the data with the same drop on a column-randomized copy; the first k
where the real drop is smaller than the random one is returned
(Frigyesi & Höglund, 2008).

References
----------
- Kim & Park (2007). Bioinformatics 23:1495-1502. Dispersion coefficient.
- Frigyesi & Höglund (2008). Cancer Inform 6:275-292.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .config import DEFAULT_MAX_RANK, DEFAULT_MIN_RANK, DEFAULT_NRUNS, RANK_METHODS
from .exceptions import InvalidInputError, InvalidRankError
from .nmf import run_nmf
from .utils import randomize_columns, spawn_seeds

logger = logging.getLogger(__name__)


@dataclass
class RankSelection:
    """
    Outcome of rank selection on one segment.

    Parameters
    ----------
    rank : int
    candidates : list of int
        Ranks that were evaluated (empty for a fixed rank).
    scores : dict
        Per-candidate score (dispersion, or real-minus-random residual
        drop for the 'residuals' method).
    n_unconverged : int
    fixed : bool
        True when the rank was supplied by the caller.
    """

    rank: int
    candidates: List[int] = field(default_factory=list)
    scores: Dict[int, float] = field(default_factory=dict)
    n_unconverged: int = 0
    fixed: bool = False


def dispersion_coefficient(consensus: np.ndarray) -> float:
    """Dispersion ρ of a consensus matrix (Kim & Park, 2007)."""
    n = consensus.shape[0]
    return float(np.sum(4.0 * (consensus - 0.5) ** 2) / n ** 2)


def candidate_ranks(
    n_rows: int,
    n_cols: int,
    min_rank: int = DEFAULT_MIN_RANK,
    max_rank: Optional[int] = DEFAULT_MAX_RANK,
) -> List[int]:
    """Ranks that fit a segment of the given shape."""
    if min_rank < 2:
        raise InvalidRankError(f"Candidate ranks start at 2 or above, got {min_rank}")
    upper = min(n_rows, n_cols)
    if max_rank is not None:
        upper = min(upper, max_rank)
    if upper < min_rank:
        raise InvalidRankError(
            f"A {n_rows} x {n_cols} segment cannot hold the smallest "
            f"candidate rank {min_rank}"
        )
    return list(range(min_rank, upper + 1))


def rank_selection(
    data: np.ndarray,
    nruns: int = DEFAULT_NRUNS,
    algtype: str = "brunet",
    rank: Optional[int] = None,
    method: str = "dispersion",
    min_rank: int = DEFAULT_MIN_RANK,
    max_rank: Optional[int] = DEFAULT_MAX_RANK,
    seed: Optional[int] = None,
    n_jobs: int = 1,
) -> RankSelection:
    """
    Choose the factorization rank of a segment, keeping the diagnostics.

    Parameters
    ----------
    data : np.ndarray (T, p)
    nruns : int
        Restarts per candidate rank.
    algtype : str
    rank : int, optional
        Fixed rank; returned as-is without any computation.
    method : str
        'dispersion' or 'residuals'.
    min_rank, max_rank : int
        Candidate range (also bounded by the segment shape).
    seed : int, optional
    n_jobs : int

    Returns
    -------
    RankSelection
    """
    if rank is not None:
        return RankSelection(rank=int(rank), fixed=True)

    if method not in RANK_METHODS:
        raise InvalidInputError(
            f"Unknown rank method: {method!r}. Use one of {RANK_METHODS}"
        )

    candidates = candidate_ranks(*data.shape, min_rank=min_rank, max_rank=max_rank)

    if method == "dispersion":
        selection = _select_by_dispersion(
            data, candidates, nruns, algtype, seed, n_jobs,
        )
    else:
        selection = _select_by_residuals(
            data, candidates, nruns, algtype, seed, n_jobs,
        )

    logger.info(
        f"Selected rank {selection.rank} for a {data.shape[0]} x "
        f"{data.shape[1]} segment ({method}, candidates "
        f"{candidates[0]}-{candidates[-1]})"
    )
    return selection


def select_rank(
    data: np.ndarray,
    nruns: int = DEFAULT_NRUNS,
    algtype: str = "brunet",
    rank: Optional[int] = None,
    method: str = "dispersion",
    min_rank: int = DEFAULT_MIN_RANK,
    max_rank: Optional[int] = DEFAULT_MAX_RANK,
    seed: Optional[int] = None,
    n_jobs: int = 1,
) -> int:
    """Choose the factorization rank of a segment (see ``rank_selection``)."""
    return rank_selection(
        data, nruns=nruns, algtype=algtype, rank=rank, method=method,
        min_rank=min_rank, max_rank=max_rank, seed=seed, n_jobs=n_jobs,
    ).rank


# =============================================================================
# HEURISTICS
# =============================================================================

def _select_by_dispersion(
    data: np.ndarray,
    candidates: List[int],
    nruns: int,
    algtype: str,
    seed: Optional[int],
    n_jobs: int,
) -> RankSelection:
    seeds = spawn_seeds(seed, len(candidates))
    scores = {}
    n_unconverged = 0
    for k, s in zip(candidates, seeds):
        result = run_nmf(data, k, nruns, algtype, seed=int(s), n_jobs=n_jobs)
        scores[k] = dispersion_coefficient(result.consensus)
        n_unconverged += result.n_unconverged
        logger.debug(f"  rank {k}: dispersion {scores[k]:.4f}")

    # max() keeps the first maximum, i.e. the smallest rank on ties
    best = max(candidates, key=lambda k: scores[k])
    return RankSelection(
        rank=best, candidates=candidates, scores=scores,
        n_unconverged=n_unconverged,
    )


def _select_by_residuals(
    data: np.ndarray,
    candidates: List[int],
    nruns: int,
    algtype: str,
    seed: Optional[int],
    n_jobs: int,
) -> RankSelection:
    seeds = spawn_seeds(seed, 2 * len(candidates) + 1)
    randomized = randomize_columns(data, seed=int(seeds[-1]))

    real_loss: Dict[int, float] = {}
    random_loss: Dict[int, float] = {}
    n_unconverged = 0

    def _losses(i: int, k: int):
        nonlocal n_unconverged
        if k not in real_loss:
            real = run_nmf(data, k, nruns, algtype, seed=int(seeds[2 * i]), n_jobs=n_jobs)
            rand = run_nmf(
                randomized, k, nruns, algtype, seed=int(seeds[2 * i + 1]), n_jobs=n_jobs,
            )
            real_loss[k], random_loss[k] = real.loss, rand.loss
            n_unconverged += real.n_unconverged + rand.n_unconverged

    scores = {}
    best = candidates[-1]
    _losses(0, candidates[0])
    for i, k in enumerate(candidates[:-1]):
        _losses(i + 1, k + 1)
        real_drop = real_loss[k] - real_loss[k + 1]
        random_drop = random_loss[k] - random_loss[k + 1]
        scores[k] = real_drop - random_drop
        logger.debug(
            f"  rank {k}->{k + 1}: residual drop {real_drop:.4g} "
            f"(randomized {random_drop:.4g})"
        )
        if real_drop < random_drop:
            best = k
            break

    return RankSelection(
        rank=best, candidates=candidates, scores=scores,
        n_unconverged=n_unconverged,
    )
