# -*- coding: utf-8 -*-
"""
fabisearch.nmf
==============

Repeated stochastic NMF of a data segment and the consensus matrix that
summarizes the resulting clusterings of the variables.

The factorization itself is delegated to ``sklearn.decomposition.NMF``
behind the narrow ``factorize`` interface (data, rank, algorithm, seed)
→ (basis, coefficients), so another solver can be dropped in without
touching the search engine.

For a segment X (T × p) and rank k, every restart gives

    X ≈ W H,   W ≥ 0 (T × k),   H ≥ 0 (k × p)

and each variable j is assigned to the component with the largest
loading in column j of H.  Over ``nruns`` restarts the consensus matrix

    C(i, j) = fraction of restarts in which i and j share a component

is symmetric, lies in [0, 1] and has a unit diagonal.

Classes
-------
Factorization
    One restart: basis, coefficients, residual, convergence flag.
NMFResult
    Aggregate of ``nruns`` restarts.

Functions
---------
factorize
    Single NMF fit with a fixed seed.
cluster_assignments
    Hard cluster labels from a coefficient matrix.
consensus_matrix
    Co-assignment probabilities from a stack of labelings.
run_nmf
    ``nruns`` restarts (optionally parallel) → NMFResult.

References
----------
- Lee & Seung (2001). NIPS 13:556-562.
- Brunet et al. (2004). PNAS 101:4164-4169. Consensus clustering with NMF.
- Monti et al. (2003). Mach Learn 52:91-118. Consensus clustering.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from joblib import Parallel, delayed
from sklearn.decomposition import NMF
from sklearn.exceptions import ConvergenceWarning as SklearnConvergenceWarning
from tqdm import tqdm

from .config import NMF_MAX_ITER, NMF_TOL, get_algorithm
from .exceptions import InvalidRankError
from .utils import spawn_seeds

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class Factorization:
    """
    One NMF restart.

    Parameters
    ----------
    basis : np.ndarray (T, k)
    coef : np.ndarray (k, p)
    loss : float
        Squared Frobenius norm of the residual ``X - W H``.
    converged : bool
        False when the solver stopped at its iteration limit.
    """

    basis: np.ndarray
    coef: np.ndarray
    loss: float
    converged: bool = True


@dataclass
class NMFResult:
    """
    Aggregate of repeated NMF restarts on one segment.

    Parameters
    ----------
    consensus : np.ndarray (p, p)
        Co-assignment probability of every pair of variables.
    basis, coef : np.ndarray
        Factors of the restart with the lowest residual.
    loss : float
        Lowest residual over all restarts.
    rank : int
    n_runs : int
    n_unconverged : int
        Restarts that hit the iteration limit (still counted in the
        consensus).
    labels : np.ndarray (n_runs, p)
        Cluster assignment of each variable in each restart.
    """

    consensus: np.ndarray
    basis: np.ndarray
    coef: np.ndarray
    loss: float
    rank: int
    n_runs: int
    n_unconverged: int = 0
    labels: np.ndarray = field(default=None, repr=False)


# =============================================================================
# SINGLE FACTORIZATION
# =============================================================================

def factorize(
    data: np.ndarray,
    rank: int,
    algtype: str = "brunet",
    seed: Optional[int] = None,
    max_iter: int = NMF_MAX_ITER,
    tol: float = NMF_TOL,
) -> Factorization:
    """
    Fit one NMF model with a random initialization.

    Parameters
    ----------
    data : np.ndarray (T, p)
        Non-negative segment.
    rank : int
        Inner dimension k.
    algtype : str
        Key of ``fabisearch.config.ALGORITHMS``.
    seed : int, optional
        Seed of the random initialization; fixes the result.
    max_iter, tol : solver stopping criteria.

    Returns
    -------
    Factorization
    """
    algo = get_algorithm(algtype)
    model = NMF(
        n_components=rank,
        init="random",
        solver=algo.solver,
        beta_loss=algo.beta_loss,
        alpha_W=algo.alpha_W,
        alpha_H=algo.alpha_H,
        l1_ratio=algo.l1_ratio,
        max_iter=max_iter,
        tol=tol,
        random_state=seed,
    )

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", SklearnConvergenceWarning)
        basis = model.fit_transform(data)

    converged = True
    for w in caught:
        if issubclass(w.category, SklearnConvergenceWarning):
            converged = False
        else:
            warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)

    coef = model.components_
    loss = float(np.sum((data - basis @ coef) ** 2))
    return Factorization(basis=basis, coef=coef, loss=loss, converged=converged)


# =============================================================================
# CONSENSUS
# =============================================================================

def cluster_assignments(coef: np.ndarray) -> np.ndarray:
    """Assign each variable (column) to its maximally loaded component."""
    return np.argmax(coef, axis=0)


def consensus_matrix(all_labels: np.ndarray) -> np.ndarray:
    """
    Build the consensus (co-assignment) matrix from several labelings.

    C(i,j) = fraction of labelings where i and j share the same cluster.

    Parameters
    ----------
    all_labels : np.ndarray (n_runs, p)

    Returns
    -------
    np.ndarray (p, p), symmetric, unit diagonal.
    """
    all_labels = np.atleast_2d(all_labels)
    n_runs, p = all_labels.shape
    C = np.zeros((p, p))
    for labels in all_labels:
        C += labels[:, np.newaxis] == labels[np.newaxis, :]
    C /= n_runs
    np.fill_diagonal(C, 1.0)
    return C


# =============================================================================
# REPEATED RESTARTS
# =============================================================================

def run_nmf(
    data: np.ndarray,
    rank: int,
    nruns: int = 50,
    algtype: str = "brunet",
    seed: Optional[int] = None,
    n_jobs: int = 1,
    verbose: bool = False,
) -> NMFResult:
    """
    Run ``nruns`` NMF restarts on a segment and aggregate them.

    Parameters
    ----------
    data : np.ndarray (T, p)
    rank : int
        Must satisfy ``1 <= rank <= min(T, p)``.
    nruns : int
        Number of restarts.
    algtype : str
    seed : int, optional
        Master seed; restart ``r`` uses the r-th seed spawned from it.
    n_jobs : int
        joblib workers over restarts.
    verbose : bool
        Show a progress bar over restarts.

    Returns
    -------
    NMFResult
    """
    n_rows, n_cols = data.shape
    if rank < 1 or rank > min(n_rows, n_cols):
        raise InvalidRankError(
            f"Rank {rank} is incompatible with a {n_rows} x {n_cols} segment "
            f"(must be between 1 and {min(n_rows, n_cols)})"
        )

    seeds = spawn_seeds(seed, nruns)

    if n_jobs > 1:
        fits: List[Factorization] = Parallel(n_jobs=n_jobs)(
            delayed(factorize)(data, rank, algtype, int(s)) for s in seeds
        )
    else:
        fits = [
            factorize(data, rank, algtype, int(s))
            for s in tqdm(seeds, disable=not verbose, desc=f"NMF rank {rank}")
        ]

    labels = np.array([cluster_assignments(f.coef) for f in fits])
    best = min(fits, key=lambda f: f.loss)
    n_unconverged = sum(not f.converged for f in fits)

    if n_unconverged:
        logger.debug(
            f"{n_unconverged}/{nruns} NMF runs (rank {rank}, "
            f"{n_rows} x {n_cols}) stopped before converging"
        )

    return NMFResult(
        consensus=consensus_matrix(labels),
        basis=best.basis,
        coef=best.coef,
        loss=best.loss,
        rank=rank,
        n_runs=nruns,
        n_unconverged=n_unconverged,
        labels=labels,
    )
