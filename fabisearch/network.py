# -*- coding: utf-8 -*-
"""
fabisearch.network
==================

Stationary network estimation from the NMF consensus matrix.

Each NMF restart clusters the variables; averaging the co-assignments
over restarts gives the consensus matrix C, where C(i, j) is the
probability of i and j being clustered together.  An adjacency matrix
is derived from C in one of two ways, chosen by ``lam``:

    lam > 1  (integer)  complete-linkage hierarchical clustering of C,
                        tree cut at ``lam`` clusters; nodes in the same
                        cluster are adjacent
    0 ≤ lam ≤ 1         threshold: C(i, j) > lam is adjacent

The diagonal is always 0.  Typically applied to each stationary segment
between two detected change points.

Functions
---------
estimate_network
    Series → adjacency matrix.
cluster_adjacency
    Consensus → adjacency by hierarchical clustering.
threshold_adjacency
    Consensus → adjacency by thresholding.
"""

import logging
from typing import Optional, Union

import numpy as np
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import pdist

from .config import DEFAULT_ALGTYPE, DEFAULT_LAMBDA, DEFAULT_NRUNS
from .detect import validate_timeseries
from .exceptions import InvalidInputError, InvalidRankError
from .nmf import run_nmf
from .rank import select_rank

logger = logging.getLogger(__name__)


def cluster_adjacency(consensus: np.ndarray, n_clusters: int) -> np.ndarray:
    """
    Adjacency from complete-linkage clustering of the consensus rows.

    Parameters
    ----------
    consensus : np.ndarray (p, p)
    n_clusters : int
        Number of clusters at which the tree is cut.

    Returns
    -------
    np.ndarray (p, p) of int, symmetric, zero diagonal.
    """
    p = consensus.shape[0]
    if p < 2:
        return np.zeros((p, p), dtype=int)
    Z = linkage(pdist(consensus), method="complete")
    labels = fcluster(Z, t=n_clusters, criterion="maxclust")
    adj = (labels[:, np.newaxis] == labels[np.newaxis, :]).astype(int)
    np.fill_diagonal(adj, 0)
    return adj


def threshold_adjacency(consensus: np.ndarray, cutoff: float) -> np.ndarray:
    """Adjacency keeping consensus entries strictly above ``cutoff``."""
    adj = (consensus > cutoff).astype(int)
    np.fill_diagonal(adj, 0)
    return adj


def estimate_network(
    Y,
    nruns: int = DEFAULT_NRUNS,
    lam: Union[int, float] = DEFAULT_LAMBDA,
    rank: Optional[int] = None,
    algtype: str = DEFAULT_ALGTYPE,
    seed: Optional[int] = None,
    n_jobs: int = 1,
) -> np.ndarray:
    """
    Estimate a sparse stationary network with NMF consensus clustering.

    Parameters
    ----------
    Y : array-like (T, p)
        Non-negative series (typically one stationary segment).
    nruns : int
        NMF restarts.
    lam : int or float
        Integer > 1: number of clusters for hierarchical clustering.
        Real in [0, 1]: consensus threshold.
    rank : int, optional
        Fixed rank; None selects it by consensus dispersion.
    algtype : str
    seed : int, optional
    n_jobs : int

    Returns
    -------
    np.ndarray (p, p)
        Adjacency matrix between the variables of Y.
    """
    data = validate_timeseries(Y)

    if isinstance(lam, bool) or not isinstance(lam, (int, float, np.integer, np.floating)):
        raise InvalidInputError(f"lam must be a number, got {lam!r}")
    if lam < 0:
        raise InvalidInputError(f"lam must be non-negative, got {lam}")
    if lam > 1 and float(lam) != int(lam):
        raise InvalidInputError(
            f"lam above 1 is a number of clusters and must be an integer, got {lam}"
        )

    if rank is None:
        rank = select_rank(data, nruns=nruns, algtype=algtype, seed=seed, n_jobs=n_jobs)
    elif rank < 1 or rank > min(data.shape):
        raise InvalidRankError(
            f"rank {rank} is incompatible with a {data.shape[0]} x "
            f"{data.shape[1]} series"
        )
    else:
        logger.info(f"User defined rank: {rank}")

    result = run_nmf(data, rank, nruns, algtype, seed=seed, n_jobs=n_jobs)

    if lam > 1:
        return cluster_adjacency(result.consensus, int(lam))
    return threshold_adjacency(result.consensus, float(lam))
