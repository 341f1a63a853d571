"""
Shared fixtures: synthetic non-negative series with known cluster
structure.

Every variable is a noisy copy of one of k latent gamma-distributed
signals; variables sharing a signal form a cluster.  A regime is a
mapping variable → signal, and a change point swaps the mapping.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

# two 3-cluster partitions of 10 variables that share no cluster
REGIME_A = [0, 0, 0, 1, 1, 1, 2, 2, 2, 2]
REGIME_B = [0, 1, 2, 0, 1, 2, 0, 1, 2, 0]
REGIMES = {"A": REGIME_A, "B": REGIME_B}


def _regime(n_rows, assignment, rng, noise):
    k = max(assignment) + 1
    signals = rng.gamma(2.0, 1.0, size=(n_rows, k))
    return signals[:, assignment] + noise * rng.random((n_rows, len(assignment)))


def _make_series(lengths, assignments, seed=0, noise=0.05):
    rng = np.random.default_rng(seed)
    assignments = [REGIMES[a] if isinstance(a, str) else a for a in assignments]
    return np.vstack([
        _regime(n, a, rng, noise) for n, a in zip(lengths, assignments)
    ])


@pytest.fixture
def make_series():
    """Factory: make_series(lengths, assignments, seed=0, noise=0.05).

    ``assignments`` holds one regime per block, either a variable → signal
    list or a key of REGIMES, so "ABA" gives three blocks A, B, A.
    """
    return _make_series


@pytest.fixture
def break_series():
    """200 x 10 series; rows 0-99 follow REGIME_A, rows 100-199 REGIME_B."""
    return _make_series([100, 100], [REGIME_A, REGIME_B], seed=7)


@pytest.fixture
def stationary_series():
    """200 x 10 series following REGIME_A throughout."""
    return _make_series([200], [REGIME_A], seed=11)


@pytest.fixture
def indexed_series():
    """300 x 4 series whose first column is the row index."""
    rng = np.random.default_rng(3)
    Y = rng.random((300, 4))
    Y[:, 0] = np.arange(300)
    return Y
