# -*- coding: utf-8 -*-
"""
fabisearch.utils
================

Seed management, resampling surrogates and small formatting helpers
shared by the search engine and the statistical tests.

Includes
--------
- Deterministic seed derivation keyed by analysis stage and segment
- Row permutation (null model for the split test)
- Column-wise randomization (null model for rank selection)
- p-value formatting for log messages

References
----------
- Nichols & Holmes (2002). Hum Brain Mapp. Nonparametric permutation tests.
- Frigyesi & Höglund (2008). Cancer Inform. NMF rank from randomized data.
"""

from typing import Dict, Optional, Tuple

import numpy as np


# =============================================================================
# REPRODUCIBILITY AND SEED MANAGEMENT
# =============================================================================

class SeedManager:
    """
    Deterministic seed management for reproducible runs.

    Uses a master seed to derive child seeds for every (stage, segment)
    of the search, so that the random draws of one segment never depend
    on which other segments were processed before it.

    Usage
    -----
        seeds = SeedManager(master_seed=42)
        scan_seed = seeds.get_seed(SeedManager.SCAN, 0, 200)
        test_seed = seeds.get_seed(SeedManager.TEST, 0, 200)
    """

    SCAN = 0
    TEST = 1
    RANK = 2

    def __init__(self, master_seed: Optional[int] = None):
        if master_seed is None:
            master_seed = int(np.random.SeedSequence().entropy % (2 ** 63))
        self.master_seed = master_seed
        self._registry: Dict[Tuple[int, ...], int] = {}

    def get_seed(self, *key: int) -> int:
        """
        Get a deterministic 32-bit seed for a tuple of non-negative ints.

        The same key always returns the same seed for a given master_seed.
        """
        key = tuple(int(k) for k in key)
        if key not in self._registry:
            ss = np.random.SeedSequence(self.master_seed, spawn_key=key)
            self._registry[key] = int(ss.generate_state(1)[0])
        return self._registry[key]


def spawn_seeds(seed: Optional[int], n: int) -> np.ndarray:
    """Derive ``n`` independent 32-bit seeds from one seed."""
    return np.random.SeedSequence(seed).generate_state(n)


# =============================================================================
# SURROGATE DATA GENERATION
# =============================================================================

def permute_rows(
    data: np.ndarray,
    seed: Optional[int] = None,
) -> np.ndarray:
    """
    Shuffle the time points of a segment.

    Keeps every observation intact but destroys any ordering, so a split
    of the permuted segment mixes both regimes on both sides.
    """
    rng = np.random.default_rng(seed)
    return data[rng.permutation(data.shape[0])]


def randomize_columns(
    data: np.ndarray,
    seed: Optional[int] = None,
) -> np.ndarray:
    """
    Permute every column independently.

    Preserves each variable's marginal distribution while destroying
    the dependence between variables (Frigyesi & Höglund, 2008).
    """
    rng = np.random.default_rng(seed)
    out = np.empty_like(data)
    for j in range(data.shape[1]):
        out[:, j] = rng.permutation(data[:, j])
    return out


# =============================================================================
# MISC
# =============================================================================

def format_pvalue(p: float) -> str:
    """Format a p-value for log messages."""
    if p < 0.001:
        return "p < 0.001"
    elif p < 0.05:
        return f"p = {p:.3f}"
    else:
        return f"p = {p:.2f}"
