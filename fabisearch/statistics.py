# -*- coding: utf-8 -*-
"""
fabisearch.statistics
=====================

Split statistics and the permutation test that validates a candidate
change point.

Split statistics
----------------
For a segment X split at row s into X⁻ = X[:s] and X⁺ = X[s:], both
sides are factorized with the same rank.  Two statistics are available,
both larger when the sides differ more:

**fit**: share of the segment explained by separate factorizations

    F(s) = 1 − (‖X⁻ − W⁻H⁻‖² + ‖X⁺ − W⁺H⁺‖²) / ‖X‖²

**consensus**: mean squared difference between the consensus matrices
of the two sides (off-diagonal entries).  Comparing co-clustering
probabilities rather than labels avoids label-permutation ambiguity and
stays defined when the two sides settle on different cluster counts.

Permutation test
----------------
Under the null hypothesis of no change the time order inside the
segment carries no information.  Each of ``nreps`` repetitions:

    observed_r = statistic(X, s)            fresh NMF seeds
    null_r     = statistic(X[π_r], s)       π_r random row permutation

and the two samples are compared one-sided (observed larger) with a
Welch t-test, a Kolmogorov–Smirnov test, or a Wilcoxon rank-sum test.

References
----------
- Ondrus, Olds & Cribben (2021). Factorized binary search: change point
  detection in the network structure of multivariate high-dimensional
  time series.  arXiv:2103.06347.
- Nichols & Holmes (2002). Hum Brain Mapp 15:1-25.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np
from joblib import Parallel, delayed
from scipy import stats
from tqdm import tqdm

from .config import DEFAULT_NREPS, DEFAULT_NRUNS, STATISTICS, TEST_TYPES
from .exceptions import DegenerateNullError, InvalidInputError
from .nmf import run_nmf
from .utils import permute_rows, spawn_seeds

logger = logging.getLogger(__name__)


# =============================================================================
# SPLIT STATISTICS
# =============================================================================

def consensus_distance(
    consensus_before: np.ndarray,
    consensus_after: np.ndarray,
) -> float:
    """
    Distance between the consensus matrices on both sides of a split.

    Mean squared difference over the off-diagonal entries; symmetric in
    its arguments and 0 for identical co-clustering structure.
    """
    if consensus_before.shape != consensus_after.shape:
        raise InvalidInputError(
            f"Consensus matrices differ in shape: {consensus_before.shape} "
            f"vs {consensus_after.shape}"
        )
    p = consensus_before.shape[0]
    if p < 2:
        return 0.0
    off_diag = ~np.eye(p, dtype=bool)
    diff = consensus_before[off_diag] - consensus_after[off_diag]
    return float(np.mean(diff ** 2))


def split_fit(
    data: np.ndarray,
    loss_before: float,
    loss_after: float,
) -> float:
    """Fraction of ‖data‖² explained by separate factorizations of both sides."""
    total = float(np.sum(data ** 2))
    if total == 0:
        return 0.0
    return 1.0 - (loss_before + loss_after) / total


@dataclass
class SplitEvaluation:
    """Value of a split statistic and the restarts that did not converge."""

    value: float
    n_unconverged: int = 0


def split_statistic(
    data: np.ndarray,
    split: int,
    rank: int,
    nruns: int = DEFAULT_NRUNS,
    algtype: str = "brunet",
    statistic: str = "fit",
    seed: Optional[int] = None,
    n_jobs: int = 1,
) -> SplitEvaluation:
    """
    Evaluate a split statistic at row ``split`` of a segment.

    Parameters
    ----------
    data : np.ndarray (T, p)
        The segment.
    split : int
        Index (within ``data``) of the first row after the split.
    rank : int
    nruns : int
    algtype : str
    statistic : str
        'fit' or 'consensus'.
    seed : int, optional
    n_jobs : int

    Returns
    -------
    SplitEvaluation
    """
    if statistic not in STATISTICS:
        raise InvalidInputError(
            f"Unknown statistic: {statistic!r}. Use one of {STATISTICS}"
        )
    if not 0 < split < data.shape[0]:
        raise InvalidInputError(
            f"Split {split} must lie strictly inside a segment of "
            f"{data.shape[0]} rows"
        )

    seed_before, seed_after = spawn_seeds(seed, 2)
    before = run_nmf(data[:split], rank, nruns, algtype, int(seed_before), n_jobs)
    after = run_nmf(data[split:], rank, nruns, algtype, int(seed_after), n_jobs)

    if statistic == "consensus":
        value = consensus_distance(before.consensus, after.consensus)
    else:
        value = split_fit(data, before.loss, after.loss)

    return SplitEvaluation(
        value=value,
        n_unconverged=before.n_unconverged + after.n_unconverged,
    )


# =============================================================================
# DISTRIBUTION COMPARISON
# =============================================================================

def compare_distributions(
    observed: np.ndarray,
    null: np.ndarray,
    testtype: str = "t-test",
) -> float:
    """
    One-sided p-value that ``observed`` tends to exceed ``null``.

    Parameters
    ----------
    observed, null : np.ndarray
    testtype : str
        't-test' : Welch two-sample t-test.
        'ks' : two-sample Kolmogorov-Smirnov test.
        'wilcoxon' : Wilcoxon rank-sum (Mann-Whitney U) test.

    Returns
    -------
    float

    Raises
    ------
    DegenerateNullError
        All statistics are identical, or the test yields no finite p-value.
    """
    observed = np.asarray(observed, dtype=float).ravel()
    null = np.asarray(null, dtype=float).ravel()

    if testtype not in TEST_TYPES:
        raise InvalidInputError(
            f"Unknown test type: {testtype!r}. Use one of {TEST_TYPES}"
        )

    if np.ptp(np.concatenate([observed, null])) == 0:
        raise DegenerateNullError(
            f"Observed and permuted statistics are all equal "
            f"({observed[0]:.6g}); the test has nothing to compare"
        )

    if testtype == "t-test":
        if np.var(observed) == 0 and np.var(null) == 0:
            # limit of t → ±inf for two constant, different samples
            return 0.0 if observed.mean() > null.mean() else 1.0
        pvalue = stats.ttest_ind(
            observed, null, equal_var=False, alternative="greater",
        ).pvalue
    elif testtype == "ks":
        # 'less': the CDF of observed lies below that of null, i.e. larger values
        pvalue = stats.ks_2samp(observed, null, alternative="less").pvalue
    else:
        pvalue = stats.mannwhitneyu(observed, null, alternative="greater").pvalue

    pvalue = float(pvalue)
    if not np.isfinite(pvalue):
        raise DegenerateNullError(
            f"{testtype} returned a non-finite p-value for observed "
            f"{observed.tolist()} vs null {null.tolist()}"
        )
    return pvalue


# =============================================================================
# PERMUTATION TEST
# =============================================================================

@dataclass
class PermutationResult:
    """
    Outcome of the permutation test at one split.

    Parameters
    ----------
    pvalue : float
    alpha : float, optional
    testtype : str
    observed : np.ndarray (nreps,)
        Statistic on the original segment, one value per repetition.
    null : np.ndarray (nreps,)
        Statistic on row-permuted copies of the segment.
    n_unconverged : int
    """

    pvalue: float
    alpha: Optional[float]
    testtype: str
    observed: np.ndarray = field(repr=False)
    null: np.ndarray = field(repr=False)
    n_unconverged: int = 0

    @property
    def significant(self) -> Optional[bool]:
        """``pvalue < alpha``, or None when no alpha was given."""
        if self.alpha is None:
            return None
        return bool(self.pvalue < self.alpha)

    @property
    def stat_test(self) -> Union[float, bool]:
        """The p-value without alpha, the significance decision with it."""
        return self.pvalue if self.alpha is None else self.significant


def _one_repetition(
    data: np.ndarray,
    split: int,
    rank: int,
    nruns: int,
    algtype: str,
    statistic: str,
    seeds: np.ndarray,
):
    observed = split_statistic(
        data, split, rank, nruns, algtype, statistic, seed=int(seeds[0]),
    )
    permuted = permute_rows(data, seed=int(seeds[2]))
    null = split_statistic(
        permuted, split, rank, nruns, algtype, statistic, seed=int(seeds[1]),
    )
    return observed, null


def permutation_test(
    data: np.ndarray,
    split: int,
    rank: int,
    nreps: int = DEFAULT_NREPS,
    testtype: str = "t-test",
    alpha: Optional[float] = None,
    nruns: int = DEFAULT_NRUNS,
    algtype: str = "brunet",
    statistic: str = "fit",
    seed: Optional[int] = None,
    n_jobs: int = 1,
    verbose: bool = False,
) -> PermutationResult:
    """
    Test whether a split separates structurally different regimes.

    Parameters
    ----------
    data : np.ndarray (T, p)
        The segment under test.
    split : int
        Index (within ``data``) of the first row after the split.
    rank : int
    nreps : int
        Repetitions (size of the observed and of the null sample).
    testtype : str
        't-test', 'ks' or 'wilcoxon'.
    alpha : float, optional
        Significance level for the decision; None keeps the p-value.
    nruns : int
        NMF restarts per side per repetition.
    algtype : str
    statistic : str
        'fit' or 'consensus'.
    seed : int, optional
    n_jobs : int
        joblib workers over repetitions.
    verbose : bool

    Returns
    -------
    PermutationResult

    Raises
    ------
    DegenerateNullError
    """
    if testtype not in TEST_TYPES:
        raise InvalidInputError(
            f"Unknown test type: {testtype!r}. Use one of {TEST_TYPES}"
        )

    rep_seeds = spawn_seeds(seed, 3 * nreps).reshape(nreps, 3)

    if n_jobs > 1:
        pairs = Parallel(n_jobs=n_jobs, verbose=5 if verbose else 0)(
            delayed(_one_repetition)(
                data, split, rank, nruns, algtype, statistic, s,
            )
            for s in rep_seeds
        )
    else:
        pairs = [
            _one_repetition(data, split, rank, nruns, algtype, statistic, s)
            for s in tqdm(rep_seeds, disable=not verbose, desc="Permutations")
        ]

    observed = np.array([o.value for o, _ in pairs])
    null = np.array([n.value for _, n in pairs])
    n_unconverged = sum(o.n_unconverged + n.n_unconverged for o, n in pairs)

    pvalue = compare_distributions(observed, null, testtype)

    logger.debug(
        f"  permutation test at {split}: observed {observed.mean():.4g}, "
        f"null {null.mean():.4g} ± {null.std():.2g}, p = {pvalue:.4g}"
    )

    return PermutationResult(
        pvalue=pvalue,
        alpha=alpha,
        testtype=testtype,
        observed=observed,
        null=null,
        n_unconverged=n_unconverged,
    )
