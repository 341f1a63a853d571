# -*- coding: utf-8 -*-
"""
fabisearch.config
=================

Centralized defaults, the NMF algorithm registry, and the option
dataclass shared by every module.

All tunable numbers live here so that the search engine, the network
estimator and the plotting helpers never hard-code them.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Optional, Tuple

from .exceptions import InvalidInputError, InvalidRankError


# =============================================================================
# PROCEDURE DEFAULTS
# =============================================================================

DEFAULT_MINDIST = 35
DEFAULT_NRUNS = 50
DEFAULT_NREPS = 100
DEFAULT_ALGTYPE = "brunet"
DEFAULT_TESTTYPE = "t-test"

# Acceptance level used when alpha is None (p-values are reported).
DEFAULT_LEVEL = 0.05

DEFAULT_MIN_RANK = 2
DEFAULT_MAX_RANK = 10

# est.net default: cut the consensus tree at 7 clusters
DEFAULT_LAMBDA = 7

NMF_MAX_ITER = 1000
NMF_TOL = 1e-4


# =============================================================================
# NMF ALGORITHMS
# =============================================================================

@dataclass(frozen=True)
class NMFAlgorithm:
    """
    scikit-learn settings for one NMF variant.

    Parameters
    ----------
    solver : str
        'mu' (multiplicative update) or 'cd' (coordinate descent).
    beta_loss : str
        'kullback-leibler' or 'frobenius'.
    alpha_W, alpha_H : float
        Regularization strength on the basis / coefficient matrix.
    l1_ratio : float
        L1 share of the regularization (1.0 = pure sparsity penalty).
    description : str
    """

    solver: str
    beta_loss: str
    alpha_W: float = 0.0
    alpha_H: float = 0.0
    l1_ratio: float = 0.0
    description: str = ""


ALGORITHMS: Dict[str, NMFAlgorithm] = {
    "brunet": NMFAlgorithm(
        solver="mu", beta_loss="kullback-leibler",
        description="Kullback-Leibler multiplicative updates (Brunet et al., 2004)",
    ),
    "lee": NMFAlgorithm(
        solver="mu", beta_loss="frobenius",
        description="Euclidean multiplicative updates (Lee & Seung, 2001)",
    ),
    "als": NMFAlgorithm(
        solver="cd", beta_loss="frobenius",
        description="Alternating non-negative least squares (coordinate descent)",
    ),
    "snmf/r": NMFAlgorithm(
        solver="cd", beta_loss="frobenius", alpha_H=0.01, l1_ratio=1.0,
        description="Sparse NMF, L1 penalty on the coefficient matrix (Kim & Park, 2007)",
    ),
    "snmf/l": NMFAlgorithm(
        solver="cd", beta_loss="frobenius", alpha_W=0.01, l1_ratio=1.0,
        description="Sparse NMF, L1 penalty on the basis matrix (Kim & Park, 2007)",
    ),
}

# Named NMF variants with no scikit-learn counterpart
UNSUPPORTED_ALGORITHMS = ("ls-nmf", "nsNMF", "offset", "pe-nmf")


def get_algorithm(algtype: str) -> NMFAlgorithm:
    """Look up an NMF variant, failing with the list of supported names."""
    if algtype in ALGORITHMS:
        return ALGORITHMS[algtype]
    if algtype in UNSUPPORTED_ALGORITHMS:
        raise InvalidInputError(
            f"NMF algorithm '{algtype}' is not available in scikit-learn. "
            f"Supported: {sorted(ALGORITHMS)}"
        )
    raise InvalidInputError(
        f"Unknown NMF algorithm: '{algtype}'. Supported: {sorted(ALGORITHMS)}"
    )


# =============================================================================
# OPTION SETS
# =============================================================================

TEST_TYPES = ("t-test", "ks", "wilcoxon")
STATISTICS = ("fit", "consensus")
SEARCH_MODES = ("binary", "exhaustive")
RANK_METHODS = ("dispersion", "residuals")
RANK_SCOPES = ("segment", "global")


# =============================================================================
# GORDON ATLAS (net.3dplot)
# =============================================================================

GORDON_COMMUNITIES = (
    "Default", "SMhand", "SMmouth", "Visual", "FrontoParietal", "Auditory",
    "None", "CinguloParietal", "RetrosplenialTemporal", "CinguloOperc",
    "VentralAttn", "Salience", "DorsalAttn",
)

DEFAULT_COLORS = (
    "#D32F2F", "#303F9F", "#388E3C", "#FFEB3B", "#03A9F4", "#FF9800",
    "#673AB7", "#CDDC39", "#9C27B0", "#795548", "#212121", "#009688",
    "#FFC0CB",
)


# =============================================================================
# RUN CONFIGURATION
# =============================================================================

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class FaBiSearchConfig:
    """
    Options of one change point detection run.

    Parameters
    ----------
    mindist : int
        Minimum distance between change points, and between a change
        point and either end of the series.
    nruns : int
        NMF restarts per factorization.
    nreps : int
        Repetitions of the permutation test.
    alpha : float, optional
        Significance level.  None reports p-values instead of decisions.
    rank : int, optional
        Fixed factorization rank.  None selects it from the data.
    algtype : str
        Key of ``ALGORITHMS``.
    testtype : str
        't-test', 'ks' or 'wilcoxon'.
    ncore : int
        Worker processes for restarts and permutations.
    rank_method : str
        'dispersion' (consensus stability) or 'residuals'
        (Frigyesi & Höglund, 2008).
    rank_scope : str
        'segment' selects a rank for every searched segment, 'global'
        selects once on the full series.
    statistic : str
        'fit' (explained fraction of the two-sided factorization) or
        'consensus' (distance between consensus matrices).
    search : str
        'exhaustive' (every candidate split) or 'binary' (bisection over
        candidate splits, then a local climb).
    level : float
        Acceptance level when ``alpha`` is None.
    min_rank, max_rank : int
        Candidate range for rank selection.
    seed : int, optional
        Master seed.  None draws fresh entropy.
    verbose : bool
    """

    mindist: int = DEFAULT_MINDIST
    nruns: int = DEFAULT_NRUNS
    nreps: int = DEFAULT_NREPS
    alpha: Optional[float] = None
    rank: Optional[int] = None
    algtype: str = DEFAULT_ALGTYPE
    testtype: str = DEFAULT_TESTTYPE
    ncore: int = 1
    rank_method: str = "dispersion"
    rank_scope: str = "segment"
    statistic: str = "fit"
    search: str = "exhaustive"
    level: float = DEFAULT_LEVEL
    min_rank: int = DEFAULT_MIN_RANK
    max_rank: int = DEFAULT_MAX_RANK
    seed: Optional[int] = None
    verbose: bool = field(default=False, repr=False)

    @property
    def acceptance_level(self) -> float:
        """Level a p-value must fall below for a split to be accepted."""
        return self.alpha if self.alpha is not None else self.level

    def validate(self) -> "FaBiSearchConfig":
        """Check every option, raising on the first violation."""
        for name in ("mindist", "nruns", "nreps", "ncore"):
            value = getattr(self, name)
            if not _is_int(value) or value < 1:
                raise InvalidInputError(
                    f"{name} must be a positive integer, got {value!r}"
                )

        for name in ("alpha", "level"):
            value = getattr(self, name)
            if value is None and name == "alpha":
                continue
            if not isinstance(value, (int, float)) or not 0 < value < 1:
                raise InvalidInputError(
                    f"{name} must lie strictly between 0 and 1, got {value!r}"
                )

        if self.rank is not None:
            if not _is_int(self.rank) or self.rank < 1:
                raise InvalidRankError(
                    f"rank must be a positive integer or None, got {self.rank!r}"
                )
            if self.rank > self.mindist:
                raise InvalidRankError(
                    f"rank {self.rank} exceeds mindist {self.mindist}: the "
                    f"shortest segment could not be factorized"
                )

        # a single cluster makes every consensus matrix all ones
        if not _is_int(self.min_rank) or self.min_rank < 2:
            raise InvalidRankError(f"min_rank must be >= 2, got {self.min_rank!r}")
        if not _is_int(self.max_rank) or self.max_rank < self.min_rank:
            raise InvalidRankError(
                f"max_rank must be an integer >= min_rank ({self.min_rank}), "
                f"got {self.max_rank!r}"
            )
        if self.rank is None and self.mindist < self.min_rank:
            raise InvalidRankError(
                f"mindist {self.mindist} leaves no room for the smallest "
                f"candidate rank {self.min_rank}"
            )

        get_algorithm(self.algtype)

        choices: Tuple[Tuple[str, tuple], ...] = (
            ("testtype", TEST_TYPES),
            ("rank_method", RANK_METHODS),
            ("rank_scope", RANK_SCOPES),
            ("statistic", STATISTICS),
            ("search", SEARCH_MODES),
        )
        for name, allowed in choices:
            value = getattr(self, name)
            if value not in allowed:
                raise InvalidInputError(
                    f"Unknown {name}: {value!r}. Use one of {allowed}"
                )

        if self.seed is not None and (not _is_int(self.seed) or self.seed < 0):
            raise InvalidInputError(
                f"seed must be a non-negative integer or None, got {self.seed!r}"
            )
        return self

    def to_dict(self) -> Dict:
        return asdict(self)
