# -*- coding: utf-8 -*-
"""
fabisearch.search
=================

Factorized binary search over time segments.

The search keeps a stack of segments, starting with the whole series.
For each segment:

    1. rank: fixed, global, or selected for this segment
    2. scan: locate the candidate split with the largest split
       statistic (bisection or exhaustive)
    3. test: permutation test at that split
    4. recurse: if accepted, push [start, split) and [split, end)

A split s of [start, end) is admissible when both
``s - start >= mindist`` and ``end - s - 1 >= mindist``, so every
accepted change point lies at least ``mindist`` from the segment ends
and from every other change point.  Segments too short to hold an
admissible split are terminal.

Every random draw of a segment is seeded from (master seed, stage,
start, end): a segment's outcome does not depend on the traversal
order, fixed-seed runs are reproducible, and acceptance is monotone in
the significance level.

Classes
-------
Segment
    Half-open row range [start, end) of the series.
ChangePoint
    An accepted split with its test outcome.
BinarySearchEngine
    The segment state machine.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from .config import FaBiSearchConfig
from .exceptions import DegenerateNullError, InsufficientDataError
from .rank import rank_selection
from .statistics import permutation_test, split_statistic
from .utils import SeedManager, format_pvalue

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class Segment:
    """
    Half-open row range of the time series.

    Parameters
    ----------
    start : int
    end : int
    depth : int
        Recursion depth (0 for the full series).
    """

    start: int
    end: int
    depth: int = 0

    def __len__(self) -> int:
        return self.end - self.start

    def is_searchable(self, mindist: int) -> bool:
        """True when at least one admissible split exists."""
        return len(self) >= 2 * mindist + 1

    def candidates(self, mindist: int) -> np.ndarray:
        """
        Admissible splits (absolute row indices of the first row after
        the change).

        Raises
        ------
        InsufficientDataError
            The segment is shorter than ``2 * mindist + 1``.
        """
        if not self.is_searchable(mindist):
            raise InsufficientDataError(
                f"Segment [{self.start}, {self.end}) has {len(self)} rows; "
                f"at least {2 * mindist + 1} are needed for mindist={mindist}"
            )
        return np.arange(self.start + mindist, self.end - mindist)

    def children(self, split: int) -> Tuple["Segment", "Segment"]:
        return (
            Segment(self.start, split, self.depth + 1),
            Segment(split, self.end, self.depth + 1),
        )


@dataclass
class ChangePoint:
    """
    An accepted change point.

    Parameters
    ----------
    time : int
        1-based row number of the first observation after the change.
    split : int
        0-based index of that row.
    stat_test : float or bool
        p-value (alpha None) or the decision ``pvalue < alpha``.
    pvalue : float
    rank : int
        Factorization rank used for the segment that was split.
    statistic : float
        Mean observed split statistic over the test repetitions.
    segment : Segment
        The segment the change point was selected from.
    """

    time: int
    split: int
    stat_test: Union[float, bool]
    pvalue: float
    rank: int
    statistic: float
    segment: Segment = field(repr=False)


# =============================================================================
# ENGINE
# =============================================================================

class BinarySearchEngine:
    """
    Recursive split-and-test over segments of a time series.

    Parameters
    ----------
    data : np.ndarray (T, p)
        Validated non-negative series; never modified.
    config : FaBiSearchConfig
        Validated options.
    seeds : SeedManager, optional
        Defaults to one built from ``config.seed``.

    Usage
    -----
        engine = BinarySearchEngine(Y, FaBiSearchConfig(mindist=30).validate())
        change_points = engine.run()
        engine.root_rank, engine.n_unconverged
    """

    def __init__(
        self,
        data: np.ndarray,
        config: FaBiSearchConfig,
        seeds: Optional[SeedManager] = None,
    ):
        self.data = data
        self.config = config
        self.seeds = seeds if seeds is not None else SeedManager(config.seed)
        self.root_rank: Optional[int] = config.rank
        self.n_unconverged = 0
        self.n_segments = 0
        self._global_rank: Optional[int] = None

    # -------------------------------------------------------------------------
    # rank
    # -------------------------------------------------------------------------

    def rank_for(self, segment: Segment) -> int:
        """Rank used to factorize both sides of a split of ``segment``."""
        cfg = self.config
        if cfg.rank is not None:
            return cfg.rank

        if cfg.rank_scope == "global" and self._global_rank is not None:
            return self._global_rank

        if cfg.rank_scope == "global":
            target = Segment(0, self.data.shape[0])
        else:
            target = segment

        selection = rank_selection(
            self.data[target.start:target.end],
            nruns=cfg.nruns,
            algtype=cfg.algtype,
            method=cfg.rank_method,
            min_rank=cfg.min_rank,
            # both sides of a split have at least mindist rows
            max_rank=min(cfg.max_rank, cfg.mindist),
            seed=self.seeds.get_seed(SeedManager.RANK, target.start, target.end),
            n_jobs=cfg.ncore,
        )
        self.n_unconverged += selection.n_unconverged

        if cfg.rank_scope == "global":
            self._global_rank = selection.rank
        return selection.rank

    # -------------------------------------------------------------------------
    # scan
    # -------------------------------------------------------------------------

    def scan(self, segment: Segment, rank: int) -> Tuple[int, float]:
        """
        Locate the split with the largest statistic.

        Returns
        -------
        (split, score) : absolute split index and its statistic.
        """
        cfg = self.config
        candidates = segment.candidates(cfg.mindist)
        values = self.data[segment.start:segment.end]
        seed = self.seeds.get_seed(SeedManager.SCAN, segment.start, segment.end)
        cache: Dict[int, float] = {}

        def score(i: int) -> float:
            if i not in cache:
                evaluation = split_statistic(
                    values,
                    int(candidates[i]) - segment.start,
                    rank,
                    nruns=cfg.nruns,
                    algtype=cfg.algtype,
                    statistic=cfg.statistic,
                    seed=seed,
                    n_jobs=cfg.ncore,
                )
                cache[i] = evaluation.value
                self.n_unconverged += evaluation.n_unconverged
                logger.debug(
                    f"  candidate {int(candidates[i])}: {cfg.statistic} = "
                    f"{evaluation.value:.6g}"
                )
            return cache[i]

        lo, hi = 0, len(candidates) - 1
        if cfg.search == "binary":
            while hi - lo > 1:
                mid = (lo + hi) // 2
                left = (lo + mid) // 2
                right = (mid + 1 + hi) // 2
                if score(left) >= score(right):
                    hi = mid
                else:
                    lo = mid + 1

        window = list(range(lo, hi + 1))
        # max() keeps the first maximum, i.e. the earliest split on ties
        best = max(window, key=score)

        if cfg.search == "binary":
            # the final window can sit one step off the maximum
            while best > 0 and score(best - 1) > score(best):
                best -= 1
            while best < len(candidates) - 1 and score(best + 1) > score(best):
                best += 1

        return int(candidates[best]), cache[best]

    # -------------------------------------------------------------------------
    # main loop
    # -------------------------------------------------------------------------

    def test(self, segment: Segment, split: int, rank: int):
        """Permutation test of ``split`` within ``segment``."""
        cfg = self.config
        result = permutation_test(
            self.data[segment.start:segment.end],
            split - segment.start,
            rank,
            nreps=cfg.nreps,
            testtype=cfg.testtype,
            alpha=cfg.alpha,
            nruns=cfg.nruns,
            algtype=cfg.algtype,
            statistic=cfg.statistic,
            seed=self.seeds.get_seed(SeedManager.TEST, segment.start, segment.end),
            n_jobs=cfg.ncore,
            verbose=cfg.verbose,
        )
        self.n_unconverged += result.n_unconverged
        return result

    def run(self) -> List[ChangePoint]:
        """
        Search the whole series.

        Returns
        -------
        list of ChangePoint, ordered by time.
        """
        cfg = self.config
        stack: List[Segment] = [Segment(0, self.data.shape[0])]
        accepted: List[ChangePoint] = []

        while stack:
            segment = stack.pop()
            self.n_segments += 1

            try:
                segment.candidates(cfg.mindist)
            except InsufficientDataError as e:
                logger.debug(str(e))
                continue

            rank = self.rank_for(segment)
            if segment.depth == 0:
                self.root_rank = rank

            split, _ = self.scan(segment, rank)

            try:
                result = self.test(segment, split, rank)
            except DegenerateNullError as e:
                logger.warning(
                    f"Segment [{segment.start}, {segment.end}): {e}; "
                    f"no further splits"
                )
                continue

            if not result.pvalue < cfg.acceptance_level:
                logger.info(
                    f"Segment [{segment.start}, {segment.end}): best split "
                    f"{split + 1} not significant ({format_pvalue(result.pvalue)})"
                )
                continue

            logger.info(
                f"Segment [{segment.start}, {segment.end}): change point at "
                f"{split + 1} (rank {rank}, {format_pvalue(result.pvalue)})"
            )
            accepted.append(ChangePoint(
                time=split + 1,
                split=split,
                stat_test=result.stat_test,
                pvalue=result.pvalue,
                rank=rank,
                statistic=float(result.observed.mean()),
                segment=segment,
            ))

            # left child on top: depth first, left to right
            left, right = segment.children(split)
            stack.append(right)
            stack.append(left)

        return sorted(accepted, key=lambda cp: cp.time)
