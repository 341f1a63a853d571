"""
Tests for split statistics and the permutation test.
"""

import numpy as np
import pytest

from fabisearch.exceptions import DegenerateNullError, InvalidInputError
from fabisearch.statistics import (
    PermutationResult,
    compare_distributions,
    consensus_distance,
    permutation_test,
    split_fit,
    split_statistic,
)


class TestConsensusDistance:

    def test_identical_is_zero(self):
        C = np.kron(np.eye(2), np.ones((3, 3)))
        assert consensus_distance(C, C) == 0.0

    def test_symmetric(self):
        rng = np.random.default_rng(1)
        A, B = rng.random((5, 5)), rng.random((5, 5))
        assert consensus_distance(A, B) == pytest.approx(consensus_distance(B, A))

    def test_known_value(self):
        A = np.ones((3, 3))
        B = np.eye(3)
        # every off-diagonal entry differs by 1
        assert consensus_distance(A, B) == pytest.approx(1.0)

    def test_diagonal_ignored(self):
        A = np.zeros((3, 3))
        B = np.eye(3)
        assert consensus_distance(A, B) == 0.0

    def test_shape_mismatch(self):
        with pytest.raises(InvalidInputError):
            consensus_distance(np.eye(3), np.eye(4))


class TestSplitFit:

    def test_perfect_fit(self):
        X = np.ones((4, 2))
        assert split_fit(X, 0.0, 0.0) == pytest.approx(1.0)

    def test_partial_fit(self):
        X = np.ones((4, 2))  # ||X||^2 = 8
        assert split_fit(X, 1.0, 1.0) == pytest.approx(0.75)

    def test_zero_data(self):
        assert split_fit(np.zeros((3, 3)), 0.0, 0.0) == 0.0


class TestSplitStatistic:

    def test_true_split_beats_misplaced_split(self, break_series):
        true = split_statistic(break_series, 100, 3, nruns=3, seed=0)
        early = split_statistic(break_series, 50, 3, nruns=3, seed=0)
        assert true.value > early.value

    def test_consensus_statistic_bounded(self, break_series):
        result = split_statistic(
            break_series, 100, 3, nruns=3, statistic="consensus", seed=0,
        )
        assert 0.0 <= result.value <= 1.0

    @pytest.mark.parametrize("split", [0, 200, -5])
    def test_split_outside_segment(self, break_series, split):
        with pytest.raises(InvalidInputError):
            split_statistic(break_series, split, 3, nruns=2)

    def test_unknown_statistic(self, break_series):
        with pytest.raises(InvalidInputError):
            split_statistic(break_series, 100, 3, nruns=2, statistic="likelihood")


class TestCompareDistributions:

    observed = np.array([0.90, 0.91, 0.92, 0.93, 0.94])
    null = np.array([0.50, 0.52, 0.51, 0.49, 0.53])

    @pytest.mark.parametrize("testtype", ["t-test", "ks", "wilcoxon"])
    def test_clear_separation(self, testtype):
        assert compare_distributions(self.observed, self.null, testtype) < 0.05

    @pytest.mark.parametrize("testtype", ["t-test", "ks", "wilcoxon"])
    def test_one_sided(self, testtype):
        """Null larger than observed is not evidence of a change."""
        assert compare_distributions(self.null, self.observed, testtype) > 0.5

    def test_all_equal_is_degenerate(self):
        with pytest.raises(DegenerateNullError):
            compare_distributions(np.full(4, 0.3), np.full(4, 0.3))

    def test_constant_but_different_samples(self):
        assert compare_distributions(np.full(3, 0.9), np.full(3, 0.1)) == 0.0
        assert compare_distributions(np.full(3, 0.1), np.full(3, 0.9)) == 1.0

    def test_unknown_testtype(self):
        with pytest.raises(InvalidInputError):
            compare_distributions(self.observed, self.null, "anova")


class TestPermutationResult:

    def _result(self, pvalue, alpha):
        return PermutationResult(
            pvalue=pvalue, alpha=alpha, testtype="t-test",
            observed=np.zeros(2), null=np.zeros(2),
        )

    def test_pvalue_without_alpha(self):
        result = self._result(0.03, None)
        assert result.significant is None
        assert result.stat_test == 0.03

    def test_decision_with_alpha(self):
        assert self._result(0.03, 0.05).stat_test is True
        assert self._result(0.07, 0.05).stat_test is False
        # strict inequality
        assert self._result(0.05, 0.05).stat_test is False


class TestPermutationTest:

    def test_observed_exceeds_null_at_true_split(self, break_series):
        result = permutation_test(break_series, 100, 3, nreps=3, nruns=2, seed=4)

        assert result.observed.shape == (3,)
        assert result.null.shape == (3,)
        assert result.observed.mean() > result.null.mean()
        assert 0.0 <= result.pvalue <= 1.0

    def test_deterministic(self, break_series):
        a = permutation_test(break_series, 100, 3, nreps=2, nruns=2, seed=8)
        b = permutation_test(break_series, 100, 3, nreps=2, nruns=2, seed=8)
        assert a.pvalue == b.pvalue
        np.testing.assert_array_equal(a.null, b.null)

    def test_parallel_matches_sequential(self, break_series):
        a = permutation_test(break_series, 100, 3, nreps=2, nruns=2, seed=8, n_jobs=1)
        b = permutation_test(break_series, 100, 3, nreps=2, nruns=2, seed=8, n_jobs=2)
        np.testing.assert_allclose(a.observed, b.observed)
        np.testing.assert_allclose(a.null, b.null)

    def test_alpha_only_changes_decision(self, break_series):
        a = permutation_test(break_series, 100, 3, nreps=2, nruns=2, seed=8)
        b = permutation_test(
            break_series, 100, 3, nreps=2, nruns=2, seed=8, alpha=0.05,
        )
        assert a.pvalue == b.pvalue
        assert b.stat_test is (a.pvalue < 0.05)

    def test_unknown_testtype(self, break_series):
        with pytest.raises(InvalidInputError):
            permutation_test(break_series, 100, 3, nreps=2, testtype="anova")
