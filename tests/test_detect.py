"""
End-to-end tests of detect_cps on synthetic series with known breaks.

Parameters are kept small (few restarts and repetitions) so the NMF
fits stay fast; rank is fixed to the true number of clusters unless
rank selection itself is under test.
"""

import numpy as np
import pandas as pd
import pytest

import fabisearch.nmf as nmf_module
from fabisearch import detect_cps
from fabisearch.config import FaBiSearchConfig
from fabisearch.detect import (
    DetectionResult,
    assemble_change_points,
    validate_timeseries,
)
from fabisearch.exceptions import (
    ConvergenceWarning,
    InvalidInputError,
    InvalidRankError,
)
from fabisearch.search import ChangePoint, Segment


class TestValidation:

    def test_dataframe_accepted(self, break_series):
        frame = pd.DataFrame(break_series)
        np.testing.assert_array_equal(validate_timeseries(frame), break_series)

    @pytest.mark.parametrize("Y", [
        np.ones(10),
        np.ones((2, 3, 4)),
        np.empty((0, 5)),
        [["a", "b"], ["c", "d"]],
    ])
    def test_bad_shapes(self, Y):
        with pytest.raises(InvalidInputError):
            validate_timeseries(Y)

    def test_negative_entries(self, break_series):
        Y = break_series.copy()
        Y[5, 3] = -0.1
        with pytest.raises(InvalidInputError, match="negative"):
            detect_cps(Y, nruns=2, nreps=2)

    def test_non_finite(self, break_series):
        Y = break_series.copy()
        Y[0, 0] = np.nan
        with pytest.raises(InvalidInputError):
            detect_cps(Y, nruns=2, nreps=2)

    def test_zeros_allowed(self):
        assert validate_timeseries(np.zeros((5, 3))).shape == (5, 3)

    @pytest.mark.parametrize("options", [
        {"mindist": 0},
        {"nruns": 0},
        {"nreps": -1},
        {"alpha": 0.0},
        {"alpha": 1.5},
        {"testtype": "anova"},
        {"algtype": "nsNMF"},
        {"statistic": "likelihood"},
        {"search": "golden"},
        {"rank_scope": "local"},
        {"seed": -3},
    ])
    def test_bad_options(self, break_series, options):
        with pytest.raises(InvalidInputError):
            detect_cps(break_series, **options)

    @pytest.mark.parametrize("rank", [0, 11, 40])
    def test_bad_rank(self, break_series, rank):
        with pytest.raises(InvalidRankError):
            detect_cps(break_series, mindist=35, rank=rank)

    @pytest.mark.parametrize("min_rank", [0, 1])
    def test_single_cluster_rank_rejected(self, min_rank):
        with pytest.raises(InvalidRankError):
            FaBiSearchConfig(min_rank=min_rank).validate()

    def test_rank_errors_are_value_errors(self, break_series):
        with pytest.raises(ValueError):
            detect_cps(break_series, rank=0)

    def test_validation_precedes_computation(self, break_series, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("factorization started on invalid input")

        monkeypatch.setattr(nmf_module, "factorize", fail)
        with pytest.raises(InvalidInputError):
            detect_cps(break_series, testtype="anova")


class TestResultTable:

    def test_assemble_orders_by_time(self):
        segment = Segment(0, 300)
        cps = [
            ChangePoint(201, 200, 0.01, 0.01, 3, 0.9, segment),
            ChangePoint(101, 100, 0.02, 0.02, 3, 0.9, segment),
        ]
        table = assemble_change_points(cps)

        assert list(table.columns) == ["time", "stat_test", "rank"]
        assert table["time"].tolist() == [101, 201]
        assert table["stat_test"].tolist() == [0.02, 0.01]

    def test_empty_table_has_columns(self):
        table = assemble_change_points([])
        assert list(table.columns) == ["time", "stat_test", "rank"]
        assert len(table) == 0

    def test_as_dict(self):
        result = DetectionResult(
            rank=3, change_points=assemble_change_points([]), compute_time=1.5,
        )
        assert set(result.as_dict()) == {"rank", "change_points", "compute_time"}
        assert result.times == []


class TestBoundary:

    def test_series_too_short_to_split(self, break_series):
        result = detect_cps(break_series[:69], mindist=35, rank=3, nruns=2, nreps=2)

        assert result.change_points.empty
        assert result.rank == 3
        assert result.compute_time >= 0

    def test_short_series_without_rank(self, break_series):
        result = detect_cps(break_series[:69], mindist=35, nruns=2, nreps=2)

        assert result.change_points.empty
        assert result.rank is None


class TestDetection:

    def test_single_break(self, break_series):
        result = detect_cps(
            break_series, mindist=99, nruns=2, nreps=2, rank=3, seed=1,
        )

        assert result.rank == 3
        assert result.change_points["time"].tolist() == [101]
        assert result.change_points["rank"].tolist() == [3]
        assert 0.0 <= result.change_points["stat_test"].iloc[0] < 0.05

    def test_stationary_series(self, stationary_series):
        result = detect_cps(
            stationary_series, mindist=99, nruns=2, nreps=2, rank=3, seed=1,
        )
        assert result.change_points.empty

    def test_single_break_wide_scan(self, break_series):
        result = detect_cps(
            break_series, mindist=60, nruns=2, nreps=2, rank=3, seed=1,
        )
        assert result.change_points["time"].tolist() == [101]

    def test_single_break_rank_sum(self, break_series):
        # 4 vs 4 values: the smallest one-sided p-value is 1/70
        result = detect_cps(
            break_series, mindist=99, nruns=2, nreps=4, rank=3,
            testtype="wilcoxon", seed=1,
        )
        assert result.change_points["time"].tolist() == [101]
        assert result.change_points["stat_test"].iloc[0] < 0.05

    def test_mindist_between_change_points(self, make_series):
        Y = make_series([60, 60, 60], "ABA", seed=2)
        result = detect_cps(
            Y, mindist=20, nruns=2, nreps=3, rank=3, seed=3, search="binary",
        )

        splits = [cp.split for cp in result.candidates]
        bounds = [0] + splits + [Y.shape[0]]
        assert all(b - a >= 20 for a, b in zip(bounds, bounds[1:]))
        assert result.change_points["time"].tolist() == sorted(s + 1 for s in splits)

    def test_alpha_decisions_match_pvalues(self, break_series):
        options = dict(mindist=99, nruns=2, nreps=2, rank=3, seed=5)
        pvalues = detect_cps(break_series, **options)
        decisions = detect_cps(break_series, alpha=0.05, **options)

        assert decisions.change_points["time"].tolist() == (
            pvalues.change_points["time"].tolist()
        )
        expected = [p < 0.05 for p in pvalues.change_points["stat_test"]]
        assert decisions.change_points["stat_test"].tolist() == expected

    def test_monotone_in_alpha(self, make_series):
        Y = make_series([60, 60, 60], "ABA", seed=4)
        options = dict(mindist=20, nruns=2, nreps=3, rank=3, seed=6, search="binary")
        strict = detect_cps(Y, alpha=0.01, **options)
        loose = detect_cps(Y, alpha=0.5, **options)

        assert set(strict.times) <= set(loose.times)

    def test_selected_rank_reported(self, break_series):
        result = detect_cps(break_series, mindist=99, nruns=2, nreps=2, seed=1)
        assert 2 <= result.rank <= 10


class TestReproducibility:

    options = dict(mindist=99, nruns=2, nreps=2, rank=3, seed=11)

    def test_fixed_seed_is_idempotent(self, break_series):
        a = detect_cps(break_series, **self.options)
        b = detect_cps(break_series, **self.options)
        pd.testing.assert_frame_equal(a.change_points, b.change_points)

    def test_parallel_matches_sequential(self, break_series):
        a = detect_cps(break_series, ncore=1, **self.options)
        b = detect_cps(break_series, ncore=2, **self.options)

        assert a.change_points["time"].tolist() == b.change_points["time"].tolist()
        np.testing.assert_allclose(
            a.change_points["stat_test"].to_numpy(dtype=float),
            b.change_points["stat_test"].to_numpy(dtype=float),
        )

    def test_config_recorded(self, break_series):
        result = detect_cps(break_series, **self.options)
        assert isinstance(result.config, FaBiSearchConfig)
        assert result.config.to_dict()["mindist"] == 99


class TestConvergence:

    def test_unconverged_runs_warn(self, break_series, monkeypatch):
        original = nmf_module.factorize

        def never_converges(*args, **kwargs):
            fit = original(*args, **kwargs)
            fit.converged = False
            return fit

        monkeypatch.setattr(nmf_module, "factorize", never_converges)
        with pytest.warns(ConvergenceWarning):
            result = detect_cps(
                break_series, mindist=99, nruns=2, nreps=2, rank=3, seed=1,
            )
        assert result.n_unconverged > 0
