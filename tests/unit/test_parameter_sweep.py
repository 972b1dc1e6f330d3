"""
Unit tests for the parallel parameter-sweep harness.
Fit/score functions live at module level so worker processes can pickle them.
"""

import math

import pytest

from analysis_lab.core.parameter_sweep import SweepReport, SweepResult, run_sweep


def square(x):
    return x * x


def identity(model):
    return model


def distance_from_nine(model):
    return abs(model - 9)


def fail_on_three(x):
    if x == 3:
        raise ValueError("three is not allowed")
    return x


def multi_metric(model):
    return {"loss": float(model), "gain": -float(model)}


def always_fail(x):
    raise RuntimeError("boom")


@pytest.mark.unit
def test_lower_is_better_by_default():
    report = run_sweep(square, [1, 2, 3, 4], distance_from_nine)

    assert report.best.value == 3
    assert report.best.score == 0.0
    assert [r.value for r in report.ranked()] == [3, 2, 4, 1]


@pytest.mark.unit
def test_higher_is_better():
    report = run_sweep(square, [1, 2, 3], identity, higher_is_better=True)

    assert report.best.value == 3
    assert report.best.model == 9


@pytest.mark.unit
def test_results_keep_input_order():
    report = run_sweep(square, [5, 1, 3], identity)

    assert [r.value for r in report.results] == [5, 1, 3]


@pytest.mark.unit
def test_ties_resolve_to_first_in_input_order():
    """-3 and 3 square to the same score; the earlier one wins."""
    report = run_sweep(square, [-3, 3, 1], distance_from_nine)

    assert [r.value for r in report.ranked()][:2] == [-3, 3]
    assert report.best.value == -3


@pytest.mark.unit
def test_failures_are_recorded_not_raised():
    report = run_sweep(fail_on_three, [1, 3, 5], identity)

    failed = report.failures
    assert [r.value for r in failed] == [3]
    assert "three is not allowed" in failed[0].error
    assert math.isnan(failed[0].score)
    assert report.best.value == 1


@pytest.mark.unit
def test_raise_on_error_propagates():
    with pytest.raises(ValueError, match="three"):
        run_sweep(fail_on_three, [1, 3], identity, raise_on_error=True)


@pytest.mark.unit
def test_all_failures_raise_runtime_error():
    with pytest.raises(RuntimeError, match="All 2 fits failed"):
        run_sweep(always_fail, [1, 2], identity)


@pytest.mark.unit
def test_empty_and_duplicate_values_rejected():
    with pytest.raises(ValueError, match="empty input"):
        run_sweep(square, [], identity)
    with pytest.raises(ValueError, match="Duplicate"):
        run_sweep(square, [1, 2, 1], identity)


@pytest.mark.unit
def test_mapping_scores_rank_by_named_metric():
    report = run_sweep(square, [1, 2, 3], multi_metric, rank_by="gain", higher_is_better=True)

    assert report.metric == "gain"
    assert report.best.value == 1
    assert report.best.scores == {"loss": 1.0, "gain": -1.0}


@pytest.mark.unit
def test_mapping_scores_default_to_first_key():
    report = run_sweep(square, [1, 2], multi_metric)

    assert report.metric == "loss"
    assert report.best.value == 1


@pytest.mark.unit
def test_missing_rank_metric_marks_results_failed():
    with pytest.raises(RuntimeError):
        run_sweep(square, [1, 2], multi_metric, rank_by="accuracy")


@pytest.mark.unit
def test_parallel_run_matches_sequential():
    sequential = run_sweep(square, [1, 2, 3, 4], distance_from_nine, n_jobs=1)
    parallel = run_sweep(square, [1, 2, 3, 4], distance_from_nine, n_jobs=2, backend="threading")

    assert [r.score for r in parallel.results] == [r.score for r in sequential.results]
    assert parallel.best.value == sequential.best.value


@pytest.mark.unit
def test_keep_models_false_drops_models():
    report = run_sweep(square, [1, 2], identity, keep_models=False)

    assert all(r.model is None for r in report.results)


@pytest.mark.unit
def test_to_frame_has_rank_and_errors():
    report = run_sweep(fail_on_three, [1, 3, 5], identity, higher_is_better=True)

    frame = report.to_frame(value_name="k")

    assert frame["k"].tolist() == [1, 3, 5]
    assert frame["rank"].tolist()[0] == 2
    assert frame["rank"].tolist()[2] == 1
    assert frame["rank"].isna().tolist() == [False, True, False]
    assert frame["error"].notna().tolist() == [False, True, False]


@pytest.mark.unit
def test_best_on_empty_report_raises():
    report = SweepReport(results=[SweepResult(value=1, error="x")], metric="score", higher_is_better=False)

    with pytest.raises(RuntimeError):
        report.best


def no_score(model):
    return None


def none_for_four(model):
    return None if model == 4 else float(model)


def missing_metric_value(model):
    return {"loss": None}


@pytest.mark.unit
def test_non_numeric_scores_are_recorded_as_failures():
    """A score that cannot become a float fails that value, not the whole call."""
    with pytest.raises(RuntimeError, match="All 2 fits failed"):
        run_sweep(square, [1, 2], no_score)


@pytest.mark.unit
def test_non_numeric_score_fails_only_that_value():
    report = run_sweep(square, [1, 2], none_for_four)

    assert [r.value for r in report.failures] == [2]
    assert report.failures[0].error.startswith("TypeError")
    assert report.best.value == 1


@pytest.mark.unit
def test_non_numeric_score_propagates_with_raise_on_error():
    with pytest.raises(TypeError):
        run_sweep(square, [1, 2], none_for_four, raise_on_error=True)


@pytest.mark.unit
def test_non_numeric_metric_in_mapping_is_recorded():
    with pytest.raises(RuntimeError, match="All 1 fits failed"):
        run_sweep(square, [1], missing_metric_value)
