"""
Integration tests for end-to-end analysis runs.
Each run writes figures, logs and (optionally) a PDF and a model into tmp_path.
"""

import json
import os

import numpy as np
import pandas as pd
import pytest

from analysis_lab.core import classification, data_manager
from analysis_lab.core.report_orchestrator import AnalysisConfig, run_analysis

SPORT = "football goal striker keeper match league referee stadium"
COOKING = "flour oven butter sugar recipe bake dough pastry"


@pytest.fixture
def sales():
    return pd.DataFrame({
        "region": ["north", "south", "north", "east", "south", "north"],
        "product": ["a", "a", "b", "b", "b", "a"],
        "units": [10, 3, 7, 12, 5, 1],
        "constant": [1, 1, 1, 1, 1, 1],
    })


@pytest.fixture
def reviews():
    rng = np.random.default_rng(0)
    docs = [" ".join(rng.choice((SPORT if i % 2 == 0 else COOKING).split(), size=25))
            for i in range(20)]
    return pd.DataFrame({"review": docs, "stars": rng.integers(1, 6, size=20)})


@pytest.mark.integration
def test_variance_run_writes_figure_and_log(tmp_path, sales):
    cfg = AnalysisConfig(analysis="variance", output_dir=str(tmp_path))

    result = run_analysis(sales, cfg)

    assert result.ok, result.errors
    assert result.summary["dropped"] == ["constant"]
    assert list(result.tables["filtered"].columns) == ["region", "product", "units"]
    assert os.path.exists(result.figure_paths["variances"])
    with open(result.logs_path) as f:
        log = json.load(f)
    assert log["analysis"] == "variance"
    assert log["config"]["output_dir"] == str(tmp_path)
    assert "total" in result.timings_sec


@pytest.mark.integration
def test_aggregation_run_with_row_filter_and_pivot(tmp_path, sales):
    cfg = AnalysisConfig(
        analysis="aggregation",
        group_by=("region", "product"),
        value_column="units",
        row_filter={"units": ">=3"},
        output_dir=str(tmp_path),
        generate_figures=False,
    )

    result = run_analysis(sales, cfg)

    assert result.ok, result.errors
    assert result.summary["grand_total"] == pytest.approx(37.0)
    grouped = result.tables["grouped"]
    assert {"units_sum", "units_count", "units_mean"} <= set(grouped.columns)
    pivot = result.tables["pivot"]
    assert pivot.loc["Total", "Total"] == pytest.approx(37.0)
    assert result.figure_paths == {}


@pytest.mark.integration
def test_topics_run_with_pdf(tmp_path, reviews):
    cfg = AnalysisConfig(
        analysis="topics",
        text_column="review",
        topic_counts=(2, 3, 40),
        extra_topic_metrics=("cao_juan_2009",),
        lda_max_iter=5,
        top_n_words=4,
        output_dir=str(tmp_path),
        generate_pdf=True,
        file_prefix="reviews",
    )

    result = run_analysis(reviews, cfg)

    assert result.ok, result.errors
    assert result.summary["best_k"] in (2, 3)
    assert result.tables["ranking"]["n_topics"].tolist() == [2, 3]
    assert any("vocabulary size" in w for w in result.warnings)
    assert os.path.exists(result.figure_paths["sweep"])
    assert result.report_path.endswith(".pdf")
    assert os.path.basename(result.report_path).startswith("reviews_")
    assert os.path.getsize(result.report_path) > 0


@pytest.mark.integration
def test_classification_run_saves_model(tmp_path):
    df = data_manager.load_builtin_dataset("iris")
    cfg = AnalysisConfig(
        analysis="classification",
        target="target",
        gb_params={"n_estimators": 20, "max_depth": 2},
        tune_param="learning_rate",
        tune_values=(0.05, 0.2),
        save_model=True,
        output_dir=str(tmp_path),
    )

    result = run_analysis(df, cfg)

    assert result.ok, result.errors
    assert result.summary["metrics"]["accuracy"] > 0.8
    assert result.summary["best_learning_rate"] in (0.05, 0.2)
    assert {"metrics", "confusion", "report", "importances", "tuning"} <= set(result.tables)
    assert {"confusion", "importances", "sweep"} <= set(result.figure_paths)
    pipeline, meta = classification.load_model(result.model_path)
    assert meta["target"] == "target"
    assert hasattr(pipeline, "predict")


@pytest.mark.integration
def test_missing_target_fails_validation(tmp_path, sales):
    cfg = AnalysisConfig(analysis="classification", target="label", output_dir=str(tmp_path))

    result = run_analysis(sales, cfg)

    assert result.ok is False
    assert result.errors and result.errors[0].startswith("Validation failed")
    assert result.logs_path is None


@pytest.mark.integration
def test_analysis_failure_is_reported_not_raised(tmp_path):
    df = pd.DataFrame({"text": ["", "  ", ""], "x": [1, 2, 3]})
    cfg = AnalysisConfig(analysis="topics", text_column="text", output_dir=str(tmp_path))

    result = run_analysis(df, cfg)

    assert result.ok is False
    assert "topics analysis failed" in result.errors[0]


@pytest.mark.integration
def test_row_filter_that_removes_everything_fails(tmp_path, sales):
    cfg = AnalysisConfig(analysis="variance", row_filter={"units": ">1000"}, output_dir=str(tmp_path))

    result = run_analysis(sales, cfg)

    assert result.ok is False
    assert "empty input" in result.errors[0]


@pytest.mark.integration
def test_config_from_json(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"analysis": "topics", "text_column": "body", "topic_counts": [2, 4]}))

    cfg = AnalysisConfig.from_json(str(path))

    assert cfg.analysis == "topics"
    assert cfg.topic_counts == (2, 4)


@pytest.mark.integration
def test_config_rejects_bad_input(tmp_path):
    with pytest.raises(ValueError, match="Unknown analysis"):
        AnalysisConfig(analysis="clustering")
    with pytest.raises(ValueError, match="Unknown config keys"):
        AnalysisConfig.from_dict({"analysis": "variance", "colour": "red"})
    with pytest.raises(FileNotFoundError):
        AnalysisConfig.from_json(str(tmp_path / "missing.json"))
