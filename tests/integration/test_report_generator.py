"""
Integration tests for figure rendering and PDF assembly.
"""

import os

import numpy as np
import pandas as pd
import pytest

from analysis_lab.core.report_generator import ReportGenerator, ReportStyle, frame_to_table_data


@pytest.fixture
def generator(tmp_path):
    return ReportGenerator(output_dir=str(tmp_path), style=ReportStyle(figure_dpi=60))


@pytest.mark.integration
def test_figures_are_written_as_png(generator):
    variances = pd.DataFrame({
        "feature": ["a", "b", "c"],
        "variance": [2.0, 0.5, 0.0],
        "kept": [True, True, False],
    })
    sweep = pd.DataFrame({"k": [2, 3, 4], "loss": [0.3, 0.1, 0.2], "gain": [1.0, 2.0, 1.5]})
    cm = pd.DataFrame([[5, 1], [0, 4]], index=["x", "y"], columns=["x", "y"])
    importances = pd.Series([0.7, 0.3], index=["f1", "f2"])

    paths = [
        generator.plot_variances(variances, threshold=0.1),
        generator.plot_sweep(sweep, "k", ["loss", "gain"], best_value=3),
        generator.plot_confusion_matrix(cm),
        generator.plot_feature_importance(importances),
    ]

    for p in paths:
        assert p.endswith(".png")
        assert os.path.getsize(p) > 0
    assert all(os.path.dirname(p) == generator.figures_dir for p in paths)


@pytest.mark.integration
def test_empty_inputs_still_render(generator):
    empty = pd.DataFrame({"feature": [], "variance": [], "kept": []})

    path = generator.plot_variances(empty, threshold=0.0, name="empty")

    assert os.path.exists(path)


@pytest.mark.integration
def test_pdf_report_with_tables_and_figures(generator):
    fig = generator.plot_feature_importance(pd.Series([0.6, 0.4], index=["a", "b"]))
    sections = [
        {"heading": "Summary", "text": "Numbers & <symbols> are escaped."},
        {"heading": "Table", "table": pd.DataFrame({"x": [1.23456, np.nan], "ok": [True, False]})},
        {"heading": "Figures", "figures": [fig, "/does/not/exist.png"], "page_break": True},
    ]

    path = generator.create_pdf_report("Test Report", sections, file_prefix="unit")

    assert os.path.basename(path).startswith("unit_")
    assert os.path.getsize(path) > 0


@pytest.mark.integration
def test_unknown_style_option_rejected():
    with pytest.raises(ValueError, match="Unknown ReportStyle option"):
        ReportStyle(colour="red")


@pytest.mark.integration
def test_frame_to_table_data_formats_and_truncates():
    df = pd.DataFrame({"v": [0.5, np.nan, 2.0], "flag": [True, False, True]})

    rows = frame_to_table_data(df, max_rows=2)

    assert rows[0] == ["v", "flag"]
    assert rows[1] == ["0.5000", "yes"]
    assert rows[2] == ["", "no"]
    assert rows[3] == ["…", "…"]
