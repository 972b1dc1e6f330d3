"""
ui/display_handlers.py
----------------------
UI glue that connects reusable components to core orchestration.

Responsibilities
- Render dataset overview (summary, column groups, basic checks)
- Collect per-analysis settings into an AnalysisConfig
- Drive a single analysis run (progress, timings, tables, figures, downloads)
- Keep business logic in core/; keep presentation in ui/components.py

This module does *not* hold model logic. It delegates to:
  - core.data_manager
  - core.report_orchestrator
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from . import components as C

# core modules
from ..core import data_manager
from ..core.report_orchestrator import AnalysisConfig, AnalysisResult, run_analysis
from ..core.topic_selection import METRIC_DIRECTIONS

_NONE = "(none)"


# ----------------------------
# Dataset page
# ----------------------------

def render_dataset_overview(df: Optional[pd.DataFrame]) -> Dict[str, Any]:
    """
    Render the dataset summary and validation findings.
    Returns the summary dict (empty when nothing is loaded).
    """
    if df is None or len(df) == 0:
        C.warning("No dataset loaded yet. Upload a file or pick a bundled dataset.")
        return {}

    findings = data_manager.validate_dataset(df)
    summary = data_manager.summarize_dataset(df)

    C.section("Dataset Overview", "Quick summary of the loaded table.")
    C.dataset_metrics_tiles(summary)

    if findings.get("errors"):
        C.error(" • ".join(findings["errors"]))
    if findings.get("warnings"):
        C.warning(" • ".join(findings["warnings"]))

    with st.expander("Preview", expanded=False):
        st.dataframe(df.head(50), use_container_width=True)
    if summary.get("missing_ratio"):
        with st.expander("Missing values", expanded=False):
            st.dataframe(pd.Series(summary["missing_ratio"], name="missing_ratio"))
    return summary


# ----------------------------
# Analysis pages
# ----------------------------

def render_variance_page(df: pd.DataFrame, base_cfg: AnalysisConfig) -> Optional[AnalysisResult]:
    C.section("Variance Filter", "Drop numeric columns whose variance does not exceed a threshold.")
    cols = st.columns(3)
    threshold = cols[0].number_input("Threshold", min_value=0.0, value=0.0, step=0.01, key="var_thr")
    scale = cols[1].selectbox("Scale before measuring", ["none", "minmax", "mean"], key="var_scale")
    target = cols[2].selectbox("Keep column (target)", [_NONE] + list(df.columns), key="var_target")

    cfg = replace(
        base_cfg,
        analysis="variance",
        variance_threshold=float(threshold),
        variance_scale=None if scale == "none" else scale,
        target=None if target == _NONE else target,
    )
    return _run_and_render(df, cfg, key="variance")


def render_aggregation_page(df: pd.DataFrame, base_cfg: AnalysisConfig) -> Optional[AnalysisResult]:
    C.section("Conditional Aggregation", "SUMIFS / COUNTIFS / AVERAGEIFS per group, with an optional row filter.")
    columns = list(df.columns)
    group_by = st.multiselect("Group by", columns, default=columns[:1], key="agg_by")
    numeric = df.select_dtypes(include="number").columns.tolist() or columns
    value = C.column_selector(numeric, "Value column", key="agg_value")
    funcs = st.multiselect("Functions", ["sum", "count", "mean", "min", "max", "median"],
                           default=["sum", "count", "mean"], key="agg_funcs")

    st.caption("Optional row filter using worksheet criteria, e.g. `>=10`, `<>closed`, `north*`.")
    fcols = st.columns(2)
    filter_col = fcols[0].selectbox("Filter column", [_NONE] + columns, key="agg_fcol")
    filter_crit = fcols[1].text_input("Criterion", value="", key="agg_fcrit")
    row_filter = {filter_col: filter_crit} if filter_col != _NONE and filter_crit else None

    if not group_by or value is None:
        C.info("Choose at least one group column and a value column.")
        return None

    cfg = replace(
        base_cfg,
        analysis="aggregation",
        group_by=tuple(group_by),
        value_column=value,
        agg_funcs=tuple(funcs or ["sum"]),
        row_filter=row_filter,
    )
    return _run_and_render(df, cfg, key="aggregation")


def render_topics_page(df: pd.DataFrame, base_cfg: AnalysisConfig) -> Optional[AnalysisResult]:
    C.section("Topic Count Selection", "Fit one LDA per topic count in parallel and rank by a divergence metric.")
    _, categorical, text = data_manager.infer_column_types(df)
    text_col = C.column_selector(text or categorical, "Text column", key="topic_text")
    counts = C.int_list_input("Topic counts", base_cfg.topic_counts, key="topic_counts")
    metric = st.selectbox("Ranking metric", list(METRIC_DIRECTIONS), key="topic_metric",
                          help="arun_2010 / cao_juan_2009 / perplexity: lower is better; deveaud_2014: higher is better")
    max_iter = st.slider("LDA iterations", 5, 100, base_cfg.lda_max_iter, key="topic_iter")

    if text_col is None or not counts:
        return None

    cfg = replace(
        base_cfg,
        analysis="topics",
        text_column=text_col,
        topic_counts=tuple(counts),
        topic_metric=metric,
        lda_max_iter=int(max_iter),
    )
    return _run_and_render(df, cfg, key="topics")


def render_classification_page(df: pd.DataFrame, base_cfg: AnalysisConfig) -> Optional[AnalysisResult]:
    C.section("Gradient Boosting Classifier", "Preprocessing pipeline + GradientBoostingClassifier, held-out evaluation.")
    target = C.column_selector(list(df.columns), "Target column", key="clf_target",
                               default="target" if "target" in df.columns else None)
    cols = st.columns(4)
    test_size = cols[0].slider("Test size", 0.1, 0.5, base_cfg.test_size, step=0.05, key="clf_test")
    cv_folds = cols[1].number_input("CV folds (0 = off)", min_value=0, max_value=10, value=0, key="clf_cv")
    n_estimators = cols[2].number_input("n_estimators", min_value=10, max_value=1000, value=100, step=10, key="clf_ne")
    learning_rate = cols[3].number_input("learning_rate", min_value=0.001, max_value=1.0, value=0.1, step=0.01,
                                         format="%.3f", key="clf_lr")

    tune = st.checkbox("Sweep max_depth with cross-validation", value=False, key="clf_tune")
    depths = C.int_list_input("max_depth values", (2, 3, 4), key="clf_depths") if tune else []
    save = st.checkbox("Save fitted model (joblib)", value=False, key="clf_save")

    if target is None:
        return None

    cfg = replace(
        base_cfg,
        analysis="classification",
        target=target,
        test_size=float(test_size),
        cv_folds=int(cv_folds),
        gb_params={"n_estimators": int(n_estimators), "learning_rate": float(learning_rate)},
        tune_param="max_depth" if depths else None,
        tune_values=tuple(depths),
        save_model=bool(save),
    )
    return _run_and_render(df, cfg, key="classification")


# ----------------------------
# Run + render
# ----------------------------

def _run_and_render(df: pd.DataFrame, cfg: AnalysisConfig, key: str) -> Optional[AnalysisResult]:
    if not C.run_button(f"Run {cfg.analysis} analysis", key=f"run_{key}"):
        return None

    result: Optional[AnalysisResult] = None
    with C.Progress(key=f"pg_{key}") as pg:
        try:
            pg.update(0.3, f"Running {cfg.analysis} analysis…")
            result = run_analysis(df, cfg)
            pg.update(1.0, "Done.")
        except Exception as e:
            C.error(f"Run failed: {e}")
            return None

    render_result(result, key=key)
    return result


def render_result(result: AnalysisResult, key: str = "result") -> None:
    if not result.ok:
        C.error("Analysis failed.")
        C.messages_expander("Errors", result.errors, expanded=True)
        C.messages_expander("Warnings", result.warnings, expanded=True)
        return

    C.success("Analysis complete.")
    C.summary_metrics(result.summary)
    C.messages_expander("Warnings", result.warnings)

    for name, table in result.tables.items():
        C.sub_section(name.replace("_", " ").title())
        st.dataframe(table, use_container_width=True)
        C.csv_download_button(table.reset_index() if table.index.name else table,
                              file_name=f"{result.analysis}_{name}.csv",
                              label=f"Download {name}.csv", key=f"dl_{key}_{name}")

    for name, path in result.figure_paths.items():
        st.image(path, caption=name.replace("_", " "))

    C.file_download_button(result.report_path, "Download PDF report", "application/pdf", key=f"pdf_{key}")
    C.file_download_button(result.model_path, "Download model", "application/octet-stream", key=f"model_{key}")
    C.file_download_button(result.logs_path, "Download run log", "application/json", key=f"log_{key}")
    C.timings_table(result.timings_sec)


def analysis_pages() -> List[str]:
    return ["Variance filter", "Aggregation", "Topic selection", "Classification"]
