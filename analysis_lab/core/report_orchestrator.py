"""
Report Orchestrator
-------------------
Runs one analysis end to end on a loaded DataFrame.

Responsibilities
- Validate inputs for the chosen analysis
- Run it (variance filter, Excel-style aggregation, topic selection, or
  gradient-boosting classification)
- Render figures and an optional PDF summary
- Optionally persist the fitted classifier
- Return tables, paths, timings and lightweight run logs to the caller (UI / notebook)

Stages that produce the analysis itself are required; a failure there ends the
run with ``ok=False``. Figure and PDF failures are downgraded to warnings.
"""

from __future__ import annotations

import json
import logging
import os
import time
import traceback
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from . import aggregation
from . import classification
from . import data_manager
from . import feature_selection
from . import topic_selection
from .report_generator import ReportGenerator, ReportStyle

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ANALYSES = ("variance", "aggregation", "topics", "classification")


# ----------------------------
# Config & result structures
# ----------------------------

@dataclass
class AnalysisConfig:
    """User/system options that control a single analysis run."""
    analysis: str = "variance"             # 'variance' | 'aggregation' | 'topics' | 'classification'

    # columns
    target: Optional[str] = None           # label column (classification; excluded from variance filter)
    text_column: Optional[str] = None      # document column (topics)
    group_by: Tuple[str, ...] = ()         # key columns (aggregation)
    value_column: Optional[str] = None     # measure column (aggregation)
    row_filter: Dict[str, Any] = None      # {column: criterion} applied before the analysis

    # variance filter
    variance_threshold: float = 0.0
    variance_scale: Optional[str] = None   # None | 'minmax' | 'mean'

    # aggregation
    agg_funcs: Tuple[str, ...] = ("sum", "count", "mean")

    # topics
    topic_counts: Tuple[int, ...] = (2, 3, 4, 5, 6, 8, 10)
    topic_metric: str = "arun_2010"
    extra_topic_metrics: Tuple[str, ...] = ("cao_juan_2009", "deveaud_2014")
    max_features: int = 5000
    lda_max_iter: int = 20
    top_n_words: int = 10

    # classification
    test_size: float = 0.25
    cv_folds: int = 0
    gb_params: Dict[str, Any] = None       # forwarded to GradientBoostingClassifier
    tune_param: Optional[str] = None       # e.g. 'n_estimators'
    tune_values: Tuple[Any, ...] = ()

    # execution & output
    n_jobs: int = 1
    random_state: int = 0
    output_dir: str = "outputs/reports"
    generate_figures: bool = True
    generate_pdf: bool = False
    save_model: bool = False
    file_prefix: Optional[str] = None
    page_style: Dict[str, Any] = None      # optional overrides for ReportStyle

    def __post_init__(self):
        if self.analysis not in ANALYSES:
            raise ValueError(f"Unknown analysis '{self.analysis}'. Expected one of {ANALYSES}")
        self.group_by = tuple(self.group_by or ())
        self.agg_funcs = tuple(self.agg_funcs or ())
        self.topic_counts = tuple(int(k) for k in (self.topic_counts or ()))
        self.extra_topic_metrics = tuple(self.extra_topic_metrics or ())
        self.tune_values = tuple(self.tune_values or ())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")
        return cls(**data)

    @classmethod
    def from_json(cls, path: str) -> "AnalysisConfig":
        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))


@dataclass
class AnalysisResult:
    """Return to UI after a run."""
    ok: bool
    analysis: str
    summary: Dict[str, Any] = field(default_factory=dict)
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    figure_paths: Dict[str, str] = field(default_factory=dict)
    report_path: Optional[str] = None
    model_path: Optional[str] = None
    timings_sec: Dict[str, float] = field(default_factory=dict)
    warnings: Tuple[str, ...] = ()
    errors: Tuple[str, ...] = ()
    logs_path: Optional[str] = None


# ----------------------------
# Public API
# ----------------------------

def run_analysis(df: pd.DataFrame, cfg: AnalysisConfig) -> AnalysisResult:
    """
    Main entry point used by the Streamlit app and notebooks.

    Parameters
    ----------
    df : DataFrame
        The loaded dataset.
    cfg : AnalysisConfig
        Which analysis to run and its settings.

    Returns
    -------
    AnalysisResult
    """
    t0 = time.time()
    timings: Dict[str, float] = {}
    warnings: List[str] = []
    errors: List[str] = []

    def fail() -> AnalysisResult:
        return AnalysisResult(
            ok=False, analysis=cfg.analysis, timings_sec=timings,
            warnings=tuple(warnings), errors=tuple(errors))

    # 1) Validate + optional row filter
    try:
        t = time.time()
        data = df
        if cfg.row_filter:
            data = data_manager.filter_rows(data, cfg.row_filter)
        _ensure_required_columns(data, cfg)
        findings = data_manager.validate_dataset(
            data, target=cfg.target if cfg.analysis == "classification" else None)
        warnings.extend(findings["warnings"])
        fatal = [e for e in findings["errors"] if e.startswith("Target")]
        if fatal:
            raise ValueError("; ".join(fatal))
        warnings.extend(e for e in findings["errors"] if e not in fatal)
        timings["validate"] = time.time() - t
    except Exception as e:
        errors.append(f"Validation failed: {e}")
        return fail()

    # 2) Run the analysis
    try:
        t = time.time()
        runner = _RUNNERS[cfg.analysis]
        outcome = runner(data, cfg, warnings)
        timings["analysis"] = time.time() - t
    except Exception as e:
        tb = traceback.format_exc(limit=1)
        logger.error(f"❌ {cfg.analysis} analysis failed: {e}")
        errors.append(f"{cfg.analysis} analysis failed: {e} | {tb}")
        return fail()

    summary: Dict[str, Any] = outcome["summary"]
    tables: Dict[str, pd.DataFrame] = outcome["tables"]

    # 3) Figures
    figure_paths: Dict[str, str] = {}
    generator: Optional[ReportGenerator] = None
    if cfg.generate_figures or cfg.generate_pdf:
        try:
            t = time.time()
            style = ReportStyle(**(cfg.page_style or {}))
            generator = ReportGenerator(output_dir=cfg.output_dir, style=style)
            figure_paths = _render_figures(generator, cfg, outcome)
            timings["figures"] = time.time() - t
        except Exception as e:
            warnings.append(f"Figure rendering failed: {e}")

    # 4) PDF
    report_path = None
    if cfg.generate_pdf and generator is not None:
        try:
            t = time.time()
            report_path = generator.create_pdf_report(
                title=_TITLES[cfg.analysis],
                sections=_pdf_sections(summary, tables, figure_paths),
                file_prefix=cfg.file_prefix,
            )
            timings["generate_pdf"] = time.time() - t
        except Exception as e:
            warnings.append(f"PDF generation failed: {e}")

    # 5) Persist model
    model_path = None
    if cfg.save_model and outcome.get("model") is not None:
        try:
            t = time.time()
            prefix = cfg.file_prefix or cfg.analysis
            model_path = classification.save_model(
                outcome["model"],
                os.path.join(cfg.output_dir, "models", f"{prefix}_model.joblib"),
                metadata={"target": cfg.target, "metrics": summary.get("metrics", {})},
            )
            timings["save_model"] = time.time() - t
        except Exception as e:
            errors.append(f"Model save failed: {e}")
            return fail()

    # 6) Save a small run log
    logs_path = None
    try:
        t = time.time()
        logs_dir = os.path.join(cfg.output_dir, "logs")
        os.makedirs(logs_dir, exist_ok=True)
        stamp = time.strftime("%Y%m%d_%H%M%S")
        logs_path = os.path.join(logs_dir, f"{cfg.file_prefix or cfg.analysis}_{stamp}_run_log.json")
        with open(logs_path, "w") as f:
            json.dump({
                "analysis": cfg.analysis,
                "summary": summary,
                "figures": figure_paths,
                "report_path": report_path,
                "model_path": model_path,
                "timings_sec": timings,
                "warnings": warnings,
                "errors": errors,
                "config": asdict(cfg),
            }, f, indent=2, default=_json_default)
        timings["write_logs"] = time.time() - t
    except Exception as e:
        warnings.append(f"Could not save logs: {e}")
        logs_path = None

    timings["total"] = time.time() - t0

    return AnalysisResult(
        ok=True,
        analysis=cfg.analysis,
        summary=summary,
        tables=tables,
        figure_paths=figure_paths,
        report_path=report_path,
        model_path=model_path,
        timings_sec=timings,
        warnings=tuple(warnings),
        errors=tuple(errors),
        logs_path=logs_path,
    )


# ----------------------------
# Analysis runners
# ----------------------------

def _run_variance(df: pd.DataFrame, cfg: AnalysisConfig, warnings: List[str]) -> Dict[str, Any]:
    exclude = [cfg.target] if cfg.target else []
    vf = feature_selection.VarianceFilter(
        threshold=cfg.variance_threshold, scale=cfg.variance_scale, exclude=exclude)
    filtered = vf.fit_transform(df)
    table = vf.variance_table()
    if not vf.selected_features_:
        warnings.append("Every numeric feature was dropped by the variance filter.")
    return {
        "summary": {
            "n_rows": int(len(filtered)),
            "n_columns_in": int(df.shape[1]),
            "n_columns_out": int(filtered.shape[1]),
            "dropped": list(vf.dropped_features_),
            "threshold": cfg.variance_threshold,
            "scale": cfg.variance_scale,
        },
        "tables": {"variances": table, "filtered": filtered},
    }


def _run_aggregation(df: pd.DataFrame, cfg: AnalysisConfig, warnings: List[str]) -> Dict[str, Any]:
    grouped = aggregation.aggregate_by(df, list(cfg.group_by), cfg.value_column, cfg.agg_funcs)
    tables = {"grouped": grouped}
    if len(cfg.group_by) >= 2:
        tables["pivot"] = aggregation.pivot_table(
            df.assign(**{cfg.value_column: pd.to_numeric(df[cfg.value_column], errors="coerce")}),
            index=cfg.group_by[0], columns=cfg.group_by[1], values=cfg.value_column,
            aggfunc="sum", margins=True)
    total = aggregation.sumif(pd.to_numeric(df[cfg.value_column], errors="coerce"), "<>")
    return {
        "summary": {
            "n_groups": int(len(grouped)),
            "group_by": list(cfg.group_by),
            "value_column": cfg.value_column,
            "grand_total": total,
        },
        "tables": tables,
    }


def _run_topics(df: pd.DataFrame, cfg: AnalysisConfig, warnings: List[str]) -> Dict[str, Any]:
    dtm, vocab = topic_selection.vectorize_corpus(df[cfg.text_column], max_features=cfg.max_features)
    counts = [k for k in cfg.topic_counts if k <= dtm.shape[1]]
    if len(counts) < len(cfg.topic_counts):
        warnings.append(f"Topic counts above the vocabulary size ({dtm.shape[1]}) were skipped.")
    sel = topic_selection.select_topic_count(
        dtm, counts,
        metric=cfg.topic_metric,
        extra_metrics=cfg.extra_topic_metrics,
        n_jobs=cfg.n_jobs,
        random_state=cfg.random_state,
        max_iter=cfg.lda_max_iter,
    )
    words = topic_selection.top_words(sel.best_model, vocab, n=cfg.top_n_words)
    for r in sel.report.failures:
        warnings.append(f"k={r.value} failed: {r.error}")
    return {
        "summary": {
            "n_documents": int(dtm.shape[0]),
            "vocabulary_size": int(dtm.shape[1]),
            "metric": sel.metric,
            "best_k": sel.best_k,
        },
        "tables": {"ranking": sel.ranking, "top_words": words},
        "sweep": {"value_col": "n_topics",
                  "metrics": [sel.metric] + [m for m in cfg.extra_topic_metrics if m != sel.metric],
                  "best": sel.best_k},
    }


def _run_classification(df: pd.DataFrame, cfg: AnalysisConfig, warnings: List[str]) -> Dict[str, Any]:
    gb_params = dict(cfg.gb_params or {})
    res = classification.train_classifier(
        df, cfg.target,
        test_size=cfg.test_size,
        random_state=cfg.random_state,
        cv_folds=cfg.cv_folds,
        **gb_params,
    )
    warnings.extend(res.warnings)
    tables: Dict[str, pd.DataFrame] = {
        "metrics": pd.DataFrame([res.metrics]),
        "confusion": res.confusion,
        "report": pd.DataFrame(res.report).T.reset_index().rename(columns={"index": "label"}),
        "importances": res.feature_importances.rename_axis("feature").reset_index(),
    }
    out: Dict[str, Any] = {
        "summary": {
            "target": cfg.target,
            "class_names": res.class_names,
            "n_train": res.n_train,
            "n_test": res.n_test,
            "metrics": res.metrics,
        },
        "tables": tables,
        "model": res.pipeline,
        "confusion": res.confusion,
        "importances": res.feature_importances,
    }

    if cfg.tune_param and cfg.tune_values:
        report = classification.tune_hyperparameter(
            df, cfg.target, cfg.tune_param, cfg.tune_values,
            cv_folds=max(cfg.cv_folds, 3), n_jobs=cfg.n_jobs,
            random_state=cfg.random_state, **gb_params,
        )
        tables["tuning"] = report.to_frame(value_name=cfg.tune_param)
        out["summary"]["best_" + cfg.tune_param] = report.best.value
        out["sweep"] = {"value_col": cfg.tune_param, "metrics": ["cv_accuracy_mean"],
                        "best": report.best.value}
    return out


_RUNNERS = {
    "variance": _run_variance,
    "aggregation": _run_aggregation,
    "topics": _run_topics,
    "classification": _run_classification,
}

_TITLES = {
    "variance": "Variance-based Feature Filtering",
    "aggregation": "Conditional Aggregation Summary",
    "topics": "Topic Count Selection",
    "classification": "Gradient Boosting Classification",
}


# ----------------------------
# Helpers
# ----------------------------

def _ensure_required_columns(df: pd.DataFrame, cfg: AnalysisConfig) -> None:
    """
    Minimal guards so each analysis has the columns it needs.
    """
    if df is None or df.shape[0] == 0:
        raise ValueError("empty input: no rows to analyze.")

    required: List[str] = []
    if cfg.analysis == "classification":
        if not cfg.target:
            raise ValueError("Classification needs a target column.")
        required.append(cfg.target)
    elif cfg.analysis == "topics":
        if not cfg.text_column:
            raise ValueError("Topic selection needs a text column.")
        required.append(cfg.text_column)
    elif cfg.analysis == "aggregation":
        if not cfg.group_by or not cfg.value_column:
            raise ValueError("Aggregation needs group_by columns and a value column.")
        required.extend(list(cfg.group_by) + [cfg.value_column])

    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def _render_figures(gen: ReportGenerator, cfg: AnalysisConfig, outcome: Dict[str, Any]) -> Dict[str, str]:
    prefix = cfg.file_prefix or cfg.analysis
    paths: Dict[str, str] = {}
    tables = outcome["tables"]

    if cfg.analysis == "variance":
        paths["variances"] = gen.plot_variances(
            tables["variances"], cfg.variance_threshold, name=f"{prefix}_variances")

    sweep = outcome.get("sweep")
    if sweep:
        frame = tables.get("ranking") if cfg.analysis == "topics" else tables.get("tuning")
        paths["sweep"] = gen.plot_sweep(frame, sweep["value_col"], sweep["metrics"],
                                        best_value=sweep["best"], name=f"{prefix}_sweep")

    if cfg.analysis == "classification":
        paths["confusion"] = gen.plot_confusion_matrix(outcome["confusion"], name=f"{prefix}_confusion")
        paths["importances"] = gen.plot_feature_importance(
            outcome["importances"], name=f"{prefix}_importances")
    return paths


def _pdf_sections(summary: Dict[str, Any], tables: Dict[str, pd.DataFrame],
                  figure_paths: Dict[str, str]) -> List[Dict[str, Any]]:
    flat = {k: v for k, v in summary.items() if not isinstance(v, (dict, list))}
    sections: List[Dict[str, Any]] = [{
        "heading": "Summary",
        "table": pd.DataFrame({"item": list(flat.keys()), "value": [str(v) for v in flat.values()]}),
    }]
    for name, table in tables.items():
        if name == "filtered":
            continue
        sections.append({"heading": name.replace("_", " ").title(), "table": table})
    if figure_paths:
        sections.append({"heading": "Figures", "figures": list(figure_paths.values())})
    return sections


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating,)):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    return str(obj)
