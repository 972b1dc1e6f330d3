"""
core/classification.py
----------------------
Gradient-boosting classification pipeline for tabular frames.

Responsibilities
- Build a preprocessing + GradientBoostingClassifier sklearn Pipeline
- Train/test split (stratified when possible), fit, and evaluate
- Predict labels and class probabilities for new rows
- Sweep one hyperparameter with cross-validation through core.parameter_sweep
- Save / load fitted pipelines with joblib, with metadata alongside

Design notes
- Numeric columns: median imputation + standard scaling.
- Categorical columns (booleans included): cast to object, most-frequent imputation
  + one-hot (unknown levels ignored).
- Free-text columns are not featurized here; they are skipped with a warning.
- For probabilities:
  * If the model exposes predict_proba, we use it.
  * Else we fall back to one-hot of predicted labels (last resort).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from importlib.metadata import version as _pkg_version
from typing import Any, Dict, List, Optional, Sequence, Tuple

import joblib
import numpy as np
import pandas as pd
from sklearn.base import clone
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import GradientBoostingClassifier
from sklearn.impute import SimpleImputer
from sklearn.metrics import (
    accuracy_score,
    balanced_accuracy_score,
    classification_report,
    confusion_matrix,
    f1_score,
    roc_auc_score,
)
from sklearn.model_selection import KFold, StratifiedKFold, cross_val_score, train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import FunctionTransformer, OneHotEncoder, StandardScaler

from . import data_manager
from .parameter_sweep import SweepReport, run_sweep

logger = logging.getLogger(__name__)

MIN_TRAIN_ROWS = 4


@dataclass
class ClassificationResult:
    """Everything a notebook cell or report page needs after training."""
    pipeline: Pipeline
    target: str
    class_names: List[str]
    feature_columns: List[str]
    n_train: int
    n_test: int
    metrics: Dict[str, float]
    confusion: pd.DataFrame
    report: Dict[str, Any]
    feature_importances: pd.Series
    cv_scores: Optional[np.ndarray] = None
    warnings: List[str] = field(default_factory=list)


# ----------------------------
# Public API
# ----------------------------

def build_pipeline(
    numeric_cols: Sequence[str],
    categorical_cols: Sequence[str],
    random_state: Optional[int] = 0,
    **gb_params: Any,
) -> Pipeline:
    transformers: List[Tuple[str, Any, List[str]]] = []

    if numeric_cols:
        transformers.append((
            "num",
            Pipeline(steps=[
                ("imputer", SimpleImputer(strategy="median")),
                ("scaler", StandardScaler()),
            ]),
            list(numeric_cols),
        ))

    if categorical_cols:
        transformers.append((
            "cat",
            Pipeline(steps=[
                # SimpleImputer rejects bool dtype
                ("to_object", FunctionTransformer(_as_object, feature_names_out="one-to-one")),
                ("imputer", SimpleImputer(strategy="most_frequent")),
                ("onehot", OneHotEncoder(handle_unknown="ignore")),
            ]),
            list(categorical_cols),
        ))

    if not transformers:
        raise ValueError("No usable feature columns for the classifier.")

    preprocessor = ColumnTransformer(transformers=transformers, remainder="drop")
    model = GradientBoostingClassifier(random_state=random_state, **gb_params)
    return Pipeline(steps=[("prep", preprocessor), ("model", model)])


def train_classifier(
    df: pd.DataFrame,
    target: str,
    test_size: float = 0.25,
    random_state: int = 0,
    cv_folds: int = 0,
    feature_cols: Optional[Sequence[str]] = None,
    **gb_params: Any,
) -> ClassificationResult:
    """
    Fit the gradient-boosting pipeline on a train split and evaluate on the rest.

    Parameters
    ----------
    df : DataFrame with feature columns and the ``target`` column
    target : name of the label column; rows with a missing label are dropped
    test_size : fraction of rows held out for evaluation
    random_state : seed for the split and the model
    cv_folds : when >= 2, also report cross-validated accuracy on all rows
    feature_cols : restrict features to these columns (default: all but target)
    gb_params : forwarded to GradientBoostingClassifier

    Returns
    -------
    ClassificationResult
    """
    X, y, numeric, categorical, warnings = _prepare_xy(df, target, feature_cols)

    counts = y.value_counts()
    stratify = y if counts.min() >= 2 else None
    if stratify is None:
        warnings.append("Some classes have a single row; split is not stratified.")

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=test_size, random_state=random_state, stratify=stratify)
    logger.info(f"✂️ Split: {len(X_train)} train / {len(X_test)} test rows")

    pipe = build_pipeline(numeric, categorical, random_state=random_state, **gb_params)
    pipe.fit(X_train, y_train)
    logger.info("✅ Gradient boosting pipeline fitted")

    classes = list(pipe.classes_)
    y_pred, probas = predict(pipe, X_test)

    metrics: Dict[str, float] = {
        "accuracy": float(accuracy_score(y_test, y_pred)),
        "balanced_accuracy": float(balanced_accuracy_score(y_test, y_pred)),
        "f1_macro": float(f1_score(y_test, y_pred, average="macro", zero_division=0)),
    }
    metrics["roc_auc"] = _roc_auc(y_test, probas, classes, warnings)

    cm = confusion_matrix(y_test, y_pred, labels=classes)
    confusion = pd.DataFrame(cm, index=[str(c) for c in classes], columns=[str(c) for c in classes])
    confusion.index.name = "actual"
    confusion.columns.name = "predicted"

    report = classification_report(y_test, y_pred, labels=classes, output_dict=True, zero_division=0)

    cv_scores = None
    if cv_folds and cv_folds >= 2:
        cv_scores = _cross_validate(pipe, X, y, cv_folds, random_state)
        metrics["cv_accuracy_mean"] = float(np.mean(cv_scores))
        metrics["cv_accuracy_std"] = float(np.std(cv_scores))

    for w in warnings:
        logger.warning(f"⚠️ {w}")

    return ClassificationResult(
        pipeline=pipe,
        target=target,
        class_names=[str(c) for c in classes],
        feature_columns=list(X.columns),
        n_train=int(len(X_train)),
        n_test=int(len(X_test)),
        metrics=metrics,
        confusion=confusion,
        report=report,
        feature_importances=feature_importances(pipe),
        cv_scores=cv_scores,
        warnings=warnings,
    )


def predict(pipeline: Pipeline, df: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
    """
    Predict labels and an (n_rows, n_classes) probability matrix.
    """
    expected = list(getattr(pipeline, "feature_names_in_", []))
    if expected:
        missing = [c for c in expected if c not in df.columns]
        if missing:
            raise KeyError(f"Columns required by the model are missing: {missing}")
        df = df[expected]

    preds = np.asarray(pipeline.predict(df))
    classes = list(pipeline.classes_)

    if hasattr(pipeline, "predict_proba"):
        probas = np.asarray(pipeline.predict_proba(df), dtype=float)
    else:
        logger.warning("Model doesn't have predict_proba, using one-hot fallback")
        index = {c: i for i, c in enumerate(classes)}
        probas = np.zeros((len(preds), len(classes)))
        for i, p in enumerate(preds):
            probas[i, index[p]] = 1.0
    return preds, probas


def feature_importances(pipeline: Pipeline) -> pd.Series:
    """Impurity importances keyed by transformed feature name, highest first."""
    model = pipeline.named_steps["model"]
    prep = pipeline.named_steps["prep"]
    try:
        names = list(prep.get_feature_names_out())
    except (AttributeError, ValueError):
        names = [f"f{i}" for i in range(len(model.feature_importances_))]
    return pd.Series(model.feature_importances_, index=names, name="importance").sort_values(ascending=False)


def tune_hyperparameter(
    df: pd.DataFrame,
    target: str,
    param: str,
    values: Sequence[Any],
    cv_folds: int = 3,
    n_jobs: int = 1,
    random_state: int = 0,
    feature_cols: Optional[Sequence[str]] = None,
    **gb_params: Any,
) -> SweepReport:
    """
    Cross-validated accuracy for each value of one GradientBoostingClassifier parameter.
    """
    valid = GradientBoostingClassifier().get_params()
    if param not in valid:
        raise ValueError(f"Unknown GradientBoostingClassifier parameter '{param}'.")
    if cv_folds < 2:
        raise ValueError("cv_folds must be >= 2 for tuning.")

    X, y, numeric, categorical, _ = _prepare_xy(df, target, feature_cols)
    fitter = _CvFitter(X, y, numeric, categorical, param, cv_folds, random_state, gb_params)
    return run_sweep(
        fitter,
        values,
        _cv_summary,
        n_jobs=n_jobs,
        higher_is_better=True,
        rank_by="cv_accuracy_mean",
    )


def save_model(pipeline: Pipeline, path: str, metadata: Optional[Dict[str, Any]] = None) -> str:
    """Dump the pipeline with metadata (classes, features, library versions) via joblib."""
    meta = dict(metadata or {})
    meta.setdefault("class_names", [str(c) for c in getattr(pipeline, "classes_", [])])
    meta.setdefault("feature_columns", list(getattr(pipeline, "feature_names_in_", [])))
    meta["versions"] = {pkg: _safe_version(pkg) for pkg in ("scikit-learn", "pandas", "numpy")}

    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    joblib.dump({"pipeline": pipeline, "metadata": meta}, path)
    logger.info(f"💾 Saved model to {path}")
    return path


def load_model(path: str) -> Tuple[Pipeline, Dict[str, Any]]:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Model file not found: {path}")
    payload = joblib.load(path)
    if not isinstance(payload, dict) or "pipeline" not in payload:
        raise ValueError(f"Not a saved analysis_lab model: {path}")
    return payload["pipeline"], payload.get("metadata", {})


# ----------------------------
# Helpers
# ----------------------------

class _CvFitter:
    """Picklable fit function: cross-validates one parameter value."""

    def __init__(self, X, y, numeric, categorical, param, cv_folds, random_state, gb_params):
        self.X = X
        self.y = y
        self.numeric = numeric
        self.categorical = categorical
        self.param = param
        self.cv_folds = cv_folds
        self.random_state = random_state
        self.gb_params = dict(gb_params)

    def __call__(self, value: Any) -> np.ndarray:
        params = dict(self.gb_params)
        params[self.param] = value
        seed = params.pop("random_state", self.random_state)
        pipe = build_pipeline(self.numeric, self.categorical,
                              random_state=seed, **params)
        return _cross_validate(pipe, self.X, self.y, self.cv_folds, self.random_state)


def _as_object(X):
    return X.astype(object)


def _cv_summary(scores: np.ndarray) -> Dict[str, float]:
    return {"cv_accuracy_mean": float(np.mean(scores)), "cv_accuracy_std": float(np.std(scores))}


def _prepare_xy(
    df: pd.DataFrame,
    target: str,
    feature_cols: Optional[Sequence[str]],
) -> Tuple[pd.DataFrame, pd.Series, List[str], List[str], List[str]]:
    if target not in df.columns:
        raise KeyError(f"Target column '{target}' not found.")

    warnings: List[str] = []
    data = df.dropna(subset=[target])
    dropped = len(df) - len(data)
    if dropped:
        warnings.append(f"Dropped {dropped} rows with a missing target.")

    if len(data) < MIN_TRAIN_ROWS:
        raise ValueError(f"Too few rows to train ({len(data)}); need at least {MIN_TRAIN_ROWS}.")

    y = data[target]
    if y.nunique() < 2:
        raise ValueError(f"Target column '{target}' has a single class.")

    source = data if feature_cols is None else data[list(feature_cols)]
    numeric, categorical, text = data_manager.infer_column_types(source, exclude=[target])
    if text:
        warnings.append(f"Skipping free-text columns: {text}")
    if not numeric and not categorical:
        raise ValueError("No usable feature columns for the classifier.")

    X = data[numeric + categorical]
    return X, y, numeric, categorical, warnings


def _cross_validate(pipe: Pipeline, X: pd.DataFrame, y: pd.Series, cv_folds: int, random_state: int) -> np.ndarray:
    if y.value_counts().min() >= cv_folds:
        cv = StratifiedKFold(n_splits=cv_folds, shuffle=True, random_state=random_state)
    else:
        cv = KFold(n_splits=cv_folds, shuffle=True, random_state=random_state)
    return cross_val_score(clone(pipe), X, y, cv=cv, scoring="accuracy", n_jobs=1)


def _roc_auc(y_true: pd.Series, probas: np.ndarray, classes: List[Any], warnings: List[str]) -> float:
    try:
        if len(classes) == 2:
            return float(roc_auc_score((np.asarray(y_true) == classes[1]).astype(int), probas[:, 1]))
        return float(roc_auc_score(y_true, probas, multi_class="ovr", labels=classes))
    except ValueError as e:
        warnings.append(f"ROC AUC unavailable: {e}")
        return float("nan")


def _safe_version(pkg: str) -> str:
    try:
        return _pkg_version(pkg)
    except Exception:
        return "unknown"
