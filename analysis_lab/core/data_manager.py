"""
core/data_manager.py
--------------------
Data access utilities for the analysis notebooks and the Streamlit app.

Responsibilities
- Load a CSV/TSV or Excel workbook (from disk or uploaded file-like object)
- Load one of scikit-learn's bundled toy datasets as a DataFrame
- Validate basic integrity (numeric columns, missingness, target balance)
- Split columns into numeric / categorical / free-text groups
- Filter rows by scalar, membership, callable or Excel-style criteria
- Summarize the dataset for UI display

This module is intentionally "pure data IO" and contains **no model logic**.
"""

from __future__ import annotations

import csv
import io
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from . import aggregation

logger = logging.getLogger(__name__)

Source = Union[str, Path, bytes, bytearray, io.BytesIO]

_EXCEL_EXTENSIONS = (".xlsx", ".xlsm", ".xls")
# fixed separators by extension; anything else is sniffed
_EXTENSION_SEPARATORS = {".csv": ",", ".tsv": "\t"}
_SNIFF_DELIMITERS = ",;\t|"
_SNIFF_BYTES = 64 * 1024
# zip container (xlsx) and OLE2 compound file (xls)
_EXCEL_MAGIC = (b"PK\x03\x04", b"\xd0\xcf\x11\xe0")

_BUILTIN_DATASETS = ("iris", "wine", "breast_cancer", "diabetes")


# ----------------------------
# Public API
# ----------------------------

def load_table(
    src: Source,
    sheet_name: Union[int, str] = 0,
    encoding: str = "utf-8",
    low_memory: bool = False,
) -> pd.DataFrame:
    """
    Load a table from a path or an uploaded file buffer.

    Parameters
    ----------
    src : path (str or Path), raw bytes, or BytesIO
    sheet_name : worksheet to read when the source is an Excel workbook
    encoding : text encoding for delimited files
    low_memory : forward to pandas.read_csv

    Returns
    -------
    DataFrame

    Raises
    ------
    FileNotFoundError
        If a path is given and does not exist.
    TypeError
        If ``src`` is not a path, bytes or BytesIO.
    ValueError
        If the parsed table has no rows or no columns.
    """
    if isinstance(src, (bytes, bytearray)):
        buf = io.BytesIO(bytes(src))
        df = _read_buffer(buf, sheet_name, encoding, low_memory)
    elif isinstance(src, io.BytesIO):
        src.seek(0)
        df = _read_buffer(src, sheet_name, encoding, low_memory)
    elif isinstance(src, (str, Path)):
        path = Path(src)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        df = _read_path(path, sheet_name, encoding, low_memory)
    else:
        raise TypeError(
            "Unsupported type for src; expected path, bytes, or BytesIO.")

    if df.shape[0] == 0 or df.shape[1] == 0:
        raise ValueError(f"empty input: parsed table has shape {df.shape}")

    logger.info(f"📥 Loaded table with {df.shape[0]} rows x {df.shape[1]} columns")
    return df


def load_csv(
    src: Source,
    encoding: str = "utf-8",
    low_memory: bool = False,
) -> pd.DataFrame:
    """Load delimited text only; Excel sources are rejected."""
    if isinstance(src, (str, Path)) and Path(src).suffix.lower() in _EXCEL_EXTENSIONS:
        raise ValueError(f"load_csv does not read Excel files: {src}")
    if isinstance(src, (bytes, bytearray, io.BytesIO)) and _looks_like_excel(src):
        raise ValueError("load_csv does not read Excel files.")
    return load_table(src, encoding=encoding, low_memory=low_memory)


def load_builtin_dataset(name: str) -> pd.DataFrame:
    """
    Return one of scikit-learn's bundled datasets with a ``target`` column.

    Classification datasets get string class labels so they can be fed
    straight into the classification pipeline.
    """
    from sklearn import datasets

    key = name.strip().lower()
    loaders = {
        "iris": datasets.load_iris,
        "wine": datasets.load_wine,
        "breast_cancer": datasets.load_breast_cancer,
        "diabetes": datasets.load_diabetes,
    }
    if key not in loaders:
        raise ValueError(
            f"Unknown dataset '{name}'. Expected one of: {', '.join(_BUILTIN_DATASETS)}")

    bunch = loaders[key](as_frame=True)
    df = bunch.frame.copy()
    target_names = getattr(bunch, "target_names", None)
    if target_names is not None and key != "diabetes":
        names = [str(n) for n in target_names]
        df["target"] = df["target"].map(lambda i: names[int(i)])
    return df


def validate_dataset(df: pd.DataFrame, target: Optional[str] = None) -> Dict[str, Any]:
    """
    Basic structural checks; returns a dictionary of findings instead of raising,
    so the Streamlit UI can present warnings cleanly.
    """
    findings: Dict[str, Any] = {"ok": True, "warnings": [], "errors": []}

    if df is None or df.shape[0] == 0:
        findings["errors"].append("Dataset is empty.")
        findings["ok"] = False
        return findings

    n_numeric = df.select_dtypes(include="number").shape[1]
    if n_numeric == 0:
        findings["errors"].append("No numeric feature columns detected.")

    # NaN ratio (not an error, but useful)
    nan_ratio = float(df.isna().mean().mean())
    if nan_ratio > 0.25:
        findings["warnings"].append(
            f"High overall missingness (~{nan_ratio:.0%}). Consider dropping or imputing rows.")

    if target is not None:
        if target not in df.columns:
            findings["errors"].append(f"Target column '{target}' not found.")
        else:
            counts = df[target].value_counts(dropna=True)
            if len(counts) < 2:
                findings["errors"].append(
                    f"Target column '{target}' has fewer than two classes.")
            elif counts.min() < 2:
                rare = counts[counts < 2].index.astype(str).tolist()
                findings["warnings"].append(
                    f"Classes with a single row cannot be stratified: {rare}")

    findings["ok"] = len(findings["errors"]) == 0
    return findings


def summarize_dataset(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Lightweight summary object for UI.
    """
    numeric, categorical, text = infer_column_types(df)
    missing = df.isna().mean()
    return {
        "n_rows": int(df.shape[0]),
        "n_cols": int(df.shape[1]),
        "columns": list(df.columns),
        "dtypes": {str(k): int(v) for k, v in df.dtypes.astype(str).value_counts().items()},
        "missing_ratio": {c: float(v) for c, v in missing.items() if v > 0},
        "numeric_cols": numeric,
        "categorical_cols": categorical,
        "text_cols": text,
    }


def infer_column_types(
    df: pd.DataFrame,
    exclude: Iterable[str] = (),
    text_min_tokens: float = 5.0,
) -> Tuple[List[str], List[str], List[str]]:
    """
    Split columns into numeric, categorical and free-text groups.

    An object column counts as text when its non-null values average at least
    ``text_min_tokens`` whitespace-separated tokens.
    """
    skip = set(exclude)
    numeric: List[str] = []
    categorical: List[str] = []
    text: List[str] = []

    for col in df.columns:
        if col in skip:
            continue
        s = df[col]
        if pd.api.types.is_bool_dtype(s):
            categorical.append(col)
        elif pd.api.types.is_numeric_dtype(s):
            numeric.append(col)
        else:
            values = s.dropna().astype(str)
            if not values.empty and values.str.split().str.len().mean() >= text_min_tokens:
                text.append(col)
            else:
                categorical.append(col)

    return numeric, categorical, text


def filter_rows(df: pd.DataFrame, conditions: Mapping[str, Any]) -> pd.DataFrame:
    """
    Keep rows matching every condition (AND-combined).

    Each condition value may be:
      - a callable taking the column Series and returning a boolean mask
      - a list / tuple / set (membership)
      - an Excel-style criterion string such as ">=10", "<>done" or "a*"
      - any other scalar (equality)
    """
    mask = pd.Series(True, index=df.index)
    for col, criterion in conditions.items():
        if col not in df.columns:
            raise KeyError(f"Column '{col}' not found.")
        s = df[col]
        if callable(criterion):
            m = pd.Series(np.asarray(criterion(s), dtype=bool), index=df.index)
        elif isinstance(criterion, (list, tuple, set, frozenset)):
            m = s.isin(list(criterion))
        elif isinstance(criterion, str):
            m = aggregation.parse_criterion(criterion)(s)
        else:
            m = s == criterion
        mask &= m.fillna(False).astype(bool)

    out = df.loc[mask].copy()
    logger.info(f"🔎 Row filter kept {len(out)}/{len(df)} rows")
    return out


def select_columns(
    df: pd.DataFrame,
    include: Optional[Sequence[str]] = None,
    exclude: Optional[Sequence[str]] = None,
    dtype: Optional[str] = None,
) -> pd.DataFrame:
    """Return a column subset by name and/or dtype kind ('number', 'object', ...)."""
    cols = list(df.columns)
    if include is not None:
        missing = [c for c in include if c not in df.columns]
        if missing:
            raise KeyError(f"Columns not found: {missing}")
        cols = [c for c in include]
    if dtype is not None:
        typed = set(df.select_dtypes(include=dtype).columns)
        cols = [c for c in cols if c in typed]
    if exclude:
        drop = set(exclude)
        cols = [c for c in cols if c not in drop]
    return df[cols].copy()


def drop_missing(
    df: pd.DataFrame,
    how: str = "any",
    subset: Optional[Sequence[str]] = None,
    thresh_ratio: Optional[float] = None,
) -> pd.DataFrame:
    """
    Drop rows with missing values.

    With ``thresh_ratio`` set, a row is kept when at least that fraction of the
    considered columns is non-null; ``how`` is ignored in that case.
    """
    cols = list(subset) if subset is not None else list(df.columns)
    if thresh_ratio is not None:
        if not 0.0 <= thresh_ratio <= 1.0:
            raise ValueError("thresh_ratio must be within [0, 1].")
        needed = int(np.ceil(thresh_ratio * len(cols)))
        return df.dropna(subset=cols, thresh=needed).copy()
    return df.dropna(how=how, subset=cols).copy()


# ----------------------------
# Helpers
# ----------------------------

def _read_path(path: Path, sheet_name, encoding: str, low_memory: bool) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix in _EXCEL_EXTENSIONS:
        return pd.read_excel(path, sheet_name=sheet_name)
    if os.path.getsize(path) == 0:
        raise ValueError(f"empty input: {path} has no content")
    sep = _EXTENSION_SEPARATORS.get(suffix)
    if sep is None:
        with open(path, "rb") as f:
            sep = _sniff_delimiter(f.read(_SNIFF_BYTES), encoding)
    return pd.read_csv(path, sep=sep, encoding=encoding, low_memory=low_memory)


def _read_buffer(buf: io.BytesIO, sheet_name, encoding: str, low_memory: bool) -> pd.DataFrame:
    if buf.getbuffer().nbytes == 0:
        raise ValueError("empty input: buffer has no content")
    if _looks_like_excel(buf):
        return pd.read_excel(buf, sheet_name=sheet_name)
    sep = _sniff_delimiter(buf.getvalue()[:_SNIFF_BYTES], encoding)
    buf.seek(0)
    return pd.read_csv(buf, sep=sep, encoding=encoding, low_memory=low_memory)


def _looks_like_excel(src: Union[bytes, bytearray, io.BytesIO]) -> bool:
    head = bytes(src[:4]) if isinstance(src, (bytes, bytearray)) else src.getvalue()[:4]
    return any(head.startswith(m) for m in _EXCEL_MAGIC)


def _sniff_delimiter(head: bytes, encoding: str) -> str:
    """
    Guess the separator from the first lines, restricted to , ; tab and |.
    Single-column or ambiguous samples fall back to a comma.
    """
    sample = head.decode(encoding, errors="replace")
    # drop a trailing partial line
    if len(head) >= _SNIFF_BYTES and "\n" in sample:
        sample = sample[:sample.rfind("\n")]
    try:
        return csv.Sniffer().sniff(sample, delimiters=_SNIFF_DELIMITERS).delimiter
    except csv.Error:
        return ","
