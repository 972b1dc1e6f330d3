"""
core/feature_selection.py
-------------------------
Variance-threshold feature filtering for tabular frames.

Low-variance columns carry little information for most models. This module
scores every numeric column by its variance (optionally after rescaling so
columns on different units are comparable), drops the ones at or below a
threshold and hands back the frame with every row intact.

Non-numeric columns are never candidates; they pass through untouched.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.preprocessing import MinMaxScaler

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SCALE_OPTIONS = (None, "minmax", "mean")


class VarianceFilter:
    """
    Drop numeric columns whose variance does not exceed ``threshold``.

    Parameters
    ----------
    threshold : float
        Columns with variance <= threshold are dropped. At 0 a column is kept
        iff it has at least two distinct non-null values.
    scale : {None, "minmax", "mean"}
        Rescaling applied to a copy before the variance is measured.
        "minmax" maps each column onto [0, 1]; "mean" divides by the column mean.
    ddof : int
        Delta degrees of freedom for the variance (0 = population variance).
    exclude : iterable of str
        Columns that are never dropped (e.g. the target).
    """

    def __init__(
        self,
        threshold: float = 0.0,
        scale: Optional[str] = None,
        ddof: int = 0,
        exclude: Iterable[str] = (),
    ):
        if threshold < 0:
            raise ValueError("threshold must be non-negative.")
        if scale not in SCALE_OPTIONS:
            raise ValueError(f"scale must be one of {SCALE_OPTIONS}, got {scale!r}")
        self.threshold = float(threshold)
        self.scale = scale
        self.ddof = int(ddof)
        self.exclude = tuple(exclude)

        self.variances_: Optional[pd.Series] = None
        self.selected_features_: Optional[List[str]] = None
        self.dropped_features_: Optional[List[str]] = None
        self.passthrough_features_: Optional[List[str]] = None

    # ---- fit / transform ----

    def fit(self, df: pd.DataFrame) -> "VarianceFilter":
        if df is None or df.shape[0] == 0:
            raise ValueError("empty input: cannot compute variances on zero rows.")

        skip = set(self.exclude)
        numeric = [c for c in df.select_dtypes(include="number").columns
                   if c not in skip and not pd.api.types.is_bool_dtype(df[c])]
        passthrough = [c for c in df.columns if c not in numeric]

        logger.info(f"🔍 Scoring {len(numeric)} numeric columns (scale={self.scale}, ddof={self.ddof})")

        block = df[numeric].astype(float)
        scaled = self._rescale(block)
        variances = scaled.var(ddof=self.ddof, skipna=True)

        dropped: List[str] = []
        for col in numeric:
            v = variances.get(col, np.nan)
            if not self._keeps(block[col], v):
                dropped.append(col)

        self.variances_ = variances
        self.dropped_features_ = dropped
        self.selected_features_ = [c for c in numeric if c not in dropped]
        self.passthrough_features_ = passthrough

        logger.info(f"   ✅ Kept {len(self.selected_features_)} numeric columns")
        if dropped:
            logger.info(f"   🗑️ Dropped {len(dropped)}: {dropped[:10]}{'...' if len(dropped) > 10 else ''}")
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        if self.dropped_features_ is None:
            raise RuntimeError("VarianceFilter is not fitted; call fit() first.")
        drop = set(self.dropped_features_)
        keep = [c for c in df.columns if c not in drop]
        return df[keep].copy()

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        return self.fit(df).transform(df)

    # ---- reporting ----

    def variance_table(self) -> pd.DataFrame:
        """Variance per numeric column, highest first, with the keep decision."""
        if self.variances_ is None:
            raise RuntimeError("VarianceFilter is not fitted; call fit() first.")
        dropped = set(self.dropped_features_ or [])
        table = pd.DataFrame({
            "feature": list(self.variances_.index),
            "variance": self.variances_.to_numpy(dtype=float),
        })
        table["kept"] = ~table["feature"].isin(dropped)
        return table.sort_values("variance", ascending=False, na_position="last").reset_index(drop=True)

    # ---- helpers ----

    def _rescale(self, block: pd.DataFrame) -> pd.DataFrame:
        if block.shape[1] == 0 or self.scale is None:
            return block
        if self.scale == "minmax":
            scaler = MinMaxScaler()
            values = scaler.fit_transform(block.to_numpy())
            return pd.DataFrame(values, columns=block.columns, index=block.index)
        # "mean": coefficient-of-variation style scaling
        means = block.mean(skipna=True).replace(0.0, np.nan)
        return block / means

    def _keeps(self, raw: pd.Series, variance: float) -> bool:
        if pd.isna(variance):
            # all-NaN, too few observations for ddof, or zero mean under "mean" scaling
            return False
        if self.threshold == 0.0:
            return raw.dropna().nunique() > 1
        return float(variance) > self.threshold


def filter_low_variance(
    df: pd.DataFrame,
    threshold: float = 0.0,
    scale: Optional[str] = None,
    exclude: Iterable[str] = (),
    ddof: int = 0,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Functional wrapper around :class:`VarianceFilter`.

    Returns
    -------
    (filtered_df, variance_table)
    """
    vf = VarianceFilter(threshold=threshold, scale=scale, ddof=ddof, exclude=exclude)
    filtered = vf.fit_transform(df)
    return filtered, vf.variance_table()
