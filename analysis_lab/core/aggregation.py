"""
core/aggregation.py
-------------------
Excel-style conditional aggregation on pandas data.

Responsibilities
- Parse Excel criteria ("<>done", ">=10", "a*", "~*", "") into Series predicates
- COUNTIF / COUNTIFS / SUMIF / SUMIFS / AVERAGEIF / AVERAGEIFS / MAXIFS / MINIFS
- Grouped and pivot summaries, i.e. the SUMIFS table for every group key

Criteria follow the worksheet rules: an operator prefix (=, <>, <, <=, >, >=),
numeric operands compare against numeric-looking cells, text operands compare
case-insensitively with * and ? wildcards (escaped by ~), "" matches blanks
and "<>" matches anything non-blank.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

Predicate = Callable[[pd.Series], pd.Series]
RangeLike = Union[pd.Series, Sequence[Any], np.ndarray]

# longest operators first so "<=" is not read as "<"
_OPERATORS = ("<=", ">=", "<>", "<", ">", "=")


# ----------------------------
# Criteria
# ----------------------------

def parse_criterion(criterion: Any) -> Predicate:
    """
    Turn an Excel criterion into a function mapping a Series to a boolean mask.
    """
    if isinstance(criterion, (bool, np.bool_)):
        target = bool(criterion)
        return lambda s: s.map(lambda v: isinstance(v, (bool, np.bool_)) and bool(v) == target).astype(bool)

    if isinstance(criterion, (int, float, np.integer, np.floating)):
        number = float(criterion)
        return lambda s: _numeric_compare(s, "=", number)

    if criterion is None:
        return _blank_mask

    if not isinstance(criterion, str):
        raise TypeError(f"Unsupported criterion type: {type(criterion).__name__}")

    op, operand = _split_operator(criterion)

    if operand == "":
        if op in ("", "="):
            return _blank_mask
        if op == "<>":
            return lambda s: ~_blank_mask(s)
        return lambda s: pd.Series(False, index=s.index)

    number = _to_number(operand)
    if number is not None:
        return lambda s: _numeric_compare(s, op or "=", number)

    if operand.upper() in ("TRUE", "FALSE") and op in ("", "=", "<>"):
        target = operand.upper() == "TRUE"
        base = parse_criterion(target)
        return base if op != "<>" else (lambda s: ~base(s))

    return lambda s: _text_compare(s, op or "=", operand)


# ----------------------------
# Worksheet functions
# ----------------------------

def countif(range_: RangeLike, criterion: Any) -> int:
    s = _as_series(range_)
    return int(parse_criterion(criterion)(s).sum())


def countifs(*args: Any) -> int:
    """COUNTIFS(range1, crit1, [range2, crit2], ...)"""
    mask = _combined_mask(args, expected_len=None)
    return int(mask.sum())


def sumif(range_: RangeLike, criterion: Any, sum_range: Optional[RangeLike] = None) -> float:
    s = _as_series(range_)
    target = _as_series(sum_range) if sum_range is not None else s
    _check_lengths([s, target])
    mask = parse_criterion(criterion)(s)
    return float(_numeric_cells(target)[mask.to_numpy()].sum())


def sumifs(sum_range: RangeLike, *args: Any) -> float:
    """SUMIFS(sum_range, range1, crit1, [range2, crit2], ...)"""
    target = _as_series(sum_range)
    mask = _combined_mask(args, expected_len=len(target))
    return float(_numeric_cells(target)[mask.to_numpy()].sum())


def averageif(range_: RangeLike, criterion: Any, average_range: Optional[RangeLike] = None) -> float:
    s = _as_series(range_)
    target = _as_series(average_range) if average_range is not None else s
    _check_lengths([s, target])
    mask = parse_criterion(criterion)(s)
    return _mean_or_div0(_numeric_cells(target)[mask.to_numpy()])


def averageifs(average_range: RangeLike, *args: Any) -> float:
    target = _as_series(average_range)
    mask = _combined_mask(args, expected_len=len(target))
    return _mean_or_div0(_numeric_cells(target)[mask.to_numpy()])


def maxifs(max_range: RangeLike, *args: Any) -> float:
    """MAXIFS; returns 0 when nothing matches, as the worksheet does."""
    target = _as_series(max_range)
    mask = _combined_mask(args, expected_len=len(target))
    vals = _numeric_cells(target)[mask.to_numpy()].dropna()
    return float(vals.max()) if not vals.empty else 0.0


def minifs(min_range: RangeLike, *args: Any) -> float:
    """MINIFS; returns 0 when nothing matches, as the worksheet does."""
    target = _as_series(min_range)
    mask = _combined_mask(args, expected_len=len(target))
    vals = _numeric_cells(target)[mask.to_numpy()].dropna()
    return float(vals.min()) if not vals.empty else 0.0


# ----------------------------
# Table summaries
# ----------------------------

def aggregate_by(
    df: pd.DataFrame,
    by: Union[str, Sequence[str]],
    value: str,
    funcs: Sequence[str] = ("sum", "count", "mean"),
) -> pd.DataFrame:
    """
    Grouped summary of ``value``: one row per key with ``<value>_<func>`` columns.

    Equivalent to filling a sheet with SUMIFS/COUNTIFS/AVERAGEIFS per key.
    """
    keys = [by] if isinstance(by, str) else list(by)
    missing = [c for c in keys + [value] if c not in df.columns]
    if missing:
        raise KeyError(f"Columns not found: {missing}")
    if not funcs:
        raise ValueError("At least one aggregation function is required.")

    numeric = pd.to_numeric(df[value], errors="coerce")
    frame = df[keys].copy()
    frame[value] = numeric
    out = frame.groupby(keys, dropna=False)[value].agg(list(funcs)).reset_index()
    out = out.rename(columns={f: f"{value}_{f}" for f in funcs})
    logger.info(f"📊 Aggregated '{value}' by {keys}: {len(out)} groups")
    return out


def pivot_table(
    df: pd.DataFrame,
    index: Union[str, Sequence[str]],
    columns: Optional[Union[str, Sequence[str]]],
    values: str,
    aggfunc: str = "sum",
    fill_value: Any = 0,
    margins: bool = False,
) -> pd.DataFrame:
    """Thin wrapper over pandas.pivot_table with a worksheet-like 'Total' margin."""
    return pd.pivot_table(
        df,
        index=index,
        columns=columns,
        values=values,
        aggfunc=aggfunc,
        fill_value=fill_value,
        margins=margins,
        margins_name="Total",
    )


# ----------------------------
# Helpers
# ----------------------------

def _as_series(range_: RangeLike) -> pd.Series:
    if isinstance(range_, pd.Series):
        return range_.reset_index(drop=True)
    if isinstance(range_, pd.DataFrame):
        if range_.shape[1] != 1:
            raise ValueError("Ranges must be a single column.")
        return range_.iloc[:, 0].reset_index(drop=True)
    return pd.Series(list(range_), dtype=object)


def _check_lengths(series: List[pd.Series]) -> None:
    lengths = {len(s) for s in series}
    if len(lengths) > 1:
        raise ValueError(f"#VALUE! ranges have different sizes: {sorted(lengths)}")


def _combined_mask(args: Tuple[Any, ...], expected_len: Optional[int]) -> pd.Series:
    if not args or len(args) % 2 != 0:
        raise ValueError("Expected range/criterion pairs.")
    ranges = [_as_series(r) for r in args[0::2]]
    criteria = args[1::2]
    _check_lengths(ranges + ([pd.Series(index=range(expected_len), dtype=object)]
                             if expected_len is not None else []))

    mask = pd.Series(True, index=ranges[0].index)
    for s, crit in zip(ranges, criteria):
        mask &= parse_criterion(crit)(s).to_numpy()
    return mask


def _split_operator(text: str) -> Tuple[str, str]:
    for op in _OPERATORS:
        if text.startswith(op):
            return op, text[len(op):]
    return "", text


def _to_number(text: str) -> Optional[float]:
    t = text.strip()
    if not t:
        return None
    pct = t.endswith("%")
    try:
        val = float(t[:-1] if pct else t)
    except ValueError:
        return None
    return val / 100.0 if pct else val


def _is_blank(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return v == ""
    try:
        return bool(pd.isna(v))
    except (TypeError, ValueError):
        return False


def _blank_mask(s: pd.Series) -> pd.Series:
    return s.map(_is_blank).astype(bool)


def _numeric_compare(s: pd.Series, op: str, number: float) -> pd.Series:
    # booleans are not numbers on a worksheet
    cleaned = s.map(lambda v: np.nan if isinstance(v, (bool, np.bool_)) else v)
    vals = pd.to_numeric(cleaned, errors="coerce")
    if op == "=":
        return (vals == number).fillna(False).astype(bool)
    if op == "<>":
        return ~(vals == number).fillna(False).astype(bool)
    cmp = {
        "<": vals < number,
        "<=": vals <= number,
        ">": vals > number,
        ">=": vals >= number,
    }[op]
    return cmp.fillna(False).astype(bool)


def _text_compare(s: pd.Series, op: str, operand: str) -> pd.Series:
    if op in ("=", "<>"):
        rx = re.compile(_wildcard_to_regex(operand), re.IGNORECASE | re.DOTALL)
        hit = s.map(lambda v: isinstance(v, str) and rx.fullmatch(v) is not None).astype(bool)
        return hit if op == "=" else ~hit

    key = operand.lower()
    ops = {
        "<": lambda a: a < key,
        "<=": lambda a: a <= key,
        ">": lambda a: a > key,
        ">=": lambda a: a >= key,
    }
    fn = ops[op]
    return s.map(lambda v: isinstance(v, str) and fn(v.lower())).astype(bool)


def _wildcard_to_regex(pattern: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "~" and i + 1 < len(pattern) and pattern[i + 1] in "*?~":
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        else:
            out.append(re.escape(ch))
        i += 1
    return "".join(out)


def _numeric_cells(s: pd.Series) -> pd.Series:
    """Numbers only; text (even numeric-looking) and booleans are ignored like SUM does."""
    def conv(v):
        if isinstance(v, (bool, np.bool_)):
            return np.nan
        if isinstance(v, (int, float, np.integer, np.floating)):
            return float(v)
        return np.nan
    return s.map(conv).astype(float)


def _mean_or_div0(vals: pd.Series) -> float:
    vals = vals.dropna()
    if vals.empty:
        raise ZeroDivisionError("#DIV/0! no numeric cells matched the criteria")
    return float(vals.mean())
