"""
core/parameter_sweep.py
-----------------------
Fit the same model shape under a range of parameter values and rank the fits.

Responsibilities
- Call a user-supplied ``fit_fn(value)`` once per value, in parallel via joblib
- Score each fitted model with ``score_fn(model)`` (a float or a dict of metrics)
- Record failures instead of aborting the whole sweep (unless asked to raise)
- Rank successful fits best-first and tabulate the results

The fit function must be safe to call concurrently; with the default "loky"
backend it also has to be picklable.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

logger = logging.getLogger(__name__)

Score = Union[float, Mapping[str, float]]


@dataclass
class SweepResult:
    """Outcome of fitting and scoring one parameter value."""
    value: Any
    score: float = float("nan")
    scores: Dict[str, float] = field(default_factory=dict)
    model: Any = None
    fit_seconds: float = 0.0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SweepReport:
    """All results of a sweep, in input order, plus the ranking rule."""
    results: List[SweepResult]
    metric: str
    higher_is_better: bool

    def ranked(self) -> List[SweepResult]:
        """Successful fits, best first. Ties keep input order (sort is stable)."""
        ok = [r for r in self.results if r.ok and not np.isnan(r.score)]
        sign = -1.0 if self.higher_is_better else 1.0
        return sorted(ok, key=lambda r: sign * r.score)

    @property
    def best(self) -> SweepResult:
        ranked = self.ranked()
        if not ranked:
            raise RuntimeError("No successful fits in this sweep.")
        return ranked[0]

    @property
    def failures(self) -> List[SweepResult]:
        return [r for r in self.results if not r.ok]

    def to_frame(self, value_name: str = "value") -> pd.DataFrame:
        """One row per swept value with metric columns, fit time, error and rank."""
        rank_of = {id(r): i + 1 for i, r in enumerate(self.ranked())}
        rows = []
        for r in self.results:
            row: Dict[str, Any] = {value_name: r.value}
            if r.scores:
                row.update(r.scores)
            else:
                row[self.metric] = r.score
            row["fit_seconds"] = r.fit_seconds
            row["error"] = r.error
            row["rank"] = rank_of.get(id(r))
            rows.append(row)
        frame = pd.DataFrame(rows)
        frame["rank"] = frame["rank"].astype("Int64")
        return frame


# ----------------------------
# Public API
# ----------------------------

def run_sweep(
    fit_fn: Callable[[Any], Any],
    values: Sequence[Any],
    score_fn: Callable[[Any], Score],
    *,
    n_jobs: int = 1,
    backend: str = "loky",
    higher_is_better: bool = False,
    rank_by: Optional[str] = None,
    keep_models: bool = True,
    raise_on_error: bool = False,
    show_progress: bool = False,
) -> SweepReport:
    """
    Fit and score one model per parameter value.

    Parameters
    ----------
    fit_fn : callable
        ``fit_fn(value) -> model``.
    values : sequence
        Parameter values to sweep; must be non-empty and free of duplicates.
    score_fn : callable
        ``score_fn(model) -> float`` or ``-> {metric: float}``.
    n_jobs : int
        Maximum number of concurrent workers (joblib semantics, -1 = all cores).
    backend : str
        joblib backend ("loky", "threading", "multiprocessing").
    higher_is_better : bool
        Ranking direction of the ranking metric.
    rank_by : str, optional
        Metric to rank on when ``score_fn`` returns a mapping; defaults to its first key.
    keep_models : bool
        Keep fitted models on the results (set False to save memory).
    raise_on_error : bool
        Re-raise the first fit/score failure instead of recording it.
    show_progress : bool
        Show a tqdm bar (sequential runs only).

    Returns
    -------
    SweepReport

    Raises
    ------
    ValueError
        If ``values`` is empty or contains duplicates.
    RuntimeError
        If every fit failed.
    """
    values = list(values)
    if not values:
        raise ValueError("empty input: no parameter values to sweep.")
    _check_unique(values)

    logger.info(f"🔁 Sweeping {len(values)} values with n_jobs={n_jobs} ({backend})")

    task = delayed(_fit_and_score)
    if n_jobs == 1:
        iterator = tqdm(values, desc="sweep", disable=not show_progress)
        results = [_fit_and_score(fit_fn, score_fn, v, raise_on_error) for v in iterator]
    else:
        results = Parallel(n_jobs=n_jobs, backend=backend)(
            task(fit_fn, score_fn, v, raise_on_error) for v in values
        )

    metric = _resolve_metric(results, rank_by)
    for r in results:
        if r.ok and r.scores:
            if metric not in r.scores:
                r.error = f"score_fn did not return metric '{metric}'"
                if raise_on_error:
                    raise KeyError(r.error)
            else:
                r.score = float(r.scores[metric])
        if not keep_models:
            r.model = None

    failures = [r for r in results if not r.ok]
    for r in failures:
        logger.warning(f"   ⚠️ value={r.value!r} failed: {r.error}")
    if len(failures) == len(results):
        raise RuntimeError(
            f"All {len(results)} fits failed; first error: {failures[0].error}")

    report = SweepReport(results=results, metric=metric, higher_is_better=higher_is_better)
    best = report.best
    logger.info(f"🏁 Best value={best.value!r} ({metric}={best.score:.6g})")
    return report


# ----------------------------
# Helpers
# ----------------------------

def _fit_and_score(fit_fn, score_fn, value, raise_on_error: bool) -> SweepResult:
    t = time.time()
    try:
        model = fit_fn(value)
        raw = score_fn(model)
        if isinstance(raw, Mapping):
            scores = {str(k): float(v) for k, v in raw.items()}
            score = float("nan")
        else:
            scores = {}
            score = float(raw)
    except Exception as e:
        if raise_on_error:
            raise
        return SweepResult(value=value, fit_seconds=time.time() - t,
                           error=f"{type(e).__name__}: {e}")

    return SweepResult(value=value, score=score, scores=scores, model=model,
                       fit_seconds=time.time() - t)


def _resolve_metric(results: List[SweepResult], rank_by: Optional[str]) -> str:
    if rank_by is not None:
        return rank_by
    for r in results:
        if r.ok and r.scores:
            return next(iter(r.scores))
    return "score"


def _check_unique(values: List[Any]) -> None:
    seen = set()
    for v in values:
        key = v if isinstance(v, Hashable) else repr(v)
        if key in seen:
            raise ValueError(f"Duplicate parameter value in sweep: {v!r}")
        seen.add(key)
