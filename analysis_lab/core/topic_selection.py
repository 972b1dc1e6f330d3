"""
core/topic_selection.py
-----------------------
Pick the number of LDA topics by fitting one model per candidate count and
scoring each fit with divergence-based metrics.

Metrics (computed on scikit-learn's LatentDirichletAllocation)
- arun_2010    : symmetric KL divergence between the singular values of the
                 topic-word matrix and the length-weighted topic distribution
                 over documents (lower is better)
- cao_juan_2009: mean pairwise cosine similarity between topics (lower is better)
- deveaud_2014 : mean pairwise symmetric KL divergence between topics
                 (higher is better)
- perplexity   : sklearn's held-in perplexity (lower is better)

The fits are independent, so they run through core.parameter_sweep with a
bounded joblib worker pool.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import sparse
from scipy.stats import entropy
from sklearn.decomposition import LatentDirichletAllocation
from sklearn.feature_extraction.text import CountVectorizer

from .parameter_sweep import SweepReport, run_sweep

logger = logging.getLogger(__name__)

METRIC_DIRECTIONS: Dict[str, str] = {
    "arun_2010": "min",
    "cao_juan_2009": "min",
    "deveaud_2014": "max",
    "perplexity": "min",
}

_EPS = 1e-12


@dataclass
class TopicSelectionResult:
    ranking: pd.DataFrame
    best_k: int
    best_model: Optional[LatentDirichletAllocation]
    metric: str
    report: SweepReport


# ----------------------------
# Corpus
# ----------------------------

def vectorize_corpus(
    texts: Iterable[Any],
    max_features: Optional[int] = 5000,
    min_df: Any = 2,
    max_df: Any = 0.95,
    stop_words: Optional[str] = "english",
) -> Tuple[sparse.csr_matrix, List[str]]:
    """
    Bag-of-words document-term matrix for LDA.

    If the document-frequency limits prune the whole vocabulary (common on
    small corpora) the vectorizer is retried once without them.
    """
    docs = ["" if pd.isna(t) else str(t) for t in texts]
    if not docs or not any(d.strip() for d in docs):
        raise ValueError("empty input: corpus has no non-blank documents.")

    try:
        vec = CountVectorizer(max_features=max_features, min_df=min_df,
                              max_df=max_df, stop_words=stop_words)
        dtm = vec.fit_transform(docs)
    except ValueError as e:
        logger.warning(f"⚠️ Vectorizer pruned everything ({e}); retrying with min_df=1, max_df=1.0")
        try:
            vec = CountVectorizer(max_features=max_features, min_df=1,
                                  max_df=1.0, stop_words=stop_words)
            dtm = vec.fit_transform(docs)
        except ValueError as e2:
            raise ValueError(f"Corpus has no usable terms: {e2}") from e2

    vocab = list(vec.get_feature_names_out())
    logger.info(f"📚 Corpus: {dtm.shape[0]} documents x {dtm.shape[1]} terms")
    return dtm.tocsr(), vocab


# ----------------------------
# Metrics
# ----------------------------

def arun_2010(model: LatentDirichletAllocation, dtm) -> float:
    topic_word = _topic_word(model)
    cm1 = np.linalg.svd(topic_word, compute_uv=False)

    doc_topic = model.transform(dtm)
    doc_len = np.asarray(dtm.sum(axis=1)).ravel()
    cm2 = np.sort(doc_len @ doc_topic)[::-1]

    cm1 = np.clip(cm1 / cm1.sum(), _EPS, None)
    cm2 = np.clip(cm2 / max(cm2.sum(), _EPS), _EPS, None)
    return float(entropy(cm1, cm2) + entropy(cm2, cm1))


def cao_juan_2009(model: LatentDirichletAllocation) -> float:
    topic_word = _topic_word(model)
    k = topic_word.shape[0]
    if k < 2:
        return float("nan")
    norms = np.linalg.norm(topic_word, axis=1)
    sim = (topic_word @ topic_word.T) / np.outer(norms, norms)
    iu = np.triu_indices(k, 1)
    return float(sim[iu].mean())


def deveaud_2014(model: LatentDirichletAllocation) -> float:
    topic_word = np.clip(_topic_word(model), _EPS, None)
    k = topic_word.shape[0]
    if k < 2:
        return float("nan")
    total = 0.0
    pairs = 0
    for i in range(k):
        for j in range(i + 1, k):
            p, q = topic_word[i], topic_word[j]
            total += 0.5 * entropy(p, q) + 0.5 * entropy(q, p)
            pairs += 1
    return float(total / pairs)


def perplexity(model: LatentDirichletAllocation, dtm) -> float:
    return float(model.perplexity(dtm))


def score_topic_model(model: LatentDirichletAllocation, dtm, metrics: Sequence[str]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for m in metrics:
        if m == "arun_2010":
            out[m] = arun_2010(model, dtm)
        elif m == "cao_juan_2009":
            out[m] = cao_juan_2009(model)
        elif m == "deveaud_2014":
            out[m] = deveaud_2014(model)
        elif m == "perplexity":
            out[m] = perplexity(model, dtm)
        else:
            raise ValueError(f"Unknown topic metric '{m}'. Expected one of {list(METRIC_DIRECTIONS)}")
    return out


# ----------------------------
# Selection
# ----------------------------

class _LdaFitter:
    """Picklable fit function for the sweep workers."""

    def __init__(self, dtm, random_state: int, max_iter: int, learning_method: str):
        self.dtm = dtm
        self.random_state = random_state
        self.max_iter = max_iter
        self.learning_method = learning_method

    def __call__(self, k: int) -> LatentDirichletAllocation:
        lda = LatentDirichletAllocation(
            n_components=int(k),
            random_state=self.random_state,
            max_iter=self.max_iter,
            learning_method=self.learning_method,
        )
        return lda.fit(self.dtm)


class _LdaScorer:
    def __init__(self, dtm, metrics: Sequence[str]):
        self.dtm = dtm
        self.metrics = list(metrics)

    def __call__(self, model: LatentDirichletAllocation) -> Dict[str, float]:
        return score_topic_model(model, self.dtm, self.metrics)


def select_topic_count(
    dtm,
    topic_counts: Sequence[int],
    metric: str = "arun_2010",
    extra_metrics: Sequence[str] = (),
    n_jobs: int = 1,
    random_state: int = 0,
    max_iter: int = 20,
    learning_method: str = "batch",
    keep_models: bool = False,
) -> TopicSelectionResult:
    """
    Fit one LDA per topic count and rank the counts by ``metric``.

    Only the best model is kept on the result unless ``keep_models`` is set.
    """
    if metric not in METRIC_DIRECTIONS:
        raise ValueError(f"Unknown topic metric '{metric}'. Expected one of {list(METRIC_DIRECTIONS)}")
    counts = [int(k) for k in topic_counts]
    if not counts:
        raise ValueError("empty input: no topic counts to evaluate.")
    if min(counts) < 2:
        raise ValueError("Topic counts must be >= 2.")
    n_docs, n_terms = dtm.shape
    if n_docs == 0:
        raise ValueError("empty input: document-term matrix has no rows.")
    if max(counts) > n_terms:
        raise ValueError(
            f"Topic count {max(counts)} exceeds the vocabulary size ({n_terms}).")

    metrics = [metric] + [m for m in extra_metrics if m != metric]
    logger.info(f"🧮 Selecting topic count over {counts} by {metric} ({METRIC_DIRECTIONS[metric]})")

    report = run_sweep(
        _LdaFitter(dtm, random_state, max_iter, learning_method),
        counts,
        _LdaScorer(dtm, metrics),
        n_jobs=n_jobs,
        higher_is_better=METRIC_DIRECTIONS[metric] == "max",
        rank_by=metric,
        keep_models=True,
    )

    best = report.best
    best_model = best.model
    if not keep_models:
        for r in report.results:
            if r is not best:
                r.model = None

    ranking = report.to_frame(value_name="n_topics").sort_values("n_topics").reset_index(drop=True)
    logger.info(f"✅ Best topic count: {best.value} ({metric}={best.score:.4f})")
    return TopicSelectionResult(
        ranking=ranking,
        best_k=int(best.value),
        best_model=best_model,
        metric=metric,
        report=report,
    )


def top_words(model: LatentDirichletAllocation, vocabulary: Sequence[str], n: int = 10) -> pd.DataFrame:
    """One row per topic with its ``n`` highest-weight words."""
    vocab = np.asarray(vocabulary)
    if len(vocab) != model.components_.shape[1]:
        raise ValueError("Vocabulary size does not match the model.")
    rows = []
    for t, weights in enumerate(model.components_):
        idx = np.argsort(-weights)[:n]
        rows.append({"topic": t, "top_words": " ".join(vocab[idx])})
    return pd.DataFrame(rows)


def document_topics(model: LatentDirichletAllocation, dtm) -> pd.DataFrame:
    """Document-topic distribution with the dominant topic per document."""
    theta = model.transform(dtm)
    cols = [f"topic_{i}" for i in range(theta.shape[1])]
    out = pd.DataFrame(theta, columns=cols)
    out["dominant_topic"] = theta.argmax(axis=1)
    return out


# ----------------------------
# Helpers
# ----------------------------

def _topic_word(model: LatentDirichletAllocation) -> np.ndarray:
    comp = np.asarray(model.components_, dtype=float)
    return comp / comp.sum(axis=1, keepdims=True)
