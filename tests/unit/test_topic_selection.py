"""
Unit tests for LDA topic-count selection and its divergence metrics.
The corpus mixes two disjoint vocabularies so every fit is quick and stable.
"""

import numpy as np
import pandas as pd
import pytest
from sklearn.decomposition import LatentDirichletAllocation

from analysis_lab.core import topic_selection as ts

SPORT = "football goal striker keeper match league referee stadium"
COOKING = "flour oven butter sugar recipe bake dough pastry"


@pytest.fixture(scope="module")
def corpus():
    rng = np.random.default_rng(0)
    docs = []
    for i in range(24):
        words = (SPORT if i % 2 == 0 else COOKING).split()
        docs.append(" ".join(rng.choice(words, size=30)))
    return docs


@pytest.fixture(scope="module")
def dtm_vocab(corpus):
    return ts.vectorize_corpus(corpus)


@pytest.fixture(scope="module")
def two_topic_model(dtm_vocab):
    dtm, _ = dtm_vocab
    return LatentDirichletAllocation(n_components=2, random_state=0, max_iter=10).fit(dtm)


@pytest.mark.unit
def test_vectorize_corpus_builds_vocabulary(dtm_vocab):
    dtm, vocab = dtm_vocab

    assert dtm.shape == (24, 16)
    assert "football" in vocab and "pastry" in vocab


@pytest.mark.unit
def test_vectorize_corpus_relaxes_limits_for_tiny_corpora():
    """With min_df=2 two single documents share no terms; the retry keeps them."""
    dtm, vocab = ts.vectorize_corpus(["alpha beta", "gamma delta"])

    assert sorted(vocab) == ["alpha", "beta", "delta", "gamma"]
    assert dtm.shape == (2, 4)


@pytest.mark.unit
def test_vectorize_corpus_rejects_blank_input():
    with pytest.raises(ValueError, match="empty input"):
        ts.vectorize_corpus(["", None, "   "])


@pytest.mark.unit
def test_metrics_are_finite(two_topic_model, dtm_vocab):
    dtm, _ = dtm_vocab

    scores = ts.score_topic_model(two_topic_model, dtm, list(ts.METRIC_DIRECTIONS))

    assert set(scores) == set(ts.METRIC_DIRECTIONS)
    assert all(np.isfinite(v) for v in scores.values())
    assert scores["arun_2010"] >= 0.0
    assert 0.0 <= scores["cao_juan_2009"] <= 1.0
    assert scores["deveaud_2014"] > 0.0


@pytest.mark.unit
def test_separated_topics_have_low_cosine_similarity(two_topic_model):
    """Disjoint vocabularies give nearly orthogonal topic-word vectors."""
    assert ts.cao_juan_2009(two_topic_model) < 0.2


@pytest.mark.unit
def test_unknown_metric_rejected(two_topic_model, dtm_vocab):
    dtm, _ = dtm_vocab
    with pytest.raises(ValueError, match="Unknown topic metric"):
        ts.score_topic_model(two_topic_model, dtm, ["griffiths_2004"])


@pytest.mark.unit
def test_select_topic_count_ranks_every_candidate(dtm_vocab):
    dtm, _ = dtm_vocab

    result = ts.select_topic_count(
        dtm, [2, 3, 4], metric="cao_juan_2009",
        extra_metrics=["arun_2010", "deveaud_2014"], max_iter=10)

    assert result.best_k in (2, 3, 4)
    assert result.metric == "cao_juan_2009"
    assert result.ranking["n_topics"].tolist() == [2, 3, 4]
    assert {"cao_juan_2009", "arun_2010", "deveaud_2014", "rank"} <= set(result.ranking.columns)
    assert result.best_model.n_components == result.best_k
    best_row = result.ranking.loc[result.ranking["n_topics"] == result.best_k].iloc[0]
    assert best_row["cao_juan_2009"] == result.ranking["cao_juan_2009"].min()


@pytest.mark.unit
def test_select_topic_count_maximizes_deveaud(dtm_vocab):
    dtm, _ = dtm_vocab

    result = ts.select_topic_count(dtm, [2, 3], metric="deveaud_2014", max_iter=5)

    assert result.report.higher_is_better is True
    best_row = result.ranking.loc[result.ranking["rank"] == 1].iloc[0]
    assert best_row["deveaud_2014"] == result.ranking["deveaud_2014"].max()


@pytest.mark.unit
def test_only_best_model_is_kept_by_default(dtm_vocab):
    dtm, _ = dtm_vocab

    result = ts.select_topic_count(dtm, [2, 3], max_iter=5)

    kept = [r for r in result.report.results if r.model is not None]
    assert len(kept) == 1
    assert kept[0].value == result.best_k


@pytest.mark.unit
def test_select_topic_count_validates_input(dtm_vocab):
    dtm, _ = dtm_vocab
    with pytest.raises(ValueError, match="Unknown topic metric"):
        ts.select_topic_count(dtm, [2, 3], metric="coherence")
    with pytest.raises(ValueError, match="empty input"):
        ts.select_topic_count(dtm, [])
    with pytest.raises(ValueError, match=">= 2"):
        ts.select_topic_count(dtm, [1, 2])
    with pytest.raises(ValueError, match="vocabulary size"):
        ts.select_topic_count(dtm, [2, 50])


@pytest.mark.unit
def test_top_words_and_document_topics(two_topic_model, dtm_vocab):
    dtm, vocab = dtm_vocab

    words = ts.top_words(two_topic_model, vocab, n=3)
    doc_topics = ts.document_topics(two_topic_model, dtm)

    assert list(words.columns) == ["topic", "top_words"]
    assert len(words) == 2
    assert all(len(w.split()) == 3 for w in words["top_words"])
    assert doc_topics.shape == (24, 3)
    np.testing.assert_allclose(doc_topics[["topic_0", "topic_1"]].sum(axis=1), 1.0, rtol=1e-6)
    # even and odd documents land on different dominant topics
    dominant = doc_topics["dominant_topic"]
    assert dominant.iloc[0::2].nunique() == 1
    assert dominant.iloc[0] != dominant.iloc[1]


@pytest.mark.unit
def test_top_words_vocabulary_mismatch(two_topic_model):
    with pytest.raises(ValueError):
        ts.top_words(two_topic_model, ["only", "three", "words"])
