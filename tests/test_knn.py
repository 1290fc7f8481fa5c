from __future__ import annotations
import numpy as np
import pytest
from classifier.embeddings import EmbeddingProviderError
from classifier.knn import KnnClassifier, compute_non_tech_weight


def test_non_tech_weight_corrects_training_balance():
    assert compute_non_tech_weight([1, 0, 1, 0], production_ratio=8.0) == 8.0
    assert compute_non_tech_weight([1, 0, 0, 0], production_ratio=8.0) == pytest.approx(8.0 / 3)


def test_non_tech_weight_requires_both_classes():
    with pytest.raises(ValueError):
        compute_non_tech_weight([1, 1, 1])


def test_weight_is_derived_from_corpus_labels(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4, production_ratio=8.0)

    assert knn.non_tech_weight == 8.0


def test_technical_text_is_accepted(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4)

    result = knn.classify("A faster python algorithm")

    assert result.is_technical
    assert result.probability == pytest.approx(1.0)
    assert result.model_type == "embedding-knn"


def test_non_technical_text_is_rejected(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4)

    result = knn.classify("Senate election preview")

    assert not result.is_technical
    assert result.probability == pytest.approx(0.0)


def test_class_prior_correction_pulls_ambiguous_text_down(embedding_model, provider):
    ambiguous = provider.vector("python election")
    balanced = KnnClassifier(embedding_model, provider, k=4, non_tech_weight=1.0)
    corrected = KnnClassifier(embedding_model, provider, k=4, non_tech_weight=8.0)

    # All 20 neighbors tie; the first four alternate technical/non-technical.
    assert balanced.score_embedding(ambiguous).probability == pytest.approx(0.5)
    assert corrected.score_embedding(ambiguous).probability == pytest.approx(1.0 / 9.0)


@pytest.mark.parametrize(
    "text",
    ["python compiler", "recipe of the week", "python election", "nothing relevant here"],
)
def test_probability_range_and_threshold_agreement(embedding_model, provider, text):
    knn = KnnClassifier(embedding_model, provider, k=5, threshold=0.4)

    result = knn.classify(text)

    assert 0.0 <= result.probability <= 1.0
    assert result.is_technical == (result.probability >= 0.4)


def test_classification_is_deterministic(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=5)

    assert knn.classify("gpu database tuning") == knn.classify("gpu database tuning")


def test_empty_text_scores_zero_without_calling_provider(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4)

    result = knn.classify("   ")

    assert result.probability == 0.0
    assert not result.is_technical
    assert provider.calls == []


def test_input_is_truncated_before_embedding(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4, max_chars=10)

    knn.classify("python " * 50)

    assert provider.calls == ["python pyt"]


def test_negative_similarities_do_not_vote(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4)

    score = knn.score_embedding([-1.0, 0.0, 0.0])

    assert score.probability == 0.0
    assert score.technical == 0.0


def test_neighbors_are_returned_most_similar_first(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=3)

    result = knn.classify("python gpu", return_neighbors=True)

    assert len(result.neighbors) == 3
    assert all(n.label == "technical" for n in result.neighbors)
    sims = [n.similarity for n in result.neighbors]
    assert sims == sorted(sims, reverse=True)
    assert result.neighbors[0].text.startswith("python algorithm notes")


def test_k_larger_than_corpus_uses_every_example(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=100)

    score = knn.score_embedding(provider.vector("python"))

    assert score.indices.shape == (embedding_model.class_counts()["technical"] * 2,)


def test_batch_preserves_order_and_matches_single(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4)
    texts = ["python compiler", "", "celebrity fashion", "python election"]

    batch = knn.classify_batch(texts)
    single = [knn.classify(text) for text in texts]

    assert [r.probability for r in batch] == [r.probability for r in single]
    assert provider.batch_calls == [["python compiler", "celebrity fashion", "python election"]]


def test_batch_rejects_short_provider_response(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4)
    provider.embed_batch = lambda texts: [[1.0, 0.0, 0.1]]

    with pytest.raises(EmbeddingProviderError):
        knn.classify_batch(["python", "gpu"])


def test_query_dimension_mismatch_raises(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4)

    with pytest.raises(ValueError):
        knn.similarities(np.ones(5))


def test_info_reports_corpus_shape(embedding_model, provider):
    info = KnnClassifier(embedding_model, provider, k=4).info()

    assert info["numTrainingExamples"] == 20
    assert info["embeddingDim"] == 3
    assert info["numExamples"] == {"technical": 10, "non-technical": 10}
    assert info["model"] == "fake-embed"


def test_malformed_provider_embedding_is_a_provider_error(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4)
    provider.embed = lambda text: [1.0, 0.0]

    with pytest.raises(EmbeddingProviderError, match="Malformed"):
        knn.classify("python")


def test_malformed_embedding_in_batch_is_a_provider_error(embedding_model, provider):
    knn = KnnClassifier(embedding_model, provider, k=4)
    provider.embed_batch = lambda texts: [[1.0, 0.0, 0.1], ["not", "a", "number"]]

    with pytest.raises(EmbeddingProviderError):
        knn.classify_batch(["python", "gpu"])
