from __future__ import annotations
import threading
from typing import Dict, List
from unittest import mock
import pytest
from classifier import combiner
from classifier.artifacts import ArtifactError, save_embedding_model
from classifier.combiner import (
    ContentClassifier,
    ContentItem,
    StatsCounter,
    batch_classify_content,
    classify_content,
    combine_probabilities,
    get_classification_stats,
    get_model_info,
    init_classifier,
    is_classifier_ready,
)
from classifier.embeddings import EmbeddingProviderError
from classifier.schemas import MODEL_TYPE_KNN, ClassificationResult, make_result
from .conftest import FakeProvider, make_embedding_model


TECH_BODY = "A walk through the python compiler pipeline. " * 5
POLITICAL_BODY = "Senate election coverage, the campaign trail and the week in politics. " * 3


class StubKnn:
    """Returns fixed probabilities keyed by exact input text."""

    def __init__(self, probs: Dict[str, float], fail_on: tuple = ()) -> None:
        self.probs = probs
        self.fail_on = fail_on
        self.seen: List[str] = []
        self.fail_batch = False

    def classify(self, text: str, k=None) -> ClassificationResult:
        self.seen.append(text)

        if text in self.fail_on:
            raise EmbeddingProviderError("provider down", status_code=503)

        prob = self.probs.get(text, 0.0)

        return make_result(prob, 0.5, {"technical": prob, "non_technical": 1 - prob}, MODEL_TYPE_KNN)

    def classify_batch(self, texts, k=None) -> List[ClassificationResult]:
        if self.fail_batch or any(text in self.fail_on for text in texts):
            raise EmbeddingProviderError("batch down", status_code=503)

        return [self.classify(text, k) for text in texts]

    def info(self) -> dict:
        return {"initialized": True}


def test_uninitialized_classifier_rejects_everything():
    assert not is_classifier_ready()

    result = classify_content("Great python tutorial", "all about compilers")

    assert result.is_technical is False
    assert result.probability == 0.0
    assert result.model_type == "none"
    assert get_classification_stats() == {"total": 1, "accepted": 0, "rejected": 1, "errors": 0}
    assert get_model_info()["initialized"] is False


def test_uninitialized_batch_rejects_every_item():
    results = batch_classify_content([{"title": "a"}, {"title": "b"}])

    assert [r.is_technical for r in results] == [False, False]


def test_min_combination_rejects_technical_title_over_political_body():
    body = "x" * 150
    knn = StubKnn({"Rust internals": 0.9, body: 0.3})
    clf = ContentClassifier(knn, threshold=0.5)

    result = clf.classify_content("Rust internals", body_text=body)

    assert result.probability == pytest.approx(0.3)
    assert result.title_desc_prob == pytest.approx(0.9)
    assert result.body_prob == pytest.approx(0.3)
    assert result.is_technical is False


def test_short_body_is_ignored():
    knn = StubKnn({"Rust internals short": 0.9})
    clf = ContentClassifier(knn, threshold=0.5)

    result = clf.classify_content("Rust internals", "short", body_text="x" * 100)

    assert result.probability == pytest.approx(0.9)
    assert result.body_prob is None
    assert knn.seen == ["Rust internals short"]


def test_long_body_is_cut_before_scoring():
    knn = StubKnn({})
    clf = ContentClassifier(knn, max_body_chars=2000)

    clf.classify_content("title", body_text="y" * 5000)

    assert len(knn.seen[1]) == 2000


@pytest.mark.parametrize("title_prob", [0.0, 0.2, 0.5, 0.8, 1.0])
def test_combination_is_monotone_in_each_signal(title_prob):
    grid = [0.0, 0.1, 0.4, 0.6, 1.0]
    combined = [combine_probabilities(title_prob, body) for body in grid]

    assert combined == sorted(combined)
    assert all(c <= title_prob for c in combined)
    assert combine_probabilities(title_prob, None) == title_prob


def test_stats_count_accepted_rejected_and_errors():
    knn = StubKnn({"good": 0.9, "bad": 0.1}, fail_on=("broken",))
    clf = ContentClassifier(knn, stats=StatsCounter())

    clf.classify_content("good")
    clf.classify_content("bad")

    with pytest.raises(EmbeddingProviderError):
        clf.classify_content("broken")

    assert clf.stats.snapshot() == {"total": 3, "accepted": 1, "rejected": 1, "errors": 1}

    clf.stats.reset()
    assert clf.stats.snapshot()["total"] == 0


def test_stats_counter_is_thread_safe():
    stats = StatsCounter()
    accepted = make_result(0.9, 0.5, {}, MODEL_TYPE_KNN)

    def worker():
        for _ in range(500):
            stats.record(accepted)

    threads = [threading.Thread(target=worker) for _ in range(8)]

    for t in threads:
        t.start()

    for t in threads:
        t.join()

    assert stats.snapshot()["accepted"] == 4000


def test_batch_preserves_order_and_combines_bodies():
    body = "z" * 200
    knn = StubKnn({"one": 0.9, "two": 0.2, "three": 0.8, body: 0.1})
    clf = ContentClassifier(knn)

    results = clf.batch_classify_content(
        [
            ContentItem(title="one"),
            {"title": "two"},
            {"title": "three", "body_text": body},
        ]
    )

    assert [r.probability for r in results] == pytest.approx([0.9, 0.2, 0.1])
    assert [r.is_technical for r in results] == [True, False, False]


def test_batch_failure_falls_back_to_single_items():
    knn = StubKnn({"one": 0.9, "two": 0.8}, fail_on=("broken",))
    knn.fail_batch = True
    clf = ContentClassifier(knn, stats=StatsCounter())

    results = clf.batch_classify_content([{"title": "one"}, {"title": "broken"}, {"title": "two"}])

    assert [r.is_technical for r in results] == [True, False, True]
    assert results[1].error is not None
    assert results[1].probability == 0.0
    assert clf.stats.snapshot()["errors"] == 1


def test_end_to_end_with_knn(settings, provider, embedding_model):
    init_classifier(settings, provider=provider, model=embedding_model)

    technical = classify_content("Faster python", "a new algorithm", TECH_BODY)
    political = classify_content("Faster python", "a new algorithm", POLITICAL_BODY)

    assert technical.is_technical
    assert not political.is_technical
    assert political.title_desc_prob > 0.5 > political.body_prob


def test_init_runs_once(settings, embedding_model):
    first = init_classifier(settings, provider=FakeProvider(), model=embedding_model)
    second = init_classifier(settings, provider=FakeProvider(), model=make_embedding_model(3))

    assert first is second
    assert is_classifier_ready()
    assert get_model_info()["numTrainingExamples"] == 20


def test_init_loads_artifact_from_settings(settings, provider, embedding_model):
    save_embedding_model(embedding_model, settings.embeddings_path)

    init_classifier(settings, provider=provider)

    assert combiner.get_classifier().knn.size == 20


def test_missing_artifact_is_fatal_and_leaves_classifier_uninitialized(settings, provider):
    with pytest.raises(ArtifactError):
        init_classifier(settings, provider=provider)

    assert not is_classifier_ready()
    assert classify_content("python").is_technical is False


def test_stats_survive_reinitialization(settings, provider, embedding_model):
    classify_content("before init")
    init_classifier(settings, provider=provider, model=embedding_model)
    classify_content("python algorithm")

    assert get_classification_stats()["total"] == 2


def test_failed_body_batch_retries_only_bodies():
    good_body = "g" * 150
    bad_body = "b" * 150
    knn = StubKnn({"one": 0.9, "two": 0.9, good_body: 0.8}, fail_on=(bad_body,))
    clf = ContentClassifier(knn, stats=StatsCounter())

    results = clf.batch_classify_content(
        [{"title": "one", "body_text": good_body}, {"title": "two", "body_text": bad_body}]
    )

    assert results[0].is_technical
    assert results[0].body_prob == pytest.approx(0.8)
    assert results[1].is_technical is False
    assert results[1].error is not None
    assert knn.seen.count("one") == 1
    assert knn.seen.count("two") == 1
    assert clf.stats.snapshot() == {"total": 2, "accepted": 1, "rejected": 0, "errors": 1}


def test_malformed_embedding_in_batch_only_rejects_that_item(settings, embedding_model):
    provider = FakeProvider()
    vector = provider.vector
    provider.vector = lambda text: [1.0, 0.0] if "bad item" in text else vector(text)
    init_classifier(settings, provider=provider, model=embedding_model)

    results = batch_classify_content([{"title": "python"}, {"title": "bad item"}, {"title": "gpu"}])

    assert [r.is_technical for r in results] == [True, False, True]
    assert "Malformed" in results[1].error
    assert get_classification_stats() == {"total": 3, "accepted": 2, "rejected": 0, "errors": 1}


def test_concurrent_init_builds_once(settings, embedding_model):
    n_threads = 8
    barrier = threading.Barrier(n_threads)
    handles = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        handle = init_classifier(settings, provider=FakeProvider(), model=embedding_model)

        with lock:
            handles.append(handle)

    with mock.patch.object(combiner, "build_classifier", wraps=combiner.build_classifier) as build:
        threads = [threading.Thread(target=worker) for _ in range(n_threads)]

        for t in threads:
            t.start()

        for t in threads:
            t.join()

    assert build.call_count == 1
    assert len(handles) == n_threads
    assert all(handle is handles[0] for handle in handles)
