from __future__ import annotations
from typing import List, Sequence
import numpy as np
import pytest
from classifier.artifacts import EmbeddingModel
from classifier.combiner import reset_classification_stats, reset_classifier
from classifier.config import ClassifierSettings
from classifier.embeddings import EmbeddingProviderError
from classifier.schemas import LABEL_NON_TECHNICAL, LABEL_TECHNICAL, TrainingExample


TECH_WORDS = ("python", "algorithm", "compiler", "gpu", "database", "neural")
NON_TECH_WORDS = ("election", "recipe", "celebrity", "senate", "fashion", "vacation")


class FakeProvider:
    """Embeds text as ``[technical hits, non-technical hits, 0.1]``."""

    model = "fake-embed"

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.batch_calls: List[List[str]] = []
        self.fail_batch = False
        self.fail_on: set[str] = set()

    def vector(self, text: str) -> List[float]:
        lower = text.lower()
        tech = sum(lower.count(word) for word in TECH_WORDS)
        non_tech = sum(lower.count(word) for word in NON_TECH_WORDS)

        return [float(tech), float(non_tech), 0.1]

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)

        if any(marker in text for marker in self.fail_on):
            raise EmbeddingProviderError("provider down", status_code=503)

        return self.vector(text)

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        self.batch_calls.append(list(texts))

        if self.fail_batch:
            raise EmbeddingProviderError("batch endpoint down", status_code=503)

        return [self.vector(text) for text in texts]


def make_embedding_model(n_per_class: int = 10) -> EmbeddingModel:
    embeddings: List[List[float]] = []
    labels: List[int] = []
    texts: List[str] = []

    # Interleaved so that equal-similarity ties alternate between classes.
    for i in range(n_per_class):
        embeddings.append([1.0, 0.0, 0.1])
        labels.append(1)
        texts.append(f"python algorithm notes {i}")
        embeddings.append([0.0, 1.0, 0.1])
        labels.append(0)
        texts.append(f"election senate recap {i}")

    return EmbeddingModel(embeddings=embeddings, labels=labels, texts=texts)


def synthetic_corpus(
    n_per_class: int = 20, noise: float = 0.1, seed: int = 0
) -> tuple[List[str], List[int]]:
    """Two word pools with shared filler words and a fraction of flipped labels."""

    rng = np.random.default_rng(seed)
    tech_pool = ["kernel", "compiler", "tensor", "gradient", "latency", "schema", "cache", "parser"]
    non_pool = ["senate", "recipe", "fashion", "wedding", "vacation", "ballot", "celebrity", "brunch"]
    shared = ["today", "weekly", "update", "new", "story", "thoughts"]

    texts: List[str] = []
    labels: List[int] = []

    for label, pool in ((1, tech_pool), (0, non_pool)):
        for _ in range(n_per_class):
            words = list(rng.choice(pool, size=4)) + list(rng.choice(shared, size=2))
            texts.append(" ".join(words))
            labels.append(label if rng.random() >= noise else 1 - label)

    return texts, labels


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def embedding_model() -> EmbeddingModel:
    return make_embedding_model()


@pytest.fixture
def settings(tmp_path) -> ClassifierSettings:
    return ClassifierSettings(
        embeddings_path=tmp_path / "embeddings.json",
        linear_model_path=tmp_path / "model.json",
        threshold=0.5,
        k=4,
        production_ratio=8.0,
    )


@pytest.fixture
def examples() -> List[TrainingExample]:
    return [
        TrainingExample(text="Writing a compiler in Python", label=LABEL_TECHNICAL),
        TrainingExample(text="GPU kernels for neural networks", label=LABEL_TECHNICAL),
        TrainingExample(text="Database indexing explained", label=LABEL_TECHNICAL),
        TrainingExample(text="Senate election results", label=LABEL_NON_TECHNICAL),
        TrainingExample(text="My favorite summer recipe", label=LABEL_NON_TECHNICAL),
        TrainingExample(text="Celebrity fashion week recap", label=LABEL_NON_TECHNICAL),
    ]


@pytest.fixture(autouse=True)
def _fresh_classifier():
    reset_classifier()
    reset_classification_stats()
    yield
    reset_classifier()
    reset_classification_stats()
