"""k-nearest-neighbor classifier over precomputed text embeddings.

A query is embedded by the provider, compared by cosine similarity with every
training embedding, and the ``k`` most similar neighbors vote with their
similarity as weight. Non-technical votes are multiplied by
``non_tech_weight`` so that the decision reflects production class incidence
rather than the class balance of the labeled corpus:

    non_tech_weight = (prod_nontech / prod_tech) / (train_nontech / train_tech)

With a balanced corpus and eight non-technical posts per technical one in
production, a non-technical neighbor counts eight times as much as an equally
similar technical one.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Sequence
import numpy as np
from .artifacts import EmbeddingModel
from .config import DEFAULT_K, DEFAULT_PRODUCTION_RATIO, MAX_EMBED_CHARS, TECHNICAL_THRESHOLD
from .embeddings import EmbeddingProvider, EmbeddingProviderError
from .schemas import (
    MODEL_TYPE_KNN,
    ClassificationResult,
    Neighbor,
    int_to_label,
    make_result,
)


def compute_non_tech_weight(
    labels: Sequence[int], production_ratio: float = DEFAULT_PRODUCTION_RATIO
) -> float:
    """Weight for non-technical votes given the corpus labels.

    ``production_ratio`` is the expected number of non-technical items per
    technical item in production.
    """

    if production_ratio <= 0:
        raise ValueError("production_ratio must be positive")

    technical = sum(1 for label in labels if label == 1)
    non_technical = len(labels) - technical

    if technical == 0 or non_technical == 0:
        raise ValueError("training labels must contain both classes")

    return production_ratio / (non_technical / technical)


@dataclass(frozen=True)
class KnnScore:
    probability: float
    technical: float
    non_technical: float
    indices: np.ndarray
    similarities: np.ndarray


class KnnClassifier:
    """Read-only classifier handle; safe to share between threads."""

    def __init__(
        self,
        model: EmbeddingModel,
        provider: EmbeddingProvider,
        k: int = DEFAULT_K,
        threshold: float = TECHNICAL_THRESHOLD,
        non_tech_weight: float | None = None,
        production_ratio: float = DEFAULT_PRODUCTION_RATIO,
        max_chars: int = MAX_EMBED_CHARS,
    ) -> None:
        if k < 1:
            raise ValueError("k must be positive")

        self.model = model
        self.provider = provider
        self.k = k
        self.threshold = threshold
        self.max_chars = max_chars
        self.non_tech_weight = (
            non_tech_weight
            if non_tech_weight is not None
            else compute_non_tech_weight(model.labels, production_ratio)
        )

        matrix = np.asarray(model.embeddings, dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        self._unit = matrix / norms
        self._unit.setflags(write=False)
        self._labels = np.asarray(model.labels, dtype=np.int8)
        self._labels.setflags(write=False)

    @property
    def size(self) -> int:
        return int(self._labels.shape[0])

    @property
    def dim(self) -> int:
        return int(self._unit.shape[1])

    def truncate(self, text: str) -> str:
        return text[: self.max_chars]

    def similarities(self, embedding: Sequence[float]) -> np.ndarray:
        query = np.asarray(embedding, dtype=np.float64)

        if query.shape != (self.dim,):
            raise ValueError(f"query has dim {query.shape}, expected {self.dim}")

        norm = np.linalg.norm(query)

        if norm == 0:
            return np.zeros(self.size)

        return self._unit @ (query / norm)

    def score_embedding(self, embedding: Sequence[float], k: int | None = None) -> KnnScore:
        k = min(k or self.k, self.size)
        sims = self.similarities(embedding)
        # Stable sort keeps ties in corpus order.
        top = np.argsort(-sims, kind="stable")[:k]
        weights = np.clip(sims[top], 0.0, None)
        is_tech = self._labels[top] == 1

        technical = float(weights[is_tech].sum())
        non_technical = float(weights[~is_tech].sum()) * self.non_tech_weight
        total = technical + non_technical
        probability = technical / total if total > 0 else 0.0

        return KnnScore(
            probability=min(1.0, max(0.0, probability)),
            technical=technical,
            non_technical=non_technical,
            indices=top,
            similarities=sims[top],
        )

    def _score_provider_embedding(
        self, embedding: Sequence[float], k: int | None
    ) -> KnnScore:
        try:
            return self.score_embedding(embedding, k)

        except (TypeError, ValueError) as exc:
            raise EmbeddingProviderError(f"Malformed embedding from provider: {exc}") from exc

    def _to_result(self, score: KnnScore, return_neighbors: bool) -> ClassificationResult:
        neighbors = None

        if return_neighbors:
            texts = self.model.texts
            neighbors = [
                Neighbor(
                    text=texts[i] if texts else "",
                    label=int_to_label(self._labels[i]),
                    similarity=float(sim),
                )
                for i, sim in zip(score.indices, score.similarities)
            ]

        return make_result(
            score.probability,
            self.threshold,
            scores={"technical": score.technical, "non_technical": score.non_technical},
            model_type=MODEL_TYPE_KNN,
            neighbors=neighbors,
        )

    def _empty_result(self) -> ClassificationResult:
        return make_result(
            0.0,
            self.threshold,
            scores={"technical": 0.0, "non_technical": 0.0},
            model_type=MODEL_TYPE_KNN,
        )

    def classify(
        self, text: str, k: int | None = None, return_neighbors: bool = False
    ) -> ClassificationResult:
        """Embed ``text`` and vote among its nearest training examples.

        Raises :class:`EmbeddingProviderError` when the provider fails or returns
        a malformed embedding.
        """

        truncated = self.truncate(text)

        if not truncated.strip():
            return self._empty_result()

        embedding = self.provider.embed(truncated)

        return self._to_result(self._score_provider_embedding(embedding, k), return_neighbors)

    def classify_batch(
        self, texts: Sequence[str], k: int | None = None, return_neighbors: bool = False
    ) -> List[ClassificationResult]:
        """Classify many texts with one provider batch; output order matches input."""

        truncated = [self.truncate(text) for text in texts]
        pending = [i for i, text in enumerate(truncated) if text.strip()]
        results: List[ClassificationResult | None] = [None] * len(truncated)

        if pending:
            embeddings = self.provider.embed_batch([truncated[i] for i in pending])

            if len(embeddings) != len(pending):
                raise EmbeddingProviderError(
                    f"provider returned {len(embeddings)} embeddings for {len(pending)} texts"
                )

            for i, embedding in zip(pending, embeddings):
                score = self._score_provider_embedding(embedding, k)
                results[i] = self._to_result(score, return_neighbors)

        return [result if result is not None else self._empty_result() for result in results]

    def info(self) -> dict:
        return {
            "initialized": True,
            "numTrainingExamples": self.size,
            "embeddingDim": self.dim,
            "numExamples": self.model.class_counts(),
            "nonTechWeight": self.non_tech_weight,
            "k": self.k,
            "threshold": self.threshold,
            "model": getattr(self.provider, "model", None),
        }
