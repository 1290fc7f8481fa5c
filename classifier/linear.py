"""Runtime side of the TF-IDF + logistic regression model."""

from __future__ import annotations
import math
from typing import Dict, List, Tuple
from .artifacts import LinearModel
from .schemas import MODEL_TYPE_LINEAR, ClassificationResult, make_result
from .text import SparseVector, sparse_dot, tokenize, vectorize


SIGMOID_CLAMP = 500.0


def sigmoid(z: float) -> float:
    if z > SIGMOID_CLAMP:
        return 1.0

    if z < -SIGMOID_CLAMP:
        return 0.0

    return 1.0 / (1.0 + math.exp(-z))


def predict_proba(x: SparseVector, weights: Dict[str, float], bias: float) -> float:
    return sigmoid(sparse_dot(x, weights) + bias)


class LinearClassifier:
    """Applies a loaded :class:`LinearModel` to new text.

    Holds no mutable state, so one instance can be shared between threads.
    """

    def __init__(self, model: LinearModel) -> None:
        self.model = model

    @property
    def threshold(self) -> float:
        return self.model.threshold

    def probability(self, text: str) -> float:
        """Probability that ``text`` is technical.

        Text without a single in-vocabulary term scores 0.0 like empty text,
        not ``sigmoid(bias)``: the verdict must rest on at least one known term.
        """

        tokens = tokenize(text)

        if not tokens:
            return 0.0

        x = vectorize(tokens, self.model.idf)

        if not x:
            return 0.0

        return predict_proba(x, self.model.weights, self.model.bias)

    def classify(self, text: str) -> ClassificationResult:
        prob = self.probability(text)

        return make_result(
            prob,
            self.threshold,
            scores={"technical": prob, "non_technical": 1.0 - prob},
            model_type=MODEL_TYPE_LINEAR,
        )

    def explain(self, text: str) -> List[Tuple[str, float]]:
        """Per-token contributions ``tfidf * weight``, largest magnitude first."""

        x = vectorize(tokenize(text), self.model.idf)
        contributions = [
            (term, value * self.model.weights[term])
            for term, value in x.items()
            if term in self.model.weights
        ]
        contributions.sort(key=lambda item: abs(item[1]), reverse=True)

        return contributions

    def top_features(self, n: int = 20) -> Tuple[List[Tuple[str, float]], List[Tuple[str, float]]]:
        ranked = sorted(self.model.weights.items(), key=lambda item: item[1], reverse=True)
        technical = [item for item in ranked[:n] if item[1] > 0]
        non_technical = [item for item in reversed(ranked[-n:]) if item[1] < 0]

        return technical, non_technical
