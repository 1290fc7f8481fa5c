"""L2-regularized logistic regression fitted by per-example SGD.

Features are the sparse TF-IDF dictionaries from ``classifier.text``. Each
epoch visits the examples in a fresh random order and, for every example,
updates only the weights of the terms present in it:

    z     = w . x + b
    p     = sigmoid(z)
    error = p - y
    w[t] -= lr * (error * x[t] + lambda * w[t])    for t in x
    b    -= lr * error

There is no mini-batching and no learning-rate decay. All randomness (weight
initialization and shuffle order) comes from the ``numpy.random.Generator``
passed in, so a fixed seed reproduces a model exactly.
"""

from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Set
import numpy as np
from classifier.linear import predict_proba, sigmoid
from classifier.text import SparseVector, build_vocabulary, tokenize, vectorize


LEARNING_RATE = 0.3
EPOCHS = 200
L2_LAMBDA = 0.01
INIT_SCALE = 0.01
PRUNE_EPSILON = 1e-4
LOSS_EPS = 1e-12


@dataclass
class LinearFit:
    idf: Dict[str, float]
    weights: Dict[str, float]
    bias: float
    losses: List[float] = field(default_factory=list)

    def predict(self, texts: Iterable[str]) -> np.ndarray:
        probs = []

        for text in texts:
            x = vectorize(tokenize(text), self.idf)
            probs.append(predict_proba(x, self.weights, self.bias) if x else 0.0)

        return np.asarray(probs, dtype=np.float64)


def cross_entropy(prob: float, y: int) -> float:
    prob = min(max(prob, LOSS_EPS), 1.0 - LOSS_EPS)

    return -(y * math.log(prob) + (1 - y) * math.log(1.0 - prob))


def train_logistic_regression(
    X: Sequence[SparseVector],
    y: Sequence[int],
    vocabulary: Set[str],
    learning_rate: float = LEARNING_RATE,
    epochs: int = EPOCHS,
    lam: float = L2_LAMBDA,
    rng: np.random.Generator | None = None,
    losses: List[float] | None = None,
) -> tuple[Dict[str, float], float]:
    """Fit weights and bias; returns ``(weights, bias)``.

    When ``losses`` is given, the mean cross-entropy of each epoch is appended
    to it.
    """

    if len(X) != len(y):
        raise ValueError(f"{len(X)} feature vectors but {len(y)} labels")

    if rng is None:
        rng = np.random.default_rng()

    # Sorted: a seed maps to the same initial weight per term in every process.
    terms = sorted(vocabulary)
    noise = (rng.random(len(terms)) - 0.5) * INIT_SCALE
    weights: Dict[str, float] = {term: float(value) for term, value in zip(terms, noise)}
    bias = 0.0
    n = len(X)

    for _ in range(epochs):
        epoch_loss = 0.0

        for idx in rng.permutation(n):
            x = X[idx]
            target = y[idx]
            pred = sigmoid(sum(value * weights[term] for term, value in x.items()) + bias)
            epoch_loss += cross_entropy(pred, target)
            error = pred - target

            for term, value in x.items():
                w = weights[term]
                weights[term] = w - learning_rate * (error * value + lam * w)

            bias -= learning_rate * error

        if losses is not None and n:
            losses.append(epoch_loss / n)

    return weights, bias


def prune_weights(weights: Dict[str, float], epsilon: float = PRUNE_EPSILON) -> Dict[str, float]:
    return {term: value for term, value in weights.items() if abs(value) >= epsilon}


def fit_linear_model(
    texts: Sequence[str],
    y: Sequence[int],
    min_df: int = 2,
    max_df_ratio: float = 0.95,
    learning_rate: float = LEARNING_RATE,
    epochs: int = EPOCHS,
    lam: float = L2_LAMBDA,
    seed: int | None = 42,
    rng: np.random.Generator | None = None,
) -> LinearFit:
    """Tokenize, build the vocabulary on ``texts`` only, vectorize and train."""

    if rng is None:
        rng = np.random.default_rng(seed)

    docs = [tokenize(text) for text in texts]
    idf, vocabulary = build_vocabulary(docs, min_df=min_df, max_df_ratio=max_df_ratio)
    X = [vectorize(doc, idf) for doc in docs]
    losses: List[float] = []

    weights, bias = train_logistic_regression(
        X,
        list(y),
        vocabulary,
        learning_rate=learning_rate,
        epochs=epochs,
        lam=lam,
        rng=rng,
        losses=losses,
    )

    return LinearFit(idf=idf, weights=prune_weights(weights), bias=bias, losses=losses)
