"""Shared value types: labeled examples and classification results."""

from __future__ import annotations
from typing import Dict, List, Literal
from pydantic import BaseModel, ConfigDict


LABEL_TECHNICAL = "technical"
LABEL_NON_TECHNICAL = "non-technical"

Label = Literal["technical", "non-technical"]

MODEL_TYPE_KNN = "embedding-knn"
MODEL_TYPE_LINEAR = "tfidf-logreg"
MODEL_TYPE_NONE = "none"


def label_to_int(label: str) -> int:
    return 1 if label == LABEL_TECHNICAL else 0


def int_to_label(value: int) -> str:
    return LABEL_TECHNICAL if int(value) == 1 else LABEL_NON_TECHNICAL


class TrainingExample(BaseModel):
    """One labeled text of the training corpus."""

    model_config = ConfigDict(frozen=True)

    text: str
    label: Label

    @property
    def y(self) -> int:
        return label_to_int(self.label)


class Neighbor(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    label: Label
    similarity: float


class ClassificationResult(BaseModel):
    """Verdict for one piece of content.

    ``probability`` is the score compared against the threshold and
    ``is_technical`` is always ``probability >= threshold`` for the model that
    produced it. For combined verdicts ``title_desc_prob`` and ``body_prob``
    hold the two signals that were merged.
    """

    model_config = ConfigDict(frozen=True)

    is_technical: bool
    probability: float
    prediction: Label
    scores: Dict[str, float]
    model_type: str
    threshold: float
    title_desc_prob: float | None = None
    body_prob: float | None = None
    neighbors: List[Neighbor] | None = None
    error: str | None = None


def make_result(
    probability: float,
    threshold: float,
    scores: Dict[str, float],
    model_type: str,
    **extra: object,
) -> ClassificationResult:
    is_technical = probability >= threshold

    return ClassificationResult(
        is_technical=is_technical,
        probability=probability,
        prediction=LABEL_TECHNICAL if is_technical else LABEL_NON_TECHNICAL,
        scores=scores,
        model_type=model_type,
        threshold=threshold,
        **extra,
    )


def rejected_result(
    model_type: str = MODEL_TYPE_NONE,
    threshold: float = 0.5,
    error: str | None = None,
) -> ClassificationResult:
    """Fail-safe verdict used whenever a classification cannot be trusted."""

    return ClassificationResult(
        is_technical=False,
        probability=0.0,
        prediction=LABEL_NON_TECHNICAL,
        scores={"technical": 0.0, "non_technical": 0.0},
        model_type=model_type,
        threshold=threshold,
        error=error,
    )
