"""Typed model artifacts and their loaders.

Two artifacts are produced offline and loaded once per process:

- the linear model (``tfidf-logreg``), written by ``train.train_linear``::

    {"type": "tfidf-logreg", "version": 1, "idf": {...}, "weights": {...},
     "bias": float, "threshold": float, "metadata": {...}}

- the embedding corpus, written by ``train.build_embeddings``::

    {"version": 1, "embeddings": [[...], ...], "labels": [0/1, ...],
     "texts": [...], "metadata": {...}}

Loading validates the whole schema. A missing, unreadable or inconsistent file
raises :class:`ArtifactError` so that a process never serves classifications
from a partial model.
"""

from __future__ import annotations
import json
from pathlib import Path
from typing import Dict, List, Literal
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


ARTIFACT_VERSION = 1


class ArtifactError(ValueError):
    """Raised when a model artifact is missing, corrupt or has the wrong schema."""


class LinearModelMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    trained_at: str = Field(alias="trainedAt")
    num_examples: Dict[str, int] = Field(alias="numExamples")
    vocabulary_size: int = Field(alias="vocabularySize")
    train_accuracy: float | None = Field(default=None, alias="trainAccuracy")
    test_accuracy: float | None = Field(default=None, alias="testAccuracy")
    test_precision: float | None = Field(default=None, alias="testPrecision")
    test_recall: float | None = Field(default=None, alias="testRecall")
    test_f1: float | None = Field(default=None, alias="testF1")
    auc: float | None = None
    cv: Dict[str, float] | None = None


class LinearModel(BaseModel):
    """Trained TF-IDF + logistic regression model."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tfidf-logreg"] = "tfidf-logreg"
    version: int = ARTIFACT_VERSION
    idf: Dict[str, float]
    weights: Dict[str, float]
    bias: float
    threshold: float = Field(gt=0.0, lt=1.0)
    metadata: LinearModelMetadata

    @model_validator(mode="after")
    def _check_consistency(self) -> "LinearModel":
        if self.version != ARTIFACT_VERSION:
            raise ValueError(f"unsupported artifact version {self.version}")

        orphans = [term for term in self.weights if term not in self.idf]

        if orphans:
            raise ValueError(f"weights without idf entry: {orphans[:5]}")

        negative = [term for term, value in self.idf.items() if value < 0]

        if negative:
            raise ValueError(f"negative idf values: {negative[:5]}")

        return self


class EmbeddingMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    trained_at: str | None = Field(default=None, alias="trainedAt")
    num_examples: Dict[str, int] | None = Field(default=None, alias="numExamples")
    embedding_dim: int | None = Field(default=None, alias="embeddingDim")
    model: str | None = None


class EmbeddingModel(BaseModel):
    """Precomputed training embeddings with parallel labels (1 = technical)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    version: int = ARTIFACT_VERSION
    embeddings: List[List[float]]
    labels: List[int]
    texts: List[str] = Field(default_factory=list)
    centroid_technical: List[float] | None = Field(default=None, alias="centroidTechnical")
    centroid_non_technical: List[float] | None = Field(
        default=None, alias="centroidNonTechnical"
    )
    metadata: EmbeddingMetadata | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> "EmbeddingModel":
        if self.version != ARTIFACT_VERSION:
            raise ValueError(f"unsupported artifact version {self.version}")

        if not self.embeddings:
            raise ValueError("embeddings must not be empty")

        if len(self.embeddings) != len(self.labels):
            raise ValueError(
                f"{len(self.embeddings)} embeddings but {len(self.labels)} labels"
            )

        if self.texts and len(self.texts) != len(self.embeddings):
            raise ValueError(
                f"{len(self.embeddings)} embeddings but {len(self.texts)} texts"
            )

        dim = len(self.embeddings[0])

        if dim == 0:
            raise ValueError("embedding dimension must be positive")

        for i, vec in enumerate(self.embeddings):
            if len(vec) != dim:
                raise ValueError(f"embedding {i} has dim {len(vec)}, expected {dim}")

        bad_labels = sorted({label for label in self.labels if label not in (0, 1)})

        if bad_labels:
            raise ValueError(f"labels must be 0 or 1, got {bad_labels}")

        return self

    @property
    def dim(self) -> int:
        return len(self.embeddings[0])

    def class_counts(self) -> Dict[str, int]:
        technical = sum(self.labels)

        return {"technical": technical, "non-technical": len(self.labels) - technical}


def _read_json(path: Path) -> object:
    if not path.is_file():
        raise ArtifactError(f"Artifact not found: {path}")

    try:
        return json.loads(path.read_text(encoding="utf-8"))

    except (OSError, json.JSONDecodeError) as exc:
        raise ArtifactError(f"Could not read artifact {path}: {exc}") from exc


def load_linear_model(path: str | Path) -> LinearModel:
    path = Path(path)
    raw = _read_json(path)

    try:
        return LinearModel.model_validate(raw)

    except ValidationError as exc:
        raise ArtifactError(f"Invalid linear model artifact {path}: {exc}") from exc


def load_embedding_model(path: str | Path) -> EmbeddingModel:
    path = Path(path)
    raw = _read_json(path)

    try:
        return EmbeddingModel.model_validate(raw)

    except ValidationError as exc:
        raise ArtifactError(f"Invalid embedding artifact {path}: {exc}") from exc


def save_linear_model(model: LinearModel, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = model.model_dump(by_alias=True, exclude_none=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    return path


def save_embedding_model(model: EmbeddingModel, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = model.model_dump(by_alias=True, exclude_none=True)
    path.write_text(json.dumps(payload), encoding="utf-8")

    return path
