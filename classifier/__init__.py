"""Technical vs. non-technical content classifier.

Ingestion and cleanup code only needs the functions re-exported here:

    from classifier import init_classifier, classify_content

    init_classifier()
    result = classify_content(title, description, body_text)
    if result.is_technical:
        ...

Calling the classify functions before ``init_classifier`` is safe and rejects
everything.
"""

from .artifacts import ArtifactError
from .combiner import (
    ContentClassifier,
    ContentItem,
    batch_classify_content,
    build_classifier,
    classify_content,
    get_classification_stats,
    get_model_info,
    init_classifier,
    is_classifier_ready,
    reset_classification_stats,
    reset_classifier,
)
from .embeddings import EmbeddingProviderError
from .schemas import ClassificationResult

__all__ = [
    "ArtifactError",
    "ClassificationResult",
    "ContentClassifier",
    "ContentItem",
    "EmbeddingProviderError",
    "batch_classify_content",
    "build_classifier",
    "classify_content",
    "get_classification_stats",
    "get_model_info",
    "init_classifier",
    "is_classifier_ready",
    "reset_classification_stats",
    "reset_classifier",
]
