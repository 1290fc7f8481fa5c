"""Decision combiner: the single entry point used by ingestion and cleanup.

Every item is scored on ``title + description``. When a body excerpt longer
than ``MIN_BODY_CHARS`` is available it is scored on its own and the two
probabilities are combined with ``min``: content is admitted only if neither
signal looks non-technical. A technical-sounding headline on top of a
political or lifestyle body is the failure this guards against.

If no classifier has been initialized, every call returns a rejected result
(``is_technical=False``, ``probability=0``) instead of raising. Broken
classification drops good content rather than admitting bad content.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Mapping
from pydantic import BaseModel, ConfigDict
from .artifacts import EmbeddingModel, load_embedding_model
from .config import (
    MAX_BODY_CHARS,
    MIN_BODY_CHARS,
    TECHNICAL_THRESHOLD,
    ClassifierSettings,
    load_settings,
)
from .embeddings import EmbeddingProvider, EmbeddingProviderError, OllamaEmbeddingProvider
from .knn import KnnClassifier
from .schemas import MODEL_TYPE_KNN, ClassificationResult, make_result, rejected_result


logger = logging.getLogger(__name__)

TITLE_PREFIX_CHARS = 60


class ContentItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str | None = None
    body_text: str | None = None


@dataclass
class ClassificationStats:
    total: int = 0
    accepted: int = 0
    rejected: int = 0
    errors: int = 0


class StatsCounter:
    """Thread-safe running counters of classification outcomes."""

    def __init__(self) -> None:
        self._stats = ClassificationStats()
        self._lock = threading.Lock()

    def record(self, result: ClassificationResult) -> None:
        with self._lock:
            self._stats.total += 1

            if result.is_technical:
                self._stats.accepted += 1

            else:
                self._stats.rejected += 1

    def record_error(self) -> None:
        with self._lock:
            self._stats.total += 1
            self._stats.errors += 1

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return asdict(self._stats)

    def reset(self) -> None:
        with self._lock:
            self._stats = ClassificationStats()


def combine_probabilities(title_desc_prob: float, body_prob: float | None) -> float:
    if body_prob is None:
        return title_desc_prob

    return min(title_desc_prob, body_prob)


def _title_prefix(title: str) -> str:
    return (title or "")[:TITLE_PREFIX_CHARS]


class ContentClassifier:
    """Combines title/description and body scores into one verdict."""

    def __init__(
        self,
        knn: KnnClassifier | None,
        threshold: float = TECHNICAL_THRESHOLD,
        k: int | None = None,
        min_body_chars: int = MIN_BODY_CHARS,
        max_body_chars: int = MAX_BODY_CHARS,
        stats: StatsCounter | None = None,
    ) -> None:
        self.knn = knn
        self.threshold = threshold
        self.k = k
        self.min_body_chars = min_body_chars
        self.max_body_chars = max_body_chars
        self.stats = stats if stats is not None else StatsCounter()

    @property
    def ready(self) -> bool:
        return self.knn is not None

    def _body_for_scoring(self, body_text: str | None) -> str | None:
        if not body_text:
            return None

        body = body_text.strip()

        if len(body) <= self.min_body_chars:
            return None

        return body[: self.max_body_chars]

    def _combine(
        self, title_desc: ClassificationResult, body: ClassificationResult | None
    ) -> ClassificationResult:
        body_prob = body.probability if body is not None else None
        probability = combine_probabilities(title_desc.probability, body_prob)
        scores = {"title_desc": title_desc.probability}

        if body_prob is not None:
            scores["body"] = body_prob

        return make_result(
            probability,
            self.threshold,
            scores=scores,
            model_type=MODEL_TYPE_KNN,
            title_desc_prob=title_desc.probability,
            body_prob=body_prob,
        )

    def _finish(self, title: str, result: ClassificationResult) -> ClassificationResult:
        self.stats.record(result)

        if not result.is_technical:
            logger.debug(
                "Rejected %r (prob=%.3f title_desc=%s body=%s)",
                _title_prefix(title),
                result.probability,
                result.title_desc_prob,
                result.body_prob,
            )

        return result

    def _not_ready(self, title: str) -> ClassificationResult:
        logger.warning(
            "Classifier not initialized, rejecting %r", _title_prefix(title)
        )

        return self._finish(title, rejected_result(threshold=self.threshold))

    def classify_content(
        self,
        title: str,
        description: str | None = None,
        body_text: str | None = None,
        k: int | None = None,
    ) -> ClassificationResult:
        """Classify one item.

        Raises :class:`EmbeddingProviderError` when the provider fails; the
        failure is counted in ``errors``.
        """

        if self.knn is None:
            return self._not_ready(title)

        k = k or self.k
        text = f"{title} {description or ''}".strip()
        body = self._body_for_scoring(body_text)
        stage = "title_desc"

        try:
            title_desc = self.knn.classify(text, k=k)
            body_result = None

            if body is not None:
                stage = "body"
                body_result = self.knn.classify(body, k=k)

        except EmbeddingProviderError as exc:
            self.stats.record_error()
            logger.error(
                "Classification failed at stage %s for %r: %s",
                stage,
                _title_prefix(title),
                exc,
            )
            raise

        return self._finish(title, self._combine(title_desc, body_result))

    def _classify_items_one_by_one(
        self, items: List[ContentItem], k: int | None
    ) -> List[ClassificationResult]:
        results: List[ClassificationResult] = []

        for item in items:
            try:
                results.append(
                    self.classify_content(item.title, item.description, item.body_text, k)
                )

            except EmbeddingProviderError as exc:
                results.append(rejected_result(MODEL_TYPE_KNN, self.threshold, error=str(exc)))

        return results

    def _classify_bodies(
        self, parsed: List[ContentItem], bodies: List[str | None], k: int | None
    ) -> tuple[Dict[int, ClassificationResult], Dict[int, str]]:
        """Body scores by item index, plus the errors of bodies that could not be scored."""

        body_idx = [i for i, body in enumerate(bodies) if body is not None]

        try:
            results = self.knn.classify_batch([bodies[i] for i in body_idx], k=k)

            return dict(zip(body_idx, results)), {}

        except EmbeddingProviderError as exc:
            logger.error(
                "Classification failed at stage batch for %d bodies, retrying one by one: %s",
                len(body_idx),
                exc,
            )

        by_item: Dict[int, ClassificationResult] = {}
        failed: Dict[int, str] = {}

        for i in body_idx:
            try:
                by_item[i] = self.knn.classify(bodies[i], k=k)

            except EmbeddingProviderError as exc:
                failed[i] = str(exc)
                logger.error(
                    "Classification failed at stage body for %r: %s",
                    _title_prefix(parsed[i].title),
                    exc,
                )

        return by_item, failed

    def batch_classify_content(
        self,
        items: Iterable[ContentItem | Mapping[str, object]],
        k: int | None = None,
    ) -> List[ClassificationResult]:
        """Classify many items, preserving order.

        Title/description texts and qualifying bodies are embedded in two
        batched provider calls. If the title batch fails, items are retried
        one at a time; if only the body batch fails, just the bodies are
        retried. An item that still fails gets a rejected result with
        ``error`` set instead of aborting the run.
        """

        parsed = [
            item if isinstance(item, ContentItem) else ContentItem.model_validate(item)
            for item in items
        ]

        if self.knn is None:
            return [self._not_ready(item.title) for item in parsed]

        k = k or self.k
        texts = [f"{item.title} {item.description or ''}".strip() for item in parsed]
        bodies = [self._body_for_scoring(item.body_text) for item in parsed]

        try:
            title_desc = self.knn.classify_batch(texts, k=k)

        except EmbeddingProviderError as exc:
            logger.error(
                "Classification failed at stage batch for %d items, retrying one by one: %s",
                len(parsed),
                exc,
            )

            return self._classify_items_one_by_one(parsed, k)

        by_item, failed = self._classify_bodies(parsed, bodies, k)
        results: List[ClassificationResult] = []

        for i, item in enumerate(parsed):
            if i in failed:
                self.stats.record_error()
                results.append(rejected_result(MODEL_TYPE_KNN, self.threshold, error=failed[i]))

                continue

            results.append(self._finish(item.title, self._combine(title_desc[i], by_item.get(i))))

        return results

    def info(self) -> dict:
        if self.knn is None:
            return {"initialized": False, "threshold": self.threshold}

        return {**self.knn.info(), "threshold": self.threshold}


def build_classifier(
    settings: ClassifierSettings | None = None,
    provider: EmbeddingProvider | None = None,
    model: EmbeddingModel | None = None,
    stats: StatsCounter | None = None,
) -> ContentClassifier:
    """Load the embedding artifact and return a ready classifier handle.

    Raises :class:`ArtifactError` if the artifact is missing or invalid.
    """

    settings = settings or load_settings()
    model = model if model is not None else load_embedding_model(settings.embeddings_path)

    if provider is None:
        provider = OllamaEmbeddingProvider(
            model=settings.embed_model,
            host=settings.ollama_host,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
        )

    knn = KnnClassifier(
        model,
        provider,
        k=settings.k,
        threshold=settings.threshold,
        production_ratio=settings.production_ratio,
    )

    return ContentClassifier(knn, threshold=settings.threshold, k=settings.k, stats=stats)


_stats = StatsCounter()
_default = ContentClassifier(None, stats=_stats)
_init_lock = threading.Lock()


def init_classifier(
    settings: ClassifierSettings | None = None,
    provider: EmbeddingProvider | None = None,
    model: EmbeddingModel | None = None,
) -> ContentClassifier:
    """Initialize the process-wide classifier once and return it.

    Concurrent callers block on a lock; only the first performs the load.
    Artifact errors propagate and leave the classifier uninitialized.
    """

    global _default

    with _init_lock:
        if _default.ready:
            return _default

        classifier = build_classifier(settings, provider, model, stats=_stats)
        _default = classifier
        logger.info(
            "Embedding classifier ready: %d examples, non-tech weight %.3f",
            classifier.knn.size,
            classifier.knn.non_tech_weight,
        )

        return _default


def reset_classifier() -> None:
    """Drop the process-wide classifier (used by tests and reloads)."""

    global _default

    with _init_lock:
        _default = ContentClassifier(None, stats=_stats)


def get_classifier() -> ContentClassifier:
    return _default


def is_classifier_ready() -> bool:
    return _default.ready


def classify_content(
    title: str,
    description: str | None = None,
    body_text: str | None = None,
    k: int | None = None,
) -> ClassificationResult:
    return _default.classify_content(title, description, body_text, k)


def batch_classify_content(
    items: Iterable[ContentItem | Mapping[str, object]], k: int | None = None
) -> List[ClassificationResult]:
    return _default.batch_classify_content(items, k)


def get_classification_stats() -> Dict[str, int]:
    return _stats.snapshot()


def reset_classification_stats() -> None:
    _stats.reset()


def get_model_info() -> dict:
    return _default.info()
