"""Embedding provider used by the k-NN classifier.

Any object with ``embed(text)`` and ``embed_batch(texts)`` satisfies the
contract. The default implementation talks to a local Ollama server through
the official Python SDK. Callers truncate input before embedding.
"""

from __future__ import annotations
import logging
import threading
import time
from typing import Callable, List, Protocol, Sequence
import httpx
from ollama import Client, ResponseError
from .config import (
    DEFAULT_EMBED_MODEL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
    EMBED_BATCH_SIZE,
    INTER_BATCH_DELAY,
)


logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class EmbeddingProviderError(RuntimeError):
    """The provider could not return embeddings for a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> List[float]: ...

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]: ...


class Throttle(Protocol):
    def wait(self) -> None: ...


class FixedDelayThrottle:
    """Sleeps a fixed interval between consecutive batches."""

    def __init__(self, delay: float = INTER_BATCH_DELAY, sleep: Callable[[float], None] = time.sleep) -> None:
        self.delay = delay
        self._sleep = sleep

    def wait(self) -> None:
        if self.delay > 0:
            self._sleep(self.delay)


class TokenBucketThrottle:
    """Allows ``rate`` requests per second with bursts up to ``capacity``."""

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0 or capacity < 1:
            raise ValueError("rate must be positive and capacity at least 1")

        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated = clock()
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            now = self._clock()
            self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.rate)
            self._updated = now

            if self._tokens >= 1.0:
                self._tokens -= 1.0

                return

            deficit = (1.0 - self._tokens) / self.rate
            self._sleep(deficit)
            self._tokens = 0.0
            self._updated = self._clock()


class OllamaEmbeddingProvider:
    """Embeds text with an Ollama embedding model.

    Requests time out after ``timeout`` seconds. Rate-limit (429) and server
    (5xx) responses, timeouts and connection failures are retried up to
    ``max_retries`` times with exponential backoff. Batches are split into
    chunks of ``batch_size`` and sent one after another. ``throttle`` is
    consulted before every batch request except the first this provider
    sends, so consecutive ``embed_batch`` calls are paced as well.
    """

    def __init__(
        self,
        model: str = DEFAULT_EMBED_MODEL,
        host: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff: float = 0.5,
        batch_size: int = EMBED_BATCH_SIZE,
        throttle: Throttle | None = None,
        client: Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")

        self.model = model
        self.max_retries = max_retries
        self.backoff = backoff
        self.batch_size = batch_size
        self.throttle = throttle if throttle is not None else FixedDelayThrottle(sleep=sleep)
        self._client = client if client is not None else Client(host=host, timeout=timeout)
        self._sleep = sleep
        self._batches_sent = 0

    def _request(self, inputs: List[str]) -> List[List[float]]:
        last_error: EmbeddingProviderError | None = None

        for attempt in range(self.max_retries + 1):
            try:
                resp = self._client.embed(model=self.model, input=inputs)
                embeddings = [list(vec) for vec in resp.embeddings]

                if len(embeddings) != len(inputs):
                    raise EmbeddingProviderError(
                        f"Provider returned {len(embeddings)} embeddings for {len(inputs)} inputs"
                    )

                return embeddings

            except ResponseError as exc:
                status = getattr(exc, "status_code", None)
                last_error = EmbeddingProviderError(
                    f"Embedding request failed ({status}): {exc}", status_code=status
                )

                if status not in RETRYABLE_STATUS:
                    raise last_error from exc

            except (httpx.TransportError, ConnectionError) as exc:
                last_error = EmbeddingProviderError(f"Embedding request failed: {exc}")

            if attempt < self.max_retries:
                delay = self.backoff * (2**attempt)
                logger.warning(
                    "Embedding request failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1,
                    self.max_retries + 1,
                    delay,
                    last_error,
                )
                self._sleep(delay)

        assert last_error is not None
        raise last_error

    def embed(self, text: str) -> List[float]:
        return self._request([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        texts = list(texts)
        out: List[List[float]] = []

        for start in range(0, len(texts), self.batch_size):
            if self._batches_sent:
                self.throttle.wait()

            self._batches_sent += 1
            out.extend(self._request(texts[start : start + self.batch_size]))

        return out
