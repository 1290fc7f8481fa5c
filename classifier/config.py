"""Runtime settings for the content classifier.

Values come from environment variables, optionally loaded from a ``.env`` file
in the working directory. Every setting has a default so that a bare checkout
can run the offline jobs.
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv


TECHNICAL_THRESHOLD = 0.5
DEFAULT_K = 15

# Provider input budget, in characters.
MAX_EMBED_CHARS = 500
# Body text shorter than this is not scored separately.
MIN_BODY_CHARS = 100
MAX_BODY_CHARS = 2000

EMBED_BATCH_SIZE = 50
INTER_BATCH_DELAY = 0.1

# Expected non-technical posts per technical post in production traffic.
DEFAULT_PRODUCTION_RATIO = 8.0

DEFAULT_EMBED_MODEL = "nomic-embed-text"
DEFAULT_EMBEDDINGS_PATH = "artifacts/classifier_embeddings.json"
DEFAULT_LINEAR_MODEL_PATH = "artifacts/classifier_model.json"
DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True)
class ClassifierSettings:
    embeddings_path: Path = Path(DEFAULT_EMBEDDINGS_PATH)
    linear_model_path: Path = Path(DEFAULT_LINEAR_MODEL_PATH)
    embed_model: str = DEFAULT_EMBED_MODEL
    ollama_host: str | None = None
    threshold: float = TECHNICAL_THRESHOLD
    k: int = DEFAULT_K
    production_ratio: float = DEFAULT_PRODUCTION_RATIO
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)

    if raw is None or not raw.strip():
        return default

    try:
        return float(raw)

    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)

    if raw is None or not raw.strip():
        return default

    try:
        return int(raw)

    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def load_settings(env_file: str | None = ".env") -> ClassifierSettings:
    if env_file:
        load_dotenv(env_file)

    settings = ClassifierSettings(
        embeddings_path=Path(os.getenv("TECH_FILTER_EMBEDDINGS_PATH", DEFAULT_EMBEDDINGS_PATH)),
        linear_model_path=Path(
            os.getenv("TECH_FILTER_LINEAR_MODEL_PATH", DEFAULT_LINEAR_MODEL_PATH)
        ),
        embed_model=os.getenv("TECH_FILTER_EMBED_MODEL", DEFAULT_EMBED_MODEL),
        ollama_host=os.getenv("TECH_FILTER_OLLAMA_HOST") or None,
        threshold=_env_float("TECH_FILTER_THRESHOLD", TECHNICAL_THRESHOLD),
        k=_env_int("TECH_FILTER_K", DEFAULT_K),
        production_ratio=_env_float("TECH_FILTER_PRODUCTION_RATIO", DEFAULT_PRODUCTION_RATIO),
        timeout=_env_float("TECH_FILTER_TIMEOUT", DEFAULT_TIMEOUT),
        max_retries=_env_int("TECH_FILTER_MAX_RETRIES", DEFAULT_MAX_RETRIES),
    )

    if not (0.0 < settings.threshold < 1.0):
        raise ValueError("TECH_FILTER_THRESHOLD must be between 0 and 1")

    if settings.k < 1:
        raise ValueError("TECH_FILTER_K must be positive")

    if settings.production_ratio <= 0:
        raise ValueError("TECH_FILTER_PRODUCTION_RATIO must be positive")

    return settings
