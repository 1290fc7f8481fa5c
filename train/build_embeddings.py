"""Embed the labeled corpus and write the k-NN artifact.

Usage (from the project root, with an Ollama server running):

    python -m train.build_embeddings --data data/training-data.json \
        --output artifacts/classifier_embeddings.json
"""

from __future__ import annotations
import argparse
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Sequence
import numpy as np
from sklearn.metrics.pairwise import cosine_similarity
from tqdm.auto import tqdm
from classifier.artifacts import EmbeddingMetadata, EmbeddingModel, save_embedding_model
from classifier.config import (
    DEFAULT_EMBED_MODEL,
    DEFAULT_EMBEDDINGS_PATH,
    EMBED_BATCH_SIZE,
    MAX_EMBED_CHARS,
)
from classifier.embeddings import EmbeddingProvider, OllamaEmbeddingProvider
from classifier.schemas import TrainingExample
from data.corpus import class_counts, dedupe_examples, load_examples


COLOR_RESET = "\033[0m"
COLOR_GREEN = "\033[92m"
COLOR_CYAN = "\033[96m"

STORED_TEXT_CHARS = 100


def compute_centroid(embeddings: np.ndarray) -> np.ndarray:
    if embeddings.shape[0] == 0:
        return np.zeros(0)

    return embeddings.mean(axis=0)


def centroid_accuracy(
    embeddings: np.ndarray, labels: np.ndarray, tech: np.ndarray, non_tech: np.ndarray
) -> float:
    """Training accuracy of the nearest-centroid rule, as a sanity check."""

    if len(labels) == 0:
        return 0.0

    sims = cosine_similarity(embeddings, np.vstack([tech, non_tech]))
    preds = (sims[:, 0] > sims[:, 1]).astype(np.int32)

    return float(np.mean(preds == np.asarray(labels)))


def embed_texts(
    provider: EmbeddingProvider,
    texts: Sequence[str],
    batch_size: int = EMBED_BATCH_SIZE,
) -> List[List[float]]:
    """Embed ``texts`` in chunks of ``batch_size`` for progress reporting.

    Rate limiting between requests is left to the provider.
    """

    out: List[List[float]] = []
    progress = tqdm(total=len(texts), desc="Embedding", unit="text")

    for start in range(0, len(texts), batch_size):
        batch = list(texts[start : start + batch_size])
        out.extend(provider.embed_batch(batch))
        progress.update(len(batch))

    progress.close()

    return out


def build_embedding_model(
    examples: Sequence[TrainingExample],
    provider: EmbeddingProvider,
    model_name: str | None = None,
    max_chars: int = MAX_EMBED_CHARS,
    batch_size: int = EMBED_BATCH_SIZE,
) -> EmbeddingModel:
    texts = [example.text[:max_chars] for example in examples]
    labels = [example.y for example in examples]
    embeddings = embed_texts(provider, texts, batch_size=batch_size)

    matrix = np.asarray(embeddings, dtype=np.float64)
    label_arr = np.asarray(labels)
    tech = compute_centroid(matrix[label_arr == 1])
    non_tech = compute_centroid(matrix[label_arr == 0])

    return EmbeddingModel(
        embeddings=embeddings,
        labels=labels,
        texts=[text[:STORED_TEXT_CHARS] for text in texts],
        centroid_technical=tech.tolist(),
        centroid_non_technical=non_tech.tolist(),
        metadata=EmbeddingMetadata(
            trained_at=datetime.now(timezone.utc).isoformat(),
            num_examples=class_counts(examples),
            embedding_dim=int(matrix.shape[1]) if matrix.ndim == 2 else 0,
            model=model_name,
        ),
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Embed the labeled corpus for the k-NN content classifier."
    )

    parser.add_argument("--data", type=str, default="data/training-data.json")
    parser.add_argument("--output", type=str, default=DEFAULT_EMBEDDINGS_PATH)
    parser.add_argument("--embed-model", type=str, default=DEFAULT_EMBED_MODEL)
    parser.add_argument("--host", type=str, default=None, help="Ollama host URL.")
    parser.add_argument("--batch-size", type=int, default=EMBED_BATCH_SIZE)

    args = parser.parse_args()

    data_path = Path(args.data)

    if not data_path.is_file():
        raise SystemExit(f"Training data not found: {data_path}")

    examples = dedupe_examples(load_examples(data_path))
    counts = class_counts(examples)

    if not examples or min(counts.values()) == 0:
        raise SystemExit(f"Both classes are required, got {counts}.")

    print(f"{COLOR_GREEN}Loaded {len(examples)} examples from {data_path}.{COLOR_RESET}")

    for label, count in counts.items():
        print(f"  - {label}: {count}")

    provider = OllamaEmbeddingProvider(
        model=args.embed_model, host=args.host, batch_size=args.batch_size
    )

    print(f"{COLOR_CYAN}Embedding with '{args.embed_model}'...{COLOR_RESET}")
    model = build_embedding_model(
        examples, provider, model_name=args.embed_model, batch_size=args.batch_size
    )

    acc = centroid_accuracy(
        np.asarray(model.embeddings),
        np.asarray(model.labels),
        np.asarray(model.centroid_technical),
        np.asarray(model.centroid_non_technical),
    )
    print(f"Generated {len(model.embeddings)} embeddings (dim={model.dim}).")
    print(f"Training accuracy (centroid): {acc * 100:.1f}%")

    output_path = save_embedding_model(model, args.output)
    size_mb = output_path.stat().st_size / 1024 / 1024
    print(f"{COLOR_GREEN}Saved embeddings to {output_path} ({size_mb:.2f} MB).{COLOR_RESET}")


if __name__ == "__main__":
    main()
