"""Loading and validating labeled training corpora.

A corpus is a list of ``{"text": ..., "label": "technical" | "non-technical"}``
records, stored either as a JSON array, as JSON lines, or as a table
(CSV/TSV/Parquet) with ``text`` and ``label`` columns.
"""

from __future__ import annotations
import json
from pathlib import Path
from typing import Dict, Iterable, List, Tuple
import pandas as pd
from pydantic import ValidationError
from classifier.schemas import LABEL_NON_TECHNICAL, LABEL_TECHNICAL, TrainingExample


def normalize_key(text: str) -> str:
    return " ".join(text.lower().split())


def _records_from_path(path: Path) -> List[dict]:
    suffix = path.suffix.lower()

    if suffix == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))

        if not isinstance(data, list):
            raise ValueError(f"{path}: expected a JSON array of examples")

        return data

    if suffix == ".jsonl":
        records: List[dict] = []

        with path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()

                if not line:
                    continue

                records.append(json.loads(line))

        return records

    if suffix in {".csv", ".tsv"}:
        sep = "," if suffix == ".csv" else "\t"
        df = pd.read_csv(path, sep=sep, usecols=["text", "label"])

        return df.dropna().to_dict(orient="records")

    if suffix == ".parquet":
        df = pd.read_parquet(path, columns=["text", "label"])

        return df.dropna().to_dict(orient="records")

    raise ValueError(
        f"Unsupported corpus extension '{suffix}'. Use JSON, JSONL, CSV, TSV, or Parquet."
    )


def parse_examples(records: Iterable[dict]) -> List[TrainingExample]:
    examples: List[TrainingExample] = []

    for i, record in enumerate(records):
        try:
            example = TrainingExample.model_validate(record)

        except ValidationError as exc:
            raise ValueError(f"Invalid training example at index {i}: {exc}") from exc

        if example.text.strip():
            examples.append(example)

    return examples


def load_examples(path: str | Path) -> List[TrainingExample]:
    path = Path(path)

    if not path.is_file():
        raise FileNotFoundError(f"Training data not found: {path}")

    return parse_examples(_records_from_path(path))


def save_examples(examples: Iterable[TrainingExample], path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [example.model_dump() for example in examples]
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    return path


def dedupe_examples(examples: Iterable[TrainingExample]) -> List[TrainingExample]:
    """Drop repeated texts (case/whitespace-insensitive), keeping the first."""

    seen: set[str] = set()
    out: List[TrainingExample] = []

    for example in examples:
        key = normalize_key(example.text)

        if key in seen:
            continue

        seen.add(key)
        out.append(example)

    return out


def find_label_conflicts(examples: Iterable[TrainingExample]) -> List[str]:
    """Texts that appear with both labels."""

    labels: Dict[str, set[str]] = {}

    for example in examples:
        labels.setdefault(normalize_key(example.text), set()).add(example.label)

    return sorted(text for text, seen in labels.items() if len(seen) > 1)


def class_counts(examples: Iterable[TrainingExample]) -> Dict[str, int]:
    counts = {LABEL_TECHNICAL: 0, LABEL_NON_TECHNICAL: 0}

    for example in examples:
        counts[example.label] += 1

    return counts


def to_arrays(examples: Iterable[TrainingExample]) -> Tuple[List[str], List[int]]:
    texts: List[str] = []
    labels: List[int] = []

    for example in examples:
        texts.append(example.text)
        labels.append(example.y)

    return texts, labels


def text_keys(examples: Iterable[TrainingExample]) -> set[str]:
    return {normalize_key(example.text) for example in examples}
