"""Build and score a balanced held-out test set.

The test set is a JSON object kept next to the training corpus:

    {
      "description": "...",
      "maxFPR": 0.05,
      "minRecall": 0.6,
      "technical": ["title", ...],
      "nonTechnical": ["title", ...]
    }

Texts already present in the training corpus are excluded so that the test
set measures generalization, not memorization.

Usage:

    python -m data.build_test_set --source data/labeled-posts.jsonl \
        --exclude data/training-data.json --output data/classifier-test-data.json
"""

from __future__ import annotations
import argparse
import json
from pathlib import Path
from typing import Callable, Iterable, List
import numpy as np
from pydantic import BaseModel, ConfigDict, Field
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    f1_score,
    precision_score,
    recall_score,
)
from classifier.schemas import LABEL_NON_TECHNICAL, LABEL_TECHNICAL, TrainingExample
from .corpus import dedupe_examples, load_examples, normalize_key, text_keys


DEFAULT_SAMPLE_SIZE = 100
DEFAULT_MAX_FPR = 0.05
DEFAULT_MIN_RECALL = 0.6


class HeldOutSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str = ""
    max_fpr: float = Field(default=DEFAULT_MAX_FPR, alias="maxFPR", ge=0.0, le=1.0)
    min_recall: float = Field(default=DEFAULT_MIN_RECALL, alias="minRecall", ge=0.0, le=1.0)
    technical: List[str] = Field(default_factory=list)
    non_technical: List[str] = Field(default_factory=list, alias="nonTechnical")


class HeldOutReport(BaseModel):
    tp: int
    fp: int
    tn: int
    fn: int
    precision: float
    recall: float
    f1: float
    accuracy: float
    fpr: float
    passed: bool
    false_positives: List[str]
    false_negatives: List[str]


def build_test_set(
    candidates: Iterable[TrainingExample],
    exclude: Iterable[TrainingExample] = (),
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    seed: int = 42,
    description: str = "",
    max_fpr: float = DEFAULT_MAX_FPR,
    min_recall: float = DEFAULT_MIN_RECALL,
) -> HeldOutSet:
    """Sample up to ``sample_size`` texts per class, skipping excluded texts."""

    excluded = text_keys(exclude)
    pool = [ex for ex in dedupe_examples(candidates) if normalize_key(ex.text) not in excluded]
    rng = np.random.default_rng(seed)

    def _sample(label: str) -> List[str]:
        texts = [ex.text for ex in pool if ex.label == label]

        if len(texts) <= sample_size:
            return texts

        idx = sorted(rng.choice(len(texts), size=sample_size, replace=False).tolist())

        return [texts[i] for i in idx]

    return HeldOutSet(
        description=description,
        max_fpr=max_fpr,
        min_recall=min_recall,
        technical=_sample(LABEL_TECHNICAL),
        non_technical=_sample(LABEL_NON_TECHNICAL),
    )


def load_test_set(path: str | Path) -> HeldOutSet:
    return HeldOutSet.model_validate(json.loads(Path(path).read_text(encoding="utf-8")))


def save_test_set(test_set: HeldOutSet, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(test_set.model_dump(by_alias=True), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )

    return path


def evaluate_test_set(
    is_technical: Callable[[str], bool], test_set: HeldOutSet
) -> HeldOutReport:
    """Score a verdict function against the test set and its FPR/recall targets."""

    texts = test_set.technical + test_set.non_technical

    if not texts:
        raise ValueError("Test set has no texts.")

    y_true = np.asarray([1] * len(test_set.technical) + [0] * len(test_set.non_technical))
    y_pred = np.asarray([1 if is_technical(text) else 0 for text in texts])

    tn, fp, fn, tp = (
        int(v) for v in confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()
    )
    recall = float(recall_score(y_true, y_pred, zero_division=0))
    fpr = fp / (fp + tn) if fp + tn else 0.0

    return HeldOutReport(
        tp=tp,
        fp=fp,
        tn=tn,
        fn=fn,
        precision=float(precision_score(y_true, y_pred, zero_division=0)),
        recall=recall,
        f1=float(f1_score(y_true, y_pred, zero_division=0)),
        accuracy=float(accuracy_score(y_true, y_pred)),
        fpr=fpr,
        passed=fpr <= test_set.max_fpr and recall >= test_set.min_recall,
        false_positives=[t for t, y, p in zip(texts, y_true, y_pred) if y == 0 and p == 1],
        false_negatives=[t for t, y, p in zip(texts, y_true, y_pred) if y == 1 and p == 0],
    )


def format_confusion_matrix(report: HeldOutReport) -> str:
    lines = [
        "                 Predicted",
        "              Tech    Non-Tech",
        f"Actual Tech   {report.tp:>4}    {report.fn:>4}   (TP, FN)",
        f"Actual Non    {report.fp:>4}    {report.tn:>4}   (FP, TN)",
    ]

    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Build a balanced held-out test set from a labeled corpus."
    )

    parser.add_argument("--source", type=str, required=True, help="Labeled candidate texts.")
    parser.add_argument(
        "--exclude",
        type=str,
        action="append",
        default=[],
        help="Corpus whose texts must not appear in the test set (repeatable).",
    )
    parser.add_argument("--output", type=str, default="data/classifier-test-data.json")
    parser.add_argument("--sample-size", type=int, default=DEFAULT_SAMPLE_SIZE)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--max-fpr", type=float, default=DEFAULT_MAX_FPR)
    parser.add_argument("--min-recall", type=float, default=DEFAULT_MIN_RECALL)
    parser.add_argument("--description", type=str, default="Held-out classifier test set")

    args = parser.parse_args()

    candidates = load_examples(args.source)
    excluded: List[TrainingExample] = []

    for path in args.exclude:
        excluded.extend(load_examples(path))

    test_set = build_test_set(
        candidates,
        exclude=excluded,
        sample_size=args.sample_size,
        seed=args.seed,
        description=args.description,
        max_fpr=args.max_fpr,
        min_recall=args.min_recall,
    )

    output_path = save_test_set(test_set, args.output)

    print(
        f"Wrote {len(test_set.technical)} technical and {len(test_set.non_technical)} "
        f"non-technical texts to {output_path}."
    )


if __name__ == "__main__":
    main()
