from __future__ import annotations
import argparse
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence
import numpy as np
from sklearn.metrics import (
    accuracy_score,
    f1_score,
    precision_score,
    recall_score,
    roc_auc_score,
)
from sklearn.model_selection import StratifiedKFold
from classifier.artifacts import ArtifactError, load_linear_model
from classifier.linear import LinearClassifier
from data.corpus import load_examples, to_arrays
from .sgd import EPOCHS, L2_LAMBDA, LEARNING_RATE, fit_linear_model


THRESHOLD_START = 0.10
THRESHOLD_STOP = 0.90
THRESHOLD_STEP = 0.05


@dataclass(frozen=True)
class ThresholdChoice:
    threshold: float
    precision: float
    recall: float
    f1: float


@dataclass
class FoldResult:
    fold: int
    threshold: float
    accuracy: float
    precision: float
    recall: float
    f1: float
    auc: float
    support: int


@dataclass
class CrossValidationResult:
    folds: List[FoldResult]
    mean: Dict[str, float]
    oof_probabilities: np.ndarray = field(repr=False)
    labels: np.ndarray = field(repr=False)


def threshold_grid(
    start: float = THRESHOLD_START,
    stop: float = THRESHOLD_STOP,
    step: float = THRESHOLD_STEP,
) -> np.ndarray:
    n_steps = int(round((stop - start) / step))

    return np.round(start + step * np.arange(n_steps + 1), 4)


def confusion_counts(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, int]:
    return {
        "tp": int(np.sum((y_pred == 1) & (y_true == 1))),
        "fp": int(np.sum((y_pred == 1) & (y_true == 0))),
        "tn": int(np.sum((y_pred == 0) & (y_true == 0))),
        "fn": int(np.sum((y_pred == 0) & (y_true == 1))),
    }


def precision_recall_f1(tp: int, fp: int, fn: int) -> tuple[float, float, float]:
    precision = tp / (tp + fp) if tp + fp else 0.0
    recall = tp / (tp + fn) if tp + fn else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0

    return precision, recall, f1


def find_optimal_threshold(
    y_true: Sequence[int],
    probabilities: Sequence[float],
    thresholds: np.ndarray | None = None,
) -> ThresholdChoice:
    """Sweep thresholds and keep the first one with the highest F1."""

    y = np.asarray(y_true, dtype=np.int32)
    probs = np.asarray(probabilities, dtype=np.float64)
    grid = threshold_grid() if thresholds is None else thresholds

    best = ThresholdChoice(threshold=float(grid[0]), precision=0.0, recall=0.0, f1=-1.0)

    for threshold in grid:
        counts = confusion_counts(y, (probs >= threshold).astype(np.int32))
        precision, recall, f1 = precision_recall_f1(counts["tp"], counts["fp"], counts["fn"])

        if f1 > best.f1:
            best = ThresholdChoice(float(threshold), precision, recall, f1)

    return best


def compute_auc(y_true: Sequence[int], probabilities: Sequence[float]) -> float:
    """Area under the ROC curve; 0.5 when only one class is present."""

    y = np.asarray(y_true, dtype=np.int32)
    probs = np.asarray(probabilities, dtype=np.float64)

    if np.unique(y).size < 2:
        return 0.5

    return float(roc_auc_score(y, probs))


def binary_metrics(
    y_true: Sequence[int], probabilities: Sequence[float], threshold: float
) -> Dict[str, object]:
    y = np.asarray(y_true, dtype=np.int32)
    probs = np.asarray(probabilities, dtype=np.float64)
    y_pred = (probs >= threshold).astype(np.int32)

    metrics: Dict[str, object] = {
        "threshold": float(threshold),
        "support": int(y.shape[0]),
        "positives": int(np.sum(y)),
        "accuracy": float(accuracy_score(y, y_pred)),
        "precision": float(precision_score(y, y_pred, zero_division=0)),
        "recall": float(recall_score(y, y_pred, zero_division=0)),
        "f1": float(f1_score(y, y_pred, zero_division=0)),
        "auc": compute_auc(y, probs),
    }
    metrics.update(confusion_counts(y, y_pred))

    return metrics


def k_fold_cross_validate(
    texts: Sequence[str],
    y: Sequence[int],
    k: int = 5,
    seed: int = 42,
    min_df: int = 2,
    max_df_ratio: float = 0.95,
    learning_rate: float = LEARNING_RATE,
    epochs: int = EPOCHS,
    lam: float = L2_LAMBDA,
) -> CrossValidationResult:
    """k-fold cross-validation of the full feature + training pipeline.

    Each fold builds its own vocabulary and IDF from its training part and
    trains from scratch, so nothing from the held-out fold leaks into the
    model. The threshold used to score a fold is the one that is optimal on
    that fold's own predictions.
    """

    if k < 2:
        raise ValueError("k must be at least 2")

    labels = np.asarray(y, dtype=np.int32)
    texts = list(texts)

    if labels.shape[0] != len(texts):
        raise ValueError(f"{len(texts)} texts but {labels.shape[0]} labels")

    splitter = StratifiedKFold(n_splits=k, shuffle=True, random_state=seed)
    oof = np.zeros(labels.shape[0], dtype=np.float64)
    folds: List[FoldResult] = []

    for fold, (train_idx, test_idx) in enumerate(splitter.split(np.zeros(len(texts)), labels)):
        fit = fit_linear_model(
            [texts[i] for i in train_idx],
            labels[train_idx].tolist(),
            min_df=min_df,
            max_df_ratio=max_df_ratio,
            learning_rate=learning_rate,
            epochs=epochs,
            lam=lam,
            seed=seed + fold,
        )

        probs = fit.predict([texts[i] for i in test_idx])
        oof[test_idx] = probs
        y_test = labels[test_idx]

        choice = find_optimal_threshold(y_test, probs)
        metrics = binary_metrics(y_test, probs, choice.threshold)

        folds.append(
            FoldResult(
                fold=fold,
                threshold=choice.threshold,
                accuracy=float(metrics["accuracy"]),
                precision=float(metrics["precision"]),
                recall=float(metrics["recall"]),
                f1=float(metrics["f1"]),
                auc=float(metrics["auc"]),
                support=int(metrics["support"]),
            )
        )

    mean = {
        name: float(np.mean([getattr(f, name) for f in folds]))
        for name in ("accuracy", "precision", "recall", "f1", "auc", "threshold")
    }

    return CrossValidationResult(folds=folds, mean=mean, oof_probabilities=oof, labels=labels)


def probability_distribution(
    probabilities: Sequence[float], thresholds: Sequence[float] = (0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9)
) -> Dict[float, int]:
    """How many items score at or above each threshold."""

    probs = np.asarray(probabilities, dtype=np.float64)

    return {float(t): int(np.sum(probs >= t)) for t in thresholds}


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Evaluate a trained linear model artifact on a labeled corpus."
    )

    parser.add_argument(
        "--data",
        type=str,
        default="data/training-data.json",
        help="Labeled corpus (JSON, JSONL, CSV, TSV or Parquet).",
    )

    parser.add_argument(
        "--model",
        type=str,
        default="artifacts/classifier_model.json",
        help="Path to the linear model artifact.",
    )

    parser.add_argument(
        "--output",
        type=str,
        default="artifacts/classifier_eval.json",
        help="Where to write the metrics JSON.",
    )

    parser.add_argument(
        "--max-rows",
        type=int,
        default=None,
        help="Optional cap on number of rows evaluated.",
    )

    args = parser.parse_args()

    data_path = Path(args.data)
    output_path = Path(args.output)

    if not data_path.is_file():
        raise SystemExit(f"Data file not found: {data_path}")

    try:
        model = load_linear_model(args.model)

    except ArtifactError as exc:
        raise SystemExit(str(exc)) from exc

    examples = load_examples(data_path)

    if args.max_rows is not None:
        examples = examples[: args.max_rows]

    if not examples:
        raise SystemExit("No valid rows loaded from data file.")

    texts, labels = to_arrays(examples)
    clf = LinearClassifier(model)
    probs = np.asarray([clf.probability(text) for text in texts], dtype=np.float64)

    shipped = binary_metrics(labels, probs, model.threshold)
    suggested = find_optimal_threshold(labels, probs)

    payload: Dict[str, object] = {
        "model": str(args.model),
        "num_rows": len(texts),
        "shipped_threshold": shipped,
        "suggested_threshold": asdict(suggested),
        "distribution": {str(t): c for t, c in probability_distribution(probs).items()},
    }

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    print(f"Evaluated {len(texts)} rows at threshold {model.threshold:.2f}.")
    print(
        f"accuracy={shipped['accuracy']:.3f} precision={shipped['precision']:.3f} "
        f"recall={shipped['recall']:.3f} f1={shipped['f1']:.3f} auc={shipped['auc']:.3f}"
    )
    print(f"Best F1 threshold on this data: {suggested.threshold:.2f} (f1={suggested.f1:.3f})")
    print(f"Wrote metrics to {output_path}.")


if __name__ == "__main__":
    main()
