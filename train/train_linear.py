"""Offline training job for the TF-IDF + logistic regression model.

Steps:

1. load and deduplicate the labeled corpus;
2. k-fold cross-validation, pooling the out-of-fold probabilities to pick the
   operating threshold with the highest F1;
3. a final fit on a stratified 80/20 split, whose held-out metrics are
   reported in the artifact metadata;
4. write the artifact consumed by ``classifier.linear``.

Usage (from the project root):

    python -m train.train_linear --data data/training-data.json \
        --output artifacts/classifier_model.json

The linear model is a diagnostic and offline baseline; the runtime filter is
the embedding k-NN classifier.
"""

from __future__ import annotations
import argparse
from datetime import datetime, timezone
from pathlib import Path
from typing import List
import numpy as np
from sklearn.model_selection import train_test_split
from classifier.artifacts import LinearModel, LinearModelMetadata, save_linear_model
from classifier.linear import LinearClassifier
from data.corpus import class_counts, dedupe_examples, find_label_conflicts, load_examples, to_arrays
from .evaluate_linear import binary_metrics, find_optimal_threshold, k_fold_cross_validate
from .sgd import EPOCHS, L2_LAMBDA, LEARNING_RATE, fit_linear_model


COLOR_RESET = "\033[0m"
COLOR_GREEN = "\033[92m"
COLOR_YELLOW = "\033[93m"
COLOR_CYAN = "\033[96m"

MIN_EXAMPLES_PER_CLASS = 10

QUICK_TEST_TEXTS: List[str] = [
    "How Neural Networks Learn",
    "Machine Learning Optimization Algorithms",
    "Kubernetes Deployment Best Practices for Production",
    "Trump Policy Sparks Debate Among Republicans",
    "Best Restaurants in New York City 2026",
]


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Train the TF-IDF + logistic regression content classifier."
    )

    parser.add_argument("--data", type=str, default="data/training-data.json")
    parser.add_argument("--output", type=str, default="artifacts/classifier_model.json")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--folds", type=int, default=5)
    parser.add_argument("--test-size", type=float, default=0.2)
    parser.add_argument("--epochs", type=int, default=EPOCHS)
    parser.add_argument("--learning-rate", type=float, default=LEARNING_RATE)
    parser.add_argument("--l2", type=float, default=L2_LAMBDA)
    parser.add_argument("--min-df", type=int, default=2)
    parser.add_argument("--max-df-ratio", type=float, default=0.95)

    args = parser.parse_args()

    data_path = Path(args.data)

    if not data_path.is_file():
        raise SystemExit(f"Training data not found: {data_path}")

    if not (0.0 < args.test_size < 1.0):
        raise SystemExit("test-size must be between 0 and 1")

    examples = load_examples(data_path)
    conflicts = find_label_conflicts(examples)
    examples = dedupe_examples(examples)
    counts = class_counts(examples)

    print(f"{COLOR_GREEN}Loaded {len(examples)} examples from {data_path}.{COLOR_RESET}")

    for label, count in counts.items():
        print(f"  - {label}: {count}")

    if conflicts:
        print(
            f"{COLOR_YELLOW}[WARN]{COLOR_RESET} {len(conflicts)} texts carry both labels; "
            "the first occurrence is kept."
        )

    if min(counts.values()) < MIN_EXAMPLES_PER_CLASS:
        raise SystemExit(
            f"Need at least {MIN_EXAMPLES_PER_CLASS} examples per class, got {counts}."
        )

    texts, labels = to_arrays(examples)
    hyper = dict(
        min_df=args.min_df,
        max_df_ratio=args.max_df_ratio,
        learning_rate=args.learning_rate,
        epochs=args.epochs,
        lam=args.l2,
    )

    print(f"{COLOR_CYAN}Running {args.folds}-fold cross-validation...{COLOR_RESET}")
    cv = k_fold_cross_validate(texts, labels, k=args.folds, seed=args.seed, **hyper)

    for fold in cv.folds:
        print(
            f"  fold {fold.fold}: f1={fold.f1:.3f} auc={fold.auc:.3f} "
            f"acc={fold.accuracy:.3f} threshold={fold.threshold:.2f}"
        )

    print(
        f"  mean: f1={cv.mean['f1']:.3f} auc={cv.mean['auc']:.3f} "
        f"precision={cv.mean['precision']:.3f} recall={cv.mean['recall']:.3f}"
    )

    calibrated = find_optimal_threshold(cv.labels, cv.oof_probabilities)
    print(f"Calibrated threshold: {calibrated.threshold:.2f} (out-of-fold f1={calibrated.f1:.3f})")

    train_idx, test_idx = train_test_split(
        np.arange(len(texts)),
        test_size=args.test_size,
        random_state=args.seed,
        stratify=labels,
    )

    print(f"{COLOR_CYAN}Training final model on {len(train_idx)} examples...{COLOR_RESET}")
    fit = fit_linear_model(
        [texts[i] for i in train_idx],
        [labels[i] for i in train_idx],
        seed=args.seed,
        **hyper,
    )

    train_probs = fit.predict([texts[i] for i in train_idx])
    test_probs = fit.predict([texts[i] for i in test_idx])
    train_metrics = binary_metrics([labels[i] for i in train_idx], train_probs, calibrated.threshold)
    test_metrics = binary_metrics([labels[i] for i in test_idx], test_probs, calibrated.threshold)

    model = LinearModel(
        idf=fit.idf,
        weights=fit.weights,
        bias=fit.bias,
        threshold=calibrated.threshold,
        metadata=LinearModelMetadata(
            trained_at=datetime.now(timezone.utc).isoformat(),
            num_examples=counts,
            vocabulary_size=len(fit.idf),
            train_accuracy=train_metrics["accuracy"],
            test_accuracy=test_metrics["accuracy"],
            test_precision=test_metrics["precision"],
            test_recall=test_metrics["recall"],
            test_f1=test_metrics["f1"],
            auc=test_metrics["auc"],
            cv=cv.mean,
        ),
    )

    output_path = save_linear_model(model, args.output)

    final_loss = fit.losses[-1] if fit.losses else float("nan")
    print(
        f"Vocabulary: {len(fit.idf)} terms, {len(fit.weights)} non-zero weights, "
        f"final loss {final_loss:.4f}"
    )
    print(
        f"Held-out: acc={test_metrics['accuracy']:.3f} precision={test_metrics['precision']:.3f} "
        f"recall={test_metrics['recall']:.3f} f1={test_metrics['f1']:.3f} auc={test_metrics['auc']:.3f}"
    )
    print(f"{COLOR_GREEN}Model saved to {output_path}.{COLOR_RESET}")

    print("\n--- Quick test ---")
    clf = LinearClassifier(model)

    for text in QUICK_TEST_TEXTS:
        result = clf.classify(text)
        print(f'"{text}" => {result.prediction} (p={result.probability:.3f})')

    technical, non_technical = clf.top_features(10)
    print("\nTop technical features: " + ", ".join(f"{t} ({w:.2f})" for t, w in technical))
    print("Top non-technical features: " + ", ".join(f"{t} ({w:.2f})" for t, w in non_technical))


if __name__ == "__main__":
    main()
