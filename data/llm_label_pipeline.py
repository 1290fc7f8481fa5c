"""Interactive CLI for LLM-assisted labeling of posts into the training format.

This script is intended to run from the project root, e.g.:

    python -m data.llm_label_pipeline

It will interactively ask for:
- A dataset identifier (for your own tracking, e.g. the feed or export name).
- A local data file path (CSV / TSV / JSON / JSONL / Parquet) to load with pandas.
- A comma-separated list of columns whose contents are concatenated into the
  post `text` (for example `title,description`).

For each row it asks a local Ollama chat model whether the post is technical /
intellectual or political / lifestyle, applies keyword refinement rules, and
appends one JSON object per line to the output file:

    {"text": "...", "label": "technical" | "non-technical", "metadata": {...}}

Labels produced here are a starting point for human review, not ground truth.
"""

from __future__ import annotations
import argparse
import json
import re
from pathlib import Path
from typing import Dict, Iterable, List, Literal
import pandas as pd
from ollama import chat
from pydantic import BaseModel, Field, ValidationError
from tqdm.auto import tqdm
from classifier.schemas import LABEL_NON_TECHNICAL, LABEL_TECHNICAL


SYSTEM_PROMPT = """
    # TASK
    You label newsletter and blog posts for a reading feed aimed at researchers and engineers.
    Given the post text (title, optionally followed by a description or body excerpt), decide
    whether the post is TECHNICAL or NON-TECHNICAL.

    # DEFINITIONS:
    1- `technical`: the post is primarily about science, engineering, software, mathematics,
        machine learning, research methods, data analysis, or other intellectual and technical
        subject matter, including essays and explainers about those topics.

    2- `non-technical`: the post is primarily about partisan politics, elections, culture-war
        topics, celebrities, lifestyle, food, travel, fashion, personal finance tips, sports,
        entertainment, or generic newsletter housekeeping ("thanks for subscribing").

    # EDGE CASES:
    - A technical-sounding headline over a political or lifestyle body is `non-technical`.
    - Policy analysis of technology (e.g. AI regulation) is `technical` only when the post
      engages with the technology itself, not just the politics around it.
    - When unsure, prefer `non-technical`.

    # OUTPUT FORMAT (IMPORTANT):
    - Return a single JSON object with keys `label` ("technical" or "non-technical") and
      `confidence` (0.0-1.0). You MAY add a `reason` string.
    - Do NOT include any other text outside of the JSON object.
"""


COLOR_RESET = "\033[0m"
COLOR_GREEN = "\033[92m"
COLOR_YELLOW = "\033[93m"
COLOR_CYAN = "\033[96m"

DEFAULT_CHAT_MODEL = "gemma3:12b"

# Below this confidence, keyword rules may override the LLM label.
REFINE_CONFIDENCE = 0.7

TECHNICAL_KEYWORDS = (
    "algorithm",
    "neural network",
    "machine learning",
    "deep learning",
    "transformer",
    "kubernetes",
    "compiler",
    "database",
    "python",
    "rust",
    "theorem",
    "proof",
    "physics",
    "genome",
    "benchmark",
    "research paper",
    "open source",
)

NON_TECHNICAL_KEYWORDS = (
    "trump",
    "biden",
    "democrat",
    "republican",
    "election",
    "senate",
    "congress",
    "maga",
    "recipe",
    "restaurant",
    "fashion",
    "horoscope",
    "celebrity",
    "wedding",
    "vacation",
    "thanks for reading",
    "subscribe for free",
)


class LabelOutput(BaseModel):
    """Structured output requested from the chat model."""

    label: Literal["technical", "non-technical"]
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reason: str | None = None


def _prompt_for_missing(prompt: str, current: str | None = None) -> str:
    if current:
        return current

    value = input(prompt).strip()

    if not value:
        raise SystemExit("Aborted: required input was empty.")

    return value


def load_table(path_str: str, columns: Iterable[str]) -> pd.DataFrame:
    """Load a tabular dataset with pandas based on file extension."""

    suffix = Path(path_str).suffix.lower()
    usecols = list(columns) if columns else None

    if suffix in {".csv", ".tsv"}:
        sep = "," if suffix == ".csv" else "\t"

        return pd.read_csv(path_str, usecols=usecols, sep=sep)

    if suffix in {".json", ".jsonl"}:
        lines = suffix == ".jsonl"

        return pd.read_json(path_str, lines=lines)

    if suffix in {".parquet"}:
        return pd.read_parquet(path_str, columns=usecols)

    raise SystemExit(
        f"Unsupported file extension '{suffix}'. Use CSV, TSV, JSON, JSONL, or Parquet."
    )


def build_text(row: pd.Series, columns: List[str]) -> str:
    """Concatenate the non-empty values of ``columns`` with single spaces."""

    parts: List[str] = []

    for col in columns:
        value = row.get(col)

        if value is None:
            continue

        try:
            if pd.isna(value):
                continue

        except (TypeError, ValueError):
            pass

        text = " ".join(str(value).split())

        if text:
            parts.append(text)

    return " ".join(parts)


def parse_label_response(content: str) -> LabelOutput:
    """Parse the model reply, falling back to a regex when it is not clean JSON."""

    try:
        return LabelOutput.model_validate_json(content)

    except ValidationError:
        pass

    match = re.search(r'"?label"?\s*[:=]\s*"?(technical|non-technical)"?', content, re.I)

    if not match:
        raise RuntimeError(f"Structured output could not be parsed. Raw content: {content!r}")

    return LabelOutput(label=match.group(1).lower(), confidence=0.5)


def call_ollama(text: str, model: str = DEFAULT_CHAT_MODEL) -> LabelOutput:
    resp = chat(
        model=model,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"Post to label:\n\n{text}"},
        ],
        format=LabelOutput.model_json_schema(),
        options={"temperature": 0},
    )

    try:
        content = resp.message.content

    except AttributeError as exc:
        raise RuntimeError(f"Unexpected Ollama response shape: {resp!r}") from exc

    return parse_label_response(content or "")


def refine_label(text: str, output: LabelOutput) -> str:
    """Snap low-confidence LLM labels to unambiguous keyword evidence.

    Non-technical keywords win over technical ones, so a political post that
    mentions an algorithm stays non-technical.
    """

    if output.confidence >= REFINE_CONFIDENCE:
        return output.label

    text_lower = text.lower()

    if any(kw in text_lower for kw in NON_TECHNICAL_KEYWORDS):
        return LABEL_NON_TECHNICAL

    if any(kw in text_lower for kw in TECHNICAL_KEYWORDS):
        return LABEL_TECHNICAL

    return output.label


def main() -> None:
    parser = argparse.ArgumentParser(
        description=(
            "Interactive LLM-based labeling pipeline that converts a local data "
            "file of posts into the classifier training JSONL format using Ollama."
        ),
    )

    parser.add_argument(
        "--dataset-id",
        type=str,
        default=None,
        help="Identifier for this dataset; stored under metadata.dataset_id.",
    )

    parser.add_argument(
        "--input-path",
        type=str,
        default=None,
        help="Path to a local CSV/TSV/JSON/JSONL/Parquet file to label.",
    )

    parser.add_argument(
        "--columns",
        type=str,
        default=None,
        help="Comma-separated list of columns concatenated into the text, e.g. title,description.",
    )

    parser.add_argument(
        "--output",
        type=str,
        default="data/labeled-posts.jsonl",
        help="Path of the JSONL file labeled rows are appended to.",
    )

    parser.add_argument("--model", type=str, default=DEFAULT_CHAT_MODEL)

    parser.add_argument(
        "--max-rows",
        type=int,
        default=None,
        help="Optional maximum number of rows to process (for testing).",
    )

    args = parser.parse_args()

    dataset_id = _prompt_for_missing("Dataset ID: ", args.dataset_id)

    input_path_str = _prompt_for_missing(
        "Local data file path (CSV/JSON/Parquet): ", args.input_path
    )

    columns_str = _prompt_for_missing(
        "Columns to use (comma-separated, e.g. title,description): ", args.columns
    )

    columns = [c.strip() for c in columns_str.split(",") if c.strip()]

    if not columns:
        raise SystemExit("No columns specified.")

    if not Path(input_path_str).is_file():
        raise SystemExit(f"Input file not found: {input_path_str}")

    df = load_table(input_path_str, columns)

    if args.max_rows is not None:
        if args.max_rows <= 0:
            raise SystemExit("max-rows must be positive.")

        df = df.head(args.max_rows)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    print(f"{COLOR_GREEN}Loaded {len(df)} rows from {input_path_str}.{COLOR_RESET}")
    print(f"{COLOR_CYAN}Labeling with '{args.model}' model...{COLOR_RESET}")

    counts: Dict[str, int] = {LABEL_TECHNICAL: 0, LABEL_NON_TECHNICAL: 0}

    with output_path.open("a", encoding="utf-8") as out_f:
        processed = 0
        failed = 0

        progress = tqdm(df.iterrows(), total=len(df), desc="Labeling", unit="row")

        for row_idx, row in progress:
            text = build_text(row, columns)

            if not text:
                failed += 1
                progress.set_postfix(processed=processed, failed=failed)

                continue

            try:
                output = call_ollama(text, model=args.model)

            except Exception as exc:
                failed += 1
                print(f"{COLOR_YELLOW}[WARN]{COLOR_RESET} LLM call failed at row {row_idx}: {exc}")
                progress.set_postfix(processed=processed, failed=failed)

                continue

            label = refine_label(text, output)
            counts[label] += 1
            processed += 1

            obj = {
                "text": text,
                "label": label,
                "metadata": {
                    "dataset_id": dataset_id,
                    "llm_label": output.label,
                    "confidence": output.confidence,
                    "refined": label != output.label,
                },
            }

            out_f.write(json.dumps(obj, ensure_ascii=False) + "\n")
            progress.set_postfix(processed=processed, failed=failed)

    print(
        f"{COLOR_GREEN}Done.{COLOR_RESET} Wrote labeled data to {output_path}. "
        f"Processed={processed}, failed={failed}, "
        f"technical={counts[LABEL_TECHNICAL]}, non-technical={counts[LABEL_NON_TECHNICAL]}."
    )


if __name__ == "__main__":
    main()
