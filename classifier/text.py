"""Tokenization and TF-IDF features shared by training and runtime.

The same functions are used when the linear model is trained and when it is
applied, so a token produced at inference time always means the same thing as
the token the weights were fitted on.

Pipeline:

    text -> tokenize() -> unigrams ++ bigrams
    corpus of token lists -> build_vocabulary() -> (idf, vocabulary)
    token list + idf -> vectorize() -> sparse {term: tf * idf}
"""

from __future__ import annotations
import math
import re
from collections import Counter
from typing import Dict, Iterable, List, Set, Tuple


SparseVector = Dict[str, float]

STOPWORDS: frozenset[str] = frozenset(
    {
        "a",
        "an",
        "the",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "to",
        "for",
        "of",
        "with",
        "is",
        "was",
        "are",
        "were",
        "it",
        "this",
        "that",
        "be",
        "have",
        "has",
        "had",
    }
)

_NON_WORD_RE = re.compile(r"[^\w\s-]")
_WHITESPACE_RE = re.compile(r"\s+")


def tokenize_words(text: str) -> List[str]:
    """Lowercase, strip punctuation (hyphens survive) and drop noise tokens."""

    if not text:
        return []

    cleaned = _NON_WORD_RE.sub(" ", text.lower())
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()

    if not cleaned:
        return []

    return [tok for tok in cleaned.split(" ") if len(tok) > 1 and tok not in STOPWORDS]


def generate_bigrams(tokens: List[str]) -> List[str]:
    return [f"{tokens[i]}_{tokens[i + 1]}" for i in range(len(tokens) - 1)]


def tokenize(text: str) -> List[str]:
    """Return unigrams followed by adjacent-pair bigrams."""

    unigrams = tokenize_words(text)

    return unigrams + generate_bigrams(unigrams)


def document_frequencies(documents: Iterable[List[str]]) -> Tuple[Counter, int]:
    df: Counter = Counter()
    n_docs = 0

    for tokens in documents:
        n_docs += 1
        df.update(set(tokens))

    return df, n_docs


def build_vocabulary(
    documents: List[List[str]],
    min_df: int = 2,
    max_df_ratio: float = 0.95,
) -> Tuple[Dict[str, float], Set[str]]:
    """Build the pruned vocabulary and its IDF weights.

    A term is kept when ``min_df <= df <= floor(N * max_df_ratio)``. IDF is
    smoothed as ``log((N + 1) / (df + 1)) + 1`` and is only defined for kept
    terms.
    """

    if min_df < 1:
        raise ValueError("min_df must be >= 1")

    if not (0.0 < max_df_ratio <= 1.0):
        raise ValueError("max_df_ratio must be in (0, 1]")

    df, n_docs = document_frequencies(documents)
    max_df = math.floor(n_docs * max_df_ratio)

    idf: Dict[str, float] = {}

    for term, count in df.items():
        if min_df <= count <= max_df:
            idf[term] = math.log((n_docs + 1) / (count + 1)) + 1.0

    return idf, set(idf)


def term_frequencies(tokens: List[str]) -> SparseVector:
    """Sublinear term frequency ``(1 + log(count)) / len(tokens)``."""

    if not tokens:
        return {}

    length = len(tokens)

    return {
        term: (1.0 + math.log(count)) / length
        for term, count in Counter(tokens).items()
    }


def vectorize(tokens: List[str], idf: Dict[str, float]) -> SparseVector:
    """TF-IDF vector for one document; out-of-vocabulary terms are dropped."""

    tf = term_frequencies(tokens)

    return {term: value * idf[term] for term, value in tf.items() if term in idf}


def sparse_dot(x: SparseVector, weights: Dict[str, float]) -> float:
    if len(x) > len(weights):
        x, weights = weights, x

    return sum(value * weights.get(term, 0.0) for term, value in x.items())
