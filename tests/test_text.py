from __future__ import annotations
import math
from classifier.text import (
    build_vocabulary,
    generate_bigrams,
    sparse_dot,
    term_frequencies,
    tokenize,
    tokenize_words,
    vectorize,
)


def test_tokenize_words_lowercases_and_drops_stopwords_and_short_tokens():
    assert tokenize_words("The Quick, brown fox is a b!") == ["quick", "brown", "fox"]


def test_tokenize_words_keeps_hyphenated_terms():
    assert tokenize_words("State-of-the-art GPU") == ["state-of-the-art", "gpu"]


def test_tokenize_words_empty_and_punctuation_only():
    assert tokenize_words("") == []
    assert tokenize_words("!!! ... ???") == []


def test_tokenize_appends_bigrams_after_unigrams():
    assert tokenize("Rust compiler internals") == [
        "rust",
        "compiler",
        "internals",
        "rust_compiler",
        "compiler_internals",
    ]


def test_generate_bigrams_single_token():
    assert generate_bigrams(["solo"]) == []


def test_build_vocabulary_applies_document_frequency_bounds():
    docs = [["common", "pair"], ["common", "rare"], ["common", "pair"]]

    idf, vocabulary = build_vocabulary(docs, min_df=2, max_df_ratio=0.95)

    # "common" is in all 3 docs, above floor(3 * 0.95) = 2.
    assert vocabulary == {"pair"}
    assert idf["pair"] == math.log(4 / 3) + 1


def test_idf_is_positive_for_kept_terms():
    docs = [["a1", "b1"], ["a1", "c1"], ["b1", "c1"], ["a1"]]

    idf, _ = build_vocabulary(docs, min_df=1, max_df_ratio=1.0)

    assert all(value > 0 for value in idf.values())


def test_term_frequencies_are_sublinear_and_length_normalized():
    tf = term_frequencies(["gpu", "gpu", "kernel"])

    assert tf["gpu"] == (1 + math.log(2)) / 3
    assert tf["kernel"] == 1 / 3
    assert term_frequencies([]) == {}


def test_vectorize_drops_out_of_vocabulary_terms():
    x = vectorize(["gpu", "kernel", "unknown"], {"gpu": 2.0, "kernel": 1.0})

    assert set(x) == {"gpu", "kernel"}
    assert x["gpu"] == 2.0 / 3


def test_sparse_dot_ignores_missing_terms():
    assert sparse_dot({"a": 2.0, "b": 1.0}, {"a": 0.5, "c": 9.0}) == 1.0
