"""Dataset utilities

Loading labeled corpora, building held-out test sets, and LLM-assisted labeling of raw post tables into the `{"text", "label"}` format.
"""
