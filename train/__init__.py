"""Offline training jobs for the content classifier.

This package holds the SGD logistic-regression trainer, cross-validation and
threshold calibration, and the jobs that write the linear model and embedding
artifacts loaded by the ``classifier`` runtime.
"""
