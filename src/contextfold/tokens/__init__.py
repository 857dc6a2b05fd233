"""Token estimation."""

from contextfold.tokens.estimator import TokenEstimator

__all__ = ["TokenEstimator"]
