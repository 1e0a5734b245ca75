"""Domain errors raised by the analysis and aggregation logic."""

from __future__ import annotations


class AppError(Exception):
    # Base class for domain errors (intended, meaningful failures).
    pass


class AnalysisError(AppError):
    # Raised when a response analysis cannot be completed; wraps the cause.
    pass


class AggregationError(AppError):
    # Raised when marking or reverting aggregated responses fails mid-transaction.
    pass


__all__ = ["AppError", "AnalysisError", "AggregationError"]
