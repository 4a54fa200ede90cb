"""
Errors raised by the analysis engine.

Malformed variant metadata and small samples are not errors; they are
recovered locally and reported as warnings on the affected records.
"""


class ExamStatsError(Exception):
    """Base class for analysis engine errors."""


class NoResponsesError(ExamStatsError):
    """Raised when there is nothing to analyze."""

    def __init__(self, message: str = "No student responses found for analysis."):
        super().__init__(message)


class InvalidConfigError(ExamStatsError, ValueError):
    """Raised for analysis settings outside their valid range."""
