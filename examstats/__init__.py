"""Exam psychometric and integrity analysis engine."""

__version__ = "1.0.0"
