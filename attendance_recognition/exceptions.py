"""
Exception hierarchy for the attendance recognition service.
"""


class RecognitionError(Exception):
    """Base exception for the recognition service."""


class ConfigurationError(RecognitionError, ValueError):
    """Raised when a component is constructed with invalid settings."""


class IndexConsistencyError(RecognitionError):
    """Raised when the identity name map and vector backend diverge."""


class StoreError(RecognitionError):
    """Raised when the identity store file cannot be written."""
