"""Exceptions raised by the ingestion, combination and coverage steps."""
from __future__ import annotations


class AdSpenderError(Exception):
    """Base class for all adspender failures."""


class ExtractionError(AdSpenderError, ValueError):
    """Raised when a report line does not carry two recognizable dates."""


class DateParseError(ExtractionError):
    """Raised when a date-like substring is not a valid calendar date."""


class NormalizationError(AdSpenderError, ValueError):
    """Raised when a report body cannot be turned into a table."""


class ConfigurationError(AdSpenderError, ValueError):
    """Raised when no usable root directory is configured."""


class MetadataCorruptionError(AdSpenderError, ValueError):
    """Raised when a sidecar is not a valid Metadata record."""

    def __init__(self, path, reason: str) -> None:
        super().__init__(f"Invalid metadata sidecar {path}: {reason}")
        self.path = path
        self.reason = reason


class CombineConflictError(AdSpenderError):
    """Raised when a combined output name is held by a file outside the group."""
