"""
Exceptions raised by wavpitch.

Everything derives from PitchAnalysisError. Unvoiced windows and empty
scans are not errors and never raise; they surface as NaN frequencies or
empty statistics.
"""

from typing import Any, Dict, Optional


class PitchAnalysisError(Exception):
    """Base exception; ``details`` holds structured context for logs."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        context = {k: v for k, v in (self.details or {}).items() if v is not None}
        if not context:
            return self.message
        fields = ", ".join(f"{k}={v}" for k, v in context.items())
        return f"{self.message} [{fields}]"


class AudioLoadError(PitchAnalysisError):
    """An audio file could not be read or decoded."""

    def __init__(self, message: str, file_path: Optional[str] = None, **details: Any):
        super().__init__(message, {"file_path": file_path, **details})
        self.file_path = file_path


class UnsupportedFormatError(AudioLoadError):
    """The file suffix is not one the loader decodes."""

    def __init__(self, message: str, format: Optional[str] = None):
        super().__init__(message, format=format)
        self.format = format


class FileTooLargeError(AudioLoadError):
    """The file is bigger than the loader's size limit."""

    def __init__(self, message: str, file_size: Optional[int] = None, max_size: Optional[int] = None):
        super().__init__(message, file_size=file_size, max_size=max_size)
        self.file_size = file_size
        self.max_size = max_size


class AnalysisError(PitchAnalysisError):
    """A buffer operation or frequency scan cannot proceed."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, {
            "stage": stage,
            "cause": repr(original_error) if original_error is not None else None,
        })
        self.stage = stage
        self.original_error = original_error


class ConfigurationError(PitchAnalysisError):
    """A configuration file or value is missing or invalid."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message, {"config_key": config_key})
        self.config_key = config_key


class CacheError(PitchAnalysisError):
    """The stats cache was used with a bad key or value."""

    def __init__(self, message: str, operation: Optional[str] = None, key: Optional[str] = None):
        super().__init__(message, {"operation": operation, "key": key})
        self.operation = operation
        self.key = key


class StatsFormatError(PitchAnalysisError):
    """Binary frequency statistics cannot be encoded or decoded."""

    def __init__(self, message: str, offset: Optional[int] = None, expected: Optional[int] = None):
        super().__init__(message, {"offset": offset, "expected_bytes": expected})
        self.offset = offset
        self.expected = expected
