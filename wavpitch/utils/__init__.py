"""
Utility modules for configuration, logging, error handling and note math.
"""

from wavpitch.utils.errors import (
    PitchAnalysisError,
    AudioLoadError,
    UnsupportedFormatError,
    FileTooLargeError,
    AnalysisError,
    ConfigurationError,
    CacheError,
    StatsFormatError,
)
from wavpitch.utils.logging import get_logger, setup_logging, JSONFormatter
from wavpitch.utils.config import ConfigManager, load_config

__all__ = [
    "PitchAnalysisError",
    "AudioLoadError",
    "UnsupportedFormatError",
    "FileTooLargeError",
    "AnalysisError",
    "ConfigurationError",
    "CacheError",
    "StatsFormatError",
    "get_logger",
    "setup_logging",
    "JSONFormatter",
    "ConfigManager",
    "load_config",
]
