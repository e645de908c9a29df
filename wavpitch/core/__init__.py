"""
Core module containing sample buffers, pitch detection, frequency scanning
and the analysis engine.

Uses lazy imports for modules that pull in audio I/O (librosa, soundfile).
"""

# Lightweight numpy-only modules - import directly
from wavpitch.core.buffer import SampleBuffer, WavSnippet
from wavpitch.core.snippets import SnippetExtractor
from wavpitch.core.pitch import PitchDetector
from wavpitch.core.stats import FrequencySample, FrequencyStats
from wavpitch.core.scanner import FrequencyReader

__all__ = [
    "SampleBuffer",
    "WavSnippet",
    "SnippetExtractor",
    "PitchDetector",
    "FrequencySample",
    "FrequencyStats",
    "FrequencyReader",
    # Heavy modules (lazy loaded)
    "AudioLoader",
    "create_audio_loader",
    "PitchAnalysisEngine",
    "PitchAnalysisResult",
    "create_analysis_engine",
    "StatsCache",
    "BatchProcessor",
    "BatchResult",
    "create_result_writer",
]


def __getattr__(name: str):
    """Lazy load modules with audio I/O dependencies."""
    if name in ("AudioLoader", "create_audio_loader"):
        from wavpitch.core.loader import AudioLoader, create_audio_loader
        return AudioLoader if name == "AudioLoader" else create_audio_loader
    elif name in ("PitchAnalysisEngine", "PitchAnalysisResult", "create_analysis_engine"):
        from wavpitch.core import engine
        return getattr(engine, name)
    elif name == "StatsCache":
        from wavpitch.core.cache import StatsCache
        return StatsCache
    elif name in ("BatchProcessor", "BatchResult"):
        from wavpitch.core.batch_processor import BatchProcessor, BatchResult
        return BatchProcessor if name == "BatchProcessor" else BatchResult
    elif name == "create_result_writer":
        from wavpitch.core.result_writer import create_result_writer
        return create_result_writer
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
