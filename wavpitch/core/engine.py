"""
Pitch analysis engine.

Ties the pipeline together for files on disk: load, optionally split at
silence, scan for frequencies, cache the stats.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from wavpitch.core.cache import StatsCache, create_stats_cache, make_cache_key
from wavpitch.core.loader import AudioLoader, create_audio_loader
from wavpitch.core.scanner import FrequencyReader, create_frequency_reader
from wavpitch.core.snippets import SnippetExtractor, create_snippet_extractor
from wavpitch.core.stats import FrequencyStats
from wavpitch.utils.errors import AnalysisError, PitchAnalysisError
from wavpitch.utils.logging import create_logger_with_context
from wavpitch.utils.notes import note_name


@dataclass
class PitchAnalysisResult:
    """Scan result for one audio file."""

    file_path: Path
    file_hash: str
    stats: FrequencyStats
    processing_time: float
    sample_rate: int
    channels: int
    duration: float
    channel: int = 0
    from_cache: bool = False

    @property
    def has_pitch(self) -> bool:
        return not self.stats.is_empty

    def get_summary(self) -> str:
        if not self.has_pitch:
            return "No pitch detected"
        return (
            f"{note_name(self.stats.tuned_freq)} "
            f"({self.stats.avg_freq_std:.1f} Hz, {len(self.stats)} samples)"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file_path': str(self.file_path),
            'file_hash': self.file_hash,
            'processing_time': self.processing_time,
            'sample_rate': self.sample_rate,
            'channels': self.channels,
            'duration': self.duration,
            'channel': self.channel,
            'from_cache': self.from_cache,
            'summary': self.get_summary(),
            'stats': self.stats.summary(),
        }


class PitchAnalysisEngine:
    """
    Runs frequency scans over audio files.

    Dependencies are injected; use create_analysis_engine() to build one
    from configuration.
    """

    def __init__(
        self,
        loader: AudioLoader,
        reader: FrequencyReader,
        extractor: Optional[SnippetExtractor] = None,
        cache: Optional[StatsCache] = None,
        max_workers: int = 4,
    ):
        """
        Args:
            loader: Reads audio files
            reader: Scans buffers for frequencies
            extractor: If set, scans each silence-separated snippet separately
            cache: Optional stats cache
            max_workers: Files analysed in parallel by analyze_batch()
        """
        self.loader = loader
        self.reader = reader
        self.extractor = extractor
        self.cache = cache
        self.executor = ThreadPoolExecutor(max_workers=max_workers)
        self.logger = logging.getLogger('engine')

    def _scan_settings(self, channel: int) -> Dict[str, Any]:
        settings = {
            'channel': channel,
            'min_amplitude': self.reader.min_amplitude,
            'frequency_range': self.reader.frequency_range,
            'frequency_multiplier': self.reader.frequency_multiplier,
            'scan_window': self.reader.scan_window,
            'num_scans': self.reader.num_scans,
            'fill_gaps': self.reader.fill_gaps,
            'target_sr': self.loader.target_sr,
        }
        if self.extractor is not None:
            settings.update(
                snippet_min_amplitude=self.extractor.min_amplitude,
                snippet_min_silence=self.extractor.min_silence_duration,
                snippet_min_duration=self.extractor.min_snippet_duration,
            )
        return settings

    def analyze(self, file_path: Path, channel: int = 0) -> PitchAnalysisResult:
        """
        Scan one channel of an audio file.

        Raises:
            FileNotFoundError, AudioLoadError, UnsupportedFormatError,
            FileTooLargeError: The file could not be loaded
            AnalysisError: The channel does not exist or the scan was aborted
        """
        file_path = Path(file_path)
        log = create_logger_with_context('engine', {'file': file_path.name})
        start_time = time.time()

        log.info(f"Loading audio: {file_path}")
        buffer = self.loader.load(file_path)
        if not 0 <= channel < buffer.channels:
            raise AnalysisError(
                f"Channel {channel} out of range for {buffer.channels}-channel audio",
                stage='scan',
            )

        file_hash = AudioLoader.compute_file_hash(file_path)
        key = make_cache_key(file_hash, self._scan_settings(channel))

        stats = self.cache.get(key) if self.cache else None
        from_cache = stats is not None
        if from_cache:
            log.info(f"Cache hit: {file_hash[:8]}...")
        else:
            stats = self._scan(buffer, channel)
            if self.cache:
                self.cache.set(key, stats)

        processing_time = time.time() - start_time
        log.info(f"Scan complete in {processing_time:.3f}s: {len(stats)} samples")

        return PitchAnalysisResult(
            file_path=file_path,
            file_hash=file_hash,
            stats=stats,
            processing_time=processing_time,
            sample_rate=buffer.sample_rate,
            channels=buffer.channels,
            duration=buffer.duration,
            channel=channel,
            from_cache=from_cache,
        )

    def _scan(self, buffer, channel: int) -> FrequencyStats:
        if self.extractor is None:
            return self.reader.read(buffer, channel)

        stats = self.reader.read_snippets(buffer, self.extractor, channel=channel)
        if stats is None:
            raise AnalysisError("Snippet scan aborted", stage='scan')
        return stats

    def analyze_batch(self, file_paths: List[Path], channel: int = 0) -> List[Optional[PitchAnalysisResult]]:
        """
        Analyze several files in parallel.

        Returns:
            Results in the same order as ``file_paths``; files that failed
            are None
        """
        self.logger.info(f"Analyzing batch of {len(file_paths)} files")

        futures = {
            self.executor.submit(self.analyze, path, channel): index
            for index, path in enumerate(file_paths)
        }

        results: List[Optional[PitchAnalysisResult]] = [None] * len(file_paths)
        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = future.result()
            except (PitchAnalysisError, OSError) as e:
                self.logger.error(f"Failed to analyze {file_paths[index]}: {e}")

        return results

    def shutdown(self) -> None:
        self.logger.info("Shutting down analysis engine")
        self.executor.shutdown(wait=True)

    def __enter__(self) -> "PitchAnalysisEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()


def create_analysis_engine(config: Dict[str, Any]) -> PitchAnalysisEngine:
    """
    Factory function to create a fully configured analysis engine.

    Args:
        config: Full configuration dict (see get_default_config())
    """
    loader = create_audio_loader(config.get('audio', {}))

    performance_config = config.get('performance', {})
    max_workers = performance_config.get('max_workers', 4)

    reader = create_frequency_reader(config.get('scanner', {}), max_workers=max_workers)

    extractor = None
    snippets_config = config.get('snippets', {})
    if snippets_config.get('enabled', False):
        extractor = create_snippet_extractor(snippets_config)

    cache = None
    cache_config = config.get('cache', {})
    if cache_config.get('enabled', True):
        cache = create_stats_cache(cache_config)

    return PitchAnalysisEngine(
        loader=loader,
        reader=reader,
        extractor=extractor,
        cache=cache,
        max_workers=max_workers,
    )
