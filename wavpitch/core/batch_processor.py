"""
Batch scanning of audio files and directories.

Each file goes through the analysis engine in turn; with ``stats_dir`` set,
the stats of every successful scan are also written as ``.fstats`` files.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from wavpitch.core.codec import save_stats_file
from wavpitch.core.engine import PitchAnalysisEngine, PitchAnalysisResult
from wavpitch.core.loader import SUPPORTED_FORMATS
from wavpitch.utils.errors import PitchAnalysisError


# (position, total, file) before each file is scanned
BatchProgress = Callable[[int, int, Path], None]


def collect_audio_files(
    inputs: Union[Path, Iterable[Path]],
    recursive: bool = False,
    extensions: Iterable[str] = SUPPORTED_FORMATS,
) -> List[Path]:
    """
    Audio files named by ``inputs``, sorted and de-duplicated.

    Directories are expanded (one level, or all levels when ``recursive``);
    files with other suffixes and missing paths are skipped with a warning.
    """
    suffixes = {s.lower() for s in extensions}
    if isinstance(inputs, (str, Path)):
        inputs = [inputs]

    found = set()
    for entry in map(Path, inputs):
        if entry.is_dir():
            candidates = entry.rglob("*") if recursive else entry.iterdir()
            found.update(p for p in candidates if p.is_file() and p.suffix.lower() in suffixes)
        elif entry.is_file():
            if entry.suffix.lower() in suffixes:
                found.add(entry)
            else:
                logging.getLogger("batch_processor").warning(f"Skipping non-audio file: {entry}")
        else:
            logging.getLogger("batch_processor").warning(f"No such file or directory: {entry}")

    return sorted(found)


@dataclass
class BatchResult:
    """Outcome of one batch run, keyed by input file."""
    successful: Dict[Path, PitchAnalysisResult] = field(default_factory=dict)
    failed: Dict[Path, str] = field(default_factory=dict)
    exported: Dict[Path, Path] = field(default_factory=dict)
    total_files: int = 0
    total_time: float = 0.0

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def success_rate(self) -> float:
        """Percentage of files scanned without error (0 for an empty batch)."""
        return 100.0 * self.success_count / self.total_files if self.total_files else 0.0


class BatchProcessor:
    """Runs a PitchAnalysisEngine over many files."""

    def __init__(
        self,
        engine: PitchAnalysisEngine,
        stats_dir: Optional[Path] = None,
        stats_suffix: str = '.fstats',
        channel: int = 0,
        progress_callback: Optional[BatchProgress] = None,
    ):
        """
        Args:
            engine: Scans each file
            stats_dir: Where to write ``<stem><stats_suffix>`` for each scan
            stats_suffix: Suffix of exported stats files
            channel: Channel scanned in every file
            progress_callback: Called before each file
        """
        self.engine = engine
        self.stats_dir = Path(stats_dir) if stats_dir is not None else None
        self.stats_suffix = stats_suffix
        self.channel = channel
        self.progress_callback = progress_callback
        self.logger = logging.getLogger("batch_processor")

    def process(self, inputs: Union[Path, List[Path]], recursive: bool = False) -> BatchResult:
        """Scan every audio file in ``inputs`` (files and/or directories)."""
        started = time.time()
        files = collect_audio_files(inputs, recursive)
        if not files:
            self.logger.warning("Nothing to scan")
            return BatchResult()

        self.logger.info(f"Scanning {len(files)} files (channel {self.channel})")
        result = BatchResult(total_files=len(files))
        for position, file_path in enumerate(files, start=1):
            if self.progress_callback:
                self.progress_callback(position, len(files), file_path)
            self._scan_one(file_path, result)

        result.total_time = time.time() - started
        self.logger.info(
            f"Scanned {result.success_count}/{result.total_files} files "
            f"in {result.total_time:.2f}s ({len(result.exported)} exported)"
        )
        return result

    def _scan_one(self, file_path: Path, result: BatchResult) -> None:
        try:
            analysis = self.engine.analyze(file_path, self.channel)
        except (PitchAnalysisError, OSError) as e:
            self.logger.error(f"Scan failed for {file_path}: {e}")
            result.failed[file_path] = str(e)
            return

        result.successful[file_path] = analysis
        if self.stats_dir is None:
            return

        target = self.stats_dir / f"{file_path.stem}{self.stats_suffix}"
        if save_stats_file(analysis.stats, target):
            result.exported[file_path] = target
