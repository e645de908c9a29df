"""
Scan reports: a plain-text summary or a JSON document per batch.
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from wavpitch.core.engine import PitchAnalysisResult
from wavpitch.core.stats import FrequencyStats
from wavpitch.utils.notes import note_name

RULE = "=" * 70
THIN_RULE = "-" * 70


def _sample_lines(stats: FrequencyStats) -> List[str]:
    return [f"  {s.time:8.3f}s  {s.frequency:9.2f} Hz  {s.amplitude:.3f}" for s in stats]


class ResultWriter(ABC):
    """Writes the results of one run to a single file."""

    @abstractmethod
    def write(self, results: Dict[Path, PitchAnalysisResult], output_path: Path) -> None:
        pass

    @staticmethod
    def _open(output_path: Path):
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        return open(output_path, 'w', encoding='utf-8')


class TextResultWriter(ResultWriter):
    """Human-readable report, one section per file."""

    def __init__(self, include_timestamp: bool = True, include_samples: bool = False):
        """
        Args:
            include_timestamp: Put the generation time in the header
            include_samples: List every frequency sample under each file
        """
        self.include_timestamp = include_timestamp
        self.include_samples = include_samples
        self.logger = logging.getLogger("result_writer.text")

    def format_result(self, file_path: Path, result: PitchAnalysisResult) -> List[str]:
        stats = result.stats
        cached = " (cached)" if result.from_cache else ""
        lines = [
            THIN_RULE,
            f"FILE: {file_path.name}",
            f"PATH: {file_path}",
            THIN_RULE,
            f"Audio: {result.sample_rate} Hz, {result.channels} ch, {result.duration:.3f}s (channel {result.channel})",
            f"Scanned in {result.processing_time:.3f}s{cached}",
            f"Result: {result.get_summary()}",
        ]
        if not result.has_pitch:
            return lines + [""]

        lines += [
            "",
            f"Frequency: {stats.min_freq:.1f} - {stats.max_freq:.1f} Hz, "
            f"mean {stats.avg_freq:.1f} (std {stats.std_freq:.1f}), "
            f"mean within 1 std {stats.avg_freq_std:.1f}",
            f"Tuned: {stats.tuned_freq:.2f} Hz ({note_name(stats.tuned_freq)})",
            f"Amplitude: {stats.min_amp:.3f} - {stats.max_amp:.3f}, "
            f"mean {stats.avg_amp:.3f} (std {stats.std_amp:.3f})",
            f"Samples: {len(stats)} every {stats.interval * 1000:.1f} ms",
        ]
        if self.include_samples:
            lines += _sample_lines(stats)
        return lines + [""]

    def write(self, results: Dict[Path, PitchAnalysisResult], output_path: Path) -> None:
        lines = [RULE, "WAVPITCH FREQUENCY SCAN", RULE]
        if self.include_timestamp:
            lines.append(f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}")
        lines += [f"Files: {len(results)}", ""]

        for file_path, result in results.items():
            lines += self.format_result(Path(file_path), result)
        lines.append(RULE)

        with self._open(output_path) as f:
            f.write("\n".join(lines) + "\n")
        self.logger.info(f"Wrote text report for {len(results)} files to {output_path}")


def _json_safe(value: Any) -> Any:
    # JSON has no infinity or NaN
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class JSONResultWriter(ResultWriter):
    """JSON document with one summary per file and, optionally, its samples."""

    def __init__(self, indent: int = 2, include_samples: bool = False):
        self.indent = indent
        self.include_samples = include_samples
        self.logger = logging.getLogger("result_writer.json")

    def result_to_dict(self, result: PitchAnalysisResult) -> Dict[str, Any]:
        data = result.to_dict()
        data['stats'] = {k: _json_safe(v) for k, v in data['stats'].items()}
        if self.include_samples:
            data['samples'] = [
                {'time': s.time, 'frequency': s.frequency, 'amplitude': s.amplitude}
                for s in result.stats
            ]
        return data

    def write(self, results: Dict[Path, PitchAnalysisResult], output_path: Path) -> None:
        document = {
            "generated": datetime.now().isoformat(timespec='seconds'),
            "total_files": len(results),
            "results": {str(path): self.result_to_dict(r) for path, r in results.items()},
        }
        with self._open(output_path) as f:
            json.dump(document, f, indent=self.indent, default=str)
        self.logger.info(f"Wrote JSON report for {len(results)} files to {output_path}")


WRITERS = {
    "text": TextResultWriter,
    "txt": TextResultWriter,
    "json": JSONResultWriter,
}


def create_result_writer(format: str = "text", **kwargs) -> ResultWriter:
    """
    Writer for ``format`` ("text", "txt" or "json"); kwargs go to its constructor.

    Raises:
        ValueError: Unknown format
    """
    try:
        writer_class = WRITERS[format.lower()]
    except KeyError:
        raise ValueError(f"Unknown report format {format!r}; choose from {', '.join(WRITERS)}")
    return writer_class(**kwargs)
