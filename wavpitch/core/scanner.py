"""
Frequency scanner.

Slides a PitchDetector across a buffer in steps of ``scan_window / num_scans``
seconds and collects a FrequencySample for every step loud enough to
analyse. Scans can be split across threads, across silence-separated
snippets, or run over many buffers at once.
"""

import logging
import math
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from wavpitch.core.buffer import SampleBuffer
from wavpitch.core.pitch import PitchDetector
from wavpitch.core.processor import WavProcessorService, WavProcessorTask
from wavpitch.core.snippets import SnippetExtractor
from wavpitch.core.stats import FrequencySample, FrequencyStats
from wavpitch.utils.notes import round_half_up


logger = logging.getLogger(__name__)


class ReadTask(WavProcessorTask):
    """Scans steps ``[first_step, last_step)`` of one buffer channel."""

    def __init__(
        self,
        reader: "FrequencyReader",
        buffer: SampleBuffer,
        channel: int,
        first_step: int,
        last_step: int,
        interval: float,
    ):
        super().__init__()
        self.reader = reader
        self.buffer = buffer
        self.channel = channel
        self.first_step = first_step
        self.last_step = last_step
        self.interval = interval
        self.results: List[FrequencySample] = []

    def process(self) -> List[FrequencySample]:
        reader = self.reader
        buffer = self.buffer
        interval = self.interval
        last_sample: Optional[FrequencySample] = None

        for step in range(self.first_step, self.last_step):
            if self.is_canceled:
                break
            time = step * interval
            peak = buffer.get_peak_amplitude(buffer.get_frame(time), buffer.get_frame(time + interval))
            if peak >= reader.min_amplitude:
                frequency = reader.detector.detect(buffer, self.channel, time, reader.scan_window)
            else:
                frequency = math.nan

            if not reader.in_range(frequency):
                if reader.fill_gaps and last_sample is not None:
                    last_sample = last_sample.copy(time=time)
                    self.results.append(last_sample)
                continue

            last_sample = FrequencySample(frequency * reader.frequency_multiplier, peak, time)
            self.results.append(last_sample)

        return self.results


class FrequencyReader:
    """
    Reads the frequency content of audio over time.

    Attributes:
        min_amplitude: Steps quieter than this are not analysed
        frequency_range: (min, max) Hz; detections outside are dropped
        frequency_multiplier: Scale applied to every kept frequency
        scan_window: Seconds of audio analysed per step
        num_scans: Steps per scan window (overlap factor, at least 1)
        fill_gaps: Repeat the previous sample where a step yields nothing
        multi_threaded: Split read() across a WavProcessorService
        max_workers: Thread count for multi-threaded reads (None = CPU count)
    """

    def __init__(
        self,
        min_amplitude: float = 0.025,
        frequency_range: Tuple[float, float] = (0.0, math.inf),
        frequency_multiplier: float = 1.0,
        scan_window: float = 0.2,
        num_scans: int = 8,
        fill_gaps: bool = False,
        multi_threaded: bool = False,
        max_workers: Optional[int] = None,
    ):
        self.min_amplitude = min_amplitude
        self.frequency_range = frequency_range
        self.frequency_multiplier = frequency_multiplier
        self.scan_window = scan_window
        self.num_scans = num_scans
        self.fill_gaps = fill_gaps
        self.multi_threaded = multi_threaded
        self.max_workers = max_workers
        self.detector = PitchDetector()
        self.logger = logging.getLogger('scanner')

    @property
    def num_scans(self) -> int:
        return self._num_scans

    @num_scans.setter
    def num_scans(self, value: int) -> None:
        self._num_scans = max(1, int(value))

    @property
    def interval(self) -> float:
        """Seconds between consecutive steps."""
        return self.scan_window / self.num_scans

    def in_range(self, frequency: float) -> bool:
        """False for NaN and for frequencies outside frequency_range."""
        low, high = self.frequency_range
        return not math.isnan(frequency) and low <= frequency <= high

    def read(self, buffer: SampleBuffer, channel: int = 0) -> FrequencyStats:
        """
        Scan one channel of a buffer.

        The last sample is repeated ``num_scans - 1`` times so the samples
        cover the final scan window. Buffers shorter than one scan window
        give empty stats.
        """
        interval = self.interval
        stats = FrequencyStats(interval)

        end_time = buffer.duration - self.scan_window
        if end_time < 0:
            return stats

        num_steps = round_half_up((end_time + interval) / interval)

        if self.multi_threaded:
            results = self._read_parallel(buffer, channel, num_steps, interval)
        else:
            task = ReadTask(self, buffer, channel, 0, num_steps, interval)
            results = task.process()

        if results:
            last = results[-1]
            for i in range(1, self.num_scans):
                results.append(last.copy(time=last.time + i * interval))

        stats.add_all(results)
        stats.update()
        return stats

    def _read_parallel(
        self,
        buffer: SampleBuffer,
        channel: int,
        num_steps: int,
        interval: float,
    ) -> List[FrequencySample]:
        with WavProcessorService(self.max_workers) as service:
            # Contiguous step ranges, one per worker
            num_tasks = max(1, min(service.num_threads, num_steps))
            per_task = math.ceil(num_steps / num_tasks) if num_steps else 0
            tasks = []
            for first in range(0, num_steps, per_task or 1):
                last = min(first + per_task, num_steps)
                tasks.append(ReadTask(self, buffer, channel, first, last, interval))

            self.logger.debug(f"Scanning {num_steps} steps in {len(tasks)} tasks")
            service.execute(tasks)

        results: List[FrequencySample] = []
        for task in tasks:
            results.extend(task.results)
        assert all(a.time <= b.time for a, b in zip(results, results[1:]))
        return results

    def read_snippets(
        self,
        buffer: SampleBuffer,
        extractor: SnippetExtractor,
        progress: Optional[Callable[[int, int], Optional[bool]]] = None,
        channel: int = 0,
    ) -> Optional[FrequencyStats]:
        """
        Scan each silence-separated snippet of a buffer.

        Sample times are relative to the start of ``buffer``.

        Args:
            buffer: Audio to scan
            extractor: Splits the buffer into snippets
            progress: Called as progress(done, total) after each snippet;
                returning False aborts the scan

        Returns:
            Combined stats, or None if aborted
        """
        snippets = extractor.split_by_silence(buffer)
        stats = FrequencyStats(self.interval)
        total = len(snippets)

        for done, snippet in enumerate(snippets, start=1):
            stats.add_stats(self.read(snippet, channel), snippet.start_time)
            if progress is not None and progress(done, total) is False:
                self.logger.info(f"Snippet scan aborted after {done}/{total} snippets")
                return None

        stats.update()
        return stats

    def read_many(self, buffers: Sequence[SampleBuffer]) -> List[FrequencyStats]:
        """
        Scan channel 0 of several buffers in parallel, one task per buffer.

        Each buffer is scanned over its whole duration with no trailing
        repeat.
        """
        interval = self.interval
        tasks = [
            ReadTask(self, buffer, 0, 0, round_half_up(buffer.duration / interval), interval)
            for buffer in buffers
        ]
        with WavProcessorService(self.max_workers) as service:
            service.execute(tasks)

        results = []
        for task in tasks:
            stats = FrequencyStats(interval)
            stats.add_all(task.results)
            stats.update()
            results.append(stats)
        return results


def create_frequency_reader(
    config: Optional[Dict[str, Any]] = None,
    max_workers: Optional[int] = None,
) -> FrequencyReader:
    """
    Factory function to create FrequencyReader from the ``scanner`` config section.
    """
    if config is None:
        config = {}

    max_frequency = config.get('max_frequency')
    return FrequencyReader(
        min_amplitude=config.get('min_amplitude', 0.025),
        frequency_range=(
            config.get('min_frequency', 0.0),
            math.inf if max_frequency is None else max_frequency,
        ),
        frequency_multiplier=config.get('frequency_multiplier', 1.0),
        scan_window=config.get('scan_window', 0.2),
        num_scans=config.get('num_scans', 8),
        fill_gaps=config.get('fill_gaps', False),
        multi_threaded=config.get('multi_threaded', False),
        max_workers=max_workers,
    )
