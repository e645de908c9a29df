"""
Frequency statistics for an audio clip.

A FrequencyStats holds the time-ordered samples produced by a scan together
with their aggregates (min/max/mean/std of frequency and amplitude, a
trimmed mean and the nearest equal-tempered note).
"""

import dataclasses
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional

import numpy as np

from wavpitch.utils.notes import EPSILON, auto_tune, note_name, round_half_up


@dataclass
class FrequencySample:
    """Frequency and amplitude at a timestamp (seconds)."""

    frequency: float
    amplitude: float
    time: float

    def copy(self, time: Optional[float] = None) -> "FrequencySample":
        if time is None:
            return dataclasses.replace(self)
        return dataclasses.replace(self, time=time)


class FrequencyStats:
    """
    Frequency samples of a clip plus their aggregates.

    Aggregates are only valid after update(). Samples may be added out of
    order; they are sorted by time whenever aggregates or per-frame curves
    are computed.
    """

    def __init__(self, interval: float = 0.0):
        self.interval = interval
        self.samples: List[FrequencySample] = []
        self._needs_sort = False
        self._reset_aggregates()

    def _reset_aggregates(self) -> None:
        self.duration = 0.0
        self.min_freq = 0.0
        self.max_freq = 0.0
        self.avg_freq = 0.0
        self.std_freq = 0.0
        self.avg_freq_std = 0.0
        self.tuned_freq = 0.0
        self.min_amp = 0.0
        self.max_amp = 0.0
        self.avg_amp = 0.0
        self.std_amp = 0.0

    # Samples

    def add(self, frequency: float, amplitude: float, time: float) -> FrequencySample:
        sample = FrequencySample(frequency, amplitude, time)
        self.add_sample(sample)
        return sample

    def add_sample(self, sample: FrequencySample) -> None:
        if self.samples and sample.time < self.samples[-1].time:
            self._needs_sort = True
        self.samples.append(sample)

    def add_stats(self, other: "FrequencyStats", start_time: float = 0.0) -> None:
        """Append copies of another stats' samples shifted by ``start_time``."""
        for s in other:
            self.add(s.frequency, s.amplitude, s.time + start_time)

    def add_all(self, samples: Iterable[FrequencySample]) -> None:
        for sample in samples:
            self.add_sample(sample)

    def sample(self, index: int) -> Optional[FrequencySample]:
        """Sample at ``index``, or None when out of range."""
        if 0 <= index < len(self.samples):
            return self.samples[index]
        return None

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[FrequencySample]:
        return iter(self.samples)

    @property
    def is_empty(self) -> bool:
        return not self.samples

    @property
    def start_time(self) -> float:
        self._sort_by_time()
        return self.samples[0].time if self.samples else 0.0

    def clear(self) -> None:
        """Drop all samples (aggregates are kept)."""
        self.samples.clear()
        self._needs_sort = False

    def reset(self) -> None:
        """Drop all samples and zero the aggregates."""
        self._reset_aggregates()
        self.clear()

    def copy(self) -> "FrequencyStats":
        other = FrequencyStats(self.interval)
        other.__dict__.update({k: v for k, v in self.__dict__.items() if k != 'samples'})
        other.samples = [s.copy() for s in self.samples]
        return other

    def _sort_by_time(self) -> None:
        if self._needs_sort:
            # Stable, so equal timestamps keep insertion order
            self.samples.sort(key=lambda s: s.time)
            self._needs_sort = False

    # Aggregates

    def update(self) -> None:
        """
        Recompute aggregates from the samples.

        Frequency and amplitude get min/max/mean and population standard
        deviation. ``avg_freq_std`` is the mean of the frequencies within one
        standard deviation of the mean, and ``tuned_freq`` is that value
        snapped to the nearest semitone. Empty stats zero every aggregate.
        """
        self._sort_by_time()
        self._reset_aggregates()
        if not self.samples:
            return

        freqs = np.array([s.frequency for s in self.samples], dtype=np.float64)
        amps = np.array([s.amplitude for s in self.samples], dtype=np.float64)

        self.min_freq = float(freqs.min())
        self.max_freq = float(freqs.max())
        self.min_amp = float(amps.min())
        self.max_amp = float(amps.max())
        self.avg_freq = float(freqs.mean())
        self.avg_amp = float(amps.mean())
        self.std_freq = float(freqs.std())
        self.std_amp = float(amps.std())
        self.duration = (self.samples[-1].time - self.samples[0].time) + self.interval

        # Trimmed mean, skipped when every sample is already within one std
        low = self.avg_freq - self.std_freq
        high = self.avg_freq + self.std_freq
        if self.min_freq < low or self.max_freq > high:
            within = freqs[(freqs >= low) & (freqs <= high)]
            self.avg_freq_std = float(within.mean()) if within.size else self.avg_freq
        else:
            self.avg_freq_std = self.avg_freq

        self.tuned_freq = auto_tune(self.avg_freq_std)

    def split_by_silence(self) -> List["FrequencyStats"]:
        """
        Split into groups wherever consecutive samples are more than one
        interval apart. Each group is updated before it is returned.
        """
        self._sort_by_time()
        groups: List[FrequencyStats] = []
        max_gap = self.interval + EPSILON

        current = FrequencyStats(self.interval)
        last: Optional[FrequencySample] = None
        for sample in self.samples:
            if last is not None and sample.time - last.time > max_gap:
                current.update()
                groups.append(current)
                current = FrequencyStats(self.interval)
            current.add_sample(sample)
            last = sample

        if current.samples:
            current.update()
            groups.append(current)
        return groups

    def get_amplitude_peaks(self) -> List[FrequencySample]:
        """
        The loudest sample of each run of samples louder than
        ``avg_amp + std_amp``. Requires update().
        """
        threshold = self.avg_amp + self.std_amp
        peaks: List[FrequencySample] = []
        peak: Optional[FrequencySample] = None
        for s in self.samples:
            if s.amplitude > threshold:
                if peak is None or s.amplitude > peak.amplitude:
                    peak = s
            elif peak is not None:
                peaks.append(peak)
                peak = None
        if peak is not None:
            peaks.append(peak)
        return peaks

    # Per-frame curves

    def frequency_per_frame(
        self,
        sample_rate: int,
        start_frame: Optional[int] = None,
        end_frame: Optional[int] = None,
    ) -> np.ndarray:
        """
        Frequency at every audio frame, linearly interpolated between
        adjacent samples. Without a frame range the curve covers the stats'
        own span.
        """
        return self._frame_interpolation('frequency', sample_rate, start_frame, end_frame)

    def amplitude_per_frame(
        self,
        sample_rate: int,
        start_frame: Optional[int] = None,
        end_frame: Optional[int] = None,
    ) -> np.ndarray:
        """Amplitude at every audio frame; see frequency_per_frame()."""
        return self._frame_interpolation('amplitude', sample_rate, start_frame, end_frame)

    def _frame_interpolation(
        self,
        field: str,
        sample_rate: int,
        start_frame: Optional[int],
        end_frame: Optional[int],
    ) -> np.ndarray:
        if not self.samples:
            return np.zeros(0)
        self._sort_by_time()

        num_frames = round_half_up(sample_rate * self.duration)
        if start_frame is None:
            start_frame = round_half_up(self.samples[0].time * sample_rate)
            end_frame = start_frame + num_frames
        elif end_frame is None:
            end_frame = start_frame + num_frames
        end_frame = start_frame + max(0, min(end_frame - start_frame, num_frames))

        out = np.zeros(end_frame - start_frame)
        max_gap = self.interval + EPSILON

        for i, cur in enumerate(self.samples):
            nxt = self.sample(i + 1)
            frame1 = int(math.floor(cur.time * sample_rate)) - start_frame
            frame2 = int(math.floor((cur.time + self.interval) * sample_rate)) - start_frame
            value1 = getattr(cur, field)
            if nxt is not None and nxt.time <= cur.time + max_gap:
                value2 = getattr(nxt, field)
            else:
                value2 = value1

            f1 = max(frame1, 0)
            f2 = min(frame2, len(out))
            if f2 <= f1:
                continue
            if value1 == value2:
                out[f1:f2] = value1
            else:
                t = (np.arange(f1, f2) - frame1) / (frame2 - frame1)
                out[f1:f2] = value1 * (1 - t) + value2 * t

        return out

    # Reporting

    def summary(self) -> Dict[str, Any]:
        return {
            'samples': len(self.samples),
            'interval': self.interval,
            'duration': self.duration,
            'min_frequency': self.min_freq,
            'max_frequency': self.max_freq,
            'avg_frequency': self.avg_freq,
            'avg_frequency_std': self.avg_freq_std,
            'std_frequency': self.std_freq,
            'tuned_frequency': self.tuned_freq,
            'note': note_name(self.tuned_freq),
            'min_amplitude': self.min_amp,
            'max_amplitude': self.max_amp,
            'avg_amplitude': self.avg_amp,
            'std_amplitude': self.std_amp,
        }

    def __str__(self) -> str:
        text = (
            f"Min = {round_half_up(self.min_freq)}"
            f" | Max = {round_half_up(self.max_freq)}"
            f" | Average = {round_half_up(self.avg_freq)}"
        )
        if self.avg_freq_std != self.avg_freq:
            text += f" (STD: {round_half_up(self.avg_freq_std)})"
        text += f" | Tuned = {self.tuned_freq:.2f} | Samples = {len(self.samples)}"
        return text

    def __repr__(self) -> str:
        return f"FrequencyStats(samples={len(self.samples)}, interval={self.interval})"
