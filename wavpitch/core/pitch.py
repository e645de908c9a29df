"""
Autocorrelation pitch detector.

Estimates the fundamental frequency of one channel over a short scan window
using the generalized autocorrelation of Tolonen & Karjalainen (2000), as
adapted by Audacity's ChangePitch effect:

1. Hann-window a block of samples.
2. FFT, take the power spectrum and compress it with a cube root.
3. FFT again; the real part is an autocorrelation-like function of lag.
4. Prune peaks: clip at zero, subtract a time-doubled copy of the curve
   (suppresses the peak one octave below the fundamental), clip again.
5. Sum the pruned curves of every block in the scan window and pick the
   strongest lag.
"""

import math
from typing import Optional

import numpy as np

from wavpitch.core.buffer import SampleBuffer
from wavpitch.core.fft import FFT
from wavpitch.utils.notes import round_half_up


DEFAULT_SCAN_TIME: float = 0.2  # seconds; long enough to hold a single note


def window_size_for(sample_rate: int) -> int:
    """
    FFT block size for a sample rate.

    Aims for about 2048 samples at 44.1 kHz (good down to about 100 Hz),
    scaled with the rate and never below 256. 44.1 kHz itself uses 4096.
    """
    if sample_rate == 44100:
        return 4096
    return max(256, int(round(2.0 ** math.floor(math.log2(sample_rate / 20.0) + 0.5))))


def compute_correlation(
    samples: np.ndarray,
    start: int,
    width: int,
    fft: FFT,
) -> Optional[np.ndarray]:
    """
    Pruned autocorrelation of ``samples[start:start + width]``.

    Blocks of ``fft.length`` samples are taken every half block and their
    autocorrelations summed before pruning.

    Returns:
        Curve of ``fft.length // 2`` values, reversed so that index
        ``half - 1 - lag`` holds the strength of ``lag``; None if ``width``
        is shorter than one block.
    """
    window_size = fft.length
    half = window_size // 2
    if width < window_size:
        return None

    processed = np.zeros(half)
    offset = 0
    blocks = 0
    while offset + window_size <= width:
        block = np.array(samples[start + offset:start + offset + window_size], dtype=np.float64)
        if len(block) < window_size:
            break
        fft.hann_window(True, block)

        real, imag = fft.apply(block)
        power = real * real + imag * imag
        real, _ = fft.apply(np.cbrt(power))

        processed += real[:half]
        offset += half
        blocks += 1

    if blocks < 1:
        return None

    # Clip at zero, then subtract the time-doubled (linearly interpolated)
    # clipped curve. Even lags read i/2 directly, odd lags average the two
    # neighbours of i/2.
    clipped = np.maximum(processed, 0.0)
    index = np.arange(half)
    lower = index // 2
    upper = np.minimum(lower + 1, half - 1)
    doubled = np.where(index % 2 == 0, clipped[lower], (clipped[lower] + clipped[upper]) / 2)
    pruned = np.maximum(clipped - doubled, 0.0)

    # Reverse and scale
    return pruned[::-1] / (window_size / 4.0)


class PitchDetector:
    """
    Estimates the fundamental frequency of a buffer region.

    Stateless apart from the default scan time, so one detector can be used
    from several threads at once.
    """

    def __init__(self, scan_time: float = DEFAULT_SCAN_TIME):
        self.scan_time = scan_time

    def detect(
        self,
        buffer: SampleBuffer,
        channel: int = 0,
        start_time: float = 0.0,
        scan_time: Optional[float] = None,
    ) -> float:
        """
        Fundamental frequency in Hz of ``channel`` starting at ``start_time``.

        Returns:
            Frequency, or NaN when no block fits in the buffer or the scan
            holds no periodic signal (silence)
        """
        if start_time >= buffer.duration:
            return math.nan

        rate = buffer.sample_rate
        window_size = window_size_for(rate)
        half = window_size // 2

        if scan_time is None or math.isnan(scan_time):
            scan_time = self.scan_time

        num_windows = max(1, round_half_up(scan_time * rate / window_size))

        start_time = min(max(0.0, start_time), buffer.duration)
        position = int(start_time * rate)

        fft = FFT.get(window_size)
        samples = buffer.samples[channel]

        accumulated = np.zeros(half)
        windows_used = 0
        for _ in range(num_windows):
            # Blocks that would run off the end are skipped, not zero-padded
            if position + window_size >= buffer.num_frames:
                break
            curve = compute_correlation(samples, position, window_size, fft)
            if curve is not None:
                accumulated += curve
                windows_used += 1
            position += window_size

        if windows_used < 1:
            return math.nan

        # First maximum, so ties favour the longest lag
        argmax = int(np.argmax(accumulated))
        if accumulated[argmax] <= 0:
            return math.nan

        lag = (half - 1) - argmax
        if lag <= 0:
            return math.nan
        return rate / lag
