"""
Compact binary format for FrequencyStats (``.fstats`` files).

All values are big-endian::

    double  duration
    double  interval
    int16   floor(min_freq)
    int16   ceil(max_freq)
    int16   avg_freq, avg_freq_std, std_freq    (quantised frequency)
    int8    min_amp, max_amp, avg_amp, std_amp  (quantised amplitude)
    int32   sample count
    per sample:
        int16   frequency   (quantised)
        int8    amplitude   (quantised)
        int32   round(time / interval)

Frequencies are stored as 16-bit fractions of the range [floor(min_freq),
ceil(max_freq)] and amplitudes as multiples of 1/256; both are written as
unsigned values reinterpreted as signed.
"""

import io
import logging
import math
import os
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from wavpitch.core.stats import FrequencyStats
from wavpitch.utils.errors import StatsFormatError
from wavpitch.utils.notes import round_half_up


FREQUENCY_STEPS = 65536
AMPLITUDE_STEPS = 256

_HEADER = struct.Struct('>ddhhhhhbbbbi')
_SAMPLE = struct.Struct('>hbi')

logger = logging.getLogger(__name__)


def to_signed16(value: int) -> int:
    return value - 65536 if value > 32767 else value


def from_signed16(value: int) -> int:
    return value + 65536 if value < 0 else value


def to_signed8(value: int) -> int:
    return value - 256 if value > 127 else value


def from_signed8(value: int) -> int:
    return value + 256 if value < 0 else value


def quantize_amplitude(amplitude: float) -> int:
    steps = round_half_up(amplitude * AMPLITUDE_STEPS)
    return to_signed8(min(max(steps, 0), AMPLITUDE_STEPS - 1))


def dequantize_amplitude(value: int) -> float:
    return from_signed8(value) / AMPLITUDE_STEPS


class FrequencyQuantizer:
    """Maps frequencies to 16-bit steps across [floor, ceil]."""

    def __init__(self, floor: int, ceil: int):
        self.floor = floor
        self.ceil = ceil
        self.range = ceil - floor

    def quantize(self, frequency: float) -> int:
        if self.range <= 0:
            return 0
        steps = round_half_up((frequency - self.floor) / self.range * FREQUENCY_STEPS)
        return to_signed16(min(max(steps, 0), FREQUENCY_STEPS - 1))

    def dequantize(self, value: int) -> float:
        return self.floor + from_signed16(value) / FREQUENCY_STEPS * self.range


@dataclass
class StatsHeader:
    """Decoded fixed-size header; samples follow it in the stream."""

    duration: float
    interval: float
    min_freq_floor: int
    max_freq_ceil: int
    avg_freq: float
    avg_freq_std: float
    std_freq: float
    min_amp: float
    max_amp: float
    avg_amp: float
    std_amp: float
    num_samples: int

    @property
    def quantizer(self) -> FrequencyQuantizer:
        return FrequencyQuantizer(self.min_freq_floor, self.max_freq_ceil)


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        offset = None
        if hasattr(stream, 'tell'):
            offset = stream.tell() - len(data)
        raise StatsFormatError(
            f"Truncated stats data while reading {what}: got {len(data)} of {size} bytes",
            offset=offset,
            expected=size,
        )
    return data


def read_header(stream: BinaryIO) -> StatsHeader:
    """Read and dequantise the header."""
    (duration, interval, floor, ceil, avg_q, avg_std_q, std_q,
     min_amp_q, max_amp_q, avg_amp_q, std_amp_q, count) = _HEADER.unpack(
        _read_exact(stream, _HEADER.size, 'header')
    )
    if count < 0:
        raise StatsFormatError(f"Negative sample count: {count}")

    quantizer = FrequencyQuantizer(floor, ceil)
    return StatsHeader(
        duration=duration,
        interval=interval,
        min_freq_floor=floor,
        max_freq_ceil=ceil,
        avg_freq=quantizer.dequantize(avg_q),
        avg_freq_std=quantizer.dequantize(avg_std_q),
        std_freq=quantizer.dequantize(std_q),
        min_amp=dequantize_amplitude(min_amp_q),
        max_amp=dequantize_amplitude(max_amp_q),
        avg_amp=dequantize_amplitude(avg_amp_q),
        std_amp=dequantize_amplitude(std_amp_q),
        num_samples=count,
    )


def read_samples(stream: BinaryIO, header: StatsHeader) -> FrequencyStats:
    """Read the samples that follow ``header`` into a new FrequencyStats."""
    stats = FrequencyStats(header.interval)
    stats.duration = header.duration
    stats.min_freq = float(header.min_freq_floor)
    stats.max_freq = float(header.max_freq_ceil)
    stats.avg_freq = header.avg_freq
    stats.avg_freq_std = header.avg_freq_std
    stats.std_freq = header.std_freq
    stats.min_amp = header.min_amp
    stats.max_amp = header.max_amp
    stats.avg_amp = header.avg_amp
    stats.std_amp = header.std_amp

    quantizer = header.quantizer
    data = _read_exact(stream, _SAMPLE.size * header.num_samples, 'samples')
    for freq_q, amp_q, step in _SAMPLE.iter_unpack(data):
        stats.add(
            quantizer.dequantize(freq_q),
            dequantize_amplitude(amp_q),
            step * header.interval,
        )
    return stats


def read_stats(stream: BinaryIO) -> FrequencyStats:
    return read_samples(stream, read_header(stream))


def decode_stats(data: bytes) -> FrequencyStats:
    return read_stats(io.BytesIO(data))


def _int16(value: int, name: str) -> int:
    if not -32768 <= value <= 32767:
        raise StatsFormatError(f"{name} {value} does not fit in 16 bits")
    return value


def _require_finite(value: float, name: str) -> None:
    if not math.isfinite(value):
        raise StatsFormatError(f"{name} is {value}; only finite samples can be encoded")


def write_stats(stats: FrequencyStats, stream: BinaryIO) -> None:
    """
    Write ``stats`` to a binary stream. Call update() first: the header
    aggregates and the frequency range come from it.

    Raises:
        StatsFormatError: A NaN or infinite sample, or a frequency outside 16 bits
    """
    for name in ('min_freq', 'max_freq', 'min_amp', 'max_amp', 'duration'):
        _require_finite(getattr(stats, name), name)

    floor = _int16(int(math.floor(stats.min_freq)), 'Minimum frequency')
    ceil = _int16(int(math.ceil(stats.max_freq)), 'Maximum frequency')
    quantizer = FrequencyQuantizer(floor, ceil)

    stream.write(_HEADER.pack(
        stats.duration,
        stats.interval,
        floor,
        ceil,
        quantizer.quantize(stats.avg_freq),
        quantizer.quantize(stats.avg_freq_std),
        quantizer.quantize(stats.std_freq),
        quantize_amplitude(stats.min_amp),
        quantize_amplitude(stats.max_amp),
        quantize_amplitude(stats.avg_amp),
        quantize_amplitude(stats.std_amp),
        len(stats),
    ))

    interval = stats.interval
    for s in stats:
        _require_finite(s.time, 'Sample time')
        step = round_half_up(s.time / interval) if interval > 0 else 0
        stream.write(_SAMPLE.pack(
            quantizer.quantize(s.frequency),
            quantize_amplitude(s.amplitude),
            step,
        ))


def encode_stats(stats: FrequencyStats) -> bytes:
    buffer = io.BytesIO()
    write_stats(stats, buffer)
    return buffer.getvalue()


def save_stats_file(stats: FrequencyStats, file_path: Path) -> bool:
    """
    Write stats to a file, replacing it atomically.

    Returns:
        True on success; failures are logged and return False
    """
    file_path = Path(file_path)
    tmp_path = file_path.with_name(file_path.name + '.tmp')
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, 'wb') as f:
            write_stats(stats, f)
        os.replace(tmp_path, file_path)
    except (OSError, StatsFormatError, struct.error) as e:
        logger.error(f"Failed to write stats to {file_path}: {e}")
        if tmp_path.is_file():
            tmp_path.unlink()
        return False

    logger.debug(f"Wrote {len(stats)} samples to {file_path}")
    return True


def load_stats_file(file_path: Path) -> Optional[FrequencyStats]:
    """
    Read stats written by save_stats_file().

    Returns:
        FrequencyStats, or None if the file is missing or malformed
    """
    try:
        with open(file_path, 'rb') as f:
            return read_stats(f)
    except (OSError, StatsFormatError) as e:
        logger.error(f"Failed to read stats from {file_path}: {e}")
        return None
