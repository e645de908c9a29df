"""Shared fixtures for core pipeline tests."""

from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from wavpitch.core.buffer import SampleBuffer


RATE = 44100


# ---------------------------------------------------------------------------
# Signal helpers
# ---------------------------------------------------------------------------


def sine(frequency: float, duration: float, rate: int = RATE, amplitude: float = 0.5) -> np.ndarray:
    """Sine starting at phase 0 (so the first frame is silent)."""
    frames = int(round(duration * rate))
    return amplitude * np.sin(2 * np.pi * frequency * np.arange(frames) / rate)


def silence(duration: float, rate: int = RATE) -> np.ndarray:
    return np.zeros(int(round(duration * rate)))


def tone_gap_tone(tone: float, gap: float, frequency: float = 440.0, rate: int = RATE) -> SampleBuffer:
    """[tone][silence][tone] as a mono buffer."""
    samples = np.concatenate([
        sine(frequency, tone, rate),
        silence(gap, rate),
        sine(frequency, tone, rate),
    ])
    return SampleBuffer(samples, rate)


def write_wav(path: Path, samples: np.ndarray, rate: int = RATE) -> Path:
    """Write (frames,) or (channels, frames) samples as a 16-bit WAV file."""
    data = samples.T if samples.ndim == 2 else samples
    sf.write(str(path), data, rate, subtype='PCM_16')
    return path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def a440():
    """One second of A4 at 44.1 kHz, amplitude 0.5."""
    return SampleBuffer(sine(440.0, 1.0), RATE, name="a440")


@pytest.fixture
def quiet():
    """One second of digital silence."""
    return SampleBuffer.silence(1, RATE, RATE)


@pytest.fixture
def gapped():
    """0.5 s tone, 0.3 s silence, 0.5 s tone."""
    return tone_gap_tone(0.5, 0.3)


@pytest.fixture
def a440_wav(tmp_path):
    """A4 tone written to a temporary WAV file."""
    return write_wav(tmp_path / "a440.wav", sine(440.0, 1.0))
