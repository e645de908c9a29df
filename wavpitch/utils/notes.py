"""
Musical note helpers: frequency <-> MIDI note number conversion and tuning.
"""

import math

import numpy as np


NOTE_NAMES = ['C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B']

# A above middle C
A4 = 440.0

EPSILON = 1e-5


def round_half_up(value: float) -> int:
    """Round to the nearest integer with ties going up (Python rounds ties to even)."""
    return int(math.floor(value + 0.5))


def note_value(frequency: float) -> float:
    """MIDI note number (un-rounded) for a frequency in Hz."""
    return 69.0 + 12.0 * float(np.log2(frequency / A4))


def note_frequency(value: float) -> float:
    """Frequency in Hz for a (possibly fractional) MIDI note number."""
    return A4 * 2.0 ** ((value - 69.0) / 12.0)


def auto_tune(frequency: float) -> float:
    """Snap a frequency to the nearest equal-tempered semitone."""
    if not frequency > 0:
        return 0.0
    return note_frequency(round_half_up(note_value(frequency)))


def note_name(frequency: float) -> str:
    """
    Note name with octave for a frequency, e.g. 440.0 -> "A4".

    Returns "N/A" for unvoiced (NaN) or non-positive frequencies.
    """
    if not frequency > 0:
        return "N/A"
    note = round_half_up(note_value(frequency))
    return f"{NOTE_NAMES[note % 12]}{note // 12 - 1}"
