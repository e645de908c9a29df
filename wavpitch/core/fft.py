"""
Fixed-length real FFT and window function used by the pitch detector.

Instances are cached per length and hold only immutable tables, so one
instance can be shared by every scan thread; each call allocates its own
output arrays.
"""

import threading
from typing import Dict, Tuple

import numpy as np


class FFT:
    """Forward FFT of a fixed power-of-two length."""

    _cache: Dict[int, "FFT"] = {}
    _cache_lock = threading.Lock()

    @classmethod
    def get(cls, length: int) -> "FFT":
        """Shared instance for ``length`` (must be a power of two >= 2)."""
        fft = cls._cache.get(length)
        if fft is None:
            with cls._cache_lock:
                fft = cls._cache.get(length)
                if fft is None:
                    fft = cls(length)
                    cls._cache[length] = fft
        return fft

    def __init__(self, length: int):
        if length < 2 or length & (length - 1):
            raise ValueError(f"FFT length must be a power of two >= 2, got {length}")
        self.length = length

        # Hann over length - 1 points; the extra last sample is zeroed
        points = length - 1
        window = 0.5 - 0.5 * np.cos(np.arange(length) * (2 * np.pi / points))
        window[points] = 0.0
        window.flags.writeable = False
        self._periodic_hann = window

        symmetric = np.hanning(length)
        symmetric.flags.writeable = False
        self._symmetric_hann = symmetric

    def apply(self, real_in: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Forward transform of a real signal.

        Returns:
            (real_out, imag_out), each of ``length`` values
        """
        spectrum = np.fft.fft(real_in[:self.length], n=self.length)
        return spectrum.real.copy(), spectrum.imag.copy()

    def hann_window(self, periodic: bool, buffer: np.ndarray) -> None:
        """Apply a Hann window to ``buffer`` in place."""
        buffer[:self.length] *= self._periodic_hann if periodic else self._symmetric_hann
