"""
Audio file I/O.

AudioLoader decodes files into SampleBuffers (every channel, native rate
unless a target rate is configured); write_wav stores buffers as 16-bit PCM.
"""

import hashlib
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import librosa
import numpy as np
import soundfile as sf

from wavpitch.core.buffer import SampleBuffer
from wavpitch.utils.errors import AudioLoadError, FileTooLargeError, UnsupportedFormatError


# Suffix -> decoder librosa ends up using
SUPPORTED_FORMATS: Dict[str, str] = {
    '.wav': 'soundfile',
    '.aif': 'soundfile',
    '.aiff': 'soundfile',
    '.flac': 'soundfile',
    '.ogg': 'soundfile',
    '.mp3': 'audioread',
}

MAX_FILE_SIZE = 500 * 1024 * 1024
MAX_DURATION = 600.0

HASH_CHUNK_SIZE = 64 * 1024

logger = logging.getLogger(__name__)


def sha256_file(file_path: Path) -> str:
    """Hex SHA-256 of a file's bytes."""
    digest = hashlib.sha256()
    with open(file_path, 'rb') as f:
        while True:
            chunk = f.read(HASH_CHUNK_SIZE)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


class AudioLoader:
    """
    Reads audio files as SampleBuffers.

    Holds only its limits, so one loader can serve several threads.
    """

    def __init__(
        self,
        target_sr: Optional[int] = None,
        max_file_size: int = MAX_FILE_SIZE,
        max_duration: float = MAX_DURATION,
    ):
        """
        Args:
            target_sr: Resample to this rate (None keeps each file's rate)
            max_file_size: Larger files are refused, in bytes
            max_duration: Seconds above which is_long_file() is True
        """
        self.target_sr = target_sr
        self.max_file_size = max_file_size
        self.max_duration = max_duration

    compute_file_hash = staticmethod(sha256_file)

    def check(self, file_path: Path) -> None:
        """
        Raise if ``file_path`` cannot be loaded without decoding it.

        Raises:
            FileNotFoundError: No such file
            UnsupportedFormatError: Suffix not in SUPPORTED_FORMATS
            FileTooLargeError: File is over max_file_size
        """
        if not file_path.is_file():
            raise FileNotFoundError(f"Audio file not found: {file_path}")

        suffix = file_path.suffix.lower()
        if suffix not in SUPPORTED_FORMATS:
            raise UnsupportedFormatError(
                f"Cannot read {suffix or 'files without a suffix'}; "
                f"expected one of {', '.join(sorted(SUPPORTED_FORMATS))}",
                format=suffix,
            )

        size = file_path.stat().st_size
        if size > self.max_file_size:
            raise FileTooLargeError(
                f"{file_path.name} is {size / 2**20:.1f} MB, limit is {self.max_file_size / 2**20:.1f} MB",
                file_size=size,
                max_size=self.max_file_size,
            )

    def load(self, file_path: Path) -> SampleBuffer:
        """
        Decode every channel of an audio file.

        Raises:
            FileNotFoundError, UnsupportedFormatError, FileTooLargeError: see check()
            AudioLoadError: The file could not be decoded or holds no audio
        """
        file_path = Path(file_path)
        self.check(file_path)
        self._log_format(file_path)

        samples, rate = self._decode(file_path)
        if samples.size == 0:
            raise AudioLoadError(f"No audio in {file_path}", file_path=str(file_path))

        peak = float(np.abs(samples).max())
        if peak < 1e-6:
            logger.warning(f"{file_path.name} is silent")
        elif peak > 1.0:
            logger.warning(f"{file_path.name} exceeds full scale (peak {peak:.2f})")

        return SampleBuffer(samples, rate, name=file_path.stem, file_path=file_path)

    def _log_format(self, file_path: Path) -> None:
        try:
            info = sf.info(str(file_path))
        except RuntimeError as e:
            # libsndfile cannot probe some MP3s; librosa still decodes them
            logger.debug(f"soundfile could not probe {file_path.name}: {e}")
            return
        logger.info(f"{file_path.name}: {info.samplerate} Hz, {info.channels} ch, {info.subtype}")

    def _decode(self, file_path: Path) -> Tuple[np.ndarray, int]:
        try:
            samples, rate = librosa.load(str(file_path), sr=self.target_sr, mono=False, dtype=np.float32)
        except Exception as e:
            raise AudioLoadError(f"Cannot decode {file_path}: {e}", file_path=str(file_path))
        return np.atleast_2d(samples).astype(np.float64), int(rate)

    def get_duration(self, file_path: Path) -> float:
        """Seconds of audio in a file, read from its header (0.0 if unknown)."""
        try:
            return float(librosa.get_duration(path=str(file_path)))
        except Exception as e:
            logger.warning(f"Cannot read duration of {file_path}: {e}")
            return 0.0

    def is_long_file(self, file_path: Path) -> bool:
        return self.get_duration(file_path) > self.max_duration


def write_wav(buffer: SampleBuffer, file_path: Path) -> Path:
    """
    Write a buffer as a 16-bit PCM WAV file.

    The suffix is forced to ".wav". Samples outside [-1, 1] are clamped in
    the buffer first, since 16-bit PCM cannot represent them.

    Returns:
        Path actually written
    """
    file_path = Path(file_path).with_suffix('.wav')

    if buffer.clamp_amplitude():
        logger.warning(f"{file_path.name} has audio clipping!")

    file_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = file_path.with_name(file_path.name + '.tmp')
    try:
        sf.write(str(tmp_path), buffer.samples.T, buffer.sample_rate, subtype='PCM_16', format='WAV')
        os.replace(tmp_path, file_path)
    except (OSError, RuntimeError) as e:
        if tmp_path.is_file():
            tmp_path.unlink()
        raise AudioLoadError(f"Failed to write {file_path}: {e}", file_path=str(file_path))
    return file_path


def create_audio_loader(config: Optional[Dict[str, Any]] = None) -> AudioLoader:
    """Build an AudioLoader from the ``audio`` config section."""
    config = config or {}
    return AudioLoader(
        target_sr=config.get('target_sample_rate'),
        max_file_size=config.get('max_file_size', MAX_FILE_SIZE),
        max_duration=config.get('max_duration', MAX_DURATION),
    )
