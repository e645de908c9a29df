"""
PCM sample buffer for the pitch analysis toolkit.

A SampleBuffer owns a 2-D float64 array shaped (channels, frames) plus the
sample rate and loop metadata. Every transform works in place and replaces
or edits ``samples``; frame counts and durations are always derived from the
array, so they can never drift out of sync with it.

Frame arguments are clamped to the buffer rather than raising, matching how
editor code slices buffers with positions computed from timestamps.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

import numpy as np

from wavpitch.utils.errors import AnalysisError
from wavpitch.utils.notes import round_half_up


# Amplitude at or below which a frame counts as a zero crossing
ZERO_CROSSING_EPSILON: float = 1e-4

# visitor(channel, frame, amplitude) -> False to stop
SampleVisitor = Callable[[int, int, float], Optional[bool]]


class SampleBuffer:
    """
    Multi-channel audio samples with sample rate and loop metadata.

    Attributes:
        samples: float64 array of shape (channels, frames), nominally in [-1, 1]
        sample_rate: Frames per second
        loop_start_frame / loop_end_frame: Loop region for instrument samples
        random_start: Start at a random frame during playback
        name: Display name (file stem when loaded from disk)
        file_path: Source file, if any
    """

    def __init__(
        self,
        samples: np.ndarray,
        sample_rate: int,
        name: Optional[str] = None,
        file_path: Optional[Path] = None,
    ):
        data = np.array(samples, dtype=np.float64)
        if data.ndim == 1:
            data = data[np.newaxis, :]
        if data.ndim != 2:
            raise AnalysisError(
                f"Samples must be 1-D or 2-D, got shape {data.shape}",
                stage="buffer",
            )
        self.samples: np.ndarray = data
        self.sample_rate = int(sample_rate)
        self.name = name
        self.file_path = file_path
        self.loop_start_frame = 0
        self.loop_end_frame = 0
        self.random_start = False

    @classmethod
    def silence(cls, channels: int, num_frames: int, sample_rate: int) -> "SampleBuffer":
        """Zero-filled buffer."""
        return cls(np.zeros((channels, max(0, num_frames))), sample_rate)

    @classmethod
    def silence_for(cls, channels: int, duration: float, sample_rate: int) -> "SampleBuffer":
        """Zero-filled buffer lasting ``duration`` seconds."""
        return cls.silence(channels, round_half_up(duration * sample_rate), sample_rate)

    @classmethod
    def from_file(cls, file_path: Path) -> "SampleBuffer":
        """Load a buffer at the file's native sample rate."""
        from wavpitch.core.loader import AudioLoader
        return AudioLoader().load(file_path)

    # ------------------------------------------------------------------
    # Derived properties
    # ------------------------------------------------------------------

    @property
    def channels(self) -> int:
        return self.samples.shape[0]

    @property
    def num_frames(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        """Length in seconds."""
        return self.get_time(self.num_frames)

    def get_frame(self, seconds: float) -> int:
        """Frame index for a position in seconds."""
        return round_half_up(seconds * self.sample_rate)

    def get_time(self, frame: int) -> float:
        """Position in seconds for a frame index."""
        return frame / self.sample_rate

    def _clamp(self, frame: int) -> int:
        return min(max(0, int(frame)), self.num_frames)

    # ------------------------------------------------------------------
    # Copies
    # ------------------------------------------------------------------

    def _copy_metadata(self, other: "SampleBuffer") -> None:
        self.name = other.name
        self.file_path = other.file_path
        self.loop_start_frame = other.loop_start_frame
        self.loop_end_frame = other.loop_end_frame
        self.random_start = other.random_start

    def copy(self, start_frame: int = 0, num_frames: Optional[int] = None) -> "SampleBuffer":
        """Deep copy of the whole buffer or of a frame range."""
        start = self._clamp(start_frame)
        if num_frames is None:
            num_frames = self.num_frames
        end = self._clamp(start + max(0, num_frames))
        result = SampleBuffer(self.samples[:, start:end].copy(), self.sample_rate)
        result._copy_metadata(self)
        return result

    def copy_samples(self, channel: int, start_frame: int, length: int) -> np.ndarray:
        """Copy one channel's samples; frames past the end read as zero."""
        out = np.zeros(max(0, length))
        start = self._clamp(start_frame)
        end = self._clamp(start + len(out))
        out[:end - start] = self.samples[channel, start:end]
        return out

    # ------------------------------------------------------------------
    # Loop metadata
    # ------------------------------------------------------------------

    def set_loop_frames(self, start_frame: int, end_frame: int) -> None:
        self.loop_start_frame = start_frame
        self.loop_end_frame = end_frame

    def is_loopable(self) -> bool:
        return self.loop_end_frame > 0 and self.loop_start_frame < self.loop_end_frame

    # ------------------------------------------------------------------
    # Format conversion
    # ------------------------------------------------------------------

    def set_sample_rate(self, sample_rate: int) -> None:
        """
        Resample every channel onto a new timeline using linear interpolation.

        Source positions past the last frame hold the last sample.
        """
        sample_rate = int(sample_rate)
        if sample_rate == self.sample_rate:
            return
        new_size = round_half_up(sample_rate * self.duration)
        if self.num_frames == 0 or new_size <= 0:
            self.samples = np.zeros((self.channels, max(0, new_size)))
        else:
            src = np.arange(new_size) / sample_rate * self.sample_rate
            grid = np.arange(self.num_frames)
            self.samples = np.vstack([
                np.interp(src, grid, channel) for channel in self.samples
            ])
        self.sample_rate = sample_rate

    # Alias matching the pipeline vocabulary
    resample = set_sample_rate

    def set_channels(self, num_channels: int) -> None:
        """
        Change the channel count.

        Upmixing duplicates the last channel. Downmixing averages the last
        retained channel with every dropped channel, each weighted equally.
        """
        if num_channels == self.channels or num_channels < 1:
            return

        if num_channels > self.channels:
            extra = np.repeat(self.samples[-1:], num_channels - self.channels, axis=0)
            self.samples = np.vstack([self.samples, extra])
        else:
            last = num_channels - 1
            mixed = self.samples[last:].mean(axis=0)
            self.samples = np.vstack([self.samples[:last], mixed[np.newaxis, :]])

    def _match_depth(self, other: "SampleBuffer") -> "SampleBuffer":
        """Return ``other`` or a converted copy with this buffer's channels and rate."""
        if other.channels != self.channels or other.sample_rate != self.sample_rate:
            other = other.copy()
            other.set_channels(self.channels)
            other.set_sample_rate(self.sample_rate)
        return other

    # ------------------------------------------------------------------
    # Length changes
    # ------------------------------------------------------------------

    def trim(self, start_frame: int, num_frames: int) -> None:
        """Keep ``num_frames`` frames starting at ``start_frame``."""
        start = self._clamp(start_frame)
        end = self._clamp(start + max(0, num_frames))
        self.samples = self.samples[:, start:end].copy()

    def pad(self, num_frames: int, at_end: bool = True) -> None:
        """Add silence at the end (or start) of the buffer."""
        if num_frames <= 0:
            return
        padding = np.zeros((self.channels, num_frames))
        parts = [self.samples, padding] if at_end else [padding, self.samples]
        self.samples = np.hstack(parts)

    def pad_loop(self, start_frame: int, end_frame: int, num_frames: int) -> None:
        """
        Extend the buffer by repeating ``[start_frame, end_frame)`` cyclically.

        Existing frames are kept; an empty loop region pads with silence.
        """
        if num_frames <= 0:
            return
        start = self._clamp(start_frame)
        end = self._clamp(end_frame)
        if end <= start:
            self.pad(num_frames)
            return
        region = self.samples[:, start:end]
        reps = -(-num_frames // region.shape[1])
        loop = np.tile(region, (1, reps))[:, :num_frames]
        self.samples = np.hstack([self.samples, loop])

    def pad_loop_auto(self, num_frames: int) -> None:
        """Loop-pad using the loop frames when set, otherwise the whole buffer."""
        if self.is_loopable():
            self.pad_loop(self.loop_start_frame, self.loop_end_frame, num_frames)
        else:
            self.pad_loop(0, self.num_frames, num_frames)

    def append(self, other: "SampleBuffer") -> None:
        """Concatenate another buffer after this one."""
        other = self._match_depth(other)
        self.samples = np.hstack([self.samples, other.samples])

    def mix(self, other: "SampleBuffer", start_frame: int, num_frames: Optional[int] = None) -> None:
        """
        Add ``other`` into this buffer starting at ``start_frame``.

        The buffer grows when the mix extends past its end. A negative
        ``start_frame`` skips the leading part of ``other``.
        """
        other = self._match_depth(other)
        if num_frames is None:
            num_frames = other.num_frames

        end_frame = start_frame + num_frames
        if end_frame > self.num_frames:
            self.pad(end_frame - self.num_frames)

        other_start = 0
        if start_frame < 0:
            other_start = -start_frame
            start_frame = 0

        length = min(end_frame - start_frame, other.num_frames - other_start)
        if length <= 0:
            return
        self.samples[:, start_frame:start_frame + length] += \
            other.samples[:, other_start:other_start + length]

    def mix_at(self, other: "SampleBuffer", start_time: float, duration: Optional[float] = None) -> None:
        """Time-based variant of :meth:`mix`."""
        other = self._match_depth(other)
        if duration is None:
            duration = other.duration
        self.mix(other, self.get_frame(start_time), self.get_frame(duration))

    def cross_fade(self, other: "SampleBuffer", start_frame: int) -> None:
        """
        Fade from this buffer into ``other`` beginning at ``start_frame``.

        The fade lasts as long as the two buffers overlap. Without overlap the
        gap is filled with silence and ``other`` is appended. A negative
        ``start_frame`` places the start of ``other`` before this buffer, so
        only its later frames are blended in.
        """
        other = self._match_depth(other)

        end_frame = min(self.num_frames, start_frame + other.num_frames)
        overlap = end_frame - start_frame
        if overlap <= 0:
            self.pad(-overlap)
            self.append(other)
            return

        padding = other.num_frames - overlap
        self.pad(padding)

        blend_start = max(0, start_frame)
        if blend_start < end_frame:
            frames = np.arange(blend_start, end_frame)
            mix = (frames - start_frame) / overlap
            segment = self.samples[:, blend_start:end_frame]
            self.samples[:, blend_start:end_frame] = \
                segment * (1 - mix) + other.samples[:, frames - start_frame] * mix

        if padding > 0:
            self.samples[:, end_frame:end_frame + padding] = other.samples[:, overlap:]

    def reverse(self) -> None:
        self.samples = self.samples[:, ::-1].copy()

    # ------------------------------------------------------------------
    # Amplitude
    # ------------------------------------------------------------------

    def _range(self, start_frame: Optional[int], end_frame: Optional[int]) -> slice:
        start = 0 if start_frame is None else self._clamp(start_frame)
        end = self.num_frames if end_frame is None else self._clamp(end_frame)
        return slice(start, max(start, end))

    def get_peak_amplitude(self, start_frame: Optional[int] = None, end_frame: Optional[int] = None) -> float:
        """Largest absolute sample across all channels (0.0 for an empty range)."""
        region = self.samples[:, self._range(start_frame, end_frame)]
        if region.size == 0:
            return 0.0
        return float(np.max(np.abs(region)))

    def multiply(self, factor: float, start_frame: Optional[int] = None, end_frame: Optional[int] = None) -> None:
        self.samples[:, self._range(start_frame, end_frame)] *= factor

    def set_peak_amplitude(self, peak: float, start_frame: Optional[int] = None, end_frame: Optional[int] = None) -> None:
        """Scale a region so its peak equals ``peak``; silent regions are left alone."""
        current = self.get_peak_amplitude(start_frame, end_frame)
        if current <= 0:
            return
        self.multiply(peak / current, start_frame, end_frame)

    def clamp_amplitude(self, start_frame: Optional[int] = None, end_frame: Optional[int] = None) -> bool:
        """Hard-clip to [-1, 1]. Returns True if any sample was clipped."""
        span = self._range(start_frame, end_frame)
        region = self.samples[:, span]
        clipped = bool(np.any(np.abs(region) > 1))
        if clipped:
            self.samples[:, span] = np.clip(region, -1.0, 1.0)
        return clipped

    def find_zero_crossing(self, start_frame: int, end_frame: int, min_amp: float = ZERO_CROSSING_EPSILON) -> int:
        """
        First frame where every channel is within ``min_amp`` of zero.

        Searches forward when ``start_frame < end_frame`` and backward
        otherwise; ``end_frame`` is exclusive in both directions.

        Returns:
            Frame index, or -1 if no such frame exists
        """
        if self.num_frames == 0:
            return -1
        quiet = np.all(np.abs(self.samples) <= min_amp, axis=0)
        if start_frame < end_frame:
            start = max(0, start_frame)
            end = min(self.num_frames, end_frame)
            hits = np.flatnonzero(quiet[start:end])
            return int(start + hits[0]) if hits.size else -1

        start = min(self.num_frames - 1, start_frame)
        end = max(0, end_frame)
        if start <= end:
            return -1
        hits = np.flatnonzero(quiet[end + 1:start + 1][::-1])
        return int(start - hits[0]) if hits.size else -1

    def trim_silence(self, min_amp: float) -> None:
        """
        Trim leading and trailing frames quieter than ``min_amp``.

        The kept span runs from the earliest channel's first loud frame to the
        latest channel's last loud frame. An entirely quiet buffer becomes
        zero-length.
        """
        threshold = max(min_amp, 1e-9)
        loud = np.abs(self.samples) >= threshold
        starts = [int(np.argmax(row)) for row in loud if row.any()]
        ends = [len(row) - 1 - int(np.argmax(row[::-1])) for row in loud if row.any()]
        if not starts:
            self.samples = np.zeros((self.channels, 0))
            return
        first, last = min(starts), max(ends)
        self.trim(first, last - first + 1)

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def for_each_sample(
        self,
        visitor: SampleVisitor,
        start_frame: int = 0,
        end_frame: Optional[int] = None,
        channel: Optional[int] = None,
    ) -> None:
        """
        Visit samples in channel-major order.

        Iterates backward when ``start_frame > end_frame`` (``end_frame``
        exclusive). The visitor returning False stops the whole iteration.
        """
        if end_frame is None:
            end_frame = self.num_frames
        if channel is not None and not 0 <= channel < self.channels:
            return

        if start_frame <= end_frame:
            frames: Iterable[int] = range(max(0, start_frame), min(self.num_frames, end_frame))
        else:
            frames = range(min(self.num_frames - 1, start_frame), max(-1, end_frame), -1)
        frames = list(frames)

        channels = [channel] if channel is not None else range(self.channels)
        for c in channels:
            row = self.samples[c]
            for f in frames:
                if visitor(c, f, float(row[f])) is False:
                    return

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def write(self, file_path: Path) -> Path:
        """Write as a 16-bit WAV file (clipping is clamped and logged)."""
        from wavpitch.core.loader import write_wav
        return write_wav(self, file_path)

    @staticmethod
    def join_by_channel(buffers: Sequence["SampleBuffer"]) -> Optional["SampleBuffer"]:
        """
        Stack buffers as the channels of a new buffer.

        Shorter buffers are padded with silence.

        Raises:
            AnalysisError: If the sample rates differ
        """
        if not buffers:
            return None
        rates = {b.sample_rate for b in buffers}
        if len(rates) > 1:
            raise AnalysisError(
                f"Cannot join buffers with different sample rates: {sorted(rates)}",
                stage="join_by_channel",
            )
        max_frames = max(b.num_frames for b in buffers)
        output = SampleBuffer.silence(sum(b.channels for b in buffers), max_frames, rates.pop())
        channel = 0
        for b in buffers:
            output.samples[channel:channel + b.channels, :b.num_frames] = b.samples
            channel += b.channels
        return output

    def __repr__(self) -> str:
        return (
            f"SampleBuffer(name={self.name!r}, channels={self.channels}, "
            f"sample_rate={self.sample_rate}, num_frames={self.num_frames})"
        )


class WavSnippet(SampleBuffer):
    """A deep-copied slice of a parent buffer that remembers where it came from."""

    def __init__(self, parent: SampleBuffer, start_frame: int, end_frame: int):
        start = min(max(0, start_frame), parent.num_frames)
        end = min(max(start, end_frame), parent.num_frames)
        super().__init__(parent.samples[:, start:end].copy(), parent.sample_rate)
        self._copy_metadata(parent)
        self.start_frame = start
        self.end_frame = end
        self.start_time = parent.get_time(start)
        self.end_time = parent.get_time(end)

    @classmethod
    def whole(cls, parent: SampleBuffer) -> "WavSnippet":
        return cls(parent, 0, parent.num_frames)

    def __repr__(self) -> str:
        return (
            f"WavSnippet(start={self.start_time:.3f}s, end={self.end_time:.3f}s, "
            f"duration={self.end_time - self.start_time:.3f}s)"
        )
