"""
Silence-based snippet extraction.

Splits a SampleBuffer into the regions of sound separated by silence, with
boundaries snapped to zero crossings so the snippets can be played or
re-mixed without clicks.
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np

from wavpitch.core.buffer import SampleBuffer, WavSnippet


logger = logging.getLogger(__name__)


class SnippetExtractor:
    """
    Extracts clips of a buffer that are separated by silence.

    A frame is silent when every channel's absolute amplitude is at or below
    ``min_amplitude``. A snippet ends once silence has lasted
    ``min_silence_duration`` (or the buffer ends) and is kept only if it is at
    least ``min_snippet_duration`` long.
    """

    def __init__(
        self,
        min_amplitude: float = 0.05,
        min_silence_duration: float = 0.05,
        min_snippet_duration: float = 0.1,
    ):
        self.min_amplitude = min_amplitude
        self.min_silence_duration = min_silence_duration
        self.min_snippet_duration = min_snippet_duration

    def split_by_silence(self, buffer: SampleBuffer, max_results: int = -1) -> List[WavSnippet]:
        """
        Split a buffer at periods of silence.

        Args:
            buffer: Audio to split
            max_results: Stop after this many snippets (-1 for no limit)

        Returns:
            Snippets in time order. If nothing qualifies the whole buffer is
            returned as one snippet; non-positive durations return an empty list.
        """
        snippets: List[WavSnippet] = []

        if self.min_silence_duration <= 0 or self.min_snippet_duration <= 0:
            return snippets

        min_silence_frames = buffer.get_frame(self.min_silence_duration)
        min_snippet_frames = buffer.get_frame(self.min_snippet_duration)
        num_frames = buffer.num_frames

        # One extra silent frame stands for the end of the buffer
        silent = np.ones(num_frames + 1, dtype=bool)
        if num_frames:
            silent[:num_frames] = np.all(np.abs(buffer.samples) <= self.min_amplitude, axis=0)

        # Runs of identical silence state: [run_start, run_end)
        changes = np.flatnonzero(np.diff(silent.astype(np.int8))) + 1
        run_starts = np.concatenate(([0], changes))
        run_ends = np.concatenate((changes, [num_frames + 1]))

        snippet_start = -1
        last_snippet_end = -1

        for run_start, run_end in zip(run_starts.tolist(), run_ends.tolist()):
            if not silent[run_start]:
                if snippet_start == -1:
                    snippet_start = run_start
                continue

            # Silence begins where the sound (if any) ended
            snippet_end = run_start
            close_frame = run_start + min_silence_frames
            if close_frame >= run_end:
                if run_end != num_frames + 1:
                    # Too short to split on; the snippet carries on through it
                    continue
                close_frame = num_frames

            if snippet_start == -1:
                snippet_start = 0

            if snippet_end - snippet_start >= min_snippet_frames:
                start_zero = buffer.find_zero_crossing(snippet_start, last_snippet_end)
                end_zero = buffer.find_zero_crossing(snippet_end, close_frame)
                if start_zero == -1:
                    start_zero = snippet_start
                if end_zero == -1:
                    end_zero = snippet_end

                snippets.append(WavSnippet(buffer, start_zero, end_zero))
                if 0 < max_results <= len(snippets):
                    return snippets
                last_snippet_end = end_zero

            snippet_start = -1

        if not snippets:
            snippets.append(WavSnippet.whole(buffer))

        logger.debug(f"Split {buffer.name or 'buffer'} into {len(snippets)} snippet(s)")
        return snippets

    def trim(self, buffer: SampleBuffer) -> WavSnippet:
        """The first snippet of a buffer, i.e. the buffer without leading/trailing silence."""
        snippets = self.split_by_silence(buffer, max_results=1)
        return snippets[0] if snippets else WavSnippet.whole(buffer)


def create_snippet_extractor(config: Optional[Dict[str, Any]] = None) -> SnippetExtractor:
    """Factory function to create SnippetExtractor from the ``snippets`` config section."""
    if config is None:
        config = {}

    return SnippetExtractor(
        min_amplitude=config.get('min_amplitude', 0.05),
        min_silence_duration=config.get('min_silence_duration', 0.05),
        min_snippet_duration=config.get('min_snippet_duration', 0.1),
    )
