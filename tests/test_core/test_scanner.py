"""Tests for FrequencyReader."""

import math

import pytest

from conftest import RATE, sine, tone_gap_tone
from wavpitch.core.buffer import SampleBuffer
from wavpitch.core.scanner import FrequencyReader, ReadTask, create_frequency_reader
from wavpitch.core.snippets import SnippetExtractor


def _points(stats):
    return [(s.time, s.frequency, s.amplitude) for s in stats]


class TestSettings:

    def test_interval(self):
        reader = FrequencyReader(scan_window=0.2, num_scans=8)
        assert reader.interval == pytest.approx(0.025)

    def test_num_scans_at_least_one(self):
        reader = FrequencyReader(num_scans=0)
        assert reader.num_scans == 1
        assert reader.interval == pytest.approx(reader.scan_window)

    def test_in_range(self):
        reader = FrequencyReader(frequency_range=(100.0, 1000.0))
        assert reader.in_range(440.0)
        assert reader.in_range(100.0)
        assert not reader.in_range(50.0)
        assert not reader.in_range(math.nan)

    def test_factory_reads_scanner_section(self):
        reader = create_frequency_reader({
            'scan_window': 0.1,
            'num_scans': 4,
            'min_frequency': 50.0,
            'max_frequency': 2000.0,
            'fill_gaps': True,
        }, max_workers=2)
        assert reader.interval == pytest.approx(0.025)
        assert reader.frequency_range == (50.0, 2000.0)
        assert reader.fill_gaps is True
        assert reader.max_workers == 2

    def test_factory_defaults_to_unbounded_range(self):
        reader = create_frequency_reader(None)
        assert reader.frequency_range == (0.0, math.inf)
        assert reader.num_scans == 8


class TestRead:

    def test_sample_count_and_tail(self, a440):
        stats = FrequencyReader().read(a440)

        # 33 scanned steps plus 7 repeats of the last one
        assert len(stats) == 40
        samples = list(stats)
        assert samples[32].time == pytest.approx(0.8)
        assert samples[-1].time == pytest.approx(0.8 + 7 * 0.025)
        assert samples[-1].frequency == samples[32].frequency

    def test_detects_a440(self, a440):
        stats = FrequencyReader().read(a440)
        assert stats.tuned_freq == pytest.approx(440.0, abs=0.5)
        assert stats.max_amp == pytest.approx(0.5, abs=0.01)

    def test_times_are_step_multiples(self, a440):
        stats = FrequencyReader().read(a440)
        for i, s in enumerate(list(stats)[:33]):
            assert s.time == pytest.approx(i * 0.025)

    def test_short_buffer_gives_empty_stats(self):
        buf = SampleBuffer(sine(440.0, 0.1), RATE)
        stats = FrequencyReader().read(buf)
        assert stats.is_empty
        assert stats.interval == pytest.approx(0.025)

    def test_silence_gives_empty_stats(self, quiet):
        assert FrequencyReader().read(quiet).is_empty

    def test_frequency_range_filters_samples(self, a440):
        assert FrequencyReader(frequency_range=(500.0, 1000.0)).read(a440).is_empty

    def test_multiplier_scales_frequencies(self, a440):
        plain = FrequencyReader().read(a440)
        doubled = FrequencyReader(frequency_multiplier=2.0).read(a440)
        for a, b in zip(plain, doubled):
            assert b.frequency == pytest.approx(2.0 * a.frequency)

    def test_reassigned_scan_window_is_used(self, a440):
        reader = FrequencyReader(scan_window=0.2)
        reader.scan_window = 0.1
        assert _points(reader.read(a440)) == _points(FrequencyReader(scan_window=0.1).read(a440))

    def test_channel_selection(self):
        import numpy as np
        data = np.stack([sine(220.0, 1.0), sine(880.0, 1.0)])
        buf = SampleBuffer(data, RATE)
        reader = FrequencyReader()
        assert reader.read(buf, 0).tuned_freq == pytest.approx(220.0, abs=0.5)
        assert reader.read(buf, 1).tuned_freq == pytest.approx(880.0, abs=1.0)


class TestGaps:

    def test_gap_leaves_two_groups(self, gapped):
        stats = FrequencyReader().read(gapped)
        groups = stats.split_by_silence()
        assert len(groups) == 2
        assert groups[0].samples[-1].time < 0.5
        assert groups[1].samples[0].time >= 0.775

    def test_fill_gaps_repeats_previous_sample(self, gapped):
        stats = FrequencyReader(fill_gaps=True).read(gapped)

        # 45 steps plus 7 repeats, none missing
        assert len(stats) == 52
        assert len(stats.split_by_silence()) == 1

        samples = list(stats)
        before_gap = samples[19]
        for s in samples[22:31]:
            assert s.frequency == before_gap.frequency
            assert s.amplitude == before_gap.amplitude

    def test_fill_gaps_needs_a_previous_sample(self):
        import numpy as np
        buf = SampleBuffer(np.concatenate([np.zeros(RATE // 2), sine(440.0, 0.5)]), RATE)
        stats = FrequencyReader(fill_gaps=True).read(buf)
        assert stats.samples[0].time >= 0.45


class TestMultiThreaded:

    def test_matches_single_threaded(self, gapped):
        single = FrequencyReader().read(gapped)
        multi = FrequencyReader(multi_threaded=True, max_workers=3).read(gapped)
        assert _points(multi) == _points(single)

    def test_matches_single_threaded_with_more_workers_than_steps(self):
        buf = SampleBuffer(sine(330.0, 0.3), RATE)
        single = FrequencyReader().read(buf)
        multi = FrequencyReader(multi_threaded=True, max_workers=16).read(buf)
        assert _points(multi) == _points(single)

    def test_canceled_task_stops_early(self, a440):
        reader = FrequencyReader()
        task = ReadTask(reader, a440, 0, 0, 10, reader.interval)
        task.cancel()
        assert task.process() == []


class TestReadSnippets:

    @pytest.fixture
    def extractor(self):
        return SnippetExtractor(min_amplitude=0.05, min_silence_duration=0.1, min_snippet_duration=0.1)

    def test_times_relative_to_buffer(self, gapped, extractor):
        stats = FrequencyReader().read_snippets(gapped, extractor)
        assert stats is not None

        groups = stats.split_by_silence()
        assert len(groups) == 2
        assert groups[0].samples[0].time == pytest.approx(0.0, abs=0.001)
        assert groups[1].samples[0].time == pytest.approx(0.8, abs=0.001)
        assert stats.tuned_freq == pytest.approx(440.0, abs=0.5)

    def test_progress_reports_each_snippet(self, gapped, extractor):
        calls = []
        FrequencyReader().read_snippets(gapped, extractor, progress=lambda d, t: calls.append((d, t)))
        assert calls == [(1, 2), (2, 2)]

    def test_progress_false_aborts(self, gapped, extractor):
        stats = FrequencyReader().read_snippets(gapped, extractor, progress=lambda d, t: False)
        assert stats is None


class TestReadMany:

    def test_one_result_per_buffer(self):
        buffers = [
            SampleBuffer(sine(440.0, 0.5), RATE),
            SampleBuffer(sine(220.0, 0.5), RATE),
        ]
        results = FrequencyReader(max_workers=2).read_many(buffers)

        assert len(results) == 2
        assert results[0].tuned_freq == pytest.approx(440.0, abs=0.5)
        assert results[1].tuned_freq == pytest.approx(220.0, abs=0.5)

    def test_no_trailing_repeat(self):
        buf = SampleBuffer(sine(440.0, 0.5), RATE)
        stats = FrequencyReader().read_many([buf])[0]
        assert stats.samples[-1].time < 0.5
        assert len(stats) <= 20
