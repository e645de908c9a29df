"""Tests for the file-level pipeline: loader, cache, engine, batch and writers."""

import hashlib
import json
import math

import numpy as np
import pytest

from conftest import RATE, silence, sine, write_wav
from wavpitch.core.batch_processor import BatchProcessor
from wavpitch.core.cache import StatsCache, create_stats_cache, make_cache_key
from wavpitch.core.codec import load_stats_file
from wavpitch.core.engine import PitchAnalysisEngine, PitchAnalysisResult, create_analysis_engine
from wavpitch.core.loader import AudioLoader, create_audio_loader
from wavpitch.core.result_writer import JSONResultWriter, TextResultWriter, create_result_writer
from wavpitch.core.scanner import FrequencyReader
from wavpitch.core.snippets import SnippetExtractor
from wavpitch.core.stats import FrequencyStats
from wavpitch.utils.config import get_default_config
from wavpitch.utils.errors import (
    AnalysisError,
    CacheError,
    FileTooLargeError,
    UnsupportedFormatError,
)


@pytest.fixture
def engine():
    e = PitchAnalysisEngine(AudioLoader(), FrequencyReader(), cache=StatsCache(), max_workers=2)
    yield e
    e.shutdown()


def _stats(*freqs):
    s = FrequencyStats(0.025)
    for i, f in enumerate(freqs):
        s.add(f, 0.5, i * 0.025)
    s.update()
    return s


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class TestAudioLoader:

    def test_loads_wav(self, a440_wav):
        buffer = AudioLoader().load(a440_wav)
        assert buffer.sample_rate == RATE
        assert buffer.channels == 1
        assert buffer.num_frames == RATE
        assert buffer.name == "a440"
        assert buffer.file_path == a440_wav

    def test_keeps_every_channel(self, tmp_path):
        path = write_wav(tmp_path / "stereo.wav", np.stack([sine(220.0, 0.5), sine(440.0, 0.5)]))
        assert AudioLoader().load(path).channels == 2

    def test_resamples_to_target_rate(self, a440_wav):
        buffer = AudioLoader(target_sr=22050).load(a440_wav)
        assert buffer.sample_rate == 22050
        assert buffer.duration == pytest.approx(1.0, abs=0.01)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AudioLoader().load(tmp_path / "missing.wav")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("not audio")
        with pytest.raises(UnsupportedFormatError) as exc_info:
            AudioLoader().load(path)
        assert exc_info.value.format == ".txt"

    def test_file_too_large(self, a440_wav):
        with pytest.raises(FileTooLargeError):
            AudioLoader(max_file_size=1000).load(a440_wav)

    def test_duration_without_decoding(self, a440_wav):
        loader = AudioLoader(max_duration=0.5)
        assert loader.get_duration(a440_wav) == pytest.approx(1.0, abs=0.01)
        assert loader.is_long_file(a440_wav) is True

    def test_file_hash(self, a440_wav):
        expected = hashlib.sha256(a440_wav.read_bytes()).hexdigest()
        assert AudioLoader.compute_file_hash(a440_wav) == expected

    def test_factory(self):
        loader = create_audio_loader({'target_sample_rate': 16000, 'max_file_size': 10})
        assert loader.target_sr == 16000
        assert loader.max_file_size == 10


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class TestStatsCache:

    def test_key_depends_on_settings(self):
        a = make_cache_key("abc", {'num_scans': 8, 'fill_gaps': False})
        b = make_cache_key("abc", {'fill_gaps': False, 'num_scans': 8})
        c = make_cache_key("abc", {'num_scans': 4, 'fill_gaps': False})
        assert a == b
        assert a != c

    def test_get_returns_copy(self):
        cache = StatsCache()
        cache.set("k", _stats(440.0, 441.0))

        first = cache.get("k")
        first.add(1000.0, 0.5, 1.0)
        assert len(cache.get("k")) == 2

    def test_lru_eviction(self):
        cache = StatsCache(max_size=2)
        cache.set("a", _stats(100.0))
        cache.set("b", _stats(200.0))
        cache.get("a")
        cache.set("c", _stats(300.0))

        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2

    def test_ttl_expiry(self, monkeypatch):
        clock = [1000.0]
        monkeypatch.setattr("wavpitch.core.cache.time.time", lambda: clock[0])
        cache = StatsCache(ttl=10)
        cache.set("k", _stats(440.0))

        clock[0] += 11
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_rejects_other_values(self):
        with pytest.raises(CacheError):
            StatsCache().set("k", {"not": "stats"})

    def test_hit_ratio(self):
        cache = StatsCache()
        cache.set("k", _stats(440.0))
        cache.get("k")
        cache.get("missing")
        stats = cache.get_stats()
        assert stats['hits'] == 1
        assert stats['misses'] == 1
        assert stats['hit_ratio'] == 0.5

    def test_delete_and_clear(self):
        cache = create_stats_cache({'max_size': 4})
        cache.set("a", _stats(440.0))
        cache.set("b", _stats(440.0))
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.clear()
        assert len(cache) == 0


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TestPitchAnalysisEngine:

    def test_analyze(self, engine, a440_wav):
        result = engine.analyze(a440_wav)

        assert result.has_pitch
        assert result.stats.tuned_freq == pytest.approx(440.0, abs=0.5)
        assert result.sample_rate == RATE
        assert result.duration == pytest.approx(1.0)
        assert result.from_cache is False
        assert result.get_summary().startswith("A4 ")

    def test_second_analyze_hits_cache(self, engine, a440_wav):
        first = engine.analyze(a440_wav)
        second = engine.analyze(a440_wav)
        assert second.from_cache is True
        assert len(second.stats) == len(first.stats)
        assert second.file_hash == first.file_hash

    def test_cache_separates_channels(self, engine, tmp_path):
        path = write_wav(tmp_path / "stereo.wav", np.stack([sine(220.0, 1.0), sine(880.0, 1.0)]))
        left = engine.analyze(path, channel=0)
        right = engine.analyze(path, channel=1)
        assert right.from_cache is False
        assert left.stats.tuned_freq == pytest.approx(220.0, abs=0.5)
        assert right.stats.tuned_freq == pytest.approx(880.0, abs=1.0)

    def test_bad_channel(self, engine, a440_wav):
        with pytest.raises(AnalysisError):
            engine.analyze(a440_wav, channel=1)

    def test_silent_file_has_no_pitch(self, engine, tmp_path):
        path = write_wav(tmp_path / "quiet.wav", silence(1.0))
        result = engine.analyze(path)
        assert not result.has_pitch
        assert result.get_summary() == "No pitch detected"

    def test_split_silence(self, tmp_path):
        samples = np.concatenate([sine(440.0, 0.5), silence(0.3), sine(440.0, 0.5)])
        path = write_wav(tmp_path / "gapped.wav", samples)
        extractor = SnippetExtractor(min_amplitude=0.05, min_silence_duration=0.1, min_snippet_duration=0.1)

        with PitchAnalysisEngine(AudioLoader(), FrequencyReader(), extractor=extractor) as engine:
            result = engine.analyze(path)

        assert len(result.stats.split_by_silence()) == 2
        assert result.stats.tuned_freq == pytest.approx(440.0, abs=0.5)

    def test_batch_keeps_order_and_marks_failures(self, engine, tmp_path):
        low = write_wav(tmp_path / "low.wav", sine(220.0, 1.0))
        high = write_wav(tmp_path / "high.wav", sine(880.0, 1.0))

        results = engine.analyze_batch([low, tmp_path / "missing.wav", high])

        assert len(results) == 3
        assert results[0].file_path == low
        assert results[1] is None
        assert results[2].file_path == high

    def test_to_dict(self, engine, a440_wav):
        data = engine.analyze(a440_wav).to_dict()
        assert data['file_path'] == str(a440_wav)
        assert data['stats']['note'] == "A4"
        assert data['summary'].startswith("A4")

    def test_factory(self):
        config = get_default_config()
        config['snippets']['enabled'] = True
        config['cache']['enabled'] = False

        engine = create_analysis_engine(config)
        try:
            assert engine.extractor is not None
            assert engine.cache is None
            assert engine.reader.num_scans == 8
        finally:
            engine.shutdown()


# ---------------------------------------------------------------------------
# Batch processing
# ---------------------------------------------------------------------------


class TestBatchProcessor:

    @pytest.fixture
    def sample_dir(self, tmp_path):
        root = tmp_path / "samples"
        (root / "nested").mkdir(parents=True)
        write_wav(root / "a.wav", sine(440.0, 1.0))
        write_wav(root / "nested" / "b.wav", sine(220.0, 1.0))
        (root / "readme.txt").write_text("not audio")
        return root

    def test_directory(self, engine, sample_dir):
        result = BatchProcessor(engine).process(sample_dir)
        assert result.total_files == 1
        assert result.success_count == 1
        assert result.success_rate == 100.0

    def test_recursive(self, engine, sample_dir):
        result = BatchProcessor(engine).process(sample_dir, recursive=True)
        assert result.total_files == 2

    def test_exports_stats(self, engine, sample_dir, tmp_path):
        stats_dir = tmp_path / "stats"
        result = BatchProcessor(engine, stats_dir=stats_dir).process(sample_dir)

        exported = stats_dir / "a.fstats"
        assert result.exported == {sample_dir / "a.wav": exported}
        loaded = load_stats_file(exported)
        assert len(loaded) == len(result.successful[sample_dir / "a.wav"].stats)

    def test_failures_are_recorded(self, engine, tmp_path):
        broken = tmp_path / "broken.wav"
        broken.write_bytes(b"RIFF0000WAVE")
        result = BatchProcessor(engine).process([broken])
        assert result.failure_count == 1
        assert broken in result.failed

    def test_progress_callback(self, engine, sample_dir):
        calls = []
        BatchProcessor(engine, progress_callback=lambda i, n, p: calls.append((i, n, p.name))).process(
            sample_dir, recursive=True
        )
        assert [c[:2] for c in calls] == [(1, 2), (2, 2)]

    def test_nothing_to_do(self, engine, tmp_path):
        result = BatchProcessor(engine).process(tmp_path / "missing")
        assert result.total_files == 0
        assert result.success_rate == 0.0


# ---------------------------------------------------------------------------
# Result writers
# ---------------------------------------------------------------------------


class TestResultWriters:

    @pytest.fixture
    def results(self, engine, a440_wav):
        return {a440_wav: engine.analyze(a440_wav)}

    def test_text_report(self, results, tmp_path):
        out = tmp_path / "report.txt"
        TextResultWriter(include_timestamp=False, include_samples=True).write(results, out)

        text = out.read_text()
        assert "FILE: a440.wav" in text
        assert "Tuned: 440.00 Hz (A4)" in text
        assert "Generated:" not in text

    def test_json_report(self, results, a440_wav, tmp_path):
        out = tmp_path / "report.json"
        JSONResultWriter(include_samples=True).write(results, out)

        data = json.loads(out.read_text())
        entry = data['results'][str(a440_wav)]
        assert data['total_files'] == 1
        assert entry['stats']['note'] == "A4"
        assert len(entry['samples']) == len(results[a440_wav].stats)

    def test_json_replaces_non_finite_values(self, tmp_path):
        stats = _stats(440.0)
        stats.std_freq = math.nan
        result = PitchAnalysisResult(
            file_path=tmp_path / "x.wav",
            file_hash="0" * 64,
            stats=stats,
            processing_time=0.1,
            sample_rate=RATE,
            channels=1,
            duration=1.0,
        )
        data = JSONResultWriter().result_to_dict(result)
        assert data['stats']['std_frequency'] is None

    def test_factory(self):
        assert isinstance(create_result_writer("txt"), TextResultWriter)
        assert isinstance(create_result_writer("JSON"), JSONResultWriter)
        with pytest.raises(ValueError):
            create_result_writer("xml")
