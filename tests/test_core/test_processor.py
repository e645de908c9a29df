"""Tests for the thread pool task runner."""

import threading
import time

import pytest

from wavpitch.core.processor import WavProcessorService, WavProcessorTask


class SleepTask(WavProcessorTask):
    """Returns its value after sleeping; fails if value is an exception."""

    def __init__(self, value, delay=0.0):
        super().__init__()
        self.value = value
        self.delay = delay
        self.ran = False

    def process(self):
        self.ran = True
        time.sleep(self.delay)
        if isinstance(self.value, Exception):
            raise self.value
        return self.value


class TestWavProcessorTask:

    def test_base_process_not_implemented(self):
        with pytest.raises(NotImplementedError):
            WavProcessorTask().run()

    def test_canceled_task_does_not_run(self):
        task = SleepTask(1)
        task.cancel()
        assert task.is_canceled
        assert task.run() is None
        assert task.ran is False


class TestWavProcessorService:

    def test_results_in_submission_order(self):
        tasks = [SleepTask(i, delay=0.05 * (4 - i)) for i in range(4)]
        with WavProcessorService(4) as service:
            results = service.execute(tasks)
        assert results == [0, 1, 2, 3]

    def test_failed_task_yields_none(self):
        tasks = [SleepTask("a"), SleepTask(ValueError("boom")), SleepTask("c")]
        with WavProcessorService(2) as service:
            results = service.execute(tasks)
        assert results == ["a", None, "c"]

    def test_empty_task_list(self):
        with WavProcessorService(2) as service:
            assert service.execute([]) == []

    def test_callback_sees_progress(self):
        calls = []
        with WavProcessorService(2) as service:
            service.execute([SleepTask(i) for i in range(3)], callback=lambda done, total: calls.append((done, total)))
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_callback_false_cancels_remaining(self):
        gate = threading.Event()

        class GatedTask(SleepTask):
            def process(self):
                gate.wait(timeout=5)
                return super().process()

        first = SleepTask("first")
        rest = [GatedTask(i) for i in range(4)]

        def stop_after_first(done, total):
            return False

        with WavProcessorService(1) as service:
            results = service.execute([first] + rest, callback=stop_after_first)
            gate.set()

        assert results[0] == "first"
        assert results[1:] == [None] * 4
        assert all(task.is_canceled for task in rest)

    def test_default_thread_count(self):
        service = WavProcessorService()
        try:
            assert service.num_threads >= 1
        finally:
            service.shutdown()
