"""
Thread pool for running independent audio tasks.

Tasks are submitted together and their results come back in submission
order, whatever order the workers finish in.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, List, Optional, Sequence


# (tasks done, tasks total) -> False to cancel the remaining tasks
ProgressCallback = Callable[[int, int], Optional[bool]]


class WavProcessorTask:
    """Unit of work run by WavProcessorService. Subclasses implement process()."""

    def __init__(self):
        self._canceled = threading.Event()

    def process(self) -> Any:
        raise NotImplementedError

    def cancel(self) -> None:
        self._canceled.set()

    @property
    def is_canceled(self) -> bool:
        return self._canceled.is_set()

    def run(self) -> Any:
        if self.is_canceled:
            return None
        return self.process()


class WavProcessorService:
    """Runs WavProcessorTasks on a shared ThreadPoolExecutor."""

    def __init__(self, num_threads: Optional[int] = None):
        """
        Args:
            num_threads: Worker count (defaults to the number of CPUs)
        """
        self.num_threads = max(1, num_threads or os.cpu_count() or 1)
        self.executor = ThreadPoolExecutor(
            max_workers=self.num_threads,
            thread_name_prefix='wavpitch',
        )
        self.logger = logging.getLogger('processor')

    def execute(
        self,
        tasks: Sequence[WavProcessorTask],
        callback: Optional[ProgressCallback] = None,
    ) -> List[Any]:
        """
        Run tasks and wait for them.

        Args:
            tasks: Tasks to run
            callback: Called after each finished task; returning False
                cancels every task that has not finished yet

        Returns:
            Task results in submission order. Failed or canceled tasks
            yield None.
        """
        total = len(tasks)
        results: List[Any] = [None] * total
        if total == 0:
            return results

        futures = {
            self.executor.submit(task.run): index
            for index, task in enumerate(tasks)
        }

        done = 0
        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = future.result()
            except Exception as e:
                self.logger.error(f"Task {index} failed: {e}", exc_info=True)
                results[index] = None
            done += 1

            if callback is not None and callback(done, total) is False:
                self.logger.info(f"Canceled after {done}/{total} tasks")
                for task in tasks:
                    task.cancel()
                for pending in futures:
                    pending.cancel()
                break

        return results

    def shutdown(self, wait: bool = True) -> None:
        self.logger.debug("Shutting down processor service")
        self.executor.shutdown(wait=wait)

    def __enter__(self) -> "WavProcessorService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
