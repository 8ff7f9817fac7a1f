# services/task_runner.py
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, wait as wait_futures
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class BackgroundExecutor:
    """
    Fire-and-forget work queue for jobs that must not block a request:
    standing-order execution after admission and webhook delivery.

    Jobs are never retried. A failure is logged with its traceback and
    counted so it shows up in /health.
    """

    def __init__(self, max_workers: int = 4, name: str = "exchange-bg"):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._active_jobs = {}
        self._futures = set()
        self._counters = {"submitted": 0, "succeeded": 0, "failed": 0}

    def submit(self, name: str, fn, *args, **kwargs):
        job_id = str(uuid.uuid4())
        with self._lock:
            self._counters["submitted"] += 1
            self._active_jobs[job_id] = {
                "name": name,
                "submitted_at": datetime.now(timezone.utc),
            }
        future = self._pool.submit(self._run, job_id, name, fn, args, kwargs)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)
        return future

    def _run(self, job_id, name, fn, args, kwargs):
        start_time = time.time()
        logger.debug("START JOB: %s (ID: %s)", name, job_id)
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            with self._lock:
                self._counters["failed"] += 1
            logger.exception("JOB FAILED: %s | Error: %s", name, e)
            return None
        finally:
            with self._lock:
                self._active_jobs.pop(job_id, None)

        with self._lock:
            self._counters["succeeded"] += 1
        logger.debug("END JOB: %s | Duration: %.3fs", name, time.time() - start_time)
        return result

    def _forget(self, future):
        with self._lock:
            self._futures.discard(future)

    def stats(self) -> dict:
        with self._lock:
            return {**self._counters, "active": len(self._active_jobs)}

    def join(self, timeout: float | None = None) -> bool:
        """
        Wait until no job is pending, including jobs submitted by jobs.
        Returns False on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                pending = {f for f in self._futures if not f.done()}
            if not pending:
                return True
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
            done, not_done = wait_futures(pending, timeout=remaining)
            if not_done and deadline is not None and time.monotonic() >= deadline:
                return False

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
