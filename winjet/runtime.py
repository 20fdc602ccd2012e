from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from queue import Empty, Queue
from threading import Lock, Thread
from typing import Any

from .api_models import ScreenState
from .app import App
from .settings import settings
from .tasks import Job, Result, Task

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Shutdown:
    pass


@dataclass(frozen=True)
class _Completed:
    """A worker job finished; ``msg`` is None when the job was cancelled."""

    msg: Any


class ControlLoop:
    """Single-threaded dispatcher for an App.

    Messages are processed one at a time in arrival order on the loop thread.
    Jobs run on the worker pool and come back through the same queue, so the
    App is never touched by any other thread. Readers on other threads use
    ``snapshot()``.
    """

    def __init__(self, app: App, executor: Executor | None = None, max_workers: int | None = None) -> None:
        self.app = app
        self._queue: Queue[Any] = Queue()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(1, max_workers or settings.worker_threads), thread_name_prefix="winjet-worker"
        )
        self._in_flight = 0  # loop thread only
        self._lock = Lock()
        self._snapshot = app.snapshot()
        self._stopped = False
        self._thr: Thread | None = None

    # --- thread-safe API ---

    def post(self, msg: Any) -> None:
        self._queue.put(msg)

    def snapshot(self) -> ScreenState:
        with self._lock:
            return self._snapshot

    def start(self) -> Thread:
        if self._thr and self._thr.is_alive():
            return self._thr
        self._thr = Thread(target=self.run, name="winjet-control-loop", daemon=True)
        self._thr.start()
        return self._thr

    def stop(self, timeout: float = 5.0) -> None:
        self.post(Shutdown())
        if self._thr is not None:
            self._thr.join(timeout)

    # --- loop thread ---

    def run(self) -> None:
        _LOGGER.debug("Control loop started")
        self.boot()
        try:
            while not self._stopped:
                self.process_one()
        finally:
            self.close()
        _LOGGER.debug("Control loop stopped")

    def boot(self) -> None:
        self.run_task(self.app.boot())

    def process_one(self, timeout: float | None = None) -> bool:
        """Handle one queued message. Returns False if nothing arrived within ``timeout``."""
        try:
            msg = self._queue.get(timeout=timeout)
        except Empty:
            return False

        if isinstance(msg, _Completed):
            self._in_flight -= 1
            if msg.msg is None:
                return True
            msg = msg.msg

        if isinstance(msg, Shutdown):
            self._stopped = True
            return True

        _LOGGER.debug("Dispatching %s", type(msg).__name__)
        try:
            task = self.app.update(msg)
        except Exception:
            _LOGGER.exception("Handler for %s failed", type(msg).__name__)
            task = Task.none()
        self.run_task(task)
        self._publish()
        return True

    def run_task(self, task: Task) -> None:
        for msg in task.messages:
            self._queue.put(msg)
        for job in task.jobs:
            self._submit(job)

    def run_until_idle(self, timeout: float = 5.0) -> None:
        """Process messages until the queue is empty and no job is running."""
        deadline = time.monotonic() + timeout
        while self._in_flight > 0 or not self._queue.empty():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(f"control loop still busy ({self._in_flight} jobs in flight)")
            self.process_one(timeout=remaining)

    def _submit(self, job: Job) -> None:
        self._in_flight += 1
        fut = self._executor.submit(job.run)
        fut.add_done_callback(lambda f, job=job: self._queue.put(_Completed(self._to_msg(job, f))))

    @staticmethod
    def _to_msg(job: Job, fut: Future[Result[Any]]) -> Any:
        if fut.cancelled():
            return None
        return job.to_msg(fut.result())

    def _publish(self) -> None:
        snap = self.app.snapshot()
        with self._lock:
            self._snapshot = snap

    def close(self) -> None:
        if self._owns_executor and isinstance(self._executor, ThreadPoolExecutor):
            self._executor.shutdown(wait=False, cancel_futures=True)
        self.app.close()
