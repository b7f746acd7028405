from __future__ import annotations

import enum
import logging
import threading

from .dispatcher import WorkDispatcher

LOGGER = logging.getLogger("ace_benchmark.worker")


class WorkerState(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


class Worker:
    """Background thread that executes dispatcher tasks until told to stop.

    The stop signal is checked between tasks only, so an in-flight connector
    call always finishes. Any error escaping a task ends the worker; it is kept
    on :attr:`error` and is not retried.
    """

    def __init__(self, dispatcher: WorkDispatcher, name: str) -> None:
        self._dispatcher = dispatcher
        self._name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.state = WorkerState.CREATED
        self.error: BaseException | None = None

    @property
    def name(self) -> str:
        return self._name

    def start(self) -> None:
        thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self.state = WorkerState.RUNNING
        thread.start()
        self._thread = thread

    def stop(self) -> None:
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread:
            self._thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def failed(self) -> bool:
        return self.error is not None

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                task = self._dispatcher.next_task()
                task()
        except Exception as exc:  # noqa: BLE001
            self.error = exc
            LOGGER.exception("Worker %s terminated by task error", self._name)
        finally:
            self.state = WorkerState.STOPPED
