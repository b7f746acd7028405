from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, TextIO

from .config import RunConfig
from .connector.base import ConnectorFactory
from .dispatcher import WorkDispatcher
from .identifiers import IdentifierAllocator
from .sampler import OperationSampler
from .statistics import MetricsRegistry, wall_clock_ms
from .worker import Worker

LOGGER = logging.getLogger("ace_benchmark.orchestrator")

POLL_INTERVAL_S = 0.1
JOIN_TIMEOUT_S = 5.0
TIMESTAMP_FORMAT = "%Y-%m-%d_%H.%M.%S"


class RunState(enum.Enum):
    PREPARING = "preparing"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"


@dataclass
class RunSummary:
    name: str
    report_path: Path
    storage_path: Path | None
    counts: dict[str, int] = field(default_factory=dict)
    failed_workers: int = 0
    interrupted: bool = False
    duration_ms: float = 0.0


class Orchestrator:
    """Owns one run: prepares the pool, drives the workers and writes the reports."""

    def __init__(
        self,
        config: RunConfig,
        connector_factory: ConnectorFactory,
        output_dir: Path,
        share_connector: bool = False,
        seed: int | None = None,
        clock: Callable[[], float] = wall_clock_ms,
        poll_interval_s: float = POLL_INTERVAL_S,
        join_timeout_s: float = JOIN_TIMEOUT_S,
    ) -> None:
        self._config = config
        self._output_dir = Path(output_dir)
        self._poll_interval_s = poll_interval_s
        self._join_timeout_s = join_timeout_s
        self._stop_event = threading.Event()

        self.state = RunState.PREPARING
        self.metrics = MetricsRegistry(config, clock=clock)
        self.allocator = IdentifierAllocator()
        self.sampler = OperationSampler.from_rates(config.rates)
        self.dispatcher = WorkDispatcher(
            config,
            self.allocator,
            self.sampler,
            self.metrics,
            connector_factory,
            share_connector=share_connector,
            seed=seed,
        )
        self.workers: list[Worker] = []

    def stop(self) -> None:
        """Request an early end of the run; the supervisory loop drains on its next tick."""
        self._stop_event.set()

    def run(self) -> RunSummary:
        config = self._config
        self._output_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime(TIMESTAMP_FORMAT)
        report_path = self._output_dir / f"{config.name}-{stamp}.csv"
        storage_path = (
            self._output_dir / f"{config.name}_DB_STORAGE-{stamp}.csv"
            if config.report_db_space
            else None
        )
        summary = RunSummary(name=config.name, report_path=report_path, storage_path=storage_path)

        LOGGER.info("Executing configuration: %s", config.name)
        sinks: list[TextIO] = []
        try:
            self.state = RunState.PREPARING
            LOGGER.info(
                "Preparing benchmark: purge remote state and create %d record(s)",
                config.initial_pool_size,
            )
            self.dispatcher.prepare(config.initial_pool_size)

            report_sink = open(report_path, "w", encoding="utf-8", newline="")
            sinks.append(report_sink)
            storage_sink = None
            if storage_path is not None:
                storage_sink = open(storage_path, "w", encoding="utf-8", newline="")
                sinks.append(storage_sink)

            self.metrics.start()
            self._start_workers()
            self.state = RunState.RUNNING
            self._supervise(report_sink, storage_sink)
        except KeyboardInterrupt:
            LOGGER.warning("Run %s interrupted; draining", config.name)
            summary.interrupted = True
        finally:
            self._drain(summary, sinks)

        return summary

    def _start_workers(self) -> None:
        for index in range(self._config.num_workers):
            worker = Worker(self.dispatcher, name=f"{self._config.name}-worker-{index}")
            worker.start()
            self.workers.append(worker)
        LOGGER.info("Number of workers launched: %d", len(self.workers))

    def _supervise(self, report_sink: TextIO, storage_sink: TextIO | None) -> None:
        config = self._config
        metrics = self.metrics
        while True:
            now = metrics.now()

            if now - metrics.last_report_time_ms >= config.reporting_interval_ms:
                metrics.report(report_sink)
                report_sink.flush()
                LOGGER.info(
                    "Progress: %.1f %% (alive workers %d/%d)",
                    self._progress(now),
                    sum(1 for worker in self.workers if worker.is_alive()),
                    len(self.workers),
                )

            if (
                storage_sink is not None
                and now - metrics.last_db_report_time_ms >= config.db_space_interval_ms
            ):
                if metrics.report_storage(storage_sink, self.dispatcher.storage_metrics):
                    storage_sink.flush()

            if now - metrics.start_time_ms >= config.max_duration_ms:
                LOGGER.info("Progress: %d %%", 100)
                return

            if self._stop_event.wait(self._poll_interval_s):
                LOGGER.info("Run %s stopped before its deadline", config.name)
                return

    def _progress(self, now: float) -> float:
        if self._config.max_duration_ms <= 0:
            return 100.0
        elapsed = now - self.metrics.start_time_ms
        return min(elapsed / self._config.max_duration_ms * 100.0, 100.0)

    def _drain(self, summary: RunSummary, sinks: list[TextIO]) -> None:
        self.state = RunState.DRAINING
        for worker in self.workers:
            worker.stop()

        deadline = time.monotonic() + self._join_timeout_s
        for worker in self.workers:
            worker.join(timeout=max(deadline - time.monotonic(), 0.0))
        lingering = [worker.name for worker in self.workers if worker.is_alive()]
        if lingering:
            LOGGER.warning("Workers still busy after stop request: %s", ", ".join(lingering))

        for sink in sinks:
            sink.close()
        self.dispatcher.close()

        summary.counts = {operation.value: count for operation, count in self.metrics.snapshot().items()}
        summary.failed_workers = sum(1 for worker in self.workers if worker.failed)
        if self.metrics.start_time_ms:
            summary.duration_ms = self.metrics.elapsed_ms()
        if summary.failed_workers:
            LOGGER.warning(
                "%d of %d worker(s) terminated early on task errors",
                summary.failed_workers,
                len(self.workers),
            )
        self.state = RunState.DONE
        LOGGER.info("Run %s done: %s", summary.name, summary.counts)
