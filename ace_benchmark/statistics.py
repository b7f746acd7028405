from __future__ import annotations

import collections
import csv
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, TextIO

from .config import RunConfig
from .connector.base import ConnectorError
from .sampler import Operation

LOGGER = logging.getLogger("ace_benchmark.statistics")

REPORT_HEADER: tuple[str, ...] = (
    "Name",
    "Threads",
    "Initial size",
    "Time",
    "Num creates",
    "Num reads",
    "Num updates",
    "Num deletes",
    "TPS create",
    "TPS read",
    "TPS update",
    "TPS delete",
    "TPS ping",
    "TPS overall",
)

STORAGE_HEADER: tuple[str, ...] = (
    "Time",
    "Table name",
    "Table size",
    "Number of records",
    "Bytes per record",
    "Database size",
)

STORAGE_RESOURCES: tuple[str, ...] = ("domain", "pseudonym", "auditevent")

# Operations counted towards the overall throughput figure
OVERALL_OPERATIONS: tuple[Operation, ...] = (
    Operation.CREATE,
    Operation.READ,
    Operation.UPDATE,
    Operation.DELETE,
)

DELIMITER = ";"


class StorageParseError(ValueError):
    """Raised when a storage probe response does not have the expected shape."""


@dataclass(frozen=True)
class StorageMetrics:
    resource: str
    table_size: int
    record_count: int
    total_size: int

    @property
    def bytes_per_record(self) -> float:
        if self.record_count == 0:
            return 0.0
        return self.table_size / self.record_count


def parse_storage_metrics(resource: str, response: str) -> StorageMetrics:
    """Parse ``tableSize: <n>, recordCount: <n>, totalSize: <n>`` positionally."""
    if not response:
        raise StorageParseError(f"Empty storage response for {resource}")
    try:
        table_size = _between(response, "tableSize: ", ", recordCount:")
        record_count = _between(response, "recordCount: ", ", totalSize:")
        total_size = _between(response, "totalSize: ", None)
    except ValueError as exc:
        raise StorageParseError(f"Malformed storage response for {resource}: {response!r}") from exc
    return StorageMetrics(resource, table_size, record_count, total_size)


def _between(text: str, start_marker: str, end_marker: str | None) -> int:
    # str.index raises ValueError when a marker is missing
    start = text.index(start_marker) + len(start_marker)
    end = text.index(end_marker, start) if end_marker else len(text)
    return int(text[start:end].strip())


def format_seconds(elapsed_ms: float) -> str:
    """Elapsed seconds with a decimal comma, e.g. ``1,5``."""
    return str(elapsed_ms / 1000.0).replace(".", ",")


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class MetricsRegistry:
    """Per-operation counters plus the single-reader reporting routines.

    ``record_*`` may be called from any worker thread. ``start``, ``report``
    and ``report_storage`` belong to the orchestrator thread and must never run
    concurrently with each other.
    """

    def __init__(self, config: RunConfig, clock: Callable[[], float] = wall_clock_ms) -> None:
        self._config = config
        self._clock = clock

        self._lock = threading.Lock()
        self._counts: collections.Counter[Operation] = collections.Counter()

        self.start_time_ms = 0.0
        self.last_report_time_ms = 0.0
        self.last_db_report_time_ms = 0.0
        self._last_counts: dict[Operation, int] = {operation: 0 for operation in Operation}
        self._header_written = False
        self._storage_header_written = False
        self._storage_skips = 0

    def record(self, operation: Operation) -> None:
        with self._lock:
            self._counts[operation] += 1

    def record_create(self) -> None:
        self.record(Operation.CREATE)

    def record_read(self) -> None:
        self.record(Operation.READ)

    def record_update(self) -> None:
        self.record(Operation.UPDATE)

    def record_delete(self) -> None:
        self.record(Operation.DELETE)

    def record_ping(self) -> None:
        self.record(Operation.PING)

    def snapshot(self) -> dict[Operation, int]:
        with self._lock:
            return {operation: self._counts[operation] for operation in Operation}

    def start(self, now_ms: float | None = None) -> None:
        now = self._clock() if now_ms is None else now_ms
        self.start_time_ms = now
        self.last_report_time_ms = now
        self.last_db_report_time_ms = now

    def now(self) -> float:
        return self._clock()

    def elapsed_ms(self) -> float:
        return self._clock() - self.start_time_ms

    def report(self, sink: TextIO) -> list[object]:
        now = self._clock()
        current = self.snapshot()
        interval_ms = now - self.last_report_time_ms

        tps = {
            operation: _throughput(current[operation] - self._last_counts[operation], interval_ms)
            for operation in Operation
        }
        overall = _throughput(
            sum(current[op] - self._last_counts[op] for op in OVERALL_OPERATIONS), interval_ms
        )

        writer = csv.writer(sink, delimiter=DELIMITER, lineterminator="\n")
        if not self._header_written:
            writer.writerow(REPORT_HEADER)
            self._header_written = True

        row: list[object] = [
            self._config.name,
            self._config.num_workers,
            self._config.initial_pool_size,
            format_seconds(now - self.start_time_ms),
            current[Operation.CREATE],
            current[Operation.READ],
            current[Operation.UPDATE],
            current[Operation.DELETE],
            int(tps[Operation.CREATE]),
            int(tps[Operation.READ]),
            int(tps[Operation.UPDATE]),
            int(tps[Operation.DELETE]),
            int(tps[Operation.PING]),
            int(overall),
        ]
        writer.writerow(row)

        self.last_report_time_ms = now
        self._last_counts = current
        return row

    def report_storage(self, sink: TextIO, probe: Callable[[str], str]) -> bool:
        """Write one storage row per resource; return False when the tick was skipped."""
        now = self._clock()
        try:
            metrics = [
                parse_storage_metrics(resource, probe(resource)) for resource in STORAGE_RESOURCES
            ]
        except (StorageParseError, ConnectorError) as exc:
            self._storage_skips += 1
            if self._storage_skips == 1:
                LOGGER.warning("Skipping storage report: %s", exc)
            else:
                LOGGER.debug("Skipping storage report (%d in a row): %s", self._storage_skips, exc)
            return False

        writer = csv.writer(sink, delimiter=DELIMITER, lineterminator="\n")
        if not self._storage_header_written:
            writer.writerow(STORAGE_HEADER)
            self._storage_header_written = True

        elapsed = format_seconds(now - self.start_time_ms)
        for item in metrics:
            writer.writerow(
                [
                    elapsed,
                    item.resource,
                    item.table_size,
                    item.record_count,
                    item.bytes_per_record,
                    item.total_size,
                ]
            )

        self._storage_skips = 0
        self.last_db_report_time_ms = now
        return True


def _throughput(delta: int, interval_ms: float) -> float:
    if interval_ms <= 0:
        return 0.0
    return delta / interval_ms * 1000.0
