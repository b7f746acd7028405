from __future__ import annotations

import itertools
import logging
import random
import threading
from dataclasses import dataclass
from typing import Callable

from .config import RunConfig
from .connector.base import Connector, ConnectorFactory, NotFoundError
from .identifiers import IdentifierAllocator
from .sampler import Operation, OperationSampler
from .statistics import MetricsRegistry

LOGGER = logging.getLogger("ace_benchmark.dispatcher")


@dataclass(frozen=True)
class Task:
    """One connector call bound to its key, plus the counter it bumps on completion."""

    operation: Operation
    key: str | None
    action: Callable[[], None]
    on_complete: Callable[[], None]

    def __call__(self) -> None:
        try:
            self.action()
        except NotFoundError:
            # The key was sampled from the pool but deleted meanwhile; still valid load
            LOGGER.debug("%s %s: record not found", self.operation.value, self.key)
        self.on_complete()


class WorkDispatcher:
    """Turns sampled operations into executable tasks for the calling worker thread."""

    def __init__(
        self,
        config: RunConfig,
        allocator: IdentifierAllocator,
        sampler: OperationSampler,
        metrics: MetricsRegistry,
        connector_factory: ConnectorFactory,
        share_connector: bool = False,
        seed: int | None = None,
    ) -> None:
        self._config = config
        self._allocator = allocator
        self._sampler = sampler
        self._metrics = metrics
        self._factory = connector_factory
        self._share_connector = share_connector
        self._seed = seed

        self._local = threading.local()
        self._stream_ids = itertools.count()
        self._connectors: list[Connector] = []
        self._connectors_lock = threading.Lock()
        self._shared: Connector | None = None

    @property
    def connectors(self) -> list[Connector]:
        with self._connectors_lock:
            return list(self._connectors)

    def prepare(self, count: int) -> None:
        """Reset remote state and pre-populate ``count`` records; not counted in statistics."""
        connector = self.connector()
        connector.prepare_run()
        for _ in range(count):
            connector.create_record(self._allocator.allocate())
        LOGGER.info("Prepared %d initial record(s)", count)

    def next_task(self) -> Task:
        connector = self.connector()
        operation = self._sampler.sample(self.rng())

        if operation is Operation.CREATE:
            key = self._allocator.allocate()
            return Task(operation, key, lambda: connector.create_record(key), self._metrics.record_create)
        if operation is Operation.READ:
            key = self._allocator.sample_existing(self.rng())
            return Task(operation, key, lambda: connector.read_record(key), self._metrics.record_read)
        if operation is Operation.UPDATE:
            key = self._allocator.sample_existing(self.rng())
            return Task(operation, key, lambda: connector.update_record(key), self._metrics.record_update)
        if operation is Operation.DELETE:
            key = self._allocator.sample_existing(self.rng())
            return Task(operation, key, lambda: connector.delete_record(key), self._metrics.record_delete)
        if operation is Operation.PING:
            return Task(operation, None, connector.ping, self._metrics.record_ping)

        raise RuntimeError(f"No work can be provided for {operation!r}")

    def storage_metrics(self, resource: str) -> str:
        return self.connector().storage_metrics(resource)

    def connector(self) -> Connector:
        if self._share_connector:
            with self._connectors_lock:
                if self._shared is None:
                    self._shared = self._factory.create()
                    self._connectors.append(self._shared)
                return self._shared

        connector = getattr(self._local, "connector", None)
        if connector is None:
            connector = self._factory.create()
            self._local.connector = connector
            with self._connectors_lock:
                self._connectors.append(connector)
        return connector

    def rng(self) -> random.Random:
        rng = getattr(self._local, "rng", None)
        if rng is None:
            stream = next(self._stream_ids)
            rng = random.Random(None if self._seed is None else self._seed + stream)
            self._local.rng = rng
        return rng

    def close(self) -> None:
        with self._connectors_lock:
            connectors = list(self._connectors)
            self._connectors.clear()
            self._shared = None
        for connector in connectors:
            try:
                connector.close()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to close connector")
        self._factory.shutdown()
