from __future__ import annotations

import threading
import time

from .base import Connector, ConnectorError, ConnectorFactory, NotFoundError

# Rough per-row footprints used to fake storage figures
ROW_BYTES: dict[str, int] = {
    "domain": 512,
    "pseudonym": 160,
    "auditevent": 96,
}


class InMemoryStore:
    """Record table shared by every connector of one factory."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.records: dict[str, int] = {}
        self.audit_events = 0
        self.domain_ready = False

    def clear(self) -> None:
        with self.lock:
            self.records.clear()
            self.audit_events = 0
            self.domain_ready = False

    def row_count(self, resource: str) -> int:
        with self.lock:
            if resource == "pseudonym":
                return len(self.records)
            if resource == "auditevent":
                return self.audit_events
            if resource == "domain":
                return 1 if self.domain_ready else 0
        raise ConnectorError(f"Unknown storage resource {resource!r}")


class InMemoryConnector(Connector):
    """Connector backed by a local dict, for dry runs and tests."""

    def __init__(self, store: InMemoryStore, latency_s: float = 0.0) -> None:
        self._store = store
        self._latency_s = latency_s
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def prepare_run(self) -> None:
        self._store.clear()
        with self._store.lock:
            self._store.domain_ready = True

    def create_record(self, key: str) -> None:
        self._pause()
        with self._store.lock:
            self._store.records[key] = 0
            self._store.audit_events += 1

    def read_record(self, key: str) -> None:
        self._pause()
        with self._store.lock:
            self._store.audit_events += 1
            if key not in self._store.records:
                raise NotFoundError(f"Record {key} not found")

    def update_record(self, key: str) -> None:
        self._pause()
        with self._store.lock:
            self._store.audit_events += 1
            if key not in self._store.records:
                raise NotFoundError(f"Record {key} not found")
            self._store.records[key] += 1

    def delete_record(self, key: str) -> None:
        self._pause()
        with self._store.lock:
            self._store.audit_events += 1
            if self._store.records.pop(key, None) is None:
                raise NotFoundError(f"Record {key} not found")

    def ping(self) -> None:
        self._pause()

    def storage_metrics(self, resource: str) -> str:
        count = self._store.row_count(resource)
        table_size = count * ROW_BYTES.get(resource, 128)
        total_size = sum(
            self._store.row_count(name) * row_bytes for name, row_bytes in ROW_BYTES.items()
        )
        return f"tableSize: {table_size}, recordCount: {count}, totalSize: {total_size}"

    def close(self) -> None:
        self._closed = True

    def _pause(self) -> None:
        if self._closed:
            raise ConnectorError("Connector is closed")
        if self._latency_s > 0:
            time.sleep(self._latency_s)


class InMemoryConnectorFactory(ConnectorFactory):
    def __init__(self, latency_s: float = 0.0) -> None:
        self.store = InMemoryStore()
        self._latency_s = latency_s

    def create(self) -> InMemoryConnector:
        return InMemoryConnector(self.store, latency_s=self._latency_s)
