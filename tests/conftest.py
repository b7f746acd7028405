from __future__ import annotations

import pytest

from ace_benchmark.config import RunConfig
from ace_benchmark.connector.base import Connector, ConnectorError, ConnectorFactory, NotFoundError


class FakeClock:
    def __init__(self, start_ms: float = 1_000_000.0) -> None:
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


class RecordingConnector(Connector):
    """Connector stub that remembers calls and can be told to fail."""

    def __init__(self, not_found: set[str] | None = None, fail_on: set[str] | None = None) -> None:
        self.calls: list[tuple[str, str | None]] = []
        self.not_found = not_found or set()
        self.fail_on = fail_on or set()
        self.storage_responses: dict[str, str] = {}
        self.closed = False

    def _call(self, method: str, key: str | None = None) -> None:
        self.calls.append((method, key))
        if method in self.fail_on:
            raise ConnectorError(f"{method} failed")
        if method in self.not_found:
            raise NotFoundError(f"{key} not found")

    def prepare_run(self) -> None:
        self._call("prepare_run")

    def create_record(self, key: str) -> None:
        self._call("create_record", key)

    def read_record(self, key: str) -> None:
        self._call("read_record", key)

    def update_record(self, key: str) -> None:
        self._call("update_record", key)

    def delete_record(self, key: str) -> None:
        self._call("delete_record", key)

    def ping(self) -> None:
        self._call("ping")

    def storage_metrics(self, resource: str) -> str:
        self._call("storage_metrics", resource)
        return self.storage_responses.get(resource, "")

    def close(self) -> None:
        self.closed = True


class RecordingFactory(ConnectorFactory):
    def __init__(self, **connector_kwargs) -> None:
        self.connector_kwargs = connector_kwargs
        self.created: list[RecordingConnector] = []
        self.shut_down = False

    def create(self) -> RecordingConnector:
        connector = RecordingConnector(**self.connector_kwargs)
        self.created.append(connector)
        return connector

    def shutdown(self) -> None:
        self.shut_down = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def create_only_config() -> RunConfig:
    return RunConfig(
        name="create-only",
        create_rate=100,
        num_workers=2,
        max_duration_ms=1_000,
        reporting_interval_ms=100,
    )
