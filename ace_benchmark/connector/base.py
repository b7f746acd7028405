from __future__ import annotations

import abc


class ConnectorError(Exception):
    """Raised when a connector call fails."""


class NotFoundError(ConnectorError):
    """Raised when the remote service reports that a record does not exist."""


class Connector(abc.ABC):
    """Capability the benchmark drives: one record service, one client session."""

    @abc.abstractmethod
    def prepare_run(self) -> None:
        """Clear and initialise remote state for a fresh run."""

    @abc.abstractmethod
    def create_record(self, key: str) -> None: ...

    @abc.abstractmethod
    def read_record(self, key: str) -> None: ...

    @abc.abstractmethod
    def update_record(self, key: str) -> None: ...

    @abc.abstractmethod
    def delete_record(self, key: str) -> None: ...

    @abc.abstractmethod
    def ping(self) -> None: ...

    @abc.abstractmethod
    def storage_metrics(self, resource: str) -> str:
        """Return ``tableSize: <n>, recordCount: <n>, totalSize: <n>`` for a resource."""

    def close(self) -> None:
        """Release client resources."""


class ConnectorFactory(abc.ABC):
    @abc.abstractmethod
    def create(self) -> Connector: ...

    def shutdown(self) -> None:
        """Release resources shared by every connector of this factory."""
