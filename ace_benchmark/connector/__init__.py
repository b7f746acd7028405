from .base import Connector, ConnectorError, ConnectorFactory, NotFoundError
from .memory import InMemoryConnector, InMemoryConnectorFactory

__all__ = [
    "Connector",
    "ConnectorError",
    "ConnectorFactory",
    "InMemoryConnector",
    "InMemoryConnectorFactory",
    "NotFoundError",
]
