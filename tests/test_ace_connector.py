import pytest
import requests

from ace_benchmark.config import ConfigurationError
from ace_benchmark.connector.ace import (
    TOKEN_LIFETIME_S,
    ACEConnector,
    ACEConnectorFactory,
    ACESettings,
)
from ace_benchmark.connector.base import ConnectorError, NotFoundError

SETTINGS = {
    "uri": "http://ace.test/api/",
    "domainName": "Bench",
    "clientId": "ace",
    "clientSecret": "secret",
    "keycloakAuthUri": "http://keycloak.test",
    "keycloakRealmName": "dev",
    "username": "user",
    "password": "pass",
}


class FakeResponse:
    def __init__(self, status_code=200, text="", payload=None):
        self.status_code = status_code
        self.text = text
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self):
        self.token_requests = []
        self.requests = []
        self.responses = {}
        self.token_count = 0
        self.closed = False

    def post(self, url, data=None, timeout=None):
        self.token_requests.append((url, dict(data)))
        self.token_count += 1
        return FakeResponse(
            payload={"access_token": f"token-{self.token_count}", "refresh_token": "refresh"}
        )

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.requests.append((method, url, headers, kwargs))
        response = self.responses.get((method, url), FakeResponse())
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def connector(session, clock):
    return ACEConnector(ACESettings.from_mapping(SETTINGS), session=session, clock=clock)


def test_settings_require_all_keys():
    incomplete = dict(SETTINGS, password="")
    with pytest.raises(ConfigurationError, match="password"):
        ACESettings.from_mapping(incomplete)


def test_factory_builds_connectors_from_mapping():
    factory = ACEConnectorFactory.from_mapping(SETTINGS)
    connector = factory.create()
    assert isinstance(connector, ACEConnector)
    connector.close()


def test_create_posts_pseudonym_with_bearer_token(connector, session):
    connector.create_record("ID0001")

    url, data = session.token_requests[0]
    assert url == "http://keycloak.test/realms/dev/protocol/openid-connect/token"
    assert data["grant_type"] == "password"
    assert data["client_id"] == "ace"

    method, url, headers, kwargs = session.requests[0]
    assert method == "POST"
    assert url == "http://ace.test/api/domains/Bench/pseudonym"
    assert headers == {"Authorization": "Bearer token-1"}
    assert kwargs["json"] == {"id": "ID0001", "idType": "ID"}


def test_update_sends_query_and_valid_from(connector, session):
    connector.update_record("ID0002")
    method, _, _, kwargs = session.requests[0]
    assert method == "PUT"
    assert kwargs["params"] == {"id": "ID0002", "idType": "ID"}
    assert kwargs["json"]["validFrom"] == "2001-01-01T18:00:00"


def test_token_is_reused_then_refreshed(connector, session, clock):
    connector.ping()
    connector.ping()
    assert session.token_count == 1

    clock.now = TOKEN_LIFETIME_S + 1
    connector.ping()
    assert session.token_count == 2
    assert session.token_requests[-1][1]["grant_type"] == "refresh_token"
    assert session.requests[-1][2] == {"Authorization": "Bearer token-2"}


@pytest.mark.parametrize("method_name, http_method", [
    ("read_record", "GET"),
    ("update_record", "PUT"),
    ("delete_record", "DELETE"),
])
def test_404_maps_to_not_found(connector, session, method_name, http_method):
    session.responses[(http_method, "http://ace.test/api/domains/Bench/pseudonym")] = FakeResponse(404)
    with pytest.raises(NotFoundError):
        getattr(connector, method_name)("ID0003")


def test_server_errors_map_to_connector_error(connector, session):
    session.responses[("GET", "http://ace.test/api/ping")] = FakeResponse(500, text="boom")
    with pytest.raises(ConnectorError) as excinfo:
        connector.ping()
    assert not isinstance(excinfo.value, NotFoundError)


def test_transport_errors_map_to_connector_error(connector, session):
    session.responses[("GET", "http://ace.test/api/ping")] = requests.ConnectionError("refused")
    with pytest.raises(ConnectorError):
        connector.ping()


def test_prepare_run_clears_tables_and_creates_domain(connector, session):
    session.responses[("DELETE", "http://ace.test/api/table/domain")] = FakeResponse(500)

    connector.prepare_run()

    calls = [(method, url) for method, url, _, _ in session.requests]
    assert calls == [
        ("DELETE", "http://ace.test/api/table/pseudonym"),
        ("DELETE", "http://ace.test/api/table/domain"),
        ("DELETE", "http://ace.test/api/table/auditevent"),
        ("POST", "http://ace.test/api/domain"),
    ]
    assert session.requests[-1][3]["json"]["name"] == "Bench"


def test_storage_metrics_returns_body(connector, session):
    body = "tableSize: 1, recordCount: 1, totalSize: 1"
    session.responses[("GET", "http://ace.test/api/table/auditevent/storage")] = FakeResponse(text=body)
    assert connector.storage_metrics("auditevent") == body


def test_close_closes_session(connector, session):
    connector.close()
    assert session.closed
