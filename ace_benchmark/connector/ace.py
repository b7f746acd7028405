from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import requests

from ..config import ConfigurationError
from .base import Connector, ConnectorError, ConnectorFactory, NotFoundError

LOGGER = logging.getLogger("ace_benchmark.connector.ace")

DEFAULT_DOMAIN_PREFIX = "TST"
DEFAULT_ID_TYPE = "ID"
DEFAULT_DOMAIN_VALID_FROM = "2000-01-01T18:00:00"
DEFAULT_PSEUDONYM_VALID_FROM = "2001-01-01T18:00:00"
TOKEN_LIFETIME_S = 290.0
REQUEST_TIMEOUT_S = 30.0
TABLES: tuple[str, ...] = ("pseudonym", "domain", "auditevent")


@dataclass(frozen=True)
class ACESettings:
    uri: str
    domain_name: str
    client_id: str
    client_secret: str
    keycloak_auth_uri: str
    keycloak_realm_name: str
    username: str
    password: str

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> ACESettings:
        keys = {
            "uri": "uri",
            "domain_name": "domainName",
            "client_id": "clientId",
            "client_secret": "clientSecret",
            "keycloak_auth_uri": "keycloakAuthUri",
            "keycloak_realm_name": "keycloakRealmName",
            "username": "username",
            "password": "password",
        }
        missing = [yaml_key for yaml_key in keys.values() if not values.get(yaml_key)]
        if missing:
            raise ConfigurationError(f"ACE settings are missing: {', '.join(missing)}")
        return cls(**{attr: str(values[yaml_key]) for attr, yaml_key in keys.items()})


class KeycloakAuthentication:
    """Obtains and refreshes bearer tokens from a Keycloak realm."""

    def __init__(self, settings: ACESettings, session: requests.Session) -> None:
        self._settings = settings
        self._session = session
        self._refresh_token: str | None = None

    @property
    def token_url(self) -> str:
        base = self._settings.keycloak_auth_uri.rstrip("/")
        return f"{base}/realms/{self._settings.keycloak_realm_name}/protocol/openid-connect/token"

    def authenticate(self) -> str:
        return self._request_token(
            {
                "grant_type": "password",
                "username": self._settings.username,
                "password": self._settings.password,
            }
        )

    def refresh(self) -> str:
        if not self._refresh_token:
            return self.authenticate()
        return self._request_token(
            {"grant_type": "refresh_token", "refresh_token": self._refresh_token}
        )

    def _request_token(self, grant: dict[str, str]) -> str:
        data = {
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            **grant,
        }
        try:
            response = self._session.post(self.token_url, data=data, timeout=REQUEST_TIMEOUT_S)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ConnectorError(f"Keycloak authentication failed: {exc}") from exc

        token = payload.get("access_token")
        if not token:
            raise ConnectorError("Keycloak response did not contain an access token")
        self._refresh_token = payload.get("refresh_token")
        return token


class ACEConnector(Connector):
    """Connector for the ACE pseudonymisation REST API."""

    def __init__(
        self,
        settings: ACESettings,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._auth = KeycloakAuthentication(settings, self._session)
        self._clock = clock
        self._token: str | None = None
        self._authenticated_at = 0.0

    @property
    def _pseudonym_path(self) -> str:
        return f"/domains/{self._settings.domain_name}/pseudonym"

    def prepare_run(self) -> None:
        for table in TABLES:
            try:
                self._request("DELETE", f"/table/{table}")
            except ConnectorError as exc:
                LOGGER.debug("Ignoring failure while clearing table %s: %s", table, exc)
        self._request(
            "POST",
            "/domain",
            json={
                "name": self._settings.domain_name,
                "prefix": DEFAULT_DOMAIN_PREFIX,
                "validFrom": DEFAULT_DOMAIN_VALID_FROM,
            },
        )

    def create_record(self, key: str) -> None:
        self._request("POST", self._pseudonym_path, json={"id": key, "idType": DEFAULT_ID_TYPE})

    def read_record(self, key: str) -> None:
        self._request("GET", self._pseudonym_path, params=self._record_params(key))

    def update_record(self, key: str) -> None:
        self._request(
            "PUT",
            self._pseudonym_path,
            params=self._record_params(key),
            json={
                "id": key,
                "idType": DEFAULT_ID_TYPE,
                "validFrom": DEFAULT_PSEUDONYM_VALID_FROM,
            },
        )

    def delete_record(self, key: str) -> None:
        self._request("DELETE", self._pseudonym_path, params=self._record_params(key))

    def ping(self) -> None:
        self._request("GET", "/ping")

    def storage_metrics(self, resource: str) -> str:
        return self._request("GET", f"/table/{resource}/storage")

    def close(self) -> None:
        self._session.close()

    def _record_params(self, key: str) -> dict[str, str]:
        return {"id": key, "idType": DEFAULT_ID_TYPE}

    def _bearer(self) -> str:
        now = self._clock()
        if self._token is None:
            self._token = self._auth.authenticate()
            self._authenticated_at = now
        elif now - self._authenticated_at > TOKEN_LIFETIME_S:
            self._token = self._auth.refresh()
            self._authenticated_at = now
        return self._token

    def _request(self, method: str, path: str, **kwargs: Any) -> str:
        url = self._settings.uri.rstrip("/") + path
        headers = {"Authorization": f"Bearer {self._bearer()}"}
        try:
            response = self._session.request(
                method, url, headers=headers, timeout=REQUEST_TIMEOUT_S, **kwargs
            )
        except requests.RequestException as exc:
            raise ConnectorError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(f"{method} {path} returned 404")
        if response.status_code >= 400:
            raise ConnectorError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}"
            )
        return response.text


class ACEConnectorFactory(ConnectorFactory):
    def __init__(self, settings: ACESettings) -> None:
        self._settings = settings

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> ACEConnectorFactory:
        return cls(ACESettings.from_mapping(values))

    def create(self) -> ACEConnector:
        return ACEConnector(self._settings)
