"""Shared fixtures: isolated settings, in-memory keyring, mock HTTP."""

from collections.abc import Callable

import httpx
import pytest
from keyring.errors import PasswordDeleteError

from y2md.config import AppConfig, Settings
from y2md.services.credentials import CredentialStore


class FakeKeyring:
    """In-memory stand-in for the keyring module."""

    def __init__(self):
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service_name: str, username: str) -> str | None:
        return self.passwords.get((service_name, username))

    def set_password(self, service_name: str, username: str, password: str) -> None:
        self.passwords[(service_name, username)] = password

    def delete_password(self, service_name: str, username: str) -> None:
        if (service_name, username) not in self.passwords:
            raise PasswordDeleteError("Password not found")
        del self.passwords[(service_name, username)]


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        config_dir=tmp_path / "config",
        cache_dir=tmp_path / "cache",
        ollama_url="http://ollama.test:11434",
        _env_file=None,
    )


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def fake_keyring() -> FakeKeyring:
    return FakeKeyring()


@pytest.fixture
def credentials(fake_keyring) -> CredentialStore:
    return CredentialStore(backend=fake_keyring, environ={})


@pytest.fixture
def make_http_client():
    """Factory: handler -> (AsyncClient, RecordingTransport)."""
    def factory(handler: Callable[[httpx.Request], httpx.Response]):
        transport = RecordingTransport(handler)
        client = httpx.AsyncClient(transport=transport)
        return client, transport

    return factory
