"""Tests for API key storage."""

import logging

import pytest
from keyring.errors import KeyringError

from y2md.models.schemas import ProviderIdentity
from y2md.services.credentials import KEYRING_SERVICE, CredentialStore, env_var_name
from y2md.services.errors import CredentialStoreError

OPENAI = ProviderIdentity.OPENAI


class BrokenKeyring:
    """Backend whose every call fails like a locked keychain."""

    def get_password(self, service_name, username):
        raise KeyringError("locked")

    def set_password(self, service_name, username, password):
        raise KeyringError("locked")

    def delete_password(self, service_name, username):
        raise KeyringError("locked")


class TestCredentialStore:
    """Keyring persistence with environment override"""

    def test_set_get_delete(self, credentials):
        credentials.set(OPENAI, "sk-test")
        assert credentials.get(OPENAI) == "sk-test"

        credentials.delete(OPENAI)
        assert credentials.get(OPENAI) is None

    def test_uses_y2md_service(self, credentials, fake_keyring):
        credentials.set(ProviderIdentity.ANTHROPIC, "sk-ant")

        assert fake_keyring.passwords == {(KEYRING_SERVICE, "anthropic"): "sk-ant"}

    def test_environment_wins_over_keyring(self, fake_keyring):
        store = CredentialStore(backend=fake_keyring, environ={"Y2MD_OPENAI_API_KEY": "sk-env"})
        store.set(OPENAI, "sk-stored")

        assert store.get(OPENAI) == "sk-env"
        assert store.source(OPENAI) == "environment"

    def test_blank_environment_value_ignored(self, fake_keyring):
        store = CredentialStore(backend=fake_keyring, environ={"Y2MD_OPENAI_API_KEY": "  "})
        store.set(OPENAI, "sk-stored")

        assert store.get(OPENAI) == "sk-stored"
        assert store.source(OPENAI) == "keyring"

    def test_delete_missing_is_noop(self, credentials):
        credentials.delete(OPENAI)

        assert not credentials.has(OPENAI)

    def test_empty_secret_rejected(self, credentials):
        with pytest.raises(ValueError):
            credentials.set(OPENAI, "   ")

    def test_secret_is_stripped(self, credentials):
        credentials.set(OPENAI, "  sk-test\n")

        assert credentials.get(OPENAI) == "sk-test"

    def test_backend_failure_wrapped_without_secret(self):
        store = CredentialStore(backend=BrokenKeyring(), environ={})

        with pytest.raises(CredentialStoreError) as exc_info:
            store.set(OPENAI, "sk-secret-value")

        assert "sk-secret-value" not in str(exc_info.value)
        assert env_var_name(OPENAI) in exc_info.value.remediation

    def test_secret_never_logged(self, credentials, caplog):
        caplog.set_level(logging.DEBUG)

        credentials.set(OPENAI, "sk-very-secret")
        credentials.get(OPENAI)
        credentials.delete(OPENAI)

        assert "sk-very-secret" not in caplog.text


def test_env_var_name():
    assert env_var_name(ProviderIdentity.ANTHROPIC) == "Y2MD_ANTHROPIC_API_KEY"
