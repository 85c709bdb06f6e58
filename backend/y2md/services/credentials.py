"""
Per-provider API key storage.

Lookup order for get():
1. Environment variable Y2MD_{PROVIDER}_API_KEY (read-only, never written)
2. OS keyring entry: service "y2md", username = provider identity value

set()/delete() only touch the keyring. Secret values are never logged.

Example:
    store = CredentialStore()
    store.set(ProviderIdentity.OPENAI, "sk-...")
    if store.has(ProviderIdentity.OPENAI):
        key = store.get(ProviderIdentity.OPENAI)
"""

import logging
import os
from collections.abc import Mapping
from typing import Protocol

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from y2md.models.schemas import ProviderIdentity
from y2md.services.errors import CredentialStoreError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "y2md"

SOURCE_ENVIRONMENT = "environment"
SOURCE_KEYRING = "keyring"


class SecretBackend(Protocol):
    """The subset of the keyring API used here.

    The `keyring` module itself satisfies it.
    """

    def get_password(self, service_name: str, username: str) -> str | None: ...

    def set_password(self, service_name: str, username: str, password: str) -> None: ...

    def delete_password(self, service_name: str, username: str) -> None: ...


def env_var_name(provider: ProviderIdentity) -> str:
    """Environment variable that overrides the stored key for a provider."""
    return f"Y2MD_{provider.value.upper()}_API_KEY"


class CredentialStore:
    """
    API key access with environment override and keyring persistence.

    Args:
        backend: Secret backend (default: the keyring module)
        environ: Environment mapping (default: os.environ)
        service: Keyring service namespace
    """

    def __init__(
        self,
        backend: SecretBackend | None = None,
        environ: Mapping[str, str] | None = None,
        service: str = KEYRING_SERVICE,
    ):
        self.backend = backend if backend is not None else keyring
        self.environ = environ if environ is not None else os.environ
        self.service = service

    def get(self, provider: ProviderIdentity) -> str | None:
        """
        Resolve the API key for a provider.

        Absence is not an error here; callers decide whether it is fatal.

        Raises:
            CredentialStoreError: If the keyring backend fails
        """
        value = self._from_environment(provider)
        if value:
            return value
        return self._from_keyring(provider)

    def set(self, provider: ProviderIdentity, secret: str) -> None:
        """
        Store an API key in the keyring.

        Raises:
            ValueError: If the secret is empty
            CredentialStoreError: If the keyring backend fails
        """
        secret = secret.strip()
        if not secret:
            raise ValueError("API key must not be empty")

        try:
            self.backend.set_password(self.service, provider.value, secret)
        except KeyringError as e:
            raise CredentialStoreError(
                f"Failed to store API key for '{provider.value}' in keyring: "
                f"{type(e).__name__}",
                remediation=f"Export {env_var_name(provider)} instead",
            ) from e

        logger.info(f"Stored API key for {provider.value} in keyring")

        if self._from_environment(provider):
            logger.warning(
                f"{env_var_name(provider)} is set and takes precedence "
                f"over the stored key"
            )

    def delete(self, provider: ProviderIdentity) -> None:
        """
        Remove the keyring entry for a provider; no-op if none exists.

        Raises:
            CredentialStoreError: If the keyring backend fails
        """
        try:
            self.backend.delete_password(self.service, provider.value)
        except PasswordDeleteError:
            logger.debug(f"No keyring entry to delete for {provider.value}")
            return
        except KeyringError as e:
            raise CredentialStoreError(
                f"Failed to delete API key for '{provider.value}' from keyring: "
                f"{type(e).__name__}"
            ) from e

        logger.info(f"Deleted API key for {provider.value} from keyring")

    def has(self, provider: ProviderIdentity) -> bool:
        """True if a key is available from any source."""
        return self.source(provider) is not None

    def source(self, provider: ProviderIdentity) -> str | None:
        """
        Name where the effective key comes from.

        Returns:
            "environment", "keyring", or None if no key is available
        """
        if self._from_environment(provider):
            return SOURCE_ENVIRONMENT
        if self._from_keyring(provider):
            return SOURCE_KEYRING
        return None

    def _from_environment(self, provider: ProviderIdentity) -> str | None:
        value = self.environ.get(env_var_name(provider), "").strip()
        return value or None

    def _from_keyring(self, provider: ProviderIdentity) -> str | None:
        try:
            value = self.backend.get_password(self.service, provider.value)
        except KeyringError as e:
            raise CredentialStoreError(
                f"Failed to read API key for '{provider.value}' from keyring: "
                f"{type(e).__name__}",
                remediation=f"Export {env_var_name(provider)} instead",
            ) from e
        return value or None
