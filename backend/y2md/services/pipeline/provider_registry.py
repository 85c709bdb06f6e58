"""
Provider registry for LLM formatting.

Resolves each provider identity to an endpoint/model pair from the
persisted configuration, filling gaps with built-in defaults, and
manages which provider is active.
"""

import logging
from dataclasses import dataclass

from y2md.config import AppConfig, Settings, save_app_config
from y2md.models.schemas import ProviderConfig, ProviderIdentity
from y2md.services.credentials import CredentialStore
from y2md.services.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_MODEL = "mistral-nemo:12b-instruct-2407-q5_0"

# Built-in endpoint/model pairs; Custom has none and must be configured
DEFAULT_PROVIDER_CONFIGS: dict[ProviderIdentity, ProviderConfig] = {
    ProviderIdentity.OPENAI: ProviderConfig(
        endpoint="https://api.openai.com/v1",
        model="gpt-4o-mini",
    ),
    ProviderIdentity.ANTHROPIC: ProviderConfig(
        endpoint="https://api.anthropic.com/v1",
        model="claude-sonnet-4-5",
    ),
}


@dataclass
class ProviderInfo:
    """
    Row for `y2md provider list`.

    Attributes:
        identity: Provider identity
        endpoint: Effective endpoint (None if unresolvable)
        model: Effective model (None if unresolvable)
        configured: True if the config file has an entry for it
        active: True if it is the active provider
    """

    identity: ProviderIdentity
    endpoint: str | None
    model: str | None
    configured: bool = False
    active: bool = False


class ProviderRegistry:
    """
    Per-provider endpoint/model configuration.

    Example:
        registry = ProviderRegistry(load_app_config(settings), settings)
        identity = registry.active_identity()
        config = registry.resolve(identity)
    """

    def __init__(self, app_config: AppConfig, settings: Settings):
        """
        Initialize registry.

        Args:
            app_config: Persisted configuration (mutated by configure/remove)
            settings: Application settings (Ollama URL default)
        """
        self.app_config = app_config
        self.settings = settings

    def defaults_for(self, identity: ProviderIdentity) -> ProviderConfig:
        """Built-in endpoint/model pair for a provider."""
        if identity == ProviderIdentity.LOCAL:
            return ProviderConfig(
                endpoint=self.settings.ollama_url,
                model=DEFAULT_LOCAL_MODEL,
            )
        return DEFAULT_PROVIDER_CONFIGS.get(identity, ProviderConfig())

    def active_identity(self) -> ProviderIdentity:
        """Configured active provider, else Local."""
        return self.app_config.active_provider or ProviderIdentity.LOCAL

    def resolve(self, identity: ProviderIdentity) -> ProviderConfig:
        """
        Effective endpoint/model for a provider.

        Configured values win over defaults field by field.

        Raises:
            ConfigError: If no endpoint or model can be determined
        """
        defaults = self.defaults_for(identity)
        configured = self.app_config.providers.get(identity, ProviderConfig())

        resolved = ProviderConfig(
            endpoint=configured.endpoint or defaults.endpoint,
            model=configured.model or defaults.model,
        )

        missing = [name for name in ("endpoint", "model") if not getattr(resolved, name)]
        if missing:
            raise ConfigError(
                f"Provider '{identity.value}' has no {' or '.join(missing)} configured",
                remediation=(
                    f"Run `y2md provider add {identity.value} "
                    f"--endpoint URL --model NAME`"
                ),
            )

        return resolved

    def configure(
        self,
        identity: ProviderIdentity,
        endpoint: str | None = None,
        model: str | None = None,
    ) -> ProviderConfig:
        """
        Add or update a provider entry. None leaves a field unchanged.

        Returns:
            The stored (not resolved) entry
        """
        current = self.app_config.providers.get(identity, ProviderConfig())
        entry = ProviderConfig(
            endpoint=endpoint if endpoint is not None else current.endpoint,
            model=model if model is not None else current.model,
        )
        self.app_config.providers[identity] = entry
        logger.info(
            f"Configured provider {identity.value}: endpoint={entry.endpoint}, model={entry.model}"
        )
        return entry

    def remove(
        self,
        identity: ProviderIdentity,
        credentials: CredentialStore | None = None,
    ) -> None:
        """
        Drop a provider entry and its stored credential.

        Clears the active provider if it was this one.
        """
        self.app_config.providers.pop(identity, None)
        if self.app_config.active_provider == identity:
            self.app_config.active_provider = None
            logger.info(f"Active provider {identity.value} removed, falling back to local")

        if credentials is not None and identity != ProviderIdentity.LOCAL:
            credentials.delete(identity)

        logger.info(f"Removed provider {identity.value}")

    def set_active(self, identity: ProviderIdentity) -> None:
        """
        Make a provider the default for LLM formatting.

        Raises:
            ConfigError: If the provider can't be resolved
        """
        self.resolve(identity)
        self.app_config.active_provider = identity
        logger.info(f"Active provider: {identity.value}")

    def list(self) -> list[ProviderInfo]:
        """All known providers with their effective settings."""
        active = self.active_identity()
        rows = []
        for identity in ProviderIdentity:
            try:
                resolved = self.resolve(identity)
                endpoint, model = resolved.endpoint, resolved.model
            except ConfigError:
                endpoint = model = None
            rows.append(
                ProviderInfo(
                    identity=identity,
                    endpoint=endpoint,
                    model=model,
                    configured=identity in self.app_config.providers,
                    active=identity == active,
                )
            )
        return rows

    def save(self) -> None:
        """Persist the underlying configuration."""
        save_app_config(self.app_config, self.settings)
