"""
LLM formatting with deterministic fallback.

Chain: LLM formatting (one attempt, 120 s) -> standard formatter.
Any transport, status or payload failure of the LLM step is logged and
recovered; the only visible trace is FormattingOutcome.formatted_by.
A missing credential for an explicitly chosen cloud provider is not
recovered: the user asked for that provider.
"""

import logging

import httpx

from y2md.config import Settings, load_prompt
from y2md.models.schemas import (
    FormattedBy,
    FormattingOutcome,
    ProviderConfig,
    ProviderIdentity,
)
from y2md.services.ai_clients import (
    CLIENT_CLASSES,
    LLM_TIMEOUT_SECONDS,
    AIClientConfig,
    AIClientResponseError,
    BaseAIClient,
)
from y2md.services.credentials import CredentialStore
from y2md.services.errors import (
    CollaboratorUnavailable,
    CredentialMissing,
    CredentialStoreError,
    FormattingTransportError,
    ModelNotInstalled,
)
from y2md.services.model_manager import OllamaModelManager
from y2md.services.pipeline.fallback_chain import Strategy, first_successful
from y2md.services.pipeline.provider_registry import ProviderRegistry
from y2md.services.standard_formatter import (
    DEFAULT_PARAGRAPH_LENGTH,
    format_standard,
    is_music_content,
)

logger = logging.getLogger(__name__)

TRANSCRIPT_PLACEHOLDER = "{transcript}"

# Failures of the LLM step that fall back to standard formatting
RECOVERABLE_LLM_ERRORS = (
    FormattingTransportError,
    ModelNotInstalled,
    CollaboratorUnavailable,
)


class FormattingOrchestrator:
    """
    Formats raw transcript text, preferring an LLM when asked to.

    Example:
        async with FormattingOrchestrator(registry, credentials, settings) as formatter:
            outcome = await formatter.format(raw.full_text, use_llm=True)
            print(outcome.formatted_by, outcome.provider_used)
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        credentials: CredentialStore,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        model_manager: OllamaModelManager | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            registry: Provider endpoint/model resolution
            credentials: API key lookup
            settings: Application settings (prompt overrides)
            http_client: Shared HTTP client (a private one is created if None)
            model_manager: Local model checks (created on first Local use if None)
        """
        self.registry = registry
        self.credentials = credentials
        self.settings = settings
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=None)
        self.model_manager = model_manager

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "FormattingOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def format(
        self,
        raw_text: str,
        use_llm: bool,
        provider_override: ProviderIdentity | None = None,
        force_formatting: bool = False,
        paragraph_length: int = DEFAULT_PARAGRAPH_LENGTH,
        compact: bool = False,
    ) -> FormattingOutcome:
        """
        Format transcript text.

        Args:
            raw_text: Unformatted transcript
            use_llm: Try LLM formatting first
            provider_override: Provider to use instead of the active one
            force_formatting: Reflow even if the text looks like lyrics
            paragraph_length: Sentences per paragraph for standard formatting
            compact: Standard formatting without cleanup

        Returns:
            FormattingOutcome with formatted_by=LLM, or STANDARD on fallback

        Raises:
            CredentialMissing: Required API key absent (before any request)
            ConfigError: Provider has no endpoint/model
        """

        async def via_standard() -> FormattingOutcome:
            return FormattingOutcome(
                text=format_standard(
                    raw_text,
                    paragraph_length,
                    compact=compact,
                    force_formatting=force_formatting,
                ),
                formatted_by=FormattedBy.STANDARD,
            )

        if not use_llm:
            logger.debug("LLM formatting disabled, using standard formatter")
            return await via_standard()

        if not raw_text.strip():
            return await via_standard()

        if not force_formatting and is_music_content(raw_text):
            logger.info("Transcript looks like lyrics, skipping LLM formatting")
            return await via_standard()

        identity = provider_override or self.registry.active_identity()
        provider_config = self.registry.resolve(identity)
        client_cls = CLIENT_CLASSES[identity]
        api_key = self._resolve_credential(identity, client_cls)
        messages = self.build_messages(raw_text)

        async def via_llm() -> FormattingOutcome:
            return await self._format_with_llm(
                identity, provider_config, client_cls, api_key, messages
            )

        result = await first_successful(
            [
                Strategy("LLM formatting", via_llm, recoverable=RECOVERABLE_LLM_ERRORS),
                Strategy("standard formatting", via_standard),
            ]
        )
        return result.value

    def build_messages(self, raw_text: str) -> list[dict]:
        """System instruction plus one user message embedding the transcript."""
        system_prompt = load_prompt("formatting", "system", settings=self.settings)
        user_template = load_prompt("formatting", "user", settings=self.settings)
        return [
            {"role": "system", "content": system_prompt.strip()},
            {
                "role": "user",
                "content": user_template.replace(TRANSCRIPT_PLACEHOLDER, raw_text.strip()),
            },
        ]

    def _resolve_credential(
        self,
        identity: ProviderIdentity,
        client_cls: type[BaseAIClient],
    ) -> str | None:
        if identity == ProviderIdentity.LOCAL:
            return None

        try:
            api_key = self.credentials.get(identity)
        except CredentialStoreError as e:
            logger.warning(f"Keyring unavailable, treating {identity.value} key as absent: {e.message}")
            api_key = None

        if api_key is None and client_cls.requires_credential:
            raise CredentialMissing(identity.value)

        logger.debug(f"Credential for {identity.value}: {'present' if api_key else 'absent'}")
        return api_key

    async def _format_with_llm(
        self,
        identity: ProviderIdentity,
        provider_config: ProviderConfig,
        client_cls: type[BaseAIClient],
        api_key: str | None,
        messages: list[dict],
    ) -> FormattingOutcome:
        if identity == ProviderIdentity.LOCAL:
            await self._ensure_local_model(provider_config)

        client_config = AIClientConfig(
            base_url=provider_config.endpoint,
            model=provider_config.model,
            api_key=api_key,
            timeout=LLM_TIMEOUT_SECONDS,
        )

        logger.info(f"Formatting with {identity.value}/{provider_config.model}")

        try:
            async with client_cls(client_config, http_client=self.http_client) as client:
                text = await client.chat(messages)
        except AIClientResponseError as e:
            logger.warning(
                f"LLM response error: status={e.status_code}, body={e.response_body}"
            )
            raise

        return FormattingOutcome(
            text=text,
            formatted_by=FormattedBy.LLM,
            provider_used=identity,
            model_used=provider_config.model,
        )

    async def _ensure_local_model(self, provider_config: ProviderConfig) -> None:
        if self.model_manager is None:
            self.model_manager = OllamaModelManager(
                provider_config.endpoint, http_client=self.http_client
            )

        if not await self.model_manager.is_model_available(provider_config.model):
            raise ModelNotInstalled(provider_config.model)
