"""
Base AI client for LLM formatting providers.

Every provider implements the same capabilities:
- build_request(): target and body for one chat completion
- auth_headers(): headers that authenticate the request
- send(): deliver the request, mapping transport failures to typed errors
- parse_response(): extract the completion text from the reply

The shared chat() runs them in order for exactly one attempt under a
fixed timeout. Retries and fallback are the caller's concern.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from y2md.models.schemas import ProviderIdentity
from y2md.services.errors import FormattingTransportError

logger = logging.getLogger(__name__)

# Fixed bound for one formatting request
LLM_TIMEOUT_SECONDS = 120.0

# Low temperature keeps the model close to the source text
FORMATTING_TEMPERATURE = 0.1


@dataclass
class AIClientConfig:
    """
    Configuration for AI client instances.

    Attributes:
        base_url: API endpoint URL
        model: Model name sent with every request
        api_key: Optional API key for authenticated services
        timeout: Request timeout in seconds
    """

    base_url: str
    model: str
    api_key: str | None = field(default=None, repr=False)
    timeout: float = LLM_TIMEOUT_SECONDS


@dataclass
class ProviderRequest:
    """
    Request prepared by a provider.

    Attributes:
        url: Endpoint the request goes to
        body: JSON body (SDK providers pass it as keyword arguments)
        headers: Extra headers for raw HTTP providers
    """

    url: str
    body: dict
    headers: dict[str, str] = field(default_factory=dict, repr=False)


class AIClientTimeoutError(FormattingTransportError):
    """Raised when a request times out."""

    pass


class AIClientConnectionError(FormattingTransportError):
    """Raised when connection to AI service fails."""

    pass


class AIClientResponseError(FormattingTransportError):
    """
    Raised when AI service returns an error response.

    Attributes:
        status_code: HTTP status code if available
        response_body: Response body if available
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.response_body = response_body


class AIClientPayloadError(FormattingTransportError):
    """Raised when a successful response has no usable text."""

    pass


class BaseAIClient(ABC):
    """
    Abstract base class for LLM formatting providers.

    Subclasses must implement:
        - build_request()
        - auth_headers()
        - send()
        - parse_response()

    Example:
        async with OpenAIClient(config) as client:
            text = await client.chat([
                {"role": "system", "content": "..."},
                {"role": "user", "content": "..."},
            ])
    """

    provider: ProviderIdentity
    requires_credential: bool = False

    def __init__(
        self,
        config: AIClientConfig,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize AI client with configuration.

        Args:
            config: Client configuration with URL, model, key
            http_client: Shared HTTP client (a private one is created if None)
        """
        self.config = config
        self._owns_client = http_client is None
        # No global timeout - each request sets its own timeout explicitly
        self.http_client = http_client or httpx.AsyncClient(timeout=None)

    @property
    def base_url(self) -> str:
        """Endpoint without trailing slash."""
        return self.config.base_url.rstrip("/")

    @abstractmethod
    def build_request(self, messages: list[dict]) -> ProviderRequest:
        """Build the provider-specific chat request."""
        pass

    @abstractmethod
    def auth_headers(self) -> dict[str, str]:
        """Headers that authenticate the request (may be empty)."""
        pass

    @abstractmethod
    async def send(self, request: ProviderRequest) -> Any:
        """
        Deliver one request and return the raw reply.

        Raises:
            AIClientTimeoutError: Request exceeded the timeout
            AIClientConnectionError: Service unreachable
            AIClientResponseError: Non-success HTTP status
        """
        pass

    @abstractmethod
    def parse_response(self, reply: Any) -> str:
        """Extract completion text from the reply returned by send()."""
        pass

    async def chat(self, messages: list[dict]) -> str:
        """
        Send one chat completion request.

        Args:
            messages: Chat messages [{"role": "system"|"user", "content": "..."}]

        Returns:
            Non-empty completion text, stripped

        Raises:
            AIClientTimeoutError: Request exceeded the timeout
            AIClientConnectionError: Service unreachable
            AIClientResponseError: Non-success HTTP status
            AIClientPayloadError: Empty or unparseable body
        """
        provider = self.provider.value
        model = self.config.model
        request = self.build_request(messages)

        # Header names only, values are secrets
        auth = ", ".join(sorted(self.auth_headers())) or "none"
        logger.debug(
            f"Chat with {provider}/{model}, {len(messages)} messages, "
            f"timeout={self.config.timeout:.0f}s, auth={auth}"
        )

        reply = await self.send(request)

        try:
            content = self.parse_response(reply)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise AIClientPayloadError(
                f"Unparseable response: {type(e).__name__}: {e}",
                provider=provider,
                model=model,
                original_error=e,
            ) from e

        if not isinstance(content, str) or not content.strip():
            raise AIClientPayloadError(
                "Empty response from LLM", provider=provider, model=model
            )

        logger.debug(f"Chat response: {len(content)} chars")
        return content.strip()

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "BaseAIClient":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        await self.close()


def split_system_message(messages: list[dict]) -> tuple[str | None, list[dict]]:
    """
    Separate the system instruction from conversation messages.

    Returns:
        Tuple of (system_content or None, remaining messages)
    """
    system_content = None
    chat_messages = []
    for msg in messages:
        if msg["role"] == "system":
            system_content = msg["content"]
        else:
            chat_messages.append(msg)
    return system_content, chat_messages
