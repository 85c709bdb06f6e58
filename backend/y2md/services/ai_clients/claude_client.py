"""
Claude API client implementation.

Uses the official anthropic SDK with retries disabled. The system
instruction travels in the top-level "system" parameter rather than
as a message.
"""

import logging

import httpx
from anthropic import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
)
from anthropic.types import Message

from y2md.models.schemas import ProviderIdentity
from y2md.services.ai_clients.base import (
    FORMATTING_TEMPERATURE,
    AIClientConfig,
    AIClientConnectionError,
    AIClientPayloadError,
    AIClientResponseError,
    AIClientTimeoutError,
    BaseAIClient,
    ProviderRequest,
    split_system_message,
)

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 4096

# The SDK adds the version prefix to every path
API_VERSION_PREFIX = "/v1"


class ClaudeClient(BaseAIClient):
    """
    Async client for Anthropic's Claude API.

    Example:
        config = AIClientConfig(
            base_url="https://api.anthropic.com/v1",
            model="claude-sonnet-4-5",
            api_key=store.get(ProviderIdentity.ANTHROPIC),
        )
        async with ClaudeClient(config) as client:
            text = await client.chat(messages)
    """

    provider = ProviderIdentity.ANTHROPIC
    requires_credential = True

    def __init__(
        self,
        config: AIClientConfig,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(config, http_client=http_client)

        self.client = AsyncAnthropic(
            api_key=config.api_key,
            base_url=self.api_base_url,
            timeout=config.timeout,
            max_retries=0,
            http_client=self.http_client,
        )

    @property
    def api_base_url(self) -> str:
        """Endpoint without the /v1 suffix users often paste."""
        return self.base_url.removesuffix(API_VERSION_PREFIX)

    def build_request(self, messages: list[dict]) -> ProviderRequest:
        """
        Build a Messages API request.

        "system" messages become the system parameter.
        """
        system_content, chat_messages = split_system_message(messages)

        logger.debug(
            f"Claude request: {len(chat_messages)} messages, "
            f"system={'yes' if system_content else 'no'}, max_tokens={MAX_OUTPUT_TOKENS}"
        )

        body: dict = {
            "model": self.config.model,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "temperature": FORMATTING_TEMPERATURE,
            "messages": chat_messages,
        }
        if system_content:
            body["system"] = system_content

        return ProviderRequest(url=f"{self.api_base_url}{API_VERSION_PREFIX}/messages", body=body)

    def auth_headers(self) -> dict[str, str]:
        return dict(self.client.auth_headers)

    async def send(self, request: ProviderRequest) -> Message:
        provider = self.provider.value
        model = self.config.model

        try:
            return await self.client.messages.create(**request.body)

        except APITimeoutError as e:
            raise AIClientTimeoutError(
                f"Claude request timeout after {self.config.timeout:.0f}s",
                provider=provider,
                model=model,
                original_error=e,
            ) from e

        except APIConnectionError as e:
            raise AIClientConnectionError(
                f"Cannot connect to Claude API at {self.api_base_url}",
                provider=provider,
                model=model,
                original_error=e,
            ) from e

        except APIStatusError as e:
            raise AIClientResponseError(
                f"Claude API error: HTTP {e.status_code}",
                provider=provider,
                model=model,
                status_code=e.status_code,
                response_body=e.response.text[:500],
                original_error=e,
            ) from e

        except (APIError, ValueError) as e:
            raise AIClientPayloadError(
                f"Unreadable Claude response: {type(e).__name__}",
                provider=provider,
                model=model,
                original_error=e,
            ) from e

    def parse_response(self, reply: Message) -> str:
        """Concatenate the text blocks of the response content."""
        if reply.stop_reason == "max_tokens":
            logger.warning("Claude hit the output token limit, text may be cut short")
        return "".join(block.text for block in reply.content if block.type == "text")
