"""
OpenAI-compatible AI client implementations.

OpenAIClient talks to api.openai.com (Bearer key required).
CustomClient talks to any OpenAI-compatible /chat/completions server
(LM Studio, vLLM, OpenRouter, ...); its key is optional.

Both use the official openai SDK with retries disabled, so one
chat() call is one HTTP request.
"""

import logging

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
)
from openai.types.chat import ChatCompletion

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
)

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/chat/completions"


class OpenAIClient(BaseAIClient):
    """
    Async client for the OpenAI chat completions API.

    Example:
        config = AIClientConfig(
            base_url="https://api.openai.com/v1",
            model="gpt-4o-mini",
            api_key=store.get(ProviderIdentity.OPENAI),
        )
        async with OpenAIClient(config) as client:
            text = await client.chat(messages)
    """

    provider = ProviderIdentity.OPENAI
    requires_credential = True

    def __init__(
        self,
        config: AIClientConfig,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(config, http_client=http_client)

        # An empty key (not None) keeps OPENAI_API_KEY out of keyless requests
        self.client = AsyncOpenAI(
            api_key=config.api_key or "",
            base_url=self.api_base_url,
            timeout=config.timeout,
            max_retries=0,
            http_client=self.http_client,
        )

    @property
    def api_base_url(self) -> str:
        """SDK base URL (the SDK appends /chat/completions itself)."""
        return self.base_url.removesuffix(CHAT_COMPLETIONS_PATH)

    def build_request(self, messages: list[dict]) -> ProviderRequest:
        return ProviderRequest(
            url=f"{self.api_base_url}{CHAT_COMPLETIONS_PATH}",
            body={
                "model": self.config.model,
                "messages": messages,
                "temperature": FORMATTING_TEMPERATURE,
            },
        )

    def auth_headers(self) -> dict[str, str]:
        return dict(self.client.auth_headers)

    async def send(self, request: ProviderRequest) -> ChatCompletion:
        provider = self.provider.value
        model = self.config.model

        try:
            return await self.client.chat.completions.create(**request.body)

        except APITimeoutError as e:
            raise AIClientTimeoutError(
                f"Chat timeout after {self.config.timeout:.0f}s",
                provider=provider,
                model=model,
                original_error=e,
            ) from e

        except APIConnectionError as e:
            raise AIClientConnectionError(
                f"Cannot connect to {provider} at {self.api_base_url}",
                provider=provider,
                model=model,
                original_error=e,
            ) from e

        except APIStatusError as e:
            raise AIClientResponseError(
                f"Chat failed: HTTP {e.status_code}",
                provider=provider,
                model=model,
                status_code=e.status_code,
                response_body=e.response.text[:500],
                original_error=e,
            ) from e

        except (APIError, ValueError) as e:
            raise AIClientPayloadError(
                f"Unreadable response: {type(e).__name__}",
                provider=provider,
                model=model,
                original_error=e,
            ) from e

    def parse_response(self, reply: ChatCompletion) -> str:
        choice = reply.choices[0]
        if choice.finish_reason == "length":
            logger.warning("Completion hit the output token limit, text may be cut short")
        return choice.message.content


class CustomClient(OpenAIClient):
    """OpenAI-compatible server at a user-configured endpoint."""

    provider = ProviderIdentity.CUSTOM
    requires_credential = False
