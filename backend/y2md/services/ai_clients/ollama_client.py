"""
Ollama AI client implementation.

Local provider: no credential, native /api/chat endpoint with
streaming disabled. Model installation is handled separately by
services.model_manager.
"""

import httpx

from y2md.models.schemas import ProviderIdentity
from y2md.services.ai_clients.base import (
    FORMATTING_TEMPERATURE,
    AIClientConnectionError,
    AIClientResponseError,
    AIClientTimeoutError,
    BaseAIClient,
    ProviderRequest,
)


class OllamaClient(BaseAIClient):
    """
    Async client for a local Ollama service.

    Example:
        config = AIClientConfig(base_url="http://localhost:11434", model="qwen2.5:7b")
        async with OllamaClient(config) as client:
            text = await client.chat(messages)
    """

    provider = ProviderIdentity.LOCAL
    requires_credential = False

    def build_request(self, messages: list[dict]) -> ProviderRequest:
        return ProviderRequest(
            url=f"{self.base_url}/api/chat",
            body={
                "model": self.config.model,
                "messages": messages,
                "stream": False,
                "options": {"temperature": FORMATTING_TEMPERATURE},
            },
            headers=self.auth_headers(),
        )

    def auth_headers(self) -> dict[str, str]:
        return {}

    async def send(self, request: ProviderRequest) -> httpx.Response:
        provider = self.provider.value
        model = self.config.model

        try:
            response = await self.http_client.post(
                request.url,
                json=request.body,
                headers=request.headers,
                timeout=self.config.timeout,
            )
            response.raise_for_status()

        except httpx.TimeoutException as e:
            raise AIClientTimeoutError(
                f"Chat timeout after {self.config.timeout:.0f}s",
                provider=provider,
                model=model,
                original_error=e,
            ) from e

        except httpx.HTTPStatusError as e:
            raise AIClientResponseError(
                f"Chat failed: HTTP {e.response.status_code}",
                provider=provider,
                model=model,
                status_code=e.response.status_code,
                response_body=e.response.text[:500],
                original_error=e,
            ) from e

        except httpx.TransportError as e:
            raise AIClientConnectionError(
                f"Cannot connect to Ollama at {self.base_url}",
                provider=provider,
                model=model,
                original_error=e,
            ) from e

        return response

    def parse_response(self, reply: httpx.Response) -> str:
        return reply.json()["message"]["content"]
