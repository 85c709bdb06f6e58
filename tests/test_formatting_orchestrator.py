"""Tests for LLM formatting with standard fallback."""

import json

import httpx
import pytest
from keyring.errors import NoKeyringError

from y2md.models.schemas import FormattedBy, ProviderConfig, ProviderIdentity
from y2md.services.credentials import CredentialStore
from y2md.services.errors import ConfigError, CredentialMissing
from y2md.services.model_manager import ModelAvailabilityCache, OllamaModelManager
from y2md.services.pipeline.formatting_orchestrator import FormattingOrchestrator
from y2md.services.pipeline.provider_registry import ProviderRegistry
from y2md.services.standard_formatter import format_standard

TRANSCRIPT = "So today we. Talk about rust. It is safe. No gc needed."
LLM_TEXT = "So today we talk about Rust.\n\nIt is safe. No GC needed."


def openai_reply(text: str = LLM_TEXT) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "choices": [
                {"index": 0, "message": {"role": "assistant", "content": text}, "finish_reason": "stop"}
            ]
        },
    )


def fail_on_request(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected request: {request.method} {request.url}")


@pytest.fixture
def make_orchestrator(settings, app_config, credentials, make_http_client):
    def factory(handler, active=None, model_manager=None):
        if active is not None:
            app_config.active_provider = active
        client, transport = make_http_client(handler)
        orchestrator = FormattingOrchestrator(
            ProviderRegistry(app_config, settings),
            credentials,
            settings,
            http_client=client,
            model_manager=model_manager,
        )
        return orchestrator, transport

    return factory


class TestStandardPaths:
    """Cases that never touch the network"""

    async def test_use_llm_false_makes_no_request(self, make_orchestrator):
        orchestrator, transport = make_orchestrator(fail_on_request, active=ProviderIdentity.OPENAI)

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=False, paragraph_length=2)

        assert outcome.formatted_by == FormattedBy.STANDARD
        assert outcome.text == "So today we. Talk about rust.\n\nIt is safe. No gc needed."
        assert outcome.provider_used is None
        assert transport.requests == []

    async def test_empty_text_skips_llm(self, make_orchestrator):
        orchestrator, transport = make_orchestrator(fail_on_request)

        outcome = await orchestrator.format("   ", use_llm=True)

        assert outcome.formatted_by == FormattedBy.STANDARD
        assert outcome.text == ""
        assert transport.requests == []

    async def test_lyrics_skip_llm(self, make_orchestrator, credentials):
        credentials.set(ProviderIdentity.OPENAI, "sk-test")
        orchestrator, transport = make_orchestrator(fail_on_request, active=ProviderIdentity.OPENAI)

        outcome = await orchestrator.format("♪ la la la ♪", use_llm=True)

        assert outcome.formatted_by == FormattedBy.STANDARD
        assert transport.requests == []


class TestCredentials:
    async def test_openai_without_key_raises_before_network(self, make_orchestrator):
        orchestrator, transport = make_orchestrator(fail_on_request)

        with pytest.raises(CredentialMissing) as exc_info:
            await orchestrator.format(
                TRANSCRIPT, use_llm=True, provider_override=ProviderIdentity.OPENAI
            )

        assert exc_info.value.provider == "openai"
        assert "y2md auth set openai" in exc_info.value.remediation
        assert transport.requests == []

    async def test_custom_provider_key_is_optional(self, make_orchestrator, app_config):
        app_config.providers[ProviderIdentity.CUSTOM] = ProviderConfig(
            endpoint="http://lmstudio.test:1234/v1", model="local-model"
        )
        orchestrator, transport = make_orchestrator(
            lambda request: openai_reply(), active=ProviderIdentity.CUSTOM
        )

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert outcome.formatted_by == FormattedBy.LLM
        assert outcome.provider_used == ProviderIdentity.CUSTOM
        assert "authorization" not in transport.requests[0].headers

    async def test_custom_endpoint_with_full_path(self, make_orchestrator, app_config, credentials):
        credentials.set(ProviderIdentity.CUSTOM, "sk-router")
        app_config.providers[ProviderIdentity.CUSTOM] = ProviderConfig(
            endpoint="https://router.test/api/v1/chat/completions", model="meta/llama-3"
        )
        orchestrator, transport = make_orchestrator(
            lambda request: openai_reply(), active=ProviderIdentity.CUSTOM
        )

        await orchestrator.format(TRANSCRIPT, use_llm=True)

        request = transport.requests[0]
        assert str(request.url) == "https://router.test/api/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-router"

    async def test_unconfigured_custom_provider(self, make_orchestrator):
        orchestrator, _ = make_orchestrator(fail_on_request, active=ProviderIdentity.CUSTOM)

        with pytest.raises(ConfigError):
            await orchestrator.format(TRANSCRIPT, use_llm=True)


class BrokenKeyring:
    """Backend of a machine with no usable secret service."""

    def get_password(self, service_name: str, username: str) -> str | None:
        raise NoKeyringError("No recommended backend was available")

    def set_password(self, service_name: str, username: str, password: str) -> None:
        raise NoKeyringError("No recommended backend was available")

    def delete_password(self, service_name: str, username: str) -> None:
        raise NoKeyringError("No recommended backend was available")


class TestKeyringUnavailable:
    """A keyring that can't answer counts as an absent key"""

    @pytest.fixture
    def make_keyless_orchestrator(self, settings, app_config, make_http_client):
        def factory(handler):
            client, transport = make_http_client(handler)
            orchestrator = FormattingOrchestrator(
                ProviderRegistry(app_config, settings),
                CredentialStore(backend=BrokenKeyring(), environ={}),
                settings,
                http_client=client,
            )
            return orchestrator, transport

        return factory

    async def test_custom_provider_still_formats(self, make_keyless_orchestrator, app_config):
        app_config.providers[ProviderIdentity.CUSTOM] = ProviderConfig(
            endpoint="http://lmstudio.test:1234/v1", model="local-model"
        )
        orchestrator, transport = make_keyless_orchestrator(lambda request: openai_reply())

        outcome = await orchestrator.format(
            TRANSCRIPT, use_llm=True, provider_override=ProviderIdentity.CUSTOM
        )

        assert outcome.formatted_by == FormattedBy.LLM
        assert "authorization" not in transport.requests[0].headers

    async def test_openai_reports_missing_credential(self, make_keyless_orchestrator):
        orchestrator, transport = make_keyless_orchestrator(fail_on_request)

        with pytest.raises(CredentialMissing):
            await orchestrator.format(
                TRANSCRIPT, use_llm=True, provider_override=ProviderIdentity.OPENAI
            )

        assert transport.requests == []


class TestLlmFormatting:
    """Successful requests and their wire shape"""

    async def test_openai_success(self, make_orchestrator, credentials):
        credentials.set(ProviderIdentity.OPENAI, "sk-test")
        orchestrator, transport = make_orchestrator(
            lambda request: openai_reply(), active=ProviderIdentity.OPENAI
        )

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert outcome.formatted_by == FormattedBy.LLM
        assert outcome.text == LLM_TEXT
        assert outcome.provider_used == ProviderIdentity.OPENAI
        assert outcome.model_used == "gpt-4o-mini"

        request = transport.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o-mini"
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert TRANSCRIPT in body["messages"][1]["content"]

    async def test_anthropic_request_shape(self, make_orchestrator, credentials):
        credentials.set(ProviderIdentity.ANTHROPIC, "sk-ant-test")

        def handler(request):
            return httpx.Response(
                200,
                json={"content": [{"type": "text", "text": LLM_TEXT}], "stop_reason": "end_turn"},
            )

        orchestrator, transport = make_orchestrator(handler)

        outcome = await orchestrator.format(
            TRANSCRIPT, use_llm=True, provider_override=ProviderIdentity.ANTHROPIC
        )

        assert outcome.formatted_by == FormattedBy.LLM
        assert outcome.provider_used == ProviderIdentity.ANTHROPIC

        request = transport.requests[0]
        assert str(request.url) == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-ant-test"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["system"]
        assert [m["role"] for m in body["messages"]] == ["user"]

    async def test_local_checks_model_then_chats(self, make_orchestrator):
        def handler(request):
            if request.url.path == "/api/version":
                return httpx.Response(200, json={"version": "0.5.7"})
            if request.url.path == "/api/tags":
                return httpx.Response(
                    200, json={"models": [{"name": "mistral-nemo:12b-instruct-2407-q5_0"}]}
                )
            if request.url.path == "/api/chat":
                body = json.loads(request.content)
                assert body["stream"] is False
                return httpx.Response(200, json={"message": {"role": "assistant", "content": LLM_TEXT}})
            return httpx.Response(404)

        orchestrator, transport = make_orchestrator(handler)

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert outcome.formatted_by == FormattedBy.LLM
        assert outcome.provider_used == ProviderIdentity.LOCAL
        assert [r.url.path for r in transport.requests] == ["/api/version", "/api/tags", "/api/chat"]


class TestFallback:
    """Every LLM failure degrades to standard formatting"""

    @pytest.fixture
    def openai_orchestrator(self, make_orchestrator, credentials):
        credentials.set(ProviderIdentity.OPENAI, "sk-test")

        def factory(handler):
            orchestrator, transport = make_orchestrator(handler, active=ProviderIdentity.OPENAI)
            return orchestrator, transport

        return factory

    async def test_timeout_falls_back(self, openai_orchestrator):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        orchestrator, transport = openai_orchestrator(handler)

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True, paragraph_length=2)

        assert outcome.formatted_by == FormattedBy.STANDARD
        assert outcome.text == format_standard(TRANSCRIPT, 2)
        assert len(transport.requests) == 1

    async def test_server_error_falls_back(self, openai_orchestrator):
        orchestrator, transport = openai_orchestrator(
            lambda request: httpx.Response(500, json={"error": {"message": "overloaded"}})
        )

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert outcome.formatted_by == FormattedBy.STANDARD
        assert len(transport.requests) == 1

    async def test_anthropic_rate_limit_is_not_retried(self, make_orchestrator, credentials):
        credentials.set(ProviderIdentity.ANTHROPIC, "sk-ant-test")
        orchestrator, transport = make_orchestrator(
            lambda request: httpx.Response(
                429, json={"type": "error", "error": {"type": "rate_limit_error", "message": "slow down"}}
            ),
            active=ProviderIdentity.ANTHROPIC,
        )

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert outcome.formatted_by == FormattedBy.STANDARD
        assert len(transport.requests) == 1

    async def test_connection_error_falls_back(self, openai_orchestrator):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        orchestrator, _ = openai_orchestrator(handler)

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert outcome.formatted_by == FormattedBy.STANDARD

    async def test_empty_completion_falls_back(self, openai_orchestrator):
        orchestrator, _ = openai_orchestrator(lambda request: openai_reply("   "))

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert outcome.formatted_by == FormattedBy.STANDARD

    async def test_malformed_body_falls_back(self, openai_orchestrator):
        orchestrator, _ = openai_orchestrator(lambda request: httpx.Response(200, json={"unexpected": True}))

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert outcome.formatted_by == FormattedBy.STANDARD

    async def test_local_model_missing_falls_back(self, make_orchestrator):
        def handler(request):
            if request.url.path == "/api/version":
                return httpx.Response(200, json={"version": "0.5.7"})
            if request.url.path == "/api/tags":
                return httpx.Response(200, json={"models": []})
            raise AssertionError("chat must not be attempted")

        orchestrator, _ = make_orchestrator(handler)

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert outcome.formatted_by == FormattedBy.STANDARD

    async def test_local_service_down_falls_back(self, make_orchestrator):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        orchestrator, _ = make_orchestrator(handler)

        outcome = await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert outcome.formatted_by == FormattedBy.STANDARD

    async def test_local_availability_is_cached(self, make_orchestrator, make_http_client, settings):
        def handler(request):
            if request.url.path == "/api/version":
                return httpx.Response(200, json={"version": "0.5.7"})
            if request.url.path == "/api/tags":
                return httpx.Response(200, json={"models": []})
            raise AssertionError("chat must not be attempted")

        manager_client, manager_transport = make_http_client(handler)
        manager = OllamaModelManager(
            settings.ollama_url, http_client=manager_client, cache=ModelAvailabilityCache()
        )
        orchestrator, _ = make_orchestrator(fail_on_request, model_manager=manager)

        await orchestrator.format(TRANSCRIPT, use_llm=True)
        await orchestrator.format(TRANSCRIPT, use_llm=True)

        assert sum(1 for r in manager_transport.requests if r.url.path == "/api/tags") == 1
