"""Tests for settings, persisted config and provider registry."""

import pytest

from y2md.config import (
    AppConfig,
    Settings,
    load_app_config,
    load_prompt,
    save_app_config,
)
from y2md.models.schemas import ProviderConfig, ProviderIdentity
from y2md.services.errors import ConfigError
from y2md.services.pipeline.provider_registry import DEFAULT_LOCAL_MODEL, ProviderRegistry


class TestSettings:
    def test_environment_prefix(self, monkeypatch, tmp_path):
        monkeypatch.setenv("Y2MD_WHISPER_MODEL", "small")
        monkeypatch.setenv("Y2MD_CACHE_DIR", str(tmp_path))

        settings = Settings(_env_file=None)

        assert settings.whisper_model == "small"
        assert settings.audio_cache_dir == tmp_path / "audio"


class TestAppConfig:
    """YAML persistence"""

    def test_missing_file_gives_defaults(self, settings):
        config = load_app_config(settings)

        assert config == AppConfig()
        assert config.output.paragraph_length == 4
        assert config.output.prefer_captions is True

    def test_round_trip(self, settings):
        config = AppConfig()
        config.output.timestamps = True
        config.active_provider = ProviderIdentity.OPENAI
        config.providers[ProviderIdentity.OPENAI] = ProviderConfig(model="gpt-4o")

        path = save_app_config(config, settings)

        assert path == settings.config_path
        assert load_app_config(settings) == config
        assert [p.name for p in path.parent.iterdir()] == ["config.yaml"]

    def test_api_key_in_file_rejected(self, settings):
        settings.config_path.parent.mkdir(parents=True)
        settings.config_path.write_text(
            "providers:\n  openai:\n    model: gpt-4o\n    api_key: sk-leak\n"
        )

        with pytest.raises(ConfigError) as exc_info:
            load_app_config(settings)

        assert "providers.openai.api_key" in exc_info.value.message
        assert "sk-leak" not in str(exc_info.value)

    def test_invalid_yaml(self, settings):
        settings.config_path.parent.mkdir(parents=True)
        settings.config_path.write_text("output: [unclosed\n")

        with pytest.raises(ConfigError):
            load_app_config(settings)

    def test_paragraph_length_must_be_positive(self, settings):
        settings.config_path.parent.mkdir(parents=True)
        settings.config_path.write_text("output:\n  paragraph_length: 0\n")

        with pytest.raises(ConfigError, match="output.paragraph_length"):
            load_app_config(settings)


class TestLoadPrompt:
    def test_builtin_prompt(self, settings):
        assert "{transcript}" in load_prompt("formatting", "user", settings)

    def test_external_override(self, settings, tmp_path):
        prompts = tmp_path / "prompts"
        (prompts / "formatting").mkdir(parents=True)
        (prompts / "formatting" / "system.md").write_text("Custom system prompt")
        settings.prompts_dir = prompts

        assert load_prompt("formatting", "system", settings) == "Custom system prompt"
        # Components without an override still come from the package
        assert "{transcript}" in load_prompt("formatting", "user", settings)

    def test_unknown_prompt(self, settings):
        with pytest.raises(FileNotFoundError):
            load_prompt("formatting", "nope", settings)


class TestProviderRegistry:
    def test_defaults(self, app_config, settings):
        registry = ProviderRegistry(app_config, settings)

        assert registry.active_identity() == ProviderIdentity.LOCAL
        local = registry.resolve(ProviderIdentity.LOCAL)
        assert local.endpoint == settings.ollama_url
        assert local.model == DEFAULT_LOCAL_MODEL
        assert registry.resolve(ProviderIdentity.OPENAI).model == "gpt-4o-mini"

    def test_configured_values_override_defaults(self, app_config, settings):
        registry = ProviderRegistry(app_config, settings)
        registry.configure(ProviderIdentity.ANTHROPIC, model="claude-haiku-4-5")

        resolved = registry.resolve(ProviderIdentity.ANTHROPIC)

        assert resolved.model == "claude-haiku-4-5"
        assert resolved.endpoint == "https://api.anthropic.com/v1"

    def test_custom_requires_endpoint_and_model(self, app_config, settings):
        registry = ProviderRegistry(app_config, settings)

        with pytest.raises(ConfigError, match="endpoint or model"):
            registry.resolve(ProviderIdentity.CUSTOM)
        with pytest.raises(ConfigError):
            registry.set_active(ProviderIdentity.CUSTOM)
        assert app_config.active_provider is None

    def test_remove_clears_active_and_credential(self, app_config, settings, credentials):
        registry = ProviderRegistry(app_config, settings)
        registry.configure(ProviderIdentity.OPENAI, model="gpt-4o")
        registry.set_active(ProviderIdentity.OPENAI)
        credentials.set(ProviderIdentity.OPENAI, "sk-test")

        registry.remove(ProviderIdentity.OPENAI, credentials=credentials)

        assert ProviderIdentity.OPENAI not in app_config.providers
        assert registry.active_identity() == ProviderIdentity.LOCAL
        assert credentials.get(ProviderIdentity.OPENAI) is None

    def test_list_marks_active_and_unresolvable(self, app_config, settings):
        registry = ProviderRegistry(app_config, settings)
        registry.set_active(ProviderIdentity.ANTHROPIC)

        rows = {row.identity: row for row in registry.list()}

        assert rows[ProviderIdentity.ANTHROPIC].active
        assert not rows[ProviderIdentity.LOCAL].active
        assert rows[ProviderIdentity.CUSTOM].endpoint is None

    def test_save_persists(self, app_config, settings):
        registry = ProviderRegistry(app_config, settings)
        registry.configure(
            ProviderIdentity.CUSTOM, endpoint="http://vllm.test:8000/v1", model="qwen"
        )
        registry.set_active(ProviderIdentity.CUSTOM)
        registry.save()

        reloaded = load_app_config(settings)

        assert reloaded.active_provider == ProviderIdentity.CUSTOM
        assert reloaded.providers[ProviderIdentity.CUSTOM].model == "qwen"
