"""
Application configuration and settings.

Two layers:
- Settings: process environment (Y2MD_* variables, .env file)
- AppConfig: persisted user preferences in {config_dir}/config.yaml

Secrets never live in either layer; see services.credentials.
"""

import logging
import os
import tempfile
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from y2md.models.schemas import ProviderConfig, ProviderIdentity
from y2md.services.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"

# Packaged prompt templates (fallback when prompts_dir has no override)
BUILTIN_PROMPTS_DIR = Path(__file__).parent / "prompts"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Paths
    config_dir: Path = Path.home() / ".config" / "y2md"
    cache_dir: Path = Path.home() / ".cache" / "y2md"
    prompts_dir: Path | None = None  # External prompts directory (overrides built-in)

    # Local inference service
    ollama_url: str = "http://localhost:11434"

    # Speech recognition
    whisper_model: str = "base"
    whisper_threads: int = 4
    whisper_device: str = "cpu"
    whisper_compute_type: str = "int8"
    whisper_model_dir: Path | None = None  # faster-whisper download_root

    # Captions / download
    ytdlp_format: str = "bestaudio/best"
    strict_caption_language: bool = False

    # Logging
    log_level: str = "WARNING"
    log_format: str = "simple"  # "simple" or "structured"

    # Per-module log levels (optional overrides)
    log_level_pipeline: str | None = None
    log_level_ai_clients: str | None = None
    log_level_model_manager: str | None = None
    log_level_credentials: str | None = None

    model_config = {
        "env_prefix": "Y2MD_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def config_path(self) -> Path:
        """Path of the persisted YAML configuration."""
        return self.config_dir / CONFIG_FILENAME

    @property
    def audio_cache_dir(self) -> Path:
        """Directory holding downloaded audio keyed by video id."""
        return self.cache_dir / "audio"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class OutputPreferences(BaseModel):
    """Defaults for transcript output, overridable per CLI invocation."""

    output_dir: Path | None = None
    timestamps: bool = False
    compact: bool = False
    paragraph_length: int = Field(default=4, ge=1)
    prefer_captions: bool = True
    default_language: str = "en"
    use_llm: bool = False

    model_config = {"extra": "forbid"}


class AppConfig(BaseModel):
    """
    Persisted configuration file contents.

    Attributes:
        output: Output preferences
        active_provider: Provider used for LLM formatting when none is requested
        providers: Per-provider endpoint/model pairs
    """

    output: OutputPreferences = Field(default_factory=OutputPreferences)
    active_provider: ProviderIdentity | None = None
    providers: dict[ProviderIdentity, ProviderConfig] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


def load_app_config(settings: Settings | None = None) -> AppConfig:
    """
    Load persisted configuration, returning defaults if the file is absent.

    Args:
        settings: Optional settings instance

    Returns:
        Parsed AppConfig

    Raises:
        ConfigError: If the file is not valid YAML or has unknown/invalid keys
    """
    if settings is None:
        settings = get_settings()

    path = settings.config_path
    if not path.exists():
        logger.debug(f"No config file at {path}, using defaults")
        return AppConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Config file is not valid YAML: {path}",
            remediation="Fix the file by hand or delete it to restore defaults",
        ) from e

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ConfigError(
            f"Invalid config value at '{location}': {first['msg']}",
            remediation=(
                f"Edit {path}. API keys are never stored there; "
                "use `y2md auth set <provider>`"
            ),
        ) from e


def save_app_config(config: AppConfig, settings: Settings | None = None) -> Path:
    """
    Write configuration atomically (temporary file, then rename).

    Args:
        config: Configuration to persist
        settings: Optional settings instance

    Returns:
        Path of the written file
    """
    if settings is None:
        settings = get_settings()

    path = settings.config_path
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json", exclude_none=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".config-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.debug(f"Config saved: {path}")
    return path


def load_prompt(
    stage: str,
    component: str,
    settings: Settings | None = None,
) -> str:
    """
    Load a prompt template with external folder priority.

    Lookup order (first found wins):
    1. prompts_dir/{stage}/{component}.md (external)
    2. y2md/prompts/{stage}/{component}.md (packaged)

    Args:
        stage: Prompt group ("formatting")
        component: Prompt component ("system", "user")
        settings: Optional settings instance

    Returns:
        Prompt template content

    Raises:
        FileNotFoundError: If no matching prompt file is found
    """
    if settings is None:
        settings = get_settings()

    paths_to_check: list[Path] = []
    if settings.prompts_dir and settings.prompts_dir.exists():
        paths_to_check.append(settings.prompts_dir / stage / f"{component}.md")
    paths_to_check.append(BUILTIN_PROMPTS_DIR / stage / f"{component}.md")

    for path in paths_to_check:
        if path.exists():
            return path.read_text(encoding="utf-8")

    raise FileNotFoundError(
        f"Prompt not found: stage={stage}, component={component}. "
        f"Checked paths: {[str(p) for p in paths_to_check]}"
    )
