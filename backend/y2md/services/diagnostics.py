"""
Environment checks for `y2md doctor`.

Each check reports pass/fail with a short detail and, on failure, a
hint. Checks never raise for the conditions they probe.
"""

import importlib.util
import logging
import shutil
import tempfile
from dataclasses import dataclass

from y2md.config import AppConfig, Settings, load_app_config
from y2md.models.schemas import ProviderIdentity
from y2md.services.credentials import CredentialStore, env_var_name
from y2md.services.errors import ConfigError, CredentialStoreError, Y2mdError
from y2md.services.model_manager import OllamaModelManager
from y2md.services.pipeline.provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)

# Import name -> distribution name
REQUIRED_MODULES = {
    "yt_dlp": "yt-dlp",
    "faster_whisper": "faster-whisper",
    "youtube_transcript_api": "youtube-transcript-api",
}


@dataclass
class CheckResult:
    """
    One diagnostic line.

    Attributes:
        name: Check label
        ok: True if the check passed
        detail: What was found
        hint: What to do about a failure
    """

    name: str
    ok: bool
    detail: str
    hint: str | None = None


async def run_diagnostics(
    settings: Settings,
    app_config: AppConfig,
    credentials: CredentialStore,
    model_manager: OllamaModelManager,
) -> list[CheckResult]:
    """
    Run all environment checks.

    Args:
        settings: Application settings
        app_config: Loaded configuration (defaults if the file is broken)
        credentials: API key lookup
        model_manager: Ollama access for the local provider

    Returns:
        Results in display order
    """
    results = [check_ffmpeg()]
    results.extend(check_module(name, dist) for name, dist in REQUIRED_MODULES.items())
    results.append(check_config(settings))
    results.append(check_cache_writable(settings))
    results.extend(await check_local_provider(app_config, settings, model_manager))
    results.extend(check_credentials(app_config, credentials))

    failed = sum(1 for r in results if not r.ok)
    logger.debug(f"Diagnostics complete: {len(results)} checks, {failed} failed")
    return results


def check_ffmpeg() -> CheckResult:
    path = shutil.which("ffmpeg")
    if path:
        return CheckResult("ffmpeg", True, path)
    return CheckResult(
        "ffmpeg",
        False,
        "not found on PATH",
        hint="Install ffmpeg (needed for speech recognition)",
    )


def check_module(module: str, distribution: str) -> CheckResult:
    if importlib.util.find_spec(module) is not None:
        return CheckResult(distribution, True, "importable")
    return CheckResult(
        distribution,
        False,
        "not installed",
        hint=f"pip install {distribution}",
    )


def check_config(settings: Settings) -> CheckResult:
    path = settings.config_path
    if not path.exists():
        return CheckResult("config", True, f"{path} (absent, using defaults)")
    try:
        load_app_config(settings)
    except ConfigError as e:
        return CheckResult("config", False, e.message, hint=e.remediation)
    return CheckResult("config", True, str(path))


def check_cache_writable(settings: Settings) -> CheckResult:
    directory = settings.cache_dir
    try:
        directory.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryFile(dir=directory):
            pass
    except OSError as e:
        return CheckResult(
            "cache",
            False,
            f"{directory} is not writable: {e.strerror or e}",
            hint="Set Y2MD_CACHE_DIR to a writable directory",
        )
    return CheckResult("cache", True, str(directory))


async def check_local_provider(
    app_config: AppConfig,
    settings: Settings,
    model_manager: OllamaModelManager,
) -> list[CheckResult]:
    """Ollama health, plus the local model if Local is the active provider."""
    registry = ProviderRegistry(app_config, settings)
    local_active = registry.active_identity() == ProviderIdentity.LOCAL

    if not await model_manager.is_service_available():
        return [
            CheckResult(
                "ollama",
                not local_active,
                f"not reachable at {model_manager.base_url}",
                hint="Start it with `ollama serve` (only needed for local LLM formatting)",
            )
        ]

    results = [CheckResult("ollama", True, model_manager.base_url)]
    if not local_active:
        return results

    model = registry.resolve(ProviderIdentity.LOCAL).model
    try:
        available = await model_manager.is_model_available(model)
    except Y2mdError as e:
        results.append(CheckResult("local model", False, e.message, hint=e.remediation))
        return results

    if available:
        results.append(CheckResult("local model", True, model))
    else:
        results.append(
            CheckResult(
                "local model",
                False,
                f"{model} is not installed",
                hint=f"Run `y2md models pull {model}`",
            )
        )
    return results


def check_credentials(
    app_config: AppConfig,
    credentials: CredentialStore,
) -> list[CheckResult]:
    """Key presence for cloud providers that are configured or active."""
    wanted = set(app_config.providers)
    if app_config.active_provider is not None:
        wanted.add(app_config.active_provider)

    results = []
    for identity in ProviderIdentity:
        if identity == ProviderIdentity.LOCAL or identity not in wanted:
            continue

        name = f"{identity.value} key"
        try:
            source = credentials.source(identity)
        except CredentialStoreError as e:
            results.append(CheckResult(name, False, e.message, hint=e.remediation))
            continue

        if source:
            results.append(CheckResult(name, True, f"from {source}"))
        elif identity == ProviderIdentity.CUSTOM:
            results.append(CheckResult(name, True, "none (optional)"))
        else:
            results.append(
                CheckResult(
                    name,
                    False,
                    "missing",
                    hint=(
                        f"Run `y2md auth set {identity.value}` or export "
                        f"{env_var_name(identity)}"
                    ),
                )
            )
    return results
