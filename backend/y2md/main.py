"""
y2md command line.

Usage:
    y2md transcribe https://youtu.be/dQw4w9WgXcQ --use-llm
    y2md provider add openai --model gpt-4o-mini
    y2md auth set openai
    y2md models pull qwen2.5:7b
    y2md doctor
"""

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path

import yaml
from pydantic import ValidationError
from tqdm import tqdm

from y2md import __version__
from y2md.config import (
    AppConfig,
    OutputPreferences,
    Settings,
    get_settings,
    load_app_config,
    save_app_config,
)
from y2md.logging_config import setup_logging
from y2md.models.schemas import FormattedBy, ProcessResult, ProviderIdentity, PullProgress
from y2md.services.credentials import CredentialStore, env_var_name
from y2md.services.diagnostics import run_diagnostics
from y2md.services.downloader import AudioCache
from y2md.services.errors import ConfigError, Y2mdError
from y2md.services.model_manager import OllamaModelManager
from y2md.services.parser import parse_video_url
from y2md.services.pipeline import ProcessOptions, ProviderRegistry, TranscriptPipeline

logger = logging.getLogger(__name__)

EXIT_ERROR = 1
EXIT_INTERRUPTED = 130

PROVIDER_CHOICES = [p.value for p in ProviderIdentity]


# =============================================================================
# transcribe
# =============================================================================

async def cmd_transcribe(args: argparse.Namespace, settings: Settings) -> int:
    app_config = load_app_config(settings)

    options = ProcessOptions.from_config(
        app_config,
        output_dir=args.out_dir,
        prefer_captions=args.prefer_captions,
        language=args.lang,
        strict_language=args.strict_lang,
        timestamps=args.timestamps,
        compact=args.compact,
        paragraph_length=args.paragraph_length,
        use_llm=args.use_llm,
        provider=ProviderIdentity(args.provider) if args.provider else None,
        force_formatting=args.force_formatting or None,
        cookies_file=args.cookies,
        whisper_model=args.whisper_model,
        threads=args.threads,
        refresh_audio=args.refresh_audio or None,
        dry_run=args.dry_run or None,
    )
    # An explicit provider implies LLM formatting
    if options.provider is not None:
        options.use_llm = True

    def progress(message: str) -> None:
        print(message, file=sys.stderr)

    async with TranscriptPipeline.create(settings, app_config) as pipeline:
        result = await pipeline.process(args.url, options, progress_callback=progress)

    if options.dry_run:
        print(result.markdown)
    else:
        print(result.output_path)

    if options.use_llm and result.outcome.formatted_by == FormattedBy.STANDARD:
        print("Note: LLM formatting unavailable, used standard formatting", file=sys.stderr)

    print_summary(result, options)
    return 0


def print_summary(result: ProcessResult, options: ProcessOptions) -> None:
    """End-of-run statistics on stderr."""
    text = result.outcome.text
    paragraphs = [p for p in text.split("\n\n") if p.strip()]

    if result.outcome.formatted_by == FormattedBy.LLM:
        formatting = f"llm ({result.outcome.provider_used.value}/{result.outcome.model_used})"
    else:
        formatting = "compact" if options.compact else "standard"

    lines = [
        f"Source: {result.source.value}",
        f"Formatting: {formatting}",
        f"Paragraph length: {options.paragraph_length} sentences",
        f"Words: {len(text.split())}",
        f"Characters: {len(text)}",
        f"Paragraphs: {len(paragraphs)}",
    ]
    print("\n".join(lines), file=sys.stderr)


# =============================================================================
# config
# =============================================================================

async def cmd_config_show(args: argparse.Namespace, settings: Settings) -> int:
    app_config = load_app_config(settings)
    data = app_config.model_dump(mode="json", exclude_none=True)
    print(yaml.safe_dump(data, sort_keys=False, allow_unicode=True).rstrip())
    return 0


async def cmd_config_path(args: argparse.Namespace, settings: Settings) -> int:
    print(settings.config_path)
    return 0


async def cmd_config_set(args: argparse.Namespace, settings: Settings) -> int:
    """Set one output preference, e.g. `config set paragraph_length 3`."""
    key = args.key.removeprefix("output.")
    if key not in OutputPreferences.model_fields:
        allowed = ", ".join(OutputPreferences.model_fields)
        raise ConfigError(f"Unknown setting '{args.key}'", remediation=f"Known settings: {allowed}")

    app_config = load_app_config(settings)
    data = app_config.output.model_dump()
    data[key] = yaml.safe_load(args.value) if args.value != "" else None

    try:
        app_config.output = OutputPreferences.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value for '{key}': {e.errors()[0]['msg']}") from e

    path = save_app_config(app_config, settings)
    print(f"{key} = {getattr(app_config.output, key)} ({path})")
    return 0


# =============================================================================
# provider
# =============================================================================

async def cmd_provider_list(args: argparse.Namespace, settings: Settings) -> int:
    registry = ProviderRegistry(load_app_config(settings), settings)
    for info in registry.list():
        marker = "*" if info.active else " "
        endpoint = info.endpoint or "(not configured)"
        model = info.model or "-"
        print(f"{marker} {info.identity.value:10} {model:40} {endpoint}")
    return 0


async def cmd_provider_add(args: argparse.Namespace, settings: Settings) -> int:
    registry = ProviderRegistry(load_app_config(settings), settings)
    identity = ProviderIdentity(args.provider)
    registry.configure(identity, endpoint=args.endpoint, model=args.model)
    resolved = registry.resolve(identity)
    if args.use:
        registry.set_active(identity)
    registry.save()
    print(f"{identity.value}: {resolved.model} @ {resolved.endpoint}")
    return 0


async def cmd_provider_remove(args: argparse.Namespace, settings: Settings) -> int:
    registry = ProviderRegistry(load_app_config(settings), settings)
    identity = ProviderIdentity(args.provider)
    registry.remove(identity, credentials=CredentialStore())
    registry.save()
    print(f"Removed {identity.value}")
    return 0


async def cmd_provider_use(args: argparse.Namespace, settings: Settings) -> int:
    registry = ProviderRegistry(load_app_config(settings), settings)
    identity = ProviderIdentity(args.provider)
    registry.set_active(identity)
    registry.save()
    print(f"Active provider: {identity.value}")
    return 0


# =============================================================================
# auth
# =============================================================================

def _cloud_provider(value: str) -> ProviderIdentity:
    identity = ProviderIdentity(value)
    if identity == ProviderIdentity.LOCAL:
        raise ConfigError("The local provider does not use an API key")
    return identity


async def cmd_auth_set(args: argparse.Namespace, settings: Settings) -> int:
    identity = _cloud_provider(args.provider)
    if args.stdin:
        secret = sys.stdin.readline()
    else:
        secret = getpass.getpass(f"API key for {identity.value}: ")
    try:
        CredentialStore().set(identity, secret)
    except ValueError as e:
        raise Y2mdError(str(e), remediation=f"Run `y2md auth set {identity.value}` again") from e
    print(f"Stored API key for {identity.value}")
    return 0


async def cmd_auth_remove(args: argparse.Namespace, settings: Settings) -> int:
    identity = _cloud_provider(args.provider)
    CredentialStore().delete(identity)
    print(f"Removed API key for {identity.value}")
    return 0


async def cmd_auth_status(args: argparse.Namespace, settings: Settings) -> int:
    store = CredentialStore()
    for identity in ProviderIdentity:
        if identity == ProviderIdentity.LOCAL:
            continue
        source = store.source(identity)
        status = f"set ({source})" if source else f"not set (export {env_var_name(identity)})"
        print(f"{identity.value:10} {status}")
    return 0


# =============================================================================
# models
# =============================================================================

def _local_endpoint(settings: Settings) -> tuple[str, str]:
    registry = ProviderRegistry(load_app_config(settings), settings)
    local = registry.resolve(ProviderIdentity.LOCAL)
    return local.endpoint, local.model


async def cmd_models_list(args: argparse.Namespace, settings: Settings) -> int:
    endpoint, _ = _local_endpoint(settings)
    async with OllamaModelManager(endpoint) as manager:
        models = await manager.list_local()

    if not models:
        print("No models installed")
    for model in models:
        print(f"{model.name:40} {model.size_human or '-':>10}")
    return 0


async def cmd_models_pull(args: argparse.Namespace, settings: Settings) -> int:
    endpoint, default_model = _local_endpoint(settings)
    model = args.model or default_model

    bars: dict[str, tqdm] = {}

    def sink(progress: PullProgress) -> None:
        # One bar per layer digest; status-only lines are printed as-is
        if progress.total:
            bar = bars.get(progress.status)
            if bar is None:
                bar = tqdm(
                    total=progress.total,
                    desc=progress.status[:40],
                    unit="B",
                    unit_scale=True,
                    ncols=80,
                    file=sys.stderr,
                )
                bars[progress.status] = bar
            bar.update((progress.completed or 0) - bar.n)
        else:
            tqdm.write(progress.status, file=sys.stderr)

    try:
        async with OllamaModelManager(endpoint) as manager:
            await manager.download(model, progress_sink=sink)
    finally:
        for bar in bars.values():
            bar.close()

    print(f"Installed {model}")
    return 0


async def cmd_models_remove(args: argparse.Namespace, settings: Settings) -> int:
    endpoint, _ = _local_endpoint(settings)

    if not args.yes:
        answer = input(f"Remove model '{args.model}'? [y/N] ").strip().lower()
        if answer not in ("y", "yes"):
            print("Aborted")
            return EXIT_ERROR

    async with OllamaModelManager(endpoint) as manager:
        await manager.remove(args.model)
    print(f"Removed {args.model}")
    return 0


async def cmd_models_status(args: argparse.Namespace, settings: Settings) -> int:
    endpoint, default_model = _local_endpoint(settings)
    model = args.model or default_model

    async with OllamaModelManager(endpoint) as manager:
        if not await manager.is_service_available():
            print(f"Ollama: not running at {endpoint}")
            return EXIT_ERROR
        available = await manager.is_model_available(model)

    print(f"Ollama: running at {endpoint}")
    print(f"{model}: {'installed' if available else 'not installed'}")
    return 0 if available else EXIT_ERROR


# =============================================================================
# cache / doctor
# =============================================================================

async def cmd_cache_clear(args: argparse.Namespace, settings: Settings) -> int:
    cache = AudioCache(settings.audio_cache_dir)
    if args.video:
        removed = cache.invalidate(parse_video_url(args.video).video_id)
    else:
        removed = cache.purge()
    print(f"Removed {removed} cached file(s)")
    return 0


async def cmd_doctor(args: argparse.Namespace, settings: Settings) -> int:
    try:
        app_config = load_app_config(settings)
    except ConfigError:
        # Reported by the config check itself
        app_config = AppConfig()

    registry = ProviderRegistry(app_config, settings)
    local = registry.resolve(ProviderIdentity.LOCAL)

    async with OllamaModelManager(local.endpoint) as manager:
        results = await run_diagnostics(settings, app_config, CredentialStore(), manager)

    for result in results:
        mark = "ok  " if result.ok else "FAIL"
        print(f"[{mark}] {result.name:24} {result.detail}")
        if not result.ok and result.hint:
            print(f"       hint: {result.hint}")

    return 0 if all(r.ok for r in results) else EXIT_ERROR


# =============================================================================
# Parser
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="y2md",
        description="Turn YouTube videos into markdown transcripts",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="More logging (-v progress, -vv debug)"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    # transcribe
    p = commands.add_parser("transcribe", help="Transcribe a video to markdown")
    p.add_argument("url", help="YouTube URL or video id")
    p.add_argument("--out-dir", type=Path, help="Output directory")
    p.add_argument("--lang", help="Transcript language (default from config)")
    p.add_argument(
        "--strict-lang", action="store_true", default=None,
        help="Use speech recognition if captions lack the requested language",
    )
    p.add_argument(
        "--no-captions", dest="prefer_captions", action="store_false", default=None,
        help="Skip captions, always use speech recognition",
    )
    p.add_argument("--timestamps", action="store_true", default=None, help="Write [HH:MM:SS] segments")
    p.add_argument("--compact", action="store_true", default=None, help="Skip transcript cleanup")
    p.add_argument("--paragraph-length", type=int, help="Sentences per paragraph")
    p.add_argument("--use-llm", action="store_true", default=None, help="Format with an LLM")
    p.add_argument("--provider", choices=PROVIDER_CHOICES, help="LLM provider (implies --use-llm)")
    p.add_argument("--force-formatting", action="store_true", help="Reflow even lyrics-like text")
    p.add_argument("--cookies", type=Path, help="Netscape cookies file for yt-dlp")
    p.add_argument("--whisper-model", help="Whisper model (tiny, base, small, medium, large-v3)")
    p.add_argument("--threads", type=int, help="CPU threads for speech recognition")
    p.add_argument("--refresh-audio", action="store_true", help="Re-download cached audio")
    p.add_argument("--dry-run", action="store_true", help="Print markdown instead of writing it")
    p.set_defaults(handler=cmd_transcribe)

    # config
    config = commands.add_parser("config", help="Show or change preferences")
    config_cmds = config.add_subparsers(dest="config_command", required=True)
    config_cmds.add_parser("show", help="Print the configuration").set_defaults(handler=cmd_config_show)
    config_cmds.add_parser("path", help="Print the config file path").set_defaults(handler=cmd_config_path)
    p = config_cmds.add_parser("set", help="Set an output preference")
    p.add_argument("key", help="Preference name, e.g. paragraph_length")
    p.add_argument("value", help="New value (YAML scalar)")
    p.set_defaults(handler=cmd_config_set)

    # provider
    provider = commands.add_parser("provider", help="Manage LLM providers")
    provider_cmds = provider.add_subparsers(dest="provider_command", required=True)
    provider_cmds.add_parser("list", help="List providers").set_defaults(handler=cmd_provider_list)
    p = provider_cmds.add_parser("add", help="Add or update a provider")
    p.add_argument("provider", choices=PROVIDER_CHOICES)
    p.add_argument("--endpoint", help="API base URL")
    p.add_argument("--model", help="Model name")
    p.add_argument("--use", action="store_true", help="Also make it the active provider")
    p.set_defaults(handler=cmd_provider_add)
    p = provider_cmds.add_parser("remove", help="Remove a provider and its API key")
    p.add_argument("provider", choices=PROVIDER_CHOICES)
    p.set_defaults(handler=cmd_provider_remove)
    p = provider_cmds.add_parser("use", help="Set the active provider")
    p.add_argument("provider", choices=PROVIDER_CHOICES)
    p.set_defaults(handler=cmd_provider_use)

    # auth
    auth = commands.add_parser("auth", help="Manage API keys")
    auth_cmds = auth.add_subparsers(dest="auth_command", required=True)
    p = auth_cmds.add_parser("set", help="Store an API key in the OS keyring")
    p.add_argument("provider", choices=PROVIDER_CHOICES)
    p.add_argument(
        "--stdin", action="store_true", help="Read the key from stdin instead of prompting"
    )
    p.set_defaults(handler=cmd_auth_set)
    p = auth_cmds.add_parser("remove", help="Delete a stored API key")
    p.add_argument("provider", choices=PROVIDER_CHOICES)
    p.set_defaults(handler=cmd_auth_remove)
    auth_cmds.add_parser("status", help="Show where keys come from").set_defaults(handler=cmd_auth_status)

    # models
    models = commands.add_parser("models", help="Manage local Ollama models")
    models_cmds = models.add_subparsers(dest="models_command", required=True)
    models_cmds.add_parser("list", help="List installed models").set_defaults(handler=cmd_models_list)
    p = models_cmds.add_parser("pull", help="Download a model")
    p.add_argument("model", nargs="?", help="Model name (default: local provider model)")
    p.set_defaults(handler=cmd_models_pull)
    p = models_cmds.add_parser("remove", help="Delete a model")
    p.add_argument("model")
    p.add_argument("-y", "--yes", action="store_true", help="Don't ask for confirmation")
    p.set_defaults(handler=cmd_models_remove)
    p = models_cmds.add_parser("status", help="Check Ollama and a model")
    p.add_argument("model", nargs="?", help="Model name (default: local provider model)")
    p.set_defaults(handler=cmd_models_status)

    # cache
    cache = commands.add_parser("cache", help="Manage the audio cache")
    cache_cmds = cache.add_subparsers(dest="cache_command", required=True)
    p = cache_cmds.add_parser("clear", help="Delete cached audio")
    p.add_argument("video", nargs="?", help="Only this video (URL or id)")
    p.set_defaults(handler=cmd_cache_clear)

    # doctor
    commands.add_parser("doctor", help="Check the environment").set_defaults(handler=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Console entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings, verbosity=args.verbose)

    try:
        exit_code = asyncio.run(args.handler(args, settings))
    except Y2mdError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e.message}", file=sys.stderr)
        if e.remediation:
            print(f"Hint: {e.remediation}", file=sys.stderr)
        exit_code = EXIT_ERROR
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        exit_code = EXIT_INTERRUPTED

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
