"""
Pipeline orchestrator for one video.

Stages:
1. Parse URL -> VideoIdentity
2. Fetch metadata (title, channel, duration)
3. Acquire transcript (captions -> speech recognition)
4. Format transcript (LLM -> standard)
5. Render and save markdown
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from y2md.config import AppConfig, Settings
from y2md.models.schemas import (
    FormattingOutcome,
    ProcessResult,
    ProviderIdentity,
    RawTranscript,
    TranscriptSource,
)
from y2md.services.audio_converter import AudioConverter
from y2md.services.captions import CaptionFetcher
from y2md.services.credentials import CredentialStore
from y2md.services.downloader import AudioCache, AudioDownloader, fetch_video_metadata
from y2md.services.errors import Y2mdError
from y2md.services.parser import parse_video_url
from y2md.services.saver import MarkdownSaver
from y2md.services.transcriber import WhisperTranscriber

from .formatting_orchestrator import FormattingOrchestrator
from .provider_registry import ProviderRegistry
from .source_selector import TranscriptSourceSelector

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class PipelineError(Y2mdError):
    """
    Pipeline stage error with context.

    Attributes:
        stage: Stage where the error occurred
        cause: Original exception (if any)
    """

    def __init__(self, stage: str, cause: Y2mdError):
        self.stage = stage
        self.cause = cause
        super().__init__(f"[{stage}] {cause.message}", remediation=cause.remediation)


@dataclass
class ProcessOptions:
    """
    Per-invocation options, defaulted from the persisted output preferences.

    Attributes mirror the `y2md transcribe` flags.
    """

    output_dir: Path
    prefer_captions: bool = True
    language: str | None = None
    strict_language: bool | None = None
    timestamps: bool = False
    compact: bool = False
    paragraph_length: int = 4
    use_llm: bool = False
    provider: ProviderIdentity | None = None
    force_formatting: bool = False
    cookies_file: Path | None = None
    whisper_model: str | None = None
    threads: int | None = None
    refresh_audio: bool = False
    dry_run: bool = False

    @classmethod
    def from_config(cls, app_config: AppConfig, **overrides) -> "ProcessOptions":
        """Build options from config, applying non-None overrides."""
        output = app_config.output
        values = {
            "output_dir": output.output_dir or Path.cwd(),
            "prefer_captions": output.prefer_captions,
            "language": output.default_language,
            "timestamps": output.timestamps,
            "compact": output.compact,
            "paragraph_length": output.paragraph_length,
            "use_llm": output.use_llm,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class TranscriptPipeline:
    """
    Wires collaborators into the two fallback chains.

    Example:
        async with TranscriptPipeline.create(settings, app_config) as pipeline:
            options = ProcessOptions.from_config(app_config, use_llm=True)
            result = await pipeline.process("https://youtu.be/dQw4w9WgXcQ", options)
            print(result.output_path)
    """

    def __init__(
        self,
        settings: Settings,
        selector: TranscriptSourceSelector,
        formatter: FormattingOrchestrator,
        audio_cache: AudioCache,
    ):
        """
        Initialize pipeline.

        Args:
            settings: Application settings
            selector: Transcript source selection
            formatter: LLM/standard formatting
            audio_cache: Cache used by the selector's downloader
        """
        self.settings = settings
        self.selector = selector
        self.formatter = formatter
        self.audio_cache = audio_cache

    @classmethod
    def create(
        cls,
        settings: Settings,
        app_config: AppConfig,
        credentials: CredentialStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "TranscriptPipeline":
        """Build a pipeline with the default collaborators."""
        audio_cache = AudioCache(settings.audio_cache_dir)
        selector = TranscriptSourceSelector(
            settings,
            captions=CaptionFetcher(),
            downloader=AudioDownloader(settings, cache=audio_cache),
            converter=AudioConverter(),
            recognizer=WhisperTranscriber(settings),
        )
        formatter = FormattingOrchestrator(
            ProviderRegistry(app_config, settings),
            credentials or CredentialStore(),
            settings,
            http_client=http_client,
        )
        return cls(settings, selector, formatter, audio_cache)

    async def close(self) -> None:
        await self.formatter.close()

    async def __aenter__(self) -> "TranscriptPipeline":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def acquire_transcript(
        self,
        video_id: str,
        prefer_captions: bool = True,
        language: str | None = None,
        cookies_file: Path | None = None,
        whisper_model: str | None = None,
        threads: int | None = None,
        strict_language: bool | None = None,
        refresh_audio: bool = False,
    ) -> tuple[RawTranscript, TranscriptSource]:
        """
        Acquire a raw transcript (captions first unless disabled).

        Raises:
            CollaboratorUnavailable: If speech recognition fails
        """
        if refresh_audio:
            self.audio_cache.invalidate(video_id)

        return await self.selector.acquire(
            video_id,
            prefer_captions=prefer_captions,
            language=language,
            cookies_file=cookies_file,
            whisper_model=whisper_model,
            threads=threads,
            strict_language=strict_language,
        )

    async def format_transcript(
        self,
        raw_text: str,
        use_llm: bool,
        provider_override: ProviderIdentity | None = None,
        force_formatting: bool = False,
        paragraph_length: int = 4,
        compact: bool = False,
    ) -> FormattingOutcome:
        """
        Format raw text (LLM with standard fallback).

        Raises:
            CredentialMissing: Explicitly used cloud provider has no key
        """
        return await self.formatter.format(
            raw_text,
            use_llm=use_llm,
            provider_override=provider_override,
            force_formatting=force_formatting,
            paragraph_length=paragraph_length,
            compact=compact,
        )

    async def process(
        self,
        url: str,
        options: ProcessOptions,
        progress_callback: ProgressCallback | None = None,
    ) -> ProcessResult:
        """
        Process one video end to end.

        Args:
            url: Video URL or id
            options: Per-invocation options
            progress_callback: Receives a short status line per stage

        Returns:
            ProcessResult (output_path is None on dry run)

        Raises:
            PipelineError: If a stage fails irrecoverably
        """

        def report(message: str) -> None:
            logger.info(message)
            if progress_callback is not None:
                progress_callback(message)

        identity = parse_video_url(url)
        video_id = identity.video_id

        try:
            report(f"Fetching video info for {video_id}")
            metadata = await fetch_video_metadata(video_id, cookies_file=options.cookies_file)
        except Y2mdError as e:
            raise PipelineError("metadata", e) from e

        try:
            report("Acquiring transcript")
            transcript, source = await self.acquire_transcript(
                video_id,
                prefer_captions=options.prefer_captions,
                language=options.language,
                cookies_file=options.cookies_file,
                whisper_model=options.whisper_model,
                threads=options.threads,
                strict_language=options.strict_language,
                refresh_audio=options.refresh_audio,
            )
        except Y2mdError as e:
            raise PipelineError("transcript", e) from e

        try:
            report("Formatting transcript" + (" with LLM" if options.use_llm else ""))
            outcome = await self.format_transcript(
                transcript.full_text,
                use_llm=options.use_llm,
                provider_override=options.provider,
                force_formatting=options.force_formatting,
                paragraph_length=options.paragraph_length,
                compact=options.compact,
            )
        except Y2mdError as e:
            raise PipelineError("formatting", e) from e

        saver = MarkdownSaver(options.output_dir)
        markdown = saver.render(
            metadata,
            transcript,
            source,
            outcome,
            include_timestamps=options.timestamps,
        )

        output_path = None
        if options.dry_run:
            report("Dry run, not writing output")
        else:
            output_path = str(saver.save(metadata, markdown))
            report(f"Saved {output_path}")

        return ProcessResult(
            metadata=metadata,
            transcript=transcript,
            source=source,
            outcome=outcome,
            output_path=output_path,
            markdown=markdown,
        )
