"""Tests for end-to-end processing of one video."""

from unittest.mock import AsyncMock

import pytest

from y2md.config import AppConfig, OutputPreferences
from y2md.models.schemas import (
    FormattedBy,
    FormattingOutcome,
    ProviderIdentity,
    RawTranscript,
    TranscriptSegment,
    TranscriptSource,
    VideoMetadata,
)
from y2md.services.downloader import AudioCache
from y2md.services.errors import CollaboratorUnavailable, CredentialMissing, VideoUrlError
from y2md.services.pipeline import PipelineError, ProcessOptions, TranscriptPipeline

VIDEO_ID = "dQw4w9WgXcQ"
URL = f"https://youtu.be/{VIDEO_ID}"
METADATA = VideoMetadata(video_id=VIDEO_ID, title="Rust in 100 Seconds", channel="Fireship")
TRANSCRIPT = RawTranscript(
    segments=[TranscriptSegment(start=0.0, end=2.0, text="So today we. Talk about rust.")],
    language="en",
    source=TranscriptSource.CAPTIONS,
)


@pytest.fixture(autouse=True)
def fake_metadata(monkeypatch):
    fetch = AsyncMock(return_value=METADATA)
    monkeypatch.setattr("y2md.services.pipeline.orchestrator.fetch_video_metadata", fetch)
    return fetch


@pytest.fixture
def selector():
    mock = AsyncMock()
    mock.acquire.return_value = (TRANSCRIPT, TranscriptSource.CAPTIONS)
    return mock


@pytest.fixture
def formatter():
    mock = AsyncMock()
    mock.format.return_value = FormattingOutcome(
        text="So today we.\n\nTalk about rust.", formatted_by=FormattedBy.STANDARD
    )
    return mock


@pytest.fixture
def pipeline(settings, selector, formatter):
    return TranscriptPipeline(settings, selector, formatter, AudioCache(settings.audio_cache_dir))


class TestProcessOptions:
    def test_defaults_from_config(self, tmp_path):
        config = AppConfig(output=OutputPreferences(output_dir=tmp_path, paragraph_length=2, use_llm=True))

        options = ProcessOptions.from_config(config)

        assert options.output_dir == tmp_path
        assert options.paragraph_length == 2
        assert options.use_llm is True
        assert options.language == "en"

    def test_none_overrides_ignored(self, tmp_path):
        config = AppConfig(output=OutputPreferences(output_dir=tmp_path, timestamps=True))

        options = ProcessOptions.from_config(config, timestamps=None, prefer_captions=False)

        assert options.timestamps is True
        assert options.prefer_captions is False


class TestProcess:
    async def test_writes_markdown(self, pipeline, tmp_path, selector, formatter):
        options = ProcessOptions(output_dir=tmp_path / "out", paragraph_length=2)
        stages: list[str] = []

        result = await pipeline.process(URL, options, progress_callback=stages.append)

        assert result.output_path is not None
        written = next((tmp_path / "out").iterdir())
        assert str(written) == result.output_path
        assert written.read_text(encoding="utf-8") == result.markdown
        assert "# Rust in 100 Seconds" in result.markdown
        assert result.outcome.formatted_by == FormattedBy.STANDARD
        assert result.source == TranscriptSource.CAPTIONS
        assert stages[0] == f"Fetching video info for {VIDEO_ID}"

        selector.acquire.assert_awaited_once()
        assert selector.acquire.await_args.args == (VIDEO_ID,)
        formatter.format.assert_awaited_once()
        assert formatter.format.await_args.args == ("So today we. Talk about rust.",)
        assert formatter.format.await_args.kwargs["paragraph_length"] == 2

    async def test_dry_run_writes_nothing(self, pipeline, tmp_path):
        options = ProcessOptions(output_dir=tmp_path / "out", dry_run=True)

        result = await pipeline.process(URL, options)

        assert result.output_path is None
        assert result.markdown.startswith("---\n")
        assert not (tmp_path / "out").exists()

    async def test_invalid_url(self, pipeline, tmp_path, fake_metadata):
        with pytest.raises(VideoUrlError):
            await pipeline.process("https://vimeo.com/1", ProcessOptions(output_dir=tmp_path))

        fake_metadata.assert_not_awaited()

    async def test_recognition_failure_names_stage(self, pipeline, selector, tmp_path):
        selector.acquire.side_effect = CollaboratorUnavailable(
            "speech recognition", "model failed", remediation="try --whisper-model tiny"
        )

        with pytest.raises(PipelineError) as exc_info:
            await pipeline.process(URL, ProcessOptions(output_dir=tmp_path))

        assert exc_info.value.stage == "transcript"
        assert isinstance(exc_info.value.cause, CollaboratorUnavailable)
        assert exc_info.value.remediation == "try --whisper-model tiny"

    async def test_missing_credential_surfaces(self, pipeline, formatter, tmp_path):
        formatter.format.side_effect = CredentialMissing("openai")
        options = ProcessOptions(output_dir=tmp_path, use_llm=True, provider=ProviderIdentity.OPENAI)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline.process(URL, options)

        assert isinstance(exc_info.value.cause, CredentialMissing)
        assert list(tmp_path.iterdir()) == []


class TestAcquireTranscript:
    async def test_refresh_audio_invalidates_cache(self, pipeline, settings):
        settings.audio_cache_dir.mkdir(parents=True)
        cached = settings.audio_cache_dir / f"{VIDEO_ID}.webm"
        cached.write_bytes(b"old")

        await pipeline.acquire_transcript(VIDEO_ID, prefer_captions=False, refresh_audio=True)

        assert not cached.exists()
