"""
Transcript source selection.

Chain: captions -> speech recognition.

Captions are exact and cheap, so they are tried first when preferred.
Any caption failure is logged and downgraded to speech recognition;
only a recognition failure stops the pipeline. Recognition reuses the
audio cache, so re-running a video never downloads twice.
"""

import logging
from pathlib import Path
from typing import Protocol

from y2md.config import Settings
from y2md.models.schemas import RawTranscript, TranscriptSource
from y2md.services.errors import CaptionsUnavailable, CollaboratorUnavailable
from y2md.services.pipeline.fallback_chain import Strategy, first_successful

logger = logging.getLogger(__name__)


class CaptionSource(Protocol):
    async def fetch(self, video_id: str, language: str, strict: bool = False) -> RawTranscript: ...


class AudioSource(Protocol):
    async def download(self, video_id: str, cookies_file: Path | None = None) -> Path: ...


class WaveformConverter(Protocol):
    async def convert(self, audio_path: Path, output_dir: Path | None = None) -> Path: ...


class SpeechRecognizer(Protocol):
    async def transcribe(
        self,
        audio_path: Path,
        model: str,
        threads: int,
        language: str | None = None,
    ) -> RawTranscript: ...


class TranscriptSourceSelector:
    """
    Chooses between captions and speech recognition for one video.

    Example:
        selector = TranscriptSourceSelector(
            settings, CaptionFetcher(), AudioDownloader(settings),
            AudioConverter(), WhisperTranscriber(settings),
        )
        transcript, source = await selector.acquire("dQw4w9WgXcQ", prefer_captions=True)
    """

    def __init__(
        self,
        settings: Settings,
        captions: CaptionSource,
        downloader: AudioSource,
        converter: WaveformConverter,
        recognizer: SpeechRecognizer,
    ):
        """
        Initialize selector with its collaborators.

        Args:
            settings: Application settings (Whisper model, threads, strictness)
            captions: Caption extraction
            downloader: Cached audio download
            converter: Waveform normalization
            recognizer: Speech recognition
        """
        self.settings = settings
        self.captions = captions
        self.downloader = downloader
        self.converter = converter
        self.recognizer = recognizer

    async def acquire(
        self,
        video_id: str,
        prefer_captions: bool = True,
        language: str | None = None,
        cookies_file: Path | None = None,
        whisper_model: str | None = None,
        threads: int | None = None,
        strict_language: bool | None = None,
    ) -> tuple[RawTranscript, TranscriptSource]:
        """
        Acquire a non-empty raw transcript.

        Args:
            video_id: YouTube video id
            prefer_captions: Try captions before speech recognition
            language: Requested language (captions default to "en")
            cookies_file: Cookies for restricted downloads
            whisper_model: Override settings.whisper_model
            threads: Override settings.whisper_threads
            strict_language: Override settings.strict_caption_language

        Returns:
            Tuple of (RawTranscript, TranscriptSource)

        Raises:
            CollaboratorUnavailable: Speech recognition (or its download or
                conversion step) failed
        """
        strict = (
            self.settings.strict_caption_language
            if strict_language is None
            else strict_language
        )

        async def from_captions() -> RawTranscript:
            transcript = await self.captions.fetch(video_id, language or "en", strict=strict)
            if transcript.is_empty:
                raise CaptionsUnavailable(video_id, "caption track is empty")
            return transcript

        async def from_speech() -> RawTranscript:
            return await self._recognize(
                video_id,
                language=language,
                cookies_file=cookies_file,
                model=whisper_model or self.settings.whisper_model,
                threads=threads or self.settings.whisper_threads,
            )

        strategies: list[Strategy[RawTranscript]] = []
        if prefer_captions:
            strategies.append(
                Strategy(TranscriptSource.CAPTIONS.value, from_captions, recoverable=(CaptionsUnavailable,))
            )
        else:
            logger.info("Captions disabled, using speech recognition")
        strategies.append(Strategy(TranscriptSource.SPEECH_RECOGNITION.value, from_speech))

        result = await first_successful(strategies)
        source = TranscriptSource(result.strategy)

        logger.info(
            f"Transcript acquired for {video_id}: source={source.value}, "
            f"segments={len(result.value.segments)}"
        )
        return result.value, source

    async def _recognize(
        self,
        video_id: str,
        language: str | None,
        cookies_file: Path | None,
        model: str,
        threads: int,
    ) -> RawTranscript:
        audio_path = await self.downloader.download(video_id, cookies_file=cookies_file)
        wav_path = await self.converter.convert(audio_path)

        try:
            transcript = await self.recognizer.transcribe(
                wav_path, model, threads, language=language
            )
        finally:
            Path(wav_path).unlink(missing_ok=True)

        if transcript.is_empty:
            raise CollaboratorUnavailable(
                "speech recognition",
                f"Speech recognition produced no text for {video_id}",
                remediation="The video may have no speech; try a larger --whisper-model",
            )
        return transcript
