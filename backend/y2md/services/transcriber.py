"""
Local speech recognition with faster-whisper.

Models are downloaded on first use (to whisper_model_dir or the
Hugging Face cache) and kept loaded per (model, threads) for the life
of the process. Recognition runs in a worker thread.
"""

import asyncio
import logging
import math
import time
from pathlib import Path

from faster_whisper import WhisperModel

from y2md.config import Settings
from y2md.models.schemas import RawTranscript, TranscriptSegment, TranscriptSource
from y2md.services.errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)
perf_logger = logging.getLogger("y2md.perf")

RECOGNITION_REMEDIATION = (
    "Check that the Whisper model name is valid (tiny, base, small, medium, "
    "large-v3) and that it can be downloaded, or try a smaller model with "
    "--whisper-model"
)


class WhisperTranscriber:
    """
    Audio transcription using a local faster-whisper model.

    Example:
        transcriber = WhisperTranscriber(settings)
        transcript = await transcriber.transcribe(wav_path, "base", threads=4)
        print(transcript.full_text)
    """

    def __init__(self, settings: Settings):
        """
        Initialize transcriber.

        Args:
            settings: Application settings (device, compute type, model dir)
        """
        self.settings = settings
        self._models: dict[tuple[str, int], WhisperModel] = {}

    async def transcribe(
        self,
        audio_path: Path,
        model: str,
        threads: int,
        language: str | None = None,
    ) -> RawTranscript:
        """
        Transcribe an audio file into timestamped segments.

        Args:
            audio_path: 16 kHz mono WAV
            model: Whisper model size or path
            threads: CPU threads for inference
            language: Language hint (None = auto-detect)

        Returns:
            RawTranscript with source=SPEECH_RECOGNITION

        Raises:
            CollaboratorUnavailable: If the model can't load or inference fails
        """
        logger.info(f"Starting transcription: {Path(audio_path).name} (model={model}, threads={threads})")
        start_time = time.time()

        try:
            transcript = await asyncio.to_thread(
                self._transcribe_sync, Path(audio_path), model, threads, language
            )
        except CollaboratorUnavailable:
            raise
        except Exception as e:  # noqa: BLE001 - ctranslate2/av raise assorted types
            raise CollaboratorUnavailable(
                "speech recognition",
                f"Speech recognition failed: {e}",
                remediation=RECOGNITION_REMEDIATION,
            ) from e

        total_time = time.time() - start_time
        conf_str = f", confidence={transcript.confidence:.2%}" if transcript.confidence else ""
        logger.info(
            f"Transcription complete: {len(transcript.segments)} segments, "
            f"language={transcript.language}{conf_str}"
        )
        perf_logger.debug(f"PERF | transcribe | model={model} | total={total_time:.1f}s")

        return transcript

    def _load_model(self, model: str, threads: int) -> WhisperModel:
        key = (model, threads)
        if key not in self._models:
            logger.info(f"Loading Whisper model: {model}")
            download_root = (
                str(self.settings.whisper_model_dir)
                if self.settings.whisper_model_dir
                else None
            )
            self._models[key] = WhisperModel(
                model,
                device=self.settings.whisper_device,
                compute_type=self.settings.whisper_compute_type,
                cpu_threads=threads,
                download_root=download_root,
            )
        return self._models[key]

    def _transcribe_sync(
        self,
        audio_path: Path,
        model: str,
        threads: int,
        language: str | None,
    ) -> RawTranscript:
        whisper = self._load_model(model, threads)
        segments_gen, info = whisper.transcribe(
            str(audio_path),
            language=language,
            beam_size=5,
            vad_filter=True,
        )

        # Segments are produced lazily; consuming them runs the inference
        segments: list[TranscriptSegment] = []
        logprobs: list[float] = []
        for seg in segments_gen:
            text = seg.text.strip()
            if not text:
                continue
            segments.append(TranscriptSegment(start=seg.start, end=seg.end, text=text))
            logprobs.append(seg.avg_logprob)

        return RawTranscript(
            segments=segments,
            language=info.language or language,
            source=TranscriptSource.SPEECH_RECOGNITION,
            model_name=model,
            confidence=calculate_confidence(logprobs),
        )


def calculate_confidence(logprobs: list[float]) -> float | None:
    """
    Average confidence from Whisper segment log probabilities.

    confidence = exp(mean(avg_logprob)), clamped to [0, 1]
    """
    if not logprobs:
        return None

    avg_logprob = sum(logprobs) / len(logprobs)
    confidence = min(1.0, max(0.0, math.exp(avg_logprob)))

    return round(confidence, 4)
