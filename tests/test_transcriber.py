"""Tests for speech recognition and audio conversion wrappers."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from y2md.models.schemas import TranscriptSource
from y2md.services import audio_converter, transcriber
from y2md.services.audio_converter import AudioConverter
from y2md.services.errors import CollaboratorUnavailable
from y2md.services.transcriber import WhisperTranscriber, calculate_confidence


def whisper_segment(start, end, text, avg_logprob=-0.2):
    return SimpleNamespace(start=start, end=end, text=text, avg_logprob=avg_logprob)


@pytest.fixture
def whisper_model(monkeypatch):
    model = MagicMock()
    model.transcribe.return_value = (
        iter(
            [
                whisper_segment(0.0, 2.0, " So today we talk about rust."),
                whisper_segment(2.0, 3.0, "   "),
                whisper_segment(3.0, 5.5, " It is safe."),
            ]
        ),
        SimpleNamespace(language="en"),
    )
    factory = MagicMock(return_value=model)
    monkeypatch.setattr(transcriber, "WhisperModel", factory)
    return factory


class TestWhisperTranscriber:
    async def test_segments_and_metadata(self, settings, whisper_model, tmp_path):
        wav = tmp_path / "audio.wav"
        wav.write_bytes(b"RIFF")

        result = await WhisperTranscriber(settings).transcribe(wav, "small", threads=2)

        assert result.source == TranscriptSource.SPEECH_RECOGNITION
        assert result.model_name == "small"
        assert result.language == "en"
        assert result.full_text == "So today we talk about rust.\nIt is safe."
        assert result.confidence == calculate_confidence([-0.2, -0.2])
        whisper_model.assert_called_once_with(
            "small", device="cpu", compute_type="int8", cpu_threads=2, download_root=None
        )

    async def test_model_reused(self, settings, whisper_model, tmp_path):
        recognizer = WhisperTranscriber(settings)
        model = whisper_model.return_value

        await recognizer.transcribe(tmp_path / "a.wav", "base", threads=4)
        model.transcribe.return_value = (iter([]), SimpleNamespace(language="en"))
        await recognizer.transcribe(tmp_path / "b.wav", "base", threads=4)

        assert whisper_model.call_count == 1

    async def test_load_failure_wrapped(self, settings, monkeypatch, tmp_path):
        monkeypatch.setattr(
            transcriber, "WhisperModel", MagicMock(side_effect=RuntimeError("unknown model"))
        )

        with pytest.raises(CollaboratorUnavailable) as exc_info:
            await WhisperTranscriber(settings).transcribe(tmp_path / "a.wav", "huge", threads=1)

        assert exc_info.value.collaborator == "speech recognition"
        assert exc_info.value.remediation


def test_calculate_confidence():
    assert calculate_confidence([]) is None
    assert calculate_confidence([0.0]) == 1.0
    assert 0 < calculate_confidence([-0.5, -0.3]) < 1


class TestAudioConverter:
    async def test_missing_input(self, tmp_path):
        with pytest.raises(CollaboratorUnavailable) as exc_info:
            await AudioConverter().convert(tmp_path / "missing.webm")

        assert exc_info.value.collaborator == "ffmpeg"
        assert "--refresh-audio" in exc_info.value.remediation

    async def test_unwritable_output_dir(self, tmp_path, monkeypatch):
        audio = tmp_path / "audio.webm"
        audio.write_bytes(b"data")
        monkeypatch.setattr(audio_converter.shutil, "which", lambda name: "/usr/bin/ffmpeg")

        with pytest.raises(CollaboratorUnavailable, match="temporary WAV"):
            await AudioConverter().convert(audio, output_dir=tmp_path / "missing-dir")

    async def test_missing_ffmpeg(self, tmp_path, monkeypatch):
        audio = tmp_path / "audio.webm"
        audio.write_bytes(b"data")
        monkeypatch.setattr(audio_converter.shutil, "which", lambda name: None)

        with pytest.raises(CollaboratorUnavailable) as exc_info:
            await AudioConverter().convert(audio)

        assert exc_info.value.collaborator == "ffmpeg"

    async def test_ffmpeg_failure_cleans_up(self, tmp_path, monkeypatch):
        audio = tmp_path / "audio.webm"
        audio.write_bytes(b"data")
        monkeypatch.setattr(audio_converter.shutil, "which", lambda name: "/usr/bin/ffmpeg")
        monkeypatch.setattr(
            audio_converter.subprocess,
            "run",
            MagicMock(return_value=SimpleNamespace(returncode=1, stderr="Invalid data found")),
        )

        with pytest.raises(CollaboratorUnavailable, match="code 1"):
            await AudioConverter().convert(audio, output_dir=tmp_path)

        assert list(tmp_path.glob("*.wav")) == []
