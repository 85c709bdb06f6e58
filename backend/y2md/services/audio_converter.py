"""
Audio conversion service using ffmpeg.

Normalizes downloaded audio to 16 kHz mono 16-bit PCM WAV, the input
format speech recognition expects.
"""

import asyncio
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path

from y2md.services.errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)

FFMPEG_TIMEOUT_SECONDS = 600
SAMPLE_RATE = 16000

FFMPEG_REMEDIATION = "Install ffmpeg and make sure it is on PATH"


class AudioConverter:
    """
    Converts audio files to speech-recognition input using ffmpeg.

    The caller owns the returned temporary file and should delete it.

    Example:
        converter = AudioConverter()
        wav_path = await converter.convert(audio_path)
    """

    def __init__(self, ffmpeg_binary: str = "ffmpeg"):
        """
        Initialize audio converter.

        Args:
            ffmpeg_binary: ffmpeg executable name or path
        """
        self.ffmpeg_binary = ffmpeg_binary

    async def convert(self, audio_path: Path, output_dir: Path | None = None) -> Path:
        """
        Convert audio to 16 kHz mono WAV.

        Args:
            audio_path: Input audio file
            output_dir: Directory for the WAV file (default: system temp)

        Returns:
            Path to the converted WAV file

        Raises:
            CollaboratorUnavailable: If the input is missing, the WAV can't be
                created, or ffmpeg is missing or fails
        """
        audio_path = Path(audio_path)

        if not audio_path.is_file():
            raise CollaboratorUnavailable(
                "ffmpeg",
                f"Audio file not found: {audio_path}",
                remediation="Run again with --refresh-audio to download it again",
            )

        if shutil.which(self.ffmpeg_binary) is None:
            raise CollaboratorUnavailable(
                "ffmpeg",
                f"'{self.ffmpeg_binary}' not found",
                remediation=FFMPEG_REMEDIATION,
            )

        try:
            fd, wav_name = tempfile.mkstemp(prefix="y2md_", suffix=".wav", dir=output_dir)
        except OSError as e:
            raise CollaboratorUnavailable(
                "ffmpeg",
                f"Cannot create a temporary WAV file: {e.strerror or e}",
                remediation="Check free space in the temporary directory (TMPDIR)",
            ) from e
        os.close(fd)  # ffmpeg overwrites the placeholder
        wav_path = Path(wav_name)

        logger.info(f"Converting audio: {audio_path.name} -> {wav_path.name}")

        # Run ffmpeg in thread pool to not block event loop
        await asyncio.to_thread(self._run_ffmpeg, audio_path, wav_path)

        if not wav_path.exists() or wav_path.stat().st_size == 0:
            wav_path.unlink(missing_ok=True)
            raise CollaboratorUnavailable(
                "ffmpeg",
                "Audio conversion failed: output file is empty",
                remediation=FFMPEG_REMEDIATION,
            )

        wav_size_mb = wav_path.stat().st_size / 1024 / 1024
        logger.info(f"Audio converted: {wav_path.name} ({wav_size_mb:.1f} MB)")

        return wav_path

    def _run_ffmpeg(self, audio_path: Path, wav_path: Path) -> None:
        """
        Run ffmpeg to convert audio.

        Raises:
            CollaboratorUnavailable: If ffmpeg returns non-zero or times out
        """
        cmd = [
            self.ffmpeg_binary,
            "-i", str(audio_path),
            "-vn",                    # No video
            "-ac", "1",               # Mono
            "-ar", str(SAMPLE_RATE),  # 16 kHz
            "-acodec", "pcm_s16le",   # 16-bit PCM
            "-y",                     # Overwrite output
            str(wav_path),
        ]

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=FFMPEG_TIMEOUT_SECONDS,
            )
        except subprocess.TimeoutExpired as e:
            wav_path.unlink(missing_ok=True)
            raise CollaboratorUnavailable(
                "ffmpeg",
                f"ffmpeg timed out after {FFMPEG_TIMEOUT_SECONDS}s",
            ) from e

        if result.returncode != 0:
            logger.error(f"ffmpeg failed: {result.stderr[-500:]}")
            wav_path.unlink(missing_ok=True)
            raise CollaboratorUnavailable(
                "ffmpeg",
                f"ffmpeg error (code {result.returncode})",
                remediation=FFMPEG_REMEDIATION,
            )
