"""
Markdown file writer.

Output layout:
    ---
    title: ...
    channel: ...
    url: ...
    video_id: ...
    duration: HH:MM:SS
    source: captions | speech_recognition
    language: en
    formatted_by: llm | standard
    llm_provider: ...      (LLM only)
    llm_model: ...         (LLM only)
    extracted_at: ISO-8601 UTC
    ---

    # {title}

    {formatted transcript, or [HH:MM:SS] lines with timestamps}
"""

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import yaml

from y2md.models.schemas import (
    FormattedBy,
    FormattingOutcome,
    RawTranscript,
    TranscriptSource,
    VideoMetadata,
)
from y2md.services.parser import slugify

logger = logging.getLogger(__name__)


class MarkdownSaver:
    """
    Builds and writes the markdown artifact for one video.

    Example:
        saver = MarkdownSaver(Path("~/transcripts").expanduser())
        markdown = saver.render(metadata, transcript, source, outcome)
        path = saver.save(metadata, markdown)
    """

    def __init__(self, output_dir: Path):
        """
        Initialize saver.

        Args:
            output_dir: Directory for markdown files (created on save)
        """
        self.output_dir = Path(output_dir)

    def render(
        self,
        metadata: VideoMetadata,
        transcript: RawTranscript,
        source: TranscriptSource,
        outcome: FormattingOutcome,
        include_timestamps: bool = False,
        extracted_at: datetime | None = None,
    ) -> str:
        """
        Render front matter, title and body.

        Timestamped output uses the raw segments and is only possible when
        the transcript carries offsets and the LLM did not rewrite it.

        Returns:
            Complete markdown document
        """
        front_matter = self._front_matter(
            metadata, transcript, source, outcome, extracted_at
        )

        if (
            include_timestamps
            and transcript.has_timestamps
            and outcome.formatted_by == FormattedBy.STANDARD
        ):
            body = transcript.text_with_timestamps
        else:
            if include_timestamps:
                logger.info("Timestamps unavailable for this output, writing plain text")
            body = outcome.text

        lines = [
            "---",
            yaml.safe_dump(front_matter, sort_keys=False, allow_unicode=True).rstrip(),
            "---",
            "",
            f"# {metadata.title}",
            "",
            body.strip(),
            "",
        ]
        return "\n".join(lines)

    def filename(self, metadata: VideoMetadata, when: datetime | None = None) -> str:
        """Output filename: {YYYY-MM-DD}_{video_id}_{slug}.md"""
        when = when or datetime.now()
        return f"{when.date().isoformat()}_{metadata.video_id}_{slugify(metadata.title)}.md"

    def save(self, metadata: VideoMetadata, markdown: str) -> Path:
        """
        Write markdown atomically (temporary file, then rename).

        Returns:
            Path of the written file
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / self.filename(metadata)

        fd, tmp_name = tempfile.mkstemp(dir=self.output_dir, prefix=".y2md-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(markdown)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info(f"Saved: {path}")
        return path

    @staticmethod
    def _front_matter(
        metadata: VideoMetadata,
        transcript: RawTranscript,
        source: TranscriptSource,
        outcome: FormattingOutcome,
        extracted_at: datetime | None,
    ) -> dict:
        extracted_at = extracted_at or datetime.now(timezone.utc)

        data: dict = {"title": metadata.title}
        if metadata.channel:
            data["channel"] = metadata.channel
        data["url"] = metadata.url
        data["video_id"] = metadata.video_id
        if metadata.duration:
            data["duration"] = metadata.duration
        data["source"] = source.value
        if transcript.model_name:
            data["whisper_model"] = transcript.model_name
        data["language"] = transcript.language or "unknown"
        data["formatted_by"] = outcome.formatted_by.value
        if outcome.provider_used:
            data["llm_provider"] = outcome.provider_used.value
        if outcome.model_used:
            data["llm_model"] = outcome.model_used
        data["extracted_at"] = extracted_at.isoformat(timespec="seconds")
        return data
