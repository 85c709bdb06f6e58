"""
Pydantic models for the transcript pipeline.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


def format_timestamp(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    s = int(seconds % 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


class TranscriptSource(str, Enum):
    """Which strategy produced the raw transcript."""
    CAPTIONS = "captions"
    SPEECH_RECOGNITION = "speech_recognition"


class ProviderIdentity(str, Enum):
    """LLM providers available for formatting.

    LOCAL (Ollama) needs no credential and is the default.
    """
    LOCAL = "local"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"


class FormattedBy(str, Enum):
    """Which formatter produced the final text."""
    LLM = "llm"
    STANDARD = "standard"


class VideoIdentity(BaseModel):
    """Validated video key."""

    video_id: str

    model_config = {"frozen": True}

    @computed_field
    @property
    def url(self) -> str:
        """Canonical watch URL."""
        return YOUTUBE_WATCH_URL.format(video_id=self.video_id)


class VideoMetadata(BaseModel):
    """Metadata fetched for a video before processing."""

    video_id: str
    title: str
    channel: str | None = None
    duration_seconds: float | None = None

    @computed_field
    @property
    def url(self) -> str:
        """Canonical watch URL."""
        return YOUTUBE_WATCH_URL.format(video_id=self.video_id)

    @computed_field
    @property
    def duration(self) -> str | None:
        """Duration as HH:MM:SS, if known."""
        if self.duration_seconds is None:
            return None
        return format_timestamp(self.duration_seconds)


class TranscriptSegment(BaseModel):
    """Single caption cue or recognized segment.

    Offsets are optional: plain-text sources have none.
    """

    start: float | None = None
    end: float | None = None
    text: str

    @computed_field
    @property
    def start_time(self) -> str | None:
        """Formatted start time (HH:MM:SS)."""
        if self.start is None:
            return None
        return format_timestamp(self.start)


class RawTranscript(BaseModel):
    """Unformatted transcript as acquired from captions or recognition."""

    segments: list[TranscriptSegment]
    language: str | None = None
    source: TranscriptSource
    model_name: str | None = None  # Recognition model, None for captions
    confidence: float | None = None

    @computed_field
    @property
    def full_text(self) -> str:
        """Segment texts, one per line."""
        return "\n".join(seg.text for seg in self.segments if seg.text)

    @property
    def has_timestamps(self) -> bool:
        """True if every segment carries a start offset."""
        return bool(self.segments) and all(
            seg.start is not None for seg in self.segments
        )

    @property
    def text_with_timestamps(self) -> str:
        """Text with [HH:MM:SS] prefixes where offsets are known."""
        lines = []
        for seg in self.segments:
            if seg.start_time is not None:
                lines.append(f"[{seg.start_time}] {seg.text}")
            else:
                lines.append(seg.text)
        return "\n".join(lines)

    @property
    def is_empty(self) -> bool:
        """True if there is no non-whitespace text."""
        return not self.full_text.strip()


class ProviderConfig(BaseModel):
    """Endpoint/model pair for one provider.

    Unknown keys are rejected so an API key can never be persisted here.
    """

    endpoint: str | None = None
    model: str | None = None

    model_config = {"extra": "forbid"}


class ModelAvailabilityEntry(BaseModel):
    """Cached answer to "is model X installed"."""

    model_name: str
    available: bool
    checked_at: float  # Monotonic clock reading


class LocalModel(BaseModel):
    """Model installed in the local inference service."""

    name: str
    size_bytes: int | None = None
    modified_at: datetime | None = None

    @computed_field
    @property
    def size_human(self) -> str | None:
        """Size as B/KB/MB/GB."""
        if self.size_bytes is None:
            return None
        if self.size_bytes < 1024:
            return f"{self.size_bytes} B"
        size = float(self.size_bytes)
        for unit in ("KB", "MB", "GB"):
            size /= 1024
            if size < 1024 or unit == "GB":
                break
        return f"{size:.1f} {unit}"


class PullProgress(BaseModel):
    """One progress event from a streamed model download."""

    status: str
    completed: int | None = None
    total: int | None = None

    @computed_field
    @property
    def percent(self) -> float | None:
        """Completion percentage, if the event carries byte counts."""
        if not self.total or self.completed is None:
            return None
        return min(100.0, self.completed / self.total * 100)


class FormattingOutcome(BaseModel):
    """Final text with provenance of the formatter that produced it."""

    text: str
    formatted_by: FormattedBy
    provider_used: ProviderIdentity | None = None
    model_used: str | None = None


class ProcessResult(BaseModel):
    """Result of processing one video end to end."""

    metadata: VideoMetadata
    transcript: RawTranscript
    source: TranscriptSource
    outcome: FormattingOutcome
    output_path: str | None = None  # None on dry run
    markdown: str = Field(default="", repr=False)
