"""
Pydantic models for the transcript pipeline.
"""

from y2md.models.schemas import (
    FormattedBy,
    FormattingOutcome,
    LocalModel,
    ModelAvailabilityEntry,
    ProcessResult,
    ProviderConfig,
    ProviderIdentity,
    PullProgress,
    RawTranscript,
    TranscriptSegment,
    TranscriptSource,
    VideoIdentity,
    VideoMetadata,
)

__all__ = [
    "FormattedBy",
    "FormattingOutcome",
    "LocalModel",
    "ModelAvailabilityEntry",
    "ProcessResult",
    "ProviderConfig",
    "ProviderIdentity",
    "PullProgress",
    "RawTranscript",
    "TranscriptSegment",
    "TranscriptSource",
    "VideoIdentity",
    "VideoMetadata",
]
