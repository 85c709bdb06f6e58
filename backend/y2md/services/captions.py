"""
Caption extraction via youtube-transcript-api.

Track preference for a requested language:
1. Manually created track in that language
2. Auto-generated track in that language
3. Any other track (manual first), unless strict language is requested

Every failure is reported as CaptionsUnavailable so the source selector
can fall back to speech recognition.
"""

import asyncio
import logging

from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    YouTubeTranscriptApi,
)

from y2md.models.schemas import RawTranscript, TranscriptSegment, TranscriptSource
from y2md.services.errors import CaptionsUnavailable

logger = logging.getLogger(__name__)


class CaptionFetcher:
    """
    Fetches a video's caption track as a RawTranscript.

    Example:
        fetcher = CaptionFetcher()
        transcript = await fetcher.fetch("dQw4w9WgXcQ", "en")
    """

    def __init__(self, api: YouTubeTranscriptApi | None = None):
        """
        Initialize caption fetcher.

        Args:
            api: Client instance (injectable for tests, proxies, cookies)
        """
        self.api = api or YouTubeTranscriptApi()

    async def fetch(
        self,
        video_id: str,
        language: str,
        strict: bool = False,
    ) -> RawTranscript:
        """
        Fetch captions, preferring the requested language.

        Args:
            video_id: YouTube video id
            language: Requested language code ("en", "de", ...)
            strict: Reject tracks in other languages

        Returns:
            RawTranscript with timestamped segments, source=CAPTIONS

        Raises:
            CaptionsUnavailable: No usable track, network or extraction failure
        """
        return await asyncio.to_thread(self._fetch_sync, video_id, language, strict)

    def _fetch_sync(self, video_id: str, language: str, strict: bool) -> RawTranscript:
        try:
            transcript_list = self.api.list(video_id)
            transcript = self._select_track(transcript_list, video_id, language, strict)
            fetched = transcript.fetch()
        except CaptionsUnavailable:
            raise
        except CouldNotRetrieveTranscript as e:
            raise CaptionsUnavailable(video_id, type(e).__name__) from e
        except OSError as e:
            raise CaptionsUnavailable(video_id, f"network error: {e}") from e
        except Exception as e:  # noqa: BLE001 - any extraction failure means "no captions"
            raise CaptionsUnavailable(video_id, f"extraction error: {e}") from e

        segments = [
            TranscriptSegment(
                start=snippet.start,
                end=snippet.start + snippet.duration,
                text=" ".join(snippet.text.split()),
            )
            for snippet in fetched.snippets
            if snippet.text and snippet.text.strip()
        ]

        logger.info(
            f"Fetched {'generated' if transcript.is_generated else 'manual'} captions "
            f"for {video_id}: language={transcript.language_code}, {len(segments)} segments"
        )

        return RawTranscript(
            segments=segments,
            language=transcript.language_code,
            source=TranscriptSource.CAPTIONS,
        )

    def _select_track(self, transcript_list, video_id: str, language: str, strict: bool):
        try:
            return transcript_list.find_transcript([language])
        except NoTranscriptFound:
            if strict:
                raise CaptionsUnavailable(
                    video_id, f"no captions in requested language '{language}'"
                )

        available = sorted(transcript_list, key=lambda t: t.is_generated)
        if not available:
            raise CaptionsUnavailable(video_id, "video has no caption tracks")

        substitute = available[0]
        logger.warning(
            f"No '{language}' captions for {video_id}, "
            f"using '{substitute.language_code}' instead"
        )
        return substitute
