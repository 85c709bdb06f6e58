"""
Video URL parser.

Accepted inputs:
    https://www.youtube.com/watch?v=dQw4w9WgXcQ
    https://youtu.be/dQw4w9WgXcQ?t=42
    https://www.youtube.com/shorts/dQw4w9WgXcQ
    https://www.youtube.com/embed/dQw4w9WgXcQ
    https://www.youtube.com/live/dQw4w9WgXcQ
    dQw4w9WgXcQ (bare 11-character id)
"""

import re
from urllib.parse import parse_qs, urlparse

from y2md.models.schemas import VideoIdentity
from y2md.services.errors import VideoUrlError

# YouTube video ids: 11 chars of [A-Za-z0-9_-]
VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")

YOUTUBE_HOSTS = {
    "youtube.com",
    "www.youtube.com",
    "m.youtube.com",
    "music.youtube.com",
    "youtube-nocookie.com",
    "www.youtube-nocookie.com",
}
SHORT_HOSTS = {"youtu.be", "www.youtu.be"}
PATH_PREFIXES = ("shorts", "embed", "live", "v")


def parse_video_url(url: str) -> VideoIdentity:
    """
    Extract the video id from a URL or bare id.

    Args:
        url: User input

    Returns:
        VideoIdentity with the validated id

    Raises:
        VideoUrlError: If no valid id can be found
    """
    candidate = _extract_candidate(url.strip())
    if candidate is None or not VIDEO_ID_PATTERN.match(candidate):
        raise VideoUrlError(url)
    return VideoIdentity(video_id=candidate)


def _extract_candidate(text: str) -> str | None:
    if VIDEO_ID_PATTERN.match(text):
        return text

    if "://" not in text:
        text = f"https://{text}"

    parsed = urlparse(text)
    host = (parsed.hostname or "").lower()
    segments = [s for s in parsed.path.split("/") if s]

    if host in SHORT_HOSTS:
        return segments[0] if segments else None

    if host not in YOUTUBE_HOSTS:
        return None

    if parsed.path.rstrip("/") == "/watch":
        values = parse_qs(parsed.query).get("v")
        return values[0] if values else None

    if len(segments) >= 2 and segments[0] in PATH_PREFIXES:
        return segments[1]

    return None


def slugify(text: str, max_length: int = 60) -> str:
    """
    Convert text to slug format.

    - Replace spaces with dashes
    - Remove special characters (keep letters, digits, dashes)
    - Convert to lowercase
    - Non-latin letters are preserved

    Args:
        text: Input text to slugify
        max_length: Truncate to this many characters

    Returns:
        Slugified text ("untitled" if nothing survives)
    """
    text = text.lower()
    text = re.sub(r"\s+", "-", text)
    text = re.sub(r"[^\w\-]", "", text, flags=re.UNICODE)
    text = re.sub(r"-+", "-", text)
    text = text[:max_length].strip("-_")
    return text or "untitled"
