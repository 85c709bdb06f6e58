"""
Audio download and video metadata via the yt-dlp Python API.

Downloaded audio is cached under {cache_dir}/audio as {video_id}.{ext}.
Downloads land in a private ".tmp-*" directory inside the cache first and
are moved into place with os.replace, so a cache entry is either complete
or absent. Temporary directories left by interrupted runs are ignored by
lookups and removed by AudioCache.purge().
"""

import asyncio
import logging
import os
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path

import yt_dlp
from yt_dlp.utils import DownloadError

from y2md.config import Settings
from y2md.models.schemas import YOUTUBE_WATCH_URL, VideoMetadata
from y2md.services.errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".tmp-"
PARTIAL_SUFFIXES = {".part", ".ytdl", ".tmp"}

DOWNLOAD_REMEDIATION = (
    "Update yt-dlp (`pip install -U yt-dlp`), check your connection, "
    "or pass --cookies for age/region restricted videos"
)

CACHE_REMEDIATION = "Check free disk space, or point Y2MD_CACHE_DIR at a writable directory"


class AudioCache:
    """
    Directory of downloaded audio keyed by video id.

    Example:
        cache = AudioCache(settings.audio_cache_dir)
        path = cache.lookup("dQw4w9WgXcQ")  # None on miss
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def lookup(self, video_id: str) -> Path | None:
        """Return the cached audio file for a video, if complete."""
        if not self.directory.is_dir():
            return None
        for path in sorted(self.directory.glob(f"{video_id}.*")):
            if path.suffix in PARTIAL_SUFFIXES or not path.is_file():
                continue
            if path.stat().st_size > 0:
                return path
        return None

    def make_temp_dir(self) -> Path:
        """Private staging directory inside the cache (same filesystem)."""
        self.directory.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=TEMP_PREFIX, dir=self.directory))

    def commit(self, video_id: str, staged: Path) -> Path:
        """Atomically move a staged file into the cache."""
        target = self.directory / f"{video_id}{staged.suffix}"
        os.replace(staged, target)
        return target

    def invalidate(self, video_id: str) -> int:
        """Delete cached audio for one video. Returns files removed."""
        removed = 0
        if not self.directory.is_dir():
            return removed
        for path in self.directory.glob(f"{video_id}.*"):
            if path.is_file():
                path.unlink()
                removed += 1
        if removed:
            logger.info(f"Invalidated cached audio for {video_id}")
        return removed

    def purge(self) -> int:
        """Delete all cached audio and leftover staging directories."""
        removed = 0
        if not self.directory.is_dir():
            return removed
        for path in self.directory.iterdir():
            if path.is_dir() and path.name.startswith(TEMP_PREFIX):
                shutil.rmtree(path, ignore_errors=True)
                removed += 1
            elif path.is_file():
                path.unlink()
                removed += 1
        logger.info(f"Purged audio cache: {removed} entries")
        return removed


class AudioDownloader:
    """
    Downloads best-quality audio for a video, reusing the cache.

    Example:
        downloader = AudioDownloader(settings)
        audio_path = await downloader.download("dQw4w9WgXcQ")
    """

    def __init__(
        self,
        settings: Settings,
        cache: AudioCache | None = None,
        ydl_factory: Callable[[dict], yt_dlp.YoutubeDL] = yt_dlp.YoutubeDL,
    ):
        """
        Initialize downloader.

        Args:
            settings: Application settings (cache dir, format)
            cache: Audio cache (default: settings.audio_cache_dir)
            ydl_factory: YoutubeDL constructor (injectable for tests)
        """
        self.settings = settings
        self.cache = cache or AudioCache(settings.audio_cache_dir)
        self.ydl_factory = ydl_factory

    async def download(self, video_id: str, cookies_file: Path | None = None) -> Path:
        """
        Return cached audio for a video, downloading it on a miss.

        Args:
            video_id: YouTube video id
            cookies_file: Netscape cookies file for restricted videos

        Returns:
            Path to the cached audio file

        Raises:
            CollaboratorUnavailable: If yt-dlp fails
        """
        cached = self.cache.lookup(video_id)
        if cached is not None:
            logger.info(f"Using cached audio: {cached.name}")
            return cached

        return await asyncio.to_thread(self._download_sync, video_id, cookies_file)

    def _download_sync(self, video_id: str, cookies_file: Path | None) -> Path:
        try:
            staging = self.cache.make_temp_dir()
        except OSError as e:
            raise CollaboratorUnavailable(
                "audio download",
                f"Cannot write to the audio cache {self.cache.directory}: {e.strerror or e}",
                remediation=CACHE_REMEDIATION,
            ) from e

        ydl_opts = {
            "format": self.settings.ytdlp_format,
            "outtmpl": str(staging / f"{video_id}.%(ext)s"),
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
        }
        if cookies_file is not None:
            ydl_opts["cookiefile"] = str(cookies_file)

        logger.info(f"Downloading audio for {video_id}")

        try:
            with self.ydl_factory(ydl_opts) as ydl:
                ydl.download([YOUTUBE_WATCH_URL.format(video_id=video_id)])

            staged = _find_downloaded_file(staging, video_id)
            if staged is None:
                raise CollaboratorUnavailable(
                    "audio download",
                    f"yt-dlp finished but produced no audio file for {video_id}",
                    remediation=DOWNLOAD_REMEDIATION,
                )
            audio_path = self.cache.commit(video_id, staged)
            size_mb = audio_path.stat().st_size / 1024 / 1024

        except DownloadError as e:
            raise CollaboratorUnavailable(
                "audio download",
                f"Audio download failed for {video_id}: {e}",
                remediation=DOWNLOAD_REMEDIATION,
            ) from e

        except OSError as e:
            raise CollaboratorUnavailable(
                "audio download",
                f"Could not store audio for {video_id} in {self.cache.directory}: "
                f"{e.strerror or e}",
                remediation=CACHE_REMEDIATION,
            ) from e

        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info(f"Audio cached: {audio_path.name} ({size_mb:.1f} MB)")
        return audio_path


def _find_downloaded_file(directory: Path, video_id: str) -> Path | None:
    for path in sorted(directory.glob(f"{video_id}.*")):
        if path.suffix not in PARTIAL_SUFFIXES and path.is_file() and path.stat().st_size > 0:
            return path
    return None


async def fetch_video_metadata(
    video_id: str,
    cookies_file: Path | None = None,
    ydl_factory: Callable[[dict], yt_dlp.YoutubeDL] = yt_dlp.YoutubeDL,
) -> VideoMetadata:
    """
    Fetch title, channel and duration without downloading media.

    Raises:
        CollaboratorUnavailable: If yt-dlp can't extract the video info
    """

    def extract() -> dict:
        ydl_opts = {"quiet": True, "no_warnings": True, "skip_download": True}
        if cookies_file is not None:
            ydl_opts["cookiefile"] = str(cookies_file)
        with ydl_factory(ydl_opts) as ydl:
            return ydl.extract_info(
                YOUTUBE_WATCH_URL.format(video_id=video_id), download=False
            )

    try:
        info = await asyncio.to_thread(extract)
    except DownloadError as e:
        raise CollaboratorUnavailable(
            "metadata",
            f"Could not fetch video info for {video_id}: {e}",
            remediation=DOWNLOAD_REMEDIATION,
        ) from e

    return VideoMetadata(
        video_id=video_id,
        title=info.get("title") or video_id,
        channel=info.get("channel") or info.get("uploader"),
        duration_seconds=info.get("duration"),
    )
