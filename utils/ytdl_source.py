"""
YTDL Source for the YouTube queue music bot
Handles yt-dlp lookups (metadata, stream URLs, search, playlists) and audio source creation
"""
import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import discord
import yt_dlp

from config.settings import (
    YDL_OPTIONS, YDL_PLAYLIST_OPTIONS, FFMPEG_EXECUTABLE, FFMPEG_STREAM_OPTIONS, FFMPEG_LOCAL_OPTIONS,
    STREAM_THRESHOLD, MAX_DURATION, METADATA_TIMEOUT, STREAM_URL_TIMEOUT, SEARCH_TIMEOUT, PLAYLIST_TIMEOUT
)
from utils.cache_manager import cache_manager
from utils.exceptions import YTDLError
from utils.helpers import normalize_title, PLACEHOLDER_TITLE
from utils.url_normalizer import WATCH_URL, normalize

logger = logging.getLogger('music.ytdl')

UNAVAILABLE_PLAYLIST_TITLES = ('[Private video]', '[Deleted video]')


@dataclass
class MediaInfo:
    """Metadata needed to queue and route a song"""
    title: str
    duration_seconds: int
    use_streaming: bool
    is_excessively_long: bool = False
    from_cache: bool = False

    @classmethod
    def from_duration(cls, title: str, duration_seconds: Optional[int], from_cache: bool = False) -> 'MediaInfo':
        duration = int(duration_seconds or 0)
        return cls(
            title=title,
            duration_seconds=duration,
            use_streaming=duration > STREAM_THRESHOLD,
            is_excessively_long=duration > MAX_DURATION,
            from_cache=from_cache,
        )

    @classmethod
    def fallback(cls) -> 'MediaInfo':
        return cls(title=PLACEHOLDER_TITLE, duration_seconds=0, use_streaming=False)


class YTDLSource:
    """yt-dlp lookups, each bounded by a timeout and run off the event loop"""
    YTDL = yt_dlp.YoutubeDL(YDL_OPTIONS)
    YTDL_PLAYLIST = yt_dlp.YoutubeDL(YDL_PLAYLIST_OPTIONS)

    @classmethod
    async def _extract_info(cls, url: str, *, timeout: float, playlist: bool = False,
                            loop: asyncio.AbstractEventLoop = None):
        """Run extract_info(download=False) in the default executor"""
        loop = loop or asyncio.get_running_loop()
        ytdl = cls.YTDL_PLAYLIST if playlist else cls.YTDL
        partial = functools.partial(ytdl.extract_info, url, download=False)
        return await asyncio.wait_for(loop.run_in_executor(None, partial), timeout=timeout)

    @classmethod
    async def get_info(cls, url: str) -> MediaInfo:
        """
        Title and duration for a canonical URL.

        Served from the metadata cache when fresh.  A timeout or extractor
        error yields the placeholder record instead of raising, so a failed
        lookup never blocks playback.
        """
        cached = cache_manager.get_metadata(url)
        if cached:
            logger.debug(f"⚡ Using cached metadata for: {url}")
            return MediaInfo.from_duration(cached['title'], cached['duration_seconds'], from_cache=True)

        try:
            data = await cls._extract_info(url, timeout=METADATA_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Metadata lookup timed out for: {url}")
            return MediaInfo.fallback()
        except yt_dlp.utils.DownloadError as e:
            logger.warning(f"⚠️ Metadata lookup failed for {url}: {e}")
            return MediaInfo.fallback()

        if not data:
            return MediaInfo.fallback()
        if 'entries' in data:
            data = next((entry for entry in data['entries'] if entry), None)
            if data is None:
                return MediaInfo.fallback()

        info = MediaInfo.from_duration(normalize_title(data.get('title')), data.get('duration'))
        cache_manager.cache_metadata(url, info.title, info.duration_seconds, info.use_streaming)
        logger.info(f"💾 Cached metadata for: {info.title}")
        return info

    @classmethod
    async def get_stream_url(cls, url: str) -> str:
        """Direct media URL for the streaming path"""
        try:
            data = await cls._extract_info(url, timeout=STREAM_URL_TIMEOUT)
        except asyncio.TimeoutError:
            raise YTDLError(f'Timed out fetching a stream URL for `{url}`')
        except yt_dlp.utils.DownloadError as e:
            raise YTDLError(f'Couldn\'t fetch a stream URL for `{url}`: {e}')

        if data and 'entries' in data:
            data = next((entry for entry in data['entries'] if entry), None)
        stream_url = (data or {}).get('url')
        if not stream_url or not stream_url.startswith('http'):
            raise YTDLError(f'No playable stream found for `{url}`')
        return stream_url

    @classmethod
    async def search(cls, query: str) -> Tuple[str, str]:
        """First search hit as (canonical URL, title)"""
        try:
            data = await cls._extract_info(f'ytsearch1:{query}', timeout=SEARCH_TIMEOUT)
        except asyncio.TimeoutError:
            raise YTDLError(f'Search timed out for `{query}`')
        except yt_dlp.utils.DownloadError as e:
            raise YTDLError(f'Search failed for `{query}`: {e}')

        entries = [entry for entry in (data or {}).get('entries') or [] if entry]
        if not entries:
            raise YTDLError('Couldn\'t find anything that matches `{}`'.format(query))

        first = entries[0]
        url = first.get('webpage_url') or (WATCH_URL.format(video_id=first['id']) if first.get('id') else None)
        if not url:
            raise YTDLError('Couldn\'t find anything that matches `{}`'.format(query))
        return normalize(url), normalize_title(first.get('title'))

    @classmethod
    async def extract_playlist(cls, url: str) -> List[Tuple[str, str]]:
        """Flat playlist listing as (canonical URL, title); private and deleted videos are skipped"""
        try:
            data = await cls._extract_info(url, timeout=PLAYLIST_TIMEOUT, playlist=True)
        except asyncio.TimeoutError:
            raise YTDLError(f'Timed out reading playlist `{url}`')
        except yt_dlp.utils.DownloadError as e:
            raise YTDLError(f'Couldn\'t extract playlist information from `{url}`: {e}')

        if not data or 'entries' not in data:
            raise YTDLError('Couldn\'t extract playlist information from `{}`'.format(url))

        results = []
        for entry in data['entries']:
            if not entry:
                continue
            title = entry.get('title') or ''
            if title in UNAVAILABLE_PLAYLIST_TITLES:
                continue
            video_id = entry.get('id')
            entry_url = WATCH_URL.format(video_id=video_id) if video_id else entry.get('url')
            if not entry_url:
                continue
            results.append((normalize(entry_url), normalize_title(title)))

        logger.info(f"🎵 Playlist {url}: {len(results)} playable entries")
        return results


def build_audio_source(location: str, volume: float, *, remote: bool, filters: Optional[str] = None,
                       start_offset: Optional[int] = None) -> discord.PCMVolumeTransformer:
    """FFmpeg decoder for a stream URL or a local artifact, wrapped for live volume changes"""
    base = FFMPEG_STREAM_OPTIONS if remote else FFMPEG_LOCAL_OPTIONS
    before_options = base['before_options']
    if start_offset:
        before_options = f'{before_options} -ss {int(start_offset)}'.strip()

    options = base['options']
    if filters:
        options = f'{options} -af "{filters}"'

    source = discord.FFmpegPCMAudio(
        location,
        executable=FFMPEG_EXECUTABLE,
        before_options=before_options or None,
        options=options,
    )
    return discord.PCMVolumeTransformer(source, volume)
