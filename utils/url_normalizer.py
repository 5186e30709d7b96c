"""
URL normalization for YouTube links
Canonical URLs are the identity used for deduplication and as downloader input
"""
import re
from urllib.parse import unquote

VIDEO_ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{11}$')
SUPPORTED_URL_PATTERN = re.compile(
    r'^https?://(www\.|m\.|music\.)?(youtube\.com/(watch\?v=|playlist\?list=|shorts/)|youtu\.be/)([a-zA-Z0-9_-]+)'
)

_VIDEO_ID_RE = re.compile(r'(?:[?&]v=|youtu\.be/|/shorts/)([a-zA-Z0-9_-]{11})')
_LIST_ID_RE = re.compile(r'[?&]list=([a-zA-Z0-9_-]+)')

# Characters that break argument passing or chat markdown
_STRIP_CHARS = '[]<> \t\r\n'

WATCH_URL = 'https://www.youtube.com/watch?v={video_id}'
WATCH_LIST_URL = 'https://www.youtube.com/watch?v={video_id}&list={list_id}'
PLAYLIST_URL = 'https://www.youtube.com/playlist?list={list_id}'


def _clean(raw: str) -> str:
    try:
        decoded = unquote(raw)
    except (TypeError, ValueError):
        decoded = raw
    return ''.join(ch for ch in decoded if ch not in _STRIP_CHARS)


def normalize(raw: str) -> str:
    """
    Canonicalize a YouTube link.

    Returns the watch form for a single video, the watch form with a ``list``
    parameter when both ids are present, the playlist form for a playlist-only
    link, and a bare 11 character id is expanded to the watch form.  Anything
    unrecognised is returned unchanged; callers validate with ``is_supported``.
    """
    if not raw:
        return raw

    cleaned = _clean(raw)

    if VIDEO_ID_PATTERN.match(cleaned):
        return WATCH_URL.format(video_id=cleaned)

    if 'youtube.com' not in cleaned and 'youtu.be' not in cleaned:
        return raw

    video_match = _VIDEO_ID_RE.search(cleaned)
    list_match = _LIST_ID_RE.search(cleaned)

    if video_match and list_match:
        return WATCH_LIST_URL.format(video_id=video_match.group(1), list_id=list_match.group(1))
    if list_match:
        return PLAYLIST_URL.format(list_id=list_match.group(1))
    if video_match:
        return WATCH_URL.format(video_id=video_match.group(1))
    return raw


def is_supported(url: str) -> bool:
    """Syntactic check only; the remote resource may still not exist"""
    return bool(url) and SUPPORTED_URL_PATTERN.match(url) is not None


def is_playlist(url: str) -> bool:
    """True for links that carry a playlist id"""
    return bool(url) and _LIST_ID_RE.search(url) is not None


def strip_playlist(url: str) -> str:
    """Reduce a watch+list link to its single-video form"""
    video_match = _VIDEO_ID_RE.search(url or '')
    if video_match:
        return WATCH_URL.format(video_id=video_match.group(1))
    return url


def looks_like_url(text: str) -> bool:
    """Whether user input should be treated as a link rather than search text"""
    text = (text or '').strip()
    return text.startswith(('http://', 'https://', 'www.')) or VIDEO_ID_PATTERN.match(text) is not None
