"""
Retry and format-selection policy for downloader failures
Classifies diagnostic text and chooses the next format strategy
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from config.settings import MAX_RETRY_ATTEMPTS, RETRY_BACKOFF_STEP

logger = logging.getLogger('music.policy')


class FormatStrategy(Enum):
    """Closed set of downloader format directives"""
    DEFAULT = 'default'
    WORST = 'worst'
    AUDIO_CODEC = 'audio_codec'
    LOW_RES = 'low_res'
    HLS = 'hls'
    ALT_CLIENT = 'alt_client'

    def args(self) -> List[str]:
        """Downloader argument list for this strategy"""
        return list(_STRATEGY_ARGS[self])


_STRATEGY_ARGS = {
    FormatStrategy.DEFAULT: ('-f', 'bestaudio/best'),
    FormatStrategy.WORST: ('-f', 'worst'),
    FormatStrategy.AUDIO_CODEC: ('-f', 'bestaudio[acodec=opus]/bestaudio[ext=m4a]/bestaudio'),
    FormatStrategy.LOW_RES: ('-f', 'best[height<=360]/worst'),
    FormatStrategy.HLS: ('-f', 'bestaudio/best', '--downloader', 'm3u8:native', '--hls-prefer-native'),
    FormatStrategy.ALT_CLIENT: ('-f', 'bestaudio/best', '--extractor-args', 'youtube:player_client=android'),
}

# Order in which generic retries walk through alternate formats
FALLBACK_CYCLE = (FormatStrategy.WORST, FormatStrategy.AUDIO_CODEC, FormatStrategy.LOW_RES)

FORMAT_UNAVAILABLE_MARKERS = ('requested format not available', 'requested format is not available')
HLS_MARKERS = ('m3u8', 'hls', 'fragment', 'manifest')
# Signs that a segmented stream is broken rather than merely unsupported
HLS_BREAKAGE_MARKERS = ('http error 404', 'http error 410', 'fragment not found', 'giving up after')
FORBIDDEN_MARKERS = ('http error 403', '403: forbidden', 'forbidden')

FATAL_REASONS = (
    (('video unavailable', 'has been removed', 'no longer available'),
     '🚫 This video is unavailable or has been removed.'),
    (('private video',),
     '🔒 This video is private.'),
    (('sign in to confirm your age', 'age-restricted', 'age restricted'),
     '🔞 This video is age-restricted and cannot be played.'),
    (('not available in your country', 'blocked in your country', 'geo restrict'),
     '🌍 This video is blocked in this region.'),
    (('too many requests', 'http error 429', 'rate limit', 'rate-limited'),
     '⏳ YouTube is rate-limiting requests, try again later.'),
)

TRANSIENT_MARKERS = (
    'unable to extract', 'connection reset', 'timed out', 'network',
    'unable to download webpage', 'temporary failure', 'connection refused',
    'urlopen error', 'incomplete read',
)

GENERIC_FAILURE_MESSAGE = '❌ Could not download this song.'
STREAMING_FORMAT_MESSAGE = '❌ This video uses a problematic streaming format and was skipped.'


@dataclass
class Classification:
    """Outcome of classifying downloader diagnostics"""
    rule: str
    retryable: bool
    is_streaming_format_issue: bool = False
    is_transient_network_issue: bool = False
    is_fatal: bool = False
    user_message: str = GENERIC_FAILURE_MESSAGE
    suggested_strategy: Optional[FormatStrategy] = None


def _contains_any(text: str, markers) -> bool:
    return any(marker in text for marker in markers)


def classify(stderr_text: Optional[str]) -> Classification:
    """Classify diagnostics; the first matching rule wins"""
    text = (stderr_text or '').lower()

    if _contains_any(text, FORMAT_UNAVAILABLE_MARKERS):
        return Classification(rule='format_unavailable', retryable=True,
                              user_message='🔄 Requested format not available, trying another one.')

    fatal_message = None
    for markers, message in FATAL_REASONS:
        if _contains_any(text, markers):
            fatal_message = message
            break

    has_hls = _contains_any(text, HLS_MARKERS)
    if has_hls and (fatal_message or _contains_any(text, HLS_BREAKAGE_MARKERS)):
        return Classification(rule='broken_stream_format', retryable=False,
                              is_streaming_format_issue=True, is_fatal=True,
                              user_message=STREAMING_FORMAT_MESSAGE)

    if has_hls:
        return Classification(rule='stream_format', retryable=True,
                              is_streaming_format_issue=True,
                              user_message='🔄 Segmented stream detected, retrying with a stream-friendly format.',
                              suggested_strategy=FormatStrategy.HLS)

    if _contains_any(text, FORBIDDEN_MARKERS):
        return Classification(rule='forbidden', retryable=True,
                              is_transient_network_issue=True,
                              user_message='🔄 Access denied (403), retrying with an alternate client.',
                              suggested_strategy=FormatStrategy.ALT_CLIENT)

    if fatal_message:
        return Classification(rule='fatal', retryable=False, is_fatal=True, user_message=fatal_message)

    if _contains_any(text, TRANSIENT_MARKERS):
        return Classification(rule='transient', retryable=True, is_transient_network_issue=True,
                              user_message='🔄 Connection problem, retrying.')

    return Classification(rule='unmatched', retryable=False)


def timeout_classification(stalled: bool = False) -> Classification:
    """Timeouts and stalls retry like network failures but stay under the attempt cap"""
    if stalled:
        return Classification(rule='stalled', retryable=True, is_transient_network_issue=True,
                              user_message='⏱️ Download stalled, retrying.')
    return Classification(rule='timed_out', retryable=True, is_transient_network_issue=True,
                          user_message='⏱️ Download timed out, retrying.')


def next_format_directive(entry) -> FormatStrategy:
    """Strategy for the entry's next attempt"""
    if entry.format_override is not None:
        return entry.format_override
    if entry.retry_count == 0 and not entry.force_alternate_format:
        return FormatStrategy.DEFAULT
    index = max(entry.retry_count - 1, 0) % len(FALLBACK_CYCLE)
    return FALLBACK_CYCLE[index]


def backoff_delay(attempt_number: int, step: int = RETRY_BACKOFF_STEP) -> int:
    """0s, 5s, 10s for attempts 1-3"""
    return max(attempt_number - 1, 0) * step


def exhausted_message(max_attempts: int = MAX_RETRY_ATTEMPTS) -> str:
    return f'❌ This video is not compatible after {max_attempts} attempts.'


def apply_retry(entry, classification: Classification, max_attempts: int = MAX_RETRY_ATTEMPTS) -> bool:
    """
    Record a failed attempt on the entry.

    Returns True when the entry should be attempted again, False when it
    must be dropped (not retryable, or the attempt cap has been reached).
    The entry's ``retry_count`` counts failed attempts so far.
    """
    if not classification.retryable:
        return False

    entry.retry_count += 1
    if entry.retry_count >= max_attempts:
        logger.info(f"🛑 Giving up on {entry.source_url} after {entry.retry_count} attempts")
        return False

    if classification.suggested_strategy is not None:
        entry.format_override = classification.suggested_strategy
    else:
        # Alternate formats take over from here
        entry.format_override = None
        entry.force_alternate_format = True
    logger.info(f"🔁 Retry {entry.retry_count}/{max_attempts - 1} for {entry.source_url} ({classification.rule})")
    return True
