from utils.retry_policy import (
    FormatStrategy, apply_retry, backoff_delay, classify, exhausted_message, next_format_directive,
    timeout_classification,
)
from utils.song import QueueEntry


def _entry() -> QueueEntry:
    return QueueEntry(source_url="https://www.youtube.com/watch?v=abcdefghijk", title="Song")


def test_format_unavailable_wins_over_everything() -> None:
    result = classify("ERROR: Requested format is not available. HTTP Error 403: Forbidden m3u8")
    assert result.rule == "format_unavailable"
    assert result.retryable


def test_broken_segmented_stream_is_fatal() -> None:
    result = classify("ERROR: fragment not found; giving up after 10 retries (m3u8 manifest)")
    assert result.rule == "broken_stream_format"
    assert not result.retryable
    assert result.is_streaming_format_issue
    assert "problematic streaming format" in result.user_message


def test_segmented_stream_without_breakage_retries_with_hls() -> None:
    result = classify("WARNING: downloading m3u8 information")
    assert result.rule == "stream_format"
    assert result.retryable
    assert result.suggested_strategy is FormatStrategy.HLS


def test_forbidden_retries_with_alternate_client() -> None:
    result = classify("ERROR: unable to download video data: HTTP Error 403: Forbidden")
    assert result.rule == "forbidden"
    assert result.suggested_strategy is FormatStrategy.ALT_CLIENT


def test_fatal_reasons() -> None:
    assert classify("ERROR: [youtube] abc: Video unavailable").is_fatal
    assert classify("ERROR: Private video. Sign in if you've been granted access").user_message.startswith("🔒")
    rate_limited = classify("ERROR: HTTP Error 429: Too Many Requests")
    assert rate_limited.rule == "fatal"
    assert not rate_limited.retryable


def test_transient_and_unmatched() -> None:
    assert classify("ERROR: Unable to download webpage: connection reset by peer").rule == "transient"
    unmatched = classify("something odd happened")
    assert unmatched.rule == "unmatched"
    assert not unmatched.retryable
    assert classify(None).rule == "unmatched"


def test_timeouts_are_retryable() -> None:
    assert timeout_classification().retryable
    assert timeout_classification(stalled=True).rule == "stalled"


def test_format_directives_walk_the_fallback_cycle() -> None:
    entry = _entry()
    assert next_format_directive(entry) is FormatStrategy.DEFAULT

    transient = classify("connection reset")
    assert apply_retry(entry, transient)
    assert next_format_directive(entry) is FormatStrategy.WORST
    assert apply_retry(entry, transient)
    assert next_format_directive(entry) is FormatStrategy.AUDIO_CODEC


def test_suggested_strategy_becomes_the_override() -> None:
    entry = _entry()
    assert apply_retry(entry, classify("HTTP Error 403: Forbidden"))
    assert next_format_directive(entry) is FormatStrategy.ALT_CLIENT
    assert "player_client=android" in " ".join(FormatStrategy.ALT_CLIENT.args())


def test_attempt_cap() -> None:
    entry = _entry()
    transient = classify("timed out")
    assert apply_retry(entry, transient)
    assert apply_retry(entry, transient)
    assert not apply_retry(entry, transient)
    assert entry.retry_count == 3
    assert exhausted_message(3) == "❌ This video is not compatible after 3 attempts."


def test_non_retryable_does_not_count() -> None:
    entry = _entry()
    assert not apply_retry(entry, classify("Video unavailable"))
    assert entry.retry_count == 0


def test_backoff_delay() -> None:
    assert [backoff_delay(n) for n in (1, 2, 3)] == [0, 5, 10]
