from utils.url_normalizer import is_playlist, is_supported, looks_like_url, normalize, strip_playlist


VIDEO_ID = "dQw4w9WgXcQ"
WATCH = f"https://www.youtube.com/watch?v={VIDEO_ID}"


def test_short_link_becomes_watch_url() -> None:
    assert normalize(f"https://youtu.be/{VIDEO_ID}") == WATCH


def test_bare_video_id_becomes_watch_url() -> None:
    assert normalize(VIDEO_ID) == WATCH


def test_video_and_playlist_ids_are_both_kept() -> None:
    url = f"https://www.youtube.com/watch?v={VIDEO_ID}&list=PLabc123&index=4"
    assert normalize(url) == f"{WATCH}&list=PLabc123"


def test_playlist_only_link_becomes_playlist_url() -> None:
    url = "https://music.youtube.com/playlist?list=PLabc123&feature=share"
    assert normalize(url) == "https://www.youtube.com/playlist?list=PLabc123"


def test_extra_query_parameters_are_dropped() -> None:
    assert normalize(f"https://m.youtube.com/watch?v={VIDEO_ID}&t=42s&feature=youtu.be") == WATCH


def test_percent_encoding_and_wrapping_characters_are_removed() -> None:
    assert normalize(f"<https://www.youtube.com/watch%3Fv%3D{VIDEO_ID}>") == WATCH
    assert normalize(f"[ {WATCH} ]") == WATCH


def test_unrecognised_input_is_returned_unchanged() -> None:
    raw = "https://example.com/watch?v=nothing"
    assert normalize(raw) == raw
    assert not is_supported(raw)


def test_normalize_is_idempotent() -> None:
    once = normalize(f"https://youtu.be/{VIDEO_ID}?list=PLxyz")
    assert normalize(once) == once


def test_is_supported_is_syntactic() -> None:
    assert is_supported(WATCH)
    assert is_supported("https://www.youtube.com/playlist?list=PLabc123")
    assert is_supported(f"https://youtu.be/{VIDEO_ID}")
    assert not is_supported("")
    assert not is_supported("never gonna give you up")


def test_playlist_helpers() -> None:
    mixed = f"{WATCH}&list=PLabc123"
    assert is_playlist(mixed)
    assert not is_playlist(WATCH)
    assert strip_playlist(mixed) == WATCH
    playlist = "https://www.youtube.com/playlist?list=PLabc123"
    assert strip_playlist(playlist) == playlist


def test_looks_like_url() -> None:
    assert looks_like_url(WATCH)
    assert looks_like_url("www.youtube.com/watch?v=abc")
    assert looks_like_url(VIDEO_ID)
    assert not looks_like_url("daft punk around the world")
