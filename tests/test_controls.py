from types import SimpleNamespace

from utils.controls import ProgressBar, page_count, queue_page_embed
from utils.song import QueueEntry


def _voice_state(count: int, current_index=0):
    songs = [
        QueueEntry(source_url=f"https://www.youtube.com/watch?v=video{n:06d}", title=f"Song {n}",
                   duration_seconds=60, use_streaming=n % 2 == 0)
        for n in range(1, count + 1)
    ]
    current = songs[current_index] if songs and current_index is not None else None
    return SimpleNamespace(songs=songs, current=current, seek_position=30, repeat=True, loop=False, volume=0.5)


def test_page_count() -> None:
    assert page_count(0) == 1
    assert page_count(10) == 1
    assert page_count(11) == 2


def test_progress_bars() -> None:
    assert ProgressBar.create_bar(0.5, length=4) == "`██░░`"
    assert ProgressBar.create_bar(3, length=2) == "`██`"
    assert "Unknown" in ProgressBar.create_time_bar(10, None)


def test_empty_queue_page() -> None:
    embed = queue_page_embed(_voice_state(0, current_index=None))
    assert embed.description.startswith("📭 **Queue is empty**")


def test_queue_page_is_clamped_and_marked() -> None:
    state = _voice_state(25)

    embed = queue_page_embed(state, page=9)

    lines = embed.description.split("\n")
    assert len(lines) == 5
    assert lines[0].startswith("`21.`")
    assert "📡" in lines[1]
    assert "💾" in lines[0]
    assert embed.footer.text.startswith("Page 3/3")


def test_first_page_marks_the_playing_entry() -> None:
    embed = queue_page_embed(_voice_state(3), page=1)
    first = embed.description.split("\n")[0]
    assert first.endswith("▶️")
    assert embed.fields[0].name == "▶️ Currently Playing"
