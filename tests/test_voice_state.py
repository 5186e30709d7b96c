import asyncio
from pathlib import Path
from types import SimpleNamespace

import pytest

from config.settings import RECONNECT_DELAY
from utils.audio_filters import AudioFilterState
from utils.exceptions import DuplicateEntryError, SeekError, YTDLError
from utils.process_supervisor import OutcomeStatus, ProcessOutcome
from utils.song import QueueEntry
from utils.voice_state import PlayerState, VoiceState
from utils.ytdl_source import MediaInfo


GUILD_ID = 42


class FakeVoiceClient:
    def __init__(self, channel) -> None:
        self.channel = channel
        self.connected = True
        self.playing = False
        self.paused = False
        self.after = None
        self.played = []
        self.disconnects = 0

    def play(self, source, after=None):
        self.played.append(source)
        self.after = after
        self.playing = True
        self.paused = False

    def _end(self):
        self.playing = False
        self.paused = False
        after, self.after = self.after, None
        if after is not None:
            after(None)

    def finish(self):
        """The current track reached its natural end"""
        self._end()

    def stop(self):
        if self.playing or self.paused:
            self._end()

    def pause(self):
        self.playing = False
        self.paused = True

    def resume(self):
        self.playing = True
        self.paused = False

    def is_playing(self):
        return self.playing

    def is_paused(self):
        return self.paused

    def is_connected(self):
        return self.connected

    async def disconnect(self, force=False):
        self.connected = False
        self.disconnects += 1

    async def move_to(self, channel):
        self.channel = channel


class FakeVoiceChannel:
    def __init__(self) -> None:
        self.guild = SimpleNamespace(voice_client=None)
        self.clients = []

    async def connect(self):
        client = FakeVoiceClient(self)
        self.clients.append(client)
        return client


class FakeTextChannel:
    def __init__(self) -> None:
        self.messages = []
        self.embeds = []

    async def send(self, content=None, embed=None, view=None):
        if content is not None:
            self.messages.append(content)
        if embed is not None:
            self.embeds.append(embed.title)


class FakeSupervisor:
    """Scripted downloader: 'ok' writes a playable file, 'short' a truncated one, 'hang' waits until killed"""

    def __init__(self, script=None) -> None:
        self.script = list(script or [])
        self.calls = []
        self.killed = []
        self._release = None

    async def run_download(self, url, format_args, output_template, policy, extra_args=None, owner=None):
        self.calls.append({"url": url, "format_args": format_args, "output_template": output_template,
                           "extra_args": extra_args, "owner": owner})
        step = self.script.pop(0) if self.script else "ok"
        await asyncio.sleep(0)

        if step == "ok":
            Path(output_template.replace("%(ext)s", "mp3")).write_bytes(b"\0" * 20000)
            return ProcessOutcome(OutcomeStatus.SUCCESS, exit_code=0)
        if step == "short":
            Path(output_template.replace("%(ext)s", "mp3")).write_bytes(b"\0" * 100)
            Path(output_template.replace("%(ext)s", "webm")).write_bytes(b"leftover")
            return ProcessOutcome(OutcomeStatus.SUCCESS, exit_code=0)

        # Partial download left behind, as an interrupted downloader would
        Path(output_template.replace("%(ext)s", "webm.part")).write_bytes(b"partial")
        if step == "hang":
            self._release = asyncio.Event()
            await self._release.wait()
            return ProcessOutcome(OutcomeStatus.KILLED, exit_code=-9)
        return step

    def kill_all(self, owner=None):
        self.killed.append(owner)
        if self._release is not None and not self._release.is_set():
            self._release.set()
            return 1
        return 0


class FakeLookups:
    @staticmethod
    async def get_info(url):
        return MediaInfo.from_duration("Looked Up", 120)

    @staticmethod
    async def get_stream_url(url):
        return f"https://stream.invalid/{url[-11:]}"


class FakeSource:
    def __init__(self, location, volume, remote=False, filters=None) -> None:
        self.location = location
        self.volume = volume
        self.remote = remote
        self.filters = filters


class FakePersistence:
    def __init__(self) -> None:
        self.saved = []

    async def save_queue_backup(self, guild_id, record):
        self.saved.append(record)


def _entry(n: int, duration: int = 60) -> QueueEntry:
    return QueueEntry(source_url=f"https://www.youtube.com/watch?v=video{n:06d}", title=f"Song {n}",
                      duration_seconds=duration)


def _failure(stderr: str, status=OutcomeStatus.FAILURE) -> ProcessOutcome:
    return ProcessOutcome(status, exit_code=1, stderr=stderr)


def _make_state(tmp_path, supervisor=None, persistence=None, lookups=None):
    state = VoiceState(
        None, GUILD_ID,
        supervisor=supervisor or FakeSupervisor(),
        lookups=lookups or FakeLookups,
        audio_factory=FakeSource,
        persistence=persistence,
        filters=AudioFilterState(),
        temp_dir=str(tmp_path),
        max_attempts=3,
    )

    async def no_sleep(delay):
        return None

    state._sleep = no_sleep
    text, voice_channel = FakeTextChannel(), FakeVoiceChannel()
    state.bind_channel(text, voice_channel)
    return state, text, voice_channel


async def _settle(state):
    for _ in range(5):
        await asyncio.sleep(0)
    await state.wait_idle()
    for _ in range(5):
        await asyncio.sleep(0)
    await state.wait_idle()


def _titles(state):
    return [entry.title for entry in state.songs]


def test_three_songs_play_in_order_then_leave(tmp_path) -> None:
    supervisor = FakeSupervisor()

    async def scenario():
        state, text, voice_channel = _make_state(tmp_path, supervisor)
        advances = []
        original_advance = state.advance

        async def counting_advance():
            advances.append(1)
            return await original_advance()

        state.advance = counting_advance

        lengths = [len(state.songs)]
        for n in (1, 2, 3):
            state.enqueue(_entry(n))
            lengths.append(len(state.songs))
        await _settle(state)
        assert len(advances) == 1

        played = []
        for _ in range(3):
            played.append(state.current.title)
            assert state.is_playing
            voice_channel.clients[0].finish()
            await _settle(state)
        return state, text, voice_channel, lengths, played

    state, text, voice_channel, lengths, played = asyncio.run(scenario())

    assert lengths == [0, 1, 2, 3]
    assert played == ["Song 1", "Song 2", "Song 3"]
    assert len(supervisor.calls) == 3
    assert len(state.songs) == 0
    assert state.state is PlayerState.IDLE
    assert state.voice is None
    assert voice_channel.clients[0].disconnects == 1
    assert text.messages[-1] == "📭 Queue finished, leaving the voice channel."
    assert text.embeds.count("Now playing") == 3
    assert list(tmp_path.iterdir()) == []


def test_duplicate_of_current_song_is_rejected(tmp_path) -> None:
    async def scenario():
        state, _, _ = _make_state(tmp_path)
        state.enqueue(_entry(1))
        await _settle(state)
        before = _titles(state)
        with pytest.raises(DuplicateEntryError):
            state.enqueue(_entry(1))
        with pytest.raises(DuplicateEntryError):
            state.enqueue(_entry(1), play_next=True)
        after = _titles(state)
        await state.stop()
        return before, after

    before, after = asyncio.run(scenario())

    assert before == after == ["Song 1"]


def test_repeated_advance_requests_start_one_download(tmp_path) -> None:
    supervisor = FakeSupervisor()

    async def scenario():
        state, _, _ = _make_state(tmp_path, supervisor)
        state.enqueue(_entry(1))
        assert state.request_advance() is False
        assert state.request_advance() is False
        await _settle(state)
        assert not state.is_busy
        playing = state.current.title
        await state.stop()
        return playing

    assert asyncio.run(scenario()) == "Song 1"
    assert len(supervisor.calls) == 1


def test_retryable_failures_stop_at_the_attempt_cap(tmp_path) -> None:
    supervisor = FakeSupervisor([_failure("ERROR: connection reset by peer")] * 3)

    async def scenario():
        state, text, _ = _make_state(tmp_path, supervisor)
        state.enqueue(_entry(1))
        await _settle(state)
        return state, text

    state, text = asyncio.run(scenario())

    assert len(supervisor.calls) == 3
    # Alternate formats after the first failure
    assert supervisor.calls[0]["format_args"] == ["-f", "bestaudio/best"]
    assert supervisor.calls[1]["format_args"] == ["-f", "worst"]
    assert "❌ This video is not compatible after 3 attempts. (**Song 1**)" in text.messages
    assert state.state is PlayerState.IDLE
    assert state.current is None
    assert state.last_diagnostics["rule"] == "transient"
    assert list(tmp_path.iterdir()) == []


def test_rate_limit_is_dropped_without_retry(tmp_path) -> None:
    supervisor = FakeSupervisor([_failure("ERROR: HTTP Error 429: Too Many Requests"), "ok"])

    async def scenario():
        state, text, _ = _make_state(tmp_path, supervisor)
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        await _settle(state)
        playing = state.current.title
        snapshot = [entry.title for entry in state.songs.original_playlist]
        await state.stop()
        return playing, snapshot, text

    playing, snapshot, text = asyncio.run(scenario())

    assert len(supervisor.calls) == 2
    assert playing == "Song 2"
    assert snapshot == ["Song 2"]
    assert "⏳ YouTube is rate-limiting requests, try again later. (**Song 1**)" in text.messages
    assert list(tmp_path.iterdir()) == []


def test_timeouts_are_dropped_after_the_cap(tmp_path) -> None:
    supervisor = FakeSupervisor([_failure("", OutcomeStatus.TIMED_OUT)] * 3 + ["ok"])

    async def scenario():
        state, text, _ = _make_state(tmp_path, supervisor)
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        await _settle(state)
        playing = state.current.title
        await state.stop()
        return playing, text

    playing, text = asyncio.run(scenario())

    assert len(supervisor.calls) == 4
    assert playing == "Song 2"
    assert "❌ This video is not compatible after 3 attempts. (**Song 1**)" in text.messages
    assert list(tmp_path.iterdir()) == []


def test_stop_is_idempotent(tmp_path) -> None:
    persistence = FakePersistence()

    async def scenario():
        state, _, voice_channel = _make_state(tmp_path, persistence=persistence)
        await state.stop()
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        state.toggle_repeat()
        await _settle(state)
        await state.stop()
        await state.stop()
        await state.wait_idle()
        return state, voice_channel

    state, voice_channel = asyncio.run(scenario())

    assert state.state is PlayerState.IDLE
    assert state.current is None
    assert len(state.songs) == 0
    assert state.repeat is False
    assert voice_channel.clients[0].disconnects == 1
    assert persistence.saved[-1]["queue"] == []
    assert list(tmp_path.iterdir()) == []


def test_stop_during_download_kills_it_and_cleans_up(tmp_path) -> None:
    supervisor = FakeSupervisor(["hang"])

    async def scenario():
        state, text, _ = _make_state(tmp_path, supervisor)
        state.enqueue(_entry(1))
        for _ in range(50):
            await asyncio.sleep(0)
        assert state.state is PlayerState.DOWNLOADING
        await state.stop()
        await _settle(state)
        return state, text

    state, text = asyncio.run(scenario())

    assert supervisor.killed == [GUILD_ID]
    assert state.state is PlayerState.IDLE
    assert not any(message.startswith("⏭️") for message in text.messages)
    assert list(tmp_path.iterdir()) == []


def test_skip_during_download_moves_on(tmp_path) -> None:
    supervisor = FakeSupervisor(["hang", "ok"])

    async def scenario():
        state, text, _ = _make_state(tmp_path, supervisor)
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        for _ in range(50):
            await asyncio.sleep(0)
        skipped = state.skip()
        await _settle(state)
        playing = state.current.title
        await state.stop()
        return skipped, playing, text

    skipped, playing, text = asyncio.run(scenario())

    assert skipped == 1
    assert playing == "Song 2"
    assert "⏭️ Skipped **Song 1**." in text.messages


def test_skip_several_while_playing(tmp_path) -> None:
    async def scenario():
        state, _, _ = _make_state(tmp_path)
        for n in (1, 2, 3, 4):
            state.enqueue(_entry(n))
        await _settle(state)
        skipped = state.skip(2)
        await _settle(state)
        result = (skipped, state.current.title, _titles(state))
        with pytest.raises(ValueError):
            state.skip(21)
        await state.stop()
        return result

    skipped, playing, remaining = asyncio.run(scenario())

    assert skipped == 2
    assert playing == "Song 3"
    assert remaining == ["Song 3", "Song 4"]


def test_loop_replays_the_same_download(tmp_path) -> None:
    supervisor = FakeSupervisor()

    async def scenario():
        state, _, voice_channel = _make_state(tmp_path, supervisor)
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        await _settle(state)
        state.toggle_loop()
        voice_channel.clients[0].finish()
        await _settle(state)
        looped = state.current.title
        state.skip()
        await _settle(state)
        after_skip = state.current.title
        await state.stop()
        return looped, after_skip

    looped, after_skip = asyncio.run(scenario())

    assert looped == "Song 1"
    assert after_skip == "Song 2"
    # The looped play reused the first download
    assert len(supervisor.calls) == 2


def test_repeat_refills_the_queue(tmp_path) -> None:
    async def scenario():
        state, text, voice_channel = _make_state(tmp_path)
        state.enqueue(_entry(1))
        state.toggle_repeat()
        await _settle(state)
        voice_channel.clients[0].finish()
        await _settle(state)
        result = (state.current.title, state.is_playing)
        await state.stop()
        return result, text

    (title, playing), text = asyncio.run(scenario())

    assert title == "Song 1"
    assert playing
    assert "🔁 Playlist finished, starting again." in text.messages


def test_shuffle_keeps_the_playing_head(tmp_path) -> None:
    async def scenario():
        state, _, _ = _make_state(tmp_path)
        for n in range(1, 8):
            state.enqueue(_entry(n))
        await _settle(state)
        head = state.songs.head
        before = sorted(_titles(state))
        state.shuffle()
        result = (state.songs.head is head, sorted(_titles(state)) == before)
        await state.stop()
        return result

    head_kept, same_entries = asyncio.run(scenario())

    assert head_kept
    assert same_entries


def test_long_songs_are_streamed(tmp_path) -> None:
    supervisor = FakeSupervisor()

    async def scenario():
        state, _, voice_channel = _make_state(tmp_path, supervisor)
        entry = _entry(1, duration=2000)
        entry.use_streaming = True
        state.enqueue(entry)
        await _settle(state)
        source = voice_channel.clients[0].played[0]
        await state.stop()
        return source

    source = asyncio.run(scenario())

    assert source.remote is True
    assert source.location.startswith("https://stream.invalid/")
    assert supervisor.calls == []


def test_volume_and_snapshot(tmp_path) -> None:
    async def scenario():
        state, _, _ = _make_state(tmp_path)
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        await _settle(state)
        state.set_volume(80)
        with pytest.raises(ValueError):
            state.set_volume(0)
        snapshot = state.snapshot()
        source_volume = state.source.volume
        await state.stop()
        return snapshot, source_volume

    snapshot, source_volume = asyncio.run(scenario())

    assert source_volume == 0.8
    assert snapshot["volume"] == 80
    assert [item["title"] for item in snapshot["queue"]] == ["Song 1", "Song 2"]
    assert snapshot["currentSong"]["title"] == "Song 1"


def test_restore_backup_then_join_starts_playing(tmp_path) -> None:
    record = {
        "queue": [_entry(1).to_record(), _entry(2).to_record(), _entry(1).to_record()],
        "originalPlaylist": [_entry(1).to_record(), _entry(2).to_record()],
        "repeatMode": True,
        "loopMode": False,
        "volume": 30,
    }

    async def scenario():
        state, _, voice_channel = _make_state(tmp_path)
        restored = state.restore_backup(record)
        assert state.restore_backup(record) == 0
        joined = await state.join(voice_channel)
        await _settle(state)
        result = (restored, joined, state.current.title, state.repeat, state.volume)
        await state.stop()
        return result

    restored, joined, playing, repeat, volume = asyncio.run(scenario())

    assert restored == 2
    assert joined
    assert playing == "Song 1"
    assert repeat is True
    assert volume == 0.3


class BrokenInfoLookups(FakeLookups):
    @staticmethod
    async def get_info(url):
        raise RuntimeError("extractor blew up")


class FailingStreamLookups(FakeLookups):
    @staticmethod
    async def get_stream_url(url):
        raise YTDLError("no formats")


class GatedStreamLookups(FakeLookups):
    def __init__(self) -> None:
        self.gate = asyncio.Event()

    async def get_stream_url(self, url):
        await self.gate.wait()
        return f"https://stream.invalid/{url[-11:]}"


def test_seek_restarts_the_song_at_the_offset(tmp_path) -> None:
    supervisor = FakeSupervisor(["ok", "ok"])

    async def scenario():
        state, text, voice_channel = _make_state(tmp_path, supervisor)
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        await _settle(state)
        moved = await state.seek(30)
        await _settle(state)
        voice = voice_channel.clients[0]
        result = (moved, state.current.title, _titles(state), len(voice.played), voice.played[-1].location,
                  state.seek_position, len(list(tmp_path.iterdir())))
        await state.stop()
        return result, text

    (moved, playing, queued, plays, location, position, files), text = asyncio.run(scenario())

    assert moved is True
    assert playing == "Song 1"
    assert queued == ["Song 1", "Song 2"]
    assert plays == 2
    assert location == supervisor.calls[1]["output_template"].replace("%(ext)s", "mp3")
    assert supervisor.calls[1]["extra_args"][:2] == ["--download-sections", "*30-inf"]
    assert position >= 30
    # The first download was released once the seek took over
    assert files == 1
    assert "Now playing from 0:30" in text.embeds


def test_seek_is_refused_while_streaming(tmp_path) -> None:
    async def scenario():
        state, _, _ = _make_state(tmp_path)
        entry = _entry(1, duration=2000)
        entry.use_streaming = True
        state.enqueue(entry)
        await _settle(state)
        with pytest.raises(SeekError, match="streaming"):
            await state.seek(10)
        still_playing = state.is_playing
        await state.stop()
        return still_playing

    assert asyncio.run(scenario())


def test_skip_during_seek_moves_to_the_next_song(tmp_path) -> None:
    supervisor = FakeSupervisor(["ok", "hang", "ok"])

    async def scenario():
        state, _, voice_channel = _make_state(tmp_path, supervisor)
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        await _settle(state)
        seeking = asyncio.create_task(state.seek(30))
        for _ in range(50):
            await asyncio.sleep(0)
        skipped = state.skip()
        moved = await seeking
        await _settle(state)
        result = (skipped, moved, state.current.title, _titles(state), len(voice_channel.clients[0].played))
        await state.stop()
        return result

    skipped, moved, playing, queued, plays = asyncio.run(scenario())

    assert skipped == 1
    assert moved is False
    assert supervisor.killed[0] == GUILD_ID
    assert playing == "Song 2"
    assert queued == ["Song 2"]
    assert plays == 2
    assert list(tmp_path.iterdir()) == []


def test_unexpected_error_drops_the_entry_and_moves_on(tmp_path) -> None:
    supervisor = FakeSupervisor()

    async def scenario():
        state, text, _ = _make_state(tmp_path, supervisor, lookups=BrokenInfoLookups)
        state.enqueue(_entry(1, duration=None))
        state.enqueue(_entry(2))
        await _settle(state)
        result = (state.current.title, state.is_playing, _titles(state),
                  [entry.title for entry in state.songs.original_playlist])
        await state.stop()
        return result, text

    (playing, is_playing, queued, snapshot), text = asyncio.run(scenario())

    assert playing == "Song 2"
    assert is_playing
    assert queued == ["Song 2"]
    assert snapshot == ["Song 2"]
    assert len(supervisor.calls) == 1
    assert "❌ Something went wrong with **Song 1**, skipping." in text.messages


def test_truncated_download_is_removed_and_skipped(tmp_path) -> None:
    supervisor = FakeSupervisor(["short", "ok"])

    async def scenario():
        state, text, _ = _make_state(tmp_path, supervisor)
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        await _settle(state)
        files = sorted(path.name for path in tmp_path.iterdir())
        playing = state.current.title
        await state.stop()
        return playing, files, text

    playing, files, text = asyncio.run(scenario())

    truncated_stem = Path(supervisor.calls[0]["output_template"]).stem
    assert playing == "Song 2"
    assert "❌ The download of **Song 1** was incomplete, skipping." in text.messages
    assert len(files) == 1
    assert not any(name.startswith(truncated_stem) for name in files)


def test_stream_lookup_failure_falls_back_to_download(tmp_path) -> None:
    supervisor = FakeSupervisor()

    async def scenario():
        state, text, voice_channel = _make_state(tmp_path, supervisor, lookups=FailingStreamLookups)
        entry = _entry(1, duration=2000)
        entry.use_streaming = True
        state.enqueue(entry)
        await _settle(state)
        source = voice_channel.clients[0].played[0]
        result = (source.remote, state.current.use_streaming)
        await state.stop()
        return result, text

    (remote, streaming), text = asyncio.run(scenario())

    assert remote is False
    assert streaming is False
    assert len(supervisor.calls) == 1
    assert "📡 Streaming failed for **Song 1**, downloading instead." in text.messages


def test_skip_during_stream_lookup_does_not_fall_back(tmp_path) -> None:
    supervisor = FakeSupervisor()

    async def scenario():
        lookups = GatedStreamLookups()
        state, text, _ = _make_state(tmp_path, supervisor, lookups=lookups)
        entry = _entry(1, duration=2000)
        entry.use_streaming = True
        state.enqueue(entry)
        state.enqueue(_entry(2))
        for _ in range(50):
            await asyncio.sleep(0)
        assert state.state is PlayerState.STREAMING
        skipped = state.skip()
        lookups.gate.set()
        await _settle(state)
        playing = state.current.title
        await state.stop()
        return skipped, playing, text

    skipped, playing, text = asyncio.run(scenario())

    assert skipped == 1
    assert playing == "Song 2"
    assert [call["url"] for call in supervisor.calls] == [_entry(2).source_url]
    assert not any(message.startswith("📡") for message in text.messages)


def test_lost_voice_connection_reconnects_and_resumes(tmp_path) -> None:
    supervisor = FakeSupervisor()
    delays = []

    async def scenario():
        state, text, voice_channel = _make_state(tmp_path, supervisor)

        async def recording_sleep(delay):
            delays.append(delay)

        state._sleep = recording_sleep
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        await _settle(state)
        voice_channel.clients[0].connected = False
        state.handle_disconnect()
        await state._reconnect_task
        await _settle(state)
        result = (state.current.title, state.is_playing, len(voice_channel.clients),
                  len(voice_channel.clients[1].played), len(list(tmp_path.iterdir())))
        await state.stop()
        return result, text

    (playing, is_playing, clients, plays, files), text = asyncio.run(scenario())

    assert delays == [RECONNECT_DELAY]
    assert "🔄 Lost the voice connection, reconnecting..." in text.messages
    assert playing == "Song 1"
    assert is_playing
    assert clients == 2
    assert plays == 1
    # The head was fetched again and the old artifact released
    assert len(supervisor.calls) == 2
    assert files == 1


def test_shutdown_keeps_the_queue_and_its_backup(tmp_path) -> None:
    supervisor = FakeSupervisor()
    persistence = FakePersistence()

    async def scenario():
        state, _, voice_channel = _make_state(tmp_path, supervisor, persistence)
        for n in (1, 2, 3):
            state.enqueue(_entry(n))
        await _settle(state)
        saves = len(persistence.saved)
        await state.shutdown()
        await state.wait_idle()
        return state, voice_channel, saves

    state, voice_channel, saves = asyncio.run(scenario())

    assert len(persistence.saved) == saves
    assert [item["title"] for item in persistence.saved[-1]["queue"]] == ["Song 1", "Song 2", "Song 3"]
    assert _titles(state) == ["Song 1", "Song 2", "Song 3"]
    assert state.state is PlayerState.IDLE
    assert state.voice is None
    assert voice_channel.clients[0].disconnects == 1
    assert supervisor.killed == [GUILD_ID]
    assert list(tmp_path.iterdir()) == []


def test_shutdown_during_download_keeps_the_head(tmp_path) -> None:
    supervisor = FakeSupervisor(["hang"])
    persistence = FakePersistence()

    async def scenario():
        state, text, _ = _make_state(tmp_path, supervisor, persistence)
        state.enqueue(_entry(1))
        state.enqueue(_entry(2))
        for _ in range(50):
            await asyncio.sleep(0)
        assert state.state is PlayerState.DOWNLOADING
        await state.shutdown()
        await _settle(state)
        return state, text

    state, text = asyncio.run(scenario())

    assert _titles(state) == ["Song 1", "Song 2"]
    assert [item["title"] for item in persistence.saved[-1]["queue"]] == ["Song 1", "Song 2"]
    assert not any(message.startswith("⏭️") for message in text.messages)
    assert list(tmp_path.iterdir()) == []
