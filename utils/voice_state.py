"""
VoiceState class for the YouTube queue music bot
Per-guild playback driver: owns the queue, the voice connection, the in-flight
download and the player, and is the only thing allowed to mutate them
"""
import asyncio
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import discord

from config.settings import (
    TEMP_DIR, MAX_DURATION, LONG_VIDEO_THRESHOLD, MIN_ARTIFACT_BYTES, SEEK_DOWNLOAD_TIMEOUT,
    VOICE_CONNECT_TIMEOUT, RECONNECT_DELAY, DEFAULT_VOLUME, MAX_SKIP_COUNT, MAX_RETRY_ATTEMPTS,
    STREAMING_ENABLED, EQUALIZER_ENABLED
)
from utils import janitor
from utils.audio_filters import audio_filters
from utils.exceptions import QueueError, SeekError, YTDLError
from utils.helpers import format_duration, PLACEHOLDER_TITLE
from utils.process_supervisor import DownloadPolicy, OutcomeStatus, process_supervisor
from utils.retry_policy import (
    FormatStrategy, apply_retry, backoff_delay, classify, exhausted_message,
    next_format_directive, timeout_classification
)
from utils.song import QueueEntry
from utils.song_queue import SongQueue
from utils.ytdl_source import YTDLSource, build_audio_source

logger = logging.getLogger('music.driver')


class PlayerState(Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    ADVANCING = 'advancing'
    STREAMING = 'streaming'
    DOWNLOADING = 'downloading'
    PLAYING = 'playing'


class VoiceState:
    """Manages voice connection and playback state for a guild"""

    def __init__(self, bot, guild_id: int, *, supervisor=None, lookups=None,
                 audio_factory: Callable = None, persistence=None, filters=None,
                 temp_dir: str = TEMP_DIR, view_factory: Callable = None,
                 max_attempts: int = MAX_RETRY_ATTEMPTS):
        self.bot = bot
        self.guild_id = guild_id

        # Collaborators
        self.supervisor = supervisor or process_supervisor
        self.lookups = lookups or YTDLSource
        self.audio_factory = audio_factory or build_audio_source
        self.persistence = persistence
        self.filters = filters or audio_filters
        self.temp_dir = Path(temp_dir)
        self.view_factory = view_factory
        self.max_attempts = max_attempts
        self._sleep = asyncio.sleep

        # Transport
        self.voice = None
        self.voice_target = None
        self.text_channel = None
        self.source = None

        # Queue and modes
        self.songs = SongQueue()
        self.current: Optional[QueueEntry] = None
        self._volume = DEFAULT_VOLUME
        self.repeat = False
        self.loop = False

        # State machine fields
        self.state = PlayerState.IDLE
        self._advancing = False
        self._advance_pending = False
        self._advance_task: Optional[asyncio.Task] = None
        self._generation = 0
        self._play_token = 0
        self._seeking = False
        self._end_during_seek = False
        self._skip_requested = False
        self._replay = False
        self._expect_disconnect = False
        self._reconnect_task: Optional[asyncio.Task] = None
        self._artifact: Optional[Path] = None
        self._background: set = set()

        # Playback position bookkeeping
        self._position_offset = 0
        self._started_at: Optional[float] = None
        self._paused_at: Optional[float] = None
        self._paused_total = 0.0

        self.last_diagnostics: Optional[Dict[str, Any]] = None

    # ------------------------------------------------------------------
    # Read surface

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def is_playing(self) -> bool:
        return self.state is PlayerState.PLAYING and self.current is not None

    @property
    def is_busy(self) -> bool:
        return self._advancing

    @property
    def seek_position(self) -> int:
        """Seconds into the current song"""
        if self._started_at is None:
            return 0
        now = self._paused_at if self._paused_at is not None else time.monotonic()
        return int(self._position_offset + now - self._started_at - self._paused_total)

    def snapshot(self) -> Dict[str, Any]:
        """Persistable record of the queue and modes"""
        return {
            'queue': [entry.to_record() for entry in self.songs],
            'originalPlaylist': [entry.to_record() for entry in self.songs.original_playlist],
            'repeatMode': self.repeat,
            'loopMode': self.loop,
            'volume': round(self._volume * 100),
            'currentSong': self.current.to_record() if self.current else None,
            'timestamp': time.time(),
        }

    # ------------------------------------------------------------------
    # Mutating surface

    def bind_channel(self, text_channel, voice_channel=None):
        """Remember where to talk and which voice channel to join; rebinds restored entries"""
        if text_channel is not None:
            self.text_channel = text_channel
            for entry in self.songs:
                if entry.reply_target is None:
                    entry.reply_target = text_channel
        if voice_channel is not None:
            self.voice_target = voice_channel

    async def join(self, voice_channel) -> bool:
        """Connect (or move) to a voice channel; starts a restored queue that was waiting"""
        self.voice_target = voice_channel
        if self.voice is not None and self.voice.is_connected():
            if getattr(self.voice, 'channel', None) != voice_channel:
                await self.voice.move_to(voice_channel)
            return True
        if not await self._ensure_connected():
            return False
        if self.songs and self.state is PlayerState.IDLE:
            self.request_advance()
        return True

    def enqueue(self, entry: QueueEntry, *, play_next: bool = False) -> int:
        """Queue one entry; raises DuplicateEntryError. Returns its 1-indexed position."""
        if play_next:
            position = self.songs.insert_next(entry, current=self.current)
        else:
            position = self.songs.enqueue(entry, current=self.current)
        logger.info(f"➕ Queued {entry.title} ({entry.source_url}) at position {position}")
        self._schedule_persist()
        if self.state is PlayerState.IDLE:
            self.request_advance()
        return position

    def enqueue_many(self, entries: Iterable[QueueEntry]) -> Tuple[int, int]:
        """Bulk import (playlists); duplicates are skipped. Returns (added, duplicates)."""
        added = duplicates = 0
        for entry in entries:
            try:
                self.songs.enqueue(entry, current=self.current)
                added += 1
            except QueueError:
                duplicates += 1
        if added:
            self._schedule_persist()
            if self.state is PlayerState.IDLE:
                self.request_advance()
        return added, duplicates

    def move(self, from_pos: int, to_pos: int) -> QueueEntry:
        entry = self.songs.move_entry(from_pos, to_pos)
        self._schedule_persist()
        return entry

    def remove(self, position: int) -> QueueEntry:
        if position == 1 and self.current is not None and self.songs.head is self.current:
            raise QueueError('That song is playing right now, use skip instead')
        entry = self.songs.remove_at(position)
        self._schedule_persist()
        return entry

    def shuffle(self):
        keep_head = self.current is not None and self.songs.head is self.current
        self.songs.shuffle(keep_head=keep_head)
        self._schedule_persist()

    def set_volume(self, percent: int):
        if not 1 <= percent <= 100:
            raise ValueError('Volume must be between 1 and 100')
        self._volume = percent / 100
        if self.source is not None:
            self.source.volume = self._volume
        self._schedule_persist()

    def toggle_repeat(self) -> bool:
        self.repeat = not self.repeat
        self._schedule_persist()
        return self.repeat

    def toggle_loop(self) -> bool:
        self.loop = not self.loop
        self._schedule_persist()
        return self.loop

    def pause(self) -> bool:
        if self.voice is None or not self.voice.is_playing():
            return False
        self.voice.pause()
        self._paused_at = time.monotonic()
        return True

    def resume(self) -> bool:
        if self.voice is None or not self.voice.is_paused():
            return False
        self.voice.resume()
        if self._paused_at is not None:
            self._paused_total += time.monotonic() - self._paused_at
            self._paused_at = None
        return True

    def skip(self, count: int = 1) -> int:
        """Skip the current song and up to count-1 songs behind it; returns how many were skipped"""
        if not 1 <= count <= MAX_SKIP_COUNT:
            raise ValueError(f'You can skip between 1 and {MAX_SKIP_COUNT} songs at a time')
        if self.current is None:
            return 0

        following = min(count - 1, max(len(self.songs) - 1, 0))
        if following:
            self.songs.drop_following(self.current, following)
            self._schedule_persist()

        self._skip_requested = True
        if self._seeking:
            # seek() finishes the song once its download is gone
            self.supervisor.kill_all(owner=self.guild_id)
        elif self.state is PlayerState.PLAYING and self.voice is not None:
            # The player's end callback takes it from here
            self.voice.stop()
        else:
            # Still fetching: kill the download and let advance drop the entry
            self.supervisor.kill_all(owner=self.guild_id)
        return following + 1

    async def stop(self):
        """Clear everything and leave voice; safe from any state"""
        was_active = (self.state is not PlayerState.IDLE or bool(self.songs) or self.voice is not None
                      or self.current is not None or self.repeat or self.loop)

        self._generation += 1
        self._play_token += 1
        self.songs.clear()
        self.repeat = False
        self.loop = False
        self._replay = False
        self._seeking = False
        self._skip_requested = False

        self.supervisor.kill_all(owner=self.guild_id)

        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None

        await self._disconnect()
        self._release_artifact()
        self._reset_playback()
        self.state = PlayerState.IDLE

        if was_active:
            logger.info(f"⏹️ Stopped playback in guild {self.guild_id}")
            self._schedule_persist()

    async def shutdown(self):
        """Process exit: kill downloads and leave voice, but keep the queue and its backup"""
        self._generation += 1
        self._play_token += 1
        self._seeking = False
        self._skip_requested = False

        self.supervisor.kill_all(owner=self.guild_id)

        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None

        await self._disconnect()
        self._release_artifact()
        self.source = None
        self._replay = False
        self._reset_position()
        self.state = PlayerState.IDLE
        logger.info(f"💤 Shut down player in guild {self.guild_id} with {len(self.songs)} song(s) kept")

    async def seek(self, seconds: int) -> bool:
        """Restart the current song at an offset (download path only); False if a stop or skip won"""
        entry = self.current
        if entry is None or self.state is not PlayerState.PLAYING:
            raise SeekError('Nothing is playing right now')
        if self._artifact is None:
            raise SeekError('Seeking is not available while streaming')
        if seconds < 0 or (entry.duration_known and seconds >= entry.duration_seconds):
            raise SeekError(f'Position must be between 0:00 and {format_duration(entry.duration_seconds)}')
        if self._advancing:
            raise SeekError('Busy loading a song, try again in a moment')

        generation = self._generation
        self._advancing = True
        self._seeking = True
        self._end_during_seek = False
        artifact = janitor.new_artifact_path(self.temp_dir)
        try:
            outcome = await self.supervisor.run_download(
                entry.source_url,
                FormatStrategy.DEFAULT.args(),
                janitor.output_template(artifact),
                DownloadPolicy(timeout=SEEK_DOWNLOAD_TIMEOUT),
                extra_args=['--download-sections', f'*{int(seconds)}-inf', '--force-keyframes-at-cuts'],
                owner=self.guild_id,
            )
            self._record_diagnostics(entry, outcome, 'seek')

            if generation != self._generation or entry is not self.current:
                janitor.cleanup_all(artifact)
                return False
            if self._skip_requested:
                janitor.cleanup_all(artifact)
                self._play_token += 1
                if self.voice is not None and (self.voice.is_playing() or self.voice.is_paused()):
                    self.voice.stop()
                self._end_during_seek = True
                return False
            if not outcome.ok or not self._artifact_valid(artifact):
                janitor.cleanup_all(artifact)
                raise SeekError('Could not seek in this song')

            janitor.cleanup_sidecars(artifact)
            # The old player's end callback must not advance the queue
            self._play_token += 1
            if self.voice is not None and (self.voice.is_playing() or self.voice.is_paused()):
                self.voice.stop()
            self._release_artifact()
            self._end_during_seek = False
            if not self._attach(entry, str(artifact), remote=False, artifact=artifact, start_offset=seconds):
                raise SeekError('Could not restart playback at that position')
            return True
        finally:
            self._seeking = False
            self._advancing = False
            if self._end_during_seek:
                # Song ended while the seek download ran and the seek did not take over
                self._end_during_seek = False
                self._finish_current()

    def restore_backup(self, record: Optional[Dict[str, Any]]) -> int:
        """Load a persisted record into an idle, empty state; returns entries restored"""
        if not record or self.songs or self.current is not None:
            return 0

        queue = []
        seen = set()
        for raw in record.get('queue') or []:
            entry = QueueEntry.from_record(raw)
            if entry.source_url not in seen:
                seen.add(entry.source_url)
                queue.append(entry)
        original = [QueueEntry.from_record(raw) for raw in record.get('originalPlaylist') or []]
        self.songs.restore(queue, original)

        self.repeat = bool(record.get('repeatMode', False))
        self.loop = bool(record.get('loopMode', False))
        volume = record.get('volume')
        if isinstance(volume, (int, float)) and 1 <= volume <= 100:
            self._volume = volume / 100

        if queue:
            logger.info(f"♻️ Restored {len(queue)} queued song(s) for guild {self.guild_id}")
        return len(queue)

    def handle_disconnect(self, channel=None):
        """Voice connection dropped without a stop; reconnect if there is still music to play"""
        if self._expect_disconnect:
            self._expect_disconnect = False
            return

        self.voice = None
        self._play_token += 1
        self.source = None
        if self.current is not None and not self._advancing:
            # The head restarts from scratch after reconnecting
            self._release_artifact()
            self._reset_playback()
            if self.state is not PlayerState.IDLE:
                self.state = PlayerState.IDLE

        if not self.songs:
            self.state = PlayerState.IDLE
            return

        if channel is not None:
            self.voice_target = channel
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_after_delay())

    async def _reconnect_after_delay(self):
        generation = self._generation
        try:
            await self._sleep(RECONNECT_DELAY)
        except asyncio.CancelledError:
            return
        if generation != self._generation or not self.songs:
            return
        logger.info(f"🔄 Reconnecting to voice in guild {self.guild_id}")
        await self._notify('🔄 Lost the voice connection, reconnecting...')
        self.request_advance()

    # ------------------------------------------------------------------
    # Advance

    def request_advance(self) -> bool:
        """Schedule an advance unless one is already running or scheduled"""
        if self._advancing or (self._advance_task is not None and not self._advance_task.done()):
            self._advance_pending = True
            return False
        self._advance_task = asyncio.get_running_loop().create_task(self.advance())
        return True

    async def advance(self) -> bool:
        """
        Progress from 'queue head ready' to 'something is playing' or 'queue empty'.

        Re-entrant calls while a traversal is running return False without
        doing anything.  Nothing raised inside the traversal escapes: failed
        entries are dropped and the next one is tried.
        """
        if self._advancing:
            self._advance_pending = True
            return False

        self._advancing = True
        generation = self._generation
        try:
            await self._advance_loop(generation)
        except Exception:
            logger.exception(f"❌ Unexpected error while advancing the queue in guild {self.guild_id}")
            if generation == self._generation and not self.is_playing:
                self.current = None
                self.state = PlayerState.IDLE
        finally:
            self._advancing = False

        if self._advance_pending:
            self._advance_pending = False
            if not self.is_playing and self.songs:
                asyncio.get_running_loop().call_soon(self.request_advance)
        return True

    async def _advance_loop(self, generation: int):
        while generation == self._generation:
            self._advance_pending = False
            entry = self.songs.head

            if entry is None:
                if self.repeat and self.songs.refill_from_snapshot():
                    logger.info(f"🔁 Repeating playlist in guild {self.guild_id}")
                    await self._notify('🔁 Playlist finished, starting again.')
                    continue
                await self._go_idle()
                return

            self.state = PlayerState.ADVANCING
            self.current = entry
            if not await self._ensure_connected():
                if generation == self._generation:
                    self.current = None
                    self.state = PlayerState.IDLE
                return
            if generation != self._generation:
                # Stopped while joining
                await self._disconnect()
                return

            try:
                played = await self._play_entry(entry, generation)
            except Exception:
                logger.exception(f"❌ Unexpected error while preparing {entry.source_url}")
                played = False
                if generation == self._generation:
                    await self._notify(f'❌ Something went wrong with **{entry.title}**, skipping.',
                                       target=entry.reply_target)
            if played:
                return
            if generation != self._generation:
                return

            # Drop and move on
            self.songs.discard(entry)
            self.songs.forget(entry.source_url)
            self.current = None
            self._replay = False
            self._skip_requested = False
            self._schedule_persist()

    async def _play_entry(self, entry: QueueEntry, generation: int) -> bool:
        """Try to get one entry playing; False means drop it"""
        if self._replay and self._artifact is not None and self._artifact.exists():
            self._replay = False
            logger.info(f"🔂 Looping {entry.title}")
            if self._attach(entry, str(self._artifact), remote=False, artifact=self._artifact):
                return True
            self._release_artifact()
        self._replay = False
        self._release_artifact()

        entry.reset_attempts()

        if not entry.duration_known:
            info = await self.lookups.get_info(entry.source_url)
            if generation != self._generation:
                return False
            if entry.title == PLACEHOLDER_TITLE or not entry.title:
                entry.title = info.title
            entry.duration_seconds = info.duration_seconds or None
            entry.use_streaming = info.use_streaming

        if entry.duration_known and entry.duration_seconds > MAX_DURATION:
            await self._notify(f'⛔ **{entry.title}** is longer than {format_duration(MAX_DURATION)} and was skipped.',
                               target=entry.reply_target)
            return False

        if entry.use_streaming and STREAMING_ENABLED:
            if await self._play_streaming(entry, generation):
                return True
            if generation != self._generation or self._skip_requested:
                return False
            entry.use_streaming = False
            await self._notify(f'📡 Streaming failed for **{entry.title}**, downloading instead.',
                               target=entry.reply_target)

        return await self._play_download(entry, generation)

    async def _play_streaming(self, entry: QueueEntry, generation: int) -> bool:
        self.state = PlayerState.STREAMING
        try:
            stream_url = await self.lookups.get_stream_url(entry.source_url)
        except YTDLError as e:
            logger.warning(f"⚠️ Stream URL lookup failed for {entry.source_url}: {e}")
            return False
        if generation != self._generation or self._skip_requested:
            return False
        if not await self._ensure_connected():
            return False
        return self._attach(entry, stream_url, remote=True, artifact=None)

    async def _play_download(self, entry: QueueEntry, generation: int) -> bool:
        long_form = (entry.duration_seconds or 0) > LONG_VIDEO_THRESHOLD

        while True:
            self.state = PlayerState.DOWNLOADING
            attempt = entry.retry_count + 1
            delay = backoff_delay(attempt)
            if delay:
                await self._sleep(delay)
                if generation != self._generation:
                    return False
            if self._skip_requested:
                return False

            artifact = janitor.new_artifact_path(self.temp_dir)
            strategy = next_format_directive(entry)
            logger.info(f"⬇️ Downloading {entry.source_url} (attempt {attempt}, {strategy.value})")

            outcome = await self.supervisor.run_download(
                entry.source_url,
                strategy.args(),
                janitor.output_template(artifact),
                DownloadPolicy.for_entry(long_form),
                owner=self.guild_id,
            )

            if generation != self._generation or outcome.status is OutcomeStatus.KILLED:
                janitor.cleanup_all(artifact)
                self._record_diagnostics(entry, outcome, 'killed')
                if generation == self._generation:
                    await self._notify(f'⏭️ Skipped **{entry.title}**.', target=entry.reply_target)
                return False

            if outcome.ok:
                self._record_diagnostics(entry, outcome, 'success')
                if not self._artifact_valid(artifact):
                    janitor.cleanup_all(artifact)
                    await self._notify(f'❌ The download of **{entry.title}** was incomplete, skipping.',
                                       target=entry.reply_target)
                    return False
                janitor.cleanup_sidecars(artifact)
                if not await self._ensure_connected():
                    janitor.cleanup_all(artifact)
                    return False
                if self._attach(entry, str(artifact), remote=False, artifact=artifact):
                    return True
                janitor.cleanup_all(artifact)
                return False

            janitor.cleanup_all(artifact)
            if outcome.status in (OutcomeStatus.TIMED_OUT, OutcomeStatus.STALLED):
                classification = timeout_classification(stalled=outcome.status is OutcomeStatus.STALLED)
            else:
                classification = classify(outcome.stderr)
            self._record_diagnostics(entry, outcome, classification.rule)

            if apply_retry(entry, classification, self.max_attempts):
                await self._notify(f'{classification.user_message} ({entry.retry_count + 1}/{self.max_attempts})',
                                   target=entry.reply_target)
                continue

            message = exhausted_message(self.max_attempts) if classification.retryable else classification.user_message
            logger.warning(f"🚫 Dropping {entry.source_url}: {classification.rule}")
            await self._notify(f'{message} (**{entry.title}**)', target=entry.reply_target)
            return False

    # ------------------------------------------------------------------
    # Playback plumbing

    def _artifact_valid(self, artifact: Path) -> bool:
        try:
            return artifact.is_file() and artifact.stat().st_size >= MIN_ARTIFACT_BYTES
        except OSError:
            return False

    def _attach(self, entry: QueueEntry, location: str, *, remote: bool, artifact: Optional[Path],
                start_offset: int = 0) -> bool:
        """Hand an audio source to the voice client"""
        if self.voice is None:
            return False

        filters = None
        if not remote and EQUALIZER_ENABLED:
            filters = self.filters.build_filter()

        try:
            source = self.audio_factory(location, self._volume, remote=remote, filters=filters)
            self._play_token += 1
            token = self._play_token
            loop = asyncio.get_running_loop()

            def after(error, token=token):
                loop.call_soon_threadsafe(self._on_playback_end, token, error)

            self.voice.play(source, after=after)
        except (discord.ClientException, OSError, TypeError, ValueError) as e:
            logger.error(f"❌ Could not start playback of {entry.source_url}: {e}")
            return False

        self.source = source
        self._artifact = artifact
        self._skip_requested = False
        self._position_offset = start_offset
        self._started_at = time.monotonic()
        self._paused_at = None
        self._paused_total = 0.0
        self.state = PlayerState.PLAYING
        logger.info(f"▶️ Playing {entry.title} ({'stream' if remote else 'download'})")
        self._spawn(self._announce(entry, start_offset))
        return True

    async def _announce(self, entry: QueueEntry, start_offset: int):
        title = 'Now playing' if not start_offset else f'Now playing from {format_duration(start_offset)}'
        view = self.view_factory(self) if self.view_factory else None
        await self._notify(embed=entry.create_embed(title), view=view, target=entry.reply_target)

    def _on_playback_end(self, token: int, error: Optional[Exception] = None):
        """Runs on the event loop after the player finished"""
        if token != self._play_token:
            return
        if error:
            logger.warning(f"⚠️ Playback error in guild {self.guild_id}: {error}")
        if self._seeking:
            self._end_during_seek = True
            return
        self._finish_current()

    def _finish_current(self):
        finished = self.current
        self.source = None
        self._reset_position()

        if self.loop and not self._skip_requested and finished is not None and finished in list(self.songs):
            self._replay = True
        else:
            self._release_artifact()
            if finished is not None:
                self.songs.discard(finished)
            self.current = None
            self._schedule_persist()

        self._skip_requested = False
        self.state = PlayerState.ADVANCING
        self.request_advance()

    async def _ensure_connected(self) -> bool:
        if self.voice is not None and self.voice.is_connected():
            return True
        if self.voice_target is None:
            await self._notify('❌ I am not connected to a voice channel.')
            return False

        previous = self.state
        self.state = PlayerState.CONNECTING
        existing = getattr(getattr(self.voice_target, 'guild', None), 'voice_client', None)
        try:
            if existing is not None and existing.is_connected():
                self.voice = existing
                if getattr(existing, 'channel', None) != self.voice_target:
                    await existing.move_to(self.voice_target)
            else:
                self.voice = await asyncio.wait_for(self.voice_target.connect(), timeout=VOICE_CONNECT_TIMEOUT)
        except (asyncio.TimeoutError, discord.ClientException, discord.HTTPException, OSError) as e:
            logger.error(f"❌ Voice connection failed in guild {self.guild_id}: {e}")
            self.voice = None
            self.state = previous
            await self._notify('❌ Could not join the voice channel.')
            return False

        self.state = previous
        logger.info(f"🔊 Connected to voice in guild {self.guild_id}")
        return True

    async def _disconnect(self):
        if self.voice is None:
            return
        voice, self.voice = self.voice, None
        self._expect_disconnect = True
        try:
            if voice.is_playing() or voice.is_paused():
                voice.stop()
            await voice.disconnect(force=True)
        except (discord.ClientException, discord.HTTPException, OSError) as e:
            logger.warning(f"⚠️ Error while leaving voice in guild {self.guild_id}: {e}")

    async def _go_idle(self):
        """Queue drained with repeat off: tear down"""
        had_session = self.voice is not None or self.current is not None
        self.songs.clear()
        self._release_artifact()
        self._reset_playback()
        await self._disconnect()
        self.state = PlayerState.IDLE
        if had_session:
            logger.info(f"📭 Queue finished in guild {self.guild_id}")
            await self._notify('📭 Queue finished, leaving the voice channel.')
        self._schedule_persist()

    def _reset_playback(self):
        self.current = None
        self.source = None
        self._replay = False
        self._reset_position()

    def _reset_position(self):
        self._position_offset = 0
        self._started_at = None
        self._paused_at = None
        self._paused_total = 0.0

    def _release_artifact(self):
        if self._artifact is not None:
            janitor.cleanup_all(self._artifact)
            self._artifact = None

    def _record_diagnostics(self, entry: QueueEntry, outcome, rule: str):
        self.last_diagnostics = {
            'url': entry.source_url,
            'title': entry.title,
            'status': outcome.status.value,
            'exit_code': outcome.exit_code,
            'rule': rule,
            'attempt': entry.retry_count + 1,
            'stderr_tail': (outcome.stderr or '')[-1500:],
            'at': time.time(),
        }

    # ------------------------------------------------------------------
    # Side effects

    async def _notify(self, content: Optional[str] = None, *, embed=None, view=None, target=None):
        target = target or self.text_channel
        if target is None:
            return
        kwargs = {}
        if embed is not None:
            kwargs['embed'] = embed
        if view is not None:
            kwargs['view'] = view
        try:
            await target.send(content, **kwargs)
        except discord.HTTPException as e:
            logger.warning(f"⚠️ Could not send message in guild {self.guild_id}: {e}")

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _schedule_persist(self):
        """Write the current snapshot; writes land in the order they were scheduled"""
        if self.persistence is None:
            return
        self._spawn(self._persist(self.snapshot()))

    async def _persist(self, record: Dict[str, Any]):
        try:
            await self.persistence.save_queue_backup(self.guild_id, record)
        except Exception as e:
            logger.error(f"❌ Failed to save queue backup for guild {self.guild_id}: {e}")

    async def wait_idle(self):
        """Let scheduled advances and writes settle"""
        while True:
            pending = [task for task in (self._advance_task, *self._background) if task and not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
