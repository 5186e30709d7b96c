"""
Music Cog for the YouTube queue music bot
Contains all music-related commands; every queue change goes through the guild's VoiceState
"""
import logging

import discord
from discord.ext import commands

from config.settings import PREFIX, MAX_DURATION, QUEUE_PAGE_SIZE, EQUALIZER_ENABLED
from utils.audio_filters import audio_filters, PRESETS
from utils.controls import PlayerControlsView, ProgressBar, page_count, queue_page_embed
from utils.database_manager import database_manager
from utils.error_handler import error_handler
from utils.exceptions import VoiceError, YTDLError
from utils.helpers import format_duration, resolve_seek_target
from utils.song import QueueEntry
from utils.suggestions import suggestion_service
from utils.url_normalizer import is_playlist, is_supported, looks_like_url, normalize, strip_playlist
from utils.voice_state import VoiceState
from utils.ytdl_source import YTDLSource

logger = logging.getLogger('music.cog')


class Music(commands.Cog):
    """Music cog with voice playback functionality"""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.voice_states = {}

    async def _maybe_defer(self, ctx: commands.Context):
        """Defer interaction response for slash-invoked hybrid commands to avoid 404 Unknown interaction."""
        interaction = getattr(ctx, "interaction", None)
        if interaction and not interaction.response.is_done():
            try:
                await interaction.response.defer()
            except discord.HTTPException as e:
                logger.debug(f"Could not defer interaction: {e}")

    def create_voice_state(self, guild_id: int) -> VoiceState:
        return VoiceState(self.bot, guild_id, persistence=database_manager, view_factory=PlayerControlsView)

    async def get_voice_state(self, guild_id: int) -> VoiceState:
        """Get or create voice state for a guild; a new state picks up the last saved queue"""
        state = self.voice_states.get(guild_id)
        if not state:
            state = self.create_voice_state(guild_id)
            self.voice_states[guild_id] = state
            record = await database_manager.load_queue_backup(guild_id)
            restored = state.restore_backup(record)
            if restored:
                logger.info(f"♻️ Guild {guild_id}: {restored} song(s) waiting from the last session")
        return state

    async def cog_unload(self):
        """Cleanup when cog is unloaded"""
        for state in self.voice_states.values():
            await state.stop()

    def cog_check(self, ctx: commands.Context):
        """Check if command can be used (no DMs)"""
        if not ctx.guild:
            raise commands.NoPrivateMessage('This command can\'t be used in DM channels.')
        return True

    async def cog_before_invoke(self, ctx: commands.Context):
        """Set up voice state before each command"""
        await self._maybe_defer(ctx)
        ctx.voice_state = await self.get_voice_state(ctx.guild.id)
        voice = getattr(ctx.author, 'voice', None)
        ctx.voice_state.bind_channel(ctx.channel, voice.channel if voice else None)

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError):
        """Handle cog-specific errors using centralized error handler"""
        await error_handler.handle_error(error, ctx, "Music Cog Error")

    # Voice

    @commands.hybrid_command(name='join', description='Join your voice channel')
    async def _join(self, ctx: commands.Context):
        """Joins your voice channel."""
        destination = ctx.author.voice.channel
        if not await ctx.voice_state.join(destination):
            raise VoiceError(f'Could not join {destination.name}')
        await ctx.send(f'🔊 Joined **{destination.name}**')

    @commands.hybrid_command(name='leave', aliases=['disconnect'], description='Leave voice channel and clear the queue')
    async def _leave(self, ctx: commands.Context):
        """Clears the queue and leaves the voice channel."""
        await ctx.voice_state.stop()
        del self.voice_states[ctx.guild.id]
        await ctx.send('👋 Left the voice channel')

    # Queueing

    @commands.hybrid_command(name='play', aliases=['p'], description='Play a song or playlist by name or URL')
    async def _play(self, ctx: commands.Context, *, search: str):
        """Plays a song or playlist.
        Links are canonicalized and deduplicated; anything else is searched on YouTube.
        """
        await self._queue_request(ctx, search, play_next=False)

    @commands.hybrid_command(name='playnext', aliases=['pn'], description='Queue a song right after the current one')
    async def _playnext(self, ctx: commands.Context, *, search: str):
        """Queues a song directly behind the one playing."""
        await self._queue_request(ctx, search, play_next=True)

    async def _queue_request(self, ctx: commands.Context, search: str, play_next: bool):
        async with ctx.typing():
            if looks_like_url(search):
                url = normalize(search.strip())
                if not is_supported(url):
                    return await ctx.send('🚫 Only YouTube links are supported. Search by name instead: '
                                          f'`{PREFIX}play <song name>`')
                if is_playlist(url):
                    if not play_next and await self._import_playlist(ctx, url):
                        return
                    url = strip_playlist(url)
                    if is_playlist(url):
                        raise YTDLError(f'Use `{PREFIX}play` to queue a whole playlist')
            else:
                url, _ = await YTDLSource.search(search)

            info = await YTDLSource.get_info(url)
            if info.is_excessively_long:
                return await ctx.send(f'⛔ **{info.title}** is longer than {format_duration(MAX_DURATION)} '
                                      f'({format_duration(info.duration_seconds)}) and can\'t be queued.')

            entry = QueueEntry(
                source_url=url,
                title=info.title,
                duration_seconds=info.duration_seconds or None,
                use_streaming=info.use_streaming,
                requested_by=ctx.author,
                reply_target=ctx.channel,
            )
            position = ctx.voice_state.enqueue(entry, play_next=play_next)

        await ctx.send(embed=self._added_embed(entry, position))

    async def _import_playlist(self, ctx: commands.Context, url: str) -> bool:
        """Bulk-queue a playlist; False when the link turns out not to be a usable playlist"""
        has_video = strip_playlist(url) != url
        try:
            items = await YTDLSource.extract_playlist(url)
        except YTDLError as e:
            if not has_video:
                raise
            logger.warning(f"⚠️ Playlist extraction failed, trying the single video: {e}")
            return False
        if has_video and len(items) <= 1:
            return False
        if not items:
            raise YTDLError('This playlist has no playable videos')

        entries = [
            QueueEntry(source_url=item_url, title=title, requested_by=ctx.author, reply_target=ctx.channel)
            for item_url, title in items
        ]
        added, duplicates = ctx.voice_state.enqueue_many(entries)

        embed = discord.Embed(title="📀 Playlist Added", color=discord.Color.purple())
        embed.add_field(name="📊 Songs Added", value=str(added), inline=True)
        if duplicates:
            embed.add_field(name="♻️ Already Queued", value=str(duplicates), inline=True)
        embed.set_footer(text=f"🎵 Use {PREFIX}queue to see all loaded songs")
        await ctx.send(embed=embed)
        return True

    @staticmethod
    def _added_embed(entry: QueueEntry, position: int) -> discord.Embed:
        if position == 1:
            embed = discord.Embed(title="▶️ Up Next", description=f"**{entry.title}**", color=discord.Color.green())
        else:
            embed = discord.Embed(title="✅ Song Added to Queue", description=f"**{entry.title}**",
                                  color=discord.Color.blue())
            embed.add_field(name="📍 Queue Position", value=f"#{position}", inline=True)
        duration = format_duration(entry.duration_seconds) if entry.duration_known else 'Unknown'
        embed.add_field(name="⏱️ Duration", value=duration, inline=True)
        embed.add_field(name="Mode", value='📡 Streaming' if entry.use_streaming else '💾 Download', inline=True)
        embed.set_footer(text=f"🎵 Use {PREFIX}queue to see the full queue")
        return embed

    @commands.hybrid_command(name='queue', aliases=['q'], description='Show the music queue (paginated)')
    async def _queue(self, ctx: commands.Context, page: int = 1):
        """Shows the player's queue.
        You can optionally specify the page to show. Each page contains 10 elements.
        """
        pages = page_count(len(ctx.voice_state.songs), QUEUE_PAGE_SIZE)
        if page > pages:
            return await ctx.send(f'📋 **Page {page} not found!**\n'
                                  f'Queue only has **{pages} page(s)**. Use `{PREFIX}queue {pages}` for the last page.')
        await ctx.send(embed=queue_page_embed(ctx.voice_state, page))

    @commands.hybrid_command(name='move', description='Move a song to another position in the queue')
    async def _move(self, ctx: commands.Context, from_position: int, to_position: int):
        """Moves the song at one queue position to another (1-indexed)."""
        entry = ctx.voice_state.move(from_position, to_position)
        await ctx.send(f'↕️ Moved **{entry.title}** to position {to_position}')

    @commands.hybrid_command(name='remove', description='Remove a song from the queue by number')
    async def _remove(self, ctx: commands.Context, index: int):
        """Removes a song from the queue at a given index."""
        entry = ctx.voice_state.remove(index)
        await ctx.send(f'✅ Removed **{entry.title}** (#{index})')

    @commands.hybrid_command(name='shuffle', description='Shuffle the current queue')
    async def _shuffle(self, ctx: commands.Context):
        """Shuffles the queue; the song playing stays where it is."""
        ctx.voice_state.shuffle()
        await ctx.send(f'🔀 Shuffled {len(ctx.voice_state.songs)} songs')

    # Playback

    @commands.hybrid_command(name='skip', description='Skip the current song (or several)')
    async def _skip(self, ctx: commands.Context, count: int = 1):
        """Skips the current song, plus up to count-1 songs behind it."""
        skipped = ctx.voice_state.skip(count)
        if not skipped:
            return await ctx.send('Not playing any music right now...')
        await ctx.send('⏭️ Skipped' if skipped == 1 else f'⏭️ Skipped {skipped} songs')

    @commands.hybrid_command(name='stop', description='Stop playback and clear the queue')
    async def _stop(self, ctx: commands.Context):
        """Stops playing song, clears the queue and leaves the voice channel."""
        await ctx.voice_state.stop()
        await ctx.send('⏹️ Stopped and cleared queue')

    @commands.hybrid_command(name='pause', description='Pause the currently playing song')
    async def _pause(self, ctx: commands.Context):
        """Pauses the currently playing song."""
        if ctx.voice_state.pause():
            await ctx.send('⏸️ Paused')
        else:
            await ctx.send('Nothing being played at the moment.')

    @commands.hybrid_command(name='resume', description='Resume the paused song')
    async def _resume(self, ctx: commands.Context):
        """Resumes a paused song, or starts a queue left over from the last session."""
        if ctx.voice_state.resume():
            return await ctx.send('▶️ Resumed')
        if ctx.voice_state.songs and not ctx.voice_state.is_playing and not ctx.voice_state.is_busy:
            if not ctx.author.voice:
                raise VoiceError('You are not connected to any voice channel.')
            ctx.voice_state.request_advance()
            return await ctx.send(f'▶️ Resuming the queue ({len(ctx.voice_state.songs)} songs)')
        await ctx.send('Nothing is paused.')

    @commands.hybrid_command(name='seek', description='Jump to a position in the current song (e.g. 1:30, +30, -10)')
    async def _seek(self, ctx: commands.Context, position: str):
        """Seeks in the current song.
        Accepts an absolute time (90, 1:30, 1:02:03) or a relative one (+30, -10).
        """
        target = resolve_seek_target(position, ctx.voice_state.seek_position)
        if target is None:
            raise commands.BadArgument(f'`{position}` is not a valid time. Use 90, 1:30, +30 or -10')
        async with ctx.typing():
            moved = await ctx.voice_state.seek(target)
        if moved:
            await ctx.send(f'⏩ Jumped to {format_duration(target)}')

    @commands.hybrid_command(name='volume', aliases=['vol'], description='Set or check the volume (1-100)')
    async def _volume(self, ctx: commands.Context, volume: int = None):
        """Sets the volume of the player or shows current volume."""
        if volume is None:
            current = round(ctx.voice_state.volume * 100)
            return await ctx.send(f'🔊 Current volume: **{current}%**\n'
                                  f'{ProgressBar.create_volume_bar(ctx.voice_state.volume)} {current}%')

        ctx.voice_state.set_volume(volume)
        await ctx.send(f'🔊 Volume set to **{volume}%**\n{ProgressBar.create_volume_bar(volume / 100)} {volume}%')

    @commands.hybrid_command(name='loop', description='Toggle loop for the current song')
    async def _loop(self, ctx: commands.Context):
        """Loops the currently playing song.
        Invoke this command again to unloop the song.
        """
        if ctx.voice_state.toggle_loop():
            await ctx.send('🔂 **Loop enabled** - Current song will repeat')
        else:
            await ctx.send('➡️ **Loop disabled** - Queue will continue normally')

    @commands.hybrid_command(name='repeat', description='Toggle repeating the whole queue')
    async def _repeat(self, ctx: commands.Context):
        """Repeats the queue from the start once it runs out."""
        if ctx.voice_state.toggle_repeat():
            await ctx.send('🔁 **Repeat enabled** - The queue will start over when it ends')
        else:
            await ctx.send('➡️ **Repeat disabled**')

    @commands.hybrid_command(name='now', aliases=['current', 'playing', 'np'], description='Show the currently playing song')
    async def _now(self, ctx: commands.Context):
        """Displays the currently playing song."""
        current = ctx.voice_state.current
        if current is None:
            return await ctx.send(f'📭 Nothing is currently playing. Use `{PREFIX}play <song>` to start!')

        embed = current.create_embed(position=ctx.voice_state.seek_position)
        if current.duration_known:
            embed.add_field(
                name="Progress",
                value=ProgressBar.create_time_bar(ctx.voice_state.seek_position, current.duration_seconds),
                inline=False
            )
        if ctx.voice_state.loop:
            embed.add_field(name="🔂 Loop Mode", value="Current song will repeat", inline=True)
        await ctx.send(embed=embed, view=PlayerControlsView(ctx.voice_state))

    # Equalizer

    def _check_equalizer(self):
        if not EQUALIZER_ENABLED:
            raise commands.DisabledCommand('The equalizer is disabled on this bot.')

    @commands.hybrid_command(name='bass', description='Set bass gain (-10 to 10 dB)')
    async def _bass(self, ctx: commands.Context, value: int):
        """Sets the bass gain; applies from the next song."""
        self._check_equalizer()
        audio_filters.set_bass(value)
        await ctx.send(f'{audio_filters.describe()}\n*Applies from the next song.*')

    @commands.hybrid_command(name='treble', description='Set treble gain (-10 to 10 dB)')
    async def _treble(self, ctx: commands.Context, value: int):
        """Sets the treble gain; applies from the next song."""
        self._check_equalizer()
        audio_filters.set_treble(value)
        await ctx.send(f'{audio_filters.describe()}\n*Applies from the next song.*')

    @commands.hybrid_command(name='speed', description='Set playback speed (0.5 to 2.0)')
    async def _speed(self, ctx: commands.Context, value: float):
        """Sets the playback speed; applies from the next song."""
        self._check_equalizer()
        audio_filters.set_speed(value)
        await ctx.send(f'{audio_filters.describe()}\n*Applies from the next song.*')

    @commands.hybrid_command(name='preset', description='Apply an equalizer preset')
    async def _preset(self, ctx: commands.Context, name: str):
        """Applies an equalizer preset (rock, pop, jazz, classical, electronic, bass_boost, nightcore, slowdown, clear)."""
        self._check_equalizer()
        audio_filters.apply_preset(name)
        await ctx.send(f'{audio_filters.describe()}\n*Applies from the next song.*')

    @commands.hybrid_command(name='equalizer', aliases=['eq'], description='Show equalizer settings')
    async def _equalizer(self, ctx: commands.Context):
        """Shows the current equalizer settings and the available presets."""
        embed = discord.Embed(title="🎛️ Equalizer", description=audio_filters.describe(), color=discord.Color.teal())
        embed.add_field(name="Presets", value=', '.join(f'`{name}`' for name in PRESETS), inline=False)
        embed.add_field(name="Status", value='Enabled' if EQUALIZER_ENABLED else 'Disabled', inline=True)
        embed.set_footer(text="Filters apply to downloaded songs, not streams")
        await ctx.send(embed=embed)

    # Suggestions

    @commands.hybrid_command(name='suggest', aliases=['similar'], description='Suggest songs similar to the current one')
    async def _suggest(self, ctx: commands.Context):
        """Asks the AI for songs similar to the current one."""
        current = ctx.voice_state.current
        if current is None:
            return await ctx.send('Nothing being played at the moment.')
        if not suggestion_service.available:
            return await ctx.send('🤖 AI suggestions are not configured on this bot.')

        async with ctx.typing():
            suggestions = await suggestion_service.suggest_similar(current.title)
        if not suggestions:
            return await ctx.send('🤷 No suggestions this time.')

        embed = discord.Embed(
            title=f"🤖 Similar to {current.title}",
            description="\n".join(f"`{i}.` {line}" for i, line in enumerate(suggestions, start=1)),
            color=discord.Color.purple()
        )
        embed.set_footer(text=f"Queue one with: {PREFIX}play <Artist - Title>")
        await ctx.send(embed=embed)

    @_join.before_invoke
    @_play.before_invoke
    @_playnext.before_invoke
    async def ensure_voice_state(self, ctx: commands.Context):
        """Ensure user is in voice channel before music commands"""
        if not ctx.author.voice or not ctx.author.voice.channel:
            raise VoiceError('You are not connected to any voice channel.')

        if ctx.voice_client and ctx.voice_client.channel != ctx.author.voice.channel:
            raise VoiceError('Bot is already in a voice channel.')


async def setup(bot):
    """Setup function for the cog"""
    await bot.add_cog(Music(bot))
