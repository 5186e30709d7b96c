"""
Favorites Cog for the YouTube queue music bot
Per-user saved songs, stored independently of any guild's queue
"""
import logging

import discord
from discord.ext import commands

from config.settings import PREFIX
from utils.database_manager import database_manager
from utils.error_handler import error_handler
from utils.exceptions import QueueError, VoiceError
from utils.helpers import format_duration
from utils.song import QueueEntry
from utils.url_normalizer import is_supported, normalize
from utils.ytdl_source import YTDLSource

logger = logging.getLogger('music.favorites')


class Favorites(commands.Cog):
    """Save songs and queue them again later"""

    def __init__(self, bot: commands.Bot, database=None):
        self.bot = bot
        self.database = database or database_manager

    def cog_check(self, ctx: commands.Context):
        if not ctx.guild:
            raise commands.NoPrivateMessage('This command can\'t be used in DM channels.')
        return True

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError):
        await error_handler.handle_error(error, ctx, "Favorites Cog Error")

    async def _voice_state(self, ctx: commands.Context):
        music = self.bot.get_cog('Music')
        if music is None:
            raise commands.DisabledCommand('Music playback is not loaded.')
        state = await music.get_voice_state(ctx.guild.id)
        voice = getattr(ctx.author, 'voice', None)
        state.bind_channel(ctx.channel, voice.channel if voice else None)
        return state

    @commands.hybrid_group(name='favorites', aliases=['fav', 'favs'], fallback='list',
                           description='Show your favorite songs')
    async def favorites(self, ctx: commands.Context):
        """Shows your saved songs."""
        records = await self.database.list_favorites(ctx.author.id)
        if not records:
            return await ctx.send(f'⭐ You have no favorites yet. Save the current song with `{PREFIX}favorites add`.')

        lines = []
        for index, record in enumerate(records[:25], start=1):
            duration = format_duration(record['duration']) if record['duration'] else 'Unknown'
            lines.append(f"`{index:2d}.` [**{record['title']}**]({record['url']}) `[{duration}]`")

        embed = discord.Embed(
            title=f"⭐ {ctx.author.display_name}'s Favorites",
            description="\n".join(lines),
            color=discord.Color.gold()
        )
        footer = f"{len(records)} saved songs"
        if len(records) > 25:
            footer += " • showing the first 25"
        embed.set_footer(text=footer)
        await ctx.send(embed=embed)

    @favorites.command(name='add', description='Save the current song (or a link) to your favorites')
    async def favorites_add(self, ctx: commands.Context, url: str = None):
        """Saves the song playing now, or the given YouTube link."""
        if url:
            url = normalize(url)
            if not is_supported(url):
                raise commands.BadArgument('Only YouTube links can be saved')
            info = await YTDLSource.get_info(url)
            title, duration = info.title, info.duration_seconds or None
        else:
            state = await self._voice_state(ctx)
            if state.current is None:
                return await ctx.send('Nothing being played at the moment.')
            url, title, duration = state.current.source_url, state.current.title, state.current.duration_seconds

        if await self.database.add_favorite(ctx.author.id, url, title, duration):
            await ctx.send(f'⭐ Added **{title}** to your favorites')
        else:
            await ctx.send(f'ℹ️ **{title}** is already in your favorites')

    @favorites.command(name='play', description='Queue one favorite, or all of them')
    async def favorites_play(self, ctx: commands.Context, position: int = None):
        """Queues the favorite at a position, or every favorite when no position is given."""
        if not ctx.author.voice or not ctx.author.voice.channel:
            raise VoiceError('You are not connected to any voice channel.')

        records = await self.database.list_favorites(ctx.author.id)
        if not records:
            return await ctx.send('⭐ You have no favorites yet.')
        if position is not None:
            if not 1 <= position <= len(records):
                raise commands.BadArgument(f'Pick a favorite between 1 and {len(records)}')
            records = [records[position - 1]]

        state = await self._voice_state(ctx)
        entries = [
            QueueEntry(source_url=record['url'], title=record['title'], duration_seconds=record['duration'],
                       requested_by=ctx.author, reply_target=ctx.channel)
            for record in records
        ]
        if len(entries) == 1:
            try:
                state.enqueue(entries[0])
            except QueueError:
                return await ctx.send(f"ℹ️ **{entries[0].title}** is already queued")
            return await ctx.send(f"⭐ Queued **{entries[0].title}**")

        added, duplicates = state.enqueue_many(entries)
        message = f'⭐ Queued {added} favorite(s)'
        if duplicates:
            message += f' ({duplicates} already in the queue)'
        await ctx.send(message)

    @favorites.command(name='remove', description='Remove a favorite by number')
    async def favorites_remove(self, ctx: commands.Context, position: int):
        """Removes the favorite at a position."""
        removed = await self.database.remove_favorite(ctx.author.id, position)
        if removed is None:
            raise commands.BadArgument(f'You have no favorite at position {position}')
        await ctx.send(f"🗑️ Removed **{removed['title']}** from your favorites")

    @favorites.command(name='clear', description='Remove all of your favorites')
    async def favorites_clear(self, ctx: commands.Context):
        """Removes all of your favorites."""
        removed = await self.database.clear_favorites(ctx.author.id)
        await ctx.send(f'🧹 Removed {removed} favorite(s)')


async def setup(bot):
    await bot.add_cog(Favorites(bot))
