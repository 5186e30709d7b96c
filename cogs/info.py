"""
Info Cog for the YouTube queue music bot
Contains help, status and diagnostics commands
"""
import platform
from datetime import datetime

import discord
from discord.ext import commands

from config.settings import PREFIX, STREAM_THRESHOLD, MAX_DURATION, FAVORITES_ENABLED
from utils.cache_manager import cache_manager
from utils.error_handler import error_handler
from utils.helpers import format_duration
from utils.process_supervisor import process_supervisor
from utils.suggestions import suggestion_service


class Info(commands.Cog):
    """Information and help commands"""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @commands.command(name='help')
    async def help_command(self, ctx):
        """Shows this help message."""
        embed = discord.Embed(
            title="🎵 Music Bot Commands",
            description="Here are all the available commands:",
            color=discord.Color.blue()
        )

        embed.add_field(
            name="🎵 **Music Commands**",
            value=f"""
    `{PREFIX}play <song/url/playlist>` - Queue a song or a whole playlist
    `{PREFIX}playnext <song/url>` - Queue a song right after the current one
    `{PREFIX}skip [count]` - Skip the current song (or several)
    `{PREFIX}pause` / `{PREFIX}resume` - Pause or resume playback
    `{PREFIX}stop` - Stop music, clear the queue and leave
    `{PREFIX}now` - Show the current song with controls
    `{PREFIX}seek <1:30|+30|-10>` - Jump within a downloaded song
    `{PREFIX}volume [1-100]` - Set/check volume
            """,
            inline=False
        )

        embed.add_field(
            name="📋 **Queue Commands**",
            value=f"""
    `{PREFIX}queue [page]` - Show the queue, 10 songs per page
    `{PREFIX}move <from> <to>` - Move a song in the queue
    `{PREFIX}remove <number>` - Remove a song from the queue
    `{PREFIX}shuffle` - Shuffle the queue
    `{PREFIX}loop` - Repeat the current song
    `{PREFIX}repeat` - Repeat the whole queue
            """,
            inline=False
        )

        embed.add_field(
            name="🎛️ **Sound**",
            value=f"""
    `{PREFIX}equalizer` - Show equalizer settings
    `{PREFIX}bass <-10..10>` • `{PREFIX}treble <-10..10>` • `{PREFIX}speed <0.5..2.0>`
    `{PREFIX}preset <name>` - Apply a preset (rock, pop, nightcore...)
            """,
            inline=False
        )

        extras = f"`{PREFIX}join` / `{PREFIX}leave` - Join or leave your voice channel\n"
        if FAVORITES_ENABLED:
            extras += f"`{PREFIX}favorites [add|play|remove|clear]` - Your saved songs\n"
        if suggestion_service.available:
            extras += f"`{PREFIX}suggest` - AI suggestions similar to the current song\n"
        extras += f"`{PREFIX}status` • `{PREFIX}diagnostics` • `{PREFIX}errors` - Bot status and troubleshooting"
        embed.add_field(name="🔧 **More**", value=extras, inline=False)

        embed.add_field(
            name="📝 **How songs are played**",
            value=f"Songs longer than {format_duration(STREAM_THRESHOLD)} are streamed (📡), shorter ones are "
                  f"downloaded first (💾). Songs longer than {format_duration(MAX_DURATION)} can't be played.",
            inline=False
        )

        await ctx.send(embed=embed)

    def _music_cog(self):
        return self.bot.get_cog('Music')

    @commands.command(name='status', aliases=['stats', 'statistics'])
    async def status_command(self, ctx):
        """Shows bot statistics and current activity."""
        embed = discord.Embed(
            title="📊 Bot Status",
            color=discord.Color.purple(),
            timestamp=datetime.now()
        )

        embed.add_field(
            name="🌐 Server Info",
            value=f"**Servers:** {len(self.bot.guilds)}\n**Prefix:** `{PREFIX}`\n**Commands:** {len(self.bot.commands)}",
            inline=True
        )

        active_guilds = 0
        total_queue = 0
        music_cog = self._music_cog()
        if music_cog:
            for voice_state in music_cog.voice_states.values():
                if voice_state.is_playing:
                    active_guilds += 1
                total_queue += len(voice_state.songs)

        supervisor_stats = process_supervisor.get_stats()
        embed.add_field(
            name="🎧 Current Activity",
            value=f"**Active Music:** {active_guilds} servers\n**Total Queue:** {total_queue} songs\n"
                  f"**Downloads Running:** {supervisor_stats['active_processes']}\n"
                  f"**Downloads Total:** {supervisor_stats['total_runs']}",
            inline=True
        )

        cache_stats = cache_manager.get_comprehensive_stats()
        metadata = cache_stats['metadata_cache']
        embed.add_field(
            name="⚡ Metadata Cache",
            value=f"**Entries:** {metadata['size']}/{metadata['max_size']}\n"
                  f"**Hit Rate:** {metadata['hit_rate']}%\n"
                  f"**Uptime:** {cache_stats['uptime_formatted']}",
            inline=True
        )

        embed.add_field(
            name="🚨 Errors",
            value=f"**Total:** {error_handler.get_error_statistics()['total_errors']}",
            inline=True
        )

        embed.add_field(
            name="⚙️ Platform",
            value=f"**Platform:** {platform.system()}\n**Python:** {platform.python_version()}\n"
                  f"**Discord.py:** {discord.__version__}",
            inline=True
        )

        embed.set_footer(text=f"Use {PREFIX}help for commands")
        await ctx.send(embed=embed)

    @commands.command(name='errors', aliases=['error_stats', 'errstats'])
    @commands.has_permissions(manage_guild=True)
    async def error_statistics(self, ctx):
        """Shows error statistics and most common errors."""
        stats = error_handler.get_error_statistics()

        embed = discord.Embed(
            title="🚨 Error Statistics",
            description="Error tracking and analysis:",
            color=discord.Color.red()
        )

        embed.add_field(
            name="📊 Overview",
            value=f"**Total Errors:** {stats['total_errors']}\n"
                  f"**Categories:** {len(stats['by_category'])}",
            inline=True
        )

        if stats['by_category']:
            category_text = ""
            for category, errors in stats['by_category'].items():
                category_name = category.replace('_', ' ').title()
                category_text += f"• **{category_name}:** {sum(errors.values())}\n"
            embed.add_field(name="📂 By Category", value=category_text[:1024], inline=True)

        if stats['most_common']:
            common_errors = ""
            for i, error in enumerate(stats['most_common'][:5], 1):
                category_name = error['category'].replace('_', ' ').title()
                common_errors += f"{i}. **{error['type']}** ({category_name}): {error['count']}\n"
            embed.add_field(name="🔥 Most Common", value=common_errors, inline=False)
        else:
            embed.add_field(name="🎉 Status", value="No errors recorded yet!", inline=False)

        await ctx.send(embed=embed)

    @commands.command(name='diagnostics', aliases=['diag', 'debug'])
    @commands.guild_only()
    async def diagnostics(self, ctx):
        """Shows the player state and the last download diagnostics for this server."""
        music_cog = self._music_cog()
        voice_state = music_cog.voice_states.get(ctx.guild.id) if music_cog else None
        if voice_state is None:
            return await ctx.send('🔧 No player has been started in this server yet.')

        embed = discord.Embed(title="🔧 Player Diagnostics", color=discord.Color.blue())

        voice_status = "❌ Not Connected"
        if voice_state.voice is not None and voice_state.voice.is_connected():
            voice_status = f"✅ Connected to {voice_state.voice.channel.name}"
        embed.add_field(name="🔊 Voice Connection", value=voice_status, inline=False)
        embed.add_field(name="⚙️ State", value=voice_state.state.value, inline=True)
        embed.add_field(name="📋 Queue", value=f"{len(voice_state.songs)} songs", inline=True)
        embed.add_field(
            name="🔁 Modes",
            value=f"Repeat: {'On' if voice_state.repeat else 'Off'} • Loop: {'On' if voice_state.loop else 'Off'}",
            inline=True
        )

        current = voice_state.current
        embed.add_field(name="▶️ Current Song", value=current.title[:60] if current else "None", inline=False)

        diag = voice_state.last_diagnostics
        if diag:
            embed.add_field(
                name="⬇️ Last Download",
                value=f"**{diag['title'][:60]}**\nStatus: `{diag['status']}` • Exit: `{diag['exit_code']}`\n"
                      f"Classified as: `{diag['rule']}` • Attempt {diag['attempt']}",
                inline=False
            )
            tail = diag['stderr_tail'].strip()[-900:] or '(no output)'
            embed.add_field(name="📄 Downloader Output", value=f"```{tail}```", inline=False)
        else:
            embed.add_field(name="⬇️ Last Download", value="No downloads yet", inline=False)

        await ctx.send(embed=embed)


async def setup(bot):
    """Setup function for the cog"""
    await bot.add_cog(Info(bot))
