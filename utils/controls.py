"""
Player controls for the YouTube queue music bot
Progress bars, the paginated queue embed and the button view attached to "Now playing"
"""
import logging
import math
from typing import Optional

import discord

from config.settings import QUEUE_PAGE_SIZE
from utils.database_manager import database_manager
from utils.exceptions import QueueError
from utils.helpers import format_duration
from utils.suggestions import SuggestionsUnavailable, suggestion_service

logger = logging.getLogger('music.controls')

VOLUME_STEP = 10


class ProgressBar:
    """Create visual progress bars for Discord embeds"""

    @staticmethod
    def create_bar(progress: float, length: int = 20, fill_char: str = "█", empty_char: str = "░") -> str:
        """Create a visual progress bar"""
        progress = min(max(progress, 0), 1)
        filled_length = int(length * progress)
        return f"`{fill_char * filled_length}{empty_char * (length - filled_length)}`"

    @staticmethod
    def create_volume_bar(volume: float, length: int = 20) -> str:
        return ProgressBar.create_bar(volume, length)

    @staticmethod
    def create_time_bar(current: int, total: Optional[int], length: int = 25) -> str:
        """Create a time progress bar with timestamps"""
        if not total or total <= 0:
            return f"`{'░' * length}` `{format_duration(current)} / Unknown`"
        bar = ProgressBar.create_bar(current / total, length)
        return f"{bar} `{format_duration(current)} / {format_duration(total)}`"


def page_count(total: int, page_size: int = QUEUE_PAGE_SIZE) -> int:
    return max(1, math.ceil(total / page_size))


def queue_page_embed(voice_state, page: int = 1, page_size: int = QUEUE_PAGE_SIZE) -> discord.Embed:
    """One page of the queue; the page is clamped into range"""
    entries = list(voice_state.songs)
    total = len(entries)
    pages = page_count(total, page_size)
    page = min(max(page, 1), pages)

    embed = discord.Embed(title="📋 Music Queue", color=discord.Color.blue())

    current = voice_state.current
    if current is not None:
        embed.add_field(
            name="▶️ Currently Playing",
            value=f"**{current.title}**\n{ProgressBar.create_time_bar(voice_state.seek_position, current.duration_seconds)}",
            inline=False
        )

    if total == 0:
        embed.description = "📭 **Queue is empty**\nAdd songs with `play <song name or URL>`"
        return embed

    start = (page - 1) * page_size
    lines = []
    for index, entry in enumerate(entries[start:start + page_size], start=start + 1):
        marker = '📡' if entry.use_streaming else '💾'
        duration = format_duration(entry.duration_seconds) if entry.duration_known else 'Unknown'
        playing = ' ▶️' if entry is current else ''
        lines.append(f"`{index:2d}.` {marker} [**{entry.title}**]({entry.source_url}) `[{duration}]`{playing}")
    embed.description = "\n".join(lines)

    modes = []
    if voice_state.repeat:
        modes.append('🔁 Repeat')
    if voice_state.loop:
        modes.append('🔂 Loop')
    if modes:
        embed.add_field(name="Modes", value=' • '.join(modes), inline=True)
    embed.add_field(
        name="🔊 Volume",
        value=f"{ProgressBar.create_volume_bar(voice_state.volume, 10)} {round(voice_state.volume * 100)}%",
        inline=True
    )

    embed.set_footer(text=f"Page {page}/{pages} • {total} total songs • 📡 streaming 💾 download")
    return embed


class PlayerControlsView(discord.ui.View):
    """Buttons under the "Now playing" message; every action goes through the voice state"""

    def __init__(self, voice_state, favorites=None, suggestions=None, timeout: Optional[float] = None):
        super().__init__(timeout=timeout)
        self.voice_state = voice_state
        self.favorites = favorites or database_manager
        self.suggestions = suggestions or suggestion_service
        self.suggest_btn.disabled = not self.suggestions.available

    async def _reply(self, interaction: discord.Interaction, content: str = None, **kwargs):
        await interaction.response.send_message(content, ephemeral=True, **kwargs)

    # Row 0: transport

    @discord.ui.button(emoji="⏯️", style=discord.ButtonStyle.secondary, row=0)
    async def pause_resume_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        if self.voice_state.pause():
            await self._reply(interaction, "⏸️ Paused")
        elif self.voice_state.resume():
            await self._reply(interaction, "▶️ Resumed")
        else:
            await self._reply(interaction, "❌ Nothing is playing right now.")

    @discord.ui.button(emoji="⏭️", style=discord.ButtonStyle.secondary, row=0)
    async def skip_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        if self.voice_state.skip(1):
            await self._reply(interaction, "⏭️ Skipped")
        else:
            await self._reply(interaction, "❌ Nothing is playing right now.")

    @discord.ui.button(emoji="⏹️", style=discord.ButtonStyle.danger, row=0)
    async def stop_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        await interaction.response.defer()
        await self.voice_state.stop()
        await interaction.followup.send("⏹️ Stopped and cleared the queue.", ephemeral=True)

    @discord.ui.button(emoji="🔀", style=discord.ButtonStyle.secondary, row=0)
    async def shuffle_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        try:
            self.voice_state.shuffle()
        except QueueError as e:
            await self._reply(interaction, f"❌ {e}")
            return
        await self._reply(interaction, "🔀 Shuffled the queue")

    # Row 1: modes and info

    @discord.ui.button(emoji="🔁", style=discord.ButtonStyle.secondary, row=1)
    async def repeat_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        enabled = self.voice_state.toggle_repeat()
        await self._reply(interaction, f"🔁 Repeat {'enabled' if enabled else 'disabled'}")

    @discord.ui.button(emoji="🔂", style=discord.ButtonStyle.secondary, row=1)
    async def loop_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        enabled = self.voice_state.toggle_loop()
        await self._reply(interaction, f"🔂 Loop {'enabled' if enabled else 'disabled'}")

    @discord.ui.button(emoji="🎵", style=discord.ButtonStyle.secondary, row=1)
    async def now_playing_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        current = self.voice_state.current
        if current is None:
            await self._reply(interaction, "❌ Nothing is playing right now.")
            return
        await self._reply(interaction, embed=current.create_embed(position=self.voice_state.seek_position))

    @discord.ui.button(emoji="📋", style=discord.ButtonStyle.secondary, row=1)
    async def queue_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self._reply(interaction, embed=queue_page_embed(self.voice_state))

    # Row 2: volume, favorites, suggestions

    @discord.ui.button(emoji="🔉", style=discord.ButtonStyle.secondary, row=2)
    async def vol_down_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        percent = max(1, round(self.voice_state.volume * 100) - VOLUME_STEP)
        self.voice_state.set_volume(percent)
        await self._reply(interaction, f"🔊 Volume {percent}%")

    @discord.ui.button(emoji="🔊", style=discord.ButtonStyle.secondary, row=2)
    async def vol_up_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        percent = min(100, round(self.voice_state.volume * 100) + VOLUME_STEP)
        self.voice_state.set_volume(percent)
        await self._reply(interaction, f"🔊 Volume {percent}%")

    @discord.ui.button(emoji="⭐", style=discord.ButtonStyle.secondary, row=2)
    async def favorite_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        current = self.voice_state.current
        if current is None:
            await self._reply(interaction, "❌ Nothing is playing right now.")
            return
        added = await self.favorites.add_favorite(
            interaction.user.id, current.source_url, current.title, current.duration_seconds
        )
        if added:
            await self._reply(interaction, f"⭐ Added **{current.title}** to your favorites")
        else:
            await self._reply(interaction, f"ℹ️ **{current.title}** is already in your favorites")

    @discord.ui.button(emoji="🤖", style=discord.ButtonStyle.primary, row=2)
    async def suggest_btn(self, interaction: discord.Interaction, button: discord.ui.Button):
        current = self.voice_state.current
        if current is None:
            await self._reply(interaction, "❌ Nothing is playing right now.")
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            suggestions = await self.suggestions.suggest_similar(current.title)
        except SuggestionsUnavailable as e:
            await interaction.followup.send(f"❌ {e}", ephemeral=True)
            return

        if not suggestions:
            await interaction.followup.send("🤷 No suggestions this time.", ephemeral=True)
            return
        embed = discord.Embed(
            title=f"🤖 Similar to {current.title}",
            description="\n".join(f"`{i}.` {line}" for i, line in enumerate(suggestions, start=1)),
            color=discord.Color.purple()
        )
        embed.set_footer(text="Queue one with: play <Artist - Title>")
        await interaction.followup.send(embed=embed, ephemeral=True)
