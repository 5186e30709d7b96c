"""
QueueEntry class for the YouTube queue music bot
Handles song representation, persistence records and embed creation
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

import discord

from utils.helpers import format_duration, PLACEHOLDER_TITLE
from utils.retry_policy import FormatStrategy


@dataclass(eq=False)
class QueueEntry:
    """One requested song; source_url is its identity for deduplication"""
    source_url: str
    title: str = PLACEHOLDER_TITLE
    duration_seconds: Optional[int] = None
    use_streaming: bool = False
    requested_by: Any = None
    reply_target: Any = None
    format_override: Optional[FormatStrategy] = None
    retry_count: int = 0
    force_alternate_format: bool = False

    @property
    def duration_known(self) -> bool:
        return self.duration_seconds is not None and self.duration_seconds > 0

    @property
    def requester_name(self) -> str:
        if self.requested_by is None:
            return 'Unknown'
        return getattr(self.requested_by, 'display_name', None) or str(self.requested_by)

    def reset_attempts(self):
        """Forget retry bookkeeping before a fresh round of attempts"""
        self.retry_count = 0
        self.format_override = None
        self.force_alternate_format = False

    def to_record(self) -> Dict[str, Any]:
        """Persistable form; requester and reply target are not stored"""
        return {
            'url': self.source_url,
            'title': self.title,
            'duration': self.duration_seconds,
            'use_streaming': self.use_streaming,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'QueueEntry':
        return cls(
            source_url=record['url'],
            title=record.get('title') or PLACEHOLDER_TITLE,
            duration_seconds=record.get('duration'),
            use_streaming=bool(record.get('use_streaming', False)),
        )

    def copy(self) -> 'QueueEntry':
        """Fresh entry for the same song (used for repeat snapshots)"""
        return QueueEntry(
            source_url=self.source_url,
            title=self.title,
            duration_seconds=self.duration_seconds,
            use_streaming=self.use_streaming,
            requested_by=self.requested_by,
            reply_target=self.reply_target,
        )

    def create_embed(self, title: str = 'Now playing', position: Optional[float] = None):
        """Create a Discord embed for the song"""
        duration = format_duration(self.duration_seconds) if self.duration_known else 'Unknown'
        if position is not None and self.duration_known:
            duration = f'{format_duration(position)} / {duration}'

        embed = (discord.Embed(title=title,
                               description='```css\n{0.title}\n```'.format(self),
                               color=discord.Color.blurple())
                 .add_field(name='Duration', value=duration)
                 .add_field(name='Requested by', value=self.requester_name)
                 .add_field(name='Mode', value='📡 Streaming' if self.use_streaming else '💾 Download')
                 .add_field(name='URL', value='[Click]({0.source_url})'.format(self), inline=False))

        return embed
