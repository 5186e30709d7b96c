"""
Helper functions for the YouTube queue music bot
Contains utility functions that don't belong to specific classes
"""
import logging
from typing import Optional

logger = logging.getLogger('bot')

# Global bot instance reference (will be set by main bot)
_bot_instance = None

PLACEHOLDER_TITLE = 'Title unavailable'

# Common UTF-8-read-as-Latin-1 sequences seen in downloader output
MOJIBAKE_TABLE = {
    'Ã¡': 'á',
    'Ã©': 'é',
    'Ã\xad': 'í',
    'Ã­': 'í',
    'Ã³': 'ó',
    'Ãº': 'ú',
    'Ã¤': 'ä',
    'Ã«': 'ë',
    'Ã¯': 'ï',
    'Ã¶': 'ö',
    'Ã¼': 'ü',
    'Ã±': 'ñ',
    'Ã\x91': 'Ñ',
    'Ã‡': 'Ç',
    'Ã§': 'ç',
}


def set_bot_instance(bot):
    """Set the bot instance for helper functions"""
    global _bot_instance
    _bot_instance = bot


def normalize_title(title: Optional[str]) -> str:
    """Repair mis-decoded accented characters in a display title"""
    if not title:
        return PLACEHOLDER_TITLE
    for broken, fixed in MOJIBAKE_TABLE.items():
        if broken in title:
            title = title.replace(broken, fixed)
    return title.strip() or PLACEHOLDER_TITLE


def parse_time_to_seconds(value: str) -> Optional[int]:
    """Parse '90', 'MM:SS' or 'HH:MM:SS' into seconds; None when malformed"""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    parts = value.split(':')
    if len(parts) > 3:
        return None
    try:
        numbers = [int(part) for part in parts]
    except ValueError:
        return None
    if any(number < 0 for number in numbers):
        return None

    seconds = 0
    for number in numbers:
        seconds = seconds * 60 + number
    return seconds


def format_duration(seconds: Optional[float]) -> str:
    """Format seconds as M:SS or H:MM:SS ('Unknown' when not known)"""
    if seconds is None or seconds < 0:
        return 'Unknown'
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f'{hours}:{minutes:02d}:{secs:02d}'
    return f'{minutes}:{secs:02d}'


def resolve_seek_target(argument: str, position: float) -> Optional[int]:
    """Turn an absolute ('1:30') or relative ('+30', '-15') seek argument into seconds"""
    argument = (argument or '').strip()
    if argument[:1] in ('+', '-'):
        delta = parse_time_to_seconds(argument[1:])
        if delta is None:
            return None
        target = position + delta if argument[0] == '+' else position - delta
        return max(0, int(target))
    return parse_time_to_seconds(argument)


async def on_voice_state_update_handler(member, before, after):
    """Hand an unexpected disconnect of the bot to the guild's voice state"""
    if not _bot_instance or _bot_instance.user is None:
        return
    if member.id != _bot_instance.user.id:
        return
    if before.channel is None or after.channel is not None:
        return

    music_cog = _bot_instance.get_cog('Music')
    if not music_cog:
        return

    voice_state = music_cog.voice_states.get(member.guild.id)
    if voice_state is None:
        return

    logger.info(f"🔌 Disconnected from voice in guild {member.guild.id}")
    voice_state.handle_disconnect(before.channel)
