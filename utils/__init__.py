"""
Utils package for the YouTube queue music bot
Contains the playback components and helper functions
"""

from .exceptions import (
    MusicBotError, VoiceError, YTDLError, QueueError,
    DuplicateEntryError, QueuePositionError, NotEnoughEntriesError, SeekError
)
from .song import QueueEntry
from .song_queue import SongQueue
from .ytdl_source import YTDLSource, MediaInfo
from .voice_state import VoiceState, PlayerState
from .helpers import set_bot_instance, on_voice_state_update_handler, format_duration
from .error_handler import error_handler
from .cache_manager import cache_manager
from .database_manager import database_manager
from .logging_manager import logging_manager
from .process_supervisor import process_supervisor
from .audio_filters import audio_filters
from .suggestions import suggestion_service

__all__ = [
    'MusicBotError',
    'VoiceError',
    'YTDLError',
    'QueueError',
    'DuplicateEntryError',
    'QueuePositionError',
    'NotEnoughEntriesError',
    'SeekError',
    'QueueEntry',
    'SongQueue',
    'YTDLSource',
    'MediaInfo',
    'VoiceState',
    'PlayerState',
    'set_bot_instance',
    'on_voice_state_update_handler',
    'format_duration',
    'error_handler',
    'cache_manager',
    'database_manager',
    'logging_manager',
    'process_supervisor',
    'audio_filters',
    'suggestion_service',
]
