"""
Configuration package for the YouTube queue music bot
Contains bot configuration and settings
"""

from .settings import (
    PREFIX,
    TOKEN,
    TIMEZONE,
    FFMPEG_EXECUTABLE,
    FFMPEG_STREAM_OPTIONS,
    FFMPEG_LOCAL_OPTIONS,
    YDL_OPTIONS,
    YTDLP_COMMAND,
    STREAM_THRESHOLD,
    MAX_DURATION,
    LONG_VIDEO_THRESHOLD,
    TEMP_DIR,
    DATABASE_PATH,
    LOG_DIR,
    PID_FILE,
    get_ffmpeg_executable,
    get_bot_intents
)

__all__ = [
    'PREFIX',
    'TOKEN',
    'TIMEZONE',
    'FFMPEG_EXECUTABLE',
    'FFMPEG_STREAM_OPTIONS',
    'FFMPEG_LOCAL_OPTIONS',
    'YDL_OPTIONS',
    'YTDLP_COMMAND',
    'STREAM_THRESHOLD',
    'MAX_DURATION',
    'LONG_VIDEO_THRESHOLD',
    'TEMP_DIR',
    'DATABASE_PATH',
    'LOG_DIR',
    'PID_FILE',
    'get_ffmpeg_executable',
    'get_bot_intents'
]
