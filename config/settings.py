"""
Configuration settings for the YouTube queue music bot
Contains all constants, environment variables, and configuration options
"""
import os
import shutil
import sys
from dotenv import load_dotenv

# Load environment variables
load_dotenv('token.env')


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back to the default"""
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    try:
        return int(value)
    except ValueError:
        print(f"⚠️ Ignoring invalid value for {name}: {value!r}")
        return default


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean environment variable (1/true/yes/on)"""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# Bot configuration
PREFIX = os.getenv('PREFIX', '!')
TOKEN = os.getenv('TOKEN')
TIMEZONE = os.getenv('TIMEZONE', 'America/Santiago')

# Duration policy (seconds)
STREAM_THRESHOLD = _env_int('STREAM_THRESHOLD', 900)            # longer than 15 min -> stream
MAX_DURATION = _env_int('MAX_DURATION', 14400)                  # longer than 4 h -> rejected
LONG_VIDEO_THRESHOLD = _env_int('LONG_VIDEO_DURATION_THRESHOLD', 3600)

# Subprocess and lookup timeouts (seconds)
DOWNLOAD_TIMEOUT = _env_int('DOWNLOAD_TIMEOUT', 180)
DOWNLOAD_TIMEOUT_LONG = _env_int('DOWNLOAD_TIMEOUT_LONG', 1800)
STALL_TIMEOUT = _env_int('STALL_TIMEOUT', 300)
SEEK_DOWNLOAD_TIMEOUT = _env_int('SEEK_DOWNLOAD_TIMEOUT', 60)
METADATA_TIMEOUT = _env_int('METADATA_TIMEOUT', 10)
STREAM_URL_TIMEOUT = _env_int('STREAM_URL_TIMEOUT', 15)
SEARCH_TIMEOUT = _env_int('SEARCH_TIMEOUT', 10)
PLAYLIST_TIMEOUT = _env_int('PLAYLIST_TIMEOUT', 60)
VOICE_CONNECT_TIMEOUT = _env_int('VOICE_CONNECT_TIMEOUT', 10)
RECONNECT_DELAY = _env_int('RECONNECT_DELAY', 5)

# Download validation and retry policy
MIN_ARTIFACT_BYTES = _env_int('MIN_ARTIFACT_BYTES', 10000)
MAX_RETRY_ATTEMPTS = _env_int('MAX_RETRY_ATTEMPTS', 3)
RETRY_BACKOFF_STEP = _env_int('RETRY_BACKOFF_STEP', 5)

# Metadata cache
METADATA_CACHE_TTL = _env_int('METADATA_CACHE_TTL', 1800)       # 30 minutes
CACHE_SWEEP_INTERVAL = _env_int('CACHE_SWEEP_INTERVAL', 600)    # 10 minutes

# Queue presentation and playback
QUEUE_PAGE_SIZE = 10
MAX_SKIP_COUNT = 20
DEFAULT_VOLUME = 0.5

# Optional capabilities
STREAMING_ENABLED = _env_flag('STREAMING_ENABLED', True)
EQUALIZER_ENABLED = _env_flag('EQUALIZER_ENABLED', True)
FAVORITES_ENABLED = _env_flag('FAVORITES_ENABLED', True)
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')

# Filesystem locations
TEMP_DIR = os.getenv('TEMP_DIR', 'temp')
DATA_DIR = os.getenv('DATA_DIR', 'data')
DATABASE_PATH = os.path.join(DATA_DIR, 'music_bot.db')
LOG_DIR = os.getenv('LOG_DIR', 'logs')
PID_FILE = os.getenv('PID_FILE', 'bot.pid')
TEMP_FILE_PREFIX = 'temp_audio_'

# External downloader: run the installed yt-dlp module with the current interpreter
YTDLP_COMMAND = [sys.executable, '-m', 'yt_dlp']


# FFmpeg executable path (local first, then system for hosting platforms)
def get_ffmpeg_executable():
    """Try to use local FFmpeg first, then system FFmpeg"""
    local_ffmpeg = os.path.join(os.path.dirname(__file__), '..', 'ffmpeg', 'ffmpeg.exe')
    if os.path.exists(local_ffmpeg):
        return local_ffmpeg

    return shutil.which('ffmpeg') or 'ffmpeg'


FFMPEG_EXECUTABLE = get_ffmpeg_executable()

# FFmpeg options for remote (streamed) sources
FFMPEG_STREAM_OPTIONS = {
    'before_options': '-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5',
    'options': '-vn'
}

# FFmpeg options for locally downloaded artifacts
FFMPEG_LOCAL_OPTIONS = {
    'before_options': '',
    'options': '-vn'
}

# yt-dlp options for in-process lookups (metadata, stream URL, search)
YDL_OPTIONS = {
    'format': 'bestaudio/best',
    'noplaylist': True,
    'nocheckcertificate': True,
    'ignoreerrors': False,
    'logtostderr': False,
    'quiet': True,
    'no_warnings': True,
    'source_address': '0.0.0.0',
    'socket_timeout': 15,
    'retries': 3,
}

# yt-dlp options for flat playlist enumeration
YDL_PLAYLIST_OPTIONS = {
    **YDL_OPTIONS,
    'noplaylist': False,
    'extract_flat': 'in_playlist',
}


# Discord Intents
import discord


def get_bot_intents():
    """Get required Discord intents"""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.voice_states = True
    return intents
