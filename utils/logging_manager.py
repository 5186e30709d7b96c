"""
Logging Manager for the YouTube queue music bot
Named loggers, rotating log files and timezone-aware timestamps
"""
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Any, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config.settings import LOG_DIR, TIMEZONE


class TimezoneFormatter(logging.Formatter):
    """Formatter rendering record timestamps in the configured timezone"""

    def __init__(self, fmt: str, datefmt: str = '%d-%m-%y %H:%M', tz_name: str = TIMEZONE):
        super().__init__(fmt, datefmt)
        try:
            self.tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            self.tz = None

    def formatTime(self, record, datefmt=None):
        moment = datetime.fromtimestamp(record.created, tz=self.tz)
        return moment.strftime(datefmt or self.datefmt)


class LoggingManager:
    """Configures the bot's loggers and their handlers"""

    # logger family -> (file name, backup count)
    LOG_FILES = {
        'bot': ('bot.log', 5),
        'music': ('music.log', 3),
        'errors': ('errors.log', 10),
    }

    def __init__(self, log_dir: str = LOG_DIR):
        self.log_dir = Path(log_dir)
        self.max_log_size_mb = 50
        self._configured = False

        self.bot_logger = logging.getLogger('bot')
        self.music_logger = logging.getLogger('music')
        self.error_logger = logging.getLogger('errors')

    def setup(self, console_level: int = logging.INFO):
        """Create the log directory and attach handlers (safe to call twice)"""
        if self._configured:
            return
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.bot_logger.setLevel(logging.INFO)
        self.music_logger.setLevel(logging.INFO)
        self.error_logger.setLevel(logging.ERROR)

        self._setup_file_handlers()
        self._setup_console_handler(console_level)
        self._configured = True

        self.bot_logger.info("🔧 Logging system initialized")

    def _setup_file_handlers(self):
        """Setup rotating file handlers for each logger family"""
        detailed_formatter = TimezoneFormatter(
            '%(asctime)s | %(name)s | %(levelname)s | %(message)s',
            datefmt='%d-%m-%y %H:%M:%S'
        )

        for name, (filename, backups) in self.LOG_FILES.items():
            handler = RotatingFileHandler(
                self.log_dir / filename,
                maxBytes=self.max_log_size_mb * 1024 * 1024,
                backupCount=backups,
                encoding='utf-8'
            )
            handler.setFormatter(detailed_formatter)
            logging.getLogger(name).addHandler(handler)

    def _setup_console_handler(self, level: int):
        """Setup console logging in the short 'DD-MM-YY HH:MM [LEVEL]: message' shape"""
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(TimezoneFormatter('%(asctime)s [%(levelname)s]: %(message)s'))
        console_handler.setLevel(level)

        root = logging.getLogger()
        root.addHandler(console_handler)
        root.setLevel(logging.INFO)

    def log_music_event(self, event_type: str, guild_id: Optional[int], details: Dict[str, Any]):
        """Log a playback event to the music log"""
        self.music_logger.info(f"Music event: {event_type} | Guild: {guild_id} | {details}")

    def get_log_files_info(self) -> List[Dict[str, Any]]:
        """Get size information about the current log files"""
        files = []
        if not self.log_dir.exists():
            return files
        for log_file in sorted(self.log_dir.glob('*.log')):
            stat = log_file.stat()
            files.append({
                'name': log_file.name,
                'size_kb': round(stat.st_size / 1024, 1),
                'modified': datetime.fromtimestamp(stat.st_mtime).strftime('%Y-%m-%d %H:%M'),
            })
        return files


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the music.* family"""
    return logging.getLogger(f'music.{name}')


# Global logging manager instance
logging_manager = LoggingManager()
