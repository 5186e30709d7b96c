"""
Centralized Error Handler for the YouTube queue music bot
Handles command errors with user-friendly messages and proper logging
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

import discord
from discord.ext import commands

from config.settings import PREFIX
from utils.exceptions import VoiceError, YTDLError, QueueError, SeekError, DuplicateEntryError, QueuePositionError
from utils.suggestions import SuggestionsUnavailable

logger = logging.getLogger('errors')


class ErrorCategory:
    """Error categories with different handling approaches"""
    USER_ERROR = "user_error"           # User mistakes (wrong command usage, etc.)
    QUEUE_ERROR = "queue_error"         # Queue edits that cannot be applied
    VOICE_ERROR = "voice_error"         # Voice connection issues
    MUSIC_ERROR = "music_error"         # Lookup/playback issues
    PERMISSION_ERROR = "permission_error"  # Missing permissions
    SYSTEM_ERROR = "system_error"       # Internal bot errors
    NETWORK_ERROR = "network_error"     # Network/API issues
    UNKNOWN_ERROR = "unknown_error"     # Unexpected errors


class MusicBotErrorHandler:
    """Centralized error handling system"""

    def __init__(self):
        self.error_counts = {}
        self.error_messages = {
            ErrorCategory.USER_ERROR: {
                'title': '❌ Command Error',
                'color': discord.Color.orange(),
                'help_text': f'Check your command usage with `{PREFIX}help`'
            },
            ErrorCategory.QUEUE_ERROR: {
                'title': '📋 Queue Error',
                'color': discord.Color.orange(),
                'help_text': f'Use `{PREFIX}queue` to see the current positions'
            },
            ErrorCategory.VOICE_ERROR: {
                'title': '🔊 Voice Error',
                'color': discord.Color.red(),
                'help_text': 'Make sure you\'re in a voice channel and I have permissions'
            },
            ErrorCategory.MUSIC_ERROR: {
                'title': '🎵 Music Error',
                'color': discord.Color.red(),
                'help_text': 'Try a different song or check if the URL is valid'
            },
            ErrorCategory.PERMISSION_ERROR: {
                'title': '🔒 Permission Error',
                'color': discord.Color.red(),
                'help_text': 'I need proper permissions to execute this command'
            },
            ErrorCategory.SYSTEM_ERROR: {
                'title': '⚙️ System Error',
                'color': discord.Color.dark_red(),
                'help_text': 'An internal error occurred. Please try again later'
            },
            ErrorCategory.NETWORK_ERROR: {
                'title': '🌐 Network Error',
                'color': discord.Color.orange(),
                'help_text': 'Network or service issues. Please try again'
            },
            ErrorCategory.UNKNOWN_ERROR: {
                'title': '❓ Unexpected Error',
                'color': discord.Color.dark_red(),
                'help_text': 'An unexpected error occurred. Please report this'
            }
        }

    @staticmethod
    def unwrap(error: Exception) -> Exception:
        """The exception a command actually raised"""
        while isinstance(error, (commands.CommandInvokeError, commands.HybridCommandError)) and error.original:
            error = error.original
        return error

    def categorize_error(self, error: Exception, ctx: Optional[commands.Context] = None) -> str:
        """Categorize error based on type and context"""
        error = self.unwrap(error)

        if isinstance(error, (commands.MissingPermissions, commands.BotMissingPermissions)):
            return ErrorCategory.PERMISSION_ERROR
        if isinstance(error, (commands.UserInputError, commands.CommandNotFound, commands.NoPrivateMessage,
                              commands.DisabledCommand, commands.CommandOnCooldown, commands.CheckFailure)):
            return ErrorCategory.USER_ERROR

        # Music bot specific errors
        if isinstance(error, QueueError):
            return ErrorCategory.QUEUE_ERROR
        if isinstance(error, VoiceError):
            return ErrorCategory.VOICE_ERROR
        if isinstance(error, (YTDLError, SeekError, SuggestionsUnavailable)):
            return ErrorCategory.MUSIC_ERROR
        if isinstance(error, ValueError):
            return ErrorCategory.USER_ERROR

        # Network/connection errors
        if isinstance(error, (ConnectionError, TimeoutError)):
            return ErrorCategory.NETWORK_ERROR
        lowered = str(error).lower()
        if 'network' in lowered or 'connection' in lowered or 'timeout' in lowered:
            return ErrorCategory.NETWORK_ERROR

        if isinstance(error, discord.Forbidden):
            return ErrorCategory.PERMISSION_ERROR
        if isinstance(error, discord.NotFound):
            return ErrorCategory.USER_ERROR
        if isinstance(error, (MemoryError, OSError)):
            return ErrorCategory.SYSTEM_ERROR

        return ErrorCategory.UNKNOWN_ERROR

    def get_user_friendly_message(self, error: Exception, category: str,
                                  ctx: Optional[commands.Context] = None) -> Dict[str, Any]:
        """Generate user-friendly error message"""
        base_info = self.error_messages.get(category, self.error_messages[ErrorCategory.UNKNOWN_ERROR])
        return {
            'title': base_info['title'],
            'description': self._get_specific_message(self.unwrap(error), category, ctx),
            'color': base_info['color'],
            'help_text': base_info['help_text']
        }

    def _get_specific_message(self, error: Exception, category: str, ctx: Optional[commands.Context] = None) -> str:
        """Get specific error message based on error type"""

        if category == ErrorCategory.USER_ERROR:
            if isinstance(error, commands.MissingRequiredArgument):
                return f"Missing required parameter: `{error.param.name}`"
            elif isinstance(error, commands.BadArgument):
                return f"Invalid argument provided: {error}"
            elif isinstance(error, commands.CommandNotFound):
                return f"Command not found. Use `{PREFIX}help` to see available commands."
            elif isinstance(error, commands.NoPrivateMessage):
                return "This command cannot be used in direct messages."
            elif isinstance(error, commands.DisabledCommand):
                return "This command is currently disabled."
            elif isinstance(error, commands.CommandOnCooldown):
                return f"Command is on cooldown. Try again in {error.retry_after:.1f} seconds."
            return str(error) or "Invalid command usage."

        elif category == ErrorCategory.QUEUE_ERROR:
            if isinstance(error, DuplicateEntryError):
                return "That song is already in the queue or playing right now."
            elif isinstance(error, QueuePositionError):
                return f"There is no song at position {error.position} (the queue has {error.length})."
            return str(error)

        elif category == ErrorCategory.VOICE_ERROR:
            if "not connected" in str(error).lower():
                return "You need to be in a voice channel to use this command."
            elif "already in" in str(error).lower():
                return "I'm already connected to a different voice channel."
            return f"Voice connection issue: {error}"

        elif category == ErrorCategory.MUSIC_ERROR:
            if "couldn't find" in str(error).lower():
                return "Couldn't find any music matching your search."
            elif "unavailable" in str(error).lower():
                return "This music is unavailable or has been removed."
            elif "private" in str(error).lower():
                return "This music is private and cannot be played."
            return str(error)

        elif category == ErrorCategory.PERMISSION_ERROR:
            if isinstance(error, commands.MissingPermissions):
                return f"You need these permissions: {', '.join(error.missing_permissions)}"
            elif isinstance(error, commands.BotMissingPermissions):
                return f"I need these permissions: {', '.join(error.missing_permissions)}"
            return "Permission denied for this operation."

        elif category == ErrorCategory.NETWORK_ERROR:
            return "Network connection issue. Please try again in a moment."

        elif category == ErrorCategory.SYSTEM_ERROR:
            return "Internal system error. The issue has been logged."

        return f"An unexpected error occurred: {str(error)[:100]}"

    async def handle_error(self, error: Exception, ctx: Optional[commands.Context] = None,
                           additional_info: Optional[str] = None) -> bool:
        """Main error handling method"""
        category = self.categorize_error(error, ctx)
        self._update_error_stats(category, self.unwrap(error))
        self._log_error(error, category, ctx, additional_info)

        if ctx is not None and ctx.channel is not None:
            try:
                await self._send_error_message(error, category, ctx)
            except discord.HTTPException as e:
                logger.critical(f"Could not report an error to the channel: {e}")
                return False
        return True

    def _update_error_stats(self, category: str, error: Exception):
        """Update error statistics for monitoring"""
        by_type = self.error_counts.setdefault(category, {})
        error_type = type(error).__name__
        by_type[error_type] = by_type.get(error_type, 0) + 1

    def _log_error(self, error: Exception, category: str, ctx: Optional[commands.Context],
                   additional_info: Optional[str]):
        """Log error with appropriate level"""
        original = self.unwrap(error)
        error_info = {
            'category': category,
            'error_type': type(original).__name__,
            'error_message': str(original),
            'guild': ctx.guild.name if ctx and ctx.guild else 'DM',
            'user': str(ctx.author) if ctx else 'System',
            'command': ctx.command.name if ctx and ctx.command else 'Unknown',
            'additional_info': additional_info
        }

        if category in [ErrorCategory.SYSTEM_ERROR, ErrorCategory.UNKNOWN_ERROR]:
            logger.error(f"Error: {error_info}", exc_info=original)
        elif category == ErrorCategory.NETWORK_ERROR:
            logger.warning(f"Network Error: {error_info}")
        else:
            logger.info(f"User Error: {error_info}")

    async def _send_error_message(self, error: Exception, category: str, ctx: commands.Context):
        """Send user-friendly error message"""
        message_info = self.get_user_friendly_message(error, category, ctx)
        now = datetime.now(timezone.utc)

        embed = discord.Embed(
            title=message_info['title'],
            description=message_info['description'],
            color=message_info['color'],
            timestamp=now
        )
        embed.add_field(name="💡 Help", value=message_info['help_text'], inline=False)

        if ctx.command:
            embed.add_field(name="📝 Command", value=f"`{PREFIX}{ctx.command.qualified_name}`", inline=True)

        if category in [ErrorCategory.SYSTEM_ERROR, ErrorCategory.UNKNOWN_ERROR]:
            embed.set_footer(text=f"Error ID: {now.strftime('%Y%m%d_%H%M%S')}")

        try:
            await ctx.send(embed=embed)
        except discord.Forbidden:
            # Fallback to simple message if embed permissions missing
            await ctx.send(f"{message_info['title']}: {message_info['description']}")

    def get_error_statistics(self) -> Dict[str, Any]:
        """Get error statistics for monitoring"""
        total_errors = sum(sum(counts.values()) for counts in self.error_counts.values())
        return {
            'total_errors': total_errors,
            'by_category': dict(self.error_counts),
            'most_common': self._get_most_common_errors()
        }

    def _get_most_common_errors(self) -> list:
        """Get most common errors across all categories"""
        all_errors = [
            {'category': category, 'type': error_type, 'count': count}
            for category, errors in self.error_counts.items()
            for error_type, count in errors.items()
        ]
        return sorted(all_errors, key=lambda x: x['count'], reverse=True)[:5]


# Global error handler instance
error_handler = MusicBotErrorHandler()
