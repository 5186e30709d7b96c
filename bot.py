"""
YouTube Queue Music Bot - Main Entry Point
Per-server YouTube queues with streaming for long videos and downloads for short ones
"""
import logging
import sys

from discord.ext import commands

# Import configuration
from config import TOKEN, PREFIX, TEMP_DIR, get_bot_intents
from config.settings import CACHE_SWEEP_INTERVAL, FFMPEG_EXECUTABLE, FAVORITES_ENABLED

# Import utility functions
from utils import set_bot_instance, on_voice_state_update_handler
from utils import janitor
from utils.cache_manager import cache_manager
from utils.database_manager import database_manager
from utils.error_handler import error_handler
from utils.logging_manager import logging_manager
from utils.maintenance import remove_pid_file, write_pid_file
from utils.process_supervisor import process_supervisor

# Import cogs
from cogs import Music, Favorites, Info

logger = logging.getLogger('bot')


class MusicBot(commands.Bot):
    """Main bot class"""

    def __init__(self):
        # Initialize bot with proper intents
        intents = get_bot_intents()
        super().__init__(command_prefix=PREFIX, intents=intents)

        # Remove default help command to use our custom one
        self.remove_command('help')

        # Set up bot instance for helper functions
        set_bot_instance(self)

    async def setup_hook(self):
        """Called when the bot is starting up"""
        logger.info("🔧 Setting up bot...")

        removed = janitor.sweep_orphans(TEMP_DIR)
        if removed:
            logger.info(f"🧹 Removed {removed} temp file(s) left by a previous run")

        await database_manager.initialize_database()
        await cache_manager.start_background_cleanup(interval=CACHE_SWEEP_INTERVAL)

        # Load cogs
        await self.add_cog(Music(self))
        if FAVORITES_ENABLED:
            await self.add_cog(Favorites(self))
        await self.add_cog(Info(self))

        logger.info("✅ All cogs loaded successfully")

    async def on_ready(self):
        """Called when bot is ready and connected"""
        logger.info(f'✅ {self.user} has connected to Discord!')
        logger.info(f'🤖 Bot ID: {self.user.id}')
        logger.info(f'📊 Connected to {len(self.guilds)} guilds')
        logger.info(f'🎵 FFmpeg: {FFMPEG_EXECUTABLE}')

    async def on_command_error(self, ctx, error):
        """Global error handler using centralized error handling system"""
        if ctx.cog is not None and ctx.cog.has_error_handler():
            return
        await error_handler.handle_error(error, ctx)

    async def on_voice_state_update(self, member, before, after):
        """Handle the bot being disconnected from voice"""
        await on_voice_state_update_handler(member, before, after)

    async def close(self):
        """Shut down every player (queue backups are kept), remove temp files and the PID file"""
        logger.info("🛑 Shutting down...")
        music_cog = self.get_cog('Music')
        if music_cog:
            for voice_state in list(music_cog.voice_states.values()):
                await voice_state.shutdown()
                await voice_state.wait_idle()
        process_supervisor.kill_all()
        await cache_manager.stop_background_cleanup()
        janitor.sweep_orphans(TEMP_DIR)
        remove_pid_file()
        await super().close()


def main():
    """Main function to run the bot"""
    logging_manager.setup()

    if not TOKEN:
        logger.critical("❌ No TOKEN found. Put TOKEN=<your bot token> in token.env or the environment.")
        sys.exit(1)

    write_pid_file()
    try:
        # Create and run the bot
        bot = MusicBot()
        bot.run(TOKEN, log_handler=None)
    except KeyboardInterrupt:
        logger.info("🛑 Bot stopped by user")
    finally:
        remove_pid_file()


if __name__ == '__main__':
    main()
