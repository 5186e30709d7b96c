"""
Database Manager for the YouTube queue music bot
Persists per-guild queue backups and per-user favorites using SQLite
"""
import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Dict, Any, List

import aiosqlite

from config.settings import DATABASE_PATH

logger = logging.getLogger('music.database')


class DatabaseManager:
    """Queue backup and favorites storage"""

    def __init__(self, db_path: str = DATABASE_PATH):
        self.db_path = Path(db_path)
        self._connection_timeout = 30
        self._write_lock = asyncio.Lock()
        self._initialized = False

        # Statistics tracking
        self.db_operations = 0

    async def initialize_database(self):
        """Initialize database with all required tables"""
        logger.info("🗄️ Initializing database...")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            # One row per guild, the whole backup record as JSON
            await db.execute("""
                CREATE TABLE IF NOT EXISTS queue_backups (
                    guild_id INTEGER PRIMARY KEY,
                    payload_json TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS favorites (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    url TEXT NOT NULL,
                    title TEXT NOT NULL,
                    duration INTEGER DEFAULT NULL,
                    added_at REAL NOT NULL,
                    UNIQUE (user_id, url)
                )
            """)

            await db.execute("CREATE INDEX IF NOT EXISTS idx_favorites_user ON favorites(user_id)")
            await db.commit()

        self._initialized = True
        logger.info("✅ Database initialized successfully")

    @asynccontextmanager
    async def get_connection(self):
        """Get database connection with proper resource management"""
        if not self._initialized:
            await self.initialize_database()
        conn = None
        try:
            conn = await aiosqlite.connect(self.db_path, timeout=self._connection_timeout)
            self.db_operations += 1
            yield conn
        finally:
            if conn:
                await conn.close()

    # Queue backups
    async def save_queue_backup(self, guild_id: int, record: Dict[str, Any]):
        """Replace the guild's backup record; writes are serialized in call order"""
        payload = json.dumps(record, ensure_ascii=False)
        async with self._write_lock:
            async with self.get_connection() as db:
                await db.execute("""
                    INSERT OR REPLACE INTO queue_backups (guild_id, payload_json, updated_at)
                    VALUES (?, ?, ?)
                """, (guild_id, payload, time.time()))
                await db.commit()

    async def load_queue_backup(self, guild_id: int) -> Optional[Dict[str, Any]]:
        """Last saved backup record for a guild, or None"""
        async with self.get_connection() as db:
            cursor = await db.execute(
                "SELECT payload_json FROM queue_backups WHERE guild_id = ?", (guild_id,)
            )
            row = await cursor.fetchone()

        if not row:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning(f"⚠️ Discarding unreadable queue backup for guild {guild_id}")
            return None

    async def delete_queue_backup(self, guild_id: int):
        async with self._write_lock:
            async with self.get_connection() as db:
                await db.execute("DELETE FROM queue_backups WHERE guild_id = ?", (guild_id,))
                await db.commit()

    # Favorites
    async def add_favorite(self, user_id: int, url: str, title: str, duration: Optional[int] = None) -> bool:
        """Add a favorite; False if the user already saved this URL"""
        async with self._write_lock:
            async with self.get_connection() as db:
                cursor = await db.execute("""
                    INSERT OR IGNORE INTO favorites (user_id, url, title, duration, added_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (user_id, url, title, duration, time.time()))
                await db.commit()
                return cursor.rowcount > 0

    async def list_favorites(self, user_id: int) -> List[Dict[str, Any]]:
        """A user's favorites in the order they were added"""
        async with self.get_connection() as db:
            cursor = await db.execute("""
                SELECT url, title, duration, added_at FROM favorites
                WHERE user_id = ? ORDER BY added_at, id
            """, (user_id,))
            rows = await cursor.fetchall()

        return [
            {'url': url, 'title': title, 'duration': duration, 'added_at': added_at}
            for url, title, duration, added_at in rows
        ]

    async def remove_favorite(self, user_id: int, position: int) -> Optional[Dict[str, Any]]:
        """Remove the favorite at a 1-indexed position; None when out of range"""
        favorites = await self.list_favorites(user_id)
        if not 1 <= position <= len(favorites):
            return None

        removed = favorites[position - 1]
        async with self._write_lock:
            async with self.get_connection() as db:
                await db.execute(
                    "DELETE FROM favorites WHERE user_id = ? AND url = ?", (user_id, removed['url'])
                )
                await db.commit()
        return removed

    async def clear_favorites(self, user_id: int) -> int:
        """Remove all of a user's favorites; returns how many were removed"""
        async with self._write_lock:
            async with self.get_connection() as db:
                cursor = await db.execute("DELETE FROM favorites WHERE user_id = ?", (user_id,))
                await db.commit()
                return cursor.rowcount

    async def get_database_stats(self) -> Dict[str, Any]:
        """Get database statistics"""
        async with self.get_connection() as db:
            stats = {}
            for table in ('queue_backups', 'favorites'):
                cursor = await db.execute(f"SELECT COUNT(*) FROM {table}")
                stats[f"{table}_count"] = (await cursor.fetchone())[0]

        stats['db_operations'] = self.db_operations
        return stats


# Global database manager instance
database_manager = DatabaseManager()
