"""
Metadata Cache for the YouTube queue music bot
Memoizes title/duration lookups per canonical URL with a time-based expiry
"""
import asyncio
import logging
import time
from collections import OrderedDict
from datetime import timedelta
from typing import Optional, Dict, Any

from config.settings import METADATA_CACHE_TTL, CACHE_SWEEP_INTERVAL

logger = logging.getLogger('music.cache')


class CacheEntry:
    """Individual cache entry with metadata"""

    def __init__(self, data: Any, ttl: int = METADATA_CACHE_TTL, clock=time.time):
        self.data = data
        self._clock = clock
        self.created_at = clock()
        self.last_accessed = self.created_at
        self.ttl = ttl  # Time to live in seconds
        self.access_count = 1

    def is_expired(self) -> bool:
        """Check if cache entry is expired"""
        return self._clock() > (self.created_at + self.ttl)

    def touch(self):
        """Update last accessed time and increment access count"""
        self.last_accessed = self._clock()
        self.access_count += 1

    def age(self) -> int:
        """Get age of cache entry in seconds"""
        return int(self._clock() - self.created_at)


class LRUCache:
    """LRU Cache with TTL and size limits"""

    def __init__(self, max_size: int = 1000, default_ttl: int = METADATA_CACHE_TTL, clock=time.time):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.clock = clock
        self.cache = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self):
        return len(self.cache)

    def get(self, key: str) -> Optional[Any]:
        """Get item from cache; expired entries are dropped, never served"""
        entry = self.cache.get(key)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired():
            del self.cache[key]
            self._misses += 1
            return None

        self.cache.move_to_end(key)
        entry.touch()
        self._hits += 1
        return entry.data

    def put(self, key: str, value: Any, ttl: Optional[int] = None):
        """Put item in cache"""
        self.cache.pop(key, None)
        self.cache[key] = CacheEntry(value, ttl or self.default_ttl, clock=self.clock)

        # Evict oldest entries if over size limit
        while len(self.cache) > self.max_size:
            self.cache.popitem(last=False)
            self._evictions += 1

    def delete(self, key: str) -> bool:
        """Delete item from cache"""
        return self.cache.pop(key, None) is not None

    def clear(self):
        """Clear all cache entries"""
        self.cache.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def cleanup_expired(self) -> int:
        """Remove all expired entries"""
        expired_keys = [key for key, entry in self.cache.items() if entry.is_expired()]
        for key in expired_keys:
            del self.cache[key]
        return len(expired_keys)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0

        return {
            'size': len(self.cache),
            'max_size': self.max_size,
            'hits': self._hits,
            'misses': self._misses,
            'hit_rate': round(hit_rate, 2),
            'evictions': self._evictions,
            'total_requests': total_requests
        }


class MetadataCacheManager:
    """Cache of {title, duration_seconds, use_streaming} records keyed by canonical URL"""

    def __init__(self, ttl: int = METADATA_CACHE_TTL, max_size: int = 2000, clock=time.time):
        self.metadata_cache = LRUCache(max_size=max_size, default_ttl=ttl, clock=clock)
        self.start_time = time.time()
        self._cleanup_task = None

    def get_metadata(self, url: str) -> Optional[Dict[str, Any]]:
        """Get cached metadata for a canonical URL"""
        return self.metadata_cache.get(url)

    def cache_metadata(self, url: str, title: str, duration_seconds: Optional[int], use_streaming: bool):
        """Cache a successful lookup"""
        self.metadata_cache.put(url, {
            'title': title,
            'duration_seconds': duration_seconds,
            'use_streaming': use_streaming,
            'cached_at': self.metadata_cache.clock(),
        })

    def invalidate(self, url: str) -> bool:
        return self.metadata_cache.delete(url)

    def cleanup_expired_entries(self) -> int:
        """Clean up expired entries"""
        cleaned = self.metadata_cache.cleanup_expired()
        if cleaned > 0:
            logger.info(f"🧹 Cleaned {cleaned} expired metadata entries")
        return cleaned

    async def start_background_cleanup(self, interval: int = CACHE_SWEEP_INTERVAL):
        """Start background cleanup task"""
        if self._cleanup_task and not self._cleanup_task.done():
            return

        self._cleanup_task = asyncio.create_task(self._background_cleanup_loop(interval))
        logger.info(f"🧹 Cache cleanup started (every {interval // 60} minutes)")

    async def stop_background_cleanup(self):
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
        self._cleanup_task = None

    async def _background_cleanup_loop(self, interval: int):
        """Background cleanup loop"""
        while True:
            try:
                await asyncio.sleep(interval)
                self.cleanup_expired_entries()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"⚠️ Background cleanup error: {e}")

    def get_comprehensive_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        uptime = time.time() - self.start_time
        return {
            'uptime_seconds': int(uptime),
            'uptime_formatted': str(timedelta(seconds=int(uptime))),
            'metadata_cache': self.metadata_cache.get_stats(),
        }


# Global cache manager instance
cache_manager = MetadataCacheManager()
