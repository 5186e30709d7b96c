"""
SongQueue class for the YouTube queue music bot
Ordered playback queue with head = now playing, plus the repeat snapshot
"""
import random
from typing import Iterable, List, Optional

from utils.exceptions import DuplicateEntryError, NotEnoughEntriesError, QueueError, QueuePositionError
from utils.song import QueueEntry


class SongQueue:
    """FIFO queue of QueueEntry; the head is the song playing or about to play"""

    def __init__(self, rng: Optional[random.Random] = None):
        self._queue: List[QueueEntry] = []
        self._original: List[QueueEntry] = []
        self._rng = rng or random.Random()

    def __getitem__(self, item):
        return self._queue[item]

    def __iter__(self):
        return iter(list(self._queue))

    def __len__(self):
        return len(self._queue)

    def __bool__(self):
        return bool(self._queue)

    @property
    def head(self) -> Optional[QueueEntry]:
        return self._queue[0] if self._queue else None

    @property
    def original_playlist(self) -> List[QueueEntry]:
        return list(self._original)

    def contains_url(self, url: str) -> bool:
        return any(entry.source_url == url for entry in self._queue)

    def enqueue(self, entry: QueueEntry, current: Optional[QueueEntry] = None) -> int:
        """Append to the tail; returns the new 1-indexed position"""
        if self.contains_url(entry.source_url) or (current is not None and current.source_url == entry.source_url):
            raise DuplicateEntryError(entry.source_url)
        self._queue.append(entry)
        self._original.append(entry.copy())
        return len(self._queue)

    def insert_next(self, entry: QueueEntry, current: Optional[QueueEntry] = None) -> int:
        """Place an entry directly behind the head"""
        if self.contains_url(entry.source_url) or (current is not None and current.source_url == entry.source_url):
            raise DuplicateEntryError(entry.source_url)
        position = 1 if self._queue else 0
        self._queue.insert(position, entry)
        self._original.append(entry.copy())
        return position + 1

    def dequeue_head(self) -> Optional[QueueEntry]:
        """Remove and return the head (None when empty)"""
        if not self._queue:
            return None
        return self._queue.pop(0)

    def discard(self, entry: QueueEntry) -> bool:
        """Remove a specific entry object if it is still queued"""
        for index, item in enumerate(self._queue):
            if item is entry:
                del self._queue[index]
                return True
        return False

    def drop_following(self, entry: QueueEntry, count: int) -> List[QueueEntry]:
        """Remove up to count entries directly behind entry (skip N); the repeat snapshot keeps them"""
        for index, item in enumerate(self._queue):
            if item is entry:
                dropped = self._queue[index + 1:index + 1 + count]
                del self._queue[index + 1:index + 1 + count]
                return dropped
        return []

    def forget(self, url: str):
        """Remove a URL from the repeat snapshot"""
        self._original = [item for item in self._original if item.source_url != url]

    def _check_position(self, position: int):
        if not 1 <= position <= len(self._queue):
            raise QueuePositionError(position, len(self._queue))

    def move_entry(self, from_pos: int, to_pos: int) -> QueueEntry:
        """Move an entry between 1-indexed positions"""
        self._check_position(from_pos)
        self._check_position(to_pos)
        if from_pos == to_pos:
            raise QueueError(f'Song {from_pos} is already at position {to_pos}')
        entry = self._queue.pop(from_pos - 1)
        self._queue.insert(to_pos - 1, entry)
        return entry

    def remove_at(self, position: int) -> QueueEntry:
        """Remove an entry at a 1-indexed position, from the snapshot as well"""
        self._check_position(position)
        entry = self._queue.pop(position - 1)
        self._original = [item for item in self._original if item.source_url != entry.source_url]
        return entry

    def shuffle(self, keep_head: bool = False):
        """Uniform in-place shuffle; keep_head leaves the playing entry in place"""
        start = 1 if keep_head else 0
        if len(self._queue) - start < 2:
            raise NotEnoughEntriesError('Need at least 2 songs in the queue to shuffle')
        tail = self._queue[start:]
        self._rng.shuffle(tail)
        self._queue[start:] = tail

    def clear(self, keep_head: bool = False):
        """Clear all songs from the queue and the repeat snapshot"""
        self._queue = self._queue[:1] if keep_head else []
        self._original = [entry.copy() for entry in self._queue]

    def snapshot_for_repeat(self):
        """Take the current queue as the list repeat mode will replay"""
        self._original = [entry.copy() for entry in self._queue]

    def refill_from_snapshot(self) -> int:
        """Copy the snapshot back into an empty queue; returns how many entries came back"""
        if self._queue or not self._original:
            return 0
        self._queue = [entry.copy() for entry in self._original]
        return len(self._queue)

    def restore(self, entries: Iterable[QueueEntry], original: Iterable[QueueEntry]):
        self._queue = list(entries)
        self._original = list(original)
