"""
Custom exceptions for the YouTube queue music bot
"""


class MusicBotError(Exception):
    """Base class for all bot-specific errors"""
    pass


class VoiceError(MusicBotError):
    """Exception raised for voice-related errors"""
    pass


class YTDLError(MusicBotError):
    """Exception raised for YTDL-related errors"""
    pass


class QueueError(MusicBotError):
    """Exception raised when a queue operation cannot be performed"""
    pass


class DuplicateEntryError(QueueError):
    """The URL is already queued or currently playing"""

    def __init__(self, url: str):
        super().__init__(f'Already queued or playing: {url}')
        self.url = url


class QueuePositionError(QueueError, IndexError):
    """A 1-indexed position fell outside the queue"""

    def __init__(self, position: int, length: int):
        super().__init__(f'Position {position} is out of range (queue has {length} entries)')
        self.position = position
        self.length = length


class NotEnoughEntriesError(QueueError):
    """The queue is too short for the requested operation"""
    pass


class SeekError(MusicBotError):
    """Exception raised when seeking is not possible"""
    pass
