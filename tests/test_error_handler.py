import asyncio

from discord.ext import commands

from utils.error_handler import ErrorCategory, MusicBotErrorHandler
from utils.exceptions import DuplicateEntryError, QueuePositionError, SeekError, VoiceError, YTDLError
from utils.suggestions import SuggestionsUnavailable


class _MockCommand:
    name = "move"
    qualified_name = "move"


class _MockCtx:
    def __init__(self) -> None:
        self.channel = object()
        self.guild = None
        self.author = "tester"
        self.command = _MockCommand()
        self.sent = []

    async def send(self, content=None, embed=None):
        self.sent.append(embed if embed is not None else content)


def test_categories() -> None:
    handler = MusicBotErrorHandler()
    assert handler.categorize_error(DuplicateEntryError("u")) == ErrorCategory.QUEUE_ERROR
    assert handler.categorize_error(QueuePositionError(9, 2)) == ErrorCategory.QUEUE_ERROR
    assert handler.categorize_error(VoiceError("You are not connected")) == ErrorCategory.VOICE_ERROR
    assert handler.categorize_error(YTDLError("Couldn't find anything")) == ErrorCategory.MUSIC_ERROR
    assert handler.categorize_error(SeekError("stream")) == ErrorCategory.MUSIC_ERROR
    assert handler.categorize_error(SuggestionsUnavailable("busy")) == ErrorCategory.MUSIC_ERROR
    assert handler.categorize_error(commands.BadArgument("nope")) == ErrorCategory.USER_ERROR
    assert handler.categorize_error(ValueError("Volume must be 1-100")) == ErrorCategory.USER_ERROR
    assert handler.categorize_error(ConnectionError("reset")) == ErrorCategory.NETWORK_ERROR
    assert handler.categorize_error(RuntimeError("boom")) == ErrorCategory.UNKNOWN_ERROR


def test_invoke_errors_are_unwrapped() -> None:
    handler = MusicBotErrorHandler()
    wrapped = commands.CommandInvokeError(QueuePositionError(5, 3))
    assert handler.categorize_error(wrapped) == ErrorCategory.QUEUE_ERROR

    message = handler.get_user_friendly_message(wrapped, ErrorCategory.QUEUE_ERROR)
    assert message["description"] == "There is no song at position 5 (the queue has 3)."


def test_handle_error_sends_embed_and_counts() -> None:
    handler = MusicBotErrorHandler()
    ctx = _MockCtx()

    assert asyncio.run(handler.handle_error(DuplicateEntryError("u"), ctx))

    assert len(ctx.sent) == 1
    assert ctx.sent[0].title == "📋 Queue Error"
    stats = handler.get_error_statistics()
    assert stats["total_errors"] == 1
    assert stats["most_common"][0]["type"] == "DuplicateEntryError"
