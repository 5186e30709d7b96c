"""
AI song suggestions for the YouTube queue music bot
Asks an OpenAI model for songs similar to the one playing
"""
import asyncio
import functools
import logging
from typing import List, Optional

from config.settings import OPENAI_API_KEY, OPENAI_MODEL

logger = logging.getLogger('music.suggestions')

MAX_SUGGESTIONS = 10
OVERLOADED_STATUS_CODES = (429, 503, 529)

INSTRUCTIONS = (
    "You recommend music. Given a song title, suggest up to 10 similar songs. "
    "Return ONLY one song per line formatted as 'Artist - Title', with no numbering "
    "and no extra text."
)


class SuggestionsUnavailable(Exception):
    """The suggestion service is not configured or is overloaded"""
    pass


def parse_suggestions(text: str, limit: int = MAX_SUGGESTIONS) -> List[str]:
    """Turn the model's reply into a list of 'Artist - Title' lines"""
    results = []
    for raw in (text or '').splitlines():
        line = raw.strip().lstrip('-*•').strip()
        # Drop "1." / "1)" numbering if the model added it anyway
        head, _, rest = line.partition(' ')
        if rest and head.rstrip('.)').isdigit():
            line = rest.strip()
        if ' - ' not in line or line in results:
            continue
        results.append(line)
        if len(results) >= limit:
            break
    return results


class SuggestionService:
    """Thin wrapper around the OpenAI client; disabled when no key or library is present"""

    def __init__(self, api_key: Optional[str] = OPENAI_API_KEY, model: str = OPENAI_MODEL):
        self.api_key = api_key
        self.model = model
        self._client = None

    @property
    def available(self) -> bool:
        if not self.api_key:
            return False
        try:
            import openai  # noqa: F401
        except ImportError:
            return False
        return True

    def _get_client(self):
        if self._client is None:
            import openai
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def _request(self, title: str) -> str:
        import openai

        client = self._get_client()
        try:
            response = client.responses.create(
                model=self.model, instructions=INSTRUCTIONS, input=f'Song: {title}'
            )
        except openai.RateLimitError as e:
            raise SuggestionsUnavailable('The suggestion service is busy, try again later') from e
        except openai.APIStatusError as e:
            if e.status_code in OVERLOADED_STATUS_CODES:
                raise SuggestionsUnavailable('The suggestion service is overloaded, try again later') from e
            raise SuggestionsUnavailable(f'OpenAI API error: {e}') from e
        except openai.APIError as e:
            raise SuggestionsUnavailable(f'OpenAI API error: {e}') from e
        return response.output_text

    async def suggest_similar(self, title: str) -> List[str]:
        """Up to 10 'Artist - Title' suggestions for a song"""
        if not self.available:
            return []

        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, functools.partial(self._request, title))
        suggestions = parse_suggestions(text)
        logger.info(f"🤖 {len(suggestions)} suggestion(s) for: {title}")
        return suggestions


# Global suggestion service instance
suggestion_service = SuggestionService()
