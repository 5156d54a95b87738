"""
Feed controller for Infinite Bitcoin Text
Owns the ordered list of sections and the single feed-extension fetch
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional, Sequence

from backend.generation import generate_bitcoin_text
from backend.models import ContentSection, GeneratedText, LoadingState, generate_section_id
from utils.config import MIN_LOADING_SECONDS, RECENT_TOPIC_WINDOW
from utils.providers import GenerationError

logger = logging.getLogger(__name__)

LOADING_MESSAGES = (
    "Syncing to the latest timechain fragment... [|==>     ]",
    "Negotiating mempool fees for fresh prose... [fee/byte -> fair]",
    "Hashing a new block of words... [0000abcd...]",
    "Broadcasting a signed packet of thoughts... [node@127.0.0.1 -> net]",
    "Waiting for miners to confirm this paragraph... [pow nonce rolling]",
)

ERROR_MESSAGE = "Connection interrupted."

TextGenerator = Callable[..., Awaitable[GeneratedText]]


class FeedController:
    """
    State machine over LoadingState (IDLE -> LOADING -> IDLE | ERROR).

    At most one feed extension is in flight; a trigger that arrives while
    one is running is dropped, not queued. Sections are append-only.
    """

    def __init__(
        self,
        generate: TextGenerator = generate_bitcoin_text,
        min_loading_seconds: float = MIN_LOADING_SECONDS,
        rng: Optional[random.Random] = None,
    ):
        self._generate = generate
        self._min_loading_seconds = min_loading_seconds
        self._rng = rng if rng is not None else random.Random()
        self._sections: List[ContentSection] = []
        self.loading_state = LoadingState.IDLE
        self.loading_message = self._pick_loading_message()
        self.last_error: Optional[GenerationError] = None

    @property
    def sections(self) -> Sequence[ContentSection]:
        return tuple(self._sections)

    @property
    def error_message(self) -> Optional[str]:
        return ERROR_MESSAGE if self.loading_state == LoadingState.ERROR else None

    def _pick_loading_message(self) -> str:
        return self._rng.choice(LOADING_MESSAGES)

    def recent_topics(self, limit: int = RECENT_TOPIC_WINDOW) -> List[str]:
        """Topics of the last `limit` sections, oldest first"""
        if limit <= 0:
            return []
        return [section.topic for section in self._sections[-limit:]]

    def append_section(self, text: str, topic: str) -> ContentSection:
        """Append a new section at the end of the feed"""
        section = ContentSection(id=generate_section_id(), content=text, topic=topic)
        self._sections.append(section)
        logger.info(f"Appended section {section.id} ({topic}); feed length {len(self._sections)}")
        return section

    async def start(self) -> Optional[ContentSection]:
        """Initial load, only when the feed is still empty"""
        if self._sections:
            return None
        return await self.request_more()

    async def request_more(self) -> Optional[ContentSection]:
        """
        Extend the feed by one section.

        Returns:
            The appended section, or None if the request was dropped or failed
        """
        if self.loading_state == LoadingState.LOADING:
            logger.debug("Feed extension already in flight, dropping trigger")
            return None

        # State is claimed before the first await
        self.loading_state = LoadingState.LOADING
        self.last_error = None

        min_delay = asyncio.ensure_future(asyncio.sleep(self._min_loading_seconds))
        try:
            result = await self._generate(self.recent_topics())
            await min_delay
        except GenerationError as e:
            min_delay.cancel()
            logger.error(f"Failed to fetch content: {str(e)}")
            self.last_error = e
            self.loading_state = LoadingState.ERROR
            return None
        except Exception:
            min_delay.cancel()
            self.loading_state = LoadingState.ERROR
            raise
        finally:
            # Message for the next attempt, readable before it starts
            self.loading_message = self._pick_loading_message()

        section = self.append_section(result.text, result.topic)
        self.loading_state = LoadingState.IDLE
        return section

    async def retry(self) -> Optional[ContentSection]:
        """Leave the ERROR state and make exactly one new attempt"""
        if self.loading_state != LoadingState.ERROR:
            return None
        self.loading_state = LoadingState.IDLE
        return await self.request_more()
