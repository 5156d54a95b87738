"""
Tests for the feed controller state machine
"""

import asyncio
import random
import sys
import unittest
from pathlib import Path
from unittest.mock import AsyncMock

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.feed import FeedController, LOADING_MESSAGES
from backend.models import GeneratedText, LoadingState
from utils.providers import GenerationError


def make_feed(generate, min_loading_seconds=0):
    return FeedController(generate=generate, min_loading_seconds=min_loading_seconds, rng=random.Random(1))


class TestFeedController(unittest.IsolatedAsyncioTestCase):
    async def test_happy_path_appends_one_section(self):
        generate = AsyncMock(return_value=GeneratedText(text="Para1\n\nPara2", topic="UTXO model"))
        feed = make_feed(generate)

        section = await feed.request_more()

        self.assertEqual(len(feed.sections), 1)
        self.assertIs(feed.sections[0], section)
        self.assertEqual(section.topic, "UTXO model")
        self.assertEqual(section.paragraphs, ["Para1", "Para2"])
        self.assertTrue(section.id.startswith("chunk-"))
        self.assertEqual(feed.loading_state, LoadingState.IDLE)
        self.assertIn(feed.loading_message, LOADING_MESSAGES)
        generate.assert_awaited_once_with([])

    async def test_loading_message_is_known_before_the_attempt(self):
        shown = []

        async def generate(recent_topics):
            shown.append(feed.loading_message)
            if len(shown) == 1:
                raise GenerationError("OpenRouter error: 500")
            return GeneratedText(text="Text", topic="Halving")

        feed = make_feed(AsyncMock(side_effect=generate))

        announced = [feed.loading_message]
        await feed.request_more()
        announced.append(feed.loading_message)
        await feed.retry()

        self.assertEqual(shown, announced)
        self.assertIn(feed.loading_message, LOADING_MESSAGES)

    async def test_concurrent_trigger_is_dropped(self):
        release = asyncio.Event()

        async def slow_generate(recent):
            await release.wait()
            return GeneratedText(text="Text", topic="Mining Pools")

        generate = AsyncMock(side_effect=slow_generate)
        feed = make_feed(generate)

        first = asyncio.ensure_future(feed.request_more())
        await asyncio.sleep(0)
        self.assertEqual(feed.loading_state, LoadingState.LOADING)

        second = await feed.request_more()
        self.assertIsNone(second)

        release.set()
        await first

        self.assertEqual(generate.await_count, 1)
        self.assertEqual(len(feed.sections), 1)
        self.assertEqual(feed.loading_state, LoadingState.IDLE)

    async def test_passes_last_ten_topics(self):
        generate = AsyncMock(return_value=GeneratedText(text="T", topic="X"))
        feed = make_feed(generate)
        for i in range(12):
            feed.append_section("text", f"topic-{i}")

        await feed.request_more()

        generate.assert_awaited_once_with([f"topic-{i}" for i in range(2, 12)])

    async def test_failure_enters_error_and_keeps_sections(self):
        generate = AsyncMock(side_effect=GenerationError("OpenRouter error: 500", status_code=500))
        feed = make_feed(generate)
        feed.append_section("existing", "Halving")

        result = await feed.request_more()

        self.assertIsNone(result)
        self.assertEqual(feed.loading_state, LoadingState.ERROR)
        self.assertEqual(feed.error_message, "Connection interrupted.")
        self.assertEqual([s.topic for s in feed.sections], ["Halving"])
        self.assertEqual(feed.last_error.status_code, 500)

    async def test_failure_does_not_wait_for_minimum_delay(self):
        generate = AsyncMock(side_effect=GenerationError("Network error"))
        feed = make_feed(generate, min_loading_seconds=30)

        await asyncio.wait_for(feed.request_more(), timeout=1)

        self.assertEqual(feed.loading_state, LoadingState.ERROR)

    async def test_success_waits_for_minimum_delay(self):
        generate = AsyncMock(return_value=GeneratedText(text="T", topic="X"))
        feed = make_feed(generate, min_loading_seconds=0.05)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await feed.request_more()

        self.assertGreaterEqual(loop.time() - started, 0.04)

    async def test_retry_makes_exactly_one_attempt(self):
        generate = AsyncMock(side_effect=[
            GenerationError("Network error"),
            GeneratedText(text="Back online", topic="Full Nodes and Validation"),
        ])
        feed = make_feed(generate)

        await feed.request_more()
        self.assertEqual(feed.loading_state, LoadingState.ERROR)

        section = await feed.retry()

        self.assertEqual(generate.await_count, 2)
        self.assertEqual(section.content, "Back online")
        self.assertEqual(feed.loading_state, LoadingState.IDLE)
        self.assertIsNone(feed.error_message)

    async def test_retry_outside_error_is_noop(self):
        generate = AsyncMock(return_value=GeneratedText(text="T", topic="X"))
        feed = make_feed(generate)

        self.assertIsNone(await feed.retry())
        generate.assert_not_awaited()

    async def test_start_only_loads_empty_feed(self):
        generate = AsyncMock(return_value=GeneratedText(text="T", topic="X"))
        feed = make_feed(generate)

        await feed.start()
        await feed.start()

        self.assertEqual(generate.await_count, 1)
        self.assertEqual(len(feed.sections), 1)

    def test_recent_topics_window(self):
        feed = make_feed(AsyncMock())
        for topic in ["a", "b", "c"]:
            feed.append_section("text", topic)
        self.assertEqual(feed.recent_topics(2), ["b", "c"])
        self.assertEqual(feed.recent_topics(0), [])
        self.assertEqual(feed.recent_topics(), ["a", "b", "c"])


if __name__ == "__main__":
    unittest.main()
