"""
Tests for the concept tree controller, the derived tree view and its diagram
"""

import asyncio
import random
import sys
import unittest
from pathlib import Path
from unittest.mock import AsyncMock

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.concept_tree import ConceptTreeController, build_tree_view
from backend.feed import FeedController
from backend.models import ConceptNode, GeneratedText
from backend.tree_state import TREE_LOAD_ERROR, EXPAND_ERROR
from components.concept_tree_viz import create_concept_tree_graph
from utils.providers import GenerationError


def mining_tree():
    return [
        ConceptNode(id="root", label="Mining", parent_id=None, summary="Root"),
        ConceptNode(id="b1", label="Difficulty Adjustment", parent_id="root", summary="Branch"),
        ConceptNode(id="b2", label="Mining Pools", parent_id="root", summary="Branch"),
        ConceptNode(id="l1", label="Retarget Window", parent_id="b1", summary="Leaf"),
    ]


def make_controller(generate_tree=None, generate_text=None):
    feed = FeedController(generate=AsyncMock(), min_loading_seconds=0, rng=random.Random(3))
    controller = ConceptTreeController(
        feed,
        generate_tree=generate_tree or AsyncMock(return_value=mining_tree()),
        generate_text=generate_text or AsyncMock(),
    )
    return feed, controller


class TestToggleAndLoad(unittest.IsolatedAsyncioTestCase):
    async def test_first_toggle_loads_and_selects_root(self):
        generate_tree = AsyncMock(return_value=mining_tree())
        _, controller = make_controller(generate_tree=generate_tree)

        state = await controller.toggle("s1", "Mining")

        generate_tree.assert_awaited_once_with("Mining")
        self.assertTrue(state.expanded)
        self.assertFalse(state.loading)
        self.assertIsNone(state.error)
        self.assertEqual(state.selected_node_id, "root")
        self.assertEqual(len(state.nodes), 4)

    async def test_collapse_and_reexpand_use_cache(self):
        generate_tree = AsyncMock(return_value=mining_tree())
        _, controller = make_controller(generate_tree=generate_tree)

        await controller.toggle("s1", "Mining")
        collapsed = await controller.toggle("s1", "Mining")
        self.assertFalse(collapsed.expanded)
        self.assertEqual(len(collapsed.nodes), 4)

        reopened = await controller.toggle("s1", "Mining")
        self.assertTrue(reopened.expanded)
        self.assertEqual(generate_tree.await_count, 1)

    async def test_reexpand_clears_stale_error(self):
        generate_tree = AsyncMock(side_effect=[mining_tree(), GenerationError("Network error")])
        _, controller = make_controller(generate_tree=generate_tree)

        await controller.load("s1", "Mining")
        failed = await controller.load("s1", "Mining")
        self.assertEqual(failed.error, TREE_LOAD_ERROR)

        await controller.toggle("s1", "Mining")
        reopened = await controller.toggle("s1", "Mining")
        self.assertTrue(reopened.expanded)
        self.assertIsNone(reopened.error)

    async def test_failed_load_keeps_prior_nodes_and_selection(self):
        generate_tree = AsyncMock(side_effect=[mining_tree(), GenerationError("OpenRouter error: 500")])
        _, controller = make_controller(generate_tree=generate_tree)

        await controller.load("s1", "Mining")
        controller.select_node("s1", "b2")
        state = await controller.load("s1", "Mining")

        self.assertFalse(state.loading)
        self.assertEqual(state.error, TREE_LOAD_ERROR)
        self.assertEqual(len(state.nodes), 4)
        self.assertEqual(state.selected_node_id, "b2")

    async def test_failing_section_does_not_touch_sibling(self):
        async def generate_tree(topic):
            if topic == "Broken":
                raise GenerationError("Network error")
            return mining_tree()

        _, controller = make_controller(generate_tree=AsyncMock(side_effect=generate_tree))

        await controller.load("a", "Mining")
        before = controller.get("a")
        await controller.load("b", "Broken")

        self.assertEqual(controller.get("a"), before)
        self.assertEqual(controller.get("b").error, TREE_LOAD_ERROR)
        self.assertEqual(controller.get("b").nodes, [])

    async def test_latest_load_wins(self):
        release_first = asyncio.Event()
        old_tree = [ConceptNode(id="old", label="Old", parent_id=None)]
        new_tree = [ConceptNode(id="new", label="New", parent_id=None)]
        calls = []

        async def generate_tree(topic):
            calls.append(topic)
            if len(calls) == 1:
                await release_first.wait()
                return old_tree
            return new_tree

        _, controller = make_controller(generate_tree=AsyncMock(side_effect=generate_tree))

        first = asyncio.ensure_future(controller.load("s1", "Mining"))
        await asyncio.sleep(0)
        await controller.load("s1", "Mining")
        release_first.set()
        await first

        state = controller.get("s1")
        self.assertEqual([n.id for n in state.nodes], ["new"])
        self.assertEqual(state.selected_node_id, "new")
        self.assertFalse(state.loading)

    async def test_unexpected_load_error_clears_loading(self):
        generate_tree = AsyncMock(side_effect=RecursionError("maximum recursion depth exceeded"))
        _, controller = make_controller(generate_tree=generate_tree)

        with self.assertRaises(RecursionError):
            await controller.load("s1", "Mining")

        state = controller.get("s1")
        self.assertFalse(state.loading)
        self.assertEqual(state.error, TREE_LOAD_ERROR)

        generate_tree.side_effect = None
        generate_tree.return_value = mining_tree()
        state = await controller.load("s1", "Mining")
        self.assertFalse(state.loading)
        self.assertEqual(len(state.nodes), 4)

    async def test_concurrent_sections_load_independently(self):
        gate = asyncio.Event()

        async def generate_tree(topic):
            if topic == "Slow":
                await gate.wait()
            return [ConceptNode(id=f"{topic}-root", label=topic, parent_id=None)]

        _, controller = make_controller(generate_tree=AsyncMock(side_effect=generate_tree))

        slow = asyncio.ensure_future(controller.load("a", "Slow"))
        await asyncio.sleep(0)
        await controller.load("b", "Fast")
        self.assertTrue(controller.get("a").loading)
        self.assertEqual(controller.get("b").selected_node_id, "Fast-root")

        gate.set()
        await slow
        self.assertEqual(controller.get("a").selected_node_id, "Slow-root")
        self.assertEqual(controller.get("b").selected_node_id, "Fast-root")


class TestSelectAndExpand(unittest.IsolatedAsyncioTestCase):
    async def test_select_untracked_section_is_noop(self):
        _, controller = make_controller()
        self.assertIsNone(controller.select_node("missing", "x"))
        self.assertIsNone(controller.get("missing"))

    async def test_expand_selected_appends_section_for_node(self):
        generate_text = AsyncMock(return_value=GeneratedText(text="New prose", topic="Difficulty Adjustment"))
        feed, controller = make_controller(generate_text=generate_text)
        feed.append_section("Original", "Mining")

        await controller.load("s1", "Mining")
        controller.select_node("s1", "b1")
        section = await controller.expand_selected("s1")

        generate_text.assert_awaited_once_with(["Mining"], forced_topic="Difficulty Adjustment")
        self.assertEqual(section.topic, "Difficulty Adjustment")
        self.assertEqual([s.topic for s in feed.sections], ["Mining", "Difficulty Adjustment"])
        state = controller.get("s1")
        self.assertFalse(state.action_loading)
        self.assertIsNone(state.action_error)

    async def test_expand_failure_is_scoped_to_action(self):
        generate_text = AsyncMock(side_effect=GenerationError("OpenRouter error: 503"))
        feed, controller = make_controller(generate_text=generate_text)

        await controller.load("s1", "Mining")
        before = controller.get("s1").nodes
        result = await controller.expand_selected("s1")

        self.assertIsNone(result)
        state = controller.get("s1")
        self.assertEqual(state.action_error, EXPAND_ERROR)
        self.assertFalse(state.action_loading)
        self.assertEqual(state.nodes, before)
        self.assertIsNone(state.error)
        self.assertEqual(len(feed.sections), 0)

        controller.select_node("s1", "b2")
        self.assertIsNone(controller.get("s1").action_error)

    async def test_unexpected_expand_error_clears_action_loading(self):
        generate_text = AsyncMock(side_effect=RuntimeError("boom"))
        feed, controller = make_controller(generate_text=generate_text)

        await controller.load("s1", "Mining")
        with self.assertRaises(RuntimeError):
            await controller.expand_selected("s1")

        state = controller.get("s1")
        self.assertFalse(state.action_loading)
        self.assertEqual(state.action_error, EXPAND_ERROR)

        generate_text.side_effect = None
        generate_text.return_value = GeneratedText(text="Prose", topic="Mining")
        section = await controller.expand_selected("s1")
        self.assertEqual(section.topic, "Mining")
        self.assertEqual(len(feed.sections), 1)

    async def test_second_expand_while_running_is_dropped(self):
        gate = asyncio.Event()

        async def generate_text(recent_topics, forced_topic=None):
            await gate.wait()
            return GeneratedText(text="Prose", topic=forced_topic)

        generate_text = AsyncMock(side_effect=generate_text)
        feed, controller = make_controller(generate_text=generate_text)

        await controller.load("s1", "Mining")
        first = asyncio.ensure_future(controller.expand_selected("s1"))
        await asyncio.sleep(0)
        self.assertTrue(controller.get("s1").action_loading)

        self.assertIsNone(await controller.expand_selected("s1"))

        gate.set()
        section = await first
        self.assertEqual(section.topic, "Mining")
        self.assertEqual(generate_text.await_count, 1)
        self.assertEqual(len(feed.sections), 1)
        self.assertFalse(controller.get("s1").action_loading)

    async def test_expand_without_state_or_node_is_noop(self):
        generate_text = AsyncMock()
        _, controller = make_controller(generate_text=generate_text)

        self.assertIsNone(await controller.expand_selected("missing"))

        await controller.load("s1", "Mining")
        controller.select_node("s1", "not-a-node")
        self.assertIsNone(await controller.expand_selected("s1"))
        generate_text.assert_not_awaited()


class TestTreeView(unittest.TestCase):
    def test_two_level_view(self):
        view = build_tree_view(mining_tree(), "Mining")
        self.assertEqual(view.root.id, "root")
        self.assertEqual([b.node.label for b in view.branches], ["Difficulty Adjustment", "Mining Pools"])
        self.assertEqual([c.label for c in view.branches[0].children], ["Retarget Window"])
        self.assertEqual(view.branches[1].children, [])

    def test_empty_nodes_use_stand_in_root(self):
        view = build_tree_view([], "Halving")
        self.assertEqual(view.root.label, "Halving")
        self.assertIsNone(view.root.parent_id)
        self.assertEqual(view.branches, [])

    def test_diagram_highlights_selection(self):
        view = build_tree_view(mining_tree(), "Mining")
        source = create_concept_tree_graph(view, selected_node_id="b2").source
        for label in ["Mining", "Difficulty Adjustment", "Mining Pools", "Retarget Window"]:
            self.assertIn(label, source)
        self.assertIn("root -> b1", source)
        self.assertIn("#f7931a", source)


if __name__ == "__main__":
    unittest.main()
