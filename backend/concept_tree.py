"""
Concept tree controller for Infinite Bitcoin Text
Per-section tree loading, node selection and materializing a node as a new section
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

import networkx as nx

from backend import tree_state as ts
from backend.feed import FeedController
from backend.generation import generate_bitcoin_text, generate_concept_tree
from backend.models import ConceptNode, ContentSection, GeneratedText
from backend.tree_state import TreeState, find_root
from utils.providers import GenerationError
from utils.tree_parser import fallback_root

logger = logging.getLogger(__name__)

TreeGenerator = Callable[[str], Awaitable[List[ConceptNode]]]
TextGenerator = Callable[..., Awaitable[GeneratedText]]


@dataclass
class TreeBranch:
    """A first-level node and its children"""
    node: ConceptNode
    children: List[ConceptNode] = field(default_factory=list)


@dataclass
class TreeView:
    """Two-level rendering of a concept tree"""
    root: ConceptNode
    branches: List[TreeBranch] = field(default_factory=list)


def build_tree_graph(nodes: List[ConceptNode]) -> nx.DiGraph:
    """Directed parent -> child graph, children kept in input order"""
    g = nx.DiGraph()
    for node in nodes:
        g.add_node(node.id, node=node)
    for node in nodes:
        if node.parent_id is not None and node.parent_id in g:
            g.add_edge(node.parent_id, node.id)
    return g


def build_tree_view(nodes: List[ConceptNode], topic: str) -> TreeView:
    """
    Derive the rendered tree: the root (or a stand-in built from the topic),
    its children as branches, and their children as leaves.
    """
    root = find_root(nodes)
    if root is None:
        return TreeView(root=fallback_root(topic))

    g = build_tree_graph(nodes)
    branches = []
    for branch_id in g.successors(root.id):
        children = [g.nodes[child_id]["node"] for child_id in g.successors(branch_id)]
        branches.append(TreeBranch(node=g.nodes[branch_id]["node"], children=children))
    return TreeView(root=root, branches=branches)


class ConceptTreeController:
    """
    Owns one TreeState cell per section id.

    Sections are independent: any number may load or expand at once, and
    every write re-reads the section's current cell after the await.
    """

    def __init__(
        self,
        feed: FeedController,
        generate_tree: TreeGenerator = generate_concept_tree,
        generate_text: TextGenerator = generate_bitcoin_text,
    ):
        self._feed = feed
        self._generate_tree = generate_tree
        self._generate_text = generate_text
        self._states: Dict[str, TreeState] = {}
        # Latest load request per section; older completions are dropped
        self._load_tokens: Dict[str, int] = {}

    def get(self, section_id: str) -> Optional[TreeState]:
        return self._states.get(section_id)

    def _apply(self, section_id: str, transition, *args) -> TreeState:
        new_state = transition(self._states.get(section_id), *args)
        self._states[section_id] = new_state
        return new_state

    async def toggle(self, section_id: str, topic: str) -> Optional[TreeState]:
        state = self._states.get(section_id)
        if state is not None and state.expanded:
            return self._apply(section_id, ts.collapse)
        if state is not None and state.nodes:
            return self._apply(section_id, ts.reexpand)
        return await self.load(section_id, topic)

    async def load(self, section_id: str, topic: str) -> Optional[TreeState]:
        """Fetch the tree for a section; the most recent call's result wins"""
        token = self._load_tokens.get(section_id, 0) + 1
        self._load_tokens[section_id] = token
        self._apply(section_id, ts.begin_load)

        try:
            nodes = await self._generate_tree(topic)
        except GenerationError as e:
            if self._load_tokens.get(section_id) != token:
                logger.debug(f"Dropping stale tree failure for section {section_id}")
                return self._states.get(section_id)
            logger.error(f"Concept tree load failed for section {section_id}: {str(e)}")
            return self._apply(section_id, ts.fail_load)
        except Exception:
            if self._load_tokens.get(section_id) == token:
                self._apply(section_id, ts.fail_load)
            raise

        if self._load_tokens.get(section_id) != token:
            logger.debug(f"Dropping stale tree result for section {section_id}")
            return self._states.get(section_id)
        logger.info(f"Concept tree loaded for section {section_id}: {len(nodes)} nodes")
        return self._apply(section_id, ts.finish_load, nodes)

    def select_node(self, section_id: str, node_id: str) -> Optional[TreeState]:
        if section_id not in self._states:
            return None
        return self._apply(section_id, ts.select, node_id)

    async def expand_selected(self, section_id: str) -> Optional[ContentSection]:
        """
        Materialize the selected node as a new feed section.

        Returns:
            The appended section, or None when nothing was done or it failed
        """
        state = self._states.get(section_id)
        if state is None or state.action_loading:
            return None
        node = state.selected_node
        if node is None:
            return None

        self._apply(section_id, ts.begin_action)
        try:
            result = await self._generate_text(self._feed.recent_topics(), forced_topic=node.label)
        except GenerationError as e:
            logger.error(f"Expanding '{node.label}' failed for section {section_id}: {str(e)}")
            self._apply(section_id, ts.fail_action)
            return None
        except Exception:
            self._apply(section_id, ts.fail_action)
            raise

        section = self._feed.append_section(result.text, node.label)
        self._apply(section_id, ts.finish_action)
        return section
