# backend/tree_state.py
"""
Per-section concept tree state.
Every transition is a pure function returning a new TreeState.
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict

from backend.models import ConceptNode

TREE_LOAD_ERROR = "Unable to map related concepts. Try again."
EXPAND_ERROR = "Could not expand this concept. Try again."


class TreeState(BaseModel):
    """Concept tree state for one content section"""
    model_config = ConfigDict(frozen=True)

    nodes: List[ConceptNode] = []
    loading: bool = False
    error: Optional[str] = None
    expanded: bool = False
    selected_node_id: Optional[str] = None
    # Materializing the selected node is tracked apart from tree loading
    action_loading: bool = False
    action_error: Optional[str] = None

    def get_node(self, node_id: Optional[str]) -> Optional[ConceptNode]:
        """Node with the given id, if present"""
        if node_id is None:
            return None
        return next((node for node in self.nodes if node.id == node_id), None)

    @property
    def selected_node(self) -> Optional[ConceptNode]:
        return self.get_node(self.selected_node_id)


def find_root(nodes: List[ConceptNode]) -> Optional[ConceptNode]:
    """First node without a parent, else the first node"""
    for node in nodes:
        if node.parent_id is None:
            return node
    return nodes[0] if nodes else None


# Transitions

def begin_load(state: Optional[TreeState]) -> TreeState:
    if state is None:
        state = TreeState()
    return state.model_copy(update={"loading": True, "error": None, "expanded": True})


def finish_load(state: TreeState, nodes: List[ConceptNode]) -> TreeState:
    root = find_root(nodes)
    return state.model_copy(update={
        "nodes": list(nodes),
        "loading": False,
        "error": None,
        "selected_node_id": root.id if root else None,
    })


def fail_load(state: TreeState, message: str = TREE_LOAD_ERROR) -> TreeState:
    return state.model_copy(update={"loading": False, "error": message})


def collapse(state: TreeState) -> TreeState:
    return state.model_copy(update={"expanded": False})


def reexpand(state: TreeState) -> TreeState:
    """Show cached nodes again, dropping any stale error"""
    return state.model_copy(update={"expanded": True, "error": None})


def select(state: TreeState, node_id: str) -> TreeState:
    return state.model_copy(update={"selected_node_id": node_id, "action_error": None})


def begin_action(state: TreeState) -> TreeState:
    return state.model_copy(update={"action_loading": True, "action_error": None})


def finish_action(state: TreeState) -> TreeState:
    return state.model_copy(update={"action_loading": False})


def fail_action(state: TreeState, message: str = EXPAND_ERROR) -> TreeState:
    return state.model_copy(update={"action_loading": False, "action_error": message})
