"""
Concept tree visualization component
Creates Graphviz diagrams for a section's concept tree
"""

import graphviz
from typing import Optional

from backend.concept_tree import TreeView

SELECTED_FILL = '#f7931a'
ROOT_FILL = '#2b2b2b'
NODE_FILL = '#111111'


def create_concept_tree_graph(view: TreeView, selected_node_id: Optional[str] = None) -> graphviz.Digraph:
    """
    Create a Graphviz diagram for a two-level concept tree

    Args:
        view: Rendered tree (root, branches, leaves)
        selected_node_id: Node to highlight

    Returns:
        Graphviz Digraph object
    """
    dot = graphviz.Digraph(comment='Concept Tree', engine='dot')

    dot.attr(rankdir='LR')
    dot.attr('graph',
             ranksep='0.8',
             nodesep='0.3',
             fontname='Courier',
             bgcolor='transparent'
    )
    dot.attr('node',
             shape='box',
             style='rounded,filled',
             fontname='Courier',
             fontsize='10',
             fontcolor='#d1d5db',
             color='#444444'
    )
    dot.attr('edge', color='#666666', arrowsize='0.6')

    def add_node(node, fill):
        if node.id == selected_node_id:
            fill = SELECTED_FILL
        dot.node(node.id, node.label, fillcolor=fill, tooltip=node.summary)

    add_node(view.root, ROOT_FILL)
    for branch in view.branches:
        add_node(branch.node, NODE_FILL)
        dot.edge(view.root.id, branch.node.id)
        for child in branch.children:
            add_node(child, NODE_FILL)
            dot.edge(branch.node.id, child.id)

    return dot
