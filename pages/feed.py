"""
Feed page
Renders the infinite text and each section's concept tree
"""

import asyncio
import logging

import streamlit as st

from backend.concept_tree import ConceptTreeController, build_tree_view
from backend.feed import FeedController
from backend.models import LoadingState
from components.concept_tree_viz import create_concept_tree_graph

# Set up logging
logger = logging.getLogger(__name__)

# Controllers live for the whole browser session
if "feed" not in st.session_state:
    st.session_state.feed = FeedController()
if "trees" not in st.session_state:
    st.session_state.trees = ConceptTreeController(st.session_state.feed)

feed: FeedController = st.session_state.feed
trees: ConceptTreeController = st.session_state.trees


def render_tree(section):
    """Concept tree controls under one section"""
    state = trees.get(section.id)
    label = "▾ CONCEPT_TREE" if state is not None and state.expanded else "▸ CONCEPT_TREE"
    if st.button(label, key=f"toggle-{section.id}"):
        with st.spinner("Mapping related concepts..."):
            asyncio.run(trees.toggle(section.id, section.topic))
        st.rerun()

    if state is None or not state.expanded:
        return

    if state.error:
        st.error(state.error)
        if st.button("Retry", key=f"tree-retry-{section.id}"):
            with st.spinner("Mapping related concepts..."):
                asyncio.run(trees.load(section.id, section.topic))
            st.rerun()

    if not state.nodes:
        return

    view = build_tree_view(state.nodes, section.topic)
    st.graphviz_chart(create_concept_tree_graph(view, state.selected_node_id).source, use_container_width=True)

    node_ids = [node.id for node in state.nodes]
    selected = st.radio(
        "Explore a concept:",
        options=node_ids,
        index=node_ids.index(state.selected_node_id) if state.selected_node_id in node_ids else 0,
        format_func=lambda x: state.get_node(x).label,
        key=f"select-{section.id}",
        horizontal=True,
    )
    if selected != state.selected_node_id:
        trees.select_node(section.id, selected)
        st.rerun()

    node = state.selected_node
    if node is not None and node.summary:
        st.caption(node.summary)

    if st.button("EXPAND_NODE →", key=f"expand-{section.id}", disabled=state.action_loading):
        with st.spinner(f"Writing about {node.label}..."):
            asyncio.run(trees.expand_selected(section.id))
        st.rerun()

    if state.action_error:
        st.error(state.action_error)


# Initial load
if not feed.sections and feed.loading_state == LoadingState.IDLE:
    with st.spinner(feed.loading_message):
        asyncio.run(feed.start())

for section in feed.sections:
    st.markdown(f"##### // {section.topic.upper()}")
    for paragraph in section.paragraphs:
        st.markdown(paragraph)
    render_tree(section)
    st.markdown("---")

# End of feed: stands in for the scroll-proximity trigger
if feed.loading_state == LoadingState.ERROR:
    st.error(feed.error_message)
    if st.button("RETRY_CONNECTION"):
        with st.spinner(feed.loading_message):
            asyncio.run(feed.retry())
        st.rerun()
elif st.button("KEEP_READING ↓", type="primary", use_container_width=True):
    with st.spinner(feed.loading_message):
        asyncio.run(feed.request_more())
    st.rerun()
