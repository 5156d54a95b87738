"""
Concept tree parsing for Infinite Bitcoin Text
Turns whatever the model returned into a well-formed, id-linked tree
"""

import json
import logging
from typing import Dict, List, Optional

import jsonschema, networkx as nx, Levenshtein

from backend.models import ConceptNode, generate_node_id
from utils.providers import MalformedContentError

logger = logging.getLogger(__name__)

# Maximum edit distance for a parent reference to count as a near-miss label
MAX_LABEL_DISTANCE = 2

ENVELOPE_SCHEMA = {
    "type": "object",
    "required": ["nodes"],
    "properties": {
        "nodes": {"type": "array"}
    }
}

ENTRY_SCHEMA = {
    "type": "object",
    "required": ["label"],
    "properties": {
        "label": {"type": "string", "pattern": r"\S"},
    }
}
_ENTRY_VALIDATOR = jsonschema.Draft7Validator(ENTRY_SCHEMA)


def fallback_root(topic: str) -> ConceptNode:
    """Single-node tree used when the model output is unusable"""
    return ConceptNode(
        id=generate_node_id(),
        label=topic,
        parent_id=None,
        summary=f"Exploring {topic} through Bitcoin's lens.",
    )


def extract_json_from_markdown(content: str) -> str:
    """
    Extract JSON content from markdown code blocks.

    Args:
        content: Raw content that may contain JSON wrapped in markdown

    Returns:
        Extracted JSON string, or original content if no JSON block found
    """
    lines = content.split('\n')
    json_start = -1
    json_end = -1

    # Look for ```json ... ``` (or bare ```) blocks
    for i, line in enumerate(lines):
        stripped = line.strip()
        if json_start == -1 and stripped in ('```json', '```'):
            json_start = i + 1
        elif stripped == '```' and json_start != -1:
            json_end = i
            break

    if json_start != -1 and json_end != -1:
        return '\n'.join(lines[json_start:json_end])

    return content


def load_raw_entries(content: str) -> list:
    """
    Decode the model output into a list of raw entries.
    Accepts {"nodes": [...]} or a bare list.

    Raises:
        MalformedContentError: If the content is empty, not JSON or the wrong shape
    """
    if not content or not content.strip():
        raise MalformedContentError("Empty tree content")

    try:
        data = json.loads(extract_json_from_markdown(content.strip()))
    except (ValueError, RecursionError) as e:
        raise MalformedContentError(f"Invalid JSON: {type(e).__name__}") from e

    if isinstance(data, list):
        return data

    try:
        jsonschema.validate(data, ENVELOPE_SCHEMA)
    except jsonschema.ValidationError as e:
        raise MalformedContentError(f"Schema error: {e.message}") from e

    return data["nodes"]


def _parent_reference(entry: Dict) -> Optional[str]:
    """parentId wins over parent; blank or non-string values count as absent"""
    for key in ("parentId", "parent"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def sanitize_entries(raw_entries: list, topic: str) -> List[Dict]:
    """
    Keep entries with a usable label and normalize their fields.

    The first surviving entry without a parent reference becomes the root
    (parent_ref None); any later parentless entry points at the topic.
    """
    sanitized = []
    for raw in raw_entries:
        if not _ENTRY_VALIDATOR.is_valid(raw):
            continue

        parent_ref = _parent_reference(raw)
        if parent_ref is None and sanitized:
            parent_ref = topic

        summary = raw.get("summary")
        upstream_id = raw.get("id")
        sanitized.append({
            "label": raw["label"].strip(),
            "parent_ref": parent_ref,
            "summary": summary.strip() if isinstance(summary, str) else "",
            "upstream_id": upstream_id.strip() if isinstance(upstream_id, str) else None,
        })
    return sanitized


def _closest_label(ref: str, labels: Dict[str, str], exclude_id: str) -> Optional[str]:
    """Node id whose label is within MAX_LABEL_DISTANCE of ref, if any"""
    best_id = None
    best_distance = MAX_LABEL_DISTANCE + 1
    for label, node_id in labels.items():
        if node_id == exclude_id:
            continue
        distance = Levenshtein.distance(ref.lower(), label)
        # Short labels are too close to everything
        if distance < best_distance and distance < len(label) // 2:
            best_id, best_distance = node_id, distance
    return best_id


def resolve_parents(entries: List[Dict], topic: str) -> List[ConceptNode]:
    """
    Assign fresh ids and turn string parent references into node ids.

    Resolution order: topic or root label, upstream id, exact label
    (case-insensitive), near-miss label, otherwise the root. Nodes that end
    up unreachable from the root are reattached to it.
    """
    ids = [generate_node_id() for _ in entries]
    root_idx = next((i for i, e in enumerate(entries) if e["parent_ref"] is None), None)

    nodes_prefix: List[ConceptNode] = []
    if root_idx is None:
        root = fallback_root(topic)
        nodes_prefix.append(root)
        root_id, root_label = root.id, root.label
    else:
        root_id, root_label = ids[root_idx], entries[root_idx]["label"]

    by_upstream_id = {}
    by_label = {}
    for node_id, entry in zip(ids, entries):
        if entry["upstream_id"] and entry["upstream_id"] not in by_upstream_id:
            by_upstream_id[entry["upstream_id"]] = node_id
        by_label.setdefault(entry["label"].lower(), node_id)

    root_refs = {topic.strip().lower(), root_label.lower()}
    parents = {}
    for node_id, entry in zip(ids, entries):
        ref = entry["parent_ref"]
        if ref is None:
            parents[node_id] = None
            continue
        if ref.lower() in root_refs:
            parent_id = root_id
        elif by_upstream_id.get(ref, node_id) != node_id:
            parent_id = by_upstream_id[ref]
        elif by_label.get(ref.lower(), node_id) != node_id:
            parent_id = by_label[ref.lower()]
        else:
            parent_id = _closest_label(ref, by_label, node_id) or root_id
        parents[node_id] = parent_id

    # Cycles and self references leave nodes cut off from the root
    g = nx.DiGraph()
    g.add_node(root_id)
    g.add_edges_from((p, n) for n, p in parents.items() if p is not None)
    reachable = nx.descendants(g, root_id) | {root_id}
    for node_id, parent_id in parents.items():
        if parent_id is not None and node_id not in reachable:
            logger.debug(f"Reattaching unreachable node {node_id} to root")
            parents[node_id] = root_id

    nodes = list(nodes_prefix)
    for node_id, entry in zip(ids, entries):
        nodes.append(ConceptNode(
            id=node_id,
            label=entry["label"],
            parent_id=parents[node_id],
            summary=entry["summary"],
        ))
    return nodes


def parse_concept_tree(content: str, topic: str) -> List[ConceptNode]:
    """
    Parse model output into concept nodes. Never raises for malformed content;
    unusable output yields the single fallback root.
    """
    try:
        raw_entries = load_raw_entries(content)
    except MalformedContentError as e:
        logger.warning(f"Concept tree for '{topic}' unusable, using fallback: {e}")
        return [fallback_root(topic)]

    entries = sanitize_entries(raw_entries, topic)
    if not entries:
        logger.warning(f"Concept tree for '{topic}' had no valid entries, using fallback")
        return [fallback_root(topic)]

    nodes = resolve_parents(entries, topic)
    logger.info(f"Parsed concept tree for '{topic}': {len(nodes)} nodes")
    return nodes
