"""
Generation module for Infinite Bitcoin Text
Contains: prose generation for feed sections and concept tree generation
"""

import logging
import re
from typing import List, Optional, Sequence

from backend.models import ConceptNode, GeneratedText
from backend.topics import pick_topic
from utils.config import (
    CLIENT_MODEL, TEXT_TEMPERATURE, TREE_TEMPERATURE, EXCLUSION_HINT_SIZE
)
from utils.providers import (
    GenerationError, MalformedContentError, get_api_call_params,
    request_completion, extract_message_content, get_token_count
)
from utils.tree_parser import fallback_root, parse_concept_tree

logger = logging.getLogger(__name__)


TEXT_SYSTEM_PROMPT = (
    "You are the author of an infinite, living document about Bitcoin. "
    "You possess deep knowledge of cryptography, economics, history, and computer science. "
    "You write in a raw, terminal-like style."
)

TEXT_USER_PROMPT = """
Write a continuation for an infinite text file about Bitcoin.

Current Topic to Focus on: "{topic}"

Instructions:
1. Write 2-3 dense, high-quality paragraphs about this specific topic.
2. Style: Balance technical accuracy with philosophical cyberpunk flavor. Maximum one vivid metaphor per paragraph. When in doubt, choose clarity over atmosphere.
3. Clarity: Be clear first, precise second. Include at least one concrete fact or number per paragraph. Avoid heavy notation; favor plain language.
4. Relevance: Include one short anchor sentence in each paragraph explaining why this matters to a normal reader (security, autonomy, censorship-resistance).
5. Math markup ban: Avoid math symbols like $ or LaTeX notation; spell out concepts.
6. Format: Plain text only. NO markdown. Just raw paragraphs separated by newlines.
7. Tone: Serious, passionate, informative.
8. Do not write an intro or outro. Just the raw content.
9. Avoid repeating topics or specific arguments from these recent topics: {recent_hint}.
10. Technical accuracy is paramount. Verify security claims, especially around: (a) what 51% attacks can and cannot do; (b) what difficulty adjustment does and does not prevent; (c) collision resistance numbers and what they imply; (d) causality, e.g. difficulty adjustment maintains target timing; it does not prevent attacks.
11. Avoid overclaiming. Use phrases like "computationally infeasible" instead of "impossible" or "unbreakable".
"""

TREE_SYSTEM_PROMPT = (
    "You map Bitcoin concepts into small exploration trees. "
    "You reply with a single JSON object and nothing else."
)

TREE_USER_PROMPT = """
Build a concept tree for readers who want to dig deeper into the Bitcoin topic "{topic}".

Return JSON shaped exactly like:
{{"nodes": [{{"label": "...", "parent": null, "summary": "..."}}, ...]}}

Rules:
1. Exactly one root node: label "{topic}", parent null.
2. 3-4 branch nodes whose parent is the root label.
3. 1-2 leaf nodes under each branch, whose parent is that branch's label.
4. Labels are short (2-5 words) and unique within the tree.
5. Each summary is one plain sentence, no markdown.
"""

_HEADING_PATTERN = re.compile(r'^#+\s', re.MULTILINE)


def clean_generated_text(text: str) -> str:
    """Strip heading markers at line starts and bold delimiters"""
    return _HEADING_PATTERN.sub('', text.strip()).replace('**', '').strip()


def build_text_prompt(topic: str, recent_topics: Sequence[str]) -> str:
    """User prompt for a prose section about `topic`"""
    recent_hint = "; ".join(list(recent_topics)[-EXCLUSION_HINT_SIZE:]) or "none"
    return TEXT_USER_PROMPT.format(topic=topic, recent_hint=recent_hint).strip()


async def generate_bitcoin_text(
    recent_topics: Sequence[str] = (),
    forced_topic: Optional[str] = None
) -> GeneratedText:
    """
    Generate one section of prose.

    Args:
        recent_topics: Topics already shown, oldest first
        forced_topic: Use this topic verbatim instead of picking one

    Returns:
        GeneratedText with the cleaned prose and the topic used

    Raises:
        GenerationError: If the proxy call fails or returns a non-success status
    """
    topic = forced_topic if forced_topic is not None else pick_topic(recent_topics)

    params = get_api_call_params(
        model=CLIENT_MODEL,
        messages=[
            {"role": "system", "content": TEXT_SYSTEM_PROMPT},
            {"role": "user", "content": build_text_prompt(topic, recent_topics)}
        ],
        temperature=TEXT_TEMPERATURE
    )

    logger.info(f"[API CALL] Reason: Section text | Topic: {topic} | Model: {params.get('model')}")
    body = await request_completion(params)

    try:
        text = extract_message_content(body)
    except MalformedContentError as e:
        logger.error(f"Unreadable completion body: {str(e)}")
        raise GenerationError(f"Unreadable completion: {str(e)}", raw_text=body) from e

    logger.info(f"[API RETURN] Section text complete | Topic: {topic} | Tokens: {get_token_count(body)}")
    return GeneratedText(text=clean_generated_text(text), topic=topic)


async def generate_concept_tree(topic: str) -> List[ConceptNode]:
    """
    Generate a concept tree for `topic`.

    Malformed model output never raises; it degrades to a one-node tree.

    Raises:
        GenerationError: If the proxy call fails or returns a non-success status
    """
    params = get_api_call_params(
        model=CLIENT_MODEL,
        messages=[
            {"role": "system", "content": TREE_SYSTEM_PROMPT},
            {"role": "user", "content": TREE_USER_PROMPT.format(topic=topic).strip()}
        ],
        temperature=TREE_TEMPERATURE,
        response_format={"type": "json_object"}
    )

    logger.info(f"[API CALL] Reason: Concept tree | Topic: {topic} | Model: {params.get('model')}")
    body = await request_completion(params)

    try:
        content = extract_message_content(body)
    except MalformedContentError as e:
        logger.warning(f"Concept tree body unreadable, using fallback: {str(e)}")
        return [fallback_root(topic)]

    logger.info(f"[API RETURN] Concept tree complete | Topic: {topic} | Tokens: {get_token_count(body)}")
    logger.debug(f"Raw tree content:\n{content}")
    return parse_concept_tree(content, topic)
