"""
Data models for Infinite Bitcoin Text
Contains dataclasses and type definitions
"""

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class LoadingState(str, Enum):
    """Feed-extension state, one flag for the whole feed"""
    IDLE = "IDLE"
    LOADING = "LOADING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ContentSection:
    """One generated block of prose with the topic it was written about"""
    id: str
    content: str
    topic: str

    @property
    def paragraphs(self) -> List[str]:
        """Non-empty paragraphs, one per line of content"""
        return [line.strip() for line in self.content.split("\n") if line.strip()]


@dataclass(frozen=True)
class ConceptNode:
    """Represents a concept tree node; parent_id is None for the root"""
    id: str
    label: str
    parent_id: Optional[str]
    summary: str = ""


@dataclass(frozen=True)
class GeneratedText:
    """Result of a prose generation call"""
    text: str
    topic: str


def generate_section_id() -> str:
    """Unique id for a content section"""
    return f"chunk-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def generate_node_id() -> str:
    """Unique id for a concept node"""
    return f"node-{uuid.uuid4().hex[:12]}"
