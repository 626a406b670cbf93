"""
Data models for the property graph, traversal results, and search results.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .errors import InvalidArgumentError

SNIPPET_LENGTH = 200


def generate_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeType(str, Enum):
    ENTITY = "ENTITY"
    CONCEPT = "CONCEPT"
    SECTION = "SECTION"
    REFERENCE = "REFERENCE"
    NOTE = "NOTE"
    SYSTEM = "SYSTEM"
    PERSON = "PERSON"
    ORGANIZATION = "ORGANIZATION"
    EVENT = "EVENT"
    PLACE = "PLACE"
    ITEM = "ITEM"
    DOCUMENT = "DOCUMENT"
    LOCATION = "LOCATION"
    PROJECT = "PROJECT"


class EdgeType(str, Enum):
    AFFILIATED_WITH = "AFFILIATED_WITH"
    PARTICIPATED_IN = "PARTICIPATED_IN"
    LOCATED_IN = "LOCATED_IN"
    PART_OF = "PART_OF"
    REFERENCES = "REFERENCES"
    PRODUCED_BY = "PRODUCED_BY"
    SIMILAR_TO = "SIMILAR_TO"
    RELATED_TO = "RELATED_TO"
    MENTIONS = "MENTIONS"


class Node(BaseModel):
    id: str = Field(default_factory=generate_id)
    type: NodeType
    name: str
    properties: Dict[str, Any] = Field(default_factory=dict)
    source_uri: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def text(self) -> str:
        """Name plus flattened properties, the text that gets indexed and embedded."""
        return f"{self.name} {flatten_properties(self.properties)}".strip()


class Edge(BaseModel):
    id: str = Field(default_factory=generate_id)
    source_id: str
    target_id: str
    type: EdgeType = EdgeType.RELATED_TO
    properties: Dict[str, Any] = Field(default_factory=dict)
    source_uri: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def other_end(self, node_id: str) -> str:
        return self.target_id if self.source_id == node_id else self.source_id


class Document(BaseModel):
    """A source document, addressed by its unique URI."""

    id: str = Field(default_factory=generate_id)
    uri: str
    content: Optional[str] = None
    content_type: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ----------------------------------------------------------------------
# Structural query results
# ----------------------------------------------------------------------
class GraphNode(BaseModel):
    id: str
    type: NodeType
    name: str
    properties: Dict[str, Any] = Field(default_factory=dict)
    hop_level: int = 0
    centrality: Optional[float] = None

    @classmethod
    def from_node(cls, node: Node, hop_level: int) -> "GraphNode":
        return cls(
            id=node.id,
            type=node.type,
            name=node.name,
            properties=node.properties,
            hop_level=hop_level,
        )


class GraphEdge(BaseModel):
    id: str
    source_id: str
    target_id: str
    type: EdgeType
    properties: Dict[str, Any] = Field(default_factory=dict)
    hop_level: int = 0

    @classmethod
    def from_edge(cls, edge: Edge, hop_level: int) -> "GraphEdge":
        return cls(
            id=edge.id,
            source_id=edge.source_id,
            target_id=edge.target_id,
            type=edge.type,
            properties=edge.properties,
            hop_level=hop_level,
        )


class GraphNeighborhood(BaseModel):
    center_node_id: Optional[str] = None
    requested_hops: Optional[int] = None
    actual_hops: Optional[int] = None
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)
    nodes_per_hop: Dict[int, int] = Field(default_factory=dict)
    total_nodes: int = 0
    total_edges: int = 0
    search_time_ms: Optional[float] = None

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def hop_of(self, node_id: str) -> Optional[int]:
        for node in self.nodes:
            if node.id == node_id:
                return node.hop_level
        return None


class PathResult(BaseModel):
    source_id: str
    target_id: str
    max_hops: int
    path: List[str]
    search_time_ms: Optional[float] = None

    @computed_field
    @property
    def found(self) -> bool:
        return bool(self.path)

    @computed_field
    @property
    def length(self) -> int:
        return max(len(self.path) - 1, 0)


class ComponentResult(BaseModel):
    seed_id: str
    node_ids: List[str]
    total_elements: int
    offset: int
    page_size: int
    search_time_ms: Optional[float] = None


class CentralityEntry(BaseModel):
    node_id: str
    score: float


class CentralityResult(BaseModel):
    scores: List[CentralityEntry]
    total_elements: int
    offset: int
    page_size: int
    search_time_ms: Optional[float] = None


class GraphStatistics(BaseModel):
    total_nodes: int
    total_edges: int
    node_types: Dict[str, int] = Field(default_factory=dict)
    edge_types: Dict[str, int] = Field(default_factory=dict)
    avg_connections_per_node: Optional[float] = None


# ----------------------------------------------------------------------
# Relevance query results
# ----------------------------------------------------------------------
class Page(BaseModel):
    offset: int = Field(0, ge=0)
    size: int = Field(10, ge=1)

    @classmethod
    def of(cls, number: int = 0, size: int = 10, max_size: Optional[int] = None) -> "Page":
        """Build a page from a zero-based page number, rejecting bad bounds."""
        if number < 0:
            raise InvalidArgumentError("Page number must not be negative")
        if size < 1 or (max_size is not None and size > max_size):
            limit = f" and {max_size}" if max_size is not None else ""
            raise InvalidArgumentError(f"Page size must be between 1{limit}")
        return cls(offset=number * size, size=size)

    @property
    def number(self) -> int:
        return self.offset // self.size

    def slice(self, items: List[Any]) -> List[Any]:
        return items[self.offset : self.offset + self.size]


class SearchType(str, Enum):
    FULL_TEXT = "FULL_TEXT"
    VECTOR = "VECTOR"
    HYBRID = "HYBRID"
    GRAPH = "GRAPH"


class SearchResult(BaseModel):
    id: str
    type: Optional[NodeType] = None
    title: str
    snippet: Optional[str] = None
    highlighted_snippet: Optional[str] = None
    score: Optional[float] = None
    source_uri: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    connection_count: Optional[int] = None
    content_type: Optional[str] = None
    document_id: Optional[str] = None

    @classmethod
    def from_node(cls, node: Node, **extra: Any) -> "SearchResult":
        data = dict(
            id=node.id,
            type=node.type,
            title=node.name,
            snippet=node_snippet(node),
            source_uri=node.source_uri,
            metadata=node.properties,
            created_at=node.created_at,
            updated_at=node.updated_at,
        )
        data.update(extra)
        return cls(**data)

    @classmethod
    def from_document(cls, document: Document, **extra: Any) -> "SearchResult":
        data = dict(
            id=document.id,
            title=document.uri,
            snippet=_truncate(document.content) if document.content else None,
            source_uri=document.uri,
            content_type=document.content_type,
            metadata=document.metadata,
            created_at=document.created_at,
            updated_at=document.updated_at,
            document_id=document.id,
        )
        data.update(extra)
        return cls(**data)


class SearchHits(BaseModel):
    """A page of full-text matches plus the total match count."""

    results: List[SearchResult] = Field(default_factory=list)
    total: int = 0
    type_facets: Optional[Dict[str, int]] = None


class MergedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    result: SearchResult
    fts_score: float = 0.0
    vector_score: float = 0.0
    combined_score: float = 0.0
    has_highlight: bool = False


class SearchResponse(BaseModel):
    results: List[SearchResult] = Field(default_factory=list)
    total_elements: int = 0
    total_pages: int = 0
    current_page: int = 0
    page_size: int = 0
    query: Optional[str] = None
    search_type: SearchType
    search_time_ms: Optional[float] = None
    type_facets: Optional[Dict[str, int]] = None
    min_score: Optional[float] = None
    max_score: Optional[float] = None
    suggested_queries: Optional[List[str]] = None
    fts_weight: Optional[float] = None
    vector_weight: Optional[float] = None


def node_snippet(node: Node) -> str:
    if not node.properties:
        return node.name
    parts = [f"{key}: {value}" for key, value in node.properties.items() if value is not None]
    return _truncate(". ".join(parts) + ".")


def _truncate(text: str) -> str:
    if len(text) > SNIPPET_LENGTH:
        return text[:SNIPPET_LENGTH] + "..."
    return text


def flatten_properties(properties: Dict[str, Any]) -> str:
    """`key value` pairs joined by spaces; null values are skipped."""
    return " ".join(f"{key} {value}" for key, value in properties.items() if value is not None)


def total_pages(total: int, page_size: int) -> int:
    if page_size <= 0:
        return 0
    return math.ceil(total / page_size)


def score_bounds(results: List[SearchResult]):
    """(min, max) of result scores with nulls read as 0.0; (0.0, 0.0) when empty."""
    scores = [r.score or 0.0 for r in results]
    if not scores:
        return 0.0, 0.0
    return min(scores), max(scores)
