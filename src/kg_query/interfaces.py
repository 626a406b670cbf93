"""
Collaborator interfaces consumed by the query core.

Any object with these methods can back the traversal and search services;
``storage.GraphVectorStore``, ``memory.InMemoryGraphStore`` and the indexes in
``indexes`` are the implementations shipped here.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Protocol, runtime_checkable

from .models import Edge, Node, NodeType, Page, SearchHits, SearchResult


@runtime_checkable
class GraphStore(Protocol):
    def get_node(self, node_id: str) -> Optional[Node]: ...

    def edges_from(self, node_id: str, limit: Optional[int] = None, offset: int = 0) -> List[Edge]: ...

    def edges_to(self, node_id: str, limit: Optional[int] = None, offset: int = 0) -> List[Edge]: ...

    def count_nodes(self) -> int: ...

    def count_edges(self) -> int: ...

    def node_type_counts(self) -> Dict[str, int]: ...

    def edge_type_counts(self) -> Dict[str, int]: ...


@runtime_checkable
class FullTextIndex(Protocol):
    def search(self, query: str, node_type: Optional[NodeType], page: Page) -> SearchHits: ...

    def search_with_highlight(self, query: str, page: Page) -> SearchHits: ...

    def search_documents(self, query: str, page: Page) -> SearchHits: ...


@runtime_checkable
class VectorIndex(Protocol):
    def search(self, embedding: List[float], threshold: float, limit: int) -> List[SearchResult]: ...

    def vector_for(self, node_id: str) -> Optional[List[float]]: ...


@runtime_checkable
class EmbeddingModel(Protocol):
    def embed(self, text: str) -> List[float]: ...
