"""
Shared fixtures: small example graphs, a loaded SQLite store, and stub
search back-ends with fixed results.
"""
from typing import Dict, List, Optional

import pytest

from kg_query.memory import InMemoryGraphStore
from kg_query.models import Edge, EdgeType, Node, NodeType, Page, SearchHits, SearchResult
from kg_query.sample import load_documents, load_graph
from kg_query.storage import GraphVectorStore


def make_result(result_id: str, score: Optional[float], highlight: Optional[str] = None) -> SearchResult:
    return SearchResult(id=result_id, title=f"Result {result_id}", score=score, highlighted_snippet=highlight)


class StubFullTextIndex:
    def __init__(self, results: List[SearchResult], error: Optional[Exception] = None) -> None:
        self.results = results
        self.error = error
        self.calls: List[Page] = []

    def search(self, query, node_type, page):
        return self._hits(page)

    def search_with_highlight(self, query, page):
        return self._hits(page)

    def search_documents(self, query, page):
        return self._hits(page)

    def _hits(self, page: Page) -> SearchHits:
        self.calls.append(page)
        if self.error is not None:
            raise self.error
        return SearchHits(results=page.slice(self.results), total=len(self.results), type_facets={"PERSON": 1})


class StubVectorIndex:
    def __init__(
        self,
        results: List[SearchResult],
        error: Optional[Exception] = None,
        vectors: Optional[Dict[str, List[float]]] = None,
    ) -> None:
        self.results = results
        self.error = error
        self.vectors = vectors or {}
        self.limits: List[int] = []

    def search(self, embedding, threshold, limit):
        self.limits.append(limit)
        if self.error is not None:
            raise self.error
        return self.results[:limit]

    def vector_for(self, node_id):
        return self.vectors.get(node_id)


class StubEmbedder:
    def embed(self, text):
        return [1.0, 0.0]


@pytest.fixture
def example_graph():
    """
    A (PERSON) -AFFILIATED_WITH-> B (ORGANIZATION)
    A -PARTICIPATED_IN-> C (EVENT)
    B -PART_OF-> D (CONCEPT)
    plus an isolated node E.
    """
    nodes = [
        Node(id="A", type=NodeType.PERSON, name="Alice"),
        Node(id="B", type=NodeType.ORGANIZATION, name="Acme"),
        Node(id="C", type=NodeType.EVENT, name="Launch"),
        Node(id="D", type=NodeType.CONCEPT, name="Rocketry"),
        Node(id="E", type=NodeType.ITEM, name="Lonely widget"),
    ]
    edges = [
        Edge(id="ab", source_id="A", target_id="B", type=EdgeType.AFFILIATED_WITH),
        Edge(id="ac", source_id="A", target_id="C", type=EdgeType.PARTICIPATED_IN),
        Edge(id="bd", source_id="B", target_id="D", type=EdgeType.PART_OF),
    ]
    return InMemoryGraphStore(nodes, edges)


@pytest.fixture
def cyclic_graph():
    """Triangle X-Y-Z with two parallel X->Y edges and a self loop on Z."""
    nodes = [Node(id=node_id, type=NodeType.ENTITY, name=node_id) for node_id in ("X", "Y", "Z")]
    edges = [
        Edge(id="xy1", source_id="X", target_id="Y"),
        Edge(id="xy2", source_id="X", target_id="Y", type=EdgeType.SIMILAR_TO),
        Edge(id="yz", source_id="Y", target_id="Z"),
        Edge(id="zx", source_id="Z", target_id="X"),
        Edge(id="zz", source_id="Z", target_id="Z"),
    ]
    return InMemoryGraphStore(nodes, edges)


@pytest.fixture
def sqlite_store(tmp_path):
    store = GraphVectorStore(tmp_path / "graph.db")
    load_graph(store)
    load_documents(store)
    yield store
    store.close()
