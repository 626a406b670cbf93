"""
In-memory graph store backed by a NetworkX multigraph.

Parallel edges between the same pair of nodes are kept apart by edge id,
which is what the traversal code relies on.
"""
from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Optional

import networkx as nx

from .errors import NodeNotFoundError
from .models import Edge, Node


class InMemoryGraphStore:
    def __init__(self, nodes: Iterable[Node] = (), edges: Iterable[Edge] = ()) -> None:
        self.graph = nx.MultiDiGraph()
        self.add_nodes(nodes)
        self.add_edges(edges)

    # ------------------------------------------------------------------
    # Node & Edge management
    # ------------------------------------------------------------------
    def add_node(self, node: Node) -> Node:
        self.graph.add_node(node.id, node=node)
        return node

    def add_nodes(self, nodes: Iterable[Node]) -> None:
        for node in nodes:
            self.add_node(node)

    def add_edge(self, edge: Edge) -> Edge:
        if edge.source_id not in self.graph:
            raise NodeNotFoundError(edge.source_id, role="Source node")
        if edge.target_id not in self.graph:
            raise NodeNotFoundError(edge.target_id, role="Target node")
        self.graph.add_edge(edge.source_id, edge.target_id, key=edge.id, edge=edge)
        return edge

    def add_edges(self, edges: Iterable[Edge]) -> None:
        for edge in edges:
            self.add_edge(edge)

    # ------------------------------------------------------------------
    # GraphStore interface
    # ------------------------------------------------------------------
    def get_node(self, node_id: str) -> Optional[Node]:
        if node_id not in self.graph:
            return None
        return self.graph.nodes[node_id]["node"]

    def list_nodes(self) -> List[Node]:
        return [data["node"] for _, data in self.graph.nodes(data=True)]

    def list_edges(self) -> List[Edge]:
        return [edge for _, _, edge in self.graph.edges(data="edge")]

    def edges_from(self, node_id: str, limit: Optional[int] = None, offset: int = 0) -> List[Edge]:
        if node_id not in self.graph:
            return []
        edges = [edge for _, _, edge in self.graph.out_edges(node_id, data="edge")]
        return _window(edges, limit, offset)

    def edges_to(self, node_id: str, limit: Optional[int] = None, offset: int = 0) -> List[Edge]:
        if node_id not in self.graph:
            return []
        edges = [edge for _, _, edge in self.graph.in_edges(node_id, data="edge")]
        return _window(edges, limit, offset)

    def count_nodes(self) -> int:
        return self.graph.number_of_nodes()

    def count_edges(self) -> int:
        return self.graph.number_of_edges()

    def node_type_counts(self) -> Dict[str, int]:
        return dict(Counter(node.type.value for node in self.list_nodes()))

    def edge_type_counts(self) -> Dict[str, int]:
        return dict(Counter(edge.type.value for edge in self.list_edges()))


def _window(edges: List[Edge], limit: Optional[int], offset: int) -> List[Edge]:
    if limit is None:
        return edges[offset:]
    return edges[offset : offset + limit]
