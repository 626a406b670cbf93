"""
Structural queries over a graph store: neighborhoods, shortest paths,
connected components, degree centrality and subgraph extraction.

Every edge is traversable in both directions (outgoing from its source,
incoming to its target). All operations are read-only.
"""
from __future__ import annotations

import logging
from collections import Counter, deque
from typing import Deque, Dict, Iterable, List, Optional, Set

from .config import settings
from .errors import InvalidArgumentError, NodeNotFoundError
from .interfaces import GraphStore
from .models import (
    CentralityEntry,
    CentralityResult,
    ComponentResult,
    GraphEdge,
    GraphNeighborhood,
    GraphNode,
    GraphStatistics,
    Node,
    Page,
    PathResult,
)
from .timing import Stopwatch

logger = logging.getLogger(__name__)


def neighbor_ids(store: GraphStore, node_id: str) -> List[str]:
    """Distinct one-hop neighbors, outgoing targets first, in store order."""
    neighbors = [edge.target_id for edge in store.edges_from(node_id)]
    neighbors.extend(edge.source_id for edge in store.edges_to(node_id))
    return list(dict.fromkeys(neighbors))


def require_node(store: GraphStore, node_id: str, role: str = "Node") -> Node:
    node = store.get_node(node_id)
    if node is None:
        raise NodeNotFoundError(node_id, role=role)
    return node


class NeighborhoodExplorer:
    """
    Level-by-level BFS around a center node.

    Nodes and edges are tracked in separate visited sets. Edges are keyed by
    edge id, so parallel edges between the same two nodes are all reported
    and no edge is reported twice when it is reached from both endpoints.
    A node keeps the hop level at which it was first discovered.
    """

    def __init__(self, store: GraphStore, min_hops: Optional[int] = None, max_hops: Optional[int] = None) -> None:
        self.store = store
        self.min_hops = settings.min_hops if min_hops is None else min_hops
        self.max_hops = settings.max_hops if max_hops is None else max_hops

    def get_neighborhood(self, center_id: str, max_hops: int) -> GraphNeighborhood:
        logger.debug("Getting %s-hop neighborhood for node: %s", max_hops, center_id)
        if max_hops < self.min_hops or max_hops > self.max_hops:
            raise InvalidArgumentError(f"Hops must be between {self.min_hops} and {self.max_hops}")

        center = require_node(self.store, center_id)
        visited_nodes: Set[str] = {center_id}
        visited_edges: Set[str] = set()
        nodes: List[GraphNode] = [GraphNode.from_node(center, 0)]
        edges: List[GraphEdge] = []

        frontier: List[Node] = [center]
        for hop in range(1, max_hops + 1):
            next_frontier: List[Node] = []
            for current in frontier:
                for edge in self.store.edges_from(current.id) + self.store.edges_to(current.id):
                    if edge.id in visited_edges:
                        continue
                    visited_edges.add(edge.id)
                    edges.append(GraphEdge.from_edge(edge, hop))

                    far_id = edge.other_end(current.id)
                    if far_id in visited_nodes:
                        continue
                    far_node = self.store.get_node(far_id)
                    if far_node is None:
                        # dangling edge; nothing to expand
                        continue
                    visited_nodes.add(far_id)
                    nodes.append(GraphNode.from_node(far_node, hop))
                    next_frontier.append(far_node)
            frontier = next_frontier
            if not frontier:
                break

        nodes_per_hop = dict(sorted(Counter(node.hop_level for node in nodes).items()))
        return GraphNeighborhood(
            center_node_id=center_id,
            requested_hops=max_hops,
            actual_hops=len(nodes_per_hop) - 1,
            nodes=nodes,
            edges=edges,
            nodes_per_hop=nodes_per_hop,
            total_nodes=len(nodes),
            total_edges=len(edges),
        )


class PathFinder:
    def __init__(self, store: GraphStore) -> None:
        self.store = store

    def find_shortest_path(self, source_id: str, target_id: str, max_hops: int) -> List[str]:
        """
        Shortest path (in edges) from source to target, at most ``max_hops``
        edges long. An empty list means no path exists within the bound.
        """
        logger.debug("Finding path from %s to %s (max %s hops)", source_id, target_id, max_hops)
        if max_hops < 0:
            raise InvalidArgumentError("max_hops must not be negative")
        require_node(self.store, source_id, role="Source node")
        require_node(self.store, target_id, role="Target node")

        if source_id == target_id:
            return [source_id]

        queue: Deque[List[str]] = deque([[source_id]])
        visited: Set[str] = {source_id}
        while queue and len(queue[0]) <= max_hops:
            path = queue.popleft()
            for neighbor in neighbor_ids(self.store, path[-1]):
                if neighbor == target_id:
                    return path + [target_id]
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(path + [neighbor])
        return []


class ComponentFinder:
    def __init__(self, store: GraphStore) -> None:
        self.store = store

    def get_connected_component(self, seed_id: str) -> Set[str]:
        logger.debug("Finding connected component for node: %s", seed_id)
        require_node(self.store, seed_id)
        component: Set[str] = {seed_id}
        queue: Deque[str] = deque([seed_id])
        while queue:
            current = queue.popleft()
            for neighbor in neighbor_ids(self.store, current):
                if neighbor not in component:
                    component.add(neighbor)
                    queue.append(neighbor)
        return component


class CentralityEstimator:
    """
    Degree centrality over a set of nodes.

    The degree is counted against the whole graph, while the normalizer is
    ``len(node_ids) - 1`` (floored at 1). For a set that is not a closed
    neighborhood the score can therefore exceed 1.0.
    """

    def __init__(self, store: GraphStore) -> None:
        self.store = store

    def calculate_centrality(self, node_ids: Iterable[str]) -> Dict[str, float]:
        ids = list(dict.fromkeys(node_ids))
        normalizer = max(len(ids) - 1, 1)
        return {node_id: len(neighbor_ids(self.store, node_id)) / normalizer for node_id in ids}


class SubgraphExtractor:
    """
    Induced subgraph over a node id set. Each node carries its degree
    centrality relative to the resolved set.
    """

    def __init__(self, store: GraphStore) -> None:
        self.store = store
        self.centrality = CentralityEstimator(store)

    def extract_subgraph(self, node_ids: Iterable[str]) -> GraphNeighborhood:
        ids = list(dict.fromkeys(node_ids))
        logger.debug("Extracting subgraph for %s nodes", len(ids))
        members = set(ids)
        resolved = [node for node in (self.store.get_node(node_id) for node_id in ids) if node is not None]
        scores = self.centrality.calculate_centrality(node.id for node in resolved)
        nodes = [
            GraphNode.from_node(node, 0).model_copy(update={"centrality": scores[node.id]})
            for node in resolved
        ]
        edges = [
            GraphEdge.from_edge(edge, 0)
            for node_id in ids
            for edge in self.store.edges_from(node_id)
            if edge.target_id in members
        ]
        return GraphNeighborhood(
            nodes=nodes,
            edges=edges,
            nodes_per_hop={0: len(nodes)} if nodes else {},
            total_nodes=len(nodes),
            total_edges=len(edges),
        )


class GraphTraversalService:
    """
    Structural-query surface: wraps the traversal components with paging
    and elapsed-time telemetry.
    """

    def __init__(self, store: GraphStore) -> None:
        self.store = store
        self.explorer = NeighborhoodExplorer(store)
        self.path_finder = PathFinder(store)
        self.component_finder = ComponentFinder(store)
        self.centrality = CentralityEstimator(store)
        self.subgraphs = SubgraphExtractor(store)

    def get_neighborhood(self, node_id: str, max_hops: int = 1) -> GraphNeighborhood:
        watch = Stopwatch()
        neighborhood = self.explorer.get_neighborhood(node_id, max_hops)
        neighborhood.search_time_ms = watch.elapsed_ms
        return neighborhood

    def find_shortest_path(self, source_id: str, target_id: str, max_hops: Optional[int] = None) -> PathResult:
        watch = Stopwatch()
        max_hops = settings.default_path_hops if max_hops is None else max_hops
        path = self.path_finder.find_shortest_path(source_id, target_id, max_hops)
        return PathResult(
            source_id=source_id,
            target_id=target_id,
            max_hops=max_hops,
            path=path,
            search_time_ms=watch.elapsed_ms,
        )

    def extract_subgraph(self, node_ids: Iterable[str]) -> GraphNeighborhood:
        watch = Stopwatch()
        subgraph = self.subgraphs.extract_subgraph(node_ids)
        subgraph.search_time_ms = watch.elapsed_ms
        return subgraph

    def get_connected_component(self, seed_id: str, page: Optional[Page] = None) -> ComponentResult:
        watch = Stopwatch()
        page = page or Page(size=settings.max_page_size)
        members = sorted(self.component_finder.get_connected_component(seed_id))
        return ComponentResult(
            seed_id=seed_id,
            node_ids=page.slice(members),
            total_elements=len(members),
            offset=page.offset,
            page_size=page.size,
            search_time_ms=watch.elapsed_ms,
        )

    def calculate_centrality(self, node_ids: Iterable[str], page: Optional[Page] = None) -> CentralityResult:
        watch = Stopwatch()
        page = page or Page(size=settings.max_page_size)
        scores = self.centrality.calculate_centrality(node_ids)
        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
        return CentralityResult(
            scores=[CentralityEntry(node_id=node_id, score=score) for node_id, score in page.slice(ranked)],
            total_elements=len(ranked),
            offset=page.offset,
            page_size=page.size,
            search_time_ms=watch.elapsed_ms,
        )

    def graph_statistics(self) -> GraphStatistics:
        total_nodes = self.store.count_nodes()
        total_edges = self.store.count_edges()
        return GraphStatistics(
            total_nodes=total_nodes,
            total_edges=total_edges,
            node_types=self.store.node_type_counts(),
            edge_types=self.store.edge_type_counts(),
            avg_connections_per_node=(2.0 * total_edges / total_nodes) if total_nodes else None,
        )
