import networkx as nx
import pytest

from kg_query.errors import InvalidArgumentError, NodeNotFoundError
from kg_query.memory import InMemoryGraphStore
from kg_query.models import Edge, Node, NodeType, Page
from kg_query.traversal import (
    CentralityEstimator,
    ComponentFinder,
    GraphTraversalService,
    NeighborhoodExplorer,
    PathFinder,
    SubgraphExtractor,
    neighbor_ids,
)


class TestNeighborhood:
    @pytest.mark.parametrize("hops", [-1, 0, 4, 10])
    def test_hops_outside_range_rejected(self, example_graph, hops):
        with pytest.raises(InvalidArgumentError):
            NeighborhoodExplorer(example_graph).get_neighborhood("A", hops)

    def test_unknown_center(self, example_graph):
        with pytest.raises(NodeNotFoundError):
            NeighborhoodExplorer(example_graph).get_neighborhood("missing", 1)

    @pytest.mark.parametrize("hops", [1, 2, 3])
    def test_isolated_center(self, example_graph, hops):
        result = NeighborhoodExplorer(example_graph).get_neighborhood("E", hops)
        assert result.node_ids() == ["E"]
        assert result.edges == []
        assert result.actual_hops == 0
        assert result.nodes_per_hop == {0: 1}

    def test_one_hop(self, example_graph):
        result = NeighborhoodExplorer(example_graph).get_neighborhood("A", 1)
        assert result.total_nodes == 3
        assert result.total_edges == 2
        assert {n.id: n.hop_level for n in result.nodes} == {"A": 0, "B": 1, "C": 1}
        assert result.nodes[0].id == "A"
        assert result.requested_hops == 1
        assert result.actual_hops == 1

    def test_two_hops(self, example_graph):
        result = NeighborhoodExplorer(example_graph).get_neighborhood("A", 2)
        assert result.total_nodes == 4
        assert result.total_edges == 3
        assert result.hop_of("D") == 2
        assert result.nodes_per_hop == {0: 1, 1: 2, 2: 1}
        assert {e.id: e.hop_level for e in result.edges} == {"ab": 1, "ac": 1, "bd": 2}

    def test_actual_hops_stops_at_graph_edge(self, example_graph):
        result = NeighborhoodExplorer(example_graph).get_neighborhood("A", 3)
        assert result.requested_hops == 3
        assert result.actual_hops == 2

    def test_follows_incoming_edges(self, example_graph):
        result = NeighborhoodExplorer(example_graph).get_neighborhood("D", 2)
        assert result.hop_of("B") == 1
        assert result.hop_of("A") == 2
        assert result.hop_of("C") is None

    def test_cycles_report_each_edge_once(self, cyclic_graph):
        result = NeighborhoodExplorer(cyclic_graph).get_neighborhood("X", 3)
        edge_ids = [edge.id for edge in result.edges]
        assert len(edge_ids) == len(set(edge_ids))
        assert set(edge_ids) == {"xy1", "xy2", "yz", "zx", "zz"}
        assert sorted(result.node_ids()) == ["X", "Y", "Z"]

    def test_parallel_edges_both_reported(self, cyclic_graph):
        result = NeighborhoodExplorer(cyclic_graph).get_neighborhood("X", 1)
        assert {"xy1", "xy2"} <= {edge.id for edge in result.edges}
        assert result.hop_of("Y") == 1
        assert result.hop_of("Z") == 1

    def test_hop_levels_are_minimal(self):
        # long way round: S-1-2-3-T, short cut S-T
        nodes = [Node(id=i, type=NodeType.ENTITY, name=i) for i in ("S", "1", "2", "3", "T")]
        edges = [
            Edge(source_id="S", target_id="1"),
            Edge(source_id="1", target_id="2"),
            Edge(source_id="2", target_id="3"),
            Edge(source_id="3", target_id="T"),
            Edge(source_id="T", target_id="S"),
        ]
        result = NeighborhoodExplorer(InMemoryGraphStore(nodes, edges)).get_neighborhood("S", 3)
        assert result.hop_of("T") == 1
        assert result.hop_of("3") == 2


class TestShortestPath:
    @pytest.mark.parametrize("hops", [0, 1, 5])
    def test_same_node(self, example_graph, hops):
        assert PathFinder(example_graph).find_shortest_path("A", "A", hops) == ["A"]

    def test_example_path(self, example_graph):
        assert PathFinder(example_graph).find_shortest_path("A", "D", 5) == ["A", "B", "D"]

    def test_path_against_edge_direction(self, example_graph):
        assert PathFinder(example_graph).find_shortest_path("D", "C", 5) == ["D", "B", "A", "C"]

    def test_bound_too_small(self, example_graph):
        finder = PathFinder(example_graph)
        assert finder.find_shortest_path("A", "D", 1) == []
        assert finder.find_shortest_path("A", "D", 2) == ["A", "B", "D"]

    def test_disconnected(self, example_graph):
        assert PathFinder(example_graph).find_shortest_path("A", "E", 5) == []

    def test_unknown_endpoints(self, example_graph):
        finder = PathFinder(example_graph)
        with pytest.raises(NodeNotFoundError):
            finder.find_shortest_path("missing", "A", 3)
        with pytest.raises(NodeNotFoundError):
            finder.find_shortest_path("A", "missing", 3)

    def test_negative_bound(self, example_graph):
        with pytest.raises(InvalidArgumentError):
            PathFinder(example_graph).find_shortest_path("A", "B", -1)

    def test_length_matches_bfs_distance(self, cyclic_graph, example_graph):
        for store in (cyclic_graph, example_graph):
            undirected = nx.Graph(store.graph)
            finder = PathFinder(store)
            for source in undirected:
                for target in undirected:
                    if not nx.has_path(undirected, source, target):
                        continue
                    expected = nx.shortest_path_length(undirected, source, target)
                    path = finder.find_shortest_path(source, target, 10)
                    assert len(path) - 1 == expected
                    assert path[0] == source and path[-1] == target


class TestConnectedComponent:
    def test_contains_seed(self, example_graph):
        assert ComponentFinder(example_graph).get_connected_component("C") == {"A", "B", "C", "D"}

    def test_members_share_component(self, example_graph):
        finder = ComponentFinder(example_graph)
        assert finder.get_connected_component("A") == finder.get_connected_component("D")

    def test_isolated_node(self, example_graph):
        assert ComponentFinder(example_graph).get_connected_component("E") == {"E"}

    def test_unknown_seed(self, example_graph):
        with pytest.raises(NodeNotFoundError):
            ComponentFinder(example_graph).get_connected_component("missing")

    def test_cycles_terminate(self, cyclic_graph):
        assert ComponentFinder(cyclic_graph).get_connected_component("Z") == {"X", "Y", "Z"}


class TestCentrality:
    def test_degree_over_set(self, example_graph):
        scores = CentralityEstimator(example_graph).calculate_centrality({"A", "B", "C", "D"})
        assert scores == pytest.approx({"A": 2 / 3, "B": 2 / 3, "C": 1 / 3, "D": 1 / 3})

    def test_degree_is_counted_against_whole_graph(self, example_graph):
        # A has two neighbors outside the set; the normalizer floor of 1
        # means a single-node set reports the raw global degree.
        assert CentralityEstimator(example_graph).calculate_centrality({"A"}) == {"A": 2.0}

    def test_isolated_single_node(self, example_graph):
        assert CentralityEstimator(example_graph).calculate_centrality({"E"}) == {"E": 0.0}

    def test_parallel_edges_count_one_neighbor(self, cyclic_graph):
        scores = CentralityEstimator(cyclic_graph).calculate_centrality(["X", "Y", "Z"])
        assert scores["X"] == pytest.approx(1.0)

    def test_unknown_id_has_zero_degree(self, example_graph):
        assert CentralityEstimator(example_graph).calculate_centrality(["missing", "A"])["missing"] == 0.0


def test_neighbor_ids_are_distinct(cyclic_graph):
    assert neighbor_ids(cyclic_graph, "X") == ["Y", "Z"]
    assert neighbor_ids(cyclic_graph, "Z") == ["X", "Z", "Y"]


class TestSubgraph:
    def test_keeps_internal_edges_only(self, example_graph):
        result = SubgraphExtractor(example_graph).extract_subgraph(["A", "B", "D"])
        assert result.node_ids() == ["A", "B", "D"]
        assert {edge.id for edge in result.edges} == {"ab", "bd"}
        assert all(node.hop_level == 0 for node in result.nodes)

    def test_nodes_carry_centrality_over_resolved_set(self, example_graph):
        result = SubgraphExtractor(example_graph).extract_subgraph(["A", "B", "D", "missing"])
        assert {node.id: node.centrality for node in result.nodes} == pytest.approx(
            {"A": 1.0, "B": 1.0, "D": 0.5}
        )

    def test_unknown_ids_skipped(self, example_graph):
        result = SubgraphExtractor(example_graph).extract_subgraph(["A", "missing"])
        assert result.node_ids() == ["A"]
        assert result.total_edges == 0


class TestTraversalService:
    def test_neighborhood_has_timing(self, example_graph):
        result = GraphTraversalService(example_graph).get_neighborhood("A", 2)
        assert result.search_time_ms is not None
        assert result.total_nodes == 4

    def test_path_result(self, example_graph):
        result = GraphTraversalService(example_graph).find_shortest_path("A", "D")
        assert result.max_hops == 5
        assert result.found
        assert result.length == 2

    def test_missing_path_is_not_an_error(self, example_graph):
        result = GraphTraversalService(example_graph).find_shortest_path("A", "E", 3)
        assert not result.found
        assert result.path == []

    def test_component_paging(self, example_graph):
        service = GraphTraversalService(example_graph)
        result = service.get_connected_component("A", Page(offset=1, size=2))
        assert result.node_ids == ["B", "C"]
        assert result.total_elements == 4

    def test_centrality_ranked(self, example_graph):
        result = GraphTraversalService(example_graph).calculate_centrality(["D", "C", "B", "A"])
        assert [entry.node_id for entry in result.scores] == ["A", "B", "C", "D"]
        assert result.total_elements == 4

    def test_statistics(self, example_graph):
        stats = GraphTraversalService(example_graph).graph_statistics()
        assert stats.total_nodes == 5
        assert stats.total_edges == 3
        assert stats.node_types["PERSON"] == 1
        assert stats.edge_types == {"AFFILIATED_WITH": 1, "PARTICIPATED_IN": 1, "PART_OF": 1}
        assert stats.avg_connections_per_node == pytest.approx(6 / 5)
