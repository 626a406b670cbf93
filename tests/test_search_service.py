import concurrent.futures
import threading
import time

import pytest

from conftest import StubEmbedder, StubFullTextIndex, StubVectorIndex, make_result
from kg_query.errors import InvalidArgumentError, NodeNotFoundError, UpstreamSearchError
from kg_query.memory import InMemoryGraphStore
from kg_query.models import Node, NodeType, Page, SearchType
from kg_query.search import SearchService


def build_service(fts=None, vec=None, **kwargs):
    fts = fts if fts is not None else StubFullTextIndex([make_result("a", 4.0), make_result("b", 2.0)])
    vec = vec if vec is not None else StubVectorIndex([make_result("a", 0.9), make_result("c", 0.6)])
    return SearchService(fts, vec, StubEmbedder(), **kwargs)


class SlowVectorIndex(StubVectorIndex):
    def search(self, embedding, threshold, limit):
        time.sleep(0.5)
        return super().search(embedding, threshold, limit)


class TestHybridSearch:
    def test_merges_both_sources(self):
        with build_service() as service:
            response = service.hybrid_search("acme")

        assert response.search_type == SearchType.HYBRID
        assert [r.id for r in response.results] == ["a", "c", "b"]
        assert response.results[0].score == pytest.approx((0.5 + 0.5) * 1.2)
        assert response.total_elements == 3
        assert response.fts_weight == pytest.approx(0.5)
        assert response.vector_weight == pytest.approx(0.5)
        assert response.type_facets == {"PERSON": 1}
        assert response.search_time_ms is not None

    def test_weights_normalized(self):
        with build_service() as service:
            response = service.hybrid_search("acme", fts_weight=1.0, vector_weight=3.0)
        assert response.fts_weight == pytest.approx(0.25)
        assert response.vector_weight == pytest.approx(0.75)

    def test_candidates_cover_requested_page(self):
        fts = StubFullTextIndex([make_result(f"f{i}", 1.0) for i in range(40)])
        vec = StubVectorIndex([])
        with build_service(fts, vec) as service:
            response = service.hybrid_search("acme", page=Page(offset=10, size=5))

        assert fts.calls[0].offset == 0
        assert fts.calls[0].size == 30
        assert vec.limits == [30]
        assert len(response.results) == 5
        assert response.current_page == 2
        assert response.total_elements == 30
        assert response.total_pages == 6

    def test_sequential_matches_parallel(self):
        with build_service(parallel=True) as parallel, build_service(parallel=False) as sequential:
            a = parallel.hybrid_search("acme")
            b = sequential.hybrid_search("acme")
        assert [(r.id, r.score) for r in a.results] == [(r.id, r.score) for r in b.results]

    def test_concurrent_callers_share_one_pool(self, monkeypatch):
        real_executor = concurrent.futures.ThreadPoolExecutor
        created = []

        class SlowStartExecutor(real_executor):
            def __init__(self, *args, **kwargs):
                time.sleep(0.05)
                super().__init__(*args, **kwargs)
                created.append(self)

        monkeypatch.setattr(concurrent.futures, "ThreadPoolExecutor", SlowStartExecutor)
        service = build_service(parallel=True)
        responses = []
        callers = [threading.Thread(target=lambda: responses.append(service.hybrid_search("acme"))) for _ in range(4)]
        for caller in callers:
            caller.start()
        for caller in callers:
            caller.join()
        service.close()

        assert len(responses) == 4
        assert len({tuple(r.id for r in response.results) for response in responses}) == 1
        assert len(created) == 1
        assert created[0]._shutdown

    @pytest.mark.parametrize("query", ["", "   "])
    def test_blank_query(self, query):
        with pytest.raises(InvalidArgumentError):
            build_service().hybrid_search(query)

    @pytest.mark.parametrize("parallel", [True, False])
    def test_vector_failure_fails_request(self, parallel):
        vec = StubVectorIndex([], error=RuntimeError("vector store down"))
        with build_service(vec=vec, parallel=parallel) as service:
            with pytest.raises(UpstreamSearchError) as info:
                service.hybrid_search("acme")
        assert info.value.branches == ["vector"]
        assert isinstance(info.value.__cause__, RuntimeError)

    def test_both_failures_reported_together(self):
        fts = StubFullTextIndex([], error=ConnectionError("fts down"))
        vec = StubVectorIndex([], error=RuntimeError("vector down"))
        with build_service(fts, vec) as service:
            with pytest.raises(UpstreamSearchError) as info:
                service.hybrid_search("acme")
        assert info.value.branches == ["full_text", "vector"]

    def test_argument_errors_pass_through(self):
        vec = StubVectorIndex([], error=InvalidArgumentError("dimension mismatch"))
        with build_service(vec=vec) as service:
            with pytest.raises(InvalidArgumentError, match="dimension mismatch"):
                service.hybrid_search("acme")

    def test_timeout_applies_to_branches(self):
        vec = SlowVectorIndex([make_result("a", 0.9)])
        with build_service(vec=vec, timeout=0.05) as service:
            with pytest.raises(UpstreamSearchError) as info:
                service.hybrid_search("acme")
        assert info.value.branches == ["vector"]


class TestSingleSourceSearch:
    def test_full_text(self):
        with build_service() as service:
            response = service.search("acme", page=Page(size=1))
        assert response.search_type == SearchType.FULL_TEXT
        assert [r.id for r in response.results] == ["a"]
        assert response.total_elements == 2
        assert response.total_pages == 2
        assert response.max_score == 4.0
        assert response.suggested_queries is None

    def test_no_hits_offers_suggestions(self):
        with build_service(fts=StubFullTextIndex([])) as service:
            response = service.search("person directory")
        assert response.results == []
        assert response.suggested_queries[:2] == ["person", "directory"]

    def test_full_text_failure_is_upstream(self):
        with build_service(fts=StubFullTextIndex([], error=OSError("disk"))) as service:
            with pytest.raises(UpstreamSearchError):
                service.search("acme")

    def test_vector(self):
        with build_service() as service:
            response = service.vector_search("acme", limit=1)
        assert response.search_type == SearchType.VECTOR
        assert [r.id for r in response.results] == ["a"]
        assert response.min_score == response.max_score == 0.9


class TestSimilarNodes:
    def test_excludes_the_node_itself(self):
        vec = StubVectorIndex(
            [make_result("a", 1.0), make_result("b", 0.8), make_result("c", 0.7)],
            vectors={"a": [1.0, 0.0]},
        )
        with build_service(vec=vec) as service:
            response = service.find_similar_nodes("a", limit=2)
        assert [r.id for r in response.results] == ["b", "c"]
        assert vec.limits == [3]

    def test_embeds_node_without_stored_vector(self):
        store = InMemoryGraphStore([Node(id="n", type=NodeType.NOTE, name="Note")])
        vec = StubVectorIndex([make_result("x", 0.9)])
        with build_service(vec=vec, store=store) as service:
            response = service.find_similar_nodes("n")
        assert response.query == "Similar to: Note"
        assert [r.id for r in response.results] == ["x"]

    def test_unknown_node(self):
        with build_service(store=InMemoryGraphStore()) as service:
            with pytest.raises(NodeNotFoundError):
                service.find_similar_nodes("missing")


class TestSuggestions:
    def test_words_and_synonyms_capped(self):
        suggestions = build_service().suggest_queries("person search")
        assert suggestions == ["person", "search", "people search", "individual search", "user search"]

    def test_single_word_without_synonym(self):
        assert build_service().suggest_queries("rocket") == []

    def test_deduplicated(self):
        assert build_service().suggest_queries("document document") == [
            "document",
            "file file",
            "paper paper",
            "report report",
        ]
