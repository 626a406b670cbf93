"""
Search utilities for full-text, vector, and hybrid retrieval.
"""
from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .adaptive import AdaptiveWeightController
from .config import settings
from .errors import GraphQueryError, InvalidArgumentError, NodeNotFoundError, UpstreamSearchError
from .fusion import SearchResultFusion, normalize_weights
from .interfaces import EmbeddingModel, FullTextIndex, GraphStore, VectorIndex
from .models import (
    NodeType,
    Page,
    SearchResponse,
    SearchResult,
    SearchType,
    score_bounds,
    total_pages,
)
from .timing import Stopwatch

logger = logging.getLogger(__name__)

FULL_TEXT = "full_text"
VECTOR = "vector"

MAX_SUGGESTIONS = 5
SYNONYMS = {
    "person": ["people", "individual", "user"],
    "organization": ["company", "business", "corp"],
    "document": ["file", "paper", "report"],
}


class SearchService:
    """
    Relevance-query surface.

    The full-text and vector branches of a hybrid search are independent and
    run on a two-worker thread pool (unless ``parallel`` is off); both are
    joined before merging. A failure in either branch fails the whole
    request with one ``UpstreamSearchError``.
    """

    def __init__(
        self,
        full_text: FullTextIndex,
        vectors: VectorIndex,
        embedder: EmbeddingModel,
        store: Optional[GraphStore] = None,
        fusion: Optional[SearchResultFusion] = None,
        parallel: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.full_text = full_text
        self.vectors = vectors
        self.embedder = embedder
        self.store = store
        self.fusion = fusion or SearchResultFusion()
        self.parallel = settings.concurrent_search if parallel is None else parallel
        self.timeout = settings.search_timeout_seconds if timeout is None else timeout
        self.adaptive = AdaptiveWeightController(self)
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._pool_lock = threading.Lock()

    def __enter__(self) -> "SearchService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        with self._pool_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None

    # ------------------------------------------------------------------
    # Single-source searches
    # ------------------------------------------------------------------
    def search(
        self,
        query: str,
        node_type: Optional[NodeType] = None,
        page: Optional[Page] = None,
        highlight: bool = True,
    ) -> SearchResponse:
        watch = Stopwatch()
        query = _check_query(query)
        page = page or Page(size=settings.default_page_size)
        logger.debug("Searching nodes with query: '%s', type: %s", query, node_type)

        if highlight and node_type is None:
            hits = self._run_branches({FULL_TEXT: lambda: self.full_text.search_with_highlight(query, page)})[FULL_TEXT]
        else:
            hits = self._run_branches({FULL_TEXT: lambda: self.full_text.search(query, node_type, page)})[FULL_TEXT]

        low, high = score_bounds(hits.results)
        return SearchResponse(
            results=hits.results,
            total_elements=hits.total,
            total_pages=total_pages(hits.total, page.size),
            current_page=page.number,
            page_size=page.size,
            query=query,
            search_type=SearchType.FULL_TEXT,
            search_time_ms=watch.elapsed_ms,
            type_facets=hits.type_facets,
            min_score=low if hits.results else None,
            max_score=high if hits.results else None,
            suggested_queries=self.suggest_queries(query) if not hits.results else None,
        )

    def search_documents(self, query: str, page: Optional[Page] = None) -> SearchResponse:
        """Full-text search over source documents rather than graph nodes."""
        watch = Stopwatch()
        query = _check_query(query)
        page = page or Page(size=settings.default_page_size)
        logger.debug("Searching documents with query: '%s'", query)
        hits = self._run_branches({FULL_TEXT: lambda: self.full_text.search_documents(query, page)})[FULL_TEXT]
        low, high = score_bounds(hits.results)
        return SearchResponse(
            results=hits.results,
            total_elements=hits.total,
            total_pages=total_pages(hits.total, page.size),
            current_page=page.number,
            page_size=page.size,
            query=query,
            search_type=SearchType.FULL_TEXT,
            search_time_ms=watch.elapsed_ms,
            min_score=low if hits.results else None,
            max_score=high if hits.results else None,
        )

    def vector_search(
        self, query: str, threshold: Optional[float] = None, limit: Optional[int] = None
    ) -> SearchResponse:
        watch = Stopwatch()
        query = _check_query(query)
        limit = settings.vector_k if limit is None else limit
        logger.debug("Vector search for: '%s', threshold: %s, limit: %s", query, threshold, limit)
        results = self._run_branches({VECTOR: lambda: self._vector_results(query, threshold, limit)})[VECTOR]
        return self._vector_response(results, query, limit, watch)

    def find_similar_nodes(self, node_id: str, limit: Optional[int] = None) -> SearchResponse:
        """Nodes whose vectors are closest to ``node_id``'s, excluding the node itself."""
        watch = Stopwatch()
        limit = settings.vector_k if limit is None else limit
        logger.debug("Finding nodes similar to: %s", node_id)
        node = self.store.get_node(node_id) if self.store is not None else None
        vector = self.vectors.vector_for(node_id)
        if vector is None:
            if node is None:
                raise NodeNotFoundError(node_id)
            logger.warning("No embeddings found for node: %s", node_id)
            vector = self.embedder.embed(node.text())

        def similar() -> List[SearchResult]:
            found = self.vectors.search(vector, settings.vector_threshold, limit + 1)
            return [r for r in found if r.id != node_id][:limit]

        results = self._run_branches({VECTOR: similar})[VECTOR]
        description = f"Similar to: {node.name}" if node is not None else f"Similar to node: {node_id}"
        return self._vector_response(results, description, limit, watch)

    # ------------------------------------------------------------------
    # Hybrid searches
    # ------------------------------------------------------------------
    def hybrid_search(
        self,
        query: str,
        fts_weight: Optional[float] = None,
        vector_weight: Optional[float] = None,
        page: Optional[Page] = None,
    ) -> SearchResponse:
        watch = Stopwatch()
        query = _check_query(query)
        page = page or Page(size=settings.default_page_size)
        fts_weight = settings.default_fts_weight if fts_weight is None else fts_weight
        vector_weight = settings.default_vector_weight if vector_weight is None else vector_weight
        fts_weight, vector_weight = normalize_weights(fts_weight, vector_weight)
        logger.debug("Hybrid search for: '%s', weights: FTS=%.2f, Vector=%.2f", query, fts_weight, vector_weight)

        # both candidate lists start at offset 0; pagination happens after the merge
        candidates = (page.offset + page.size) * 2
        branches = self._run_branches(
            {
                FULL_TEXT: lambda: self.full_text.search_with_highlight(query, Page(size=candidates)),
                VECTOR: lambda: self._vector_results(query, None, candidates),
            }
        )
        ranked = self.fusion.rank(branches[FULL_TEXT].results, branches[VECTOR], fts_weight, vector_weight)
        results = [merged.result for merged in page.slice(ranked)]
        low, high = score_bounds(results)

        return SearchResponse(
            results=results,
            total_elements=len(ranked),
            total_pages=total_pages(len(ranked), page.size),
            current_page=page.number,
            page_size=page.size,
            query=query,
            search_type=SearchType.HYBRID,
            search_time_ms=watch.elapsed_ms,
            type_facets=branches[FULL_TEXT].type_facets,
            min_score=low if results else None,
            max_score=high if results else None,
            fts_weight=fts_weight,
            vector_weight=vector_weight,
        )

    def adaptive_hybrid_search(self, query: str, page: Optional[Page] = None) -> SearchResponse:
        return self.adaptive.adaptive_fuse(_check_query(query), page)

    def probe(self, query: str, size: int) -> Tuple[List[SearchResult], List[SearchResult]]:
        """Small full-text and vector result lists used to judge back-end quality."""
        branches = self._run_branches(
            {
                FULL_TEXT: lambda: self.full_text.search(query, None, Page(size=size)).results,
                VECTOR: lambda: self._vector_results(query, None, size),
            }
        )
        return branches[FULL_TEXT], branches[VECTOR]

    def suggest_queries(self, query: str) -> List[str]:
        candidates: List[str] = []
        if " " in query.strip():
            candidates.extend(query.split())
        lowered = query.lower()
        for word, replacements in SYNONYMS.items():
            if word in lowered:
                candidates.extend(lowered.replace(word, synonym) for synonym in replacements)
        return list(dict.fromkeys(candidates))[:MAX_SUGGESTIONS]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _vector_results(self, query: str, threshold: Optional[float], limit: int) -> List[SearchResult]:
        threshold = settings.vector_threshold if threshold is None else threshold
        embedding = self.embedder.embed(query)
        return self.vectors.search(embedding, threshold, limit)

    def _vector_response(
        self, results: List[SearchResult], query: str, limit: int, watch: Stopwatch
    ) -> SearchResponse:
        low, high = score_bounds(results)
        return SearchResponse(
            results=results,
            total_elements=len(results),
            total_pages=1,
            current_page=0,
            page_size=limit,
            query=query,
            search_type=SearchType.VECTOR,
            search_time_ms=watch.elapsed_ms,
            min_score=low,
            max_score=high,
        )

    def _pool(self) -> concurrent.futures.ThreadPoolExecutor:
        with self._pool_lock:
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=2, thread_name_prefix="kg-search"
                )
            return self._executor

    def _run_branches(self, branches: Dict[str, Callable[[], Any]]) -> Dict[str, Any]:
        """
        Run every branch, concurrently when enabled, and join them all.

        Errors from our own taxonomy (bad arguments) are re-raised as they
        are; anything else becomes a single ``UpstreamSearchError`` naming
        every branch that failed.
        """
        results: Dict[str, Any] = {}
        failures: Dict[str, BaseException] = {}

        if self.parallel and len(branches) > 1:
            deadline = None if self.timeout is None else time.monotonic() + self.timeout
            futures = {name: self._pool().submit(fn) for name, fn in branches.items()}
            for name, future in futures.items():
                remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
                try:
                    results[name] = future.result(timeout=remaining)
                except concurrent.futures.TimeoutError as exc:
                    future.cancel()
                    failures[name] = exc
                except Exception as exc:
                    failures[name] = exc
        else:
            for name, fn in branches.items():
                try:
                    results[name] = fn()
                except Exception as exc:
                    failures[name] = exc

        if failures:
            for exc in failures.values():
                if isinstance(exc, GraphQueryError):
                    raise exc
            first = next(iter(failures.values()))
            logger.warning("Search branches failed: %s", ", ".join(sorted(failures)))
            raise UpstreamSearchError(failures) from first
        return results


def _check_query(query: str) -> str:
    if query is None or not query.strip():
        raise InvalidArgumentError("Search query cannot be empty")
    return query.strip()
