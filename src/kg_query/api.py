"""
FastAPI service exposing structural graph queries and relevance search.

Run with ``uvicorn kg_query.api:create_app --factory``.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Body, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from .config import settings
from .embeddings import HashEmbeddingModel
from .errors import GraphQueryError, InvalidArgumentError, NodeNotFoundError, UpstreamSearchError
from .indexes import SqliteFullTextIndex, SqliteVectorIndex
from .interfaces import EmbeddingModel
from .models import (
    CentralityResult,
    ComponentResult,
    GraphNeighborhood,
    GraphStatistics,
    Node,
    NodeType,
    Page,
    PathResult,
    SearchResponse,
    utcnow,
)
from .search import SearchService
from .storage import GraphVectorStore
from .traversal import GraphTraversalService

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (InvalidArgumentError, 400),
    (NodeNotFoundError, 404),
    (UpstreamSearchError, 502),
)


def error_body(message: str, status: int) -> dict:
    return {"message": message, "status": status, "timestamp": utcnow().isoformat()}


def _page(page: int, size: int) -> Page:
    return Page.of(page, size, max_size=settings.max_page_size)


def create_app(
    store: Optional[GraphVectorStore] = None,
    embedder: Optional[EmbeddingModel] = None,
) -> FastAPI:
    store = store or GraphVectorStore()
    embedder = embedder or HashEmbeddingModel()
    graph_service = GraphTraversalService(store)
    search_service = SearchService(
        SqliteFullTextIndex(store),
        SqliteVectorIndex(store),
        embedder,
        store=store,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        search_service.close()

    app = FastAPI(title="Knowledge Graph Query Service", version="0.1.0", lifespan=lifespan)
    app.state.store = store
    app.state.graph_service = graph_service
    app.state.search_service = search_service

    @app.exception_handler(GraphQueryError)
    async def handle_query_error(request: Request, exc: GraphQueryError) -> JSONResponse:
        status = 500
        for error_type, code in STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                status = code
                break
        if status >= 500:
            logger.error("Query failed: %s", exc)
        else:
            logger.warning("Rejected query: %s", exc)
        return JSONResponse(status_code=status, content=error_body(str(exc), status))

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------
    @app.get("/nodes/{node_id}", response_model=Node)
    def read_node(node_id: str):
        node = store.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------
    @app.get("/graph/neighborhood/{node_id}", response_model=GraphNeighborhood)
    def neighborhood(node_id: str, hops: int = 1):
        return graph_service.get_neighborhood(node_id, hops)

    @app.get("/graph/path", response_model=PathResult)
    def find_path(
        source: str = Query(..., alias="from"),
        target: str = Query(..., alias="to"),
        max_hops: int = Query(settings.default_path_hops, alias="maxHops"),
    ):
        return graph_service.find_shortest_path(source, target, max_hops)

    @app.post("/graph/subgraph", response_model=GraphNeighborhood)
    def subgraph(node_ids: List[str] = Body(...)):
        return graph_service.extract_subgraph(node_ids)

    @app.get("/graph/component/{node_id}", response_model=ComponentResult)
    def component(node_id: str, page: int = 0, size: int = settings.max_page_size):
        return graph_service.get_connected_component(node_id, _page(page, size))

    @app.post("/graph/centrality", response_model=CentralityResult)
    def centrality(node_ids: List[str] = Body(...), page: int = 0, size: int = settings.max_page_size):
        return graph_service.calculate_centrality(node_ids, _page(page, size))

    @app.get("/graph/stats", response_model=GraphStatistics)
    def stats():
        return graph_service.graph_statistics()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    @app.get("/search", response_model=SearchResponse)
    def search(
        q: str,
        type: Optional[NodeType] = None,
        page: int = 0,
        size: int = settings.default_page_size,
        highlight: bool = True,
    ):
        return search_service.search(q, type, _page(page, size), highlight)

    @app.get("/search/documents", response_model=SearchResponse)
    def search_documents(q: str, page: int = 0, size: int = settings.default_page_size):
        return search_service.search_documents(q, _page(page, size))

    @app.get("/search/vector", response_model=SearchResponse)
    def vector_search(q: str, threshold: Optional[float] = None, limit: int = settings.vector_k):
        return search_service.vector_search(q, threshold, limit)

    @app.get("/search/hybrid", response_model=SearchResponse)
    def hybrid_search(
        q: str,
        fts_weight: Optional[float] = Query(None, alias="ftsWeight"),
        vector_weight: Optional[float] = Query(None, alias="vectorWeight"),
        page: int = 0,
        size: int = settings.default_page_size,
    ):
        return search_service.hybrid_search(q, fts_weight, vector_weight, _page(page, size))

    @app.get("/search/adaptive", response_model=SearchResponse)
    def adaptive_search(q: str, page: int = 0, size: int = settings.default_page_size):
        return search_service.adaptive_hybrid_search(q, _page(page, size))

    @app.get("/search/similar/{node_id}", response_model=SearchResponse)
    def similar(node_id: str, limit: int = settings.vector_k):
        return search_service.find_similar_nodes(node_id, limit)

    @app.get("/search/suggest", response_model=List[str])
    def suggest(q: str):
        if not q.strip():
            raise InvalidArgumentError("Search query cannot be empty")
        return search_service.suggest_queries(q)

    return app
