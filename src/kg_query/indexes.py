"""
Full-text and vector indexes over a ``GraphVectorStore``.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

import numpy as np

from .embeddings import cosine_scores, tokenize
from .errors import InvalidArgumentError
from .models import Node, NodeType, Page, SearchHits, SearchResult
from .storage import GraphVectorStore, row_to_document, row_to_node

logger = logging.getLogger(__name__)


def match_expression(query: str) -> str:
    """
    Turn free text into an FTS5 MATCH expression: every word quoted and
    implicitly AND-ed, so user punctuation never reaches the query parser.
    """
    return " ".join(f'"{token}"' for token in tokenize(query))


class SqliteFullTextIndex:
    highlight_open = "<b>"
    highlight_close = "</b>"

    def __init__(self, store: GraphVectorStore) -> None:
        self.store = store

    def search(self, query: str, node_type: Optional[NodeType], page: Page) -> SearchHits:
        expression = match_expression(query)
        if not expression:
            return SearchHits()
        where, params = self._where(expression, node_type)
        rows = self.store.query(
            f"""
            SELECT n.*, -bm25(node_search) AS score
            FROM node_search JOIN nodes n ON n.id = node_search.node_id
            WHERE {where}
            ORDER BY score DESC, n.id
            LIMIT ? OFFSET ?
            """,
            params + [page.size, page.offset],
        )
        results = [self._to_result(row) for row in rows]
        return SearchHits(
            results=results,
            total=self._count(where, params),
            type_facets=self.type_facets(query),
        )

    def search_with_highlight(self, query: str, page: Page) -> SearchHits:
        expression = match_expression(query)
        if not expression:
            return SearchHits()
        where, params = self._where(expression, None)
        rows = self.store.query(
            f"""
            SELECT n.*, -bm25(node_search) AS score,
                   snippet(node_search, -1, ?, ?, '...', 16) AS highlight
            FROM node_search JOIN nodes n ON n.id = node_search.node_id
            WHERE {where}
            ORDER BY score DESC, n.id
            LIMIT ? OFFSET ?
            """,
            [self.highlight_open, self.highlight_close] + params + [page.size, page.offset],
        )
        results = [self._to_result(row, highlighted_snippet=row["highlight"]) for row in rows]
        return SearchHits(
            results=results,
            total=self._count(where, params),
            type_facets=self.type_facets(query),
        )

    def search_documents(self, query: str, page: Page) -> SearchHits:
        """
        Documents whose URI or content match. Matches whose URI contains the
        query text rank ahead of content-only matches, then by bm25.
        """
        expression = match_expression(query)
        if not expression:
            return SearchHits()
        rows = self.store.query(
            """
            SELECT d.*, -bm25(document_search) AS score,
                   snippet(document_search, 2, ?, ?, '...', 16) AS highlight
            FROM document_search JOIN documents d ON d.id = document_search.document_id
            WHERE document_search MATCH ?
            ORDER BY instr(lower(d.uri), lower(?)) > 0 DESC, score DESC, d.id
            LIMIT ? OFFSET ?
            """,
            (self.highlight_open, self.highlight_close, expression, query.strip(), page.size, page.offset),
        )
        total = self.store.query(
            """
            SELECT COUNT(*) AS n
            FROM document_search JOIN documents d ON d.id = document_search.document_id
            WHERE document_search MATCH ?
            """,
            (expression,),
        )[0]["n"]
        results = [
            SearchResult.from_document(
                row_to_document(row),
                score=float(row["score"]),
                highlighted_snippet=row["highlight"] or None,
            )
            for row in rows
        ]
        return SearchHits(results=results, total=total)

    def type_facets(self, query: str):
        expression = match_expression(query)
        if not expression:
            return {}
        rows = self.store.query(
            """
            SELECT n.type AS type, COUNT(*) AS n
            FROM node_search JOIN nodes n ON n.id = node_search.node_id
            WHERE node_search MATCH ?
            GROUP BY n.type
            """,
            (expression,),
        )
        return {row["type"]: row["n"] for row in rows}

    def _where(self, expression: str, node_type: Optional[NodeType]) -> Tuple[str, List[Any]]:
        clause = "node_search MATCH ?"
        params: List[Any] = [expression]
        if node_type is not None:
            clause += " AND n.type = ?"
            params.append(node_type.value)
        return clause, params

    def _count(self, where: str, params: List[Any]) -> int:
        rows = self.store.query(
            f"""
            SELECT COUNT(*) AS n
            FROM node_search JOIN nodes n ON n.id = node_search.node_id
            WHERE {where}
            """,
            params,
        )
        return rows[0]["n"]

    def _to_result(self, row, **extra: Any) -> SearchResult:
        node = row_to_node(row)
        return SearchResult.from_node(
            node,
            score=float(row["score"]),
            connection_count=self.store.connection_count(node.id),
            **extra,
        )


class SqliteVectorIndex:
    """
    Exact cosine scan over every stored embedding.
    """

    def __init__(self, store: GraphVectorStore) -> None:
        self.store = store

    def search(self, embedding: List[float], threshold: float, limit: int) -> List[SearchResult]:
        embeddings = self.store.node_embeddings()
        if not embeddings or limit <= 0:
            return []
        node_ids = list(embeddings)
        dimensions = {len(vector) for vector in embeddings.values()}
        if len(dimensions) > 1:
            raise InvalidArgumentError(f"Stored embeddings have mixed dimensions: {sorted(dimensions)}")
        matrix = np.asarray([embeddings[node_id] for node_id in node_ids], dtype=np.float32)
        scores = cosine_scores(embedding, matrix)
        ranked = sorted(
            (i for i in range(len(node_ids)) if scores[i] >= threshold),
            key=lambda i: (-scores[i], node_ids[i]),
        )[:limit]
        nodes = self.store.get_nodes(node_ids[i] for i in ranked)
        results: List[SearchResult] = []
        for i in ranked:
            node: Optional[Node] = nodes.get(node_ids[i])
            if node is None:
                logger.warning("Embedding without node: %s", node_ids[i])
                continue
            results.append(SearchResult.from_node(node, score=float(scores[i])))
        return results

    def vector_for(self, node_id: str) -> Optional[List[float]]:
        return self.store.embedding_for(node_id)
