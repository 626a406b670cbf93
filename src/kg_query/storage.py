"""
Persistence layer built on top of SQLite.

Holds nodes, edges, node embeddings and an FTS5 table mirroring node text.
The connection is shared between threads (the search service runs its
full-text and vector branches concurrently), so every statement runs
under a single lock.
"""
from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .config import ensure_directories, settings
from .errors import NodeNotFoundError
from .models import Document, Edge, EdgeType, Node, NodeType, flatten_properties


class GraphVectorStore:
    def __init__(self, db_path: Optional[Path | str] = None) -> None:
        if db_path is None:
            ensure_directories()
        self.db_path = db_path or settings.db_path
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._setup()

    def _setup(self) -> None:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS nodes (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    properties TEXT,
                    source_uri TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS edges (
                    id TEXT PRIMARY KEY,
                    source_id TEXT NOT NULL,
                    target_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    properties TEXT,
                    source_uri TEXT,
                    created_at TEXT,
                    updated_at TEXT,
                    FOREIGN KEY(source_id) REFERENCES nodes(id) ON DELETE CASCADE,
                    FOREIGN KEY(target_id) REFERENCES nodes(id) ON DELETE CASCADE
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_edges_source ON edges(source_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_edges_target ON edges(target_id)")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS embeddings (
                    node_id TEXT PRIMARY KEY,
                    vector TEXT NOT NULL,
                    FOREIGN KEY(node_id) REFERENCES nodes(id) ON DELETE CASCADE
                )
                """
            )
            cur.execute(
                """
                CREATE VIRTUAL TABLE IF NOT EXISTS node_search
                USING fts5(node_id UNINDEXED, name, body, tokenize='porter unicode61')
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    uri TEXT NOT NULL UNIQUE,
                    content TEXT,
                    content_type TEXT,
                    metadata TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE VIRTUAL TABLE IF NOT EXISTS document_search
                USING fts5(document_id UNINDEXED, uri, body, tokenize='porter unicode61')
                """
            )
            self.conn.commit()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(sql, tuple(params))
            return cur.fetchall()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def upsert_node(self, node: Node, vector: Optional[List[float]] = None) -> None:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                INSERT INTO nodes (id, type, name, properties, source_uri, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    type=excluded.type,
                    name=excluded.name,
                    properties=excluded.properties,
                    source_uri=excluded.source_uri,
                    updated_at=excluded.updated_at
                """,
                (
                    node.id,
                    node.type.value,
                    node.name,
                    json.dumps(node.properties, default=str),
                    node.source_uri,
                    node.created_at.isoformat(),
                    node.updated_at.isoformat(),
                ),
            )
            cur.execute("DELETE FROM node_search WHERE node_id=?", (node.id,))
            cur.execute(
                "INSERT INTO node_search (node_id, name, body) VALUES (?, ?, ?)",
                (node.id, node.name, flatten_properties(node.properties)),
            )
            if vector is not None:
                cur.execute(
                    """
                    INSERT INTO embeddings (node_id, vector)
                    VALUES (?, ?)
                    ON CONFLICT(node_id) DO UPDATE SET
                        vector=excluded.vector
                    """,
                    (node.id, json.dumps(vector)),
                )
            self.conn.commit()

    def upsert_edge(self, edge: Edge) -> None:
        for role, node_id in (("Source node", edge.source_id), ("Target node", edge.target_id)):
            if self.get_node(node_id) is None:
                raise NodeNotFoundError(node_id, role=role)
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                INSERT INTO edges (id, source_id, target_id, type, properties, source_uri, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    source_id=excluded.source_id,
                    target_id=excluded.target_id,
                    type=excluded.type,
                    properties=excluded.properties,
                    source_uri=excluded.source_uri,
                    updated_at=excluded.updated_at
                """,
                (
                    edge.id,
                    edge.source_id,
                    edge.target_id,
                    edge.type.value,
                    json.dumps(edge.properties, default=str),
                    edge.source_uri,
                    edge.created_at.isoformat(),
                    edge.updated_at.isoformat(),
                ),
            )
            self.conn.commit()

    def upsert_document(self, document: Document) -> None:
        """Insert or replace a document, keyed by URI; the id of an existing URI is kept."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                INSERT INTO documents (id, uri, content, content_type, metadata, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(uri) DO UPDATE SET
                    content=excluded.content,
                    content_type=excluded.content_type,
                    metadata=excluded.metadata,
                    updated_at=excluded.updated_at
                """,
                (
                    document.id,
                    document.uri,
                    document.content,
                    document.content_type,
                    json.dumps(document.metadata, default=str),
                    document.created_at.isoformat(),
                    document.updated_at.isoformat(),
                ),
            )
            doc_id = cur.execute("SELECT id FROM documents WHERE uri=?", (document.uri,)).fetchone()["id"]
            cur.execute("DELETE FROM document_search WHERE document_id=?", (doc_id,))
            cur.execute(
                "INSERT INTO document_search (document_id, uri, body) VALUES (?, ?, ?)",
                (doc_id, document.uri, document.content or ""),
            )
            self.conn.commit()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_node(self, node_id: str) -> Optional[Node]:
        rows = self.query("SELECT * FROM nodes WHERE id=?", (node_id,))
        if not rows:
            return None
        return row_to_node(rows[0])

    def get_nodes(self, node_ids: Iterable[str]) -> Dict[str, Node]:
        ids = list(dict.fromkeys(node_ids))
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        rows = self.query(f"SELECT * FROM nodes WHERE id IN ({placeholders})", ids)
        return {row["id"]: row_to_node(row) for row in rows}

    def list_nodes(self) -> List[Node]:
        return [row_to_node(row) for row in self.query("SELECT * FROM nodes ORDER BY rowid")]

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        rows = self.query("SELECT * FROM edges WHERE id=?", (edge_id,))
        if not rows:
            return None
        return row_to_edge(rows[0])

    def list_edges(self) -> List[Edge]:
        return [row_to_edge(row) for row in self.query("SELECT * FROM edges ORDER BY rowid")]

    def get_document(self, document_id: str) -> Optional[Document]:
        rows = self.query("SELECT * FROM documents WHERE id=?", (document_id,))
        if not rows:
            return None
        return row_to_document(rows[0])

    def get_document_by_uri(self, uri: str) -> Optional[Document]:
        rows = self.query("SELECT * FROM documents WHERE uri=?", (uri,))
        if not rows:
            return None
        return row_to_document(rows[0])

    def count_documents(self) -> int:
        return self.query("SELECT COUNT(*) AS n FROM documents")[0]["n"]

    def edges_from(self, node_id: str, limit: Optional[int] = None, offset: int = 0) -> List[Edge]:
        return self._edges_by("source_id", node_id, limit, offset)

    def edges_to(self, node_id: str, limit: Optional[int] = None, offset: int = 0) -> List[Edge]:
        return self._edges_by("target_id", node_id, limit, offset)

    def _edges_by(self, column: str, node_id: str, limit: Optional[int], offset: int) -> List[Edge]:
        sql = f"SELECT * FROM edges WHERE {column}=? ORDER BY rowid LIMIT ? OFFSET ?"
        rows = self.query(sql, (node_id, -1 if limit is None else limit, offset))
        return [row_to_edge(row) for row in rows]

    def connection_count(self, node_id: str) -> int:
        rows = self.query(
            "SELECT COUNT(*) AS n FROM edges WHERE source_id=? OR target_id=?",
            (node_id, node_id),
        )
        return rows[0]["n"]

    def count_nodes(self) -> int:
        return self.query("SELECT COUNT(*) AS n FROM nodes")[0]["n"]

    def count_edges(self) -> int:
        return self.query("SELECT COUNT(*) AS n FROM edges")[0]["n"]

    def node_type_counts(self) -> Dict[str, int]:
        rows = self.query("SELECT type, COUNT(*) AS n FROM nodes GROUP BY type")
        return {row["type"]: row["n"] for row in rows}

    def edge_type_counts(self) -> Dict[str, int]:
        rows = self.query("SELECT type, COUNT(*) AS n FROM edges GROUP BY type")
        return {row["type"]: row["n"] for row in rows}

    def node_embeddings(self) -> Dict[str, List[float]]:
        rows = self.query("SELECT node_id, vector FROM embeddings ORDER BY rowid")
        return {row["node_id"]: json.loads(row["vector"]) for row in rows}

    def embedding_for(self, node_id: str) -> Optional[List[float]]:
        rows = self.query("SELECT vector FROM embeddings WHERE node_id=?", (node_id,))
        if not rows:
            return None
        return json.loads(rows[0]["vector"])


def row_to_node(row: sqlite3.Row) -> Node:
    return Node(
        id=row["id"],
        type=NodeType(row["type"]),
        name=row["name"],
        properties=json.loads(row["properties"] or "{}"),
        source_uri=row["source_uri"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def row_to_edge(row: sqlite3.Row) -> Edge:
    return Edge(
        id=row["id"],
        source_id=row["source_id"],
        target_id=row["target_id"],
        type=EdgeType(row["type"]),
        properties=json.loads(row["properties"] or "{}"),
        source_uri=row["source_uri"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        uri=row["uri"],
        content=row["content"],
        content_type=row["content_type"],
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
