"""
Load an already-structured graph (nodes, edges and documents as JSON-like dicts) into a
store, plus a small bundled dataset for local experiments.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .embeddings import HashEmbeddingModel
from .interfaces import EmbeddingModel
from .models import Document, Edge, EdgeType, Node, NodeType
from .storage import GraphVectorStore

logger = logging.getLogger(__name__)


def sample_dataset() -> Dict[str, List[Dict[str, Any]]]:
    nodes = [
        {
            "id": "ada",
            "type": "PERSON",
            "name": "Ada Lovelace",
            "properties": {"role": "mathematician", "known_for": "first published computer program"},
        },
        {
            "id": "analytical_society",
            "type": "ORGANIZATION",
            "name": "Analytical Society",
            "properties": {"field": "mathematics", "founded": "1812"},
        },
        {
            "id": "engine_demo",
            "type": "EVENT",
            "name": "Analytical Engine demonstration",
            "properties": {"year": "1843", "place": "London"},
        },
        {
            "id": "computation",
            "type": "CONCEPT",
            "name": "General purpose computation",
            "properties": {"summary": "machines that manipulate symbols by rules"},
        },
        {
            "id": "babbage",
            "type": "PERSON",
            "name": "Charles Babbage",
            "properties": {"role": "mathematician", "known_for": "difference engine"},
        },
        {
            "id": "london",
            "type": "PLACE",
            "name": "London",
            "properties": {"country": "United Kingdom"},
        },
        {
            "id": "notes",
            "type": "DOCUMENT",
            "name": "Notes on the Analytical Engine",
            "properties": {"author": "Ada Lovelace", "year": "1843"},
        },
    ]
    edges = [
        {"source": "ada", "target": "analytical_society", "type": "AFFILIATED_WITH"},
        {"source": "ada", "target": "engine_demo", "type": "PARTICIPATED_IN"},
        {"source": "analytical_society", "target": "computation", "type": "PART_OF"},
        {"source": "babbage", "target": "analytical_society", "type": "AFFILIATED_WITH"},
        {"source": "babbage", "target": "engine_demo", "type": "PARTICIPATED_IN"},
        {"source": "engine_demo", "target": "london", "type": "LOCATED_IN"},
        {"source": "notes", "target": "ada", "type": "PRODUCED_BY"},
        {"source": "notes", "target": "computation", "type": "MENTIONS"},
    ]
    documents = [
        {
            "uri": "https://example.org/notes-on-the-analytical-engine",
            "content": "Sketch of the Analytical Engine invented by Charles Babbage, "
            "with notes by the translator Ada Lovelace.",
            "content_type": "text/html",
            "metadata": {"year": "1843"},
        },
        {
            "uri": "file:///archive/difference-engine.txt",
            "content": "Plans and correspondence about the difference engine and its construction in London.",
            "content_type": "text/plain",
        },
        {
            "uri": "file:///archive/lovelace-letters.txt",
            "content": "Letters between Lovelace and Babbage discussing Bernoulli numbers.",
            "content_type": "text/plain",
        },
    ]
    return {"nodes": nodes, "edges": edges, "documents": documents}


def load_graph(
    store: GraphVectorStore,
    dataset: Optional[Dict[str, List[Dict[str, Any]]]] = None,
    embedder: Optional[EmbeddingModel] = None,
) -> Tuple[int, int]:
    """
    Write nodes (with embeddings of their text) and then edges into ``store``.
    Returns the number of nodes and edges written.
    """
    dataset = dataset or sample_dataset()
    embedder = embedder or HashEmbeddingModel()
    nodes = dataset.get("nodes", [])
    edges = dataset.get("edges", [])

    for entry in nodes:
        node = Node(
            **({"id": entry["id"]} if "id" in entry else {}),
            type=NodeType(entry.get("type", NodeType.ENTITY.value)),
            name=entry["name"],
            properties=entry.get("properties", {}),
            source_uri=entry.get("source_uri"),
        )
        store.upsert_node(node, embedder.embed(node.text()))

    for entry in edges:
        edge = Edge(
            **({"id": entry["id"]} if "id" in entry else {}),
            source_id=entry["source"],
            target_id=entry["target"],
            type=EdgeType(entry.get("type", EdgeType.RELATED_TO.value)),
            properties=entry.get("properties", {}),
            source_uri=entry.get("source_uri"),
        )
        store.upsert_edge(edge)

    logger.info("Loaded %s nodes and %s edges", len(nodes), len(edges))
    return len(nodes), len(edges)


def load_documents(store: GraphVectorStore, documents: Optional[List[Dict[str, Any]]] = None) -> int:
    """
    Write source documents into ``store``'s document index, replacing any
    document with the same URI. Returns the number written.
    """
    documents = sample_dataset()["documents"] if documents is None else documents
    for entry in documents:
        store.upsert_document(
            Document(
                **({"id": entry["id"]} if "id" in entry else {}),
                uri=entry["uri"],
                content=entry.get("content"),
                content_type=entry.get("content_type"),
                metadata=entry.get("metadata", {}),
            )
        )
    logger.info("Loaded %s documents", len(documents))
    return len(documents)
