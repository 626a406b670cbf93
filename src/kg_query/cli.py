"""
Typer-powered CLI for loading a graph and running graph queries and searches locally.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

import typer
from rich import print
from rich.table import Table

from .config import configure_logging, settings
from .embeddings import HashEmbeddingModel
from .errors import GraphQueryError
from .indexes import SqliteFullTextIndex, SqliteVectorIndex
from .models import NodeType, Page, SearchResponse
from .sample import load_documents, load_graph, sample_dataset
from .search import SearchService
from .storage import GraphVectorStore
from .traversal import GraphTraversalService

app = typer.Typer(add_completion=False, help="Knowledge graph query CLI")

T = TypeVar("T")


@dataclass
class Services:
    store: GraphVectorStore
    graph: GraphTraversalService
    search: SearchService


def _services(ctx: typer.Context) -> Services:
    if ctx.obj is None:
        store = GraphVectorStore(ctx.meta.get("db"))
        search = SearchService(
            SqliteFullTextIndex(store),
            SqliteVectorIndex(store),
            HashEmbeddingModel(),
            store=store,
        )
        ctx.obj = Services(store=store, graph=GraphTraversalService(store), search=search)
        ctx.call_on_close(search.close)
        ctx.call_on_close(store.close)
    return ctx.obj


def _run(operation: Callable[[], T]) -> T:
    try:
        return operation()
    except GraphQueryError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


def _print_results(response: SearchResponse, weights: bool = False) -> None:
    table = Table("Rank", "Node ID", "Type", "Score", "Title")
    for idx, result in enumerate(response.results, start=1):
        score = f"{result.score:.3f}" if result.score is not None else "-"
        kind = result.type.value if result.type else "-"
        table.add_row(str(idx), result.id, kind, score, result.title[:60])
    print(table)
    summary = f"{response.total_elements} total, {response.search_time_ms} ms"
    if weights and response.fts_weight is not None:
        summary += f", weights FTS={response.fts_weight:.2f} Vector={response.vector_weight:.2f}"
    print(f"[dim]{summary}[/dim]")
    if response.suggested_queries:
        print(f"Did you mean: {', '.join(response.suggested_queries)}")


@app.callback()
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    ctx.meta["db"] = db
    configure_logging("DEBUG" if verbose else settings.log_level)


@app.command()
def load(ctx: typer.Context, file: Optional[Path] = typer.Argument(None, help="JSON file with nodes and edges")):
    """
    Load nodes, edges and documents from a JSON file:
    {nodes: [...], edges: [...], documents: [...]}.
    Without a file, the bundled sample graph is loaded.
    """
    dataset = json.loads(file.read_text(encoding="utf-8")) if file else sample_dataset()
    services = _services(ctx)
    nodes, edges = _run(lambda: load_graph(services.store, dataset))
    loaded_documents = load_documents(services.store, dataset.get("documents", []))
    print(f"[green]Loaded {nodes} nodes and {edges} edges[/green]")
    if loaded_documents:
        print(f"[green]Loaded {loaded_documents} documents[/green]")


@app.command()
def neighborhood(ctx: typer.Context, node_id: str, hops: int = 1):
    """
    Show the n-hop neighborhood of a node.
    """
    result = _run(lambda: _services(ctx).graph.get_neighborhood(node_id, hops))
    table = Table("Hop", "Node ID", "Type", "Name")
    for node in result.nodes:
        table.add_row(str(node.hop_level), node.id, node.type.value, node.name)
    print(table)
    print(f"[dim]{result.total_nodes} nodes, {result.total_edges} edges, {result.actual_hops} hops[/dim]")


@app.command()
def path(ctx: typer.Context, source_id: str, target_id: str, max_hops: int = settings.default_path_hops):
    """
    Find the shortest path between two nodes.
    """
    result = _run(lambda: _services(ctx).graph.find_shortest_path(source_id, target_id, max_hops))
    if not result.found:
        print(f"[yellow]No path within {max_hops} hops[/yellow]")
        return
    print(" -> ".join(result.path))


@app.command()
def component(ctx: typer.Context, node_id: str):
    """
    List the connected component containing a node.
    """
    result = _run(lambda: _services(ctx).graph.get_connected_component(node_id))
    for member in result.node_ids:
        print(member)
    print(f"[dim]{result.total_elements} nodes[/dim]")


@app.command()
def centrality(ctx: typer.Context, node_ids: List[str]):
    """
    Degree centrality of the given nodes.
    """
    result = _run(lambda: _services(ctx).graph.calculate_centrality(node_ids))
    table = Table("Node ID", "Centrality")
    for entry in result.scores:
        table.add_row(entry.node_id, f"{entry.score:.3f}")
    print(table)


@app.command()
def stats(ctx: typer.Context):
    """
    Node/edge totals and type distributions.
    """
    result = _services(ctx).graph.graph_statistics()
    print(result.model_dump())


@app.command()
def search(
    ctx: typer.Context,
    query: str,
    node_type: Optional[NodeType] = typer.Option(None, "--type"),
    page: int = 0,
    size: int = settings.default_page_size,
):
    """
    Full-text search over node names and properties.
    """
    response = _run(lambda: _services(ctx).search.search(query, node_type, Page.of(page, size)))
    _print_results(response)


@app.command()
def documents(
    ctx: typer.Context,
    query: str,
    page: int = 0,
    size: int = settings.default_page_size,
):
    """
    Full-text search over source documents.
    """
    response = _run(lambda: _services(ctx).search.search_documents(query, Page.of(page, size)))
    table = Table("Rank", "URI", "Type", "Score", "Snippet")
    for idx, result in enumerate(response.results, start=1):
        score = f"{result.score:.3f}" if result.score is not None else "-"
        table.add_row(str(idx), result.title, result.content_type or "-", score, (result.snippet or "")[:60])
    print(table)
    print(f"[dim]{response.total_elements} total, {response.search_time_ms} ms[/dim]")


@app.command()
def vector(ctx: typer.Context, query: str, threshold: Optional[float] = None, limit: int = settings.vector_k):
    """
    Run vector search for the given query.
    """
    response = _run(lambda: _services(ctx).search.vector_search(query, threshold, limit))
    _print_results(response)


@app.command()
def hybrid(
    ctx: typer.Context,
    query: str,
    fts_weight: Optional[float] = None,
    vector_weight: Optional[float] = None,
    page: int = 0,
    size: int = settings.default_page_size,
):
    """
    Hybrid search combining full-text + vector signals.
    """
    response = _run(
        lambda: _services(ctx).search.hybrid_search(query, fts_weight, vector_weight, Page.of(page, size))
    )
    _print_results(response, weights=True)


@app.command()
def adaptive(ctx: typer.Context, query: str, page: int = 0, size: int = settings.default_page_size):
    """
    Hybrid search with weights derived from probe quality.
    """
    response = _run(lambda: _services(ctx).search.adaptive_hybrid_search(query, Page.of(page, size)))
    _print_results(response, weights=True)


@app.command()
def similar(ctx: typer.Context, node_id: str, limit: int = settings.vector_k):
    """
    Nodes most similar to the given node.
    """
    response = _run(lambda: _services(ctx).search.find_similar_nodes(node_id, limit))
    _print_results(response)


if __name__ == "__main__":
    app()
