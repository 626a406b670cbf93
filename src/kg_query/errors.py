"""
Error taxonomy shared by the structural and relevance query surfaces.
"""
from __future__ import annotations

from typing import Dict, Optional


class GraphQueryError(Exception):
    """Base class for every error raised by the query core."""


class InvalidArgumentError(GraphQueryError, ValueError):
    """Rejected before any traversal or search work begins."""


class NodeNotFoundError(GraphQueryError, LookupError):
    def __init__(self, node_id: str, role: str = "Node") -> None:
        super().__init__(f"{role} not found: {node_id}")
        self.node_id = node_id
        self.role = role


class UpstreamSearchError(GraphQueryError):
    """
    A full-text or vector back-end failed (or timed out).

    ``failures`` maps the branch name ("full_text", "vector") to the
    exception it raised, so one error reports every failed branch.
    """

    def __init__(self, failures: Dict[str, BaseException], message: Optional[str] = None) -> None:
        branches = ", ".join(sorted(failures))
        super().__init__(message or f"Search back-end failed: {branches}")
        self.failures = failures

    @property
    def branches(self):
        return sorted(self.failures)
