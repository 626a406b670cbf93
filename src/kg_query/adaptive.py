"""
Adaptive weighting for hybrid search.

Both back-ends are probed with a small query first; the quality of each
probe decides how much weight that back-end gets in the full fusion.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Tuple

from .config import settings
from .models import Page, SearchResponse, SearchResult

if TYPE_CHECKING:
    from .search import SearchService

logger = logging.getLogger(__name__)

MAX_COUNTED_RESULTS = 5


def assess_quality(results: List[SearchResult], empty_quality: Optional[float] = None) -> float:
    """
    Score a probe in [0, 1] from its result count, mean score and score spread.

    An empty probe scores a small positive floor rather than zero so the
    other back-end never takes all of the weight on a single bad probe.
    """
    if not results:
        return settings.empty_probe_quality if empty_quality is None else empty_quality

    scores = [r.score or 0.0 for r in results]
    count_factor = min(len(scores), MAX_COUNTED_RESULTS) * 0.2
    avg_factor = min(sum(scores) / len(scores), 1.0)
    spread_factor = min((max(scores) - min(scores)) * 2, 1.0) * 0.5
    return min(count_factor + avg_factor + spread_factor, 1.0)


class AdaptiveWeightController:
    def __init__(
        self,
        search_service: "SearchService",
        probe_size: Optional[int] = None,
        empty_quality: Optional[float] = None,
    ) -> None:
        self.search_service = search_service
        self.probe_size = probe_size or settings.probe_size
        self.empty_quality = settings.empty_probe_quality if empty_quality is None else empty_quality

    def derive_weights(self, query: str) -> Tuple[float, float]:
        fts_probe, vector_probe = self.search_service.probe(query, self.probe_size)
        fts_quality = assess_quality(fts_probe, self.empty_quality)
        vector_quality = assess_quality(vector_probe, self.empty_quality)
        total = fts_quality + vector_quality
        return fts_quality / total, vector_quality / total

    def adaptive_fuse(self, query: str, page: Optional[Page] = None) -> SearchResponse:
        logger.debug("Adaptive hybrid search for: '%s'", query)
        fts_weight, vector_weight = self.derive_weights(query)
        logger.info("Adaptive weights - FTS: %.2f, Vector: %.2f", fts_weight, vector_weight)
        return self.search_service.hybrid_search(query, fts_weight, vector_weight, page)
