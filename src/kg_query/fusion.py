"""
Merge full-text and vector result sets into one ranked list.

Each source's scores are normalized by that source's maximum so the two
scales become comparable, then combined with weights that sum to 1. A
result found by both sources gets a multiplicative boost.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .config import settings
from .errors import InvalidArgumentError
from .models import MergedResult, Page, SearchResult

logger = logging.getLogger(__name__)


def normalize_weights(fts_weight: float, vector_weight: float) -> Tuple[float, float]:
    if fts_weight < 0 or vector_weight < 0:
        raise InvalidArgumentError("Fusion weights must not be negative")
    total = fts_weight + vector_weight
    if total <= 0:
        raise InvalidArgumentError("Fusion weights must not both be zero")
    return fts_weight / total, vector_weight / total


def max_score(results: Iterable[SearchResult]) -> float:
    """Largest raw score; 1.0 when there is nothing positive to divide by."""
    scores = [r.score for r in results if r.score is not None]
    best = max(scores, default=1.0)
    return best if best > 0 else 1.0


class SearchResultFusion:
    def __init__(self, boost: Optional[float] = None) -> None:
        self.boost = settings.overlap_boost if boost is None else boost

    def fuse(
        self,
        fts_results: List[SearchResult],
        vector_results: List[SearchResult],
        fts_weight: float,
        vector_weight: float,
        page: Page,
    ) -> List[SearchResult]:
        ranked = self.rank(fts_results, vector_results, fts_weight, vector_weight)
        return [merged.result for merged in page.slice(ranked)]

    def rank(
        self,
        fts_results: List[SearchResult],
        vector_results: List[SearchResult],
        fts_weight: float,
        vector_weight: float,
    ) -> List[MergedResult]:
        """Every merged result, best first; ties go to the smaller id."""
        fts_weight, vector_weight = normalize_weights(fts_weight, vector_weight)
        logger.debug(
            "Fusing %s full-text and %s vector results, weights FTS=%.2f Vector=%.2f",
            len(fts_results),
            len(vector_results),
            fts_weight,
            vector_weight,
        )
        merged = self.merge(fts_results, vector_results)
        scored = [self._combine(m, fts_weight, vector_weight) for m in merged.values()]
        scored.sort(key=lambda m: (-m.combined_score, m.result.id))
        return scored

    def merge(
        self, fts_results: List[SearchResult], vector_results: List[SearchResult]
    ) -> Dict[str, MergedResult]:
        merged: Dict[str, MergedResult] = {}

        fts_max = max_score(fts_results)
        for result in fts_results:
            current = merged.get(result.id) or MergedResult(result=result)
            merged[result.id] = current.model_copy(
                update={
                    "fts_score": (result.score or 0.0) / fts_max,
                    "has_highlight": result.highlighted_snippet is not None,
                }
            )

        vector_max = max_score(vector_results)
        for result in vector_results:
            current = merged.get(result.id) or MergedResult(result=result)
            merged[result.id] = current.model_copy(
                update={"vector_score": (result.score or 0.0) / vector_max}
            )
        return merged

    def _combine(self, merged: MergedResult, fts_weight: float, vector_weight: float) -> MergedResult:
        combined = merged.fts_score * fts_weight + merged.vector_score * vector_weight
        if merged.fts_score > 0 and merged.vector_score > 0:
            combined *= self.boost
        result = merged.result.model_copy(update={"score": combined})
        return merged.model_copy(update={"combined_score": combined, "result": result})
