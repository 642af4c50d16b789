"""
Comprehensive insights orchestration.

Runs every analyzer over the same record set and caches the last results
keyed by a fingerprint of the input, so repeated requests for an unchanged
record set skip recomputation.
"""

import hashlib
import json
import logging
from collections import OrderedDict
from datetime import datetime
from typing import List, Optional

from gutmap.config import settings
from gutmap.services.bloating import mean, qualifying_records, resolve_now
from gutmap.services.combination_service import CombinationService
from gutmap.services.confidence_service import ConfidenceService
from gutmap.services.notes_service import NotesService
from gutmap.services.recommendation_service import RecommendationService
from gutmap.services.schemas import ComprehensiveInsights, MealRecord
from gutmap.services.success_service import SuccessService
from gutmap.services.trend_service import TrendService

logger = logging.getLogger(__name__)


def fingerprint(records: List[MealRecord], now: datetime) -> str:
    """Stable hash of the record set and the reference time."""
    payload = {
        "now": now.isoformat(),
        "records": [r.model_dump(mode="json") for r in records],
    }
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class InsightsService:
    """Entry point for the statistical side of the engine."""

    CACHE_SIZE = settings.insights_cache_size

    def __init__(
        self,
        confidence: Optional[ConfidenceService] = None,
        combinations: Optional[CombinationService] = None,
        trends: Optional[TrendService] = None,
        success: Optional[SuccessService] = None,
        recommendations: Optional[RecommendationService] = None,
        notes: Optional[NotesService] = None,
    ):
        self.confidence = confidence or ConfidenceService()
        self.combinations = combinations or CombinationService()
        self.trends = trends or TrendService()
        self.success = success or SuccessService()
        self.recommendations = recommendations or RecommendationService()
        self.notes = notes or NotesService()
        self._cache: "OrderedDict[str, ComprehensiveInsights]" = OrderedDict()

    def analyze(
        self, records: List[MealRecord], now: Optional[datetime] = None
    ) -> ComprehensiveInsights:
        """
        Compute every derived structure for a record set.

        Insufficient data never raises; each section degrades to its empty
        or zeroed value.
        """
        now = resolve_now(now)
        key = fingerprint(records, now)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            logger.debug("Insights cache hit for %s", key[:12])
            return cached.model_copy(deep=True)

        insights = self._compute(records, now)
        self._cache[key] = insights
        while len(self._cache) > self.CACHE_SIZE:
            self._cache.popitem(last=False)
        return insights.model_copy(deep=True)

    def clear_cache(self) -> None:
        self._cache.clear()

    def _compute(self, records: List[MealRecord], now: datetime) -> ComprehensiveInsights:
        rated = qualifying_records(records)
        confidences = self.confidence.compute(records, now=now)

        insights = ComprehensiveInsights(
            total_meals=len(records),
            rated_meals=len(rated),
            avg_bloating=round(mean(r.bloating_rating for r in rated), 2),
            trigger_confidence=confidences,
            combinations=self.combinations.compute(records),
            weekly_comparison=self.trends.compute(records, now=now),
            success_metrics=self.success.compute(records, confidences, now=now),
            recommendations=self.recommendations.compute(records, confidences, now=now),
            notes_patterns=self.notes.compute(records),
        )
        logger.info(
            "Analyzed %d records (%d rated): %d categories, %d recommendations",
            len(records),
            len(rated),
            len(confidences),
            len(insights.recommendations),
        )
        return insights
