"""Ranked eliminate / confirm / reintroduce recommendations."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from gutmap.config import settings
from gutmap.services.bloating import (
    HIGH_BLOATING_THRESHOLD,
    ensure_utc,
    qualifying_records,
    record_categories,
    resolve_now,
)
from gutmap.services.schemas import MealRecord, Recommendation, TriggerConfidence

logger = logging.getLogger(__name__)

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}


class RecommendationService:
    """
    Turns confidence scores into at most three next actions.

    A category receives at most one recommendation; eliminate wins over
    reintroduce, which wins over confirm.
    """

    MIN_RECORDS = settings.insights_min_records
    REINTRODUCE_MIN_DAYS = settings.reintroduce_min_days
    REINTRODUCE_MAX_DAYS = settings.reintroduce_max_days
    REINTRODUCE_MEDIUM_DAYS = 14
    MAX_RESULTS = settings.recommendation_max_results

    def compute(
        self,
        records: List[MealRecord],
        confidences: List[TriggerConfidence],
        now: Optional[datetime] = None,
    ) -> List[Recommendation]:
        now = resolve_now(now)
        if len(qualifying_records(records)) < self.MIN_RECORDS:
            return []

        last_seen = self._last_seen(records)
        recommendations: List[Recommendation] = []
        claimed = set()

        for confidence in confidences:
            rec = self._eliminate(confidence)
            if rec:
                recommendations.append(rec)
                claimed.add(confidence.category)

        for confidence in confidences:
            if confidence.category in claimed:
                continue
            rec = self._reintroduce(confidence, last_seen.get(confidence.category), now)
            if rec:
                recommendations.append(rec)
                claimed.add(confidence.category)

        for confidence in confidences:
            if confidence.category in claimed:
                continue
            rec = self._confirm(confidence)
            if rec:
                recommendations.append(rec)

        recommendations.sort(key=lambda r: (PRIORITY_RANK[r.priority], -r.impact_score))
        logger.debug("Built %d recommendations", len(recommendations))
        return recommendations[: self.MAX_RESULTS]

    def _last_seen(self, records: List[MealRecord]) -> Dict[str, datetime]:
        """Most recent logging time per category across every record, rated or not."""
        last_seen: Dict[str, datetime] = {}
        for record in records:
            created = ensure_utc(record.created_at)
            for category in record_categories(record):
                if category not in last_seen or created > last_seen[category]:
                    last_seen[category] = created
        return last_seen

    def _eliminate(self, confidence: TriggerConfidence) -> Optional[Recommendation]:
        if not (
            confidence.confidence == "high"
            and confidence.impact_score > 0
            and confidence.recent_occurrences > 0
        ):
            return None
        return Recommendation(
            type="eliminate",
            category=confidence.category,
            display_name=confidence.display_name,
            priority="high",
            rationale=(
                f"{confidence.display_name} appeared in {confidence.occurrences} meals "
                f"averaging {confidence.avg_bloating_with:.1f} bloating, and you had it "
                f"{confidence.recent_occurrences} time(s) this week. Try removing it."
            ),
            impact_score=round(confidence.ranking_score, 3),
        )

    def _confirm(self, confidence: TriggerConfidence) -> Optional[Recommendation]:
        if not (confidence.confidence == "investigating" and confidence.impact_score > 0):
            return None
        return Recommendation(
            type="confirm",
            category=confidence.category,
            display_name=confidence.display_name,
            priority="medium",
            rationale=(
                f"Meals with {confidence.display_name} average "
                f"{confidence.avg_bloating_with:.1f} versus "
                f"{confidence.avg_bloating_without:.1f} without. "
                "Run an experiment to confirm it."
            ),
            impact_score=round(confidence.ranking_score, 3),
        )

    def _reintroduce(
        self,
        confidence: TriggerConfidence,
        last_seen: Optional[datetime],
        now: datetime,
    ) -> Optional[Recommendation]:
        if last_seen is None or confidence.avg_bloating_with < HIGH_BLOATING_THRESHOLD:
            return None
        days_avoided = (now - last_seen).days
        if not self.REINTRODUCE_MIN_DAYS <= days_avoided <= self.REINTRODUCE_MAX_DAYS:
            return None
        return Recommendation(
            type="reintroduce",
            category=confidence.category,
            display_name=confidence.display_name,
            priority="medium" if days_avoided >= self.REINTRODUCE_MEDIUM_DAYS else "low",
            rationale=(
                f"You've avoided {confidence.display_name} for {days_avoided} days. "
                "Try a small portion to test your tolerance."
            ),
            impact_score=round(confidence.ranking_score, 3),
            days_avoided=days_avoided,
        )
