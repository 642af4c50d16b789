"""Per-category trigger confidence scoring."""

import logging
import math
import statistics
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from gutmap.config import settings
from gutmap.services.bloating import (
    ensure_utc,
    mean,
    percentage,
    qualifying_records,
    record_categories,
    resolve_now,
)
from gutmap.services.categories import display_name, resolve_category
from gutmap.services.schemas import MealRecord, TriggerConfidence

logger = logging.getLogger(__name__)


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


class ConfidenceService:
    """
    Converts rated meals into per-category confidence scores.

    The raw impact score blends how much worse meals with a category are than
    meals without it and how often the category was eaten. The enhanced score
    scales it by four bounded multipliers (consistency, frequency, recency and
    the user's personal baseline) so no single factor can run away.
    """

    RECENT_WINDOW_DAYS = settings.recent_window_days
    TOP_FOODS_LIMIT = settings.top_foods_limit

    # Tier boundaries on distinct meal count
    INVESTIGATING_MIN = 2
    HIGH_CONFIDENCE_MIN = 5

    def confidence_tier(self, occurrences: int) -> str:
        if occurrences >= self.HIGH_CONFIDENCE_MIN:
            return "high"
        if occurrences >= self.INVESTIGATING_MIN:
            return "investigating"
        return "needsData"

    def compute(
        self, records: List[MealRecord], now: Optional[datetime] = None
    ) -> List[TriggerConfidence]:
        """
        Score every category seen in the rated meals.

        Args:
            records: All meal records (unrated ones are ignored)
            now: Reference time for the recency window

        Returns:
            TriggerConfidence list sorted by enhanced impact score, descending.
            Empty when there are no rated meals.
        """
        now = resolve_now(now)
        rated = self._distinct_meals(qualifying_records(records))
        if not rated:
            return []

        total_meals = len(rated)
        user_avg = mean(r.bloating_rating for r in rated)
        recent_cutoff = now - timedelta(days=self.RECENT_WINDOW_DAYS)

        meals_by_category: Dict[str, List[MealRecord]] = OrderedDict()
        for record in rated:
            for category in sorted(record_categories(record)):
                meals_by_category.setdefault(category, []).append(record)

        results = []
        for category, meals in meals_by_category.items():
            meal_ids = {m.id for m in meals}
            ratings_with = [m.bloating_rating for m in meals]
            ratings_without = [r.bloating_rating for r in rated if r.id not in meal_ids]

            occurrences = len(meals)
            avg_with = mean(ratings_with)
            avg_without = mean(ratings_without) if ratings_without else user_avg

            impact = (avg_with - avg_without) * math.log(occurrences + 1)

            spread = statistics.pstdev(ratings_with) if occurrences > 1 else 0.0
            consistency = _clamp(1 - spread / 2, 0.0, 1.0)
            frequency_weight = 1 - math.exp(-occurrences / 3)
            recent_occurrences = sum(
                1 for m in meals if ensure_utc(m.created_at) >= recent_cutoff
            )
            recency_boost = 1 + 0.5 * min(recent_occurrences, 3) / 3
            baseline_adjustment = avg_with - user_avg

            enhanced = (
                impact
                * (0.75 + 0.5 * consistency)
                * (0.5 + 0.5 * frequency_weight)
                * recency_boost
                * _clamp(1 + baseline_adjustment / 4, 0.5, 1.5)
            )

            results.append(
                TriggerConfidence(
                    category=category,
                    display_name=display_name(category),
                    confidence=self.confidence_tier(occurrences),
                    occurrences=occurrences,
                    percentage_of_meals=percentage(occurrences, total_meals),
                    avg_bloating_with=round(avg_with, 2),
                    avg_bloating_without=round(avg_without, 2),
                    impact_score=round(impact, 3),
                    enhanced_impact_score=round(enhanced, 3),
                    consistency_factor=round(consistency, 3),
                    frequency_weight=round(frequency_weight, 3),
                    recency_boost=round(recency_boost, 3),
                    personal_baseline_adjustment=round(baseline_adjustment, 2),
                    recent_occurrences=recent_occurrences,
                    top_foods=self._top_foods(meals, category),
                    last_seen_at=max(ensure_utc(m.created_at) for m in meals),
                )
            )

        results.sort(key=lambda t: (-t.ranking_score, -t.occurrences, t.category))
        logger.debug("Scored %d categories across %d rated meals", len(results), total_meals)
        return results

    def _distinct_meals(self, records: List[MealRecord]) -> List[MealRecord]:
        """Drop repeated record ids so a meal is never counted twice."""
        seen = set()
        distinct = []
        for record in records:
            if record.id in seen:
                continue
            seen.add(record.id)
            distinct.append(record)
        return distinct

    def _top_foods(self, meals: List[MealRecord], category: str) -> List[str]:
        """Distinct food names for a category, most mentioned first."""
        counts: Dict[str, int] = {}
        names: Dict[str, str] = {}
        for meal in meals:
            for trigger in meal.detected_triggers:
                food = (trigger.food or "").strip()
                if not food or resolve_category(trigger.category) != category:
                    continue
                key = food.lower()
                counts[key] = counts.get(key, 0) + 1
                names.setdefault(key, food)

        ranked = sorted(counts, key=lambda k: (-counts[k], k))
        return [names[k] for k in ranked[: self.TOP_FOODS_LIMIT]]
