"""Success metrics: comfort rate, comfortable-meal streaks and period improvement."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from gutmap.config import settings
from gutmap.services.bloating import (
    ensure_utc,
    is_low_bloating,
    mean,
    percentage,
    qualifying_records,
    record_categories,
    resolve_now,
    round_half_up,
)
from gutmap.services.schemas import MealRecord, SuccessMetrics, TriggerConfidence

logger = logging.getLogger(__name__)


class SuccessService:
    """
    Tracks how the user is doing over time.

    Streaks count consecutive comfortable *rated meals*, not calendar days:
    only an uncomfortable rating breaks a run.
    """

    PERIOD_DAYS = settings.success_period_days

    def compute(
        self,
        records: List[MealRecord],
        confidences: Optional[List[TriggerConfidence]] = None,
        now: Optional[datetime] = None,
    ) -> SuccessMetrics:
        """
        Args:
            records: All meal records (unrated ones are ignored)
            confidences: Output of ConfidenceService, used for trigger avoidance
            now: End of the current period

        Returns:
            SuccessMetrics, zeroed when nothing is rated
        """
        now = resolve_now(now)
        rated = sorted(qualifying_records(records), key=lambda r: ensure_utc(r.created_at))
        if not rated:
            return SuccessMetrics()

        period = timedelta(days=self.PERIOD_DAYS)
        current = [r for r in rated if now - period < ensure_utc(r.created_at) <= now]
        previous = [
            r for r in rated if now - 2 * period < ensure_utc(r.created_at) <= now - period
        ]

        current_avg = mean(r.bloating_rating for r in current)
        previous_avg = mean(r.bloating_rating for r in previous)
        improvement = 0
        if current and previous and previous_avg > 0:
            improvement = round_half_up((previous_avg - current_avg) / previous_avg * 100)

        comfortable = sum(1 for r in rated if is_low_bloating(r.bloating_rating))
        current_streak, longest_streak = self.streaks(rated)

        return SuccessMetrics(
            current_avg_bloating=round(current_avg, 2),
            previous_period_avg_bloating=round(previous_avg, 2),
            improvement_percentage=improvement,
            comfortable_meal_rate=percentage(comfortable, len(rated)),
            trigger_avoidance_rate=self.trigger_avoidance_rate(current, confidences or []),
            current_streak=current_streak,
            longest_streak=longest_streak,
            rated_meals=len(rated),
        )

    def streaks(self, rated: List[MealRecord]) -> Tuple[int, int]:
        """(current, longest) runs of comfortable ratings; records must be oldest first."""
        run = 0
        longest = 0
        for record in rated:
            if is_low_bloating(record.bloating_rating):
                run += 1
                longest = max(longest, run)
            else:
                run = 0
        return run, longest

    def trigger_avoidance_rate(
        self, recent: List[MealRecord], confidences: List[TriggerConfidence]
    ) -> int:
        """
        Percent of recent rated meals free of every suspected category.

        A suspected category has positive impact and at least two occurrences.
        Returns 0 when there is nothing recent or nothing suspected yet.
        """
        suspected = {
            c.category
            for c in confidences
            if c.impact_score > 0 and c.confidence != "needsData"
        }
        if not recent or not suspected:
            return 0
        avoided = sum(1 for r in recent if not (record_categories(r) & suspected))
        logger.debug(
            "Avoided %s in %d of %d recent meals", sorted(suspected), avoided, len(recent)
        )
        return percentage(avoided, len(recent))
