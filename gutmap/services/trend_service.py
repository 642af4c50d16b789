"""Recent week versus overall bloating trend."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from gutmap.config import settings
from gutmap.services.bloating import (
    ensure_utc,
    mean,
    qualifying_records,
    record_categories,
    resolve_now,
)
from gutmap.services.schemas import MealRecord, WeeklyComparison

logger = logging.getLogger(__name__)


class TrendService:
    """Compares the last seven days against the user's full history."""

    WINDOW_DAYS = settings.recent_window_days
    MARGIN = settings.trend_margin

    def classify(self, this_week_avg: float, overall_avg: float, this_week_meals: int) -> str:
        if this_week_meals == 0:
            return "stable"
        if this_week_avg < overall_avg - self.MARGIN:
            return "improving"
        if this_week_avg > overall_avg + self.MARGIN:
            return "worsening"
        return "stable"

    def compute(
        self, records: List[MealRecord], now: Optional[datetime] = None
    ) -> WeeklyComparison:
        now = resolve_now(now)
        rated = qualifying_records(records)
        if not rated:
            return WeeklyComparison()

        cutoff = now - timedelta(days=self.WINDOW_DAYS)
        this_week = [r for r in rated if ensure_utc(r.created_at) >= cutoff]
        earlier = [r for r in rated if ensure_utc(r.created_at) < cutoff]

        this_week_avg = mean(r.bloating_rating for r in this_week)
        overall_avg = mean(r.bloating_rating for r in rated)

        new_patterns: List[str] = []
        if earlier:
            seen_before = set()
            for record in earlier:
                seen_before |= record_categories(record)
            emerging = set()
            for record in this_week:
                emerging |= record_categories(record) - seen_before
            new_patterns = sorted(emerging)

        trend = self.classify(this_week_avg, overall_avg, len(this_week))
        logger.debug(
            "Weekly trend %s (this week %.2f over %d meals, overall %.2f)",
            trend,
            this_week_avg,
            len(this_week),
            overall_avg,
        )
        return WeeklyComparison(
            this_week_avg_bloating=round(this_week_avg, 2),
            overall_avg_bloating=round(overall_avg, 2),
            this_week_meals=len(this_week),
            trend=trend,
            new_patterns=new_patterns,
        )
