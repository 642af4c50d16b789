"""
Shared bloating-scale rules and record helpers.

Ensures every service agrees on what a "rated meal", a "comfortable meal"
and a "high bloating" meal are, and on how timestamps are compared.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from gutmap.config import settings
from gutmap.services.categories import resolve_category
from gutmap.services.schemas import MealRecord


LOW_BLOATING_THRESHOLD = settings.low_bloating_threshold
HIGH_BLOATING_THRESHOLD = settings.high_bloating_threshold


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so aware and naive records compare cleanly."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime]) -> datetime:
    return ensure_utc(now) if now is not None else datetime.now(timezone.utc)


def is_valid_rating(rating) -> bool:
    if rating is None or isinstance(rating, bool):
        return False
    return isinstance(rating, int) and settings.rating_min <= rating <= settings.rating_max


def is_qualifying(record: MealRecord) -> bool:
    """A completed record with an in-range rating; everything else carries zero weight."""
    return record.rating_status == "completed" and is_valid_rating(record.bloating_rating)


def qualifying_records(records: Iterable[MealRecord]) -> List[MealRecord]:
    return [r for r in records if is_qualifying(r)]


def is_low_bloating(rating: Optional[int]) -> bool:
    return is_valid_rating(rating) and rating <= LOW_BLOATING_THRESHOLD


def is_high_bloating(rating: Optional[int]) -> bool:
    return is_valid_rating(rating) and rating >= HIGH_BLOATING_THRESHOLD


def bloating_severity(rating: Optional[int]) -> str:
    """Label for a rating: none, low, moderate, high or severe."""
    if not is_valid_rating(rating):
        return "none"
    return {1: "none", 2: "low", 3: "moderate", 4: "high", 5: "severe"}.get(rating, "none")


def record_categories(record: MealRecord) -> Set[str]:
    """Distinct canonical categories in a record; unknown labels are dropped."""
    categories = set()
    for trigger in record.detected_triggers:
        category = resolve_category(trigger.category)
        if category:
            categories.add(category)
    return categories


def mean(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)


def round_half_up(value: float) -> int:
    if math.isnan(value) or math.isinf(value):
        return 0
    return int(math.floor(value + 0.5))


def percentage(part: int, whole: int) -> int:
    """Whole-number percentage clamped to 0-100; 0 when the whole is empty."""
    if whole <= 0:
        return 0
    return min(max(round_half_up(part / whole * 100), 0), 100)
