"""Detection of category sets that hurt more together than apart."""

import logging
from itertools import combinations
from typing import FrozenSet, List, Set

from gutmap.config import settings
from gutmap.services.bloating import mean, qualifying_records, record_categories
from gutmap.services.schemas import Combination, MealRecord

logger = logging.getLogger(__name__)


class CombinationService:
    """
    Finds co-occurring category sets and compares their symptom scores.

    Only sets that were actually eaten together in at least one meal are
    considered: every pair inside a meal, plus the full set of a meal with
    three or more categories.
    """

    MIN_RECORDS = settings.insights_min_records
    MIN_OCCURRENCES = settings.combination_min_occurrences
    WORSE_MARGIN = settings.combination_worse_margin
    MAX_RESULTS = settings.combination_max_results

    def compute(self, records: List[MealRecord]) -> List[Combination]:
        rated = qualifying_records(records)
        if len(rated) < self.MIN_RECORDS:
            return []

        meals = []
        seen_ids = set()
        for record in rated:
            if record.id in seen_ids:
                continue
            seen_ids.add(record.id)
            meals.append((record_categories(record), record.bloating_rating))

        candidates: Set[FrozenSet[str]] = set()
        for categories, _ in meals:
            for pair in combinations(sorted(categories), 2):
                candidates.add(frozenset(pair))
            if len(categories) > 2:
                candidates.add(frozenset(categories))

        results = []
        for candidate in candidates:
            together = [rating for cats, rating in meals if candidate <= cats]
            if len(together) < self.MIN_OCCURRENCES:
                continue

            # Each member's solo meals: present without any other member of the set
            solo = []
            for member in candidate:
                others = candidate - {member}
                solo.extend(
                    rating for cats, rating in meals if member in cats and not (cats & others)
                )

            avg_together = mean(together)
            avg_apart = mean(solo) if solo else None

            if avg_apart is None:
                is_worse = False
                delta = None
            else:
                is_worse = avg_together > avg_apart + self.WORSE_MARGIN
                delta = round((avg_together - avg_apart) / avg_apart * 100, 1)

            results.append(
                Combination(
                    categories=sorted(candidate),
                    occurrence_count=len(together),
                    avg_bloating_together=round(avg_together, 2),
                    avg_bloating_apart=round(avg_apart, 2) if avg_apart is not None else None,
                    is_worse_together=is_worse,
                    delta_percent=delta,
                )
            )

        results.sort(
            key=lambda c: (-c.avg_bloating_together, -c.occurrence_count, c.categories)
        )
        logger.debug(
            "Found %d qualifying combinations from %d candidates", len(results), len(candidates)
        )
        return results[: self.MAX_RESULTS]
