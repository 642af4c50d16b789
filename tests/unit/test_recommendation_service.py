"""
Unit tests for RecommendationService.

Tests the eliminate / confirm / reintroduce rules, their priorities and the
result cap.
"""
import pytest

from gutmap.services.confidence_service import ConfidenceService
from gutmap.services.recommendation_service import PRIORITY_RANK, RecommendationService
from tests.factories import BASE_TIME, make_record, make_records


@pytest.fixture
def service():
    return RecommendationService()


def _recommend(service, records):
    confidences = ConfidenceService().compute(records, now=BASE_TIME)
    return service.compute(records, confidences, now=BASE_TIME)


class TestRecommendationRules:
    """Tests for each recommendation type."""

    def test_requires_five_rated_records(self, service):
        records = make_records([5, 5, 5], ["dairy"]) + make_records([1])

        assert _recommend(service, records) == []

    def test_eliminate_high_confidence_recent_trigger(self, service):
        records = (
            make_records([5] * 5, ["dairy"], start_days_ago=1, spacing_days=1)
            + make_records([1] * 5, start_days_ago=1, spacing_days=1)
        )

        results = _recommend(service, records)

        assert len(results) == 1
        assert results[0].type == "eliminate"
        assert results[0].category == "dairy"
        assert results[0].priority == "high"
        assert "Dairy" in results[0].rationale

    def test_no_eliminate_when_not_eaten_recently(self, service):
        records = (
            make_records([5] * 5, ["dairy"], start_days_ago=40, spacing_days=1)
            + make_records([1] * 5, start_days_ago=1)
        )

        assert all(r.type != "eliminate" for r in _recommend(service, records))

    def test_confirm_investigating_trigger(self, service):
        records = make_records([4, 4], ["gluten"]) + make_records([1] * 4)

        results = _recommend(service, records)

        assert [(r.type, r.category, r.priority) for r in results] == [
            ("confirm", "gluten", "medium")
        ]

    def test_reintroduce_after_two_weeks_avoided(self, service):
        records = (
            make_records([5, 5], ["alcohol"], start_days_ago=15, spacing_days=1)
            + make_records([1] * 4, start_days_ago=1)
        )

        results = _recommend(service, records)

        assert len(results) == 1
        rec = results[0]
        assert rec.type == "reintroduce"
        assert rec.priority == "medium"
        assert rec.days_avoided == 15

    def test_reintroduce_low_priority_under_two_weeks(self, service):
        records = make_records([5, 5], ["alcohol"], start_days_ago=12) + make_records([1] * 4)

        rec = _recommend(service, records)[0]

        assert rec.type == "reintroduce"
        assert rec.priority == "low"
        assert rec.days_avoided == 12

    def test_no_reintroduce_after_thirty_days(self, service):
        records = make_records([5, 5], ["alcohol"], start_days_ago=35) + make_records([1] * 4)

        assert [r.type for r in _recommend(service, records)] == ["confirm"]

    def test_unrated_recent_meal_counts_as_seen(self, service):
        records = (
            make_records([5, 5], ["alcohol"], start_days_ago=15)
            + make_records([1] * 4)
            + [make_record(None, ["alcohol"], days_ago=2)]
        )

        assert [r.type for r in _recommend(service, records)] == ["confirm"]


class TestRecommendationRanking:
    """Tests for merge order and cap."""

    def test_capped_at_three_and_sorted_by_priority(self, service):
        records = (
            make_records([5] * 5, ["dairy"], start_days_ago=1, spacing_days=1)
            + make_records([4, 4], ["gluten"], start_days_ago=1)
            + make_records([3, 3], ["beans"], start_days_ago=1)
            + make_records([5, 5], ["alcohol"], start_days_ago=15)
            + make_records([1] * 12, start_days_ago=1)
        )

        results = _recommend(service, records)
        ranks = [PRIORITY_RANK[r.priority] for r in results]

        assert len(results) == 3
        assert results[0].type == "eliminate"
        assert ranks == sorted(ranks)

    def test_one_recommendation_per_category(self, service):
        records = (
            make_records([5] * 5, ["dairy"], start_days_ago=1, spacing_days=1)
            + make_records([1] * 5, start_days_ago=1)
        )

        categories = [r.category for r in _recommend(service, records)]

        assert len(categories) == len(set(categories))
