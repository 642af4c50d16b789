"""Unit tests for TrendService."""
import pytest

from gutmap.services.trend_service import TrendService
from tests.factories import BASE_TIME, make_records


@pytest.fixture
def service():
    return TrendService()


class TestTrendClassification:
    """Tests for improving / worsening / stable."""

    def test_improving_when_week_below_overall(self, service):
        records = make_records([1, 1, 1], start_days_ago=1) + make_records([5, 5, 5], start_days_ago=10)

        result = service.compute(records, now=BASE_TIME)

        assert result.trend == "improving"
        assert result.this_week_avg_bloating == 1.0
        assert result.overall_avg_bloating == 3.0
        assert result.this_week_meals == 3

    def test_worsening_when_week_above_overall(self, service):
        records = make_records([5, 5], start_days_ago=2) + make_records([1, 1], start_days_ago=12)

        assert service.compute(records, now=BASE_TIME).trend == "worsening"

    def test_stable_within_margin(self, service):
        records = make_records([3, 3], start_days_ago=1) + make_records([3, 2, 3], start_days_ago=9)

        assert service.compute(records, now=BASE_TIME).trend == "stable"

    def test_stable_when_nothing_logged_this_week(self, service):
        records = make_records([5, 1], start_days_ago=10)

        result = service.compute(records, now=BASE_TIME)

        assert result.trend == "stable"
        assert result.this_week_meals == 0
        assert result.this_week_avg_bloating == 0.0

    def test_empty_input(self, service):
        result = service.compute([], now=BASE_TIME)

        assert result.trend == "stable"
        assert result.this_week_avg_bloating == 0.0
        assert result.overall_avg_bloating == 0.0
        assert result.new_patterns == []


class TestNewPatterns:
    """Tests for categories emerging this week."""

    def test_new_category_this_week(self, service):
        records = (
            make_records([3], ["dairy", "alcohol"], start_days_ago=1)
            + make_records([3], ["dairy"], start_days_ago=15)
        )

        assert service.compute(records, now=BASE_TIME).new_patterns == ["alcohol"]

    def test_no_prior_history_means_no_new_patterns(self, service):
        records = make_records([3, 4], ["dairy", "alcohol"], start_days_ago=1)

        assert service.compute(records, now=BASE_TIME).new_patterns == []
