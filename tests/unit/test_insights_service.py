"""
Unit tests for InsightsService.

Tests the assembled insights structure and the fingerprint cache.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from gutmap.services.insights_service import InsightsService, fingerprint
from tests.factories import BASE_TIME, make_record, make_records


@pytest.fixture
def service():
    return InsightsService()


@pytest.fixture
def records():
    return (
        make_records([5, 4, 4], ["dairy"], start_days_ago=1)
        + make_records([2] * 7, start_days_ago=2)
        + [make_record(None, ["gluten"])]
    )


class TestAnalyze:
    """Tests for the comprehensive insights payload."""

    def test_empty_input_degrades_to_defaults(self, service):
        insights = service.analyze([], now=BASE_TIME)

        assert insights.total_meals == 0
        assert insights.rated_meals == 0
        assert insights.avg_bloating == 0.0
        assert insights.trigger_confidence == []
        assert insights.recommendations == []
        assert insights.weekly_comparison.trend == "stable"

    def test_counts_and_sections(self, service, records):
        insights = service.analyze(records, now=BASE_TIME)

        assert insights.total_meals == 11
        assert insights.rated_meals == 10
        assert insights.avg_bloating == 2.7
        assert insights.trigger_confidence[0].category == "dairy"
        assert insights.success_metrics.rated_meals == 10


class TestInsightsCache:
    """Tests for fingerprint caching."""

    def test_fingerprint_depends_on_now(self, records):
        assert fingerprint(records, BASE_TIME) != fingerprint(records, BASE_TIME + timedelta(hours=1))
        assert fingerprint(records, BASE_TIME) == fingerprint(list(records), BASE_TIME)

    def test_unchanged_input_hits_cache(self, service, records):
        with patch.object(service, "_compute", wraps=service._compute) as compute:
            first = service.analyze(records, now=BASE_TIME)
            second = service.analyze(records, now=BASE_TIME)

        assert compute.call_count == 1
        assert first == second

    def test_changed_input_recomputes(self, service, records):
        with patch.object(service, "_compute", wraps=service._compute) as compute:
            service.analyze(records, now=BASE_TIME)
            service.analyze(records + [make_record(3)], now=BASE_TIME)
            service.analyze(records, now=BASE_TIME + timedelta(days=1))

        assert compute.call_count == 3

    def test_cached_result_is_a_copy(self, service, records):
        first = service.analyze(records, now=BASE_TIME)
        first.trigger_confidence.clear()

        second = service.analyze(records, now=BASE_TIME)

        assert second.trigger_confidence

    def test_cache_is_bounded(self, service, records):
        service.CACHE_SIZE = 2
        for hours in range(4):
            service.analyze(records, now=BASE_TIME + timedelta(hours=hours))

        assert len(service._cache) == 2

    def test_clear_cache(self, service, records):
        service.analyze(records, now=BASE_TIME)
        service.clear_cache()

        with patch.object(service, "_compute", wraps=service._compute) as compute:
            service.analyze(records, now=BASE_TIME)

        assert compute.call_count == 1
