"""
Unit tests for GuideService and the default guide builders.

Tests tier gating, write-once caching and the blueprint's weekly progress.
"""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from gutmap.services.guide_service import (
    GuideService,
    build_ai_guide,
    build_blueprint,
    weekly_averages,
)
from gutmap.services.milestone_service import FeatureLockedError
from gutmap.services.schemas import Experiment
from tests.factories import BASE_TIME, make_record, make_records, make_state


@pytest.fixture
def journey_records():
    """One rated meal in each of journey weeks 1, 4, 8 and 12."""
    return [
        make_record(4, ["dairy"], days_ago=84),
        make_record(3, days_ago=60),
        make_record(2, days_ago=30),
        make_record(1, days_ago=3),
    ]


def _blueprint_state():
    state = make_state(tier=5)
    state.tier5.day90_complete = True
    state.tier5.blueprint_unlocked = True
    return state


class TestAiGuide:
    """Tests for the tier 4 consultation."""

    def test_locked_before_baseline(self):
        with pytest.raises(FeatureLockedError):
            GuideService().generate_ai_guide(make_state(tier=3), [], now=BASE_TIME)

    def test_generated_once(self):
        generator = MagicMock(return_value={"analysis": "hello"})
        service = GuideService(ai_guide_generator=generator)
        state = make_state(tier=5)

        first_state, payload, event = service.generate_ai_guide(state, [], now=BASE_TIME)
        second_state, cached, second_event = service.generate_ai_guide(first_state, [], now=BASE_TIME)

        assert payload == {"analysis": "hello"}
        assert cached == payload
        assert event.type == "ai_guide_ready"
        assert event.tier == 4
        assert second_event is None
        assert generator.call_count == 1
        assert first_state.tier4.ai_guide_consultation == payload
        assert state.tier4.ai_guide_consultation is None

    def test_default_builder(self):
        records = make_records([5, 5], ["dairy"]) + make_records([1, 1, 1], start_days_ago=1)
        state = make_state(tier=5)
        state.tier3.completed_experiments.append(
            Experiment(
                trigger_category="dairy",
                trigger_name="Dairy",
                started_at=BASE_TIME,
                result="trigger_confirmed",
            )
        )

        guide = build_ai_guide(state, records, BASE_TIME)

        assert "dairy" in guide["analysis"]
        assert "Your experiments confirmed that Dairy is a trigger for you." in guide["analysis"]
        assert guide["personalized_insights"]["confirmed_triggers"] == ["Dairy"]
        assert guide["personalized_insights"]["optimal_eating_time"] == "midday"
        assert guide["bloating_by_time"][0]["count"] == 5

    def test_default_builder_without_data(self):
        guide = build_ai_guide(make_state(tier=5), [], BASE_TIME)

        assert guide["analysis"].startswith("Your gut shows some interesting patterns,")
        assert guide["bloating_by_time"] == []


class TestBlueprint:
    """Tests for the tier 5 blueprint."""

    def test_locked_before_day_ninety(self):
        with pytest.raises(FeatureLockedError):
            GuideService().generate_blueprint(make_state(tier=5), [], now=BASE_TIME)

    def test_generated_once(self, journey_records):
        service = GuideService()
        state, payload, event = service.generate_blueprint(_blueprint_state(), journey_records, now=BASE_TIME)

        again_state, again, again_event = service.generate_blueprint(
            state, journey_records + [make_record(5)], now=BASE_TIME + timedelta(days=1)
        )

        assert event.type == "blueprint_ready"
        assert event.tier == 5
        assert again == payload
        assert again_event is None
        assert again_state.tier5.blueprint == payload

    def test_progress_journey(self, journey_records):
        blueprint = build_blueprint(_blueprint_state(), journey_records, BASE_TIME)

        journey = blueprint["progress_journey"]
        assert journey["week1_avg"] == 4.0
        assert journey["week4_avg"] == 3.0
        assert journey["week8_avg"] == 2.0
        assert journey["week12_avg"] == 1.0
        assert journey["overall_improvement"] == 75

    def test_profile_and_pyramid(self, journey_records):
        blueprint = build_blueprint(_blueprint_state(), journey_records, BASE_TIME)

        assert blueprint["gut_profile_name"] == "The Delayed Reactor"
        assert blueprint["food_pyramid"]["avoid_completely"] == ["dairy food"]
        assert blueprint["confirmed_triggers"][0]["category"] == "dairy"
        assert blueprint["user_id"] == "user-1"


class TestWeeklyAverages:
    """Tests for journey week averages."""

    def test_empty(self):
        assert weekly_averages([]) == {1: None, 4: None, 8: None, 12: None}

    def test_missing_weeks_are_none(self):
        records = [make_record(3, days_ago=10), make_record(5, days_ago=9)]

        assert weekly_averages(records) == {1: 4.0, 4: None, 8: None, 12: None}
