"""
Gated, write-once guide payloads: the tier 4 consultation and the tier 5 blueprint.

The payloads are opaque to the milestone engine. A generator builds them
once; afterwards the stored copy is returned verbatim. The default
generators are deterministic builders over the user's own records and can
be swapped for an external text-generation service.
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from gutmap.services.bloating import (
    LOW_BLOATING_THRESHOLD,
    ensure_utc,
    mean,
    qualifying_records,
    resolve_now,
    round_half_up,
)
from gutmap.services.confidence_service import ConfidenceService
from gutmap.services.milestone_service import FeatureLockedError, top_trigger
from gutmap.services.schemas import MealRecord, MilestoneEvent, MilestoneState

logger = logging.getLogger(__name__)

GuideGenerator = Callable[[MilestoneState, List[MealRecord], datetime], Dict[str, Any]]

HEALING_FOODS = ["Ginger", "Peppermint", "Fennel", "Bone broth", "Fermented foods"]
WEEKEND_DAYS = {"Saturday", "Sunday"}
PROGRESS_WEEKS = (1, 4, 8, 12)


def _time_of_day(hour: int) -> str:
    if hour < 11:
        return "morning"
    if hour < 15:
        return "midday"
    if hour < 19:
        return "evening"
    return "night"


def _confirmed_trigger_names(state: MilestoneState) -> List[str]:
    return [
        e.trigger_name
        for e in state.tier3.completed_experiments
        if e.result == "trigger_confirmed"
    ]


def build_ai_guide(
    state: MilestoneState, records: List[MealRecord], now: datetime
) -> Dict[str, Any]:
    """Consultation from time-of-day buckets, the top trigger and experiment results."""
    rated = qualifying_records(records)
    confidences = ConfidenceService().compute(records, now=now)
    top = top_trigger(confidences)
    avg_bloating = mean(r.bloating_rating for r in rated)

    buckets: Dict[str, List[int]] = OrderedDict()
    for record in rated:
        period = _time_of_day(ensure_utc(record.created_at).hour)
        buckets.setdefault(period, []).append(record.bloating_rating)
    by_time = sorted(
        ({"period": p, "avg_bloating": round(mean(v), 2), "count": len(v)} for p, v in buckets.items()),
        key=lambda b: b["avg_bloating"],
    )
    best = by_time[0] if by_time else None
    worst = by_time[-1] if by_time else None
    confirmed = _confirmed_trigger_names(state)

    analysis = [
        f"Your gut shows a clear sensitivity to {top.display_name.lower()} foods,"
        if top
        else "Your gut shows some interesting patterns,",
        f"with your best digestion during {best['period']} meals."
        if best
        else "with varying patterns throughout the day.",
        f"Your average bloating score is {avg_bloating:.1f}/5.",
    ]
    if worst and worst["avg_bloating"] > avg_bloating:
        analysis.append(f"Meals eaten in the {worst['period']} tend to cause more discomfort.")
    if confirmed:
        verb = "are triggers" if len(confirmed) > 1 else "is a trigger"
        analysis.append(f"Your experiments confirmed that {', '.join(confirmed)} {verb} for you.")

    if worst and worst["period"] == "night":
        recommendation1 = "Try shifting your largest meal earlier in the day instead of eating late at night."
    elif top:
        recommendation1 = f"Reduce your intake of {top.display_name.lower()} foods, especially in larger portions."
    else:
        recommendation1 = "Keep logging meals consistently to build more data for analysis."

    safe_foods = []
    for confidence in confidences:
        if confidence.avg_bloating_with <= LOW_BLOATING_THRESHOLD:
            safe_foods.extend(confidence.top_foods)

    return {
        "generated_at": now.isoformat(),
        "greeting": "Hello! Based on your 7-day journey, here is my assessment.",
        "analysis": " ".join(analysis),
        "bloating_by_time": by_time,
        "action_plan": {
            "recommendation1": recommendation1,
            "recommendation2": (
                f"Your digestion works best during {best['period']} meals; try to eat your main meals then."
                if best
                else "Try ginger tea with your evening meal to aid digestion."
            ),
            "behavioral_changes": [
                "Eat slowly and mindfully to reduce air swallowing",
                "Wait 2-3 hours after eating before lying down",
                "Stay hydrated through the day, but limit fluids during meals",
            ],
        },
        "personalized_insights": {
            "sensitivity_pattern": (
                f"{top.display_name} sensitivity with {top.avg_bloating_with:.1f}/5 average bloating"
                if top
                else "Pattern still developing"
            ),
            "optimal_eating_time": best["period"] if best else "midday",
            "confirmed_triggers": confirmed,
            "safe_foods": safe_foods,
        },
    }


def weekly_averages(records: List[MealRecord]) -> Dict[int, Optional[float]]:
    """Average rating for journey weeks 1, 4, 8 and 12, counted from the first rated meal."""
    rated = qualifying_records(records)
    if not rated:
        return {week: None for week in PROGRESS_WEEKS}

    start = min(ensure_utc(r.created_at) for r in rated)
    averages = {}
    for week in PROGRESS_WEEKS:
        window_start = start + timedelta(days=7 * (week - 1))
        window_end = window_start + timedelta(days=7)
        ratings = [
            r.bloating_rating
            for r in rated
            if window_start <= ensure_utc(r.created_at) < window_end
        ]
        averages[week] = round(mean(ratings), 2) if ratings else None
    return averages


def build_blueprint(
    state: MilestoneState, records: List[MealRecord], now: datetime
) -> Dict[str, Any]:
    """Ninety-day blueprint: trigger severity, food pyramid, weekly rhythm and gut profile."""
    rated = qualifying_records(records)
    confidences = ConfidenceService().compute(records, now=now)
    top = top_trigger(confidences)

    analysed = sorted(
        (
            {
                "category": c.category,
                "avg_bloating_score": c.avg_bloating_with,
                "frequency": c.occurrences,
                "examples": c.top_foods,
                "severity": "strong"
                if c.avg_bloating_with >= 3.5
                else "moderate"
                if c.avg_bloating_with >= 2.5
                else "mild",
            }
            for c in confidences
        ),
        key=lambda t: -t["avg_bloating_score"],
    )
    triggers = [t for t in analysed if t["avg_bloating_score"] >= 2.5]
    safe = [
        {k: v for k, v in t.items() if k != "severity"}
        for t in analysed
        if t["avg_bloating_score"] < 2.5
    ]

    by_day: Dict[str, List[int]] = {}
    for record in rated:
        by_day.setdefault(ensure_utc(record.created_at).strftime("%A"), []).append(record.bloating_rating)
    day_averages = sorted(((mean(v), day) for day, v in by_day.items()))
    best_day = day_averages[0][1] if day_averages else "Sunday"
    worst_day = day_averages[-1][1] if day_averages else "Saturday"

    weekend = [r.bloating_rating for r in rated if ensure_utc(r.created_at).strftime("%A") in WEEKEND_DAYS]
    weekday = [r.bloating_rating for r in rated if ensure_utc(r.created_at).strftime("%A") not in WEEKEND_DAYS]
    weekend_avg, weekday_avg = mean(weekend), mean(weekday)

    profile_name = "The Balanced Gut"
    profile_description = "Your gut health is generally stable with some room for optimization."
    if top and top.avg_bloating_with > 3.5:
        profile_name = "The Delayed Reactor"
        profile_description = (
            f"Your gut reacts strongly to certain foods, particularly {top.display_name.lower()}."
        )
    elif weekend_avg > weekday_avg + 0.5:
        profile_name = "The Weekend Warrior"
        profile_description = (
            "Your gut handles weekday meals well but struggles with weekend indulgences. "
            "Structure helps your digestion thrive."
        )
    elif len(triggers) >= 3:
        profile_name = "The Sensitive System"
        profile_description = (
            "Your digestive system is more reactive to food triggers. "
            "A mindful approach to eating brings the best results."
        )

    weeks = weekly_averages(records)
    latest = next((weeks[w] for w in reversed(PROGRESS_WEEKS[1:]) if weeks[w] is not None), None)
    improvement = 0
    if weeks[1] and latest is not None:
        improvement = round_half_up((weeks[1] - latest) / weeks[1] * 100)

    if abs(weekend_avg - weekday_avg) < 0.3:
        weekend_vs_weekday = "similar"
    elif weekend_avg < weekday_avg:
        weekend_vs_weekday = "better_weekends"
    else:
        weekend_vs_weekday = "better_weekdays"

    worse_weekends = weekend_avg > weekday_avg
    return {
        "generated_at": now.isoformat(),
        "user_id": state.user_id,
        "gut_profile_name": profile_name,
        "gut_profile_description": profile_description,
        "confirmed_triggers": triggers,
        "safe_foods": safe,
        "food_pyramid": {
            "avoid_completely": [f for t in triggers if t["severity"] == "strong" for f in t["examples"]],
            "limit_intake": [f for t in triggers if t["severity"] == "moderate" for f in t["examples"]],
            "enjoy_freely": [f for t in safe for f in t["examples"]],
            "healing_foods": list(HEALING_FOODS),
        },
        "optimal_eating_times": {
            "breakfast": {"start": "7:00 AM", "end": "9:00 AM", "note": "Best window for protein-rich meals"},
            "lunch": {"start": "12:00 PM", "end": "2:00 PM", "note": "Your largest meal should be here"},
            "dinner": {"start": "6:00 PM", "end": "8:00 PM", "note": "Keep it light to aid digestion"},
        },
        "behavioral_patterns": [
            {
                "finding": "Weekend meals cause more bloating" if worse_weekends else "Consistent eating patterns help",
                "impact": "negative" if worse_weekends else "positive",
                "recommendation": "Try to keep weekday eating habits on weekends"
                if worse_weekends
                else "Keep up your consistent eating schedule",
            }
        ],
        "progress_journey": {
            "week1_avg": weeks[1],
            "week4_avg": weeks[4],
            "week8_avg": weeks[8],
            "week12_avg": weeks[12],
            "overall_improvement": improvement,
        },
        "confirmed_by_experiment": _confirmed_trigger_names(state),
        "best_day_of_week": best_day,
        "worst_day_of_week": worst_day,
        "weekend_vs_weekday": weekend_vs_weekday,
    }


class GuideService:
    """Builds each guide payload once, after its tier unlocks."""

    def __init__(
        self,
        ai_guide_generator: Optional[GuideGenerator] = None,
        blueprint_generator: Optional[GuideGenerator] = None,
    ):
        self.ai_guide_generator = ai_guide_generator or build_ai_guide
        self.blueprint_generator = blueprint_generator or build_blueprint

    def generate_ai_guide(
        self,
        state: MilestoneState,
        records: List[MealRecord],
        now: Optional[datetime] = None,
    ) -> Tuple[MilestoneState, Dict[str, Any], Optional[MilestoneEvent]]:
        """
        Returns:
            Tuple of (new_state, consultation, event); event is None when the
            cached consultation was returned

        Raises:
            FeatureLockedError: The 7-day baseline is not complete yet
        """
        if not state.tier4.ai_guide_unlocked:
            raise FeatureLockedError("AI guide unlocks after the 7-day baseline")

        new = state.model_copy(deep=True)
        if new.tier4.ai_guide_consultation is not None:
            return new, new.tier4.ai_guide_consultation, None

        now = resolve_now(now)
        payload = self.ai_guide_generator(state, records, now)
        new.tier4.ai_guide_consultation = payload
        new.updated_at = now
        logger.info("Generated AI guide consultation for user %s", state.user_id)
        event = MilestoneEvent(
            type="ai_guide_ready",
            milestone_id="ai_guide",
            title="Your AI Guide Consultation is Ready",
            description="Your personalized gut health analysis has been generated.",
            tier=4,
        )
        return new, payload, event

    def generate_blueprint(
        self,
        state: MilestoneState,
        records: List[MealRecord],
        now: Optional[datetime] = None,
    ) -> Tuple[MilestoneState, Dict[str, Any], Optional[MilestoneEvent]]:
        """
        Raises:
            FeatureLockedError: The 90-day checkpoint is not reached yet
        """
        if not state.tier5.blueprint_unlocked:
            raise FeatureLockedError("Blueprint unlocks after 90 days of tracking")

        new = state.model_copy(deep=True)
        if new.tier5.blueprint is not None:
            return new, new.tier5.blueprint, None

        now = resolve_now(now)
        payload = self.blueprint_generator(state, records, now)
        new.tier5.blueprint = payload
        new.updated_at = now
        logger.info("Generated blueprint for user %s", state.user_id)
        event = MilestoneEvent(
            type="blueprint_ready",
            milestone_id="blueprint",
            title="Your Gut Health Blueprint is Complete",
            description="Your 90-day personalized gut health guide is ready.",
            tier=5,
        )
        return new, payload, event
