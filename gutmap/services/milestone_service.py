"""
Milestone progression engine.

MilestoneService.evaluate is a pure reducer: it takes the persisted
MilestoneState plus a UsageSnapshot derived from the records and returns a
new state together with the events for every condition crossed in this run.
Flags only ever move from false to true, so the current tier never regresses.
"""

import logging
import math
from datetime import date, datetime, timedelta
from typing import List, NamedTuple, Optional, Tuple

from gutmap.config import settings
from gutmap.services.bloating import ensure_utc, qualifying_records, resolve_now
from gutmap.services.confidence_service import ConfidenceService
from gutmap.services.schemas import (
    MealRecord,
    MilestoneEvent,
    MilestoneState,
    NextMilestone,
    TabUnlockProgress,
    TierProgress,
    TriggerConfidence,
    UsageSnapshot,
)

logger = logging.getLogger(__name__)


class MilestoneDefinition(NamedTuple):
    id: str
    tier: int
    title: str
    description: str
    short_description: str
    icon: str
    order: int


MILESTONE_DEFINITIONS: List[MilestoneDefinition] = [
    MilestoneDefinition("first_meal", 1, "First Data Point", "Log your first meal to begin your gut health journey", "Log first meal", "🍽️", 1),
    MilestoneDefinition("first_rating", 1, "First Feedback", "Rate how your first meal made you feel", "Rate first meal", "⭐", 2),
    MilestoneDefinition("three_meals", 1, "Pattern Seeker", "Log and rate 3 meals to unlock pattern detection", "3 meals rated", "📊", 3),
    MilestoneDefinition("pattern_detection", 1, "Pattern Detection", "Analysis is now active on your meals", "Analysis activated", "🔬", 4),
    MilestoneDefinition("evidence_day1", 2, "Day 1 Evidence", "Complete your first day of the 72-hour evidence streak", "Day 1 complete", "1️⃣", 5),
    MilestoneDefinition("evidence_day2", 2, "Day 2 Evidence", "Continue building your evidence with day 2 data", "Day 2 complete", "2️⃣", 6),
    MilestoneDefinition("evidence_day3", 2, "Evidence Collector", "Complete 72 hours of continuous tracking", "Day 3 complete", "🏆", 7),
    MilestoneDefinition("first_experiment", 3, "First Experiment", "Complete your first elimination experiment", "Experiment done", "🧪", 8),
    MilestoneDefinition("weekly_baseline", 4, "7-Day Baseline", "Complete a full week of tracking including weekends", "Week complete", "📅", 9),
    MilestoneDefinition("ai_guide", 4, "AI Guide Unlocked", "Receive your personalized gut health consultation", "AI Guide ready", "🤖", 10),
    MilestoneDefinition("day_30", 5, "30-Day Milestone", "One month of gut health tracking complete", "30 days", "🌟", 11),
    MilestoneDefinition("day_60", 5, "60-Day Milestone", "Two months of dedication to your gut health", "60 days", "💫", 12),
    MilestoneDefinition("day_90", 5, "Blueprint Unlocked", "Your complete Gut Health Blueprint is ready", "Blueprint ready", "👑", 13),
]


class InsightTab(NamedTuple):
    id: str
    title: str
    icon: str
    description: str
    unlock_requirement: str


INSIGHT_TABS: List[InsightTab] = [
    InsightTab("analysis", "Analysis", "📊", "Your personalized gut health analysis and trigger insights", "Log and rate 3 meals"),
    InsightTab("experiments", "Experiments", "🧪", "Scientific experiments to confirm your triggers", "Complete the 72-hour evidence streak"),
    InsightTab("ai_guide", "AI Guide", "🤖", "Your personal gut health consultant", "Complete your 7-day baseline"),
    InsightTab("blueprint", "Blueprint", "📋", "Your complete 90-day Gut Health Blueprint", "Complete 90 days of tracking"),
]


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


class MilestoneError(Exception):
    """Base class for rejected milestone or experiment operations."""

    pass


class ExperimentStateError(MilestoneError):
    """Operation not allowed in the current experiment state."""

    pass


class FeatureLockedError(MilestoneError):
    """Feature requested before its tier was unlocked."""

    pass


# =============================================================================
# USAGE SNAPSHOT
# =============================================================================


def _consecutive_runs(days: List[date], today: date) -> Tuple[int, int]:
    """(current, longest) runs of consecutive days; ``days`` must be sorted and unique."""
    if not days:
        return 0, 0

    longest = 1
    run = 1
    for previous, current in zip(days, days[1:]):
        if current - previous == timedelta(days=1):
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    # The trailing run only counts as current if it reaches today or yesterday
    if today - days[-1] > timedelta(days=1):
        run = 0
    return run, longest


def top_trigger(confidences: List[TriggerConfidence]) -> Optional[TriggerConfidence]:
    """Highest-ranked category with a positive impact, if any."""
    for confidence in confidences:
        if confidence.impact_score > 0:
            return confidence
    return None


def build_usage_snapshot(
    records: List[MealRecord],
    now: Optional[datetime] = None,
    confidences: Optional[List[TriggerConfidence]] = None,
) -> UsageSnapshot:
    """
    Derive the usage counters the reducer works from.

    Logging days are UTC calendar dates of every record, rated or not.

    Args:
        records: All meal records
        now: Reference time
        confidences: Precomputed ConfidenceService output, computed when omitted
    """
    now = resolve_now(now)
    if not records:
        return UsageSnapshot()

    if confidences is None:
        confidences = ConfidenceService().compute(records, now=now)

    timestamps = [ensure_utc(r.created_at) for r in records]
    days = sorted({ts.date() for ts in timestamps})
    current_run, longest_run = _consecutive_runs(days, now.date())

    first_entry_at = min(timestamps)
    elapsed_days = (now - first_entry_at).total_seconds() / 86400
    top = top_trigger(confidences)

    return UsageSnapshot(
        total_meals=len(records),
        completed_meals=len(qualifying_records(records)),
        unique_logging_days=len(days),
        longest_consecutive_days=longest_run,
        current_consecutive_days=current_run,
        days_since_first_entry=max(math.floor(elapsed_days) + 1, 1),
        first_entry_at=first_entry_at,
        top_trigger=top.category if top else None,
    )


# =============================================================================
# REDUCER AND QUERIES
# =============================================================================


class MilestoneService:
    """Five-tier progression over the persisted MilestoneState."""

    PATTERN_DETECTION_MEALS = settings.pattern_detection_meals
    EVIDENCE_STREAK_DAYS = settings.evidence_streak_days
    BASELINE_DAYS = settings.baseline_days
    BASELINE_START_DAYS = 3
    DAY30, DAY60, DAY90 = settings.journey_checkpoint_days

    def compute_tier(self, state: MilestoneState) -> int:
        if state.tier4.ai_guide_unlocked:
            return 5
        if state.tier3.first_experiment_completed:
            return 4
        if state.tier2.experiments_unlocked:
            return 3
        if state.tier1.pattern_detection_unlocked:
            return 2
        return 1

    def evaluate(
        self,
        state: MilestoneState,
        snapshot: UsageSnapshot,
        now: Optional[datetime] = None,
    ) -> Tuple[MilestoneState, List[MilestoneEvent]]:
        """
        Advance the milestone state for the given usage counters.

        Each tier is only evaluated once its prerequisite has unlocked, and
        each newly crossed condition emits exactly one event. Running it again
        with the same snapshot returns an equal state and no events.

        Returns:
            Tuple of (new_state, events); the input state is not modified
        """
        now = resolve_now(now)
        new = state.model_copy(deep=True)
        events: List[MilestoneEvent] = []

        def emit(event_type: str, milestone_id: str, title: str, description: str, tier: int):
            events.append(
                MilestoneEvent(
                    type=event_type,
                    milestone_id=milestone_id,
                    title=title,
                    description=description,
                    tier=tier,
                )
            )

        new.total_meals_logged = snapshot.total_meals
        new.total_meals_rated = snapshot.completed_meals
        new.current_streak = snapshot.current_consecutive_days
        new.longest_streak = max(new.longest_streak, snapshot.longest_consecutive_days)

        # Tier 1: first session
        t1 = new.tier1
        if not t1.first_meal_logged and snapshot.total_meals >= 1:
            t1.first_meal_logged = True
            t1.first_meal_logged_at = now
            emit(
                "milestone_complete",
                "first_meal",
                "First Data Point",
                "You logged your first meal! Your gut health journey has begun.",
                1,
            )

        if not t1.first_meal_rated and snapshot.completed_meals >= 1:
            t1.first_meal_rated = True
            t1.first_meal_rated_at = now
            emit(
                "milestone_complete",
                "first_rating",
                "First Feedback",
                "You rated your first meal! This is your baseline.",
                1,
            )

        if not t1.three_meals_completed and snapshot.completed_meals >= self.PATTERN_DETECTION_MEALS:
            t1.three_meals_completed = True
            t1.three_meals_completed_at = now
            t1.pattern_detection_unlocked = True
            t1.pattern_detection_unlocked_at = now
            emit(
                "tier_unlock",
                "pattern_detection",
                "Pattern Detection Activated",
                "Analysis is now active! We can start spotting patterns in your data.",
                1,
            )

        # Tier 2: consecutive-day evidence streak
        t2 = new.tier2
        if t1.pattern_detection_unlocked:
            run = snapshot.longest_consecutive_days
            if t2.streak_start_date is None and snapshot.unique_logging_days >= 1:
                t2.streak_start_date = now

            if not t2.day1_complete and run >= 1:
                t2.day1_complete = True
                t2.day1_completed_at = now
                emit(
                    "milestone_complete",
                    "evidence_day1",
                    "Day 1 Evidence",
                    "Day 1 data secured. Gut transit timeline updating.",
                    2,
                )

            if not t2.day2_complete and run >= 2:
                t2.day2_complete = True
                t2.day2_completed_at = now
                emit(
                    "milestone_complete",
                    "evidence_day2",
                    "Day 2 Evidence",
                    "Day 2 data secured. Patterns are forming.",
                    2,
                )

            if not t2.day3_complete and run >= self.EVIDENCE_STREAK_DAYS:
                t2.day3_complete = True
                t2.day3_completed_at = now
                t2.evidence_streak_complete = True
                t2.evidence_streak_completed_at = now
                t2.experiments_unlocked = True
                t2.experiments_unlocked_at = now
                t2.suspected_trigger = snapshot.top_trigger
                emit(
                    "tier_unlock",
                    "experiments_unlocked",
                    "Evidence Collector",
                    "You completed the 72-hour evidence streak! Experiments are now unlocked.",
                    2,
                )

        # Tier 3 is advanced by ExperimentService

        # Tier 4: 7-day baseline
        t4 = new.tier4
        if t2.experiments_unlocked:
            if t4.baseline_start_date is None and snapshot.unique_logging_days >= self.BASELINE_START_DAYS:
                t4.baseline_start_date = now

            t4.days_completed = max(
                t4.days_completed, min(snapshot.unique_logging_days, self.BASELINE_DAYS)
            )

            if not t4.weekly_baseline_complete and snapshot.unique_logging_days >= self.BASELINE_DAYS:
                t4.weekly_baseline_complete = True
                t4.weekly_baseline_completed_at = now
                t4.ai_guide_unlocked = True
                t4.ai_guide_unlocked_at = now
                emit(
                    "tier_unlock",
                    "ai_guide",
                    "AI Guide Unlocked",
                    "Your 7-day baseline is complete! Your personal gut health consultation is ready.",
                    4,
                )

        # Tier 5: long-term journey
        t5 = new.tier5
        if t4.ai_guide_unlocked:
            if t5.journey_start_date is None and snapshot.first_entry_at is not None:
                t5.journey_start_date = snapshot.first_entry_at

            t5.current_day = max(t5.current_day, snapshot.days_since_first_entry)

            if not t5.day30_complete and t5.current_day >= self.DAY30:
                t5.day30_complete = True
                t5.day30_completed_at = now
                emit(
                    "milestone_complete",
                    "day_30",
                    "30-Day Milestone",
                    "One month of gut health tracking complete! You've identified key patterns.",
                    5,
                )

            if not t5.day60_complete and t5.current_day >= self.DAY60:
                t5.day60_complete = True
                t5.day60_completed_at = now
                emit(
                    "milestone_complete",
                    "day_60",
                    "60-Day Milestone",
                    "Two months of dedication! Your gut map is taking shape.",
                    5,
                )

            if not t5.day90_complete and t5.current_day >= self.DAY90:
                t5.day90_complete = True
                t5.day90_completed_at = now
                t5.blueprint_unlocked = True
                t5.blueprint_unlocked_at = now
                emit(
                    "tier_unlock",
                    "blueprint",
                    "Blueprint Unlocked",
                    "Congratulations! Your complete Gut Health Blueprint is now available.",
                    5,
                )

        new.current_tier = max(state.current_tier, self.compute_tier(new))

        if new != state:
            new.updated_at = now
            if new.created_at is None:
                new.created_at = now
        if events:
            logger.info(
                "User %s crossed %d milestone(s), now at tier %d",
                new.user_id,
                len(events),
                new.current_tier,
            )
        return new, events

    # --- Queries ---

    def tier_progress(self, state: MilestoneState, tier: int) -> TierProgress:
        if tier == 1:
            t1 = state.tier1
            flags = [
                t1.first_meal_logged,
                t1.first_meal_rated,
                t1.three_meals_completed,
                t1.pattern_detection_unlocked,
            ]
            completed, total = sum(flags), len(flags)
        elif tier == 2:
            t2 = state.tier2
            flags = [t2.day1_complete, t2.day2_complete, t2.day3_complete]
            completed, total = sum(flags), len(flags)
        elif tier == 3:
            completed, total = int(state.tier3.first_experiment_completed), 1
        elif tier == 4:
            completed, total = state.tier4.days_completed, self.BASELINE_DAYS
        elif tier == 5:
            completed, total = min(state.tier5.current_day, self.DAY90), self.DAY90
        else:
            completed, total = 0, 1

        return TierProgress(
            tier=tier,
            completed=completed,
            total=total,
            percentage=round(completed / total * 100, 1),
        )

    def is_milestone_complete(self, state: MilestoneState, milestone_id: str) -> bool:
        flags = {
            "first_meal": state.tier1.first_meal_logged,
            "first_rating": state.tier1.first_meal_rated,
            "three_meals": state.tier1.three_meals_completed,
            "pattern_detection": state.tier1.pattern_detection_unlocked,
            "evidence_day1": state.tier2.day1_complete,
            "evidence_day2": state.tier2.day2_complete,
            "evidence_day3": state.tier2.day3_complete,
            "first_experiment": state.tier3.first_experiment_completed,
            "weekly_baseline": state.tier4.weekly_baseline_complete,
            "ai_guide": state.tier4.ai_guide_unlocked,
            "day_30": state.tier5.day30_complete,
            "day_60": state.tier5.day60_complete,
            "day_90": state.tier5.day90_complete,
        }
        return flags.get(milestone_id, False)

    def next_milestone(self, state: MilestoneState) -> Optional[NextMilestone]:
        """The first incomplete milestone in progression order, or None when all are done."""
        t1, t2, t3, t4, t5 = state.tier1, state.tier2, state.tier3, state.tier4, state.tier5

        if not t1.first_meal_logged:
            return NextMilestone(id="first_meal", title="Log Your First Meal", description="Your first data point awaits")
        if not t1.first_meal_rated:
            return NextMilestone(id="first_rating", title="Rate Your First Meal", description="Tell us how it made you feel")
        if not t1.three_meals_completed:
            remaining = max(self.PATTERN_DETECTION_MEALS - state.total_meals_rated, 1)
            return NextMilestone(
                id="three_meals",
                title=f"Rate {remaining} More Meal{'s' if remaining > 1 else ''}",
                description="Unlock pattern detection",
            )

        if not t2.day1_complete:
            return NextMilestone(id="evidence_day1", title="Complete Day 1", description="Start your 72-hour evidence streak")
        if not t2.day2_complete:
            return NextMilestone(id="evidence_day2", title="Complete Day 2", description="Continue your evidence streak")
        if not t2.day3_complete:
            return NextMilestone(id="evidence_day3", title="Complete Day 3", description="Finish your 72-hour streak")

        if not t3.first_experiment_completed:
            return NextMilestone(id="first_experiment", title="Complete Your First Experiment", description="Test your suspected trigger")

        if not t4.weekly_baseline_complete:
            remaining = max(self.BASELINE_DAYS - t4.days_completed, 1)
            return NextMilestone(
                id="weekly_baseline",
                title=f"{remaining} More Day{'s' if remaining > 1 else ''} to AI Guide",
                description="Complete your 7-day baseline",
            )

        checkpoints = [
            (t5.day30_complete, "day_30", self.DAY30, "30-Day Milestone", "First month checkpoint"),
            (t5.day60_complete, "day_60", self.DAY60, "60-Day Milestone", "Second month checkpoint"),
            (t5.day90_complete, "day_90", self.DAY90, "Blueprint", "Your complete gut health blueprint"),
        ]
        for complete, milestone_id, day, label, description in checkpoints:
            if not complete:
                remaining = max(day - t5.current_day, 0)
                return NextMilestone(id=milestone_id, title=f"{remaining} Days to {label}", description=description)

        return None

    def is_tab_unlocked(self, state: MilestoneState, tab: str) -> bool:
        unlocks = {
            "analysis": state.tier1.pattern_detection_unlocked,
            "experiments": state.tier2.experiments_unlocked,
            "ai_guide": state.tier4.ai_guide_unlocked,
            "blueprint": state.tier5.blueprint_unlocked,
        }
        return unlocks.get(tab, False)

    def tab_unlock_progress(
        self, state: MilestoneState, tab: str, snapshot: UsageSnapshot
    ) -> TabUnlockProgress:
        """Progress toward a tab's unlock condition, measured from live counters."""
        requirements = {
            "analysis": (snapshot.completed_meals, self.PATTERN_DETECTION_MEALS),
            "experiments": (snapshot.longest_consecutive_days, self.EVIDENCE_STREAK_DAYS),
            "ai_guide": (snapshot.unique_logging_days, self.BASELINE_DAYS),
            "blueprint": (snapshot.days_since_first_entry, self.DAY90),
        }
        current, required = requirements.get(tab, (0, 1))
        return TabUnlockProgress(
            tab=tab,
            unlocked=self.is_tab_unlocked(state, tab),
            current=current,
            required=required,
            percentage=round(min(current / required * 100, 100.0), 1),
        )
