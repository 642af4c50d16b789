"""Single-subject elimination experiments (tier 3)."""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from gutmap.config import settings
from gutmap.services.bloating import (
    ensure_utc,
    mean,
    qualifying_records,
    record_categories,
    resolve_now,
    round_half_up,
)
from gutmap.services.categories import display_name, resolve_category
from gutmap.services.milestone_service import (
    ExperimentStateError,
    MilestoneService,
    top_trigger,
)
from gutmap.services.schemas import (
    Experiment,
    MealRecord,
    MilestoneEvent,
    MilestoneState,
    SuggestedExperiment,
    TriggerConfidence,
)

logger = logging.getLogger(__name__)

RESULT_TITLES = {
    "trigger_confirmed": "Trigger Confirmed!",
    "trigger_cleared": "Trigger Cleared!",
    "inconclusive": "Experiment Complete",
}


def default_hypothesis(name: str) -> str:
    return (
        f"Try one meal completely without {name.lower()}. "
        "This will help confirm if it's causing your bloating."
    )


class ExperimentService:
    """
    Experiment lifecycle: none -> active -> completed.

    Every operation takes a MilestoneState and returns a new one; the input
    is never modified. Rejected operations raise ExperimentStateError and
    leave the state untouched.
    """

    SIGNIFICANCE_PERCENT = settings.experiment_significance_percent
    CONTROL_MEALS = settings.experiment_control_meals

    def __init__(self, milestones: Optional[MilestoneService] = None):
        self.milestones = milestones or MilestoneService()

    def start(
        self,
        state: MilestoneState,
        records: List[MealRecord],
        category: str,
        name: Optional[str] = None,
        hypothesis: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MilestoneState:
        """
        Start testing a suspected trigger category.

        The baseline is the mean rating of the most recent rated meals that
        contain the category; it stays None when there are none.

        Raises:
            ExperimentStateError: An experiment is already active
        """
        if state.tier3.current_experiment is not None:
            raise ExperimentStateError(
                "An experiment is already active; complete or cancel it first"
            )

        now = resolve_now(now)
        category_id = resolve_category(category) or category
        name = name or display_name(category_id)

        control = sorted(
            (r for r in qualifying_records(records) if category_id in record_categories(r)),
            key=lambda r: ensure_utc(r.created_at),
            reverse=True,
        )[: self.CONTROL_MEALS]

        experiment = Experiment(
            trigger_category=category_id,
            trigger_name=name,
            hypothesis=hypothesis or default_hypothesis(name),
            started_at=now,
            control_meal_ids=[r.id for r in control],
            bloating_with_trigger=mean(r.bloating_rating for r in control) if control else None,
        )

        new = state.model_copy(deep=True)
        new.tier3.current_experiment = experiment
        new.updated_at = now
        logger.info(
            "User %s started experiment %s on %s (baseline %s from %d meals)",
            state.user_id,
            experiment.id,
            category_id,
            experiment.bloating_with_trigger,
            len(control),
        )
        return new

    def attach_trial_meal(
        self, state: MilestoneState, meal_id: str, now: Optional[datetime] = None
    ) -> MilestoneState:
        """Remember which meal is the trigger-free trial."""
        if state.tier3.current_experiment is None:
            raise ExperimentStateError("No active experiment")

        new = state.model_copy(deep=True)
        new.tier3.current_experiment.experiment_meal_id = meal_id
        new.updated_at = resolve_now(now)
        return new

    def classify(self, baseline: Optional[float], score: Optional[float]) -> Tuple[str, Optional[float]]:
        """(result, percentage_change) for a baseline and trial score."""
        if baseline is None or baseline <= 0 or score is None:
            return "inconclusive", None
        change = (baseline - score) / baseline * 100
        if change >= self.SIGNIFICANCE_PERCENT:
            return "trigger_confirmed", change
        if change <= -self.SIGNIFICANCE_PERCENT:
            return "trigger_cleared", change
        return "inconclusive", change

    def complete(
        self,
        state: MilestoneState,
        trial_meal_id: str,
        score: float,
        now: Optional[datetime] = None,
    ) -> Tuple[MilestoneState, MilestoneEvent]:
        """
        Finish the active experiment with the trial meal's rating.

        An out-of-range score counts as missing, giving an inconclusive result
        without a percentage.

        Raises:
            ExperimentStateError: No experiment is active
        """
        if state.tier3.current_experiment is None:
            raise ExperimentStateError("No active experiment to complete")

        now = resolve_now(now)
        new = state.model_copy(deep=True)
        experiment = new.tier3.current_experiment

        if not self._valid_score(score):
            logger.warning("Ignoring out-of-range trial score %r for experiment %s", score, experiment.id)
            score = None

        result, change = self.classify(experiment.bloating_with_trigger, score)
        experiment.completed_at = now
        experiment.experiment_meal_id = trial_meal_id
        experiment.bloating_without_trigger = score
        experiment.result = result
        experiment.percentage_change = round(change, 1) if change is not None else None
        experiment.result_explanation = self._explain(experiment.trigger_name, result, change)

        t3 = new.tier3
        t3.current_experiment = None
        t3.completed_experiments.append(experiment)
        t3.experiments_completed += 1
        if not t3.first_experiment_completed:
            t3.first_experiment_completed = True
            t3.first_experiment_completed_at = now
        if result == "trigger_confirmed":
            t3.causality_confirmed = True
            t3.causality_confirmed_at = now

        new.current_tier = max(new.current_tier, self.milestones.compute_tier(new))
        new.updated_at = now

        event = MilestoneEvent(
            type="experiment_complete",
            milestone_id="first_experiment",
            title=RESULT_TITLES[result],
            description=experiment.result_explanation,
            tier=3,
        )
        logger.info(
            "User %s completed experiment %s: %s (%s%%)",
            state.user_id,
            experiment.id,
            result,
            experiment.percentage_change,
        )
        return new, event

    def cancel(self, state: MilestoneState, now: Optional[datetime] = None) -> MilestoneState:
        """Drop the active experiment without history or event; no-op when idle."""
        new = state.model_copy(deep=True)
        if new.tier3.current_experiment is None:
            return new
        new.tier3.current_experiment = None
        new.updated_at = resolve_now(now)
        return new

    def suggest(
        self, state: MilestoneState, confidences: List[TriggerConfidence]
    ) -> Optional[SuggestedExperiment]:
        """Propose the top positive-impact category once experiments are unlocked."""
        if not state.tier2.experiments_unlocked:
            return None
        top = top_trigger(confidences)
        if top is None:
            return None
        return SuggestedExperiment(
            category=top.category,
            name=top.display_name,
            hypothesis=default_hypothesis(top.display_name),
        )

    def _valid_score(self, score) -> bool:
        if score is None or isinstance(score, bool):
            return False
        return settings.rating_min <= score <= settings.rating_max

    def _explain(self, name: str, result: str, change: Optional[float]) -> str:
        if change is None:
            return (
                f"This trial couldn't be compared against earlier meals with {name}, "
                "so the result is inconclusive."
            )
        percent = round_half_up(abs(change))
        if result == "trigger_confirmed":
            return (
                f"Your bloating reduced by {percent}% without {name}. "
                "This strongly suggests it's a trigger for you."
            )
        if result == "trigger_cleared":
            return (
                f"Interesting! Your bloating was actually {percent}% higher without {name}. "
                "It may not be the culprit."
            )
        return (
            f"{name} may not be the sole factor. The difference was only {percent}%. "
            "Let's continue building your food map."
        )
