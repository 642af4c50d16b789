"""
Pydantic models for the engine's inputs, derived outputs and persisted state.

Derived models (TriggerConfidence, Combination, ...) are recomputed from the
records on every run and never stored. MilestoneState is the persisted
aggregate; it round-trips through JSON via model_dump(mode="json").
"""

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


RatingStatus = Literal["pending", "completed", "skipped"]
ConfidenceTier = Literal["needsData", "investigating", "high"]
Trend = Literal["improving", "worsening", "stable"]
RecommendationType = Literal["eliminate", "confirm", "reintroduce"]
Priority = Literal["high", "medium", "low"]
ExperimentResult = Literal["trigger_confirmed", "trigger_cleared", "inconclusive"]
EventType = Literal[
    "milestone_complete",
    "tier_unlock",
    "experiment_complete",
    "ai_guide_ready",
    "blueprint_ready",
]


# --- Input records ---


class DetectedTrigger(BaseModel):
    category: str
    food: str = ""
    confidence: float = 1.0


class MealRecord(BaseModel):
    id: str
    created_at: datetime
    rating_status: RatingStatus = "pending"
    bloating_rating: Optional[int] = None
    detected_triggers: list[DetectedTrigger] = Field(default_factory=list)
    notes: Optional[str] = None
    title: Optional[str] = None


# --- Derived insights ---


class TriggerConfidence(BaseModel):
    category: str
    display_name: str
    confidence: ConfidenceTier
    occurrences: int
    percentage_of_meals: int
    avg_bloating_with: float
    avg_bloating_without: float
    impact_score: float
    enhanced_impact_score: Optional[float] = None
    consistency_factor: float = 0.0
    frequency_weight: float = 0.0
    recency_boost: float = 1.0
    personal_baseline_adjustment: float = 0.0
    recent_occurrences: int = 0
    top_foods: list[str] = Field(default_factory=list)
    last_seen_at: Optional[datetime] = None

    @property
    def ranking_score(self) -> float:
        if self.enhanced_impact_score is None:
            return self.impact_score
        return self.enhanced_impact_score


class Combination(BaseModel):
    categories: list[str]
    occurrence_count: int
    avg_bloating_together: float
    avg_bloating_apart: Optional[float] = None
    is_worse_together: bool = False
    delta_percent: Optional[float] = None


class WeeklyComparison(BaseModel):
    this_week_avg_bloating: float = 0.0
    overall_avg_bloating: float = 0.0
    this_week_meals: int = 0
    trend: Trend = "stable"
    new_patterns: list[str] = Field(default_factory=list)


class SuccessMetrics(BaseModel):
    current_avg_bloating: float = 0.0
    previous_period_avg_bloating: float = 0.0
    improvement_percentage: int = 0
    comfortable_meal_rate: int = 0
    trigger_avoidance_rate: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    rated_meals: int = 0


class Recommendation(BaseModel):
    type: RecommendationType
    category: str
    display_name: str
    priority: Priority
    rationale: str
    impact_score: float = 0.0
    days_avoided: Optional[int] = None


class NotesPattern(BaseModel):
    type: Literal["stress", "timing", "rushing", "hunger", "restaurant"]
    label: str
    count: int
    high_bloating_count: int
    correlation: Literal["high", "medium", "low"]
    avg_bloating: float


class ComprehensiveInsights(BaseModel):
    total_meals: int = 0
    rated_meals: int = 0
    avg_bloating: float = 0.0
    trigger_confidence: list[TriggerConfidence] = Field(default_factory=list)
    combinations: list[Combination] = Field(default_factory=list)
    weekly_comparison: WeeklyComparison = Field(default_factory=WeeklyComparison)
    success_metrics: SuccessMetrics = Field(default_factory=SuccessMetrics)
    recommendations: list[Recommendation] = Field(default_factory=list)
    notes_patterns: list[NotesPattern] = Field(default_factory=list)


# --- Milestones & experiments ---


class UsageSnapshot(BaseModel):
    """Usage counters derived from the record set; the reducer's only view of the records."""

    total_meals: int = 0
    completed_meals: int = 0
    unique_logging_days: int = 0
    longest_consecutive_days: int = 0
    current_consecutive_days: int = 0
    days_since_first_entry: int = 0
    first_entry_at: Optional[datetime] = None
    top_trigger: Optional[str] = None


class Experiment(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    trigger_category: str
    trigger_name: str
    hypothesis: str = ""
    started_at: datetime
    control_meal_ids: list[str] = Field(default_factory=list)
    bloating_with_trigger: Optional[float] = None
    experiment_meal_id: Optional[str] = None
    bloating_without_trigger: Optional[float] = None
    completed_at: Optional[datetime] = None
    result: Optional[ExperimentResult] = None
    percentage_change: Optional[float] = None
    result_explanation: Optional[str] = None


class Tier1State(BaseModel):
    first_meal_logged: bool = False
    first_meal_logged_at: Optional[datetime] = None
    first_meal_rated: bool = False
    first_meal_rated_at: Optional[datetime] = None
    three_meals_completed: bool = False
    three_meals_completed_at: Optional[datetime] = None
    pattern_detection_unlocked: bool = False
    pattern_detection_unlocked_at: Optional[datetime] = None


class Tier2State(BaseModel):
    streak_start_date: Optional[datetime] = None
    day1_complete: bool = False
    day1_completed_at: Optional[datetime] = None
    day2_complete: bool = False
    day2_completed_at: Optional[datetime] = None
    day3_complete: bool = False
    day3_completed_at: Optional[datetime] = None
    evidence_streak_complete: bool = False
    evidence_streak_completed_at: Optional[datetime] = None
    suspected_trigger: Optional[str] = None
    experiments_unlocked: bool = False
    experiments_unlocked_at: Optional[datetime] = None


class Tier3State(BaseModel):
    experiments_completed: int = 0
    current_experiment: Optional[Experiment] = None
    completed_experiments: list[Experiment] = Field(default_factory=list)
    first_experiment_completed: bool = False
    first_experiment_completed_at: Optional[datetime] = None
    causality_confirmed: bool = False
    causality_confirmed_at: Optional[datetime] = None


class Tier4State(BaseModel):
    baseline_start_date: Optional[datetime] = None
    days_completed: int = 0
    weekly_baseline_complete: bool = False
    weekly_baseline_completed_at: Optional[datetime] = None
    ai_guide_unlocked: bool = False
    ai_guide_unlocked_at: Optional[datetime] = None
    ai_guide_consultation: Optional[dict[str, Any]] = None  # Opaque, write-once


class Tier5State(BaseModel):
    journey_start_date: Optional[datetime] = None
    current_day: int = 0
    day30_complete: bool = False
    day30_completed_at: Optional[datetime] = None
    day60_complete: bool = False
    day60_completed_at: Optional[datetime] = None
    day90_complete: bool = False
    day90_completed_at: Optional[datetime] = None
    blueprint_unlocked: bool = False
    blueprint_unlocked_at: Optional[datetime] = None
    blueprint: Optional[dict[str, Any]] = None  # Opaque, write-once


class MilestoneState(BaseModel):
    user_id: str
    tier1: Tier1State = Field(default_factory=Tier1State)
    tier2: Tier2State = Field(default_factory=Tier2State)
    tier3: Tier3State = Field(default_factory=Tier3State)
    tier4: Tier4State = Field(default_factory=Tier4State)
    tier5: Tier5State = Field(default_factory=Tier5State)

    current_tier: int = Field(default=1, ge=1, le=5)
    total_meals_logged: int = 0
    total_meals_rated: int = 0
    current_streak: int = 0  # Consecutive logging days
    longest_streak: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def initial(cls, user_id: str, now: Optional[datetime] = None) -> "MilestoneState":
        """All-false default state for a user seen for the first time."""
        return cls(user_id=user_id, created_at=now, updated_at=now)


class MilestoneEvent(BaseModel):
    type: EventType
    milestone_id: str
    title: str
    description: str
    tier: int


# --- Progress queries ---


class TierProgress(BaseModel):
    tier: int
    completed: int
    total: int
    percentage: float


class NextMilestone(BaseModel):
    id: str
    title: str
    description: str


class TabUnlockProgress(BaseModel):
    tab: str
    unlocked: bool
    current: int
    required: int
    percentage: float


class SuggestedExperiment(BaseModel):
    category: str
    name: str
    hypothesis: str
