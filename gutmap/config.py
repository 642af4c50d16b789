from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./gutmap.db"

    # Bloating scale (1 = no bloat, 5 = awful)
    rating_min: int = 1
    rating_max: int = 5
    low_bloating_threshold: int = 2  # At or below = comfortable meal
    high_bloating_threshold: int = 4  # At or above = high bloating

    # Insight thresholds
    insights_min_records: int = 5  # Combinations and recommendations
    top_foods_limit: int = 3
    recent_window_days: int = 7  # "This week" and recency boost

    # Combination detection
    combination_min_occurrences: int = 2
    combination_worse_margin: float = 0.5  # Points on the 1-5 scale
    combination_max_results: int = 3

    # Trend classification
    trend_margin: float = 0.3  # Points on the 1-5 scale

    # Success tracking
    success_period_days: int = 14

    # Recommendations
    reintroduce_min_days: int = 10
    reintroduce_max_days: int = 30
    recommendation_max_results: int = 3

    # Experiments
    experiment_significance_percent: float = 30.0
    experiment_control_meals: int = 5

    # Milestones
    pattern_detection_meals: int = 3
    evidence_streak_days: int = 3
    baseline_days: int = 7
    journey_checkpoint_days: list[int] = [30, 60, 90]

    # Insights cache
    insights_cache_size: int = 32

    class Config:
        env_file = ".env"


settings = Settings()
