"""Request bodies shared by the API routers."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from gutmap.services.schemas import MealRecord


class RecordsRequest(BaseModel):
    """The caller owns meal storage, so every analysis request carries the records."""

    records: list[MealRecord] = Field(default_factory=list)
    now: Optional[datetime] = None


class StartExperimentRequest(RecordsRequest):
    category: str
    name: Optional[str] = None
    hypothesis: Optional[str] = None


class TrialMealRequest(BaseModel):
    meal_id: str
    now: Optional[datetime] = None


class CompleteExperimentRequest(BaseModel):
    trial_meal_id: str
    score: float
    now: Optional[datetime] = None


class NowRequest(BaseModel):
    now: Optional[datetime] = None
