"""Elimination experiment endpoints (tier 3)."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from gutmap.api.schemas import (
    CompleteExperimentRequest,
    NowRequest,
    RecordsRequest,
    StartExperimentRequest,
    TrialMealRequest,
)
from gutmap.database import get_db
from gutmap.services.confidence_service import ConfidenceService
from gutmap.services.event_queue import event_queues
from gutmap.services.experiment_service import ExperimentService
from gutmap.services.milestone_service import ExperimentStateError
from gutmap.services.state_store import MilestoneStateStore

router = APIRouter(prefix="/users", tags=["experiments"])

experiment_service = ExperimentService()


def _require_unlocked(state):
    if not state.tier2.experiments_unlocked:
        raise HTTPException(
            status_code=403,
            detail="Experiments unlock after the 72-hour evidence streak",
        )


@router.get("/{user_id}/experiments")
async def get_experiments(user_id: str, db: Session = Depends(get_db)):
    state = MilestoneStateStore.load(db, user_id)
    return {
        "current": state.tier3.current_experiment,
        "completed": state.tier3.completed_experiments,
        "experiments_completed": state.tier3.experiments_completed,
    }


@router.post("/{user_id}/experiments")
async def start_experiment(
    user_id: str, request: StartExperimentRequest, db: Session = Depends(get_db)
):
    """Start an experiment; 409 while another one is active."""
    state = MilestoneStateStore.load(db, user_id, for_update=True)
    _require_unlocked(state)
    try:
        new_state = experiment_service.start(
            state,
            request.records,
            request.category,
            name=request.name,
            hypothesis=request.hypothesis,
            now=request.now,
        )
    except ExperimentStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    MilestoneStateStore.save(db, new_state)
    return {"experiment": new_state.tier3.current_experiment}


@router.post("/{user_id}/experiments/suggestion")
async def suggest_experiment(
    user_id: str, request: RecordsRequest, db: Session = Depends(get_db)
):
    state = MilestoneStateStore.load(db, user_id)
    confidences = ConfidenceService().compute(request.records, now=request.now)
    return {"suggestion": experiment_service.suggest(state, confidences)}


@router.post("/{user_id}/experiments/trial-meal")
async def attach_trial_meal(
    user_id: str, request: TrialMealRequest, db: Session = Depends(get_db)
):
    state = MilestoneStateStore.load(db, user_id, for_update=True)
    try:
        new_state = experiment_service.attach_trial_meal(state, request.meal_id, now=request.now)
    except ExperimentStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    MilestoneStateStore.save(db, new_state)
    return {"experiment": new_state.tier3.current_experiment}


@router.post("/{user_id}/experiments/complete")
async def complete_experiment(
    user_id: str, request: CompleteExperimentRequest, db: Session = Depends(get_db)
):
    """Classify the active experiment with the trial meal's rating; 409 when none is active."""
    state = MilestoneStateStore.load(db, user_id, for_update=True)
    try:
        new_state, event = experiment_service.complete(
            state, request.trial_meal_id, request.score, now=request.now
        )
    except ExperimentStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    MilestoneStateStore.save(db, new_state)
    event_queues.for_user(user_id).append(event)
    return {
        "experiment": new_state.tier3.completed_experiments[-1],
        "event": event,
        "current_tier": new_state.current_tier,
    }


@router.post("/{user_id}/experiments/cancel")
async def cancel_experiment(
    user_id: str,
    request: Optional[NowRequest] = None,
    db: Session = Depends(get_db),
):
    """Drop the active experiment; succeeds even when nothing is active."""
    state = MilestoneStateStore.load(db, user_id, for_update=True)
    new_state = experiment_service.cancel(state, now=request.now if request else None)
    if new_state != state:
        MilestoneStateStore.save(db, new_state)
    return {"cancelled": state.tier3.current_experiment is not None}
