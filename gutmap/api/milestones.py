"""Milestone progression, guide and event endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from gutmap.api.schemas import RecordsRequest
from gutmap.database import get_db
from gutmap.services.bloating import resolve_now
from gutmap.services.event_queue import event_queues
from gutmap.services.guide_service import GuideService
from gutmap.services.milestone_service import (
    INSIGHT_TABS,
    FeatureLockedError,
    MilestoneService,
    build_usage_snapshot,
)
from gutmap.services.state_store import MilestoneStateStore


router = APIRouter(prefix="/users", tags=["milestones"])

milestone_service = MilestoneService()
guide_service = GuideService()


def _progress_summary(state):
    return {
        "state": state,
        "tier_progress": [milestone_service.tier_progress(state, tier) for tier in range(1, 6)],
        "next_milestone": milestone_service.next_milestone(state),
        "tabs": {tab.id: milestone_service.is_tab_unlocked(state, tab.id) for tab in INSIGHT_TABS},
    }


@router.get("/{user_id}/milestones")
async def get_milestones(user_id: str, db: Session = Depends(get_db)):
    """Current milestone state with per-tier progress and the next milestone."""
    state = MilestoneStateStore.load(db, user_id)
    return _progress_summary(state)


@router.post("/{user_id}/milestones/check")
async def check_milestones(
    user_id: str, request: RecordsRequest, db: Session = Depends(get_db)
):
    """
    Re-evaluate milestones against the user's records.

    Newly crossed milestones are returned and queued as pending events.
    Calling it again with the same records changes nothing.
    """
    now = resolve_now(request.now)
    state = MilestoneStateStore.load(db, user_id, for_update=True, now=now)
    snapshot = build_usage_snapshot(request.records, now=now)

    new_state, events = milestone_service.evaluate(state, snapshot, now=now)
    if new_state != state:
        MilestoneStateStore.save(db, new_state)
    event_queues.for_user(user_id).extend(events)

    summary = _progress_summary(new_state)
    summary["events"] = events
    summary["snapshot"] = snapshot
    summary["tab_progress"] = [
        milestone_service.tab_unlock_progress(new_state, tab.id, snapshot) for tab in INSIGHT_TABS
    ]
    return summary


@router.post("/{user_id}/ai-guide")
async def generate_ai_guide(
    user_id: str, request: RecordsRequest, db: Session = Depends(get_db)
):
    """Build the consultation once the 7-day baseline is done; later calls return the stored copy."""
    state = MilestoneStateStore.load(db, user_id, for_update=True)
    try:
        new_state, consultation, event = guide_service.generate_ai_guide(
            state, request.records, now=request.now
        )
    except FeatureLockedError as e:
        raise HTTPException(status_code=403, detail=str(e))

    if event is not None:
        MilestoneStateStore.save(db, new_state)
        event_queues.for_user(user_id).append(event)
    return {"consultation": consultation, "generated": event is not None}


@router.post("/{user_id}/blueprint")
async def generate_blueprint(
    user_id: str, request: RecordsRequest, db: Session = Depends(get_db)
):
    """Build the blueprint once day 90 is reached; later calls return the stored copy."""
    state = MilestoneStateStore.load(db, user_id, for_update=True)
    try:
        new_state, blueprint, event = guide_service.generate_blueprint(
            state, request.records, now=request.now
        )
    except FeatureLockedError as e:
        raise HTTPException(status_code=403, detail=str(e))

    if event is not None:
        MilestoneStateStore.save(db, new_state)
        event_queues.for_user(user_id).append(event)
    return {"blueprint": blueprint, "generated": event is not None}


# =============================================================================
# Pending events
# =============================================================================


@router.get("/{user_id}/events")
async def list_events(user_id: str):
    return {"events": event_queues.for_user(user_id).read_all()}


@router.delete("/{user_id}/events/{index}")
async def clear_event(user_id: str, index: int):
    """Dismiss one event; an unknown index is ignored."""
    queue = event_queues.for_user(user_id)
    queue.clear(index)
    return {"events": queue.read_all()}


@router.delete("/{user_id}/events")
async def clear_all_events(user_id: str):
    queue = event_queues.for_user(user_id)
    queue.clear_all()
    return {"events": []}
