"""Whole-document persistence of MilestoneState, one row per user."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from gutmap.models.milestone_state import MilestoneStateRecord
from gutmap.services.bloating import resolve_now
from gutmap.services.schemas import MilestoneState

logger = logging.getLogger(__name__)


class MilestoneStateStore:
    """Key-value access to the milestone aggregate: read whole state, write whole state."""

    @staticmethod
    def load(
        db: Session,
        user_id: str,
        for_update: bool = False,
        now: Optional[datetime] = None,
    ) -> MilestoneState:
        """
        Get a user's milestone state, creating the default on first use.

        Args:
            db: Database session
            user_id: Opaque user identity
            for_update: Lock the row (SELECT ... FOR UPDATE) for a read-modify-write
            now: Creation time for a new state

        Returns:
            MilestoneState
        """
        query = db.query(MilestoneStateRecord).filter(MilestoneStateRecord.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        row = query.first()

        if row is None:
            state = MilestoneState.initial(user_id, resolve_now(now))
            MilestoneStateStore.save(db, state)
            logger.info("Created milestone state for user %s", user_id)
            return state

        return MilestoneState.model_validate(row.state)

    @staticmethod
    def save(db: Session, state: MilestoneState) -> MilestoneStateRecord:
        """Write the whole state and commit."""
        row = db.get(MilestoneStateRecord, state.user_id)
        if row is None:
            row = MilestoneStateRecord(user_id=state.user_id)
            db.add(row)

        row.state = state.model_dump(mode="json")
        row.current_tier = state.current_tier
        db.commit()
        db.refresh(row)
        return row
