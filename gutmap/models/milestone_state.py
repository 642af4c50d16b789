from sqlalchemy import Column, String, Integer, DateTime, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from gutmap.database import Base


class MilestoneStateRecord(Base):
    """Whole-document storage of one user's milestone progression (tiers, experiments, cached guides)."""

    __tablename__ = "milestone_states"

    user_id = Column(String(255), primary_key=True)  # Opaque user identity
    state = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    current_tier = Column(Integer, nullable=False, default=1)  # Denormalized for admin queries
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("idx_milestone_states_current_tier", "current_tier"),)
