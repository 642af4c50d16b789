"""
Database models for Gutmap.

Import all models here so Alembic can detect them for migrations.
"""

from gutmap.database import Base
from gutmap.models.milestone_state import MilestoneStateRecord

__all__ = [
    "Base",
    "MilestoneStateRecord",
]
