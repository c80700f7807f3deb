import uuid
from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.sql import func
from mealmind.core.database import Base


class Meal(Base):
    """
    A meal logged by a user.

    Deleting a meal clears user_id (soft-unlink) instead of removing the row,
    so photos and nutrition stay attached to it.
    """
    __tablename__ = "meals"

    # Generated by the application so storage keys can be derived before insert
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    title = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
