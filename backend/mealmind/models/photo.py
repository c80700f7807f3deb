import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.sql import func
from mealmind.core.database import Base

PHOTO_STATUS_UPLOADED = "uploaded"


class Photo(Base):
    """
    A meal photo whose bytes live in object storage under s3_key.

    Rows are only written after the object upload succeeded.
    """
    __tablename__ = "photos"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    meal_id = Column(Uuid, ForeignKey("meals.id", ondelete="RESTRICT"), nullable=False, index=True)
    s3_key = Column(String, nullable=False)
    status = Column(String(255), nullable=False, default=PHOTO_STATUS_UPLOADED)
    failure_reason = Column(Text, nullable=True)
    # Submission index; breaks ties between photos inserted in the same transaction
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

