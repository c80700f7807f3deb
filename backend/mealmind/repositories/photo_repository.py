import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mealmind.core.exceptions import PersistenceError
from mealmind.models.meal import Meal
from mealmind.models.photo import PHOTO_STATUS_UPLOADED, Photo

logger = logging.getLogger(__name__)

# Display order is submission order
PHOTO_ORDER = (Photo.created_at.asc(), Photo.position.asc())


class PhotoRepository:
    """Repository for photo rows. Writes join the caller's transaction."""

    def __init__(self, db: Session):
        self.db = db

    def add(self, photo_id: UUID, meal_id: UUID, s3_key: str, position: int, created_at: datetime) -> Photo:
        """Stage a photo row; the caller commits."""
        photo = Photo(
            id=photo_id,
            meal_id=meal_id,
            s3_key=s3_key,
            status=PHOTO_STATUS_UPLOADED,
            position=position,
            created_at=created_at,
        )
        self.db.add(photo)
        return photo

    def list_for_meal(self, meal_id: UUID) -> List[Photo]:
        try:
            return self.db.query(Photo).filter(Photo.meal_id == meal_id).order_by(*PHOTO_ORDER).all()
        except SQLAlchemyError as e:
            logger.error("list photos for meal %s failed: %s", meal_id, e)
            raise PersistenceError() from e

    def keys_for_meals(self, meal_ids: Sequence[UUID]) -> Dict[UUID, List[str]]:
        """Map each meal id to its photo keys in display order"""
        keys: Dict[UUID, List[str]] = {meal_id: [] for meal_id in meal_ids}
        if not meal_ids:
            return keys
        try:
            rows = (
                self.db.query(Photo.meal_id, Photo.s3_key)
                .filter(Photo.meal_id.in_(list(meal_ids)))
                .order_by(*PHOTO_ORDER)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("list photo keys failed: %s", e)
            raise PersistenceError() from e
        # Rows arrive in display order, so appending preserves it per meal
        for meal_id, s3_key in rows:
            keys[meal_id].append(s3_key)
        return keys

    def first_key_for_owned_meal(self, owner_id: UUID, meal_id: UUID) -> Optional[str]:
        try:
            row = (
                self.db.query(Photo.s3_key)
                # Ownership is checked on the meal, photos carry no user id
                .join(Meal, Meal.id == Photo.meal_id)
                .filter(Meal.id == meal_id, Meal.user_id == owner_id)
                .order_by(*PHOTO_ORDER)
                .first()
            )
        except SQLAlchemyError as e:
            logger.error("first photo for meal %s failed: %s", meal_id, e)
            raise PersistenceError() from e
        return row[0] if row else None
