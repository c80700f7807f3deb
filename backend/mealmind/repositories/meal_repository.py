import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mealmind.core.exceptions import NotFoundError, PersistenceError
from mealmind.models.meal import Meal
from mealmind.models.nutrition import MealNutrition

logger = logging.getLogger(__name__)

MEAL_NOT_FOUND_MESSAGE = "meal not found"


class MealRepository:
    """
    Repository for meals.

    Every read and write is scoped to the owning user; a meal that exists but
    belongs to someone else (or to nobody after an unlink) is reported as not found.
    """

    def __init__(self, db: Session):
        self.db = db

    def add(self, meal_id: UUID, owner_id: UUID, created_at: datetime) -> Meal:
        """Stage a blank meal row; the caller commits."""
        meal = Meal(id=meal_id, user_id=owner_id, title=None, notes=None, created_at=created_at)
        self.db.add(meal)
        return meal

    def list_for_owner(self, owner_id: UUID, limit: int, offset: int) -> List[Meal]:
        try:
            return (
                self.db.query(Meal)
                .filter(Meal.user_id == owner_id)
                # Newest first; id keeps pages stable when timestamps tie
                .order_by(Meal.created_at.desc(), Meal.id)
                .limit(limit)
                .offset(offset)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("list meals failed: %s", e)
            raise PersistenceError() from e

    def get_owned(self, owner_id: UUID, meal_id: UUID) -> Meal:
        try:
            meal = self.db.query(Meal).filter(Meal.id == meal_id, Meal.user_id == owner_id).first()
        except SQLAlchemyError as e:
            logger.error("get meal %s failed: %s", meal_id, e)
            raise PersistenceError() from e
        if meal is None:
            raise NotFoundError(MEAL_NOT_FOUND_MESSAGE)
        return meal

    def get_nutrition(self, meal_id: UUID) -> Optional[MealNutrition]:
        try:
            return self.db.get(MealNutrition, meal_id)
        except SQLAlchemyError as e:
            logger.error("get nutrition for meal %s failed: %s", meal_id, e)
            raise PersistenceError() from e

    def _update_owned(self, owner_id: UUID, meal_id: UUID, values: dict) -> None:
        try:
            rows = (
                self.db.query(Meal)
                .filter(Meal.id == meal_id, Meal.user_id == owner_id)
                .update(values, synchronize_session=False)
            )
            # Zero rows means missing, not owned or already unlinked
            if rows != 1:
                self.db.rollback()
                raise NotFoundError(MEAL_NOT_FOUND_MESSAGE)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("update meal %s failed: %s", meal_id, e)
            raise PersistenceError() from e

    def update(self, owner_id: UUID, meal_id: UUID, title: Optional[str], notes: Optional[str]) -> None:
        """Full replace of title and notes"""
        self._update_owned(owner_id, meal_id, {"title": title, "notes": notes})

    def unlink(self, owner_id: UUID, meal_id: UUID) -> None:
        """Soft-delete: clear the owner so the meal drops out of the user's list"""
        self._update_owned(owner_id, meal_id, {"user_id": None})
