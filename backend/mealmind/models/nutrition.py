from sqlalchemy import JSON, Column, DateTime, ForeignKey, Numeric, Uuid
from sqlalchemy.sql import func
from mealmind.core.database import Base


class MealNutrition(Base):
    """Nutrition estimate for a meal (1:1). Written by the analysis pipeline, read-only here."""
    __tablename__ = "meal_nutrition"

    meal_id = Column(Uuid, ForeignKey("meals.id", ondelete="CASCADE"), primary_key=True)
    total_calories_kcal = Column(Numeric(10, 2), nullable=True)
    protein_g = Column(Numeric(10, 2), nullable=True)
    fat_g = Column(Numeric(10, 2), nullable=True)
    carbs_g = Column(Numeric(10, 2), nullable=True)
    sodium_mg = Column(Numeric(10, 2), nullable=True)
    sugar_g = Column(Numeric(10, 2), nullable=True)
    fiber_g = Column(Numeric(10, 2), nullable=True)
    micros = Column(JSON, nullable=True)
    ai_raw = Column(JSON, nullable=True)
    # Overall quality score, 0-100
    global_score = Column(Numeric(5, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

