"""
DishCompletion model for the kitchen production cycle.

Completion is tracked per dish name, not per order: every approved order
that references a dish name shares the same flag during a production cycle.
"""

from sqlalchemy import Boolean, Column, DateTime, String

from .base import BaseModel


class DishCompletion(BaseModel):
    """
    Completion flag for one dish name in the current production cycle.

    Attributes:
        dish_name: Dish name as referenced by orders (unique)
        is_complete: True once the kitchen marked the dish done
        completed_at: When the dish was marked done
    """

    __tablename__ = "dish_completions"

    dish_name = Column(String(200), nullable=False, unique=True, index=True)
    is_complete = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"DishCompletion(dish_name='{self.dish_name}', is_complete={self.is_complete})"
