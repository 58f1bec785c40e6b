import logging
import random
from typing import Protocol

from kitchen.errors import InternalError
from kitchen.models import ANY_DAY, MealTime, Recipe


logger = logging.getLogger(__name__)


class RecipeSource(Protocol):
    async def list_all(self) -> list[Recipe]:
        ...


def _value(meal_time: str | MealTime) -> str:
    return meal_time.value if isinstance(meal_time, MealTime) else meal_time


class RecipeMatcher:
    def __init__(self, source: RecipeSource) -> None:
        self.source = source

    async def _all(self) -> list[Recipe]:
        try:
            return await self.source.list_all()
        except Exception as e:
            logger.exception("Recipe lookup failed.")
            raise InternalError("Error fetching recipes") from e

    async def primary_match(self, day: str, meal_time: str | MealTime) -> Recipe | None:
        """First recipe for the day and meal time, in storage order."""
        meal = _value(meal_time)
        for recipe in await self._all():
            if recipe.matches(day, meal):
                return recipe
        logger.info("No matching recipes found for %s %s", day, meal)
        return None

    async def alternates(self, day: str, meal_time: str | MealTime) -> list[Recipe]:
        """Every recipe for the day and meal time, the primary match included.

        Snacks are not bound to a day so `day` is ignored for them.
        """
        meal = _value(meal_time)
        recipes = await self._all()
        if MealTime.is_snack(meal):
            found = [
                r for r in recipes if r.meal_time and MealTime.is_snack(r.meal_time)
            ]
        else:
            found = [r for r in recipes if r.matches(day, meal)]
        if not found:
            logger.info(
                "No matching alternate recipes found for %s %s",
                ANY_DAY if MealTime.is_snack(meal) else day,
                meal,
            )
        return found


def pick_initial(
    recipes: list[Recipe], *, rng: random.Random | None = None
) -> Recipe | None:
    """Uniformly random recipe to show first, used for the snack tab."""
    if not recipes:
        return None
    rng = random.Random() if rng is None else rng
    return rng.choice(recipes)
