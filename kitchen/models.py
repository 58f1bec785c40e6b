from enum import Enum
from typing import Any, NamedTuple, Self


ANY_DAY = "Any"

DAYS = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


class MealTime(Enum):
    breakfast = "breakfast"
    lunch = "lunch"
    snack = "snack"
    dinner = "dinner"

    @classmethod
    def is_snack(cls, value: "str | MealTime") -> bool:
        value = value.value if isinstance(value, MealTime) else value
        return value.lower() == cls.snack.value


class DayMealKey(NamedTuple):
    day: str
    meal_time: MealTime


class Recipe:
    def __init__(
        self,
        *,
        id: str,
        title: str,
        day: str,
        meal_time: str,
        ingredients: list[str],
        steps: list[str],
        nutritional_benefits: str = "",
        alternate_for: str | None = None,
    ) -> None:
        self.id = id
        self.title = title
        self.day = day
        self.meal_time = meal_time
        self.ingredients = ingredients
        self.steps = steps
        self.nutritional_benefits = nutritional_benefits
        self.alternate_for = alternate_for

    def __repr__(self) -> str:
        return f"<Recipe(id={self.id}, title={self.title})>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Recipe):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def matches(self, day: str, meal_time: str) -> bool:
        if not (self.day and self.meal_time):
            return False
        return (
            self.day.lower() == day.lower()
            and self.meal_time.lower() == meal_time.lower()
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, id: str | None = None) -> Self:
        return cls(
            id=str(data.get("id") or id or ""),
            title=data.get("title") or "",
            day=data.get("day") or "",
            meal_time=data.get("mealTime") or "",
            ingredients=list(data.get("ingredients") or []),
            steps=list(data.get("steps") or []),
            nutritional_benefits=data.get("nutritionalBenefits") or "",
            alternate_for=data.get("alternateFor"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "day": self.day,
            "mealTime": self.meal_time,
            "ingredients": list(self.ingredients),
            "steps": list(self.steps),
            "nutritionalBenefits": self.nutritional_benefits,
        }
        if self.alternate_for is not None:
            d["alternateFor"] = self.alternate_for
        return d


class Identity:
    def __init__(
        self,
        *,
        uid: str,
        display_name: str = "",
        email: str = "",
        photo_url: str = "",
    ) -> None:
        self.uid = uid
        self.display_name = display_name
        self.email = email
        self.photo_url = photo_url

    def __repr__(self) -> str:
        return f"<Identity(uid={self.uid}, email={self.email})>"

    def to_dict(self) -> dict[str, str]:
        return {
            "uid": self.uid,
            "displayName": self.display_name,
            "email": self.email,
            "photoURL": self.photo_url,
        }
