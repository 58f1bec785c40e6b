import datetime as dt
import json
from typing import Any
from uuid import uuid4

from databases import Database

from kitchen.models import Recipe


CREATE_RECIPES_TABLE = """
CREATE TABLE IF NOT EXISTS Recipes (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id VARCHAR(64) UNIQUE NOT NULL,
    doc TEXT NOT NULL
)
"""

CREATE_USERS_TABLE = """
CREATE TABLE IF NOT EXISTS Users (uid VARCHAR(128) PRIMARY KEY, doc TEXT NOT NULL)
"""

CREATE_RECIPE = "INSERT INTO Recipes(id, doc) VALUES (:id, :doc)"

UPDATE_RECIPE = "UPDATE Recipes SET doc = :doc WHERE id = :id"

GET_RECIPE = "SELECT id, doc FROM Recipes WHERE id = :id"

LIST_RECIPES = "SELECT id, doc FROM Recipes ORDER BY seq"

GET_USER = "SELECT doc FROM Users WHERE uid = :uid"

REPLACE_USER = """
INSERT INTO Users(uid, doc) VALUES (:uid, :doc)
ON CONFLICT(uid) DO UPDATE SET doc = excluded.doc
"""


class RecipeNotFound(Exception):
    pass


def timestamp(when: dt.datetime | None = None) -> str:
    when = dt.datetime.now(dt.timezone.utc) if when is None else when
    return when.isoformat()


def _recipe(row: Any) -> Recipe:
    return Recipe.from_dict(json.loads(row["doc"]), id=row["id"])


class RecipeRepository:
    """Recipes stored as JSON documents, read back in insertion order."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def create_table(self) -> None:
        await self.db.execute(CREATE_RECIPES_TABLE)  # pyright: ignore[reportUnknownMemberType]

    async def list_all(self) -> list[Recipe]:
        rows = await self.db.fetch_all(LIST_RECIPES)  # pyright: ignore[reportUnknownMemberType]
        return [_recipe(r) for r in rows]

    async def get(self, id: str) -> Recipe:
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            GET_RECIPE, values={"id": id}
        )
        if row is None:
            raise RecipeNotFound(id)
        return _recipe(row)

    async def find(self, day: str, meal_time: str, title: str) -> Recipe | None:
        for recipe in await self.list_all():
            if (recipe.day, recipe.meal_time, recipe.title) == (day, meal_time, title):
                return recipe
        return None

    async def add(self, recipe: Recipe) -> Recipe:
        recipe.id = recipe.id or uuid4().hex
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            CREATE_RECIPE, values={"id": recipe.id, "doc": json.dumps(recipe.to_dict())}
        )
        return recipe

    async def replace(self, recipe: Recipe) -> Recipe:
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            UPDATE_RECIPE, values={"id": recipe.id, "doc": json.dumps(recipe.to_dict())}
        )
        return recipe


class UserRepository:
    """One document per user, keyed by the identity provider's uid."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def create_table(self) -> None:
        await self.db.execute(CREATE_USERS_TABLE)  # pyright: ignore[reportUnknownMemberType]

    async def get(self, uid: str) -> dict[str, Any] | None:
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            GET_USER, values={"uid": uid}
        )
        return None if row is None else json.loads(row["doc"])

    async def replace(self, uid: str, doc: dict[str, Any]) -> None:
        # Whole document, no merge.
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            REPLACE_USER, values={"uid": uid, "doc": json.dumps(doc)}
        )

    async def touch_login(self, uid: str, when: dt.datetime | None = None) -> None:
        doc = await self.get(uid)
        if doc is None:
            return
        doc["lastLogin"] = timestamp(when)
        await self.replace(uid, doc)
