import asyncio
import datetime as dt
from types import SimpleNamespace
from typing import Any

from databases import Database
import pytest
import pytest_asyncio

from kitchen.assistant import Assistant
from kitchen.errors import InvalidArgument
from kitchen.matcher import RecipeMatcher
from kitchen.models import Identity, Recipe
from kitchen.preferences import PreferencesWriter
from kitchen.repository import RecipeRepository, UserRepository, timestamp
from kitchen.session import SessionController


UTC = dt.timezone.utc

# 2024-01-02 is a Tuesday; 06:30 UTC is 12:00 IST.
TUESDAY_NOON_IST = dt.datetime(2024, 1, 2, 6, 30, tzinfo=UTC)


def recipe(
    title: str,
    day: str,
    meal_time: str,
    *,
    id: str | None = None,
    ingredients: list[str] | None = None,
) -> Recipe:
    return Recipe(
        id=id or title.lower().replace(" ", "-"),
        title=title,
        day=day,
        meal_time=meal_time,
        ingredients=["1 cup rice", "2 cups water"] if ingredients is None else ingredients,
        steps=["Rinse the rice.", "Boil for 15 minutes."],
        nutritional_benefits="Light and filling.",
    )


class FakeSource:
    def __init__(self, recipes: list[Recipe], *, fail: bool = False) -> None:
        self.recipes = recipes
        self.fail = fail
        self.calls = 0

    async def list_all(self) -> list[Recipe]:
        self.calls += 1
        if self.fail:
            raise ConnectionError("store unavailable")
        return list(self.recipes)


class GatedSource(FakeSource):
    """The first lookup blocks until `release` is set."""

    def __init__(self, recipes: list[Recipe]) -> None:
        super().__init__(recipes)
        self.release = asyncio.Event()

    async def list_all(self) -> list[Recipe]:
        self.calls += 1
        if self.calls == 1:
            await self.release.wait()
        return list(self.recipes)


class FakeCompletions:
    def __init__(self, answer: str = "Use paneer.", *, fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.requests: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.requests.append(kwargs)
        if self.fail:
            raise RuntimeError("provider down")
        message = SimpleNamespace(content=self.answer)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    def __init__(self, answer: str = "Use paneer.", *, fail: bool = False) -> None:
        self.completions = FakeCompletions(answer, fail=fail)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeUsers:
    def __init__(self, docs: dict[str, dict[str, Any]] | None = None) -> None:
        self.docs = {} if docs is None else docs
        self.writes: list[dict[str, Any]] = []

    async def get(self, uid: str) -> dict[str, Any] | None:
        doc = self.docs.get(uid)
        return None if doc is None else dict(doc)

    async def replace(self, uid: str, doc: dict[str, Any]) -> None:
        self.writes.append(dict(doc))
        self.docs[uid] = dict(doc)

    async def touch_login(self, uid: str, when: dt.datetime | None = None) -> None:
        if uid in self.docs:
            self.docs[uid]["lastLogin"] = timestamp(when)


class FakeIdentityProvider:
    async def verify(self, token: str) -> Identity:
        if not token or token == "bad":
            raise InvalidArgument("Invalid ID token")
        return Identity(
            uid=f"uid-{token}",
            display_name="Asha",
            email=f"{token}@example.com",
            photo_url="https://example.com/a.png",
        )


@pytest.fixture
def week() -> list[Recipe]:
    return [
        recipe("Poha", "Tuesday", "breakfast"),
        recipe("Rajma Chawal", "tuesday", "Lunch"),
        recipe("Veg Pulao", "Tuesday", "lunch"),
        recipe("Dal Tadka", "Tuesday", "dinner"),
        recipe("Aloo Paratha", "Monday", "breakfast"),
        recipe("Masala Chai", "Any", "snack"),
        recipe("Samosa", "Friday", "Snack"),
    ]


@pytest.fixture
def openai_client() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def users() -> FakeUsers:
    return FakeUsers()


def make_controller(
    source: FakeSource,
    users: FakeUsers,
    openai_client: FakeOpenAI,
    *,
    now: dt.datetime = TUESDAY_NOON_IST,
) -> SessionController:
    return SessionController(
        identity_provider=FakeIdentityProvider(),
        users=users,  # pyright: ignore[reportArgumentType]
        matcher=RecipeMatcher(source),
        assistant=Assistant(openai_client),  # pyright: ignore[reportArgumentType]
        preferences=PreferencesWriter(users),
        now=lambda: now,
    )


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'kyabanana.db'}"


@pytest_asyncio.fixture
async def db(db_url: str):
    database = Database(db_url)
    await database.connect()
    yield database
    await database.disconnect()


@pytest_asyncio.fixture
async def recipe_repo(db: Database) -> RecipeRepository:
    repo = RecipeRepository(db)
    await repo.create_table()
    return repo


@pytest_asyncio.fixture
async def user_repo(db: Database) -> UserRepository:
    repo = UserRepository(db)
    await repo.create_table()
    return repo
