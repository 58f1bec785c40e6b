import asyncio

from databases import Database
import pytest
from starlette.testclient import TestClient

from conftest import TUESDAY_NOON_IST, FakeIdentityProvider, FakeOpenAI, recipe
from kitchen.repository import RecipeRepository
from server.app import create_app
from server.config import Config


async def seed(db_url: str) -> None:
    db = Database(db_url)
    await db.connect()
    repo = RecipeRepository(db)
    await repo.create_table()
    for r in (
        recipe("Veg Pulao", "Tuesday", "lunch", ingredients=["1 cup basmati rice"]),
        recipe("Rajma Chawal", "Tuesday", "lunch"),
        recipe("Poha", "Tuesday", "breakfast"),
        recipe("Masala Chai", "Any", "snack"),
    ):
        await repo.add(r)
    await db.disconnect()


@pytest.fixture
def client(db_url: str):
    asyncio.run(seed(db_url))
    app = create_app(
        Config(db_url=db_url),
        identity_provider=FakeIdentityProvider(),
        openai_client=FakeOpenAI("About 350 kcal."),  # type: ignore[arg-type]
        now=lambda: TUESDAY_NOON_IST,
    )
    with TestClient(app) as c:
        yield c


def sign_in(client: TestClient, token: str = "asha") -> str:
    resp = client.post("/auth/sign-in", json={"data": {"idToken": token}})
    assert resp.status_code == 200
    return resp.json()["state"]


def onboard(client: TestClient) -> None:
    assert sign_in(client) == "needs-onboarding"
    resp = client.post("/api/preferences", json={"data": {"goals": ["Quick meals"]}})
    assert resp.status_code == 200


def test_healthz(client: TestClient) -> None:
    assert client.get("/healthz").text == "ok"


def test_anonymous_requests_do_not_open_sessions(client: TestClient) -> None:
    registry = client.app.state.registry  # type: ignore[attr-defined]
    for _ in range(50):
        resp = client.get("/healthz")
        assert "kyabanana_session" not in resp.cookies
    client.get("/")
    client.post("/api/getTodayRecipe")
    client.post("/auth/sign-in", json={"idToken": "bad"})
    assert len(registry) == 0

    resp = client.post("/auth/sign-in", json={"idToken": "asha"})
    assert "kyabanana_session" in resp.cookies
    assert len(registry) == 1

    # The cookie is reused rather than reissued.
    resp = client.post("/auth/sign-in", json={"idToken": "asha"})
    assert "kyabanana_session" not in resp.cookies
    assert len(registry) == 1

    client.post("/auth/sign-out")
    assert len(registry) == 0


def test_signed_out_pages_and_api(client: TestClient) -> None:
    resp = client.get("/")
    assert resp.status_code == 200
    assert "Sign in" in resp.text
    assert "kyabanana_session" not in resp.cookies

    resp = client.post("/api/getTodayRecipe")
    assert resp.status_code == 401
    assert resp.json()["error"]["status"] == "unauthenticated"


def test_bad_token(client: TestClient) -> None:
    resp = client.post("/auth/sign-in", json={"idToken": "bad"})
    assert resp.status_code == 400
    assert resp.json()["error"]["status"] == "invalid-argument"


def test_onboarding_then_todays_recipe(client: TestClient) -> None:
    assert sign_in(client) == "needs-onboarding"
    assert "What are your cooking goals?" in client.get("/").text

    resp = client.post(
        "/api/preferences",
        json={"data": {"goals": ["Quick meals"], "cuisinePreferences": ["Goan"]}},
    )
    assert resp.status_code == 200
    doc = resp.json()
    assert doc["onboardingCompleted"] is True
    assert doc["dietaryPreferences"] == []
    assert doc["cuisinePreferences"] == ["Goan"]
    assert "name" not in doc

    page = client.get("/").text
    assert "Veg Pulao" in page
    assert "Tuesday lunch" in page
    assert "Any substitute for rice?" in page


def test_get_today_recipe(client: TestClient) -> None:
    onboard(client)
    resp = client.post("/api/getTodayRecipe")
    assert resp.status_code == 200
    data = resp.json()
    assert data["recipe"]["title"] == "Veg Pulao"
    assert data["currentDay"] == "Tuesday"
    assert data["currentMealTime"] == "lunch"


def test_get_alternates(client: TestClient) -> None:
    onboard(client)
    resp = client.post("/api/getAlternates", json={"data": {"day": "tuesday", "mealTime": "LUNCH"}})
    assert [r["title"] for r in resp.json()] == ["Veg Pulao", "Rajma Chawal"]

    resp = client.post("/api/getAlternates", json={"data": {"day": "Any", "mealTime": "snack"}})
    assert [r["title"] for r in resp.json()] == ["Masala Chai"]

    resp = client.post("/api/getAlternates", json={"data": {"day": "Sunday", "mealTime": "dinner"}})
    assert resp.json() == []


def test_snack_tab(client: TestClient) -> None:
    onboard(client)
    page = client.get("/?meal=snack").text
    assert "Snack Suggestions" in page
    assert "Masala Chai" in page


def test_empty_tab(client: TestClient) -> None:
    onboard(client)
    page = client.get("/?meal=dinner").text
    assert "No recipe found for Tuesday dinner. Please check back later!" in page


def test_ask_assistant(client: TestClient) -> None:
    onboard(client)
    body = {"recipe": {"title": "Veg Pulao", "ingredients": [], "steps": []}}

    resp = client.post("/api/askAssistant", json={"data": body})
    assert resp.status_code == 400
    assert resp.json()["error"]["status"] == "invalid-argument"

    resp = client.post("/api/askAssistant", json={"data": {**body, "question": "Calories?"}})
    assert resp.status_code == 200
    assert resp.json() == "About 350 kcal."


def test_bad_body(client: TestClient) -> None:
    onboard(client)
    resp = client.post("/api/getAlternates", content=b"{not json")
    assert resp.status_code == 400
    resp = client.post("/api/getAlternates", json=[1, 2])
    assert resp.status_code == 400


def test_sign_out(client: TestClient) -> None:
    onboard(client)
    assert client.post("/auth/sign-out").json() == {"state": "unauthenticated"}
    assert client.post("/api/getTodayRecipe").status_code == 401

    # Preferences were kept, so signing back in skips onboarding.
    assert sign_in(client) == "ready"


@pytest.mark.parametrize(
    "body",
    (
        {"day": "Tuesday", "mealTime": 5},
        {"day": ["Tuesday"], "mealTime": "lunch"},
    ),
)
def test_get_alternates_rejects_non_string_keys(client: TestClient, body: dict) -> None:
    onboard(client)
    resp = client.post("/api/getAlternates", json={"data": body})
    assert resp.status_code == 400
    assert resp.json()["error"]["status"] == "invalid-argument"


@pytest.mark.parametrize(
    "body",
    (
        {"recipe": {"title": "Veg Pulao"}, "question": 123},
        {"recipe": ["Veg Pulao"], "question": "Calories?"},
    ),
)
def test_ask_assistant_rejects_wrong_types(client: TestClient, body: dict) -> None:
    onboard(client)
    resp = client.post("/api/askAssistant", json={"data": body})
    assert resp.status_code == 400
    assert resp.json()["error"]["status"] == "invalid-argument"


def test_shutdown_closes_owned_clients(db_url: str) -> None:
    app = create_app(Config(db_url=db_url))
    with TestClient(app) as c:
        assert c.get("/healthz").text == "ok"
    assert app.state.identity_provider.http_client.is_closed


def test_shutdown_leaves_injected_clients_alone(db_url: str) -> None:
    openai_client = FakeOpenAI()
    app = create_app(
        Config(db_url=db_url),
        identity_provider=FakeIdentityProvider(),
        openai_client=openai_client,  # type: ignore[arg-type]
    )
    with TestClient(app):
        pass
    assert not openai_client.closed
