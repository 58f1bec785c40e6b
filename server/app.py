import contextlib
import datetime as dt
import functools
import json
import logging
from typing import Any, Awaitable, Callable

from databases import Database
from jinja2 import Environment, FileSystemLoader, select_autoescape
import openai
from rich.logging import RichHandler
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, PlainTextResponse
from starlette.routing import Route

from kitchen import clock
from kitchen.assistant import Assistant
from kitchen.errors import InternalError, InvalidArgument, KitchenError
from kitchen.identity import GoogleIdentityProvider, IdentityProvider
from kitchen.matcher import RecipeMatcher, pick_initial
from kitchen.models import ANY_DAY, MealTime, Recipe
from kitchen.preferences import ONBOARDING_OPTIONS, PreferencesWriter
from kitchen.prompts import suggested_questions
from kitchen.repository import RecipeRepository, UserRepository
from kitchen.session import SessionController, SessionRegistry, SessionState
from server import config


logger = logging.getLogger(__name__)


STATUS_CODES = {
    "invalid-argument": 400,
    "missing-identity": 401,
    "unauthenticated": 401,
    "failed-precondition": 409,
    "internal": 500,
}

TABS = [MealTime.breakfast, MealTime.lunch, MealTime.snack, MealTime.dinner]


def aJSONResponse(route: Callable[..., Awaitable[Any]]):
    @functools.wraps(route)
    async def wrapper(*args: Any, **kwargs: Any) -> JSONResponse:
        return JSONResponse(await route(*args, **kwargs))

    return wrapper


async def payload(request: Request) -> dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    try:
        data = json.loads(body)
    except ValueError as e:
        raise InvalidArgument("Request body is not JSON") from e
    if isinstance(data, dict) and "data" in data:
        data = data["data"]
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgument("Request body should be an object")
    return data


def controller(request: Request) -> SessionController:
    """The signed-in controller for the request's cookie, else a throwaway one."""
    session: SessionController | None = getattr(request.state, "controller", None)
    if session is None:
        cfg: config.Config = request.app.state.config
        registry: SessionRegistry = request.app.state.registry
        session_id = request.cookies.get(cfg.session_cookie)
        session = registry.get(session_id)
        if session is None:
            session_id, session = None, registry.new()
        request.state.session_id = session_id
        request.state.controller = session
    return session


async def kitchen_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, KitchenError)
    return JSONResponse(
        {"error": exc.to_dict()}, status_code=STATUS_CODES.get(exc.code, 500)
    )


async def healthz(request: Request) -> PlainTextResponse:
    return PlainTextResponse("ok")


async def homepage(request: Request) -> HTMLResponse:
    templates: Environment = request.app.state.templates
    session = controller(request)

    match session.state:
        case SessionState.unauthenticated:
            html = templates.get_template("sign-in.html").render(
                google_client_id=request.app.state.config.google_client_id
            )
            return HTMLResponse(html)
        case SessionState.needs_onboarding:
            html = templates.get_template("onboarding.html").render(
                options=ONBOARDING_OPTIONS,
                identity=session.identity,
            )
            return HTMLResponse(html)
        case _:
            pass

    tab = request.query_params.get("meal")
    context: dict[str, Any] = {"tabs": TABS, "identity": session.identity}
    try:
        today = await session.today_recipe()
        key = clock.resolve(session.now())
        recipe: Recipe | None = None
        if tab and tab.lower() in {t.value for t in TABS}:
            alternates = await session.alternates(key.day, tab)
            recipe = (
                pick_initial(alternates)
                if MealTime.is_snack(tab)
                else next(iter(alternates), None)
            )
        else:
            tab = key.meal_time.value
            recipe = None if today is None else Recipe.from_dict(today["recipe"])
    except InternalError:
        html = templates.get_template("index.html").render(
            **context, error="Sorry, something went wrong. Please try again."
        )
        return HTMLResponse(html, status_code=500)

    html = templates.get_template("index.html").render(
        **context,
        tab=tab,
        day=ANY_DAY if MealTime.is_snack(tab) else key.day,
        recipe=recipe,
        questions=[] if recipe is None else suggested_questions(recipe),
    )
    return HTMLResponse(html)


async def sign_in(request: Request) -> JSONResponse:
    cfg: config.Config = request.app.state.config
    data = await payload(request)
    session = controller(request)
    state = await session.sign_in(str(data.get("idToken") or ""))

    response = JSONResponse({"state": state.value})
    if request.state.session_id is None:
        session_id = request.app.state.registry.register(session)
        response.set_cookie(
            cfg.session_cookie,
            session_id,
            httponly=True,
            samesite="lax",
            secure=cfg.env == config.Env.prod,
        )
    return response


async def sign_out(request: Request) -> JSONResponse:
    cfg: config.Config = request.app.state.config
    state = controller(request).sign_out()
    request.app.state.registry.drop(request.state.session_id)
    response = JSONResponse({"state": state.value})
    response.delete_cookie(cfg.session_cookie)
    return response


@aJSONResponse
async def get_today_recipe(request: Request) -> dict[str, Any] | None:
    return await controller(request).today_recipe()


@aJSONResponse
async def get_alternates(request: Request) -> list[dict[str, Any]]:
    data = await payload(request)
    recipes = await controller(request).alternates(data.get("day"), data.get("mealTime"))
    return [r.to_dict() for r in recipes]


@aJSONResponse
async def ask_assistant(request: Request) -> str:
    data = await payload(request)
    return await controller(request).ask(data.get("recipe"), data.get("question"))


@aJSONResponse
async def save_preferences(request: Request) -> dict[str, Any]:
    data = await payload(request)
    return await controller(request).complete_onboarding(data)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def create_app(
    cfg: config.Config | None = None,
    *,
    identity_provider: IdentityProvider | None = None,
    openai_client: openai.AsyncClient | None = None,
    now: Callable[[], dt.datetime] | None = None,
) -> Starlette:
    cfg = config.Config() if cfg is None else cfg
    setup_logging(cfg.log_level)

    db = Database(cfg.db_url)
    recipes = RecipeRepository(db)
    users = UserRepository(db)
    google: GoogleIdentityProvider | None = None
    if identity_provider is None:
        identity_provider = google = GoogleIdentityProvider(
            client_id=cfg.google_client_id
        )
    matcher = RecipeMatcher(recipes)
    assistant = Assistant(
        openai_client, model=cfg.core_model, max_tokens=cfg.assistant_max_tokens
    )
    preferences = PreferencesWriter(users, single_goal=cfg.single_goal)

    def new_session() -> SessionController:
        return SessionController(
            identity_provider=identity_provider,
            users=users,
            matcher=matcher,
            assistant=assistant,
            preferences=preferences,
            now=now,
        )

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        await db.connect()
        await recipes.create_table()
        await users.create_table()
        logger.info("Connected to %s", cfg.db_url)
        yield
        await db.disconnect()
        await assistant.close()
        if google is not None:
            await google.close()

    app = Starlette(
        debug=cfg.env == config.Env.local,
        routes=[
            Route("/", homepage),
            Route("/healthz", healthz),
            Route("/auth/sign-in", sign_in, methods=["POST"]),
            Route("/auth/sign-out", sign_out, methods=["POST"]),
            Route("/api/getTodayRecipe", get_today_recipe, methods=["POST"]),
            Route("/api/getAlternates", get_alternates, methods=["POST"]),
            Route("/api/askAssistant", ask_assistant, methods=["POST"]),
            Route("/api/preferences", save_preferences, methods=["POST"]),
        ],
        exception_handlers={KitchenError: kitchen_error},
        lifespan=lifespan,
    )

    app.state.config = cfg
    app.state.db = db
    app.state.recipes = recipes
    app.state.users = users
    app.state.identity_provider = identity_provider
    app.state.assistant = assistant
    app.state.registry = SessionRegistry(
        new_session, max_idle=cfg.session_max_idle, max_sessions=cfg.max_sessions
    )
    app.state.templates = Environment(
        loader=FileSystemLoader(cfg.html_dir),
        autoescape=select_autoescape(),
    )
    return app


app = create_app()
