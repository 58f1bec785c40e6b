import datetime as dt
import logging
import secrets
import time
from enum import Enum
from typing import Any, Callable

from kitchen import clock
from kitchen.assistant import Assistant
from kitchen.cache import MemoCache
from kitchen.errors import InternalError, InvalidArgument, InvalidTransition, Unauthenticated
from kitchen.identity import IdentityProvider
from kitchen.matcher import RecipeMatcher
from kitchen.models import ANY_DAY, Identity, MealTime, Recipe
from kitchen.preferences import PreferencesWriter, new_user_document
from kitchen.repository import UserRepository


logger = logging.getLogger(__name__)


class SessionState(Enum):
    unauthenticated = "unauthenticated"
    needs_onboarding = "needs-onboarding"
    ready = "ready"


class SessionGate:
    """Which of sign-in, onboarding or the main app a user should see."""

    def __init__(self) -> None:
        self.state = SessionState.unauthenticated

    def signed_in(self, identity: Identity, stored: dict[str, Any] | None) -> SessionState:
        if stored is not None and stored.get("onboardingCompleted") is True:
            self.state = SessionState.ready
        else:
            self.state = SessionState.needs_onboarding
        logger.info("%s signed in, %s", identity.uid, self.state.value)
        return self.state

    def onboarding_completed(self) -> SessionState:
        if self.state is not SessionState.needs_onboarding:
            raise InvalidTransition(f"Cannot complete onboarding from {self.state.value}")
        self.state = SessionState.ready
        return self.state

    def signed_out(self) -> SessionState:
        self.state = SessionState.unauthenticated
        return self.state


def _meal(meal_time: str | MealTime) -> str:
    return meal_time.value if isinstance(meal_time, MealTime) else meal_time


class SessionController:
    """Everything one browser session does, in the order it does it."""

    def __init__(
        self,
        *,
        identity_provider: IdentityProvider,
        users: UserRepository,
        matcher: RecipeMatcher,
        assistant: Assistant,
        preferences: PreferencesWriter,
        now: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self.identity_provider = identity_provider
        self.users = users
        self.matcher = matcher
        self.assistant = assistant
        self.preferences = preferences
        self.now = (lambda: dt.datetime.now(dt.timezone.utc)) if now is None else now

        self.gate = SessionGate()
        self.cache = MemoCache()
        self.identity: Identity | None = None
        self.displayed_alternates: list[Recipe] = []
        self.displayed_key: tuple[str, str] | None = None
        self._ticket = 0

    @property
    def state(self) -> SessionState:
        return self.gate.state

    def _require(self, *states: SessionState) -> None:
        if self.gate.state is SessionState.unauthenticated:
            raise Unauthenticated("Sign in first")
        if self.gate.state not in states:
            raise InvalidTransition(f"Not available while {self.gate.state.value}")

    async def sign_in(self, token: str) -> SessionState:
        identity = await self.identity_provider.verify(token)
        try:
            stored = await self.users.get(identity.uid)
            if stored is None:
                await self.users.replace(
                    identity.uid, new_user_document(identity, self.now())
                )
            else:
                await self.users.touch_login(identity.uid, self.now())
        except Exception as e:
            logger.exception("Loading user %s failed.", identity.uid)
            raise InternalError("Error signing in") from e

        self.identity = identity
        return self.gate.signed_in(identity, stored)

    def sign_out(self) -> SessionState:
        if self.identity is not None:
            logger.info("%s signed out", self.identity.uid)
        self.identity = None
        self.cache.clear()
        self.displayed_alternates = []
        self.displayed_key = None
        return self.gate.signed_out()

    async def today_recipe(self) -> dict[str, Any] | None:
        self._require(SessionState.ready)
        instant = self.now()
        key = clock.resolve(instant)
        today = clock.ist_now(instant).date().isoformat()

        if ("today", today, key.meal_time.value) in self.cache:
            return self.cache.get("today", today, key.meal_time.value)

        recipe = await self.matcher.primary_match(key.day, key.meal_time)
        result = (
            None
            if recipe is None
            else {
                "recipe": recipe.to_dict(),
                "currentDay": key.day,
                "currentMealTime": key.meal_time.value,
            }
        )
        self.cache.set("today", today, key.meal_time.value, value=result)
        return result

    async def alternates(
        self, day: str | None = None, meal_time: str | MealTime | None = None
    ) -> list[Recipe]:
        self._require(SessionState.ready)
        if day is not None and not isinstance(day, str):
            raise InvalidArgument("day should be a string")
        if meal_time is not None and not isinstance(meal_time, (str, MealTime)):
            raise InvalidArgument("mealTime should be a string")
        if not day or not meal_time:
            key = clock.resolve(self.now())
            day = day or key.day
            meal_time = meal_time or key.meal_time
        meal = _meal(meal_time)
        if MealTime.is_snack(meal):
            day = ANY_DAY

        self._ticket += 1
        ticket = self._ticket

        cache_key = (day.lower(), meal.lower())
        if ("alternates", *cache_key) in self.cache:
            recipes = self.cache.get("alternates", *cache_key)
        else:
            recipes = await self.matcher.alternates(day, meal)
            self.cache.set("alternates", *cache_key, value=recipes)

        if ticket == self._ticket:
            self.displayed_alternates = recipes
            self.displayed_key = cache_key
        else:
            logger.debug("Discarding stale alternates for %s %s", day, meal)
        return recipes

    async def ask(self, recipe: Recipe | dict[str, Any] | None, question: str | None) -> str:
        self._require(SessionState.ready)
        return await self.assistant.ask(recipe, question)

    async def complete_onboarding(self, raw_form: dict[str, Any] | None) -> dict[str, Any]:
        uid = None if self.identity is None else self.identity.uid
        if uid is not None:
            self._require(SessionState.needs_onboarding)
        doc = await self.preferences.save(
            uid, raw_form, identity=self.identity, when=self.now()
        )
        self.gate.onboarding_completed()
        return doc


class SessionRegistry:
    """Session cookie id -> controller, for signed-in sessions only.

    Anonymous requests get a throwaway controller from `new()`; it is only
    stored once `register()` is called after a successful sign-in. Sessions
    idle for longer than `max_idle` seconds are swept, and the oldest ones are
    evicted past `max_sessions`.
    """

    def __init__(
        self,
        factory: Callable[[], SessionController],
        *,
        max_idle: float = 12 * 60 * 60,
        max_sessions: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.factory = factory
        self.max_idle = max_idle
        self.max_sessions = max_sessions
        self.clock = clock
        self._sessions: dict[str, SessionController] = {}
        self._last_seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def new(self) -> SessionController:
        return self.factory()

    def get(self, session_id: str | None) -> SessionController | None:
        if session_id is None or session_id not in self._sessions:
            return None
        now = self.clock()
        if now - self._last_seen[session_id] > self.max_idle:
            logger.info("Session expired after %ss idle", self.max_idle)
            self.drop(session_id)
            return None
        self._last_seen[session_id] = now
        return self._sessions[session_id]

    def register(self, controller: SessionController) -> str:
        self.sweep()
        while len(self._sessions) >= self.max_sessions:
            oldest = min(self._last_seen, key=self._last_seen.__getitem__)
            self.drop(oldest)
        session_id = secrets.token_urlsafe(32)
        self._sessions[session_id] = controller
        self._last_seen[session_id] = self.clock()
        return session_id

    def sweep(self) -> int:
        cutoff = self.clock() - self.max_idle
        idle = [sid for sid, seen in self._last_seen.items() if seen < cutoff]
        for session_id in idle:
            self.drop(session_id)
        if idle:
            logger.debug("Swept %s idle sessions", len(idle))
        return len(idle)

    def drop(self, session_id: str | None) -> None:
        if session_id is None:
            return
        self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
