"""Onboarding preferences.

The user document is schema-less in the store, so the shape is pinned here:
`SCHEMA_VERSION` names the current shape and `migrate_user_document` brings
older documents up to it. Version 1 documents carried a `name` field which
must never be written again.
"""

import datetime as dt
import logging
from typing import Any, Protocol

from kitchen.errors import InternalError, InvalidArgument, MissingIdentity
from kitchen.models import Identity
from kitchen.repository import timestamp


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 2

LEGACY_FIELDS = ("name",)

PREFERENCE_FIELDS = ("goals", "dietaryPreferences", "cuisinePreferences", "mealHabits")

ONBOARDING_OPTIONS = {
    "goals": (
        "Healthy eating",
        "Weight loss",
        "Learning to cook",
        "Trying new recipes",
        "Quick meals",
    ),
    "dietaryPreferences": (
        "Vegetarian",
        "Vegan",
        "Gluten-free",
        "Lactose-free",
        "No restrictions",
    ),
    "cuisinePreferences": (
        "North Indian",
        "South Indian",
        "Punjabi",
        "Bengali",
        "Gujarati",
        "Rajasthani",
        "Maharashtrian",
        "Goan",
        "Mughlai",
        "Indo-Chinese",
    ),
    "mealHabits": (
        "Breakfast: Daily",
        "Lunch: Daily",
        "Dinner: Daily",
        "Breakfast: Weekends only",
        "Lunch: Weekends only",
        "Dinner: Weekends only",
    ),
}

# Names the onboarding form has used for the same fields.
FIELD_ALIASES = {
    "dietaryRestrictions": "dietaryPreferences",
    "mealFrequencies": "mealHabits",
}


class UserStore(Protocol):
    async def get(self, uid: str) -> dict[str, Any] | None:
        ...

    async def replace(self, uid: str, doc: dict[str, Any]) -> None:
        ...


def needs_migration(doc: dict[str, Any]) -> bool:
    return doc.get("schemaVersion") != SCHEMA_VERSION or any(
        f in doc for f in LEGACY_FIELDS
    )


def migrate_user_document(doc: dict[str, Any]) -> dict[str, Any]:
    doc = dict(doc)
    name = doc.pop("name", None)
    if name and not doc.get("displayName"):
        doc["displayName"] = name
    doc["schemaVersion"] = SCHEMA_VERSION
    return {k: v for k, v in doc.items() if v is not None}


def normalize_preferences(raw_form: dict[str, Any] | None) -> dict[str, list[str]]:
    raw_form = {} if raw_form is None else raw_form
    form = dict(raw_form)
    for alias, field in FIELD_ALIASES.items():
        if field not in form and alias in form:
            form[field] = form[alias]

    prefs: dict[str, list[str]] = {}
    for field in PREFERENCE_FIELDS:
        value = form.get(field)
        prefs[field] = (
            [str(v) for v in value] if isinstance(value, (list, tuple)) else []
        )
    return prefs


def new_user_document(identity: Identity, when: dt.datetime | None = None) -> dict[str, Any]:
    now = timestamp(when)
    return {
        **identity.to_dict(),
        "onboardingCompleted": False,
        "createdAt": now,
        "lastLogin": now,
        "schemaVersion": SCHEMA_VERSION,
    }


class PreferencesWriter:
    def __init__(self, store: UserStore, *, single_goal: bool = True) -> None:
        self.store = store
        self.single_goal = single_goal

    async def save(
        self,
        user_id: str | None,
        raw_form: dict[str, Any] | None,
        *,
        identity: Identity | None = None,
        when: dt.datetime | None = None,
    ) -> dict[str, Any]:
        if not user_id:
            raise MissingIdentity("User not authenticated")

        prefs = normalize_preferences(raw_form)
        if self.single_goal and len(prefs["goals"]) > 1:
            raise InvalidArgument("Only one goal may be selected")

        try:
            existing = await self.store.get(user_id)
            if existing is not None and needs_migration(existing):
                existing = migrate_user_document(existing)
                await self.store.replace(user_id, existing)

            doc = self._document(user_id, existing, identity, when)
            doc.update(prefs)
            await self.store.replace(user_id, doc)
        except Exception as e:
            logger.exception("Saving preferences for %s failed.", user_id)
            raise InternalError("Error saving preferences") from e

        logger.info("Saved preferences for %s", user_id)
        return doc

    def _document(
        self,
        user_id: str,
        existing: dict[str, Any] | None,
        identity: Identity | None,
        when: dt.datetime | None,
    ) -> dict[str, Any]:
        base = {} if existing is None else existing
        profile = {} if identity is None else identity.to_dict()
        now = timestamp(when)
        doc = {
            "uid": user_id,
            "displayName": profile.get("displayName") or base.get("displayName") or "",
            "email": profile.get("email") or base.get("email") or "",
            "photoURL": profile.get("photoURL") or base.get("photoURL") or "",
            "onboardingCompleted": True,
            "createdAt": base.get("createdAt") or now,
            "updatedAt": now,
            "schemaVersion": SCHEMA_VERSION,
        }
        if base.get("lastLogin"):
            doc["lastLogin"] = base["lastLogin"]
        return doc
