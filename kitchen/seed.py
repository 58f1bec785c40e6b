"""Load recipes from a JSON file into the recipe store.

    python -m kitchen.seed recipes.json [--update] [--db-url URL]

Recipes already present (same day, meal time and title) are skipped unless
`--update` is given, in which case they are replaced.
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from databases import Database
from rich import print

from kitchen.models import Recipe
from kitchen.repository import RecipeRepository


logger = logging.getLogger(__name__)


REQUIRED_FIELDS = ("title", "ingredients", "steps", "day", "mealTime")

DEFAULT_DB_URL = "sqlite+aiosqlite:///kyabanana.db"


class InvalidRecipe(ValueError):
    pass


class UploadStats:
    def __init__(self) -> None:
        self.success = 0
        self.updated = 0
        self.skipped = 0
        self.failed = 0
        self.errors: list[str] = []

    def __repr__(self) -> str:
        return (
            f"<UploadStats(success={self.success}, updated={self.updated}, "
            f"skipped={self.skipped}, failed={self.failed})>"
        )


def _flatten(text: str) -> str:
    return text.replace("\n", " ").strip()


def clean_recipe(raw: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise InvalidRecipe("Recipe must be an object")
    recipe = dict(raw)
    if isinstance(recipe.get("title"), str):
        recipe["title"] = _flatten(recipe["title"])
    if isinstance(recipe.get("nutritionalBenefits"), str):
        recipe["nutritionalBenefits"] = _flatten(recipe["nutritionalBenefits"])
    if isinstance(recipe.get("steps"), list):
        recipe["steps"] = [_flatten(str(s)) for s in recipe["steps"]]
    return recipe


def validate_recipe(raw: dict[str, Any]) -> None:
    missing = [f for f in REQUIRED_FIELDS if not raw.get(f)]
    if missing:
        raise InvalidRecipe(f"Missing required fields: {', '.join(missing)}")
    if not isinstance(raw["ingredients"], list):
        raise InvalidRecipe("Ingredients must be a non-empty array")
    if not isinstance(raw["steps"], list):
        raise InvalidRecipe("Steps must be a non-empty array")


async def upload_recipes(
    repo: RecipeRepository,
    raws: list[dict[str, Any]],
    *,
    update: bool = False,
) -> UploadStats:
    stats = UploadStats()
    logger.info("Starting upload of %s recipes", len(raws))

    for i, raw in enumerate(raws, start=1):
        title = raw.get("title") if isinstance(raw, dict) else f"#{i}"
        logger.info("Processing recipe %s/%s: %s", i, len(raws), title)

        try:
            raw = clean_recipe(raw)
            title = raw.get("title")
            validate_recipe(raw)
        except (ValueError, TypeError) as e:
            logger.error('Validation failed for recipe "%s": %s', title, e)
            stats.failed += 1
            stats.errors.append(f'Recipe "{title}": {e}')
            continue

        recipe = Recipe.from_dict(raw)
        try:
            existing = await repo.find(recipe.day, recipe.meal_time, recipe.title)
            if existing is None:
                await repo.add(recipe)
                stats.success += 1
            elif update:
                recipe.id = existing.id
                await repo.replace(recipe)
                stats.updated += 1
            else:
                logger.info(
                    'Recipe "%s" for %s %s already exists. Skipping.',
                    title,
                    recipe.day,
                    recipe.meal_time,
                )
                stats.skipped += 1
        except Exception as e:
            logger.exception("Failed to process recipe: %s", title)
            stats.failed += 1
            stats.errors.append(f'Recipe "{title}": {e}')

    return stats


def read_recipes(path: Path) -> list[dict[str, Any]]:
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} should hold a list of recipes.")
    return data


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upload recipes to the recipe store.")
    parser.add_argument("path", type=Path, nargs="?", default=Path("recipes.json"))
    parser.add_argument(
        "--update",
        "--force",
        action="store_true",
        help="Replace recipes that already exist.",
    )
    parser.add_argument("--db-url", default=DEFAULT_DB_URL)
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> UploadStats:
    args = parse_args(argv)
    raws = read_recipes(args.path)
    print(f"Found {len(raws)} recipes in {args.path}")

    db = Database(args.db_url)
    await db.connect()
    try:
        repo = RecipeRepository(db)
        await repo.create_table()
        stats = await upload_recipes(repo, raws, update=args.update)
    finally:
        await db.disconnect()

    print("\n--- Upload Summary ---")
    print(f"Total recipes processed: {len(raws)}")
    print(f"Successfully uploaded: {stats.success}")
    print(f"Updated: {stats.updated}")
    print(f"Skipped (already exist): {stats.skipped}")
    print(f"Failed: {stats.failed}")
    for error in stats.errors:
        print(f"- {error}")
    return stats


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
