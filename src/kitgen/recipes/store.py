"""Recipe loading from YAML files."""

import logging
from pathlib import Path

import yaml
from anyio import to_thread
from pydantic import ValidationError

from ..exceptions import RecipeLoadError, RecipeValidationError
from .models import RecipeDefinition

logger = logging.getLogger(__name__)

RECIPE_FILENAMES = ("recipe.yml", "recipe.yaml")


def find_recipe_file(directory: Path) -> Path | None:
    """Return the recipe definition inside `directory`, if any."""
    for filename in RECIPE_FILENAMES:
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None


def contains_nested_recipes(directory: Path) -> bool:
    """True when any descendant directory holds a recipe definition."""
    if not directory.is_dir():
        return False
    return any(path.is_file() for filename in RECIPE_FILENAMES for path in directory.glob(f"*/**/{filename}"))


def _format_validation_error(exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return messages


def parse_recipe(text: str, source_path: Path | None = None) -> RecipeDefinition:
    """Parse recipe YAML text into a definition.

    Raises:
        RecipeLoadError: If the text is not a YAML mapping.
        RecipeValidationError: If the mapping does not describe a valid recipe.
    """
    label = source_path or "<string>"
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise RecipeLoadError(label, f"invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise RecipeLoadError(label, "expected a mapping at the top level")

    if not data.get("name") and source_path is not None:
        data["name"] = source_path.parent.name if source_path.name in RECIPE_FILENAMES else source_path.stem

    try:
        return RecipeDefinition.model_validate({**data, "source_path": source_path})
    except ValidationError as e:
        raise RecipeValidationError(_format_validation_error(e), recipe=data.get("name")) from e


def load_recipe(path: Path) -> RecipeDefinition:
    """Load a recipe from a recipe file or a directory containing one."""
    path = Path(path)
    if path.is_dir():
        found = find_recipe_file(path)
        if found is None:
            raise RecipeLoadError(path, "directory has no recipe.yml")
        path = found

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise RecipeLoadError(path, str(e)) from e

    recipe = parse_recipe(text, source_path=path.resolve())
    logger.debug(f"Loaded recipe '{recipe.name}' with {len(recipe.steps)} steps from {path}")
    return recipe


async def load_recipe_async(path: Path) -> RecipeDefinition:
    """Async wrapper around load_recipe for use inside the engine."""
    return await to_thread.run_sync(load_recipe, path)
