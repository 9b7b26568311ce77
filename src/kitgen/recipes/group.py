"""Group execution: every recipe under a directory, one after another."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

from ..exceptions import KitgenError
from .results import GroupEntry, GroupResult, RecipeResult
from .store import find_recipe_file

if TYPE_CHECKING:
    from ..runner import RunOutcome

logger = logging.getLogger(__name__)

RunRecipeFn = Callable[[Path], Awaitable["RunOutcome"]]


def discover_group_recipes(directory: Path) -> list[Path]:
    """Recipe files under `directory` in sorted discovery order.

    A child directory holding a recipe contributes that recipe and is not
    searched further; one without a recipe is searched recursively.
    """
    found: list[Path] = []
    for child in sorted(p for p in directory.iterdir() if p.is_dir() and not p.name.startswith(".")):
        recipe_file = find_recipe_file(child)
        if recipe_file is not None:
            found.append(recipe_file)
        else:
            found.extend(discover_group_recipes(child))
    return found


class GroupExecutor:
    """Runs sibling recipes through the full two-pass protocol.

    Fail-fast by default: the first failing recipe stops the group and later
    recipes get no entry. With `continue_on_error` every recipe runs. A recipe
    waiting on answers always stops the group.
    """

    def __init__(self, run_recipe: RunRecipeFn, continue_on_error: bool = False):
        self.run_recipe = run_recipe
        self.continue_on_error = continue_on_error

    async def execute(self, directory: Path) -> GroupResult:
        group = GroupResult(path=directory, continue_on_error=self.continue_on_error)
        recipes = discover_group_recipes(directory)
        logger.info(f"Group {directory.name}: {len(recipes)} recipes")

        for recipe_file in recipes:
            name = str(recipe_file.parent.relative_to(directory))
            try:
                outcome = await self.run_recipe(recipe_file)
            except KitgenError as e:
                group.entries.append(GroupEntry(name=name, path=recipe_file, success=False, step_count=0, error=str(e)))
                logger.warning(f"Group {directory.name}: recipe '{name}' failed: {e}")
                if not self.continue_on_error:
                    break
                continue

            result = outcome.result if isinstance(outcome.result, RecipeResult) else None
            step_count = len(result.steps) if result else 0
            if outcome.status == "deferred":
                group.entries.append(GroupEntry(name=name, path=recipe_file, success=False, step_count=step_count, error="answers pending", result=result))
                group.pending = name
                break

            success = outcome.status == "completed" and result is not None and result.success
            error = None if success else (outcome.error_message or "failed")
            group.entries.append(GroupEntry(name=name, path=recipe_file, success=success, step_count=step_count, error=error, result=result))
            if not success:
                logger.warning(f"Group {directory.name}: recipe '{name}' failed: {error}")
                if not self.continue_on_error:
                    break
        return group
