"""Recipe definitions, loading and results."""

from .models import RecipeDefinition, VariableDefinition
from .results import GroupEntry, GroupResult, RecipeResult, StepResult, StepStatus
from .store import find_recipe_file, load_recipe, load_recipe_async, parse_recipe

__all__ = [
    "RecipeDefinition",
    "VariableDefinition",
    "RecipeResult",
    "StepResult",
    "StepStatus",
    "GroupEntry",
    "GroupResult",
    "find_recipe_file",
    "load_recipe",
    "load_recipe_async",
    "parse_recipe",
]
