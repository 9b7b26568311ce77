"""Recipe-driven code generator with a two-pass AI protocol."""

from .config import settings
from .exceptions import KitgenError, RecipeLoadError, RecipeValidationError, ResolutionError, TransportConfigError
from .providers import get_llm
from .resolver import PathResolver
from .runner import RecipeRunner, RunOutcome, RunRequest

__all__ = [
    "settings",
    "get_llm",
    "PathResolver",
    "RecipeRunner",
    "RunOutcome",
    "RunRequest",
    "KitgenError",
    "RecipeLoadError",
    "RecipeValidationError",
    "ResolutionError",
    "TransportConfigError",
]
