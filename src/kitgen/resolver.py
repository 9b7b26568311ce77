"""Map CLI tokens to a recipe or group plus leftover positional arguments.

Strategies, first success wins:
1. Direct path: the first token is an existing path (./x, ../x, /x, *.yml).
2. Kit: kit -> cookbook -> recipe, falling back to declared defaults, and to
   the cookbook (or kit) as a group when no recipe is named.
3. Search directories: greedy walk of nested directories, longest first.
4. A single token containing "/" is split and resolved once more.

Within a strategy the longest run of consumed tokens that names a recipe
wins; a group is accepted only when no recipe matches.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from .kits import Cookbook, Kit
from .recipes.models import RecipeDefinition
from .recipes.store import RECIPE_FILENAMES, contains_nested_recipes, find_recipe_file

logger = logging.getLogger(__name__)

ResolvedKind = Literal["recipe", "group"]
PATH_PREFIXES = ("./", "../", "/", ".\\", "..\\")
RECIPE_SUFFIXES = (".yml", ".yaml")


@dataclass(frozen=True)
class ResolvedPath:
    kind: ResolvedKind
    full_path: Path
    consumed: tuple[str, ...]
    remaining: tuple[str, ...]
    kit: str | None = None
    cookbook: str | None = None
    recipe: str | None = None

    @property
    def is_group(self) -> bool:
        return self.kind == "group"


def looks_like_path(token: str) -> bool:
    return token.startswith(PATH_PREFIXES) or token.endswith(RECIPE_SUFFIXES)


def _plain_segment(token: str) -> bool:
    return bool(token) and token not in (".", "..") and "/" not in token and "\\" not in token


@dataclass(frozen=True)
class _Walk:
    kind: ResolvedKind
    path: Path
    depth: int


def greedy_walk(base: Path, tokens: list[str]) -> _Walk | None:
    """Try tokens[:N] .. tokens[:1] as nested directories under `base`.

    The deepest directory holding a recipe wins; failing that, the deepest
    directory holding nested recipes resolves as a group.
    """
    depths = []
    for depth in range(1, len(tokens) + 1):
        if not _plain_segment(tokens[depth - 1]):
            break
        depths.append(depth)

    for depth in reversed(depths):
        recipe_file = find_recipe_file(base.joinpath(*tokens[:depth]))
        if recipe_file is not None:
            return _Walk("recipe", recipe_file, depth)
    for depth in reversed(depths):
        candidate = base.joinpath(*tokens[:depth])
        if contains_nested_recipes(candidate):
            return _Walk("group", candidate, depth)
    return None


def _rank(walk: _Walk) -> tuple[bool, int]:
    return walk.kind == "recipe", walk.depth


class PathResolver:
    """Resolves CLI path segments against kits and search directories."""

    def __init__(self, kits: dict[str, Kit] | None = None, search_dirs: list[Path] | None = None, cwd: Path | None = None):
        self.kits = kits or {}
        self.cwd = Path(cwd or Path.cwd())
        self.search_dirs = [d if d.is_absolute() else self.cwd / d for d in (Path(p) for p in (search_dirs or []))]

    def resolve(self, tokens: list[str], _split: bool = True) -> ResolvedPath | None:
        if not tokens:
            return None

        if looks_like_path(tokens[0]):
            return self._resolve_direct(tokens)

        resolved = self._resolve_kit(tokens)
        if resolved is None:
            resolved = self._resolve_search_dirs(tokens)

        if resolved is None and _split and len(tokens) == 1 and "/" in tokens[0]:
            parts = [part for part in tokens[0].split("/") if part]
            if len(parts) > 1:
                logger.debug(f"Retrying '{tokens[0]}' as segments {parts}")
                return self.resolve(parts, _split=False)
        return resolved

    def attempted_locations(self) -> list[str]:
        return [f"kit:{name}" for name in sorted(self.kits)] + [str(d) for d in self.search_dirs]

    # --- strategy 1 ---

    def _resolve_direct(self, tokens: list[str]) -> ResolvedPath | None:
        path = Path(tokens[0])
        path = path if path.is_absolute() else self.cwd / path
        rest = tuple(tokens[1:])
        if path.is_file():
            return ResolvedPath("recipe", path, (tokens[0],), rest, recipe=path.parent.name if path.name in RECIPE_FILENAMES else path.stem)
        if path.is_dir():
            recipe_file = find_recipe_file(path)
            if recipe_file is not None:
                return ResolvedPath("recipe", recipe_file, (tokens[0],), rest, recipe=path.name)
            if contains_nested_recipes(path):
                return ResolvedPath("group", path, (tokens[0],), rest)
        return None

    # --- strategy 2 ---

    def _resolve_kit(self, tokens: list[str]) -> ResolvedPath | None:
        kit = self.kits.get(tokens[0])
        if kit is None:
            return None
        rest = tokens[1:]

        if rest:
            cookbook = kit.find_cookbook(rest[0])
            if cookbook is not None:
                return self._resolve_in_cookbook(kit, cookbook, tokens[:2], rest[1:])

            walk = greedy_walk(kit.path, rest)
            if walk is not None:
                consumed = tokens[: 1 + walk.depth]
                return ResolvedPath(walk.kind, walk.path, tuple(consumed), tuple(tokens[len(consumed) :]), kit=kit.name)

        if kit.default_cookbook:
            cookbook = kit.find_cookbook(kit.default_cookbook)
            if cookbook is not None:
                return self._resolve_in_cookbook(kit, cookbook, tokens[:1], rest)
            logger.warning(f"Kit '{kit.name}' declares missing default cookbook '{kit.default_cookbook}'")

        if not rest and contains_nested_recipes(kit.path):
            return ResolvedPath("group", kit.path, (tokens[0],), (), kit=kit.name)
        return None

    def _resolve_in_cookbook(self, kit: Kit, cookbook: Cookbook, consumed: list[str], rest: list[str]) -> ResolvedPath | None:
        walk = greedy_walk(cookbook.path, rest) if rest else None
        if walk is not None and walk.kind == "recipe":
            used = consumed + rest[: walk.depth]
            return ResolvedPath(
                "recipe", walk.path, tuple(used), tuple(rest[walk.depth :]), kit=kit.name, cookbook=cookbook.name, recipe=walk.path.parent.name
            )

        if rest:
            recipe_file = cookbook.find_recipe(rest[0])
            if recipe_file is not None:
                return ResolvedPath(
                    "recipe", recipe_file, tuple(consumed + rest[:1]), tuple(rest[1:]), kit=kit.name, cookbook=cookbook.name, recipe=rest[0]
                )

        if cookbook.default_recipe:
            recipe_file = cookbook.find_recipe(cookbook.default_recipe)
            if recipe_file is not None:
                return ResolvedPath(
                    "recipe", recipe_file, tuple(consumed), tuple(rest), kit=kit.name, cookbook=cookbook.name, recipe=cookbook.default_recipe
                )

        if walk is not None:
            used = consumed + rest[: walk.depth]
            return ResolvedPath("group", walk.path, tuple(used), tuple(rest[walk.depth :]), kit=kit.name, cookbook=cookbook.name)
        if cookbook.recipes() or contains_nested_recipes(cookbook.path):
            return ResolvedPath("group", cookbook.path, tuple(consumed), tuple(rest), kit=kit.name, cookbook=cookbook.name)
        return None

    # --- strategy 3 ---

    def _resolve_search_dirs(self, tokens: list[str]) -> ResolvedPath | None:
        best: _Walk | None = None
        for directory in self.search_dirs:
            if not directory.is_dir():
                continue
            walk = greedy_walk(directory, tokens)
            if walk is None:
                continue
            if best is None or _rank(walk) > _rank(best):
                best = walk
        if best is None:
            return None
        return ResolvedPath(
            best.kind,
            best.path,
            tuple(tokens[: best.depth]),
            tuple(tokens[best.depth :]),
            recipe=best.path.parent.name if best.kind == "recipe" else None,
        )


def parse_parameters(args: list[str]) -> tuple[list[str], dict[str, Any]]:
    """Split raw arguments into path segments and `--key=value` parameters.

    `--key value` takes the next token as the value unless it is another
    flag; a bare `--flag` is True. Tokens before the first flag, and tokens
    not consumed as a value, are positional.
    """
    positional: list[str] = []
    params: dict[str, Any] = {}
    index = 0
    while index < len(args):
        arg = args[index]
        if arg.startswith("--") and len(arg) > 2:
            body = arg[2:]
            if "=" in body:
                key, value = body.split("=", 1)
                params[key] = value
            elif index + 1 < len(args) and not args[index + 1].startswith("--"):
                params[body] = args[index + 1]
                index += 1
            else:
                params[body] = True
        else:
            positional.append(arg)
        index += 1
    return positional, params


def map_positional_args(recipe: RecipeDefinition, remaining: list[str], params: dict[str, Any]) -> dict[str, Any]:
    """Bind leftover tokens to positional variables; named parameters win."""
    provided = dict(params)
    tokens = list(remaining)
    for name, _definition in recipe.positional_variables():
        if not tokens:
            break
        token = tokens.pop(0)
        if name in provided:
            logger.debug(f"Positional '{token}' ignored: --{name} given explicitly")
            continue
        provided[name] = token
    if tokens:
        logger.debug(f"Unused positional arguments for {recipe.name}: {tokens}")
    return provided
