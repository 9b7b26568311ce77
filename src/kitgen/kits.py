"""Kit and cookbook discovery.

A kit directory holds `kit.yml`; its cookbooks are found through the kit's
`cookbooks` glob patterns, and each cookbook's recipes through the
cookbook's `recipes` patterns. Names come from the YAML `name` field and
fall back to the directory name.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .recipes.store import find_recipe_file

logger = logging.getLogger(__name__)

KIT_FILE = "kit.yml"
COOKBOOK_FILE = "cookbook.yml"
DEFAULT_COOKBOOK_PATTERNS = ("./cookbooks/*/cookbook.yml",)
DEFAULT_RECIPE_PATTERNS = ("./*/recipe.yml",)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _glob(base: Path, patterns: tuple[str, ...]) -> list[Path]:
    found: list[Path] = []
    for pattern in patterns:
        relative = pattern[2:] if pattern.startswith("./") else pattern
        for path in sorted(base.glob(relative)):
            if path.is_file() and path not in found:
                found.append(path)
    return found


def _patterns(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and value:
        return tuple(str(item) for item in value)
    return default


@dataclass
class Cookbook:
    name: str
    path: Path
    description: str = ""
    recipe_patterns: tuple[str, ...] = DEFAULT_RECIPE_PATTERNS
    default_recipe: str | None = None

    def recipes(self) -> dict[str, Path]:
        """Recipe name to recipe file, following the declared patterns."""
        return {path.parent.name: path for path in _glob(self.path, self.recipe_patterns)}

    def find_recipe(self, name: str) -> Path | None:
        return self.recipes().get(name)


@dataclass
class Kit:
    name: str
    path: Path
    description: str = ""
    cookbook_patterns: tuple[str, ...] = DEFAULT_COOKBOOK_PATTERNS
    default_cookbook: str | None = None
    _cookbooks: dict[str, Cookbook] | None = field(default=None, repr=False)

    def cookbooks(self) -> dict[str, Cookbook]:
        if self._cookbooks is None:
            self._cookbooks = {}
            for config_path in _glob(self.path, self.cookbook_patterns):
                cookbook = load_cookbook(config_path)
                self._cookbooks[cookbook.name] = cookbook
                # Directory name is an alias when the declared name differs
                self._cookbooks.setdefault(config_path.parent.name, cookbook)
        return self._cookbooks

    def find_cookbook(self, name: str) -> Cookbook | None:
        return self.cookbooks().get(name)


def load_cookbook(config_path: Path) -> Cookbook:
    data = _read_yaml(config_path)
    defaults = data.get("defaults") if isinstance(data.get("defaults"), dict) else {}
    return Cookbook(
        name=str(data.get("name") or config_path.parent.name),
        path=config_path.parent,
        description=str(data.get("description") or ""),
        recipe_patterns=_patterns(data.get("recipes"), DEFAULT_RECIPE_PATTERNS),
        default_recipe=defaults.get("recipe"),
    )


def load_kit(kit_dir: Path) -> Kit:
    data = _read_yaml(kit_dir / KIT_FILE)
    defaults = data.get("defaults") if isinstance(data.get("defaults"), dict) else {}
    return Kit(
        name=str(data.get("name") or kit_dir.name),
        path=kit_dir,
        description=str(data.get("description") or ""),
        cookbook_patterns=_patterns(data.get("cookbooks"), DEFAULT_COOKBOOK_PATTERNS),
        default_cookbook=defaults.get("cookbook"),
    )


def discover_kits(directories: list[Path]) -> dict[str, Kit]:
    """Find installed kits (immediate subdirectories holding kit.yml)."""
    kits: dict[str, Kit] = {}
    for directory in directories:
        if not directory.is_dir():
            continue
        for kit_dir in sorted(p for p in directory.iterdir() if p.is_dir()):
            if not (kit_dir / KIT_FILE).is_file():
                continue
            kit = load_kit(kit_dir)
            if kit.name in kits:
                logger.warning(f"Kit '{kit.name}' at {kit_dir} shadowed by {kits[kit.name].path}")
                continue
            kits[kit.name] = kit
    logger.debug(f"Discovered kits: {sorted(kits)}")
    return kits


def list_recipes(kit: Kit) -> dict[str, list[str]]:
    """Cookbook name to recipe names, for listing."""
    listing: dict[str, list[str]] = {}
    seen: set[Path] = set()
    for cookbook in kit.cookbooks().values():
        if cookbook.path in seen:
            continue
        seen.add(cookbook.path)
        listing[cookbook.name] = sorted(name for name, path in cookbook.recipes().items() if find_recipe_file(path.parent))
    return listing
