"""Variable resolution for a recipe run.

Each declared variable takes the first value available from: the caller
(CLI parameters and positional arguments), the declared default (unless
defaults are disabled), then the ask mode. Undeclared caller values pass
through untouched.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from ..exceptions import RecipeValidationError
from .models import RecipeDefinition, VariableDefinition

logger = logging.getLogger(__name__)

AskMode = Literal["me", "ai", "nobody"]

_TRUE = frozenset({"true", "yes", "y", "1", "on"})
_FALSE = frozenset({"false", "no", "n", "0", "off"})


class Prompter(Protocol):
    """Interactive input source (a terminal, or a stub in tests)."""

    def ask(self, name: str, definition: VariableDefinition) -> Any: ...

    def confirm(self, message: str, default: bool = False) -> bool: ...


@dataclass
class ResolvedVariables:
    """Variables split by origin so the engine can layer step overrides between them."""

    defaults: dict[str, Any] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)

    def merged(self) -> dict[str, Any]:
        return {**self.defaults, **self.values}


def coerce_value(name: str, value: Any, definition: VariableDefinition) -> Any:
    """Convert a raw (usually string) value to the declared type.

    Raises:
        ValueError: If the value cannot represent the declared type.
    """
    match definition.type:
        case "boolean":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(f"Variable '{name}' expects a boolean, got {value!r}")
        case "number":
            if isinstance(value, bool):
                raise ValueError(f"Variable '{name}' expects a number, got {value!r}")
            if isinstance(value, (int, float)):
                return value
            try:
                number = float(str(value).strip())
            except ValueError as e:
                raise ValueError(f"Variable '{name}' expects a number, got {value!r}") from e
            return int(number) if number.is_integer() and "." not in str(value) else number
        case "array":
            if isinstance(value, list):
                return value
            text = str(value).strip()
            if text.startswith("["):
                try:
                    parsed = json.loads(text)
                except json.JSONDecodeError as e:
                    raise ValueError(f"Variable '{name}' expects an array, got {value!r}") from e
                if isinstance(parsed, list):
                    return parsed
            return [item.strip() for item in text.split(",") if item.strip()]
        case "object":
            if isinstance(value, dict):
                return value
            try:
                parsed = json.loads(str(value))
            except json.JSONDecodeError as e:
                raise ValueError(f"Variable '{name}' expects a JSON object, got {value!r}") from e
            if not isinstance(parsed, dict):
                raise ValueError(f"Variable '{name}' expects a JSON object, got {value!r}")
            return parsed
        case _:
            return value if isinstance(value, str) else str(value)


def check_value(name: str, value: Any, definition: VariableDefinition) -> list[str]:
    """Constraint violations (enum membership, bounds, pattern) for a coerced value."""
    problems: list[str] = []
    if definition.values is not None and value not in definition.values:
        allowed = ", ".join(str(v) for v in definition.values)
        problems.append(f"Variable '{name}' must be one of: {allowed} (got {value!r})")
    measure = len(value) if isinstance(value, (str, list)) else value if isinstance(value, (int, float)) else None
    if measure is not None and not isinstance(value, bool):
        if definition.min is not None and measure < definition.min:
            problems.append(f"Variable '{name}' is below the minimum {definition.min:g}")
        if definition.max is not None and measure > definition.max:
            problems.append(f"Variable '{name}' is above the maximum {definition.max:g}")
    if definition.pattern and isinstance(value, str) and not re.fullmatch(definition.pattern, value):
        problems.append(f"Variable '{name}' does not match pattern {definition.pattern}")
    return problems


def resolve_variables(
    recipe: RecipeDefinition,
    provided: dict[str, Any],
    ask: AskMode | None = None,
    use_defaults: bool = True,
    prompter: Prompter | None = None,
    answers: dict[str, str] | None = None,
) -> ResolvedVariables:
    """Resolve every declared variable of `recipe`.

    With ask mode "ai", missing required variables are returned in `missing`
    unless an answer already supplies them; the caller records them for the
    model. With "me" they are prompted for. With "nobody" (or no prompter)
    they are an error.

    Raises:
        RecipeValidationError: For invalid values or unresolvable required variables.
    """
    answers = answers or {}
    resolved = ResolvedVariables()
    problems: list[str] = []
    unresolved: list[str] = []

    for name, value in provided.items():
        if name not in recipe.variables:
            resolved.values[name] = value

    for name, definition in recipe.variables.items():
        raw: Any = None
        source = ""
        if name in provided and provided[name] is not None:
            raw, source = provided[name], "provided"
        elif name in answers:
            raw, source = answers[name], "answers"
        elif use_defaults and definition.default is not None:
            raw, source = definition.default, "default"
        elif definition.required and ask == "me" and prompter is not None:
            raw, source = prompter.ask(name, definition), "prompt"

        if raw is None:
            if definition.required:
                unresolved.append(name)
            continue

        try:
            value = coerce_value(name, raw, definition)
        except ValueError as e:
            problems.append(str(e))
            continue
        problems.extend(check_value(name, value, definition))

        if source == "default":
            resolved.defaults[name] = value
        else:
            resolved.values[name] = value

    if unresolved:
        if ask == "ai":
            resolved.missing = unresolved
        else:
            problems.append(f"Missing required variables: {', '.join(unresolved)}")

    if problems:
        raise RecipeValidationError(problems, recipe=recipe.name)
    return resolved
