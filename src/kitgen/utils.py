"""File-system and text helpers shared by the step tools."""

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any

_TEMPLATE_RE = re.compile(r"\{\{\s*([\w.\-]+)\s*((?:\|\s*\w+\s*)*)\}\}")
_WORD_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")


def atomic_write_text(path: Path, content: str) -> None:
    """Atomically write text to `path` using temp + fsync + os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.tmp.", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        # newline="" keeps the caller's line endings byte for byte
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def read_text(path: Path) -> str:
    """Read a file without newline translation."""
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def _words(value: str) -> list[str]:
    return _WORD_RE.findall(value)


def _apply_filter(value: str, name: str) -> str:
    match name:
        case "upper":
            return value.upper()
        case "lower":
            return value.lower()
        case "capitalize":
            return value[:1].upper() + value[1:]
        case "pascal" | "pascalCase":
            return "".join(w.capitalize() for w in _words(value))
        case "camel" | "camelCase":
            pascal = "".join(w.capitalize() for w in _words(value))
            return pascal[:1].lower() + pascal[1:]
        case "snake" | "snakeCase":
            return "_".join(w.lower() for w in _words(value))
        case "kebab" | "kebabCase":
            return "-".join(w.lower() for w in _words(value))
        case "title":
            return " ".join(w.capitalize() for w in _words(value))
        case _:
            raise ValueError(f"Unknown template filter: {name}")


def _lookup(variables: dict[str, Any], dotted: str) -> Any:
    current: Any = variables
    for part in dotted.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return None
    return current


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def render_template(text: str, variables: dict[str, Any]) -> str:
    """Substitute `{{ name }}` and `{{ name | filter }}` placeholders.

    Unknown names render as an empty string. Dotted names walk nested mappings.
    """

    def _replace(match: re.Match) -> str:
        value = _stringify(_lookup(variables, match.group(1)))
        for name in filter(None, (part.strip() for part in match.group(2).split("|"))):
            value = _apply_filter(value, name)
        return value

    return _TEMPLATE_RE.sub(_replace, text)
