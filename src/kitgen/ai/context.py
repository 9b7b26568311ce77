"""Context gathering for AI steps.

Sources are read in a fixed order (project config, earlier step outputs,
listed files, glob matches) and packed into a token budget. What happens on
overflow is the step's choice: truncate the section that does not fit, skip
it and keep going, or fail.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from ..exceptions import BudgetExceededError
from ..recipes.models import AiContextSpec
from ..utils import render_template
from .cost import estimate_tokens

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILES = ("package.json", "pyproject.toml", "tsconfig.json", "kitgen.config.json")
TRUNCATION_MARKER = "\n... (truncated)"


@dataclass
class ContextBundle:
    sections: list[str] = field(default_factory=list)
    tokens: int = 0
    truncated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _fence(label: str, content: str) -> str:
    language = Path(label).suffix.lstrip(".")
    return f"#### {label}\n```{language}\n{content.rstrip()}\n```"


def _step_output_text(output: Any) -> str | None:
    if output is None:
        return None
    if isinstance(output, str):
        return output
    return json.dumps(output, indent=2, default=str)


def _read(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Skipping context file {path}: {e}")
        return None


def _label(path: Path, project_root: Path) -> str:
    root = project_root.resolve()
    return str(path.relative_to(root)) if path.is_relative_to(root) else str(path)


def _candidates(spec: AiContextSpec, project_root: Path, step_outputs: Mapping[str, Any], variables: dict[str, Any]):
    if spec.project_config:
        for name in PROJECT_CONFIG_FILES:
            path = project_root / name
            if path.is_file():
                content = _read(path)
                if content is not None:
                    yield name, content

    for step_name in spec.from_steps:
        text = _step_output_text(step_outputs.get(step_name))
        if text is None:
            logger.debug(f"Context step '{step_name}' produced no output")
            continue
        yield f"output of step {step_name}", text

    seen: set[Path] = set()
    for raw in spec.files:
        path = (project_root / render_template(raw, variables)).resolve()
        if path in seen:
            continue
        seen.add(path)
        if not path.is_file():
            logger.debug(f"Context file not found: {path}")
            continue
        content = _read(path)
        if content is not None:
            yield _label(path, project_root), content

    for pattern in spec.globs:
        for path in sorted(project_root.glob(render_template(pattern, variables))):
            resolved = path.resolve()
            if resolved in seen or not path.is_file():
                continue
            seen.add(resolved)
            content = _read(path)
            if content is not None:
                yield _label(resolved, project_root), content


def gather_context(
    spec: AiContextSpec,
    project_root: Path,
    step_outputs: Mapping[str, Any] | None = None,
    variables: dict[str, Any] | None = None,
) -> ContextBundle:
    """Collect context sections for one AI step within its token budget.

    Raises:
        BudgetExceededError: If a section does not fit and the policy is "error".
    """
    bundle = ContextBundle()
    limit = spec.max_context_tokens

    for label, content in _candidates(spec, project_root, step_outputs or {}, variables or {}):
        section = _fence(label, content)
        cost = estimate_tokens(section)
        if bundle.tokens + cost <= limit:
            bundle.sections.append(section)
            bundle.tokens += cost
            continue

        match spec.overflow:
            case "error":
                raise BudgetExceededError(
                    f"Context '{label}' needs ~{cost} tokens but only {limit - bundle.tokens} of {limit} remain"
                )
            case "skip":
                bundle.skipped.append(label)
                continue
            case _:
                remaining_chars = (limit - bundle.tokens) * 4 - len(TRUNCATION_MARKER) - len(label) - 20
                if remaining_chars > 0:
                    bundle.sections.append(_fence(label, content[:remaining_chars] + TRUNCATION_MARKER))
                    bundle.tokens = limit
                    bundle.truncated.append(label)
                else:
                    bundle.skipped.append(label)
                break

    if bundle.truncated or bundle.skipped:
        logger.info(f"Context trimmed to {limit} tokens (truncated: {bundle.truncated}, skipped: {bundle.skipped})")
    return bundle
