"""Tool contract shared by every step kind.

Each tool validates a step before anything runs and then executes it,
returning a StepResult. Validation errors are hard and block the recipe;
warnings are informational (something can still be resolved at run time).
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, Iterable, TextIO

from ..ai.collector import AiCollector
from ..recipes.models import RecipeDefinition
from ..recipes.results import StepResult, StepStatus
from ..recipes.variables import Prompter
from ..utils import render_template

if TYPE_CHECKING:
    from ..ai.service import AiService

DRY_RUN_PREFIX = "[DRY RUN]"


@dataclass
class ExecutionOptions:
    dry_run: bool = False
    force: bool = False
    yes: bool = False
    interactive: bool = False


@dataclass
class ToolValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class StepContext:
    """Everything one step may see, built fresh per step and pass."""

    step: Any
    recipe: RecipeDefinition
    variables: dict[str, Any]
    project_root: Path
    collector: AiCollector
    options: ExecutionOptions = field(default_factory=ExecutionOptions)
    step_results: dict[str, StepResult] = field(default_factory=dict)
    shared: dict[str, Any] = field(default_factory=dict)
    answers: dict[str, str] = field(default_factory=dict)
    ai_service: AiService | None = None
    prompter: Prompter | None = None
    output: TextIO | None = None
    simulate: bool = False
    produced: dict[str, Any] = field(default_factory=dict)

    @property
    def dry_run(self) -> bool:
        """True when nothing may be written: --dry, or a collect pass already waiting on answers."""
        return self.options.dry_run or self.simulate

    @property
    def recipe_dir(self) -> Path:
        return self.recipe.directory or self.project_root

    def render(self, text: str) -> str:
        return render_template(text, self.variables)

    def resolve_path(self, raw: str) -> Path:
        return self.project_root / self.render(raw)

    def display_path(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.project_root))
        except ValueError:
            return str(path)

    def set_variable(self, name: str, value: Any) -> None:
        """Set a variable for this step and every later step of the run."""
        self.variables[name] = value
        self.produced[name] = value

    def emit(self, message: str) -> None:
        stream = self.output or sys.stdout
        stream.write(message + "\n")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Tool(ABC):
    """Executor for one step kind."""

    tool_type: ClassVar[str] = ""

    def validate(self, step: Any, context: StepContext) -> ToolValidationResult:
        result = ToolValidationResult()
        step_tool = getattr(step, "tool", None)
        if step_tool != self.tool_type:
            result.errors.append(f"Step '{getattr(step, 'name', '?')}' has tool '{step_tool}', expected '{self.tool_type}'")
            return result
        self.check(step, context, result)
        return result

    def check(self, step: Any, context: StepContext, result: ToolValidationResult) -> None:
        """Add tool-specific errors, warnings and suggestions."""

    @abstractmethod
    async def execute(self, step: Any, context: StepContext) -> StepResult: ...

    # --- result helpers ---

    def completed(self, step: Any, message: str = "", **kwargs: Any) -> StepResult:
        return StepResult(step_name=step.name, tool=self.tool_type, status=StepStatus.COMPLETED, message=message, finished_at=_now(), **kwargs)

    def skipped(self, step: Any, reason: str, **kwargs: Any) -> StepResult:
        return StepResult(step_name=step.name, tool=self.tool_type, status=StepStatus.SKIPPED, message=reason, finished_at=_now(), **kwargs)

    def failed(self, step: Any, error: str, **kwargs: Any) -> StepResult:
        return StepResult(step_name=step.name, tool=self.tool_type, status=StepStatus.FAILED, error=error, finished_at=_now(), **kwargs)


class ToolRegistry:
    """Maps step tags to tool instances."""

    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        self._tools[tool.tool_type] = tool

    def get(self, tool_type: str) -> Tool | None:
        return self._tools.get(tool_type)

    def __contains__(self, tool_type: str) -> bool:
        return tool_type in self._tools

    @property
    def tool_types(self) -> list[str]:
        return sorted(self._tools)
