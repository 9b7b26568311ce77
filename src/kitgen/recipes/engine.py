"""Recipe execution: validate every step, then run them in order.

Variable scopes are layered per step, lowest to highest precedence:
recipe defaults, step-local overrides, caller values (CLI parameters and
positional arguments, plus variables set by earlier steps), model answers.

A failed step ends the recipe. Exceptions raised by tools become failed
step results rather than escaping.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, TextIO

from ..ai.collector import AiCollector
from ..exceptions import RecipeValidationError, StepExecutionError
from ..tools import ActionRegistry, ExecutionOptions, StepContext, ToolRegistry, default_tools
from ..utils import render_template
from .models import DEFERRED_IN_COLLECT_PASS, FILE_MUTATION_TOOLS, RecipeDefinition
from .results import RecipeResult, StepResult, StepStatus
from .variables import Prompter, ResolvedVariables

if TYPE_CHECKING:
    from ..ai.service import AiService

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "no", "0", "off", "none", "null")
    return bool(value)


class RecipeEngine:
    """Runs one recipe through the registered tools."""

    def __init__(
        self,
        project_root: Path,
        tools: ToolRegistry | None = None,
        actions: ActionRegistry | None = None,
        ai_service: AiService | None = None,
        prompter: Prompter | None = None,
        output: TextIO | None = None,
    ):
        self.project_root = Path(project_root)
        self.tools = tools or default_tools(actions)
        self.ai_service = ai_service
        self.prompter = prompter
        self.output = output

    def _context(
        self,
        recipe: RecipeDefinition,
        step: Any,
        variables: dict[str, Any],
        collector: AiCollector,
        options: ExecutionOptions,
        answers: dict[str, str],
        step_results: dict[str, StepResult] | None = None,
        shared: dict[str, Any] | None = None,
    ) -> StepContext:
        return StepContext(
            step=step,
            recipe=recipe,
            variables=variables,
            project_root=self.project_root,
            collector=collector,
            options=options,
            step_results=step_results if step_results is not None else {},
            shared=shared if shared is not None else {},
            answers=answers,
            ai_service=self.ai_service,
            prompter=self.prompter,
            output=self.output or sys.stdout,
        )

    def step_variables(
        self,
        step: Any,
        scope: ResolvedVariables,
        runtime: dict[str, Any],
        answers: dict[str, str],
    ) -> dict[str, Any]:
        """Merge the variable scopes for one step (shallow key override)."""
        base = dict(scope.defaults)
        local = {key: render_template(value, {**base, **scope.values}) if isinstance(value, str) else value for key, value in step.variables.items()}
        return {**base, **local, **scope.values, **runtime, **answers}

    def validate(
        self,
        recipe: RecipeDefinition,
        variables: dict[str, Any] | None = None,
        collector: AiCollector | None = None,
        answers: dict[str, str] | None = None,
    ) -> ValidationReport:
        """Validate every step against its tool without executing anything."""
        report = ValidationReport()
        collector = collector or AiCollector()
        for step in recipe.steps:
            tool = self.tools.get(step.tool)
            if tool is None:
                report.errors.append(f"Step '{step.name}': no tool registered for '{step.tool}'")
                continue
            context = self._context(recipe, step, dict(variables or {}), collector, ExecutionOptions(), answers or {})
            result = tool.validate(step, context)
            report.errors.extend(result.errors)
            report.warnings.extend(result.warnings)
            report.suggestions.extend(result.suggestions)
        return report

    async def execute(
        self,
        recipe: RecipeDefinition,
        scope: ResolvedVariables,
        collector: AiCollector,
        options: ExecutionOptions | None = None,
        answers: dict[str, str] | None = None,
    ) -> RecipeResult:
        """Run every step of `recipe` once.

        While `collector` is in collect mode, steps whose side effects cannot be
        repeated are deferred and file mutations are only simulated, so nothing
        is written until the answers are known.

        Raises:
            RecipeValidationError: If any step has hard validation errors.
        """
        options = options or ExecutionOptions()
        answers = dict(answers or {})
        report = self.validate(recipe, scope.merged(), collector, answers)
        for warning in report.warnings:
            logger.info(f"{recipe.name}: {warning}")
        if not report.is_valid:
            raise RecipeValidationError(report.errors + report.suggestions, recipe=recipe.name)

        result = RecipeResult(recipe=recipe.name, path=recipe.source_path)
        step_results: dict[str, StepResult] = {}
        shared: dict[str, Any] = {}
        runtime: dict[str, Any] = {}

        for step in recipe.steps:
            variables = self.step_variables(step, scope, runtime, answers)
            step_result = await self._run_step(recipe, step, variables, collector, options, answers, step_results, shared, runtime)
            result.steps.append(step_result)
            step_results[step.name] = step_result
            if not step_result.success:
                result.error = str(StepExecutionError(step.name, step_result.error or step_result.message or "failed"))
                logger.warning(f"{recipe.name}: {result.error}")
                break

        result.variables = {**scope.merged(), **runtime, **answers}
        result.finished_at = datetime.now(timezone.utc)
        return result

    async def _run_step(
        self,
        recipe: RecipeDefinition,
        step: Any,
        variables: dict[str, Any],
        collector: AiCollector,
        options: ExecutionOptions,
        answers: dict[str, str],
        step_results: dict[str, StepResult],
        shared: dict[str, Any],
        runtime: dict[str, Any],
    ) -> StepResult:
        tool = self.tools.get(step.tool)
        if step.when:
            negate = step.when.startswith("!")
            name = step.when.lstrip("!").strip()
            if is_truthy(variables.get(name)) == negate:
                return StepResult(step.name, step.tool, StepStatus.SKIPPED, message=f"when: {step.when}", finished_at=datetime.now(timezone.utc))

        if collector.collect_mode and step.tool in DEFERRED_IN_COLLECT_PASS:
            return StepResult(
                step.name,
                step.tool,
                StepStatus.SKIPPED,
                message="deferred until answers are available",
                metadata={"collect_pass": True},
                finished_at=datetime.now(timezone.utc),
            )

        context = self._context(recipe, step, variables, collector, options, answers, step_results, shared)
        context.produced = runtime
        if collector.collect_mode and step.tool in FILE_MUTATION_TOOLS:
            context.simulate = True

        logger.debug(f"{recipe.name}: running step '{step.name}' ({step.tool})")
        try:
            return await tool.execute(step, context)
        except Exception as e:
            logger.warning(f"{recipe.name}: step '{step.name}' raised {type(e).__name__}: {e}")
            return StepResult(step.name, step.tool, StepStatus.FAILED, error=f"{type(e).__name__}: {e}", finished_at=datetime.now(timezone.utc))
