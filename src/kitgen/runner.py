"""Two-pass execution of a resolved recipe or group.

A recipe with no AI steps and no variables left for the model runs once.
Otherwise Pass 1 runs with the collector in collect mode: AI steps record
prompts instead of calling out, and file mutations are simulated. With nothing
recorded, the recipe then runs once normally. Otherwise a transport is
chosen; it either answers now (Pass 2 runs with the answers as the
highest-priority scope) or defers, printing the prompt document for a later
`--answers` run.

Resuming from an answers file skips Pass 1 entirely.
"""

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, TextIO

from .ai.collector import AiCollector, CollectorEntry
from .ai.prompts import DEFAULT_ANSWERS_PATH
from .ai.transports import Deferred, Failed, Resolved, Transport, TransportRequest, TransportResult, resolve_transport
from .config import AISettings
from .exceptions import KitgenError
from .observability.logging import bind_pass, bind_run_context, clear_run_context, get_run_logger
from .recipes.engine import RecipeEngine
from .recipes.group import GroupExecutor
from .recipes.models import RecipeDefinition
from .recipes.results import GroupResult, RecipeResult
from .recipes.store import load_recipe_async
from .recipes.variables import AskMode, ResolvedVariables, resolve_variables
from .resolver import ResolvedPath, map_positional_args
from .tools.base import ExecutionOptions

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["completed", "deferred", "failed"]


@dataclass
class RunOutcome:
    """What a run produced; the CLI turns it into an exit code."""

    status: OutcomeStatus
    result: RecipeResult | GroupResult | None = None
    transport_result: TransportResult | None = None
    error: Exception | None = None
    passes: int = 0

    @property
    def exit_code(self) -> int:
        if self.status == "deferred":
            return self.transport_result.exit_code if isinstance(self.transport_result, Deferred) else 2
        if self.status == "completed" and self.result is not None and self.result.success:
            return 0
        return 1

    @property
    def error_message(self) -> str | None:
        if self.error is not None:
            return str(self.error)
        if isinstance(self.result, RecipeResult) and self.result.error:
            return self.result.error
        return None


@dataclass
class RunRequest:
    params: dict[str, Any] = field(default_factory=dict)
    positional: list[str] = field(default_factory=list)
    options: ExecutionOptions = field(default_factory=ExecutionOptions)
    ask: AskMode | None = None
    use_defaults: bool = True
    answers: dict[str, str] | None = None
    original_command: str = "kitgen run"
    answers_path: str = DEFAULT_ANSWERS_PATH
    continue_on_error: bool = False


def variable_entry(recipe: RecipeDefinition, name: str) -> CollectorEntry:
    """Collector entry asking the model for a missing required variable."""
    definition = recipe.variables[name]
    prompt = f"Provide a value for the `{name}` variable of recipe `{recipe.name}`."
    if definition.description:
        prompt += f" {definition.description}"
    if definition.suggestion is not None:
        prompt += f" Suggested value: {definition.suggestion}."
    described = f"A {definition.type} value"
    if definition.values:
        described += f", one of: {', '.join(str(v) for v in definition.values)}"
    return CollectorEntry(key=name, prompt=prompt, output_description=described, type_hint=definition.type, source=recipe.name)


class RecipeRunner:
    """Drives the collect/resolve protocol around a RecipeEngine."""

    def __init__(
        self,
        engine: RecipeEngine,
        ai_settings: AISettings | None = None,
        transport: Transport | None = None,
        collector: AiCollector | None = None,
        stream: TextIO | None = None,
    ):
        self.engine = engine
        self.ai_settings = ai_settings or AISettings()
        self.transport = transport
        self.collector = collector or AiCollector()
        self.stream = stream

    def _transport(self) -> Transport:
        if self.transport is not None:
            return self.transport
        return resolve_transport(self.ai_settings, service=self.engine.ai_service, stream=self.stream)

    def _scope(self, recipe: RecipeDefinition, request: RunRequest, positional: list[str], answers: dict[str, str] | None) -> ResolvedVariables:
        provided = map_positional_args(recipe, positional, request.params)
        return resolve_variables(
            recipe,
            provided,
            ask=request.ask,
            use_defaults=request.use_defaults,
            prompter=self.engine.prompter,
            answers=answers,
        )

    async def run(self, resolved: ResolvedPath, request: RunRequest) -> RunOutcome:
        """Run whatever the resolver produced."""
        positional = list(resolved.remaining) + list(request.positional)
        bind_run_context(uuid.uuid4().hex[:12], resolved.recipe or resolved.full_path.name)
        run_log = get_run_logger()
        run_log.info("run_started", kind=resolved.kind, path=str(resolved.full_path), resumed=request.answers is not None)
        try:
            if resolved.is_group:
                outcome = await self.run_group(resolved.full_path, request)
            else:
                outcome = await self.run_recipe(resolved.full_path, request, positional)
            run_log.info("run_finished", status=outcome.status, passes=outcome.passes, exit_code=outcome.exit_code)
            return outcome
        finally:
            clear_run_context()

    async def run_group(self, directory: Path, request: RunRequest) -> RunOutcome:
        async def _run(recipe_file: Path) -> RunOutcome:
            return await self.run_recipe(recipe_file, request, [])

        group = await GroupExecutor(_run, continue_on_error=request.continue_on_error).execute(directory)
        if group.pending is not None:
            return RunOutcome("deferred", result=group, transport_result=Deferred(answers_path=request.answers_path))
        return RunOutcome("completed" if group.success else "failed", result=group)

    async def run_recipe(self, path: Path, request: RunRequest, positional: list[str]) -> RunOutcome:
        """Run one recipe through the two-pass protocol.

        Raises:
            RecipeLoadError, RecipeValidationError: If the recipe cannot run at all.
            TransportConfigError: If the selected transport is misconfigured.
        """
        recipe = await load_recipe_async(path)
        collector = self.collector

        if request.answers is not None:
            return await self._resume(recipe, request, positional, request.answers)

        collector.clear()
        bind_pass(1)
        scope = self._scope(recipe, request, positional, None)
        if not scope.missing and not recipe.ai_steps():
            result = await self.engine.execute(recipe, scope, collector, request.options)
            return RunOutcome("completed" if result.success else "failed", result=result, passes=1)

        collector.enter_collect_mode()
        try:
            for name in scope.missing:
                collector.add_entry(variable_entry(recipe, name))
            first = await self.engine.execute(recipe, scope, collector, request.options)

            if not first.success or not collector.has_entries():
                collector.clear()
                if not first.success:
                    return RunOutcome("failed", result=first, passes=1)
                logger.debug(f"{recipe.name}: no prompts collected, running the recipe normally")
                final = await self.engine.execute(recipe, scope, collector, request.options)
                return RunOutcome("completed" if final.success else "failed", result=final, passes=1)

            logger.info(f"{recipe.name}: collected {len(collector.keys())} prompts: {collector.keys()}")
            transport = self._transport()
            outcome = await transport.resolve(TransportRequest(collector, request.original_command, request.answers_path))
        except BaseException:
            collector.clear()
            raise

        collector.clear()
        match outcome:
            case Resolved(answers=answers):
                bind_pass(2)
                logger.info(f"{recipe.name}: {transport.name} transport answered {len(answers)} prompts")
                result = await self._resume(recipe, request, positional, answers)
                result.transport_result = outcome
                result.passes = 2
                return result
            case Deferred():
                return RunOutcome("deferred", result=first, transport_result=outcome, passes=1)
            case Failed(error=error):
                logger.warning(f"{recipe.name}: {transport.name} transport failed: {error}")
                return RunOutcome("failed", result=first, transport_result=outcome, error=error, passes=1)
            case _:
                raise KitgenError(f"Unexpected transport result: {outcome!r}")

    async def _resume(self, recipe: RecipeDefinition, request: RunRequest, positional: list[str], answers: dict[str, str]) -> RunOutcome:
        self.collector.clear()
        scope = self._scope(recipe, request, positional, answers)
        if scope.missing:
            return RunOutcome("failed", error=KitgenError(f"Missing required variables: {', '.join(scope.missing)}"), passes=1)
        result = await self.engine.execute(recipe, scope, self.collector, request.options, answers)
        return RunOutcome("completed" if result.success else "failed", result=result, passes=1)
