"""Action steps: named callables registered by kits or the host project."""

from __future__ import annotations

import difflib
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

from ..recipes.models import ActionStep, VariableDefinition
from ..recipes.results import StepResult
from .base import DRY_RUN_PREFIX, StepContext, Tool, ToolValidationResult

logger = logging.getLogger(__name__)

ActionHandler = Callable[[dict[str, Any], StepContext], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True, slots=True)
class ActionParameter:
    name: str
    required: bool = False
    default: Any = None
    description: str = ""


@dataclass
class ActionOutcome:
    """Optional richer return value for handlers that touch files."""

    output: Any = None
    message: str = ""
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    files_deleted: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ActionDefinition:
    name: str
    handler: ActionHandler
    description: str = ""
    parameters: tuple[ActionParameter, ...] = ()


class ActionRegistry:
    """Resolves action names to handlers."""

    def __init__(self) -> None:
        self._actions: dict[str, ActionDefinition] = {}

    def register(
        self,
        name: str,
        handler: ActionHandler | None = None,
        description: str = "",
        parameters: list[ActionParameter] | None = None,
    ):
        """Register a handler directly, or use as a decorator when `handler` is omitted."""

        def _register(fn: ActionHandler) -> ActionHandler:
            self._actions[name] = ActionDefinition(name, fn, description or (fn.__doc__ or "").strip(), tuple(parameters or ()))
            return fn

        if handler is not None:
            _register(handler)
            return handler
        return _register

    def get(self, name: str) -> ActionDefinition | None:
        return self._actions.get(name)

    def names(self) -> list[str]:
        return sorted(self._actions)

    def similar(self, name: str, limit: int = 3) -> list[str]:
        return difflib.get_close_matches(name, self.names(), n=limit, cutoff=0.5)

    def __contains__(self, name: str) -> bool:
        return name in self._actions


class ActionTool(Tool):
    tool_type = "action"

    def __init__(self, registry: ActionRegistry | None = None):
        self.registry = registry or ActionRegistry()

    def check(self, step: ActionStep, context: StepContext, result: ToolValidationResult) -> None:
        if not step.action:
            result.errors.append(f"Step '{step.name}': action name is required")
            return

        definition = self.registry.get(step.action)
        if definition is None:
            result.errors.append(f"Action '{step.action}' is not registered")
            similar = self.registry.similar(step.action)
            if similar:
                result.suggestions.append(f"Similar actions available: {', '.join(similar)}")
            return

        for param in definition.parameters:
            if param.required and param.name not in step.parameters and param.name not in context.variables and param.default is None:
                result.warnings.append(f"Required parameter '{param.name}' for action '{step.action}' is missing and will be prompted")

    def _parameters(self, step: ActionStep, definition: ActionDefinition, context: StepContext) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for param in definition.parameters:
            if param.name in context.variables:
                params[param.name] = context.variables[param.name]
            elif param.default is not None:
                params[param.name] = param.default
        for key in step.reads:
            if key in context.shared:
                params.setdefault(key, context.shared[key])
        for key, value in step.parameters.items():
            params[key] = context.render(value) if isinstance(value, str) else value

        for param in definition.parameters:
            if param.required and param.name not in params:
                if context.prompter is not None and context.options.interactive:
                    params[param.name] = context.prompter.ask(param.name, VariableDefinition(required=True, description=param.description))
                else:
                    raise ValueError(f"Action '{definition.name}' requires parameter '{param.name}'")
        return params

    async def execute(self, step: ActionStep, context: StepContext) -> StepResult:
        metadata = {
            "action": step.action,
            "action_id": step.action_id or step.name,
            "subscribe_to": list(step.subscribe_to),
            "reads": list(step.reads),
            "writes": list(step.writes),
        }
        definition = self.registry.get(step.action)
        if definition is None:
            return self.failed(step, f"Action '{step.action}' is not registered", metadata=metadata)

        params = self._parameters(step, definition, context)
        if context.dry_run:
            return self.completed(step, f"{DRY_RUN_PREFIX} Would run action '{step.action}'", metadata={**metadata, "parameters": params})

        logger.info(f"Running action '{step.action}'")
        outcome = definition.handler(params, context)
        if inspect.isawaitable(outcome):
            outcome = await outcome

        if not isinstance(outcome, ActionOutcome):
            outcome = ActionOutcome(output=outcome)
        for key in step.writes:
            context.shared[key] = outcome.output

        return self.completed(
            step,
            outcome.message or f"Action '{step.action}' completed",
            output=outcome.output,
            files_created=outcome.files_created,
            files_modified=outcome.files_modified,
            files_deleted=outcome.files_deleted,
            metadata=metadata,
        )


ACTION_ENTRY_POINT_GROUP = "kitgen.actions"


def load_action_plugins(registry: ActionRegistry, group: str = ACTION_ENTRY_POINT_GROUP) -> list[str]:
    """Let installed packages register actions.

    Each entry point in `group` must resolve to a callable taking the registry.
    Returns the names of the plugins that loaded.
    """
    from importlib.metadata import entry_points

    loaded: list[str] = []
    for entry_point in entry_points(group=group):
        try:
            register = entry_point.load()
            register(registry)
        except Exception as e:
            logger.warning(f"Action plugin '{entry_point.name}' failed to load: {e}")
            continue
        loaded.append(entry_point.name)
    return loaded
