"""Step tools and their registry."""

from .action import ActionDefinition, ActionOutcome, ActionParameter, ActionRegistry, ActionTool, load_action_plugins
from .ai import AiTool
from .base import ExecutionOptions, StepContext, Tool, ToolRegistry, ToolValidationResult
from .files import AddTool, EchoTool, InjectTool, SetupTool, ShellTool


def default_tools(actions: ActionRegistry | None = None) -> ToolRegistry:
    """Registry with one tool per step kind."""
    return ToolRegistry(
        [
            ActionTool(actions),
            AddTool(),
            InjectTool(),
            ShellTool(),
            SetupTool(),
            EchoTool(),
            AiTool(),
        ]
    )


__all__ = [
    "ActionDefinition",
    "ActionOutcome",
    "ActionParameter",
    "ActionRegistry",
    "ActionTool",
    "AddTool",
    "AiTool",
    "EchoTool",
    "ExecutionOptions",
    "InjectTool",
    "SetupTool",
    "ShellTool",
    "StepContext",
    "Tool",
    "ToolRegistry",
    "ToolValidationResult",
    "default_tools",
    "load_action_plugins",
]
