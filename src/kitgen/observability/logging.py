"""Structured logging with per-run context using structlog and contextvars."""

import logging
import sys
from contextvars import ContextVar

import structlog

# Context variables for the current run
current_run_id: ContextVar[str | None] = ContextVar("current_run_id", default=None)
current_recipe: ContextVar[str | None] = ContextVar("current_recipe", default=None)

_configured = False


def setup_structured_logging(level: str = "WARNING", json_output: bool = False) -> None:
    """Configure structlog over stdlib logging with per-run context.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Render JSON lines instead of the console format
    """
    global _configured
    if _configured:
        return

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Plain logging.getLogger(__name__) records go through the same renderer
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=pre_chain,
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))

    _configured = True


def bind_run_context(run_id: str, recipe: str) -> None:
    """Bind run context for all subsequent logs.

    Args:
        run_id: Unique identifier of this invocation
        recipe: Name or path of the recipe being executed
    """
    current_run_id.set(run_id)
    current_recipe.set(recipe)
    structlog.contextvars.bind_contextvars(run_id=run_id, recipe=recipe)


def bind_pass(pass_number: int) -> None:
    """Tag subsequent logs with the protocol pass (1 collects, 2 resolves)."""
    structlog.contextvars.bind_contextvars(pass_number=pass_number)


def clear_run_context() -> None:
    """Clear run context after the run completes."""
    current_run_id.set(None)
    current_recipe.set(None)
    structlog.contextvars.clear_contextvars()


def get_run_logger(name: str = "kitgen") -> structlog.stdlib.BoundLogger:
    """Get a structlog logger carrying the run context."""
    return structlog.get_logger(name)


def get_current_run_id() -> str | None:
    """Get the current run ID from context."""
    return current_run_id.get()
