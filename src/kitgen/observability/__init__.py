"""Logging helpers for kitgen runs."""

from .logging import bind_pass, bind_run_context, clear_run_context, get_run_logger, setup_structured_logging

__all__ = [
    "setup_structured_logging",
    "bind_run_context",
    "bind_pass",
    "clear_run_context",
    "get_run_logger",
]
