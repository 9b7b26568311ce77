"""Collection of model-dependent content requests during a collect pass.

A collector is created by the caller and threaded through execution as part of
the step context. Its state only changes through the named lifecycle calls:
`enter_collect_mode`, `add_entry`/`add_global_context`, and `clear`.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PromptExample:
    output: str
    input: str = ""


@dataclass(slots=True)
class CollectorEntry:
    """One pending answer, keyed by the identifier the answers file uses."""

    key: str
    prompt: str
    contexts: list[str] = field(default_factory=list)
    output_description: str = ""
    type_hint: str | None = None
    examples: list[PromptExample] = field(default_factory=list)
    source: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AiCollector:
    """Ordered store of pending prompts for one invocation."""

    def __init__(self) -> None:
        self._collect_mode = False
        self._entries: dict[str, CollectorEntry] = {}
        self._global_contexts: list[str] = []

    @property
    def collect_mode(self) -> bool:
        return self._collect_mode

    def enter_collect_mode(self) -> None:
        self._collect_mode = True

    def exit_collect_mode(self) -> None:
        self._collect_mode = False

    def add_global_context(self, context: str) -> None:
        if context and context not in self._global_contexts:
            self._global_contexts.append(context)

    def add_entry(self, entry: CollectorEntry) -> None:
        """Record a pending prompt; a repeated key replaces the earlier entry."""
        if entry.key in self._entries:
            logger.warning(f"Duplicate AI key '{entry.key}' (from {entry.source or 'unknown'}); replacing earlier entry")
        self._entries[entry.key] = entry

    def has_entries(self) -> bool:
        return bool(self._entries)

    def get_entries(self) -> list[CollectorEntry]:
        return list(self._entries.values())

    def keys(self) -> list[str]:
        return list(self._entries)

    @property
    def global_contexts(self) -> list[str]:
        return list(self._global_contexts)

    def clear(self) -> None:
        """Drop all entries and contexts and leave collect mode."""
        self._collect_mode = False
        self._entries.clear()
        self._global_contexts.clear()
