"""Execution results consumed by reporting and automation layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StepResult:
    """Outcome of one step in one pass."""

    step_name: str
    tool: str
    status: StepStatus
    message: str = ""
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    files_deleted: list[str] = field(default_factory=list)
    output: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=_now)
    finished_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status != StepStatus.FAILED

    @property
    def duration_ms(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def summary(self) -> dict[str, Any]:
        """Timing-free view used to compare runs."""
        return {
            "step": self.step_name,
            "tool": self.tool,
            "status": self.status.value,
            "files_created": list(self.files_created),
            "files_modified": list(self.files_modified),
            "files_deleted": list(self.files_deleted),
            "error": self.error,
        }


@dataclass
class RecipeResult:
    """Aggregate outcome of executing one recipe."""

    recipe: str
    path: Path | None = None
    steps: list[StepResult] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    started_at: datetime = field(default_factory=_now)
    finished_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.error is None and all(step.success for step in self.steps)

    @property
    def steps_completed(self) -> int:
        return sum(1 for step in self.steps if step.status == StepStatus.COMPLETED)

    @property
    def failed_step(self) -> StepResult | None:
        return next((step for step in self.steps if not step.success), None)

    def _collect(self, attr: str) -> list[str]:
        seen: list[str] = []
        for step in self.steps:
            for path in getattr(step, attr):
                if path not in seen:
                    seen.append(path)
        return seen

    @property
    def files_created(self) -> list[str]:
        return self._collect("files_created")

    @property
    def files_modified(self) -> list[str]:
        created = set(self.files_created)
        return [path for path in self._collect("files_modified") if path not in created]

    @property
    def files_deleted(self) -> list[str]:
        return self._collect("files_deleted")

    @property
    def errors(self) -> list[str]:
        errors = [f"{step.step_name}: {step.error}" for step in self.steps if step.error]
        if self.error and not errors:
            errors.append(self.error)
        return errors

    def summary(self) -> dict[str, Any]:
        return {
            "recipe": self.recipe,
            "success": self.success,
            "steps": [step.summary() for step in self.steps],
            "files_created": self.files_created,
            "files_modified": self.files_modified,
            "files_deleted": self.files_deleted,
            "errors": self.errors,
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.summary()
        data["path"] = str(self.path) if self.path else None
        data["duration_ms"] = (self.finished_at - self.started_at).total_seconds() * 1000 if self.finished_at else None
        return data


@dataclass
class GroupEntry:
    """One sibling recipe's line in a group report."""

    name: str
    path: Path
    success: bool
    step_count: int
    error: str | None = None
    result: RecipeResult | None = None


@dataclass
class GroupResult:
    """Roll-up of a group run; recipes never reached have no entry."""

    path: Path
    entries: list[GroupEntry] = field(default_factory=list)
    continue_on_error: bool = False
    pending: str | None = None

    @property
    def success(self) -> bool:
        return self.pending is None and bool(self.entries) and all(entry.success for entry in self.entries)

    @property
    def succeeded(self) -> list[str]:
        return [entry.name for entry in self.entries if entry.success]

    @property
    def failed(self) -> list[str]:
        return [entry.name for entry in self.entries if not entry.success]

    @property
    def files_created(self) -> list[str]:
        return [path for entry in self.entries if entry.result for path in entry.result.files_created]

    @property
    def files_modified(self) -> list[str]:
        return [path for entry in self.entries if entry.result for path in entry.result.files_modified]

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "success": self.success,
            "recipes": [
                {"name": e.name, "success": e.success, "step_count": e.step_count, "error": e.error} for e in self.entries
            ],
        }
