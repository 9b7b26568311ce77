"""File-mutation tools: add, inject, shell, setup and echo.

Add and inject are idempotent: writing identical content again is reported
as unchanged, and an injection whose skip condition already matches is a
no-op. Shell and setup run commands, which are not.
"""

import logging
from pathlib import Path

import anyio
from anyio import to_thread

from ..exceptions import InjectionError
from ..injector import InjectionRule, inject
from ..recipes.models import AddStep, EchoStep, InjectStep, SetupStep, ShellStep
from ..recipes.results import StepResult
from ..utils import atomic_write_text, read_text
from .base import DRY_RUN_PREFIX, StepContext, Tool, ToolValidationResult

logger = logging.getLogger(__name__)

_TRUTHY = frozenset({"true", "yes", "1", "on"})


def _is_truthy(text: str) -> bool:
    return text.strip().lower() in _TRUTHY


async def _load_body(step: AddStep | InjectStep, context: StepContext) -> str:
    """Rendered body, read from the `from` template when given."""
    if step.from_:
        template = context.recipe_dir / context.render(step.from_)
        try:
            raw = await to_thread.run_sync(read_text, template)
        except OSError as e:
            raise FileNotFoundError(f"Template not found for step '{step.name}': {template}") from e
    else:
        raw = step.body or ""
    return context.render(raw)


def injection_rule(step: InjectStep | object, skip_if: str | None, eol_last: bool = True) -> InjectionRule:
    """Build an InjectionRule from a step's location fields."""
    if getattr(step, "at_line", None) is not None:
        return InjectionRule("at_line", line=step.at_line, skip_if=skip_if, eol_last=eol_last)
    if getattr(step, "before", None):
        return InjectionRule("before", pattern=step.before, skip_if=skip_if, eol_last=eol_last)
    if getattr(step, "after", None):
        return InjectionRule("after", pattern=step.after, skip_if=skip_if, eol_last=eol_last)
    if getattr(step, "prepend", False):
        return InjectionRule("prepend", skip_if=skip_if, eol_last=eol_last)
    return InjectionRule("append", skip_if=skip_if, eol_last=eol_last)


def location_count(step: object) -> int:
    return sum(
        [
            getattr(step, "at_line", None) is not None,
            bool(getattr(step, "before", None)),
            bool(getattr(step, "after", None)),
            bool(getattr(step, "prepend", False)),
            bool(getattr(step, "append", False)),
        ]
    )


async def apply_injection(target: Path, body: str, rule: InjectionRule, dry_run: bool) -> tuple[bool, str | None]:
    """Inject into an existing file; returns (changed, skip reason).

    Raises:
        InjectionError: If the target does not exist or the rule cannot be applied.
    """
    if not target.is_file():
        raise InjectionError(f"Cannot inject into non-existent file: {target}")
    content = await to_thread.run_sync(read_text, target)
    result = inject(content, body, rule)
    if result.skipped:
        return False, result.reason
    if result.changed and not dry_run:
        await to_thread.run_sync(atomic_write_text, target, result.content)
    return result.changed, None


class AddTool(Tool):
    tool_type = "add"

    def check(self, step: AddStep, context: StepContext, result: ToolValidationResult) -> None:
        if not step.to:
            result.errors.append(f"Step '{step.name}': 'to' is required")
        if step.body is None and not step.from_:
            result.errors.append(f"Step '{step.name}': provide 'body' or 'from'")
        if step.body is not None and step.from_:
            result.errors.append(f"Step '{step.name}': 'body' and 'from' are mutually exclusive")

    async def execute(self, step: AddStep, context: StepContext) -> StepResult:
        target = context.resolve_path(step.to)
        shown = context.display_path(target)

        if step.skip_if and _is_truthy(context.render(step.skip_if)):
            return self.skipped(step, f"skip_if: {shown}")

        exists = target.exists()
        force = step.force or context.options.force
        if exists and step.unless_exists and not force:
            return self.skipped(step, f"exists: {shown}")

        body = await _load_body(step, context)
        if exists:
            current = await to_thread.run_sync(read_text, target)
            if current == body:
                return self.completed(step, f"unchanged: {shown}")
            if not force and not self._may_overwrite(shown, context):
                logger.warning(f"Skipped existing file {shown}")
                return self.skipped(step, f"exists, not overwritten: {shown}")

        if context.dry_run:
            verb = "overwrite" if exists else "create"
            return self.completed(step, f"{DRY_RUN_PREFIX} Would {verb} {shown}")

        await to_thread.run_sync(atomic_write_text, target, body)
        if exists:
            return self.completed(step, f"{'forced' if force else 'overwrote'}: {shown}", files_modified=[shown])
        return self.completed(step, f"added: {shown}", files_created=[shown])

    def _may_overwrite(self, shown: str, context: StepContext) -> bool:
        if context.options.yes:
            return True
        if context.options.interactive and context.prompter is not None:
            return context.prompter.confirm(f"{shown} already exists. Overwrite?", default=False)
        return False


class InjectTool(Tool):
    tool_type = "inject"

    def check(self, step: InjectStep, context: StepContext, result: ToolValidationResult) -> None:
        if not step.to:
            result.errors.append(f"Step '{step.name}': 'to' is required")
        if step.body is None and not step.from_:
            result.errors.append(f"Step '{step.name}': provide 'body' or 'from'")
        if location_count(step) > 1:
            result.errors.append(f"Step '{step.name}': use only one of at_line, before, after, prepend, append")
        if location_count(step) == 0:
            result.warnings.append(f"Step '{step.name}': no location given, content will be appended")

    async def execute(self, step: InjectStep, context: StepContext) -> StepResult:
        target = context.resolve_path(step.to)
        shown = context.display_path(target)
        body = await _load_body(step, context)
        skip_if = context.render(step.skip_if) if step.skip_if else None
        rule = injection_rule(step, skip_if, step.eol_last)
        if context.dry_run and not target.is_file():
            return self.completed(step, f"{DRY_RUN_PREFIX} Would inject into {shown} (not created yet)")

        changed, skip_reason = await apply_injection(target, body, rule, context.dry_run)
        if skip_reason:
            return self.skipped(step, f"{skip_reason} ({shown})")
        if not changed:
            return self.completed(step, f"unchanged: {shown}")
        if context.dry_run:
            return self.completed(step, f"{DRY_RUN_PREFIX} Would inject into {shown}")
        return self.completed(step, f"injected: {shown}", files_modified=[shown])


async def run_shell(command: str, cwd: Path) -> tuple[int, str, str]:
    completed = await anyio.run_process(command, cwd=cwd, check=False)
    return (
        completed.returncode,
        completed.stdout.decode("utf-8", errors="replace"),
        completed.stderr.decode("utf-8", errors="replace"),
    )


class ShellTool(Tool):
    tool_type = "shell"

    def check(self, step: ShellStep, context: StepContext, result: ToolValidationResult) -> None:
        if not step.command.strip():
            result.errors.append(f"Step '{step.name}': shell command is required")

    async def execute(self, step: ShellStep, context: StepContext) -> StepResult:
        command = context.render(step.command)
        cwd = context.resolve_path(step.cwd) if step.cwd else context.project_root
        if context.dry_run:
            return self.completed(step, f"{DRY_RUN_PREFIX} Would run: {command}")

        logger.info(f"Running shell command in {cwd}: {command}")
        code, stdout, stderr = await run_shell(command, cwd)
        if code != 0:
            return self.failed(step, f"Command exited with status {code}: {stderr.strip()[:500]}", output=stdout)
        return self.completed(step, f"ran: {command}", output=stdout)


class SetupTool(Tool):
    """Project bootstrap commands, run in order until one fails."""

    tool_type = "setup"

    def check(self, step: SetupStep, context: StepContext, result: ToolValidationResult) -> None:
        if not step.commands:
            result.errors.append(f"Step '{step.name}': setup needs at least one command")
        elif any(not command.strip() for command in step.commands):
            result.errors.append(f"Step '{step.name}': setup commands must not be empty")

    async def execute(self, step: SetupStep, context: StepContext) -> StepResult:
        commands = [context.render(command) for command in step.commands]
        cwd = context.resolve_path(step.cwd) if step.cwd else context.project_root
        if context.dry_run:
            return self.completed(step, f"{DRY_RUN_PREFIX} Would run {len(commands)} setup commands")

        outputs: list[str] = []
        for command in commands:
            logger.info(f"Setup: {command}")
            code, stdout, stderr = await run_shell(command, cwd)
            outputs.append(stdout)
            if code != 0:
                return self.failed(step, f"Setup command '{command}' exited with status {code}: {stderr.strip()[:500]}", output=outputs)
        return self.completed(step, f"ran {len(commands)} setup commands", output=outputs)


class EchoTool(Tool):
    tool_type = "echo"

    def check(self, step: EchoStep, context: StepContext, result: ToolValidationResult) -> None:
        if not step.message:
            result.warnings.append(f"Step '{step.name}': echo message is empty")

    async def execute(self, step: EchoStep, context: StepContext) -> StepResult:
        message = context.render(step.message)
        context.emit(message)
        return self.completed(step, message, output=message)
