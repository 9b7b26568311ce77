"""CLI interface for kitgen."""

import asyncio
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import typer

from .ai.answers import load_answers
from .ai.service import AiService
from .ai.transports import describe_command
from .config import CONFIG_FILE, settings
from .exceptions import KitgenError, ResolutionError
from .kits import discover_kits, list_recipes
from .observability.logging import setup_structured_logging
from .recipes.engine import RecipeEngine
from .recipes.models import VariableDefinition
from .recipes.results import GroupResult, RecipeResult
from .recipes.store import load_recipe
from .resolver import PathResolver, ResolvedPath, parse_parameters
from .runner import RecipeRunner, RunOutcome, RunRequest
from .tools import ActionRegistry, ExecutionOptions, load_action_plugins

app = typer.Typer(help="Recipe-driven code generator", no_args_is_help=True)


class AskChoice(str, Enum):
    me = "me"
    ai = "ai"
    nobody = "nobody"


class TerminalPrompter:
    """Prompts on the controlling terminal."""

    def ask(self, name: str, definition: VariableDefinition) -> Any:
        label = definition.description or name
        match definition.type:
            case "boolean":
                return typer.confirm(label, default=bool(definition.suggestion))
            case "enum" if definition.values:
                choices = "/".join(str(v) for v in definition.values)
                return typer.prompt(f"{label} [{choices}]", default=definition.suggestion)
            case _:
                return typer.prompt(label, default=definition.suggestion)

    def confirm(self, message: str, default: bool = False) -> bool:
        return typer.confirm(message, default=default)


def _fail(message: str, code: int = 1) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code)


def _build_resolver(root: Path) -> PathResolver:
    kits = discover_kits([root / d for d in settings.resolver.kit_dirs])
    return PathResolver(kits=kits, search_dirs=[Path(d) for d in settings.resolver.search_dirs], cwd=root)


def _resolve(root: Path, tokens: list[str]) -> tuple[PathResolver, ResolvedPath]:
    resolver = _build_resolver(root)
    resolved = resolver.resolve(tokens)
    if resolved is None:
        raise ResolutionError(tokens, resolver.attempted_locations())
    return resolver, resolved


def _original_command(segments: list[str], flags: list[str]) -> str:
    return describe_command(["kitgen", "run", *segments, *flags])


def _report(outcome: RunOutcome) -> None:
    result = outcome.result
    if isinstance(result, GroupResult):
        for entry in result.entries:
            mark = "ok" if entry.success else "FAILED"
            detail = f" ({entry.error})" if entry.error else ""
            typer.echo(f"  [{mark}] {entry.name}: {entry.step_count} steps{detail}", err=True)
        typer.echo(f"Group {result.path.name}: {len(result.succeeded)} succeeded, {len(result.failed)} failed", err=True)
        return
    if isinstance(result, RecipeResult):
        for path in result.files_created:
            typer.echo(f"  added: {path}", err=True)
        for path in result.files_modified:
            typer.echo(f"  modified: {path}", err=True)
        typer.echo(
            f"{result.recipe}: {result.steps_completed}/{len(result.steps)} steps completed, "
            f"{len(result.files_created)} files created, {len(result.files_modified)} modified",
            err=True,
        )


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    segments: Optional[list[str]] = typer.Argument(None, help="Kit/cookbook/recipe path segments, then positional values and --key=value parameters"),
    answers: Optional[Path] = typer.Option(None, "--answers", help="Answers file from a previous deferred run"),
    ask: Optional[AskChoice] = typer.Option(None, "--ask", help="Who supplies missing variables: me, ai or nobody"),
    no_defaults: bool = typer.Option(False, "--no-defaults", help="Ignore declared variable defaults"),
    dry: bool = typer.Option(False, "--dry", help="Report what would change without writing"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing files without asking"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to every confirmation"),
    continue_on_error: bool = typer.Option(False, "--continue-on-error", help="Keep running a group after a recipe fails"),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Project root (default: current directory)"),
) -> None:
    """Run a recipe or a group of recipes."""
    setup_structured_logging(settings.logging.level, settings.logging.json_output)
    root = (cwd or Path.cwd()).resolve()
    tokens, params = parse_parameters(list(segments or []))

    flags = [f"--{key}={value}" if value is not True else f"--{key}" for key, value in params.items()]
    for enabled, flag in ((no_defaults, "--no-defaults"), (dry, "--dry"), (force, "--force"), (yes, "--yes")):
        if enabled:
            flags.append(flag)
    if ask is not None:
        flags.append(f"--ask={ask.value}")
    if cwd is not None:
        flags.append(f"--cwd={cwd}")

    interactive = sys.stdin.isatty() and not yes
    ask_mode = ask.value if ask is not None else ("me" if interactive else "nobody")
    answers_path = str(answers) if answers else settings.ai.answers_path

    try:
        _, resolved = _resolve(root, tokens)
        loaded_answers = load_answers(answers) if answers else None
        service = AiService.from_settings(settings.ai)
    except KitgenError as e:
        _fail(str(e))

    actions = ActionRegistry()
    load_action_plugins(actions)
    engine = RecipeEngine(root, actions=actions, ai_service=service, prompter=TerminalPrompter())
    runner = RecipeRunner(engine, settings.ai)
    request = RunRequest(
        params=params,
        options=ExecutionOptions(dry_run=dry, force=force, yes=yes, interactive=interactive),
        ask=ask_mode,
        use_defaults=not no_defaults,
        answers=loaded_answers,
        original_command=_original_command(list(resolved.consumed) + list(resolved.remaining), flags),
        answers_path=answers_path,
        continue_on_error=continue_on_error,
    )

    async def _run() -> RunOutcome:
        try:
            return await runner.run(resolved, request)
        finally:
            if service is not None:
                await service.aclose()

    try:
        outcome = asyncio.run(_run())
    except KitgenError as e:
        _fail(str(e))

    if outcome.status == "deferred":
        typer.secho(
            f"AI answers pending. Save the JSON response to {answers_path} and re-run with --answers {answers_path}",
            err=True,
            fg=typer.colors.YELLOW,
        )
        raise typer.Exit(outcome.exit_code)

    _report(outcome)
    if outcome.exit_code != 0:
        message = outcome.error_message
        if isinstance(outcome.result, RecipeResult) and outcome.result.errors:
            message = "; ".join(outcome.result.errors)
        _fail(message or "Run failed", outcome.exit_code)


@app.command("list")
def list_command(
    kit: Optional[str] = typer.Argument(None, help="Only list this kit"),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Project root (default: current directory)"),
) -> None:
    """List installed kits, cookbooks and recipes."""
    root = (cwd or Path.cwd()).resolve()
    kits = discover_kits([root / d for d in settings.resolver.kit_dirs])
    if kit is not None:
        if kit not in kits:
            _fail(f"Kit not found: {kit}")
        kits = {kit: kits[kit]}

    for name, found in kits.items():
        print(f"{name}" + (f" - {found.description}" if found.description else ""))
        for cookbook, recipes in list_recipes(found).items():
            print(f"  {cookbook}: {', '.join(recipes) or '(no recipes)'}")

    if kit is None:
        for directory in settings.resolver.search_dirs:
            path = root / directory
            if not path.is_dir():
                continue
            recipes = sorted(str(p.parent.relative_to(path)) for p in path.glob("**/recipe.yml"))
            print(f"{directory}: {', '.join(recipes) or '(no recipes)'}")


@app.command()
def validate(
    segments: list[str] = typer.Argument(..., help="Kit/cookbook/recipe path segments"),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Project root (default: current directory)"),
) -> None:
    """Load and validate a recipe without running it."""
    root = (cwd or Path.cwd()).resolve()
    try:
        _, resolved = _resolve(root, list(segments))
        if resolved.is_group:
            _fail(f"{resolved.full_path} is a group; validate its recipes individually")
        recipe = load_recipe(resolved.full_path)
    except KitgenError as e:
        _fail(str(e))

    actions = ActionRegistry()
    load_action_plugins(actions)
    report = RecipeEngine(root, actions=actions).validate(recipe)
    for warning in report.warnings:
        typer.secho(f"warning: {warning}", err=True, fg=typer.colors.YELLOW)
    for suggestion in report.suggestions:
        typer.echo(f"hint: {suggestion}", err=True)
    if not report.is_valid:
        _fail("\n".join(f"error: {error}" for error in report.errors))
    print(f"{recipe.name}: {len(recipe.steps)} steps, {len(recipe.variables)} variables - OK")


@app.command()
def config() -> None:
    """Show current configuration."""
    ai = settings.ai
    print(f"Config file: {CONFIG_FILE}")
    print(f"AI mode: {ai.mode}")
    print(f"Provider: {ai.provider or '(none)'}")
    print(f"Model: {ai.model or '(provider default)'}")
    print(f"API key: {'set' if ai.get_api_key_for_provider() else '(none)'}")
    print(f"Command: {ai.command or '(none)'} [{ai.command_mode}]")
    print(f"Answers path: {ai.answers_path}")
    print(f"Search dirs: {', '.join(settings.resolver.search_dirs)}")
    print(f"Kit dirs: {', '.join(settings.resolver.kit_dirs)}")


if __name__ == "__main__":
    app()
