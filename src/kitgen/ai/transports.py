"""Transports that turn collected prompts into answers.

Three variants exist:
1. ApiTransport: one batched call to a configured model provider.
2. CommandTransport: an external command (an agent CLI, a script) answers.
3. StdoutTransport: print the prompt document and defer to a later run.

Every transport returns a TransportResult: Resolved, Deferred or Failed.
Only the CLI translates that into a process exit code.
"""

import json
import logging
import os
import re
import shlex
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TextIO, Union

import anyio

from ..config import AISettings
from ..exceptions import TransportConfigError, TransportError
from .collector import AiCollector, CollectorEntry
from .guardrails import strip_code_fences
from .prompts import BATCH_SYSTEM_PROMPT, JSON_ONLY_SUFFIX, assemble_prompt_document, build_single_prompt
from .service import AiService

logger = logging.getLogger(__name__)

ANSWERS_PENDING_EXIT_CODE = 2


@dataclass(frozen=True)
class Resolved:
    answers: dict[str, str]


@dataclass(frozen=True)
class Deferred:
    exit_code: int = ANSWERS_PENDING_EXIT_CODE
    prompt_document: str = ""
    answers_path: str = ""


@dataclass(frozen=True)
class Failed:
    error: Exception
    details: list[str] = field(default_factory=list)


TransportResult = Union[Resolved, Deferred, Failed]


@dataclass(frozen=True)
class TransportRequest:
    """Everything a transport may need about the pending run."""

    collector: AiCollector
    original_command: str
    answers_path: str

    @property
    def entries(self) -> list[CollectorEntry]:
        return self.collector.get_entries()

    @property
    def keys(self) -> list[str]:
        return self.collector.keys()


def parse_json_answers(text: str, expected_keys: list[str]) -> dict[str, str]:
    """Parse a model's JSON reply and require every expected key.

    Raises:
        TransportError: If the reply is not a JSON object or misses keys.
    """
    cleaned = strip_code_fences(text.strip())
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise TransportError(f"Response contained no JSON object: {text[:200]!r}")
    try:
        data = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError as e:
        raise TransportError(f"Response was not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise TransportError("Response JSON must be an object")

    missing = [key for key in expected_keys if key not in data]
    if missing:
        raise TransportError(f"Response is missing keys: {', '.join(missing)}")
    return {key: value if isinstance(value, str) else json.dumps(value) for key, value in data.items() if key in expected_keys}


class Transport(ABC):
    name = ""

    @abstractmethod
    async def resolve(self, request: TransportRequest) -> TransportResult: ...


class StdoutTransport(Transport):
    """Print the prompt document and ask for a re-run with an answers file."""

    name = "stdout"

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream

    async def resolve(self, request: TransportRequest) -> TransportResult:
        document = assemble_prompt_document(request.collector, request.original_command, request.answers_path)
        stream = self.stream or sys.stdout
        stream.write(document)
        if not document.endswith("\n"):
            stream.write("\n")
        stream.flush()
        return Deferred(prompt_document=document, answers_path=request.answers_path)


class ApiTransport(Transport):
    """Answer every entry with one batched model call."""

    name = "api"

    def __init__(self, service: AiService):
        self.service = service

    async def resolve(self, request: TransportRequest) -> TransportResult:
        keys = request.keys
        document = assemble_prompt_document(request.collector)
        system = BATCH_SYSTEM_PROMPT.format(keys=", ".join(keys))
        try:
            completion = await self.service.complete(document, system=system)
            answers = parse_json_answers(completion.text, keys)
        except TransportError as e:
            return Failed(e)
        logger.info(f"Model answered {len(answers)} prompts ({completion.usage.total_tokens} tokens)")
        return Resolved(answers)


class CommandTransport(Transport):
    """Pipe prompts through an external command.

    A `{prompt}` placeholder in the command is replaced with the shell-quoted
    prompt; without one the prompt is written to the command's stdin.
    """

    name = "command"

    def __init__(self, command: str, mode: str = "batched", timeout: float = 300.0):
        self.command = command
        self.mode = mode
        self.timeout = timeout

    def _child_env(self) -> dict[str, str]:
        env = dict(os.environ)
        # Nested agent sessions refuse to start while this is set
        env.pop("CLAUDECODE", None)
        return env

    async def run_command(self, prompt: str) -> str:
        """Run the command once and return its stdout.

        Raises:
            TransportError: On timeout or a non-zero exit status.
        """
        if "{prompt}" in self.command:
            command: str | list[str] = self.command.replace("{prompt}", shlex.quote(prompt))
            stdin = None
        else:
            command = shlex.split(self.command)
            stdin = prompt.encode("utf-8")

        try:
            with anyio.fail_after(self.timeout):
                completed = await anyio.run_process(command, input=stdin, check=False, env=self._child_env())
        except TimeoutError as e:
            raise TransportError(f"AI command timed out after {self.timeout:.0f}s: {self.command}") from e
        except OSError as e:
            raise TransportError(f"AI command could not be started: {e}") from e

        stdout = completed.stdout.decode("utf-8", errors="replace")
        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise TransportError(f"AI command exited with status {completed.returncode}: {stderr[:500]}")
        return stdout

    async def resolve(self, request: TransportRequest) -> TransportResult:
        try:
            if self.mode == "per-block":
                answers = {}
                for entry in request.entries:
                    output = await self.run_command(build_single_prompt(entry))
                    answers[entry.key] = output.strip()
                return Resolved(answers)

            document = assemble_prompt_document(request.collector) + JSON_ONLY_SUFFIX
            output = await self.run_command(document)
            return Resolved(parse_json_answers(output, request.keys))
        except TransportError as e:
            return Failed(e)


def _has_api_access(ai_settings: AISettings) -> bool:
    return bool(ai_settings.provider) and ai_settings.has_credential()


def resolve_transport(
    ai_settings: AISettings,
    service: AiService | None = None,
    stream: TextIO | None = None,
) -> Transport:
    """Pick the transport for this run.

    An explicit mode wins. In auto mode: api when a provider and credential
    are configured, else command when one is configured, else stdout.

    Raises:
        TransportConfigError: If an explicit mode lacks what it needs.
    """
    mode = ai_settings.mode
    if mode == "off":
        mode = "stdout"

    if mode == "auto":
        if _has_api_access(ai_settings):
            mode = "api"
        elif ai_settings.command:
            mode = "command"
        else:
            mode = "stdout"

    match mode:
        case "api":
            if not ai_settings.provider:
                raise TransportConfigError(
                    "AI mode 'api' needs a provider", "Set KITGEN_AI_PROVIDER (anthropic, openai, openai_compatible or ollama)"
                )
            if not ai_settings.has_credential():
                raise TransportConfigError(
                    f"AI mode 'api' has no API key for provider '{ai_settings.provider}'",
                    "Set KITGEN_AI_API_KEY (or $VAR reference) or the provider's standard key variable",
                )
            return ApiTransport(service or AiService.from_settings(ai_settings))
        case "command":
            if not ai_settings.command:
                raise TransportConfigError(
                    "AI mode 'command' has no command configured",
                    "Set KITGEN_AI_COMMAND, e.g. \"claude -p {prompt}\"",
                )
            return CommandTransport(ai_settings.command, ai_settings.command_mode, ai_settings.command_timeout)
        case _:
            return StdoutTransport(stream)


def describe_command(argv: list[str]) -> str:
    """Shell-quoted command line, minus any earlier --answers flag."""
    cleaned: list[str] = []
    skip = False
    for arg in argv:
        if skip:
            skip = False
            continue
        if arg == "--answers":
            skip = True
            continue
        if re.match(r"^--answers=", arg):
            continue
        cleaned.append(arg)
    return " ".join(shlex.quote(arg) for arg in cleaned)
