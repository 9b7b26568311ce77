"""Pytest configuration and fixtures for kitgen tests."""

import io
from pathlib import Path
from textwrap import dedent

import pytest

from kitgen.ai.collector import CollectorEntry
from kitgen.ai.transports import Resolved, Transport, TransportRequest, TransportResult
from kitgen.recipes.engine import RecipeEngine
from kitgen.runner import RecipeRunner
from kitgen.tools import ActionRegistry


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: Tests that spawn subprocesses")
    config.addinivalue_line("markers", "slow: Tests that take longer to run")


def write_recipe(directory: Path, text: str, filename: str = "recipe.yml") -> Path:
    """Write a recipe definition into `directory`, creating it."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(dedent(text).lstrip(), encoding="utf-8")
    return path


class StubPrompter:
    """Prompter returning canned values and recording what was asked."""

    def __init__(self, values=None, confirm_answer=False):
        self.values = dict(values or {})
        self.confirm_answer = confirm_answer
        self.asked: list[str] = []
        self.confirmations: list[str] = []

    def ask(self, name, definition):
        self.asked.append(name)
        return self.values.get(name)

    def confirm(self, message, default=False):
        self.confirmations.append(message)
        return self.confirm_answer


class FakeTransport(Transport):
    """Answers every collected prompt from a fixed mapping."""

    name = "fake"

    def __init__(self, answers):
        self.answers = dict(answers)
        self.requests: list[list[CollectorEntry]] = []

    async def resolve(self, request: TransportRequest) -> TransportResult:
        # The collector is cleared once the run finishes, so keep a snapshot
        self.requests.append(request.entries)
        return Resolved({key: self.answers[key] for key in request.keys})


@pytest.fixture
def project(tmp_path) -> Path:
    """Empty project root."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def actions() -> ActionRegistry:
    return ActionRegistry()


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def engine(project, actions, output) -> RecipeEngine:
    return RecipeEngine(project, actions=actions, output=output)


@pytest.fixture
def make_runner(engine, output):
    """Build a RecipeRunner around the shared engine with an optional transport."""

    def _make(transport=None, stream=None):
        return RecipeRunner(engine, transport=transport, stream=stream or output)

    return _make
