"""Tests for the command line interface."""

import json

import pytest
from typer.testing import CliRunner

from kitgen import cli
from kitgen.cli import app

from .conftest import write_recipe

runner = CliRunner()

COMPONENT = """
name: component
variables:
  name:
    required: true
    position: 0
  style:
    type: enum
    values: [css, none]
    default: none
steps:
  - tool: add
    to: "src/{{ name }}.tsx"
    body: "export const {{ name }} = () => null // {{ style }}\\n"
  - tool: echo
    message: "Created {{ name }}"
"""

DOCS = """
name: docs
steps:
  - tool: ai
    key: intro
    prompt: Write an introduction for the project.
    output:
      type: file
      to: docs/intro.md
"""


@pytest.fixture(autouse=True)
def quiet_settings(monkeypatch):
    """Stdout transport, no provider and no global logging changes."""
    monkeypatch.setattr(cli, "setup_structured_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(cli.settings.ai, "mode", "stdout")
    monkeypatch.setattr(cli.settings.ai, "provider", None)
    monkeypatch.setattr(cli.settings.ai, "command", None)


@pytest.fixture
def root(tmp_path):
    write_recipe(tmp_path / "cookbooks" / "component", COMPONENT)
    write_recipe(tmp_path / "cookbooks" / "docs", DOCS)
    return tmp_path


class TestRun:
    def test_positional_and_named_parameters(self, root):
        result = runner.invoke(app, ["run", "component", "Button", "--style=css", "--cwd", str(root)])

        assert result.exit_code == 0, result.output
        assert (root / "src" / "Button.tsx").read_text() == "export const Button = () => null // css\n"
        assert "Created Button" in result.output
        assert "added: src/Button.tsx" in result.output

    def test_dry_run(self, root):
        result = runner.invoke(app, ["run", "component", "Button", "--dry", "--cwd", str(root)])

        assert result.exit_code == 0, result.output
        assert not (root / "src").exists()

    def test_missing_required_variable(self, root):
        result = runner.invoke(app, ["run", "component", "--cwd", str(root)])

        assert result.exit_code == 1
        assert "Missing required variables: name" in result.output

    def test_invalid_enum_value(self, root):
        result = runner.invoke(app, ["run", "component", "Button", "--style=sass", "--cwd", str(root)])

        assert result.exit_code == 1
        assert "must be one of" in result.output

    def test_unknown_recipe(self, root):
        result = runner.invoke(app, ["run", "nothing", "--cwd", str(root)])

        assert result.exit_code == 1
        assert "No recipe or group found for: nothing" in result.output

    def test_deferred_then_answers(self, root):
        first = runner.invoke(app, ["run", "docs", "--cwd", str(root)])

        assert first.exit_code == 2, first.output
        assert "# Kitgen AI Generation Request" in first.output
        assert "### `intro`" in first.output
        assert "--answers ./ai-answers.json" in first.output
        assert not (root / "docs").exists()

        answers = root / "answers.json"
        answers.write_text(json.dumps({"version": 1, "answers": {"intro": "Welcome to the project."}}))
        second = runner.invoke(app, ["run", "docs", "--answers", str(answers), "--cwd", str(root)])

        assert second.exit_code == 0, second.output
        assert (root / "docs" / "intro.md").read_text() == "Welcome to the project."

    def test_bad_answers_file(self, root):
        answers = root / "answers.json"
        answers.write_text(json.dumps({"version": 9, "answers": {}}))

        result = runner.invoke(app, ["run", "docs", "--answers", str(answers), "--cwd", str(root)])

        assert result.exit_code == 1
        assert "unsupported answers file version" in result.output

    def test_api_mode_without_provider(self, root, monkeypatch):
        monkeypatch.setattr(cli.settings.ai, "mode", "api")

        result = runner.invoke(app, ["run", "docs", "--cwd", str(root)])

        assert result.exit_code == 1
        assert "Fix:" in result.output


class TestOtherCommands:
    def test_validate_ok(self, root):
        result = runner.invoke(app, ["validate", "component", "--cwd", str(root)])

        assert result.exit_code == 0, result.output
        assert "component: 2 steps, 2 variables - OK" in result.output

    def test_validate_reports_errors(self, root):
        write_recipe(root / "cookbooks" / "broken", "name: broken\nsteps:\n  - tool: action\n    action: missing-action\n")

        result = runner.invoke(app, ["validate", "broken", "--cwd", str(root)])

        assert result.exit_code == 1
        assert "error: Action 'missing-action' is not registered" in result.output

    def test_list(self, root):
        kit = root / "kits" / "web"
        kit.mkdir(parents=True)
        (kit / "kit.yml").write_text("name: web\ndescription: Web generators\n")
        (kit / "cookbooks" / "crud").mkdir(parents=True)
        (kit / "cookbooks" / "crud" / "cookbook.yml").write_text("name: crud\n")
        write_recipe(kit / "cookbooks" / "crud" / "resource", "name: resource\n")

        result = runner.invoke(app, ["list", "--cwd", str(root)])

        assert result.exit_code == 0, result.output
        assert "web - Web generators" in result.output
        assert "crud: resource" in result.output
        assert "cookbooks: component, docs" in result.output

    def test_config(self):
        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "AI mode: stdout" in result.output
