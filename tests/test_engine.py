"""Tests for single-pass recipe execution."""

import pytest

from kitgen.ai.collector import AiCollector
from kitgen.exceptions import RecipeValidationError
from kitgen.recipes.engine import RecipeEngine
from kitgen.recipes.results import StepStatus
from kitgen.recipes.store import parse_recipe
from kitgen.recipes.variables import resolve_variables
from kitgen.tools import ActionOutcome, ActionParameter, EchoTool, ExecutionOptions

from .conftest import StubPrompter


async def execute(engine, text, options=None, answers=None, collector=None, **provided):
    recipe = parse_recipe(text)
    scope = resolve_variables(recipe, provided, answers=answers)
    return await engine.execute(recipe, scope, collector or AiCollector(), options, answers)


ADD_RECIPE = """
name: model
variables:
  name:
    required: true
steps:
  - tool: add
    to: "src/{{ name | kebab }}.ts"
    body: "export class {{ name | pascal }} {}\\n"
  - tool: echo
    message: "created {{ name }}"
"""


class TestExecution:
    @pytest.mark.asyncio
    async def test_add_and_echo(self, engine, project, output):
        result = await execute(engine, ADD_RECIPE, name="user profile")

        assert result.success
        assert result.steps_completed == 2
        assert result.files_created == ["src/user-profile.ts"]
        assert (project / "src" / "user-profile.ts").read_text() == "export class UserProfile {}\n"
        assert output.getvalue() == "created user profile\n"

    @pytest.mark.asyncio
    async def test_rerun_is_unchanged(self, engine, project):
        await execute(engine, ADD_RECIPE, name="Org")
        second = await execute(engine, ADD_RECIPE, name="Org")

        assert second.success
        assert second.files_created == []
        assert second.steps[0].message == "unchanged: src/org.ts"

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, engine, project):
        result = await execute(engine, ADD_RECIPE, options=ExecutionOptions(dry_run=True), name="Org")

        assert result.success
        assert result.steps[0].message.startswith("[DRY RUN] Would create")
        assert not (project / "src").exists()

    @pytest.mark.asyncio
    async def test_when_skips_step(self, engine, project):
        text = """
name: r
variables:
  withTests:
    type: boolean
    default: false
steps:
  - tool: add
    when: withTests
    to: test.txt
    body: test
  - tool: add
    when: "!withTests"
    to: plain.txt
    body: plain
"""
        result = await execute(engine, text)

        assert result.steps[0].status == StepStatus.SKIPPED
        assert result.steps[1].status == StepStatus.COMPLETED
        assert not (project / "test.txt").exists()
        assert (project / "plain.txt").exists()

    @pytest.mark.asyncio
    async def test_step_variables_override_defaults(self, engine, project):
        text = """
name: r
variables:
  name:
    default: Order
steps:
  - tool: add
    to: "{{ fileName }}"
    body: x
    variables:
      fileName: "{{ name | snake }}.py"
"""
        result = await execute(engine, text)
        assert result.files_created == ["order.py"]

    @pytest.mark.asyncio
    async def test_failed_step_stops_recipe(self, engine, actions, project):
        def explode(params, context):
            raise RuntimeError("boom")

        actions.register("explode", explode)
        text = """
name: r
steps:
  - tool: add
    to: first.txt
    body: one
  - tool: action
    action: explode
  - tool: add
    to: never.txt
    body: two
"""
        result = await execute(engine, text)

        assert not result.success
        assert len(result.steps) == 2
        assert result.failed_step.step_name == "action-2"
        assert "boom" in result.error
        assert (project / "first.txt").exists()
        assert not (project / "never.txt").exists()

    @pytest.mark.asyncio
    async def test_summary_has_no_timing(self, engine):
        result = await execute(engine, ADD_RECIPE, name="Org")
        summary = result.summary()
        assert "duration_ms" not in str(summary)
        assert summary["files_created"] == ["src/org.ts"]

    @pytest.mark.asyncio
    async def test_raising_tool_becomes_failed_step(self, engine, project):
        class BrokenEcho(EchoTool):
            async def execute(self, step, context):
                raise OSError("disk gone")

        engine.tools.register(BrokenEcho())
        result = await execute(engine, ADD_RECIPE, name="Org")

        assert not result.success
        assert result.failed_step.status == StepStatus.FAILED
        assert result.error == "Step 'echo-2' failed: OSError: disk gone"
        assert (project / "src" / "org.ts").exists()


class TestAddConflicts:
    CONFLICT = "name: r\nsteps:\n  - tool: add\n    to: a.txt\n    body: new\n"

    @pytest.fixture
    def existing(self, project):
        path = project / "a.txt"
        path.write_text("old")
        return path

    @pytest.mark.asyncio
    async def test_non_interactive_skips(self, engine, existing):
        result = await execute(engine, self.CONFLICT)
        assert result.steps[0].status == StepStatus.SKIPPED
        assert existing.read_text() == "old"

    @pytest.mark.asyncio
    async def test_yes_overwrites(self, engine, existing):
        result = await execute(engine, self.CONFLICT, options=ExecutionOptions(yes=True))
        assert result.files_modified == ["a.txt"]
        assert existing.read_text() == "new"

    @pytest.mark.asyncio
    async def test_interactive_confirmation(self, project, existing, output):
        prompter = StubPrompter(confirm_answer=True)
        engine = RecipeEngine(project, prompter=prompter, output=output)

        result = await execute(engine, self.CONFLICT, options=ExecutionOptions(interactive=True))

        assert prompter.confirmations == ["a.txt already exists. Overwrite?"]
        assert result.files_modified == ["a.txt"]

    @pytest.mark.asyncio
    async def test_unless_exists(self, engine, existing):
        text = "name: r\nsteps:\n  - tool: add\n    to: a.txt\n    body: new\n    unless_exists: true\n"
        result = await execute(engine, text, options=ExecutionOptions(force=True, yes=True))
        assert result.steps[0].status == StepStatus.COMPLETED
        assert existing.read_text() == "new"

    @pytest.mark.asyncio
    async def test_force_flag_overwrites(self, engine, existing):
        result = await execute(engine, self.CONFLICT, options=ExecutionOptions(force=True))
        assert result.steps[0].message == "forced: a.txt"


class TestInject:
    RECIPE = """
name: register
variables:
  name:
    required: true
steps:
  - tool: inject
    to: src/index.ts
    after: "^import"
    skip_if: "./{{ name }}'"
    body: "import './{{ name }}'"
"""

    @pytest.mark.asyncio
    async def test_second_run_is_skipped(self, engine, project):
        target = project / "src" / "index.ts"
        target.parent.mkdir()
        target.write_text("import React from 'react'\n\nexport {}\n")

        first = await execute(engine, self.RECIPE, name="Org")
        content = target.read_text()
        second = await execute(engine, self.RECIPE, name="Org")

        assert first.files_modified == ["src/index.ts"]
        assert content == "import React from 'react'\nimport './Org'\n\nexport {}\n"
        assert second.steps[0].status == StepStatus.SKIPPED
        assert target.read_text() == content

    @pytest.mark.asyncio
    async def test_missing_target_fails_step(self, engine):
        result = await execute(engine, self.RECIPE, name="Org")
        assert not result.success
        assert "non-existent file" in result.error

    @pytest.mark.asyncio
    async def test_crlf_file_keeps_crlf(self, engine, project):
        target = project / "src" / "index.ts"
        target.parent.mkdir()
        target.write_bytes(b"import a from 'a'\r\nexport {}\r\n")

        await execute(engine, self.RECIPE, name="Org")

        assert target.read_bytes() == b"import a from 'a'\r\nimport './Org'\r\nexport {}\r\n"


class TestActions:
    @pytest.mark.asyncio
    async def test_unregistered_action_suggests_similar(self, engine, actions):
        actions.register("create-model", lambda params, context: None)

        with pytest.raises(RecipeValidationError) as exc_info:
            await execute(engine, "name: r\nsteps:\n  - tool: action\n    action: create-modle\n")

        assert "Action 'create-modle' is not registered" in str(exc_info.value)
        assert "Similar actions available: create-model" in str(exc_info.value)

    def test_missing_parameter_is_only_a_warning(self, engine, actions):
        actions.register("greet", lambda params, context: params, parameters=[ActionParameter("who", required=True)])
        recipe = parse_recipe("name: r\nsteps:\n  - tool: action\n    action: greet\n")

        report = engine.validate(recipe)

        assert report.is_valid
        assert "will be prompted" in report.warnings[0]

    @pytest.mark.asyncio
    async def test_actions_share_values(self, engine, actions):
        actions.register("make-token", lambda params, context: ActionOutcome(output="t-123", message="made"))

        @actions.register("use-token")
        async def use_token(params, context):
            return f"{params['token']}:{params['suffix']}"

        text = """
name: r
variables:
  suffix:
    default: abc
steps:
  - tool: action
    action: make-token
    writes: [token]
  - tool: action
    action: use-token
    reads: [token]
    parameters:
      suffix: "{{ suffix }}"
"""
        result = await execute(engine, text)

        assert result.success
        assert result.steps[0].message == "made"
        assert result.steps[1].output == "t-123:abc"
        assert result.steps[1].metadata["reads"] == ["token"]


class TestCollectPass:
    RECIPE = """
name: r
steps:
  - tool: add
    to: before.txt
    body: before
  - tool: ai
    key: summary
    prompt: Summarize
  - tool: add
    to: after.txt
    body: "{{ summary }}"
  - tool: shell
    command: "touch shell-ran"
"""

    @pytest.mark.asyncio
    async def test_collect_pass(self, engine, project):
        collector = AiCollector()
        collector.enter_collect_mode()

        result = await execute(engine, self.RECIPE, collector=collector)

        assert result.success
        assert collector.keys() == ["summary"]
        assert not (project / "before.txt").exists()
        assert not (project / "after.txt").exists()
        assert result.steps[0].message.startswith("[DRY RUN]")
        assert result.steps[2].message.startswith("[DRY RUN]")
        assert result.steps[3].metadata == {"collect_pass": True}
        assert not (project / "shell-ran").exists()

    @pytest.mark.asyncio
    async def test_answers_flow_into_later_steps(self, engine, project):
        result = await execute(engine, self.RECIPE.replace("touch shell-ran", "true"), answers={"summary": "A short summary"})

        assert result.success
        assert (project / "after.txt").read_text() == "A short summary"
        assert result.variables["summary"] == "A short summary"
