"""Tests for recipe models and loading."""

import pytest

from kitgen.exceptions import RecipeLoadError, RecipeValidationError
from kitgen.recipes.models import AddStep, AiStep, InjectStep, RecipeDefinition
from kitgen.recipes.store import contains_nested_recipes, find_recipe_file, load_recipe, load_recipe_async, parse_recipe

from .conftest import write_recipe


class TestRecipeModels:
    def test_steps_are_tagged_by_tool(self):
        recipe = parse_recipe(
            """
name: model
steps:
  - tool: add
    to: src/{{ name }}.ts
    body: "export {}"
  - tool: inject
    to: src/index.ts
    after: "^import"
    body: "import './{{ name }}'"
  - tool: ai
    prompt: Describe {{ name }}
    output:
      type: variable
      variable: summary
"""
        )

        assert [type(step) for step in recipe.steps] == [AddStep, InjectStep, AiStep]
        assert recipe.steps[2].answer_key == "summary"

    def test_unnamed_steps_get_stable_names(self):
        recipe = parse_recipe("name: r\nsteps:\n  - tool: echo\n    message: a\n  - tool: echo\n    message: b\n")
        assert [step.name for step in recipe.steps] == ["echo-1", "echo-2"]

    def test_duplicate_step_names_rejected(self):
        text = "name: r\nsteps:\n  - {tool: echo, name: x, message: a}\n  - {tool: echo, name: x, message: b}\n"
        with pytest.raises(RecipeValidationError, match="Duplicate step names"):
            parse_recipe(text)

    def test_unknown_tool_rejected(self):
        with pytest.raises(RecipeValidationError):
            parse_recipe("name: r\nsteps:\n  - tool: teleport\n")

    def test_unknown_step_field_rejected(self):
        with pytest.raises(RecipeValidationError):
            parse_recipe("name: r\nsteps:\n  - tool: echo\n    mesage: typo\n")

    def test_from_alias(self):
        recipe = parse_recipe("name: r\nsteps:\n  - tool: add\n    to: out.txt\n    from: templates/out.txt\n")
        assert recipe.steps[0].from_ == "templates/out.txt"

    def test_positional_variables_sorted(self):
        recipe = RecipeDefinition.model_validate(
            {
                "name": "r",
                "variables": {
                    "second": {"position": 1},
                    "plain": {},
                    "first": {"position": 0},
                },
            }
        )
        assert [name for name, _ in recipe.positional_variables()] == ["first", "second"]

    def test_ai_answer_key_precedence(self):
        step = AiStep(tool="ai", name="gen", prompt="p", key="explicit")
        assert step.answer_key == "explicit"
        assert AiStep(tool="ai", name="gen", prompt="p").answer_key == "gen"

    def test_definition_is_frozen(self):
        recipe = parse_recipe("name: r\n")
        with pytest.raises(Exception):
            recipe.name = "other"


class TestRecipeStore:
    def test_load_from_directory(self, tmp_path):
        write_recipe(tmp_path / "widget", "description: A widget\nsteps: []\n")

        recipe = load_recipe(tmp_path / "widget")

        assert recipe.name == "widget"
        assert recipe.source_path == (tmp_path / "widget" / "recipe.yml").resolve()
        assert recipe.directory == (tmp_path / "widget").resolve()

    def test_yaml_extension_accepted(self, tmp_path):
        write_recipe(tmp_path / "w", "name: w\n", filename="recipe.yaml")
        assert find_recipe_file(tmp_path / "w").name == "recipe.yaml"

    def test_invalid_yaml(self, tmp_path):
        write_recipe(tmp_path / "bad", "name: [unclosed\n")
        with pytest.raises(RecipeLoadError, match="invalid YAML"):
            load_recipe(tmp_path / "bad")

    def test_top_level_must_be_mapping(self):
        with pytest.raises(RecipeLoadError, match="mapping"):
            parse_recipe("- a\n- b\n")

    def test_missing_recipe(self, tmp_path):
        with pytest.raises(RecipeLoadError):
            load_recipe(tmp_path)

    def test_nested_recipes(self, tmp_path):
        write_recipe(tmp_path / "group" / "a", "name: a\n")
        assert contains_nested_recipes(tmp_path / "group") is True
        assert contains_nested_recipes(tmp_path / "group" / "a") is False

    @pytest.mark.asyncio
    async def test_load_async(self, tmp_path):
        write_recipe(tmp_path / "w", "name: w\nsteps:\n  - tool: echo\n    message: hi\n")
        recipe = await load_recipe_async(tmp_path / "w")
        assert recipe.steps[0].message == "hi"
