"""Recipe definition schema.

A recipe is a YAML document with a name, declared variables and an ordered
list of steps. Each step is tagged by `tool` and carries the payload that tool
understands. Definitions are frozen once parsed.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

VariableType = Literal["string", "boolean", "number", "enum", "array", "object"]
OverflowPolicy = Literal["truncate", "skip", "error"]
FailurePolicy = Literal["error", "retry-with-feedback", "fallback"]

FILE_MUTATION_TOOLS = frozenset({"add", "inject"})
# Tools whose side effects cannot be safely repeated by a second pass
DEFERRED_IN_COLLECT_PASS = frozenset({"shell", "setup", "action", "echo"})


class VariableDefinition(BaseModel):
    """A declared recipe variable."""

    model_config = ConfigDict(frozen=True)

    type: VariableType = "string"
    required: bool = False
    default: Any = None
    suggestion: Any = None
    description: str = ""
    position: int | None = Field(default=None, ge=0, description="Zero-based index among leftover CLI tokens")
    values: list[Any] | None = Field(default=None, description="Allowed values for enum variables")
    min: float | None = None
    max: float | None = None
    pattern: str | None = None

    @field_validator("values")
    @classmethod
    def validate_values(cls, v: list[Any] | None) -> list[Any] | None:
        if v is not None and not v:
            raise ValueError("values must not be empty")
        return v


class _StepBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str = ""
    description: str = ""
    when: str | None = Field(default=None, description="Variable name (or !name) that must be truthy to run")
    variables: dict[str, Any] = Field(default_factory=dict, description="Step-local variable overrides")

    # Advisory communication metadata, never an ordering guarantee
    action_id: str | None = None
    subscribe_to: list[str] = Field(default_factory=list)
    reads: list[str] = Field(default_factory=list)
    writes: list[str] = Field(default_factory=list)


class ActionStep(_StepBase):
    tool: Literal["action"]
    action: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class AddStep(_StepBase):
    tool: Literal["add"]
    to: str = ""
    body: str | None = None
    from_: str | None = Field(default=None, alias="from")
    unless_exists: bool = False
    force: bool = False
    skip_if: str | None = None


class InjectStep(_StepBase):
    tool: Literal["inject"]
    to: str = ""
    body: str | None = None
    from_: str | None = Field(default=None, alias="from")
    at_line: int | None = None
    before: str | None = None
    after: str | None = None
    prepend: bool = False
    append: bool = False
    skip_if: str | None = None
    eol_last: bool = True


class ShellStep(_StepBase):
    tool: Literal["shell"]
    command: str = ""
    cwd: str | None = None


class SetupStep(_StepBase):
    tool: Literal["setup"]
    commands: list[str] = Field(default_factory=list)
    cwd: str | None = None


class EchoStep(_StepBase):
    tool: Literal["echo"]
    message: str = ""


class AiContextSpec(BaseModel):
    """Where an AI step gathers prompt context from."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    files: list[str] = Field(default_factory=list)
    globs: list[str] = Field(default_factory=list)
    from_steps: list[str] = Field(default_factory=list)
    project_config: bool = False
    max_context_tokens: int = Field(default=8000, gt=0)
    overflow: OverflowPolicy = "truncate"


class AiExample(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    input: str = ""
    output: str


class AiOutput(BaseModel):
    """Where a generated answer goes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str = "variable"
    variable: str | None = None
    to: str | None = None
    at_line: int | None = None
    before: str | None = None
    after: str | None = None
    prepend: bool = False
    append: bool = False
    skip_if: str | None = None
    format: str | None = Field(default=None, description="Expected output format, shown in the prompt document")


class AiGuardrails(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    validate_syntax: str | None = None
    allowed_imports: list[str] | None = None
    blocked_imports: list[str] | None = None
    max_output_length: int | None = Field(default=None, gt=0)
    retry_on_failure: int = Field(default=0, ge=0, le=10)
    on_failure: FailurePolicy = "error"
    fallback: str | None = None


class AiBudget(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_tokens: int | None = Field(default=None, gt=0)
    max_cost_usd: float | None = Field(default=None, gt=0)


class AiStep(_StepBase):
    tool: Literal["ai"]
    key: str | None = None
    prompt: str = ""
    system: str | None = None
    model: str | None = None
    context: AiContextSpec = Field(default_factory=AiContextSpec)
    examples: list[AiExample] = Field(default_factory=list)
    output: AiOutput | None = None
    guardrails: AiGuardrails = Field(default_factory=AiGuardrails)
    budget: AiBudget = Field(default_factory=AiBudget)
    temperature: float | None = None
    max_tokens: int | None = None

    @property
    def answer_key(self) -> str:
        """Identifier of this step's answer in the collector and answers file."""
        if self.key:
            return self.key
        if self.output is not None and self.output.variable:
            return self.output.variable
        return self.name


Step = Annotated[
    Union[ActionStep, AddStep, InjectStep, ShellStep, SetupStep, EchoStep, AiStep],
    Field(discriminator="tool"),
]


class RecipeDefinition(BaseModel):
    """A parsed recipe, immutable for the rest of the invocation."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    version: str | None = None
    variables: dict[str, VariableDefinition] = Field(default_factory=dict)
    steps: list[Step] = Field(default_factory=list)
    source_path: Path | None = Field(default=None, exclude=True)

    @field_validator("steps", mode="before")
    @classmethod
    def name_steps(cls, v: Any) -> Any:
        """Give unnamed steps a stable `<tool>-<n>` name."""
        if not isinstance(v, list):
            return v
        named = []
        for index, raw in enumerate(v, start=1):
            if isinstance(raw, dict) and not raw.get("name"):
                raw = {**raw, "name": f"{raw.get('tool', 'step')}-{index}"}
            named.append(raw)
        return named

    @field_validator("steps")
    @classmethod
    def validate_unique_names(cls, v: list[Any]) -> list[Any]:
        names = [step.name for step in v]
        if len(names) != len(set(names)):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate step names: {', '.join(duplicates)}")
        return v

    @property
    def directory(self) -> Path | None:
        return self.source_path.parent if self.source_path else None

    def positional_variables(self) -> list[tuple[str, VariableDefinition]]:
        """Variables bound by argument position, in position order."""
        positional = [(name, var) for name, var in self.variables.items() if var.position is not None]
        return sorted(positional, key=lambda item: item[1].position)

    def ai_steps(self) -> list[AiStep]:
        return [step for step in self.steps if isinstance(step, AiStep)]
