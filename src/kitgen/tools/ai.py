"""AI steps: content that a language model has to produce.

In a collect pass the step records its assembled prompt and writes nothing.
When an answer is available (Pass 2, or an answers file) it is validated
against the step's guardrails and routed to the declared output. With no
answer and a configured provider, the step generates directly.
"""

import logging

from anyio import to_thread

from ..ai.collector import CollectorEntry, PromptExample
from ..ai.context import gather_context
from ..ai.guardrails import strip_code_fences, validate_output
from ..ai.prompts import build_correction_prompt, build_entry_prompt
from ..ai.service import GenerationRequest
from ..exceptions import GuardrailError, KitgenError
from ..recipes.models import AiStep
from ..recipes.results import StepResult
from ..utils import atomic_write_text, read_text
from .base import DRY_RUN_PREFIX, StepContext, Tool, ToolValidationResult
from .files import apply_injection, injection_rule

logger = logging.getLogger(__name__)

OUTPUT_TYPES = ("variable", "file", "inject", "stdout")


def output_description(step: AiStep) -> str:
    if step.output is not None and step.output.format:
        return step.output.format
    if step.guardrails.validate_syntax:
        return f"Valid {step.guardrails.validate_syntax} content only, no surrounding prose."
    return ""


class AiTool(Tool):
    tool_type = "ai"

    def check(self, step: AiStep, context: StepContext, result: ToolValidationResult) -> None:
        if not step.prompt.strip():
            result.errors.append(f"Step '{step.name}': prompt is required")

        output = step.output
        if output is not None:
            if output.type not in OUTPUT_TYPES:
                result.errors.append(f"Step '{step.name}': invalid output type \"{output.type}\". Must be one of: {', '.join(OUTPUT_TYPES)}")
            elif output.type == "variable" and not output.variable:
                result.errors.append(f"Step '{step.name}': output type \"variable\" requires a \"variable\" name")
            elif output.type in ("file", "inject") and not output.to:
                result.errors.append(f"Step '{step.name}': output type \"{output.type}\" requires a \"to\" path")

        if step.temperature is not None and not 0 <= step.temperature <= 2:
            result.errors.append(f"Step '{step.name}': temperature must be between 0 and 2")
        if step.max_tokens is not None and step.max_tokens <= 0:
            result.errors.append(f"Step '{step.name}': max_tokens must be a positive number")

        if context.ai_service is None and step.answer_key not in context.answers:
            result.warnings.append(
                f"Step '{step.name}': no AI provider configured; the prompt will be collected for an answers file"
            )

    async def execute(self, step: AiStep, context: StepContext) -> StepResult:
        key = step.answer_key
        answer = context.answers.get(key)

        if answer is None and context.collector.collect_mode:
            return await self._collect(step, context)

        try:
            if answer is not None:
                text = await self._checked_answer(step, context, strip_code_fences(answer))
            else:
                text = await self._generate(step, context)
            return await self._deliver(step, context, text)
        except KitgenError as e:
            return self.failed(step, str(e))

    async def _collect(self, step: AiStep, context: StepContext) -> StepResult:
        bundle = await to_thread.run_sync(
            gather_context,
            step.context,
            context.project_root,
            {name: result.output for name, result in context.step_results.items()},
            context.variables,
        )
        examples = [PromptExample(output=example.output, input=example.input) for example in step.examples]
        entry = CollectorEntry(
            key=step.answer_key,
            prompt=build_entry_prompt(context.render(step.prompt), examples),
            contexts=bundle.sections,
            output_description=output_description(step),
            type_hint=step.guardrails.validate_syntax,
            examples=examples,
            source=str(context.recipe.source_path) if context.recipe.source_path else context.recipe.name,
            metadata={"step": step.name, "guardrails": step.guardrails.model_dump(exclude_none=True)},
        )
        context.collector.add_entry(entry)
        logger.debug(f"Collected prompt '{entry.key}' ({bundle.tokens} context tokens)")
        return self.completed(step, f"collected prompt '{entry.key}'", metadata={"collected": True, "key": entry.key})

    def _full_prompt(self, step: AiStep, context: StepContext) -> str:
        bundle = gather_context(
            step.context,
            context.project_root,
            {name: result.output for name, result in context.step_results.items()},
            context.variables,
        )
        examples = [PromptExample(output=example.output, input=example.input) for example in step.examples]
        prompt = build_entry_prompt(context.render(step.prompt), examples)
        description = output_description(step)
        if description:
            prompt += f"\n\nExpected output format: {description}"
        if bundle.sections:
            prompt = "## Context\n\n" + "\n\n".join(bundle.sections) + "\n\n## Task\n\n" + prompt
        return prompt

    async def _generate(self, step: AiStep, context: StepContext, prompt: str | None = None) -> str:
        if context.ai_service is None:
            raise KitgenError(
                f"No answer for '{step.answer_key}' and no AI provider configured. "
                f"Add '{step.answer_key}' to the answers file or set KITGEN_AI_PROVIDER."
            )
        request = GenerationRequest(
            key=step.answer_key,
            prompt=prompt or self._full_prompt(step, context),
            system=step.system,
            temperature=step.temperature,
            max_tokens=step.max_tokens,
            guardrails=step.guardrails,
            budget=step.budget,
        )
        result = await context.ai_service.generate(request)
        return result.text

    async def _checked_answer(self, step: AiStep, context: StepContext, answer: str) -> str:
        report = validate_output(answer, step.guardrails)
        for warning in report.warnings:
            logger.info(f"Answer for '{step.answer_key}': {warning}")
        if report.passed:
            return answer

        guardrails = step.guardrails
        if guardrails.on_failure == "retry-with-feedback" and context.ai_service is not None:
            logger.info(f"Answer for '{step.answer_key}' failed validation; regenerating with feedback")
            return await self._generate(step, context, build_correction_prompt(self._full_prompt(step, context), report.errors, answer))
        if guardrails.on_failure == "fallback" and guardrails.fallback is not None:
            logger.warning(f"Answer for '{step.answer_key}' failed validation; using fallback")
            return guardrails.fallback
        raise GuardrailError(step.answer_key, report.errors)

    async def _deliver(self, step: AiStep, context: StepContext, text: str) -> StepResult:
        output = step.output
        kind = output.type if output is not None else "variable"
        variable = (output.variable if output is not None and output.variable else None) or step.answer_key

        match kind:
            case "variable":
                context.set_variable(variable, text)
                return self.completed(step, f"set variable '{variable}'", output=text)
            case "stdout":
                context.emit(text)
                return self.completed(step, "printed generated output", output=text)
            case "file":
                target = context.resolve_path(output.to)
                shown = context.display_path(target)
                if context.dry_run:
                    return self.completed(step, f"{DRY_RUN_PREFIX} Would write {shown}", output=text)
                existed = target.exists()
                if existed and await to_thread.run_sync(read_text, target) == text:
                    return self.completed(step, f"unchanged: {shown}", output=text)
                await to_thread.run_sync(atomic_write_text, target, text)
                if existed:
                    return self.completed(step, f"wrote: {shown}", output=text, files_modified=[shown])
                return self.completed(step, f"wrote: {shown}", output=text, files_created=[shown])
            case "inject":
                target = context.resolve_path(output.to)
                shown = context.display_path(target)
                skip_if = context.render(output.skip_if) if output.skip_if else None
                changed, skip_reason = await apply_injection(target, text, injection_rule(output, skip_if), context.dry_run)
                if skip_reason:
                    return self.skipped(step, f"{skip_reason} ({shown})", output=text)
                if context.dry_run or not changed:
                    return self.completed(step, f"{DRY_RUN_PREFIX if context.dry_run else 'unchanged:'} {shown}", output=text)
                return self.completed(step, f"injected: {shown}", output=text, files_modified=[shown])
            case _:
                return self.failed(step, f"Unknown output type: {kind}")
