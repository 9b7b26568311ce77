"""Direct model generation with budget checks and bounded guardrail retry."""

import logging
from dataclasses import dataclass, field

from ..config import AISettings
from ..exceptions import GuardrailError
from ..providers import ChatClient, Completion, get_llm
from ..recipes.models import AiBudget, AiGuardrails
from .cost import BudgetLimits, CostTracker, Usage, estimate_tokens
from .guardrails import GuardrailReport, strip_code_fences, validate_output
from .prompts import build_correction_prompt

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a code generation assistant embedded in a project scaffolding tool. "
    "Return only the requested content, without explanation or markdown fences."
)


@dataclass
class GenerationRequest:
    key: str
    prompt: str
    system: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    guardrails: AiGuardrails = field(default_factory=AiGuardrails)
    budget: AiBudget = field(default_factory=AiBudget)


@dataclass
class GenerationResult:
    text: str
    attempts: int
    usage: Usage
    cost_usd: float
    used_fallback: bool = False
    warnings: list[str] = field(default_factory=list)


class AiService:
    """Calls one model on behalf of AI steps and batched transports."""

    def __init__(
        self,
        client: ChatClient,
        limits: BudgetLimits | None = None,
        cost_tracker: CostTracker | None = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ):
        self.client = client
        self.limits = limits or BudgetLimits()
        self.cost_tracker = cost_tracker or CostTracker()
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, ai_settings: AISettings) -> "AiService | None":
        """Build a service when a provider and credential are configured, else None."""
        if not ai_settings.provider or not ai_settings.has_credential():
            return None
        client = get_llm(
            provider=ai_settings.provider,
            model=ai_settings.model,
            api_key=ai_settings.get_api_key_for_provider(),
            base_url=ai_settings.base_url,
        )
        limits = BudgetLimits(
            max_total_tokens=ai_settings.max_total_tokens,
            max_total_cost_usd=ai_settings.max_total_cost_usd,
            warn_at_cost_usd=ai_settings.warn_at_cost_usd,
        )
        return cls(client, limits=limits, temperature=ai_settings.temperature, max_tokens=ai_settings.max_tokens)

    async def complete(
        self,
        prompt: str,
        system: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float | None = None,
        max_tokens: int | None = None,
        budget: AiBudget | None = None,
    ) -> Completion:
        """Make one budget-checked call and record its cost."""
        limits = self.limits
        if budget is not None and (budget.max_tokens or budget.max_cost_usd):
            limits = BudgetLimits(
                max_total_tokens=budget.max_tokens or limits.max_total_tokens,
                max_total_cost_usd=budget.max_cost_usd or limits.max_total_cost_usd,
                warn_at_cost_usd=limits.warn_at_cost_usd,
            )
        self.cost_tracker.check_budget(limits, estimated_tokens=estimate_tokens(system + prompt))

        completion = await self.client.complete(
            system,
            prompt,
            temperature=self.temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.max_tokens,
        )
        self.cost_tracker.record(completion.model, completion.usage)
        return completion

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate text for one step, retrying with feedback on guardrail failures.

        Raises:
            BudgetExceededError: If a call would exceed the budget.
            GuardrailError: If every attempt fails validation and no fallback applies.
        """
        guardrails = request.guardrails
        attempts_allowed = 1 + guardrails.retry_on_failure
        prompt = request.prompt
        total = Usage()
        cost = 0.0
        report = GuardrailReport()
        text = ""

        for attempt in range(1, attempts_allowed + 1):
            completion = await self.complete(
                prompt,
                system=request.system or DEFAULT_SYSTEM_PROMPT,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
                budget=request.budget,
            )
            total = Usage(total.input_tokens + completion.usage.input_tokens, total.output_tokens + completion.usage.output_tokens)
            cost += self.cost_tracker.cost_for(completion.model, completion.usage)
            text = strip_code_fences(completion.text)
            report = validate_output(text, guardrails)
            if report.passed:
                return GenerationResult(text=text, attempts=attempt, usage=total, cost_usd=cost, warnings=report.warnings)

            logger.info(f"Output for '{request.key}' failed validation (attempt {attempt}/{attempts_allowed}): {report.errors}")
            if guardrails.on_failure == "retry-with-feedback":
                prompt = build_correction_prompt(request.prompt, report.errors, text)

        if guardrails.on_failure == "fallback" and guardrails.fallback is not None:
            logger.warning(f"Using fallback output for '{request.key}' after {attempts_allowed} attempts")
            return GenerationResult(
                text=guardrails.fallback, attempts=attempts_allowed, usage=total, cost_usd=cost, used_fallback=True
            )
        raise GuardrailError(request.key, report.errors)

    async def aclose(self) -> None:
        await self.client.aclose()
