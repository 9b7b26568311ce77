"""Custom exceptions for kitgen."""


class KitgenError(Exception):
    """Base exception for kitgen errors."""

    pass


class ResolutionError(KitgenError):
    """Raised when CLI path segments do not resolve to a recipe or group."""

    def __init__(self, segments: list[str], searched: list[str] | None = None):
        self.segments = list(segments)
        self.searched = list(searched or [])
        joined = " ".join(self.segments) or "(none)"
        message = f"No recipe or group found for: {joined}"
        if self.searched:
            message += f" (searched: {', '.join(self.searched)})"
        super().__init__(message)


class RecipeLoadError(KitgenError):
    """Raised when a recipe file cannot be read or parsed."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load recipe {path}: {reason}")


class RecipeValidationError(KitgenError):
    """Raised when a recipe has hard validation errors."""

    def __init__(self, errors: list[str], recipe: str | None = None):
        self.errors = list(errors)
        self.recipe = recipe
        prefix = f"Recipe '{recipe}' is invalid" if recipe else "Recipe is invalid"
        super().__init__(f"{prefix}: " + "; ".join(self.errors))


class StepExecutionError(KitgenError):
    """Raised when a step fails during execution."""

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"Step '{step}' failed: {message}")


class TransportConfigError(KitgenError):
    """Raised when the selected AI transport lacks a credential or command."""

    def __init__(self, message: str, remediation: str):
        self.remediation = remediation
        super().__init__(f"{message}\n  Fix: {remediation}")


class TransportError(KitgenError):
    """Raised when an AI transport fails at runtime."""

    pass


class InjectionError(KitgenError):
    """Raised when an injection target is missing or unwritable."""

    pass


class BudgetExceededError(KitgenError):
    """Raised when an AI call would exceed the configured budget."""

    pass


class GuardrailError(KitgenError):
    """Raised when model output still fails guardrails after all retries."""

    def __init__(self, key: str, issues: list[str]):
        self.key = key
        self.issues = list(issues)
        super().__init__(f"Output for '{key}' failed validation: " + "; ".join(self.issues))


class AnswersFileError(KitgenError):
    """Raised when an answers file is unreadable or has an unknown version."""

    pass
