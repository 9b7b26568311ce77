"""Validation rules applied to model-generated output."""

import ast
import json
import re
from dataclasses import dataclass, field

import yaml

from ..recipes.models import AiGuardrails

_FENCE_RE = re.compile(r"^\s*```[\w+-]*\s*\n(.*?)\n\s*```\s*$", re.DOTALL)
_PY_IMPORT_RE = re.compile(
    r"^\s*(?:from\s+([\w.]+)\s+import\s|import\s+([\w.]+(?:\s+as\s+\w+)?(?:\s*,\s*[\w.]+(?:\s+as\s+\w+)?)*)\s*$)", re.MULTILINE
)
_JS_IMPORT_RE = re.compile(r"""(?:import\s[^'"]*?from\s*|import\s*|require\(\s*)['"]([^'"]+)['"]""")
_BRACKETS = {")": "(", "]": "[", "}": "{"}

MIN_OUTPUT_LENGTH = 10


@dataclass
class GuardrailReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors


def strip_code_fences(text: str) -> str:
    """Remove a single markdown fence wrapping the whole text."""
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def extract_imports(text: str) -> list[str]:
    """Module specifiers imported by Python or JavaScript/TypeScript source."""
    found: list[str] = []
    for match in _PY_IMPORT_RE.finditer(text):
        if match.group(1):
            found.append(match.group(1))
        else:
            found.extend(part.strip().split(" as ")[0].strip() for part in match.group(2).split(","))
    found.extend(match.group(1) for match in _JS_IMPORT_RE.finditer(text))
    return [name for name in dict.fromkeys(found) if name]


def _matches(module: str, patterns: list[str]) -> bool:
    for pattern in patterns:
        if module == pattern or module.startswith(pattern + "/") or module.startswith(pattern + "."):
            return True
    return False


def _check_brackets(text: str) -> str | None:
    stack: list[str] = []
    for char in text:
        if char in "([{":
            stack.append(char)
        elif char in _BRACKETS:
            if not stack or stack.pop() != _BRACKETS[char]:
                return f"Unbalanced '{char}'"
    if stack:
        return f"Unclosed '{stack[-1]}'"
    return None


def check_syntax(text: str, language: str) -> str | None:
    """Return a syntax error message, or None when the text parses."""
    match language.lower():
        case "json":
            try:
                json.loads(text)
            except json.JSONDecodeError as e:
                return f"Invalid JSON: {e}"
        case "yaml" | "yml":
            try:
                yaml.safe_load(text)
            except yaml.YAMLError as e:
                return f"Invalid YAML: {e}"
        case "python" | "py":
            try:
                ast.parse(text)
            except SyntaxError as e:
                return f"Invalid Python: {e.msg} (line {e.lineno})"
        case "typescript" | "ts" | "tsx" | "javascript" | "js" | "jsx":
            problem = _check_brackets(text)
            if problem:
                return f"Invalid {language}: {problem}"
        case _:
            return None
    return None


def validate_output(text: str, guardrails: AiGuardrails) -> GuardrailReport:
    """Check generated text against a step's guardrails."""
    report = GuardrailReport()
    if not text.strip():
        report.errors.append("Output is empty")
        return report
    if len(text.strip()) < MIN_OUTPUT_LENGTH:
        report.warnings.append(f"Output is very short ({len(text.strip())} characters)")

    if guardrails.max_output_length is not None and len(text) > guardrails.max_output_length:
        report.errors.append(f"Output is {len(text)} characters, limit is {guardrails.max_output_length}")

    if guardrails.validate_syntax:
        problem = check_syntax(text, guardrails.validate_syntax)
        if problem:
            report.errors.append(problem)

    if guardrails.allowed_imports is not None or guardrails.blocked_imports:
        for module in extract_imports(text):
            if module.startswith("."):
                continue
            if guardrails.blocked_imports and _matches(module, guardrails.blocked_imports):
                report.errors.append(f"Import '{module}' is blocked")
            elif guardrails.allowed_imports is not None and not _matches(module, guardrails.allowed_imports):
                report.errors.append(f"Import '{module}' is not in the allowed list")
    return report
