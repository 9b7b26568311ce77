"""Prompt text for AI generation.

Two shapes are produced here:
1. Per-entry prompts: what an AI step records into the collector.
2. The prompt document: every pending entry assembled into one markdown
   request that a model, a command or a human can answer as JSON.
"""

import json

from .collector import AiCollector, CollectorEntry, PromptExample

DEFAULT_ANSWERS_PATH = "./ai-answers.json"

# --- Batched answering ---

BATCH_SYSTEM_PROMPT = """You are a code generation assistant. You will receive a document with one or more \
generation requests, each identified by a key.

Respond with a single JSON object whose keys are exactly: {keys}
Each value must be a string holding the complete generated content for that key.
Do not wrap the JSON in markdown code fences and do not add commentary."""

JSON_ONLY_SUFFIX = """

Respond with ONLY a valid JSON object. No markdown fences, no explanation."""

CORRECTION_TEMPLATE = """

## Correction Required

Your previous output failed validation:
{issues}

Previous output:
```
{previous}
```

Return a corrected version that resolves every issue above."""


def format_examples(examples: list[PromptExample]) -> str:
    """Render few-shot examples as markdown."""
    blocks = []
    for index, example in enumerate(examples, start=1):
        lines = [f"**Example {index}:**"]
        if example.input:
            lines.append(f"Input: {example.input}")
        lines.append("```")
        lines.append(example.output)
        lines.append("```")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_entry_prompt(prompt: str, examples: list[PromptExample]) -> str:
    """Prompt text recorded for a single AI step."""
    if not examples:
        return prompt.strip()
    return f"{prompt.strip()}\n\n{format_examples(examples)}"


def build_correction_prompt(prompt: str, issues: list[str], previous: str) -> str:
    """Append validation feedback to a prompt for a retry."""
    issue_lines = "\n".join(f"- {issue}" for issue in issues)
    return prompt + CORRECTION_TEMPLATE.format(issues=issue_lines, previous=previous)


def build_single_prompt(entry: CollectorEntry) -> str:
    """Standalone prompt for one entry, used when answering entries one at a time."""
    parts: list[str] = []
    if entry.contexts:
        parts.append("## Context\n")
        parts.extend(entry.contexts)
        parts.append("")
    parts.append(entry.prompt)
    if entry.output_description.strip():
        parts.append("")
        parts.append("**Expected output format:**\n")
        parts.append(entry.output_description)
    parts.append("")
    parts.append("Respond with only the requested content.")
    return "\n".join(parts)


def response_schema(entries: list[CollectorEntry]) -> dict[str, str]:
    return {entry.key: "<see format above>" if entry.output_description.strip() else "<your answer>" for entry in entries}


def assemble_prompt_document(
    collector: AiCollector,
    original_command: str | None = None,
    answers_path: str = DEFAULT_ANSWERS_PATH,
) -> str:
    """Assemble every pending entry into one self-contained markdown request.

    Args:
        collector: Collector holding the pending entries
        original_command: Command line to re-run with the answers; omit it to
            leave out the instructions section (for automated answering)
        answers_path: Suggested location of the answers file

    Returns:
        The markdown document
    """
    entries = collector.get_entries()
    global_contexts = collector.global_contexts
    parts: list[str] = ["# Kitgen AI Generation Request\n"]

    if global_contexts or any(entry.contexts for entry in entries):
        parts.append("## Context\n")
        if global_contexts:
            parts.append("### Global Context\n")
            for context in global_contexts:
                parts.append(context)
                parts.append("")
        for entry in entries:
            if entry.contexts:
                parts.append(f"### Context for `{entry.key}`\n")
                for context in entry.contexts:
                    parts.append(context)
                    parts.append("")

    parts.append("## Prompts\n")
    for entry in entries:
        parts.append(f"### `{entry.key}`\n")
        parts.append(entry.prompt)
        parts.append("")
        if entry.output_description.strip():
            parts.append("**Expected output format:**\n")
            parts.append(entry.output_description)
            parts.append("")

    parts.append("## Response Format\n")
    parts.append("Respond with a JSON object:\n")
    parts.append("```json")
    parts.append(json.dumps(response_schema(entries), indent=2))
    parts.append("```\n")

    if original_command:
        parts.append("## Instructions\n")
        parts.append("Save your response as JSON to a file and run:\n")
        parts.append("```")
        parts.append(f"{original_command} --answers {answers_path}")
        parts.append("```\n")

    return "\n".join(parts)
