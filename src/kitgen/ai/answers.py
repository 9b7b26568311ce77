"""Answers file: the handoff between a deferred run and its resumption.

Version 1 wraps the answers with metadata:

    {"version": 1, "recipe": "resource", "answers": {"summary": "..."}}

A bare mapping of key to text is read as version 0 so hand-written files keep
working. Any other version is rejected rather than guessed at.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import AnswersFileError
from ..utils import atomic_write_text

logger = logging.getLogger(__name__)

ANSWERS_VERSION = 1
SUPPORTED_VERSIONS = frozenset({0, 1})


class AnswersFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: int = ANSWERS_VERSION
    recipe: str | None = None
    created_at: datetime | None = None
    answers: dict[str, str] = Field(default_factory=dict)


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def parse_answers(data: Any, source: str = "<answers>") -> AnswersFile:
    """Normalize raw JSON data into an AnswersFile."""
    if not isinstance(data, dict):
        raise AnswersFileError(f"{source}: expected a JSON object, got {type(data).__name__}")

    if "answers" in data and isinstance(data.get("answers"), dict) and "version" in data:
        version = data["version"]
        if version not in SUPPORTED_VERSIONS:
            raise AnswersFileError(f"{source}: unsupported answers file version {version!r} (supported: 0, 1)")
        payload = {**data, "answers": {key: _as_text(value) for key, value in data["answers"].items()}}
        try:
            return AnswersFile.model_validate(payload)
        except ValidationError as e:
            raise AnswersFileError(f"{source}: {e}") from e

    return AnswersFile(version=0, answers={str(key): _as_text(value) for key, value in data.items()})


def load_answers(path: Path | str) -> dict[str, str]:
    """Load answers from a file written by a person or a transport.

    Raises:
        AnswersFileError: If the file is missing, not JSON, or of an unknown version.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise AnswersFileError(f"Cannot read answers file {path}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise AnswersFileError(f"Answers file {path} is not valid JSON: {e}") from e

    answers_file = parse_answers(data, source=str(path))
    logger.debug(f"Loaded {len(answers_file.answers)} answers (version {answers_file.version}) from {path}")
    return answers_file.answers


def save_answers(path: Path | str, answers: dict[str, str], recipe: str | None = None) -> Path:
    """Write answers in the current versioned format."""
    path = Path(path)
    document = AnswersFile(recipe=recipe, created_at=datetime.now(timezone.utc), answers=answers)
    atomic_write_text(path, document.model_dump_json(indent=2) + "\n")
    return path
