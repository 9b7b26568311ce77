"""Pure content injection into existing files.

The injector never touches the file system: callers read the target, pass its
contents in, and write back whatever comes out. The target's dominant line
ending is detected and reused so injected content never mixes conventions.
"""

import re
from dataclasses import dataclass
from typing import Literal

from .exceptions import InjectionError

Location = Literal["at_line", "before", "after", "prepend", "append"]


@dataclass(frozen=True, slots=True)
class InjectionRule:
    """Where to splice a body into existing content.

    `line` is a zero-based line index for `at_line`: the body becomes that line.
    `pattern` is a regular expression for `before` and `after`.
    """

    location: Location
    pattern: str | None = None
    line: int | None = None
    skip_if: str | None = None
    eol_last: bool = True


@dataclass(frozen=True, slots=True)
class InjectionResult:
    content: str
    changed: bool
    skipped: bool = False
    reason: str | None = None


def detect_eol(content: str) -> str:
    """Return the dominant line ending in `content` ("\\r\\n" or "\\n")."""
    crlf = content.count("\r\n")
    lf = content.count("\n") - crlf
    return "\r\n" if crlf > lf else "\n"


def should_skip(content: str, skip_if: str | None) -> bool:
    """True when the skip condition already matches the existing content."""
    if not skip_if:
        return False
    try:
        return re.search(skip_if, content, re.MULTILINE) is not None
    except re.error:
        return skip_if in content


def _normalize_body(body: str, eol: str, eol_last: bool) -> str:
    text = body.replace("\r\n", "\n").replace("\r", "\n")
    if eol_last:
        if not text.endswith("\n"):
            text += "\n"
    else:
        text = text.rstrip("\n")
    return text.replace("\n", eol)


def _line_starts(content: str, eol: str) -> list[int]:
    starts = [0]
    index = content.find(eol)
    while index != -1:
        starts.append(index + len(eol))
        index = content.find(eol, index + len(eol))
    return starts


def _compile(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern, re.MULTILINE)
    except re.error:
        return re.compile(re.escape(pattern), re.MULTILINE)


def _find_line(content: str, eol: str, pattern: str, after: bool) -> int | None:
    """Return the line index whose match anchors the injection.

    Each line is tried on its own first; when no single line matches, the
    pattern is retried against the whole text so it may span lines.
    """
    regex = _compile(pattern)
    lines = content.split(eol)
    for index, line in enumerate(lines):
        if regex.search(line):
            return index

    spanning = re.compile(regex.pattern, re.MULTILINE | re.DOTALL).search(content)
    if spanning is None:
        return None
    offset = spanning.end() if after else spanning.start()
    if after and spanning.end() > spanning.start():
        offset -= 1
    return content.count(eol, 0, offset)


def _offset_for(content: str, eol: str, rule: InjectionRule) -> int:
    starts = _line_starts(content, eol)
    match rule.location:
        case "prepend":
            return 0
        case "append":
            return len(content)
        case "at_line":
            if rule.line is None:
                raise InjectionError("at_line injection requires a line number")
            if rule.line < 0:
                raise InjectionError(f"Line number must not be negative: {rule.line}")
            if rule.line >= len(starts):
                return len(content)
            return starts[rule.line]
        case "before" | "after":
            if not rule.pattern:
                raise InjectionError(f"'{rule.location}' injection requires a pattern")
            is_after = rule.location == "after"
            line = _find_line(content, eol, rule.pattern, after=is_after)
            if line is None:
                raise InjectionError(f"Pattern not found: {rule.pattern!r}")
            if not is_after:
                return starts[line]
            if line + 1 < len(starts):
                return starts[line + 1]
            return len(content)
        case _:
            raise InjectionError(f"Unknown injection location: {rule.location}")


def inject(content: str, body: str, rule: InjectionRule) -> InjectionResult:
    """Splice `body` into `content` according to `rule`.

    Returns the new content; when the rule's skip condition already matches,
    the content is returned unchanged and the result is marked skipped.

    Raises:
        InjectionError: If the rule is incomplete or its pattern is not found.
    """
    if should_skip(content, rule.skip_if):
        return InjectionResult(content=content, changed=False, skipped=True, reason=f"skip_if matched: {rule.skip_if}")

    eol = detect_eol(content)
    text = _normalize_body(body, eol, rule.eol_last)
    offset = _offset_for(content, eol, rule)
    if not rule.eol_last and offset < len(content):
        # Body stays on its own line unless it ends the file
        text += eol

    # Splicing at the very end of a file without a final newline needs a separator
    if offset == len(content) and content and not content.endswith(eol) and rule.location != "prepend":
        text = eol + text

    new_content = content[:offset] + text + content[offset:]
    return InjectionResult(content=new_content, changed=new_content != content)
