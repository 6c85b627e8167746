"""Translate `.gitignore` lines into compiled regular expressions.

Supported subset
----------------
- `!` negation, leading `/` anchoring, trailing `/` for directories.
- `*` within one path segment, `**` across segments (`**/x`, `a/**/b`, `a/**`).
- `?` and bracket classes (`[abc]`, `[a-z]`, `[!abc]`), never matching `/`.
- `\\` escapes the next character.

Patterns without a leading `/` match at any depth, even when they contain an
inner `/`. Anything else git supports (e.g. per-directory `.gitignore` files,
`core.excludesFile`) is out of scope.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from compact_repo.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

GITIGNORE_FILE = ".gitignore"

_ANY_DEPTH_PREFIX = "(?:.*/)?"
_SEGMENT_CHAR = "[^/]"
_CLASS_ESCAPES = frozenset("\\[]^&~|")


class IgnoreRule(BaseModel):
    """One compiled ignore line.

    Attributes:
        pattern: Raw pattern, without the leading `!`.
        negated: The line started with `!` and re-includes matching paths.
        anchored_to_root: The pattern started with `/`.
        directory_only: The pattern ended with `/`.
        regex: Compiled matcher over `/`-separated root-relative paths.
        position: Index of the line in its source, used for last-match-wins.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    pattern: str = Field(..., description="Pattern without negation prefix")
    negated: bool = Field(default=False)
    anchored_to_root: bool = Field(default=False)
    directory_only: bool = Field(default=False)
    regex: re.Pattern[str] = Field(..., description="Compiled matcher")
    position: int = Field(default=0, ge=0)

    def matches(self, rel: str) -> bool:
        """Check whether a root-relative path is matched by this rule."""
        return self.regex.match(rel) is not None


def _translate_class(body: str, start: int) -> tuple[str, int] | None:
    """Translate a bracket expression starting at `body[start] == "["`.

    Returns:
        tuple[str, int] | None: the regex class and the index after `]`, or
            None when the bracket is unterminated (the caller treats it literally).
    """
    i = start + 1
    negate = False
    if i < len(body) and body[i] in "!^":
        negate = True
        i += 1
    first = i
    # a "]" right after the opening (or after the negation) is a literal member
    while i < len(body) and (body[i] != "]" or i == first):
        i += 1
    if i >= len(body):
        return None
    members = "".join(
        "\\" + c if c in _CLASS_ESCAPES else c for c in body[first:i] if c != "/"
    )
    if not members:
        return None
    if negate:
        return f"[^/{members}]", i + 1
    return f"[{members}]", i + 1


def translate_pattern(pattern: str) -> str:
    """Translate one gitignore pattern (negation already removed) to a regex.

    Args:
        pattern (str): the pattern, e.g. "*.log", "/build/", "**/*.tmp"

    Raises:
        ValueError: if the pattern has no matchable body (e.g. "/").

    Returns:
        str: the regular expression source, anchored at both ends
    """
    anchored = pattern.startswith("/")
    directory_only = pattern.endswith("/")
    body = pattern.strip("/")
    if not body:
        msg = f"empty pattern: {pattern!r}"
        raise ValueError(msg)

    out: list[str] = []
    i = 0
    n = len(body)
    while i < n:
        c = body[i]
        if c == "\\":
            if i + 1 < n:
                out.append(re.escape(body[i + 1]))
                i += 2
            else:
                out.append(re.escape(c))
                i += 1
        elif c == "*":
            j = i
            while j < n and body[j] == "*":
                j += 1
            if j - i == 1:
                out.append(_SEGMENT_CHAR + "*")
            elif (i == 0 or body[i - 1] == "/") and j < n and body[j] == "/":
                # "**/" at the start or "/**/" inside: zero or more directories
                out.append(_ANY_DEPTH_PREFIX)
                j += 1
            else:
                out.append(".*")
            i = j
        elif c == "?":
            out.append(_SEGMENT_CHAR)
            i += 1
        elif c == "[":
            translated = _translate_class(body, i)
            if translated is None:
                out.append(re.escape(c))
                i += 1
            else:
                cls, i = translated
                out.append(cls)
        elif c == "/":
            out.append("/")
            i += 1
        else:
            out.append(re.escape(c))
            i += 1

    starts_any_depth = body.startswith("**/")
    prefix = "^" if anchored or starts_any_depth else "^" + _ANY_DEPTH_PREFIX
    suffix = "/.*$" if directory_only else "(?:/.*)?$"
    return prefix + "".join(out) + suffix


def compile_rule(line: str, position: int = 0) -> IgnoreRule | None:
    """Compile one non-blank, non-comment gitignore line.

    Lines that cannot produce a usable matcher are logged and turned into
    no-op rules (None) instead of failing the whole rule set.

    Args:
        line (str): the raw line, possibly starting with `!`
        position (int): index of the line in its source

    Returns:
        IgnoreRule | None: the compiled rule, or None for a no-op line
    """
    negated = line.startswith("!")
    pattern = line[1:] if negated else line
    try:
        regex = re.compile(translate_pattern(pattern))
    except (ValueError, re.error) as e:
        logger.warning("Ignoring malformed ignore rule %r: %s", line, e)
        return None
    return IgnoreRule(
        pattern=pattern,
        negated=negated,
        anchored_to_root=pattern.startswith("/"),
        directory_only=pattern.endswith("/"),
        regex=regex,
        position=position,
    )


def compile_rules(lines: Iterable[str]) -> tuple[IgnoreRule, ...]:
    """Compile gitignore lines in source order, dropping no-op lines.

    Args:
        lines (Iterable[str]): pre-filtered pattern lines

    Returns:
        tuple[IgnoreRule, ...]: the compiled rules, in source order
    """
    rules: list[IgnoreRule] = []
    for position, line in enumerate(lines):
        rule = compile_rule(line, position)
        if rule is not None:
            rules.append(rule)
    return tuple(rules)


def gitignore_verdict(rel: str, rules: Sequence[IgnoreRule]) -> bool | None:
    """Evaluate rules in order; the last matching rule decides.

    Args:
        rel (str): root-relative path with `/` separators
        rules (Sequence[IgnoreRule]): compiled rules in source order

    Returns:
        bool | None: True if excluded, False if re-included by a negated rule,
            None if no rule matched
    """
    verdict: bool | None = None
    for rule in rules:
        if rule.matches(rel):
            verdict = not rule.negated
    return verdict


def clean_gitignore_lines(text: str) -> list[str]:
    """Split gitignore text into pattern lines.

    Blank lines and lines starting with `#` are dropped. Trailing whitespace
    is removed unless it is escaped with a backslash.
    """
    lines: list[str] = []
    for raw in text.splitlines():
        line = raw.rstrip()
        if line.endswith("\\") and len(raw) > len(line):
            line += " "
        if not line or line.startswith("#"):
            continue
        lines.append(line)
    return lines


def read_gitignore_lines(root: Path) -> list[str]:
    """Read the pattern lines of `<root>/.gitignore`.

    Args:
        root (Path): the tree root

    Returns:
        list[str]: the pattern lines, empty when the file is absent or unreadable
    """
    path = root / GITIGNORE_FILE
    if not path.is_file():
        return []
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
        return []
    return clean_gitignore_lines(text)
