"""Static discovery of ``require()`` calls in CommonJS sources."""

from __future__ import annotations

import bisect
import re
from typing import List, Tuple

_TOKEN_RE = re.compile(
    r"""
    (?P<string>'(?:\\.|[^'\\\n])*'|"(?:\\.|[^"\\\n])*"|`(?:\\.|[^`\\])*`)
    |(?P<line>//[^\n]*)
    |(?P<block>/\*.*?(?:\*/|\Z))
    """,
    re.DOTALL | re.VERBOSE,
)

_REQUIRE_RE = re.compile(
    r"""(?<![\w$.])require\s*\(\s*(?P<quote>['"])(?P<name>(?:\\.|(?!(?P=quote)).)*)(?P=quote)\s*\)"""
)


def scan(source: str) -> Tuple[str, List[Tuple[int, int]]]:
    """Return ``source`` with comments blanked, plus the spans of its string literals.

    Offsets and line breaks are preserved so positions in the masked text are
    valid positions in the original.
    """
    spans: List[Tuple[int, int]] = []

    def _replace(match: re.Match[str]) -> str:
        if match.group("string") is not None:
            spans.append(match.span())
            return match.group(0)
        return re.sub(r"[^\n]", " ", match.group(0))

    return _TOKEN_RE.sub(_replace, source), spans


def in_string(offset: int, spans: List[Tuple[int, int]]) -> bool:
    """Return True when ``offset`` falls inside one of the string ``spans``."""
    index = bisect.bisect_right(spans, (offset, float("inf"))) - 1
    return index >= 0 and spans[index][0] <= offset < spans[index][1]


def find_requires(source: str) -> List[str]:
    """Return the distinct static ``require()`` specifiers in source order."""
    masked, spans = scan(source)
    seen: List[str] = []
    for match in _REQUIRE_RE.finditer(masked):
        if in_string(match.start(), spans):
            continue
        name = match.group("name")
        if name not in seen:
            seen.append(name)
    return seen


__all__ = ["find_requires", "in_string", "scan"]
