"""Glob compilation and specificity for path-scoped layers.

Supported syntax:
  ``**``        zero or more whole path segments (must be a segment by itself)
  ``*``         any run of characters within one segment
  ``?``         one character within one segment
  ``[abc]``     character class, ``[!abc]`` negated
  ``{a,b}``     alternatives within one segment

Patterns are compiled once, at load time. A malformed pattern raises
:class:`GlobError` there and never at match time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ctxctl.domain.errors import GlobError
from ctxctl.domain.models import normalize_path

WILDCARD_CHARS = frozenset("*?[{")


@dataclass(frozen=True)
class GlobPattern:
    """A compiled path pattern with its specificity measures."""

    pattern: str
    regex: re.Pattern[str]
    literal_segments: int
    literal_prefix: int

    def matches(self, path: str) -> bool:
        return self.regex.fullmatch(normalize_path(path)) is not None

    def rank_key(self) -> tuple[int, int, str]:
        """Sort key: most specific first, ties broken lexicographically."""
        return (-self.literal_segments, -self.literal_prefix, self.pattern)


def compile_glob(pattern: str) -> GlobPattern:
    """Validate and compile *pattern*.

    Examples:
        >>> g = compile_glob("src/handlers/user.*")
        >>> g.matches("src/handlers/user.handler.ts")
        True
        >>> (g.literal_segments, g.literal_prefix)
        (2, 18)
    """
    normalized = normalize_path(pattern.strip()) if pattern else ""
    if not normalized:
        raise GlobError(pattern, "pattern is empty")

    segments = normalized.split("/")
    if any(seg == "" for seg in segments[:-1]) or segments[-1] == "":
        raise GlobError(pattern, "empty path segment")

    last = len(segments) - 1
    parts: list[str] = []
    for i, seg in enumerate(segments):
        if seg == "**":
            parts.append(".+" if i == last else "(?:[^/]+/)*")
            continue
        parts.append(_translate_segment(seg, pattern))
        if i != last:
            parts.append("/")

    try:
        regex = re.compile("".join(parts))
    except re.error as exc:
        raise GlobError(pattern, str(exc)) from exc

    literal_segments = sum(1 for seg in segments if not WILDCARD_CHARS.intersection(seg))
    first_wild = next((i for i, ch in enumerate(normalized) if ch in WILDCARD_CHARS), None)
    literal_prefix = len(normalized) if first_wild is None else first_wild

    return GlobPattern(
        pattern=normalized,
        regex=regex,
        literal_segments=literal_segments,
        literal_prefix=literal_prefix,
    )


# ---------------------------------------------------------------------------
# Segment translation
# ---------------------------------------------------------------------------


def _translate_segment(seg: str, pattern: str) -> str:
    out: list[str] = []
    i = 0
    n = len(seg)
    while i < n:
        ch = seg[i]
        if ch == "*":
            if i + 1 < n and seg[i + 1] == "*":
                raise GlobError(pattern, "'**' must be a whole path segment")
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            end = _class_end(seg, i)
            if end < 0:
                raise GlobError(pattern, "unbalanced '['")
            body = seg[i + 1 : end]
            if body.startswith("!"):
                body = "^" + body[1:]
            elif body.startswith("^"):
                body = "\\" + body
            out.append("[" + body.replace("\\", "\\\\") + "]")
            i = end
        elif ch == "{":
            end = seg.find("}", i + 1)
            if end < 0:
                raise GlobError(pattern, "unbalanced '{'")
            body = seg[i + 1 : end]
            if "{" in body:
                raise GlobError(pattern, "nested '{' is not supported")
            options = body.split(",")
            if not body or any(opt == "" for opt in options):
                raise GlobError(pattern, "empty alternative in '{...}'")
            out.append("(?:" + "|".join(_translate_segment(o, pattern) for o in options) + ")")
            i = end
        elif ch == "}":
            raise GlobError(pattern, "unbalanced '}'")
        else:
            out.append(re.escape(ch))
        i += 1
    return "".join(out)


def _class_end(seg: str, start: int) -> int:
    """Index of the ``]`` closing the class opened at *start*, or -1."""
    j = start + 1
    if j < len(seg) and seg[j] in "!^":
        j += 1
    # A leading ']' is a literal member of the class.
    if j < len(seg) and seg[j] == "]":
        j += 1
    return seg.find("]", j)
