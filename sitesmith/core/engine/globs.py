"""
Glob matching for plugin patterns and ignore lists.

Patterns are matched against POSIX-style relative paths
(``posts/2001/hello.md``) with the usual shell-glob rules plus:

  - ``**`` as a whole segment matches zero or more directories
  - ``{a,b}`` brace alternatives (may nest)
  - a leading ``.`` in a path segment is only matched by a literal dot,
    so ``*`` and ``**`` never pick up hidden files or directories

``fnmatch`` does not know about segments, so patterns are compiled
to regular expressions here and cached.
"""

from __future__ import annotations

import re
from functools import lru_cache

__all__ = ["expand_braces", "glob_match", "match_any"]

_SEG_ANY = r"(?!\.)[^/]*"


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives: ``*.{md,txt}`` → ``['*.md', '*.txt']``."""
    start = pattern.find("{")
    if start == -1:
        return [pattern]

    depth = 0
    parts: list[str] = []
    last = start + 1
    for i in range(start, len(pattern)):
        ch = pattern[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                parts.append(pattern[last:i])
                head, tail = pattern[:start], pattern[i + 1:]
                result: list[str] = []
                for part in parts:
                    result.extend(expand_braces(head + part + tail))
                return result
        elif ch == "," and depth == 1:
            parts.append(pattern[last:i])
            last = i + 1

    # Unbalanced brace, treat literally
    return [pattern]


def _segment_to_regex(segment: str) -> str:
    out: list[str] = []
    i, n = 0, len(segment)
    while i < n:
        ch = segment[i]
        if ch == "*":
            while i + 1 < n and segment[i + 1] == "*":
                i += 1
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            end = segment.find("]", i + 2)
            if end == -1:
                out.append(re.escape(ch))
            else:
                body = segment[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = end
        else:
            out.append(re.escape(ch))
        i += 1

    regex = "".join(out)
    if not segment.startswith("."):
        regex = r"(?!\.)" + regex
    return regex


def _pattern_to_regex(pattern: str) -> str:
    segments = pattern.strip("/").split("/")
    out = ""
    for idx, segment in enumerate(segments):
        last = idx == len(segments) - 1
        if segment == "**":
            if last and out.endswith("/"):
                # "drafts/**" also matches the directory "drafts" itself
                out = out[:-1] + rf"(?:/{_SEG_ANY}(?:/{_SEG_ANY})*)?"
            elif last:
                out += rf"(?:{_SEG_ANY}(?:/{_SEG_ANY})*)?"
            else:
                out += rf"(?:{_SEG_ANY}/)*"
            continue
        out += _segment_to_regex(segment)
        if not last:
            out += "/"
    return out


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    alternatives = [_pattern_to_regex(p) for p in expand_braces(pattern)]
    return re.compile(r"\A(?:" + "|".join(alternatives) + r")\Z")


def glob_match(path: str, pattern: str) -> bool:
    """Return True if the relative *path* matches glob *pattern*."""
    return _compile(pattern).match(path.replace("\\", "/")) is not None


def match_any(path: str, patterns: list[str]) -> str | None:
    """Return the first pattern in *patterns* matching *path*, or None."""
    for pattern in patterns:
        if glob_match(path, pattern):
            return pattern
    return None
