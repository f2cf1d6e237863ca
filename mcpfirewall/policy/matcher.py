"""
Filename Pattern Matcher

Shell-style glob matching of a single filename against a deny pattern.
Supports *, ?, [...] and [!...] via fnmatch, plus {a,b} alternation.
Matching is case-sensitive and never raises: a pattern that cannot be
compiled simply matches nothing.
"""

import fnmatch
import re
from functools import lru_cache

# Upper bound on alternatives produced by brace expansion
MAX_BRACE_ALTERNATIVES = 256


def basename(path: str) -> str:
    """
    Last component of a path.

    Both / and \\ count as separators and trailing separators are
    ignored, so "/a/b/" yields "b".
    """
    trimmed = path.rstrip("/\\")
    if not trimmed:
        return ""
    return re.split(r"[/\\]", trimmed)[-1]


def expand_braces(pattern: str) -> list[str]:
    """
    Expand {a,b} groups into separate patterns.

    Unbalanced braces and groups without a comma are kept literally.

    Raises:
        ValueError: If expansion exceeds MAX_BRACE_ALTERNATIVES.
    """
    start = _find_group(pattern)
    if start is None:
        return [pattern]

    open_idx, close_idx, options = start
    prefix = pattern[:open_idx]
    suffixes = expand_braces(pattern[close_idx + 1:])

    expanded: list[str] = []
    for option in options:
        for head in expand_braces(option):
            for tail in suffixes:
                expanded.append(prefix + head + tail)
                if len(expanded) > MAX_BRACE_ALTERNATIVES:
                    raise ValueError(
                        f"Brace expansion of {pattern!r} exceeds "
                        f"{MAX_BRACE_ALTERNATIVES} alternatives"
                    )
    return expanded


def _find_group(pattern: str) -> tuple[int, int, list[str]] | None:
    """Locate the first balanced {..,..} group and split its options."""
    search_from = 0
    while True:
        open_idx = pattern.find("{", search_from)
        if open_idx == -1:
            return None

        depth = 0
        options: list[str] = []
        current_start = open_idx + 1
        for idx in range(open_idx, len(pattern)):
            char = pattern[idx]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    options.append(pattern[current_start:idx])
                    if len(options) > 1:
                        return open_idx, idx, options
                    break
            elif char == "," and depth == 1:
                options.append(pattern[current_start:idx])
                current_start = idx + 1

        # No comma or unbalanced: this brace is literal, keep looking
        search_from = open_idx + 1


@lru_cache(maxsize=1024)
def _compile(pattern: str) -> tuple[tuple[re.Pattern, bool], ...] | None:
    """Compiled alternatives, each paired with whether it may match a dotfile."""
    try:
        return tuple(
            (re.compile(fnmatch.translate(alternative)), alternative.startswith("."))
            for alternative in expand_braces(pattern)
        )
    except (re.error, ValueError):
        return None


class PatternMatcher:
    """
    Glob matcher for basenames.

    Stateless apart from a shared compilation cache. As in a POSIX shell,
    a leading dot must be matched by a literal dot: "*" does not match
    ".env" but ".*" and ".env" do.

    Usage:
        PatternMatcher.matches("secret.txt", "secret.*")   # True
        PatternMatcher.matches("id_rsa.pub", "id_{rsa,ed25519}*")  # True
        PatternMatcher.matches(".env", "*.env")            # False
    """

    @staticmethod
    def is_valid(pattern: str) -> bool:
        """Whether the pattern compiles."""
        return _compile(pattern) is not None

    @staticmethod
    def matches(filename: str, pattern: str) -> bool:
        """Whether filename matches pattern. Invalid patterns never match."""
        compiled = _compile(pattern)
        if compiled is None:
            return False

        hidden = filename.startswith(".")
        return any(
            regex.match(filename)
            for regex, explicit_dot in compiled
            if explicit_dot or not hidden
        )

    @classmethod
    def first_match(cls, filename: str, patterns: tuple[str, ...]) -> str | None:
        """First pattern in patterns that matches filename, if any."""
        for pattern in patterns:
            if cls.matches(filename, pattern):
                return pattern
        return None
