from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import re
from typing import Iterable

from .urls import parse_url


DEFAULT_ORIGIN_WHITELIST: tuple[str, ...] = ("https://*",)

# Blocked navigations are replaced with about:blank, so it must always render.
ALWAYS_ALLOWED: tuple[str, ...] = ("about:blank",)


def pattern_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a whitelist entry such as ``https://*.example.com``.

    Every character is literal except ``*``, which matches any run of
    characters. Callers must use ``fullmatch`` so the pattern stays anchored.
    """

    return re.compile(re.escape(str(pattern)).replace(r"\*", ".*"))


@dataclass(frozen=True, slots=True)
class CompiledWhitelist:
    patterns: tuple[str, ...]
    regexes: tuple[re.Pattern[str], ...]

    def matches(self, url: object) -> bool:
        parsed = parse_url(url)
        if parsed is None:
            return False

        # Opaque origins (custom schemes, about:blank) fall back to the href.
        value = parsed.origin if parsed.origin else parsed.href
        return any(rx.fullmatch(value) is not None for rx in self.regexes)

    def __contains__(self, url: object) -> bool:
        return self.matches(url)


@lru_cache(maxsize=64)
def _compile(patterns: tuple[str, ...]) -> CompiledWhitelist:
    full = ALWAYS_ALLOWED + patterns
    return CompiledWhitelist(
        patterns=full,
        regexes=tuple(pattern_to_regex(p) for p in full),
    )


def compile_whitelist(patterns: Iterable[str] | None) -> CompiledWhitelist:
    if isinstance(patterns, str):
        raise TypeError("origin whitelist must be a sequence of patterns, not a string")
    return _compile(tuple(str(p) for p in (patterns or ())))


def passes_whitelist(patterns: Iterable[str] | CompiledWhitelist | None, url: object) -> bool:
    compiled = patterns if isinstance(patterns, CompiledWhitelist) else compile_whitelist(patterns)
    return compiled.matches(url)
