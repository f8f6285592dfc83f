from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import re
from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from .platforms import PlatformTraits


logger = logging.getLogger(__name__)


_VERSION_RE = re.compile(r"[0-9]+(\.[0-9]+)*")

_CHROME_VERSION_RE = re.compile(r"chrome/((?:[0-9]+\.)+[0-9]+)", re.IGNORECASE)

UNKNOWN_RUNTIME = "unknown"


def _bound_passes(version: str, minimum: str) -> bool:
    if not _VERSION_RE.fullmatch(version) or not _VERSION_RE.fullmatch(minimum):
        return False
    version_parts = [int(x) for x in version.split(".")]
    minimum_parts = [int(x) for x in minimum.split(".")]
    length = max(len(version_parts), len(minimum_parts))
    version_parts += [0] * (length - len(version_parts))
    minimum_parts += [0] * (length - len(minimum_parts))
    for ver, low in zip(version_parts, minimum_parts):
        if ver > low:
            return True
        if ver < low:
            return False
    return True


def _range_passes(version: str, spec: str) -> bool:
    bounds = spec.split(" <")
    if len(bounds) == 1:
        return _bound_passes(version, spec)
    if len(bounds) != 2:
        return False
    low, high = bounds
    # The last clause rejects a malformed upper bound.
    return _bound_passes(version, low) and not _bound_passes(version, high) and _bound_passes(high, version)


def version_passes(version: object, spec: object) -> bool:
    """Return whether ``version`` satisfies the minimum-version ``spec``.

    ``spec`` is a dotted version (``"14.2"``, meaning ``>= 14.2``), a
    half-open range (``"14.8.1 <15"``), or a ``", "``-separated union of
    ranges in which every member but the last must carry an upper bound
    (``"12.5.6 <13, 13.6.1 <14, 15.7.1"``). Separators are exact: stray or
    missing whitespace makes the spec malformed, and anything malformed fails.
    """

    if not isinstance(version, str) or not isinstance(spec, str):
        return False
    if not version or not spec:
        return False

    members = spec.split(", ")
    if len(members) > 1:
        if not all(" <" in m for m in members[:-1]):
            return False
        return any(_range_passes(version, m) for m in members)

    return _range_passes(version, spec)


def chrome_version_from_user_agent(user_agent: object) -> str | None:
    if not isinstance(user_agent, str):
        return None
    m = _CHROME_VERSION_RE.search(user_agent)
    return m.group(1) if m else None


@dataclass(frozen=True, slots=True)
class VersionGateResult:
    passed: bool
    version: str | None
    reason: str


def check_version_gate(runtime: str, traits: "PlatformTraits", minimum: str | None = None) -> VersionGateResult:
    version = traits.version_from_runtime(runtime)
    if version is None:
        return VersionGateResult(passed=False, version=None, reason=f"could not detect a version in {runtime!r}")
    if minimum is not None and not version_passes(version, minimum):
        return VersionGateResult(passed=False, version=version, reason=f"{version} does not satisfy {minimum!r}")
    if not version_passes(version, traits.hard_minimum_version):
        return VersionGateResult(
            passed=False,
            version=version,
            reason=f"{version} is below the {traits.name} security floor {traits.hard_minimum_version!r}",
        )
    return VersionGateResult(passed=True, version=version, reason="ok")


class RuntimeVersionProbe:
    """Resolve the runtime version string once per process.

    Concurrent callers share one in-flight fetch. A failed or empty fetch is
    reported as ``"unknown"`` (which no version gate accepts) and is not
    cached, so a later view instance retries.
    """

    def __init__(self, fetch: Callable[[], Awaitable[str | None]]) -> None:
        self._fetch = fetch
        self._result: str | None = None
        self._pending: asyncio.Future[str | None] | None = None

    @property
    def cached(self) -> str | None:
        return self._result

    async def resolve(self) -> str:
        if self._result is not None:
            return self._result

        if self._pending is None or self._pending.get_loop() is not asyncio.get_running_loop():
            self._pending = asyncio.ensure_future(self._fetch())

        pending = self._pending
        try:
            value = await asyncio.shield(pending)
        except asyncio.CancelledError:
            if pending.cancelled() and self._pending is pending:
                self._pending = None
            raise
        except Exception as exc:
            logger.warning("Could not resolve runtime version: %r", exc)
            if self._pending is pending:
                self._pending = None
            return UNKNOWN_RUNTIME

        if not value:
            if self._pending is pending:
                self._pending = None
            return UNKNOWN_RUNTIME

        self._result = str(value)
        return self._result
