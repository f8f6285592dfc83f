from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
import re
from typing import Callable, Iterable, Literal, Protocol

from .effects import Acknowledge, Effect, LoadUrl, Log, OpenExternal
from .events import NavigationRequest
from .urls import url_scheme
from .whitelist import (
    DEFAULT_ORIGIN_WHITELIST,
    CompiledWhitelist,
    compile_whitelist,
    pattern_to_regex,
)


logger = logging.getLogger(__name__)


DEFAULT_DEEPLINK_WHITELIST: tuple[str, ...] = ("https:",)

# Never handed to an external handler, whatever the host allows.
DEEPLINK_BLOCKLIST: frozenset[str] = frozenset({"http:", "file:", "javascript:"})

MAIL_SCHEMES: frozenset[str] = frozenset({"mailto:"})


Verdict = Literal["whitelisted", "override", "malformed", "blocked", "deeplink", "unlisted"]

ShouldStartOverride = Callable[[NavigationRequest], bool]


class ExternalOpener(Protocol):
    async def can_open_url(self, url: str) -> bool: ...

    async def open_url(self, url: str) -> None: ...


class NullExternalOpener:
    """Opener for hosts without an external URL handler.

    Reports every scheme as unsupported; only mail-compose links reach
    ``open_url``, which just records the request in the log.
    """

    async def can_open_url(self, url: str) -> bool:
        return False

    async def open_url(self, url: str) -> None:
        logger.info("No external handler configured; not opening %s", url)


@dataclass(frozen=True, slots=True)
class NavigationDecision:
    request: NavigationRequest
    should_start: bool
    verdict: Verdict
    effects: tuple[Effect, ...]

    @property
    def open_external(self) -> OpenExternal | None:
        for effect in self.effects:
            if isinstance(effect, OpenExternal):
                return effect
        return None


@lru_cache(maxsize=64)
def _compile_schemes(prefixes: tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    # Schemes are case-insensitive; the parsed scheme is always lowercase.
    return tuple(pattern_to_regex(p.lower()) for p in prefixes)


def scheme_in_list(prefixes: Iterable[str], scheme: str) -> bool:
    return any(rx.fullmatch(scheme) is not None for rx in _compile_schemes(tuple(prefixes)))


def acknowledgement(request: NavigationRequest, should_start: bool) -> tuple[Effect, ...]:
    if request.lock_identifier is not None:
        return (Acknowledge(lock_identifier=request.lock_identifier, should_start=should_start),)
    if should_start:
        return (LoadUrl(url=request.url),)
    return ()


class DeepLinkPolicy:
    """Decide whether a navigation may load in the view.

    Whitelisted URLs load (subject to the host override). Everything else is
    refused in-view; non-blocklisted schemes on the host's deep-link
    whitelist are additionally offered to an external handler.
    """

    def __init__(
        self,
        *,
        origin_whitelist: Iterable[str] | CompiledWhitelist = DEFAULT_ORIGIN_WHITELIST,
        deeplink_whitelist: Iterable[str] = DEFAULT_DEEPLINK_WHITELIST,
        on_should_start_load_with_request: ShouldStartOverride | None = None,
    ) -> None:
        if isinstance(origin_whitelist, CompiledWhitelist):
            self.whitelist = origin_whitelist
        else:
            self.whitelist = compile_whitelist(origin_whitelist)
        self.deeplink_whitelist: tuple[str, ...] = tuple(str(p) for p in deeplink_whitelist)
        self._override = on_should_start_load_with_request

    def _run_override(self, request: NavigationRequest) -> tuple[bool, tuple[Effect, ...]]:
        if self._override is None:
            return True, ()
        try:
            return bool(self._override(request)), ()
        except Exception as exc:
            return False, (Log.error(f"onShouldStartLoadWithRequest raised for {request.url}: {exc!r}"),)

    def decide(self, request: NavigationRequest) -> NavigationDecision:
        url = request.url

        if self.whitelist.matches(url):
            should_start, logs = self._run_override(request)
            verdict: Verdict = "override" if self._override is not None else "whitelisted"
            return NavigationDecision(
                request=request,
                should_start=should_start,
                verdict=verdict,
                effects=acknowledgement(request, should_start) + logs,
            )

        denied = acknowledgement(request, False)

        scheme = url_scheme(url)
        if scheme is None:
            return NavigationDecision(request=request, should_start=False, verdict="malformed", effects=denied)

        if scheme in DEEPLINK_BLOCKLIST:
            return NavigationDecision(
                request=request,
                should_start=False,
                verdict="blocked",
                effects=denied + (Log.warning(f"Failed to pass default block list for deep link url: {url}"),),
            )

        if scheme_in_list(self.deeplink_whitelist, scheme):
            return NavigationDecision(
                request=request,
                should_start=False,
                verdict="deeplink",
                effects=denied
                + (
                    OpenExternal(
                        url=url,
                        is_top_frame=request.is_top_frame,
                        always_allowed=scheme in MAIL_SCHEMES,
                    ),
                ),
            )

        return NavigationDecision(
            request=request,
            should_start=False,
            verdict="unlisted",
            effects=denied + (Log.warning(f"Failed to pass whitelist for deep link url: {url}"),),
        )


async def open_external(effect: OpenExternal, opener: ExternalOpener) -> bool:
    """Best-effort hand-off of a deep link to the external handler.

    Never raises: rejections and handler failures are logged. The navigation
    verdict was delivered before this runs and is not affected by it.
    """

    try:
        supported = await opener.can_open_url(effect.url)
        if (supported and effect.is_top_frame) or effect.always_allowed:
            await opener.open_url(effect.url)
            return True
        logger.warning("Can't open url: %s", effect.url)
        return False
    except Exception as exc:
        logger.warning("Error opening URL %s: %r", effect.url, exc)
        return False
