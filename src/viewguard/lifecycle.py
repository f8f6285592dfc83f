from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Callable, Union

from .config import HostCallbacks
from .events import (
    LoadErrorEvent,
    LoadFinishEvent,
    LoadProgressEvent,
    LoadStartEvent,
    OpenWindowEvent,
)
from .platforms import PlatformTraits
from .whitelist import CompiledWhitelist


logger = logging.getLogger(__name__)


class ViewState(str, Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class LoadError:
    domain: str | None
    code: int
    description: str


@dataclass(frozen=True, slots=True)
class LoadingOverlay:
    pass


@dataclass(frozen=True, slots=True)
class ErrorOverlay:
    domain: str | None
    code: int
    description: str

    @property
    def lines(self) -> tuple[str, ...]:
        return (
            "Error loading page",
            f"Domain: {self.domain}",
            f"Error Code: {self.code}",
            f"Description: {self.description}",
        )


Overlay = Union[LoadingOverlay, ErrorOverlay]


def _invoke(name: str, callback: Callable[[Any], None] | None, event: Any) -> None:
    if callback is None:
        return
    try:
        callback(event)
    except Exception:
        logger.exception("Host callback %s raised", name)


class NavigationLifecycle:
    """Page-load state for one view: IDLE, LOADING or ERROR.

    Transitions only happen in response to that view's own load events and
    to :meth:`begin_reload`.
    """

    def __init__(
        self,
        *,
        whitelist: CompiledWhitelist,
        traits: PlatformTraits,
        callbacks: HostCallbacks | None = None,
        start_in_loading_state: bool = False,
    ) -> None:
        self.whitelist = whitelist
        self.traits = traits
        self.callbacks = callbacks or HostCallbacks()
        self.state: ViewState = ViewState.LOADING if start_in_loading_state else ViewState.IDLE
        self.last_error: LoadError | None = None
        # URL of the navigation that started last; finish events are matched
        # against it where sub-frame finishes look like top-frame ones.
        self.start_url: str | None = None

    def on_load_start(self, event: LoadStartEvent) -> None:
        self.start_url = event.url
        _invoke("on_load_start", self.callbacks.on_load_start, event)

    def on_load_error(self, event: LoadErrorEvent) -> None:
        if self.callbacks.on_error is not None:
            _invoke("on_error", self.callbacks.on_error, event)
        else:
            logger.warning(
                "Encountered an error loading page: domain=%s code=%s description=%s url=%s",
                event.domain,
                event.code,
                event.description,
                event.url,
            )
        _invoke("on_load_end", self.callbacks.on_load_end, event)

        if event.default_prevented:
            return
        self.state = ViewState.ERROR
        self.last_error = LoadError(domain=event.domain, code=event.code, description=event.description)

    def on_load_finish(self, event: LoadFinishEvent) -> None:
        _invoke("on_load", self.callbacks.on_load, event)
        _invoke("on_load_end", self.callbacks.on_load_end, event)

        if not self.whitelist.matches(event.url):
            return

        if self.traits.reliable_top_frame_finish or event.url == self.start_url:
            self.state = ViewState.IDLE

    def on_load_progress(self, event: LoadProgressEvent) -> None:
        if not self.whitelist.matches(event.url):
            return
        if self.traits.progress_completes_load and event.progress >= 1 and self.state is ViewState.LOADING:
            self.state = ViewState.IDLE

    def on_open_window(self, event: OpenWindowEvent) -> None:
        _invoke("on_open_window", self.callbacks.on_open_window, event)

    def begin_reload(self) -> None:
        self.state = ViewState.LOADING

    def overlay(self) -> Overlay | None:
        state = self.state
        if state is ViewState.LOADING:
            return LoadingOverlay()
        if state is ViewState.ERROR:
            if self.last_error is None:
                logger.error("View is in the error state but no load error was recorded")
                return None
            return ErrorOverlay(
                domain=self.last_error.domain,
                code=self.last_error.code,
                description=self.last_error.description,
            )
        if state is not ViewState.IDLE:
            logger.error("Invalid view state encountered: %r", state)
        return None
