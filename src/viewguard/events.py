from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Union


@dataclass(frozen=True, slots=True)
class NavigationRequest:
    url: str
    lock_identifier: int | None = None
    is_top_frame: bool = False


@dataclass(frozen=True, slots=True)
class LoadStartEvent:
    url: str
    title: str = ""
    loading: bool = True
    can_go_back: bool = False
    can_go_forward: bool = False


@dataclass(frozen=True, slots=True)
class LoadProgressEvent:
    url: str
    progress: float


@dataclass(frozen=True, slots=True)
class LoadFinishEvent:
    url: str
    title: str = ""
    loading: bool = False
    can_go_back: bool = False
    can_go_forward: bool = False


@dataclass(slots=True)
class LoadErrorEvent:
    """A navigation failure reported by the engine.

    Not frozen: a host ``on_error`` callback may call :meth:`prevent_default`
    to keep the view out of the error state.
    """

    url: str
    domain: str | None
    code: int
    description: str
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


@dataclass(frozen=True, slots=True)
class MessageEvent:
    url: Any
    data: Any
    title: Any = ""
    loading: Any = False
    can_go_back: Any = False
    can_go_forward: Any = False
    lock_identifier: Any = None


@dataclass(frozen=True, slots=True)
class OpenWindowEvent:
    target_url: str


NativeEvent = Union[
    NavigationRequest,
    LoadStartEvent,
    LoadProgressEvent,
    LoadFinishEvent,
    LoadErrorEvent,
    MessageEvent,
    OpenWindowEvent,
]


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)


def _navigation_request(p: Mapping[str, Any]) -> NavigationRequest:
    return NavigationRequest(
        url=str(p["url"]),
        lock_identifier=_optional_int(p.get("lockIdentifier")),
        is_top_frame=bool(p.get("isTopFrame", False)),
    )


def _load_start(p: Mapping[str, Any]) -> LoadStartEvent:
    return LoadStartEvent(
        url=str(p["url"]),
        title=str(p.get("title") or ""),
        loading=bool(p.get("loading", True)),
        can_go_back=bool(p.get("canGoBack", False)),
        can_go_forward=bool(p.get("canGoForward", False)),
    )


def _load_progress(p: Mapping[str, Any]) -> LoadProgressEvent:
    return LoadProgressEvent(url=str(p["url"]), progress=float(p["progress"]))


def _load_finish(p: Mapping[str, Any]) -> LoadFinishEvent:
    return LoadFinishEvent(
        url=str(p["url"]),
        title=str(p.get("title") or ""),
        loading=bool(p.get("loading", False)),
        can_go_back=bool(p.get("canGoBack", False)),
        can_go_forward=bool(p.get("canGoForward", False)),
    )


def _load_error(p: Mapping[str, Any]) -> LoadErrorEvent:
    domain = p.get("domain")
    return LoadErrorEvent(
        url=str(p.get("url") or ""),
        domain=None if domain is None else str(domain),
        code=int(p["code"]),
        description=str(p.get("description") or ""),
    )


def _message(p: Mapping[str, Any]) -> MessageEvent:
    # Message payloads stay raw; MessageValidator owns their sanitization.
    return MessageEvent(
        url=p.get("url"),
        data=p.get("data"),
        title=p.get("title", ""),
        loading=p.get("loading", False),
        can_go_back=p.get("canGoBack", False),
        can_go_forward=p.get("canGoForward", False),
        lock_identifier=p.get("lockIdentifier"),
    )


def _open_window(p: Mapping[str, Any]) -> OpenWindowEvent:
    return OpenWindowEvent(target_url=str(p["targetUrl"]))


_NATIVE_EVENT_PARSERS: dict[str, Callable[[Mapping[str, Any]], NativeEvent]] = {
    "onShouldStartLoadWithRequest": _navigation_request,
    "onLoadingStart": _load_start,
    "onLoadingProgress": _load_progress,
    "onLoadingFinish": _load_finish,
    "onLoadingError": _load_error,
    "onMessage": _message,
    "onOpenWindow": _open_window,
}


def native_event_kinds() -> tuple[str, ...]:
    return tuple(_NATIVE_EVENT_PARSERS)


def event_from_native(kind: str, payload: Mapping[str, Any]) -> NativeEvent:
    """Build a typed event from a native ``nativeEvent`` payload.

    Raises ValueError for unknown kinds or payloads missing required keys.
    """

    parser = _NATIVE_EVENT_PARSERS.get(kind)
    if parser is None:
        raise ValueError(f"Unknown native event kind {kind!r}. Allowed: {sorted(_NATIVE_EVENT_PARSERS)}")
    if not isinstance(payload, Mapping):
        raise ValueError(f"Native event payload must be an object (got {type(payload)!r})")
    try:
        return parser(payload)
    except KeyError as exc:
        raise ValueError(f"{kind} payload is missing key {exc.args[0]!r}") from exc
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid {kind} payload: {exc}") from exc
