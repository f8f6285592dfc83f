from __future__ import annotations

import pytest

from viewguard.events import (
    LoadErrorEvent,
    LoadFinishEvent,
    LoadProgressEvent,
    LoadStartEvent,
    MessageEvent,
    NavigationRequest,
    OpenWindowEvent,
    event_from_native,
    native_event_kinds,
)


def test_navigation_request() -> None:
    event = event_from_native(
        "onShouldStartLoadWithRequest",
        {"url": "https://a.com/", "lockIdentifier": 12, "isTopFrame": True, "navigationType": "click"},
    )
    assert event == NavigationRequest(url="https://a.com/", lock_identifier=12, is_top_frame=True)


def test_navigation_request_defaults() -> None:
    event = event_from_native("onShouldStartLoadWithRequest", {"url": "https://a.com/"})
    assert event == NavigationRequest(url="https://a.com/", lock_identifier=None, is_top_frame=False)


def test_load_events() -> None:
    assert event_from_native("onLoadingStart", {"url": "https://a.com/", "canGoBack": True}) == LoadStartEvent(
        url="https://a.com/", can_go_back=True
    )
    assert event_from_native("onLoadingProgress", {"url": "https://a.com/", "progress": 1}) == LoadProgressEvent(
        url="https://a.com/", progress=1.0
    )
    assert event_from_native("onLoadingFinish", {"url": "https://a.com/", "title": "A"}) == LoadFinishEvent(
        url="https://a.com/", title="A"
    )


def test_load_error() -> None:
    event = event_from_native(
        "onLoadingError",
        {"url": "https://a.com/", "domain": "NSURLErrorDomain", "code": -1009, "description": "offline"},
    )
    assert isinstance(event, LoadErrorEvent)
    assert (event.domain, event.code, event.description) == ("NSURLErrorDomain", -1009, "offline")
    assert event.default_prevented is False


def test_message_payload_stays_raw() -> None:
    event = event_from_native("onMessage", {"url": "https://a.com/", "data": "{}", "title": None, "lockIdentifier": "x"})
    assert event == MessageEvent(url="https://a.com/", data="{}", title=None, lock_identifier="x")


def test_open_window() -> None:
    assert event_from_native("onOpenWindow", {"targetUrl": "https://a.com/popup"}) == OpenWindowEvent(
        target_url="https://a.com/popup"
    )


def test_known_kinds() -> None:
    assert set(native_event_kinds()) == {
        "onShouldStartLoadWithRequest",
        "onLoadingStart",
        "onLoadingProgress",
        "onLoadingFinish",
        "onLoadingError",
        "onMessage",
        "onOpenWindow",
    }


@pytest.mark.parametrize(
    "kind, payload",
    [
        ("onSomethingElse", {}),
        ("onLoadingStart", {}),
        ("onLoadingProgress", {"url": "https://a.com/", "progress": "lots"}),
        ("onLoadingError", {"url": "https://a.com/", "code": "abc"}),
        ("onShouldStartLoadWithRequest", {"url": "https://a.com/", "lockIdentifier": "x"}),
        ("onOpenWindow", ["https://a.com/"]),
    ],
)
def test_bad_payloads_raise_value_error(kind: str, payload: object) -> None:
    with pytest.raises(ValueError):
        event_from_native(kind, payload)  # type: ignore[arg-type]
