from __future__ import annotations

import asyncio
import json

import pytest

from viewguard.config import HostCallbacks, ViewConfig
from viewguard.events import LoadStartEvent
from viewguard.lifecycle import ViewState
from viewguard.messages import WebViewMessage
from viewguard.platforms import CHROMIUM
from viewguard.playwright_view import AsyncPlaywrightWebView, PlaywrightBridge
from viewguard.session import PageRender, ViewSession
from viewguard.version import RuntimeVersionProbe


def test_unsupported_browser_is_rejected() -> None:
    with pytest.raises(ValueError):
        AsyncPlaywrightWebView(browser="firefox")  # type: ignore[arg-type]


class _FakePage:
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def reload(self) -> None:
        self.calls.append("reload")

    async def go_back(self) -> None:
        self.calls.append("go_back")

    async def evaluate(self, script: str, arg=None) -> None:
        self.calls.append(f"evaluate:{arg}")

    async def goto(self, url: str, wait_until: str = "load") -> None:
        raise RuntimeError("net::ERR_BLOCKED_BY_CLIENT")


def test_bridge_runs_commands_as_tasks() -> None:
    page = _FakePage()
    bridge = PlaywrightBridge(page)

    async def run() -> None:
        bridge.start_load_with_result(True, 3)
        bridge.send_command("reload")
        bridge.send_command("goBack")
        bridge.send_command("postMessage", "hi")
        bridge.send_command("clearHistory")
        # Failures of fire-and-forget commands are logged, not raised.
        bridge.load_url("https://a.com/")
        await bridge.drain()

    asyncio.run(run())
    assert bridge.decisions == {3: True}
    assert page.calls == ["reload", "go_back", "evaluate:hi"]


def test_view_accessors_raise_before_init() -> None:
    view = AsyncPlaywrightWebView()
    with pytest.raises(RuntimeError):
        view.bridge
    with pytest.raises(RuntimeError):
        view.session


class _LoadedPage:
    def __init__(self, url: str) -> None:
        self.url = url


def test_load_after_redirect_settles_chromium_view() -> None:
    async def fetch() -> str:
        return "Mozilla/5.0 (X11; Linux x86_64) Chrome/124.0.6367.82 Safari/537.36"

    view = AsyncPlaywrightWebView(ViewConfig(start_in_loading_state=True))
    session = ViewSession(view._config, traits=CHROMIUM, probe=RuntimeVersionProbe(fetch))
    asyncio.run(session.start())
    view._session = session

    session.dispatch(LoadStartEvent(url="https://a.test/"))
    assert session.state is ViewState.LOADING
    # The server redirected, so the page settled on another URL.
    view._on_load(_LoadedPage("https://www.a.test/"))
    assert session.state is ViewState.IDLE


def test_denied_navigation_leaves_page_in_place() -> None:
    config = ViewConfig(origin_whitelist=("https://a.com",))
    try:
        async def run() -> tuple[str, ViewState, bool]:
            async with AsyncPlaywrightWebView(config, browser="chromium") as view:
                render = await view.open("http://example.invalid/")
                return view.page.url, view.session.state, isinstance(render, PageRender)

        url, state, page_render = asyncio.run(run())
    except RuntimeError as exc:
        # Playwright missing / browser engine not installed / missing OS deps.
        pytest.skip(str(exc))

    assert url == "about:blank"
    assert state is ViewState.IDLE
    assert page_render


def test_page_messages_reach_host() -> None:
    received: list[WebViewMessage] = []
    callbacks = HostCallbacks(on_message=received.append)
    try:
        async def run() -> None:
            async with AsyncPlaywrightWebView(ViewConfig(), browser="chromium", callbacks=callbacks) as view:
                assert view.session.ready
                await view.page.evaluate(
                    "() => window.__viewguardPostMessage(JSON.stringify({hello: 'world'}))"
                )
                for _ in range(50):
                    if received:
                        break
                    await asyncio.sleep(0.02)

        asyncio.run(run())
    except RuntimeError as exc:
        pytest.skip(str(exc))

    assert len(received) == 1
    assert received[0].url == "about:blank"
    assert json.loads(received[0].data) == {"hello": "world"}
