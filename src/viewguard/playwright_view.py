from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from functools import lru_cache
import importlib
import importlib.resources
import itertools
import logging
from typing import Any, Literal

from .config import HostCallbacks, Source, ViewConfig
from .deeplink import ExternalOpener
from .effects import CommandName
from .events import LoadErrorEvent, LoadFinishEvent, LoadProgressEvent, LoadStartEvent, MessageEvent, NavigationRequest
from .lifecycle import ViewState
from .platforms import get_platform
from .session import RenderModel, ViewSession
from .version import RuntimeVersionProbe


logger = logging.getLogger(__name__)


_MAX_PLAYWRIGHT_TIMEOUT_MS = 5000

_BINDING_NAME = "__viewguardPostMessage"


BrowserName = Literal["chromium", "webkit"]


@lru_cache(maxsize=None)
def _read_js_asset_text(name: str) -> str:
    return (
        importlib.resources.files("viewguard")
        .joinpath("js")
        .joinpath(name)
        .read_text(encoding="utf-8")
    )


class _RuntimeSource:
    """Where the runtime version of a browser engine is read from.

    Chromium is identified through its user agent, WebKit through the
    version Playwright reports for the browser.
    """

    def __init__(self, browser_name: BrowserName) -> None:
        self.browser_name = browser_name
        self.browser: Any | None = None
        self.page: Any | None = None

    async def fetch(self) -> str | None:
        if self.browser_name == "chromium":
            if self.page is None:
                return None
            return str(await self.page.evaluate("() => navigator.userAgent"))
        if self.browser is None:
            return None
        return str(self.browser.version)


_RUNTIME_SOURCES: dict[str, _RuntimeSource] = {}
_RUNTIME_PROBES: dict[str, RuntimeVersionProbe] = {}


def runtime_probe(browser_name: BrowserName, *, browser: Any, page: Any) -> RuntimeVersionProbe:
    # One probe per engine, shared by every view in the process.
    source = _RUNTIME_SOURCES.get(browser_name)
    if source is None:
        source = _RUNTIME_SOURCES[browser_name] = _RuntimeSource(browser_name)
        _RUNTIME_PROBES[browser_name] = RuntimeVersionProbe(source.fetch)
    source.browser = browser
    source.page = page
    return _RUNTIME_PROBES[browser_name]


class PlaywrightBridge:
    """Native bridge backed by a Playwright page.

    Navigation acknowledgements are recorded for the route handler waiting
    on them; commands run as tasks on the page's event loop.
    """

    def __init__(self, page: Any) -> None:
        self._page = page
        self.decisions: dict[int, bool] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def start_load_with_result(self, should_start: bool, lock_identifier: int) -> None:
        self.decisions[lock_identifier] = bool(should_start)

    def load_url(self, url: str) -> None:
        self._spawn(self._page.goto(url, wait_until="load"), f"loadUrl {url}")

    def send_command(self, name: CommandName, argument: Any = None) -> None:
        page = self._page
        if name == "reload":
            coro = page.reload()
        elif name == "goBack":
            coro = page.go_back()
        elif name == "goForward":
            coro = page.go_forward()
        elif name == "stopLoading":
            coro = page.evaluate("() => window.stop()")
        elif name == "postMessage":
            coro = page.evaluate(
                "(data) => window.dispatchEvent(new MessageEvent('message', { data }))",
                argument,
            )
        elif name == "requestFocus":
            coro = page.bring_to_front()
        else:
            logger.info("Command %s is not supported by the Playwright bridge", name)
            return
        self._spawn(coro, name)

    def _spawn(self, coro: Any, what: str) -> None:
        async def _run() -> None:
            try:
                await coro
            except Exception as exc:
                logger.warning("Playwright command %s failed: %s", what, exc)

        task = asyncio.get_running_loop().create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


class AsyncPlaywrightWebView:
    """A Playwright page standing in for the native web view.

    Every navigation request is routed through a :class:`ViewSession`;
    main-frame load events drive its lifecycle, and
    ``window.ReactNativeWebView.postMessage`` reaches the message validator.
    """

    def __init__(
        self,
        config: ViewConfig | None = None,
        *,
        browser: BrowserName = "chromium",
        callbacks: HostCallbacks | None = None,
        opener: ExternalOpener | None = None,
        headless: bool = True,
    ) -> None:
        if browser not in ("chromium", "webkit"):
            raise ValueError(f"Unsupported browser: {browser!r}. Supported: chromium, webkit")
        self._browser_name: BrowserName = browser
        self._config = config or ViewConfig()
        self._callbacks = callbacks
        self._opener = opener
        self._headless = headless
        self._pw_cm: Any | None = None
        self._pw: Any | None = None
        self._browser_instance: Any | None = None
        self._page: Any | None = None
        self._bridge: PlaywrightBridge | None = None
        self._session: ViewSession | None = None
        self._locks = itertools.count(1)
        self._denied_requests: set[Any] = set()

    @property
    def session(self) -> ViewSession:
        if self._session is None:
            raise RuntimeError("View not initialized")
        return self._session

    @property
    def bridge(self) -> PlaywrightBridge:
        if self._bridge is None:
            raise RuntimeError("View not initialized")
        return self._bridge

    @property
    def page(self) -> Any:
        if self._page is None:
            raise RuntimeError("View not initialized")
        return self._page

    async def __aenter__(self) -> "AsyncPlaywrightWebView":
        try:
            async_api = importlib.import_module("playwright.async_api")
            async_playwright = async_api.async_playwright
        except Exception as exc:  # pragma: no cover
            raise RuntimeError(
                "Playwright is not installed. Install with: pip install -e '.[browser]'"
            ) from exc

        self._pw_cm = async_playwright()
        self._pw = await self._pw_cm.__aenter__()

        browser_type = {
            "chromium": self._pw.chromium,
            "webkit": self._pw.webkit,
        }[self._browser_name]

        try:
            launch_kwargs: dict[str, Any] = {"headless": self._headless}
            if self._browser_name == "chromium":
                launch_kwargs["args"] = [
                    "--disable-gpu",
                    "--disable-dev-shm-usage",
                    "--disable-extensions",
                    "--mute-audio",
                ]
            self._browser_instance = await browser_type.launch(**launch_kwargs)
        except Exception as exc:  # pragma: no cover
            await self._pw_cm.__aexit__(None, None, None)
            message = str(exc)
            hint = (
                f"Failed to launch Playwright {self._browser_name}. "
                f"If the engine is installed, your host may be missing OS dependencies. "
                f"Try: playwright install-deps {self._browser_name} (or: playwright install-deps)."
            )
            raise RuntimeError(
                f"{hint}\nOriginal error: {message}\n"
                f"If the engine isn't installed yet, run: playwright install {self._browser_name}"
            ) from exc

        self._page = await self._browser_instance.new_page()
        self._page.set_default_timeout(_MAX_PLAYWRIGHT_TIMEOUT_MS)
        self._page.set_default_navigation_timeout(_MAX_PLAYWRIGHT_TIMEOUT_MS)

        self._bridge = PlaywrightBridge(self._page)
        self._session = ViewSession(
            self._config,
            traits=get_platform(self._browser_name),
            probe=runtime_probe(self._browser_name, browser=self._browser_instance, page=self._page),
            bridge=self._bridge,
            callbacks=self._callbacks,
            opener=self._opener,
        )

        await self._page.expose_binding(_BINDING_NAME, self._on_post_message)
        await self._page.add_init_script(_read_js_asset_text("bridge.js"))
        self._page.on("load", self._on_load)
        self._page.on("requestfailed", self._on_request_failed)
        await self._page.route("**/*", self._route)

        await self._session.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session is not None:
            self._session.close()
        if self._bridge is not None:
            self._bridge.cancel()
        try:
            if self._browser_instance is not None:
                await self._browser_instance.close()
        finally:
            if self._pw_cm is not None:
                await self._pw_cm.__aexit__(exc_type, exc, tb)

    async def _route(self, route) -> None:
        req = route.request
        if not req.is_navigation_request():
            await route.continue_()
            return

        is_top_frame = req.frame.parent_frame is None
        lock = next(self._locks)
        self.session.dispatch(NavigationRequest(url=req.url, lock_identifier=lock, is_top_frame=is_top_frame))

        if not self.bridge.decisions.pop(lock, False):
            self._denied_requests.add(req)
            await route.abort("blockedbyclient")
            return

        if is_top_frame:
            self.session.dispatch(LoadStartEvent(url=req.url))
        await route.continue_()

    def _on_load(self, page) -> None:
        # Redirect hops are not routed, so the start anchor may predate them.
        self.session.dispatch(LoadProgressEvent(url=page.url, progress=1.0))
        self.session.dispatch(LoadFinishEvent(url=page.url))

    def _on_request_failed(self, request) -> None:
        if request in self._denied_requests:
            # Refused by policy, not a page error.
            self._denied_requests.discard(request)
            return
        if not request.is_navigation_request() or request.frame.parent_frame is not None:
            return
        self.session.dispatch(
            LoadErrorEvent(
                url=request.url,
                domain=self._browser_name,
                code=-1,
                description=str(request.failure or "navigation failed"),
            )
        )

    async def _on_post_message(self, source: dict[str, Any], data: Any) -> None:
        frame = source.get("frame")
        page = source.get("page")
        title = ""
        if page is not None:
            try:
                title = await page.title()
            except Exception as exc:
                logger.debug("Could not read page title: %s", exc)
        self.session.dispatch(
            MessageEvent(
                url=frame.url if frame is not None else None,
                data=data,
                title=title,
                loading=False,
            )
        )

    async def open(self, url: str | None = None) -> RenderModel:
        """Load ``url``, or the configured source, if the version gate passed.

        Navigation errors are absorbed: they reach the session as load
        errors or policy refusals, never as exceptions.
        """

        session = self.session
        if session.ready:
            source = Source(uri=url) if url is not None else session.initial_source()
            try:
                if source is not None and source.uri is not None:
                    await self.page.goto(source.uri, wait_until="load")
                elif source is not None and source.html is not None:
                    await self.page.set_content(source.html, wait_until="load")
            except Exception as exc:
                logger.warning("Loading %s failed: %s", source, exc)
        await self.drain()
        return session.render()

    def reload(self) -> None:
        self.session.reload()

    def post_message(self, data: str) -> None:
        self.session.post_message(data)

    async def drain(self) -> None:
        await self.session.drain()
        if self._bridge is not None:
            await self._bridge.drain()


@dataclass(frozen=True, slots=True)
class BrowseResult:
    url: str
    state: ViewState
    render: RenderModel


async def browse(
    url: str,
    *,
    config: ViewConfig | None = None,
    browser: BrowserName = "chromium",
    callbacks: HostCallbacks | None = None,
    opener: ExternalOpener | None = None,
) -> BrowseResult:
    """Open ``url`` in a fresh policy-guarded page and report where it ended up."""

    config = replace(config or ViewConfig(), source=Source(uri=url))
    async with AsyncPlaywrightWebView(config, browser=browser, callbacks=callbacks, opener=opener) as view:
        render = await view.open()
        return BrowseResult(url=view.page.url, state=view.session.state, render=render)
