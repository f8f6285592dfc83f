from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Iterable, Protocol, Union
import uuid

from .config import HostCallbacks, Source, ViewConfig, resolve_source, validate_config
from .deeplink import DeepLinkPolicy, ExternalOpener, NullExternalOpener, acknowledgement, open_external
from .effects import Acknowledge, Command, CommandName, Effect, LoadUrl, Log, NO_EFFECTS, OpenExternal
from .events import (
    LoadErrorEvent,
    LoadFinishEvent,
    LoadProgressEvent,
    LoadStartEvent,
    MessageEvent,
    NativeEvent,
    NavigationRequest,
    OpenWindowEvent,
)
from .lifecycle import NavigationLifecycle, Overlay, ViewState
from .messages import MessageValidator
from .platforms import PlatformTraits
from .version import RuntimeVersionProbe, VersionGateResult, check_version_gate
from .whitelist import compile_whitelist


logger = logging.getLogger(__name__)


class NativeBridge(Protocol):
    def start_load_with_result(self, should_start: bool, lock_identifier: int) -> None: ...

    def load_url(self, url: str) -> None: ...

    def send_command(self, name: CommandName, argument: Any = None) -> None: ...


class RecordingBridge:
    """Bridge that only records what it was asked to do."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def start_load_with_result(self, should_start: bool, lock_identifier: int) -> None:
        self.calls.append(("startLoadWithResult", (should_start, lock_identifier)))

    def load_url(self, url: str) -> None:
        self.calls.append(("loadUrl", (url,)))

    def send_command(self, name: CommandName, argument: Any = None) -> None:
        self.calls.append((name, () if argument is None else (argument,)))


@dataclass(frozen=True, slots=True)
class PendingRender:
    pass


@dataclass(frozen=True, slots=True)
class UnsupportedVersion:
    platform: str
    reason: str

    @property
    def message(self) -> str:
        return f"{self.platform} version is outdated and insecure. Update it to continue."


@dataclass(frozen=True, slots=True)
class PageRender:
    source: Source | None
    overlay: Overlay | None


RenderModel = Union[PendingRender, UnsupportedVersion, PageRender]


class ViewSession:
    """Policy engine and load state for one embedded view instance.

    Native events go in through :meth:`handle` (pure decision, returns the
    effects) or :meth:`dispatch` (decision plus :meth:`apply`). Nothing is
    evaluated until :meth:`start` has resolved the runtime version and the
    version gate passed; until then navigations are refused.
    """

    def __init__(
        self,
        config: ViewConfig,
        *,
        traits: PlatformTraits,
        probe: RuntimeVersionProbe,
        bridge: NativeBridge | None = None,
        callbacks: HostCallbacks | None = None,
        opener: ExternalOpener | None = None,
    ) -> None:
        self.config = validate_config(config)
        self.traits = traits
        self.probe = probe
        self.bridge: NativeBridge = bridge if bridge is not None else RecordingBridge()
        self.callbacks = callbacks or HostCallbacks()
        self.opener: ExternalOpener = opener if opener is not None else NullExternalOpener()

        self.instance_id = uuid.uuid4().hex
        self.messaging_channel = f"WebViewMessageHandler-{self.instance_id}"

        self.whitelist = compile_whitelist(config.origin_whitelist)
        self.policy = DeepLinkPolicy(
            origin_whitelist=self.whitelist,
            deeplink_whitelist=config.deeplink_whitelist,
            on_should_start_load_with_request=self.callbacks.on_should_start_load_with_request,
        )
        self.messages = MessageValidator(
            whitelist=self.whitelist,
            download_rules=config.download_whitelist,
            validators=self.callbacks.message_validators(),
        )
        self.lifecycle = NavigationLifecycle(
            whitelist=self.whitelist,
            traits=traits,
            callbacks=self.callbacks,
            start_in_loading_state=config.start_in_loading_state,
        )

        self.gate: VersionGateResult | None = None
        self.closed = False
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> ViewState:
        return self.lifecycle.state

    @property
    def ready(self) -> bool:
        return not self.closed and self.gate is not None and self.gate.passed

    async def start(self) -> VersionGateResult | None:
        """Resolve the runtime version and evaluate the version gate once.

        Returns None when the session was closed while the probe was pending.
        """

        if self.gate is not None:
            return self.gate
        runtime = await self.probe.resolve()
        if self.closed:
            return None
        self.gate = check_version_gate(runtime, self.traits, self.config.minimum_version)
        if not self.gate.passed:
            logger.warning("Refusing to render on %s runtime %r: %s", self.traits.name, runtime, self.gate.reason)
        return self.gate

    def close(self) -> None:
        self.closed = True
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def handle(self, event: NativeEvent) -> tuple[Effect, ...]:
        if isinstance(event, NavigationRequest):
            if not self.ready:
                return acknowledgement(event, False) + (
                    Log.warning(f"Navigation to {event.url} refused: view is not ready"),
                )
            return self.policy.decide(event).effects

        if not self.ready:
            return NO_EFFECTS

        if isinstance(event, LoadStartEvent):
            self.lifecycle.on_load_start(event)
        elif isinstance(event, LoadProgressEvent):
            self.lifecycle.on_load_progress(event)
        elif isinstance(event, LoadFinishEvent):
            self.lifecycle.on_load_finish(event)
        elif isinstance(event, LoadErrorEvent):
            self.lifecycle.on_load_error(event)
        elif isinstance(event, OpenWindowEvent):
            self.lifecycle.on_open_window(event)
        elif isinstance(event, MessageEvent):
            message = self.messages.process(event)
            if message is not None and self.callbacks.on_message is not None:
                try:
                    self.callbacks.on_message(message)
                except Exception:
                    logger.exception("Host callback on_message raised")
        else:
            return (Log.error(f"Unsupported native event: {type(event).__name__}"),)
        return NO_EFFECTS

    def dispatch(self, event: NativeEvent) -> tuple[Effect, ...]:
        effects = self.handle(event)
        self.apply(effects)
        return effects

    def apply(self, effects: Iterable[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, Acknowledge):
                self.bridge.start_load_with_result(effect.should_start, effect.lock_identifier)
            elif isinstance(effect, LoadUrl):
                self.bridge.load_url(effect.url)
            elif isinstance(effect, Command):
                self.bridge.send_command(effect.name, effect.argument)
            elif isinstance(effect, OpenExternal):
                self._schedule_open_external(effect)
            elif isinstance(effect, Log):
                logger.log(effect.level, effect.message)

    def _schedule_open_external(self, effect: OpenExternal) -> None:
        if self.closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; not opening %s externally", effect.url)
            return
        task = loop.create_task(open_external(effect, self.opener))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for scheduled external-open attempts to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _command(self, name: CommandName, argument: Any = None) -> None:
        if self.closed:
            return
        self.apply((Command(name=name, argument=argument),))

    def reload(self) -> None:
        self.lifecycle.begin_reload()
        self._command("reload")

    def go_back(self) -> None:
        self._command("goBack")

    def go_forward(self) -> None:
        self._command("goForward")

    def stop_loading(self) -> None:
        self._command("stopLoading")

    def post_message(self, data: str) -> None:
        self._command("postMessage", str(data))

    def request_focus(self) -> None:
        self._command("requestFocus")

    def clear_cache(self, include_disk_files: bool) -> None:
        self._command("clearCache", bool(include_disk_files))

    def clear_history(self) -> None:
        self._command("clearHistory")

    def clear_form_data(self) -> None:
        self._command("clearFormData")

    def initial_source(self) -> Source | None:
        return resolve_source(self.config, self.whitelist)

    def render(self) -> RenderModel:
        if self.gate is None:
            return PendingRender()
        if not self.gate.passed:
            return UnsupportedVersion(platform=self.traits.name.capitalize(), reason=self.gate.reason)
        return PageRender(source=self.initial_source(), overlay=self.lifecycle.overlay())
