from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import Any, Callable, Iterable

from .download import DownloadRule, is_download_message_allowed, loads_strict
from .events import MessageEvent
from .whitelist import CompiledWhitelist


logger = logging.getLogger(__name__)


MAX_TITLE_LENGTH = 512


@dataclass(frozen=True, slots=True)
class MessageMeta:
    url: str
    loading: bool
    title: str
    can_go_back: bool
    can_go_forward: bool
    lock_identifier: int | None


@dataclass(frozen=True, slots=True)
class WebViewMessage:
    url: str
    loading: bool
    title: str
    can_go_back: bool
    can_go_forward: bool
    lock_identifier: int | None
    # JSON text of the validated message body.
    data: str


def _identity(value: Any) -> Any:
    return value


@dataclass(frozen=True, slots=True)
class MessageValidators:
    """Host hooks applied to every inbound page message.

    Both default to identity. A hook that raises, or a meta hook that does
    not return a :class:`MessageMeta`, rejects the message.
    """

    validate_meta: Callable[[MessageMeta], MessageMeta] = field(default=_identity)
    validate_data: Callable[[Any], Any] = field(default=_identity)


def _as_lock_identifier(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def extract_meta(event: MessageEvent) -> MessageMeta:
    title = "" if event.title is None else str(event.title)
    return MessageMeta(
        url=str(event.url),
        loading=bool(event.loading),
        title=title[:MAX_TITLE_LENGTH],
        can_go_back=bool(event.can_go_back),
        can_go_forward=bool(event.can_go_forward),
        lock_identifier=_as_lock_identifier(event.lock_identifier),
    )


class MessageValidator:
    def __init__(
        self,
        *,
        whitelist: CompiledWhitelist,
        download_rules: Iterable[DownloadRule] = (),
        validators: MessageValidators | None = None,
    ) -> None:
        self.whitelist = whitelist
        self.download_rules: tuple[DownloadRule, ...] = tuple(download_rules)
        self.validators = validators or MessageValidators()

    def _download_allowed(self, body: Any, url: str) -> bool:
        try:
            serialized = json.dumps(body, allow_nan=False)
        except (TypeError, ValueError, RecursionError):
            return False
        if not is_download_message_allowed(serialized, url, self.download_rules):
            return False

        # Bridges that wrap the page payload as {"data": "<json>"} are gated on
        # the inner payload too.
        if isinstance(body, dict) and isinstance(body.get("data"), str):
            return is_download_message_allowed(body["data"], url, self.download_rules)
        return True

    def process(self, event: MessageEvent) -> WebViewMessage | None:
        """Validate one inbound page message.

        Returns the message to deliver to the host, or None when it was
        dropped. Never raises.
        """

        if not self.whitelist.matches(event.url):
            return None

        try:
            body = loads_strict(event.data)
        except (TypeError, ValueError, RecursionError) as exc:
            logger.error("Error parsing WebView message from %s: %s", event.url, exc)
            return None

        try:
            body = self.validators.validate_data(body)
        except Exception as exc:
            logger.warning("validateData rejected message from %s: %r", event.url, exc)
            return None

        url = str(event.url)
        if not self._download_allowed(body, url):
            logger.warning(
                "Download request rejected: origin not in download whitelist or file extension not allowed"
            )
            return None

        try:
            data = json.dumps(body, allow_nan=False)
        except (TypeError, ValueError, RecursionError) as exc:
            logger.error("Validated message from %s is not serializable: %s", url, exc)
            return None

        try:
            meta = self.validators.validate_meta(extract_meta(event))
        except Exception as exc:
            logger.warning("validateMeta rejected message from %s: %r", url, exc)
            return None
        if not isinstance(meta, MessageMeta):
            logger.error("validateMeta returned %s instead of MessageMeta; message dropped", type(meta).__name__)
            return None

        return WebViewMessage(
            url=meta.url,
            loading=meta.loading,
            title=meta.title,
            can_go_back=meta.can_go_back,
            can_go_forward=meta.can_go_forward,
            lock_identifier=meta.lock_identifier,
            data=data,
        )
