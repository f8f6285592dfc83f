from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Any, Callable, Mapping

from .deeplink import DEFAULT_DEEPLINK_WHITELIST, ShouldStartOverride
from .download import DownloadRule
from .events import (
    LoadErrorEvent,
    LoadFinishEvent,
    LoadStartEvent,
    OpenWindowEvent,
)
from .messages import MessageMeta, MessageValidators, WebViewMessage
from .whitelist import DEFAULT_ORIGIN_WHITELIST, CompiledWhitelist


logger = logging.getLogger(__name__)


CONFIG_SCHEMA = "viewguard.config.v1"

BLANK_URL = "about:blank"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Source:
    uri: str | None = None
    html: str | None = None
    base_url: str | None = None
    method: str | None = None
    headers: tuple[tuple[str, str], ...] = ()
    body: str | None = None


@dataclass(frozen=True, slots=True)
class ViewConfig:
    origin_whitelist: tuple[str, ...] = DEFAULT_ORIGIN_WHITELIST
    deeplink_whitelist: tuple[str, ...] = DEFAULT_DEEPLINK_WHITELIST
    download_whitelist: tuple[DownloadRule, ...] = ()
    # Host floor on top of the platform's own; None means "platform floor only".
    minimum_version: str | None = None
    start_in_loading_state: bool = False
    source: Source | None = None


@dataclass(frozen=True, slots=True)
class HostCallbacks:
    on_load_start: Callable[[LoadStartEvent], None] | None = None
    on_load: Callable[[LoadFinishEvent], None] | None = None
    on_load_end: Callable[[LoadFinishEvent | LoadErrorEvent], None] | None = None
    on_error: Callable[[LoadErrorEvent], None] | None = None
    on_message: Callable[[WebViewMessage], None] | None = None
    on_open_window: Callable[[OpenWindowEvent], None] | None = None
    on_should_start_load_with_request: ShouldStartOverride | None = None
    validate_meta: Callable[[MessageMeta], MessageMeta] | None = None
    validate_data: Callable[[Any], Any] | None = None

    def message_validators(self) -> MessageValidators:
        kwargs: dict[str, Any] = {}
        if self.validate_meta is not None:
            kwargs["validate_meta"] = self.validate_meta
        if self.validate_data is not None:
            kwargs["validate_data"] = self.validate_data
        return MessageValidators(**kwargs)


def validate_config(config: ViewConfig) -> ViewConfig:
    """Reject configurations that would let inline HTML talk to any origin."""

    source = config.source
    if source is not None and source.html is not None:
        whitelist = config.origin_whitelist
        if not whitelist or "*" in whitelist:
            raise ConfigError("origin_whitelist is required when using source.html and cannot include '*'")
    return config


def resolve_source(config: ViewConfig, whitelist: CompiledWhitelist) -> Source | None:
    """Return the source the view should actually load.

    A ``uri`` source outside the origin whitelist is replaced by
    ``about:blank``.
    """

    source = config.source
    if source is None:
        return None

    if source.method == "POST" and source.headers:
        logger.warning("WebView: `source.headers` is not supported when using POST.")
    elif source.method == "GET" and source.body:
        logger.warning("WebView: `source.body` is not supported when using GET.")

    if source.uri is not None and not whitelist.matches(source.uri):
        logger.warning("Source %s does not pass the origin whitelist; loading %s instead", source.uri, BLANK_URL)
        return Source(uri=BLANK_URL)
    return source


def _string_list(value: Any, *, key: str, where: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
        raise ValueError(f"{key} must be a list of strings: {where}")
    return tuple(value)


def _source_from_dict(value: Any, *, where: str) -> Source:
    if not isinstance(value, dict):
        raise ValueError(f"source must be an object (got {type(value)!r}): {where}")
    unknown = set(value) - {"uri", "html", "baseUrl", "method", "headers", "body"}
    if unknown:
        raise ValueError(f"source has unknown keys {sorted(unknown)}: {where}")
    if ("uri" in value) == ("html" in value):
        raise ValueError(f"source must contain exactly one of 'uri' or 'html': {where}")

    for key in ("uri", "html", "baseUrl", "method", "body"):
        if key in value and not isinstance(value[key], str):
            raise ValueError(f"source.{key} must be a string: {where}")

    headers = value.get("headers", {})
    if not isinstance(headers, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
    ):
        raise ValueError(f"source.headers must be an object of strings: {where}")

    method = value.get("method")
    return Source(
        uri=value.get("uri"),
        html=value.get("html"),
        base_url=value.get("baseUrl"),
        method=method.upper() if method is not None else None,
        headers=tuple(sorted(headers.items())),
        body=value.get("body"),
    )


def config_from_dict(data: Mapping[str, Any], *, where: str = "<config>") -> ViewConfig:
    # Config file schema (strict):
    # {"schema": "viewguard.config.v1", "originWhitelist": [...], ...}
    if not isinstance(data, Mapping):
        raise ValueError(f"Config must be an object with schema {CONFIG_SCHEMA!r} (got {type(data)!r}): {where}")

    schema = data.get("schema")
    if schema != CONFIG_SCHEMA:
        raise ValueError(f"Config schema must be {CONFIG_SCHEMA!r} (got {schema!r}): {where}")

    allowed = {
        "schema",
        "originWhitelist",
        "deeplinkWhitelist",
        "downloadWhitelist",
        "minimumVersion",
        "startInLoadingState",
        "source",
    }
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Config has unknown keys {sorted(unknown)}: {where}")

    kwargs: dict[str, Any] = {}

    if "originWhitelist" in data:
        kwargs["origin_whitelist"] = _string_list(data["originWhitelist"], key="originWhitelist", where=where)
    if "deeplinkWhitelist" in data:
        kwargs["deeplink_whitelist"] = _string_list(data["deeplinkWhitelist"], key="deeplinkWhitelist", where=where)

    if "downloadWhitelist" in data:
        raw_rules = data["downloadWhitelist"]
        if not isinstance(raw_rules, list):
            raise ValueError(f"downloadWhitelist must be a list of rules: {where}")
        try:
            kwargs["download_whitelist"] = tuple(DownloadRule.from_dict(r) for r in raw_rules)
        except ValueError as exc:
            raise ValueError(f"{exc}: {where}") from exc

    if "minimumVersion" in data:
        minimum = data["minimumVersion"]
        if minimum is not None and not isinstance(minimum, str):
            raise ValueError(f"minimumVersion must be a string: {where}")
        kwargs["minimum_version"] = minimum

    if "startInLoadingState" in data:
        if not isinstance(data["startInLoadingState"], bool):
            raise ValueError(f"startInLoadingState must be a boolean: {where}")
        kwargs["start_in_loading_state"] = data["startInLoadingState"]

    if "source" in data:
        kwargs["source"] = _source_from_dict(data["source"], where=where)

    try:
        return validate_config(ViewConfig(**kwargs))
    except ConfigError as exc:
        raise ConfigError(f"{exc}: {where}") from exc


def load_config(path: str | Path) -> ViewConfig:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Config file is not valid JSON ({exc}): {path}") from exc
    return config_from_dict(data, where=str(path))
