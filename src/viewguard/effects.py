from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Literal, Union


CommandName = Literal[
    "reload",
    "goBack",
    "goForward",
    "stopLoading",
    "postMessage",
    "requestFocus",
    "clearCache",
    "clearHistory",
    "clearFormData",
]


@dataclass(frozen=True, slots=True)
class Acknowledge:
    """Answer a pending native navigation identified by its lock."""

    lock_identifier: int
    should_start: bool


@dataclass(frozen=True, slots=True)
class LoadUrl:
    """Allowed navigation without a lock: the view is told to load directly."""

    url: str


@dataclass(frozen=True, slots=True)
class OpenExternal:
    url: str
    is_top_frame: bool
    # Mail-compose links open even from sub-frames and unsupported handlers.
    always_allowed: bool = False


@dataclass(frozen=True, slots=True)
class Command:
    name: CommandName
    argument: Any = None


@dataclass(frozen=True, slots=True)
class Log:
    level: int
    message: str

    @classmethod
    def warning(cls, message: str) -> "Log":
        return cls(level=logging.WARNING, message=message)

    @classmethod
    def error(cls, message: str) -> "Log":
        return cls(level=logging.ERROR, message=message)


Effect = Union[Acknowledge, LoadUrl, OpenExternal, Command, Log]

NO_EFFECTS: tuple[Effect, ...] = ()
