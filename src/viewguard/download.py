from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any, Iterable, Mapping

from .urls import url_origin


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON constant: {name}")


def loads_strict(data: Any) -> Any:
    """``json.loads`` without the ``NaN``/``Infinity`` extensions."""

    return json.loads(data, parse_constant=_reject_constant)


@dataclass(frozen=True, slots=True)
class DownloadRule:
    origin: str
    # Lowercase, without the leading dot.
    allowed_file_extensions: frozenset[str]

    @classmethod
    def create(cls, origin: str, extensions: Iterable[str]) -> "DownloadRule":
        if isinstance(extensions, str):
            raise ValueError("allowedFileExtensions must be a list of strings, not a string")
        return cls(
            origin=str(origin),
            allowed_file_extensions=frozenset(str(e).strip().lstrip(".").lower() for e in extensions),
        )

    @classmethod
    def from_dict(cls, item: Mapping[str, Any]) -> "DownloadRule":
        if not isinstance(item, Mapping):
            raise ValueError(f"Download rules must be objects (got {type(item)!r})")
        missing = {"origin", "allowedFileExtensions"} - set(item.keys())
        if missing:
            raise ValueError(f"Download rule missing keys {sorted(missing)}")
        origin = item["origin"]
        extensions = item["allowedFileExtensions"]
        if not isinstance(origin, str):
            raise ValueError(f"Download rule origin must be a string (got {type(origin)!r})")
        if not isinstance(extensions, list) or not all(isinstance(x, str) for x in extensions):
            raise ValueError("Download rule allowedFileExtensions must be a list of strings")
        return cls.create(origin, extensions)


def file_extension(file_name: object) -> str | None:
    if not isinstance(file_name, str):
        return None
    stem, dot, ext = file_name.rpartition(".")
    if not dot or not ext:
        return None
    return ext.lower()


def is_download_message_allowed(data: object, url: object, rules: Iterable[DownloadRule]) -> bool:
    """Return whether a page message may go through the download gate.

    Anything that is not a ``{"method": "download", ...}`` object is not a
    download request and passes. A download passes only when a rule names
    the requesting origin and the file's extension.
    """

    try:
        parsed = loads_strict(data) if isinstance(data, (str, bytes, bytearray)) else None
    except ValueError:
        return True
    except RecursionError:
        # Too deep to tell whether it is a download request.
        return False

    if not isinstance(parsed, dict) or parsed.get("method") != "download":
        return True

    origin = url_origin(url)
    params = parsed.get("params")
    ext = file_extension(params.get("fileName")) if isinstance(params, dict) else None
    if not ext or not origin:
        return False

    return any(rule.origin == origin and ext in rule.allowed_file_extensions for rule in rules)
