from __future__ import annotations

from dataclasses import dataclass
import re
from urllib.parse import urlsplit


_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):")

# Schemes whose origin is a (scheme, host, port) tuple, with their default ports.
_SPECIAL_SCHEMES: dict[str, int] = {
    "http": 80,
    "https": 443,
    "ws": 80,
    "wss": 443,
    "ftp": 21,
}

_FORBIDDEN_HOST_CHARS = frozenset(" \"#%/<>?@\\^`{|}")

_C0_AND_SPACE = "".join(chr(i) for i in range(0x21))


@dataclass(frozen=True, slots=True)
class ParsedUrl:
    # Lowercase, with the trailing colon: "https:".
    scheme: str
    href: str
    # None for opaque origins (custom schemes, about:, data:, file:).
    origin: str | None


def _strip(url: str) -> str:
    s = url.strip(_C0_AND_SPACE)
    return s.replace("\t", "").replace("\n", "").replace("\r", "")


def _format_host(host: str) -> str:
    return f"[{host}]" if ":" in host else host


def _parse_special(scheme: str, rest: str) -> ParsedUrl | None:
    # `https:example.com` and `https:\\example.com` resolve like `https://example.com`.
    # Backslash is a path separator in special URLs, so it ends the authority.
    authority_and_path = rest.lstrip("/\\").replace("\\", "/")
    try:
        parts = urlsplit(f"{scheme}://{authority_and_path}")
        host = parts.hostname
        port = parts.port
    except ValueError:
        return None

    if not host:
        return None
    if any(ch in _FORBIDDEN_HOST_CHARS for ch in host):
        return None

    host = host.lower()
    if port == _SPECIAL_SCHEMES[scheme]:
        port = None

    host_port = _format_host(host) + (f":{port}" if port is not None else "")
    origin = f"{scheme}://{host_port}"

    userinfo = ""
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo += f":{parts.password}"
        userinfo += "@"

    href = f"{scheme}://{userinfo}{host_port}{parts.path or '/'}"
    if parts.query:
        href += f"?{parts.query}"
    if parts.fragment:
        href += f"#{parts.fragment}"
    return ParsedUrl(scheme=f"{scheme}:", href=href, origin=origin)


def parse_url(url: object) -> ParsedUrl | None:
    """Parse an absolute URL into its scheme, normalized href and origin.

    Returns None for anything that is not a valid absolute URL: non-strings,
    relative references, schemes that do not start with a letter, special
    URLs without a usable host, or ports out of range.
    """

    if not isinstance(url, str):
        return None

    s = _strip(url)
    m = _SCHEME_RE.match(s)
    if not m:
        return None

    scheme = m.group(1).lower()
    rest = s[m.end():]

    if scheme in _SPECIAL_SCHEMES:
        return _parse_special(scheme, rest)

    if scheme == "blob":
        inner = parse_url(rest)
        origin = inner.origin if inner is not None and inner.scheme[:-1] in _SPECIAL_SCHEMES else None
        return ParsedUrl(scheme="blob:", href=f"blob:{rest}", origin=origin)

    return ParsedUrl(scheme=f"{scheme}:", href=f"{scheme}:{rest}", origin=None)


def url_scheme(url: object) -> str | None:
    parsed = parse_url(url)
    return parsed.scheme if parsed is not None else None


def url_origin(url: object) -> str | None:
    parsed = parse_url(url)
    return parsed.origin if parsed is not None else None
