from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal

from .version import UNKNOWN_RUNTIME, chrome_version_from_user_agent


Platform = Literal["webkit", "chromium"]


def _version_as_is(runtime: str) -> str | None:
    runtime = str(runtime).strip()
    if not runtime or runtime == UNKNOWN_RUNTIME:
        return None
    return runtime


@dataclass(frozen=True, slots=True)
class PlatformTraits:
    name: Platform
    # The engine reports finish events for the top frame only.
    reliable_top_frame_finish: bool
    # A progress event of 1.0 is the only reliable "page loaded" signal.
    progress_completes_load: bool
    hard_minimum_version: str
    version_from_runtime: Callable[[str], str | None]


WEBKIT = PlatformTraits(
    name="webkit",
    reliable_top_frame_finish=True,
    progress_completes_load=False,
    hard_minimum_version="12.5.6 <13, 13.6.1 <14, 14.8.1 <15, 15.7.1",
    version_from_runtime=_version_as_is,
)

CHROMIUM = PlatformTraits(
    name="chromium",
    reliable_top_frame_finish=False,
    progress_completes_load=True,
    hard_minimum_version="100.0",
    version_from_runtime=chrome_version_from_user_agent,
)

PLATFORMS: dict[str, PlatformTraits] = {
    "webkit": WEBKIT,
    "chromium": CHROMIUM,
}


def get_platform(name: str) -> PlatformTraits:
    try:
        return PLATFORMS[name]
    except KeyError:
        raise ValueError(f"Unknown platform: {name!r}. Available: {sorted(PLATFORMS)}") from None
