from __future__ import annotations

import asyncio

import pytest

from viewguard.platforms import CHROMIUM, WEBKIT, get_platform
from viewguard.version import (
    UNKNOWN_RUNTIME,
    RuntimeVersionProbe,
    check_version_gate,
    chrome_version_from_user_agent,
    version_passes,
)


@pytest.mark.parametrize(
    "version, spec, expected",
    [
        ("14.8.2", "14.8.1 <15", True),
        ("15.0", "14.8.1 <15", False),
        ("14.8.1", "14.8.1 <15", True),
        ("14.8", "14.8.1 <15", False),
        ("13.0", "12.5.6 <13, 13.6.1 <14", False),
        ("13.6.1", "12.5.6 <13, 13.6.1 <14", True),
        ("12.5.7", "12.5.6 <13, 13.6.1 <14", True),
        ("16.1", "12.5.6 <13, 13.6.1 <14, 14.8.1 <15, 15.7.1", True),
        ("15.7", "12.5.6 <13, 13.6.1 <14, 14.8.1 <15, 15.7.1", False),
        ("14.2", "14.2", True),
        ("14.2.0.0", "14.2", True),
        ("14.1.9", "14.2", False),
        ("100", "100.0", True),
        ("99.9.9", "100.0", False),
    ],
)
def test_version_passes(version: str, spec: str, expected: bool) -> None:
    assert version_passes(version, spec) is expected


@pytest.mark.parametrize(
    "spec",
    [
        "",
        "abc",
        "14.x",
        "1 <2 <3",
        "14.8.1 <",
        "14.8.1 <abc",
        # Every member but the last must carry an upper bound.
        "13.0, 14.0 <15",
        "12.5.6 <13,,15.7.1",
        "14..2",
        # Separators are exact.
        "14.8.1 < 15",
        "14.8.1<15",
        "12.5.6 <13,13.6.1 <14",
        " 14.8.1 <15",
    ],
)
def test_malformed_specs_fail_closed(spec: str) -> None:
    assert version_passes("14.9", spec) is False


@pytest.mark.parametrize("version", ["", "unknown", "14.a", "v14", "14.", None, 14])
def test_malformed_versions_fail_closed(version: object) -> None:
    assert version_passes(version, "1.0") is False


def test_chrome_version_from_user_agent() -> None:
    ua = "Mozilla/5.0 (Linux; Android 14) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.6367.82 Mobile Safari/537.36"
    assert chrome_version_from_user_agent(ua) == "124.0.6367.82"
    assert chrome_version_from_user_agent("HeadlessChrome/120.0.6099.28") == "120.0.6099.28"
    assert chrome_version_from_user_agent("Mozilla/5.0 Firefox/120.0") is None
    assert chrome_version_from_user_agent(None) is None


def test_gate_webkit_floor() -> None:
    assert check_version_gate("16.4", WEBKIT).passed
    assert check_version_gate("14.8.1", WEBKIT).passed
    assert not check_version_gate("14.8", WEBKIT).passed
    assert not check_version_gate(UNKNOWN_RUNTIME, WEBKIT).passed


def test_gate_chromium_reads_user_agent() -> None:
    assert check_version_gate("Chrome/110.0.1", CHROMIUM).passed
    result = check_version_gate("Chrome/99.0.1", CHROMIUM)
    assert not result.passed
    assert result.version == "99.0.1"
    assert not check_version_gate("no version here", CHROMIUM).passed


def test_gate_host_minimum_is_applied_on_top_of_floor() -> None:
    assert not check_version_gate("16.4", WEBKIT, minimum="17.0").passed
    assert check_version_gate("17.1", WEBKIT, minimum="17.0").passed
    # A lower host minimum does not lower the platform floor.
    assert not check_version_gate("13.0", WEBKIT, minimum="1.0").passed
    assert not check_version_gate("16.4", WEBKIT, minimum="nonsense").passed


def test_get_platform() -> None:
    assert get_platform("webkit") is WEBKIT
    with pytest.raises(ValueError):
        get_platform("gecko")


def test_probe_fetches_once() -> None:
    calls = 0

    async def fetch() -> str:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0)
        return "17.0"

    probe = RuntimeVersionProbe(fetch)

    async def run() -> list[str]:
        return list(await asyncio.gather(probe.resolve(), probe.resolve(), probe.resolve()))

    assert asyncio.run(run()) == ["17.0", "17.0", "17.0"]
    assert asyncio.run(probe.resolve()) == "17.0"
    assert calls == 1
    assert probe.cached == "17.0"


def test_probe_failures_are_not_cached() -> None:
    results = [RuntimeError("not ready"), "", "17.0"]

    async def fetch() -> str:
        item = results.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    probe = RuntimeVersionProbe(fetch)
    assert asyncio.run(probe.resolve()) == UNKNOWN_RUNTIME
    assert asyncio.run(probe.resolve()) == UNKNOWN_RUNTIME
    assert probe.cached is None
    assert asyncio.run(probe.resolve()) == "17.0"
