from __future__ import annotations

import pytest

from viewguard.whitelist import compile_whitelist, passes_whitelist, pattern_to_regex


def test_about_blank_always_matches() -> None:
    assert compile_whitelist([]).matches("about:blank")
    assert compile_whitelist(["https://example.com"]).matches("about:blank")
    assert passes_whitelist(None, "about:blank")


def test_default_style_pattern_matches_any_https_origin() -> None:
    wl = compile_whitelist(["https://*"])
    assert wl.matches("https://example.com/a/b")
    assert wl.matches("https://sub.example.com:8443/")
    assert not wl.matches("http://example.com/")


def test_patterns_are_anchored() -> None:
    wl = compile_whitelist(["https://example.com"])
    assert wl.matches("https://example.com/path")
    assert not wl.matches("https://example.com.evil.test/")
    assert not wl.matches("https://evil.test/?https://example.com")


def test_subdomain_wildcard() -> None:
    wl = compile_whitelist(["https://*.example.com"])
    assert wl.matches("https://a.example.com/")
    assert wl.matches("https://a.b.example.com/")
    assert not wl.matches("https://example.com/")
    assert not wl.matches("https://example.com.evil.test/")


def test_regex_metacharacters_are_literal() -> None:
    wl = compile_whitelist(["https://a.com"])
    assert not wl.matches("https://abcom/")
    assert pattern_to_regex("a+b").fullmatch("a+b")
    assert not pattern_to_regex("a+b").fullmatch("aab")


def test_opaque_origin_falls_back_to_href() -> None:
    wl = compile_whitelist(["myapp:*"])
    assert wl.matches("myapp://settings")
    assert not wl.matches("otherapp://settings")


@pytest.mark.parametrize("url", ["", "not a url", "https://", None, "//example.com"])
def test_unparseable_urls_fail_closed(url: object) -> None:
    assert not compile_whitelist(["*"]).matches(url)


def test_compiled_whitelists_are_reused() -> None:
    assert compile_whitelist(["https://a.com"]) is compile_whitelist(("https://a.com",))


def test_bare_string_is_rejected() -> None:
    with pytest.raises(TypeError):
        compile_whitelist("https://*")


def test_contains_operator() -> None:
    wl = compile_whitelist(["https://a.com"])
    assert "https://a.com/x" in wl
    assert "https://b.com/x" not in wl


def test_backslash_userinfo_does_not_borrow_a_whitelisted_host() -> None:
    wl = compile_whitelist(["https://example.com"])
    assert not wl.matches("https://evil.test\\@example.com/")
    assert compile_whitelist(["https://evil.test"]).matches("https://evil.test\\@example.com/")
