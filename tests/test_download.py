from __future__ import annotations

import json

import pytest

from viewguard.download import DownloadRule, file_extension, is_download_message_allowed


RULES = (DownloadRule.create("https://a.com", ["pdf"]),)


def _download(file_name: str) -> str:
    return json.dumps({"method": "download", "params": {"fileName": file_name}})


def test_allowed_origin_and_extension() -> None:
    assert is_download_message_allowed(_download("x.pdf"), "https://a.com/page", RULES)


def test_other_origin_is_rejected() -> None:
    assert not is_download_message_allowed(_download("x.pdf"), "https://b.com/page", RULES)


def test_other_extension_is_rejected() -> None:
    assert not is_download_message_allowed(_download("x.exe"), "https://a.com/page", RULES)


def test_extension_match_is_case_insensitive() -> None:
    assert is_download_message_allowed(_download("REPORT.PDF"), "https://a.com/", RULES)
    rule = DownloadRule.create("https://a.com", [".PDF"])
    assert rule.allowed_file_extensions == frozenset({"pdf"})


@pytest.mark.parametrize("file_name", ["noextension", "trailingdot.", ""])
def test_missing_extension_is_rejected(file_name: str) -> None:
    assert not is_download_message_allowed(_download(file_name), "https://a.com/", RULES)


def test_missing_params_is_rejected() -> None:
    assert not is_download_message_allowed('{"method": "download"}', "https://a.com/", RULES)


def test_unparseable_origin_is_rejected() -> None:
    assert not is_download_message_allowed(_download("x.pdf"), "not a url", RULES)


@pytest.mark.parametrize(
    "data",
    [
        "not json at all",
        '{"method": "share"}',
        "[1, 2, 3]",
        '"download"',
        None,
    ],
)
def test_non_download_messages_pass(data: object) -> None:
    assert is_download_message_allowed(data, "https://anything.test/", ())


def test_no_rules_rejects_every_download() -> None:
    assert not is_download_message_allowed(_download("x.pdf"), "https://a.com/", ())


def test_file_extension() -> None:
    assert file_extension("archive.tar.GZ") == "gz"
    assert file_extension("noext") is None
    assert file_extension(None) is None


def test_rule_from_dict() -> None:
    rule = DownloadRule.from_dict({"origin": "https://a.com", "allowedFileExtensions": ["pdf", "CSV"]})
    assert rule == DownloadRule(origin="https://a.com", allowed_file_extensions=frozenset({"pdf", "csv"}))


@pytest.mark.parametrize(
    "item",
    [
        {"origin": "https://a.com"},
        {"origin": 1, "allowedFileExtensions": ["pdf"]},
        {"origin": "https://a.com", "allowedFileExtensions": "pdf"},
        ["https://a.com", ["pdf"]],
    ],
)
def test_rule_from_dict_rejects_bad_shapes(item: object) -> None:
    with pytest.raises(ValueError):
        DownloadRule.from_dict(item)  # type: ignore[arg-type]


def test_deeply_nested_message_is_rejected() -> None:
    assert not is_download_message_allowed("[" * 200000, "https://a.com/", RULES)


def test_non_standard_json_constants_are_not_download_requests() -> None:
    assert is_download_message_allowed("NaN", "https://b.com/", RULES)
    assert is_download_message_allowed('{"method": "download", "x": Infinity}', "https://b.com/", RULES)
