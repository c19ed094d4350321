from __future__ import annotations

import pytest

from chatguard.moderation.domain.url_extract import extract_urls, normalize_url


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("HTTP://Example.COM:80", "http://example.com/"),
        ("https://example.com:443/path?q=1#frag", "https://example.com/path?q=1"),
        ("https://example.com:8443/x", "https://example.com:8443/x"),
        ("http://user@Example.com/a", "http://user@example.com/a"),
        ("http://[::1]:8080/", "http://[::1]:8080/"),
        ("http://3232235781/app.exe", "http://192.168.1.5/app.exe"),
        ("http://0xC0A80105/app.exe", "http://192.168.1.5/app.exe"),
        ("http://0300.0250.1.5/", "http://192.168.1.5/"),
        ("http://192.168.261/", "http://192.168.1.5/"),
        ("http://evil.tk./x", "http://evil.tk/x"),
        ("http://Bit.LY.:80/x", "http://bit.ly/x"),
    ],
)
def test_normalize_url_canonical_form(raw: str, expected: str) -> None:
    assert normalize_url(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not a url",
        "ftp://example.com/file",
        "http://",
        "http://example.com:99999/",
        "javascript:alert(1)",
        "http://999.1.1.1/",
        "http://1.2.3.4.5/",
    ],
)
def test_normalize_url_rejects_non_urls(raw: str) -> None:
    assert normalize_url(raw) is None


@pytest.mark.parametrize(
    "raw",
    [
        "HTTP://Example.COM:80",
        "https://a.b.example.org/x/y?z=1#top",
        "http://192.168.1.5/app.exe",
        "https://example.com:8443",
        "http://user:pw@Host.example.com/",
        "http://0xC0A80105/app.exe",
        "http://evil.tk./x",
    ],
)
def test_normalize_url_is_idempotent(raw: str) -> None:
    once = normalize_url(raw)
    assert once is not None
    assert normalize_url(once) == once


def test_extract_urls_combines_scans_in_first_seen_order() -> None:
    text = "see https://Example.com/a#x then www.test.org, and evil.tk! again https://example.com/a"
    assert extract_urls(text) == ["https://Example.com/a#x", "http://www.test.org", "http://evil.tk"]


def test_extract_urls_has_no_duplicate_normalized_entries() -> None:
    text = "http://EXAMPLE.com http://example.com:80/ example.com www.example.com"
    urls = extract_urls(text)
    normalized = [normalize_url(url) for url in urls]
    assert len(normalized) == len(set(normalized))
    assert normalized[0] == "http://example.com/"


def test_extract_urls_collapses_spacing_around_dots() -> None:
    assert extract_urls("grab it at evil . tk now") == ["http://evil.tk"]


def test_extract_urls_skips_www_inside_scheme_match() -> None:
    assert extract_urls("open https://www.example.com/path") == ["https://www.example.com/path"]


def test_extract_urls_accepts_executable_suffix_tokens() -> None:
    assert extract_urls("run setup.exe please") == ["http://setup.exe"]


def test_extract_urls_ignores_plain_text() -> None:
    assert extract_urls("no links here, just words and 3.14 numbers") == []
    assert extract_urls("") == []


@pytest.mark.parametrize(
    "text",
    ["I did it. Me too", "Thanks so much. Info to follow", "see you at the co. Io is a moon", "sent it.De nada"],
)
def test_extract_urls_leaves_prose_sentence_breaks_alone(text: str) -> None:
    assert extract_urls(text) == []


def test_extract_urls_dedupes_numeric_and_dotted_ip_spellings() -> None:
    text = "http://3232235781/app.exe and http://192.168.1.5/app.exe"
    assert extract_urls(text) == ["http://3232235781/app.exe"]
