"""
Testes para o módulo mediasniffer.core.probe.
"""

import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError

from mediasniffer.core.config import SnifferConfig
from mediasniffer.core.models import ObservedRequest
from mediasniffer.core.probe import (
    HeadProber,
    can_head_check,
    is_disguised_manifest,
    is_probe_candidate,
    last_path_segment,
    playwright_head_fetcher,
    should_probe,
)

from conftest import FakePage

STREAM_URL = "https://cdn.example/stream/abcd"
MANIFEST_HEADERS = {
    "content-type": "application/octet-stream",
    "content-disposition": 'attachment; filename="x.m3u8"',
}


def _observed(url=STREAM_URL, resource_type="xhr"):
    return ObservedRequest(url=url, method="GET", headers={"referer": "https://site.example/"},
                           resource_type=resource_type)


# ---------------------------------------------------------------------------
# Forma da URL
# ---------------------------------------------------------------------------

def test_last_path_segment():
    assert last_path_segment("https://cdn.example/a/b/c.m3u8?x=1") == "c.m3u8"
    assert last_path_segment("https://cdn.example/stream/abcd") == "abcd"
    assert last_path_segment("https://cdn.example/") == ""


def test_is_probe_candidate_without_extension():
    assert is_probe_candidate("https://cdn.example/stream/abcd") is True


def test_is_probe_candidate_skips_resolved_parser_urls():
    assert is_probe_candidate("https://parser.example/api?ac=dm&url=abcd") is False
    assert is_probe_candidate("https://parser.example/api/play?ac=dm&url=abc") is False


def test_is_probe_candidate_with_empty_extension():
    assert is_probe_candidate("https://cdn.example/stream/abcd.") is True


def test_is_probe_candidate_rejects_regular_extension_and_root():
    assert is_probe_candidate("https://cdn.example/app.js") is False
    assert is_probe_candidate("https://cdn.example/") is False


def test_can_head_check_respects_excludes():
    config = SnifferConfig(head_excludes=(r"analytics\.example",))
    assert can_head_check("https://analytics.example/collect", config) is False
    assert can_head_check(STREAM_URL, config) is True


def test_should_probe_skips_scripts_and_probed():
    config = SnifferConfig()
    assert should_probe(_observed(), config, set()) is True
    assert should_probe(_observed(resource_type="script"), config, set()) is False
    assert should_probe(_observed(), config, {STREAM_URL}) is False


# ---------------------------------------------------------------------------
# Resposta da sondagem
# ---------------------------------------------------------------------------

def test_is_disguised_manifest():
    assert is_disguised_manifest(MANIFEST_HEADERS) is True
    assert is_disguised_manifest({
        "Content-Type": "application/octet-stream; charset=binary",
        "Content-Disposition": "attachment; filename=index.m3u8",
    }) is True


def test_is_disguised_manifest_rejects_other_responses():
    assert is_disguised_manifest({"content-type": "text/html"}) is False
    assert is_disguised_manifest({"content-type": "application/octet-stream"}) is False
    assert is_disguised_manifest({
        "content-type": "application/octet-stream",
        "content-disposition": 'attachment; filename="x.zip"',
    }) is False


# ---------------------------------------------------------------------------
# HeadProber
# ---------------------------------------------------------------------------

def test_head_prober_accepts_disguised_manifest():
    page = FakePage(head_responses={STREAM_URL: MANIFEST_HEADERS})
    prober = HeadProber(playwright_head_fetcher(page), SnifferConfig())
    assert asyncio.run(prober.probe(_observed())) is True
    assert STREAM_URL in prober.probed


def test_head_prober_rejects_html_and_never_reprobes():
    page = FakePage(head_responses={STREAM_URL: {"content-type": "text/html"}})
    prober = HeadProber(playwright_head_fetcher(page), SnifferConfig())

    assert asyncio.run(prober.probe(_observed())) is False
    assert STREAM_URL in prober.probed
    # Vista de novo, a URL não é mais candidata
    assert prober.wants(_observed()) is False
    assert page.request.calls == [STREAM_URL]


def test_head_prober_absorbs_errors():
    page = FakePage(head_responses={STREAM_URL: PlaywrightError("Timeout 100ms exceeded")})
    prober = HeadProber(playwright_head_fetcher(page), SnifferConfig())
    assert asyncio.run(prober.probe(_observed())) is False
    assert STREAM_URL in prober.probed


def test_head_prober_uses_head_timeout_and_referer():
    seen = {}

    async def fetch(url, headers, timeout_ms):
        seen.update(url=url, headers=headers, timeout=timeout_ms)
        return {}

    prober = HeadProber(fetch, SnifferConfig(head_timeout=250))
    asyncio.run(prober.probe(_observed()))
    assert seen == {"url": STREAM_URL, "headers": {"referer": "https://site.example/"}, "timeout": 250}
