import asyncio

import pytest
from mediasniffer.core.config import SnifferConfig
from mediasniffer.core.engine import SnifferEngine
from mediasniffer.core.errors import InvalidInputError, SessionAcquisitionError
from mediasniffer.core.models import FetchRequest, PageContent, SniffRequest, SniffSuccess

from conftest import FakeManager, FakePage, FakeRequest


def test_validate_url_valid():
    engine = SnifferEngine()
    assert engine.validate_url("https://google.com") is True
    assert engine.validate_url("http://exemplo.com/video") is True
    assert engine.validate_url("https://site.example/watch?id=1") is True


def test_validate_url_invalid():
    engine = SnifferEngine()
    assert engine.validate_url("not-a-url") is False
    assert engine.validate_url("ftp://server.com") is False
    assert engine.validate_url("") is False


def test_validate_url_ssrf_prevention():
    engine = SnifferEngine()
    assert engine.validate_url("http://localhost") is False
    assert engine.validate_url("http://127.0.0.1") is False
    assert engine.validate_url("http://192.168.1.1") is False
    assert engine.validate_url("http://10.0.0.1") is False
    assert engine.validate_url("http://172.16.0.1") is False


def test_validate_url_checks_host_after_userinfo():
    engine = SnifferEngine()
    assert engine.validate_url("http://user@127.0.0.1/") is False
    assert engine.validate_url("http://user:pw@192.168.0.10:8080/live") is False


def test_validate_url_allows_private_hosts_when_configured():
    engine = SnifferEngine(SnifferConfig(block_private_hosts=False))
    assert engine.validate_url("http://192.168.1.1/player") is True


def test_sniff_rejects_invalid_url_before_opening_page(fast_config):
    manager = FakeManager(fast_config)
    engine = SnifferEngine(fast_config, manager=manager)
    with pytest.raises(InvalidInputError) as excinfo:
        asyncio.run(engine.sniff(SniffRequest(url="not-a-url")))
    assert isinstance(excinfo.value, ValueError)
    assert manager.opened_with == []
    assert manager.contexts == []


@pytest.mark.parametrize("kwargs", [
    {"custom_regex": "(["},
    {"sniffer_exclude": "*mp4"},
])
def test_sniff_rejects_invalid_regex_before_opening_page(fast_config, kwargs):
    manager = FakeManager(fast_config)
    engine = SnifferEngine(fast_config, manager=manager)
    with pytest.raises(InvalidInputError) as excinfo:
        asyncio.run(engine.sniff(SniffRequest(url="https://site.example/watch?id=1", **kwargs)))
    assert "Regex inválida" in str(excinfo.value)
    assert manager.opened_with == []
    assert manager.contexts == []


def test_sniff_rejects_invalid_configured_regex():
    config = SnifferConfig(custom_regex="(unclosed")
    manager = FakeManager(config)
    engine = SnifferEngine(config, manager=manager)
    with pytest.raises(InvalidInputError):
        asyncio.run(engine.sniff(SniffRequest(url="https://site.example/watch?id=1")))
    assert manager.contexts == []


def test_sniff_propagates_session_acquisition_error(fast_config):
    manager = FakeManager(fast_config, open_error=SessionAcquisitionError("sem navegador"))
    engine = SnifferEngine(fast_config, manager=manager)
    with pytest.raises(SessionAcquisitionError):
        asyncio.run(engine.sniff(SniffRequest(url="https://site.example/watch?id=1")))


def test_sniff_success_through_engine(fast_config):
    play_url = "https://site.example/watch?id=1"
    media = "https://cdn.example/abc123/video_720p.m3u8?token=xyz"
    page = FakePage(emissions=[(0.05, FakeRequest(media, headers={"referer": play_url}))])
    engine = SnifferEngine(fast_config, manager=FakeManager(fast_config, page=page))

    outcome = asyncio.run(engine.sniff(SniffRequest(url=play_url, timeout=1000)))
    assert isinstance(outcome, SniffSuccess)
    data = outcome.to_dict()
    assert data["url"] == media
    assert data["headers"] == {"referer": play_url}
    assert data["from"] == play_url
    assert data["code"] == 200
    assert data["cost"].endswith(" ms")


def test_fetch_rendered_page(fast_config):
    page = FakePage(html="<html><body><div id='player'></div></body></html>",
                    final_url="https://site.example/final")
    manager = FakeManager(fast_config, page=page)
    engine = SnifferEngine(fast_config, manager=manager)

    result = asyncio.run(engine.fetch_rendered_page(FetchRequest(
        url="https://site.example/start",
        css="#player",
        script="window.scrollTo(0, 0)",
        init_script="window.__x = 1",
    )))

    assert isinstance(result, PageContent)
    assert "player" in result.content
    assert result.final_url == "https://site.example/final"
    assert result.to_dict()["headers"] == {"location": "https://site.example/final"}
    assert ("wait_for_selector", "#player") in page.calls
    assert page.evaluated == ["window.scrollTo(0, 0)"]
    assert page.default_timeout == fast_config.timeout
    assert manager.contexts[0].close_calls == 1


def test_fetch_rendered_page_survives_navigation_error(fast_config, playwright_error):
    page = FakePage(goto_error=playwright_error("net::ERR_NAME_NOT_RESOLVED"))
    manager = FakeManager(fast_config, page=page)
    engine = SnifferEngine(fast_config, manager=manager)

    result = asyncio.run(engine.fetch_rendered_page(FetchRequest(url="https://site.example/x", timeout=99999)))
    assert result.final_url == "about:blank"
    assert ("wait_for_load_state", "load") in page.calls
    assert page.default_timeout == fast_config.web_timeout
    assert manager.contexts[0].close_calls == 1


def test_fetch_rendered_page_rejects_invalid_url(fast_config):
    manager = FakeManager(fast_config)
    engine = SnifferEngine(fast_config, manager=manager)
    with pytest.raises(InvalidInputError):
        asyncio.run(engine.fetch_rendered_page(FetchRequest(url="javascript:alert(1)")))
    assert manager.contexts == []


def test_engine_status(fast_config):
    engine = SnifferEngine(fast_config, manager=FakeManager(fast_config))
    assert engine.status() == {"browser": "initialized", "open_pages": 0}
    assert SnifferEngine().status()["browser"] == "not_initialized"
