"""
Objetos falsos do Playwright usados pelos testes de sessão, captura e motor.

Simulam apenas o que o mediasniffer usa: eventos da página, navegação,
esperas, avaliação de scripts e o contexto de requisições (HEAD).
"""

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

import pytest
from playwright.async_api import Error as PlaywrightError

from mediasniffer.core.browser import BrowserManager, PageSession
from mediasniffer.core.config import SnifferConfig


class FakeRequest:
    def __init__(self, url, method="GET", headers=None, resource_type="xhr"):
        self.url = url
        self.method = method
        self.headers = headers or {}
        self.resource_type = resource_type


class FakeAPIResponse:
    def __init__(self, headers):
        self.headers = headers
        self.disposed = False

    async def dispose(self):
        self.disposed = True


class FakeAPIRequest:
    def __init__(self, responses):
        self.responses = responses
        self.calls: List[str] = []

    async def head(self, url, headers=None, timeout=None, ignore_https_errors=None):
        self.calls.append(url)
        result = self.responses.get(url, {"content-type": "text/html"})
        if isinstance(result, Exception):
            raise result
        return FakeAPIResponse(result)


class FakePage:
    """
    Página falsa. ``emissions`` é uma lista de (atraso_em_segundos, FakeRequest)
    emitidos como eventos ``request`` depois de ``goto``; ``reloads`` lista os
    atrasos de novos eventos ``domcontentloaded`` (re-navegações da página).
    """

    def __init__(
        self,
        emissions: Optional[List[Tuple[float, FakeRequest]]] = None,
        head_responses: Optional[Dict[str, object]] = None,
        goto_error: Optional[Exception] = None,
        evaluate_error: Optional[Exception] = None,
        init_script_error: Optional[Exception] = None,
        html: str = "<html><body>ok</body></html>",
        final_url: Optional[str] = None,
        reloads: Optional[List[float]] = None,
    ):
        self.emissions = emissions or []
        self.reloads = reloads or []
        self.goto_error = goto_error
        self.evaluate_error = evaluate_error
        self.init_script_error = init_script_error
        self.html = html
        self.final_url = final_url
        self.url = "about:blank"
        self.listeners = defaultdict(list)
        self.request = FakeAPIRequest(head_responses or {})
        self.calls: List[tuple] = []
        self.evaluated: List[str] = []
        self.default_timeout = None
        self.default_navigation_timeout = None

    # eventos
    def on(self, event, handler):
        self.listeners[event].append(handler)

    def remove_listener(self, event, handler):
        self.listeners[event].remove(handler)

    def emit(self, event, arg):
        for handler in list(self.listeners[event]):
            result = handler(arg)
            if asyncio.iscoroutine(result):
                asyncio.ensure_future(result)

    # timeouts
    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    def set_default_navigation_timeout(self, timeout):
        self.default_navigation_timeout = timeout

    # operações
    async def add_init_script(self, script):
        self.calls.append(("add_init_script", script))
        if self.init_script_error:
            raise self.init_script_error

    async def goto(self, url, wait_until=None, timeout=None):
        self.calls.append(("goto", url, wait_until))
        loop = asyncio.get_running_loop()
        for delay, req in self.emissions:
            loop.call_later(delay, self.emit, "request", req)
        for delay in self.reloads:
            loop.call_later(delay, self.emit, "domcontentloaded", self)
        if self.goto_error:
            raise self.goto_error
        self.url = self.final_url or url

    async def wait_for_selector(self, css, timeout=None):
        self.calls.append(("wait_for_selector", css))

    async def wait_for_load_state(self, state="load", timeout=None):
        self.calls.append(("wait_for_load_state", state))

    async def wait_for_function(self, expression, timeout=None, polling=None):
        self.calls.append(("wait_for_function", expression))

    async def evaluate(self, script):
        self.calls.append(("evaluate", script))
        if self.evaluate_error:
            raise self.evaluate_error
        self.evaluated.append(script)

    async def content(self):
        return self.html


class FakeContext:
    def __init__(self):
        self.close_calls = 0

    async def close(self):
        self.close_calls += 1


class FakeManager(BrowserManager):
    """BrowserManager que entrega sempre a mesma ``FakePage``."""

    def __init__(self, config, page=None, open_error=None):
        super().__init__(config)
        self.page = page or FakePage()
        self.open_error = open_error
        self.contexts: List[FakeContext] = []
        self.opened_with: List[tuple] = []
        self._browser = object()

    async def open_page(self, headers=None, is_pc=None):
        if self.open_error:
            raise self.open_error
        self.opened_with.append((headers, is_pc))
        context = FakeContext()
        self.contexts.append(context)
        session = PageSession(context=context, page=self.page)
        self._sessions[session.id] = session
        return session


@pytest.fixture
def fast_config():
    """Configuração com timeouts curtos para os testes assíncronos."""
    return SnifferConfig(
        timeout=500,
        min_timeout=10,
        sniffer_timeout=2000,
        collect_timeout=2000,
        head_timeout=100,
        wait_timeout=100,
        web_timeout=1000,
    )


@pytest.fixture
def playwright_error():
    return PlaywrightError
