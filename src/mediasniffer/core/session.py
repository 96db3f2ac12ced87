"""
session.py
==========
Uma tentativa de sniffing, do início ao fim.

Estados: IDLE → PAGE_ACQUIRED → NAVIGATING → AWAITING_RESULT → RESOLVED → CLOSED

As requisições emitidas pela página entram em um canal limitado
(``RequestChannel``) e são consumidas por um único laço de classificação.
Assim, a ordem dos registros é sempre a ordem de emissão pela página, mesmo
quando uma sondagem HEAD suspende o laço: as requisições seguintes esperam
na fila.

Toda a tentativa compartilha um único prazo, contado a partir da abertura da
página. Falhas de navegação, de script e de espera são registradas no log e
não interrompem a sessão; apenas a abertura da página é fatal.
"""

import asyncio
import enum
import logging
import time
from typing import Callable, List, Optional, Set

from playwright.async_api import Error as PlaywrightError

from mediasniffer.core.browser import BrowserManager, PageSession
from mediasniffer.core.classifier import capture_headers, classify
from mediasniffer.core.config import SnifferConfig
from mediasniffer.core.models import (
    Decision,
    MatchRecord,
    ObservedRequest,
    SniffMode,
    SniffOutcome,
    SniffRequest,
)
from mediasniffer.core.probe import HeadProber, playwright_head_fetcher
from mediasniffer.core.results import MatchCollector, build_outcome

logger = logging.getLogger(__name__)

NOT_BLANK = "() => location.href !== 'about:blank'"


class SniffState(enum.Enum):
    IDLE = "idle"
    PAGE_ACQUIRED = "page_acquired"
    NAVIGATING = "navigating"
    AWAITING_RESULT = "awaiting_result"
    RESOLVED = "resolved"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Canal de requisições observadas
# ---------------------------------------------------------------------------

class RequestChannel:
    """
    Fila limitada de ``ObservedRequest`` entre o listener da página e o laço
    de classificação.

    ``push`` é síncrono para poder ser usado direto como callback do evento
    ``request`` do Playwright. Com a fila cheia, a requisição é descartada e
    um aviso é registrado.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, observed: ObservedRequest) -> bool:
        if self._closed:
            return False
        if self._queue.qsize() >= self._maxsize:
            self.dropped += 1
            logger.warning("Fila de requisições cheia; descartando %s", observed.url)
            return False
        self._queue.put_nowait(observed)
        return True

    def close(self) -> None:
        """Encerra o canal; o consumidor termina após esvaziar a fila."""
        if not self._closed:
            self._closed = True
            # A vaga extra de maxsize + 1 garante espaço para o marcador.
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ObservedRequest:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item


# ---------------------------------------------------------------------------
# Laço de classificação
# ---------------------------------------------------------------------------

async def classify_requests(
    channel: RequestChannel,
    request: SniffRequest,
    config: SnifferConfig,
    prober: HeadProber,
    collector: MatchCollector,
    unsubscribe: Optional[Callable[[], None]] = None,
) -> None:
    """
    Consome o canal na ordem de chegada, classificando cada requisição.

    No modo first-match, o primeiro registro aceito encerra a inscrição na
    página e o laço.
    """
    async for observed in channel:
        if config.debug:
            logger.debug(
                "Requisição observada: %s method=%s resource_type=%s",
                observed.url, observed.method, observed.resource_type,
            )

        decision = classify(observed, request, config)
        if decision is Decision.IGNORE:
            continue
        if decision is Decision.PROBE:
            if not prober.wants(observed):
                continue
            if not await prober.probe(observed):
                continue
            via = "sondagem HEAD"
        else:
            via = "regex"

        record = MatchRecord(url=observed.url, headers=capture_headers(observed.headers))
        if not collector.add(record):
            break
        logger.debug("URL de mídia encontrada via %s: %s", via, observed.url)

        if collector.closed:
            if unsubscribe is not None:
                unsubscribe()
            channel.close()
            break


# ---------------------------------------------------------------------------
# Script da página
# ---------------------------------------------------------------------------

async def run_when_settled(page, script: str, timeout_ms: int) -> bool:
    """
    Espera a página sair de ``about:blank`` e executa o script uma única vez.

    Retorna True se o script rodou sem erro.
    """
    try:
        await page.wait_for_function(NOT_BLANK, timeout=timeout_ms, polling=200)
        await page.evaluate(script)
    except PlaywrightError as e:
        logger.debug("Erro ao executar o script da página: %s", e)
        return False
    logger.debug("Script da página executado em %s", page.url)
    return True


# ---------------------------------------------------------------------------
# Classe principal: SniffSession
# ---------------------------------------------------------------------------

class SniffSession:
    """
    Máquina de estados de uma tentativa de sniffing.

    Parâmetros
    ----------
    manager : BrowserManager
        Fornece e fecha a página da tentativa.
    config : SnifferConfig
        Configuração do motor.
    request : SniffRequest
        Parâmetros desta tentativa (a URL já deve ter sido validada).
    """

    def __init__(self, manager: BrowserManager, config: SnifferConfig, request: SniffRequest):
        self.manager = manager
        self.config = config
        self.request = request
        self.timeout = config.sniff_timeout(request.mode, request.timeout)
        self.state = SniffState.IDLE
        self.collector = MatchCollector(request.mode)
        self._deadline = 0.0
        self._listener: Optional[Callable] = None
        self._script_tasks: Set[asyncio.Task] = set()

    def _set_state(self, state: SniffState) -> None:
        logger.debug("Sessão %s: %s → %s", self.request.url, self.state.value, state.value)
        self.state = state

    def _remaining_ms(self) -> int:
        return max(0, int((self._deadline - time.monotonic()) * 1000))

    def _remaining_s(self) -> float:
        return max(0.0, self._deadline - time.monotonic())

    async def run(self) -> SniffOutcome:
        """
        Executa a tentativa e devolve sempre um resultado estruturado.

        Levanta ``SessionAcquisitionError`` apenas se a página não puder ser aberta.
        """
        started = time.monotonic()
        self._deadline = started + self.timeout / 1000
        page_session = await self.manager.open_page(self.request.headers, self.request.is_pc)
        self._set_state(SniffState.PAGE_ACQUIRED)

        channel = RequestChannel(self.config.queue_size)
        consumer: Optional[asyncio.Task] = None
        timed_out = False
        records: List[MatchRecord] = []
        try:
            consumer = self._subscribe(page_session, channel)
            timed_out = await self._drive(page_session)
            records = self.collector.records
            self._set_state(SniffState.RESOLVED)
        finally:
            self._unsubscribe(page_session)
            channel.close()
            await self._cancel_tasks(consumer)
            await self.manager.close_page(page_session)
            self._set_state(SniffState.CLOSED)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Sniffing de %s: %d URL(s) em %d ms%s",
            self.request.url, len(records), elapsed_ms, " (timeout)" if timed_out else "",
        )
        return build_outcome(self.request, records, elapsed_ms, timed_out)

    # -----------------------------------------------------------------------
    # Inscrição no fluxo de requisições
    # -----------------------------------------------------------------------

    def _subscribe(self, page_session: PageSession, channel: RequestChannel) -> asyncio.Task:
        page = page_session.page
        prober = HeadProber(playwright_head_fetcher(page), self.config)

        def on_request(req) -> None:
            channel.push(ObservedRequest.from_playwright(req))

        self._listener = on_request
        page.on("request", on_request)
        page.set_default_timeout(self.timeout)
        page.set_default_navigation_timeout(self.timeout)

        return asyncio.create_task(
            classify_requests(
                channel,
                self.request,
                self.config,
                prober,
                self.collector,
                unsubscribe=lambda: self._unsubscribe(page_session),
            )
        )

    def _unsubscribe(self, page_session: PageSession) -> None:
        listener = self._listener
        if listener is None:
            return
        self._listener = None
        try:
            page_session.page.remove_listener("request", listener)
        except (KeyError, ValueError):
            pass

    async def _cancel_tasks(self, consumer: Optional[asyncio.Task]) -> None:
        tasks = list(self._script_tasks)
        if consumer is not None:
            tasks.append(consumer)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Tarefa da sessão de %s terminou com erro", self.request.url)
        self._script_tasks.clear()

    # -----------------------------------------------------------------------
    # Etapas
    # -----------------------------------------------------------------------

    async def _drive(self, page_session: PageSession) -> bool:
        """Executa as etapas após a inscrição. Retorna True se houve timeout."""
        page = page_session.page
        request = self.request

        if request.init_script:
            try:
                await page.add_init_script(request.init_script)
                logger.debug("Script de inicialização instalado")
            except PlaywrightError as e:
                logger.debug("Erro ao instalar o script de inicialização: %s", e)

        self._set_state(SniffState.NAVIGATING)
        try:
            await page.goto(request.url, wait_until="domcontentloaded", timeout=self._remaining_ms() or 1)
        except PlaywrightError as e:
            logger.debug("Erro ao navegar para %s: %s", request.url, e)

        if request.css:
            try:
                await page.wait_for_selector(request.css, timeout=self._remaining_ms() or 1)
            except PlaywrightError as e:
                logger.debug("Erro ao esperar o seletor %r: %s", request.css, e)
        elif request.script:
            try:
                await page.wait_for_load_state(
                    "load", timeout=min(self.config.wait_timeout, self._remaining_ms()) or 1
                )
            except PlaywrightError as e:
                logger.debug("Erro ao esperar o evento load: %s", e)

        if request.script:
            await self._install_page_script(page, request.script)

        self._set_state(SniffState.AWAITING_RESULT)
        return await self._await_result()

    async def _install_page_script(self, page, script: str) -> None:
        """Executa o script agora e de novo a cada nova navegação da página."""

        async def on_navigated(_page) -> None:
            task = asyncio.current_task()
            if task is not None:
                self._script_tasks.add(task)
            try:
                await run_when_settled(page, script, self._remaining_ms() or 1)
            finally:
                if task is not None:
                    self._script_tasks.discard(task)

        await run_when_settled(page, script, self._remaining_ms() or 1)
        # O domcontentloaded da navegação inicial já passou (goto esperou por ele).
        page.on("domcontentloaded", on_navigated)

    async def _await_result(self) -> bool:
        if self.request.mode == SniffMode.COLLECT_ALL:
            await asyncio.sleep(self._remaining_s())
            return True

        if self.collector.found.is_set():
            return False
        try:
            await asyncio.wait_for(self.collector.found.wait(), timeout=self._remaining_s())
        except asyncio.TimeoutError:
            return True
        return False
