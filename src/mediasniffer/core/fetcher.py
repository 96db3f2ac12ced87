"""
fetcher.py
==========
Captura do HTML renderizado de uma página (após JavaScript e redirecionamentos).
"""

import logging
import time

from playwright.async_api import Error as PlaywrightError

from mediasniffer.core.browser import BrowserManager
from mediasniffer.core.config import SnifferConfig
from mediasniffer.core.models import FetchRequest, PageContent

logger = logging.getLogger(__name__)


async def fetch_rendered_page(
    manager: BrowserManager,
    config: SnifferConfig,
    request: FetchRequest,
) -> PageContent:
    """
    Navega até a URL e devolve o HTML renderizado e a URL final.

    Etapas: script de inicialização (opcional) → navegação → espera pelo
    seletor CSS ou pelo evento ``load`` → script da página (opcional) →
    leitura do conteúdo. Falhas nas etapas são registradas e ignoradas; a
    página é sempre fechada.
    """
    started = time.monotonic()
    timeout = config.fetch_timeout(request.timeout)
    session = await manager.open_page(request.headers, request.is_pc)
    page = session.page
    try:
        page.set_default_timeout(timeout)
        page.set_default_navigation_timeout(timeout)

        if request.init_script:
            try:
                await page.add_init_script(request.init_script)
            except PlaywrightError as e:
                logger.debug("Erro ao instalar o script de inicialização: %s", e)

        try:
            await page.goto(request.url, wait_until="domcontentloaded")
        except PlaywrightError as e:
            logger.debug("Erro ao navegar para %s: %s", request.url, e)

        if request.css:
            try:
                await page.wait_for_selector(request.css)
            except PlaywrightError as e:
                logger.debug("Erro ao esperar o seletor %r: %s", request.css, e)
        else:
            try:
                await page.wait_for_load_state("load")
            except PlaywrightError as e:
                logger.debug("Erro ao esperar o evento load: %s", e)

        if request.script:
            try:
                await page.evaluate(request.script)
            except PlaywrightError as e:
                logger.debug("Erro ao executar o script da página: %s", e)

        try:
            content = await page.content()
        except PlaywrightError as e:
            logger.warning("Não foi possível ler o HTML de %s: %s", request.url, e)
            content = ""
        final_url = page.url
    finally:
        await manager.close_page(session)

    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info("Página %s capturada em %d ms", request.url, elapsed_ms)
    return PageContent(
        url=request.url,
        content=content,
        final_url=final_url,
        elapsed_ms=elapsed_ms,
        script=request.script,
        init_script=request.init_script,
    )
