"""
browser.py
==========
Gerenciamento do navegador usado pelo sniffing.

Um único processo Chromium é mantido durante toda a vida do motor. Cada
sniffing ou captura de página recebe um contexto isolado com uma página
própria, fechado ao final da tentativa.

Técnicas aplicadas em toda página aberta:
- Lançamento com três níveis de flags (completo, reduzido, mínimo), cada um
  como fallback do anterior, para rodar em containers e hosts restritos.
- Mascaramento de automação (``webdriver``, ``plugins``, ``languages`` e
  ``permissions.query``).
- Bloqueio de imagens, folhas de estilo, fontes e hosts sem utilidade.
- Diálogos aceitos automaticamente e erros de JavaScript da página silenciados.
"""

import itertools
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Dialog,
    Error as PlaywrightError,
    Page,
    Playwright,
    Route,
    async_playwright,
)

from mediasniffer.core.config import SnifferConfig
from mediasniffer.core.errors import SessionAcquisitionError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Flags de lançamento
# ---------------------------------------------------------------------------

FULL_LAUNCH_ARGS: List[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-field-trial-config",
    "--disable-back-forward-cache",
    "--disable-ipc-flooding-protection",
    "--disable-hang-monitor",
    "--disable-prompt-on-repost",
    "--disable-sync",
    "--disable-domain-reliability",
    "--disable-extensions",
    "--disable-default-apps",
    "--disable-component-extensions-with-background-pages",
    "--disable-background-networking",
    "--disable-breakpad",
    "--disable-client-side-phishing-detection",
    "--disable-component-update",
    "--no-default-browser-check",
    "--disable-translate",
    "--disable-logging",
    "--disable-notifications",
    "--allow-running-insecure-content",
    "--mute-audio",
    "--disable-blink-features=AutomationControlled",
]

REDUCED_LAUNCH_ARGS: List[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-web-security",
    "--disable-blink-features=AutomationControlled",
]

MOBILE_VIEWPORT = {"width": 375, "height": 667}

# Mascara as propriedades que denunciam um navegador automatizado.
STEALTH_SCRIPT = """
(() => {
    Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
    Object.defineProperty(navigator, 'plugins', {get: () => [1, 2, 3, 4, 5]});
    Object.defineProperty(navigator, 'languages', {get: () => %s});
    const originalQuery = window.navigator.permissions.query;
    window.navigator.permissions.query = (parameters) => (
        parameters.name === 'notifications'
            ? Promise.resolve({state: Notification.permission})
            : originalQuery(parameters)
    );
})();
"""


def build_launch_tiers(config: SnifferConfig) -> List[Dict[str, Any]]:
    """
    Constrói os kwargs de ``chromium.launch`` para cada nível de fallback.

    Retorna
    -------
    Lista com três dicts, do mais completo ao mínimo:
        1. todas as flags de ``FULL_LAUNCH_ARGS``;
        2. ``REDUCED_LAUNCH_ARGS``;
        3. apenas ``headless`` (e o canal, se houver).
    """
    base: Dict[str, Any] = {"headless": config.headless}
    if config.use_chrome:
        base["channel"] = "chrome"

    return [
        {**base, "args": list(FULL_LAUNCH_ARGS), "ignore_default_args": ["--enable-automation"]},
        {**base, "args": list(REDUCED_LAUNCH_ARGS), "ignore_default_args": ["--enable-automation"]},
        dict(base),
    ]


def build_context_kwargs(
    config: SnifferConfig,
    headers: Optional[Mapping[str, str]] = None,
    is_pc: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Constrói os kwargs de ``browser.new_context`` para uma tentativa.

    O header ``user-agent`` da requisição, se houver, substitui o user-agent
    padrão; os demais headers viram ``extra_http_headers``.
    """
    desktop = config.is_pc if is_pc is None else is_pc
    headers = {k.lower(): v for k, v in (headers or {}).items()}
    user_agent = headers.pop("user-agent", None) or config.user_agent_for(desktop)

    kwargs: Dict[str, Any] = {
        "user_agent": user_agent,
        "ignore_https_errors": True,
        "java_script_enabled": True,
    }
    if headers:
        kwargs["extra_http_headers"] = headers
    if not desktop:
        kwargs.update(
            viewport=dict(MOBILE_VIEWPORT),
            device_scale_factor=2,
            is_mobile=True,
            has_touch=True,
        )
    return kwargs


def should_block(url: str, resource_type: str, config: SnifferConfig) -> bool:
    """Retorna True se a requisição deve ser abortada antes de sair da página."""
    if resource_type in config.blocked_resource_types:
        return True
    if re.search(config.blocked_extensions, url.split("?")[0], re.IGNORECASE):
        return True
    return any(host in url for host in config.blocked_hosts)


# ---------------------------------------------------------------------------
# Sessão de página
# ---------------------------------------------------------------------------

_page_ids = itertools.count(1)


@dataclass
class PageSession:
    """Contexto isolado + página de uma única tentativa de sniffing/captura."""
    context: BrowserContext
    page: Page
    id: int = field(default_factory=lambda: next(_page_ids))
    closed: bool = False


# ---------------------------------------------------------------------------
# Handlers da página
# ---------------------------------------------------------------------------

async def _accept_dialog(dialog: Dialog) -> None:
    try:
        await dialog.accept()
    except PlaywrightError as e:
        logger.debug("Falha ao aceitar diálogo: %s", e)


def _ignore_page_error(error) -> None:
    logger.debug("Erro de JavaScript na página ignorado: %s", error)


# ---------------------------------------------------------------------------
# Classe principal: BrowserManager
# ---------------------------------------------------------------------------

class BrowserManager:
    """
    Dono do processo do navegador e fábrica de páginas isoladas.

    Uso típico
    ----------
    >>> manager = BrowserManager(SnifferConfig())
    >>> await manager.start()
    >>> session = await manager.open_page({"referer": "https://exemplo.com"})
    >>> ...
    >>> await manager.close_page(session)
    >>> await manager.stop()
    """

    def __init__(self, config: SnifferConfig):
        self.config = config
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._sessions: Dict[int, PageSession] = {}

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    @property
    def open_pages(self) -> int:
        return len(self._sessions)

    # -----------------------------------------------------------------------
    # Ciclo de vida do navegador
    # -----------------------------------------------------------------------

    async def start(self) -> None:
        """Inicia o Playwright e lança o Chromium, degradando as flags se preciso."""
        if self._browser is not None:
            return
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._launch(self._playwright)
        except PlaywrightError:
            await self._playwright.stop()
            self._playwright = None
            raise
        logger.info("Navegador iniciado (headless=%s)", self.config.headless)

    async def _launch(self, playwright: Playwright) -> Browser:
        tiers = build_launch_tiers(self.config)
        last_error: Optional[PlaywrightError] = None
        for level, kwargs in enumerate(tiers, start=1):
            try:
                return await playwright.chromium.launch(**kwargs)
            except PlaywrightError as e:
                last_error = e
                logger.warning("Falha ao lançar o navegador (nível %d/%d): %s", level, len(tiers), e)
        raise last_error

    async def stop(self) -> None:
        """Fecha todas as páginas abertas, o navegador e o Playwright."""
        for session in list(self._sessions.values()):
            await self.close_page(session)
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.warning("Erro ao fechar o navegador: %s", e)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.info("Navegador encerrado")

    # -----------------------------------------------------------------------
    # Páginas
    # -----------------------------------------------------------------------

    async def open_page(
        self,
        headers: Optional[Mapping[str, str]] = None,
        is_pc: Optional[bool] = None,
    ) -> PageSession:
        """
        Abre um contexto isolado e sua página, já com interceptação,
        mascaramento de automação e handlers de diálogo/erro instalados.

        Levanta ``SessionAcquisitionError`` se o navegador não estiver
        iniciado ou se o Playwright falhar.
        """
        if self._browser is None:
            raise SessionAcquisitionError("Navegador não iniciado; chame initialize() antes")

        context: Optional[BrowserContext] = None
        try:
            context = await self._browser.new_context(
                **build_context_kwargs(self.config, headers, is_pc)
            )
            context.set_default_timeout(self.config.timeout)
            context.set_default_navigation_timeout(self.config.timeout)
            await context.add_init_script(
                STEALTH_SCRIPT % json.dumps(list(self.config.languages))
            )
            await context.route("**/*", self._route_request)
            page = await context.new_page()
        except PlaywrightError as e:
            if context is not None:
                await context.close()
            raise SessionAcquisitionError(f"Não foi possível abrir a página: {e}") from e

        page.on("dialog", _accept_dialog)
        page.on("pageerror", _ignore_page_error)

        session = PageSession(context=context, page=page)
        self._sessions[session.id] = session
        logger.debug("Página %d aberta (%d abertas)", session.id, self.open_pages)
        return session

    async def _route_request(self, route: Route) -> None:
        request = route.request
        try:
            if should_block(request.url, request.resource_type, self.config):
                await route.abort()
            else:
                await route.continue_()
        except PlaywrightError as e:
            # A página pode ter sido fechada com a rota pendente.
            logger.debug("Falha ao tratar rota %s: %s", request.url, e)

    async def close_page(self, session: PageSession) -> None:
        """Fecha a página e seu contexto. Chamadas repetidas não fazem nada."""
        if session.closed:
            return
        session.closed = True
        self._sessions.pop(session.id, None)
        try:
            await session.context.close()
        except PlaywrightError as e:
            logger.warning("Erro ao fechar a página %d: %s", session.id, e)
        logger.debug("Página %d fechada", session.id)
