"""
engine.py
=========
Ponto de entrada do mediasniffer.

``SnifferEngine`` é um objeto explícito, criado e encerrado por quem o usa
(CLI, servidor HTTP, testes), em vez de uma instância global. Ele valida as
URLs, mantém o navegador vivo entre as chamadas e despacha cada sniffing ou
captura de página para sua própria sessão.

Uso típico
----------
>>> async with SnifferEngine(SnifferConfig()) as engine:
...     outcome = await engine.sniff(SniffRequest(url="https://exemplo.com/video"))
...     print(outcome.to_dict())
"""

import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import validators

from mediasniffer.core.browser import BrowserManager
from mediasniffer.core.classifier import compile_user_regex, effective_custom_regex
from mediasniffer.core.config import SnifferConfig
from mediasniffer.core.errors import InvalidInputError
from mediasniffer.core.fetcher import fetch_rendered_page
from mediasniffer.core.models import FetchRequest, PageContent, SniffOutcome, SniffRequest
from mediasniffer.core.session import SniffSession

logger = logging.getLogger(__name__)

PRIVATE_HOST_MARKERS = ("localhost", "127.0.0.1", "0.0.0.0", "192.168.", "10.", "172.16.")


class SnifferEngine:
    """
    Motor de sniffing de URLs de mídia.

    Parâmetros
    ----------
    config : SnifferConfig, opcional
        Configuração do motor; o padrão é ``SnifferConfig()``.
    manager : BrowserManager, opcional
        Gerenciador de navegador já construído (útil em testes).
    """

    def __init__(
        self,
        config: Optional[SnifferConfig] = None,
        manager: Optional[BrowserManager] = None,
    ):
        self.config = config or SnifferConfig()
        self.manager = manager or BrowserManager(self.config)

    # -----------------------------------------------------------------------
    # Ciclo de vida
    # -----------------------------------------------------------------------

    async def initialize(self) -> None:
        """Inicia o navegador. Deve ser chamado uma vez antes de qualquer sniffing."""
        await self.manager.start()

    async def shutdown(self) -> None:
        """Fecha todas as páginas e o navegador."""
        await self.manager.stop()

    async def __aenter__(self) -> "SnifferEngine":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    def status(self) -> Dict[str, Any]:
        return {
            "browser": "initialized" if self.manager.is_running else "not_initialized",
            "open_pages": self.manager.open_pages,
        }

    # -----------------------------------------------------------------------
    # Validação de URL
    # -----------------------------------------------------------------------

    def validate_url(self, url: str) -> bool:
        """Valida se a URL é segura e bem formatada."""
        if not url or not validators.url(url):
            return False
        if not url.lower().startswith(("http://", "https://")):
            return False
        if self.config.block_private_hosts:
            try:
                host = urlsplit(url).hostname or ""
            except ValueError:
                return False
            if any(host.startswith(x) or host == x for x in PRIVATE_HOST_MARKERS):
                return False
        return True

    def _require_valid(self, url: str) -> None:
        if not self.validate_url(url):
            raise InvalidInputError(url)

    def _require_valid_regex(self, request: SniffRequest) -> None:
        """As regex do usuário são compiladas aqui, antes de abrir qualquer página."""
        for pattern in (request.sniffer_exclude, effective_custom_regex(request, self.config)):
            if not pattern:
                continue
            try:
                compile_user_regex(pattern)
            except re.error as e:
                raise InvalidInputError(request.url, f"Regex inválida {pattern!r} ({e})") from e

    # -----------------------------------------------------------------------
    # Operações
    # -----------------------------------------------------------------------

    async def sniff(self, request: SniffRequest) -> SniffOutcome:
        """
        Procura a URL de mídia real por trás de ``request.url``.

        Levanta ``InvalidInputError`` antes de abrir qualquer página se a URL
        for inválida, e ``SessionAcquisitionError`` se a página não puder ser
        aberta. Qualquer outro problema vira um ``SniffFailure``.
        """
        self._require_valid(request.url)
        self._require_valid_regex(request)
        logger.debug("Iniciando sniffing de %s (modo %s)", request.url, request.mode.name)
        return await SniffSession(self.manager, self.config, request).run()

    async def fetch_rendered_page(self, request: FetchRequest) -> PageContent:
        """Devolve o HTML renderizado de ``request.url`` e a URL final."""
        self._require_valid(request.url)
        return await fetch_rendered_page(self.manager, self.config, request)
