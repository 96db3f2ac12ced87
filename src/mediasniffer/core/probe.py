"""
probe.py
========
Sondagem HEAD de URLs ambíguas (sem extensão).

Alguns players baixam o manifesto HLS de um endpoint sem extensão que
responde ``application/octet-stream`` com um ``content-disposition`` apontando
para um ``.m3u8``. Essas URLs só são reconhecidas perguntando ao servidor.

A sondagem é uma requisição lateral, fora da pilha de navegação da página,
com um timeout próprio e bem menor que o do sniffing. Qualquer erro é
registrado em DEBUG e absorvido; a URL é marcada como sondada de qualquer
forma, para não ser sondada de novo na mesma sessão.
"""

import logging
import posixpath
import urllib.parse
from typing import Awaitable, Callable, Dict, Mapping, Optional, Set

from playwright.async_api import Error as PlaywrightError

from mediasniffer.core.classifier import URL_NO_HEAD, matches_any
from mediasniffer.core.config import SnifferConfig
from mediasniffer.core.models import ObservedRequest

logger = logging.getLogger(__name__)

# (url, headers, timeout_ms) -> headers da resposta
HeadFetcher = Callable[[str, Dict[str, str], int], Awaitable[Mapping[str, str]]]

MANIFEST_CONTENT_TYPE = "application/octet-stream"


def last_path_segment(url: str) -> str:
    """Último segmento do caminho da URL (``/a/b/c.m3u8`` → ``c.m3u8``)."""
    try:
        path = urllib.parse.urlsplit(url).path
    except ValueError:
        return ""
    return posixpath.basename(path)


def can_head_check(url: str, config: SnifferConfig) -> bool:
    """Retorna False se a URL estiver na lista de exclusão de sondagem."""
    return not matches_any(config.head_excludes, url)


def is_probe_candidate(url: str) -> bool:
    """
    Decide, só pela forma da URL, se ela merece uma sondagem.

    - segmento final sem extensão, e a URL não é de um parser já resolvido
      (``ac=dm&url=``); ou
    - segmento final com um ponto mas extensão vazia (``arquivo.``).
    """
    filename = last_path_segment(url)
    if not filename:
        return False
    if "." not in filename:
        return URL_NO_HEAD.search(url) is None
    return len(filename) > 1 and not filename.split(".")[1]


def should_probe(observed: ObservedRequest, config: SnifferConfig, probed: Set[str]) -> bool:
    """Combina a forma da URL com as exclusões: scripts, já sondadas, head_excludes."""
    if observed.resource_type == "script":
        return False
    if observed.url in probed:
        return False
    if not is_probe_candidate(observed.url):
        return False
    return can_head_check(observed.url, config)


def is_disguised_manifest(headers: Mapping[str, str]) -> bool:
    """True para ``application/octet-stream`` + ``content-disposition`` com ``.m3u8``."""
    lowered = {k.lower(): v for k, v in headers.items()}
    content_type = lowered.get("content-type", "").split(";")[0].strip().lower()
    disposition = lowered.get("content-disposition", "")
    return content_type == MANIFEST_CONTENT_TYPE and ".m3u8" in disposition


def playwright_head_fetcher(page) -> HeadFetcher:
    """
    Cria um ``HeadFetcher`` que usa o ``APIRequestContext`` da página.

    O contexto de requisições compartilha cookies com a página, mas não a
    navega: a página continua onde estava enquanto a sondagem acontece.
    """

    async def fetch(url: str, headers: Dict[str, str], timeout_ms: int) -> Mapping[str, str]:
        response = await page.request.head(
            url,
            headers=headers or None,
            timeout=timeout_ms,
            ignore_https_errors=True,
        )
        try:
            return response.headers
        finally:
            await response.dispose()

    return fetch


class HeadProber:
    """
    Sonda URLs ambíguas de uma sessão, lembrando quais já foram sondadas.

    Parâmetros
    ----------
    fetch : HeadFetcher
        Função que executa a requisição HEAD e devolve os headers da resposta.
    config : SnifferConfig
        Fornece ``head_timeout`` e ``head_excludes``.
    """

    def __init__(self, fetch: HeadFetcher, config: SnifferConfig):
        self._fetch = fetch
        self.config = config
        self.probed: Set[str] = set()

    def wants(self, observed: ObservedRequest) -> bool:
        return should_probe(observed, self.config, self.probed)

    async def probe(self, observed: ObservedRequest) -> bool:
        """
        Executa a sondagem. Retorna True se a resposta indicar um manifesto
        disfarçado. Nunca propaga erros do navegador.
        """
        url = observed.url
        self.probed.add(url)
        headers: Optional[Dict[str, str]] = None
        if observed.headers.get("referer"):
            headers = {"referer": observed.headers["referer"]}
        try:
            response_headers = await self._fetch(url, headers or {}, self.config.head_timeout)
        except PlaywrightError as e:
            logger.debug("Requisição HEAD para %s falhou: %s", url, e)
            return False

        if is_disguised_manifest(response_headers):
            logger.debug("Sondagem HEAD encontrou manifesto disfarçado: %s", url)
            return True
        return False
