"""
classifier.py
=============
Classificação das requisições de saída de uma página durante o sniffing.

Cada requisição observada recebe uma de três decisões:

- ``ACCEPT``: é uma URL de mídia real (regex customizada ou regex padrão).
- ``PROBE``: não dá para saber pela URL; pode valer uma sondagem HEAD.
- ``IGNORE``: descartada.

As funções deste módulo são puras: não tocam no navegador e não guardam
estado, o que permite testá-las sem Playwright.
"""

import re
from functools import lru_cache
from typing import Dict, Iterable, Mapping, Optional, Pattern

from mediasniffer.core.config import SnifferConfig
from mediasniffer.core.models import Decision, ObservedRequest, SniffRequest


# ---------------------------------------------------------------------------
# Constantes de filtragem
# ---------------------------------------------------------------------------

MEDIA_EXTENSIONS = "m3u8|mp4|flv|avi|mkv|rm|wmv|mpg|m4a|mp3"

# "http" seguido de ao menos 12 caracteres sem outro "http" e de uma extensão
# de mídia (com ou sem query string), ou marcadores de caminho video/tos, obj/tos.
URL_REGEX: Pattern[str] = re.compile(
    r"http((?!http).){12,}?\.(" + MEDIA_EXTENSIONS + r")\?.*"
    r"|http((?!http).){12,}?\.(" + MEDIA_EXTENSIONS + r")"
    r"|http((?!http).)*?video/tos*"
    r"|http((?!http).)*?obj/tos*"
)

# URLs de parsers que já devolvem o endereço final; sondá-las é desperdício.
URL_NO_HEAD: Pattern[str] = re.compile(r"http((?!http).){12,}?(ac=dm&url=)")

# Trechos que indicam um wrapper (URL de mídia passada como parâmetro) ou um
# recurso estático, mesmo quando a regex padrão casa.
WRAPPER_MARKERS = ("url=http", "v=http", ".css", ".html")

# Únicos headers repassados junto com a URL capturada.
CAPTURED_HEADERS = ("referer", "user-agent")

USER_REGEX_FLAGS = re.IGNORECASE | re.MULTILINE


# ---------------------------------------------------------------------------
# Funções auxiliares
# ---------------------------------------------------------------------------

@lru_cache(maxsize=256)
def compile_user_regex(pattern: str) -> Pattern[str]:
    """Compila uma regex informada pelo usuário (case-insensitive, multiline)."""
    return re.compile(pattern, USER_REGEX_FLAGS)


def matches_any(patterns: Iterable[str], url: str) -> bool:
    """Retorna True se alguma das regex (vazias são ignoradas) casar com a URL."""
    return any(p and re.search(p, url) for p in patterns)


def is_media_url(url: str) -> bool:
    """Retorna True se a URL casar com a regex padrão de mídia."""
    return URL_REGEX.search(url) is not None


def is_wrapper_url(url: str) -> bool:
    """Retorna True para wrappers (``url=http``, ``v=http``) e estáticos (.css/.html)."""
    return any(marker in url for marker in WRAPPER_MARKERS)


def is_real_url(url: str, config: SnifferConfig) -> bool:
    """Retorna False se a URL estiver na lista de exclusão de URLs reais."""
    return not matches_any(config.real_url_excludes, url)


def capture_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Mantém apenas ``referer`` e ``user-agent`` dos headers da requisição."""
    return {k: headers[k] for k in CAPTURED_HEADERS if headers.get(k)}


def effective_custom_regex(request: SniffRequest, config: SnifferConfig) -> Optional[str]:
    return request.custom_regex or config.custom_regex


# ---------------------------------------------------------------------------
# Classificador
# ---------------------------------------------------------------------------

def classify(
    observed: ObservedRequest,
    request: SniffRequest,
    config: SnifferConfig,
) -> Decision:
    """
    Decide o destino de uma requisição observada.

    Regras, em ordem de prioridade:

    1. ``sniffer_exclude`` casa → IGNORE.
    2. Regex customizada (da requisição, senão da configuração) casa → ACCEPT.
    3. Regex padrão de mídia casa e a URL não está excluída: ACCEPT, a menos
       que seja um wrapper ou um estático (IGNORE).
    4. GET absoluto diferente da URL da página → PROBE.
    5. Qualquer outro caso → IGNORE.
    """
    url = observed.url

    if request.sniffer_exclude and compile_user_regex(request.sniffer_exclude).search(url):
        return Decision.IGNORE

    custom = effective_custom_regex(request, config)
    if custom and compile_user_regex(custom).search(url):
        return Decision.ACCEPT

    if is_media_url(url) and is_real_url(url, config):
        if is_wrapper_url(url):
            return Decision.IGNORE
        return Decision.ACCEPT

    if (
        observed.method.upper() == "GET"
        and url.startswith("http")
        and url != request.url
    ):
        return Decision.PROBE

    return Decision.IGNORE
