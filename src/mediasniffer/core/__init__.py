"""
mediasniffer.core
=================
Módulos principais do mediasniffer.

- engine: ponto de entrada (ciclo de vida, validação, sniff e captura de página).
- browser: processo do navegador e páginas isoladas.
- classifier: classificação das requisições de saída.
- probe: sondagem HEAD de URLs sem extensão.
- session: máquina de estados de uma tentativa de sniffing.
- fetcher: captura do HTML renderizado.
- results: acúmulo das URLs encontradas e montagem do resultado.
"""

from mediasniffer.core.config import SnifferConfig
from mediasniffer.core.engine import SnifferEngine
from mediasniffer.core.errors import InvalidInputError, SessionAcquisitionError, SnifferError
from mediasniffer.core.models import (
    FetchRequest,
    MatchRecord,
    PageContent,
    SniffFailure,
    SniffMode,
    SniffMultiSuccess,
    SniffOutcome,
    SniffRequest,
    SniffSuccess,
)

__all__ = [
    "SnifferConfig",
    "SnifferEngine",
    "SnifferError",
    "InvalidInputError",
    "SessionAcquisitionError",
    "FetchRequest",
    "MatchRecord",
    "PageContent",
    "SniffFailure",
    "SniffMode",
    "SniffMultiSuccess",
    "SniffOutcome",
    "SniffRequest",
    "SniffSuccess",
]
