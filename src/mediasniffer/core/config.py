"""
config.py
=========
Configuração do motor de sniffing.

Um único ``SnifferConfig`` é criado na inicialização do motor e permanece
somente leitura durante toda a vida do processo. Os valores por requisição
(timeout, regex, headers...) ficam em ``SniffRequest``/``FetchRequest`` e são
limitados pelos máximos definidos aqui.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from mediasniffer.core.models import SniffMode


# ---------------------------------------------------------------------------
# Valores padrão
# ---------------------------------------------------------------------------

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 14_0 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/14.0 Mobile/15E148 Safari/604.1"
)

# Tipos de recurso que nunca carregam mídia e só atrasam a página.
BLOCKED_RESOURCE_TYPES: Tuple[str, ...] = ("image", "stylesheet", "font")

# Hosts sem utilidade para o sniffing (rastreamento, captchas, fontes).
BLOCKED_HOSTS: Tuple[str, ...] = ("google.com",)

BLOCKED_EXTENSIONS = r"\.(png|jpg|jpeg|ttf)$"


@dataclass(frozen=True)
class SnifferConfig:
    """
    Configuração imutável do motor.

    Todos os timeouts estão em milissegundos.

    Parâmetros
    ----------
    timeout : int
        Timeout padrão de uma requisição e das operações da página.
    min_timeout : int
        Menor timeout aceito; valores menores são elevados até ele.
    sniffer_timeout : int
        Timeout máximo no modo first-match.
    collect_timeout : int
        Timeout máximo no modo collect-all (a espera sempre dura o timeout inteiro).
    head_timeout : int
        Orçamento de cada requisição HEAD de sondagem.
    wait_timeout : int
        Espera pelo evento ``load`` antes de executar o script da página.
    web_timeout : int
        Timeout máximo de ``fetch_rendered_page``.
    """

    user_agent: str = DEFAULT_USER_AGENT
    mobile_user_agent: str = MOBILE_USER_AGENT
    headless: bool = True
    use_chrome: bool = False
    is_pc: bool = False
    debug: bool = False

    timeout: int = 10000
    min_timeout: int = 1000
    sniffer_timeout: int = 20000
    collect_timeout: int = 10000
    head_timeout: int = 1000
    wait_timeout: int = 3000
    web_timeout: int = 15000

    custom_regex: Optional[str] = None
    head_excludes: Tuple[str, ...] = ()
    real_url_excludes: Tuple[str, ...] = ()

    blocked_resource_types: Tuple[str, ...] = BLOCKED_RESOURCE_TYPES
    blocked_hosts: Tuple[str, ...] = BLOCKED_HOSTS
    blocked_extensions: str = BLOCKED_EXTENSIONS
    languages: Tuple[str, ...] = ("zh-CN", "zh", "en")

    queue_size: int = 1000
    block_private_hosts: bool = True

    def _clamp(self, requested: Optional[int], maximum: int) -> int:
        value = requested if requested and requested > 0 else self.timeout
        return max(self.min_timeout, min(value, maximum))

    def sniff_timeout(self, mode: SniffMode, requested: Optional[int] = None) -> int:
        """Timeout efetivo de um sniffing, limitado pelo máximo do modo."""
        if mode == SniffMode.COLLECT_ALL:
            return self._clamp(requested, self.collect_timeout)
        return self._clamp(requested, self.sniffer_timeout)

    def fetch_timeout(self, requested: Optional[int] = None) -> int:
        """Timeout efetivo de uma captura de HTML renderizado."""
        return self._clamp(requested, self.web_timeout)

    def user_agent_for(self, is_pc: bool) -> str:
        return self.user_agent if is_pc else self.mobile_user_agent
