"""
models.py
=========
Estruturas de dados trocadas entre o motor de sniffing e quem o utiliza.

- ``SniffRequest`` / ``FetchRequest``: o que o chamador pede.
- ``ObservedRequest``: uma requisição de saída vista na página.
- ``MatchRecord``: uma URL de mídia aceita, com os headers necessários.
- ``SniffSuccess`` / ``SniffMultiSuccess`` / ``SniffFailure``: resultado final.
- ``PageContent``: HTML renderizado devolvido por ``fetch_rendered_page``.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


# ---------------------------------------------------------------------------
# Enumerações
# ---------------------------------------------------------------------------

class SniffMode(enum.IntEnum):
    """Modo de sniffing: para na primeira URL ou coleta até o timeout."""
    FIRST_MATCH = 0
    COLLECT_ALL = 1


class Decision(enum.Enum):
    """Decisão do classificador para uma requisição observada."""
    ACCEPT = "accept"
    PROBE = "probe"
    IGNORE = "ignore"


def _lower_keys(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    if not headers:
        return {}
    return {str(k).strip().lower(): str(v) for k, v in headers.items()}


# ---------------------------------------------------------------------------
# Requisições do chamador
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SniffRequest:
    """Parâmetros de uma tentativa de sniffing."""
    url: str
    mode: SniffMode = SniffMode.FIRST_MATCH
    custom_regex: Optional[str] = None
    sniffer_exclude: Optional[str] = None
    timeout: Optional[int] = None
    css: Optional[str] = None
    script: Optional[str] = None
    init_script: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    is_pc: Optional[bool] = None  # None = usa o padrão do SnifferConfig

    def __post_init__(self):
        # frozen=True: normalização via object.__setattr__
        object.__setattr__(self, "mode", SniffMode(self.mode))
        object.__setattr__(self, "headers", _lower_keys(self.headers))
        css = self.css.strip() if self.css else None
        object.__setattr__(self, "css", css or None)


@dataclass(frozen=True)
class FetchRequest:
    """Parâmetros de uma captura de HTML renderizado."""
    url: str
    timeout: Optional[int] = None
    css: Optional[str] = None
    script: Optional[str] = None
    init_script: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    is_pc: Optional[bool] = None

    def __post_init__(self):
        object.__setattr__(self, "headers", _lower_keys(self.headers))
        css = self.css.strip() if self.css else None
        object.__setattr__(self, "css", css or None)


# ---------------------------------------------------------------------------
# Tráfego observado e URLs capturadas
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ObservedRequest:
    """Requisição de saída emitida pela página, no momento em que foi vista."""
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    resource_type: str = "other"

    @classmethod
    def from_playwright(cls, request) -> "ObservedRequest":
        """Constrói a partir de um ``playwright.async_api.Request``."""
        return cls(
            url=request.url,
            method=request.method,
            headers=_lower_keys(request.headers),
            resource_type=request.resource_type,
        )


@dataclass(frozen=True)
class MatchRecord:
    """URL de mídia aceita e os headers (referer/user-agent) usados para obtê-la."""
    url: str
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "headers": dict(self.headers)}


# ---------------------------------------------------------------------------
# Resultados
# ---------------------------------------------------------------------------

SUCCESS_CODE = 200
FAILURE_CODE = 404

SUCCESS_MSG = "Sniffing concluído com sucesso"
FAILURE_MSG = "Sniffing falhou: nenhuma mídia encontrada"


def format_cost(elapsed_ms: int) -> str:
    return f"{elapsed_ms} ms"


@dataclass(frozen=True)
class SniffOutcome:
    """Base comum dos resultados de sniffing."""
    play_url: str
    elapsed_ms: int
    timed_out: bool = False
    script: Optional[str] = None
    init_script: Optional[str] = None

    code = SUCCESS_CODE
    msg = SUCCESS_MSG

    @property
    def ok(self) -> bool:
        return self.code == SUCCESS_CODE

    @property
    def cost(self) -> str:
        return format_cost(self.elapsed_ms)

    def _common(self) -> Dict[str, Any]:
        return {
            "from": self.play_url,
            "cost": self.cost,
            "code": self.code,
            "script": self.script,
            "init_script": self.init_script,
            "msg": self.msg,
        }

    def to_dict(self) -> Dict[str, Any]:
        return self._common()


@dataclass(frozen=True)
class SniffSuccess(SniffOutcome):
    """Modo first-match: a primeira URL de mídia encontrada."""
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "headers": dict(self.headers), **self._common()}


@dataclass(frozen=True)
class SniffMultiSuccess(SniffOutcome):
    """Modo collect-all: todas as URLs encontradas, na ordem de emissão."""
    urls: List[MatchRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"urls": [r.to_dict() for r in self.urls], **self._common()}


@dataclass(frozen=True)
class SniffFailure(SniffOutcome):
    """Nenhuma URL aceita antes do timeout; carrega o que foi capturado (talvez nada)."""
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    reason: str = "no-match"

    code = FAILURE_CODE
    msg = FAILURE_MSG

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "headers": dict(self.headers),
            "reason": self.reason,
            **self._common(),
        }


@dataclass(frozen=True)
class PageContent:
    """HTML renderizado de uma página e sua URL final (após redirecionamentos)."""
    url: str
    content: str
    final_url: str
    elapsed_ms: int
    script: Optional[str] = None
    init_script: Optional[str] = None

    @property
    def cost(self) -> str:
        return format_cost(self.elapsed_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "headers": {"location": self.final_url},
            "from": self.url,
            "cost": self.cost,
            "script": self.script,
            "init_script": self.init_script,
        }
