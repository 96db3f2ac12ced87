"""
results.py
==========
Acúmulo das URLs aceitas durante uma sessão e montagem do resultado final.
"""

import asyncio
from typing import Dict, List, Optional

from mediasniffer.core.models import (
    MatchRecord,
    SniffFailure,
    SniffMode,
    SniffMultiSuccess,
    SniffOutcome,
    SniffRequest,
    SniffSuccess,
)


class MatchCollector:
    """
    Lista de ``MatchRecord`` de uma sessão, somente com inserções.

    No modo first-match apenas o primeiro registro é guardado; ``found`` é
    sinalizado assim que ele chega, liberando a espera da sessão.
    """

    def __init__(self, mode: SniffMode):
        self.mode = mode
        self._records: List[MatchRecord] = []
        self.found = asyncio.Event()

    def add(self, record: MatchRecord) -> bool:
        """Guarda o registro. Retorna False se a coleta já estava encerrada."""
        if self.closed:
            return False
        self._records.append(record)
        self.found.set()
        return True

    @property
    def closed(self) -> bool:
        """True quando novos registros não são mais aceitos (first-match já resolvido)."""
        return self.mode == SniffMode.FIRST_MATCH and bool(self._records)

    @property
    def records(self) -> List[MatchRecord]:
        return list(self._records)

    @property
    def real_url(self) -> str:
        """URL do registro mais recente (a única, no modo first-match)."""
        return self._records[-1].url if self._records else ""

    @property
    def real_headers(self) -> Dict[str, str]:
        return dict(self._records[-1].headers) if self._records else {}

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"MatchCollector(mode={self.mode.name}, records={len(self._records)})"


def build_outcome(
    request: SniffRequest,
    records: List[MatchRecord],
    elapsed_ms: int,
    timed_out: bool,
) -> SniffOutcome:
    """
    Monta o resultado a partir do que a sessão capturou.

    - first-match com URL capturada → ``SniffSuccess``
    - collect-all com ao menos um registro → ``SniffMultiSuccess``
    - qualquer outro caso → ``SniffFailure`` (código 404) com o que houver
    """
    common = dict(
        play_url=request.url,
        elapsed_ms=elapsed_ms,
        timed_out=timed_out,
        script=request.script,
        init_script=request.init_script,
    )
    last: Optional[MatchRecord] = records[-1] if records else None

    if request.mode == SniffMode.FIRST_MATCH and last is not None and last.url:
        return SniffSuccess(url=last.url, headers=dict(last.headers), **common)

    if request.mode == SniffMode.COLLECT_ALL and records:
        return SniffMultiSuccess(urls=list(records), **common)

    return SniffFailure(
        url=last.url if last else "",
        headers=dict(last.headers) if last else {},
        reason="timeout" if timed_out else "no-match",
        **common,
    )
