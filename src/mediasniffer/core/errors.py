"""
errors.py
=========
Exceções do mediasniffer.

Apenas dois tipos de falha chegam ao chamador: entrada inválida (rejeitada
antes de qualquer trabalho no navegador) e falha ao obter uma página. Erros de
navegação, de script e de requisições HEAD são registrados no log e absorvidos
pela sessão de sniffing.
"""


class SnifferError(Exception):
    """Erro base do mediasniffer."""


class InvalidInputError(SnifferError, ValueError):
    """URL alvo malformada ou insegura."""

    def __init__(self, url: str, reason: str = "URL inválida ou insegura"):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}")


class SessionAcquisitionError(SnifferError):
    """Não foi possível abrir uma página no navegador."""
