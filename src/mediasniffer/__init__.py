"""mediasniffer: descobre URLs de mídia reais interceptando o tráfego de páginas web."""

__version__ = "0.1.0"
