"""
cli/main.py
===========
Interface de linha de comando do mediasniffer.

Argumentos principais:
  --mode          : 0 = para na primeira URL (padrão), 1 = coleta até o timeout.
  --regex         : Regex customizada que identifica a URL de mídia.
  --exclude       : Regex de URLs a ignorar.
  --script        : JavaScript executado na página após a navegação.
  -H/--header     : Header extra ("Nome: valor"), pode ser repetido.
  --fetch         : Em vez de sniffing, imprime o HTML renderizado da página.
  --output        : Salva as URLs encontradas em um arquivo .m3u.
"""

import asyncio
import argparse
import json
import logging
from typing import Dict, Iterable, List, Optional, Union

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn

from mediasniffer.core.config import SnifferConfig
from mediasniffer.core.engine import SnifferEngine
from mediasniffer.core.errors import SnifferError
from mediasniffer.core.models import (
    FetchRequest,
    MatchRecord,
    PageContent,
    SniffMode,
    SniffMultiSuccess,
    SniffOutcome,
    SniffRequest,
    SniffSuccess,
)

console = Console()


def parse_headers(lines: Iterable[str]) -> Dict[str, str]:
    """
    Converte linhas ``Nome: valor`` em um dict com chaves minúsculas.

    Cada item pode conter várias linhas separadas por ``\\n``; linhas sem
    ``:`` ou com nome/valor vazio são ignoradas.
    """
    headers: Dict[str, str] = {}
    for block in lines:
        for line in block.splitlines():
            name, sep, value = line.partition(":")
            name, value = name.strip().lower(), value.strip()
            if sep and name and value:
                headers[name] = value
    return headers


def outcome_records(outcome: SniffOutcome) -> List[MatchRecord]:
    """URLs de um resultado como ``MatchRecord``, qualquer que seja o modo."""
    if isinstance(outcome, SniffMultiSuccess):
        return list(outcome.urls)
    if isinstance(outcome, SniffSuccess):
        return [MatchRecord(url=outcome.url, headers=outcome.headers)]
    return []


def build_m3u(outcomes: List[SniffOutcome]) -> str:
    """Monta uma playlist .m3u com as URLs e os headers necessários (opções do VLC)."""
    lines = ["#EXTM3U"]
    for outcome in outcomes:
        for record in outcome_records(outcome):
            lines.append(f'#EXTINF:-1 group-title="MEDIASNIFFER", {outcome.play_url}')
            if record.headers.get("referer"):
                lines.append(f"#EXTVLCOPT:http-referrer={record.headers['referer']}")
            if record.headers.get("user-agent"):
                lines.append(f"#EXTVLCOPT:http-user-agent={record.headers['user-agent']}")
            lines.append(record.url)
    return "\n".join(lines) + "\n"


def build_config(args: argparse.Namespace) -> SnifferConfig:
    return SnifferConfig(
        headless=args.headless,
        use_chrome=args.chrome,
        is_pc=args.pc,
        debug=args.debug,
        block_private_hosts=not args.allow_private,
    )


async def process_url(
    url: str,
    engine: SnifferEngine,
    args: argparse.Namespace,
    headers: Dict[str, str],
    progress: Progress,
) -> Optional[Union[SniffOutcome, PageContent]]:
    task_id = progress.add_task(f"[cyan]Processando: {url}", total=None)
    try:
        if args.fetch:
            result = await engine.fetch_rendered_page(FetchRequest(
                url=url,
                timeout=args.timeout,
                css=args.css,
                script=args.script,
                init_script=args.init_script,
                headers=headers,
                is_pc=args.pc,
            ))
        else:
            result = await engine.sniff(SniffRequest(
                url=url,
                mode=SniffMode(args.mode),
                custom_regex=args.regex,
                sniffer_exclude=args.exclude,
                timeout=args.timeout,
                css=args.css,
                script=args.script,
                init_script=args.init_script,
                headers=headers,
                is_pc=args.pc,
            ))
        progress.update(task_id, completed=True, description=f"[green]Concluído: {url}")
        return result
    except SnifferError as e:
        progress.update(task_id, completed=True, description=f"[red]Erro: {url}")
        console.print(f"[bold red]Erro ao processar {url}:[/] {e}")
        return None


def print_outcome(outcome: SniffOutcome) -> None:
    console.print(f"\n[bold]Página:[/] {outcome.play_url}  [dim]({outcome.cost})[/]")
    records = outcome_records(outcome)
    if not records:
        console.print(f"  [red][-] {outcome.msg}[/]")
        return
    for record in records:
        console.print(f"  [green]- {record.url}[/]")
        for name, value in record.headers.items():
            console.print(f"      [dim]{name}: {value}[/]")


async def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="mediasniffer: descobre URLs de mídia reais interceptando o tráfego da página.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exemplos de uso:
  mediasniffer https://exemplo.com/video
  mediasniffer https://exemplo.com/video --mode 1 --timeout 15000
  mediasniffer https://exemplo.com/video --regex "\\.m3u8" -H "Referer: https://exemplo.com"
  mediasniffer https://exemplo.com/pagina --fetch --css "#player"
        """,
    )

    parser.add_argument("urls", nargs="+", help="Uma ou mais URLs de páginas com player.")

    sniff_group = parser.add_argument_group("Opções de Sniffing")
    sniff_group.add_argument(
        "--mode", type=int, choices=[0, 1], default=0,
        help="0 = para na primeira URL (padrão), 1 = coleta todas até o timeout.",
    )
    sniff_group.add_argument("--regex", default=None, help="Regex customizada da URL de mídia.")
    sniff_group.add_argument("--exclude", default=None, help="Regex de URLs a ignorar.")
    sniff_group.add_argument(
        "--timeout", type=int, default=None,
        help="Tempo limite em milissegundos (padrão: 10000, limitado ao máximo do modo).",
    )
    sniff_group.add_argument("--css", default=None, help="Seletor CSS a esperar antes de continuar.")
    sniff_group.add_argument("--script", default=None, help="JavaScript executado após a navegação.")
    sniff_group.add_argument(
        "--init-script", default=None,
        help="JavaScript executado antes de qualquer script da página.",
    )
    sniff_group.add_argument(
        "-H", "--header", action="append", default=[], metavar="'NOME: VALOR'",
        help="Header extra da requisição (pode ser repetido).",
    )
    sniff_group.add_argument(
        "--fetch", action="store_true", default=False,
        help="Imprime o HTML renderizado em vez de procurar mídia.",
    )

    browser_group = parser.add_argument_group("Opções de Navegador")
    browser_group.add_argument(
        "--pc", action="store_true", default=False,
        help="Emula um desktop (padrão: celular).",
    )
    browser_group.add_argument(
        "--chrome", action="store_true", default=False,
        help="Usa o Google Chrome instalado em vez do Chromium do Playwright.",
    )
    browser_group.add_argument(
        "--no-headless", action="store_false", dest="headless", default=True,
        help="Executa o navegador com interface gráfica.",
    )
    browser_group.add_argument(
        "--allow-private", action="store_true", default=False,
        help="Permite URLs de localhost e redes privadas.",
    )

    output_group = parser.add_argument_group("Saída")
    output_group.add_argument("--json", action="store_true", default=False, help="Imprime o resultado em JSON.")
    output_group.add_argument("--output", "-o", help="Caminho para salvar o arquivo .m3u resultante.")
    output_group.add_argument("--debug", action="store_true", default=False, help="Log detalhado.")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    headers = parse_headers(args.header)
    results: List[Union[SniffOutcome, PageContent]] = []

    async with SnifferEngine(build_config(args)) as engine:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=args.json,
        ) as progress:
            for url in args.urls:
                res = await process_url(url, engine, args, headers, progress)
                if res is not None:
                    results.append(res)

    if args.json:
        console.print_json(json.dumps([r.to_dict() for r in results], ensure_ascii=False))
    elif args.fetch:
        for page in results:
            console.print(f"\n[bold]URL final:[/] {page.final_url}  [dim]({page.cost})[/]")
            console.print(page.content, markup=False, highlight=False)
    else:
        console.print("\n[bold cyan]Resultados do Sniffing:[/]")
        for outcome in results:
            print_outcome(outcome)

    if args.output and not args.fetch:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(build_m3u(results))
        console.print(f"\n[bold green]✓[/] Arquivo '[bold cyan]{args.output}[/]' gerado com sucesso!")

    return 0 if results and all(getattr(r, "ok", True) for r in results) else 1


def main_entry():
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    main_entry()
