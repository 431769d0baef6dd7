# ABOUTME: Terminal entry point: answers a natural-language weather query and renders it with rich.
# ABOUTME: Geolocation failures are fatal here; there is no fallback city on the command line.

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

from nimbus.config import Settings
from nimbus.deps import build_deps, create_http_client
from nimbus.errors import ConfigError, NimbusError
from nimbus.orchestrator import QueryOrchestrator
from nimbus.render import render_banner, render_error, render_examples, render_result

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nimbus",
        description="Nimbus: ask about the weather in plain language.",
    )
    parser.add_argument("query", nargs="*", help='Weather query, e.g. "weather in Paris tomorrow"')
    parser.add_argument("-u", "--units", choices=["metric", "imperial"], help="Unit system (default: from settings)")
    parser.add_argument("-d", "--debug", action="store_true", help="Verbose logging and full tracebacks")
    parser.add_argument("--no-summary", action="store_true", help="Skip the AI-generated briefing")
    return parser


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=debug)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


async def run_query(settings: Settings, query: str, units: str | None, with_summary: bool, console: Console) -> None:
    async with create_http_client(settings) as client:
        orchestrator = QueryOrchestrator(build_deps(settings, client))
        with console.status("[cyan]Fetching weather...[/cyan]", spinner="dots"):
            result = await orchestrator.process_query(query, default_units=units, with_summary=with_summary)
    render_result(console, result)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.debug)
    console = Console()

    query = " ".join(args.query).strip()
    if not query:
        render_banner(console)
        render_examples(console)
        return 0

    try:
        settings = Settings.from_env()
        settings.require_weather_key()
    except ConfigError as e:
        render_error(console, str(e))
        return 1

    if not settings.llm_enabled:
        logger.warning("OPENROUTER_API_KEY is not set; using the fallback parser and summaries")

    try:
        asyncio.run(run_query(settings, query, args.units, not args.no_summary, console))
    except NimbusError as e:
        render_error(console, str(e))
        if args.debug:
            console.print_exception()
        return 1
    except Exception as e:
        render_error(console, f"Unexpected error: {e}")
        if args.debug:
            console.print_exception()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
