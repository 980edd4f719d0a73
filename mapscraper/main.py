"""
Main CLI entry point for the Maps scraper.
Supports ranged scraping (fast or detailed) and a flat top-N lookup.
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import List

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .browser import ScrapeError, StartupError
from .config import ScraperConfig, clamp_workers, load_config_from_env, load_config_from_file
from .models import PlaceRecord, ScrapeMode, ScrapeResult
from .scrape import GoogleMapsScraper

console = Console()


def setup_logging(config: ScraperConfig):
    """Setup structured logging"""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(console=console, rich_tracebacks=True),
            logging.FileHandler(config.log_file) if config.log_file else logging.NullHandler()
        ]
    )


def build_config(args) -> ScraperConfig:
    """Layer configuration: YAML file or environment, then CLI flags"""
    if args.config:
        config = load_config_from_file(args.config)
    else:
        config = load_config_from_env()

    if args.headless is not None:
        config.headless = args.headless
    if args.workers:
        config.max_workers = clamp_workers(args.workers)
    if args.no_parallel:
        config.parallel_enabled = False
    if args.proxy_file:
        config.proxy_enabled = True
        config.proxy_source_path = args.proxy_file
    if args.debug:
        config.debug_mode = True
        config.log_level = "DEBUG"

    return config


def render_table(records: List[PlaceRecord], title: str) -> Table:
    table = Table(title=title)
    table.add_column("#", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Category")
    table.add_column("Rating", style="green")
    table.add_column("Address")
    table.add_column("Phone")
    table.add_column("Lat, Lng", style="dim")

    for i, record in enumerate(records, 1):
        rating = ""
        if record.rating is not None:
            rating = f"{record.rating}"
            if record.review_count:
                rating += f" ({record.review_count})"
        coords = ""
        if record.latitude is not None:
            coords = f"{record.latitude}, {record.longitude}"
        table.add_row(
            str(i),
            record.name or "",
            record.category or "",
            rating,
            record.address or "",
            record.phone or "",
            coords,
        )
    return table


async def main_async(args) -> int:
    """Main async function"""
    config = build_config(args)
    setup_logging(config)

    mode = ScrapeMode.DETAILED if args.detailed else ScrapeMode.FAST
    console.print(f"[bold green]Maps Scraper Starting[/bold green] query=[cyan]{args.query}[/cyan]")

    async with GoogleMapsScraper(config) as scraper:
        if args.limit:
            records = await scraper.scrape_top(args.query, args.limit)
            result = ScrapeResult(
                results=records,
                total_available=len(records),
                actual_from=1 if records else 0,
                actual_to=len(records),
            )
        else:
            result = await scraper.scrape(args.query, args.from_index, args.to_index, mode)

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    else:
        title = (
            f"{len(result.results)} results "
            f"({result.actual_from}-{result.actual_to} of {result.total_available})"
        )
        console.print(render_table(result.results, title))
    return 0


def main():
    """CLI entry point"""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Look up places on Google Maps and print structured records",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument('query', help='Search query. Example: "coffee in Jakarta"')
    parser.add_argument('--from', dest='from_index', type=int, default=1,
                        help='First result index, 1-based (default: 1)')
    parser.add_argument('--to', dest='to_index', type=int, default=20,
                        help='Last result index, inclusive (default: 20)')
    parser.add_argument('--limit', type=int,
                        help='Flat top-N lookup with a single browser instead of a ranged scrape')
    parser.add_argument('--detailed', action='store_true',
                        help='Open every place page for phone, website and review counts')
    parser.add_argument('--config', help='Path to YAML configuration file')
    parser.add_argument('--workers', type=int, help='Maximum concurrent browsers (1-10)')
    parser.add_argument('--no-parallel', action='store_true', help='Scrape detail pages with one browser')
    parser.add_argument('--proxy-file', help='Proxy list, one host:port[:user:pass] per line')
    parser.add_argument('--headless', dest='headless', action='store_true', default=None,
                        help='Run browser in headless mode (default)')
    parser.add_argument('--no-headless', dest='headless', action='store_false',
                        help='Run browser with GUI')
    parser.add_argument('--json', action='store_true', help='Print results as JSON')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode with verbose logging')

    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(main_async(args)))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except ValueError as e:
        console.print(f"[red]Invalid arguments: {e}[/red]")
        sys.exit(2)
    except StartupError as e:
        console.print(f"[red]Browser unavailable: {e}[/red]")
        sys.exit(1)
    except ScrapeError as e:
        console.print(f"\n[red]Scraping failed: {e}[/red]")
        if args.debug:
            console.print_exception()
        sys.exit(1)


if __name__ == '__main__':
    main()
