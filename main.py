"""CLI entrypoint for paper search, explanations and reading Q&A."""

from __future__ import annotations

import argparse
import asyncio
import logging

from dotenv import load_dotenv

from credential_cache import load_keys, save_keys
from csv_sink import write_records
from errors import ExhaustionFailure, NoResultsFailure, PaperLookupError
from models import Record, SearchFilters
from paper_service import DEFAULT_CATEGORIES, MIXED_CATEGORY, PaperService
from settings import ServiceConfig


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Find research papers and read them in plain language")
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Find papers on a topic")
    search.add_argument("query", help="Topic to search for")
    search.add_argument("--start-year", default=None, help="Only papers published on or after this year")
    search.add_argument("--end-year", default=None, help="Only papers published on or before this year")
    search.add_argument("--source", default=None, help="Restrict to a journal or preprint server")
    search.add_argument(
        "--single",
        action="store_true",
        help="One mixed query instead of parallel journal + preprint branches",
    )
    search.add_argument("--save", action="store_true", help="Append results to the reading-list CSV")

    for name, help_text in (("explain", "Plain-language rewrite of a paper"), ("ask", "Ask a question about a paper")):
        sub = commands.add_parser(name, help=help_text)
        if name == "ask":
            sub.add_argument("question", help="Question about the paper")
        sub.add_argument("--title", required=True)
        sub.add_argument("--authors", default="Unknown authors")
        sub.add_argument("--year", default="")

    keys = commands.add_parser("keys", help="Manage locally cached API keys")
    key_commands = keys.add_subparsers(dest="keys_command", required=True)
    key_set = key_commands.add_parser("set", help="Replace cached keys (priority order, max 5)")
    key_set.add_argument("keys", nargs="+")
    key_commands.add_parser("show", help="List cached keys (masked)")

    return parser.parse_args(argv)


def _print_records(records: list[Record]) -> None:
    for index, record in enumerate(records, start=1):
        print(f"{index}. {record.title} ({record.year})")
        print(f"   {record.authors} | {record.source} | {record.status}")
        print(f"   {record.description}")


async def run(args: argparse.Namespace, config: ServiceConfig) -> int:
    """Execute one command; returns the process exit status."""
    if args.command == "keys":
        if args.keys_command == "set":
            saved = save_keys(args.keys, config.key_cache_path)
            print(f"Saved {len(saved)} key(s). Keys are tried in order.")
        else:
            for index, key in enumerate(load_keys(config.key_cache_path), start=1):
                print(f"Key {index}: ...{key[-4:]}")
        return 0

    service = PaperService.from_config(config)
    try:
        if args.command == "search":
            filters = SearchFilters(start_year=args.start_year, end_year=args.end_year, source=args.source)
            categories = (MIXED_CATEGORY,) if args.single else DEFAULT_CATEGORIES
            records = await service.search(args.query, filters, categories)
            _print_records(records)
            if args.save:
                written = write_records(records, query=args.query)
                logging.info("Saved %s new paper(s) to the reading list", written)
            return 0

        entity = Record(title=args.title, authors=args.authors, year=args.year, description="", source="", status="")
        if args.command == "explain":
            print(await service.explain(entity))
        else:
            print(await service.answer(entity, args.question))
        return 0
    except NoResultsFailure as exc:
        logging.error("Nothing found: %s", exc)
    except ExhaustionFailure as exc:
        logging.error("Service unavailable (check API keys or quota): %s", exc)
    except PaperLookupError as exc:
        logging.error("Unreadable response from the service: %s", exc)
    return 1


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute the requested command."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args(argv)
    config = ServiceConfig.from_env()
    return asyncio.run(run(args, config))


if __name__ == "__main__":
    raise SystemExit(main())
