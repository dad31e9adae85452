"""
SkyHistory - Entry Point

Query historical flight data:
    python main.py history --icao24 485a32 --start "2025-01-01 10:00:00" --stop "2025-01-01 12:00:00"
    python main.py flightlist --departure EHAM --arrival EGLL --start 2025-01-01 --duration 1d
    python main.py cache stats

Or import and use programmatically:
    from skyhistory.trino import Trino, FilterSet

Environment variables:
    OPENSKY_USERNAME/PASSWORD: OpenSky account credentials
    CACHE_DIRECTORY: Result cache directory (default: ~/.cache/opensky)
    CACHE_PURGE: Age used by "cache purge" (default: 90 days)
"""

import argparse
import asyncio
import sys

from skyhistory.utils.logger import setup_logger, logger
from skyhistory.utils.exceptions import SkyHistoryError
from skyhistory.trino.config import settings, ConfigFileCredentialProvider, default_config_path
from skyhistory.trino.components import FilterSet, QueryStatus, parse_age, write_output
from skyhistory.trino.client import Trino

from dotenv import load_dotenv
load_dotenv()


def build_filters(args: argparse.Namespace) -> FilterSet:
    """Build a FilterSet from parsed command line arguments."""
    filters = FilterSet()
    if args.start:
        filters = filters.with_time_range(args.start, args.stop)
    if args.duration:
        filters = filters.with_duration(args.duration)
    if args.icao24:
        filters = filters.with_icao24(args.icao24)
    if args.callsign:
        filters = filters.with_callsign(args.callsign)
    if args.departure:
        filters = filters.with_departure(args.departure)
    if args.arrival:
        filters = filters.with_arrival(args.arrival)
    if args.airport:
        filters = filters.with_airport(args.airport)
    if args.bounds:
        filters = filters.with_bounds(*args.bounds)
    if args.limit is not None:
        filters = filters.with_limit(args.limit)
    return filters


def credential_provider() -> ConfigFileCredentialProvider | None:
    """Fall back to settings.conf when no credentials are set in the environment."""
    if settings.auth.has_credentials or not default_config_path().exists():
        return None
    return ConfigFileCredentialProvider()


def configured_purge() -> str:
    provider = credential_provider()
    if provider is not None:
        return provider.cache_purge() or settings.cache.purge
    return settings.cache.purge


def log_progress(status: QueryStatus) -> None:
    if status.cached:
        logger.info(f"Loaded {status.row_count} rows from cache")
    else:
        logger.info(f"{status.state.value}: {status.progress:.0%} ({status.row_count} rows)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Historical flight data from the OpenSky Network"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (default: from settings)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("history", "Query state vectors (airport filters join the flight list)"),
        ("flightlist", "Query the flight list"),
    ):
        query = commands.add_parser(name, help=help_text)
        query.add_argument("--start", help="Start time (YYYY-MM-DD or YYYY-MM-DD HH:MM:SS)")
        query.add_argument("--stop", help="Stop time (a bare date means end of day)")
        query.add_argument("--duration", help="Window length when --stop is omitted (30m, 2h, 1d, 1w)")
        query.add_argument("--icao24", help="Aircraft transponder address (supports % and _ wildcards)")
        query.add_argument("--callsign", help="Flight callsign (supports % and _ wildcards)")
        query.add_argument("--departure", help="Departure airport ICAO code")
        query.add_argument("--arrival", help="Arrival airport ICAO code")
        query.add_argument("--airport", help="Departure or arrival airport ICAO code")
        query.add_argument(
            "--bounds",
            nargs=4,
            type=float,
            metavar=("WEST", "SOUTH", "EAST", "NORTH"),
            help="Bounding box in degrees",
        )
        query.add_argument("--limit", type=int, default=None, help="Maximum number of rows")
        query.add_argument("--output", "-o", help="Write the result to a .csv or .parquet file")
        query.add_argument("--show-query", action="store_true", help="Print the SQL and exit")
        query.add_argument("--no-cache", action="store_true", help="Skip the cache lookup")

    cache = commands.add_parser("cache", help="Manage the local result cache")
    cache.add_argument("action", choices=["stats", "purge", "clear"])
    cache.add_argument("--older-than", default=None, help="Purge age (default: CACHE_PURGE)")

    return parser


async def run_query(args: argparse.Namespace) -> int:
    async with Trino(credentials=credential_provider()) as trino:
        filters = build_filters(args)
        if args.command == "flightlist":
            rendered = trino.builder.render_flightlist(filters)
        else:
            rendered = trino.builder.render_history(filters)

        if args.show_query:
            print(rendered.preview())
            return 0

        data = await trino.query(rendered, use_cache=not args.no_cache, on_progress=log_progress)

    if args.output:
        write_output(data, args.output)
    else:
        print(data.head(20))
    logger.info(f"Total rows: {len(data)}")
    return 0


async def run_cache(args: argparse.Namespace) -> int:
    async with Trino(credentials=credential_provider()) as trino:
        if args.action == "stats":
            stats = await trino.cache_stats()
            print(f"Directory: {stats.directory}")
            print(f"Entries:   {stats.file_count}")
            print(f"Size:      {stats.size_human()}")
        elif args.action == "purge":
            older_than = parse_age(args.older_than or configured_purge())
            removed = await trino.purge_cache(older_than)
            print(f"Removed {removed} entries older than {older_than}")
        else:
            removed = await trino.purge_cache(None)
            print(f"Removed {removed} entries")
    return 0


def main() -> int:
    """Main entry point for the command line."""
    args = build_parser().parse_args()

    # The command line owns every sink, including loguru's default one
    logger.remove()
    setup_logger(
        log_level=args.log_level or settings.logging.level,
        log_dir=settings.logging.log_dir,
        log_file=settings.logging.log_file,
        rotation=settings.logging.rotation,
        retention=settings.logging.retention,
        enable_file=settings.logging.to_file,
    )

    try:
        if args.command == "cache":
            return asyncio.run(run_cache(args))
        return asyncio.run(run_query(args))
    except SkyHistoryError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
