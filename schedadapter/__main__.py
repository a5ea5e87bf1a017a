"""Schedule adapter process entry-point.

Usage:
    python -m schedadapter [--list | --next CHANNEL | --live CHANNEL]

Without a query flag the adapter runs in continuous mode: the channel roster
is polled until the process receives SIGTERM or Ctrl+C.  The query flags run
one roster refresh, print the answer as JSON on stdout and exit; they are
meant for operators checking what a channel would play.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from pydantic import ValidationError

from schedadapter.core import configure_logging
from schedadapter.core.exceptions import ConfigError, ScheduleAdapterError
from schedadapter.core.settings import Settings


def _load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


async def _query(settings: Settings, args: argparse.Namespace) -> Any:
    """Run one query against a freshly initialised adapter."""
    from schedadapter.orchestrator.service import open_adapter  # noqa: PLC0415

    async with open_adapter(settings, poll=False) as adapter:
        if args.list:
            return [
                {
                    "id": ch.id,
                    "title": ch.title,
                    "scheduleEndpoint": ch.schedule_endpoint,
                    "audioTracks": [t.model_dump() for t in ch.audio_tracks or ()],
                }
                for ch in adapter.roster.get_channels()
            ]
        if args.next:
            response = await adapter.assets.get_next(args.next)
            return response.to_payload()
        events = await adapter.live.get_schedule(args.live)
        return [ev.to_payload() for ev in events]


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    parser = argparse.ArgumentParser(
        prog="schedadapter",
        description="Resolve what a broadcast channel should be playing right now.",
    )
    query = parser.add_mutually_exclusive_group()
    query.add_argument(
        "--list",
        action="store_true",
        help="Print the channel roster and exit.",
    )
    query.add_argument(
        "--next",
        metavar="CHANNEL",
        help="Print the next playable unit for CHANNEL and exit.",
    )
    query.add_argument(
        "--live",
        metavar="CHANNEL",
        help="Print the live events around now for CHANNEL and exit.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )

    args = parser.parse_args()

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"schedadapter: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)

    try:
        settings = _load_settings()
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)

    # Settings may carry LOG_LEVEL / LOG_FORMAT from .env; CLI flags still win.
    configure_logging(
        level=args.log_level or settings.log_level,
        fmt=args.log_format or settings.log_format,
        force=True,
    )

    try:
        if args.list or args.next or args.live:
            result = asyncio.run(_query(settings, args))
            print(json.dumps(result, indent=2))  # noqa: T201
        else:
            from schedadapter.orchestrator.service import run_continuous  # noqa: PLC0415

            logger.info("Running in continuous mode (Ctrl+C to stop).")
            asyncio.run(run_continuous(settings))
    except ScheduleAdapterError as exc:
        logger.critical("%s: %s", type(exc).__name__, exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
