"""Command line entry point.

Polls Home Assistant for the configured entities and serves them as a
Server-Sent Events stream::

    export HA_URL="http://homeassistant.local:8123"
    export HA_TOKEN="..."
    halocation --entity device_tracker.phone,person.me --ring-size 10 --filter
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from collections.abc import Sequence

from aiohttp import web

from halocation._constants import SHUTDOWN_TIMEOUT
from halocation.broadcast import EventStream
from halocation.client import HomeAssistantClient, initial_ping
from halocation.config import LocationConfig, parse_duration, parse_listen, split_entities
from halocation.exceptions import LocationConfigError, LocationError
from halocation.fetcher import Fetcher
from halocation.server import create_app
from halocation.state import build_store

_logger = logging.getLogger(__name__)

LOG_LEVELS: dict[str, int] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "disabled": logging.CRITICAL + 10,
}


def _duration(value: str) -> float:
    try:
        return parse_duration(value)
    except LocationConfigError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="halocation",
        description="Poll Home Assistant entities and stream their state over SSE.",
    )
    parser.add_argument("--token", help="Home Assistant token [env: HA_TOKEN]")
    parser.add_argument("--url", help="Home Assistant URL [env: HA_URL]")
    parser.add_argument("--poll-interval", type=_duration, help="Rate of polling (default 5s)")
    parser.add_argument("--concurrency", type=int, dest="max_concurrency", help="Polling concurrency (default 2)")
    parser.add_argument("--bootstrap", type=_duration, help="History window replayed at startup (default 0, off)")
    parser.add_argument("--ring-size", type=int, help="Records kept per entity, 0 keeps only the latest")
    parser.add_argument(
        "--filter",
        action="store_true",
        default=None,
        dest="filter_enabled",
        help="Only store records with valid coordinates",
    )
    parser.add_argument("--listen", help="Listen configuration for HTTP traffic (default :9922)")
    parser.add_argument("--log-level", choices=sorted(LOG_LEVELS), help="Log level (default info)")
    parser.add_argument(
        "--entity",
        action="append",
        dest="entities",
        default=None,
        help="Entity ID to export, repeat flag or comma separate for more",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> LocationConfig:
    overrides = {
        key: value
        for key, value in vars(args).items()
        if value is not None and key != "entities"
    }
    if args.entities is not None:
        overrides["entities"] = split_entities(args.entities)
    config = LocationConfig.from_env(**overrides)
    config.validate()
    return config


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=LOG_LEVELS.get(level.lower(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def run(config: LocationConfig) -> int:
    """Run the service until SIGINT/SIGTERM; return the process exit code."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def _on_signal(sig: signal.Signals) -> None:
        _logger.info("Signal received: %s", sig.name)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _on_signal, sig)

    async with HomeAssistantClient(config) as client:
        try:
            await initial_ping(client)
        except LocationError as exc:
            _logger.critical("Failed to ping Home Assistant: %s", exc)
            return 1

        store = build_store(ring_size=config.ring_size, filter_enabled=config.filter_enabled)
        stream = EventStream(store.list)
        store.on_state = stream.emit

        fetcher = Fetcher.from_config(config, client, store)
        fetch_task = asyncio.create_task(fetcher.run(stop), name="halocation-fetcher")

        host, port = parse_listen(config.listen)
        runner = web.AppRunner(create_app(stream, client), access_log=None)
        await runner.setup()
        try:
            await web.TCPSite(runner, host, port).start()
        except OSError as exc:
            _logger.critical("Failed to start listener on %s: %s", config.listen, exc)
            stop.set()
            await fetch_task
            await runner.cleanup()
            return 1

        _logger.info("Listening on %s:%d", host, port)
        await stop.wait()

        stream.close()
        try:
            await asyncio.wait_for(asyncio.gather(runner.cleanup(), fetch_task), SHUTDOWN_TIMEOUT)
        except TimeoutError:
            _logger.critical("Shutdown did not finish within %.0fs", SHUTDOWN_TIMEOUT)
            return 1

    _logger.info("Application shutdown")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
    except LocationConfigError as exc:
        parser.error(str(exc))

    setup_logging(config.log_level)
    _logger.debug("Polling for entities: %s", ", ".join(config.entities))
    return asyncio.run(run(config))
