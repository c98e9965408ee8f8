"""Service entry point: runs the HTTP API and the processor side by side."""

from __future__ import annotations

import asyncio
import ipaddress
import json
import logging
import signal
import sys
from datetime import datetime, timezone

from aiohttp import web

from .api import create_app
from .config import Config
from .db import establish_connection, run_migrations
from .docker import DockerService
from .processor import ProcessorService

logger = logging.getLogger(__name__)

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "1": logging.ERROR,
    "2": logging.WARNING,
    "3": logging.INFO,
    "4": logging.DEBUG,
    "5": logging.DEBUG,
}


class _JsonFormatter(logging.Formatter):
    """Render each record as one flat JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "target": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(config: Config) -> int:
    """Set up root logging from ``config`` and return the level in use."""
    level = _LEVELS.get(config.log_level.strip().lower(), logging.INFO)
    handler = logging.StreamHandler(sys.stderr)
    if config.log_json:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logging.basicConfig(level=level, handlers=[handler], force=True)
    return level


def _bind_address(host: str) -> str:
    try:
        return str(ipaddress.ip_address(host))
    except ValueError as exc:
        raise ValueError(f"invalid server address: {host}") from exc


async def _serve_until_done(processor: ProcessorService) -> None:
    """Wait until a shutdown signal arrives or the processor stops."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    installed = []
    for signum in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if signum is None:
            continue
        try:
            loop.add_signal_handler(signum, stop.set)
        except (NotImplementedError, RuntimeError, ValueError):
            continue
        installed.append(signum)

    processor_task = asyncio.create_task(processor.start())
    stop_task = asyncio.create_task(stop.wait())
    try:
        done, _ = await asyncio.wait(
            {processor_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if stop_task in done:
            logger.info("Shutdown signal received")
        if processor_task in done and processor_task.exception() is not None:
            logger.error("Processor service error: %s", processor_task.exception())
    finally:
        for task in (processor_task, stop_task):
            task.cancel()
        await asyncio.gather(processor_task, stop_task, return_exceptions=True)
        for signum in installed:
            loop.remove_signal_handler(signum)


async def run(config: Config) -> None:
    """Open the database, connect to Docker and serve until asked to stop."""
    db = await establish_connection(config)
    try:
        await run_migrations(db)
        logger.info("Database initialized successfully")
        docker = await DockerService.connect()
        try:
            processor = ProcessorService(config.processor_name, db, docker)
            logger.info("Processor service initialized successfully")
            host = _bind_address(config.server_host)
            runner = web.AppRunner(create_app(db))
            await runner.setup()
            try:
                logger.info("Starting HTTP server on %s:%s", host, config.server_port)
                await web.TCPSite(runner, host, config.server_port).start()
                await _serve_until_done(processor)
            finally:
                processor.shutdown()
                await runner.cleanup()
        finally:
            await docker.close()
    finally:
        await db.close()
    logger.info("Nebulet service stopped")


def main(argv: list[str] | None = None) -> int:
    """Run the service configured from the environment; return the exit status."""
    config = Config.from_env()
    configure_logging(config)
    logger.info("Starting Nebulet container service...")
    logger.info("Configuration: %r", config)
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Shutdown signal received")
    except Exception as exc:
        logger.error("Error: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())