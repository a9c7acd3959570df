"""
LAN Inventory Exporter Service - process entry point.

Serves GET /metrics and runs the discovery and resource sampling loops
side by side on one event loop. Failing to bind the listening port is the
only fatal error; everything on the discovery path degrades instead.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import yaml
from aiohttp import web

from .config import ExporterConfig
from .coordinator import DiscoveryCoordinator
from .metrics import PrometheusRegistry
from .neighbors import AddressResolver, ArpNeighborTableSource, NeighborTableSource
from .prober import PingProber, Prober
from .sampler import ResourceSampler

logger = logging.getLogger(__name__)


class ExporterService:
    """
    Main exporter service.

    Owns the metrics registry, the exposition endpoint and both loops.
    """

    def __init__(
        self,
        config: ExporterConfig,
        registry: Optional[PrometheusRegistry] = None,
        prober: Optional[Prober] = None,
        neighbor_source: Optional[NeighborTableSource] = None,
    ):
        """
        Initialize exporter service.

        Args:
            config: Exporter configuration
            registry: Metrics registry (a fresh PrometheusRegistry if None)
            prober: Sweep prober (ping if None)
            neighbor_source: Neighbor table source (`arp -a` if None)
        """
        self.config = config
        self.registry = registry or PrometheusRegistry()
        self._shutdown_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

        self.coordinator = DiscoveryCoordinator(
            subnet=config.subnet_range(),
            prober=prober or PingProber(timeout=config.probe_timeout_seconds),
            resolver=AddressResolver(neighbor_source or ArpNeighborTableSource()),
            registry=self.registry,
            rules_path=config.rules_path,
            interval=config.scan_interval_seconds,
            settle_seconds=config.settle_seconds,
            max_concurrent_probes=config.max_concurrent_probes,
        )
        self.sampler = ResourceSampler(
            registry=self.registry,
            interval=config.sample_interval_seconds,
        )

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        """aiohttp application with the single metrics route."""
        app = web.Application()
        app.router.add_get(self.config.metrics_path, self._handle_metrics)
        return app

    async def start(self) -> None:
        """
        Bind the endpoint, then run both loops until stop().

        Raises:
            OSError: the listening port could not be bound
        """
        logger.info("Starting LAN Inventory Exporter")

        await self._start_http_server()

        self._tasks = [
            asyncio.create_task(self.sampler.run_forever(self._shutdown_event)),
            asyncio.create_task(self.coordinator.run_forever(self._shutdown_event)),
        ]
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Stop the loops and the endpoint."""
        logger.info("Stopping LAN Inventory Exporter")
        self._shutdown_event.set()

        # An in-flight sweep would otherwise hold shutdown for a full cycle
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def _start_http_server(self) -> None:
        """Start the metrics exposition endpoint."""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.listen_host, self.config.listen_port)
        try:
            await site.start()
        except OSError:
            await self._runner.cleanup()
            self._runner = None
            raise
        logger.info(
            f"Starting metrics server at "
            f"{self.config.listen_host}:{self.config.listen_port}{self.config.metrics_path}"
        )

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        """Handle GET /metrics."""
        return web.Response(
            body=self.registry.generate_latest(),
            headers={"Content-Type": self.registry.content_type},
        )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Command line for lan-inventory-exporter."""
    parser = argparse.ArgumentParser(description="LAN Inventory Exporter")
    parser.add_argument("--config", type=str, help="Path to config file")
    parser.add_argument("--host", type=str, default=None, help="Listen host")
    parser.add_argument("--port", type=int, default=None, help="Listen port")
    parser.add_argument("--log-level", type=str, default=None, help="Log level")
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> ExporterConfig:
    """
    Build the configuration from the config file (or env) plus CLI overrides.

    Raises:
        OSError, ValueError, yaml.YAMLError: config could not be loaded
    """
    if args.config:
        config = ExporterConfig.from_yaml(Path(args.config))
    else:
        config = ExporterConfig.from_env()

    # Explicit CLI values win, including falsy ones like --port 0
    if args.host is not None:
        config.listen_host = args.host
    if args.port is not None:
        config.listen_port = args.port
    if args.log_level is not None:
        config.log_level = args.log_level

    return config


def _level(name: Optional[str]) -> int:
    return getattr(logging, (name or "INFO").upper(), logging.INFO)


def main(argv: Optional[list[str]] = None):
    """Entry point for lan-inventory-exporter."""
    args = parse_args(argv)

    # Configure logging before loading so config errors are reported
    logging.basicConfig(
        level=_level(args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        config = load_config(args)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"Config error: {e}")
        sys.exit(1)

    logging.getLogger().setLevel(_level(config.log_level))

    # Validate
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        sys.exit(1)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        service = ExporterService(config)
    except ValueError as e:
        logger.error(f"Config error: {e}")
        loop.close()
        sys.exit(1)

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(service.start())
    except OSError as e:
        logger.critical(
            f"Cannot bind metrics server to "
            f"{config.listen_host}:{config.listen_port}: {e}"
        )
        loop.close()
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        if not loop.is_closed():
            loop.run_until_complete(service.stop())
            loop.close()


if __name__ == "__main__":
    main()
