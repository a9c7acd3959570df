"""
Discovery cycle coordinator - the inventory refresh loop.

One cycle:
    IDLE -> PROBING -> SETTLING -> RESOLVING -> PUBLISHED -> (sleep) -> IDLE

The published inventory is cleared right before resolution starts and then
rebuilt from the single neighbor-table read of this cycle, so it always
matches the latest snapshot and never accumulates stale devices. Scrapes
that land between the clear and the last publish see a partial inventory.

Errors on the discovery path are recovered with degraded values; a cycle
always completes and never takes the process down.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Union

from ._types import (
    CycleState,
    DeviceRecord,
    SubnetRange,
    UNKNOWN_HOSTNAME,
)
from .classifier import classify_device
from .metrics import CONNECTED_DEVICES, MetricsRegistry
from .neighbors import AddressResolver, HostnameNotFoundError, NeighborTableError
from .prober import Prober, sweep

logger = logging.getLogger(__name__)


class DiscoveryCoordinator:
    """
    Owns the discovery cycle lifecycle.

    Runs probe -> settle -> resolve -> classify -> publish every
    interval seconds. A started cycle always runs to completion.
    """

    def __init__(
        self,
        subnet: SubnetRange,
        prober: Prober,
        resolver: AddressResolver,
        registry: MetricsRegistry,
        rules_path: Union[str, Path],
        interval: float = 30.0,
        settle_seconds: float = 1.0,
        max_concurrent_probes: int = 254,
    ):
        """
        Args:
            subnet: /24 range to sweep each cycle
            prober: reachability probe used to populate the neighbor table
            resolver: neighbor table reader
            registry: where the inventory is published
            rules_path: device type rule file, re-read for every device
            interval: seconds between the end of one cycle and the next
            settle_seconds: delay after the sweep before reading the table
            max_concurrent_probes: in-flight probe bound
        """
        self.subnet = subnet
        self.prober = prober
        self.resolver = resolver
        self.registry = registry
        self.rules_path = rules_path
        self.interval = interval
        self.settle_seconds = settle_seconds
        self.max_concurrent_probes = max_concurrent_probes

        self.state = CycleState.IDLE
        self.cycles_completed = 0
        self.last_records: list[DeviceRecord] = []

    async def run_cycle(self) -> list[DeviceRecord]:
        """
        Run one full discovery cycle and publish its inventory.

        Returns the records published by this cycle.
        """
        started = time.monotonic()
        logger.info(f"Starting discovery cycle over {self.subnet}")

        self.state = CycleState.PROBING
        await sweep(self.subnet, self.prober, self.max_concurrent_probes)

        # ARP entries can lag the echo reply
        self.state = CycleState.SETTLING
        await asyncio.sleep(self.settle_seconds)

        self.registry.reset_labeled_gauge(CONNECTED_DEVICES)

        self.state = CycleState.RESOLVING
        table = await self.resolver.read_neighbor_table()

        records = []
        for ip_address, mac_address in table.items():
            record = await self._build_record(ip_address, mac_address)
            self.registry.set_labeled_gauge(
                CONNECTED_DEVICES, *record.label_values(), value=1
            )
            records.append(record)

        self.state = CycleState.PUBLISHED
        self.last_records = records
        self.cycles_completed += 1

        logger.info(
            f"Discovery cycle completed: {len(records)} devices published "
            f"in {time.monotonic() - started:.1f}s"
        )
        return records

    async def _build_record(self, ip_address: str, mac_address: str) -> DeviceRecord:
        """Resolve and classify one neighbor entry, degrading on error."""
        try:
            hostname = await self.resolver.resolve_hostname(ip_address)
        except HostnameNotFoundError as e:
            logger.warning(f"Hostname lookup: {e}")
            hostname = UNKNOWN_HOSTNAME
        except NeighborTableError as e:
            logger.warning(f"Hostname lookup for {ip_address} failed: {e}")
            hostname = UNKNOWN_HOSTNAME

        result = classify_device(mac_address, hostname, self.rules_path)
        if result.error is not None:
            logger.error(f"Classification of {ip_address} degraded to unknown: {result.error}")

        return DeviceRecord(
            ip_address=ip_address,
            mac_address=mac_address,
            hostname=hostname,
            device_type=result.device_type,
        )

    async def run_forever(self, shutdown_event: asyncio.Event) -> None:
        """Run cycles back to back, sleeping interval between them, until shutdown."""
        logger.info(f"Discovery loop started (every {self.interval}s)")

        while not shutdown_event.is_set():
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error(f"Discovery cycle failed: {e}")

            self.state = CycleState.IDLE
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Discovery loop stopped")
