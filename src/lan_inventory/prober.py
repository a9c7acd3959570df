"""
Subnet sweep by ping.

Pinging every host id of the /24 makes the kernel resolve each address,
which populates the neighbor (ARP) table as a side effect. That side effect
is the only thing the sweep is for: probe results are never inspected, and
unreachable hosts are the normal case, so per-host failures are not logged.
"""

from __future__ import annotations

import asyncio
import logging
import math
import platform
import time
from abc import ABC, abstractmethod

from ._types import SubnetRange

logger = logging.getLogger(__name__)


class Prober(ABC):
    """Capability to send one reachability probe."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this prober."""
        pass

    @abstractmethod
    async def probe(self, address: str) -> bool:
        """
        Probe address once. Best effort: must not raise for unreachable hosts.

        Returns True if the host answered.
        """
        pass


class PingProber(Prober):
    """Single ICMP echo via the system `ping` command."""

    def __init__(self, timeout: float = 1.0, grace: float = 1.0):
        """
        Args:
            timeout: ping reply timeout in seconds
            grace: extra seconds before a hung ping process is killed
        """
        self.timeout = timeout
        self.grace = grace

    @property
    def name(self) -> str:
        return "ping"

    def build_command(self, address: str) -> list[str]:
        """ping argv for this platform (macOS -W is milliseconds, Linux seconds)."""
        if platform.system() == "Darwin":
            wait = str(max(1, int(self.timeout * 1000)))
        else:
            wait = str(max(1, math.ceil(self.timeout)))
        return ["ping", "-c", "1", "-W", wait, address]

    async def probe(self, address: str) -> bool:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_command(address),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError:
            return False

        try:
            await asyncio.wait_for(proc.wait(), timeout=self.timeout + self.grace)
        except asyncio.TimeoutError:
            return False
        finally:
            # Timed out or cancelled by shutdown: never leave ping running
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        return proc.returncode == 0


async def sweep(
    subnet: SubnetRange,
    prober: Prober,
    max_concurrent: int = 254,
) -> None:
    """
    Probe every host of subnet concurrently and wait for all of them.

    Returns only once every probe has finished or timed out. Individual
    outcomes, including exceptions raised by the prober, are discarded.
    """
    semaphore = asyncio.Semaphore(max_concurrent)

    async def probe_one(address: str) -> None:
        async with semaphore:
            await prober.probe(address)

    started = time.monotonic()
    targets = subnet.targets()

    # Completion barrier: no partial results
    await asyncio.gather(*(probe_one(ip) for ip in targets), return_exceptions=True)

    logger.debug(
        f"{prober.name} sweep of {subnet} ({len(targets)} hosts) "
        f"finished in {time.monotonic() - started:.1f}s"
    )
