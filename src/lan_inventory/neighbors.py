"""
Neighbor (ARP) table resolution.

Maps IPv4 addresses seen on the local link to hardware addresses and
best-effort hostnames by parsing `arp -a` output:

    Linux:  ? (192.168.1.1) at aa:bb:cc:dd:ee:ff [ether] on eth0
    macOS:  gateway (192.168.1.1) at 0:50:56:c0:0:8 on en0 ifscope [ethernet]

The table is re-read on every request. Nothing is cached between reads, so
two reads in the same cycle may observe slightly different tables.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from abc import ABC, abstractmethod

from ._types import UNKNOWN_HOSTNAME

logger = logging.getLogger(__name__)


class NeighborTableError(Exception):
    """The neighbor table command could not be run or failed."""


class HostnameNotFoundError(LookupError):
    """The address does not appear in the neighbor table."""

    def __init__(self, address: str):
        super().__init__(f"{address} not found in neighbor table")
        self.address = address


def parse_neighbor_table(text: str) -> dict[str, str]:
    """
    Extract {ip: mac} from neighbor table output.

    A usable line has at least four whitespace-delimited fields, the
    parenthesised IPv4 address in field two and the hardware address in
    field four. Anything else is skipped.
    """
    table: dict[str, str] = {}

    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 4:
            continue

        field = parts[1]
        if not (field.startswith("(") and field.endswith(")")):
            logger.debug(f"Skipping neighbor line without address field: {line!r}")
            continue

        ip_address = field[1:-1]
        try:
            ipaddress.IPv4Address(ip_address)
        except ValueError:
            logger.debug(f"Skipping neighbor line with bad address: {line!r}")
            continue

        table[ip_address] = parts[3]

    return table


def parse_hostname(text: str, address: str) -> str:
    """
    Find the hostname the neighbor table reports for address.

    The first line carrying address as a whole field (bare or parenthesised)
    wins; its first field is the hostname unless it is the "?" placeholder.

    Raises:
        HostnameNotFoundError: no line mentions address
    """
    for line in text.splitlines():
        parts = line.split()
        if not any(part.strip("()") == address for part in parts):
            continue
        if parts[0] == "?":
            return UNKNOWN_HOSTNAME
        return parts[0]

    raise HostnameNotFoundError(address)


class NeighborTableSource(ABC):
    """Capability to fetch the raw OS neighbor table."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this source."""
        pass

    @abstractmethod
    async def read_text(self) -> str:
        """
        Return the raw, line-oriented neighbor table.

        Raises:
            NeighborTableError: the table could not be obtained
        """
        pass

    async def read(self) -> dict[str, str]:
        """Read and parse the table into {ip: mac}."""
        return parse_neighbor_table(await self.read_text())


class ArpNeighborTableSource(NeighborTableSource):
    """Neighbor table from the `arp -a` command."""

    def __init__(self, command: tuple[str, ...] = ("arp", "-a"), timeout: float = 10.0):
        """
        Args:
            command: argv of the neighbor table command
            timeout: seconds before the command is abandoned
        """
        self.command = command
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "arp"

    async def read_text(self) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise NeighborTableError(f"Failed to run {' '.join(self.command)}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise NeighborTableError(
                f"{' '.join(self.command)} timed out after {self.timeout}s"
            ) from e

        if proc.returncode != 0:
            raise NeighborTableError(
                f"{' '.join(self.command)} exited {proc.returncode}: "
                f"{stderr.decode(errors='replace').strip()}"
            )

        return stdout.decode(errors="replace")


class AddressResolver:
    """
    Resolves neighbor table contents for the discovery cycle.

    Every call goes back to the source; the table is never reused.
    """

    def __init__(self, source: NeighborTableSource):
        self.source = source

    async def read_neighbor_table(self) -> dict[str, str]:
        """
        Read the whole table as {ip: mac}.

        A failing command is logged and yields an empty table, meaning
        "no devices currently known".
        """
        try:
            text = await self.source.read_text()
        except NeighborTableError as e:
            logger.error(f"Error getting neighbor table: {e}")
            return {}

        table = parse_neighbor_table(text)
        logger.debug(f"Neighbor table ({self.source.name}) has {len(table)} entries")
        return table

    async def resolve_hostname(self, address: str) -> str:
        """
        Look up the hostname for address with a fresh table read.

        Returns UNKNOWN_HOSTNAME when the entry has no name.

        Raises:
            HostnameNotFoundError: address is not in the table
            NeighborTableError: the table could not be read
        """
        text = await self.source.read_text()
        return parse_hostname(text, address)
