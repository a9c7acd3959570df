"""
Type definitions for the LAN inventory exporter.

These dataclasses define the domain model shared by the prober, the
neighbor-table resolver, the rule-based classifier and the discovery
coordinator.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator


# Published in place of a hostname the neighbor table does not know
UNKNOWN_HOSTNAME = "<unknown>"

# Classification label when no rule matches or the rule file is unusable
UNKNOWN_DEVICE_TYPE = "unknown"


def now_utc() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class CycleState(str, Enum):
    """Phases of one discovery cycle."""
    IDLE = "idle"
    PROBING = "probing"
    SETTLING = "settling"
    RESOLVING = "resolving"  # resolve hostnames + classify
    PUBLISHED = "published"


@dataclass(frozen=True)
class SubnetRange:
    """
    A /24 sweep target: base prefix plus a host-id span.

    Probe targets are generated by plain concatenation of the base prefix
    and each host id, e.g. "192.168.1." + "7" -> "192.168.1.7".
    """
    base_prefix: str
    first_host: int = 1
    last_host: int = 254

    def __post_init__(self) -> None:
        if not self.base_prefix.endswith("."):
            raise ValueError(f"Base prefix must end with '.': {self.base_prefix!r}")
        octets = self.base_prefix[:-1].split(".")
        if len(octets) != 3:
            raise ValueError(f"Base prefix must have three octets: {self.base_prefix!r}")
        try:
            ipaddress.IPv4Address(self.base_prefix + "0")
        except ValueError as e:
            raise ValueError(f"Invalid base prefix {self.base_prefix!r}: {e}") from e
        if not 1 <= self.first_host <= self.last_host <= 254:
            raise ValueError(
                f"Invalid host span [{self.first_host}, {self.last_host}]"
            )

    @classmethod
    def parse(cls, value: str) -> "SubnetRange":
        """
        Build a range from "192.168.1." or a /24 CIDR like "192.168.1.0/24".

        Raises ValueError for anything else.
        """
        value = value.strip()
        if "/" in value:
            network = ipaddress.IPv4Network(value, strict=False)
            if network.prefixlen != 24:
                raise ValueError(f"Only /24 networks can be swept, got /{network.prefixlen}")
            base = str(network.network_address).rsplit(".", 1)[0]
            return cls(base_prefix=f"{base}.")
        if not value.endswith("."):
            value += "."
        return cls(base_prefix=value)

    def targets(self) -> list[str]:
        """One probe address per host id, in ascending order."""
        return [f"{self.base_prefix}{host}" for host in range(self.first_host, self.last_host + 1)]

    def __len__(self) -> int:
        return self.last_host - self.first_host + 1

    def __str__(self) -> str:
        return f"{self.base_prefix}{self.first_host}-{self.last_host}"


@dataclass
class DeviceTypeRule:
    """
    A device-type rule: label plus MAC prefix and hostname keyword matchers.

    Matchers are lower-cased and stripped on construction; blank matchers
    are dropped because an empty prefix or keyword matches everything.
    """
    type_label: str
    mac_prefixes: list[str] = field(default_factory=list)
    hostname_keywords: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.type_label = (self.type_label or "").strip()
        if not self.type_label:
            raise ValueError("Device type rule requires a non-empty type label")
        self.mac_prefixes = [p.strip().lower() for p in self.mac_prefixes if p and p.strip()]
        self.hostname_keywords = [
            k.strip().lower() for k in self.hostname_keywords if k and k.strip()
        ]


@dataclass
class RuleSet:
    """Ordered device-type rules; evaluation order is declaration order."""
    rules: list[DeviceTypeRule] = field(default_factory=list)
    source: str = ""

    def __iter__(self) -> Iterator[DeviceTypeRule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)


@dataclass
class DeviceRecord:
    """One published inventory entry, rebuilt every discovery cycle."""
    ip_address: str
    mac_address: str
    hostname: str = UNKNOWN_HOSTNAME
    device_type: str = UNKNOWN_DEVICE_TYPE

    def label_values(self) -> tuple[str, str, str, str]:
        """Label values in the order the inventory gauge declares them."""
        return (self.ip_address, self.mac_address, self.hostname, self.device_type)


@dataclass
class ResourceSample:
    """Host CPU and memory utilisation at one point in time."""
    cpu_percent: float
    memory_used_percent: float
    memory_total_bytes: int
    memory_used_bytes: int
    sampled_at: datetime = field(default_factory=now_utc)
