"""
LAN Inventory Exporter - Local subnet discovery published as Prometheus metrics.

Sweeps a local IPv4 /24 with ping, reads the OS neighbor (ARP) table,
classifies each device with an ordered rule file and republishes the
inventory, alongside host CPU/memory utilisation, for a Prometheus scrape.

Architecture:
    DiscoveryCoordinator - probe -> settle -> resolve -> classify -> publish (30s)
    ResourceSampler      - host CPU/memory gauges (5s)
    ExporterService      - aiohttp GET /metrics, owns both loops

The published inventory is rebuilt from scratch every cycle. Nothing is
persisted between cycles or across restarts.
"""

__version__ = "0.1.0"

from ._types import (
    SubnetRange,
    DeviceTypeRule,
    RuleSet,
    DeviceRecord,
    ResourceSample,
    CycleState,
    UNKNOWN_HOSTNAME,
    UNKNOWN_DEVICE_TYPE,
)

__all__ = [
    "__version__",
    "SubnetRange",
    "DeviceTypeRule",
    "RuleSet",
    "DeviceRecord",
    "ResourceSample",
    "CycleState",
    "UNKNOWN_HOSTNAME",
    "UNKNOWN_DEVICE_TYPE",
]
