"""Shared fixtures: in-memory registry, scripted neighbor table, recording prober."""

import asyncio
from pathlib import Path

import pytest

from lan_inventory.metrics import MetricsRegistry
from lan_inventory.neighbors import NeighborTableError, NeighborTableSource
from lan_inventory.prober import Prober


class InMemoryRegistry(MetricsRegistry):
    """MetricsRegistry fake that records every call."""

    def __init__(self):
        self.gauges: dict[str, float] = {}
        self.labeled: dict[str, dict[tuple, float]] = {}
        self.resets: list[str] = []

    def set_gauge(self, name, value):
        self.gauges[name] = value

    def reset_labeled_gauge(self, name):
        self.resets.append(name)
        self.labeled[name] = {}

    def set_labeled_gauge(self, name, *label_values, value):
        self.labeled.setdefault(name, {})[tuple(label_values)] = value


class ScriptedNeighborSource(NeighborTableSource):
    """Returns queued neighbor tables; the last one repeats once the queue drains."""

    def __init__(self, *tables):
        self.tables = list(tables)
        self.reads = 0
        self.fail = False

    @property
    def name(self):
        return "scripted"

    async def read_text(self):
        self.reads += 1
        if self.fail:
            raise NeighborTableError("arp: command not found")
        if len(self.tables) > 1:
            return self.tables.pop(0)
        return self.tables[0] if self.tables else ""


class RecordingProber(Prober):
    """Records probed addresses, optionally sleeping or raising."""

    def __init__(self, delay=0.0, raise_for=()):
        self.delay = delay
        self.raise_for = set(raise_for)
        self.probed: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def name(self):
        return "recording"

    async def probe(self, address):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.probed.append(address)
            if address in self.raise_for:
                raise RuntimeError(f"probe blew up for {address}")
            return False
        finally:
            self.in_flight -= 1


APPLE_RULES = """
device_types:
  - type: apple
    mac_prefixes: ["ac:bc:32"]
    hostname_keywords: ["iphone"]
"""


@pytest.fixture
def registry():
    return InMemoryRegistry()


@pytest.fixture
def rules_file(tmp_path) -> Path:
    """Rule file with the single apple rule."""
    path = tmp_path / "config.yaml"
    path.write_text(APPLE_RULES)
    return path
