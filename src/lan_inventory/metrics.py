"""
Metrics registry for the exporter.

The discovery and sampling loops only ever talk to the MetricsRegistry
interface (set / reset / labeled set), so tests can substitute an
in-memory fake. PrometheusRegistry backs it with a private
prometheus_client CollectorRegistry whose operations are thread-safe.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from prometheus_client import CollectorRegistry, Gauge, generate_latest
from prometheus_client import CONTENT_TYPE_LATEST

# Host resource gauges
CPU_USAGE = "host_cpu_usage_percent"
MEMORY_USAGE = "host_memory_usage_percent"
MEMORY_TOTAL = "host_memory_total_bytes"
MEMORY_USED = "host_memory_used_bytes"

# Device inventory gauge
CONNECTED_DEVICES = "wifi_connected_devices"
DEVICE_LABELS = ("ip", "mac", "hostname", "device_type")


class MetricsRegistry(ABC):
    """Gauge store consumed by the discovery and sampling loops."""

    @abstractmethod
    def set_gauge(self, name: str, value: float) -> None:
        """Set an unlabeled gauge."""
        pass

    @abstractmethod
    def reset_labeled_gauge(self, name: str) -> None:
        """Drop every label set of a labeled gauge."""
        pass

    @abstractmethod
    def set_labeled_gauge(self, name: str, *label_values: str, value: float) -> None:
        """Set one label set of a labeled gauge."""
        pass


class PrometheusRegistry(MetricsRegistry):
    """MetricsRegistry backed by prometheus_client."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self):
        self.registry = CollectorRegistry()

        self._gauges: dict[str, Gauge] = {
            CPU_USAGE: Gauge(
                CPU_USAGE,
                'CPU usage percentage on this host',
                registry=self.registry,
            ),
            MEMORY_USAGE: Gauge(
                MEMORY_USAGE,
                'Memory usage percentage on this host',
                registry=self.registry,
            ),
            MEMORY_TOTAL: Gauge(
                MEMORY_TOTAL,
                'Total memory on this host in bytes',
                registry=self.registry,
            ),
            MEMORY_USED: Gauge(
                MEMORY_USED,
                'Used memory on this host in bytes',
                registry=self.registry,
            ),
        }

        self._labeled_gauges: dict[str, Gauge] = {
            CONNECTED_DEVICES: Gauge(
                CONNECTED_DEVICES,
                'Connected devices on the local network',
                list(DEVICE_LABELS),
                registry=self.registry,
            ),
        }

    def set_gauge(self, name: str, value: float) -> None:
        self._gauges[name].set(value)

    def reset_labeled_gauge(self, name: str) -> None:
        self._labeled_gauges[name].clear()

    def set_labeled_gauge(self, name: str, *label_values: str, value: float) -> None:
        self._labeled_gauges[name].labels(*label_values).set(value)

    def generate_latest(self) -> bytes:
        """Current registry contents in the text exposition format."""
        return generate_latest(self.registry)
