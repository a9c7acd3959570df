"""
Host CPU and memory sampling.

Runs on its own cadence, independent of the discovery cycle; the two loops
share nothing but the metrics registry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import psutil

from ._types import ResourceSample
from .metrics import CPU_USAGE, MEMORY_TOTAL, MEMORY_USAGE, MEMORY_USED, MetricsRegistry

logger = logging.getLogger(__name__)


class ResourceSampler:
    """Publishes host CPU/memory gauges every interval seconds."""

    def __init__(self, registry: MetricsRegistry, interval: float = 5.0):
        self.registry = registry
        self.interval = interval
        self.last_sample: Optional[ResourceSample] = None

        # First non-blocking cpu_percent() call always reports 0.0; prime it
        psutil.cpu_percent(interval=None)

    def sample(self) -> ResourceSample:
        """Take one non-blocking sample."""
        memory = psutil.virtual_memory()
        return ResourceSample(
            cpu_percent=psutil.cpu_percent(interval=None),
            memory_used_percent=memory.percent,
            memory_total_bytes=memory.total,
            memory_used_bytes=memory.used,
        )

    def publish(self) -> ResourceSample:
        """Sample and push the values into the registry."""
        sample = self.sample()
        self.registry.set_gauge(CPU_USAGE, sample.cpu_percent)
        self.registry.set_gauge(MEMORY_USAGE, sample.memory_used_percent)
        self.registry.set_gauge(MEMORY_TOTAL, float(sample.memory_total_bytes))
        self.registry.set_gauge(MEMORY_USED, float(sample.memory_used_bytes))
        self.last_sample = sample
        return sample

    async def run_forever(self, shutdown_event: asyncio.Event) -> None:
        """Sample until shutdown_event is set."""
        logger.info(f"Resource sampler started (every {self.interval}s)")

        while not shutdown_event.is_set():
            try:
                self.publish()
            except Exception as e:
                logger.error(f"Error sampling host resources: {e}")

            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Resource sampler stopped")
