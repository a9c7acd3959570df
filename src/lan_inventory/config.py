"""
Exporter configuration.

Loaded once at startup from environment variables or a YAML file. The
device-type rule file is NOT part of this configuration: it is re-read by
the classifier on every device so rule edits apply on the next cycle.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from ._types import SubnetRange

logger = logging.getLogger(__name__)


def parse_interface_addresses(output: str) -> list[str]:
    """
    Extract non-loopback IPv4 interface addresses from `ip -4 -o addr show`.

    Format: "2: eth0    inet 192.168.88.241/24 brd 192.168.88.255 scope global eth0"
    """
    addresses = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 4 or parts[1] == "lo" or parts[2] != "inet":
            continue
        try:
            interface = ipaddress.IPv4Interface(parts[3])
        except ValueError:
            continue
        if not interface.ip.is_loopback:
            addresses.append(str(interface.ip))
    return addresses


def detect_local_subnet() -> Optional[str]:
    """
    Auto-detect the /24 base prefix of the first non-loopback interface.

    Returns e.g. "192.168.1." or None if nothing usable was found.
    """
    try:
        result = subprocess.run(
            ["ip", "-4", "-o", "addr", "show"],
            capture_output=True, text=True, timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.warning(f"Could not auto-detect local subnet: {e}")
        return None

    if result.returncode == 0:
        addresses = parse_interface_addresses(result.stdout)
        if addresses:
            prefix = addresses[0].rsplit(".", 1)[0] + "."
            logger.info(f"Auto-detected local subnet: {prefix}0/24")
            return prefix

    logger.warning("Could not auto-detect local subnet")
    return None


@dataclass
class ExporterConfig:
    """LAN inventory exporter configuration."""

    # "192.168.1.", "192.168.1.0/24" or "auto"
    subnet: str = "192.168.1."

    # Device type rules (re-read every classification)
    rules_path: Path = field(default_factory=lambda: Path("config.yaml"))

    # Loop cadence
    scan_interval_seconds: float = 30.0
    sample_interval_seconds: float = 5.0

    # Sweep behaviour
    probe_timeout_seconds: float = 1.0
    settle_seconds: float = 1.0
    max_concurrent_probes: int = 254

    # Exposition endpoint
    listen_host: str = "0.0.0.0"
    listen_port: int = 2112
    metrics_path: str = "/metrics"

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ExporterConfig":
        """Load configuration from environment variables."""
        config = cls()

        config.subnet = os.getenv("SUBNET", config.subnet)
        if rules_path := os.getenv("RULES_PATH"):
            config.rules_path = Path(rules_path)

        config.scan_interval_seconds = float(os.getenv("SCAN_INTERVAL", "30"))
        config.sample_interval_seconds = float(os.getenv("SAMPLE_INTERVAL", "5"))
        config.probe_timeout_seconds = float(os.getenv("PROBE_TIMEOUT", "1"))
        config.settle_seconds = float(os.getenv("SETTLE_SECONDS", "1"))
        config.max_concurrent_probes = int(os.getenv("MAX_CONCURRENT_PROBES", "254"))

        config.listen_host = os.getenv("LISTEN_HOST", "0.0.0.0")
        config.listen_port = int(os.getenv("LISTEN_PORT", "2112"))

        config.log_level = os.getenv("LOG_LEVEL", "INFO")

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "ExporterConfig":
        """
        Load configuration from YAML file.

        Raises:
            ValueError: document or one of its sections is not a mapping
        """
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")

        config = cls()

        if "subnet" in data:
            config.subnet = str(data["subnet"])
        if "rules_path" in data:
            config.rules_path = Path(data["rules_path"])

        d = _section(data, "discovery")
        config.scan_interval_seconds = float(d.get("interval", 30))
        config.probe_timeout_seconds = float(d.get("probe_timeout", 1))
        config.settle_seconds = float(d.get("settle", 1))
        config.max_concurrent_probes = int(d.get("max_concurrent_probes", 254))

        config.sample_interval_seconds = float(_section(data, "sampler").get("interval", 5))

        listen = _section(data, "listen")
        config.listen_host = listen.get("host", "0.0.0.0")
        config.listen_port = int(listen.get("port", 2112))
        config.metrics_path = listen.get("path", "/metrics")

        config.log_level = str(data.get("log_level") or "INFO")

        return config

    def subnet_range(self) -> SubnetRange:
        """
        Resolve the configured subnet to a sweep range.

        Raises:
            ValueError: subnet is invalid or could not be auto-detected
        """
        value = self.subnet
        if value.strip().lower() == "auto":
            detected = detect_local_subnet()
            if detected is None:
                raise ValueError("Subnet auto-detection found no usable interface")
            value = detected
        return SubnetRange.parse(value)

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors = []

        if self.subnet.strip().lower() != "auto":
            try:
                SubnetRange.parse(self.subnet)
            except ValueError as e:
                errors.append(f"Invalid subnet {self.subnet!r}: {e}")

        if self.scan_interval_seconds <= 0:
            errors.append(f"Invalid scan interval: {self.scan_interval_seconds}")
        if self.sample_interval_seconds <= 0:
            errors.append(f"Invalid sample interval: {self.sample_interval_seconds}")
        if self.probe_timeout_seconds <= 0:
            errors.append(f"Invalid probe timeout: {self.probe_timeout_seconds}")
        if self.settle_seconds < 0:
            errors.append(f"Invalid settle delay: {self.settle_seconds}")
        if self.max_concurrent_probes < 1:
            errors.append(f"Invalid probe concurrency: {self.max_concurrent_probes}")

        if not 0 < self.listen_port < 65536:
            errors.append(f"Invalid listen port: {self.listen_port}")
        if not self.metrics_path.startswith("/"):
            errors.append(f"Metrics path must start with '/': {self.metrics_path}")

        return errors


def _section(data: dict, key: str) -> dict:
    """Nested section of the config document; an empty `key:` is {}."""
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{key}' section must be a mapping, got {type(section).__name__}")
    return section


# Example exporter.yaml:
"""
subnet: "192.168.1.0/24"   # or "auto"
rules_path: "/etc/lan-inventory/config.yaml"

discovery:
  interval: 30
  probe_timeout: 1
  settle: 1
  max_concurrent_probes: 254

sampler:
  interval: 5

listen:
  host: "0.0.0.0"
  port: 2112
  path: "/metrics"

log_level: "INFO"
"""
