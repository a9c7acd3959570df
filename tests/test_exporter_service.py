"""Tests for the exporter service."""

import asyncio
import socket
import sys

import pytest
from aiohttp import test_utils

from lan_inventory.config import ExporterConfig
from lan_inventory.exporter_service import ExporterService, load_config, main, parse_args
from lan_inventory.metrics import CONNECTED_DEVICES

from conftest import RecordingProber, ScriptedNeighborSource


TABLE = "johns-iphone (192.168.1.10) at ac:bc:32:11:22:33 on en0 ifscope [ethernet]\n"


@pytest.fixture
def exporter_config(rules_file):
    """Config with fast loops and an ephemeral port."""
    config = ExporterConfig()
    config.subnet = "192.168.1."
    config.rules_path = rules_file
    config.scan_interval_seconds = 0.05
    config.sample_interval_seconds = 0.05
    config.settle_seconds = 0
    config.listen_host = "127.0.0.1"
    config.listen_port = 0
    return config


@pytest.fixture
def service(exporter_config):
    return ExporterService(
        exporter_config,
        prober=RecordingProber(),
        neighbor_source=ScriptedNeighborSource(TABLE),
    )


class TestMetricsEndpoint:
    """Tests for GET /metrics."""

    @pytest.mark.asyncio
    async def test_metrics_exposition(self, service):
        """Should return the registry in Prometheus text format."""
        service.registry.set_labeled_gauge(
            CONNECTED_DEVICES, "192.168.1.10", "ac:bc:32:11:22:33", "johns-iphone", "apple",
            value=1,
        )

        async with test_utils.TestClient(test_utils.TestServer(service.build_app())) as client:
            resp = await client.get("/metrics")
            body = await resp.text()

        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("text/plain")
        assert "host_cpu_usage_percent" in body
        assert 'device_type="apple"' in body

    @pytest.mark.asyncio
    async def test_no_other_routes(self, service):
        """Only the metrics route exists."""
        async with test_utils.TestClient(test_utils.TestServer(service.build_app())) as client:
            assert (await client.get("/")).status == 404
            assert (await client.get("/api/health")).status == 404
            assert (await client.post("/metrics")).status == 405

    @pytest.mark.asyncio
    async def test_custom_metrics_path(self, exporter_config):
        """The route follows the configured metrics path."""
        exporter_config.metrics_path = "/prom"
        service = ExporterService(exporter_config, prober=RecordingProber(),
                                  neighbor_source=ScriptedNeighborSource(TABLE))

        async with test_utils.TestClient(test_utils.TestServer(service.build_app())) as client:
            assert (await client.get("/prom")).status == 200
            assert (await client.get("/metrics")).status == 404


class TestLifecycle:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_start_runs_both_loops(self, service):
        """Starting should run discovery and sampling until stopped."""
        task = asyncio.create_task(service.start())

        for _ in range(200):
            if service.coordinator.cycles_completed and service.sampler.last_sample:
                break
            await asyncio.sleep(0.01)

        await service.stop()
        await asyncio.wait_for(task, timeout=2)

        assert service.coordinator.cycles_completed >= 1
        assert service.sampler.last_sample is not None
        assert len(service.coordinator.prober.probed) >= 254
        assert service.coordinator.last_records[0].device_type == "apple"

    @pytest.mark.asyncio
    async def test_bind_failure_raises(self, exporter_config):
        """An occupied port should surface as OSError from start()."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            exporter_config.listen_port = sock.getsockname()[1]

            service = ExporterService(exporter_config, prober=RecordingProber(),
                                      neighbor_source=ScriptedNeighborSource(TABLE))

            with pytest.raises(OSError):
                await service.start()

        assert service.coordinator.cycles_completed == 0


class TestMain:
    """Tests for the console entry point."""

    def test_invalid_config_exits(self, monkeypatch):
        """Config errors should exit with status 1."""
        monkeypatch.setenv("SUBNET", "10.0.0.0/8")
        monkeypatch.setattr(sys, "argv", ["lan-inventory-exporter"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1

    def test_bind_failure_exits(self, monkeypatch, rules_file):
        """Failing to bind the metrics port is fatal."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            port = sock.getsockname()[1]

            monkeypatch.setenv("RULES_PATH", str(rules_file))
            monkeypatch.setattr(
                sys, "argv",
                ["lan-inventory-exporter", "--host", "127.0.0.1", "--port", str(port)],
            )

            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 1

    @pytest.mark.parametrize("content", ["- 1\n- 2\n", "listen: [9100]\n", "discovery: {interval: x}\n"])
    def test_malformed_config_file_exits(self, tmp_path, content):
        """A config file of the wrong shape exits 1 instead of crashing."""
        path = tmp_path / "exporter.yaml"
        path.write_text(content)

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(path)])

        assert exc_info.value.code == 1

    def test_invalid_yaml_config_exits(self, tmp_path):
        """Unparseable YAML exits 1."""
        path = tmp_path / "exporter.yaml"
        path.write_text("listen: [unclosed\n")

        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(path)])

        assert exc_info.value.code == 1

    def test_port_zero_exits(self, monkeypatch):
        """An explicit --port 0 is applied and then rejected by validation."""
        monkeypatch.delenv("SUBNET", raising=False)

        with pytest.raises(SystemExit) as exc_info:
            main(["--port", "0"])

        assert exc_info.value.code == 1


class TestLoadConfig:
    """Tests for CLI overrides on top of the loaded config."""

    def test_no_overrides(self, monkeypatch):
        """Without flags the loaded values are kept."""
        monkeypatch.setenv("LISTEN_PORT", "9100")

        config = load_config(parse_args([]))

        assert config.listen_port == 9100
        assert config.listen_host == "0.0.0.0"

    def test_port_zero_override(self, monkeypatch):
        """--port 0 must override, not be treated as unset."""
        monkeypatch.setenv("LISTEN_PORT", "9100")

        config = load_config(parse_args(["--port", "0"]))

        assert config.listen_port == 0
        assert "Invalid listen port: 0" in config.validate()

    def test_empty_host_override(self, tmp_path):
        """--host '' should override the file's host."""
        path = tmp_path / "exporter.yaml"
        path.write_text("listen:\n  host: 10.0.0.5\n  port: 9300\n")

        config = load_config(parse_args(["--config", str(path), "--host", ""]))

        assert config.listen_host == ""
        assert config.listen_port == 9300

    def test_log_level_override(self, monkeypatch):
        """--log-level wins over LOG_LEVEL."""
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        assert load_config(parse_args(["--log-level", "ERROR"])).log_level == "ERROR"
