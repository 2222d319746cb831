"""Tests for FleetSettings and hosts-file loading."""

import json

import pytest
from pydantic import ValidationError

from candlefleet.adapters.config import settings as settings_module
from candlefleet.adapters.config.settings import FleetSettings, HostSettings, load_hosts_file
from candlefleet.domain.models import HostSpec

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("HOSTS", "HTTP_TIMEOUT_S", "MAX_RETRIES", "IMPORT_PADDING_S", "LOG_LEVEL", "JSON_LOGS"):
        monkeypatch.delenv(f"CANDLEFLEET_{key}", raising=False)


class TestFleetSettings:
    def test_defaults(self) -> None:
        s = FleetSettings(_env_file=None)
        assert s.hosts == []
        assert s.import_padding_s == 86_400
        assert s.max_retries == 3
        assert s.log_level == "INFO"
        assert s.json_logs is False

    def test_reads_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("CANDLEFLEET_HOSTS", '[{"address": "10.0.0.1", "threads": 12}, {"address": "10.0.0.2"}]')
        monkeypatch.setenv("CANDLEFLEET_LOG_LEVEL", "debug")
        monkeypatch.setenv("CANDLEFLEET_JSON_LOGS", "true")
        s = FleetSettings(_env_file=None)
        assert s.host_specs() == [
            HostSpec(address="10.0.0.1", port=3000, threads=12),
            HostSpec(address="10.0.0.2", port=3000, threads=1),
        ]
        assert s.log_level == "DEBUG"
        assert s.json_logs is True

    def test_rejects_bad_values(self, monkeypatch) -> None:
        monkeypatch.setenv("CANDLEFLEET_MAX_RETRIES", "0")
        with pytest.raises(ValidationError):
            FleetSettings(_env_file=None)

    def test_reload_replaces_singleton(self, monkeypatch) -> None:
        monkeypatch.setenv("CANDLEFLEET_IMPORT_PADDING_S", "60")
        fresh = settings_module.reload_settings()
        assert fresh.import_padding_s == 60
        assert settings_module.get_settings() is fresh
        monkeypatch.delenv("CANDLEFLEET_IMPORT_PADDING_S")
        settings_module.reload_settings()


class TestHostSettings:
    def test_rejects_negative_threads(self) -> None:
        with pytest.raises(ValidationError):
            HostSettings(address="h", threads=-1)

    def test_rejects_bad_port(self) -> None:
        with pytest.raises(ValidationError):
            HostSettings(address="h", port=70000)

    def test_rejects_empty_address(self) -> None:
        with pytest.raises(ValidationError):
            HostSettings(address="")


class TestLoadHostsFile:
    def test_keeps_priority_order(self, tmp_path) -> None:
        path = tmp_path / "hosts.json"
        path.write_text(json.dumps([
            {"address": "192.168.1.10", "threads": 12},
            {"address": "192.168.1.11", "port": 3001, "threads": 4},
        ]))
        hosts = load_hosts_file(path)
        assert [h.to_spec() for h in hosts] == [
            HostSpec(address="192.168.1.10", port=3000, threads=12),
            HostSpec(address="192.168.1.11", port=3001, threads=4),
        ]

    def test_invalid_entry(self, tmp_path) -> None:
        path = tmp_path / "hosts.json"
        path.write_text(json.dumps([{"port": 3000}]))
        with pytest.raises(ValidationError):
            load_hosts_file(path)
