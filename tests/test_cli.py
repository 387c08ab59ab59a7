"""Tests for the main.py command line: exit codes, JSON output and color control."""

import json

import pytest

import core.formatter as formatter
from core.config import get_settings
from main import main


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    for name in ("SLA_CRITICAL_HOURS", "SLA_HIGH_HOURS", "SLA_MEDIUM_HOURS", "SLA_LOW_HOURS", "SLA_WARNING_HOURS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("FORCE_COLOR", raising=False)
    monkeypatch.setattr(formatter, "_color_enabled", None)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _json(capsys) -> dict:
    return json.loads(capsys.readouterr().out)


class TestIpCheck:
    def test_valid_address(self, capsys):
        assert main(["ip", "check", "10.0.0.20", "--subnet", "10.0.0.0/24"]) == 0
        out = capsys.readouterr().out
        assert "Allocation check" in out
        assert "10.0.0.20" in out

    def test_json_normalizes_mac(self, capsys):
        code = main(["--json", "ip", "check", "10.0.0.20", "--subnet", "10.0.0.0/24", "--mac", "aa:bb:cc:dd:ee:ff"])
        assert code == 0
        payload = _json(capsys)
        assert payload["valid"] is True
        assert payload["mac_address"] == "AA:BB:CC:DD:EE:FF"
        assert payload["subnet"] == "10.0.0.0/24"

    @pytest.mark.parametrize(
        "address,code",
        [
            ("10.0.0.0", "reserved_address"),
            ("10.0.0.255", "reserved_address"),
            ("10.0.1.5", "address_out_of_range"),
            ("10.0.0.256", "malformed_address"),
        ],
    )
    def test_invalid_address_exits_1(self, capsys, address, code):
        assert main(["--json", "ip", "check", address, "--subnet", "10.0.0.0/24"]) == 1
        assert _json(capsys)["error"]["code"] == code

    def test_bad_email_reports_field(self, capsys):
        assert main(["ip", "check", "10.0.0.9", "--subnet", "10.0.0.0/24", "--email", "ops"]) == 1
        out = capsys.readouterr().out
        assert "malformed_email" in out
        assert "[assigned_to_email]" in out

    def test_cidr_required(self, capsys):
        assert main(["--json", "ip", "check", "10.0.0.9", "--subnet", "10.0.0.0"]) == 1
        assert _json(capsys)["error"]["field"] == "subnet"


class TestSubnetInfo:
    def test_json_payload(self, capsys):
        assert main(["--json", "subnet", "info", "192.168.10.0/26", "--contains", "192.168.10.70"]) == 0
        payload = _json(capsys)
        assert payload["netmask"] == "255.255.255.192"
        assert payload["broadcast"] == "192.168.10.63"
        assert (payload["first_usable"], payload["last_usable"]) == ("192.168.10.1", "192.168.10.62")
        assert payload["usable_addresses"] == 62
        assert payload["contains"] == {"address": "192.168.10.70", "inside": False}

    def test_host_bits_cleared(self, capsys):
        assert main(["--json", "subnet", "info", "10.1.2.3/16"]) == 0
        assert _json(capsys)["cidr"] == "10.1.0.0/16"

    def test_point_to_point_has_no_usable_range(self, capsys):
        assert main(["--json", "subnet", "info", "10.0.0.0/31"]) == 0
        payload = _json(capsys)
        assert payload["usable_addresses"] == 0
        assert payload["first_usable"] is None

    def test_bad_prefix_exits_1(self, capsys):
        assert main(["--json", "subnet", "info", "10.0.0.0/33"]) == 1
        assert _json(capsys)["error"]["code"] == "invalid_prefix_length"


class TestSla:
    def test_deadline(self, capsys):
        assert main(["--json", "sla", "deadline", "HIGH", "--created", "2025-03-03T09:00:00Z"]) == 0
        payload = _json(capsys)
        assert payload["priority"] == "high"
        assert payload["budget_hours"] == 4
        assert payload["sla_deadline"] == "2025-03-03T13:00:00+00:00"

    def test_deadline_uses_env_policy(self, capsys, monkeypatch):
        monkeypatch.setenv("SLA_CRITICAL_HOURS", "2")
        assert main(["--json", "sla", "deadline", "critical", "--created", "2025-03-03T09:00:00"]) == 0
        assert _json(capsys)["sla_deadline"] == "2025-03-03T11:00:00+00:00"

    def test_unknown_priority_exits_1(self, capsys):
        assert main(["--json", "sla", "deadline", "urgent"]) == 1
        assert _json(capsys)["error"]["code"] == "invalid_priority"

    def test_status_breached(self, capsys):
        argv = ["--json", "sla", "status", "2025-03-03T10:00:00Z", "--now", "2025-03-03T11:00:00Z"]
        assert main(argv) == 0
        payload = _json(capsys)
        assert payload["sla_state"] == "breached"
        assert payload["sla_text"] == "Overdue by 1h 0m"

    def test_status_resolved_is_ok(self, capsys):
        argv = ["--json", "sla", "status", "2025-03-03T10:00:00Z", "--now", "2025-03-04T10:00:00Z", "--status", "resolved"]
        assert main(argv) == 0
        assert _json(capsys)["sla_state"] == "ok"

    def test_bad_timestamp_is_usage_error(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["sla", "status", "tomorrow"])
        assert exc_info.value.code == 2


class TestColor:
    def test_forced_color(self, capsys, monkeypatch):
        monkeypatch.setenv("FORCE_COLOR", "1")
        main(["sla", "status", "2025-03-03T10:00:00Z", "--now", "2025-03-03T11:00:00Z"])
        assert "\x1b[" in capsys.readouterr().out

    def test_no_color_flag_wins(self, capsys, monkeypatch):
        monkeypatch.setenv("FORCE_COLOR", "1")
        main(["--no-color", "sla", "status", "2025-03-03T10:00:00Z", "--now", "2025-03-03T11:00:00Z"])
        out = capsys.readouterr().out
        assert "\x1b[" not in out
        assert "BREACHED" in out


def test_missing_command_is_usage_error():
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 2
