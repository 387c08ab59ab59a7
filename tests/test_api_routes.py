"""
tests/test_api_routes.py -- Integration tests for the v1 organization, ticket, IPAM and asset routes.

These tests exercise the full stack: FastAPI routing -> dependency injection
-> HelpdeskStore/CMDBStore operations -> core validation -> response model
serialization -> the uniform error envelope. Unit testing individual route
functions would miss the exception handlers and response model validation.

Coverage:
  - Organizations: create 201, duplicate 409, 404 envelope, SLA policy get/put/clear
  - Tickets: create with SLA view, tenant policy, breach after the clock moves,
    priority change restarts the clock, status/assignee/notes/activity/delete,
    list filters and sort, CSV export
  - IPAM: subnet create/validation errors, overlap 409, allocation error codes,
    duplicate 409, PATCH re-validation, delete-in-use 409, next-available, overview
  - Assets: create 201, duplicate tag 409, email check, patch, filter, delete

Fixtures used (from conftest.py):
  - api_client: (client, clock) -- TestClient over private in-memory stores
  - clock_reset: the shared FrozenClock, reset to FROZEN_NOW around the test
"""

from __future__ import annotations

import csv
import io
import re
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

# Same instant the api_client clock starts at.
FROZEN_NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def _ts(value: str) -> datetime:
    """Parse an API timestamp; pydantic writes UTC as a trailing Z."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _error(resp) -> dict:
    body = resp.json()
    assert set(body) == {"error"}, body
    return body["error"]


def _new_org(client: TestClient, name: str, **extra) -> dict:
    resp = client.post("/api/v1/organizations", json={"name": name, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _new_ticket(client: TestClient, priority: str = "high", **extra) -> dict:
    body = {
        "title": "Printer offline on 2F",
        "description": "Nothing prints since this morning.",
        "category": "hardware",
        "priority": priority,
        "submitter_email": "alice@example.com",
        **extra,
    }
    resp = client.post("/api/v1/tickets", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _new_subnet(client: TestClient, network: str, prefix: int = 24, **extra) -> dict:
    gateway = extra.pop("gateway", network.rsplit(".", 1)[0] + ".1")
    resp = client.post(
        "/api/v1/subnets", json={"network": network, "prefix_length": prefix, "gateway": gateway, **extra}
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------


class TestOrganizationRoutes:
    def test_create_and_get(self, api_client: tuple[TestClient, object]) -> None:
        client, _clock = api_client
        org = _new_org(client, "Org Create", domain="create.example.com", departments=["IT"])
        assert org["sla_hours"] is None
        assert org["departments"] == ["IT"]
        resp = client.get(f"/api/v1/organizations/{org['id']}")
        assert resp.status_code == 200
        assert resp.json()["name"] == "Org Create"

    def test_duplicate_name_is_409(self, api_client) -> None:
        client, _ = api_client
        _new_org(client, "Org Dup")
        resp = client.post("/api/v1/organizations", json={"name": "Org Dup"})
        assert resp.status_code == 409
        assert _error(resp)["code"] == "organization_exists"

    def test_missing_is_404_envelope(self, api_client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/organizations/999999")
        assert resp.status_code == 404
        err = _error(resp)
        assert err["code"] == "organization_not_found"
        assert "999999" in err["message"]

    def test_sla_policy_default_override_and_clear(self, api_client) -> None:
        client, _ = api_client
        org = _new_org(client, "Org Policy")
        url = f"/api/v1/organizations/{org['id']}/sla-policy"

        default = client.get(url).json()
        assert default == {
            "organization_id": org["id"],
            "hours": {"critical": 1, "high": 4, "medium": 24, "low": 72},
            "is_default": True,
        }

        custom = {"critical": 2, "high": 8, "medium": 48, "low": 120}
        resp = client.put(url, json={"hours": custom, "actor_email": "lead@example.com"})
        assert resp.status_code == 200
        assert resp.json()["hours"] == custom
        assert client.get(url).json()["is_default"] is False

        resp = client.put(url, json={"hours": None})
        assert resp.json()["is_default"] is True
        assert client.get(url).json()["hours"]["critical"] == 1

    def test_incomplete_policy_is_422(self, api_client) -> None:
        client, _ = api_client
        org = _new_org(client, "Org Partial")
        resp = client.put(f"/api/v1/organizations/{org['id']}/sla-policy", json={"hours": {"critical": 2}})
        assert resp.status_code == 422
        err = _error(resp)
        assert err["code"] == "incomplete_policy"
        assert err["detail"] == "policy"

    def test_create_with_incomplete_policy_is_422(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/organizations", json={"name": "Org Bad", "sla_hours": {"low": 0}})
        assert resp.status_code == 422

    def test_policy_for_unknown_org(self, api_client) -> None:
        client, _ = api_client
        hours = {"critical": 1, "high": 4, "medium": 24, "low": 72}
        assert client.put("/api/v1/organizations/999999/sla-policy", json={"hours": hours}).status_code == 404
        assert client.get("/api/v1/organizations/999999/sla-policy").status_code == 404


# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------


class TestTicketRoutes:
    def test_create_returns_sla_view(self, clock_reset, api_client) -> None:
        client, _ = api_client
        ticket = _new_ticket(client, "high")
        assert re.fullmatch(r"TKT-2025-[A-Z0-9]{6}", ticket["ticket_number"])
        assert _ts(ticket["created_at"]) == FROZEN_NOW
        assert _ts(ticket["sla_deadline"]) == FROZEN_NOW + timedelta(hours=4)
        assert ticket["sla_state"] == "warning"
        assert ticket["time_remaining"] == {"is_overdue": False, "hours": 4, "minutes": 0}
        assert ticket["sla_text"] == "4h 0m remaining"

    def test_low_priority_is_ok(self, clock_reset, api_client) -> None:
        client, _ = api_client
        ticket = _new_ticket(client, "low")
        assert ticket["sla_state"] == "ok"
        assert ticket["time_remaining"]["hours"] == 72

    def test_tenant_policy_applies(self, clock_reset, api_client) -> None:
        client, _ = api_client
        org = _new_org(client, "Org Tickets", sla_hours={"critical": 2, "high": 8, "medium": 48, "low": 120})
        ticket = _new_ticket(client, "medium", organization_id=org["id"])
        assert _ts(ticket["sla_deadline"]) == FROZEN_NOW + timedelta(hours=48)

    def test_unknown_org_is_404(self, api_client) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/tickets",
            json={
                "title": "x",
                "description": "y",
                "category": "email",
                "priority": "low",
                "submitter_email": "alice@example.com",
                "organization_id": 999999,
            },
        )
        assert resp.status_code == 404
        assert _error(resp)["code"] == "organization_not_found"

    def test_bad_submitter_is_422(self, api_client) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/tickets",
            json={
                "title": "x",
                "description": "y",
                "category": "email",
                "priority": "low",
                "submitter_email": "alice",
            },
        )
        assert resp.status_code == 422
        err = _error(resp)
        assert err["code"] == "malformed_email"
        assert err["detail"] == "submitter_email"

    def test_unknown_priority_is_validation_error(self, api_client) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/tickets",
            json={
                "title": "x",
                "description": "y",
                "category": "email",
                "priority": "urgent",
                "submitter_email": "alice@example.com",
            },
        )
        assert resp.status_code == 422
        assert _error(resp)["code"] == "validation_error"

    def test_breach_then_resolve(self, clock_reset, api_client) -> None:
        client, _ = api_client
        ticket = _new_ticket(client, "critical")
        clock_reset.advance(hours=2)

        detail = client.get(f"/api/v1/tickets/{ticket['id']}").json()
        assert detail["sla_state"] == "breached"
        assert detail["time_remaining"] == {"is_overdue": True, "hours": 1, "minutes": 0}
        assert detail["sla_text"] == "Overdue by 1h 0m"

        resp = client.patch(f"/api/v1/tickets/{ticket['id']}/status", json={"status": "resolved"})
        assert resp.status_code == 200
        resolved = resp.json()
        assert resolved["sla_state"] == "ok"
        assert _ts(resolved["resolved_at"]) == FROZEN_NOW + timedelta(hours=2)

    def test_priority_change_restarts_clock(self, clock_reset, api_client) -> None:
        client, _ = api_client
        ticket = _new_ticket(client, "low")
        clock_reset.advance(hours=5)
        resp = client.patch(
            f"/api/v1/tickets/{ticket['id']}/priority",
            json={"priority": "critical", "actor_email": "lead@example.com"},
        )
        assert resp.status_code == 200
        updated = resp.json()
        assert updated["priority"] == "critical"
        assert _ts(updated["sla_deadline"]) == FROZEN_NOW + timedelta(hours=6)
        assert _ts(updated["created_at"]) == FROZEN_NOW

    def test_assign_and_unassign(self, api_client) -> None:
        client, _ = api_client
        ticket = _new_ticket(client)
        url = f"/api/v1/tickets/{ticket['id']}/assignee"
        assert client.patch(url, json={"assigned_to_email": "bob@example.com"}).json()["assigned_to_email"] == (
            "bob@example.com"
        )
        assert client.patch(url, json={"assigned_to_email": None}).json()["assigned_to_email"] is None
        resp = client.patch(url, json={"assigned_to_email": "bob@"})
        assert resp.status_code == 422
        assert _error(resp)["code"] == "malformed_email"

    def test_notes_and_activity(self, api_client) -> None:
        client, _ = api_client
        ticket = _new_ticket(client)
        url = f"/api/v1/tickets/{ticket['id']}/notes"
        resp = client.post(url, json={"content": "Replaced toner.", "author_email": "bob@example.com"})
        assert resp.status_code == 201
        client.post(url, json={"content": "Vendor RMA open.", "author_email": "bob@example.com", "is_internal": True})

        assert len(client.get(url).json()) == 2
        public = client.get(url, params={"include_internal": "false"}).json()
        assert [n["content"] for n in public] == ["Replaced toner."]

        actions = [a["action"] for a in client.get(f"/api/v1/tickets/{ticket['id']}/activity").json()]
        assert actions == ["CREATE", "ADD_COMMENT", "ADD_INTERNAL_NOTE"]

    def test_delete_keeps_activity(self, api_client) -> None:
        client, _ = api_client
        ticket = _new_ticket(client)
        resp = client.delete(f"/api/v1/tickets/{ticket['id']}", params={"actor_email": "lead@example.com"})
        assert resp.status_code == 204
        assert client.get(f"/api/v1/tickets/{ticket['id']}").status_code == 404
        assert client.delete(f"/api/v1/tickets/{ticket['id']}").status_code == 404
        trail = client.get(f"/api/v1/tickets/{ticket['id']}/activity").json()
        assert trail[-1]["action"] == "DELETE"
        assert trail[-1]["actor_email"] == "lead@example.com"

    def test_missing_ticket_routes_404(self, api_client) -> None:
        client, _ = api_client
        assert _error(client.get("/api/v1/tickets/999999"))["code"] == "ticket_not_found"
        assert client.patch("/api/v1/tickets/999999/status", json={"status": "closed"}).status_code == 404
        assert client.patch("/api/v1/tickets/999999/priority", json={"priority": "low"}).status_code == 404
        assert client.get("/api/v1/tickets/999999/notes").status_code == 404
        assert client.get("/api/v1/tickets/999999/activity").status_code == 404

    def test_list_filter_and_sort(self, clock_reset, api_client) -> None:
        client, _ = api_client
        org = _new_org(client, "Org List")
        for priority in ("low", "critical", "medium"):
            _new_ticket(client, priority, organization_id=org["id"])

        resp = client.get("/api/v1/tickets", params={"organization_id": org["id"], "sort": "priority"})
        assert [t["priority"] for t in resp.json()] == ["critical", "medium", "low"]

        resp = client.get("/api/v1/tickets", params={"organization_id": org["id"], "priority": "low"})
        assert len(resp.json()) == 1

        assert client.get("/api/v1/tickets", params={"sort": "title"}).status_code == 422

    def test_csv_export_is_sanitized(self, clock_reset, api_client) -> None:
        client, _ = api_client
        org = _new_org(client, "Org Export")
        _new_ticket(client, "low", organization_id=org["id"], title='=HYPERLINK("http://evil")')

        resp = client.get("/api/v1/tickets/export.csv", params={"organization_id": org["id"]})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "attachment" in resp.headers["content-disposition"]

        rows = list(csv.reader(io.StringIO(resp.text)))
        assert rows[0][0] == "ticket_number"
        assert len(rows) == 2
        assert rows[1][1] == '\t=HYPERLINK("http://evil")'
        assert rows[1][rows[0].index("sla_state")] == "ok"


# ---------------------------------------------------------------------------
# IPAM
# ---------------------------------------------------------------------------


class TestSubnetRoutes:
    def test_create_with_stats(self, api_client) -> None:
        client, _ = api_client
        subnet = _new_subnet(client, "10.10.0.0", name="Branch", vlan_id=10)
        assert subnet["cidr"] == "10.10.0.0/24"
        assert subnet["stats"] == {
            "total_addresses": 254,
            "used_addresses": 0,
            "available_addresses": 254,
            "utilization_percent": 0,
        }
        assert client.get(f"/api/v1/subnets/{subnet['id']}").json()["name"] == "Branch"

    def test_validation_error_codes(self, api_client) -> None:
        client, _ = api_client
        cases = [
            ({"network": "10.11.0.5", "prefix_length": 24, "gateway": "10.11.0.1"}, "invalid_subnet", "network"),
            ({"network": "10.11.0.0", "prefix_length": 31, "gateway": "10.11.0.1"}, "invalid_prefix_length", "prefix_length"),
            ({"network": "10.11.0", "prefix_length": 24, "gateway": "10.11.0.1"}, "malformed_address", "network"),
            ({"network": "10.11.0.0", "prefix_length": 24, "gateway": "10.11.1.1"}, "invalid_subnet", "gateway"),
        ]
        for body, code, field in cases:
            resp = client.post("/api/v1/subnets", json=body)
            assert resp.status_code == 422, body
            err = _error(resp)
            assert (err["code"], err["detail"]) == (code, field)

    def test_overlap_is_409(self, api_client) -> None:
        client, _ = api_client
        _new_subnet(client, "10.12.0.0", 16)
        resp = client.post("/api/v1/subnets", json={"network": "10.12.5.0", "prefix_length": 24, "gateway": "10.12.5.1"})
        assert resp.status_code == 409
        assert _error(resp)["code"] == "overlapping_subnet"

    def test_unknown_org_is_404(self, api_client) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/subnets",
            json={"network": "10.13.0.0", "prefix_length": 24, "gateway": "10.13.0.1", "organization_id": 999999},
        )
        assert resp.status_code == 404

    def test_patch_descriptive_fields(self, api_client) -> None:
        client, _ = api_client
        subnet = _new_subnet(client, "10.14.0.0", vlan_id=14)
        resp = client.patch(f"/api/v1/subnets/{subnet['id']}", json={"name": "Lab", "status": "deprecated"})
        assert resp.status_code == 200
        assert (resp.json()["name"], resp.json()["status"], resp.json()["vlan_id"]) == ("Lab", "deprecated", 14)
        resp = client.patch(f"/api/v1/subnets/{subnet['id']}", json={"vlan_id": None, "name": None})
        assert (resp.json()["vlan_id"], resp.json()["name"]) == (None, "Lab")
        assert client.patch("/api/v1/subnets/999999", json={"name": "x"}).status_code == 404

    def test_delete_refused_while_in_use(self, api_client) -> None:
        client, _ = api_client
        subnet = _new_subnet(client, "10.15.0.0")
        alloc = client.post(f"/api/v1/subnets/{subnet['id']}/addresses", json={"address": "10.15.0.10"}).json()

        resp = client.delete(f"/api/v1/subnets/{subnet['id']}")
        assert resp.status_code == 409
        assert _error(resp)["code"] == "subnet_in_use"

        assert client.delete(f"/api/v1/addresses/{alloc['id']}").status_code == 204
        assert client.delete(f"/api/v1/subnets/{subnet['id']}").status_code == 204
        assert client.get(f"/api/v1/subnets/{subnet['id']}").status_code == 404


class TestAllocationRoutes:
    def test_allocate_and_list(self, api_client) -> None:
        client, _ = api_client
        subnet = _new_subnet(client, "10.20.0.0")
        resp = client.post(
            f"/api/v1/subnets/{subnet['id']}/addresses",
            json={"address": "10.20.0.50", "mac_address": "aa-bb-cc-dd-ee-ff", "device_type": "printer"},
        )
        assert resp.status_code == 201
        assert resp.json()["mac_address"] == "AA-BB-CC-DD-EE-FF"
        assert resp.json()["status"] == "allocated"

        listed = client.get(f"/api/v1/subnets/{subnet['id']}/addresses").json()
        assert [a["address"] for a in listed] == ["10.20.0.50"]
        assert client.get(f"/api/v1/subnets/{subnet['id']}").json()["stats"]["used_addresses"] == 1

    def test_error_codes(self, api_client) -> None:
        client, _ = api_client
        subnet = _new_subnet(client, "10.21.0.0")
        url = f"/api/v1/subnets/{subnet['id']}/addresses"
        client.post(url, json={"address": "10.21.0.5"})
        cases = [
            ({"address": "10.21.0.5"}, 409, "duplicate_allocation", "address"),
            ({"address": "10.21.0.0"}, 422, "reserved_address", "address"),
            ({"address": "10.21.0.255"}, 422, "reserved_address", "address"),
            ({"address": "10.22.0.5"}, 422, "address_out_of_range", "address"),
            ({"address": "10.21.0.05"}, 422, "malformed_address", "address"),
            ({"address": "10.21.0.6", "mac_address": "zz:zz"}, 422, "malformed_mac_address", "mac_address"),
            ({"address": "10.21.0.6", "assigned_to_email": "ops"}, 422, "malformed_email", "assigned_to_email"),
        ]
        for body, status, code, field in cases:
            resp = client.post(url, json=body)
            assert resp.status_code == status, body
            err = _error(resp)
            assert (err["code"], err["detail"]) == (code, field)

    def test_unknown_subnet_is_404(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/subnets/999999/addresses", json={"address": "10.0.0.1"})
        assert resp.status_code == 404
        assert _error(resp)["code"] == "subnet_not_found"

    def test_patch_revalidates(self, api_client) -> None:
        client, _ = api_client
        subnet = _new_subnet(client, "10.23.0.0")
        url = f"/api/v1/subnets/{subnet['id']}/addresses"
        first = client.post(url, json={"address": "10.23.0.5", "hostname": "old"}).json()
        second = client.post(url, json={"address": "10.23.0.6"}).json()

        resp = client.patch(f"/api/v1/addresses/{first['id']}", json={"hostname": "web01", "status": "reserved"})
        assert resp.status_code == 200
        assert (resp.json()["hostname"], resp.json()["status"]) == ("web01", "reserved")

        resp = client.patch(f"/api/v1/addresses/{second['id']}", json={"address": "10.23.0.5"})
        assert resp.status_code == 409

        resp = client.patch(f"/api/v1/addresses/{first['id']}", json={"hostname": None, "status": None})
        assert resp.json()["hostname"] is None
        assert resp.json()["status"] == "reserved"

        assert client.patch("/api/v1/addresses/999999", json={"hostname": "x"}).status_code == 404

    def test_next_available(self, api_client) -> None:
        client, _ = api_client
        subnet = _new_subnet(client, "10.24.0.0", 30, gateway="10.24.0.1")
        url = f"/api/v1/subnets/{subnet['id']}"
        assert client.get(f"{url}/next-available").json() == {"subnet_id": subnet["id"], "address": "10.24.0.1"}
        client.post(f"{url}/addresses", json={"address": "10.24.0.1"})
        client.post(f"{url}/addresses", json={"address": "10.24.0.2"})
        assert client.get(f"{url}/next-available").json()["address"] is None
        assert client.get("/api/v1/subnets/999999/next-available").status_code == 404

    def test_conflict_scan_on_clean_subnet(self, api_client) -> None:
        client, _ = api_client
        subnet = _new_subnet(client, "10.25.0.0")
        resp = client.post(f"/api/v1/subnets/{subnet['id']}/conflicts/scan")
        assert resp.status_code == 200
        assert resp.json() == {"subnet_id": subnet["id"], "marked": []}

    def test_overview_by_org(self, api_client) -> None:
        client, _ = api_client
        org = _new_org(client, "Org IPAM")
        subnet = _new_subnet(client, "10.26.0.0", 30, gateway="10.26.0.1", organization_id=org["id"])
        client.post(f"/api/v1/subnets/{subnet['id']}/addresses", json={"address": "10.26.0.2", "device_type": "camera"})

        overview = client.get("/api/v1/ipam/overview", params={"organization_id": org["id"]}).json()
        assert overview["total_subnets"] == 1
        assert overview["total_addresses"] == 2
        assert overview["utilization_percent"] == 50
        assert overview["devices_by_type"] == {"camera": 1}
        assert overview["top_utilized"] == [
            {"subnet_id": subnet["id"], "cidr": "10.26.0.0/30", "name": "", "utilization_percent": 50}
        ]


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class TestAssetRoutes:
    def test_crud(self, api_client) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/assets",
            json={
                "asset_tag": "CAM-0001",
                "name": "Lobby camera",
                "category": "ip_camera",
                "purchase_date": "2024-06-01",
                "current_value": 180.0,
            },
        )
        assert resp.status_code == 201
        asset = resp.json()
        assert asset["purchase_date"] == "2024-06-01"
        assert asset["status"] == "active"

        resp = client.patch(f"/api/v1/assets/{asset['id']}", json={"status": "maintenance", "location": "Lobby"})
        assert (resp.json()["status"], resp.json()["location"]) == ("maintenance", "Lobby")

        listed = client.get("/api/v1/assets", params={"category": "ip_camera"}).json()
        assert asset["id"] in [a["id"] for a in listed]

        assert client.delete(f"/api/v1/assets/{asset['id']}").status_code == 204
        assert _error(client.get(f"/api/v1/assets/{asset['id']}"))["code"] == "asset_not_found"

    def test_duplicate_tag_is_409(self, api_client) -> None:
        client, _ = api_client
        client.post("/api/v1/assets", json={"asset_tag": "SRV-0009", "name": "db"})
        resp = client.post("/api/v1/assets", json={"asset_tag": "SRV-0009", "name": "db2"})
        assert resp.status_code == 409
        assert _error(resp)["code"] == "asset_tag_exists"

    def test_bad_email_is_422(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/assets", json={"asset_tag": "LT-0100", "name": "x", "assigned_to_email": "x@"})
        assert resp.status_code == 422
        assert _error(resp)["code"] == "malformed_email"

    def test_missing_asset(self, api_client) -> None:
        client, _ = api_client
        assert client.patch("/api/v1/assets/999999", json={"name": "x"}).status_code == 404
        assert client.delete("/api/v1/assets/999999").status_code == 404
