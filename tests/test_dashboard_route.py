"""
tests/test_dashboard_route.py -- Integration tests for GET /api/v1/dashboard.

Covers:
  - empty organization returns zeroed sections
  - ticket counts, SLA breaches and recent list follow the clock
  - IPAM and asset sections are scoped to the organization
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

# Same instant the api_client clock starts at.
FROZEN_NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def _org(client, name: str) -> int:
    resp = client.post("/api/v1/organizations", json={"name": name})
    assert resp.status_code == 201
    return resp.json()["id"]


def _ticket(client, org_id: int, priority: str, category: str = "network") -> dict:
    resp = client.post(
        "/api/v1/tickets",
        json={
            "title": f"{priority} issue",
            "description": "details",
            "category": category,
            "priority": priority,
            "submitter_email": "alice@example.com",
            "organization_id": org_id,
        },
    )
    assert resp.status_code == 201
    return resp.json()


def test_empty_organization(clock_reset, api_client):
    client, _ = api_client
    org_id = _org(client, "Dash Empty")
    data = client.get("/api/v1/dashboard", params={"organization_id": org_id}).json()
    assert data["tickets"]["total"] == 0
    assert data["tickets"]["recent"] == []
    assert data["ipam"]["total_subnets"] == 0
    assert data["ipam"]["utilization_percent"] == 0
    assert data["assets"]["total"] == 0
    assert data["assets"]["total_value"] == 0


def test_ticket_section_tracks_breaches(clock_reset, api_client):
    client, clock = api_client
    org_id = _org(client, "Dash Tickets")
    critical = _ticket(client, org_id, "critical", "malware")
    _ticket(client, org_id, "low")
    resolved = _ticket(client, org_id, "critical")
    client.patch(f"/api/v1/tickets/{resolved['id']}/status", json={"status": "resolved"})

    clock.advance(hours=2)
    data = client.get("/api/v1/dashboard", params={"organization_id": org_id}).json()
    tickets = data["tickets"]
    assert tickets["total"] == 3
    assert tickets["open"] == 2
    assert tickets["resolved"] == 1
    assert tickets["sla_breaches"] == 1
    assert tickets["by_priority"] == {"critical": 2, "low": 1}
    assert tickets["by_category"]["malware"] == 1
    breached = [t for t in tickets["recent"] if t["id"] == critical["id"]]
    assert breached[0]["sla_state"] == "breached"
    assert data["generated_at"].startswith("2025-03-03T11:00")


def test_ipam_and_assets_scoped(clock_reset, api_client):
    client, _ = api_client
    org_id = _org(client, "Dash Infra")
    other_id = _org(client, "Dash Other")

    subnet = client.post(
        "/api/v1/subnets",
        json={"network": "172.16.0.0", "prefix_length": 30, "gateway": "172.16.0.1", "organization_id": org_id},
    ).json()
    client.post(f"/api/v1/subnets/{subnet['id']}/addresses", json={"address": "172.16.0.1", "device_type": "router"})
    client.post(
        "/api/v1/subnets",
        json={"network": "172.17.0.0", "prefix_length": 24, "gateway": "172.17.0.1", "organization_id": other_id},
    )

    expiring = (FROZEN_NOW + timedelta(days=10)).date().isoformat()
    client.post(
        "/api/v1/assets",
        json={
            "asset_tag": "DASH-1",
            "name": "Edge router",
            "category": "network",
            "organization_id": org_id,
            "warranty_expiry": expiring,
            "current_value": 300.0,
        },
    )
    client.post("/api/v1/assets", json={"asset_tag": "DASH-2", "name": "Other", "organization_id": other_id})

    data = client.get("/api/v1/dashboard", params={"organization_id": org_id}).json()
    assert data["ipam"]["total_subnets"] == 1
    assert data["ipam"]["utilization_percent"] == 50
    assert data["ipam"]["devices_by_type"] == {"router": 1}
    assert data["assets"]["total"] == 1
    assert data["assets"]["total_value"] == 300.0
    assert [a["asset_tag"] for a in data["assets"]["warranty_expiring"]] == ["DASH-1"]
