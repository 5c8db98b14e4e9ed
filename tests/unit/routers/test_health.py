"""Health endpoint tests."""

from __future__ import annotations

import pytest

from tests.unit.routers.conftest import create_offer, setup_open_task, setup_task_in_progress


@pytest.mark.unit
async def test_health_returns_ok_with_correct_schema(client):
    """GET /health needs no token and zero-fills every task status."""
    response = await client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ok"
    assert isinstance(data["uptime_seconds"], (int, float))
    assert data["started_at"].endswith("Z")
    assert data["total_tasks"] == 0
    assert data["total_offers"] == 0
    assert data["tasks_by_status"] == {
        "open": 0,
        "closed": 0,
        "inProgress": 0,
        "deadlineUpdated": 0,
        "completed": 0,
        "cancelled": 0,
        "conflict": 0,
    }


@pytest.mark.unit
async def test_health_counts_reflect_actual_data(client, alice_token, bob_token, carol_token):
    await setup_task_in_progress(client, alice_token, bob_token)
    open_task = await setup_open_task(client, alice_token)
    await create_offer(client, carol_token, open_task)

    data = (await client.get("/health")).json()
    assert data["total_tasks"] == 2
    assert data["total_offers"] == 2
    assert data["tasks_by_status"]["open"] == 1
    assert data["tasks_by_status"]["inProgress"] == 1


@pytest.mark.unit
async def test_health_rejects_post(client):
    response = await client.post("/health")
    assert response.status_code == 405
    assert response.json()["error"] == "METHOD_NOT_ALLOWED"
