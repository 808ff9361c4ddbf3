from __future__ import annotations

from fastapi.testclient import TestClient


def test_health(client: TestClient):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_request_id_is_echoed(client: TestClient):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 200
    assert r.headers.get("X-Request-ID") == "req-123"


def test_no_unauthenticated_seed_route(client: TestClient):
    r = client.post("/admin/dev/seed", json={})
    assert r.status_code == 404
