# Behavior with Redis switched on: queued contract signers, per-user quotas and event fan-out.
import json
import time

from fastapi.testclient import TestClient

from app import locks
from app.events import EVENTS_CHANNEL, DomainEvent, publish_to_redis

from helpers import PASSWORD, auth_headers, draft_contract, signup

# Long enough that a test never straddles two quota buckets
LONG_WINDOW = "1000000"


def sign(client: TestClient, token: str, contract_id: int):
    return client.post(f"/api/contracts/{contract_id}/sign", headers=auth_headers(token))


def _signatures(client: TestClient, token: str, contract_id: int) -> list:
    r = client.get(f"/api/contracts/{contract_id}", headers=auth_headers(token))
    assert r.status_code == 200, r.text
    return r.json()["contract"]["signatures"]


def test_signer_waits_for_a_lock_held_elsewhere(client: TestClient, fake_redis):
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, _ = signup(client, "guest@example.com", "tenant")
    contract = draft_contract(client, landlord_token, tenant_token)
    key = f"lock:contract:{contract['id']}"

    # Another API process is mid-signature; its lock lapses after 300ms
    fake_redis.set(key, "other-process", px=300)
    started = time.monotonic()
    r = sign(client, tenant_token, contract["id"])

    assert r.status_code == 200, r.text
    assert time.monotonic() - started >= 0.1
    assert fake_redis.get(key) is None
    assert len(_signatures(client, tenant_token, contract["id"])) == 1


def test_signer_gets_429_when_lock_never_frees(client: TestClient, fake_redis, monkeypatch):
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, _ = signup(client, "guest@example.com", "tenant")
    contract = draft_contract(client, landlord_token, tenant_token)
    monkeypatch.setattr(locks, "CONTRACT_LOCK_WAIT_MS", 200)
    fake_redis.set(f"lock:contract:{contract['id']}", "stuck-process", px=60_000)

    r = sign(client, tenant_token, contract["id"])

    assert r.status_code == 429
    assert r.json() == {"error": "Contract is being updated, retry shortly", "retry_after": 1}
    assert r.headers["Retry-After"] == "1"
    assert _signatures(client, tenant_token, contract["id"]) == []


def test_signing_continues_when_redis_goes_down(client: TestClient, fake_redis, redis_server):
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, _ = signup(client, "guest@example.com", "tenant")
    contract = draft_contract(client, landlord_token, tenant_token)

    redis_server.connected = False
    assert sign(client, landlord_token, contract["id"]).status_code == 200
    assert sign(client, tenant_token, contract["id"]).status_code == 200

    r = client.get(f"/api/contracts/{contract['id']}", headers=auth_headers(landlord_token))
    assert r.json()["contract"]["status"] == "signed"


def test_issue_reports_are_limited_per_user(client: TestClient, fake_redis, monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", LONG_WINDOW)
    monkeypatch.setenv("RATE_LIMIT_ISSUE_PER_WINDOW", "2")
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, _ = signup(client, "guest@example.com", "tenant")
    contract = draft_contract(client, landlord_token, tenant_token)
    body = {"contract_id": contract["id"], "category": "maintenance", "description": "Leaking tap"}

    for _ in range(2):
        r = client.post("/api/issues", headers=auth_headers(tenant_token), json=body)
        assert r.status_code == 201, r.text

    r = client.post("/api/issues", headers=auth_headers(tenant_token), json=body)
    assert r.status_code == 429
    payload = r.json()
    assert payload["error"].startswith("Too many issue requests")
    assert payload["retry_after"] > 0
    assert r.headers["Retry-After"] == str(payload["retry_after"])

    # The landlord has a quota of their own
    r = client.post("/api/issues", headers=auth_headers(landlord_token), json=body)
    assert r.status_code == 201, r.text


def test_login_is_limited_per_ip(client: TestClient, fake_redis, monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", LONG_WINDOW)
    monkeypatch.setenv("RATE_LIMIT_LOGIN_PER_WINDOW", "1")
    signup(client, "bob@example.com")
    credentials = {"email": "bob@example.com", "password": PASSWORD}

    assert client.post("/api/auth/login", json=credentials).status_code == 200
    r = client.post("/api/auth/login", json=credentials)
    assert r.status_code == 429
    assert r.json()["error"].startswith("Too many login requests")


def test_domain_events_fan_out_over_redis(client: TestClient, fake_redis):
    pubsub = fake_redis.pubsub()
    pubsub.subscribe(EVENTS_CHANNEL)

    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, _ = signup(client, "guest@example.com", "tenant")
    contract = draft_contract(client, landlord_token, tenant_token)
    publish_to_redis(DomainEvent("issue.created", {"issue_id": 7}))

    received = []
    message = pubsub.get_message(timeout=1.0)
    while message is not None:
        if message["type"] == "message":
            received.append(json.loads(message["data"]))
        message = pubsub.get_message(timeout=0.2)
    pubsub.close()

    names = [m["event"] for m in received]
    assert names == ["rental_request.created", "rental_request.resolved", "contract.created", "issue.created"]
    assert received[2]["payload"]["contract_id"] == contract["id"]
    assert received[3]["payload"] == {"issue_id": 7}
