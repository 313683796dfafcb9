# Signature collection: draft -> signed once every party signs, duplicate and outsider rules,
# and two final signatures racing each other.
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from app import models
from app.db import SessionLocal
from app.events import bus
from app.repository import SqlRepository
from app.workflows import contracts as contract_workflow

from helpers import auth_headers, create_listing, draft_contract, request_listing, resolve, signup, signup_admin


def sign(client: TestClient, token: str, contract_id: int, **body):
    return client.post(f"/api/contracts/{contract_id}/sign", headers=auth_headers(token), json=body or None)


def _contract(client: TestClient, token: str, contract_id: int) -> dict:
    r = client.get(f"/api/contracts/{contract_id}", headers=auth_headers(token))
    assert r.status_code == 200, r.text
    return r.json()["contract"]


def _three_party_contract(client: TestClient):
    """1 landlord + 2 tenants, created explicitly from an accepted request."""
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    t1_token, _ = signup(client, "a@example.com", "tenant")
    t2_token, t2 = signup(client, "b@example.com", "tenant")
    listing = create_listing(client, landlord_token)
    req = request_listing(client, t1_token, listing["id"])
    assert resolve(client, landlord_token, req["id"], "accepted").status_code == 200
    r = client.post(
        "/api/contracts",
        headers=auth_headers(landlord_token),
        json={"rental_request_id": req["id"], "start_date": "2027-01-01", "rent": 1000, "tenant_ids": [t2["id"]]},
    )
    assert r.status_code == 201, r.text
    return r.json()["contract"], landlord_token, t1_token, t2_token


def test_contract_signed_only_after_every_party(client: TestClient, events):
    contract, landlord_token, t1_token, t2_token = _three_party_contract(client)
    cid = contract["id"]

    r = sign(client, landlord_token, cid)
    assert r.status_code == 200, r.text
    assert r.json()["signature"]["signature_method"] == "checkbox"
    assert _contract(client, landlord_token, cid)["status"] == "draft"

    assert sign(client, t1_token, cid, signature_method="typed-name").status_code == 200
    after_two = _contract(client, landlord_token, cid)
    assert after_two["status"] == "draft"
    assert after_two["signed_at"] is None

    assert sign(client, t2_token, cid).status_code == 200
    final = _contract(client, landlord_token, cid)
    assert final["status"] == "signed"
    assert final["signed_at"] is not None
    assert len(final["signatures"]) == 3

    added = [e for e in events if e.name == "contract.signature_added"]
    assert [e.payload["signed_count"] for e in added] == [1, 2, 3]
    assert all(e.payload["required"] == 3 for e in added)
    assert [e.name for e in events].count("contract.signed") == 1


def test_signing_twice_conflicts(client: TestClient):
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, _ = signup(client, "guest@example.com", "tenant")
    contract = draft_contract(client, landlord_token, tenant_token)

    assert sign(client, tenant_token, contract["id"]).status_code == 200
    r = sign(client, tenant_token, contract["id"])
    assert r.status_code == 409
    assert r.json() == {"error": "You have already signed this contract"}

    db = SessionLocal()
    try:
        rows = db.query(models.ContractSignature).filter_by(contract_id=contract["id"]).count()
    finally:
        db.close()
    assert rows == 1


def test_outsiders_and_admins_cannot_sign(client: TestClient):
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, _ = signup(client, "guest@example.com", "tenant")
    outsider_token, _ = signup(client, "outsider@example.com", "tenant")
    admin_token, _ = signup_admin(client)
    contract = draft_contract(client, landlord_token, tenant_token)

    assert sign(client, outsider_token, contract["id"]).status_code == 403
    assert sign(client, admin_token, contract["id"]).status_code == 403
    assert sign(client, tenant_token, 9999).status_code == 404


def test_cannot_sign_when_not_draft(client: TestClient):
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, _ = signup(client, "guest@example.com", "tenant")
    contract = draft_contract(client, landlord_token, tenant_token)
    r = client.put(f"/api/contracts/{contract['id']}", headers=auth_headers(landlord_token), json={"status": "cancelled"})
    assert r.status_code == 200

    r = sign(client, tenant_token, contract["id"])
    assert r.status_code == 400
    assert r.json() == {"error": "Contract is not open for signing"}


@pytest.mark.parametrize("with_redis", [False, True], ids=["db-only", "redis-lock"])
def test_concurrent_final_signatures_transition_once(client: TestClient, events, request, with_redis):
    if with_redis:
        # Both signers queue on the contract lock instead of one being turned away
        request.getfixturevalue("fake_redis")
    contract, landlord_token, _, _ = _three_party_contract(client)
    cid = contract["id"]
    assert sign(client, landlord_token, cid).status_code == 200

    db = SessionLocal()
    try:
        tenant_ids = SqlRepository(db).tenant_ids(cid)
        tenants = [db.get(models.User, tid) for tid in tenant_ids]
        for t in tenants:
            db.expunge(t)
    finally:
        db.close()

    barrier = threading.Barrier(len(tenants))

    def _sign(user: models.User) -> int:
        session = SessionLocal()
        try:
            barrier.wait(timeout=5)
            signature = contract_workflow.sign_contract(SqlRepository(session), bus, user, cid)
            return signature.user_id
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(tenants)) as pool:
        signer_ids = list(pool.map(_sign, tenants))

    assert sorted(signer_ids) == sorted(tenant_ids)

    final = _contract(client, landlord_token, cid)
    assert final["status"] == "signed"
    assert len(final["signatures"]) == 3
    assert [e.name for e in events].count("contract.signed") == 1


def test_signing_rolls_back_on_failure(client: TestClient, monkeypatch):
    landlord_token, _ = signup(client, "host@example.com", "landlord")
    tenant_token, tenant = signup(client, "guest@example.com", "tenant")
    contract = draft_contract(client, landlord_token, tenant_token)
    assert sign(client, landlord_token, contract["id"]).status_code == 200

    def _boom(self, contract, signed_at):
        raise RuntimeError("storage failure")

    monkeypatch.setattr(SqlRepository, "mark_signed_if_draft", _boom)

    db = SessionLocal()
    try:
        user = db.get(models.User, tenant["id"])
        repo = SqlRepository(db)
        with pytest.raises(RuntimeError):
            contract_workflow.sign_contract(repo, bus, user, contract["id"])
        assert repo.get_signature(contract["id"], tenant["id"]) is None
        assert repo.get_contract(contract["id"]).status == "draft"
    finally:
        db.close()
