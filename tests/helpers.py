# Shared HTTP helpers for the API test modules.
from __future__ import annotations

from typing import Tuple

from fastapi.testclient import TestClient

from app.db import SessionLocal
from app.make_admin import ensure_admin

PASSWORD = "changeme123"


# Helper: create a user and return (access_token, user JSON)
def signup(client: TestClient, email: str, role: str | None = None, password: str = PASSWORD) -> Tuple[str, dict]:
    payload = {"email": email, "password": password}
    if role:
        payload["role"] = role
    r = client.post("/api/auth/signup", json=payload)
    assert r.status_code == 201, r.text
    data = r.json()
    return data["access_token"], data["user"]


# Helper: sign up, then promote out of band the way operators do
def signup_admin(client: TestClient, email: str = "admin@example.com") -> Tuple[str, dict]:
    token, user = signup(client, email, "tenant")
    db = SessionLocal()
    try:
        ensure_admin(db, email)
    finally:
        db.close()
    user["role"] = "admin"
    return token, user


# Convenience header for authenticated requests
def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def create_listing(
    client: TestClient, token: str, price: float = 1000, deposit: float = 500, verified: bool = True
) -> dict:
    r = client.post(
        "/api/listings",
        headers=auth_headers(token),
        json={"title": "Studio near campus", "price": price, "deposit": deposit},
    )
    assert r.status_code == 201, r.text
    listing = r.json()["listing"]
    if verified:
        r = client.put(f"/api/listings/{listing['id']}", headers=auth_headers(token), json={"status": "verified"})
        assert r.status_code == 200, r.text
        listing = r.json()["listing"]
    return listing


def request_listing(client: TestClient, token: str, listing_id: int, **extra) -> dict:
    r = client.post("/api/rental-requests", headers=auth_headers(token), json={"listing_id": listing_id, **extra})
    assert r.status_code == 201, r.text
    return r.json()["rental_request"]


def resolve(client: TestClient, token: str, request_id: int, status: str):
    return client.put(
        f"/api/rental-requests/{request_id}/status", headers=auth_headers(token), json={"status": status}
    )


def draft_contract(client: TestClient, landlord_token: str, tenant_token: str, **listing_kwargs) -> dict:
    """Listing -> request -> accept; returns the auto-created draft contract."""
    listing = create_listing(client, landlord_token, **listing_kwargs)
    request = request_listing(client, tenant_token, listing["id"])
    r = resolve(client, landlord_token, request["id"], "accepted")
    assert r.status_code == 200, r.text
    return r.json()["contract"]
