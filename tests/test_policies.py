# Authorization predicates, exercised without HTTP or a database.
from types import SimpleNamespace

import pytest

from app import policies
from app.errors import AuthorizationError


def user(id: int, role: str):
    return SimpleNamespace(id=id, role=role)


ADMIN = user(1, "admin")
LANDLORD = user(2, "landlord")
TENANT = user(3, "tenant")
ROOMMATE = user(4, "tenant")
OUTSIDER = user(5, "tenant")

LISTING = SimpleNamespace(id=10, owner_user_id=LANDLORD.id)
REQUEST = SimpleNamespace(id=20, listing_id=LISTING.id, requester_user_id=TENANT.id)
CONTRACT = SimpleNamespace(id=30, landlord_user_id=LANDLORD.id)
TENANT_IDS = [TENANT.id, ROOMMATE.id]
ISSUE = SimpleNamespace(id=40, contract_id=CONTRACT.id, reporter_user_id=OUTSIDER.id)


def test_ensure_allowed_raises_authorization_error():
    policies.ensure_allowed(True, "unused")
    with pytest.raises(AuthorizationError) as exc:
        policies.ensure_allowed(False, "nope")
    assert exc.value.message == "nope"
    assert exc.value.status_code == 403


def test_listing_rules():
    assert policies.can_update_listing(LANDLORD, LISTING)
    assert policies.can_update_listing(ADMIN, LISTING)
    assert not policies.can_update_listing(user(6, "landlord"), LISTING)


def test_request_rules():
    assert policies.can_request_listing(TENANT, LISTING)
    assert not policies.can_request_listing(LANDLORD, LISTING)
    assert not policies.can_request_listing(ADMIN, LISTING)

    assert policies.can_resolve_request(LANDLORD, REQUEST, LISTING, "accepted")
    assert policies.can_resolve_request(ADMIN, REQUEST, LISTING, "rejected")
    assert not policies.can_resolve_request(TENANT, REQUEST, LISTING, "accepted")
    assert policies.can_resolve_request(TENANT, REQUEST, LISTING, "cancelled")
    assert not policies.can_resolve_request(LANDLORD, REQUEST, LISTING, "cancelled")
    assert not policies.can_resolve_request(ADMIN, REQUEST, LISTING, "cancelled")


def test_contract_rules():
    assert policies.is_contract_party(LANDLORD, CONTRACT, TENANT_IDS)
    assert policies.is_contract_party(ROOMMATE, CONTRACT, TENANT_IDS)
    assert not policies.is_contract_party(OUTSIDER, CONTRACT, TENANT_IDS)

    assert policies.can_sign_contract(TENANT, CONTRACT, TENANT_IDS)
    assert not policies.can_sign_contract(ADMIN, CONTRACT, TENANT_IDS)
    assert not policies.can_sign_contract(OUTSIDER, CONTRACT, TENANT_IDS)

    assert policies.can_view_contract(ADMIN, CONTRACT, TENANT_IDS)
    assert not policies.can_view_contract(OUTSIDER, CONTRACT, TENANT_IDS)

    assert policies.can_update_contract(LANDLORD, CONTRACT)
    assert not policies.can_update_contract(TENANT, CONTRACT)
    assert policies.can_override_contract_signed(ADMIN)
    assert not policies.can_override_contract_signed(LANDLORD)


@pytest.mark.parametrize("new_status", ["triaged", "in_progress", "resolved", "rejected"])
def test_privileged_issue_statuses_need_admin(new_status):
    assert policies.can_change_issue_status(ADMIN, "open", new_status)
    assert not policies.can_change_issue_status(LANDLORD, "open", new_status)
    assert not policies.can_change_issue_status(TENANT, new_status, new_status)


def test_issue_status_noop_and_assignee_only():
    assert policies.can_change_issue_status(TENANT, "open", None)
    assert policies.can_change_issue_status(TENANT, "open", "open")
    assert not policies.can_change_issue_status(TENANT, "triaged", "open")


def test_issue_visibility_includes_reporter():
    assert policies.can_view_issue(OUTSIDER, ISSUE, CONTRACT, TENANT_IDS)
    assert policies.can_view_issue(ROOMMATE, ISSUE, CONTRACT, TENANT_IDS)
    assert not policies.can_view_issue(user(7, "tenant"), ISSUE, CONTRACT, TENANT_IDS)
    assert policies.can_assign_issue(LANDLORD, ISSUE, CONTRACT, TENANT_IDS)
    assert policies.can_report_issue(ADMIN, CONTRACT, TENANT_IDS)
    assert not policies.can_report_issue(OUTSIDER, CONTRACT, TENANT_IDS)
