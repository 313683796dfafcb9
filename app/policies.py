# Authorization rules, one predicate per operation.
# Predicates take the acting user plus the resource(s) involved and return True/False;
# workflows call ensure_allowed() so every rule lives here and can be tested without HTTP.
from __future__ import annotations

from typing import Iterable, Optional, Protocol

from .errors import AuthorizationError

ADMIN = "admin"
LANDLORD = "landlord"
TENANT = "tenant"

# Issue statuses only an admin may move an issue into
PRIVILEGED_ISSUE_STATUSES = frozenset({"triaged", "in_progress", "resolved", "rejected"})


class Actor(Protocol):
    id: int
    role: str


def is_admin(actor: Actor) -> bool:
    return actor.role == ADMIN


def ensure_allowed(allowed: bool, message: str) -> None:
    if not allowed:
        raise AuthorizationError(message)


# Listings
# Creating one is gated by the landlord role at the route (require_landlord)
def can_update_listing(actor: Actor, listing) -> bool:
    return is_admin(actor) or listing.owner_user_id == actor.id


# Rental requests
def can_request_listing(actor: Actor, listing) -> bool:
    return actor.role == TENANT and listing.owner_user_id != actor.id


def can_resolve_request(actor: Actor, request, listing, new_status: str) -> bool:
    """
    cancelled: only the original requester.
    accepted/rejected: the listing owner or an admin.
    """
    if new_status == "cancelled":
        return request.requester_user_id == actor.id
    return is_admin(actor) or listing.owner_user_id == actor.id


def can_view_request(actor: Actor, request, listing) -> bool:
    return (
        is_admin(actor)
        or request.requester_user_id == actor.id
        or listing.owner_user_id == actor.id
    )


# Contracts
def is_contract_party(actor: Actor, contract, tenant_ids: Iterable[int]) -> bool:
    return contract.landlord_user_id == actor.id or actor.id in set(tenant_ids)


def can_create_contract(actor: Actor, listing) -> bool:
    return is_admin(actor) or listing.owner_user_id == actor.id


def can_view_contract(actor: Actor, contract, tenant_ids: Iterable[int]) -> bool:
    return is_admin(actor) or is_contract_party(actor, contract, tenant_ids)


def can_update_contract(actor: Actor, contract) -> bool:
    return is_admin(actor) or contract.landlord_user_id == actor.id


def can_override_contract_signed(actor: Actor) -> bool:
    # Manual "signed" bypasses signature collection, so it is reserved for admins
    return is_admin(actor)


def can_sign_contract(actor: Actor, contract, tenant_ids: Iterable[int]) -> bool:
    # Admins are not parties; they cannot sign on someone's behalf
    return is_contract_party(actor, contract, tenant_ids)


# Issues
def can_report_issue(actor: Actor, contract, tenant_ids: Iterable[int]) -> bool:
    return is_admin(actor) or is_contract_party(actor, contract, tenant_ids)


def can_view_issue(actor: Actor, issue, contract, tenant_ids: Iterable[int]) -> bool:
    return (
        is_admin(actor)
        or issue.reporter_user_id == actor.id
        or is_contract_party(actor, contract, tenant_ids)
    )


def can_change_issue_status(actor: Actor, current_status: str, new_status: Optional[str]) -> bool:
    """
    Privileged statuses always require an admin, and so does any other real change of status.
    Sending the current non-privileged status back is a no-op anyone may perform.
    """
    if new_status is None:
        return True
    if new_status in PRIVILEGED_ISSUE_STATUSES or new_status != current_status:
        return is_admin(actor)
    return True


def can_assign_issue(actor: Actor, issue, contract, tenant_ids: Iterable[int]) -> bool:
    return can_view_issue(actor, issue, contract, tenant_ids)


# Administration
def can_manage_users(actor: Actor) -> bool:
    return is_admin(actor)


def can_change_user_status(actor: Actor, target) -> bool:
    # An admin cannot lock themselves out
    return is_admin(actor) and target.id != actor.id


def can_view_issue_stats(actor: Actor) -> bool:
    return is_admin(actor)
