# Rental request workflow: a tenant asks for a listing, the landlord accepts or rejects,
# the requester may cancel. Accepting drafts the contract in the same transaction.
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .. import models, policies, schemas
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..events import DomainEvent, EventBus
from ..repository import SqlRepository
from .contracts import create_contract_from_request

logger = logging.getLogger("vinhousing.rental_requests")

RESOLUTION_STATUSES = ("accepted", "rejected", "cancelled")


def create_request(
    repo: SqlRepository, events: EventBus, actor: models.User, payload: schemas.RentalRequestCreate
) -> models.RentalRequest:
    listing = repo.get_listing(payload.listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    policies.ensure_allowed(
        policies.can_request_listing(actor, listing),
        "Only tenants can request listings they do not own",
    )
    if listing.status != "verified":
        raise InvalidStateError("Listing is not available for rental requests")
    if repo.find_pending_request(listing.id, actor.id) is not None:
        raise ConflictError("You already have a pending request for this listing")

    with repo.transaction():
        request = repo.add_rental_request(
            listing_id=listing.id,
            requester_user_id=actor.id,
            message=payload.message,
            desired_move_in=payload.desired_move_in,
            status="pending",
        )

    logger.info(
        "rental_request.created",
        extra={"rental_request_id": request.id, "listing_id": listing.id, "user_id": actor.id},
    )
    events.publish(
        DomainEvent(
            "rental_request.created",
            {"rental_request_id": request.id, "listing_id": listing.id, "owner_user_id": listing.owner_user_id},
        )
    )
    return request


def resolve_request(
    repo: SqlRepository, events: EventBus, actor: models.User, request_id: int, new_status: str
) -> Tuple[models.RentalRequest, Optional[models.Contract]]:
    """
    Move a pending request to accepted/rejected/cancelled.

    The pending check runs before authorization: a resolved request answers
    "no longer pending" to everyone. On acceptance a draft contract is created unless a
    non-cancelled contract already links the listing and its landlord.

    Returns (request, contract created by this call or None).
    """
    if new_status not in RESOLUTION_STATUSES:
        raise ValidationError("Invalid status. Must be accepted, rejected, or cancelled.")

    request = repo.get_rental_request(request_id)
    if request is None:
        raise NotFoundError("Rental request not found")
    if request.status != "pending":
        raise InvalidStateError("Request is no longer pending")

    listing = repo.get_listing(request.listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    if new_status == "cancelled":
        denied = "Only the requester can cancel this request"
    else:
        denied = "Only the listing owner can accept or reject requests"
    policies.ensure_allowed(policies.can_resolve_request(actor, request, listing, new_status), denied)

    contract = None
    with repo.transaction():
        # Compare-and-set so two concurrent resolutions cannot both succeed
        if not repo.transition_request(request, "pending", new_status):
            raise InvalidStateError("Request is no longer pending")
        if new_status == "accepted":
            if repo.find_open_contract(listing.id, listing.owner_user_id) is None:
                contract = create_contract_from_request(repo, request, listing)
            else:
                logger.info(
                    "contract.autocreate.skipped",
                    extra={"rental_request_id": request.id, "listing_id": listing.id},
                )

    logger.info(
        "rental_request.resolved",
        extra={"rental_request_id": request.id, "status": new_status, "user_id": actor.id},
    )
    events.publish(
        DomainEvent(
            "rental_request.resolved",
            {"rental_request_id": request.id, "listing_id": listing.id, "status": new_status},
        )
    )
    if contract is not None:
        logger.info(
            "contract.autocreated",
            extra={"contract_id": contract.id, "rental_request_id": request.id, "listing_id": listing.id},
        )
        events.publish(
            DomainEvent(
                "contract.created",
                {
                    "contract_id": contract.id,
                    "listing_id": listing.id,
                    "tenant_ids": [request.requester_user_id],
                },
            )
        )
    return request, contract


def get_request(repo: SqlRepository, actor: models.User, request_id: int) -> models.RentalRequest:
    request = repo.get_rental_request(request_id)
    if request is None:
        raise NotFoundError("Rental request not found")
    listing = repo.get_listing(request.listing_id)
    policies.ensure_allowed(
        listing is not None and policies.can_view_request(actor, request, listing),
        "You do not have access to this rental request",
    )
    return request


def list_requests(
    repo: SqlRepository,
    actor: models.User,
    listing_id: Optional[int] = None,
    status: Optional[str] = None,
) -> List[models.RentalRequest]:
    """Tenants see their own requests, landlords the requests on their listings, admins everything."""
    if actor.role == policies.TENANT:
        return repo.list_rental_requests(requester_id=actor.id, listing_id=listing_id, status=status)
    if actor.role == policies.LANDLORD:
        return repo.list_rental_requests(owner_id=actor.id, listing_id=listing_id, status=status)
    return repo.list_rental_requests(listing_id=listing_id, status=status)
