# Contract lifecycle: creation (automatic on acceptance or explicit), partial updates,
# and signature collection with the draft -> signed transition.
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from .. import models, policies, schemas
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..events import DomainEvent, EventBus
from ..locks import contract_lock
from ..repository import SqlRepository

logger = logging.getLogger("vinhousing.contracts")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _tenant_set(requester_id: int, tenant_ids: Optional[Iterable[int]]) -> List[int]:
    # De-duplicate while keeping caller order; the requester is always a tenant
    ids = list(dict.fromkeys(tenant_ids or []))
    if requester_id not in ids:
        ids.append(requester_id)
    return ids


def create_contract_from_request(
    repo: SqlRepository, request: models.RentalRequest, listing: models.Listing
) -> models.Contract:
    """
    Draft contract for an accepted request, priced from the listing.

    Runs inside the caller's transaction so the request status change, the contract and its
    tenant row commit together.
    """
    return repo.add_contract(
        tenant_ids=[request.requester_user_id],
        listing_id=listing.id,
        landlord_user_id=listing.owner_user_id,
        start_date=request.desired_move_in or _utcnow().date(),
        rent=listing.price,
        deposit=listing.deposit or 0,
        status="draft",
    )


def create_contract(
    repo: SqlRepository, events: EventBus, actor: models.User, payload: schemas.ContractCreate
) -> Tuple[models.Contract, List[int]]:
    request = repo.get_rental_request(payload.rental_request_id)
    if request is None:
        raise NotFoundError("Rental request not found")
    if request.status != "accepted":
        raise InvalidStateError("Rental request has not been accepted")

    listing = repo.get_listing(request.listing_id)
    if listing is None:
        raise NotFoundError("Listing not found")
    policies.ensure_allowed(policies.can_create_contract(actor, listing), "You do not own this listing")

    tenant_ids = _tenant_set(request.requester_user_id, payload.tenant_ids)
    if listing.owner_user_id in tenant_ids:
        raise ValidationError("The landlord cannot be a tenant on their own contract")
    unknown = set(tenant_ids) - repo.existing_user_ids(tenant_ids)
    if unknown:
        raise ValidationError(f"Unknown tenant user id(s): {sorted(unknown)}")

    with repo.transaction():
        contract = repo.add_contract(
            tenant_ids=tenant_ids,
            listing_id=listing.id,
            landlord_user_id=listing.owner_user_id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            rent=payload.rent,
            deposit=payload.deposit,
            status="draft",
        )

    logger.info(
        "contract.created",
        extra={"contract_id": contract.id, "rental_request_id": request.id, "user_id": actor.id},
    )
    events.publish(
        DomainEvent(
            "contract.created",
            {"contract_id": contract.id, "listing_id": contract.listing_id, "tenant_ids": tenant_ids},
        )
    )
    return contract, repo.tenant_ids(contract.id)


def update_contract(
    repo: SqlRepository,
    events: EventBus,
    actor: models.User,
    contract_id: int,
    patch: schemas.ContractPatch,
) -> models.Contract:
    contract = repo.get_contract(contract_id)
    if contract is None:
        raise NotFoundError("Contract not found")
    policies.ensure_allowed(
        policies.can_update_contract(actor, contract),
        "You do not have permission to update this contract",
    )

    changes = patch.changes()
    overriding = changes.get("status") == "signed"
    if overriding:
        policies.ensure_allowed(
            policies.can_override_contract_signed(actor),
            "Only an admin can mark a contract as signed manually",
        )

    start = changes.get("start_date", contract.start_date)
    end = changes.get("end_date", contract.end_date)
    if end is not None and end < start:
        raise ValidationError("end_date must not be before start_date")

    if not changes:
        return contract

    with repo.transaction():
        if overriding:
            changes["signed_at"] = _utcnow()
            logger.warning(
                "contract.signed.override",
                extra={
                    "contract_id": contract.id,
                    "user_id": actor.id,
                    "signed_count": repo.count_signers(contract.id),
                    "required_signers": len(repo.tenant_ids(contract.id)) + 1,
                },
            )
        repo.apply_changes(contract, changes)

    events.publish(
        DomainEvent(
            "contract.updated",
            {"contract_id": contract.id, "fields": sorted(changes), "status": contract.status},
        )
    )
    return contract


def sign_contract(
    repo: SqlRepository,
    events: EventBus,
    actor: models.User,
    contract_id: int,
    signature_method: str = "checkbox",
) -> models.ContractSignature:
    """
    Record the actor's signature and promote the contract to "signed" when every party has signed.

    Required signers: the landlord plus every ContractTenant. The signer count is taken after our
    own insert in the same transaction, and the transition is a conditional draft -> signed update,
    so exactly one request performs it. The insert and the transition commit or roll back together.

    Raises:
    - NotFoundError: no such contract
    - AuthorizationError: actor is neither the landlord nor a tenant of the contract
    - ConflictError: actor already signed
    - InvalidStateError: contract is no longer a draft
    """
    with contract_lock(contract_id):
        with repo.transaction():
            contract = repo.get_contract(contract_id, for_update=True)
            if contract is None:
                raise NotFoundError("Contract not found")

            tenant_ids = repo.tenant_ids(contract.id)
            policies.ensure_allowed(
                policies.can_sign_contract(actor, contract, tenant_ids),
                "You are not authorized to sign this contract",
            )
            if repo.get_signature(contract.id, actor.id) is not None:
                raise ConflictError("You have already signed this contract")
            if contract.status != "draft":
                raise InvalidStateError("Contract is not open for signing")

            now = _utcnow()
            signature = repo.add_signature(contract.id, actor.id, signature_method, now)

            signed_count = repo.count_signers(contract.id)
            required = len(tenant_ids) + 1
            completed = False
            if signed_count == required:
                completed = repo.mark_signed_if_draft(contract, now)

    logger.info(
        "contract.signature_added",
        extra={
            "contract_id": contract_id,
            "user_id": actor.id,
            "signed_count": signed_count,
            "required_signers": required,
        },
    )
    events.publish(
        DomainEvent(
            "contract.signature_added",
            {"contract_id": contract_id, "user_id": actor.id, "signed_count": signed_count, "required": required},
        )
    )
    if completed:
        logger.info("contract.signed", extra={"contract_id": contract_id})
        events.publish(DomainEvent("contract.signed", {"contract_id": contract_id}))
    return signature


def get_contract(
    repo: SqlRepository, actor: models.User, contract_id: int
) -> Tuple[models.Contract, List[int], List[models.ContractSignature]]:
    contract = repo.get_contract(contract_id)
    if contract is None:
        raise NotFoundError("Contract not found")
    tenant_ids = repo.tenant_ids(contract.id)
    policies.ensure_allowed(
        policies.can_view_contract(actor, contract, tenant_ids),
        "You do not have access to this contract",
    )
    return contract, tenant_ids, repo.signatures(contract.id)


def list_contracts(
    repo: SqlRepository,
    actor: models.User,
    landlord_id: Optional[int] = None,
    tenant_id: Optional[int] = None,
    status: Optional[str] = None,
) -> List[Tuple[models.Contract, List[int]]]:
    # Role scope first; explicit filters narrow it further
    landlord_ids: List[int] = []
    tenant_ids: List[int] = []
    if actor.role == policies.LANDLORD:
        landlord_ids.append(actor.id)
    elif actor.role == policies.TENANT:
        tenant_ids.append(actor.id)
    if landlord_id:
        landlord_ids.append(landlord_id)
    if tenant_id:
        tenant_ids.append(tenant_id)

    contracts = repo.list_contracts(landlord_ids=landlord_ids, tenant_ids=tenant_ids, status=status)
    return [(c, repo.tenant_ids(c.id)) for c in contracts]
