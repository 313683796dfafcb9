# Listing endpoints: landlords publish and edit listings; anyone may browse.
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .. import models, policies, schemas
from ..errors import NotFoundError
from ..repository import SqlRepository, get_repository
from .auth import get_current_user, limit_by_actor, require_landlord

router = APIRouter()


@router.get("/listings", response_model=schemas.ListingList)
def list_listings(
    status_filter: Optional[schemas.ListingStatus] = Query(None, alias="status"),
    owner_id: Optional[int] = Query(None, ge=1),
    repo: SqlRepository = Depends(get_repository),
) -> schemas.ListingList:
    """List listings, newest first, optionally filtered by status and owner."""
    items = repo.list_listings(status=status_filter, owner_id=owner_id)
    return schemas.ListingList(listings=[schemas.ListingRead.model_validate(obj) for obj in items])


@router.get("/listings/{listing_id}", response_model=schemas.ListingResponse)
def get_listing(listing_id: int, repo: SqlRepository = Depends(get_repository)) -> schemas.ListingResponse:
    obj = repo.get_listing(listing_id)
    if obj is None:
        raise NotFoundError("Listing not found")
    return schemas.ListingResponse(listing=schemas.ListingRead.model_validate(obj))


@router.post(
    "/listings",
    response_model=schemas.ListingResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_by_actor("write"))],
)
def create_listing(
    payload: schemas.ListingCreate,
    repo: SqlRepository = Depends(get_repository),
    user: models.User = Depends(require_landlord),
) -> schemas.ListingResponse:
    """
    Create a listing owned by the caller.

    New listings wait in pending_verification until verified; only verified listings take requests.
    """
    with repo.transaction():
        obj = repo.add_listing(
            owner_user_id=user.id,
            title=payload.title,
            price=payload.price,
            deposit=payload.deposit,
            available_from=payload.available_from,
            status="pending_verification",
        )
    return schemas.ListingResponse(
        message="Listing created successfully", listing=schemas.ListingRead.model_validate(obj)
    )


@router.put(
    "/listings/{listing_id}",
    response_model=schemas.ListingResponse,
    dependencies=[Depends(limit_by_actor("write"))],
)
def update_listing(
    listing_id: int,
    payload: schemas.ListingUpdate,
    repo: SqlRepository = Depends(get_repository),
    user: models.User = Depends(get_current_user),
) -> schemas.ListingResponse:
    obj = repo.get_listing(listing_id)
    if obj is None:
        raise NotFoundError("Listing not found")
    policies.ensure_allowed(
        policies.can_update_listing(user, obj), "You do not have permission to update this listing"
    )
    changes = payload.model_dump(exclude_unset=True)
    if changes:
        with repo.transaction():
            repo.apply_changes(obj, changes)
    return schemas.ListingResponse(
        message="Listing updated successfully", listing=schemas.ListingRead.model_validate(obj)
    )
