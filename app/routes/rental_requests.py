from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .. import models, schemas
from ..events import EventBus, get_event_bus
from ..repository import SqlRepository, get_repository
from ..workflows import rental_requests as workflow
from .auth import get_current_user, limit_by_actor, require_tenant
from .contracts import contract_read

router = APIRouter()


@router.post(
    "/rental-requests",
    response_model=schemas.RentalRequestResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_by_actor("write"))],
)
def create_rental_request(
    payload: schemas.RentalRequestCreate,
    repo: SqlRepository = Depends(get_repository),
    events: EventBus = Depends(get_event_bus),
    user: models.User = Depends(require_tenant),
) -> schemas.RentalRequestResponse:
    request = workflow.create_request(repo, events, user, payload)
    return schemas.RentalRequestResponse(
        message="Rental request submitted successfully",
        rental_request=schemas.RentalRequestRead.model_validate(request),
    )


@router.get("/rental-requests", response_model=schemas.RentalRequestList)
def list_rental_requests(
    listing_id: Optional[int] = Query(None, ge=1),
    status_filter: Optional[schemas.RentalRequestStatus] = Query(None, alias="status"),
    repo: SqlRepository = Depends(get_repository),
    user: models.User = Depends(get_current_user),
) -> schemas.RentalRequestList:
    items = workflow.list_requests(repo, user, listing_id=listing_id, status=status_filter)
    return schemas.RentalRequestList(
        rental_requests=[schemas.RentalRequestRead.model_validate(r) for r in items]
    )


@router.get("/rental-requests/{request_id}", response_model=schemas.RentalRequestResponse)
def get_rental_request(
    request_id: int,
    repo: SqlRepository = Depends(get_repository),
    user: models.User = Depends(get_current_user),
) -> schemas.RentalRequestResponse:
    request = workflow.get_request(repo, user, request_id)
    return schemas.RentalRequestResponse(rental_request=schemas.RentalRequestRead.model_validate(request))


@router.put(
    "/rental-requests/{request_id}/status",
    response_model=schemas.RentalRequestResolveResponse,
    dependencies=[Depends(limit_by_actor("write"))],
)
def resolve_rental_request(
    request_id: int,
    payload: schemas.RentalRequestStatusUpdate,
    repo: SqlRepository = Depends(get_repository),
    events: EventBus = Depends(get_event_bus),
    user: models.User = Depends(get_current_user),
) -> schemas.RentalRequestResolveResponse:
    """
    Accept, reject or cancel a pending request.

    Acceptance also returns the draft contract created for it, when one was created.
    """
    request, contract = workflow.resolve_request(repo, events, user, request_id, payload.status)
    return schemas.RentalRequestResolveResponse(
        message=f"Rental request {payload.status} successfully",
        rental_request=schemas.RentalRequestRead.model_validate(request),
        contract=contract_read(repo, contract) if contract is not None else None,
    )
