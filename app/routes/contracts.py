from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from .. import models, schemas
from ..events import EventBus, get_event_bus
from ..repository import SqlRepository, get_repository
from ..workflows import contracts as workflow
from .auth import get_current_user, limit_by_actor

router = APIRouter()


def contract_read(
    repo: SqlRepository, contract: models.Contract, tenant_ids: Optional[List[int]] = None
) -> schemas.ContractRead:
    if tenant_ids is None:
        tenant_ids = repo.tenant_ids(contract.id)
    return schemas.ContractRead.model_validate(contract).model_copy(update={"tenant_ids": tenant_ids})


@router.post(
    "/contracts",
    response_model=schemas.ContractResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_by_actor("write"))],
)
def create_contract(
    payload: schemas.ContractCreate,
    repo: SqlRepository = Depends(get_repository),
    events: EventBus = Depends(get_event_bus),
    user: models.User = Depends(get_current_user),
) -> schemas.ContractResponse:
    contract, tenant_ids = workflow.create_contract(repo, events, user, payload)
    return schemas.ContractResponse(
        message="Contract created successfully",
        contract=contract_read(repo, contract, tenant_ids),
    )


@router.get("/contracts", response_model=schemas.ContractList)
def list_contracts(
    landlord_id: Optional[int] = Query(None, ge=1),
    tenant_id: Optional[int] = Query(None, ge=1),
    status_filter: Optional[schemas.ContractStatus] = Query(None, alias="status"),
    repo: SqlRepository = Depends(get_repository),
    user: models.User = Depends(get_current_user),
) -> schemas.ContractList:
    rows = workflow.list_contracts(repo, user, landlord_id=landlord_id, tenant_id=tenant_id, status=status_filter)
    return schemas.ContractList(contracts=[contract_read(repo, c, ids) for c, ids in rows])


@router.get("/contracts/{contract_id}", response_model=schemas.ContractDetailResponse)
def get_contract(
    contract_id: int,
    repo: SqlRepository = Depends(get_repository),
    user: models.User = Depends(get_current_user),
) -> schemas.ContractDetailResponse:
    contract, tenant_ids, signatures = workflow.get_contract(repo, user, contract_id)
    detail = schemas.ContractDetail.model_validate(contract).model_copy(
        update={
            "tenant_ids": tenant_ids,
            "signatures": [schemas.SignatureRead.model_validate(s) for s in signatures],
        }
    )
    return schemas.ContractDetailResponse(contract=detail)


@router.put(
    "/contracts/{contract_id}",
    response_model=schemas.ContractResponse,
    dependencies=[Depends(limit_by_actor("write"))],
)
def update_contract(
    contract_id: int,
    payload: schemas.ContractPatch,
    repo: SqlRepository = Depends(get_repository),
    events: EventBus = Depends(get_event_bus),
    user: models.User = Depends(get_current_user),
) -> schemas.ContractResponse:
    contract = workflow.update_contract(repo, events, user, contract_id, payload)
    return schemas.ContractResponse(
        message="Contract updated successfully",
        contract=contract_read(repo, contract),
    )


@router.post(
    "/contracts/{contract_id}/sign",
    response_model=schemas.SignatureResponse,
    dependencies=[Depends(limit_by_actor("sign"))],
)
def sign_contract(
    contract_id: int,
    payload: Optional[schemas.SignatureCreate] = None,
    repo: SqlRepository = Depends(get_repository),
    events: EventBus = Depends(get_event_bus),
    user: models.User = Depends(get_current_user),
) -> schemas.SignatureResponse:
    """
    Sign as the landlord or one of the tenants.

    The body is optional; signature_method defaults to "checkbox".
    """
    method = payload.signature_method if payload is not None else "checkbox"
    signature = workflow.sign_contract(repo, events, user, contract_id, signature_method=method)
    return schemas.SignatureResponse(
        message="Contract signed successfully",
        signature=schemas.SignatureRead.model_validate(signature),
    )
