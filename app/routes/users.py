# Admin account management.
from typing import Optional

from fastapi import APIRouter, Depends, Query

from .. import models, schemas
from ..events import EventBus, get_event_bus
from ..repository import SqlRepository, get_repository
from ..workflows import users as workflow
from .auth import get_current_user, limit_by_actor

router = APIRouter()


@router.get("/users", response_model=schemas.UserList)
def list_users(
    role: Optional[schemas.Role] = Query(None),
    status_filter: Optional[schemas.UserStatus] = Query(None, alias="status"),
    repo: SqlRepository = Depends(get_repository),
    user: models.User = Depends(get_current_user),
) -> schemas.UserList:
    users = workflow.list_users(repo, user, role=role, status=status_filter)
    return schemas.UserList(users=[schemas.UserRead.model_validate(u) for u in users])


@router.put(
    "/users/{user_id}/status",
    response_model=schemas.UserResponse,
    dependencies=[Depends(limit_by_actor("write"))],
)
def update_user_status(
    user_id: int,
    payload: schemas.UserStatusUpdate,
    repo: SqlRepository = Depends(get_repository),
    events: EventBus = Depends(get_event_bus),
    user: models.User = Depends(get_current_user),
) -> schemas.UserResponse:
    target = workflow.set_user_status(repo, events, user, user_id, payload.status)
    return schemas.UserResponse(
        message="User status updated successfully", user=schemas.UserRead.model_validate(target)
    )
