# Account administration: admins browse accounts and suspend, restore or soft-delete them.
# A non-active account is refused at login and by get_current_user on its next request.
from __future__ import annotations

import logging
from typing import List, Optional

from .. import models, policies
from ..errors import NotFoundError
from ..events import DomainEvent, EventBus
from ..repository import SqlRepository

logger = logging.getLogger("vinhousing.admin")


def list_users(
    repo: SqlRepository,
    actor: models.User,
    role: Optional[str] = None,
    status: Optional[str] = None,
) -> List[models.User]:
    policies.ensure_allowed(policies.can_manage_users(actor), "Admin role required")
    return repo.list_users(role=role, status=status)


def set_user_status(
    repo: SqlRepository, events: EventBus, actor: models.User, user_id: int, new_status: str
) -> models.User:
    """
    Set an account's status to active, suspended or deleted.

    Raises NotFoundError for an unknown id and AuthorizationError for non-admins
    or an admin targeting their own account.
    """
    policies.ensure_allowed(policies.can_manage_users(actor), "Admin role required")
    user = repo.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    policies.ensure_allowed(
        policies.can_change_user_status(actor, user), "You cannot change the status of your own account"
    )

    old_status = user.status
    if old_status == new_status:
        return user
    with repo.transaction():
        repo.apply_changes(user, {"status": new_status})

    logger.info(
        "user.status_changed",
        extra={"user_id": user.id, "from_status": old_status, "to_status": new_status, "changed_by": actor.id},
    )
    events.publish(
        DomainEvent("user.status_changed", {"user_id": user.id, "from": old_status, "to": new_status})
    )
    return user
