# Issue reports against contracts, with an append-only status history.
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from .. import models, policies, schemas
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..events import DomainEvent, EventBus
from ..repository import SqlRepository

logger = logging.getLogger("vinhousing.issues")

# Forward-only lifecycle; resolved and rejected are terminal
ISSUE_TRANSITIONS = {
    "open": {"triaged", "in_progress", "resolved", "rejected"},
    "triaged": {"in_progress", "resolved", "rejected"},
    "in_progress": {"resolved", "rejected"},
    "resolved": set(),
    "rejected": set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _contract_and_tenants(repo: SqlRepository, contract_id: int) -> Tuple[models.Contract, List[int]]:
    contract = repo.get_contract(contract_id)
    if contract is None:
        raise NotFoundError("Contract not found")
    return contract, repo.tenant_ids(contract.id)


def create_issue(
    repo: SqlRepository, events: EventBus, actor: models.User, payload: schemas.IssueCreate
) -> models.IssueReport:
    contract, tenant_ids = _contract_and_tenants(repo, payload.contract_id)
    policies.ensure_allowed(
        policies.can_report_issue(actor, contract, tenant_ids),
        "You do not have access to this contract",
    )

    with repo.transaction():
        issue = repo.add_issue(
            contract_id=contract.id,
            reporter_user_id=actor.id,
            category=payload.category,
            severity=payload.severity,
            description=payload.description,
            sla_hours=payload.sla_hours,
            status="open",
        )
        # Every issue starts its audit trail with an open -> open row
        repo.add_status_history(issue.id, "open", "open", actor.id, _utcnow())

    logger.info(
        "issue.created",
        extra={"issue_id": issue.id, "contract_id": contract.id, "severity": issue.severity, "user_id": actor.id},
    )
    events.publish(
        DomainEvent(
            "issue.created",
            {"issue_id": issue.id, "contract_id": contract.id, "severity": issue.severity},
        )
    )
    return issue


def update_issue_status(
    repo: SqlRepository,
    events: EventBus,
    actor: models.User,
    issue_id: int,
    update: schemas.IssueStatusUpdate,
) -> models.IssueReport:
    """
    Change status and/or assignee.

    Status changes are admin-only; contract parties may only (re)assign. A history row is
    appended only when the status actually changes.
    """
    fields = update.model_fields_set
    new_status = update.status if "status" in fields else None

    with repo.transaction():
        issue = repo.get_issue(issue_id, for_update=True)
        if issue is None:
            raise NotFoundError("Issue not found")
        old_status = issue.status

        policies.ensure_allowed(
            policies.can_change_issue_status(actor, old_status, new_status),
            "Only admins can update issue status to this value",
        )

        changes = {}
        if "assignee_user_id" in fields:
            contract, tenant_ids = _contract_and_tenants(repo, issue.contract_id)
            policies.ensure_allowed(
                policies.can_assign_issue(actor, issue, contract, tenant_ids),
                "You do not have access to this issue",
            )
            assignee_id = update.assignee_user_id
            if assignee_id is not None and repo.get_user(assignee_id) is None:
                raise ValidationError("Assignee not found")
            changes["assignee_user_id"] = assignee_id

        status_changed = new_status is not None and new_status != old_status
        if status_changed:
            if new_status not in ISSUE_TRANSITIONS[old_status]:
                raise InvalidStateError(f"Cannot move issue from {old_status} to {new_status}")
            now = _utcnow()
            changes["status"] = new_status
            if new_status == "resolved":
                changes["resolved_at"] = now
            repo.add_status_history(issue.id, old_status, new_status, actor.id, now)

        if changes:
            repo.apply_changes(issue, changes)

    if status_changed:
        logger.info(
            "issue.status_changed",
            extra={"issue_id": issue_id, "from_status": old_status, "to_status": new_status, "user_id": actor.id},
        )
        events.publish(
            DomainEvent(
                "issue.status_changed",
                {"issue_id": issue_id, "from_status": old_status, "to_status": new_status},
            )
        )
    elif changes:
        events.publish(DomainEvent("issue.updated", {"issue_id": issue_id, "fields": sorted(changes)}))
    return issue


def _visible_issue(
    repo: SqlRepository, actor: models.User, issue_id: int
) -> models.IssueReport:
    issue = repo.get_issue(issue_id)
    if issue is None:
        raise NotFoundError("Issue not found")
    contract, tenant_ids = _contract_and_tenants(repo, issue.contract_id)
    policies.ensure_allowed(
        policies.can_view_issue(actor, issue, contract, tenant_ids),
        "You do not have access to this issue",
    )
    return issue


def get_issue(
    repo: SqlRepository, actor: models.User, issue_id: int
) -> Tuple[models.IssueReport, List[models.IssueStatusHistory], List[models.IssueAttachment]]:
    issue = _visible_issue(repo, actor, issue_id)
    return issue, repo.status_history(issue.id), repo.attachments(issue.id)


def add_attachment(
    repo: SqlRepository, events: EventBus, actor: models.User, issue_id: int, file_url: str
) -> models.IssueAttachment:
    issue = _visible_issue(repo, actor, issue_id)
    with repo.transaction():
        attachment = repo.add_attachment(issue_id=issue.id, uploaded_by=actor.id, file_url=file_url)
    events.publish(DomainEvent("issue.attachment_added", {"issue_id": issue.id, "attachment_id": attachment.id}))
    return attachment


def list_issues(
    repo: SqlRepository,
    actor: models.User,
    contract_id: Optional[int] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    severity: Optional[str] = None,
) -> List[models.IssueReport]:
    scope = {}
    if actor.role == policies.TENANT:
        scope["visible_to_tenant"] = actor.id
    elif actor.role == policies.LANDLORD:
        scope["landlord_id"] = actor.id
    return repo.list_issues(contract_id=contract_id, status=status, category=category, severity=severity, **scope)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def issue_stats(repo: SqlRepository, actor: models.User, now: Optional[datetime] = None) -> dict:
    """
    Admin dashboard numbers: counts per category (with a closing TOTAL row), per status and
    per severity, plus how many unresolved issues are past their SLA.
    """
    policies.ensure_allowed(policies.can_view_issue_stats(actor), "Admin role required")
    now = now or _utcnow()

    by_category = repo.count_issues_by(models.IssueReport.category)
    stats = [{"category": category, "count": count} for category, count in sorted(by_category.items())]
    stats.append({"category": "TOTAL", "count": sum(by_category.values())})

    overdue = sum(
        1
        for created_at, sla_hours in repo.unresolved_issue_clocks()
        if _as_utc(created_at) + timedelta(hours=sla_hours) < now
    )
    return {
        "stats": stats,
        "by_status": repo.count_issues_by(models.IssueReport.status),
        "by_severity": repo.count_issues_by(models.IssueReport.severity),
        "overdue": overdue,
    }
