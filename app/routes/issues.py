from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .. import models, schemas
from ..events import EventBus, get_event_bus
from ..repository import SqlRepository, get_repository
from ..workflows import issues as workflow
from .auth import get_current_user, limit_by_actor

router = APIRouter()


@router.post(
    "/issues",
    response_model=schemas.IssueResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_by_actor("issue"))],
)
def report_issue(
    payload: schemas.IssueCreate,
    repo: SqlRepository = Depends(get_repository),
    events: EventBus = Depends(get_event_bus),
    user: models.User = Depends(get_current_user),
) -> schemas.IssueResponse:
    issue = workflow.create_issue(repo, events, user, payload)
    return schemas.IssueResponse(
        message="Issue reported successfully", issue=schemas.IssueRead.model_validate(issue)
    )


@router.get("/issues", response_model=schemas.IssueList)
def list_issues(
    contract_id: Optional[int] = Query(None, ge=1),
    status_filter: Optional[schemas.IssueStatus] = Query(None, alias="status"),
    category: Optional[schemas.IssueCategory] = Query(None),
    severity: Optional[schemas.IssueSeverity] = Query(None),
    repo: SqlRepository = Depends(get_repository),
    user: models.User = Depends(get_current_user),
) -> schemas.IssueList:
    items = workflow.list_issues(
        repo, user, contract_id=contract_id, status=status_filter, category=category, severity=severity
    )
    return schemas.IssueList(issues=[schemas.IssueRead.model_validate(i) for i in items])


@router.get("/issues/{issue_id}", response_model=schemas.IssueDetailResponse)
def get_issue(
    issue_id: int,
    repo: SqlRepository = Depends(get_repository),
    user: models.User = Depends(get_current_user),
) -> schemas.IssueDetailResponse:
    issue, history, attachments = workflow.get_issue(repo, user, issue_id)
    detail = schemas.IssueDetail.model_validate(issue).model_copy(
        update={
            "status_history": [schemas.IssueStatusHistoryRead.model_validate(h) for h in history],
            "attachments": [schemas.AttachmentRead.model_validate(a) for a in attachments],
        }
    )
    return schemas.IssueDetailResponse(issue=detail)


@router.put(
    "/issues/{issue_id}/status",
    response_model=schemas.IssueResponse,
    dependencies=[Depends(limit_by_actor("write"))],
)
def update_issue_status(
    issue_id: int,
    payload: schemas.IssueStatusUpdate,
    repo: SqlRepository = Depends(get_repository),
    events: EventBus = Depends(get_event_bus),
    user: models.User = Depends(get_current_user),
) -> schemas.IssueResponse:
    issue = workflow.update_issue_status(repo, events, user, issue_id, payload)
    return schemas.IssueResponse(
        message="Issue updated successfully", issue=schemas.IssueRead.model_validate(issue)
    )


@router.post(
    "/issues/{issue_id}/attachments",
    response_model=schemas.AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_by_actor("issue"))],
)
def add_attachment(
    issue_id: int,
    payload: schemas.AttachmentCreate,
    repo: SqlRepository = Depends(get_repository),
    events: EventBus = Depends(get_event_bus),
    user: models.User = Depends(get_current_user),
) -> schemas.AttachmentResponse:
    attachment = workflow.add_attachment(repo, events, user, issue_id, payload.file_url)
    return schemas.AttachmentResponse(
        message="Attachment added successfully",
        attachment=schemas.AttachmentRead.model_validate(attachment),
    )
