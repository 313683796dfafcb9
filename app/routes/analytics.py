# Admin analytics.
from fastapi import APIRouter, Depends

from .. import models, schemas
from ..repository import SqlRepository, get_repository
from ..workflows import issues as issue_workflow
from .auth import get_current_user

router = APIRouter()


@router.get("/analytics/issues", response_model=schemas.IssueStats)
def issue_stats(
    repo: SqlRepository = Depends(get_repository),
    user: models.User = Depends(get_current_user),
) -> schemas.IssueStats:
    """Issue counts by category, status and severity, and the number past their SLA."""
    return schemas.IssueStats(**issue_workflow.issue_stats(repo, user))
