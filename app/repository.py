# Storage access for the workflows.
# Workflows receive a SqlRepository instead of reaching for a global session, so every query they
# depend on is listed here and the transaction boundary is explicit (repo.transaction()).
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from fastapi import Depends
from sqlalchemy import exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .db import get_db
from .errors import ConflictError, DomainError, ValidationError


# Driver messages that identify a duplicate-key violation (SQLite, MySQL, Postgres)
_DUPLICATE_MARKERS = ("unique constraint", "duplicate entry", "duplicate key")


def _map_integrity_error(exc: IntegrityError) -> DomainError:
    message = str(exc.orig).lower()
    if any(marker in message for marker in _DUPLICATE_MARKERS):
        return ConflictError("Duplicate entry. This record already exists.")
    return ValidationError("Referenced record does not exist.")


class SqlRepository:
    """SQLAlchemy-backed storage for users, listings, rental requests, contracts and issues."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ----------------
    # Transactions
    # ----------------
    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Commit everything done inside the block, or roll all of it back.

        Constraint violations surface as ConflictError/ValidationError rather than raw driver errors.
        """
        try:
            yield
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise _map_integrity_error(exc) from exc
        except Exception:
            self.db.rollback()
            raise

    def _supports_row_locks(self) -> bool:
        # SQLite has no SELECT ... FOR UPDATE; its database-level write lock serializes writers instead
        return str(self.db.bind.dialect.name) != "sqlite"

    def apply_changes(self, obj, changes: dict) -> None:
        """Copy only the given fields onto an ORM object (partial update)."""
        for name, value in changes.items():
            setattr(obj, name, value)
        self.db.add(obj)
        self.db.flush()

    # ----------------
    # Users
    # ----------------
    def get_user(self, user_id: int) -> Optional[models.User]:
        return self.db.get(models.User, user_id)

    def get_user_by_email(self, email: str) -> Optional[models.User]:
        return self.db.query(models.User).filter(models.User.email == email).first()

    def add_user(self, **fields) -> models.User:
        obj = models.User(**fields)
        self.db.add(obj)
        self.db.flush()
        return obj

    def list_users(self, *, role: Optional[str] = None, status: Optional[str] = None) -> List[models.User]:
        q = self.db.query(models.User)
        if role:
            q = q.filter(models.User.role == role)
        if status:
            q = q.filter(models.User.status == status)
        return q.order_by(models.User.created_at.desc(), models.User.id.desc()).all()

    def existing_user_ids(self, user_ids: Iterable[int]) -> Set[int]:
        ids = set(user_ids)
        if not ids:
            return set()
        rows = self.db.execute(select(models.User.id).where(models.User.id.in_(ids))).scalars()
        return set(rows)

    # ----------------
    # Listings
    # ----------------
    def get_listing(self, listing_id: int) -> Optional[models.Listing]:
        return self.db.get(models.Listing, listing_id)

    def add_listing(self, **fields) -> models.Listing:
        obj = models.Listing(**fields)
        self.db.add(obj)
        self.db.flush()
        return obj

    def list_listings(self, status: Optional[str] = None, owner_id: Optional[int] = None) -> List[models.Listing]:
        q = self.db.query(models.Listing)
        if status:
            q = q.filter(models.Listing.status == status)
        if owner_id:
            q = q.filter(models.Listing.owner_user_id == owner_id)
        return q.order_by(models.Listing.created_at.desc(), models.Listing.id.desc()).all()

    # ----------------
    # Rental requests
    # ----------------
    def get_rental_request(self, request_id: int) -> Optional[models.RentalRequest]:
        return self.db.get(models.RentalRequest, request_id)

    def find_pending_request(self, listing_id: int, requester_id: int) -> Optional[models.RentalRequest]:
        return (
            self.db.query(models.RentalRequest)
            .filter(
                models.RentalRequest.listing_id == listing_id,
                models.RentalRequest.requester_user_id == requester_id,
                models.RentalRequest.status == "pending",
            )
            .first()
        )

    def add_rental_request(self, **fields) -> models.RentalRequest:
        obj = models.RentalRequest(**fields)
        self.db.add(obj)
        self.db.flush()
        return obj

    def transition_request(self, request: models.RentalRequest, from_status: str, to_status: str) -> bool:
        """
        Compare-and-set the request status.

        Returns False when the row no longer has `from_status` (someone resolved it first).
        """
        result = self.db.execute(
            update(models.RentalRequest)
            .where(models.RentalRequest.id == request.id, models.RentalRequest.status == from_status)
            .values(status=to_status)
        )
        if result.rowcount != 1:
            return False
        self.db.refresh(request)
        return True

    def list_rental_requests(
        self,
        *,
        requester_id: Optional[int] = None,
        owner_id: Optional[int] = None,
        listing_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[models.RentalRequest]:
        q = self.db.query(models.RentalRequest)
        if owner_id:
            q = q.join(models.Listing, models.Listing.id == models.RentalRequest.listing_id).filter(
                models.Listing.owner_user_id == owner_id
            )
        if requester_id:
            q = q.filter(models.RentalRequest.requester_user_id == requester_id)
        if listing_id:
            q = q.filter(models.RentalRequest.listing_id == listing_id)
        if status:
            q = q.filter(models.RentalRequest.status == status)
        return q.order_by(models.RentalRequest.created_at.desc(), models.RentalRequest.id.desc()).all()

    # ----------------
    # Contracts
    # ----------------
    def get_contract(self, contract_id: int, for_update: bool = False) -> Optional[models.Contract]:
        if not for_update:
            return self.db.get(models.Contract, contract_id)
        q = self.db.query(models.Contract).filter(models.Contract.id == contract_id).populate_existing()
        if self._supports_row_locks():
            q = q.with_for_update()
        return q.first()

    def find_open_contract(self, listing_id: int, landlord_id: int) -> Optional[models.Contract]:
        return (
            self.db.query(models.Contract)
            .filter(
                models.Contract.listing_id == listing_id,
                models.Contract.landlord_user_id == landlord_id,
                models.Contract.status != "cancelled",
            )
            .first()
        )

    def add_contract(self, tenant_ids: Sequence[int], **fields) -> models.Contract:
        """Insert a contract and its tenant rows in the current transaction."""
        contract = models.Contract(**fields)
        self.db.add(contract)
        self.db.flush()
        for tenant_id in tenant_ids:
            self.db.add(models.ContractTenant(contract_id=contract.id, tenant_user_id=tenant_id))
        self.db.flush()
        return contract

    def tenant_ids(self, contract_id: int) -> List[int]:
        rows = self.db.execute(
            select(models.ContractTenant.tenant_user_id)
            .where(models.ContractTenant.contract_id == contract_id)
            .order_by(models.ContractTenant.tenant_user_id)
        ).scalars()
        return list(rows)

    def get_signature(self, contract_id: int, user_id: int) -> Optional[models.ContractSignature]:
        return self.db.get(models.ContractSignature, (contract_id, user_id))

    def add_signature(
        self, contract_id: int, user_id: int, signature_method: str, signed_at: datetime
    ) -> models.ContractSignature:
        obj = models.ContractSignature(
            contract_id=contract_id,
            user_id=user_id,
            signature_method=signature_method,
            signed_at=signed_at,
        )
        self.db.add(obj)
        self.db.flush()
        return obj

    def signatures(self, contract_id: int) -> List[models.ContractSignature]:
        return (
            self.db.query(models.ContractSignature)
            .filter(models.ContractSignature.contract_id == contract_id)
            .order_by(models.ContractSignature.signed_at.asc(), models.ContractSignature.user_id.asc())
            .all()
        )

    def count_signers(self, contract_id: int) -> int:
        return self.db.execute(
            select(func.count(func.distinct(models.ContractSignature.user_id))).where(
                models.ContractSignature.contract_id == contract_id
            )
        ).scalar_one()

    def mark_signed_if_draft(self, contract: models.Contract, signed_at: datetime) -> bool:
        """
        draft -> signed as a conditional update.

        Returns True only for the caller whose update changed the row, so the transition
        happens exactly once even if two final signatures race.
        """
        result = self.db.execute(
            update(models.Contract)
            .where(models.Contract.id == contract.id, models.Contract.status == "draft")
            .values(status="signed", signed_at=signed_at)
        )
        self.db.refresh(contract)
        return result.rowcount == 1

    def list_contracts(
        self,
        *,
        landlord_ids: Iterable[int] = (),
        tenant_ids: Iterable[int] = (),
        status: Optional[str] = None,
    ) -> List[models.Contract]:
        q = self.db.query(models.Contract)
        for landlord_id in landlord_ids:
            q = q.filter(models.Contract.landlord_user_id == landlord_id)
        for tenant_id in tenant_ids:
            q = q.filter(self._has_tenant(models.Contract.id, tenant_id))
        if status:
            q = q.filter(models.Contract.status == status)
        return q.order_by(models.Contract.created_at.desc(), models.Contract.id.desc()).all()

    @staticmethod
    def _has_tenant(contract_id_column, tenant_id: int):
        return exists().where(
            models.ContractTenant.contract_id == contract_id_column,
            models.ContractTenant.tenant_user_id == tenant_id,
        )

    # ----------------
    # Issues
    # ----------------
    def get_issue(self, issue_id: int, for_update: bool = False) -> Optional[models.IssueReport]:
        if not for_update:
            return self.db.get(models.IssueReport, issue_id)
        q = self.db.query(models.IssueReport).filter(models.IssueReport.id == issue_id).populate_existing()
        if self._supports_row_locks():
            q = q.with_for_update()
        return q.first()

    def add_issue(self, **fields) -> models.IssueReport:
        obj = models.IssueReport(**fields)
        self.db.add(obj)
        self.db.flush()
        return obj

    def add_status_history(
        self, issue_id: int, from_status: str, to_status: str, changed_by: int, changed_at: datetime
    ) -> models.IssueStatusHistory:
        obj = models.IssueStatusHistory(
            issue_id=issue_id,
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by,
            changed_at=changed_at,
        )
        self.db.add(obj)
        self.db.flush()
        return obj

    def status_history(self, issue_id: int) -> List[models.IssueStatusHistory]:
        return (
            self.db.query(models.IssueStatusHistory)
            .filter(models.IssueStatusHistory.issue_id == issue_id)
            .order_by(models.IssueStatusHistory.changed_at.asc(), models.IssueStatusHistory.id.asc())
            .all()
        )

    def add_attachment(self, **fields) -> models.IssueAttachment:
        obj = models.IssueAttachment(**fields)
        self.db.add(obj)
        self.db.flush()
        return obj

    def attachments(self, issue_id: int) -> List[models.IssueAttachment]:
        return (
            self.db.query(models.IssueAttachment)
            .filter(models.IssueAttachment.issue_id == issue_id)
            .order_by(models.IssueAttachment.id.asc())
            .all()
        )

    def list_issues(
        self,
        *,
        visible_to_tenant: Optional[int] = None,
        landlord_id: Optional[int] = None,
        contract_id: Optional[int] = None,
        status: Optional[str] = None,
        category: Optional[str] = None,
        severity: Optional[str] = None,
    ) -> List[models.IssueReport]:
        q = self.db.query(models.IssueReport)
        if visible_to_tenant:
            # Issues the tenant reported, or raised on any contract they are a tenant of
            q = q.filter(
                or_(
                    models.IssueReport.reporter_user_id == visible_to_tenant,
                    self._has_tenant(models.IssueReport.contract_id, visible_to_tenant),
                )
            )
        if landlord_id:
            q = q.join(models.Contract, models.Contract.id == models.IssueReport.contract_id).filter(
                models.Contract.landlord_user_id == landlord_id
            )
        if contract_id:
            q = q.filter(models.IssueReport.contract_id == contract_id)
        if status:
            q = q.filter(models.IssueReport.status == status)
        if category:
            q = q.filter(models.IssueReport.category == category)
        if severity:
            q = q.filter(models.IssueReport.severity == severity)
        return q.order_by(models.IssueReport.created_at.desc(), models.IssueReport.id.desc()).all()


    def count_issues_by(self, column) -> Dict[str, int]:
        """Issue counts grouped by one IssueReport column, e.g. category or status."""
        rows = self.db.execute(select(column, func.count(models.IssueReport.id)).group_by(column)).all()
        return {key: count for key, count in rows}

    def unresolved_issue_clocks(self) -> List[Tuple[datetime, int]]:
        """(created_at, sla_hours) for every issue still waiting on a resolution."""
        rows = self.db.execute(
            select(models.IssueReport.created_at, models.IssueReport.sla_hours).where(
                models.IssueReport.status.not_in(("resolved", "rejected"))
            )
        ).all()
        return [(created_at, sla_hours) for created_at, sla_hours in rows]

def get_repository(db: Session = Depends(get_db)) -> SqlRepository:
    """FastAPI dependency: a repository bound to the request-scoped session."""
    return SqlRepository(db)
