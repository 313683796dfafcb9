# SQLAlchemy ORM models for the marketplace tables (users, listings, rental requests, contracts, issues).
# Keep business logic out of models; workflows in app/workflows own the state transitions.
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    ForeignKey,
    Date,
    DateTime,
    Numeric,
    Index,
    func,
)
from sqlalchemy.orm import declarative_mixin

from .db import Base

# Money columns: fixed-point storage, plain floats at the Python boundary
Money = Numeric(12, 2, asdecimal=False)


@declarative_mixin
class TimestampMixin:
    """Common UTC-aware timestamps automatically managed by the database.

    - created_at: set on insert
    - updated_at: set on insert and updated on each modification
    """
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class User(Base, TimestampMixin):
    """Application user account.

    Roles:
    - landlord: publishes listings, resolves rental requests, owns contracts
    - tenant: requests listings and signs contracts
    - admin: moderates listings, contracts and issue reports
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, index=True)  # "landlord", "tenant" or "admin"
    status = Column(String(20), nullable=False, default="active")  # "active", "suspended" or "deleted"


class Listing(Base, TimestampMixin):
    """Rentable unit published by a landlord.

    Status: pending_verification -> verified -> rented / closed.
    Only verified listings accept rental requests.
    """
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    price = Column(Money, nullable=False)
    deposit = Column(Money, nullable=False, default=0)
    available_from = Column(Date, nullable=True)
    status = Column(String(30), nullable=False, default="pending_verification", index=True)


class RentalRequest(Base, TimestampMixin):
    """A tenant's interest in a listing.

    Status transitions:
    pending -> accepted | rejected | cancelled   (all terminal)
    """
    __tablename__ = "rental_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)
    requester_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    message = Column(Text, nullable=True)
    desired_move_in = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)


class Contract(Base, TimestampMixin):
    """Lease between one landlord and one or more tenants for a listing.

    Status: draft -> signed (once every party has signed), then active / terminated / cancelled
    through explicit updates.
    """
    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)
    landlord_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    rent = Column(Money, nullable=False)
    deposit = Column(Money, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="draft")
    signed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_contracts_status", "status"),
        Index("ix_contracts_listing_landlord", "listing_id", "landlord_user_id"),
    )


class ContractTenant(Base):
    """Tenant membership of a contract (roommates share one contract)."""
    __tablename__ = "contract_tenants"

    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), primary_key=True)
    tenant_user_id = Column(Integer, ForeignKey("users.id"), primary_key=True, index=True)


class ContractSignature(Base):
    """One party's signature on a contract. Append-only; the primary key forbids signing twice."""
    __tablename__ = "contract_signatures"

    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    signed_at = Column(DateTime(timezone=True), nullable=False)
    signature_method = Column(String(50), nullable=False, default="checkbox")


class IssueReport(Base, TimestampMixin):
    """Maintenance/dispute/safety ticket raised against a contract.

    Status: open -> triaged -> in_progress -> resolved | rejected
    """
    __tablename__ = "issue_reports"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=False, index=True)
    reporter_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category = Column(String(30), nullable=False)
    severity = Column(String(20), nullable=False, default="medium")
    description = Column(Text, nullable=False)
    sla_hours = Column(Integer, nullable=False, default=24)
    status = Column(String(20), nullable=False, default="open", index=True)
    assignee_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)


class IssueStatusHistory(Base):
    """Append-only audit trail of issue status transitions."""
    __tablename__ = "issue_status_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    issue_id = Column(Integer, ForeignKey("issue_reports.id", ondelete="CASCADE"), nullable=False)
    from_status = Column(String(20), nullable=False)
    to_status = Column(String(20), nullable=False)
    changed_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_issue_status_history_issue_changed_at", "issue_id", "changed_at"),
    )


class IssueAttachment(Base):
    """File reference uploaded against an issue report."""
    __tablename__ = "issue_attachments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    issue_id = Column(Integer, ForeignKey("issue_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    file_url = Column(String(1024), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
