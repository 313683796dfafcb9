"""initial schema: users, listings, rental requests, contracts, issues

Revision ID: 20261019_090000
Revises:
Create Date: 2026-10-19 09:00:00

Notes:
- contract_signatures uses (contract_id, user_id) as primary key so a party can sign only once.
- issue_status_history is append-only; (issue_id, changed_at) supports timeline reads.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_090000"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        *_timestamps(),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    # Listings table
    op.create_table(
        "listings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("owner_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("deposit", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("available_from", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending_verification"),
        *_timestamps(),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_listings_id", "listings", ["id"])
    op.create_index("ix_listings_owner_user_id", "listings", ["owner_user_id"])
    op.create_index("ix_listings_status", "listings", ["status"])

    # Rental requests table
    op.create_table(
        "rental_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("requester_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("desired_move_in", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        *_timestamps(),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_rental_requests_id", "rental_requests", ["id"])
    op.create_index("ix_rental_requests_listing_id", "rental_requests", ["listing_id"])
    op.create_index("ix_rental_requests_requester_user_id", "rental_requests", ["requester_user_id"])
    op.create_index("ix_rental_requests_status", "rental_requests", ["status"])

    # Contracts and their parties
    op.create_table(
        "contracts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("landlord_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("rent", sa.Numeric(12, 2), nullable=False),
        sa.Column("deposit", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_contracts_id", "contracts", ["id"])
    op.create_index("ix_contracts_listing_id", "contracts", ["listing_id"])
    op.create_index("ix_contracts_landlord_user_id", "contracts", ["landlord_user_id"])
    op.create_index("ix_contracts_status", "contracts", ["status"])
    op.create_index("ix_contracts_listing_landlord", "contracts", ["listing_id", "landlord_user_id"])

    op.create_table(
        "contract_tenants",
        sa.Column(
            "contract_id", sa.Integer(), sa.ForeignKey("contracts.id", ondelete="CASCADE"), primary_key=True
        ),
        sa.Column("tenant_user_id", sa.Integer(), sa.ForeignKey("users.id"), primary_key=True),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_contract_tenants_tenant_user_id", "contract_tenants", ["tenant_user_id"])

    op.create_table(
        "contract_signatures",
        sa.Column(
            "contract_id", sa.Integer(), sa.ForeignKey("contracts.id", ondelete="CASCADE"), primary_key=True
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("signature_method", sa.String(length=50), nullable=False, server_default="checkbox"),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )

    # Issue reports, status history and attachments
    op.create_table(
        "issue_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("contract_id", sa.Integer(), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("reporter_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("category", sa.String(length=30), nullable=False),
        sa.Column("severity", sa.String(length=20), nullable=False, server_default="medium"),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("sla_hours", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
        sa.Column("assignee_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_issue_reports_id", "issue_reports", ["id"])
    op.create_index("ix_issue_reports_contract_id", "issue_reports", ["contract_id"])
    op.create_index("ix_issue_reports_reporter_user_id", "issue_reports", ["reporter_user_id"])
    op.create_index("ix_issue_reports_status", "issue_reports", ["status"])
    op.create_index("ix_issue_reports_assignee_user_id", "issue_reports", ["assignee_user_id"])

    op.create_table(
        "issue_status_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column(
            "issue_id", sa.Integer(), sa.ForeignKey("issue_reports.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("from_status", sa.String(length=20), nullable=False),
        sa.Column("to_status", sa.String(length=20), nullable=False),
        sa.Column("changed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_issue_status_history_id", "issue_status_history", ["id"])
    op.create_index(
        "ix_issue_status_history_issue_changed_at", "issue_status_history", ["issue_id", "changed_at"]
    )

    op.create_table(
        "issue_attachments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column(
            "issue_id", sa.Integer(), sa.ForeignKey("issue_reports.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("uploaded_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("file_url", sa.String(length=1024), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        mysql_engine="InnoDB",
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_issue_attachments_id", "issue_attachments", ["id"])
    op.create_index("ix_issue_attachments_issue_id", "issue_attachments", ["issue_id"])


def downgrade() -> None:
    op.drop_index("ix_issue_attachments_issue_id", table_name="issue_attachments")
    op.drop_index("ix_issue_attachments_id", table_name="issue_attachments")
    op.drop_table("issue_attachments")

    op.drop_index("ix_issue_status_history_issue_changed_at", table_name="issue_status_history")
    op.drop_index("ix_issue_status_history_id", table_name="issue_status_history")
    op.drop_table("issue_status_history")

    for ix in (
        "ix_issue_reports_assignee_user_id",
        "ix_issue_reports_status",
        "ix_issue_reports_reporter_user_id",
        "ix_issue_reports_contract_id",
        "ix_issue_reports_id",
    ):
        op.drop_index(ix, table_name="issue_reports")
    op.drop_table("issue_reports")

    op.drop_table("contract_signatures")

    op.drop_index("ix_contract_tenants_tenant_user_id", table_name="contract_tenants")
    op.drop_table("contract_tenants")

    for ix in (
        "ix_contracts_listing_landlord",
        "ix_contracts_status",
        "ix_contracts_landlord_user_id",
        "ix_contracts_listing_id",
        "ix_contracts_id",
    ):
        op.drop_index(ix, table_name="contracts")
    op.drop_table("contracts")

    for ix in (
        "ix_rental_requests_status",
        "ix_rental_requests_requester_user_id",
        "ix_rental_requests_listing_id",
        "ix_rental_requests_id",
    ):
        op.drop_index(ix, table_name="rental_requests")
    op.drop_table("rental_requests")

    op.drop_index("ix_listings_status", table_name="listings")
    op.drop_index("ix_listings_owner_user_id", table_name="listings")
    op.drop_index("ix_listings_id", table_name="listings")
    op.drop_table("listings")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
