"""Initial schema - users, projects, proposals, payments, messaging

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _common_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def _user_fk(name: str, nullable: bool = False, index: bool = True) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id"),
        nullable=nullable,
        index=index,
    )


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        *_common_columns(),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("role", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("email_verified", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("phone_verified", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("contractor_verified", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("homeowner_verified", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("terms_accepted", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
    )

    # Projects
    op.create_table(
        "projects",
        *_common_columns(),
        _user_fk("creator_id"),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("statement_of_work", sa.Text, nullable=False),
        sa.Column("budget", sa.Numeric(14, 2), nullable=False),
        sa.Column("category", postgresql.JSONB, nullable=True),
        sa.Column("location", postgresql.JSONB, nullable=True),
        sa.Column("project_type", sa.String(30), nullable=False, server_default="other"),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft", index=True),
        sa.Column("visibility", sa.String(30), nullable=False, server_default="public"),
        sa.Column("start_date", sa.Date, nullable=True),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("expiry_date", sa.Date, nullable=True),
        sa.Column("decision_date", sa.Date, nullable=True),
        sa.Column("permit_required", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("is_verified", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("project_photos", postgresql.JSONB, nullable=True),
        sa.Column("files", postgresql.JSONB, nullable=True),
        sa.CheckConstraint("budget > 0", name="ck_projects_budget_positive"),
    )

    # Proposals
    op.create_table(
        "proposals",
        *_common_columns(),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id"),
            nullable=False,
            index=True,
        ),
        _user_fk("contractor_id"),
        _user_fk("homeowner_id"),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description_of_work", sa.Text, nullable=False),
        sa.Column("subtotal_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("tax_included", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("deposit_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("deposit_due_on", sa.Date, nullable=True),
        sa.Column("proposed_start_date", sa.Date, nullable=True),
        sa.Column("proposed_end_date", sa.Date, nullable=True),
        sa.Column("expiry_date", sa.Date, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft", index=True),
        sa.Column("is_selected", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("submitted_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("viewed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("withdrawn_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        _user_fk("rejected_by_id", nullable=True, index=False),
        sa.Column("rejection_reason", sa.String(30), nullable=True),
        sa.Column("rejection_reason_notes", sa.Text, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("attached_files", postgresql.JSONB, nullable=True),
        sa.Column("visibility", sa.String(30), nullable=False, server_default="private"),
        _user_fk("created_by_id", index=False),
        _user_fk("last_modified_by_id", index=False),
        sa.CheckConstraint("subtotal_amount <= total_amount", name="ck_proposals_subtotal_le_total"),
        sa.CheckConstraint("deposit_amount <= total_amount", name="ck_proposals_deposit_le_total"),
    )
    # One live proposal per contractor per project
    op.create_index(
        "uq_proposals_project_contractor_active",
        "proposals",
        ["project_id", "contractor_id"],
        unique=True,
        postgresql_where=sa.text("status != 'withdrawn' AND is_deleted = false"),
    )

    # Payments
    op.create_table(
        "payments",
        *_common_columns(),
        _user_fk("user_id"),
        sa.Column("payment_type", sa.String(30), nullable=False, index=True),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("amount_cents", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("metadata_json", postgresql.JSONB, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("provisional_until", sa.DateTime(timezone=True), nullable=True),
    )

    # Conversations
    op.create_table(
        "conversations",
        *_common_columns(),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("projects.id"),
            nullable=False,
            index=True,
        ),
        _user_fk("homeowner_id"),
        _user_fk("contractor_id"),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "project_id", "homeowner_id", "contractor_id", name="uq_conversations_participants"
        ),
    )

    # Messages
    op.create_table(
        "messages",
        *_common_columns(),
        sa.Column(
            "conversation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("conversations.id"),
            nullable=False,
            index=True,
        ),
        _user_fk("sender_id"),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("payments")
    op.drop_index("uq_proposals_project_contractor_active", table_name="proposals")
    op.drop_table("proposals")
    op.drop_table("projects")
    op.drop_table("users")
