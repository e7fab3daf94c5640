import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from buildbid.common.enums import ProposalStatus, ProposalVisibility, RejectionReason
from buildbid.db.base import BaseModel

# One live proposal per contractor per project; withdrawn and deleted rows free the slot.
_ACTIVE_PROPOSAL = "status != 'withdrawn' AND is_deleted = false"


class Proposal(BaseModel):
    __tablename__ = "proposals"
    __table_args__ = (
        Index(
            "uq_proposals_project_contractor_active",
            "project_id",
            "contractor_id",
            unique=True,
            postgresql_where=text(_ACTIVE_PROPOSAL),
            sqlite_where=text("status != 'withdrawn' AND is_deleted = 0"),
        ),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    homeowner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description_of_work: Mapped[str] = mapped_column(Text, nullable=False)

    # Financials
    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tax_included: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    deposit_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False
    )
    deposit_due_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Timeline
    proposed_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    proposed_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[ProposalStatus] = mapped_column(
        String(20), nullable=False, default=ProposalStatus.DRAFT.value, index=True
    )
    is_selected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Status audit trail
    submitted_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    viewed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    withdrawn_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expired_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Rejection
    rejected_by_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    rejection_reason: Mapped[RejectionReason | None] = mapped_column(String(30), nullable=True)
    rejection_reason_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    attached_files: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    visibility: Mapped[ProposalVisibility] = mapped_column(
        String(30), nullable=False, default=ProposalVisibility.PRIVATE.value
    )

    created_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    last_modified_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )

    # Relationships
    project = relationship("Project", lazy="selectin")
    contractor = relationship("User", foreign_keys=[contractor_id], lazy="selectin")
    homeowner = relationship("User", foreign_keys=[homeowner_id], lazy="selectin")
