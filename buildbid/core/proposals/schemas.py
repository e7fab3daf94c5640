import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from buildbid.common.enums import ProposalStatus, ProposalVisibility, RejectionReason


def check_amounts(subtotal: Decimal, total: Decimal, deposit: Decimal) -> None:
    if subtotal > total:
        raise ValueError("subtotal_amount cannot exceed total_amount")
    if deposit > total:
        raise ValueError("deposit_amount cannot exceed total_amount")


def check_timeline(start: date | None, end: date | None) -> None:
    if start and end and end < start:
        raise ValueError("proposed_end_date cannot be before proposed_start_date")


def today() -> date:
    return datetime.now(timezone.utc).date()


def reject_nulls(data: Any, fields: tuple[str, ...]) -> Any:
    """Refuse an explicit null for a column that cannot be cleared."""
    if isinstance(data, dict):
        nulls = sorted(f for f in fields if f in data and data[f] is None)
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
    return data


class ProposalCreate(BaseModel):
    project_id: uuid.UUID
    contractor_id: uuid.UUID | None = None
    title: str = Field(min_length=1, max_length=500)
    description_of_work: str = Field(min_length=1)

    subtotal_amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    tax_included: bool = False
    total_amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    deposit_amount: Decimal = Field(Decimal("0.00"), ge=0, max_digits=14, decimal_places=2)
    deposit_due_on: date | None = None

    proposed_start_date: date | None = None
    proposed_end_date: date | None = None
    expiry_date: date | None = None

    notes: str | None = None
    attached_files: list[str] = []
    visibility: ProposalVisibility = ProposalVisibility.PRIVATE

    # False keeps the proposal as a draft
    submit: bool = True

    @field_validator("expiry_date")
    @classmethod
    def _expiry_not_past(cls, value: date | None) -> date | None:
        if value is not None and value < today():
            raise ValueError("expiry_date cannot be in the past")
        return value

    @model_validator(mode="after")
    def _consistent(self) -> "ProposalCreate":
        check_amounts(self.subtotal_amount, self.total_amount, self.deposit_amount)
        check_timeline(self.proposed_start_date, self.proposed_end_date)
        return self


class ProposalUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=500)
    description_of_work: str | None = Field(None, min_length=1)

    subtotal_amount: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=2)
    tax_included: bool | None = None
    total_amount: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=2)
    deposit_amount: Decimal | None = Field(None, ge=0, max_digits=14, decimal_places=2)
    deposit_due_on: date | None = None

    proposed_start_date: date | None = None
    proposed_end_date: date | None = None
    expiry_date: date | None = None

    notes: str | None = None
    attached_files: list[str] | None = None
    visibility: ProposalVisibility | None = None

    @model_validator(mode="before")
    @classmethod
    def _no_cleared_required_fields(cls, data: Any) -> Any:
        return reject_nulls(
            data,
            (
                "title",
                "description_of_work",
                "subtotal_amount",
                "tax_included",
                "total_amount",
                "deposit_amount",
                "visibility",
            ),
        )


class ProposalStatusUpdate(BaseModel):
    status: ProposalStatus
    rejection_reason: RejectionReason | None = None
    notes: str | None = None
