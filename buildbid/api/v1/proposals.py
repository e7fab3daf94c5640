import uuid
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.api.deps import get_db, get_session_context, require_role
from buildbid.common.enums import ProposalStatus, UserRole
from buildbid.common.pagination import PaginatedResponse, PaginationParams
from buildbid.core.access.resolver import SessionContext
from buildbid.core.proposals.schemas import ProposalCreate, ProposalStatusUpdate, ProposalUpdate
from buildbid.core.proposals.service import ProposalService
from buildbid.db.models.proposal import Proposal
from buildbid.db.models.user import User

router = APIRouter(prefix="/proposals", tags=["Proposals"])


# ---------- Schemas ----------


class ProjectBrief(BaseModel):
    id: uuid.UUID
    title: str
    status: str
    budget: Decimal

    model_config = {"from_attributes": True}


class PartyBrief(BaseModel):
    id: uuid.UUID
    full_name: str
    email: str

    model_config = {"from_attributes": True}


class ProposalResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    contractor_id: uuid.UUID
    homeowner_id: uuid.UUID
    title: str
    description_of_work: str
    subtotal_amount: Decimal
    tax_included: bool
    total_amount: Decimal
    deposit_amount: Decimal
    deposit_due_on: date | None
    proposed_start_date: date | None
    proposed_end_date: date | None
    expiry_date: date | None
    status: str
    is_selected: bool
    submitted_date: datetime | None
    viewed_date: datetime | None
    accepted_date: datetime | None
    rejected_date: datetime | None
    withdrawn_date: datetime | None
    expired_date: datetime | None
    last_updated: datetime | None
    rejected_by_id: uuid.UUID | None
    rejection_reason: str | None
    rejection_reason_notes: str | None
    notes: str | None
    attached_files: list[str] | None
    visibility: str
    created_by_id: uuid.UUID
    last_modified_by_id: uuid.UUID | None
    created_at: datetime
    updated_at: datetime

    project: ProjectBrief | None = None
    contractor: PartyBrief | None = None
    homeowner: PartyBrief | None = None

    model_config = {"from_attributes": True}


def _page(items: list[Proposal], total: int, params: PaginationParams) -> PaginatedResponse[ProposalResponse]:
    return PaginatedResponse[ProposalResponse](
        items=[ProposalResponse.model_validate(p) for p in items],
        total=total,
        limit=params.limit,
        offset=params.offset,
    )


# ---------- Endpoints ----------


@router.post("", response_model=ProposalResponse, status_code=201)
async def create_proposal(
    body: ProposalCreate,
    _: User = Depends(require_role(UserRole.CONTRACTOR)),
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    return await ProposalService().create_proposal(db, body, ctx)


@router.get("/mine", response_model=PaginatedResponse[ProposalResponse])
async def list_my_proposals(
    status: ProposalStatus | None = None,
    pagination: PaginationParams = Depends(),
    _: User = Depends(require_role(UserRole.CONTRACTOR)),
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    items, total = await ProposalService().list_for_contractor(db, ctx.user_id, pagination, status)
    return _page(items, total, pagination)


@router.get("/received", response_model=PaginatedResponse[ProposalResponse])
async def list_received_proposals(
    project_id: uuid.UUID | None = None,
    status: ProposalStatus | None = None,
    pagination: PaginationParams = Depends(),
    _: User = Depends(require_role(UserRole.HOMEOWNER, UserRole.ADMIN)),
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    items, total = await ProposalService().list_received(
        db, ctx.user_id, pagination, project_id=project_id, status=status
    )
    return _page(items, total, pagination)


@router.get("/project/{project_id}", response_model=PaginatedResponse[ProposalResponse])
async def list_project_proposals(
    project_id: uuid.UUID,
    status: ProposalStatus | None = None,
    pagination: PaginationParams = Depends(),
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    items, total = await ProposalService().list_for_project(db, project_id, ctx, pagination, status)
    return _page(items, total, pagination)


@router.get("/{proposal_id}", response_model=ProposalResponse)
async def get_proposal(
    proposal_id: uuid.UUID,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    return await ProposalService().get_proposal(db, proposal_id, ctx)


@router.patch("/{proposal_id}", response_model=ProposalResponse)
async def update_proposal(
    proposal_id: uuid.UUID,
    body: ProposalUpdate,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    return await ProposalService().update_proposal(db, proposal_id, body, ctx.user_id)


@router.post("/{proposal_id}/status", response_model=ProposalResponse)
async def update_proposal_status(
    proposal_id: uuid.UUID,
    body: ProposalStatusUpdate,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    return await ProposalService().update_proposal_status(
        db,
        proposal_id,
        body.status,
        ctx.user_id,
        rejection_reason=body.rejection_reason,
        notes=body.notes,
    )


@router.post("/{proposal_id}/submit", response_model=ProposalResponse)
async def submit_proposal(
    proposal_id: uuid.UUID,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    return await ProposalService().submit_proposal(db, proposal_id, ctx)


@router.post("/{proposal_id}/withdraw", response_model=ProposalResponse)
async def withdraw_proposal(
    proposal_id: uuid.UUID,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    return await ProposalService().withdraw_proposal(db, proposal_id, ctx.user_id)


@router.delete("/{proposal_id}", status_code=204)
async def delete_proposal(
    proposal_id: uuid.UUID,
    ctx: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    await ProposalService().delete_proposal(db, proposal_id, ctx.user_id)
