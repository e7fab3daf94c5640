import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.api.deps import get_current_user, get_db, require_role
from buildbid.common.enums import (
    PaymentType,
    ProjectStatus,
    ProjectType,
    ProjectVisibility,
    ProposalStatus,
    TradeCategory,
    UserRole,
)
from buildbid.common.exceptions import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from buildbid.common.logging import get_logger
from buildbid.common.pagination import PaginatedResponse, PaginationParams, paginate
from buildbid.core.payments.gate import PaymentGate
from buildbid.core.proposals.schemas import reject_nulls, today
from buildbid.core.proposals.workflow import OPEN_STATUSES
from buildbid.db.models.project import Project
from buildbid.db.models.proposal import Proposal
from buildbid.db.models.user import User

router = APIRouter(prefix="/projects", tags=["Projects"])
logger = get_logger("api.projects")

VALID_TRANSITIONS = {
    ProjectStatus.DRAFT: [ProjectStatus.OPEN_FOR_PROPOSALS, ProjectStatus.CANCELLED],
    # proposal_selected is reached only by accepting a proposal
    ProjectStatus.OPEN_FOR_PROPOSALS: [ProjectStatus.DRAFT, ProjectStatus.CANCELLED],
    ProjectStatus.PROPOSAL_SELECTED: [ProjectStatus.IN_PROGRESS, ProjectStatus.CANCELLED],
    ProjectStatus.IN_PROGRESS: [ProjectStatus.COMPLETED, ProjectStatus.CANCELLED],
    ProjectStatus.COMPLETED: [],
    ProjectStatus.CANCELLED: [],
}

EDITABLE_STATUSES = [ProjectStatus.DRAFT.value, ProjectStatus.OPEN_FOR_PROPOSALS.value]

# Proposals the homeowner can see on a project
VISIBLE_PROPOSAL_STATUSES = [
    ProposalStatus.SUBMITTED.value,
    ProposalStatus.VIEWED.value,
    ProposalStatus.ACCEPTED.value,
    ProposalStatus.REJECTED.value,
    ProposalStatus.EXPIRED.value,
]


# ---------- Schemas ----------


class Location(BaseModel):
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    lat: float | None = None
    lng: float | None = None


class ProjectCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    statement_of_work: str = Field(min_length=1)
    budget: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    category: list[TradeCategory] = []
    location: Location = Location()
    project_type: ProjectType = ProjectType.OTHER
    status: ProjectStatus = ProjectStatus.OPEN_FOR_PROPOSALS
    visibility: ProjectVisibility = ProjectVisibility.PUBLIC
    start_date: date | None = None
    end_date: date | None = None
    expiry_date: date | None = None
    permit_required: bool = False
    project_photos: list[str] = []
    files: list[str] = []

    @model_validator(mode="after")
    def _check(self) -> "ProjectCreateRequest":
        if self.status not in (ProjectStatus.DRAFT, ProjectStatus.OPEN_FOR_PROPOSALS):
            raise ValueError("A new project must be draft or open_for_proposals")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        if self.expiry_date and self.expiry_date < today():
            raise ValueError("expiry_date cannot be in the past")
        return self


class ProjectUpdateRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=500)
    statement_of_work: str | None = Field(None, min_length=1)
    budget: Decimal | None = Field(None, gt=0, max_digits=14, decimal_places=2)
    category: list[TradeCategory] | None = None
    location: Location | None = None
    project_type: ProjectType | None = None
    status: ProjectStatus | None = None
    visibility: ProjectVisibility | None = None
    start_date: date | None = None
    end_date: date | None = None
    expiry_date: date | None = None
    permit_required: bool | None = None
    project_photos: list[str] | None = None
    files: list[str] | None = None

    @model_validator(mode="before")
    @classmethod
    def _no_cleared_required_fields(cls, data: Any) -> Any:
        return reject_nulls(
            data,
            (
                "title",
                "statement_of_work",
                "budget",
                "project_type",
                "status",
                "visibility",
                "permit_required",
            ),
        )


class CreatorSummary(BaseModel):
    id: uuid.UUID
    full_name: str
    homeowner_verified: bool

    model_config = {"from_attributes": True}


class ProposalSummary(BaseModel):
    id: uuid.UUID
    contractor_id: uuid.UUID
    contractor_name: str
    title: str
    total_amount: Decimal
    status: str
    submitted_date: datetime | None


class ProjectResponse(BaseModel):
    id: uuid.UUID
    creator_id: uuid.UUID
    title: str
    statement_of_work: str
    budget: Decimal
    category: list[str]
    location: dict
    project_type: str
    status: str
    visibility: str
    start_date: date | None
    end_date: date | None
    expiry_date: date | None
    decision_date: date | None
    permit_required: bool
    is_verified: bool
    project_photos: list[str]
    files: list[str]
    creator: CreatorSummary | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_orm_instance(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            creator_id=project.creator_id,
            title=project.title,
            statement_of_work=project.statement_of_work,
            budget=project.budget,
            category=project.category or [],
            location=project.location or {},
            project_type=project.project_type,
            status=project.status,
            visibility=project.visibility,
            start_date=project.start_date,
            end_date=project.end_date,
            expiry_date=project.expiry_date,
            decision_date=project.decision_date,
            permit_required=project.permit_required,
            is_verified=project.is_verified,
            project_photos=project.project_photos or [],
            files=project.files or [],
            creator=CreatorSummary.model_validate(project.creator) if project.creator else None,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )


class ProjectDetailResponse(ProjectResponse):
    proposal_count: int = 0
    proposals: list[ProposalSummary] = []


# ---------- Endpoints ----------


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: ProjectCreateRequest,
    current_user: User = Depends(require_role(UserRole.HOMEOWNER, UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    await PaymentGate().require_unlocked(
        db, current_user.id, PaymentType.PROJECT_CREATION, role=UserRole(current_user.role)
    )

    project = Project(
        creator_id=current_user.id,
        title=body.title,
        statement_of_work=body.statement_of_work,
        budget=body.budget,
        category=[c.value for c in body.category],
        location=body.location.model_dump(exclude_none=True),
        project_type=body.project_type.value,
        status=body.status.value,
        visibility=body.visibility.value,
        start_date=body.start_date,
        end_date=body.end_date,
        expiry_date=body.expiry_date,
        permit_required=body.permit_required,
        project_photos=body.project_photos,
        files=body.files,
    )
    db.add(project)
    await db.flush()
    await db.refresh(project)
    logger.info("Project %s created by %s (%s)", project.id, current_user.id, project.status)
    return ProjectResponse.from_orm_instance(project)


@router.get("", response_model=PaginatedResponse[ProjectResponse])
async def list_projects(
    category: TradeCategory | None = None,
    location: str | None = Query(None, description="Matches any part of the structured address"),
    min_budget: Decimal | None = Query(None, ge=0),
    max_budget: Decimal | None = Query(None, ge=0),
    status: ProjectStatus | None = None,
    search: str | None = None,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    if min_budget is not None and max_budget is not None and min_budget > max_budget:
        raise ValidationError("min_budget cannot exceed max_budget")

    query = select(Project).where(
        Project.is_deleted.is_(False),
        Project.visibility == ProjectVisibility.PUBLIC.value,
        Project.status != ProjectStatus.DRAFT.value,
    )
    if status:
        query = query.where(Project.status == status.value)
    if category:
        query = query.where(cast(Project.category, String).contains(f'"{category.value}"'))
    if location:
        query = query.where(cast(Project.location, String).ilike(f"%{location}%"))
    if min_budget is not None:
        query = query.where(Project.budget >= min_budget)
    if max_budget is not None:
        query = query.where(Project.budget <= max_budget)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(Project.title.ilike(pattern), Project.statement_of_work.ilike(pattern))
        )

    query = query.order_by(Project.created_at.desc(), Project.id.desc())
    projects, total = await paginate(db, query, pagination)
    return PaginatedResponse[ProjectResponse](
        items=[ProjectResponse.from_orm_instance(p) for p in projects],
        total=total,
        limit=pagination.limit,
        offset=pagination.offset,
    )


@router.get("/mine", response_model=PaginatedResponse[ProjectResponse])
async def list_my_projects(
    status: ProjectStatus | None = None,
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = select(Project).where(
        Project.creator_id == current_user.id, Project.is_deleted.is_(False)
    )
    if status:
        query = query.where(Project.status == status.value)

    query = query.order_by(Project.created_at.desc(), Project.id.desc())
    projects, total = await paginate(db, query, pagination)
    return PaginatedResponse[ProjectResponse](
        items=[ProjectResponse.from_orm_instance(p) for p in projects],
        total=total,
        limit=pagination.limit,
        offset=pagination.offset,
    )


@router.get("/{project_id}", response_model=ProjectDetailResponse)
async def get_project(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    project = await _get_project(project_id, db)

    result = await db.execute(
        select(Proposal)
        .where(
            Proposal.project_id == project.id,
            Proposal.is_deleted.is_(False),
            Proposal.status.in_(VISIBLE_PROPOSAL_STATUSES),
        )
        .order_by(Proposal.created_at.desc())
    )
    proposals = result.scalars().all()

    detail = ProjectDetailResponse(
        **ProjectResponse.from_orm_instance(project).model_dump(),
        proposal_count=len(proposals),
        proposals=[
            ProposalSummary(
                id=p.id,
                contractor_id=p.contractor_id,
                contractor_name=p.contractor.full_name,
                title=p.title,
                total_amount=p.total_amount,
                status=p.status,
                submitted_date=p.submitted_date,
            )
            for p in proposals
        ],
    )
    return detail


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: uuid.UUID,
    body: ProjectUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await _get_owned_project(project_id, current_user, db)

    changes = body.model_dump(exclude_unset=True, exclude={"status"})
    if changes:
        if project.status not in EDITABLE_STATUSES:
            raise InvalidStateError("Projects can only be edited while draft or open for proposals")

        start = changes.get("start_date", project.start_date)
        end = changes.get("end_date", project.end_date)
        if start and end and end < start:
            raise ValidationError("end_date cannot be before start_date")
        if changes.get("expiry_date") and changes["expiry_date"] < today():
            raise ValidationError("expiry_date cannot be in the past")

        if body.category is not None:
            changes["category"] = [c.value for c in body.category]
        if body.location is not None:
            changes["location"] = body.location.model_dump(exclude_none=True)
        for field in ("project_type", "visibility"):
            if changes.get(field) is not None:
                changes[field] = getattr(body, field).value
        for field, value in changes.items():
            setattr(project, field, value)

    if body.status is not None:
        current_status = ProjectStatus(project.status)
        allowed = VALID_TRANSITIONS.get(current_status, [])
        if body.status not in allowed:
            raise InvalidStateError(
                f"Cannot transition from '{current_status.value}' to '{body.status.value}'"
            )
        if body.status == ProjectStatus.DRAFT:
            live = await db.execute(
                select(func.count(Proposal.id)).where(
                    Proposal.project_id == project.id,
                    Proposal.status.in_(OPEN_STATUSES),
                    Proposal.is_deleted.is_(False),
                )
            )
            if live.scalar():
                raise InvalidStateError("Projects with live proposals cannot return to draft")
        project.status = body.status.value
        logger.info("Project %s moved %s -> %s", project.id, current_status.value, body.status.value)

    await db.flush()
    await db.refresh(project)
    return ProjectResponse.from_orm_instance(project)


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await _get_owned_project(project_id, current_user, db)
    if project.status == ProjectStatus.IN_PROGRESS.value:
        raise InvalidStateError("A project in progress cannot be deleted")

    project.soft_delete()
    await db.flush()
    logger.info("Project %s deleted by %s", project.id, current_user.id)


async def _get_project(project_id: uuid.UUID, db: AsyncSession) -> Project:
    result = await db.execute(
        select(Project).where(Project.id == project_id, Project.is_deleted.is_(False))
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project", str(project_id))
    return project


async def _get_owned_project(project_id: uuid.UUID, user: User, db: AsyncSession) -> Project:
    project = await _get_project(project_id, db)
    if user.role != UserRole.ADMIN.value and project.creator_id != user.id:
        raise ForbiddenError("You do not have access to this project")
    return project
