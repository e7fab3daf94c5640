import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel as PydanticModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.api.deps import get_db, require_role
from buildbid.common.enums import PaymentStatus, ProjectStatus, UserRole
from buildbid.common.exceptions import InvalidStateError, NotFoundError
from buildbid.common.logging import get_logger
from buildbid.common.pagination import PaginatedResponse, PaginationParams, paginate
from buildbid.db.models.payment import Payment
from buildbid.db.models.project import Project
from buildbid.db.models.proposal import Proposal
from buildbid.db.models.user import User

router = APIRouter(prefix="/admin", tags=["Admin"])
logger = get_logger("api.admin")


# ---------- Schemas ----------


class PlatformStatsResponse(PydanticModel):
    total_users: int
    users_by_role: dict[str, int]
    projects_by_status: dict[str, int]
    proposals_by_status: dict[str, int]
    open_projects: int
    fees_collected_cents: int


class UserAdminResponse(PydanticModel):
    id: uuid.UUID
    email: str
    full_name: str
    role: str | None
    is_active: bool
    email_verified: bool
    phone_verified: bool
    contractor_verified: bool
    homeowner_verified: bool
    terms_accepted: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UserAdminUpdate(PydanticModel):
    role: UserRole | None = None
    is_active: bool | None = None
    email_verified: bool | None = None
    phone_verified: bool | None = None
    contractor_verified: bool | None = None
    homeowner_verified: bool | None = None


# ---------- Endpoints ----------


@router.get("/stats", response_model=PlatformStatsResponse)
async def platform_stats(
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    async def grouped(column, *where) -> dict[str, int]:
        result = await db.execute(select(column, func.count()).where(*where).group_by(column))
        return {str(key): count for key, count in result.all()}

    users_by_role = await grouped(User.role, User.is_deleted.is_(False))
    projects_by_status = await grouped(Project.status, Project.is_deleted.is_(False))
    proposals_by_status = await grouped(Proposal.status, Proposal.is_deleted.is_(False))

    fees = await db.execute(
        select(func.coalesce(func.sum(Payment.amount_cents), 0)).where(
            Payment.status == PaymentStatus.SUCCEEDED.value, Payment.is_deleted.is_(False)
        )
    )

    return PlatformStatsResponse(
        total_users=sum(users_by_role.values()),
        users_by_role=users_by_role,
        projects_by_status=projects_by_status,
        proposals_by_status=proposals_by_status,
        open_projects=projects_by_status.get(ProjectStatus.OPEN_FOR_PROPOSALS.value, 0),
        fees_collected_cents=fees.scalar() or 0,
    )


@router.get("/users", response_model=PaginatedResponse[UserAdminResponse])
async def list_all_users(
    role: UserRole | None = None,
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    query = select(User).where(User.is_deleted.is_(False))
    if role:
        query = query.where(User.role == role.value)
    query = query.order_by(User.created_at.desc())

    users, total = await paginate(db, query, pagination)
    return PaginatedResponse[UserAdminResponse](
        items=[UserAdminResponse.model_validate(u) for u in users],
        total=total,
        limit=pagination.limit,
        offset=pagination.offset,
    )


@router.patch("/users/{user_id}", response_model=UserAdminResponse)
async def update_user(
    user_id: uuid.UUID,
    body: UserAdminUpdate,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).where(User.id == user_id, User.is_deleted.is_(False)))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User", str(user_id))

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if user.id == current_user.id and (
        changes.get("is_active") is False or changes.get("role", UserRole.ADMIN) != UserRole.ADMIN
    ):
        raise InvalidStateError("Admins cannot demote or deactivate themselves")

    for field, value in changes.items():
        setattr(user, field, value.value if isinstance(value, UserRole) else value)

    await db.flush()
    await db.refresh(user)
    logger.info("Admin %s updated user %s: %s", current_user.id, user.id, ", ".join(sorted(changes)))
    return user
