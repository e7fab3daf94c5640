"""Role resolution and role-scoped route authorization."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.common.enums import UserRole
from buildbid.common.exceptions import UpstreamError
from buildbid.common.logging import get_logger
from buildbid.config import settings
from buildbid.db.models.user import User

logger = get_logger("access.resolver")


@dataclass(frozen=True)
class SessionContext:
    """Explicit per-request session state handed to handlers."""

    user_id: uuid.UUID
    role: UserRole | None
    email_verified: bool = False
    phone_verified: bool = False
    contractor_verified: bool = False
    homeowner_verified: bool = False
    terms_accepted: bool = False

    @classmethod
    def from_user(cls, user: User) -> SessionContext:
        return cls(
            user_id=user.id,
            role=UserRole(user.role) if user.role else None,
            email_verified=user.email_verified,
            phone_verified=user.phone_verified,
            contractor_verified=user.contractor_verified,
            homeowner_verified=user.homeowner_verified,
            terms_accepted=user.terms_accepted,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class RouteDecision:
    allow: bool
    redirect_to: str | None = None
    pending: bool = False


def home_route(role: UserRole) -> str:
    return f"/{role.value}/dashboard"


async def _lookup_role(db: AsyncSession, user_id: uuid.UUID) -> UserRole | None:
    result = await db.execute(
        select(User.role).where(User.id == user_id, User.is_deleted.is_(False))
    )
    role = result.scalar_one_or_none()
    return UserRole(role) if role else None


async def resolve_role(
    db: AsyncSession, user_id: uuid.UUID, timeout: float | None = None
) -> UserRole | None:
    """Return the persisted role, or None while the profile is incomplete.

    A lookup that outlives the timeout is treated as "role unknown". Store
    failures are raised as UpstreamError so callers can treat the user as
    unauthenticated.
    """
    try:
        return await asyncio.wait_for(
            _lookup_role(db, user_id),
            timeout=timeout if timeout is not None else settings.ROLE_LOOKUP_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.warning("Role lookup timed out for user %s", user_id)
        return None
    except SQLAlchemyError as e:
        logger.error("Role lookup failed for user %s: %s", user_id, e)
        raise UpstreamError("database", "role lookup failed") from e


def authorize_route(requested_role: UserRole, actual_role: UserRole | None) -> RouteDecision:
    if actual_role is None:
        return RouteDecision(allow=False, pending=True)
    if requested_role == actual_role:
        return RouteDecision(allow=True)
    return RouteDecision(allow=False, redirect_to=home_route(actual_role))
