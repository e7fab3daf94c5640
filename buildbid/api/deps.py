import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.common.enums import UserRole
from buildbid.common.exceptions import AuthenticationError, ForbiddenError
from buildbid.common.logging import get_logger
from buildbid.common.security import decode_token
from buildbid.core.access.resolver import SessionContext
from buildbid.db.models.user import User
from buildbid.db.session import async_session_factory

logger = get_logger("api.deps")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def _user_id_from_header(authorization: str | None) -> uuid.UUID:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid authorization header format")

    token = authorization[len("Bearer "):]
    try:
        payload = decode_token(token)
    except ValueError:
        raise AuthenticationError("Invalid or expired token")

    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token type")

    try:
        return uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise AuthenticationError("Invalid token payload")


async def get_current_user(
    authorization: str | None = Header(None, description="Bearer <token>"),
    db: AsyncSession = Depends(get_db),
) -> User:
    user_id = _user_id_from_header(authorization)

    try:
        result = await db.execute(
            select(User).where(User.id == user_id, User.is_deleted.is_(False))
        )
        user = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        # An unreachable store means we cannot vouch for the session
        logger.error("User lookup failed: %s", e)
        raise AuthenticationError("Unable to verify session")

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise ForbiddenError("User account is inactive")

    return user


async def get_session_context(current_user: User = Depends(get_current_user)) -> SessionContext:
    return SessionContext.from_user(current_user)


def require_role(*roles: UserRole):
    allowed = {r.value for r in roles}

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise ForbiddenError(
                f"This action requires one of the following roles: {', '.join(sorted(allowed))}"
            )
        return current_user

    return role_checker
