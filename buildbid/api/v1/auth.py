import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.api.deps import get_current_user, get_db
from buildbid.common.enums import UserRole
from buildbid.common.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
)
from buildbid.common.logging import get_logger
from buildbid.common.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from buildbid.core.access.resolver import authorize_route, resolve_role
from buildbid.db.models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = get_logger("api.auth")

SELF_SERVICE_ROLES = (UserRole.HOMEOWNER, UserRole.CONTRACTOR)


# ---------- Schemas ----------


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1, max_length=255)
    phone: str | None = None
    # Left empty until the user picks a side during onboarding
    role: UserRole | None = None
    terms_accepted: bool = False


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class ProfileUpdateRequest(BaseModel):
    full_name: str | None = Field(None, min_length=1, max_length=255)
    phone: str | None = None
    role: UserRole | None = None
    terms_accepted: bool | None = None


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    phone: str | None
    role: str | None
    is_active: bool
    email_verified: bool
    phone_verified: bool
    contractor_verified: bool
    homeowner_verified: bool
    terms_accepted: bool

    model_config = {"from_attributes": True}


class RouteCheckResponse(BaseModel):
    allow: bool
    redirect_to: str | None
    pending: bool
    role: str | None


# ---------- Endpoints ----------


@router.post("/register", response_model=UserResponse, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    if body.role is not None and body.role not in SELF_SERVICE_ROLES:
        raise ForbiddenError("Admin accounts cannot be self-registered")

    result = await db.execute(select(User).where(User.email == body.email))
    if result.scalar_one_or_none():
        raise ConflictError("An account with this email already exists")

    user = User(
        email=body.email,
        hashed_password=get_password_hash(body.password),
        full_name=body.full_name,
        phone=body.phone,
        role=body.role.value if body.role else None,
        terms_accepted=body.terms_accepted,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info("Registered user %s (role=%s)", user.id, user.role)
    return user


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(User).where(User.email == body.email, User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise ForbiddenError("Account is inactive")

    access_token = create_access_token({"sub": str(user.id)})
    refresh_token = create_refresh_token({"sub": str(user.id)})

    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    try:
        payload = decode_token(body.refresh_token)
    except ValueError:
        raise AuthenticationError("Invalid refresh token")

    if payload.get("type") != "refresh":
        raise AuthenticationError("Invalid token type")

    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise AuthenticationError("Invalid refresh token")

    result = await db.execute(
        select(User).where(User.id == user_id, User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()
    if not user:
        raise AuthenticationError("User not found")

    access_token = create_access_token({"sub": str(user.id)})
    new_refresh_token = create_refresh_token({"sub": str(user.id)})

    return TokenResponse(access_token=access_token, refresh_token=new_refresh_token)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=UserResponse)
async def update_me(
    body: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if body.role is not None:
        if current_user.role is not None:
            raise InvalidStateError("Role has already been chosen")
        if body.role not in SELF_SERVICE_ROLES:
            raise ForbiddenError("Admin role cannot be self-assigned")
        current_user.role = body.role.value
        logger.info("User %s completed onboarding as %s", current_user.id, body.role.value)

    if body.full_name is not None:
        current_user.full_name = body.full_name
    if body.phone is not None:
        current_user.phone = body.phone
    if body.terms_accepted is not None:
        current_user.terms_accepted = body.terms_accepted

    await db.flush()
    await db.refresh(current_user)
    return current_user


@router.get("/route-check", response_model=RouteCheckResponse)
async def route_check(
    role: UserRole = Query(..., description="Role the requested route belongs to"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    actual = await resolve_role(db, current_user.id)
    decision = authorize_route(role, actual)
    return RouteCheckResponse(
        allow=decision.allow,
        redirect_to=decision.redirect_to,
        pending=decision.pending,
        role=actual.value if actual else None,
    )
