import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel as PydanticModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.api.deps import get_current_user, get_db
from buildbid.common.enums import PaymentType, UserRole
from buildbid.common.exceptions import ForbiddenError, ValidationError
from buildbid.common.logging import get_logger
from buildbid.common.pagination import PaginatedResponse, PaginationParams, paginate
from buildbid.config import settings
from buildbid.core.payments.gate import PaymentGate, fee_for
from buildbid.core.payments.service import PaymentService
from buildbid.db.models.payment import Payment
from buildbid.db.models.user import User
from buildbid.integrations.stripe_client import StripeClient

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger("api.payments")

# Which role pays which fee
FEE_ROLES = {
    PaymentType.PROJECT_CREATION: UserRole.HOMEOWNER.value,
    PaymentType.PROPOSAL_SUBMISSION: UserRole.CONTRACTOR.value,
}


# ---------- Schemas ----------


class CreatePaymentIntentRequest(PydanticModel):
    payment_type: PaymentType


class ConfirmPaymentRequest(PydanticModel):
    payment_intent_id: str


class PaymentResponse(PydanticModel):
    id: uuid.UUID
    user_id: uuid.UUID
    payment_type: str
    amount_cents: int
    currency: str
    status: str
    stripe_payment_intent_id: str
    description: str | None
    error_message: str | None
    provisional_until: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentIntentResponse(PydanticModel):
    payment: PaymentResponse
    client_secret: str
    publishable_key: str


class PaymentStatusResponse(PydanticModel):
    payment_type: str
    unlocked: bool
    amount_cents: int
    currency: str


# ---------- Endpoints ----------


@router.post("/intent", response_model=PaymentIntentResponse, status_code=201)
async def create_payment_intent(
    body: CreatePaymentIntentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if current_user.role != FEE_ROLES[body.payment_type]:
        raise ForbiddenError(f"The {body.payment_type.value} fee does not apply to your account")

    payment, client_secret = await PaymentGate(StripeClient()).create_charge_intent(
        db, current_user, body.payment_type
    )
    return PaymentIntentResponse(
        payment=PaymentResponse.model_validate(payment),
        client_secret=client_secret,
        publishable_key=settings.STRIPE_PUBLISHABLE_KEY,
    )


@router.post("/confirm", response_model=PaymentResponse)
async def confirm_payment(
    body: ConfirmPaymentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await PaymentGate(StripeClient()).confirm_charge(db, current_user, body.payment_intent_id)


@router.get("/status", response_model=PaymentStatusResponse)
async def payment_status(
    payment_type: PaymentType = Query(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    role = UserRole(current_user.role) if current_user.role else None
    unlocked = await PaymentGate().is_unlocked(db, current_user.id, payment_type, role=role)
    return PaymentStatusResponse(
        payment_type=payment_type.value,
        unlocked=unlocked,
        amount_cents=fee_for(payment_type),
        currency=settings.PAYMENT_CURRENCY,
    )


@router.get("", response_model=PaginatedResponse[PaymentResponse])
async def list_payments(
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select(Payment)
        .where(Payment.user_id == current_user.id, Payment.is_deleted.is_(False))
        .order_by(Payment.created_at.desc())
    )
    payments, total = await paginate(db, query, pagination)
    return PaginatedResponse[PaymentResponse](
        items=[PaymentResponse.model_validate(p) for p in payments],
        total=total,
        limit=pagination.limit,
        offset=pagination.offset,
    )


@router.post("/webhook")
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Handle Stripe webhook events."""
    payload = await request.body()
    sig = request.headers.get("stripe-signature", "")

    stripe = StripeClient()
    try:
        event = stripe.verify_webhook_signature(payload, sig)
    except ValueError as e:
        logger.warning("Rejected Stripe webhook: %s", e)
        raise ValidationError("Invalid webhook signature")

    outcome = await PaymentService().handle_webhook_event(db, event)
    return {"status": "received", "outcome": outcome}
