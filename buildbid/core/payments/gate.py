"""One-time fee gate in front of project creation and proposal submission."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.common.enums import PaymentStatus, PaymentType, UserRole
from buildbid.common.exceptions import ForbiddenError, NotFoundError, PaymentRequiredError
from buildbid.common.logging import get_logger
from buildbid.config import settings
from buildbid.db.models.payment import Payment
from buildbid.db.models.user import User
from buildbid.integrations.stripe_client import GENERIC_DECLINE_MESSAGE, StripeClient

logger = get_logger("payments.gate")

# Statuses that can never carry a provisional unlock
REVOKED_STATUSES = frozenset({PaymentStatus.FAILED.value, PaymentStatus.CANCELLED.value})

PAYMENT_REQUIRED_MESSAGES = {
    PaymentType.PROJECT_CREATION: "A one-time project creation fee is required before posting a project",
    PaymentType.PROPOSAL_SUBMISSION: "A one-time proposal submission fee is required before submitting proposals",
}


def fee_for(payment_type: PaymentType) -> int:
    if payment_type == PaymentType.PROJECT_CREATION:
        return settings.PROJECT_CREATION_FEE_CENTS
    return settings.PROPOSAL_SUBMISSION_FEE_CENTS


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def provisionally_unlocked(payment: Payment, now: datetime) -> bool:
    until = as_utc(payment.provisional_until)
    return (
        until is not None
        and until > now
        and payment.status not in REVOKED_STATUSES
    )


class PaymentGate:
    def __init__(self, stripe: StripeClient | None = None) -> None:
        self.stripe = stripe or StripeClient()

    async def is_unlocked(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        payment_type: PaymentType,
        role: UserRole | None = None,
    ) -> bool:
        if not settings.PAYMENT_GATE_ENABLED or role == UserRole.ADMIN:
            return True

        result = await db.execute(
            select(Payment).where(
                Payment.user_id == user_id,
                Payment.payment_type == payment_type.value,
                Payment.is_deleted.is_(False),
            )
        )
        payments = result.scalars().all()
        now = datetime.now(timezone.utc)
        return any(
            p.status == PaymentStatus.SUCCEEDED.value or provisionally_unlocked(p, now)
            for p in payments
        )

    async def require_unlocked(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        payment_type: PaymentType,
        role: UserRole | None = None,
    ) -> None:
        if not await self.is_unlocked(db, user_id, payment_type, role=role):
            logger.info("Blocked %s for user %s: fee not paid", payment_type.value, user_id)
            raise PaymentRequiredError(PAYMENT_REQUIRED_MESSAGES[payment_type])

    async def create_charge_intent(
        self,
        db: AsyncSession,
        user: User,
        payment_type: PaymentType,
        amount_cents: int | None = None,
        description: str | None = None,
    ) -> tuple[Payment, str]:
        """Start a one-time charge and return the pending record and client secret."""
        amount = amount_cents or fee_for(payment_type)
        description = description or f"BuildBid {payment_type.value.replace('_', ' ')} fee"

        if not user.stripe_customer_id:
            customer = await self.stripe.create_customer(
                email=user.email, name=user.full_name, metadata={"user_id": str(user.id)}
            )
            user.stripe_customer_id = customer["id"]

        intent = await self.stripe.create_payment_intent(
            amount_cents=amount,
            currency=settings.PAYMENT_CURRENCY,
            customer_id=user.stripe_customer_id,
            description=description,
            metadata={"user_id": str(user.id), "payment_type": payment_type.value},
        )

        payment = Payment(
            user_id=user.id,
            payment_type=payment_type.value,
            stripe_payment_intent_id=intent["id"],
            stripe_customer_id=user.stripe_customer_id,
            amount_cents=amount,
            currency=settings.PAYMENT_CURRENCY,
            status=PaymentStatus.PENDING.value,
            description=description,
            metadata_json={"payment_type": payment_type.value},
        )
        db.add(payment)
        await db.flush()

        logger.info(
            "Payment intent %s created for user %s (%s, %d cents)",
            intent["id"], user.id, payment_type.value, amount,
        )
        return await self._get_by_intent(db, intent["id"]), intent["client_secret"]

    async def confirm_charge(
        self, db: AsyncSession, user: User, payment_intent_id: str
    ) -> Payment:
        """Record the client-side confirmation of a PaymentIntent.

        A succeeded intent earns a provisional unlock that lasts
        PAYMENT_PROVISIONAL_TTL_MINUTES; the record itself only becomes
        succeeded once the webhook arrives.
        """
        payment = await self._get_by_intent(db, payment_intent_id)
        if payment.user_id != user.id:
            raise ForbiddenError()

        intent = await self.stripe.retrieve_payment_intent(payment_intent_id)
        intent_status = intent.get("status")

        if intent_status == "succeeded":
            if payment.status != PaymentStatus.SUCCEEDED.value:
                payment.provisional_until = datetime.now(timezone.utc) + timedelta(
                    minutes=settings.PAYMENT_PROVISIONAL_TTL_MINUTES
                )
                if payment.status == PaymentStatus.PENDING.value:
                    payment.status = PaymentStatus.PROCESSING.value
            logger.info("Payment %s confirmed by client, provisional unlock granted", payment_intent_id)
        elif intent_status in ("requires_payment_method", "canceled"):
            error = intent.get("last_payment_error") or {}
            payment.status = (
                PaymentStatus.CANCELLED.value if intent_status == "canceled" else PaymentStatus.FAILED.value
            )
            payment.error_message = error.get("message") or GENERIC_DECLINE_MESSAGE
            payment.provisional_until = None
            logger.warning("Payment %s not completed: %s", payment_intent_id, payment.error_message)
        elif intent_status == "requires_action":
            payment.status = PaymentStatus.REQUIRES_ACTION.value
        elif intent_status == "processing":
            payment.status = PaymentStatus.PROCESSING.value

        await db.flush()
        return await self._get_by_intent(db, payment_intent_id)

    async def _get_by_intent(self, db: AsyncSession, payment_intent_id: str) -> Payment:
        result = await db.execute(
            select(Payment)
            .where(Payment.stripe_payment_intent_id == payment_intent_id)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment", payment_intent_id)
        return payment
