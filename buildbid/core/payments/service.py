"""Reconciles Stripe webhook events into payment records."""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.common.enums import PaymentStatus, PaymentType
from buildbid.common.logging import get_logger
from buildbid.db.models.payment import Payment
from buildbid.integrations.stripe_client import GENERIC_DECLINE_MESSAGE

logger = get_logger("payments.service")

TERMINAL_STATUSES = frozenset({
    PaymentStatus.SUCCEEDED.value,
    PaymentStatus.FAILED.value,
    PaymentStatus.CANCELLED.value,
})

# Stripe event type -> target payment status
INTENT_EVENTS = {
    "payment_intent.succeeded": PaymentStatus.SUCCEEDED,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
    "payment_intent.requires_action": PaymentStatus.REQUIRES_ACTION,
    "payment_intent.processing": PaymentStatus.PROCESSING,
    "payment_intent.canceled": PaymentStatus.CANCELLED,
}

PROCESSED = "processed"
DUPLICATE = "duplicate"
IGNORED = "ignored"


def _allowed(current: str, target: PaymentStatus) -> bool:
    if target == PaymentStatus.SUCCEEDED:
        return True
    if current == PaymentStatus.SUCCEEDED.value:
        return False
    if target in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
        return True
    # requires_action / processing never downgrade a settled payment
    return current not in TERMINAL_STATUSES


class PaymentService:
    async def handle_webhook_event(self, db: AsyncSession, event: dict[str, Any]) -> str:
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}

        if event_type in INTENT_EVENTS:
            return await self._apply_intent_event(db, event_type, obj)
        if event_type == "charge.dispute.created":
            return await self._record_dispute(db, obj)

        logger.info("Ignoring unhandled Stripe event %s", event_type)
        return IGNORED

    async def _find(self, db: AsyncSession, payment_intent_id: str) -> Payment | None:
        result = await db.execute(
            select(Payment).where(Payment.stripe_payment_intent_id == payment_intent_id)
        )
        return result.scalar_one_or_none()

    async def _apply_intent_event(
        self, db: AsyncSession, event_type: str, intent: dict[str, Any]
    ) -> str:
        intent_id = intent.get("id")
        if not intent_id:
            logger.warning("Stripe event %s without a payment intent id", event_type)
            return IGNORED

        target = INTENT_EVENTS[event_type]
        payment = await self._find(db, intent_id)

        if payment is None:
            payment = self._from_intent(intent)
            if payment is None:
                logger.warning("Payment intent %s has no BuildBid metadata; ignoring", intent_id)
                return IGNORED
            self._set_status(payment, target, intent)
            try:
                async with db.begin_nested():
                    db.add(payment)
            except IntegrityError:
                # A concurrent delivery inserted the row first
                logger.info("Duplicate %s for payment intent %s", event_type, intent_id)
                return DUPLICATE
            logger.info("Payment intent %s -> %s", intent_id, target.value)
            return PROCESSED

        if payment.status == target.value:
            logger.info("Duplicate %s for payment intent %s", event_type, intent_id)
            return DUPLICATE
        elif not _allowed(payment.status, target):
            logger.info(
                "Ignoring %s for payment intent %s already %s", event_type, intent_id, payment.status
            )
            return IGNORED

        self._set_status(payment, target, intent)
        await db.flush()
        logger.info("Payment intent %s -> %s", intent_id, target.value)
        return PROCESSED

    def _set_status(self, payment: Payment, target: PaymentStatus, intent: dict[str, Any]) -> None:
        payment.status = target.value
        if target == PaymentStatus.SUCCEEDED:
            payment.error_message = None
            payment.provisional_until = None
        elif target in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
            error = intent.get("last_payment_error") or {}
            payment.error_message = (
                error.get("message") or intent.get("cancellation_reason") or GENERIC_DECLINE_MESSAGE
            )
            # Revokes any optimistic unlock granted at confirmation
            payment.provisional_until = None

    def _from_intent(self, intent: dict[str, Any]) -> Payment | None:
        metadata = intent.get("metadata") or {}
        try:
            user_id = uuid.UUID(metadata.get("user_id", ""))
            payment_type = PaymentType(metadata.get("payment_type", ""))
        except ValueError:
            return None

        return Payment(
            user_id=user_id,
            payment_type=payment_type.value,
            stripe_payment_intent_id=intent["id"],
            stripe_customer_id=intent.get("customer"),
            amount_cents=intent.get("amount") or 0,
            currency=intent.get("currency") or "usd",
            status=PaymentStatus.PENDING.value,
            description=intent.get("description"),
            metadata_json={"payment_type": payment_type.value, "source": "webhook"},
        )

    async def _record_dispute(self, db: AsyncSession, dispute: dict[str, Any]) -> str:
        intent_id = dispute.get("payment_intent")
        payment = await self._find(db, intent_id) if intent_id else None
        if payment is None:
            logger.warning("Dispute %s for unknown payment intent %s", dispute.get("id"), intent_id)
            return IGNORED

        metadata = dict(payment.metadata_json or {})
        disputes = list(metadata.get("disputes", []))
        if any(d.get("id") == dispute.get("id") for d in disputes):
            return DUPLICATE

        disputes.append({
            "id": dispute.get("id"),
            "reason": dispute.get("reason"),
            "amount": dispute.get("amount"),
            "status": dispute.get("status"),
            "recorded_at": datetime.now(timezone.utc).isoformat(),
        })
        metadata["disputes"] = disputes
        payment.metadata_json = metadata
        await db.flush()

        logger.warning("Dispute %s opened on payment intent %s", dispute.get("id"), intent_id)
        return PROCESSED
