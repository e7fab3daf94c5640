"""
Seed script for the BuildBid marketplace.

Populates the database with demo data: homeowners, contractors and an admin,
paid platform fees, a few projects in different states, proposals against
them, and one conversation.

Usage:
    python -m buildbid.scripts.seed
"""

import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from buildbid.common.enums import (
    PaymentStatus,
    PaymentType,
    ProjectStatus,
    ProjectType,
    ProposalStatus,
    TradeCategory,
    UserRole,
)
from buildbid.common.security import get_password_hash
from buildbid.core.payments.gate import fee_for
from buildbid.db.models import Conversation, Message, Payment, Project, Proposal, User
from buildbid.db.session import async_session_factory


def _fee(user: User, payment_type: PaymentType) -> Payment:
    return Payment(
        user_id=user.id,
        payment_type=payment_type.value,
        stripe_payment_intent_id=f"pi_seed_{uuid.uuid4().hex[:16]}",
        amount_cents=fee_for(payment_type),
        status=PaymentStatus.SUCCEEDED.value,
        description="Seeded platform fee",
    )


async def main() -> None:
    async with async_session_factory() as session:
        # Skip if already seeded
        result = await session.execute(select(User).where(User.email == "admin@buildbid.io"))
        if result.scalar_one_or_none() is not None:
            print("Database already seeded -- skipping.")
            return

        today = date.today()
        now = datetime.now(timezone.utc)

        # ==================================================================
        # USERS
        # ==================================================================
        hashed = get_password_hash("testpass123")

        sarah = User(
            id=uuid.uuid4(),
            email="sarah@example.com",
            hashed_password=hashed,
            full_name="Sarah Chen",
            phone="(512) 555-0101",
            role=UserRole.HOMEOWNER.value,
            email_verified=True,
            homeowner_verified=True,
            terms_accepted=True,
        )
        marcus = User(
            id=uuid.uuid4(),
            email="marcus@example.com",
            hashed_password=hashed,
            full_name="Marcus Johnson",
            phone="(512) 555-0202",
            role=UserRole.HOMEOWNER.value,
            terms_accepted=True,
        )
        summit = User(
            id=uuid.uuid4(),
            email="bids@summitbuilders.example.com",
            hashed_password=hashed,
            full_name="Summit Builders LLC",
            phone="(512) 555-0303",
            role=UserRole.CONTRACTOR.value,
            email_verified=True,
            contractor_verified=True,
            terms_accepted=True,
        )
        lonestar = User(
            id=uuid.uuid4(),
            email="office@lonestarplumbing.example.com",
            hashed_password=hashed,
            full_name="Lone Star Plumbing",
            phone="(512) 555-0404",
            role=UserRole.CONTRACTOR.value,
            terms_accepted=True,
        )
        admin = User(
            id=uuid.uuid4(),
            email="admin@buildbid.io",
            hashed_password=hashed,
            full_name="Platform Admin",
            role=UserRole.ADMIN.value,
            email_verified=True,
            terms_accepted=True,
        )
        users = [sarah, marcus, summit, lonestar, admin]
        session.add_all(users)
        await session.flush()

        # ==================================================================
        # FEES
        # ==================================================================
        session.add_all(
            [
                _fee(sarah, PaymentType.PROJECT_CREATION),
                _fee(summit, PaymentType.PROPOSAL_SUBMISSION),
                _fee(lonestar, PaymentType.PROPOSAL_SUBMISSION),
            ]
        )

        # ==================================================================
        # PROJECTS
        # ==================================================================
        kitchen = Project(
            id=uuid.uuid4(),
            creator_id=sarah.id,
            title="Kitchen Remodel",
            statement_of_work=(
                "Full gut of a 1990s kitchen: remove soffits, new shaker cabinets, "
                "quartz counters, LVP flooring and a relocated sink on the island."
            ),
            budget=Decimal("48000.00"),
            category=[TradeCategory.CARPENTRY.value, TradeCategory.PLUMBING.value, TradeCategory.FLOORING.value],
            location={"city": "Austin", "state": "TX", "zip": "78704"},
            project_type=ProjectType.RENOVATION.value,
            status=ProjectStatus.OPEN_FOR_PROPOSALS.value,
            start_date=today + timedelta(days=30),
            end_date=today + timedelta(days=90),
            expiry_date=today + timedelta(days=21),
        )
        bathroom = Project(
            id=uuid.uuid4(),
            creator_id=sarah.id,
            title="Primary Bath Refresh",
            statement_of_work="Replace vanity and fixtures, retile the shower surround.",
            budget=Decimal("15000.00"),
            category=[TradeCategory.PLUMBING.value],
            location={"city": "Austin", "state": "TX", "zip": "78704"},
            project_type=ProjectType.RENOVATION.value,
            status=ProjectStatus.PROPOSAL_SELECTED.value,
            decision_date=today - timedelta(days=2),
        )
        deck = Project(
            id=uuid.uuid4(),
            creator_id=marcus.id,
            title="Backyard Deck",
            statement_of_work="New 16x20 composite deck with stairs and railing.",
            budget=Decimal("22000.00"),
            category=[TradeCategory.CARPENTRY.value],
            location={"city": "Round Rock", "state": "TX", "zip": "78664"},
            project_type=ProjectType.ADDITION.value,
            status=ProjectStatus.DRAFT.value,
        )
        session.add_all([kitchen, bathroom, deck])
        await session.flush()

        # ==================================================================
        # PROPOSALS
        # ==================================================================
        proposals = [
            Proposal(
                project_id=kitchen.id,
                contractor_id=summit.id,
                homeowner_id=sarah.id,
                title="Kitchen remodel - full scope",
                description_of_work="Demo, cabinets, counters, flooring and plumbing relocation.",
                subtotal_amount=Decimal("44000.00"),
                tax_included=True,
                total_amount=Decimal("46750.00"),
                deposit_amount=Decimal("5000.00"),
                proposed_start_date=today + timedelta(days=35),
                proposed_end_date=today + timedelta(days=95),
                expiry_date=today + timedelta(days=14),
                status=ProposalStatus.VIEWED.value,
                submitted_date=now - timedelta(days=3),
                viewed_date=now - timedelta(days=1),
                last_updated=now - timedelta(days=1),
                created_by_id=summit.id,
                last_modified_by_id=summit.id,
            ),
            Proposal(
                project_id=kitchen.id,
                contractor_id=lonestar.id,
                homeowner_id=sarah.id,
                title="Sink relocation and rough-in",
                description_of_work="Plumbing portion only, island sink and dishwasher.",
                subtotal_amount=Decimal("6200.00"),
                total_amount=Decimal("6200.00"),
                expiry_date=today + timedelta(days=10),
                status=ProposalStatus.SUBMITTED.value,
                submitted_date=now - timedelta(hours=6),
                last_updated=now - timedelta(hours=6),
                created_by_id=lonestar.id,
                last_modified_by_id=lonestar.id,
            ),
            Proposal(
                project_id=bathroom.id,
                contractor_id=lonestar.id,
                homeowner_id=sarah.id,
                title="Bath refresh",
                description_of_work="Fixtures, vanity and shower tile.",
                subtotal_amount=Decimal("13100.00"),
                total_amount=Decimal("13900.00"),
                deposit_amount=Decimal("2000.00"),
                status=ProposalStatus.ACCEPTED.value,
                is_selected=True,
                submitted_date=now - timedelta(days=9),
                viewed_date=now - timedelta(days=8),
                accepted_date=now - timedelta(days=2),
                last_updated=now - timedelta(days=2),
                created_by_id=lonestar.id,
                last_modified_by_id=lonestar.id,
            ),
        ]
        session.add_all(proposals)

        # ==================================================================
        # MESSAGES
        # ==================================================================
        conversation = Conversation(
            id=uuid.uuid4(),
            project_id=kitchen.id,
            homeowner_id=sarah.id,
            contractor_id=summit.id,
            last_message_at=now - timedelta(hours=2),
        )
        session.add(conversation)
        await session.flush()
        session.add_all(
            [
                Message(
                    conversation_id=conversation.id,
                    sender_id=summit.id,
                    content="Could we schedule a walkthrough before finalizing the cabinet layout?",
                ),
                Message(
                    conversation_id=conversation.id,
                    sender_id=sarah.id,
                    content="Thursday afternoon works for me.",
                    read_at=now - timedelta(hours=1),
                ),
            ]
        )

        await session.commit()

        print(f"Seeded: {len(users)} users, 3 projects, {len(proposals)} proposals, 1 conversation")


if __name__ == "__main__":
    asyncio.run(main())
