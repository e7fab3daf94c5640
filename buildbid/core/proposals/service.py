"""Proposal lifecycle: creation, editing and status transitions.

``ProposalService`` is the only code path that writes proposals. Every
method flushes inside the caller's session without committing, so effects
that touch several rows (accepting a proposal and advancing its project)
land in the request's single transaction.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.common.enums import PaymentType, ProjectStatus, ProposalStatus, RejectionReason
from buildbid.common.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from buildbid.common.logging import get_logger
from buildbid.common.pagination import PaginationParams, paginate
from buildbid.core.access.resolver import SessionContext
from buildbid.core.payments.gate import PaymentGate
from buildbid.core.proposals.schemas import (
    ProposalCreate,
    ProposalUpdate,
    check_amounts,
    check_timeline,
    today,
)
from buildbid.core.proposals.workflow import (
    DECIDABLE_STATUSES,
    EDITABLE_STATUSES,
    OPEN_STATUSES,
    apply_transition,
    is_past_expiry,
)
from buildbid.db.models.project import Project
from buildbid.db.models.proposal import Proposal

logger = get_logger("proposals.service")

DUPLICATE_PROPOSAL_MESSAGE = "You already have a proposal for this project"


class ProposalService:
    def __init__(self, gate: PaymentGate | None = None) -> None:
        self.gate = gate or PaymentGate()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _get_project(self, db: AsyncSession, project_id: uuid.UUID) -> Project:
        result = await db.execute(
            select(Project).where(Project.id == project_id, Project.is_deleted.is_(False))
        )
        project = result.scalar_one_or_none()
        if not project:
            raise NotFoundError("Project", str(project_id))
        return project

    async def _get(self, db: AsyncSession, proposal_id: uuid.UUID) -> Proposal:
        result = await db.execute(
            select(Proposal)
            .where(Proposal.id == proposal_id, Proposal.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        )
        proposal = result.scalar_one_or_none()
        if not proposal:
            raise NotFoundError("Proposal", str(proposal_id))
        self._expire_if_stale(proposal)
        return proposal

    def _expire_if_stale(self, proposal: Proposal) -> bool:
        if not is_past_expiry(proposal, today()):
            return False
        apply_transition(proposal, ProposalStatus.EXPIRED)
        logger.info("Proposal %s expired (expiry_date %s)", proposal.id, proposal.expiry_date)
        return True

    def _ensure_project_accepting(self, project: Project) -> None:
        if project.status != ProjectStatus.OPEN_FOR_PROPOSALS.value:
            raise InvalidStateError("This project is not accepting proposals")
        if project.expiry_date is not None and project.expiry_date < today():
            raise InvalidStateError("The proposal window for this project has closed")

    async def _ensure_unlocked(self, db: AsyncSession, ctx: SessionContext) -> None:
        await self.gate.require_unlocked(
            db, ctx.user_id, PaymentType.PROPOSAL_SUBMISSION, role=ctx.role
        )

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    async def create_proposal(
        self, db: AsyncSession, payload: ProposalCreate, ctx: SessionContext
    ) -> Proposal:
        contractor_id = ctx.user_id
        if payload.contractor_id is not None and payload.contractor_id != contractor_id:
            raise ForbiddenError("You can only submit proposals as yourself")

        project = await self._get_project(db, payload.project_id)
        self._ensure_project_accepting(project)

        if project.creator_id == contractor_id:
            raise ForbiddenError("You cannot submit a proposal for your own project")

        existing = await db.execute(
            select(Proposal.id).where(
                Proposal.project_id == project.id,
                Proposal.contractor_id == contractor_id,
                Proposal.status != ProposalStatus.WITHDRAWN.value,
                Proposal.is_deleted.is_(False),
            )
        )
        if existing.first() is not None:
            raise ConflictError(DUPLICATE_PROPOSAL_MESSAGE)

        if payload.submit:
            await self._ensure_unlocked(db, ctx)

        now = datetime.now(timezone.utc)
        status = ProposalStatus.SUBMITTED if payload.submit else ProposalStatus.DRAFT
        proposal = Proposal(
            project_id=project.id,
            contractor_id=contractor_id,
            homeowner_id=project.creator_id,
            title=payload.title,
            description_of_work=payload.description_of_work,
            subtotal_amount=payload.subtotal_amount,
            tax_included=payload.tax_included,
            total_amount=payload.total_amount,
            deposit_amount=payload.deposit_amount,
            deposit_due_on=payload.deposit_due_on,
            proposed_start_date=payload.proposed_start_date,
            proposed_end_date=payload.proposed_end_date,
            expiry_date=payload.expiry_date,
            notes=payload.notes,
            attached_files=list(payload.attached_files),
            visibility=payload.visibility.value,
            status=status.value,
            is_selected=False,
            created_by_id=contractor_id,
            last_modified_by_id=contractor_id,
            last_updated=now,
            submitted_date=now if payload.submit else None,
        )
        db.add(proposal)
        try:
            await db.flush()
        except IntegrityError as e:
            # Two concurrent submissions both passed the pre-check
            logger.warning(
                "Duplicate proposal rejected by store for project %s contractor %s: %s",
                project.id, contractor_id, e.orig,
            )
            raise ConflictError(DUPLICATE_PROPOSAL_MESSAGE) from e

        logger.info(
            "Proposal %s created (%s) by contractor %s on project %s",
            proposal.id, status.value, contractor_id, project.id,
        )
        return await self._get(db, proposal.id)

    async def update_proposal(
        self,
        db: AsyncSession,
        proposal_id: uuid.UUID,
        patch: ProposalUpdate,
        acting_contractor_id: uuid.UUID,
    ) -> Proposal:
        proposal = await self._get(db, proposal_id)

        if proposal.contractor_id != acting_contractor_id:
            raise ForbiddenError()
        if proposal.status not in EDITABLE_STATUSES:
            raise InvalidStateError("Only draft or submitted proposals are editable")

        changes = patch.model_dump(exclude_unset=True)

        def merged(field):
            value = changes.get(field)
            return value if value is not None else getattr(proposal, field)

        try:
            check_amounts(
                merged("subtotal_amount"),
                merged("total_amount"),
                merged("deposit_amount") or 0,
            )
            check_timeline(
                changes.get("proposed_start_date", proposal.proposed_start_date),
                changes.get("proposed_end_date", proposal.proposed_end_date),
            )
        except ValueError as e:
            raise ValidationError(str(e))
        if changes.get("expiry_date") and changes["expiry_date"] < today():
            raise ValidationError("expiry_date cannot be in the past")

        for field, value in changes.items():
            if field == "visibility" and value is not None:
                value = value.value
            setattr(proposal, field, value)

        proposal.last_updated = datetime.now(timezone.utc)
        proposal.last_modified_by_id = acting_contractor_id
        await db.flush()

        logger.info("Proposal %s updated fields: %s", proposal.id, ", ".join(sorted(changes)))
        return await self._get(db, proposal.id)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_proposal(
        self, db: AsyncSession, proposal_id: uuid.UUID, ctx: SessionContext
    ) -> Proposal:
        proposal = await self._get(db, proposal_id)

        is_contractor = proposal.contractor_id == ctx.user_id
        is_homeowner = proposal.project.creator_id == ctx.user_id
        if not (is_contractor or is_homeowner or ctx.is_admin):
            raise ForbiddenError()
        # Drafts stay private to their author
        if proposal.status == ProposalStatus.DRAFT.value and not (is_contractor or ctx.is_admin):
            raise ForbiddenError()

        if is_homeowner and proposal.status == ProposalStatus.SUBMITTED.value:
            apply_transition(proposal, ProposalStatus.VIEWED)
            await db.flush()
            logger.info("Proposal %s viewed by homeowner %s", proposal.id, ctx.user_id)
            return await self._get(db, proposal.id)

        return proposal

    def _base_listing(self) -> Select:
        return select(Proposal).where(Proposal.is_deleted.is_(False))

    def _newest_first(self, query: Select) -> Select:
        return query.order_by(Proposal.created_at.desc(), Proposal.id.desc())

    async def _page(
        self, db: AsyncSession, query: Select, params: PaginationParams
    ) -> tuple[list[Proposal], int]:
        items, total = await paginate(db, self._newest_first(query), params)
        for proposal in items:
            self._expire_if_stale(proposal)
        return items, total

    async def list_for_project(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        ctx: SessionContext,
        params: PaginationParams,
        status: ProposalStatus | None = None,
    ) -> tuple[list[Proposal], int]:
        project = await self._get_project(db, project_id)
        query = self._base_listing().where(Proposal.project_id == project.id)

        if project.creator_id == ctx.user_id or ctx.is_admin:
            query = query.where(Proposal.status != ProposalStatus.DRAFT.value)
        else:
            query = query.where(Proposal.contractor_id == ctx.user_id)

        if status:
            query = query.where(Proposal.status == status.value)
        return await self._page(db, query, params)

    async def list_for_contractor(
        self,
        db: AsyncSession,
        contractor_id: uuid.UUID,
        params: PaginationParams,
        status: ProposalStatus | None = None,
    ) -> tuple[list[Proposal], int]:
        query = self._base_listing().where(Proposal.contractor_id == contractor_id)
        if status:
            query = query.where(Proposal.status == status.value)
        return await self._page(db, query, params)

    async def list_received(
        self,
        db: AsyncSession,
        homeowner_id: uuid.UUID,
        params: PaginationParams,
        project_id: uuid.UUID | None = None,
        status: ProposalStatus | None = None,
    ) -> tuple[list[Proposal], int]:
        query = self._base_listing().where(
            Proposal.homeowner_id == homeowner_id,
            Proposal.status != ProposalStatus.DRAFT.value,
        )
        if project_id:
            query = query.where(Proposal.project_id == project_id)
        if status:
            query = query.where(Proposal.status == status.value)
        return await self._page(db, query, params)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def update_proposal_status(
        self,
        db: AsyncSession,
        proposal_id: uuid.UUID,
        new_status: ProposalStatus,
        acting_user_id: uuid.UUID,
        rejection_reason: RejectionReason | None = None,
        notes: str | None = None,
    ) -> Proposal:
        """Homeowner decision on a proposal: accept or reject."""
        proposal = await self._get(db, proposal_id)
        project = proposal.project

        if project.creator_id != acting_user_id:
            raise ForbiddenError()
        if new_status not in (ProposalStatus.ACCEPTED, ProposalStatus.REJECTED):
            raise ValidationError("status must be one of: accepted, rejected")
        if proposal.status not in DECIDABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot change status of a proposal that is '{proposal.status}'"
            )

        now = datetime.now(timezone.utc)
        if new_status == ProposalStatus.ACCEPTED:
            # One selected proposal per project
            if project.status != ProjectStatus.OPEN_FOR_PROPOSALS.value:
                raise InvalidStateError("This project can no longer accept proposals")
            apply_transition(proposal, ProposalStatus.ACCEPTED, now)
            proposal.is_selected = True
            project.status = ProjectStatus.PROPOSAL_SELECTED.value
            project.decision_date = now.date()
            logger.info("Project %s advanced to proposal_selected", project.id)
        else:
            apply_transition(proposal, ProposalStatus.REJECTED, now)
            proposal.rejected_by_id = acting_user_id
            proposal.rejection_reason = rejection_reason.value if rejection_reason else None
            proposal.rejection_reason_notes = notes

        proposal.last_modified_by_id = acting_user_id
        await db.flush()

        logger.info("Proposal %s %s by homeowner %s", proposal.id, new_status.value, acting_user_id)
        return await self._get(db, proposal.id)

    async def submit_proposal(
        self, db: AsyncSession, proposal_id: uuid.UUID, ctx: SessionContext
    ) -> Proposal:
        proposal = await self._get(db, proposal_id)
        if proposal.contractor_id != ctx.user_id:
            raise ForbiddenError()
        if proposal.status != ProposalStatus.DRAFT.value:
            raise InvalidStateError("Only draft proposals can be submitted")

        self._ensure_project_accepting(proposal.project)
        await self._ensure_unlocked(db, ctx)

        apply_transition(proposal, ProposalStatus.SUBMITTED)
        proposal.last_modified_by_id = ctx.user_id
        await db.flush()

        logger.info("Proposal %s submitted", proposal.id)
        return await self._get(db, proposal.id)

    async def withdraw_proposal(
        self, db: AsyncSession, proposal_id: uuid.UUID, acting_contractor_id: uuid.UUID
    ) -> Proposal:
        proposal = await self._get(db, proposal_id)
        if proposal.contractor_id != acting_contractor_id:
            raise ForbiddenError()
        if proposal.status not in OPEN_STATUSES:
            raise InvalidStateError(f"Cannot withdraw a proposal that is '{proposal.status}'")

        apply_transition(proposal, ProposalStatus.WITHDRAWN)
        proposal.last_modified_by_id = acting_contractor_id
        await db.flush()

        logger.info("Proposal %s withdrawn by contractor %s", proposal.id, acting_contractor_id)
        return await self._get(db, proposal.id)

    async def delete_proposal(
        self, db: AsyncSession, proposal_id: uuid.UUID, acting_contractor_id: uuid.UUID
    ) -> None:
        proposal = await self._get(db, proposal_id)
        if proposal.contractor_id != acting_contractor_id:
            raise ForbiddenError()

        proposal.soft_delete()
        proposal.last_modified_by_id = acting_contractor_id
        await db.flush()
        logger.info("Proposal %s deleted by contractor %s", proposal.id, acting_contractor_id)

    async def expire_stale_proposals(self, db: AsyncSession) -> list[str]:
        result = await db.execute(
            select(Proposal).where(
                Proposal.status.in_(sorted(OPEN_STATUSES)),
                Proposal.expiry_date.is_not(None),
                Proposal.expiry_date < today(),
                Proposal.is_deleted.is_(False),
            )
        )
        expired = [str(p.id) for p in result.scalars().all() if self._expire_if_stale(p)]
        if expired:
            await db.flush()
        return expired
