from datetime import date, datetime, timezone

from buildbid.common.enums import ProposalStatus
from buildbid.common.exceptions import InvalidStateError
from buildbid.db.models.proposal import Proposal

# Plain string values: ORM rows carry str, and str-enum hashing differs from str.
EDITABLE_STATUSES = frozenset({ProposalStatus.DRAFT.value, ProposalStatus.SUBMITTED.value})
OPEN_STATUSES = frozenset({
    ProposalStatus.DRAFT.value,
    ProposalStatus.SUBMITTED.value,
    ProposalStatus.VIEWED.value,
})
DECIDABLE_STATUSES = frozenset({ProposalStatus.SUBMITTED.value, ProposalStatus.VIEWED.value})
TERMINAL_STATUSES = frozenset({
    ProposalStatus.ACCEPTED.value,
    ProposalStatus.REJECTED.value,
    ProposalStatus.WITHDRAWN.value,
    ProposalStatus.EXPIRED.value,
})

VALID_TRANSITIONS = {
    ProposalStatus.DRAFT: [
        ProposalStatus.SUBMITTED,
        ProposalStatus.WITHDRAWN,
        ProposalStatus.EXPIRED,
    ],
    ProposalStatus.SUBMITTED: [
        ProposalStatus.VIEWED,
        ProposalStatus.ACCEPTED,
        ProposalStatus.REJECTED,
        ProposalStatus.WITHDRAWN,
        ProposalStatus.EXPIRED,
    ],
    ProposalStatus.VIEWED: [
        ProposalStatus.ACCEPTED,
        ProposalStatus.REJECTED,
        ProposalStatus.WITHDRAWN,
        ProposalStatus.EXPIRED,
    ],
    ProposalStatus.ACCEPTED: [],
    ProposalStatus.REJECTED: [],
    ProposalStatus.WITHDRAWN: [],
    ProposalStatus.EXPIRED: [],
}

# Audit column stamped on entry to each status
STATUS_TIMESTAMPS = {
    ProposalStatus.SUBMITTED: "submitted_date",
    ProposalStatus.VIEWED: "viewed_date",
    ProposalStatus.ACCEPTED: "accepted_date",
    ProposalStatus.REJECTED: "rejected_date",
    ProposalStatus.WITHDRAWN: "withdrawn_date",
    ProposalStatus.EXPIRED: "expired_date",
}


def check_transition(current: str, new: ProposalStatus) -> None:
    allowed = VALID_TRANSITIONS.get(ProposalStatus(current), [])
    if new not in allowed:
        raise InvalidStateError(
            f"Cannot transition proposal from '{current}' to '{new.value}'"
        )


def apply_transition(proposal: Proposal, new: ProposalStatus, now: datetime | None = None) -> None:
    """Validate and apply a status change, stamping its audit timestamp."""
    check_transition(proposal.status, new)
    now = now or datetime.now(timezone.utc)
    proposal.status = new.value
    setattr(proposal, STATUS_TIMESTAMPS[new], now)
    proposal.last_updated = now


def is_past_expiry(proposal: Proposal, today: date) -> bool:
    return (
        proposal.status in OPEN_STATUSES
        and proposal.expiry_date is not None
        and proposal.expiry_date < today
    )
