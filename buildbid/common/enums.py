import enum


class UserRole(str, enum.Enum):
    HOMEOWNER = "homeowner"
    CONTRACTOR = "contractor"
    ADMIN = "admin"


class ProjectStatus(str, enum.Enum):
    DRAFT = "draft"
    OPEN_FOR_PROPOSALS = "open_for_proposals"
    PROPOSAL_SELECTED = "proposal_selected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProjectType(str, enum.Enum):
    NEW_BUILD = "new_build"
    RENOVATION = "renovation"
    REPAIR = "repair"
    ADDITION = "addition"
    DEMOLITION = "demolition"
    LANDSCAPING = "landscaping"
    SPECIALTY = "specialty"
    OTHER = "other"


class TradeCategory(str, enum.Enum):
    ELECTRICAL = "electrical"
    FRAMING = "framing"
    HVAC = "hvac"
    PLUMBING = "plumbing"
    ROOFING = "roofing"
    MASONRY = "masonry"
    CARPENTRY = "carpentry"
    PAINTING = "painting"
    FLOORING = "flooring"
    GENERAL = "general"


class ProjectVisibility(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    INVITATION_ONLY = "invitation_only"


class ProposalStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


class ProposalVisibility(str, enum.Enum):
    PRIVATE = "private"
    SHARED_WITH_TARGET_USER = "shared_with_target_user"
    SHARED_WITH_PARTICIPANT = "shared_with_participant"
    PUBLIC_TO_INVITEES = "public_to_invitees"
    PUBLIC_TO_MARKETPLACE = "public_to_marketplace"
    ADMIN_ONLY = "admin_only"


class RejectionReason(str, enum.Enum):
    INCOMPLETE_PROPOSAL = "incomplete_proposal"
    TOO_EXPENSIVE = "too_expensive"
    TIMELINE_TOO_LONG = "timeline_too_long"
    OUT_OF_SCOPE_ITEMS = "out_of_scope_items"
    OTHER = "other"


class PaymentType(str, enum.Enum):
    PROJECT_CREATION = "project_creation"
    PROPOSAL_SUBMISSION = "proposal_submission"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    REQUIRES_ACTION = "requires_action"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
