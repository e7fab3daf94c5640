from buildbid.db.models.conversation import Conversation, Message
from buildbid.db.models.payment import Payment
from buildbid.db.models.project import Project
from buildbid.db.models.proposal import Proposal
from buildbid.db.models.user import User

__all__ = [
    "Conversation",
    "Message",
    "Payment",
    "Project",
    "Proposal",
    "User",
]
