import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from buildbid.api.deps import get_current_user, get_db
from buildbid.common.enums import UserRole
from buildbid.common.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from buildbid.common.logging import get_logger
from buildbid.common.pagination import PaginatedResponse, PaginationParams, paginate
from buildbid.db.models.conversation import Conversation, Message
from buildbid.db.models.project import Project
from buildbid.db.models.user import User

router = APIRouter(prefix="/messages", tags=["Messages"])
logger = get_logger("api.messages")


# ---------- Schemas ----------


class ConversationCreateRequest(BaseModel):
    project_id: uuid.UUID
    # Required when the homeowner starts the thread
    contractor_id: uuid.UUID | None = None


class MessageCreateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class ParticipantBrief(BaseModel):
    id: uuid.UUID
    full_name: str

    model_config = {"from_attributes": True}


class ConversationResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    project_title: str
    homeowner: ParticipantBrief
    contractor: ParticipantBrief
    last_message_at: datetime | None
    created_at: datetime

    @classmethod
    def from_orm_instance(cls, conversation: Conversation) -> "ConversationResponse":
        return cls(
            id=conversation.id,
            project_id=conversation.project_id,
            project_title=conversation.project.title,
            homeowner=ParticipantBrief.model_validate(conversation.homeowner),
            contractor=ParticipantBrief.model_validate(conversation.contractor),
            last_message_at=conversation.last_message_at,
            created_at=conversation.created_at,
        )


class MessageResponse(BaseModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    read_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    unread: int


class MarkReadResponse(BaseModel):
    updated: int


# ---------- Endpoints ----------


@router.post("/conversations", response_model=ConversationResponse)
async def create_or_get_conversation(
    body: ConversationCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Project).where(Project.id == body.project_id, Project.is_deleted.is_(False))
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project", str(body.project_id))

    if project.creator_id == current_user.id:
        if body.contractor_id is None:
            raise ValidationError("contractor_id is required")
        contractor_id = body.contractor_id
        contractor = await db.get(User, contractor_id)
        if not contractor or contractor.is_deleted or contractor.role != UserRole.CONTRACTOR.value:
            raise NotFoundError("Contractor", str(contractor_id))
    elif current_user.role == UserRole.CONTRACTOR.value:
        if body.contractor_id not in (None, current_user.id):
            raise ForbiddenError()
        contractor_id = current_user.id
    else:
        raise ForbiddenError()

    existing = await _find_conversation(db, project.id, project.creator_id, contractor_id)
    if existing:
        return ConversationResponse.from_orm_instance(existing)

    conversation = Conversation(
        project_id=project.id,
        homeowner_id=project.creator_id,
        contractor_id=contractor_id,
    )
    db.add(conversation)
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError("Conversation already exists") from e

    logger.info("Conversation %s opened on project %s", conversation.id, project.id)
    conversation = await _find_conversation(db, project.id, project.creator_id, contractor_id)
    return ConversationResponse.from_orm_instance(conversation)


@router.get("/conversations", response_model=PaginatedResponse[ConversationResponse])
async def list_conversations(
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select(Conversation)
        .where(
            or_(
                Conversation.homeowner_id == current_user.id,
                Conversation.contractor_id == current_user.id,
            ),
            Conversation.is_deleted.is_(False),
        )
        .order_by(func.coalesce(Conversation.last_message_at, Conversation.created_at).desc())
    )
    conversations, total = await paginate(db, query, pagination)
    return PaginatedResponse[ConversationResponse](
        items=[ConversationResponse.from_orm_instance(c) for c in conversations],
        total=total,
        limit=pagination.limit,
        offset=pagination.offset,
    )


@router.get("/conversations/{conversation_id}", response_model=PaginatedResponse[MessageResponse])
async def list_messages(
    conversation_id: uuid.UUID,
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await _get_participating_conversation(db, conversation_id, current_user)
    query = (
        select(Message)
        .where(Message.conversation_id == conversation.id, Message.is_deleted.is_(False))
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    messages, total = await paginate(db, query, pagination)
    return PaginatedResponse[MessageResponse](
        items=[MessageResponse.model_validate(m) for m in messages],
        total=total,
        limit=pagination.limit,
        offset=pagination.offset,
    )


@router.post(
    "/conversations/{conversation_id}/messages", response_model=MessageResponse, status_code=201
)
async def send_message(
    conversation_id: uuid.UUID,
    body: MessageCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await _get_participating_conversation(db, conversation_id, current_user)

    message = Message(
        conversation_id=conversation.id,
        sender_id=current_user.id,
        content=body.content,
    )
    db.add(message)
    conversation.last_message_at = datetime.now(timezone.utc)
    await db.flush()
    await db.refresh(message)
    return message


@router.post("/conversations/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_as_read(
    conversation_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await _get_participating_conversation(db, conversation_id, current_user)
    result = await db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation.id,
            Message.sender_id != current_user.id,
            Message.read_at.is_(None),
            Message.is_deleted.is_(False),
        )
        .values(read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return MarkReadResponse(updated=result.rowcount or 0)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(func.count(Message.id))
        .join(Conversation, Conversation.id == Message.conversation_id)
        .where(
            or_(
                Conversation.homeowner_id == current_user.id,
                Conversation.contractor_id == current_user.id,
            ),
            Message.sender_id != current_user.id,
            Message.read_at.is_(None),
            Message.is_deleted.is_(False),
        )
    )
    return UnreadCountResponse(unread=result.scalar() or 0)


@router.delete("/{message_id}", status_code=204)
async def delete_message(
    message_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Message).where(Message.id == message_id, Message.is_deleted.is_(False))
    )
    message = result.scalar_one_or_none()
    if not message:
        raise NotFoundError("Message", str(message_id))
    if message.sender_id != current_user.id:
        raise ForbiddenError("You can only delete your own messages")

    message.soft_delete()
    await db.flush()


async def _find_conversation(
    db: AsyncSession, project_id: uuid.UUID, homeowner_id: uuid.UUID, contractor_id: uuid.UUID
) -> Conversation | None:
    result = await db.execute(
        select(Conversation).where(
            Conversation.project_id == project_id,
            Conversation.homeowner_id == homeowner_id,
            Conversation.contractor_id == contractor_id,
            Conversation.is_deleted.is_(False),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get_participating_conversation(
    db: AsyncSession, conversation_id: uuid.UUID, user: User
) -> Conversation:
    result = await db.execute(
        select(Conversation).where(
            Conversation.id == conversation_id, Conversation.is_deleted.is_(False)
        )
    )
    conversation = result.scalar_one_or_none()
    if not conversation:
        raise NotFoundError("Conversation", str(conversation_id))
    if not conversation.has_participant(user.id):
        raise ForbiddenError()
    return conversation
