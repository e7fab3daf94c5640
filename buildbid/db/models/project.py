import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from buildbid.common.enums import ProjectStatus, ProjectType, ProjectVisibility
from buildbid.db.base import BaseModel


class Project(BaseModel):
    __tablename__ = "projects"

    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    statement_of_work: Mapped[str] = mapped_column(Text, nullable=False)
    budget: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    category: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    location: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=dict)
    project_type: Mapped[ProjectType] = mapped_column(
        String(30), nullable=False, default=ProjectType.OTHER.value
    )
    status: Mapped[ProjectStatus] = mapped_column(
        String(30), nullable=False, default=ProjectStatus.DRAFT.value, index=True
    )
    visibility: Mapped[ProjectVisibility] = mapped_column(
        String(30), nullable=False, default=ProjectVisibility.PUBLIC.value
    )
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    decision_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    permit_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    project_photos: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    files: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)

    # Relationships
    creator = relationship("User", lazy="selectin")
