"""Certification models: reference catalog, per-user progress, stage history."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.models.base import BaseModel, JSONType, ModelMixin, TenantMixin, TimestampedModel, utcnow
from app.models.enums import CertificationStage


class CertificationType(Base, ModelMixin):
    """A certification program (ISO 14001, GRESB, ...). Seeded reference data."""

    __tablename__ = "certification_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    requirements: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    validity_period: Mapped[int] = mapped_column(Integer, nullable=False)  # months
    industry: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    difficulty: Mapped[str] = mapped_column(String(50), nullable=False)
    provider: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_url: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    estimated_time: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    cost: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    relevance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )


class CertificationProgress(BaseModel, TenantMixin):
    __tablename__ = "certification_progress"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "certification_type_id", name="uq_certification_progress_user_type"
        ),
        Index("ix_certification_progress_org_stage", "org_id", "current_stage"),
        CheckConstraint(
            "current_stage IN ('started', 'applied', 'in_progress', 'approved')",
            name="ck_certification_progress_stage",
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    certification_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("certification_types.id", ondelete="RESTRICT"),
        nullable=False
    )
    current_stage: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CertificationStage.STARTED.value
    )
    # started | applied | in_progress | approved
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(nullable=True)
    in_progress_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_steps: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class CertificationStageTransition(TimestampedModel, TenantMixin):
    """Append-only log of stage changes on a progress record."""

    __tablename__ = "certification_stage_transitions"
    __table_args__ = (
        Index("ix_certification_transitions_progress", "progress_id", "created_at"),
    )

    progress_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("certification_progress.id", ondelete="CASCADE"),
        nullable=False,
    )
    from_stage: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_stage: Mapped[str] = mapped_column(String(20), nullable=False)
    checked: Mapped[bool | None] = mapped_column(nullable=True)  # None for the start event
    transitioned_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
