"""Pydantic schemas for certification types and progress tracking."""

import uuid
from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field, field_validator

from app.models.enums import (
    CertificationDisplayStatus,
    CertificationStage,
    IssuedCertificationStatus,
)


# ── Certification types ───────────────────────────────────────────────────────


class CertificationTypeResponse(BaseModel):
    id: int
    name: str
    description: str
    requirements: list[str]
    validity_period: int  # months
    industry: list[str]
    difficulty: str
    provider: str
    provider_url: str
    estimated_time: str
    cost: str
    relevance: int
    created_at: datetime

    model_config = {"from_attributes": True}


class CertificationTypeCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    provider: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    difficulty: str = Field(..., min_length=1, max_length=50)
    validity_period: int = Field(
        ..., ge=1, validation_alias=AliasChoices("validity_period", "validityPeriod")
    )
    requirements: list[str] = Field(..., min_length=1)
    industry: list[str] = Field(default_factory=list)
    provider_url: str = Field(
        "", max_length=512, validation_alias=AliasChoices("provider_url", "providerUrl")
    )
    estimated_time: str = Field(
        "", max_length=100, validation_alias=AliasChoices("estimated_time", "estimatedTime")
    )
    cost: str = Field("", max_length=50)
    relevance: int = Field(0, ge=0)

    @field_validator("requirements")
    @classmethod
    def _no_blank_requirements(cls, v: list[str]) -> list[str]:
        cleaned = [r.strip() for r in v if r and r.strip()]
        if not cleaned:
            raise ValueError("At least one requirement is required")
        return cleaned


class CertificationTypeUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    provider: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, min_length=1)
    difficulty: str | None = Field(None, min_length=1, max_length=50)
    validity_period: int | None = Field(
        None, ge=1, validation_alias=AliasChoices("validity_period", "validityPeriod")
    )
    requirements: list[str] | None = None
    industry: list[str] | None = None
    provider_url: str | None = Field(
        None, max_length=512, validation_alias=AliasChoices("provider_url", "providerUrl")
    )
    estimated_time: str | None = Field(
        None, max_length=100, validation_alias=AliasChoices("estimated_time", "estimatedTime")
    )
    cost: str | None = Field(None, max_length=50)
    relevance: int | None = Field(None, ge=0)

    @field_validator("requirements")
    @classmethod
    def _no_blank_requirements(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        cleaned = [r.strip() for r in v if r and r.strip()]
        if not cleaned:
            raise ValueError("At least one requirement is required")
        return cleaned


# ── Progress ──────────────────────────────────────────────────────────────────


class StartCertificationRequest(BaseModel):
    certification_type_id: int = Field(
        ..., validation_alias=AliasChoices("certification_type_id", "certificationTypeId")
    )


class UpdateStageRequest(BaseModel):
    stage: CertificationStage
    checked: bool
    # Sent by older clients as the stage they expect to land on; checked if present
    new_status: CertificationStage | None = Field(
        None, validation_alias=AliasChoices("new_status", "newStatus")
    )


class CertificationProgressResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    certification_id: int
    current_stage: CertificationStage
    display_status: CertificationDisplayStatus
    started_at: datetime | None
    applied_at: datetime | None
    in_progress_at: datetime | None
    approved_at: datetime | None
    expires_at: datetime | None = None
    next_steps: list[str] = []
    notes: str | None = None
    certification: CertificationTypeResponse | None = None
    updated_at: datetime


class StageTransitionResponse(BaseModel):
    id: uuid.UUID
    from_stage: CertificationStage | None
    to_stage: CertificationStage
    checked: bool | None
    transitioned_by: uuid.UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserCertificationResponse(BaseModel):
    """An issued certification: a progress record that reached 'approved'."""

    id: uuid.UUID
    user_id: uuid.UUID
    status: IssuedCertificationStatus
    application_date: datetime | None
    issue_date: datetime
    expiry_date: datetime
    certification_type: CertificationTypeResponse
