"""Certification progress service layer.

Every operation takes the caller's identity explicitly (user_id, org_id).
Stage rules live in ``stages``; this module reads, validates against the
stored stage, and persists with a compare-and-set update.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.certification import (
    CertificationProgress,
    CertificationStageTransition,
    CertificationType,
)
from app.models.enums import (
    CertificationDisplayStatus,
    CertificationStage,
    IssuedCertificationStatus,
)
from app.middleware.tenant import tenant_filter
from app.modules.certification import stages
from app.modules.certification.schemas import (
    CertificationProgressResponse,
    CertificationTypeCreateRequest,
    CertificationTypeResponse,
    CertificationTypeUpdateRequest,
    UserCertificationResponse,
)

logger = structlog.get_logger()


class ConflictError(ValueError):
    """Request conflicts with the current state of a resource."""


class DuplicateStartError(ConflictError):
    """The caller already has a progress record for this certification type."""


class StaleStageError(ConflictError):
    """The record's stage changed between read and write."""


class CertificationTypeInUseError(ConflictError):
    """A certification type still referenced by progress records."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _utc(value: datetime | None) -> datetime | None:
    return stages.as_utc(value) if value is not None else None


# ── Response builders ─────────────────────────────────────────────────────────


def build_progress_response(
    progress: CertificationProgress,
    cert_type: CertificationType,
    as_of: datetime | None = None,
) -> CertificationProgressResponse:
    as_of = as_of or _now()
    expires_at = None
    if progress.approved_at is not None:
        expires_at = stages.expiry_date(progress.approved_at, cert_type.validity_period)

    return CertificationProgressResponse(
        id=progress.id,
        user_id=progress.user_id,
        certification_id=progress.certification_type_id,
        current_stage=CertificationStage(progress.current_stage),
        display_status=stages.compute_display_status(
            progress.current_stage,
            progress.approved_at,
            cert_type.validity_period,
            as_of,
        ),
        started_at=_utc(progress.started_at),
        applied_at=_utc(progress.applied_at),
        in_progress_at=_utc(progress.in_progress_at),
        approved_at=_utc(progress.approved_at),
        expires_at=expires_at,
        next_steps=list(progress.next_steps or []),
        notes=progress.notes,
        certification=CertificationTypeResponse.model_validate(cert_type),
        updated_at=_utc(progress.updated_at),
    )


# ── Certification types ───────────────────────────────────────────────────────


async def list_certification_types(db: AsyncSession) -> list[CertificationType]:
    result = await db.execute(
        select(CertificationType).order_by(CertificationType.created_at, CertificationType.id)
    )
    return list(result.scalars().all())


async def get_certification_type(db: AsyncSession, certification_type_id: int) -> CertificationType:
    cert_type = await db.get(CertificationType, certification_type_id)
    if cert_type is None:
        raise LookupError(f"Certification type {certification_type_id} not found")
    return cert_type


async def create_certification_type(
    db: AsyncSession, data: CertificationTypeCreateRequest
) -> CertificationType:
    existing = await db.execute(
        select(CertificationType.id).where(CertificationType.name == data.name)
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"Certification type '{data.name}' already exists")

    cert_type = CertificationType(**data.model_dump())
    db.add(cert_type)
    await db.commit()
    await db.refresh(cert_type)
    logger.info("certification_type_created", certification_type_id=cert_type.id, name=cert_type.name)
    return cert_type


async def update_certification_type(
    db: AsyncSession,
    certification_type_id: int,
    data: CertificationTypeUpdateRequest,
) -> CertificationType:
    cert_type = await get_certification_type(db, certification_type_id)
    changes = data.model_dump(exclude_unset=True)

    if "name" in changes and changes["name"] != cert_type.name:
        clash = await db.execute(
            select(CertificationType.id).where(CertificationType.name == changes["name"])
        )
        if clash.scalar_one_or_none() is not None:
            raise ConflictError(f"Certification type '{changes['name']}' already exists")

    for field, value in changes.items():
        setattr(cert_type, field, value)

    await db.commit()
    await db.refresh(cert_type)
    logger.info(
        "certification_type_updated",
        certification_type_id=certification_type_id,
        fields=sorted(changes),
    )
    return cert_type


async def delete_certification_type(db: AsyncSession, certification_type_id: int) -> None:
    cert_type = await get_certification_type(db, certification_type_id)

    in_use = await db.execute(
        select(func.count(CertificationProgress.id)).where(
            CertificationProgress.certification_type_id == certification_type_id,
            CertificationProgress.is_deleted.is_(False),
        )
    )
    if in_use.scalar_one() > 0:
        raise CertificationTypeInUseError(
            f"Certification type {certification_type_id} has progress records and cannot be deleted"
        )

    await db.delete(cert_type)
    await db.commit()
    logger.info("certification_type_deleted", certification_type_id=certification_type_id)


# ── Progress ──────────────────────────────────────────────────────────────────


async def _find_progress_for_type(
    db: AsyncSession, user_id: uuid.UUID, certification_type_id: int
) -> CertificationProgress | None:
    result = await db.execute(
        select(CertificationProgress).where(
            CertificationProgress.user_id == user_id,
            CertificationProgress.certification_type_id == certification_type_id,
            CertificationProgress.is_deleted.is_(False),
        )
    )
    return result.scalar_one_or_none()


async def start_certification(
    db: AsyncSession,
    user_id: uuid.UUID,
    org_id: uuid.UUID,
    certification_type_id: int,
    now: datetime | None = None,
) -> CertificationProgress:
    """Create a progress record at 'started' for the caller."""
    cert_type = await get_certification_type(db, certification_type_id)

    if await _find_progress_for_type(db, user_id, certification_type_id) is not None:
        raise DuplicateStartError("Certification process already started")

    now = now or _now()
    progress = CertificationProgress(
        org_id=org_id,
        user_id=user_id,
        certification_type_id=cert_type.id,
        current_stage=CertificationStage.STARTED.value,
        started_at=now,
        next_steps=list(cert_type.requirements or []),
    )
    db.add(progress)
    try:
        await db.flush()
    except IntegrityError as exc:
        # Lost a race with a concurrent start for the same (user, type)
        await db.rollback()
        raise DuplicateStartError("Certification process already started") from exc

    db.add(
        CertificationStageTransition(
            org_id=org_id,
            progress_id=progress.id,
            from_stage=None,
            to_stage=CertificationStage.STARTED.value,
            checked=None,
            transitioned_by=user_id,
        )
    )
    await db.commit()

    logger.info(
        "certification_started",
        progress_id=str(progress.id),
        certification_type_id=certification_type_id,
        user_id=str(user_id),
    )
    return progress


async def list_progress(
    db: AsyncSession, user_id: uuid.UUID, org_id: uuid.UUID
) -> list[tuple[CertificationProgress, CertificationType]]:
    """The caller's progress records, each paired with its certification type."""
    stmt = (
        select(CertificationProgress, CertificationType)
        .join(CertificationType, CertificationType.id == CertificationProgress.certification_type_id)
        .where(
            CertificationProgress.user_id == user_id,
            CertificationProgress.is_deleted.is_(False),
        )
    )
    stmt = tenant_filter(stmt, org_id, CertificationProgress)
    result = await db.execute(stmt.order_by(CertificationProgress.created_at))
    return [(progress, cert_type) for progress, cert_type in result.all()]


async def get_progress(
    db: AsyncSession,
    progress_id: uuid.UUID,
    user_id: uuid.UUID,
    org_id: uuid.UUID,
) -> CertificationProgress:
    stmt = select(CertificationProgress).where(
        CertificationProgress.id == progress_id,
        CertificationProgress.user_id == user_id,
        CertificationProgress.is_deleted.is_(False),
    )
    stmt = tenant_filter(stmt, org_id, CertificationProgress)
    result = await db.execute(stmt.execution_options(populate_existing=True))
    progress = result.scalar_one_or_none()
    if progress is None:
        raise LookupError("Certification progress not found")
    return progress


async def _compare_and_advance(
    db: AsyncSession,
    progress_id: uuid.UUID,
    user_id: uuid.UUID,
    org_id: uuid.UUID,
    expected_stage: CertificationStage,
    target_stage: CertificationStage,
    now: datetime | None = None,
) -> stages.StageTransition:
    """Move a record from ``expected_stage`` to an adjacent ``target_stage`` atomically.

    Issues a single ``UPDATE ... WHERE id = :id AND current_stage = :expected``,
    scoped to the caller's user and organization.
    Raises StaleStageError when no row matched, i.e. another writer moved the
    record first. Does not commit.
    """
    expected = stages.parse_stage(expected_stage)
    target = stages.parse_stage(target_stage)
    checked = stages.stage_index(target) == stages.stage_index(expected) + 1
    transition = stages.plan_transition(
        expected, target if checked else expected, checked, now or _now()
    )
    if transition.to_stage != target:
        raise stages.InvalidTransitionError(stages.OUT_OF_ORDER_MESSAGE)

    result = await db.execute(
        update(CertificationProgress)
        .where(
            CertificationProgress.id == progress_id,
            CertificationProgress.user_id == user_id,
            CertificationProgress.org_id == org_id,
            CertificationProgress.current_stage == expected.value,
            CertificationProgress.is_deleted.is_(False),
        )
        .values(current_stage=target.value, **transition.timestamp_updates)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StaleStageError(
            f"Certification progress is no longer at stage '{expected.value}'"
        )
    return transition


async def update_stage(
    db: AsyncSession,
    progress_id: uuid.UUID,
    user_id: uuid.UUID,
    org_id: uuid.UUID,
    stage: CertificationStage,
    checked: bool,
    new_status: CertificationStage | None = None,
) -> CertificationProgress:
    """Advance (checked=True) to ``stage`` or revert (checked=False) from it."""
    progress = await get_progress(db, progress_id, user_id, org_id)
    current = stages.parse_stage(progress.current_stage)

    try:
        target = stages.validate_transition(current, stage, checked)
    except stages.InvalidTransitionError:
        logger.info(
            "certification_transition_rejected",
            progress_id=str(progress_id),
            current_stage=current.value,
            requested_stage=stages.parse_stage(stage).value,
            checked=checked,
        )
        raise

    if new_status is not None and stages.parse_stage(new_status) != target:
        raise stages.InvalidTransitionError(
            f"newStatus '{stages.parse_stage(new_status).value}' does not match "
            f"the resulting stage '{target.value}'"
        )

    if target == current:
        # Reverting 'started' is a floor: nothing to write
        return progress

    await _compare_and_advance(db, progress_id, user_id, org_id, current, target)
    db.add(
        CertificationStageTransition(
            org_id=org_id,
            progress_id=progress_id,
            from_stage=current.value,
            to_stage=target.value,
            checked=checked,
            transitioned_by=user_id,
        )
    )
    await db.commit()

    logger.info(
        "certification_stage_updated",
        progress_id=str(progress_id),
        from_stage=current.value,
        to_stage=target.value,
        checked=checked,
    )
    return await get_progress(db, progress_id, user_id, org_id)


async def list_transitions(
    db: AsyncSession,
    progress_id: uuid.UUID,
    user_id: uuid.UUID,
    org_id: uuid.UUID,
) -> list[CertificationStageTransition]:
    await get_progress(db, progress_id, user_id, org_id)
    result = await db.execute(
        select(CertificationStageTransition)
        .where(CertificationStageTransition.progress_id == progress_id)
        .order_by(CertificationStageTransition.created_at, CertificationStageTransition.id)
    )
    return list(result.scalars().all())


async def list_user_certifications(
    db: AsyncSession,
    user_id: uuid.UUID,
    org_id: uuid.UUID,
    as_of: datetime | None = None,
) -> list[UserCertificationResponse]:
    """Issued certifications: the caller's approved records, expired ones flagged."""
    as_of = as_of or _now()
    stmt = (
        select(CertificationProgress, CertificationType)
        .join(CertificationType, CertificationType.id == CertificationProgress.certification_type_id)
        .where(
            CertificationProgress.user_id == user_id,
            CertificationProgress.current_stage == CertificationStage.APPROVED.value,
            CertificationProgress.approved_at.is_not(None),
            CertificationProgress.is_deleted.is_(False),
        )
    )
    stmt = tenant_filter(stmt, org_id, CertificationProgress)
    result = await db.execute(stmt.order_by(CertificationProgress.approved_at.desc()))

    issued = []
    for progress, cert_type in result.all():
        display = stages.compute_display_status(
            progress.current_stage, progress.approved_at, cert_type.validity_period, as_of
        )
        issued.append(
            UserCertificationResponse(
                id=progress.id,
                user_id=progress.user_id,
                status=(
                    IssuedCertificationStatus.EXPIRED
                    if display == CertificationDisplayStatus.EXPIRED
                    else IssuedCertificationStatus.APPROVED
                ),
                application_date=_utc(progress.applied_at),
                issue_date=_utc(progress.approved_at),
                expiry_date=stages.expiry_date(progress.approved_at, cert_type.validity_period),
                certification_type=CertificationTypeResponse.model_validate(cert_type),
            )
        )
    return issued
