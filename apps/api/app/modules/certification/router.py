"""Certification catalog and progress tracking API router."""

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import (
    get_current_user,
    require_permission,
    require_role,
    set_tenant_context,
)
from app.auth.rbac import Action, Resource
from app.core.database import get_db, get_readonly_db
from app.models.certification import CertificationProgress
from app.models.enums import UserRole
from app.modules.certification import service
from app.modules.certification.schemas import (
    CertificationProgressResponse,
    CertificationTypeCreateRequest,
    CertificationTypeResponse,
    CertificationTypeUpdateRequest,
    StageTransitionResponse,
    StartCertificationRequest,
    UpdateStageRequest,
    UserCertificationResponse,
)
from app.modules.certification.stages import InvalidTransitionError
from app.schemas.auth import CurrentUser

logger = structlog.get_logger()

router = APIRouter(tags=["certifications"])


async def _respond(db: AsyncSession, progress: CertificationProgress) -> CertificationProgressResponse:
    cert_type = await service.get_certification_type(db, progress.certification_type_id)
    return service.build_progress_response(progress, cert_type)


# ── Catalog ───────────────────────────────────────────────────────────────────


@router.get("/certifications", response_model=list[CertificationTypeResponse])
async def list_certifications(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_readonly_db),
):
    """All certification programs, oldest first."""
    return await service.list_certification_types(db)


@router.get("/certifications/{certification_type_id}", response_model=CertificationTypeResponse)
async def get_certification(
    certification_type_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_readonly_db),
):
    try:
        return await service.get_certification_type(db, certification_type_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


# ── Progress ──────────────────────────────────────────────────────────────────


@router.post(
    "/certifications/start",
    response_model=CertificationProgressResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_certification(
    body: StartCertificationRequest,
    current_user: CurrentUser = Depends(set_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    """Start the certification process for a certification type."""
    try:
        progress = await service.start_certification(
            db, current_user.user_id, current_user.org_id, body.certification_type_id
        )
    except LookupError:
        raise HTTPException(status_code=404, detail="Certification not found")
    except service.DuplicateStartError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return await _respond(db, progress)


@router.get("/certification-progress", response_model=list[CertificationProgressResponse])
async def list_certification_progress(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_readonly_db),
):
    """The caller's in-flight and completed certification processes."""
    records = await service.list_progress(db, current_user.user_id, current_user.org_id)
    return [service.build_progress_response(p, cert_type) for p, cert_type in records]


@router.get("/certification-progress/{progress_id}", response_model=CertificationProgressResponse)
async def get_certification_progress(
    progress_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_readonly_db),
):
    try:
        progress = await service.get_progress(
            db, progress_id, current_user.user_id, current_user.org_id
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return await _respond(db, progress)


@router.post(
    "/certification-progress/{progress_id}/update-stage",
    response_model=CertificationProgressResponse,
)
async def update_certification_stage(
    progress_id: uuid.UUID,
    body: UpdateStageRequest,
    current_user: CurrentUser = Depends(set_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    """Check (advance to) or uncheck (revert from) a stage."""
    try:
        progress = await service.update_stage(
            db,
            progress_id,
            current_user.user_id,
            current_user.org_id,
            body.stage,
            body.checked,
            new_status=body.new_status,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except service.StaleStageError as exc:
        logger.warning(
            "certification_stage_conflict",
            progress_id=str(progress_id),
            error=str(exc),
        )
        raise HTTPException(status_code=409, detail=str(exc))
    return await _respond(db, progress)


@router.get(
    "/certification-progress/{progress_id}/history",
    response_model=list[StageTransitionResponse],
)
async def get_certification_history(
    progress_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_readonly_db),
):
    """Stage transitions for a progress record, oldest first."""
    try:
        return await service.list_transitions(
            db, progress_id, current_user.user_id, current_user.org_id
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/user-certifications", response_model=list[UserCertificationResponse])
async def list_user_certifications(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_readonly_db),
):
    """Certifications the caller holds (approved), including expired ones."""
    return await service.list_user_certifications(
        db, current_user.user_id, current_user.org_id
    )


# ── Admin catalog management ──────────────────────────────────────────────────


@router.get("/admin/certifications", response_model=list[CertificationTypeResponse])
async def admin_list_certifications(
    current_user: CurrentUser = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_readonly_db),
):
    return await service.list_certification_types(db)


@router.post(
    "/admin/certifications",
    response_model=CertificationTypeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def admin_create_certification(
    body: CertificationTypeCreateRequest,
    current_user: CurrentUser = Depends(require_permission(Action.CREATE, Resource.CERTIFICATION_TYPE)),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.create_certification_type(db, body)
    except service.ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.put("/admin/certifications/{certification_type_id}", response_model=CertificationTypeResponse)
async def admin_update_certification(
    certification_type_id: int,
    body: CertificationTypeUpdateRequest,
    current_user: CurrentUser = Depends(require_permission(Action.EDIT, Resource.CERTIFICATION_TYPE)),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.update_certification_type(db, certification_type_id, body)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except service.ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.delete(
    "/admin/certifications/{certification_type_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def admin_delete_certification(
    certification_type_id: int,
    current_user: CurrentUser = Depends(require_permission(Action.DELETE, Resource.CERTIFICATION_TYPE)),
    db: AsyncSession = Depends(get_db),
):
    try:
        await service.delete_certification_type(db, certification_type_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except service.CertificationTypeInUseError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
