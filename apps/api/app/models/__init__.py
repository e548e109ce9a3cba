"""SQLAlchemy models package; import all models so Base.metadata is populated."""

from app.models.base import BaseModel, ModelMixin, TenantMixin, TimestampedModel
from app.models.certification import (
    CertificationProgress,
    CertificationStageTransition,
    CertificationType,
)
from app.models.core import AuditLog, Organization, User
from app.models.enums import (
    CertificationDisplayStatus,
    CertificationStage,
    IssuedCertificationStatus,
    OrgType,
    SubscriptionStatus,
    SubscriptionTier,
    UserRole,
)

__all__ = [
    "AuditLog",
    "BaseModel",
    "CertificationDisplayStatus",
    "CertificationProgress",
    "CertificationStage",
    "CertificationStageTransition",
    "CertificationType",
    "IssuedCertificationStatus",
    "ModelMixin",
    "OrgType",
    "Organization",
    "SubscriptionStatus",
    "SubscriptionTier",
    "TenantMixin",
    "TimestampedModel",
    "User",
    "UserRole",
]
