"""Domain enums shared by models, schemas and services."""

import enum


# ── Core ─────────────────────────────────────────────────────────────────────


class OrgType(str, enum.Enum):
    BUSINESS = "business"
    VENDOR = "vendor"
    ADMIN = "admin"


class SubscriptionTier(str, enum.Enum):
    LITE = "lite"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    ANALYST = "analyst"
    VIEWER = "viewer"


# ── Certifications ───────────────────────────────────────────────────────────


class CertificationStage(str, enum.Enum):
    """Stored stages, in canonical order."""

    STARTED = "started"
    APPLIED = "applied"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"


class CertificationDisplayStatus(str, enum.Enum):
    """Read-time status. EXPIRED is derived, never stored."""

    STARTED = "started"
    APPLIED = "applied"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    EXPIRED = "expired"


class IssuedCertificationStatus(str, enum.Enum):
    APPROVED = "approved"
    EXPIRED = "expired"
