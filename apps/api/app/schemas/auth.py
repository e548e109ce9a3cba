"""Auth schemas: CurrentUser, profile, permissions."""

import uuid

from pydantic import BaseModel

from app.models.enums import OrgType, UserRole


class CurrentUser(BaseModel):
    """Caller identity resolved from the Clerk JWT + DB lookup.

    Passed explicitly into every service call; services never read
    request-global state.
    """

    user_id: uuid.UUID
    org_id: uuid.UUID
    role: UserRole
    email: str
    external_auth_id: str  # Clerk user ID (e.g. "user_2x...")


class UserProfileResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    role: UserRole
    org_id: uuid.UUID
    org_name: str
    org_type: OrgType
    org_slug: str
    permissions: dict[str, list[str]]  # resource_type -> allowed actions


class PermissionMatrixResponse(BaseModel):
    role: UserRole
    permissions: dict[str, list[str]]  # resource_type -> actions
