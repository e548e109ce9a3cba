"""RBAC permission matrix and checker.

Roles inherit cumulatively: viewer <= analyst <= manager < admin.
Permissions are (action, resource_type) tuples in a set for O(1) lookup.
Every role may track its own certification progress; only admins curate
the certification catalog.
"""

from app.models.enums import UserRole


# ── Actions ───────────────────────────────────────────────────────────────


class Action:
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


# ── Resource Types ────────────────────────────────────────────────────────


class Resource:
    CERTIFICATION = "certification"            # the caller's own progress records
    CERTIFICATION_TYPE = "certification_type"  # the shared catalog


# ── Per-role permission sets ──────────────────────────────────────────────

_MEMBER_PERMS: set[tuple[str, str]] = {
    (Action.VIEW, Resource.CERTIFICATION_TYPE),
    (Action.VIEW, Resource.CERTIFICATION),
    (Action.CREATE, Resource.CERTIFICATION),
    (Action.EDIT, Resource.CERTIFICATION),
}

_ADMIN_EXTRA: set[tuple[str, str]] = {
    (Action.CREATE, Resource.CERTIFICATION_TYPE),
    (Action.EDIT, Resource.CERTIFICATION_TYPE),
    (Action.DELETE, Resource.CERTIFICATION_TYPE),
}

# ── Cumulative permission matrix ──────────────────────────────────────────

PERMISSION_MATRIX: dict[UserRole, set[tuple[str, str]]] = {
    UserRole.VIEWER: _MEMBER_PERMS,
    UserRole.ANALYST: _MEMBER_PERMS,
    UserRole.MANAGER: _MEMBER_PERMS,
    UserRole.ADMIN: _MEMBER_PERMS | _ADMIN_EXTRA,
}


# ── Public API ────────────────────────────────────────────────────────────


def check_permission(role: UserRole, action: str, resource_type: str) -> bool:
    """Check if a role has permission for an action on a resource type."""
    perms = PERMISSION_MATRIX.get(role)
    if perms is None:
        return False
    return (action, resource_type) in perms


def get_permissions_for_role(role: UserRole) -> dict[str, list[str]]:
    """Return permissions grouped by resource type (for API responses)."""
    perms = PERMISSION_MATRIX.get(role, set())
    result: dict[str, list[str]] = {}
    for action, resource in sorted(perms):
        result.setdefault(resource, []).append(action)
    return result
