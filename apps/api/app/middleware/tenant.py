"""Multi-tenant middleware and query helpers.

The middleware initializes request.state.org_id/user_id; set_tenant_context
fills them once the caller is authenticated. tenant_filter() scopes progress
queries to the caller's organization.
"""

import uuid

from starlette.types import ASGIApp, Receive, Scope, Send
from sqlalchemy.sql import Select


class TenantMiddleware:
    """Pure ASGI middleware that initializes tenant state on each request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            scope.setdefault("state", {})
            scope["state"].setdefault("org_id", None)
            scope["state"].setdefault("user_id", None)
        await self.app(scope, receive, send)


def tenant_filter(stmt: Select, org_id: uuid.UUID, model: type) -> Select:
    """Append an org_id filter for tenant-owned models.

    Catalog models (no org_id column) are shared and pass through unchanged.

    Usage:
        stmt = select(CertificationProgress)
        stmt = tenant_filter(stmt, current_user.org_id, CertificationProgress)
    """
    if hasattr(model, "org_id"):
        return stmt.where(model.org_id == org_id)  # type: ignore[attr-defined]
    return stmt
