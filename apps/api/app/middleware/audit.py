"""Audit logging middleware.

Captures successful mutating requests (POST/PUT/PATCH/DELETE), such as
certification starts, stage checks and catalog edits, and writes them to
audit_logs in a fire-and-forget task with its own DB session.
"""

import asyncio
import re

import structlog
from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from app.core.config import settings
from app.core.database import async_session_factory
from app.models.core import AuditLog

logger = structlog.get_logger()

AUDITED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

AUDIT_EXEMPT_PATHS = frozenset({
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
})

# Collection segment -> entity type recorded in the log
_ENTITY_TYPES: dict[str, str] = {
    "certifications": "certification_type",
    "certification-progress": "certification_progress",
    "user-certifications": "certification_progress",
}

# Path verbs that describe the action rather than the entity
_ACTION_SEGMENTS: dict[str, str] = {
    "start": "start",
    "update-stage": "update_stage",
}

# Actions whose row lives in another table than the collection they are posted to
_ACTION_ENTITY_TYPES: dict[str, str] = {
    "start": "certification_progress",
}

_ID_RE = re.compile(r"^(\d+|[0-9a-fA-F-]{32,36})$")

_background_tasks: set[asyncio.Task] = set()


class AuditMiddleware:
    """Pure ASGI middleware that logs mutating operations to audit_logs."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not settings.AUDIT_LOG_ENABLED:
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        method = request.method

        if method not in AUDITED_METHODS:
            await self.app(scope, receive, send)
            return

        path = request.url.path
        if any(path.startswith(exempt) for exempt in AUDIT_EXEMPT_PATHS):
            await self.app(scope, receive, send)
            return

        response_status = 0

        async def capture_send(message: dict) -> None:
            nonlocal response_status
            if message["type"] == "http.response.start":
                response_status = message.get("status", 0)
            await send(message)

        await self.app(scope, receive, capture_send)

        # Only audit successful mutations (2xx)
        if 200 <= response_status < 300:
            task = asyncio.create_task(self._write_audit_log(scope, request, method, path))
            _background_tasks.add(task)
            task.add_done_callback(_background_tasks.discard)

    async def _write_audit_log(
        self, scope: dict, request: Request, method: str, path: str
    ) -> None:
        """Write audit log in a separate DB session (fire-and-forget)."""
        try:
            state = scope.get("state", {})
            org_id = state.get("org_id")
            user_id = state.get("user_id")

            if not org_id or not user_id:
                return  # Skip unauthenticated requests

            entity_type, entity_id, action = parse_audit_target(method, path)

            # Client IP (handle proxies)
            ip_address = request.headers.get("x-forwarded-for")
            if ip_address:
                ip_address = ip_address.split(",")[0].strip()
            elif request.client:
                ip_address = request.client.host

            user_agent = request.headers.get("user-agent", "")[:500]

            async with async_session_factory() as session:
                session.add(
                    AuditLog(
                        org_id=org_id,
                        user_id=user_id,
                        action=f"{action}:{entity_type}",
                        entity_type=entity_type,
                        entity_id=entity_id,
                        ip_address=ip_address,
                        user_agent=user_agent,
                    )
                )
                await session.commit()

        except Exception:
            logger.exception("audit_log_write_failed", path=path)


def _method_to_action(method: str) -> str:
    return {
        "POST": "create",
        "PUT": "update",
        "PATCH": "update",
        "DELETE": "delete",
    }.get(method, method.lower())


def parse_audit_target(method: str, path: str) -> tuple[str, str | None, str]:
    """Return (entity_type, entity_id, action) for a request path.

    Examples:
        POST /v1/certifications/start -> ("certification_progress", None, "start")
        POST /v1/certification-progress/<uuid>/update-stage
            -> ("certification_progress", "<uuid>", "update_stage")
        DELETE /v1/admin/certifications/3 -> ("certification_type", "3", "delete")
    """
    parts = [p for p in path.strip("/").split("/") if p]
    if parts and parts[0] == "v1":
        parts = parts[1:]
    if parts and parts[0] == "admin":
        parts = parts[1:]

    entity_type = "unknown"
    entity_id: str | None = None
    action = _method_to_action(method)

    if parts:
        entity_type = _ENTITY_TYPES.get(parts[0], parts[0].replace("-", "_"))

    for segment in parts[1:]:
        if _ID_RE.match(segment) and entity_id is None:
            entity_id = segment
        elif segment in _ACTION_SEGMENTS:
            action = _ACTION_SEGMENTS[segment]

    entity_type = _ACTION_ENTITY_TYPES.get(action, entity_type)
    return entity_type, entity_id, action
