"""Sentry initialisation for the wastetraq API."""

import structlog
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = structlog.get_logger()

_SENSITIVE_HEADERS = {"authorization", "cookie", "x-api-key"}

# Probe and docs traffic is never traced
_UNTRACED_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")


def _scrub_sensitive_data(event: dict, hint: dict) -> dict:
    """Redact auth headers and cookies; notes may hold free text, so bodies are dropped."""
    request = event.get("request", {})
    headers = request.get("headers", {})
    for header in list(headers):
        if header.lower() in _SENSITIVE_HEADERS:
            headers[header] = "[REDACTED]"
    request.pop("cookies", None)
    request.pop("data", None)
    return event


_default_rate = 1.0


def _traces_sampler(sampling_context: dict) -> float:
    scope = sampling_context.get("asgi_scope") or {}
    if scope.get("path", "").startswith(_UNTRACED_PATHS):
        return 0.0
    if sampling_context.get("parent_sampled") is not None:
        return float(sampling_context["parent_sampled"])
    return _default_rate


def init_sentry(
    dsn: str | None,
    environment: str = "development",
    release: str | None = None,
) -> None:
    """Initialise Sentry before the FastAPI app is created.

    No-op when dsn is empty, so it can be called unconditionally.
    """
    global _default_rate

    if not dsn:
        logger.warning("sentry_disabled", reason="SENTRY_DSN not set")
        return

    # 10% of transactions in production, everything elsewhere
    _default_rate = 0.1 if environment == "production" else 1.0

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        traces_sampler=_traces_sampler,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            RedisIntegration(),
            HttpxIntegration(),
        ],
        send_default_pii=False,
        before_send=_scrub_sensitive_data,
    )
    logger.info("sentry_initialized", environment=environment, traces_sample_rate=_default_rate)
