"""Security middleware: response headers, body size cap, Redis rate limiting.

Pure ASGI middleware (no BaseHTTPMiddleware) so each one wraps every route
uniformly, including error responses. Rejections use the same
{error, message} envelope as app.core.errors.
"""

import base64
import json
import time
from dataclasses import dataclass

import structlog
import redis.asyncio as aioredis
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

logger = structlog.get_logger()


async def _send_json(
    send: Send,
    status: int,
    payload: dict,
    extra_headers: list[tuple[bytes, bytes]] | None = None,
) -> None:
    body = json.dumps(payload).encode()
    headers = [
        (b"content-type", b"application/json"),
        (b"content-length", str(len(body)).encode()),
        *(extra_headers or []),
    ]
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body, "more_body": False})


# ── 1. Security Headers ───────────────────────────────────────────────────────


class SecurityHeadersMiddleware:
    """Append security headers to every HTTP response."""

    _STATIC_HEADERS = [
        ("x-content-type-options", "nosniff"),
        ("x-frame-options", "DENY"),
        ("x-xss-protection", "0"),
        ("referrer-policy", "strict-origin-when-cross-origin"),
        ("permissions-policy", "geolocation=(), microphone=(), camera=(), payment=()"),
        ("cache-control", "no-store"),
    ]
    _HSTS_HEADER = ("strict-transport-security", "max-age=63072000; includeSubDomains; preload")

    def __init__(self, app: ASGIApp, is_production: bool = False) -> None:
        self.app = app
        self._headers = list(self._STATIC_HEADERS)
        if is_production:
            self._headers.append(self._HSTS_HEADER)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def _send(message: dict) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in self._headers:
                    headers.append(name, value)
                headers["server"] = "wastetraq"
            await send(message)

        await self.app(scope, receive, _send)


# ── 2. Request Body Size Limiter ──────────────────────────────────────────────


class RequestBodySizeLimitMiddleware:
    """Reject requests whose declared Content-Length exceeds max_bytes.

    Every endpoint takes a small JSON body, so the default cap is 1 MB.
    """

    def __init__(self, app: ASGIApp, max_bytes: int = 1_048_576) -> None:
        self.app = app
        self.max_bytes = max_bytes

    def _declared_length(self, scope: Scope) -> int | None:
        for name, value in scope.get("headers", []):
            if name == b"content-length":
                try:
                    return int(value)
                except ValueError:
                    return None
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            length = self._declared_length(scope)
            if length is not None and length > self.max_bytes:
                logger.info("request_body_too_large", path=scope.get("path"), length=length)
                await _send_json(
                    send,
                    413,
                    {
                        "error": "payload_too_large",
                        "message": f"Request body too large. Maximum {self.max_bytes} bytes.",
                    },
                )
                return

        await self.app(scope, receive, send)


# ── 3. Redis Sliding-Window Rate Limiter ──────────────────────────────────────


@dataclass(frozen=True)
class RateRule:
    prefix: str
    limit: int
    window: int  # seconds


# Per client IP. First matching prefix wins, so specific prefixes go first.
_RATE_RULES: list[RateRule] = [
    RateRule("/auth/", 20, 60),                    # brute-force protection
    RateRule("/certifications/start", 30, 60),
    RateRule("/admin/", 60, 60),
]
_DEFAULT_RATE = RateRule("/", 300, 60)

# Per authenticated caller (Clerk `sub`), on top of the IP limits.
_CALLER_RATE_RULES: list[RateRule] = [
    RateRule("/certification-progress/", 120, 60),  # stage checks and reads
    RateRule("/certifications/start", 20, 60),
]
_DEFAULT_CALLER_RATE = RateRule("/", 600, 60)

_SKIP_PATHS: frozenset[str] = frozenset(
    ["/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico"]
)


def match_rate_rule(path: str, rules: list[RateRule], default: RateRule) -> RateRule:
    """Return the first rule whose prefix matches path, else default."""
    for rule in rules:
        if path.startswith(rule.prefix):
            return rule
    return default


def caller_from_token(headers: dict[bytes, bytes]) -> str | None:
    """Peek at the bearer token's `sub` claim without verifying it.

    Auth happens in the route dependency; this only picks a rate-limit bucket.
    """
    try:
        auth = headers.get(b"authorization", b"").decode()
        if not auth.startswith("Bearer "):
            return None
        payload_b64 = auth[7:].split(".")[1]
        payload_b64 += "=" * (-len(payload_b64) % 4)
        claims = json.loads(base64.urlsafe_b64decode(payload_b64))
        sub = claims.get("sub")
        return sub if isinstance(sub, str) else None
    except Exception:  # noqa: BLE001
        return None


class RateLimitMiddleware:
    """IP-based and caller-based sliding-window rate limiter backed by Redis.

    Fails open: a Redis outage logs a warning and lets the request through.
    Passing responses carry X-RateLimit-* headers for the IP bucket.
    """

    def __init__(self, app: ASGIApp, redis_url: str, enabled: bool = True) -> None:
        self.app = app
        self.enabled = enabled
        self._redis_url = redis_url
        self._redis: aioredis.Redis | None = None

    def _client(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=0.5,
                socket_timeout=0.5,
            )
        return self._redis

    async def _hit(self, key: str, rule: RateRule) -> tuple[bool, int]:
        """Record one request in the window. Returns (allowed, remaining)."""
        now = time.time()
        try:
            pipe = self._client().pipeline()
            pipe.zadd(key, {str(now): now})
            pipe.zremrangebyscore(key, 0, now - rule.window)
            pipe.zcard(key)
            pipe.expire(key, rule.window + 1)
            results = await pipe.execute()
        except Exception as exc:  # noqa: BLE001
            logger.warning("rate_limit_redis_error", key=key, error=str(exc))
            return True, rule.limit
        count: int = results[2]
        return count <= rule.limit, max(0, rule.limit - count)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.enabled:
            await self.app(scope, receive, send)
            return

        path: str = scope.get("path", "")
        if path in _SKIP_PATHS:
            await self.app(scope, receive, send)
            return

        raw_headers: dict[bytes, bytes] = dict(scope.get("headers", []))

        # Client IP (X-Forwarded-For from the load balancer first)
        xff = raw_headers.get(b"x-forwarded-for", b"").decode()
        ip = xff.split(",")[0].strip() if xff else (scope.get("client") or ["unknown"])[0]

        effective_path = path[3:] if path.startswith("/v1") else path
        segment = effective_path.strip("/").split("/")[0]

        ip_rule = match_rate_rule(effective_path, _RATE_RULES, _DEFAULT_RATE)
        allowed, remaining = await self._hit(f"rl:ip:{ip}:{segment}", ip_rule)
        if not allowed:
            logger.info("rate_limited", bucket="ip", path=path)
            return await self._send_429(send, ip_rule, "ip_limit_exceeded")

        caller = caller_from_token(raw_headers)
        if caller:
            caller_rule = match_rate_rule(effective_path, _CALLER_RATE_RULES, _DEFAULT_CALLER_RATE)
            caller_allowed, _ = await self._hit(f"rl:caller:{caller}:{segment}", caller_rule)
            if not caller_allowed:
                logger.info("rate_limited", bucket="caller", path=path)
                return await self._send_429(send, caller_rule, "caller_limit_exceeded")

        async def _send_with_rl_headers(message: dict) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers.append("x-ratelimit-limit", str(ip_rule.limit))
                headers.append("x-ratelimit-remaining", str(remaining))
                headers.append("x-ratelimit-window", str(ip_rule.window))
            await send(message)

        await self.app(scope, receive, _send_with_rl_headers)

    @staticmethod
    async def _send_429(send: Send, rule: RateRule, reason: str) -> None:
        await _send_json(
            send,
            429,
            {
                "error": "rate_limited",
                "message": "Too many requests. Please slow down.",
                "reason": reason,
            },
            extra_headers=[
                (b"retry-after", str(rule.window).encode()),
                (b"x-ratelimit-limit", str(rule.limit).encode()),
                (b"x-ratelimit-remaining", b"0"),
                (b"x-ratelimit-window", str(rule.window).encode()),
            ],
        )
