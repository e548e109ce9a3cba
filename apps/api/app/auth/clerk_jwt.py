"""Clerk RS256 JWT verification via JWKS.

Public keys come from Clerk's well-known JWKS endpoint. They are cached in
Redis (shared across worker processes) and in-process, so a Redis outage
only costs one extra fetch per process per TTL. An unknown ``kid`` forces
one refetch to pick up rotated keys.
"""

import json
import time

import httpx
import structlog
from jose import JWTError, jwt

from app.core.config import settings

logger = structlog.get_logger()

_REDIS_KEY = "clerk:jwks"

# (expires_at_monotonic, jwks)
_local_cache: tuple[float, dict] | None = None


def _redis_client():
    """Return a short-lived Redis client, or None if Redis is unavailable."""
    try:
        from redis.asyncio import from_url  # type: ignore[import-untyped]
        return from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=1)
    except Exception:  # noqa: BLE001
        return None


async def _redis_get() -> dict | None:
    redis = _redis_client()
    if redis is None:
        return None
    try:
        cached = await redis.get(_REDIS_KEY)
        return json.loads(cached) if cached else None
    except Exception as exc:  # noqa: BLE001
        logger.debug("clerk_jwks_redis_read_failed", error=str(exc))
        return None
    finally:
        await redis.aclose()


async def _redis_set(jwks: dict) -> None:
    redis = _redis_client()
    if redis is None:
        return
    try:
        await redis.setex(_REDIS_KEY, settings.CLERK_JWKS_CACHE_TTL, json.dumps(jwks))
    except Exception as exc:  # noqa: BLE001
        logger.debug("clerk_jwks_redis_write_failed", error=str(exc))
    finally:
        await redis.aclose()


async def _fetch_jwks(force: bool = False) -> dict:
    """Return the JWKS: in-process cache, then Redis, then Clerk."""
    global _local_cache

    if not force:
        if _local_cache and _local_cache[0] > time.monotonic():
            return _local_cache[1]
        cached = await _redis_get()
        if cached:
            _local_cache = (time.monotonic() + settings.CLERK_JWKS_CACHE_TTL, cached)
            return cached

    jwks_url = f"{settings.CLERK_ISSUER_URL}/.well-known/jwks.json"
    async with httpx.AsyncClient() as client:
        response = await client.get(jwks_url, timeout=10.0)
        response.raise_for_status()
        jwks = response.json()

    logger.info("clerk_jwks_refreshed", keys_count=len(jwks.get("keys", [])), forced=force)
    _local_cache = (time.monotonic() + settings.CLERK_JWKS_CACHE_TTL, jwks)
    await _redis_set(jwks)
    return jwks


def _find_key(jwks: dict, kid: str | None) -> dict | None:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


async def verify_clerk_token(token: str) -> dict:
    """
    Verify a Clerk-issued RS256 JWT.

    Returns the decoded payload with claims (sub, email, etc.).
    Raises JWTError on any validation failure.
    """
    kid = jwt.get_unverified_header(token).get("kid")

    signing_key = _find_key(await _fetch_jwks(), kid)
    if signing_key is None:
        signing_key = _find_key(await _fetch_jwks(force=True), kid)
    if signing_key is None:
        raise JWTError(f"No matching key found for kid={kid}")

    return jwt.decode(
        token,
        signing_key,
        algorithms=["RS256"],
        issuer=settings.CLERK_ISSUER_URL,
        options={
            "verify_aud": False,  # Clerk may not set aud
            "verify_iss": bool(settings.CLERK_ISSUER_URL),
            "verify_exp": True,
        },
    )


async def clear_jwks_cache() -> None:
    """Drop cached keys in-process and in Redis (key rotation, tests)."""
    global _local_cache
    _local_cache = None

    redis = _redis_client()
    if redis is None:
        return
    try:
        await redis.delete(_REDIS_KEY)
    except Exception as exc:  # noqa: BLE001
        logger.debug("clerk_jwks_redis_delete_failed", error=str(exc))
    finally:
        await redis.aclose()
