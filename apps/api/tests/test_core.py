"""Tests for error envelopes and Clerk key lookup."""

import json
from unittest.mock import AsyncMock, call, patch

import pytest
from fastapi import HTTPException
from jose import JWTError, jwt
from sqlalchemy.exc import OperationalError
from starlette.requests import Request

from app.auth import clerk_jwt
from app.core.errors import http_exception_handler, persistence_exception_handler

pytestmark = pytest.mark.anyio


def _request(headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/v1/certifications/start",
            "headers": headers or [],
            "query_string": b"",
        }
    )


class TestErrorEnvelope:
    async def test_persistence_failure_is_503(self):
        exc = OperationalError("INSERT ...", {}, Exception("connection refused"))
        response = await persistence_exception_handler(_request(), exc)
        body = json.loads(response.body)
        assert response.status_code == 503
        assert body["error"] == "persistence_failure"
        assert body["request_id"] == "unknown"

    async def test_http_exception_keeps_request_id(self):
        response = await http_exception_handler(
            _request([(b"x-request-id", b"req-42")]),
            HTTPException(status_code=409, detail="Certification process already started"),
        )
        body = json.loads(response.body)
        assert response.status_code == 409
        assert body == {
            "error": "http_409",
            "message": "Certification process already started",
            "detail": "Certification process already started",
            "request_id": "req-42",
        }

    async def test_structured_detail(self):
        response = await http_exception_handler(
            _request(),
            HTTPException(status_code=422, detail={"error": "invalid_transition", "message": "nope"}),
        )
        body = json.loads(response.body)
        assert body["error"] == "invalid_transition"
        assert body["message"] == "nope"


class TestClerkKeyLookup:
    _TOKEN = jwt.encode({"sub": "user_1"}, "secret", algorithm="HS256", headers={"kid": "rotated"})

    async def test_unknown_kid_refetches_once_then_fails(self):
        with patch.object(
            clerk_jwt, "_fetch_jwks", new_callable=AsyncMock, return_value={"keys": []}
        ) as fetch:
            with pytest.raises(JWTError, match="No matching key"):
                await clerk_jwt.verify_clerk_token(self._TOKEN)
        assert fetch.await_args_list == [call(), call(force=True)]

    async def test_local_cache_served_without_redis(self):
        jwks = {"keys": [{"kid": "k1"}]}
        with patch.object(clerk_jwt, "_redis_client", return_value=None), patch.object(
            clerk_jwt, "_local_cache", (float("inf"), jwks)
        ):
            assert await clerk_jwt._fetch_jwks() == jwks

    async def test_clear_cache_drops_local_copy(self):
        with patch.object(clerk_jwt, "_redis_client", return_value=None):
            clerk_jwt._local_cache = (float("inf"), {"keys": []})
            await clerk_jwt.clear_jwks_cache()
            assert clerk_jwt._local_cache is None
