from __future__ import annotations

import hmac
import hashlib
import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError
from fastapi import Depends, Header, HTTPException, Request
from pydantic import BaseModel

from kudos.config import Settings
from kudos.models import ErrorCode
from kudos.services.errors import LedgerError

settings = Settings()
redis_client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    code: str
    message: str
    field: str | None = None


def http_error(exc: LedgerError) -> HTTPException:
    """Translate a ledger error into the API's error payload."""
    err = ErrorResponse(
        code=exc.code.value,
        message=exc.message,
        field=getattr(exc, "field", None),
    )
    return HTTPException(status_code=exc.status_code, detail=err.model_dump(exclude_none=True))


async def require_api_headers(
    x_api_key: str = Header(..., alias="X-API-Key"),
    x_api_ver: str | None = Header(None, alias="X-API-Ver"),
    x_user_id: int | None = Header(None, alias="X-User-ID"),
) -> int:
    """Resolve the caller's user id supplied by the identity gateway."""
    if x_api_ver is None:
        err = ErrorResponse(code=ErrorCode.UPGRADE_REQUIRED, message="Missing API version")
        raise HTTPException(status_code=426, detail=err.model_dump(exclude_none=True))

    if x_api_ver != "v1":
        err = ErrorResponse(code=ErrorCode.UPGRADE_REQUIRED, message="Invalid API version")
        raise HTTPException(status_code=426, detail=err.model_dump(exclude_none=True))

    if not hmac.compare_digest(x_api_key, settings.api_key):
        err = ErrorResponse(code=ErrorCode.UNAUTHORIZED, message="Invalid API key")
        raise HTTPException(status_code=401, detail=err.model_dump(exclude_none=True))

    if x_user_id is None:
        err = ErrorResponse(code=ErrorCode.UNAUTHORIZED, message="Missing user ID")
        raise HTTPException(status_code=401, detail=err.model_dump(exclude_none=True))

    return x_user_id


async def rate_limit(request: Request, user_id: int = Depends(require_api_headers)) -> int:
    """Throttle requests by IP and user via Redis."""
    client_host = request.client.host if request.client else ""
    ip = client_host
    xff = request.headers.get("X-Forwarded-For")
    if xff and client_host in settings.trusted_proxies:
        forwarded = [h.strip() for h in xff.split(",") if h.strip()]
        proxies = forwarded[1:] + [client_host]
        if forwarded and all(p in settings.trusted_proxies for p in proxies):
            ip = forwarded[0]
    ip_key = f"rate:ip:{ip}"
    user_key = f"rate:user:{user_id}"

    try:
        pipe = redis_client.pipeline()
        pipe.incr(ip_key)
        pipe.expire(ip_key, 60)
        pipe.incr(user_key)
        pipe.expire(user_key, 60)
        ip_count, _, user_count, _ = await pipe.execute()
    except RedisError as exc:
        logger.exception("Redis unavailable for rate limiting: %s", exc)
        err = ErrorResponse(
            code=ErrorCode.SERVICE_UNAVAILABLE, message="Rate limiter unavailable"
        )
        raise HTTPException(status_code=503, detail=err.model_dump(exclude_none=True)) from exc
    if ip_count > settings.rate_limit_ip_per_min or user_count > settings.rate_limit_user_per_min:
        err = ErrorResponse(code=ErrorCode.TOO_MANY_REQUESTS, message="Rate limit exceeded")
        raise HTTPException(status_code=429, detail=err.model_dump(exclude_none=True))

    return user_id


def compute_signature(secret: str, payload: dict) -> str:
    body = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def require_admin_signature(scope: str):
    """Dependency factory: ``X-Sign`` must be the HMAC of ``{"scope": scope}``."""

    async def _check(x_sign: str = Header(..., alias="X-Sign")) -> str:
        expected = compute_signature(settings.hmac_secret, {"scope": scope})
        if not hmac.compare_digest(expected, x_sign):
            err = ErrorResponse(code=ErrorCode.UNAUTHORIZED, message="Invalid signature")
            raise HTTPException(status_code=401, detail=err.model_dump(exclude_none=True))
        return scope

    return _check
