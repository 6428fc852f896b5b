import json
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from shared.errors import RateLimitExceeded


class PortalJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for API responses.

    Converts:
    - Decimal to float (or int if no decimal places)
    - datetime/date to ISO 8601 string
    - Enum to its value
    - pydantic models to their JSON-mode dump
    """
    def default(self, obj):
        if isinstance(obj, Decimal):
            if obj % 1 == 0:
                return int(obj)
            return float(obj)
        elif isinstance(obj, (datetime, date)):
            return obj.isoformat()
        elif isinstance(obj, Enum):
            return obj.value
        elif isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        return super().default(obj)


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def http_response(status_code: int, body: dict, headers: dict | None = None) -> dict:
    merged = {"Content-Type": "application/json", **CORS_HEADERS, **(headers or {})}
    return {
        "statusCode": status_code,
        "headers": merged,
        "body": json.dumps(body, cls=PortalJSONEncoder),
    }


def rate_limited_response(error: RateLimitExceeded) -> dict:
    """429 with Retry-After and the X-RateLimit-* headers; the reset time is an ISO 8601 UTC timestamp."""
    reset_at = datetime.now(timezone.utc) + timedelta(seconds=error.retry_after)
    headers = {
        "Retry-After": str(error.retry_after),
        "X-RateLimit-Remaining": str(error.remaining),
        "X-RateLimit-Reset": reset_at.isoformat(),
    }
    if error.limit is not None:
        headers["X-RateLimit-Limit"] = str(error.limit)
    return http_response(429, {"error": str(error), "retry_after": error.retry_after}, headers=headers)


def get_method(event: dict) -> str | None:
    """Supports payload format 2.0 (http.method) and 1.0 (httpMethod)."""
    ctx = event.get("requestContext") or {}
    return ctx.get("http", {}).get("method") or ctx.get("httpMethod")


def get_path(event: dict) -> str:
    return event.get("rawPath", "") or event.get("path", "") or ""


def body_json(event: dict) -> dict:
    body = event.get("body")
    if body is None:
        return {}
    if isinstance(body, str):
        try:
            return json.loads(body) if body else {}
        except json.JSONDecodeError:
            return {}
    return body if isinstance(body, dict) else {}


def client_ip(event: dict) -> str:
    """Caller identity for rate limiting: first X-Forwarded-For hop, then the source IP."""
    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if headers.get("x-real-ip"):
        return headers["x-real-ip"]
    ctx = event.get("requestContext") or {}
    return (
        ctx.get("http", {}).get("sourceIp")
        or (ctx.get("identity") or {}).get("sourceIp")
        or "unknown"
    )


def validation_details(error) -> list:
    """JSON-safe list of pydantic validation errors."""
    return json.loads(error.json(include_url=False))
