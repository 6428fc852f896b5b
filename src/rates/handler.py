"""
Handler for the rates microservice.

Routes:
- POST /rates/calculate   { "origin": "New York, NY", "destination": "Chicago, IL", "equipment_type": "van", "weight": 40000 }
- POST /rates/quote       { "origin": {...}, "destination": {...}, "weight": 12, "dimensions": {...}, "options": {...} }
- GET  /rates/carriers    optional ?include_rates=true
"""

from aws_lambda_powertools import Logger
from aws_lambda_powertools.utilities.parser import parse
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import ValidationError

from rates.schemas import ShipmentRequest
from rates.service import RatesService
from shared.errors import NotFoundError, RateLimitExceeded, ShipmentValidationError
from shared.rate_limit import RateLimiter
from shared.responses import (
    body_json,
    client_ip,
    get_method,
    get_path,
    http_response,
    rate_limited_response,
    validation_details,
)

logger = Logger(service="rates")

# Owned by this Lambda container; one bucket per caller IP.
rate_limiter = RateLimiter.from_env()


@logger.inject_lambda_context
def lambda_handler(event: dict, context: LambdaContext) -> dict:
    return handle(event, rate_limiter)


def handle(event: dict, limiter: RateLimiter) -> dict:
    method = get_method(event)
    raw_path = get_path(event)
    logger.info("rates request", extra={"method": method, "raw_path": raw_path})

    if method == "OPTIONS":
        return http_response(200, {})

    ip_address = client_ip(event)
    try:
        limiter.check(ip_address)

        if method == "GET" and raw_path.rstrip("/").endswith("/carriers"):
            query = event.get("queryStringParameters") or {}
            include_rates = str(query.get("include_rates", "")).lower() == "true"
            service = RatesService()
            return http_response(200, {
                "success": True,
                "data": service.list_carriers(include_rates=include_rates),
                "equipment": service.list_equipment(),
            })

        if method != "POST":
            return http_response(405, {"error": "Method not allowed. Use POST."})

        body = body_json(event)
        if not body:
            return http_response(400, {"error": "JSON body with origin and destination is required"})

        if raw_path.rstrip("/").endswith("/calculate"):
            payload = parse(event=body, model=ShipmentRequest)
            return http_response(200, RatesService().calculate(payload))

        if raw_path.rstrip("/").endswith("/quote"):
            payload = parse(event=body, model=ShipmentRequest)
            result = RatesService().quote(payload, ip_address=ip_address)
            return http_response(200, {"success": True, **result})

        logger.info("route not found", extra={"method": method, "raw_path": raw_path})
        return http_response(404, {"error": "Route not found"})

    except RateLimitExceeded as e:
        logger.warning("Rate limit exceeded", extra={"ip_address": ip_address})
        return rate_limited_response(e)
    except ValidationError as e:
        logger.warning("Invalid payload", extra={"errors": validation_details(e)})
        return http_response(400, {"error": "Invalid request data", "details": validation_details(e)})
    except ShipmentValidationError as e:
        logger.warning("Validation: %s", e)
        return http_response(400, {"error": "Validation failed", "details": e.errors})
    except NotFoundError as e:
        return http_response(404, {"error": str(e)})
    except Exception:
        logger.exception("Rate calculation failed")
        return http_response(500, {"error": "Failed to calculate rates"})
