"""
Handler for the tracking microservice.

Routes:
- POST /tracking                      { "tracking_number": "...", "carrier": "ups" }  single lookup
- POST /tracking                      { "tracking_numbers": [ {...}, ... ] }           bulk lookup (max 50)
- GET  /tracking/{tracking_number}    optional ?carrier=fedex
"""

from aws_lambda_powertools import Logger
from aws_lambda_powertools.utilities.parser import parse
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import ValidationError

from shared.errors import NotFoundError, RateLimitExceeded, ShipmentValidationError, UpstreamError
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
from tracking.schemas import BulkTrackRequest, TrackRequest
from tracking.service import TrackingService

logger = Logger(service="tracking")

# Owned by this Lambda container; one bucket per caller IP.
rate_limiter = RateLimiter.from_env()


@logger.inject_lambda_context
def lambda_handler(event: dict, context: LambdaContext) -> dict:
    return handle(event, rate_limiter)


def handle(event: dict, limiter: RateLimiter) -> dict:
    method = get_method(event)
    raw_path = get_path(event)
    logger.info("tracking request", extra={"method": method, "raw_path": raw_path})

    if method == "OPTIONS":
        return http_response(200, {})

    if method not in ("GET", "POST"):
        return http_response(405, {"error": "Method not allowed. Use GET or POST."})

    ip_address = client_ip(event)
    try:
        limiter.check(ip_address)

        if method == "POST":
            body = body_json(event)
            if not body:
                return http_response(400, {"error": "JSON body with tracking_number or tracking_numbers is required"})
            service = TrackingService()
            if isinstance(body.get("tracking_numbers"), list):
                payload = parse(event=body, model=BulkTrackRequest)
                result = service.track_bulk(payload.tracking_numbers, ip_address=ip_address)
                return http_response(200, {"success": True, **result})
            payload = parse(event=body, model=TrackRequest)
            result = service.track(payload.tracking_number, payload.carrier, ip_address=ip_address)
            return http_response(200, result)

        path_params = event.get("pathParameters") or {}
        query = event.get("queryStringParameters") or {}
        tracking_number = path_params.get("tracking_number") or path_params.get("proxy") or ""
        if "/" in tracking_number:
            tracking_number = tracking_number.split("/")[-1]
        if not tracking_number:
            return http_response(400, {"error": "Tracking number is required"})
        payload = TrackRequest(tracking_number=tracking_number, carrier=query.get("carrier"))
        result = TrackingService().track(payload.tracking_number, payload.carrier, ip_address=ip_address)
        return http_response(200, result)

    except RateLimitExceeded as e:
        logger.warning("Rate limit exceeded", extra={"ip_address": ip_address})
        return rate_limited_response(e)
    except ValidationError as e:
        logger.warning("Invalid payload", extra={"errors": validation_details(e)})
        return http_response(400, {"error": "Invalid request data", "details": validation_details(e)})
    except ShipmentValidationError as e:
        logger.warning("Validation: %s", e)
        return http_response(400, {"error": "Invalid request data", "details": e.errors})
    except NotFoundError as e:
        logger.info("Tracking not found: %s", e)
        return http_response(404, {"error": str(e), "success": False})
    except UpstreamError as e:
        logger.warning("Carrier API: %s", e, extra={"carrier": e.carrier})
        return http_response(502, {"error": str(e), "carrier": e.carrier, "success": False})
    except Exception:
        logger.exception("Tracking failed")
        return http_response(500, {"error": "Failed to track shipment"})
