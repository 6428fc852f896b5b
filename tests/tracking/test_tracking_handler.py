import json
from unittest.mock import patch

import pytest

from shared.errors import NotFoundError, UpstreamError
from shared.rate_limit import RateLimiter
from tracking.handler import handle, lambda_handler


def make_event(method: str, path: str = "/tracking", body=None, path_params=None, query=None) -> dict:
    return {
        "rawPath": path,
        "requestContext": {"http": {"method": method, "sourceIp": "203.0.113.9"}},
        "headers": {"X-Forwarded-For": "198.51.100.4, 10.0.0.1"},
        "pathParameters": path_params,
        "queryStringParameters": query,
        "body": json.dumps(body) if body is not None else None,
    }


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(capacity=100, refill_per_sec=1)


@pytest.fixture
def mock_service():
    with patch("tracking.handler.TrackingService") as mock_service_class:
        yield mock_service_class.return_value


class TestTrackingHandler:
    def test_options(self, limiter) -> None:
        assert handle(make_event("OPTIONS"), limiter)["statusCode"] == 200

    def test_method_not_allowed(self, limiter) -> None:
        assert handle(make_event("DELETE"), limiter)["statusCode"] == 405

    def test_single_post(self, limiter, mock_service) -> None:
        mock_service.track.return_value = {"tracking_number": "1Z1", "carrier": "ups", "success": True}

        response = handle(make_event("POST", body={"tracking_number": " 1Z1 ", "carrier": "UPS"}), limiter)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["carrier"] == "ups"
        mock_service.track.assert_called_once_with("1Z1", "ups", ip_address="198.51.100.4")

    def test_get_with_path_parameter(self, limiter, mock_service) -> None:
        mock_service.track.return_value = {"tracking_number": "JD01", "success": True}

        response = handle(
            make_event("GET", "/tracking/JD01", path_params={"tracking_number": "JD01"}, query={"carrier": "dhl"}),
            limiter,
        )

        assert response["statusCode"] == 200
        mock_service.track.assert_called_once_with("JD01", "dhl", ip_address="198.51.100.4")

    def test_get_without_number(self, limiter, mock_service) -> None:
        response = handle(make_event("GET"), limiter)
        assert response["statusCode"] == 400
        mock_service.track.assert_not_called()

    def test_bulk_post(self, limiter, mock_service) -> None:
        mock_service.track_bulk.return_value = {"results": [], "total_tracked": 2, "successful": 1}
        items = [{"tracking_number": "1Z1"}, {"tracking_number": "BAD", "carrier": "fedex"}]

        response = handle(make_event("POST", body={"tracking_numbers": items}), limiter)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["success"] is True
        assert body["total_tracked"] == 2
        mock_service.track_bulk.assert_called_once_with(items, ip_address="198.51.100.4")

    def test_bulk_over_limit(self, limiter, mock_service) -> None:
        items = [{"tracking_number": str(i)} for i in range(51)]

        response = handle(make_event("POST", body={"tracking_numbers": items}), limiter)

        assert response["statusCode"] == 400
        mock_service.track_bulk.assert_not_called()

    def test_missing_tracking_number(self, limiter, mock_service) -> None:
        response = handle(make_event("POST", body={"carrier": "ups"}), limiter)

        assert response["statusCode"] == 400
        assert json.loads(response["body"])["error"] == "Invalid request data"

    def test_empty_body(self, limiter, mock_service) -> None:
        assert handle(make_event("POST"), limiter)["statusCode"] == 400


class TestTrackingHandlerErrors:
    def test_not_found(self, limiter, mock_service) -> None:
        mock_service.track.side_effect = NotFoundError("Tracking number X not found with any carrier")

        response = handle(make_event("POST", body={"tracking_number": "X"}), limiter)

        assert response["statusCode"] == 404
        assert json.loads(response["body"])["success"] is False

    def test_upstream(self, limiter, mock_service) -> None:
        mock_service.track.side_effect = UpstreamError("UPS API returned HTTP 500", carrier="ups")

        response = handle(make_event("POST", body={"tracking_number": "X", "carrier": "ups"}), limiter)

        assert response["statusCode"] == 502
        assert json.loads(response["body"])["carrier"] == "ups"

    def test_unexpected(self, limiter, mock_service) -> None:
        mock_service.track.side_effect = KeyError("secret")

        response = handle(make_event("POST", body={"tracking_number": "X"}), limiter)

        assert response["statusCode"] == 500
        assert "secret" not in response["body"]

    def test_rate_limited(self, mock_service) -> None:
        mock_service.track.return_value = {"success": True}
        limiter = RateLimiter(capacity=2, refill_per_sec=0.5)
        event = make_event("POST", body={"tracking_number": "X"})

        statuses = [handle(event, limiter)["statusCode"] for _ in range(3)]

        assert statuses == [200, 200, 429]

    def test_rate_limited_headers(self, mock_service) -> None:
        mock_service.track.return_value = {"success": True}
        limiter = RateLimiter(capacity=1, refill_per_sec=0.5)
        event = make_event("POST", body={"tracking_number": "X"})

        handle(event, limiter)
        response = handle(event, limiter)

        assert response["statusCode"] == 429
        assert response["headers"]["Retry-After"] == "2"
        assert response["headers"]["X-RateLimit-Limit"] == "1"
        assert response["headers"]["X-RateLimit-Remaining"] == "0"
        assert "X-RateLimit-Reset" in response["headers"]


class TestTrackingLambdaHandler:
    def test_lambda_entrypoint(self, mock_service, lambda_context) -> None:
        mock_service.track.return_value = {"tracking_number": "1Z1", "success": True}
        response = lambda_handler(make_event("POST", body={"tracking_number": "1Z1"}), lambda_context)
        assert response["statusCode"] == 200
