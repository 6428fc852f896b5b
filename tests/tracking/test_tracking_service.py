from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from shared.errors import NotFoundError, ShipmentValidationError, UpstreamError
from tracking.aggregator import TrackingAggregator
from tracking.schemas import CanonicalStatus, TrackRequest
from tracking.service import TrackingService, build_aggregator_from_env

RECORDED_AT = datetime(2026, 10, 12, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo() -> MagicMock:
    repo = MagicMock()
    repo.get_shipment.return_value = None
    return repo


@pytest.fixture
def audit() -> MagicMock:
    return MagicMock()


def make_service(repo, audit, adapters) -> TrackingService:
    aggregator = TrackingAggregator(adapters, timeout=1, clock=lambda: RECORDED_AT)
    return TrackingService(repo=repo, audit=audit, aggregator=aggregator, bulk_workers=3)


class TestTrackingServiceTrack:
    def test_discovers_and_records(self, repo, audit, adapter_factory, make_event) -> None:
        ups = adapter_factory("ups", events=[make_event("ups", "In transit")])
        service = make_service(repo, audit, [adapter_factory("fedex"), ups])

        result = service.track("1Z1", user_id="u-1", ip_address="10.0.0.1")

        assert result["success"] is True
        assert result["carrier"] == "ups"
        assert result["status"] == CanonicalStatus.IN_TRANSIT
        assert result["shipment_id"] is None
        assert result["discovered"] is True
        assert result["tracking_info"][0]["status"] == "In transit"
        assert result["last_updated"] == RECORDED_AT

        repo.append_history.assert_called_once()
        record = repo.append_history.call_args[0][0]
        assert record.carrier == "ups"
        repo.update_shipment_status.assert_not_called()
        audit.log_carrier_activity.assert_called_once_with(
            "ups", "tracking_request", "1Z1", {"events_found": 1, "shipment_id": None}
        )
        assert audit.log_action.call_args.kwargs["ip_address"] == "10.0.0.1"

    def test_uses_stored_carrier_binding(self, repo, audit, adapter_factory, make_event) -> None:
        repo.get_shipment.return_value = {"id": "s-1", "carrier": "dhl", "status": "IN_TRANSIT"}
        fedex = adapter_factory("fedex", events=[make_event("fedex")])
        dhl = adapter_factory("dhl", events=[make_event("dhl", "Out for delivery")])
        service = make_service(repo, audit, [fedex, dhl])

        result = service.track("JD01")

        assert result["carrier"] == "dhl"
        assert result["discovered"] is False
        assert fedex.calls == []
        repo.update_shipment_status.assert_called_once_with(
            "s-1", CanonicalStatus.OUT_FOR_DELIVERY, tracked_at=RECORDED_AT, delivered_at=None
        )

    def test_delivered_sets_delivery_time(self, repo, audit, adapter_factory, make_event) -> None:
        repo.get_shipment.return_value = {"id": "s-1", "carrier": "ups", "status": "OUT_FOR_DELIVERY"}
        delivered = make_event("ups", "Delivered", hours=3)
        service = make_service(repo, audit, [adapter_factory("ups", events=[delivered])])

        service.track("1Z1")

        kwargs = repo.update_shipment_status.call_args.kwargs
        assert kwargs["delivered_at"] == delivered.timestamp

    def test_unchanged_status_not_written(self, repo, audit, adapter_factory, make_event) -> None:
        repo.get_shipment.return_value = {"id": "s-1", "carrier": "ups", "status": "DELIVERED"}
        service = make_service(repo, audit, [adapter_factory("ups", events=[make_event("ups", "In transit")])])

        result = service.track("1Z1")

        assert result["status"] == CanonicalStatus.DELIVERED
        repo.update_shipment_status.assert_not_called()
        repo.append_history.assert_called_once()

    def test_bound_carrier_failure_surfaces(self, repo, audit, adapter_factory, make_event) -> None:
        ups = adapter_factory("ups", error=UpstreamError("UPS API returned HTTP 500", carrier="ups"))
        dhl = adapter_factory("dhl", events=[make_event("dhl")])
        service = make_service(repo, audit, [ups, dhl])

        with pytest.raises(UpstreamError):
            service.track("1Z1", carrier="ups")

        repo.append_history.assert_not_called()
        assert dhl.calls == []

    def test_unknown_number(self, repo, audit, adapter_factory) -> None:
        service = make_service(repo, audit, [adapter_factory("fedex"), adapter_factory("ups")])

        with pytest.raises(NotFoundError):
            service.track("NOPE")


class TestTrackingServiceBulk:
    """Bulk tracking isolates failures per item."""

    def test_one_invalid_of_three(self, repo, audit, adapter_factory, make_event) -> None:
        """
        Scenario: 3 tracking numbers, one unknown to every carrier.
        Expected: 3 results in input order, 2 successful.
        """
        ups = adapter_factory("ups", events={"1Z1": [make_event("ups")], "1Z3": [make_event("ups", "Delivered")]})
        service = make_service(repo, audit, [ups])

        result = service.track_bulk([TrackRequest(tracking_number=n) for n in ("1Z1", "BAD", "1Z3")])

        assert result["total_tracked"] == 3
        assert result["successful"] == 2
        assert [r["tracking_number"] for r in result["results"]] == ["1Z1", "BAD", "1Z3"]
        assert result["results"][1]["success"] is False
        assert "not found" in result["results"][1]["error"]

    def test_malformed_item_fails_only_its_slot(self, repo, audit, adapter_factory, make_event) -> None:
        service = make_service(repo, audit, [adapter_factory("ups", events=[make_event("ups")])])

        result = service.track_bulk([
            {"tracking_number": "1Z1"},
            {"tracking_number": "   "},
            "1Z3",
        ])

        assert result["total_tracked"] == 3
        assert result["successful"] == 2
        assert result["results"][1]["tracking_number"] == "   "
        assert result["results"][1]["success"] is False
        assert result["results"][2]["tracking_number"] == "1Z3"

    def test_order_preserved_with_concurrency(self, repo, audit, adapter_factory, make_event) -> None:
        service = make_service(repo, audit, [adapter_factory("ups", events=[make_event("ups")])])
        numbers = [f"1Z{i:03d}" for i in range(20)]

        result = service.track_bulk([TrackRequest(tracking_number=n) for n in numbers])

        assert [r["tracking_number"] for r in result["results"]] == numbers
        assert result["successful"] == 20

    def test_empty_batch(self, repo, audit, adapter_factory) -> None:
        with pytest.raises(ShipmentValidationError):
            make_service(repo, audit, [adapter_factory("ups")]).track_bulk([])

    def test_batch_too_large(self, repo, audit, adapter_factory) -> None:
        items = [TrackRequest(tracking_number=str(i)) for i in range(51)]
        with pytest.raises(ShipmentValidationError):
            make_service(repo, audit, [adapter_factory("ups")]).track_bulk(items)


class TestBuildAggregatorFromEnv:
    @patch("tracking.service.build_adapters_from_env")
    def test_reads_settings(self, mock_build, monkeypatch) -> None:
        mock_build.return_value = []
        monkeypatch.setenv("TRACKING_TIMEOUT_SEC", "4.5")
        monkeypatch.setenv("TRACKING_PARALLEL_DISCOVERY", "TRUE")

        aggregator = build_aggregator_from_env()

        assert aggregator.timeout == 4.5
        assert aggregator.parallel_discovery is True
