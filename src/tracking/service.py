"""
Tracking service: business logic around the aggregator.

Looks up the stored carrier binding, runs the aggregator, advances the stored
shipment status and writes the history record, audit entry and carrier log.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from aws_lambda_powertools import Logger

from shared.audit import AuditRepository
from shared.errors import BatchItemError, ShipmentValidationError
from tracking.aggregator import TrackingAggregator, TrackingResult
from tracking.carriers import DEFAULT_TIMEOUT_SEC, build_adapters_from_env
from tracking.repository import TrackingRepository
from tracking.schemas import MAX_BULK_ITEMS, CanonicalStatus, as_track_request, raw_tracking_number
from tracking.status import coerce_status

logger = Logger(service="tracking")

DEFAULT_BULK_WORKERS = 5


def build_aggregator_from_env() -> TrackingAggregator:
    timeout = float(os.environ.get("TRACKING_TIMEOUT_SEC") or DEFAULT_TIMEOUT_SEC)
    parallel = (os.environ.get("TRACKING_PARALLEL_DISCOVERY") or "").strip().lower() == "true"
    return TrackingAggregator(build_adapters_from_env(), timeout=timeout, parallel_discovery=parallel)


class TrackingService:
    def __init__(
        self,
        repo: TrackingRepository | None = None,
        audit: AuditRepository | None = None,
        aggregator: TrackingAggregator | None = None,
        bulk_workers: int | None = None,
    ):
        self.repo = repo or TrackingRepository()
        self.audit = audit or AuditRepository()
        self.aggregator = aggregator or build_aggregator_from_env()
        self.bulk_workers = bulk_workers or int(os.environ.get("TRACKING_BULK_WORKERS") or DEFAULT_BULK_WORKERS)

    def track(
        self,
        tracking_number: str,
        carrier: str | None = None,
        user_id: str | None = None,
        ip_address: str | None = None,
    ) -> dict:
        """
        Tracks one shipment.

        Returns:
            dict with tracking_number, carrier, status, shipment_id, tracking_info, last_updated, success.

        Raises:
            NotFoundError: Unknown tracking number or carrier.
            UpstreamError: The bound carrier failed.
        """
        shipment = self.repo.get_shipment(tracking_number, carrier)
        bound_carrier = carrier or (shipment or {}).get("carrier")
        current_status = coerce_status((shipment or {}).get("status"))

        result = self.aggregator.track(tracking_number, bound_carrier, current_status)
        shipment_id = shipment.get("id") if shipment else None

        if shipment_id and result.status and result.status != current_status:
            self.repo.update_shipment_status(
                shipment_id,
                result.status,
                tracked_at=result.record.recorded_at,
                delivered_at=self._delivered_at(result),
            )
            logger.info("Shipment status updated", extra={
                "shipment_id": shipment_id,
                "from": current_status.value if current_status else None,
                "to": result.status.value,
            })

        self.repo.append_history(result.record, shipment_id=shipment_id, user_id=user_id)
        details = {"events_found": len(result.events), "shipment_id": shipment_id}
        self.audit.log_carrier_activity(result.carrier, "tracking_request", tracking_number, details)
        self.audit.log_action(
            "track_shipment",
            "carriers",
            {"tracking_number": tracking_number, "carrier": result.carrier, "events_found": len(result.events)},
            user_id=user_id,
            resource_id=shipment_id,
            ip_address=ip_address,
        )

        return {
            "tracking_number": tracking_number,
            "carrier": result.carrier,
            "status": result.status,
            "shipment_id": shipment_id,
            "tracking_info": [e.model_dump(mode="json") for e in result.events],
            "last_updated": result.record.recorded_at,
            "discovered": result.discovered,
            "success": True,
        }

    def track_bulk(
        self,
        items: list,
        user_id: str | None = None,
        ip_address: str | None = None,
    ) -> dict:
        """
        Tracks each item independently; a failed item fills its own slot and never aborts the batch.
        Items are TrackRequest objects, dicts or bare tracking numbers. Result order matches input order.
        """
        if not items:
            raise ShipmentValidationError("At least one tracking number is required")
        if len(items) > MAX_BULK_ITEMS:
            raise ShipmentValidationError(f"Bulk tracking accepts at most {MAX_BULK_ITEMS} items")

        def run(item) -> dict:
            try:
                request = as_track_request(item)
                return self.track(request.tracking_number, request.carrier, user_id=user_id, ip_address=ip_address)
            except Exception as e:
                failure = BatchItemError(raw_tracking_number(item), e)
                logger.warning("Bulk item failed", extra={
                    "tracking_number": failure.tracking_number,
                    "error_type": e.__class__.__name__,
                    "error": str(failure),
                })
                return failure.to_result()

        workers = max(1, min(self.bulk_workers, len(items)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(run, items))

        return {
            "results": results,
            "total_tracked": len(results),
            "successful": sum(1 for r in results if r.get("success")),
        }

    @staticmethod
    def _delivered_at(result: TrackingResult) -> datetime | None:
        if result.status != CanonicalStatus.DELIVERED:
            return None
        return result.latest_event.delivery_date or result.latest_event.timestamp or datetime.now(timezone.utc)
