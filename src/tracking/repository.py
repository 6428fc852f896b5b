"""Repository for tracking: shipment-to-carrier bindings and tracking history."""

from datetime import datetime

from shared.database import get_supabase_client
from tracking.schemas import CanonicalStatus, TrackingHistoryRecord


class TrackingRepository:
    def __init__(self, db=None):
        self.db = db or get_supabase_client()

    def get_shipment(self, tracking_number: str, carrier: str | None = None) -> dict | None:
        """Stored shipment for a tracking number, optionally restricted to one carrier."""
        query = self.db.table("shipments").select("id, tracking_number, carrier, status").eq("tracking_number", tracking_number)
        if carrier:
            query = query.eq("carrier", carrier)
        result = query.execute()
        return result.data[0] if result.data else None

    def update_shipment_status(
        self,
        shipment_id: str,
        status: CanonicalStatus,
        tracked_at: datetime,
        delivered_at: datetime | None = None,
    ) -> None:
        update_data: dict = {
            "status": status.value,
            "last_tracked_at": tracked_at.isoformat(),
        }
        if delivered_at:
            update_data["delivered_at"] = delivered_at.isoformat()
        self.db.table("shipments").update(update_data).eq("id", shipment_id).execute()

    def append_history(
        self,
        record: TrackingHistoryRecord,
        shipment_id: str | None = None,
        user_id: str | None = None,
    ) -> None:
        """Inserts one history row. Rows are never updated or deleted."""
        self.db.table("tracking_history").insert({
            "tracking_number": record.tracking_number,
            "carrier": record.carrier,
            "status": record.status.value if record.status else None,
            "events": [e.model_dump(mode="json") for e in record.events],
            "shipment_id": shipment_id,
            "user_id": user_id,
            "timestamp": record.recorded_at.isoformat(),
        }).execute()
