"""Repository for rates: quote history."""

from datetime import datetime, timezone

from shared.database import get_supabase_client
from rates.schemas import RateQuote, ShipmentRequest


class RateRequestRepository:
    def __init__(self, db=None):
        self.db = db or get_supabase_client()

    def save_quote_request(
        self,
        request_id: str,
        request: ShipmentRequest,
        quotes: list[RateQuote],
        user_id: str | None = None,
    ) -> None:
        """Stores the request with its ranked quotes."""
        self.db.table("rate_requests").insert({
            "id": request_id,
            "user_id": user_id,
            "request": request.model_dump(mode="json"),
            "requested_carriers": request.carriers or [],
            "requested_services": request.services or [],
            "created_at": datetime.now(timezone.utc).isoformat(),
        }).execute()
        if quotes:
            self.db.table("rate_quotes").insert([
                {
                    "rate_request_id": request_id,
                    "carrier": q.carrier_id,
                    "service": q.service_id,
                    "cost": q.total_cost,
                    "transit_days": q.transit_days,
                    "guaranteed_delivery": q.guaranteed_delivery,
                    "rank": q.rank,
                }
                for q in quotes
            ]).execute()
