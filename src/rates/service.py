"""
Rates service: single-shipment pricing, multi-carrier quoting and the carrier catalogue.

Quote history is recorded when Supabase is configured; a failed write is
logged and does not fail the quote.
"""

import os
import uuid
from datetime import date, datetime, timezone

from aws_lambda_powertools import Logger

from rates.engine import RateEngine
from rates.rate_table import RateTable, load_rate_table
from rates.repository import RateRequestRepository
from rates.schemas import ShipmentRequest
from rates.shopper import RateShopper, cheapest, fastest_guaranteed
from shared.audit import AuditRepository

logger = Logger(service="rates")


def _history_configured() -> bool:
    return bool(os.environ.get("SUPABASE_URL") and os.environ.get("SUPABASE_KEY"))


class RatesService:
    def __init__(
        self,
        rate_table: RateTable | None = None,
        engine: RateEngine | None = None,
        shopper: RateShopper | None = None,
        history: RateRequestRepository | None = None,
        audit: AuditRepository | None = None,
    ):
        self.rate_table = rate_table or load_rate_table()
        self.engine = engine or RateEngine(self.rate_table)
        self.shopper = shopper or RateShopper(self.rate_table)
        if history is None and audit is None and _history_configured():
            history, audit = RateRequestRepository(), AuditRepository()
        self.history = history
        self.audit = audit

    def calculate(self, request: ShipmentRequest, now: datetime | None = None) -> dict:
        """
        Prices one shipment with the freight engine.

        Raises:
            ShipmentValidationError: See RateEngine.calculate.
        """
        now = now or datetime.now(timezone.utc)
        result = self.engine.calculate(request, now=now)
        logger.info("Rate calculated", extra={
            "origin": result.origin,
            "destination": result.destination,
            "equipment_type": result.equipment_type,
            "total_cost": result.total_cost,
        })
        return {"success": True, "data": result, "calculated_at": now}

    def quote(
        self,
        request: ShipmentRequest,
        today: date | None = None,
        user_id: str | None = None,
        ip_address: str | None = None,
    ) -> dict:
        """
        Quotes all requested carriers and services, cheapest first.

        Returns:
            dict with request_id, rates, meta (total_rates, cheapest_rate, fastest_rate) and summary.

        Raises:
            ShipmentValidationError: Missing origin, destination, weight or dimensions.
            NotFoundError: Unknown carrier or service filter.
        """
        quotes = self.shopper.quote(request, today=today)
        request_id = f"rate_{uuid.uuid4().hex[:12]}"
        best = cheapest(quotes)
        fastest = fastest_guaranteed(quotes)
        costs = [q.total_cost for q in quotes]

        self._record(request_id, request, quotes, user_id, ip_address)

        return {
            "request_id": request_id,
            "rates": quotes,
            "meta": {
                "total_rates": len(quotes),
                "cheapest_rate": best.total_cost if best else 0,
                "fastest_rate": fastest.total_cost if fastest else 0,
            },
            "summary": {
                "cheapest": best,
                "fastest_guaranteed": fastest,
                "average_cost": round(sum(costs) / len(costs), 2) if costs else 0,
                "price_range": {"min": costs[0], "max": costs[-1]} if costs else None,
            },
        }

    def list_carriers(self, include_rates: bool = False) -> list[dict]:
        carriers = []
        for code, carrier in self.rate_table.carriers.items():
            services = []
            for service_code, service in carrier.services.items():
                entry = {
                    "code": service_code,
                    "name": service.name,
                    "transit_time": service.transit_time,
                    "guaranteed_delivery": service.guaranteed,
                    "features": service.features,
                }
                if include_rates:
                    entry.update({"base_rate": service.base_rate, "weight_multiplier": service.weight_multiplier})
                services.append(entry)
            item = {"code": code, "name": carrier.name, "services": services}
            if include_rates:
                item.update({
                    "fuel_surcharge": carrier.fuel_surcharge_rate,
                    "dim_divisor": carrier.dim_divisor,
                    "surcharges": {
                        "residential": carrier.residential_surcharge,
                        "signature": carrier.signature_surcharge,
                        "saturday": carrier.saturday_surcharge,
                    },
                })
            carriers.append(item)
        return carriers

    def list_equipment(self) -> list[dict]:
        return [
            {"value": key, "label": equipment.label}
            for key, equipment in self.rate_table.equipment.items()
        ]

    def _record(self, request_id, request, quotes, user_id, ip_address) -> None:
        if self.history is None:
            return
        try:
            self.history.save_quote_request(request_id, request, quotes, user_id=user_id)
            if self.audit is not None:
                self.audit.log_action(
                    "rate_request",
                    "rates",
                    {
                        "request_id": request_id,
                        "carriers": request.carriers or list(self.rate_table.carriers),
                        "rates_found": len(quotes),
                        "from": request.origin.label,
                        "to": request.destination.label,
                    },
                    user_id=user_id,
                    ip_address=ip_address,
                )
        except Exception:
            logger.exception("Failed to record rate request", extra={"request_id": request_id})
