"""
Rate shopping across the carrier/service table.

For every candidate carrier x service:
    billable = max(actual weight, L*W*H / carrier divisor)
    total    = (base + billable * weight multiplier) * distance multiplier * (1 + fuel rate)
               + requested option surcharges
Quotes come back sorted by total cost, cheapest first.
"""

from datetime import date, timedelta

from aws_lambda_powertools import Logger

from rates.rate_table import CarrierRate, RateTable, ServiceRate, load_rate_table
from rates.schemas import Location, RateBreakdown, RateQuote, ShipmentOptions, ShipmentRequest
from shared.errors import NotFoundError, ShipmentValidationError

logger = Logger(service="rates")

SAME_REGION_MULTIPLIER = 1.0
SAME_COUNTRY_MULTIPLIER = 1.2
CROSS_BORDER_MULTIPLIER = 1.5
MIN_INSURANCE = 2.50
INSURANCE_RATE = 0.01


def dimensional_weight(length: float, width: float, height: float, divisor: float) -> float:
    return (length * width * height) / divisor


def distance_multiplier(origin: Location, destination: Location) -> float:
    if origin.country != destination.country:
        return CROSS_BORDER_MULTIPLIER
    if origin.region != destination.region:
        return SAME_COUNTRY_MULTIPLIER
    return SAME_REGION_MULTIPLIER


def insurance_cost(declared_value: float | None) -> float:
    """Minimum $2.50 or 1% of the declared value."""
    return max(MIN_INSURANCE, (declared_value or 0.0) * INSURANCE_RATE)


def add_business_days(start: date, days: int, saturday_delivery: bool = False) -> date:
    """Counts forward `days` delivery days; Sundays never count, Saturdays only with Saturday delivery."""
    current = start
    added = 0
    while added < days:
        current += timedelta(days=1)
        weekday = current.weekday()
        if weekday == 6 or (weekday == 5 and not saturday_delivery):
            continue
        added += 1
    return current


def option_surcharges(carrier: CarrierRate, options: ShipmentOptions, declared_value: float | None) -> dict[str, float]:
    surcharges = {}
    if options.residential_delivery:
        surcharges["residential"] = carrier.residential_surcharge
    if options.signature_required:
        surcharges["signature"] = carrier.signature_surcharge
    if options.saturday_delivery:
        surcharges["saturday"] = carrier.saturday_surcharge
    if options.insurance:
        surcharges["insurance"] = round(insurance_cost(declared_value), 2)
    return surcharges


def cheapest(quotes: list[RateQuote]) -> RateQuote | None:
    return quotes[0] if quotes else None


def fastest_guaranteed(quotes: list[RateQuote]) -> RateQuote | None:
    """Cheapest quote among guaranteed-delivery services."""
    return next((q for q in quotes if q.guaranteed_delivery), None)


class RateShopper:
    def __init__(self, rate_table: RateTable | None = None):
        self.rate_table = rate_table or load_rate_table()

    def _candidates(self, request: ShipmentRequest) -> list[tuple[str, CarrierRate, str, ServiceRate]]:
        carriers = self.rate_table.carriers
        carrier_ids = request.carriers or list(carriers)
        unknown = [c for c in carrier_ids if c not in carriers]
        if unknown:
            raise NotFoundError(f"Unknown carrier(s): {', '.join(unknown)}")

        if request.services:
            offered = {code for c in carrier_ids for code in carriers[c].services}
            missing = [s for s in request.services if s not in offered]
            if missing:
                raise NotFoundError(f"Unknown service(s) for the selected carriers: {', '.join(missing)}")

        candidates = []
        for carrier_id in carrier_ids:
            carrier = carriers[carrier_id]
            service_ids = request.services or list(carrier.services)
            for service_id in service_ids:
                service = carrier.services.get(service_id)
                if service is not None:
                    candidates.append((carrier_id, carrier, service_id, service))
        return candidates

    def quote(self, request: ShipmentRequest, today: date | None = None) -> list[RateQuote]:
        """
        Quotes every requested carrier x service.

        Raises:
            ShipmentValidationError: Missing origin, destination, weight or dimensions.
            NotFoundError: A carrier or service filter names something not in the table.
        """
        errors = []
        if request.origin is None:
            errors.append("Origin is required")
        if request.destination is None:
            errors.append("Destination is required")
        if request.weight is None:
            errors.append("Weight is required")
        if request.dimensions is None:
            errors.append("Dimensions are required")
        if errors:
            raise ShipmentValidationError(errors)

        ship_date = request.pickup_date or today or date.today()
        multiplier = distance_multiplier(request.origin, request.destination)
        dims = request.dimensions

        quotes = []
        for carrier_id, carrier, service_id, service in self._candidates(request):
            dim_weight = dimensional_weight(dims.length, dims.width, dims.height, carrier.dim_divisor)
            billable = max(request.weight, dim_weight)
            weight_cost = billable * service.weight_multiplier
            subtotal = service.base_rate + weight_cost
            surcharges = option_surcharges(carrier, request.options, request.declared_value)

            breakdown = RateBreakdown(
                base=round(service.base_rate, 2),
                weight=round(weight_cost, 2),
                distance=round(subtotal * (multiplier - 1), 2),
                fuel=round(subtotal * multiplier * carrier.fuel_surcharge_rate, 2),
                additional=round(sum(surcharges.values()), 2),
            )
            quotes.append(RateQuote(
                carrier_id=carrier_id,
                carrier_name=carrier.name,
                service_id=service_id,
                service_name=service.name,
                breakdown=breakdown,
                total_cost=breakdown.total,
                transit_days=service.transit_days,
                transit_time=service.transit_time,
                guaranteed_delivery=service.guaranteed,
                estimated_delivery=add_business_days(ship_date, service.transit_days, request.options.saturday_delivery),
                actual_weight=request.weight,
                dimensional_weight=dim_weight,
                billable_weight=billable,
                distance_multiplier=multiplier,
                surcharges=surcharges,
                features=service.features,
            ))

        quotes.sort(key=lambda q: (q.total_cost, q.transit_days))
        if quotes:
            floor = quotes[0].total_cost
            for rank, quote in enumerate(quotes, start=1):
                quote.rank = rank
                quote.difference_from_cheapest = round(quote.total_cost - floor, 2)

        logger.info("Rates quoted", extra={
            "quotes": len(quotes),
            "cheapest": quotes[0].total_cost if quotes else None,
            "distance_multiplier": multiplier,
        })
        return quotes
