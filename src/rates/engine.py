"""
Freight rate engine: prices a single shipment from distance, weight and equipment.

Deterministic for a given request and clock; the clock only affects the
confidence score and the pickup-date check.
"""

import math
from datetime import date, datetime, timezone

from rates.distance import DistanceResolver
from rates.rate_table import RateTable, load_rate_table
from rates.schemas import RateBreakdown, RateResult, ShipmentRequest
from shared.errors import ShipmentValidationError

MAX_WEIGHT_LBS = 80_000
LONG_HAUL_MILES = 1000
LONG_HAUL_RATE_PER_MILE = 0.1

# (upper bound in miles, transit days)
TRANSIT_BANDS = [
    (100, 1),
    (300, 2),
    (600, 3),
    (1000, 4),
    (1500, 5),
    (2500, 7),
]
MILES_PER_DAY = 400

BASE_CONFIDENCE = 0.4
MAX_CONFIDENCE = 0.95
BUSINESS_HOURS = (9, 17)


def calculate_transit_time(distance: float) -> int:
    """Transit days by distance band; 400 miles per day beyond the last band."""
    for upper, days in TRANSIT_BANDS:
        if distance <= upper:
            return days
    return math.ceil(distance / MILES_PER_DAY)


def calculate_confidence(request: ShipmentRequest, now: datetime | None = None) -> float:
    """Score in [0.4, 0.95] from input completeness, time of day and booking window."""
    now = now or datetime.now(timezone.utc)
    confidence = BASE_CONFIDENCE

    if request.origin and request.destination:
        confidence += 0.15
    if request.equipment_type:
        confidence += 0.10
    if request.weight and request.weight > 0:
        confidence += 0.10
    if request.pickup_date:
        confidence += 0.05

    if BUSINESS_HOURS[0] <= now.hour <= BUSINESS_HOURS[1]:
        confidence += 0.10
    if request.pickup_date:
        days_until_pickup = (request.pickup_date - now.date()).days
        if 1 <= days_until_pickup <= 7:
            confidence += 0.10

    return round(min(max(confidence, BASE_CONFIDENCE), MAX_CONFIDENCE), 2)


def validate_rate_request(request: ShipmentRequest, today: date) -> None:
    """
    Raises:
        ShipmentValidationError: With every problem found, not just the first.
    """
    errors = []
    if request.origin is None:
        errors.append("Origin is required")
    if request.destination is None:
        errors.append("Destination is required")
    if not request.equipment_type:
        errors.append("Equipment type is required")
    if request.weight is not None and request.weight > MAX_WEIGHT_LBS:
        errors.append(f"Weight must not exceed {MAX_WEIGHT_LBS:,} lbs")
    if request.pickup_date is not None and request.pickup_date < today:
        errors.append("Pickup date must not be in the past")
    if errors:
        raise ShipmentValidationError(errors)


class RateEngine:
    def __init__(self, rate_table: RateTable | None = None, resolver: DistanceResolver | None = None):
        self.rate_table = rate_table or load_rate_table()
        self.resolver = resolver or DistanceResolver()

    def calculate(self, request: ShipmentRequest, now: datetime | None = None) -> RateResult:
        """
        Prices one shipment.

        The total is the sum of the rounded breakdown components, so the
        breakdown always adds up to the total to the cent.

        Raises:
            ShipmentValidationError: Missing mandatory fields, weight over the
                legal limit, or a pickup date in the past.
        """
        now = now or datetime.now(timezone.utc)
        validate_rate_request(request, now.date())

        equipment_key, equipment = self.rate_table.equipment_for(request.equipment_type)
        if request.distance is not None:
            distance = request.distance
        else:
            distance = self.resolver.resolve(request.origin, request.destination)

        base_rate = distance * equipment.base_rate_per_mile
        weight_cost = request.weight * equipment.weight_multiplier if request.weight else 0.0
        distance_adjustment = distance * LONG_HAUL_RATE_PER_MILE if distance > LONG_HAUL_MILES else 0.0
        fuel_surcharge = base_rate * equipment.fuel_surcharge_rate
        additional = request.surcharge + request.fuel_surcharge

        breakdown = RateBreakdown(
            base=round(base_rate, 2),
            weight=round(weight_cost, 2),
            distance=round(distance_adjustment, 2),
            fuel=round(fuel_surcharge, 2),
            additional=round(additional, 2),
        )

        return RateResult(
            origin=request.origin.label,
            destination=request.destination.label,
            equipment_type=equipment_key,
            distance=distance,
            breakdown=breakdown,
            total_cost=breakdown.total,
            transit_days=calculate_transit_time(distance),
            confidence=calculate_confidence(request, now),
        )
