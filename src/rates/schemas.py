"""DTOs and validation for the rates (freight pricing) microservice."""

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _parse_location_string(value: str) -> dict:
    """'Chicago, IL' or 'Chicago, IL, US' -> location fields."""
    parts = [p.strip() for p in value.split(",") if p.strip()]
    if len(parts) < 2:
        raise ValueError("Location must be 'City, ST' or an object with city and region")
    location = {"city": parts[0], "region": parts[1]}
    if len(parts) > 2:
        location["country"] = parts[2]
    return location


class Location(BaseModel):
    """City + region, optionally with a full street address."""

    city: str = Field(..., min_length=1)
    region: str = Field(..., min_length=2, description="State or province code")
    country: str = Field(default="US", min_length=2)
    postal_code: Optional[str] = None
    address: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def accept_string(cls, v):
        if isinstance(v, str):
            return _parse_location_string(v)
        if isinstance(v, dict) and "region" not in v and "state" in v:
            return {**v, "region": v["state"]}
        return v

    @field_validator("city", "region", "country", mode="before")
    @classmethod
    def strip_text(cls, v):
        return str(v).strip() if v is not None else v

    @field_validator("region", "country")
    @classmethod
    def upper_codes(cls, v: str) -> str:
        return v.upper()

    @property
    def label(self) -> str:
        return f"{self.city}, {self.region}"


class Dimensions(BaseModel):
    """Package dimensions in inches."""

    length: float = Field(..., gt=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class ShipmentOptions(BaseModel):
    insurance: bool = False
    signature_required: bool = False
    saturday_delivery: bool = False
    residential_delivery: bool = False


class ShipmentRequest(BaseModel):
    """
    One shipment to price.

    origin, destination and equipment_type are checked by the engine rather
    than here, so that missing fields are reported together with range errors.
    """

    origin: Optional[Location] = None
    destination: Optional[Location] = None
    equipment_type: Optional[str] = None
    weight: Optional[float] = Field(None, gt=0, description="Weight in lbs")
    dimensions: Optional[Dimensions] = None
    declared_value: Optional[float] = Field(None, ge=0)
    pickup_date: Optional[date] = None
    delivery_date: Optional[date] = None
    distance: Optional[float] = Field(None, ge=0, description="Known distance in miles; resolved from coordinates when omitted")
    surcharge: float = Field(default=0.0, ge=0)
    fuel_surcharge: float = Field(default=0.0, ge=0)
    options: ShipmentOptions = Field(default_factory=ShipmentOptions)
    carriers: Optional[List[str]] = Field(None, description="Carrier ids to quote; all when omitted")
    services: Optional[List[str]] = Field(None, description="Service ids to quote; all when omitted")

    @field_validator("equipment_type", mode="before")
    @classmethod
    def normalize_equipment(cls, v):
        if v is None:
            return None
        value = str(v).strip().lower().replace(" ", "_")
        return value or None

    @field_validator("carriers", "services", mode="before")
    @classmethod
    def normalize_codes(cls, v):
        if v is None:
            return None
        return [str(code).strip().lower() for code in v if str(code).strip()]


class RateBreakdown(BaseModel):
    """Cost components; they always add up to the total of the rate they belong to."""

    base: float
    weight: float
    distance: float
    fuel: float
    additional: float

    @property
    def total(self) -> float:
        return round(self.base + self.weight + self.distance + self.fuel + self.additional, 2)


class RateResult(BaseModel):
    origin: str
    destination: str
    equipment_type: str
    distance: float
    breakdown: RateBreakdown
    total_cost: float = Field(..., ge=0)
    transit_days: int
    confidence: float = Field(..., ge=0.4, le=0.95)


class RateQuote(BaseModel):
    carrier_id: str
    carrier_name: str
    service_id: str
    service_name: str
    breakdown: RateBreakdown
    total_cost: float = Field(..., ge=0)
    transit_days: int
    transit_time: str
    guaranteed_delivery: bool
    estimated_delivery: date
    actual_weight: float
    dimensional_weight: float
    billable_weight: float
    distance_multiplier: float
    surcharges: Dict[str, float] = Field(default_factory=dict)
    features: List[str] = Field(default_factory=list)
    rank: int = 0
    difference_from_cheapest: float = 0.0
