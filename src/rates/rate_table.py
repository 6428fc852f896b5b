"""
Rate table configuration: equipment rates for the freight engine and the
carrier/service table for rate shopping.

The built-in tables can be replaced without code changes by pointing
RATE_TABLE_PATH at a JSON file with "equipment" and/or "carriers" keys.
"""

import json
import os
import re
from pathlib import Path
from typing import Dict, List, Optional

from aws_lambda_powertools import Logger
from pydantic import BaseModel, Field, field_validator, model_validator

logger = Logger(service="rates")

DEFAULT_EQUIPMENT = "van"


class EquipmentConfig(BaseModel):
    label: str
    base_rate_per_mile: float = Field(..., ge=0)
    weight_multiplier: float = Field(..., ge=0)
    fuel_surcharge_rate: float = Field(..., ge=0)


class ServiceRate(BaseModel):
    name: str
    base_rate: float = Field(..., ge=0)
    weight_multiplier: float = Field(..., ge=0)
    transit_days: Optional[int] = Field(None, ge=1, description="Business days used for the delivery estimate; leading number of transit_time when omitted")
    transit_time: str = Field(..., description="Transit label shown to customers")
    guaranteed: bool = False
    features: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def derive_transit_days(self):
        # "1-5 business days" -> 1
        if self.transit_days is None:
            match = re.match(r"\s*(\d+)", self.transit_time)
            self.transit_days = max(1, int(match.group(1))) if match else 1
        return self


class CarrierRate(BaseModel):
    name: str
    dim_divisor: float = Field(139, gt=0, description="Dimensional weight divisor (cubic inches per lb)")
    fuel_surcharge_rate: float = Field(..., ge=0)
    residential_surcharge: float = Field(0, ge=0)
    signature_surcharge: float = Field(0, ge=0)
    saturday_surcharge: float = Field(0, ge=0)
    services: Dict[str, ServiceRate] = Field(..., min_length=1)


class RateTable(BaseModel):
    equipment: Dict[str, EquipmentConfig] = Field(..., min_length=1)
    carriers: Dict[str, CarrierRate] = Field(..., min_length=1)
    default_equipment: str = DEFAULT_EQUIPMENT

    @field_validator("equipment", "carriers", mode="before")
    @classmethod
    def lowercase_keys(cls, v):
        if isinstance(v, dict):
            return {str(k).strip().lower(): val for k, val in v.items()}
        return v

    def equipment_for(self, equipment_type: Optional[str]) -> tuple[str, EquipmentConfig]:
        """Configuration for an equipment type; unknown types fall back to the default equipment."""
        key = (equipment_type or "").strip().lower()
        if key in self.equipment:
            return key, self.equipment[key]
        fallback = self.default_equipment if self.default_equipment in self.equipment else next(iter(self.equipment))
        return fallback, self.equipment[fallback]


DEFAULT_RATE_TABLE: dict = {
    "equipment": {
        "van": {"label": "Van", "base_rate_per_mile": 2.50, "weight_multiplier": 0.15, "fuel_surcharge_rate": 0.12},
        "reefer": {"label": "Reefer", "base_rate_per_mile": 3.20, "weight_multiplier": 0.18, "fuel_surcharge_rate": 0.15},
        "flatbed": {"label": "Flatbed", "base_rate_per_mile": 2.80, "weight_multiplier": 0.16, "fuel_surcharge_rate": 0.13},
        "step_deck": {"label": "Step Deck", "base_rate_per_mile": 3.00, "weight_multiplier": 0.17, "fuel_surcharge_rate": 0.14},
        "double_drop": {"label": "Double Drop", "base_rate_per_mile": 3.50, "weight_multiplier": 0.20, "fuel_surcharge_rate": 0.16},
        "lowboy": {"label": "Lowboy", "base_rate_per_mile": 4.00, "weight_multiplier": 0.22, "fuel_surcharge_rate": 0.18},
    },
    "carriers": {
        "fedex": {
            "name": "FedEx",
            "dim_divisor": 139,
            "fuel_surcharge_rate": 0.15,
            "residential_surcharge": 4.95,
            "signature_surcharge": 5.55,
            "saturday_surcharge": 16.00,
            "services": {
                "overnight": {
                    "name": "FedEx Overnight", "base_rate": 25.99, "weight_multiplier": 3.5,
                    "transit_time": "1 business day", "guaranteed": True,
                    "features": ["tracking", "signature_required", "insurance"],
                },
                "2day": {
                    "name": "FedEx 2Day", "base_rate": 18.99, "weight_multiplier": 2.8,
                    "transit_time": "2 business days",
                    "features": ["tracking", "insurance"],
                },
                "ground": {
                    "name": "FedEx Ground", "base_rate": 12.99, "weight_multiplier": 2.2,
                    "transit_time": "1-5 business days",
                    "features": ["tracking"],
                },
            },
        },
        "ups": {
            "name": "UPS",
            "dim_divisor": 139,
            "fuel_surcharge_rate": 0.14,
            "residential_surcharge": 4.20,
            "signature_surcharge": 5.30,
            "saturday_surcharge": 17.50,
            "services": {
                "next_day": {
                    "name": "UPS Next Day Air", "base_rate": 24.99, "weight_multiplier": 3.3,
                    "transit_time": "1 business day", "guaranteed": True,
                    "features": ["tracking", "signature_required", "insurance"],
                },
                "2nd_day": {
                    "name": "UPS 2nd Day Air", "base_rate": 17.99, "weight_multiplier": 2.6,
                    "transit_time": "2 business days",
                    "features": ["tracking", "insurance"],
                },
                "ground": {
                    "name": "UPS Ground", "base_rate": 11.99, "weight_multiplier": 2.0,
                    "transit_time": "1-5 business days",
                    "features": ["tracking"],
                },
            },
        },
        "dhl": {
            "name": "DHL",
            "dim_divisor": 139,
            "fuel_surcharge_rate": 0.18,
            "residential_surcharge": 3.70,
            "signature_surcharge": 0,
            "saturday_surcharge": 25.00,
            "services": {
                "express_worldwide": {
                    "name": "DHL Express Worldwide", "base_rate": 35.99, "weight_multiplier": 4.5,
                    "transit_time": "1-3 business days",
                    "features": ["tracking", "signature_required", "insurance", "customs_clearance"],
                },
                "express_12": {
                    "name": "DHL Express 12:00", "base_rate": 45.99, "weight_multiplier": 5.2,
                    "transit_time": "1-2 business days", "guaranteed": True,
                    "features": ["tracking", "signature_required", "insurance", "time_definite"],
                },
            },
        },
        "usps": {
            "name": "USPS",
            "dim_divisor": 166,
            "fuel_surcharge_rate": 0.08,
            "residential_surcharge": 0,
            "signature_surcharge": 3.35,
            "saturday_surcharge": 12.50,
            "services": {
                "priority_express": {
                    "name": "Priority Mail Express", "base_rate": 22.95, "weight_multiplier": 2.1,
                    "transit_time": "1-2 business days",
                    "features": ["tracking", "insurance"],
                },
                "priority": {
                    "name": "Priority Mail", "base_rate": 8.95, "weight_multiplier": 1.5,
                    "transit_time": "1-3 business days",
                    "features": ["tracking"],
                },
                "ground": {
                    "name": "USPS Ground Advantage", "base_rate": 5.95, "weight_multiplier": 1.2,
                    "transit_time": "2-5 business days",
                    "features": ["tracking"],
                },
            },
        },
    },
}


def load_rate_table(path: str | None = None) -> RateTable:
    """
    Builds the rate table from the built-in defaults, overlaid with a JSON file when given.

    Args:
        path: JSON file; defaults to RATE_TABLE_PATH when set.

    Raises:
        ValueError: The file is unreadable or does not describe a valid table.
    """
    source = path or os.environ.get("RATE_TABLE_PATH")
    data = dict(DEFAULT_RATE_TABLE)
    if source:
        try:
            overrides = json.loads(Path(source).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Rate table could not be read from {source}: {e}") from e
        if not isinstance(overrides, dict):
            raise ValueError(f"Rate table at {source} must be a JSON object")
        data.update({k: v for k, v in overrides.items() if k in ("equipment", "carriers", "default_equipment")})
        logger.info("Rate table loaded", extra={"path": source, "sections": sorted(overrides)})
    return RateTable.model_validate(data)
