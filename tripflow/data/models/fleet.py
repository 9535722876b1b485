"""
Driver and equipment data models.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PayMode(str, Enum):
    """How a driver is compensated for a trip."""

    PER_MILE = "per_mile"
    PER_CUFT = "per_cuft"
    PER_MILE_AND_CUFT = "per_mile_and_cuft"
    PERCENT_OF_REVENUE = "percent_of_revenue"
    FLAT_DAILY_RATE = "flat_daily_rate"


class VehicleType(str, Enum):
    """Truck body type. Only tractors pull trailers."""

    TRACTOR = "tractor"
    BOX_TRUCK = "box_truck"
    STRAIGHT_TRUCK = "straight_truck"
    CARGO_VAN = "cargo_van"
    SPRINTER = "sprinter"


class DriverCompensation(BaseModel):
    """Pay mode plus the rate fields relevant to it."""

    pay_mode: PayMode = PayMode.PER_MILE
    rate_per_mile: Optional[Decimal] = None
    rate_per_cuft: Optional[Decimal] = None
    percent_of_revenue: Optional[Decimal] = Field(None, description="0-100")
    flat_daily_rate: Optional[Decimal] = None


class Driver(BaseModel):
    """Truck driver."""

    id: str
    owner_id: str
    first_name: str
    last_name: str
    phone: Optional[str] = None

    # Compensation
    pay_mode: PayMode = PayMode.PER_MILE
    rate_per_mile: Optional[Decimal] = None
    rate_per_cuft: Optional[Decimal] = None
    percent_of_revenue: Optional[Decimal] = None
    flat_daily_rate: Optional[Decimal] = None

    # Default equipment pairing
    default_truck_id: Optional[str] = None
    default_trailer_id: Optional[str] = None

    # Credentials
    license_expiry: Optional[date] = None
    medical_card_expiry: Optional[date] = None
    twic_card_expiry: Optional[date] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def compensation(self) -> DriverCompensation:
        """Current pay settings, as they would be snapshotted onto a trip."""
        return DriverCompensation(
            pay_mode=self.pay_mode,
            rate_per_mile=self.rate_per_mile,
            rate_per_cuft=self.rate_per_cuft,
            percent_of_revenue=self.percent_of_revenue,
            flat_daily_rate=self.flat_daily_rate,
        )


class Truck(BaseModel):
    """Power unit."""

    id: str
    owner_id: str
    unit_number: Optional[str] = None
    plate_number: Optional[str] = None
    vehicle_type: Optional[VehicleType] = None

    # Credentials
    registration_expiry: Optional[date] = None
    inspection_expiry: Optional[date] = None
    insurance_expiry: Optional[date] = None
    permit_expiry: Optional[date] = None

    @property
    def requires_trailer(self) -> bool:
        return self.vehicle_type == VehicleType.TRACTOR

    @property
    def display_name(self) -> str:
        kind = self.vehicle_type.value if self.vehicle_type else "Vehicle"
        return f"{kind} {self.unit_number or self.plate_number or ''}".strip()


class Trailer(BaseModel):
    """Trailer pulled by a tractor."""

    id: str
    owner_id: str
    unit_number: Optional[str] = None
