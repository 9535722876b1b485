"""
Trip data models.

A trip is one driver plus one set of equipment carrying an ordered list of
loads. Expenses and rolled-up financial totals hang off the trip.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from tripflow.data.models.fleet import DriverCompensation


class TripStatus(str, Enum):
    """Trip status enumeration."""

    PLANNED = "planned"
    ACTIVE = "active"
    EN_ROUTE = "en_route"
    COMPLETED = "completed"
    SETTLED = "settled"
    CANCELLED = "cancelled"


CLOSING_STATUSES = frozenset({TripStatus.COMPLETED, TripStatus.SETTLED})


class TripLoadRole(str, Enum):
    """Role a load plays on a trip."""

    PRIMARY = "primary"
    BACKHAUL = "backhaul"
    PARTIAL = "partial"


class ExpenseCategory(str, Enum):
    """Trip expense category."""

    FUEL = "fuel"
    TOLLS = "tolls"
    DRIVER_PAY = "driver_pay"
    LUMPER = "lumper"
    PARKING = "parking"
    MAINTENANCE = "maintenance"
    OTHER = "other"


class ExpensePaidBy(str, Enum):
    """Who funded an expense."""

    DRIVER_PERSONAL = "driver_personal"
    DRIVER_CASH = "driver_cash"
    DRIVER_CARD = "driver_card"
    COMPANY_CARD = "company_card"
    FUEL_CARD = "fuel_card"
    EFS_CARD = "efs_card"
    COMDATA = "comdata"


class Trip(BaseModel):
    """
    Represents a multi-load trip.

    The financial totals are written only by the financial engine's recompute
    step; every other writer leaves them alone.
    """

    # Identification
    id: str = Field(..., description="Unique trip identifier")
    owner_id: str = Field(..., description="Owning account")
    trip_number: str = Field(..., description="Human-facing trip number, e.g. TRP-0001")
    status: TripStatus = TripStatus.PLANNED

    # Assignment
    driver_id: Optional[str] = None
    truck_id: Optional[str] = None
    trailer_id: Optional[str] = None
    share_driver_with_companies: bool = Field(
        True, description="Expose driver name/phone on loads to partner companies"
    )

    # Route
    origin_city: Optional[str] = None
    origin_state: Optional[str] = None
    destination_city: Optional[str] = None
    destination_state: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    # Mileage
    total_miles: Optional[Decimal] = None
    actual_miles: Optional[Decimal] = None
    odometer_start: Optional[Decimal] = None
    odometer_end: Optional[Decimal] = None
    odometer_start_photo_url: Optional[str] = None
    odometer_end_photo_url: Optional[str] = None

    # Compensation snapshot taken at driver assignment
    driver_compensation: Optional[DriverCompensation] = None

    # Rolled-up financials
    revenue_total: Decimal = Decimal("0")
    driver_pay_total: Decimal = Decimal("0")
    fuel_total: Decimal = Decimal("0")
    tolls_total: Decimal = Decimal("0")
    other_expenses_total: Decimal = Decimal("0")
    profit_total: Decimal = Decimal("0")
    total_cuft: Decimal = Decimal("0")
    driver_pay_breakdown: Optional[dict[str, Any]] = None

    notes: Optional[str] = None
    completion_notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSING_STATUSES or self.status == TripStatus.CANCELLED


class TripLoad(BaseModel):
    """Attachment of a load to a trip."""

    trip_id: str
    load_id: str
    owner_id: str
    sequence_index: int = 0
    role: TripLoadRole = TripLoadRole.PRIMARY


class TripExpense(BaseModel):
    """Expense incurred on a trip. A receipt is always required."""

    id: str
    trip_id: str
    owner_id: str
    category: ExpenseCategory
    amount: Decimal = Field(..., description="Positive dollar amount")
    paid_by: Optional[ExpensePaidBy] = None
    receipt_photo_url: str
    description: Optional[str] = None
    incurred_at: date = Field(default_factory=date.today)
    expense_type: Optional[str] = Field(None, description="Free-form sub-type, e.g. 'def' or 'scale'")
    notes: Optional[str] = None

    @property
    def is_driver_funded(self) -> bool:
        return self.paid_by in (
            ExpensePaidBy.DRIVER_PERSONAL,
            ExpensePaidBy.DRIVER_CASH,
            ExpensePaidBy.DRIVER_CARD,
        )


class TripCreate(BaseModel):
    """Input for creating a trip."""

    trip_number: Optional[str] = None
    driver_id: Optional[str] = None
    truck_id: Optional[str] = None
    trailer_id: Optional[str] = None
    share_driver_with_companies: bool = True
    origin_city: Optional[str] = None
    origin_state: Optional[str] = None
    destination_city: Optional[str] = None
    destination_state: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_miles: Optional[Decimal] = None
    notes: Optional[str] = None


class TripUpdate(BaseModel):
    """
    Partial trip update.

    Only fields the caller actually set are applied, so an explicit None
    clears a value while an omitted field leaves it untouched.
    """

    trip_number: Optional[str] = None
    status: Optional[TripStatus] = None
    driver_id: Optional[str] = None
    truck_id: Optional[str] = None
    trailer_id: Optional[str] = None
    share_driver_with_companies: Optional[bool] = None
    origin_city: Optional[str] = None
    origin_state: Optional[str] = None
    destination_city: Optional[str] = None
    destination_state: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_miles: Optional[Decimal] = None
    odometer_start: Optional[Decimal] = None
    odometer_end: Optional[Decimal] = None
    odometer_start_photo_url: Optional[str] = None
    odometer_end_photo_url: Optional[str] = None
    notes: Optional[str] = None
    completion_notes: Optional[str] = None

    def provided(self) -> dict[str, Any]:
        """Fields explicitly set by the caller."""
        return {name: getattr(self, name) for name in self.model_fields_set}

    def sets(self, name: str) -> bool:
        return name in self.model_fields_set


class ExpenseInput(BaseModel):
    """Input for adding or updating a trip expense."""

    category: ExpenseCategory
    amount: Decimal
    paid_by: Optional[ExpensePaidBy] = None
    receipt_photo_url: Optional[str] = None
    description: Optional[str] = None
    incurred_at: Optional[date] = None
    expense_type: Optional[str] = None
    notes: Optional[str] = None


class ExpenseUpdate(BaseModel):
    """Partial expense update; only fields the caller set are applied."""

    category: Optional[ExpenseCategory] = None
    amount: Optional[Decimal] = None
    paid_by: Optional[ExpensePaidBy] = None
    receipt_photo_url: Optional[str] = None
    description: Optional[str] = None
    incurred_at: Optional[date] = None
    expense_type: Optional[str] = None
    notes: Optional[str] = None

    def provided(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}
