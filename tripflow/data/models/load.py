"""
Load data model - a single shipment and its lifecycle state.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field


class LoadStatus(str, Enum):
    """Load status enumeration, in lifecycle order."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    LOADING = "loading"
    LOADED = "loaded"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    STORAGE_COMPLETED = "storage_completed"
    CANCELLED = "cancelled"


TERMINAL_DELIVERY_STATUSES = frozenset(
    {LoadStatus.DELIVERED, LoadStatus.STORAGE_COMPLETED}
)


class PaymentMethod(str, Enum):
    """How the balance was collected at delivery."""

    CASH = "cash"
    CHECK = "check"
    CERTIFIED_CHECK = "certified_check"
    CARD = "card"
    CUSTOMER_PAID_DIRECTLY_TO_COMPANY = "customer_paid_directly_to_company"


class Load(BaseModel):
    """
    Represents a freight load/shipment.

    Driver and equipment fields are derived from the trip the load is attached
    to and are only written by the inheritance rules.
    """

    # Identification
    id: str = Field(..., description="Unique load identifier")
    owner_id: str = Field(..., description="Owning account")
    company_id: Optional[str] = Field(None, description="Company the load is hauled for")
    load_number: Optional[str] = Field(None, description="Human-facing load number")

    # Status
    load_status: Optional[LoadStatus] = Field(None, description="Current lifecycle status")

    # Destination
    destination_city: Optional[str] = None
    destination_state: Optional[str] = None

    # Volume
    estimated_cuft: Optional[Decimal] = Field(None, description="Cubic feet quoted at booking")
    starting_cuft: Optional[Decimal] = Field(None, description="Truck reading when loading started")
    ending_cuft: Optional[Decimal] = Field(None, description="Truck reading when loading finished")
    actual_cuft_loaded: Optional[Decimal] = Field(None, description="Cubic feet actually loaded")

    # Pricing
    rate_per_cuft: Optional[Decimal] = None
    contract_rate_per_cuft: Optional[Decimal] = None
    contract_accessorials_shuttle: Decimal = Decimal("0")
    contract_accessorials_stairs: Decimal = Decimal("0")
    contract_accessorials_long_carry: Decimal = Decimal("0")
    contract_accessorials_packing: Decimal = Decimal("0")
    contract_accessorials_bulky: Decimal = Decimal("0")
    contract_accessorials_other: Decimal = Decimal("0")
    extra_shuttle: Decimal = Decimal("0")
    extra_stairs: Decimal = Decimal("0")
    extra_long_carry: Decimal = Decimal("0")
    extra_packing: Decimal = Decimal("0")
    extra_bulky: Decimal = Decimal("0")
    extra_other: Decimal = Decimal("0")
    total_rate: Optional[Decimal] = Field(None, description="Revenue this load contributes to its trip")
    company_owes: Optional[Decimal] = None

    # Collections
    balance_due_on_delivery: Optional[Decimal] = None
    amount_collected_on_delivery: Optional[Decimal] = None
    amount_paid_directly_to_company: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None

    # Assignment (derived from the trip)
    assigned_driver_id: Optional[str] = None
    assigned_driver_name: Optional[str] = None
    assigned_driver_phone: Optional[str] = None
    assigned_truck_id: Optional[str] = None
    assigned_trailer_id: Optional[str] = None
    delivery_order: Optional[int] = None

    # Evidence - loading
    loading_start_photo: Optional[str] = None
    loading_end_photo: Optional[str] = None
    contract_photo_url: Optional[str] = None
    load_report_photo_url: Optional[str] = None
    loading_report_photo: Optional[str] = None
    origin_paperwork_photos: list[str] = Field(default_factory=list)
    first_available_date: Optional[date] = None

    # Evidence - delivery
    delivery_location_photo: Optional[str] = None
    delivery_photos: list[str] = Field(default_factory=list)
    signed_bol_photos: list[str] = Field(default_factory=list)
    signed_inventory_photos: list[str] = Field(default_factory=list)
    delivery_notes: Optional[str] = None

    # Storage drop
    storage_drop: bool = False
    storage_location_name: Optional[str] = None
    storage_location_address: Optional[str] = None
    storage_unit_number: Optional[str] = None
    storage_move_in_fee: Optional[Decimal] = None
    storage_daily_fee: Optional[Decimal] = None
    storage_days_billed: Optional[int] = None
    storage_notes: Optional[str] = None
    company_approved_exception_delivery: bool = False

    # Milestones
    accepted_at: Optional[datetime] = None
    loading_started_at: Optional[datetime] = None
    loading_finished_at: Optional[datetime] = None
    delivery_started_at: Optional[datetime] = None
    delivery_finished_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def effective_status(self) -> LoadStatus:
        """Status with unset treated as pending."""
        return self.load_status or LoadStatus.PENDING

    @property
    def is_delivered(self) -> bool:
        """Delivered or dropped into storage."""
        return self.load_status in TERMINAL_DELIVERY_STATUSES

    @computed_field
    @property
    def contract_accessorials_total(self) -> Decimal:
        """Pre-agreed accessorial charges."""
        return (
            self.contract_accessorials_shuttle
            + self.contract_accessorials_stairs
            + self.contract_accessorials_long_carry
            + self.contract_accessorials_packing
            + self.contract_accessorials_bulky
            + self.contract_accessorials_other
        )

    @computed_field
    @property
    def extra_accessorials_total(self) -> Decimal:
        """Day-of accessorial charges added by the driver."""
        return (
            self.extra_shuttle
            + self.extra_stairs
            + self.extra_long_carry
            + self.extra_packing
            + self.extra_bulky
            + self.extra_other
        )

    @property
    def display_number(self) -> str:
        return self.load_number or self.id[:8]
