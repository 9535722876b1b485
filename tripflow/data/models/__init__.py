"""
Pydantic data models for trip and load operations.

Core models:
- Load: Shipment details and lifecycle status
- Trip: Multi-load trip, its loads and expenses
- Driver/Truck/Trailer: Fleet records and credentials
- ComplianceIssue: Flagged expiring credentials
- RequestContext: Caller identity for every operation
"""

from .compliance import (
    ComplianceCheckResult,
    ComplianceIssue,
    ComplianceItemType,
    ComplianceSeverity,
    DocumentRequestStatus,
    PartnershipDocument,
)
from .context import RequestContext
from .fleet import Driver, DriverCompensation, PayMode, Trailer, Truck, VehicleType
from .load import Load, LoadStatus, PaymentMethod
from .trip import (
    ExpenseCategory,
    ExpenseInput,
    ExpensePaidBy,
    ExpenseUpdate,
    Trip,
    TripCreate,
    TripExpense,
    TripLoad,
    TripLoadRole,
    TripStatus,
    TripUpdate,
)

__all__ = [
    "ComplianceCheckResult",
    "ComplianceIssue",
    "ComplianceItemType",
    "ComplianceSeverity",
    "DocumentRequestStatus",
    "PartnershipDocument",
    "RequestContext",
    "Driver",
    "DriverCompensation",
    "PayMode",
    "Trailer",
    "Truck",
    "VehicleType",
    "Load",
    "LoadStatus",
    "PaymentMethod",
    "ExpenseCategory",
    "ExpenseInput",
    "ExpensePaidBy",
    "ExpenseUpdate",
    "Trip",
    "TripCreate",
    "TripExpense",
    "TripLoad",
    "TripLoadRole",
    "TripStatus",
    "TripUpdate",
]
