"""
Lifecycle services for loads and trips.

This module contains:
- Compliance: Credential expiry gate
- Inheritance: Trip driver/equipment propagation onto loads
- Load Lifecycle: Per-load status state machine
- Trip Lifecycle: Per-trip status state machine and composition
- Financials: Driver pay, trip profit and settlement preview
"""

from .base import BaseService
from .compliance import ComplianceGate
from .financials import FinancialEngine
from .inheritance import EquipmentSync
from .load_lifecycle import LoadLifecycle
from .trip_lifecycle import TripLifecycle

__all__ = [
    "BaseService",
    "ComplianceGate",
    "FinancialEngine",
    "EquipmentSync",
    "LoadLifecycle",
    "TripLifecycle",
]
