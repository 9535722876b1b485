"""
Compliance data models.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ComplianceSeverity(str, Enum):
    """Severity tier of an expiring credential, least to most severe."""

    WARNING = "warning"
    URGENT = "urgent"
    CRITICAL = "critical"
    EXPIRED = "expired"


class ComplianceItemType(str, Enum):
    """What kind of record an issue was raised for."""

    DRIVER = "driver"
    VEHICLE = "vehicle"
    PARTNERSHIP = "partnership"


class DocumentRequestStatus(str, Enum):
    """Review status of a partnership compliance document."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PartnershipDocument(BaseModel):
    """Compliance document requested from a partner carrier."""

    id: str
    partnership_id: str
    carrier_name: Optional[str] = None
    document_type_id: str = Field(..., description="e.g. 'cargo_insurance'")
    document_name: Optional[str] = None
    status: DocumentRequestStatus = DocumentRequestStatus.PENDING
    expiration_date: Optional[date] = None


class ComplianceIssue(BaseModel):
    """A single flagged credential."""

    category: ComplianceItemType
    type: str = Field(..., description="e.g. 'driver_medical_card'")
    item: str = Field(..., description="Display name of the holder")
    item_id: str = Field(..., description="Driver, truck or partnership id")
    expiration_date: Optional[date] = None
    days_until_expiration: Optional[int] = Field(None, description="None when the document is not on file")
    severity: ComplianceSeverity
    message: str


class ComplianceCheckResult(BaseModel):
    """Outcome of a pre-assignment compliance check."""

    can_proceed: bool
    issues: list[ComplianceIssue] = Field(default_factory=list)

    @property
    def expired(self) -> list[ComplianceIssue]:
        return [i for i in self.issues if i.severity == ComplianceSeverity.EXPIRED]
