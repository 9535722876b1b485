"""
Compliance Gate - expiry tracking for drivers, vehicles and partners.

This service:
- Classifies credential expiry dates into severity tiers
- Checks driver, vehicle and partnership credentials
- Decides whether a trip assignment may proceed
- Blocks on expired items only when blocking mode is requested
"""

from datetime import date
from typing import Callable, Optional

import structlog

from tripflow.core.config import ComplianceSettings, ConfigManager, get_config
from tripflow.core.errors import ComplianceBlockedError
from tripflow.data.models import (
    ComplianceCheckResult,
    ComplianceIssue,
    ComplianceItemType,
    ComplianceSeverity,
    DocumentRequestStatus,
    Driver,
    PartnershipDocument,
    Truck,
)

# (attribute, issue type, label)
DRIVER_CREDENTIALS = [
    ("license_expiry", "driver_license", "License"),
    ("medical_card_expiry", "driver_medical_card", "Medical card"),
    ("twic_card_expiry", "driver_twic", "TWIC card"),
]

VEHICLE_CREDENTIALS = [
    ("registration_expiry", "vehicle_registration", "Registration"),
    ("inspection_expiry", "vehicle_inspection", "Annual inspection"),
    ("insurance_expiry", "vehicle_insurance", "Insurance"),
    ("permit_expiry", "vehicle_permit", "Permit"),
]


def days_until(expiry: date, today: date) -> int:
    """Whole days from today to expiry; zero or negative once expired."""
    return (expiry - today).days


def expiry_message(label: str, days: int) -> str:
    if days <= 0:
        return f"{label} expired {abs(days)} days ago"
    return f"{label} expires in {days} days"


class ComplianceGate:
    """
    Evaluates credential expiry dates.

    Advisory by default: issues are reported and the caller decides. In
    blocking mode any expired item stops the operation.
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        logger: Optional[structlog.BoundLogger] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.config_manager = config_manager or get_config()
        self.logger = logger or structlog.get_logger(service_name="compliance")
        self._today = today or date.today

    @property
    def settings(self) -> ComplianceSettings:
        return self.config_manager.get_compliance_settings()

    def classify_severity(self, days: int) -> Optional[ComplianceSeverity]:
        """
        Map days-until-expiry to a severity tier.

        Args:
            days: Days remaining (zero or negative means expired)

        Returns:
            Severity, or None when the item is not close enough to flag
        """
        settings = self.settings
        if days <= 0:
            return ComplianceSeverity.EXPIRED
        if days <= settings.critical_days:
            return ComplianceSeverity.CRITICAL
        if days <= settings.urgent_days:
            return ComplianceSeverity.URGENT
        if days <= settings.warning_days:
            return ComplianceSeverity.WARNING
        return None

    def _check_dates(
        self,
        category: ComplianceItemType,
        item: str,
        item_id: str,
        record: object,
        credentials: list[tuple[str, str, str]],
    ) -> list[ComplianceIssue]:
        today = self._today()
        issues = []
        for attribute, issue_type, label in credentials:
            expiry = getattr(record, attribute)
            if expiry is None:
                continue
            days = days_until(expiry, today)
            severity = self.classify_severity(days)
            if severity is None:
                continue
            issues.append(
                ComplianceIssue(
                    category=category,
                    type=issue_type,
                    item=item,
                    item_id=item_id,
                    expiration_date=expiry,
                    days_until_expiration=days,
                    severity=severity,
                    message=expiry_message(label, days),
                )
            )
        return issues

    def check_driver(self, driver: Driver) -> list[ComplianceIssue]:
        """Flag expiring license, medical card and TWIC card."""
        return self._check_dates(
            ComplianceItemType.DRIVER, driver.full_name, driver.id, driver, DRIVER_CREDENTIALS
        )

    def check_vehicle(self, truck: Truck) -> list[ComplianceIssue]:
        """Flag expiring registration, inspection, insurance and permit."""
        return self._check_dates(
            ComplianceItemType.VEHICLE, truck.display_name, truck.id, truck, VEHICLE_CREDENTIALS
        )

    def check_partnership(self, documents: list[PartnershipDocument]) -> list[ComplianceIssue]:
        """
        Flag partner documents that are missing or expiring.

        Pending and rejected requests count as not on file; approved documents
        are checked by their expiry date.
        """
        today = self._today()
        issues = []
        for doc in documents:
            name = doc.document_name or doc.document_type_id
            carrier = doc.carrier_name or "Carrier"
            issue_type = f"partner_{doc.document_type_id}"

            if doc.status in (DocumentRequestStatus.PENDING, DocumentRequestStatus.REJECTED):
                issues.append(
                    ComplianceIssue(
                        category=ComplianceItemType.PARTNERSHIP,
                        type=issue_type,
                        item=carrier,
                        item_id=doc.partnership_id,
                        severity=ComplianceSeverity.URGENT,
                        message=f"{name} not on file",
                    )
                )
                continue

            if doc.expiration_date is None:
                continue
            days = days_until(doc.expiration_date, today)
            severity = self.classify_severity(days)
            if severity is not None:
                issues.append(
                    ComplianceIssue(
                        category=ComplianceItemType.PARTNERSHIP,
                        type=issue_type,
                        item=carrier,
                        item_id=doc.partnership_id,
                        expiration_date=doc.expiration_date,
                        days_until_expiration=days,
                        severity=severity,
                        message=expiry_message(name, days),
                    )
                )
        return issues

    def check_trip_assignment(
        self,
        driver: Optional[Driver],
        truck: Optional[Truck],
        block_expired: Optional[bool] = None,
    ) -> ComplianceCheckResult:
        """
        Check a driver/truck pairing before it goes on a trip.

        Args:
            driver: Driver being assigned, if any
            truck: Truck being assigned, if any
            block_expired: Block on expired items. Defaults to the configured mode.

        Returns:
            ComplianceCheckResult; can_proceed is False only when blocking and
            something has expired
        """
        if block_expired is None:
            block_expired = self.settings.block_expired

        issues: list[ComplianceIssue] = []
        if driver is not None:
            issues.extend(self.check_driver(driver))
        if truck is not None:
            issues.extend(self.check_vehicle(truck))

        has_expired = any(i.severity == ComplianceSeverity.EXPIRED for i in issues)
        can_proceed = not (block_expired and has_expired)

        if issues:
            self.logger.info(
                "compliance_issues_found",
                driver_id=driver.id if driver else None,
                truck_id=truck.id if truck else None,
                issue_count=len(issues),
                blocked=not can_proceed,
            )

        return ComplianceCheckResult(can_proceed=can_proceed, issues=issues)

    def enforce(
        self,
        driver: Optional[Driver],
        truck: Optional[Truck],
        block_expired: Optional[bool] = None,
    ) -> ComplianceCheckResult:
        """
        Same as check_trip_assignment but raises when blocked.

        Raises:
            ComplianceBlockedError: Blocking mode and at least one expired item
        """
        result = self.check_trip_assignment(driver, truck, block_expired=block_expired)
        if not result.can_proceed:
            raise ComplianceBlockedError(result.issues)
        return result
