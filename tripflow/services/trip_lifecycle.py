"""
Trip Lifecycle - the per-trip status state machine.

This service:
- Creates and updates trips, numbering them automatically
- Gates activation on odometer-start evidence
- Gates completion and settlement on odometer evidence and delivered loads
- Enforces tractor/trailer compatibility on every write
- Attaches, detaches and orders loads, keeping them in sync with the trip
- Manages trip expenses (receipt required)
- Notifies the driver about assignments and load changes
"""

import re
import uuid
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from tripflow.core.errors import (
    NotFoundError,
    PendingLoadsError,
    StateMismatchError,
    TripflowError,
    ValidationError,
)
from tripflow.core.money import ZERO, to_decimal
from tripflow.data.models import (
    Driver,
    ExpenseInput,
    ExpenseUpdate,
    Load,
    RequestContext,
    Trip,
    TripCreate,
    TripExpense,
    TripLoad,
    TripLoadRole,
    TripStatus,
    TripUpdate,
)
from tripflow.data.models.load import TERMINAL_DELIVERY_STATUSES
from tripflow.data.store import ANY_STATUS
from tripflow.services.base import BaseService
from tripflow.services.compliance import ComplianceGate
from tripflow.services.financials import FinancialEngine
from tripflow.services.inheritance import EquipmentSync
from tripflow.tools import Notification, NotificationKind

TRIP_TRANSITIONS: dict[TripStatus, frozenset] = {
    TripStatus.PLANNED: frozenset({TripStatus.ACTIVE, TripStatus.CANCELLED}),
    TripStatus.ACTIVE: frozenset({TripStatus.EN_ROUTE, TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.EN_ROUTE: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset({TripStatus.SETTLED, TripStatus.CANCELLED}),
    TripStatus.SETTLED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}

ACTION_FOR_STATUS = {
    TripStatus.ACTIVE: "start_trip",
    TripStatus.EN_ROUTE: "mark_en_route",
    TripStatus.COMPLETED: "complete_trip",
    TripStatus.SETTLED: "settle_trip",
    TripStatus.CANCELLED: "cancel_trip",
}

# Trip fields whose change alters the trip's financial totals
FINANCIAL_FIELDS = frozenset(
    {
        "driver_id",
        "start_date",
        "end_date",
        "total_miles",
        "odometer_start",
        "odometer_end",
        "status",
    }
)


class PendingLoad(BaseModel):
    """A load still blocking trip completion."""

    load_id: str
    load_number: str
    status: str
    destination_city: Optional[str] = None
    destination_state: Optional[str] = None


class TripCompletionCheck(BaseModel):
    """Whether a trip can be completed right now, and why not."""

    can_complete: bool
    reason: Optional[str] = None
    total_loads: int
    delivered_loads: int
    pending_loads: list[PendingLoad] = Field(default_factory=list)


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def allowed_sources(target: TripStatus) -> list[TripStatus]:
    return [source for source, targets in TRIP_TRANSITIONS.items() if target in targets]


def require_start_evidence(trip: Trip) -> None:
    """
    Raises:
        ValidationError: Odometer start reading or photo missing
    """
    if trip.odometer_start is None or _blank(trip.odometer_start_photo_url):
        raise ValidationError(
            "You must enter the starting odometer and upload a start photo to activate this trip.",
            field="odometer_start" if trip.odometer_start is None else "odometer_start_photo_url",
        )


def closing_miles(trip: Trip) -> Decimal:
    """
    Miles driven, validated for a closing transition.

    Raises:
        ValidationError: Missing odometer readings or photos, or end not
            greater than start
    """
    missing = [
        name
        for name, value in (
            ("odometer_start", trip.odometer_start),
            ("odometer_start_photo_url", trip.odometer_start_photo_url),
            ("odometer_end", trip.odometer_end),
            ("odometer_end_photo_url", trip.odometer_end_photo_url),
        )
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise ValidationError(
            "Odometer start/end and photos are required to complete/settle this trip.",
            field=missing[0],
        )
    miles = to_decimal(trip.odometer_end) - to_decimal(trip.odometer_start)
    if miles <= ZERO:
        raise ValidationError(
            "Actual miles must be greater than zero to settle this trip.", field="odometer_end"
        )
    return miles


def pending_loads(loads: list[Load]) -> list[PendingLoad]:
    return [
        PendingLoad(
            load_id=load.id,
            load_number=load.load_number or load.id,
            status=load.effective_status.value,
            destination_city=load.destination_city,
            destination_state=load.destination_state,
        )
        for load in loads
        if load.load_status not in TERMINAL_DELIVERY_STATUSES
    ]


def evaluate_completion(trip: Trip, loads: list[Load]) -> TripCompletionCheck:
    """Evaluate trip completion without raising."""
    pending = pending_loads(loads)
    total = len(loads)
    delivered = total - len(pending)
    has_odometer_end = trip.odometer_end is not None and trip.odometer_end > ZERO

    reason = None
    if trip.status not in (TripStatus.ACTIVE, TripStatus.EN_ROUTE):
        reason = f"Trip is {trip.status.value}, must be active to complete"
    elif total == 0:
        reason = "Trip has no loads"
    elif pending:
        reason = f"{len(pending)} load(s) still pending delivery"
    elif not has_odometer_end:
        reason = "Please enter odometer end reading first"
    else:
        try:
            closing_miles(trip)
        except ValidationError as e:
            reason = str(e)

    return TripCompletionCheck(
        can_complete=reason is None,
        reason=reason,
        total_loads=total,
        delivered_loads=delivered,
        pending_loads=pending,
    )


class TripLifecycle(BaseService):
    """
    Trip status state machine and trip composition.

    Driver and equipment live on the trip; every change is pushed onto the
    attached loads by EquipmentSync, and financial totals are recomputed by
    FinancialEngine afterwards.
    """

    def __init__(
        self,
        store: Any,
        financials: Optional[FinancialEngine] = None,
        inheritance: Optional[EquipmentSync] = None,
        compliance: Optional[ComplianceGate] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(service_name="trip_lifecycle", store=store, **kwargs)
        shared = {"config_manager": self.config_manager, "clock": self.clock}
        self.financials = financials or FinancialEngine(store, **shared)
        self.inheritance = inheritance or EquipmentSync(store, **shared)
        self.compliance = compliance or ComplianceGate(
            config_manager=self.config_manager, today=lambda: self.clock().date()
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _next_trip_number(self, ctx: RequestContext) -> str:
        settings = self.config_manager.get_trip_settings()
        pattern = re.compile(rf"^{re.escape(settings.number_prefix)}(\d+)$")
        highest = 0
        for trip in self.store.list_trips(ctx.owner_id):
            match = pattern.match(trip.trip_number)
            if match:
                highest = max(highest, int(match.group(1)))
        return f"{settings.number_prefix}{highest + 1:0{settings.number_width}d}"

    def _assert_unique_number(self, ctx: RequestContext, trip_number: str, trip_id: Optional[str] = None) -> None:
        for trip in self.store.list_trips(ctx.owner_id):
            if trip.trip_number == trip_number and trip.id != trip_id:
                raise ValidationError("Trip number must be unique for your account", field="trip_number")

    def _assert_owned(self, ctx: RequestContext, driver_id: Optional[str], truck_id: Optional[str], trailer_id: Optional[str]) -> Optional[Driver]:
        driver = self.store.get_driver(ctx.owner_id, driver_id) if driver_id else None
        if truck_id:
            self.store.get_truck(ctx.owner_id, truck_id)
        if trailer_id:
            self.store.get_trailer(ctx.owner_id, trailer_id)
        return driver

    def _check_compliance(
        self, ctx: RequestContext, driver: Optional[Driver], truck_id: Optional[str], block_expired: Optional[bool]
    ) -> None:
        truck = self.store.get_truck(ctx.owner_id, truck_id) if truck_id else None
        self.compliance.enforce(driver, truck, block_expired=block_expired)

    def _loads(self, ctx: RequestContext, trip_id: str) -> list[Load]:
        return [load for _, load in self.store.get_trip_loads_with_loads(ctx.owner_id, trip_id)]

    def _recompute(self, ctx: RequestContext, trip_id: str) -> None:
        try:
            self.financials.recompute_trip(ctx, trip_id)
        except TripflowError as e:
            self.logger.warning("trip_recompute_failed", trip_id=trip_id, error=str(e))

    def _notify_driver(
        self, kind: NotificationKind, ctx: RequestContext, trip: Trip, load: Optional[Load] = None
    ) -> None:
        if not trip.driver_id:
            return
        self.notify(
            Notification(
                kind=kind,
                owner_id=ctx.owner_id,
                driver_id=trip.driver_id,
                trip_id=trip.id,
                trip_number=trip.trip_number,
                load_id=load.id if load else None,
                load_number=load.load_number if load else None,
            )
        )

    def _require_source(self, ctx: RequestContext, trip_id: str, target: TripStatus) -> Trip:
        """Fetch the trip and check a dedicated transition is legal from its status."""
        trip = self.store.get_trip(ctx.owner_id, trip_id)
        if target not in TRIP_TRANSITIONS[trip.status]:
            raise StateMismatchError(
                "Trip",
                trip.status.value,
                [s.value for s in allowed_sources(target)],
                action=ACTION_FOR_STATUS[target],
            )
        return trip

    def _status_changes(self, ctx: RequestContext, current: Trip, merged: Trip) -> dict[str, Any]:
        """
        Validate a status change and return the extra fields it sets.

        Args:
            ctx: Caller context
            current: Trip as stored
            merged: Trip with the requested changes applied

        Raises:
            StateMismatchError: Transition not allowed from the current status
            ValidationError: Missing odometer evidence
            PendingLoadsError: Completing with undelivered loads
        """
        target = merged.status
        action = ACTION_FOR_STATUS.get(target, "update_trip")
        if target not in TRIP_TRANSITIONS[current.status]:
            raise StateMismatchError(
                "Trip",
                current.status.value,
                [s.value for s in allowed_sources(target)],
                action=action,
            )

        extra: dict[str, Any] = {}
        if target == TripStatus.ACTIVE:
            require_start_evidence(merged)
        elif target == TripStatus.COMPLETED:
            loads = self._loads(ctx, current.id)
            if not loads:
                raise ValidationError("Trip has no loads", field="loads")
            pending = pending_loads(loads)
            if pending:
                numbers = ", ".join(p.load_number for p in pending)
                raise PendingLoadsError(
                    f"{len(pending)} load(s) still pending delivery: {numbers}", pending
                )
            miles = closing_miles(merged)
            extra.update(actual_miles=miles, total_miles=miles, completed_at=self.now())
        elif target == TripStatus.SETTLED:
            miles = closing_miles(merged)
            extra.update(actual_miles=miles, total_miles=miles)
        elif target == TripStatus.CANCELLED:
            extra["cancelled_at"] = self.now()
        return extra

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    def create_trip(self, ctx: RequestContext, data: TripCreate, block_expired: Optional[bool] = None) -> Trip:
        """
        Create a planned trip.

        Args:
            ctx: Caller context
            data: Trip fields; trip_number is generated when omitted
            block_expired: Block on expired driver/truck credentials

        Returns:
            The stored trip

        Raises:
            NotFoundError: Driver, truck or trailer is not the caller's
            CompatibilityError: Tractor without a trailer
            ComplianceBlockedError: Blocking mode and expired credentials
        """
        driver = self._assert_owned(ctx, data.driver_id, data.truck_id, data.trailer_id)

        truck_id, trailer_id = data.truck_id, data.trailer_id
        if driver is not None and not truck_id and not trailer_id:
            truck_id, trailer_id = self.inheritance.resolve_default_equipment(ctx, driver)
        trailer_id = self.inheritance.enforce_compatibility(ctx, truck_id, trailer_id)

        if driver is not None:
            self._check_compliance(ctx, driver, truck_id, block_expired)

        trip_number = (data.trip_number or "").strip()
        if trip_number:
            self._assert_unique_number(ctx, trip_number)
        else:
            trip_number = self._next_trip_number(ctx)

        trip = Trip(
            **data.model_dump(exclude={"trip_number", "truck_id", "trailer_id"}),
            id=str(uuid.uuid4()),
            owner_id=ctx.owner_id,
            trip_number=trip_number,
            truck_id=truck_id,
            trailer_id=trailer_id,
            status=TripStatus.PLANNED,
            driver_compensation=driver.compensation() if driver else None,
        )
        trip = self.store.insert_trip(trip)
        self.logger.info("trip_created", trip_id=trip.id, trip_number=trip.trip_number, driver_id=trip.driver_id)
        self.record_transition(ctx, "trip", trip.id, "create_trip", None, trip.status.value)
        self._notify_driver(NotificationKind.TRIP_ASSIGNED, ctx, trip)
        return trip

    def update_trip(
        self,
        ctx: RequestContext,
        trip_id: str,
        update: TripUpdate,
        block_expired: Optional[bool] = None,
    ) -> Trip:
        """
        Apply a partial update.

        Fields the caller did not set are left alone; an explicit None clears
        a field. Status changes go through the same gates as the dedicated
        transition methods.
        """
        current = self.store.get_trip(ctx.owner_id, trip_id)
        changes = update.provided()
        if changes.get("status", current.status) is None:
            del changes["status"]

        new_driver = self._assert_owned(
            ctx, changes.get("driver_id"), changes.get("truck_id"), changes.get("trailer_id")
        )
        driver_changing = bool(changes.get("driver_id")) and changes["driver_id"] != current.driver_id
        driver_clearing = "driver_id" in changes and not changes["driver_id"] and current.driver_id is not None
        sharing_changing = (
            "share_driver_with_companies" in changes
            and changes["share_driver_with_companies"] != current.share_driver_with_companies
        )

        if (
            driver_changing
            and not current.truck_id
            and not current.trailer_id
            and "truck_id" not in changes
            and "trailer_id" not in changes
        ):
            truck_id, trailer_id = self.inheritance.resolve_default_equipment(ctx, new_driver)
            if truck_id:
                changes["truck_id"] = truck_id
                if trailer_id:
                    changes["trailer_id"] = trailer_id

        next_truck = changes["truck_id"] if "truck_id" in changes else current.truck_id
        next_trailer = changes["trailer_id"] if "trailer_id" in changes else current.trailer_id
        effective_trailer = self.inheritance.enforce_compatibility(ctx, next_truck, next_trailer)
        if effective_trailer != next_trailer:
            changes["trailer_id"] = effective_trailer

        if "trip_number" in changes:
            if _blank(changes["trip_number"]):
                raise ValidationError("Trip number cannot be blank", field="trip_number")
            changes["trip_number"] = changes["trip_number"].strip()
            self._assert_unique_number(ctx, changes["trip_number"], trip_id)

        if driver_changing:
            self._check_compliance(ctx, new_driver, next_truck, block_expired)
            changes["driver_compensation"] = new_driver.compensation()
        elif driver_clearing:
            changes["driver_compensation"] = None

        merged = current.model_copy(update=changes)
        status_changing = "status" in changes and changes["status"] != current.status
        if status_changing:
            changes.update(self._status_changes(ctx, current, merged))

        updated = self.store.update_trip(
            ctx.owner_id,
            trip_id,
            changes,
            expected_status=current.status if status_changing else ANY_STATUS,
        )
        self.logger.info("trip_updated", trip_id=trip_id, fields=sorted(changes))

        if status_changing:
            self.record_transition(
                ctx,
                "trip",
                trip_id,
                ACTION_FOR_STATUS.get(updated.status, "update_trip"),
                current.status.value,
                updated.status.value,
            )

        if driver_changing:
            self.inheritance.sync_driver_to_loads(ctx, updated, new_driver)
            self._notify_driver(NotificationKind.TRIP_ASSIGNED, ctx, updated)
        elif driver_clearing:
            self.inheritance.clear_driver_from_loads(ctx, updated)
        elif sharing_changing and updated.driver_id:
            driver = self.store.get_driver(ctx.owner_id, updated.driver_id)
            self.inheritance.sync_driver_to_loads(ctx, updated, driver)

        if updated.truck_id != current.truck_id or updated.trailer_id != current.trailer_id:
            self.inheritance.sync_equipment_to_loads(ctx, updated)

        if FINANCIAL_FIELDS & set(changes):
            self._recompute(ctx, trip_id)
            updated = self.store.get_trip(ctx.owner_id, trip_id)
        return updated

    def assign_driver(
        self,
        ctx: RequestContext,
        trip_id: str,
        driver_id: Optional[str],
        block_expired: Optional[bool] = None,
    ) -> Trip:
        """Assign, replace or (with None) clear the trip's driver."""
        return self.update_trip(ctx, trip_id, TripUpdate(driver_id=driver_id), block_expired=block_expired)

    def update_driver_sharing(self, ctx: RequestContext, trip_id: str, share_with_companies: bool) -> Trip:
        """Change whether partner companies see the driver's name and phone."""
        self.store.get_trip(ctx.owner_id, trip_id)
        updated = self.store.update_trip(
            ctx.owner_id, trip_id, {"share_driver_with_companies": share_with_companies}
        )
        if updated.driver_id:
            driver = self.store.get_driver(ctx.owner_id, updated.driver_id)
            self.inheritance.sync_driver_to_loads(ctx, updated, driver)
        return updated

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def start_trip(
        self,
        ctx: RequestContext,
        trip_id: str,
        odometer_start: Optional[Decimal] = None,
        odometer_start_photo_url: Optional[str] = None,
        block_expired: Optional[bool] = None,
    ) -> Trip:
        """
        Activate a planned trip.

        Odometer values passed here are recorded with the transition; values
        already on the trip are used otherwise.

        Raises:
            StateMismatchError: Trip is not planned
            ValidationError: Odometer start or its photo is missing
            ComplianceBlockedError: Blocking mode and expired credentials
        """
        trip = self._require_source(ctx, trip_id, TripStatus.ACTIVE)
        if trip.driver_id:
            driver = self.store.get_driver(ctx.owner_id, trip.driver_id)
            self._check_compliance(ctx, driver, trip.truck_id, block_expired)

        fields: dict[str, Any] = {"status": TripStatus.ACTIVE}
        if odometer_start is not None:
            fields["odometer_start"] = odometer_start
        if odometer_start_photo_url is not None:
            fields["odometer_start_photo_url"] = odometer_start_photo_url
        return self.update_trip(ctx, trip_id, TripUpdate(**fields))

    def mark_en_route(self, ctx: RequestContext, trip_id: str) -> Trip:
        self._require_source(ctx, trip_id, TripStatus.EN_ROUTE)
        return self.update_trip(ctx, trip_id, TripUpdate(status=TripStatus.EN_ROUTE))

    def complete_trip(
        self,
        ctx: RequestContext,
        trip_id: str,
        odometer_end: Optional[Decimal] = None,
        odometer_end_photo_url: Optional[str] = None,
        completion_notes: Optional[str] = None,
    ) -> Trip:
        """
        Complete an active or en-route trip.

        Raises:
            StateMismatchError: Trip is not active or en route
            PendingLoadsError: Attached loads not yet delivered; lists each one
            ValidationError: No loads, or odometer evidence missing/invalid
        """
        self._require_source(ctx, trip_id, TripStatus.COMPLETED)
        fields: dict[str, Any] = {"status": TripStatus.COMPLETED}
        if odometer_end is not None:
            fields["odometer_end"] = odometer_end
        if odometer_end_photo_url is not None:
            fields["odometer_end_photo_url"] = odometer_end_photo_url
        if completion_notes is not None:
            fields["completion_notes"] = completion_notes
        return self.update_trip(ctx, trip_id, TripUpdate(**fields))

    def settle_trip(self, ctx: RequestContext, trip_id: str) -> Trip:
        self._require_source(ctx, trip_id, TripStatus.SETTLED)
        return self.update_trip(ctx, trip_id, TripUpdate(status=TripStatus.SETTLED))

    def cancel_trip(self, ctx: RequestContext, trip_id: str) -> Trip:
        self._require_source(ctx, trip_id, TripStatus.CANCELLED)
        return self.update_trip(ctx, trip_id, TripUpdate(status=TripStatus.CANCELLED))

    def check_can_complete(self, ctx: RequestContext, trip_id: str) -> TripCompletionCheck:
        trip = self.store.get_trip(ctx.owner_id, trip_id)
        return evaluate_completion(trip, self._loads(ctx, trip_id))

    # ------------------------------------------------------------------
    # Loads
    # ------------------------------------------------------------------

    def add_load(
        self,
        ctx: RequestContext,
        trip_id: str,
        load_id: str,
        role: TripLoadRole = TripLoadRole.PRIMARY,
    ) -> TripLoad:
        """
        Attach a load to the end of a trip.

        A load already on another trip is detached from it first; the previous
        trip's financials are recomputed.

        Raises:
            ValidationError: Load is already on this trip
        """
        trip = self.store.get_trip(ctx.owner_id, trip_id)
        load = self.store.get_load(ctx.owner_id, load_id)

        existing = self.store.find_trip_load(load_id)
        previous_trip_id = None
        if existing is not None:
            if existing.trip_id == trip_id:
                raise ValidationError("This load is already attached to this trip", field="load_id")
            self.store.delete_trip_load(existing.trip_id, load_id)
            previous_trip_id = existing.trip_id

        count = len(self.store.list_trip_loads(trip_id))
        link = self.store.insert_trip_load(
            TripLoad(
                trip_id=trip_id,
                load_id=load_id,
                owner_id=ctx.owner_id,
                sequence_index=count,
                role=role,
            )
        )

        driver = None
        if trip.driver_id:
            try:
                driver = self.store.get_driver(ctx.owner_id, trip.driver_id)
            except NotFoundError:
                self.logger.warning("trip_driver_missing", trip_id=trip_id, driver_id=trip.driver_id)
        self.inheritance.apply_trip_to_load(ctx, trip, load_id, count + 1, driver=driver)

        self.logger.info(
            "load_added_to_trip",
            trip_id=trip_id,
            load_id=load_id,
            delivery_order=count + 1,
            previous_trip_id=previous_trip_id,
        )
        self._recompute(ctx, trip_id)
        if previous_trip_id:
            self._recompute(ctx, previous_trip_id)
        self._notify_driver(NotificationKind.LOAD_ADDED, ctx, trip, load)
        return link

    def remove_load(self, ctx: RequestContext, trip_id: str, load_id: str) -> Load:
        """Detach a load; its driver, equipment and delivery order are cleared."""
        trip = self.store.get_trip(ctx.owner_id, trip_id)
        load = self.store.get_load(ctx.owner_id, load_id)

        link = self.store.find_trip_load(load_id)
        if link is None or link.trip_id != trip_id:
            raise NotFoundError("Trip load")

        self.store.delete_trip_load(trip_id, load_id)
        detached = self.inheritance.clear_detached_load(ctx, load_id)
        self.logger.info("load_removed_from_trip", trip_id=trip_id, load_id=load_id)
        self._recompute(ctx, trip_id)
        self._notify_driver(NotificationKind.LOAD_REMOVED, ctx, trip, load)
        return detached

    def reorder_loads(self, ctx: RequestContext, trip_id: str, order: dict[str, int]) -> list[TripLoad]:
        """
        Set each load's position on the trip.

        Args:
            ctx: Caller context
            trip_id: Trip being reordered
            order: load id -> zero-based sequence index

        No notification is sent; call confirm_delivery_order when done.
        """
        self.store.get_trip(ctx.owner_id, trip_id)
        attached = {link.load_id for link in self.store.list_trip_loads(trip_id)}
        unknown = [load_id for load_id in order if load_id not in attached]
        if unknown:
            raise ValidationError(
                f"Load(s) not on this trip: {', '.join(unknown)}", field="load_id"
            )
        for load_id, sequence_index in order.items():
            if sequence_index < 0:
                raise ValidationError("Sequence index cannot be negative", field="sequence_index")
            self.store.update_trip_load(trip_id, load_id, sequence_index)
            self.store.update_load(ctx.owner_id, load_id, {"delivery_order": sequence_index + 1})
        self.logger.info("trip_loads_reordered", trip_id=trip_id, count=len(order))
        return self.store.list_trip_loads(trip_id)

    def confirm_delivery_order(self, ctx: RequestContext, trip_id: str) -> None:
        """Tell the driver the delivery order has changed."""
        trip = self.store.get_trip(ctx.owner_id, trip_id)
        self._notify_driver(NotificationKind.DELIVERY_ORDER_CHANGED, ctx, trip)

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_expense(amount: Optional[Decimal], receipt: Optional[str]) -> None:
        if _blank(receipt):
            raise ValidationError("Receipt photo is required for expenses.", field="receipt_photo_url")
        if amount is None or to_decimal(amount) <= ZERO:
            raise ValidationError("Expense amount must be greater than zero", field="amount")

    def add_expense(self, ctx: RequestContext, trip_id: str, data: ExpenseInput) -> TripExpense:
        self.store.get_trip(ctx.owner_id, trip_id)
        self._validate_expense(data.amount, data.receipt_photo_url)

        fields = data.model_dump(exclude_none=True)
        fields["receipt_photo_url"] = data.receipt_photo_url.strip()
        fields.setdefault("incurred_at", self.today())
        expense = self.store.insert_expense(
            TripExpense(id=str(uuid.uuid4()), trip_id=trip_id, owner_id=ctx.owner_id, **fields)
        )
        self.logger.info(
            "expense_added",
            trip_id=trip_id,
            expense_id=expense.id,
            category=expense.category.value,
            amount=str(expense.amount),
        )
        self._recompute(ctx, trip_id)
        return expense

    def update_expense(self, ctx: RequestContext, expense_id: str, update: ExpenseUpdate) -> TripExpense:
        current = self.store.get_expense(ctx.owner_id, expense_id)
        changes = update.provided()
        if "incurred_at" in changes and changes["incurred_at"] is None:
            changes["incurred_at"] = self.today()
        if "receipt_photo_url" in changes and not _blank(changes["receipt_photo_url"]):
            changes["receipt_photo_url"] = changes["receipt_photo_url"].strip()

        self._validate_expense(
            changes.get("amount", current.amount),
            changes.get("receipt_photo_url", current.receipt_photo_url),
        )
        expense = self.store.update_expense(ctx.owner_id, expense_id, changes)
        self.logger.info("expense_updated", trip_id=expense.trip_id, expense_id=expense_id)
        self._recompute(ctx, expense.trip_id)
        return expense

    def delete_expense(self, ctx: RequestContext, expense_id: str) -> None:
        expense = self.store.get_expense(ctx.owner_id, expense_id)
        self.store.delete_expense(ctx.owner_id, expense_id)
        self.logger.info("expense_deleted", trip_id=expense.trip_id, expense_id=expense_id)
        self._recompute(ctx, expense.trip_id)
