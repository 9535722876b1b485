"""
Load Lifecycle - the per-load status state machine.

This service:
- Moves a load through accept, loading, loaded, in transit and delivered
- Requires the evidence each step needs (cubic feet readings, photos)
- Routes loads dropped into storage to storage_completed
- Writes status with a compare-and-swap so a lost race is reported, not hidden
- Records audit events and system messages without letting them fail a transition
- Recomputes the owning trip's financials after every change
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from tripflow.core.errors import StateMismatchError, TripflowError, ValidationError
from tripflow.core.money import ZERO, to_decimal
from tripflow.data.models import Load, LoadStatus, PaymentMethod, RequestContext
from tripflow.services.base import BaseService
from tripflow.services.financials import FinancialEngine

# action -> (allowed source statuses, target status or None when status is kept)
LOAD_TRANSITIONS: dict[str, tuple[frozenset, Optional[LoadStatus]]] = {
    "accept": (frozenset({None, LoadStatus.PENDING}), LoadStatus.ACCEPTED),
    "start_loading": (frozenset({LoadStatus.ACCEPTED}), LoadStatus.LOADING),
    "finish_loading": (frozenset({LoadStatus.LOADING}), LoadStatus.LOADED),
    "mark_pickup": (
        frozenset({None, LoadStatus.PENDING, LoadStatus.ACCEPTED, LoadStatus.LOADING}),
        LoadStatus.LOADED,
    ),
    "record_load_details": (frozenset({LoadStatus.LOADED, LoadStatus.IN_TRANSIT}), None),
    "start_delivery": (frozenset({LoadStatus.LOADED}), LoadStatus.IN_TRANSIT),
    "complete_delivery": (frozenset({LoadStatus.IN_TRANSIT}), LoadStatus.DELIVERED),
    "set_storage_drop": (
        frozenset({LoadStatus.LOADED, LoadStatus.IN_TRANSIT}),
        LoadStatus.STORAGE_COMPLETED,
    ),
    "cancel": (
        frozenset({None, LoadStatus.PENDING, LoadStatus.ACCEPTED, LoadStatus.LOADING}),
        LoadStatus.CANCELLED,
    ),
}

EXTRA_FIELDS = (
    "extra_shuttle",
    "extra_stairs",
    "extra_long_carry",
    "extra_packing",
    "extra_bulky",
    "extra_other",
)

_STATUS_ORDER = list(LoadStatus)


def _status_value(status: Optional[LoadStatus]) -> Optional[str]:
    return status.value if status else None


def available_actions(load: Load) -> list[str]:
    """Operations that are legal from the load's current status."""
    return [
        action
        for action, (sources, _) in LOAD_TRANSITIONS.items()
        if load.load_status in sources
    ]


def _require_text(value: Optional[str], field: str, label: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{label} is required", field=field)
    return value


class ContractDetails(BaseModel):
    """Contract figures a driver records at pickup."""

    contract_rate_per_cuft: Optional[Decimal] = None
    contract_accessorials_shuttle: Decimal = ZERO
    contract_accessorials_stairs: Decimal = ZERO
    contract_accessorials_long_carry: Decimal = ZERO
    contract_accessorials_packing: Decimal = ZERO
    contract_accessorials_bulky: Decimal = ZERO
    contract_accessorials_other: Decimal = ZERO
    balance_due_on_delivery: Optional[Decimal] = None


class PickupInput(ContractDetails):
    """Legacy combined pickup."""

    actual_cuft_loaded: Optional[Decimal] = None
    contract_photo_url: Optional[str] = None
    load_report_photo_url: Optional[str] = None


class LoadDetailsInput(ContractDetails):
    """Contract details recorded after loading."""

    actual_cuft_loaded: Optional[Decimal] = None
    first_available_date: Optional[date] = None
    loading_report_photo: Optional[str] = None
    origin_paperwork_photos: list[str] = Field(default_factory=list)


class DeliveryInput(BaseModel):
    """Evidence captured when a delivery completes."""

    delivery_location_photo: Optional[str] = None
    delivery_photos: list[str] = Field(default_factory=list)
    signed_bol_photos: list[str] = Field(default_factory=list)
    signed_inventory_photos: list[str] = Field(default_factory=list)
    collected_amount: Optional[Decimal] = None
    collection_method: Optional[PaymentMethod] = None
    amount_paid_directly_to_company: Optional[Decimal] = None
    delivery_notes: Optional[str] = None
    extra_shuttle: Decimal = Decimal("0")
    extra_stairs: Decimal = Decimal("0")
    extra_long_carry: Decimal = Decimal("0")
    extra_packing: Decimal = Decimal("0")
    extra_bulky: Decimal = Decimal("0")
    extra_other: Decimal = Decimal("0")


class StorageDropInput(BaseModel):
    """Storage location metadata for a load dropped into storage."""

    storage_drop: bool = True
    storage_location_name: Optional[str] = None
    storage_location_address: Optional[str] = None
    storage_unit_number: Optional[str] = None
    storage_move_in_fee: Optional[Decimal] = None
    storage_daily_fee: Optional[Decimal] = None
    storage_days_billed: Optional[int] = None
    storage_notes: Optional[str] = None
    company_approved_exception_delivery: bool = False


class LoadLifecycle(BaseService):
    """
    Load status state machine.

    Every operation re-reads the load, checks its current status against the
    action's allowed sources, and writes conditioned on that same status.
    """

    def __init__(self, store: Any, financials: Optional[FinancialEngine] = None, **kwargs: Any) -> None:
        super().__init__(service_name="load_lifecycle", store=store, **kwargs)
        self.financials = financials or FinancialEngine(
            store,
            config_manager=self.config_manager,
            clock=self.clock,
        )

    def _load_for(self, ctx: RequestContext, load_id: str, action: str) -> Load:
        load = self.store.get_load(ctx.owner_id, load_id)
        sources, _ = LOAD_TRANSITIONS[action]
        if load.load_status not in sources:
            expected = sorted(
                {_status_value(s) for s in sources},
                key=lambda v: _STATUS_ORDER.index(LoadStatus(v)) if v else -1,
            )
            raise StateMismatchError(
                "Load", _status_value(load.load_status), expected, action=action
            )
        return load

    def _commit(
        self,
        ctx: RequestContext,
        load: Load,
        action: str,
        changes: dict[str, Any],
        message: Optional[str] = None,
        target: Optional[LoadStatus] = None,
        **metadata: Any,
    ) -> Load:
        _, default_target = LOAD_TRANSITIONS[action]
        target = target if target is not None else default_target
        if target is not None:
            changes["load_status"] = target

        try:
            updated = self.store.update_load(
                ctx.owner_id, load.id, changes, expected_status=load.load_status
            )
        except StateMismatchError as e:
            self.logger.warning("load_transition_conflict", load_id=load.id, action=action, error=str(e))
            raise StateMismatchError(
                "Load", e.actual, [_status_value(load.load_status)], action=action
            ) from e

        self.record_transition(
            ctx,
            "load",
            load.id,
            action,
            _status_value(load.load_status),
            _status_value(updated.load_status),
            load_number=load.load_number,
            **metadata,
        )
        if message:
            self.post_message(ctx, load.id, message)
        self._recompute_trip(ctx, load.id)
        return updated

    def _recompute_trip(self, ctx: RequestContext, load_id: str) -> None:
        link = self.store.find_trip_load(load_id)
        if link is None:
            return
        try:
            self.financials.recompute_trip(ctx, link.trip_id)
        except TripflowError as e:
            self.logger.warning(
                "trip_recompute_failed", trip_id=link.trip_id, load_id=load_id, error=str(e)
            )

    def _who(self, ctx: RequestContext) -> str:
        return ctx.actor_name or "Driver"

    def accept(self, ctx: RequestContext, load_id: str) -> Load:
        """Accept a pending load."""
        load = self._load_for(ctx, load_id, "accept")
        return self._commit(
            ctx,
            load,
            "accept",
            {"accepted_at": self.now()},
            message=f"{self._who(ctx)} accepted load {load.display_number}",
        )

    def start_loading(
        self,
        ctx: RequestContext,
        load_id: str,
        starting_cuft: Optional[Decimal],
        loading_start_photo: Optional[str],
    ) -> Load:
        """
        Begin loading an accepted load.

        Args:
            ctx: Caller context
            load_id: Load to start
            starting_cuft: Truck volume reading before loading
            loading_start_photo: URL of the photo taken before loading

        Raises:
            StateMismatchError: Load is not accepted
            ValidationError: Missing reading or photo
        """
        load = self._load_for(ctx, load_id, "start_loading")
        if starting_cuft is None:
            raise ValidationError("Starting cubic feet is required", field="starting_cuft")
        starting = to_decimal(starting_cuft)
        if starting < ZERO:
            raise ValidationError("Starting cubic feet cannot be negative", field="starting_cuft")
        _require_text(loading_start_photo, "loading_start_photo", "Loading start photo")

        return self._commit(
            ctx,
            load,
            "start_loading",
            {
                "starting_cuft": starting,
                "loading_start_photo": loading_start_photo,
                "loading_started_at": self.now(),
            },
            message=f"{self._who(ctx)} started loading {load.display_number} at {starting} CUFT",
            starting_cuft=str(starting),
        )

    def finish_loading(
        self,
        ctx: RequestContext,
        load_id: str,
        ending_cuft: Optional[Decimal],
        loading_end_photo: Optional[str],
        actual_cuft_loaded: Optional[Decimal] = None,
    ) -> Load:
        """
        Finish loading.

        actual_cuft_loaded defaults to ending minus starting cubic feet.

        Raises:
            StateMismatchError: Load is not loading
            ValidationError: Missing reading or photo, or the ending reading
                is below the starting one
        """
        load = self._load_for(ctx, load_id, "finish_loading")
        if ending_cuft is None:
            raise ValidationError("Ending cubic feet is required", field="ending_cuft")
        _require_text(loading_end_photo, "loading_end_photo", "Loading end photo")

        ending = to_decimal(ending_cuft)
        starting = to_decimal(load.starting_cuft)
        if actual_cuft_loaded is None:
            if ending < starting:
                raise ValidationError(
                    f"Ending cubic feet ({ending}) cannot be less than starting cubic feet ({starting})",
                    field="ending_cuft",
                )
            actual = ending - starting
        else:
            actual = to_decimal(actual_cuft_loaded)
            if actual < ZERO:
                raise ValidationError("Actual cubic feet cannot be negative", field="actual_cuft_loaded")

        return self._commit(
            ctx,
            load,
            "finish_loading",
            {
                "ending_cuft": ending,
                "loading_end_photo": loading_end_photo,
                "actual_cuft_loaded": actual,
                "loading_finished_at": self.now(),
            },
            message=f"{self._who(ctx)} finished loading {load.display_number}: {actual} CUFT loaded",
            actual_cuft_loaded=str(actual),
        )

    def mark_pickup(self, ctx: RequestContext, load_id: str, pickup: PickupInput) -> Load:
        """
        Legacy combined pickup: record the loaded volume and contract in one step.

        Raises:
            ValidationError: actual_cuft_loaded missing, zero or negative
        """
        load = self._load_for(ctx, load_id, "mark_pickup")
        if pickup.actual_cuft_loaded is None or pickup.actual_cuft_loaded <= ZERO:
            raise ValidationError(
                "actual_cuft_loaded must be greater than zero to mark load as loaded",
                field="actual_cuft_loaded",
            )

        changes = pickup.model_dump()
        if load.loading_finished_at is None:
            changes["loading_finished_at"] = self.now()
        return self._commit(
            ctx,
            load,
            "mark_pickup",
            changes,
            message=f"{self._who(ctx)} picked up {load.display_number}: {pickup.actual_cuft_loaded} CUFT",
            actual_cuft_loaded=str(pickup.actual_cuft_loaded),
        )

    def record_load_details(self, ctx: RequestContext, load_id: str, details: LoadDetailsInput) -> Load:
        """Record contract details and paperwork once a load is loaded."""
        load = self._load_for(ctx, load_id, "record_load_details")
        if details.actual_cuft_loaded is not None and details.actual_cuft_loaded <= ZERO:
            raise ValidationError(
                "actual_cuft_loaded must be greater than zero", field="actual_cuft_loaded"
            )

        changes = details.model_dump(exclude_none=True)
        return self._commit(
            ctx,
            load,
            "record_load_details",
            changes,
            message=f"{self._who(ctx)} recorded contract details for {load.display_number}",
        )

    def start_delivery(self, ctx: RequestContext, load_id: str) -> Load:
        """Put a loaded load in transit."""
        load = self._load_for(ctx, load_id, "start_delivery")
        return self._commit(
            ctx,
            load,
            "start_delivery",
            {"delivery_started_at": self.now()},
            message=f"{self._who(ctx)} started delivery of {load.display_number}",
        )

    def complete_delivery(self, ctx: RequestContext, load_id: str, delivery: DeliveryInput) -> Load:
        """
        Complete delivery of an in-transit load.

        A collected amount without a method is recorded as cash. Day-of extras
        (shuttle, stairs, long carry, packing, bulky, other) are written as given.

        Raises:
            StateMismatchError: Load is not in transit
            ValidationError: Negative collected amount or extra charge
        """
        load = self._load_for(ctx, load_id, "complete_delivery")
        changes: dict[str, Any] = {
            "delivery_location_photo": delivery.delivery_location_photo,
            "delivery_photos": delivery.delivery_photos,
            "signed_bol_photos": delivery.signed_bol_photos,
            "signed_inventory_photos": delivery.signed_inventory_photos,
            "delivery_notes": delivery.delivery_notes,
            "delivery_finished_at": self.now(),
        }

        collected_text = "No collection"
        if delivery.collected_amount is not None:
            if delivery.collected_amount < ZERO:
                raise ValidationError("Collected amount cannot be negative", field="collected_amount")
            method = delivery.collection_method or PaymentMethod.CASH
            changes["amount_collected_on_delivery"] = delivery.collected_amount
            changes["payment_method"] = method
            if delivery.collected_amount > ZERO:
                collected_text = f"${delivery.collected_amount} collected ({method.value})"
        if delivery.amount_paid_directly_to_company is not None:
            changes["amount_paid_directly_to_company"] = delivery.amount_paid_directly_to_company

        for name in EXTRA_FIELDS:
            amount = getattr(delivery, name)
            if amount < ZERO:
                raise ValidationError("Extra charges cannot be negative", field=name)
            changes[name] = amount

        return self._commit(
            ctx,
            load,
            "complete_delivery",
            changes,
            message=f"{self._who(ctx)} completed delivery for {load.display_number}. {collected_text}",
            collected_amount=str(delivery.collected_amount) if delivery.collected_amount is not None else None,
        )

    def set_storage_drop(self, ctx: RequestContext, load_id: str, storage: StorageDropInput) -> Load:
        """
        Record storage information and, when dropping, finish the load in storage.

        With storage_drop False the metadata is saved and the status is kept.
        """
        load = self._load_for(ctx, load_id, "set_storage_drop")
        if storage.storage_drop:
            _require_text(storage.storage_location_name, "storage_location_name", "Storage location name")

        changes = storage.model_dump()
        if storage.storage_drop:
            changes["delivery_finished_at"] = self.now()
            return self._commit(
                ctx,
                load,
                "set_storage_drop",
                changes,
                message=(
                    f"{self._who(ctx)} dropped {load.display_number} into storage at "
                    f"{storage.storage_location_name}"
                ),
                storage_location_name=storage.storage_location_name,
            )

        # Metadata only; keep the current status but still write conditionally
        updated = self.store.update_load(
            ctx.owner_id, load.id, changes, expected_status=load.load_status
        )
        self.logger.info("storage_info_updated", load_id=load.id)
        self._recompute_trip(ctx, load.id)
        return updated

    def cancel(self, ctx: RequestContext, load_id: str, reason: Optional[str] = None) -> Load:
        """Cancel a load that has not been loaded yet."""
        load = self._load_for(ctx, load_id, "cancel")
        suffix = f": {reason}" if reason else ""
        return self._commit(
            ctx,
            load,
            "cancel",
            {"cancelled_at": self.now()},
            message=f"Load {load.display_number} cancelled{suffix}",
            reason=reason,
        )

    def available_actions(self, ctx: RequestContext, load_id: str) -> list[str]:
        return available_actions(self.store.get_load(ctx.owner_id, load_id))
