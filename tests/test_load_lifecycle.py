from decimal import Decimal

import pytest

from conftest import NOW, FailingAuditSink, LoadFactory, clock
from tripflow.core.errors import NotFoundError, StateMismatchError, ValidationError
from tripflow.data.models import LoadStatus, PaymentMethod
from tripflow.data.store import InMemoryStore
from tripflow.services import LoadLifecycle
from tripflow.services.load_lifecycle import (
    DeliveryInput,
    LoadDetailsInput,
    PickupInput,
    StorageDropInput,
    available_actions,
)
from tripflow.services.financials import calculate_load_financials

PHOTO = "https://files.example.com/photo.jpg"


def test_accept_unset_status(load_lifecycle, make_load, ctx):
    load = make_load(load_status=None)
    accepted = load_lifecycle.accept(ctx, load.id)
    assert accepted.load_status == LoadStatus.ACCEPTED
    assert accepted.accepted_at == NOW


def test_accept_pending(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.PENDING)
    assert load_lifecycle.accept(ctx, load.id).load_status == LoadStatus.ACCEPTED


@pytest.mark.parametrize(
    "status, call",
    [
        (LoadStatus.LOADED, lambda svc, ctx, lid: svc.accept(ctx, lid)),
        (None, lambda svc, ctx, lid: svc.start_loading(ctx, lid, Decimal("100"), PHOTO)),
        (LoadStatus.ACCEPTED, lambda svc, ctx, lid: svc.finish_loading(ctx, lid, Decimal("350"), PHOTO)),
        (LoadStatus.DELIVERED, lambda svc, ctx, lid: svc.mark_pickup(ctx, lid, PickupInput(actual_cuft_loaded=Decimal("100")))),
        (LoadStatus.ACCEPTED, lambda svc, ctx, lid: svc.start_delivery(ctx, lid)),
        (LoadStatus.LOADED, lambda svc, ctx, lid: svc.complete_delivery(ctx, lid, DeliveryInput())),
        (LoadStatus.ACCEPTED, lambda svc, ctx, lid: svc.set_storage_drop(ctx, lid, StorageDropInput(storage_location_name="Unit A"))),
        (LoadStatus.IN_TRANSIT, lambda svc, ctx, lid: svc.cancel(ctx, lid)),
        (LoadStatus.ACCEPTED, lambda svc, ctx, lid: svc.record_load_details(ctx, lid, LoadDetailsInput())),
    ],
)
def test_wrong_source_status_leaves_load_unchanged(load_lifecycle, make_load, store, ctx, audit, status, call):
    load = make_load(load_status=status)
    with pytest.raises(StateMismatchError):
        call(load_lifecycle, ctx, load.id)
    assert store.get_load(ctx.owner_id, load.id).load_status == status
    assert audit.events == []


def test_state_mismatch_reports_actual_and_expected(load_lifecycle, make_load, ctx):
    load = make_load(load_status=None)
    with pytest.raises(StateMismatchError, match="must be accepted") as exc_info:
        load_lifecycle.start_loading(ctx, load.id, Decimal("100"), PHOTO)
    assert exc_info.value.actual is None
    assert exc_info.value.expected == ["accepted"]
    assert 'current status: "pending"' in str(exc_info.value)


def test_start_loading_requires_photo(load_lifecycle, make_load, store, ctx):
    load = make_load(load_status=LoadStatus.ACCEPTED)
    with pytest.raises(ValidationError, match="Loading start photo is required") as exc_info:
        load_lifecycle.start_loading(ctx, load.id, Decimal("100"), "   ")
    assert exc_info.value.field == "loading_start_photo"
    assert store.get_load(ctx.owner_id, load.id).load_status == LoadStatus.ACCEPTED


def test_start_loading_requires_starting_cuft(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.ACCEPTED)
    with pytest.raises(ValidationError) as exc_info:
        load_lifecycle.start_loading(ctx, load.id, None, PHOTO)
    assert exc_info.value.field == "starting_cuft"


def test_start_loading_records_reading(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.ACCEPTED)
    started = load_lifecycle.start_loading(ctx, load.id, Decimal("100"), PHOTO)
    assert started.load_status == LoadStatus.LOADING
    assert started.starting_cuft == Decimal("100")
    assert started.loading_start_photo == PHOTO
    assert started.loading_started_at == NOW


def test_finish_loading_computes_actual_cuft(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.LOADING, starting_cuft=Decimal("100"))
    finished = load_lifecycle.finish_loading(ctx, load.id, Decimal("350"), PHOTO)
    assert finished.load_status == LoadStatus.LOADED
    assert finished.actual_cuft_loaded == Decimal("250")
    assert finished.loading_finished_at == NOW


def test_finish_loading_override(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.LOADING, starting_cuft=Decimal("100"))
    finished = load_lifecycle.finish_loading(
        ctx, load.id, Decimal("350"), PHOTO, actual_cuft_loaded=Decimal("300")
    )
    assert finished.actual_cuft_loaded == Decimal("300")


def test_finish_loading_rejects_ending_below_starting(load_lifecycle, make_load, store, ctx):
    load = make_load(load_status=LoadStatus.LOADING, starting_cuft=Decimal("400"))
    with pytest.raises(ValidationError, match="cannot be less than starting"):
        load_lifecycle.finish_loading(ctx, load.id, Decimal("350"), PHOTO)
    assert store.get_load(ctx.owner_id, load.id).load_status == LoadStatus.LOADING


def test_finish_loading_requires_end_photo(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.LOADING, starting_cuft=Decimal("100"))
    with pytest.raises(ValidationError) as exc_info:
        load_lifecycle.finish_loading(ctx, load.id, Decimal("350"), None)
    assert exc_info.value.field == "loading_end_photo"


@pytest.mark.parametrize("cuft", [Decimal("0"), Decimal("-5"), None])
def test_mark_pickup_rejects_non_positive_cuft(load_lifecycle, make_load, store, ctx, cuft):
    load = make_load(load_status=LoadStatus.ACCEPTED)
    with pytest.raises(ValidationError, match="greater than zero"):
        load_lifecycle.mark_pickup(ctx, load.id, PickupInput(actual_cuft_loaded=cuft))
    assert store.get_load(ctx.owner_id, load.id).load_status == LoadStatus.ACCEPTED


def test_mark_pickup_records_contract(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.PENDING)
    picked_up = load_lifecycle.mark_pickup(
        ctx,
        load.id,
        PickupInput(
            actual_cuft_loaded=Decimal("1200"),
            contract_rate_per_cuft=Decimal("4.25"),
            contract_accessorials_stairs=Decimal("75"),
            balance_due_on_delivery=Decimal("2500"),
            contract_photo_url=PHOTO,
        ),
    )
    assert picked_up.load_status == LoadStatus.LOADED
    assert picked_up.actual_cuft_loaded == Decimal("1200")
    assert picked_up.contract_accessorials_total == Decimal("75")
    assert picked_up.balance_due_on_delivery == Decimal("2500")


def test_record_load_details_after_loading(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.LOADED, actual_cuft_loaded=Decimal("800"))
    updated = load_lifecycle.record_load_details(
        ctx,
        load.id,
        LoadDetailsInput(
            contract_rate_per_cuft=Decimal("3.90"),
            origin_paperwork_photos=[PHOTO],
            loading_report_photo=PHOTO,
        ),
    )
    assert updated.load_status == LoadStatus.LOADED
    assert updated.contract_rate_per_cuft == Decimal("3.90")
    assert updated.actual_cuft_loaded == Decimal("800")
    assert updated.origin_paperwork_photos == [PHOTO]


def test_record_load_details_rejects_zero_cuft(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.IN_TRANSIT)
    with pytest.raises(ValidationError):
        load_lifecycle.record_load_details(ctx, load.id, LoadDetailsInput(actual_cuft_loaded=Decimal("0")))


def test_delivery_flow_with_collection(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.LOADED)
    in_transit = load_lifecycle.start_delivery(ctx, load.id)
    assert in_transit.load_status == LoadStatus.IN_TRANSIT
    assert in_transit.delivery_started_at == NOW

    delivered = load_lifecycle.complete_delivery(
        ctx,
        load.id,
        DeliveryInput(
            delivery_location_photo=PHOTO,
            signed_bol_photos=[PHOTO],
            signed_inventory_photos=[PHOTO, PHOTO],
            collected_amount=Decimal("1200.50"),
        ),
    )
    assert delivered.load_status == LoadStatus.DELIVERED
    assert delivered.amount_collected_on_delivery == Decimal("1200.50")
    assert delivered.payment_method == PaymentMethod.CASH
    assert delivered.signed_inventory_photos == [PHOTO, PHOTO]
    assert delivered.delivery_finished_at == NOW


def test_complete_delivery_rejects_negative_collection(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.IN_TRANSIT)
    with pytest.raises(ValidationError, match="cannot be negative"):
        load_lifecycle.complete_delivery(ctx, load.id, DeliveryInput(collected_amount=Decimal("-1")))


def test_complete_delivery_records_day_of_extras(load_lifecycle, make_load, store, ctx):
    load = make_load(
        load_status=LoadStatus.IN_TRANSIT,
        actual_cuft_loaded=Decimal("400"),
        contract_rate_per_cuft=Decimal("3"),
    )
    delivered = load_lifecycle.complete_delivery(
        ctx,
        load.id,
        DeliveryInput(extra_stairs=Decimal("75"), extra_shuttle=Decimal("150.25"), collected_amount=Decimal("100")),
    )
    assert delivered.extra_stairs == Decimal("75")
    assert delivered.extra_long_carry == Decimal("0")
    assert delivered.extra_accessorials_total == Decimal("225.25")

    result = calculate_load_financials(store.get_load(ctx.owner_id, load.id))
    assert result.extra_accessorials_total == Decimal("225.25")
    assert result.total_revenue == Decimal("1425.25")
    assert result.company_owes == Decimal("1325.25")


def test_complete_delivery_rejects_negative_extra(load_lifecycle, make_load, store, ctx):
    load = make_load(load_status=LoadStatus.IN_TRANSIT)
    with pytest.raises(ValidationError, match="Extra charges cannot be negative"):
        load_lifecycle.complete_delivery(ctx, load.id, DeliveryInput(extra_bulky=Decimal("-10")))
    assert store.get_load(ctx.owner_id, load.id).load_status == LoadStatus.IN_TRANSIT


def test_storage_drop_completes_load(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.IN_TRANSIT)
    stored = load_lifecycle.set_storage_drop(
        ctx,
        load.id,
        StorageDropInput(
            storage_location_name="Public Storage",
            storage_unit_number="B12",
            storage_move_in_fee=Decimal("25"),
        ),
    )
    assert stored.load_status == LoadStatus.STORAGE_COMPLETED
    assert stored.storage_drop is True
    assert stored.storage_unit_number == "B12"


def test_storage_drop_requires_location(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.LOADED)
    with pytest.raises(ValidationError) as exc_info:
        load_lifecycle.set_storage_drop(ctx, load.id, StorageDropInput())
    assert exc_info.value.field == "storage_location_name"


def test_storage_info_without_drop_keeps_status(load_lifecycle, make_load, ctx, audit):
    load = make_load(load_status=LoadStatus.LOADED)
    updated = load_lifecycle.set_storage_drop(
        ctx, load.id, StorageDropInput(storage_drop=False, storage_notes="Customer may need storage")
    )
    assert updated.load_status == LoadStatus.LOADED
    assert updated.storage_notes == "Customer may need storage"
    assert audit.events == []


def test_cancel_before_loading(load_lifecycle, make_load, ctx):
    load = make_load(load_status=LoadStatus.ACCEPTED)
    cancelled = load_lifecycle.cancel(ctx, load.id, reason="Customer postponed")
    assert cancelled.load_status == LoadStatus.CANCELLED
    assert cancelled.cancelled_at == NOW


def test_available_actions(make_load):
    assert available_actions(make_load(load_status=None)) == ["accept", "mark_pickup", "cancel"]
    assert available_actions(make_load(load_status=LoadStatus.LOADED)) == [
        "record_load_details",
        "start_delivery",
        "set_storage_drop",
    ]
    assert available_actions(make_load(load_status=LoadStatus.DELIVERED)) == []


def test_transition_records_audit_and_message(load_lifecycle, make_load, ctx, audit, messaging):
    load = make_load(load_status=None, load_number="LD-1001")
    load_lifecycle.accept(ctx, load.id)

    assert len(audit.events) == 1
    event = audit.events[0]
    assert event.action == "accept"
    assert event.previous_status is None
    assert event.new_status == "accepted"
    assert event.actor == "Test Driver"
    assert event.metadata["load_number"] == "LD-1001"

    assert len(messaging.messages) == 1
    assert "accepted load LD-1001" in messaging.messages[0].text


def test_failing_audit_does_not_block_transition(store, config, make_load, ctx):
    service = LoadLifecycle(store, config_manager=config, audit=FailingAuditSink(), clock=clock)
    load = make_load(load_status=None)
    assert service.accept(ctx, load.id).load_status == LoadStatus.ACCEPTED
    assert store.get_load(ctx.owner_id, load.id).load_status == LoadStatus.ACCEPTED


class RacingStore(InMemoryStore):
    """Another request accepts the load right after every read."""

    def get_load(self, owner_id, load_id):
        load = super().get_load(owner_id, load_id)
        self.loads[load_id] = self.loads[load_id].model_copy(update={"load_status": LoadStatus.ACCEPTED})
        return load


def test_lost_race_raises_state_mismatch(config, ctx):
    store = RacingStore()
    store.insert_load(
        LoadFactory(load_status=LoadStatus.PENDING)
    )
    load_id = next(iter(store.loads))
    service = LoadLifecycle(store, config_manager=config, clock=clock)
    with pytest.raises(StateMismatchError) as exc_info:
        service.accept(ctx, load_id)
    assert exc_info.value.actual == "accepted"


def test_foreign_load_is_not_found(load_lifecycle, make_load, other_ctx):
    load = make_load(load_status=None)
    with pytest.raises(NotFoundError, match="not found or you do not have access"):
        load_lifecycle.accept(other_ctx, load.id)


def test_transition_recomputes_trip_financials(load_lifecycle, trip_lifecycle, make_load, make_trip, store, ctx):
    trip = make_trip()
    load = make_load(load_status=LoadStatus.LOADING, starting_cuft=Decimal("0"), total_rate=Decimal("0"))
    trip_lifecycle.add_load(ctx, trip.id, load.id)

    load_lifecycle.finish_loading(ctx, load.id, Decimal("640"), PHOTO)
    assert store.get_trip(ctx.owner_id, trip.id).total_cuft == Decimal("640")
