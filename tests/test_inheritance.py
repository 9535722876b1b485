import pytest

from conftest import DriverFactory, TripFactory, TruckFactory
from tripflow.core.errors import CompatibilityError
from tripflow.data.models import TripLoad, VehicleType
from tripflow.services.inheritance import (
    TRACTOR_TRAILER_REQUIRED,
    check_compatibility,
    driver_fields,
    equipment_fields,
)


def test_tractor_keeps_trailer():
    tractor = TruckFactory(vehicle_type=VehicleType.TRACTOR)
    assert check_compatibility(tractor, "trailer-1") == "trailer-1"


def test_tractor_without_trailer():
    tractor = TruckFactory(vehicle_type=VehicleType.TRACTOR)
    with pytest.raises(CompatibilityError, match=TRACTOR_TRAILER_REQUIRED):
        check_compatibility(tractor, None)


@pytest.mark.parametrize(
    "vehicle_type",
    [VehicleType.BOX_TRUCK, VehicleType.STRAIGHT_TRUCK, VehicleType.CARGO_VAN, VehicleType.SPRINTER],
)
def test_non_tractor_never_has_trailer(vehicle_type):
    assert check_compatibility(TruckFactory(vehicle_type=vehicle_type), "trailer-1") is None


def test_unknown_vehicle_type_passes_through():
    assert check_compatibility(TruckFactory(vehicle_type=None), "trailer-1") == "trailer-1"
    assert check_compatibility(None, None) is None


def test_driver_fields_respect_sharing():
    driver = DriverFactory(first_name="Ana", last_name="Reyes", phone="555-0199")
    assert driver_fields(driver, True) == {
        "assigned_driver_id": driver.id,
        "assigned_driver_name": "Ana Reyes",
        "assigned_driver_phone": "555-0199",
    }
    assert driver_fields(driver, False) == {
        "assigned_driver_id": driver.id,
        "assigned_driver_name": None,
        "assigned_driver_phone": None,
    }
    assert driver_fields(None, True)["assigned_driver_id"] is None


def test_equipment_fields():
    trip = TripFactory(truck_id="truck-9", trailer_id=None)
    assert equipment_fields(trip) == {"assigned_truck_id": "truck-9", "assigned_trailer_id": None}


def test_resolve_default_equipment_for_tractor(inheritance, make_driver, make_truck, make_trailer, ctx):
    tractor = make_truck(vehicle_type=VehicleType.TRACTOR)
    trailer = make_trailer()
    driver = make_driver(default_truck_id=tractor.id, default_trailer_id=trailer.id)
    assert inheritance.resolve_default_equipment(ctx, driver) == (tractor.id, trailer.id)


def test_resolve_default_equipment_ignores_foreign_truck(inheritance, store, make_driver, ctx):
    foreign = store.add_truck(TruckFactory(owner_id="owner-2"))
    driver = make_driver(default_truck_id=foreign.id)
    assert inheritance.resolve_default_equipment(ctx, driver) == (None, None)


def test_resolve_default_equipment_without_defaults(inheritance, make_driver, ctx):
    assert inheritance.resolve_default_equipment(ctx, make_driver()) == (None, None)


def test_enforce_compatibility_looks_up_truck(inheritance, make_truck, ctx):
    box = make_truck(vehicle_type=VehicleType.BOX_TRUCK)
    assert inheritance.enforce_compatibility(ctx, box.id, "trailer-1") is None
    assert inheritance.enforce_compatibility(ctx, None, "trailer-1") == "trailer-1"


def test_sync_skips_missing_loads(inheritance, make_trip, make_load, store, ctx):
    trip = make_trip(truck_id="truck-x")
    load = make_load()
    store.insert_trip_load(TripLoad(trip_id=trip.id, load_id=load.id, owner_id=ctx.owner_id))
    store.insert_trip_load(TripLoad(trip_id=trip.id, load_id="gone", owner_id=ctx.owner_id, sequence_index=1))

    assert inheritance.sync_equipment_to_loads(ctx, trip) == 2
    assert store.get_load(ctx.owner_id, load.id).assigned_truck_id == "truck-x"


def test_apply_trip_to_load_without_driver_clears_driver(inheritance, make_trip, make_load, store, ctx):
    trip = make_trip()
    load = make_load(assigned_driver_id="stale", assigned_driver_name="Old Driver")
    updated = inheritance.apply_trip_to_load(ctx, trip, load.id, 3)
    assert updated.assigned_driver_id is None
    assert updated.assigned_driver_name is None
    assert updated.delivery_order == 3
