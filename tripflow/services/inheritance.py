"""
Equipment & driver inheritance.

A trip owns its driver, truck and trailer. Loads carry denormalized copies
that are written only from here.
"""

from typing import Any, Optional

from tripflow.core.errors import CompatibilityError, NotFoundError
from tripflow.data.models import Driver, Load, RequestContext, Trip, Truck
from tripflow.services.base import BaseService

TRACTOR_TRAILER_REQUIRED = "Tractors require a trailer. Please select a trailer for this trip."

CLEARED_DRIVER = {
    "assigned_driver_id": None,
    "assigned_driver_name": None,
    "assigned_driver_phone": None,
}


def driver_fields(driver: Optional[Driver], share_with_companies: bool) -> dict[str, Any]:
    """
    Driver fields to write onto a load.

    The driver id is always kept for internal use; name and phone are only
    exposed when the trip shares its driver with partner companies.
    """
    if driver is None:
        return dict(CLEARED_DRIVER)
    return {
        "assigned_driver_id": driver.id,
        "assigned_driver_name": driver.full_name if share_with_companies else None,
        "assigned_driver_phone": driver.phone if share_with_companies else None,
    }


def equipment_fields(trip: Trip) -> dict[str, Any]:
    return {"assigned_truck_id": trip.truck_id, "assigned_trailer_id": trip.trailer_id}


def check_compatibility(truck: Optional[Truck], trailer_id: Optional[str]) -> Optional[str]:
    """
    Apply the tractor/trailer rule.

    Returns:
        The trailer id to store: unchanged for tractors, None for any other
        truck type

    Raises:
        CompatibilityError: Tractor without a trailer
    """
    if truck is None or truck.vehicle_type is None:
        return trailer_id
    if not truck.requires_trailer:
        return None
    if not trailer_id:
        raise CompatibilityError(TRACTOR_TRAILER_REQUIRED)
    return trailer_id


class EquipmentSync(BaseService):
    """Keeps attached loads consistent with their trip."""

    def __init__(self, store: Any, **kwargs: Any) -> None:
        super().__init__(service_name="inheritance", store=store, **kwargs)

    def enforce_compatibility(
        self, ctx: RequestContext, truck_id: Optional[str], trailer_id: Optional[str]
    ) -> Optional[str]:
        """Look up the truck and apply the tractor/trailer rule."""
        if not truck_id:
            return trailer_id
        truck = self.store.get_truck(ctx.owner_id, truck_id)
        effective = check_compatibility(truck, trailer_id)
        if trailer_id and effective is None:
            self.logger.info("trailer_dropped_for_non_tractor", truck_id=truck_id, trailer_id=trailer_id)
        return effective

    def resolve_default_equipment(
        self, ctx: RequestContext, driver: Driver
    ) -> tuple[Optional[str], Optional[str]]:
        """
        The driver's default truck and trailer, if the caller owns them.

        The default trailer is only taken when the default truck is a tractor.
        """
        if not driver.default_truck_id:
            return None, None
        try:
            truck = self.store.get_truck(ctx.owner_id, driver.default_truck_id)
        except NotFoundError:
            return None, None

        trailer_id = None
        if truck.requires_trailer and driver.default_trailer_id:
            try:
                trailer_id = self.store.get_trailer(ctx.owner_id, driver.default_trailer_id).id
            except NotFoundError:
                trailer_id = None
        return truck.id, trailer_id

    def _update_attached(self, ctx: RequestContext, trip: Trip, changes: dict[str, Any]) -> int:
        links = self.store.list_trip_loads(trip.id)
        for link in links:
            try:
                self.store.update_load(ctx.owner_id, link.load_id, changes)
            except NotFoundError:
                self.logger.warning("attached_load_missing", trip_id=trip.id, load_id=link.load_id)
        return len(links)

    def sync_equipment_to_loads(self, ctx: RequestContext, trip: Trip) -> int:
        """Overwrite truck and trailer on every attached load."""
        count = self._update_attached(ctx, trip, equipment_fields(trip))
        self.logger.info("equipment_synced", trip_id=trip.id, load_count=count)
        return count

    def sync_driver_to_loads(self, ctx: RequestContext, trip: Trip, driver: Driver) -> int:
        """Write the trip's driver onto every attached load."""
        changes = driver_fields(driver, trip.share_driver_with_companies)
        count = self._update_attached(ctx, trip, changes)
        self.logger.info(
            "driver_synced",
            trip_id=trip.id,
            driver_id=driver.id,
            shared=trip.share_driver_with_companies,
            load_count=count,
        )
        return count

    def clear_driver_from_loads(self, ctx: RequestContext, trip: Trip) -> int:
        count = self._update_attached(ctx, trip, dict(CLEARED_DRIVER))
        self.logger.info("driver_cleared", trip_id=trip.id, load_count=count)
        return count

    def apply_trip_to_load(
        self,
        ctx: RequestContext,
        trip: Trip,
        load_id: str,
        delivery_order: int,
        driver: Optional[Driver] = None,
    ) -> Load:
        """Copy the trip's current driver and equipment onto a newly attached load."""
        changes = {**equipment_fields(trip), "delivery_order": delivery_order}
        if driver is not None:
            changes.update(driver_fields(driver, trip.share_driver_with_companies))
        elif not trip.driver_id:
            changes.update(CLEARED_DRIVER)
        return self.store.update_load(ctx.owner_id, load_id, changes)

    def clear_detached_load(self, ctx: RequestContext, load_id: str) -> Load:
        """Clear driver, equipment and delivery order from a load leaving its trip."""
        changes = {
            **CLEARED_DRIVER,
            "assigned_truck_id": None,
            "assigned_trailer_id": None,
            "delivery_order": None,
        }
        return self.store.update_load(ctx.owner_id, load_id, changes)
