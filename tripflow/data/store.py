"""
Storage contract for loads, trips and fleet records.

Reads are always scoped to an owner; a record that exists under another
owner is indistinguishable from one that does not exist. Status writes take
an ``expected_status`` and fail with StateMismatchError when the stored
status moved underneath the caller.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, TypeVar

from pydantic import BaseModel

from tripflow.core.errors import NotFoundError, StateMismatchError
from tripflow.data.models import (
    Driver,
    Load,
    Trailer,
    Trip,
    TripExpense,
    TripLoad,
    Truck,
)


class _AnyStatus:
    def __repr__(self) -> str:
        return "ANY_STATUS"


ANY_STATUS: Any = _AnyStatus()

ModelT = TypeVar("ModelT", bound=BaseModel)


class Store(ABC):
    """Persistence contract used by every lifecycle service."""

    # Loads
    @abstractmethod
    def get_load(self, owner_id: str, load_id: str) -> Load: ...

    @abstractmethod
    def list_loads(self, owner_id: str, load_ids: list[str]) -> list[Load]: ...

    @abstractmethod
    def insert_load(self, load: Load) -> Load: ...

    @abstractmethod
    def update_load(
        self,
        owner_id: str,
        load_id: str,
        changes: dict[str, Any],
        expected_status: Any = ANY_STATUS,
    ) -> Load: ...

    # Trips
    @abstractmethod
    def get_trip(self, owner_id: str, trip_id: str) -> Trip: ...

    @abstractmethod
    def list_trips(self, owner_id: str) -> list[Trip]: ...

    @abstractmethod
    def insert_trip(self, trip: Trip) -> Trip: ...

    @abstractmethod
    def update_trip(
        self,
        owner_id: str,
        trip_id: str,
        changes: dict[str, Any],
        expected_status: Any = ANY_STATUS,
    ) -> Trip: ...

    # Trip loads
    @abstractmethod
    def list_trip_loads(self, trip_id: str) -> list[TripLoad]: ...

    @abstractmethod
    def find_trip_load(self, load_id: str) -> Optional[TripLoad]: ...

    @abstractmethod
    def insert_trip_load(self, trip_load: TripLoad) -> TripLoad: ...

    @abstractmethod
    def update_trip_load(self, trip_id: str, load_id: str, sequence_index: int) -> TripLoad: ...

    @abstractmethod
    def delete_trip_load(self, trip_id: str, load_id: str) -> None: ...

    # Expenses
    @abstractmethod
    def list_expenses(self, trip_id: str) -> list[TripExpense]: ...

    @abstractmethod
    def get_expense(self, owner_id: str, expense_id: str) -> TripExpense: ...

    @abstractmethod
    def insert_expense(self, expense: TripExpense) -> TripExpense: ...

    @abstractmethod
    def update_expense(self, owner_id: str, expense_id: str, changes: dict[str, Any]) -> TripExpense: ...

    @abstractmethod
    def delete_expense(self, owner_id: str, expense_id: str) -> None: ...

    # Fleet
    @abstractmethod
    def get_driver(self, owner_id: str, driver_id: str) -> Driver: ...

    @abstractmethod
    def get_truck(self, owner_id: str, truck_id: str) -> Truck: ...

    @abstractmethod
    def get_trailer(self, owner_id: str, trailer_id: str) -> Trailer: ...

    def get_trip_loads_with_loads(self, owner_id: str, trip_id: str) -> list[tuple[TripLoad, Load]]:
        """Attached loads in sequence order."""
        links = self.list_trip_loads(trip_id)
        loads = {load.id: load for load in self.list_loads(owner_id, [tl.load_id for tl in links])}
        return [(tl, loads[tl.load_id]) for tl in links if tl.load_id in loads]


def _apply(record: ModelT, changes: dict[str, Any]) -> ModelT:
    data = record.model_dump()
    data.update(changes)
    return type(record).model_validate(data)


class InMemoryStore(Store):
    """
    Dictionary-backed store.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self.loads: dict[str, Load] = {}
        self.trips: dict[str, Trip] = {}
        self.trip_loads: dict[tuple[str, str], TripLoad] = {}
        self.expenses: dict[str, TripExpense] = {}
        self.drivers: dict[str, Driver] = {}
        self.trucks: dict[str, Truck] = {}
        self.trailers: dict[str, Trailer] = {}

    @staticmethod
    def _owned(table: dict[str, ModelT], owner_id: str, key: str, entity: str) -> ModelT:
        record = table.get(key)
        if record is None or getattr(record, "owner_id") != owner_id:
            raise NotFoundError(entity)
        return record

    # Loads

    def get_load(self, owner_id: str, load_id: str) -> Load:
        return self._owned(self.loads, owner_id, load_id, "Load").model_copy(deep=True)

    def list_loads(self, owner_id: str, load_ids: list[str]) -> list[Load]:
        return [
            self.loads[load_id].model_copy(deep=True)
            for load_id in load_ids
            if load_id in self.loads and self.loads[load_id].owner_id == owner_id
        ]

    def insert_load(self, load: Load) -> Load:
        self.loads[load.id] = load.model_copy(deep=True)
        return load.model_copy(deep=True)

    def update_load(
        self,
        owner_id: str,
        load_id: str,
        changes: dict[str, Any],
        expected_status: Any = ANY_STATUS,
    ) -> Load:
        current = self._owned(self.loads, owner_id, load_id, "Load")
        if expected_status is not ANY_STATUS and current.load_status != expected_status:
            raise StateMismatchError(
                "Load",
                current.load_status.value if current.load_status else None,
                [expected_status.value if expected_status else None],
            )
        updated = _apply(current, changes)
        self.loads[load_id] = updated
        return updated.model_copy(deep=True)

    # Trips

    def get_trip(self, owner_id: str, trip_id: str) -> Trip:
        return self._owned(self.trips, owner_id, trip_id, "Trip").model_copy(deep=True)

    def list_trips(self, owner_id: str) -> list[Trip]:
        return [t.model_copy(deep=True) for t in self.trips.values() if t.owner_id == owner_id]

    def insert_trip(self, trip: Trip) -> Trip:
        self.trips[trip.id] = trip.model_copy(deep=True)
        return trip.model_copy(deep=True)

    def update_trip(
        self,
        owner_id: str,
        trip_id: str,
        changes: dict[str, Any],
        expected_status: Any = ANY_STATUS,
    ) -> Trip:
        current = self._owned(self.trips, owner_id, trip_id, "Trip")
        if expected_status is not ANY_STATUS and current.status != expected_status:
            raise StateMismatchError("Trip", current.status.value, [expected_status.value])
        updated = _apply(current, changes)
        self.trips[trip_id] = updated
        return updated.model_copy(deep=True)

    # Trip loads

    def list_trip_loads(self, trip_id: str) -> list[TripLoad]:
        links = [tl for (tid, _), tl in self.trip_loads.items() if tid == trip_id]
        return [tl.model_copy() for tl in sorted(links, key=lambda tl: tl.sequence_index)]

    def find_trip_load(self, load_id: str) -> Optional[TripLoad]:
        for (_, lid), tl in self.trip_loads.items():
            if lid == load_id:
                return tl.model_copy()
        return None

    def insert_trip_load(self, trip_load: TripLoad) -> TripLoad:
        existing = self.find_trip_load(trip_load.load_id)
        if existing is not None:
            # A load belongs to at most one trip
            del self.trip_loads[(existing.trip_id, existing.load_id)]
        self.trip_loads[(trip_load.trip_id, trip_load.load_id)] = trip_load.model_copy()
        return trip_load.model_copy()

    def update_trip_load(self, trip_id: str, load_id: str, sequence_index: int) -> TripLoad:
        key = (trip_id, load_id)
        if key not in self.trip_loads:
            raise NotFoundError("Trip load")
        updated = self.trip_loads[key].model_copy(update={"sequence_index": sequence_index})
        self.trip_loads[key] = updated
        return updated.model_copy()

    def delete_trip_load(self, trip_id: str, load_id: str) -> None:
        self.trip_loads.pop((trip_id, load_id), None)

    # Expenses

    def list_expenses(self, trip_id: str) -> list[TripExpense]:
        return [e.model_copy() for e in self.expenses.values() if e.trip_id == trip_id]

    def get_expense(self, owner_id: str, expense_id: str) -> TripExpense:
        return self._owned(self.expenses, owner_id, expense_id, "Expense").model_copy()

    def insert_expense(self, expense: TripExpense) -> TripExpense:
        self.expenses[expense.id] = expense.model_copy()
        return expense.model_copy()

    def update_expense(self, owner_id: str, expense_id: str, changes: dict[str, Any]) -> TripExpense:
        current = self._owned(self.expenses, owner_id, expense_id, "Expense")
        updated = _apply(current, changes)
        self.expenses[expense_id] = updated
        return updated.model_copy()

    def delete_expense(self, owner_id: str, expense_id: str) -> None:
        self._owned(self.expenses, owner_id, expense_id, "Expense")
        del self.expenses[expense_id]

    # Fleet

    def get_driver(self, owner_id: str, driver_id: str) -> Driver:
        return self._owned(self.drivers, owner_id, driver_id, "Driver").model_copy()

    def get_truck(self, owner_id: str, truck_id: str) -> Truck:
        return self._owned(self.trucks, owner_id, truck_id, "Truck").model_copy()

    def get_trailer(self, owner_id: str, trailer_id: str) -> Trailer:
        return self._owned(self.trailers, owner_id, trailer_id, "Trailer").model_copy()

    def add_driver(self, driver: Driver) -> Driver:
        self.drivers[driver.id] = driver.model_copy()
        return driver

    def add_truck(self, truck: Truck) -> Truck:
        self.trucks[truck.id] = truck.model_copy()
        return truck

    def add_trailer(self, trailer: Trailer) -> Trailer:
        self.trailers[trailer.id] = trailer.model_copy()
        return trailer
