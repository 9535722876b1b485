from datetime import date, datetime, timezone
from decimal import Decimal

import factory
import pytest
from factory.faker import Faker

from tripflow.core.config import ConfigManager
from tripflow.data.models import (
    Driver,
    ExpenseCategory,
    Load,
    PayMode,
    RequestContext,
    Trailer,
    Trip,
    TripExpense,
    TripStatus,
    Truck,
    VehicleType,
)
from tripflow.data.store import InMemoryStore
from tripflow.services import (
    ComplianceGate,
    EquipmentSync,
    FinancialEngine,
    LoadLifecycle,
    TripLifecycle,
)
from tripflow.tools import AuditSink, MessagingChannel, NotificationDispatcher

OWNER_ID = "owner-1"
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


class DriverFactory(factory.Factory):
    class Meta:
        model = Driver

    id = factory.Sequence(lambda n: f"driver-{n}")
    owner_id = OWNER_ID
    first_name = Faker("first_name")
    last_name = Faker("last_name")
    phone = Faker("bothify", text="555-####")
    pay_mode = PayMode.PER_MILE
    rate_per_mile = Decimal("0.55")


class TruckFactory(factory.Factory):
    class Meta:
        model = Truck

    id = factory.Sequence(lambda n: f"truck-{n}")
    owner_id = OWNER_ID
    unit_number = Faker("bothify", text="TRK-####")
    plate_number = Faker("bothify", text="P-#####")
    vehicle_type = VehicleType.BOX_TRUCK


class TrailerFactory(factory.Factory):
    class Meta:
        model = Trailer

    id = factory.Sequence(lambda n: f"trailer-{n}")
    owner_id = OWNER_ID
    unit_number = Faker("bothify", text="TRL-####")


class LoadFactory(factory.Factory):
    class Meta:
        model = Load

    id = factory.Sequence(lambda n: f"load-{n}")
    owner_id = OWNER_ID
    load_number = Faker("bothify", text="LD-####")
    load_status = None
    destination_city = Faker("city")
    destination_state = "IL"
    estimated_cuft = Decimal("500")


class TripFactory(factory.Factory):
    class Meta:
        model = Trip

    id = factory.Sequence(lambda n: f"trip-{n}")
    owner_id = OWNER_ID
    trip_number = factory.Sequence(lambda n: f"T-{n}")
    status = TripStatus.PLANNED


class ExpenseFactory(factory.Factory):
    class Meta:
        model = TripExpense

    id = factory.Sequence(lambda n: f"expense-{n}")
    trip_id = "trip-0"
    owner_id = OWNER_ID
    category = ExpenseCategory.FUEL
    amount = Decimal("100.00")
    receipt_photo_url = Faker("image_url")
    incurred_at = TODAY


class RecordingAuditSink(AuditSink):
    def __init__(self):
        self.events = []

    def record(self, event):
        self.events.append(event)


class RecordingMessagingChannel(MessagingChannel):
    def __init__(self):
        self.messages = []

    def post(self, message):
        self.messages.append(message)


class RecordingNotificationDispatcher(NotificationDispatcher):
    def __init__(self):
        self.sent = []

    def notify(self, notification):
        self.sent.append(notification)


class FailingAuditSink(AuditSink):
    def record(self, event):
        raise RuntimeError("audit backend unavailable")


class FailingNotificationDispatcher(NotificationDispatcher):
    def notify(self, notification):
        raise RuntimeError("push gateway timeout")


def clock():
    return NOW


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.delenv("TRIPFLOW_COMPLIANCE_BLOCK_EXPIRED", raising=False)
    return ConfigManager(config_dir=tmp_path)


@pytest.fixture
def ctx():
    return RequestContext(owner_id=OWNER_ID, user_id="user-1", actor_name="Test Driver", source="mobile")


@pytest.fixture
def other_ctx():
    return RequestContext(owner_id="owner-2", user_id="user-2")


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def audit():
    return RecordingAuditSink()


@pytest.fixture
def messaging():
    return RecordingMessagingChannel()


@pytest.fixture
def notifications():
    return RecordingNotificationDispatcher()


@pytest.fixture
def financials(store, config):
    return FinancialEngine(store, config_manager=config, clock=clock)


@pytest.fixture
def inheritance(store, config):
    return EquipmentSync(store, config_manager=config, clock=clock)


@pytest.fixture
def compliance(config):
    return ComplianceGate(config_manager=config, today=lambda: TODAY)


@pytest.fixture
def load_lifecycle(store, config, financials, audit, messaging):
    return LoadLifecycle(
        store,
        financials=financials,
        config_manager=config,
        audit=audit,
        messaging=messaging,
        clock=clock,
    )


@pytest.fixture
def trip_lifecycle(store, config, financials, inheritance, compliance, audit, messaging, notifications):
    return TripLifecycle(
        store,
        financials=financials,
        inheritance=inheritance,
        compliance=compliance,
        config_manager=config,
        audit=audit,
        messaging=messaging,
        notifications=notifications,
        clock=clock,
    )


@pytest.fixture
def make_driver(store):
    def _make(**kwargs):
        return store.add_driver(DriverFactory(**kwargs))

    return _make


@pytest.fixture
def make_truck(store):
    def _make(**kwargs):
        return store.add_truck(TruckFactory(**kwargs))

    return _make


@pytest.fixture
def make_trailer(store):
    def _make(**kwargs):
        return store.add_trailer(TrailerFactory(**kwargs))

    return _make


@pytest.fixture
def make_load(store):
    def _make(**kwargs):
        return store.insert_load(LoadFactory(**kwargs))

    return _make


@pytest.fixture
def make_trip(store):
    def _make(**kwargs):
        return store.insert_trip(TripFactory(**kwargs))

    return _make


@pytest.fixture
def make_expense(store):
    def _make(**kwargs):
        return store.insert_expense(ExpenseFactory(**kwargs))

    return _make


@pytest.fixture
def ready_trip(make_trip):
    """An active trip with odometer evidence for a 450-mile run."""

    def _make(**kwargs):
        defaults = dict(
            status=TripStatus.ACTIVE,
            odometer_start=Decimal("50000"),
            odometer_end=Decimal("50450"),
            odometer_start_photo_url="https://files.example.com/odo-start.jpg",
            odometer_end_photo_url="https://files.example.com/odo-end.jpg",
        )
        defaults.update(kwargs)
        return make_trip(**defaults)

    return _make
