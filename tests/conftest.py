import os

# Must be set before slotbook.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("HORIZON_EXTENDER_ENABLED", "false")

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from slotbook.database import get_db, make_engine
from slotbook.deps import get_redis
from slotbook.main import app
from slotbook.models import Base, RecurringAvailabilities
from slotbook.services.slots.config import BookingConfig

# A Monday far enough ahead that nothing is "in the past"
TODAY = date(2029, 1, 1)

VENDOR_ID = 7
OTHER_VENDOR_ID = 8
CUSTOMER_ID = 501


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'slotbook.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def config():
    return BookingConfig(horizon_days=21)


@pytest.fixture
def client(session_factory):
    """
    API client on the per-test database with Redis disabled.

    Requests use their own sessions; tests must not keep a session with an
    open transaction while calling the client (SQLite write lock).
    """
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def next_weekday(weekday: int, min_days: int = 7) -> date:
    """First date with the given weekday (0 = Monday) at least min_days from today."""
    start = date.today() + timedelta(days=min_days)
    return start + timedelta(days=(weekday - start.weekday()) % 7)


def make_rule(**overrides) -> RecurringAvailabilities:
    fields = dict(
        vendor_id=VENDOR_ID,
        day_of_week="mon",
        start_time="09:00",
        end_time="17:00",
        break_times=[{"start": "12:00", "end": "13:00"}],
        default_duration=60,
        buffer_time=15,
        max_bookings=1,
        effective_from=None,
        effective_until=None,
        is_active=True,
    )
    fields.update(overrides)
    return RecurringAvailabilities(**fields)
