import pytest
from typing import Generator, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.models import Base, SearchClass, Subscriber, Subscription
from app.schemas.slot_schemas import Area
from app.services.registry.area_registry import AreaRegistry
from app.utils.errors import DeliveryError, RecipientUnreachableError
from app.utils.pacing import Pacer


# Test database setup
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture
def test_engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    session_maker = sessionmaker(
        bind=test_engine, class_=Session, expire_on_commit=False
    )
    session = session_maker()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def registry(db_session: Session) -> AreaRegistry:
    return AreaRegistry(db_session, failure_threshold=10)


@pytest.fixture
def pin_area() -> Area:
    return Area(search_class=SearchClass.PIN, search_value="560005")


@pytest.fixture
def district_area() -> Area:
    return Area(search_class=SearchClass.DISTRICT, search_value="294")


# Test data factories
@pytest.fixture
def make_subscription(db_session: Session):
    """Create a subscriber (or reuse one by LINE id) watching one area."""

    def _make(
        line_user_id: str,
        search_value: str = "560005",
        search_class: SearchClass = SearchClass.PIN,
        age_criteria: Optional[int] = 0,
        vaccine_criteria: str = "ANY",
        dose_criteria: int = 0,
        is_active: bool = True,
    ) -> Subscription:
        subscriber = (
            db_session.query(Subscriber)
            .filter(Subscriber.line_user_id == line_user_id)
            .one_or_none()
        )
        if subscriber is None:
            subscriber = Subscriber(line_user_id=line_user_id, is_active=is_active)
            db_session.add(subscriber)
            db_session.flush()

        subscription = Subscription(
            subscriber_id=subscriber.id,
            search_class=search_class,
            search_value=search_value,
            age_criteria=age_criteria,
            vaccine_criteria=vaccine_criteria,
            dose_criteria=dose_criteria,
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return _make


@pytest.fixture
def make_session():
    """Build one session entry of a calendar payload."""

    def _make(
        date: str = "20-05-2021",
        capacity: int = 5,
        min_age: int = 18,
        vaccine: str = "COVISHIELD",
        dose1: Optional[int] = None,
        dose2: Optional[int] = None,
    ) -> dict:
        session = {
            "session_id": f"{date}-{vaccine}-{min_age}",
            "date": date,
            "available_capacity": capacity,
            "min_age_limit": min_age,
            "vaccine": vaccine,
            "slots": ["09:00AM-11:00AM", "11:00AM-01:00PM"],
        }
        if dose1 is not None:
            session["available_capacity_dose1"] = dose1
        if dose2 is not None:
            session["available_capacity_dose2"] = dose2
        return session

    return _make


@pytest.fixture
def make_payload():
    """Wrap sessions into a calendar payload, one center per session list."""

    def _make(*centers_sessions: List[dict], pincode: int = 560005) -> dict:
        return {
            "centers": [
                {
                    "center_id": 1000 + index,
                    "name": f"Center {index}",
                    "address": "Main Road",
                    "pincode": pincode,
                    "fee_type": "Free",
                    "sessions": sessions,
                }
                for index, sessions in enumerate(centers_sessions)
            ]
        }

    return _make


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_pacer(fake_clock: FakeClock):
    def _make(interval_ms: int) -> Pacer:
        return Pacer.from_milliseconds(
            interval_ms, clock=fake_clock, sleep=fake_clock.sleep
        )

    return _make


class FakeTransport:
    """Records sends; users listed in `unreachable` or `failing` raise."""

    def __init__(
        self,
        clock: Optional[FakeClock] = None,
        unreachable: tuple = (),
        failing: tuple = (),
    ):
        self.clock = clock
        self.unreachable = set(unreachable)
        self.failing = set(failing)
        self.sent: List[tuple] = []

    async def send(self, line_user_id: str, text: str) -> None:
        if line_user_id in self.unreachable:
            raise RecipientUnreachableError(f"{line_user_id} blocked the bot")
        if line_user_id in self.failing:
            raise DeliveryError(f"push to {line_user_id} failed")
        started = self.clock() if self.clock else None
        self.sent.append((line_user_id, text, started))

    def texts_for(self, line_user_id: str) -> List[str]:
        return [text for user, text, _ in self.sent if user == line_user_id]


@pytest.fixture
def fake_transport(fake_clock: FakeClock) -> FakeTransport:
    return FakeTransport(clock=fake_clock)


@pytest.fixture
def make_transport(fake_clock: FakeClock):
    def _make(unreachable: tuple = (), failing: tuple = ()) -> FakeTransport:
        return FakeTransport(clock=fake_clock, unreachable=unreachable, failing=failing)

    return _make
