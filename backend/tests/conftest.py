import re
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from onboarding.database import create_db_engine, create_session_factory, init_models
from onboarding.exceptions import SmsDeliveryError
from onboarding.models.otp import OtpRecord
from onboarding.services.otp_manager import OtpManager, OtpPolicy
from onboarding.services.otp_store import OtpStore
from onboarding.services.sms_gateway import DeliveryReceipt

START = datetime(2026, 1, 15, 9, 0, 0)


class FrozenClock:
    """Manually advanced clock"""

    def __init__(self, start: datetime = START):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now


class FakeGateway:
    """Records messages instead of sending them"""

    def __init__(self):
        self.sent = []
        self.error = None
        self.closed = False

    async def send(self, to_number: str, body: str) -> DeliveryReceipt:
        if self.error is not None:
            raise self.error
        self.sent.append((to_number, body))
        return DeliveryReceipt(to_number=to_number, status="sent", message_id=f"msg-{len(self.sent)}")

    async def check_configuration(self) -> dict:
        return {"success": True, "message": "fake gateway"}

    def close(self) -> None:
        self.closed = True

    def fail_with(self, message: str = "gateway down", timed_out: bool = False):
        self.error = SmsDeliveryError(message, timed_out=timed_out)

    @property
    def last_code(self) -> str:
        return re.search(r"code is: (\d+)", self.sent[-1][1]).group(1)


def fetch_records(session_factory, phone: str = None):
    db = session_factory()
    try:
        query = select(OtpRecord).order_by(OtpRecord.id)
        if phone:
            query = query.where(OtpRecord.phone == phone)
        return list(db.execute(query).scalars())
    finally:
        db.close()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_models(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return OtpStore(session_factory)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def manager(store, gateway, clock):
    return OtpManager(store=store, gateway=gateway, clock=clock, policy=OtpPolicy())
