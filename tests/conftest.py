from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from clinic_queue.config.config import Settings
from clinic_queue.database.database import InMemoryPatientStore
from clinic_queue.main import create_app
from clinic_queue.services.notification_bus import QueueNotificationBus
from clinic_queue.services.queue_service import QueueService

ADMIN_TOKEN = "front-desk-token"


class FixedClock:
    """Controllable replacement for datetime.now."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        admin_token=ADMIN_TOKEN,
        queue_number_retry_delay_seconds=0,
        sse_heartbeat_seconds=0.05,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 11, 9, 0, 0))


@pytest.fixture
def store() -> InMemoryPatientStore:
    return InMemoryPatientStore()


@pytest.fixture
def bus() -> QueueNotificationBus:
    return QueueNotificationBus(max_subscribers=10, buffer_size=4)


@pytest.fixture
def service(store, bus, settings, clock) -> QueueService:
    return QueueService(store=store, bus=bus, settings=settings, clock=clock)


@pytest.fixture
def client(settings, service):
    app = create_app(settings=settings, service=service)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Token": ADMIN_TOKEN}
