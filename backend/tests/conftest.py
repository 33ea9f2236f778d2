"""
Centralized Test Configuration.

Each test gets a fresh file-backed SQLite database. Connections are not
pooled, so concurrent requests and background side effects each use their
own connection. The mailer and device manager are replaced with recording
fakes on app.state.
"""

import pytest
from datetime import datetime, timezone
from typing import List, Optional
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, select
from sqlalchemy.pool import NullPool, Pool

from backend.app.main import app
from backend.app.core.config import settings
from backend.app.core.jwt import create_access_token
from backend.app.db.session import Database
from backend.app.models.device import Device
from backend.app.models.location import Location
from backend.app.models.shipment import Shipment
from backend.app.models.shipment_enums import ShipmentStatus
from backend.app.services.api_keys import ApiKeyService
from backend.app.services.device_management import DeviceManagementError
from backend.app.services.notification_service import Mailer
from backend.app.services.side_effects import SideEffectDispatcher


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class FakeMailer(Mailer):
    """Real Mailer bookkeeping (EmailLog rows) with delivery captured in memory."""

    def __init__(self, session_factory, fail: bool = False):
        super().__init__("re_test_key", "receptionist@example.com", session_factory)
        self.fail = fail
        self.sent = []

    async def _deliver(self, to, subject, html_content):
        if self.fail:
            raise RuntimeError("provider unavailable")
        self.sent.append({"to": list(to), "subject": subject, "html": html_content})


class FakeDeviceManager:
    def __init__(self, fail_serials: Optional[List[str]] = None):
        self.fail_serials = set(fail_serials or [])
        self.unlocked = []
        self.locked = []

    async def unlock_device(self, serial_number: str) -> bool:
        if serial_number in self.fail_serials:
            raise DeviceManagementError(f"DisableLostMode failed for {serial_number}: 502")
        self.unlocked.append(serial_number)
        return True

    async def lock_device(self, serial_number: str) -> bool:
        if serial_number in self.fail_serials:
            raise DeviceManagementError(f"EnableLostMode failed for {serial_number}: 502")
        self.locked.append(serial_number)
        return True

    async def aclose(self) -> None:
        pass


@pytest.fixture
async def database(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'receptionist.db'}", poolclass=NullPool)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def session_factory(database):
    return database.session_factory


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher(session_factory):
    return SideEffectDispatcher(session_factory)


@pytest.fixture
def mailer(session_factory):
    return FakeMailer(session_factory)


@pytest.fixture
def device_manager():
    return FakeDeviceManager()


@pytest.fixture(autouse=True)
def notify_settings(monkeypatch):
    monkeypatch.setattr(settings, "admin_notify_emails", "ops@example.com")
    monkeypatch.setattr(settings, "app_base_url", "https://receive.example.com")
    monkeypatch.setattr(settings, "persist_extra_devices", True)
    monkeypatch.setattr(settings, "short_id_max_attempts", 5)


@pytest.fixture
async def client(database, dispatcher, mailer, device_manager):
    """Async client against the app with test collaborators on app.state."""
    app.state.database = database
    app.state.dispatcher = dispatcher
    app.state.mailer = mailer
    app.state.device_manager = device_manager
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await dispatcher.drain()


@pytest.fixture
def admin_headers():
    token = create_access_token(data={"sub": "admin@example.com"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def location(db_session):
    location = Location(name="Warehouse A", recipient_emails=["dock@warehouse-a.example.com"])
    db_session.add(location)
    await db_session.commit()
    await db_session.refresh(location)
    return location


@pytest.fixture
async def api_key_secret(db_session):
    _, secret = await ApiKeyService.create(db_session, "Procurement integration")
    return secret


@pytest.fixture
def api_headers(api_key_secret):
    return {settings.api_key_header: api_key_secret}


@pytest.fixture
def make_shipment(session_factory, location):
    """Insert a shipment directly in a given status."""
    async def _make(
        short_id: str = "QWERTY",
        status: ShipmentStatus = ShipmentStatus.PENDING,
        serials=("SN-1", "SN-2"),
        checked_in=(),
    ) -> Shipment:
        async with session_factory() as session:
            shipment = Shipment(
                short_id=short_id,
                status=status,
                sender_name="Dana Sender",
                sender_email="dana@example.com",
                notify_emails=[],
                location_id=location.id,
                devices=[
                    Device(
                        serial_number=serial,
                        model="MacBook Pro",
                        is_checked_in=serial in checked_in,
                        checked_in_at=datetime.now(timezone.utc) if serial in checked_in else None,
                    )
                    for serial in serials
                ],
            )
            session.add(shipment)
            await session.commit()
            return shipment
    return _make


@pytest.fixture
def fetch_devices(session_factory):
    async def _fetch(shipment_id: str) -> List[Device]:
        async with session_factory() as session:
            result = await session.execute(
                select(Device).where(Device.shipment_id == shipment_id).order_by(Device.serial_number)
            )
            return list(result.scalars().all())
    return _fetch


@pytest.fixture
def fetch_status(session_factory):
    async def _fetch(shipment_id: str) -> ShipmentStatus:
        async with session_factory() as session:
            return await session.scalar(select(Shipment.status).where(Shipment.id == shipment_id))
    return _fetch
