import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from parking_manager import config, database, email_sender  # noqa: E402
from parking_manager.models import ROLE_ADMIN, ROLE_USER, ParkingSlot, User, Vehicle  # noqa: E402
from parking_manager.security import hash_password, issue_token  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_backend(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("EMAIL_BACKEND", "memory")
    monkeypatch.delenv("SMTP_HOST", raising=False)
    monkeypatch.delenv("RATE_LIMIT_ENABLED", raising=False)
    monkeypatch.setenv("APP_ENV", "test")

    config.get_settings.cache_clear()
    email_sender.get_email_sender.cache_clear()
    email_sender.IN_MEMORY_EMAIL_SENDER.outbox.clear()
    email_sender.IN_MEMORY_EMAIL_SENDER.fail_deliveries = False

    database.configure_engine("sqlite://")
    database.init_db()
    yield
    database.Base.metadata.drop_all(bind=database.get_engine())
    config.get_settings.cache_clear()
    email_sender.get_email_sender.cache_clear()
    email_sender.IN_MEMORY_EMAIL_SENDER.outbox.clear()
    email_sender.IN_MEMORY_EMAIL_SENDER.fail_deliveries = False


@pytest.fixture
def outbox():
    return email_sender.IN_MEMORY_EMAIL_SENDER.outbox


@pytest.fixture
def mailer():
    return email_sender.IN_MEMORY_EMAIL_SENDER


@pytest.fixture
def db():
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from parking_manager import api

    return TestClient(api.app)


@pytest.fixture
def make_user(db):
    def _make(email: str, *, role: str = ROLE_USER, verified: bool = True, password: str = "secret123") -> User:
        user = User(
            name=email.split("@")[0].title(),
            email=email,
            password=hash_password(password),
            role=role,
            is_verified=verified,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(user.id, user.email, user.role)}"}

    return _headers


@pytest.fixture
def admin(make_user):
    return make_user("admin@park.com", role=ROLE_ADMIN)


@pytest.fixture
def make_vehicle(db):
    def _make(owner: User, plate: str, *, vehicle_type: str = "car", size: str = "medium") -> Vehicle:
        vehicle = Vehicle(user_id=owner.id, plate_number=plate, vehicle_type=vehicle_type, size=size)
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
        return vehicle

    return _make


@pytest.fixture
def make_slot(db):
    def _make(
        number: str,
        *,
        vehicle_type: str = "car",
        size: str = "medium",
        location: str | None = "Level 1",
        status: str = "available",
    ) -> ParkingSlot:
        slot = ParkingSlot(
            slot_number=number,
            vehicle_type=vehicle_type,
            size=size,
            location=location,
            status=status,
        )
        db.add(slot)
        db.commit()
        db.refresh(slot)
        return slot

    return _make
