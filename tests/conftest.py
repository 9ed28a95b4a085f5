"""Pytest configuration: in-memory database, fake push client and API client."""

import os
import tempfile
from datetime import date

# Configure the environment BEFORE any imports from rukun so that the engine,
# settings and upload directory pick up test values
_upload_dir = tempfile.mkdtemp(prefix="rukun-uploads-")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["PUSH_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = _upload_dir
os.environ["LOG_FILE"] = os.path.join(_upload_dir, "test.log")
os.environ["SECRET_KEY"] = "test-secret"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from rukun.config import reset_settings  # noqa: E402
from rukun.models import Base  # noqa: E402
from rukun.models.user import Role, User, UserStatus  # noqa: E402
from rukun.services.auth_service import create_access_token, hash_password  # noqa: E402
from rukun.services.notification_service import NotificationService  # noqa: E402
from rukun.services.storage import LocalFileStorage  # noqa: E402

TODAY = date(2025, 8, 15)
PUSH_TOKEN = "ExponentPushToken[{}]"


class RecordingPushClient:
    """Stands in for ExpoPushClient and keeps every message it is given."""

    def __init__(self, fail: bool = False):
        self.messages: list[dict] = []
        self.fail = fail

    def send(self, messages: list[dict]) -> list[dict]:
        if self.fail:
            raise ConnectionError("push service unreachable")
        self.messages.extend(messages)
        return [{"status": "ok", "id": f"ticket-{len(self.messages)}"} for _ in messages]

    def of_type(self, notification_type: str) -> list[dict]:
        return [m for m in self.messages if m["data"].get("type") == notification_type]


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop cached settings so monkeypatched environment variables apply."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def db_session():
    """Create test database session on a private in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    yield session
    session.close()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def push_client():
    return RecordingPushClient()


@pytest.fixture
def failing_push_client():
    return RecordingPushClient(fail=True)


@pytest.fixture
def notifier(db_session, push_client):
    return NotificationService(db_session, client=push_client)


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(str(tmp_path / "uploads"))


@pytest.fixture
def make_user(db_session):
    """Factory inserting a user directly (no dues back-fill)."""
    counter = {"n": 0}

    def _make(
        username: str | None = None,
        role: Role = Role.WARGA,
        status: UserStatus = UserStatus.ACTIVE,
        password: str = "password123",
        push_token: str | None = "default",
        address: str | None = None,
        is_deleted: bool = False,
    ) -> User:
        counter["n"] += 1
        username = username or f"warga{counter['n']:02d}"
        if push_token == "default":
            push_token = PUSH_TOKEN.format(username)
        user = User(
            email=f"{username}@example.com",
            username=username,
            password_hash=hash_password(password),
            role=role,
            status=status,
            push_token=push_token,
            address=address,
            is_deleted=is_deleted,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin_rt", role=Role.ADMIN, push_token=None)


@pytest.fixture
def bendahara(make_user):
    return make_user("bendahara", role=Role.BENDAHARA, push_token=None)


@pytest.fixture
def warga(make_user):
    return make_user("budi_santoso")


def _auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}


@pytest.fixture
def auth_headers():
    """Bearer header builder for a user."""
    return _auth_headers


@pytest.fixture
def client(db_session, push_client, storage):
    """FastAPI test client bound to the test session, push client and storage."""
    from rukun.api import deps
    from rukun.api.app import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_push_client] = lambda: push_client
    app.dependency_overrides[deps.get_storage] = lambda: storage

    yield TestClient(app)

    app.dependency_overrides.clear()


def pytest_collection_modifyitems(config, items):
    """Mark tests with the name of their directory (unit, integration, contract)."""
    for item in items:
        layer = item.path.parent.name
        if layer in ("unit", "integration", "contract"):
            item.add_marker(getattr(pytest.mark, layer))
