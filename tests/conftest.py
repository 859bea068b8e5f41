import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure project root is on path for `volsync` imports
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from volsync.config import Settings
from volsync.models import audit, volumetrica  # noqa: F401
from volsync.models.base import Base

SHARED_SECRET = "s3cret-value"
SIGNING_SECRET = "signing-secret"
JWT_SECRET = "test-jwt-secret"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def received_at():
    return datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_settings(**overrides) -> Settings:
    values = {
        "ENVIRONMENT": "development",
        "SECRET_KEY": JWT_SECRET,
        "WEBHOOK_AUTH_MODE": "shared_secret_header",
        "WEBHOOK_SHARED_SECRET_VALUE": SHARED_SECRET,
        "WEBHOOK_SIGNING_SECRET": SIGNING_SECRET,
        "VOLUMETRICA_API_BASE_URL": "https://volumetrica.test",
        "VOLUMETRICA_API_KEY": "api-key",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def app(db, settings):
    from volsync.config import get_settings
    from volsync.database.session import get_db
    from volsync.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def api_client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def admin_headers(settings):
    from volsync.core.security import create_access_token

    token = create_access_token(
        {"sub": "op-1", "email": "ops@example.com", "role": "admin"}, settings
    )
    return {"Authorization": f"Bearer {token}"}
