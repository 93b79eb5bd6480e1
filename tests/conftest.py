"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path, named in the test
Settings. HTTP tests build the app with create_app(settings), which opens
its own engine on that file; service tests use an AsyncSession on it
directly, and `session_factory` hands out further sessions for tests that
need a competing writer.
"""
import os

# Must be set before keystead modules create the global engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import asyncio

import pytest
from fastapi.testclient import TestClient

from keystead.app.core.config import Settings
from keystead.app.db import init_models
from keystead.app.db.base import create_engine_for, create_session_factory
from keystead.app.main import create_app
from keystead.app.schemas.user import KdfParams, UserCreate
from keystead.app.security.jwt import TokenCodec
from tests.helpers import KDF_PARAMS, DeviceKey, FakeClock, client_password_hash


@pytest.fixture(scope="session")
def device_key() -> DeviceKey:
    return DeviceKey()


@pytest.fixture(scope="session")
def other_device_key() -> DeviceKey:
    return DeviceKey()


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'keystead-test.db'}"


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(_env_file=None, DATABASE_URL=database_url)


@pytest.fixture
def codec(settings) -> TokenCodec:
    return TokenCodec.from_settings(settings)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def session_factory(settings):
    engine = create_engine_for(settings)
    await init_models(engine)
    yield create_session_factory(engine, settings)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def new_user():
    def _build(username="alice", email="alice@example.com", password="correct horse"):
        return UserCreate(
            username=username,
            email=email,
            password_hash=client_password_hash(password),
            kdf_params=KdfParams.model_validate(KDF_PARAMS),
        )
    return _build


@pytest.fixture
def app(settings):
    application = create_app(settings)
    asyncio.run(init_models(application.state.engine))
    yield application
    asyncio.run(application.state.engine.dispose())


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
