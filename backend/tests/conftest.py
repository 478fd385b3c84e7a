"""
Test configuration and fixtures.
Uses a file-backed SQLite database per test (aiosqlite) so concurrent
sessions exercise real transaction locking.
"""
import base64
import os
import tempfile
import uuid as uuid_module

# Set test environment before any imports
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'imagestudio_test.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["GEMINI_API_KEY"] = ""
os.environ["R2_ENDPOINT"] = ""
os.environ["R2_ACCESS_KEY"] = ""
os.environ["R2_SECRET_KEY"] = ""
os.environ["ADMIN_EMAILS"] = ""

import pytest
from types import SimpleNamespace
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.ai.base import ImageProvider, GeneratedImage, GenerationResult
from app.database import create_engine_for_url
from app.models.base import Base
from app.models.user import User
from app.storage.artifacts import ArtifactStore
from app.storage.r2_client import R2Client


PNG_B64 = base64.b64encode(b"\x89PNG\r\n\x1a\nfake-image-bytes").decode()


class FakeImageProvider(ImageProvider):
    """Provider double that returns a canned result or raises a canned error."""

    name = "fake"

    def __init__(self, result: GenerationResult = None, error: Exception = None):
        self.result = result or GenerationResult(
            images=[GeneratedImage(mime_type="image/png", data=PNG_B64)],
            text="Here is your image",
            raw={"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": PNG_B64}}]}}]},
        )
        self.error = error
        self.calls = []

    async def generate(self, payload, operation="generate"):
        self.calls.append((operation, payload))
        if self.error is not None:
            raise self.error
        return self.result

    def is_configured(self) -> bool:
        return True


class StubS3Client:
    """In-memory stand-in for the boto3 S3 client calls R2Client makes."""

    def __init__(self):
        self.objects = {}
        self.deleted = []

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[Key] = Body

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return f"https://r2.test/{Params['Key']}?expires={ExpiresIn}"

    def delete_objects(self, Bucket, Delete):
        for obj in Delete["Objects"]:
            self.deleted.append(obj["Key"])
            self.objects.pop(obj["Key"], None)
        return {}


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """Fresh database file with all tables."""
    test_engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_maker(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_maker() as session:
        yield session


async def create_user(session_maker, email: str = "test@example.com", name: str = "Test User") -> User:
    # Own short-lived session: SQLite holds the write lock for any open transaction
    async with session_maker() as session:
        user = User(
            id=str(uuid_module.uuid4()),
            firebase_uid=f"firebase-test-uid-{uuid_module.uuid4().hex[:8]}",
            email=email,
            name=name,
        )
        session.add(user)
        await session.commit()
    return user


@pytest.fixture(scope="function")
async def test_user(session_maker) -> User:
    """Create a test user."""
    return await create_user(session_maker)


@pytest.fixture(scope="function")
async def other_user(session_maker) -> User:
    """Create a second user."""
    return await create_user(session_maker, email="other@example.com", name="Other User")


@pytest.fixture
def fake_provider() -> FakeImageProvider:
    return FakeImageProvider()


@pytest.fixture
def provider_factory():
    return FakeImageProvider


@pytest.fixture
def failing_db() -> AsyncMock:
    """Session whose every query fails as if the database were unreachable."""
    session = AsyncMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
    session.get_bind = MagicMock(return_value=SimpleNamespace(dialect=SimpleNamespace(name="postgresql")))
    return session


@pytest.fixture
def stub_s3() -> StubS3Client:
    return StubS3Client()


@pytest.fixture
def inline_artifacts() -> ArtifactStore:
    """Artifact store with R2 unconfigured: images are kept as data URLs."""
    return ArtifactStore(r2_client=R2Client())


@pytest.fixture
def r2_artifacts(stub_s3) -> ArtifactStore:
    """Artifact store backed by the in-memory S3 stub."""
    return ArtifactStore(r2_client=R2Client(client=stub_s3))


def get_test_app(session_maker, user: User = None, provider: ImageProvider = None, artifacts: ArtifactStore = None) -> FastAPI:
    """Create a test FastAPI app with overridden dependencies."""
    from app.main import app
    from app.database import get_db
    from app.auth.dependencies import get_current_user
    from app.api.generate import get_provider, get_artifact_store

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    if user is not None:
        async def override_get_current_user():
            return user
        app.dependency_overrides[get_current_user] = override_get_current_user

    if provider is not None:
        app.dependency_overrides[get_provider] = lambda: provider

    if artifacts is not None:
        app.dependency_overrides[get_artifact_store] = lambda: artifacts

    return app


@pytest.fixture(scope="function")
async def client(session_maker, test_user, fake_provider, inline_artifacts) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client authenticated as test_user."""
    app = get_test_app(session_maker, test_user, fake_provider, inline_artifacts)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def anon_client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Client with real authentication and provider dependencies."""
    app = get_test_app(session_maker)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def app_factory():
    """Build the app with a chosen subset of dependency overrides; cleared after the test."""
    from app.main import app

    yield get_test_app
    app.dependency_overrides.clear()
