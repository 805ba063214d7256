"""
Launchpad - Test Fixtures
=========================

Shared pytest fixtures for all tests.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("MONITORING_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator  # noqa: E402
from typing import Any, Optional  # noqa: E402
from uuid import UUID  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from launchpad.api.deps import get_trigger  # noqa: E402
from launchpad.api.main import app  # noqa: E402
from launchpad.core.database import Base, get_db  # noqa: E402
from launchpad.core.models import Project, SourceType  # noqa: E402
from launchpad.core.pipeline.self_healing import HealthPolicy, SelfHealingTrigger  # noqa: E402
from launchpad.core.store import ProjectStore, project_store_scope  # noqa: E402


# ==========================================================================
# Test Database Setup
# ==========================================================================

# Use in-memory SQLite for tests (fast)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a fresh in-memory database.

    Creates all tables before the test, disposes the engine after.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for the test body."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session: AsyncSession) -> ProjectStore:
    return ProjectStore(db_session)


@pytest.fixture
def store_scope(session_factory: async_sessionmaker[AsyncSession]):
    """Store scope bound to the test database, as used by background components."""
    def scope():
        return project_store_scope(session_factory)
    return scope


# ==========================================================================
# Collaborator Fakes
# ==========================================================================

class FakeRedeploy:
    """Redeploy callable returning scripted outcomes and counting calls."""

    def __init__(self, outcomes: Optional[list[Any]] = None, default: Any = True):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.calls: list[UUID] = []

    async def __call__(self, project_id: UUID) -> bool:
        self.calls.append(project_id)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def redeploy() -> FakeRedeploy:
    return FakeRedeploy()


@pytest.fixture
def trigger(redeploy: FakeRedeploy, store_scope) -> SelfHealingTrigger:
    return SelfHealingTrigger(
        redeploy=redeploy,
        store_scope=store_scope,
        policy=HealthPolicy(max_latency_ms=5000, max_error_rate=0.5),
        max_retries=3,
        failure_threshold=1,
        redeploy_timeout=1.0,
    )


# ==========================================================================
# Project Fixtures
# ==========================================================================

@pytest.fixture
def make_project(store: ProjectStore, db_session: AsyncSession):
    """Create a committed project, then apply status overrides."""
    async def _make(
        name: str = "Shop Frontend",
        source_type: SourceType = SourceType.GITHUB,
        source_value: str = "https://github.com/acme/shop",
        **fields: Any,
    ) -> Project:
        project = await store.create(
            name=name,
            source_type=source_type,
            source_value=source_value,
        )
        if fields:
            project = await store.update(project.id, **fields)
        await db_session.commit()
        return project
    return _make


# ==========================================================================
# HTTP Client
# ==========================================================================

@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    trigger: SelfHealingTrigger,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Provide test HTTP client with database and trigger overrides.
    """
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_trigger] = lambda: trigger

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
