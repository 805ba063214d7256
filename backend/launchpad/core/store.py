"""
Project Store - persistence boundary for project records.

Every collaborator reads and writes project status fields through this
store. Unknown ids raise ProjectNotFoundError; callers decide how to surface
it (404 in the API, stop watching in the monitor).
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from launchpad.core.database import AsyncSessionLocal, get_db_session
from launchpad.core.models import (
    HealthState,
    MobileBuildStatus,
    OperationStatus,
    Project,
    ProjectStatus,
    SourceType,
)


class ProjectNotFoundError(LookupError):
    """Raised when a project id is unknown to the store."""

    def __init__(self, project_id: UUID):
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


# Fields fixed at registration
IMMUTABLE_FIELDS = frozenset({"id", "source_type", "source_value", "created_at"})


class ProjectStore:
    """
    Async CRUD over the projects table.

    Reads always repopulate already-loaded instances so a long-lived session
    sees writes committed by other sessions (monitor tasks, background work).
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        name: str,
        source_type: SourceType,
        source_value: str,
        deployment_target: Optional[str] = None,
    ) -> Project:
        """Register a new project with every sub-status at its initial value."""
        project = Project(
            id=uuid4(),
            name=name,
            source_type=SourceType(source_type),
            source_value=source_value,
            deployment_target=deployment_target,
            status=ProjectStatus.REGISTERED,
            normalized_status=OperationStatus.NONE,
            auto_fix_status=OperationStatus.NONE,
            ready_for_deploy=False,
            health_state=HealthState.HEALTHY,
            recovery_attempts=0,
            consecutive_failures=0,
            mobile_android_status=MobileBuildStatus.NONE,
            mobile_ios_status=MobileBuildStatus.NONE,
        )
        self.db.add(project)
        await self.db.flush()
        await self.db.refresh(project)
        return project

    async def get(self, project_id: UUID) -> Project:
        result = await self.db.execute(
            select(Project)
            .where(Project.id == project_id)
            .execution_options(populate_existing=True)
        )
        project = result.scalar_one_or_none()
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    async def update(self, project_id: UUID, **fields: Any) -> Project:
        """
        Apply a partial update and return the fresh record.

        Raises:
            ProjectNotFoundError: If the project does not exist
            ValueError: If an immutable or unknown field is given
        """
        forbidden = IMMUTABLE_FIELDS.intersection(fields)
        if forbidden:
            raise ValueError(f"Immutable fields cannot be updated: {sorted(forbidden)}")

        project = await self.get(project_id)
        for key, value in fields.items():
            if not hasattr(Project, key):
                raise ValueError(f"Unknown project field: {key}")
            setattr(project, key, value)

        await self.db.flush()
        await self.db.refresh(project)
        return project

    async def list_monitorable(self) -> list[Project]:
        """Projects that have been deployed at least once."""
        result = await self.db.execute(
            select(Project)
            .where(Project.deployed_url.is_not(None))
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list(self) -> list[Project]:
        """All projects, newest first."""
        result = await self.db.execute(
            select(Project)
            .order_by(Project.created_at.desc(), Project.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def delete(self, project_id: UUID) -> None:
        project = await self.get(project_id)
        await self.db.delete(project)
        await self.db.flush()


@asynccontextmanager
async def project_store_scope(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> AsyncGenerator[ProjectStore, None]:
    """
    Store bound to its own session, committed on exit.

    Usage:
        async with project_store_scope() as store:
            await store.update(project_id, last_deploy_status=None)
    """
    async with get_db_session(session_factory) as session:
        yield ProjectStore(session)
