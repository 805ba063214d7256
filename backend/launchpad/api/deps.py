"""
Launchpad - API Dependencies
============================

Shared dependencies for FastAPI endpoints.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from launchpad.core.database import get_db
from launchpad.core.models import Project
from launchpad.core.pipeline.adapters import redeploy_project
from launchpad.core.pipeline.monitor import MonitoringService
from launchpad.core.pipeline.self_healing import SelfHealingTrigger
from launchpad.core.store import ProjectNotFoundError, ProjectStore


# ==========================================================================
# Store
# ==========================================================================

async def get_store(db: Annotated[AsyncSession, Depends(get_db)]) -> ProjectStore:
    """Project store bound to the request session."""
    return ProjectStore(db)


async def get_project_or_404(project_id: UUID, store: ProjectStore) -> Project:
    """Get project by ID or raise 404."""
    try:
        return await store.get(project_id)
    except ProjectNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Project not found",
        ) from e


# ==========================================================================
# Monitoring
# ==========================================================================

def get_monitor(request: Request) -> Optional[MonitoringService]:
    """Monitoring service started by the app lifespan, if any."""
    return getattr(request.app.state, "monitor", None)


def get_trigger(request: Request) -> SelfHealingTrigger:
    """Self-healing trigger shared with the monitoring service."""
    trigger = getattr(request.app.state, "trigger", None)
    if trigger is None:
        trigger = SelfHealingTrigger(redeploy=redeploy_project)
        request.app.state.trigger = trigger
    return trigger


# ==========================================================================
# Type Aliases for Cleaner Signatures
# ==========================================================================

DbSession = Annotated[AsyncSession, Depends(get_db)]
Store = Annotated[ProjectStore, Depends(get_store)]
Monitor = Annotated[Optional[MonitoringService], Depends(get_monitor)]
Trigger = Annotated[SelfHealingTrigger, Depends(get_trigger)]
