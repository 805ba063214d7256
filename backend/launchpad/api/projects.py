"""
Launchpad - Projects API
========================

Project registration, pipeline orchestration and self-healing endpoints.

Orchestration endpoints call the simulated collaborators and write their
outcome fields; the derived pipeline is computed on every read.
"""

from datetime import datetime, timezone
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Response, status

from launchpad.api.deps import DbSession, Monitor, Store, Trigger, get_project_or_404
from launchpad.core.models import HealthState, OperationStatus, ProjectStatus
from launchpad.core.pipeline.adapters import (
    analyze_source,
    auto_fix_project,
    deploy_project,
    run_qa_on_project,
)
from launchpad.core.pipeline.self_healing import HealthSample
from launchpad.core.schemas import (
    AutoFixStatusResponse,
    DeployStatusResponse,
    HealthEvaluationResponse,
    HealthSampleRequest,
    MessageResponse,
    PipelineResponse,
    ProjectCreate,
    ProjectResponse,
    ProjectUpdate,
)
from launchpad.core.store import ProjectNotFoundError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/projects", tags=["Projects"])

QA_ALLOWED_STATUSES = frozenset({
    ProjectStatus.REGISTERED,
    ProjectStatus.QA_FAILED,
    ProjectStatus.QA_PASSED,
    ProjectStatus.DEPLOYED,
    ProjectStatus.DEPLOY_FAILED,
})

DEPLOY_ALLOWED_STATUSES = frozenset({
    ProjectStatus.QA_PASSED,
    ProjectStatus.DEPLOYED,
    ProjectStatus.DEPLOY_FAILED,
    ProjectStatus.QA_FAILED,
})


# ==========================================================================
# Project CRUD
# ==========================================================================

@router.get(
    "",
    response_model=list[ProjectResponse],
    summary="List projects",
)
async def list_projects(store: Store) -> list[ProjectResponse]:
    """
    List all projects, newest first, each with its derived pipeline.
    """
    projects = await store.list()
    return [ProjectResponse.from_project(p) for p in projects]


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register project",
    responses={
        201: {"description": "Project registered"},
        422: {"description": "Validation error"},
    },
)
async def create_project(data: ProjectCreate, store: Store) -> ProjectResponse:
    """
    Register a new project. It starts as `registered` with every
    sub-status at `none`.
    """
    project = await store.create(
        name=data.name,
        source_type=data.source_type,
        source_value=data.source_value,
        deployment_target=data.deployment_target,
    )
    logger.info("project_registered", project_id=str(project.id), source_type=data.source_type.value)
    return ProjectResponse.from_project(project)


@router.get(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Get project",
    responses={404: {"description": "Project not found"}},
)
async def get_project(project_id: UUID, store: Store) -> ProjectResponse:
    project = await get_project_or_404(project_id, store)
    return ProjectResponse.from_project(project)


@router.patch(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Update project",
    responses={404: {"description": "Project not found"}},
)
async def update_project(
    project_id: UUID,
    data: ProjectUpdate,
    store: Store,
) -> ProjectResponse:
    """
    Update the editable fields (name, deployment target).
    """
    project = await get_project_or_404(project_id, store)

    updates = data.model_dump(exclude_unset=True, exclude_none=True)
    if updates:
        project = await store.update(project_id, **updates)

    return ProjectResponse.from_project(project)


@router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete project",
    responses={404: {"description": "Project not found"}},
)
async def delete_project(project_id: UUID, store: Store, monitor: Monitor) -> Response:
    await get_project_or_404(project_id, store)
    await store.delete(project_id)

    if monitor is not None:
        await monitor.unwatch(project_id)

    logger.info("project_deleted", project_id=str(project_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ==========================================================================
# Pipeline
# ==========================================================================

@router.get(
    "/{project_id}/stages",
    response_model=PipelineResponse,
    summary="Get pipeline stages",
)
async def get_stages(project_id: UUID, store: Store) -> PipelineResponse:
    """
    Derived state of the six pipeline steps.
    """
    project = await get_project_or_404(project_id, store)
    return PipelineResponse.from_project(project)


@router.post(
    "/{project_id}/analyze",
    response_model=ProjectResponse,
    summary="Run source analysis",
)
async def analyze_project(project_id: UUID, store: Store) -> ProjectResponse:
    project = await get_project_or_404(project_id, store)
    await store.update(project_id, normalized_status=OperationStatus.RUNNING)

    result = analyze_source(project)
    project = await store.update(
        project_id,
        normalized_status=result.status,
        normalized_report=result.report,
        ready_for_deploy=result.ready_for_deploy,
    )
    logger.info("project_analyzed", project_id=str(project_id), result=result.status.value)
    return ProjectResponse.from_project(project)


@router.post(
    "/{project_id}/auto-fix",
    response_model=ProjectResponse,
    summary="Run auto-fix",
    responses={400: {"description": "Project not analyzed"}},
)
async def run_auto_fix(project_id: UUID, store: Store) -> ProjectResponse:
    project = await get_project_or_404(project_id, store)

    if project.normalized_status != OperationStatus.SUCCESS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Project must be analyzed before auto-fix",
        )

    await store.update(project_id, auto_fix_status=OperationStatus.RUNNING)
    try:
        result = auto_fix_project(project)
    except Exception as e:
        logger.error("auto_fix_crashed", project_id=str(project_id), error=str(e))
        project = await store.update(
            project_id,
            auto_fix_status=OperationStatus.FAILED,
            auto_fix_report=f"Auto-fix crashed: {e}",
        )
        return ProjectResponse.from_project(project)

    project = await store.update(
        project_id,
        auto_fix_status=result.status,
        auto_fix_report=result.report,
        auto_fixed_at=datetime.now(timezone.utc),
        ready_for_deploy=result.ready_for_deploy,
    )
    return ProjectResponse.from_project(project)


@router.get(
    "/{project_id}/auto-fix",
    response_model=AutoFixStatusResponse,
    summary="Get auto-fix details",
)
async def get_auto_fix(project_id: UUID, store: Store) -> AutoFixStatusResponse:
    project = await get_project_or_404(project_id, store)
    return AutoFixStatusResponse.model_validate(project)


@router.post(
    "/{project_id}/run-qa",
    response_model=ProjectResponse,
    summary="Run QA checks",
    responses={400: {"description": "QA not allowed in current state"}},
)
async def run_qa(project_id: UUID, store: Store) -> ProjectResponse:
    """
    Run QA. Allowed on registered, failed or deployed projects (re-verification),
    and only after a successful auto-fix.
    """
    project = await get_project_or_404(project_id, store)

    if project.status not in QA_ALLOWED_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot run QA on project with status: {project.status.value}",
        )
    if project.auto_fix_status != OperationStatus.SUCCESS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please run Auto-fix before running QA checks.",
        )

    project = await store.update(project_id, status=ProjectStatus.QA_RUNNING)
    try:
        result = run_qa_on_project(project)
    except Exception as e:
        logger.error("qa_crashed", project_id=str(project_id), error=str(e))
        project = await store.update(
            project_id,
            status=ProjectStatus.QA_FAILED,
            qa_report=f"Internal error during QA execution: {e}\nStatus: FAILED",
        )
        return ProjectResponse.from_project(project)

    project = await store.update(
        project_id,
        status=ProjectStatus.QA_PASSED if result.passed else ProjectStatus.QA_FAILED,
        qa_report=result.report,
    )
    logger.info("qa_finished", project_id=str(project_id), passed=result.passed)
    return ProjectResponse.from_project(project)


@router.post(
    "/{project_id}/deploy",
    response_model=ProjectResponse,
    summary="Deploy project",
    responses={
        400: {"description": "Project has not been through QA"},
        502: {"description": "Deployment failed"},
    },
)
async def deploy(
    project_id: UUID,
    store: Store,
    db: DbSession,
    monitor: Monitor,
) -> ProjectResponse:
    """
    Deploy the project. A project whose QA failed may still be deployed;
    the pipeline view then flags the QA step as failed.
    """
    project = await get_project_or_404(project_id, store)

    if project.status not in DEPLOY_ALLOWED_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Project must pass QA before deployment",
        )

    # Anything but qa_passed is a redeploy or a deploy past a failed QA
    result = deploy_project(project, force=project.status != ProjectStatus.QA_PASSED)
    await store.update(project_id, status=ProjectStatus.DEPLOYING)

    if not result.success:
        await store.update(project_id, status=ProjectStatus.DEPLOY_FAILED)
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=result.error or "Deployment failed",
        )

    # A fresh deploy ends any recovery cycle, degraded included
    project = await store.update(
        project_id,
        status=ProjectStatus.DEPLOYED,
        deployed_url=result.deployed_url,
        health_state=HealthState.HEALTHY,
        recovery_attempts=0,
        consecutive_failures=0,
        last_deploy_status=None,
    )
    await db.commit()
    logger.info("project_deployed", project_id=str(project_id), url=result.deployed_url)

    if monitor is not None:
        monitor.watch(project_id)

    return ProjectResponse.from_project(project)


# ==========================================================================
# Monitoring / Self-Healing
# ==========================================================================

@router.get(
    "/{project_id}/deploy-status",
    response_model=DeployStatusResponse,
    summary="Get deployment and self-healing state",
)
async def get_deploy_status(project_id: UUID, store: Store) -> DeployStatusResponse:
    project = await get_project_or_404(project_id, store)
    return DeployStatusResponse.model_validate(project)


@router.post(
    "/{project_id}/health-samples",
    response_model=HealthEvaluationResponse,
    summary="Report a health sample",
    responses={409: {"description": "Project is not deployed"}},
)
async def report_health_sample(
    project_id: UUID,
    data: HealthSampleRequest,
    store: Store,
    trigger: Trigger,
) -> HealthEvaluationResponse:
    """
    Feed one health observation of a deployed project to the self-healing
    trigger. A failed sample may start a redeploy.
    """
    project = await get_project_or_404(project_id, store)
    if not project.deployed_url:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Project has not been deployed",
        )

    sample = HealthSample(
        reachable=data.reachable,
        latency_ms=data.latency_ms,
        error_rate=data.error_rate,
    )
    try:
        result = await trigger.evaluate(project_id, sample)
    except ProjectNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Project not found",
        ) from e

    return HealthEvaluationResponse.model_validate(result)


@router.post(
    "/{project_id}/recovery/reset",
    response_model=MessageResponse,
    summary="Clear self-healing state",
)
async def reset_recovery(project_id: UUID, store: Store, trigger: Trigger) -> MessageResponse:
    """
    Manual intervention: return a degraded project to healthy.
    """
    await get_project_or_404(project_id, store)
    try:
        await trigger.reset(project_id)
    except ProjectNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Project not found",
        ) from e

    return MessageResponse(message="Self-healing state reset")
