"""
Launchpad - Pydantic Schemas
============================

Request and response schemas for API validation.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from launchpad.core.models import (
    HealthState,
    MobileBuildStatus,
    OperationStatus,
    ProjectStatus,
    SourceType,
)
from launchpad.core.pipeline.stages import (
    STEP_LABELS,
    PipelineStep,
    StepState,
    auto_ready_message,
    current_step,
    derive_pipeline,
)


# ==========================================================================
# Base Schemas
# ==========================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class TimestampSchema(BaseSchema):
    """Schema with timestamp fields."""

    created_at: datetime
    updated_at: datetime


# ==========================================================================
# Pipeline Schemas
# ==========================================================================

class StageResponse(BaseSchema):
    """State of one pipeline step."""

    id: PipelineStep
    label: str
    state: StepState


class PipelineResponse(BaseSchema):
    """Derived six-step pipeline of a project."""

    project_id: UUID
    stages: list[StageResponse]
    current_step: Optional[PipelineStep] = None

    @classmethod
    def from_project(cls, project) -> "PipelineResponse":
        return cls(
            project_id=project.id,
            stages=build_stages(project),
            current_step=current_step(project),
        )


def build_stages(project) -> list[StageResponse]:
    return [
        StageResponse(id=step, label=STEP_LABELS[step], state=state)
        for step, state in derive_pipeline(project).items()
    ]


# ==========================================================================
# Project Schemas
# ==========================================================================

class ProjectCreate(BaseSchema):
    """Schema for registering a project."""

    name: str = Field(min_length=1, max_length=100)
    source_type: SourceType
    source_value: str = Field(min_length=1)
    deployment_target: Optional[str] = Field(None, max_length=50)


class ProjectUpdate(BaseSchema):
    """Schema for editing a project. Source fields are immutable."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    deployment_target: Optional[str] = Field(None, max_length=50)


class ProjectResponse(TimestampSchema):
    """Schema for a project in responses, with its derived pipeline."""

    id: UUID
    name: str
    source_type: SourceType
    source_value: str
    deployment_target: Optional[str] = None
    status: ProjectStatus
    normalized_status: OperationStatus
    auto_fix_status: OperationStatus
    ready_for_deploy: bool
    qa_report: Optional[str] = None
    deployed_url: Optional[str] = None
    last_deploy_status: Optional[str] = None
    health_state: HealthState
    mobile_android_status: MobileBuildStatus
    mobile_ios_status: MobileBuildStatus
    stages: list[StageResponse] = []
    auto_ready_message: Optional[str] = None

    @classmethod
    def from_project(cls, project) -> "ProjectResponse":
        response = cls.model_validate(project)
        response.stages = build_stages(project)
        response.auto_ready_message = auto_ready_message(project)
        return response


class AutoFixStatusResponse(BaseSchema):
    """Auto-fix details of a project."""

    auto_fix_status: OperationStatus
    auto_fix_report: Optional[str] = None
    auto_fixed_at: Optional[datetime] = None
    ready_for_deploy: bool


class DeployStatusResponse(BaseSchema):
    """Deployment and self-healing state of a project."""

    status: ProjectStatus
    deployed_url: Optional[str] = None
    last_deploy_status: Optional[str] = None
    health_state: HealthState
    recovery_attempts: int
    last_health_check_at: Optional[datetime] = None


class HealthSampleRequest(BaseSchema):
    """One health observation reported by an external monitor."""

    reachable: bool
    latency_ms: float = Field(ge=0)
    error_rate: float = Field(ge=0, le=1)


class HealthEvaluationResponse(BaseSchema):
    """Self-healing transition caused by a health sample."""

    project_id: UUID
    state: Optional[HealthState] = None
    healthy_check: bool
    redeploy_attempted: bool
    redeploy_succeeded: Optional[bool] = None
    skipped: bool = False


# ==========================================================================
# Common Response Schemas
# ==========================================================================

class MessageResponse(BaseSchema):
    """Generic message response."""

    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    """Error response schema."""

    error: str
    detail: Optional[str] = None
    code: Optional[str] = None


class HealthResponse(BaseSchema):
    """Health check response."""

    status: str
    version: str
    environment: str
    database: str
    monitoring: str
