"""
Launchpad - Database Models
===========================

SQLAlchemy model for the project record and the enums of its status fields.
Each status field is written by a different collaborator (analyzer, fixer,
QA runner, deploy adapter, health monitor) and they are allowed to disagree.
"""

import enum
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from launchpad.core.database import Base


# ==========================================================================
# Enums
# ==========================================================================

class SourceType(str, enum.Enum):
    """Where the project source comes from."""
    GITHUB = "github"
    REPLIT = "replit"
    ZIP = "zip"
    OTHER = "other"


class ProjectStatus(str, enum.Enum):
    """Coarse pipeline position, the only field consumers treat as progress."""
    REGISTERED = "registered"
    QA_RUNNING = "qa_running"
    QA_FAILED = "qa_failed"
    QA_PASSED = "qa_passed"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    DEPLOY_FAILED = "deploy_failed"


class OperationStatus(str, enum.Enum):
    """Outcome of source analysis or auto-fix."""
    NONE = "none"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class MobileBuildStatus(str, enum.Enum):
    """Mobile wrapper side pipeline (not part of the six stages)."""
    NONE = "none"
    BUILDING = "building"
    READY = "ready"
    FAILED = "failed"


class HealthState(str, enum.Enum):
    """Self-healing state of a deployed project."""
    HEALTHY = "healthy"
    RECOVERING = "recovering"
    DEGRADED = "degraded"  # Terminal until manual reset


# Values written to Project.last_deploy_status by the self-healing trigger
RECOVERY_TRIGGERED = "recovery_triggered"
RECOVERY_FAILED = "recovery_failed"


# ==========================================================================
# Mixins
# ==========================================================================

class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ==========================================================================
# Models
# ==========================================================================

class Project(Base, TimestampMixin):
    """
    Registered software project walking through the delivery pipeline.

    source_type and source_value are immutable after creation. deployed_url
    is set by the first successful deploy and never cleared afterwards.
    """

    __tablename__ = "projects"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # Basic info
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    source_type: Mapped[SourceType] = mapped_column(
        Enum(SourceType),
        nullable=False,
    )
    source_value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    deployment_target: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )

    # Pipeline
    status: Mapped[ProjectStatus] = mapped_column(
        Enum(ProjectStatus),
        default=ProjectStatus.REGISTERED,
        nullable=False,
        index=True,
    )
    normalized_status: Mapped[OperationStatus] = mapped_column(
        Enum(OperationStatus, name="normalizedstatus"),
        default=OperationStatus.NONE,
        nullable=False,
    )
    normalized_report: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    auto_fix_status: Mapped[OperationStatus] = mapped_column(
        Enum(OperationStatus, name="autofixstatus"),
        default=OperationStatus.NONE,
        nullable=False,
    )
    auto_fix_report: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    auto_fixed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    ready_for_deploy: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    qa_report: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Deployment
    deployed_url: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )
    last_deploy_status: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )

    # Monitoring / self-healing
    health_state: Mapped[HealthState] = mapped_column(
        Enum(HealthState),
        default=HealthState.HEALTHY,
        nullable=False,
    )
    recovery_attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    consecutive_failures: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    last_health_check_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Mobile side pipelines
    mobile_android_status: Mapped[MobileBuildStatus] = mapped_column(
        Enum(MobileBuildStatus, name="mobileandroidstatus"),
        default=MobileBuildStatus.NONE,
        nullable=False,
    )
    mobile_ios_status: Mapped[MobileBuildStatus] = mapped_column(
        Enum(MobileBuildStatus, name="mobileiosstatus"),
        default=MobileBuildStatus.NONE,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Project {self.name[:50]}>"
