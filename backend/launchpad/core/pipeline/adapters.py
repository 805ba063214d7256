"""
Pipeline Adapters - simulated external collaborators.

Stand-ins for the source analyzer, auto-fixer, QA runner and deploy
adapter. Each returns a result object; the caller writes the outcome
fields onto the project record.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from launchpad.core.config import settings
from launchpad.core.models import (
    OperationStatus,
    Project,
    ProjectStatus,
    SourceType,
)
from launchpad.core.store import project_store_scope

logger = logging.getLogger(__name__)


SOURCE_PATTERNS = {
    SourceType.GITHUB: re.compile(r"^(https?://)?(www\.)?github\.com/[\w.-]+/[\w.-]+/?$"),
    SourceType.REPLIT: re.compile(r"^(https?://)?(www\.)?replit\.com/@?[\w.-]+/[\w.-]+/?$"),
    SourceType.ZIP: re.compile(r"\.zip$", re.IGNORECASE),
}


@dataclass
class AnalysisResult:
    """Result of source analysis / normalization."""
    status: OperationStatus
    report: str
    ready_for_deploy: bool


@dataclass
class AutoFixResult:
    """Result of automated fixing."""
    status: OperationStatus
    report: str
    ready_for_deploy: bool
    actions: list[str] = field(default_factory=list)


@dataclass
class QaResult:
    """Result of QA checks."""
    passed: bool
    report: str


@dataclass
class DeployResult:
    """Result of a deployment."""
    success: bool
    deployed_url: Optional[str]
    error: Optional[str] = None


# ==========================================================================
# Source analysis
# ==========================================================================

def analyze_source(project: Project) -> AnalysisResult:
    """Check that the source reference can be fetched for its source type."""
    source_type = SourceType(project.source_type)
    value = (project.source_value or "").strip()
    pattern = SOURCE_PATTERNS.get(source_type)

    if not value:
        ok = False
        reason = "Source value is empty"
    elif pattern is not None and not pattern.search(value):
        ok = False
        reason = f"Source does not look like a {source_type.value} reference: {value}"
    else:
        ok = True
        reason = f"Source resolved: {source_type.value} - {value}"

    report = (
        f"Normalization Report for project {project.id}:\n"
        f"================================\n\n"
        f"  - {reason}\n\n"
        f"Result: Project is {'ready' if ok else 'NOT ready'} for deployment."
    )
    logger.info(f"Analysis for project {project.id}: {'success' if ok else 'failed'}")

    return AnalysisResult(
        status=OperationStatus.SUCCESS if ok else OperationStatus.FAILED,
        report=report,
        ready_for_deploy=ok,
    )


# ==========================================================================
# Auto-fix
# ==========================================================================

def auto_fix_project(project: Project) -> AutoFixResult:
    """Apply the standard fixes to an analyzed project."""
    if project.normalized_status != OperationStatus.SUCCESS:
        return AutoFixResult(
            status=OperationStatus.FAILED,
            report="Project must be analyzed successfully before auto-fix.",
            ready_for_deploy=False,
        )

    actions = [
        "Generated Dockerfile",
        "Generated .env.example",
    ]
    if project.source_type == SourceType.ZIP:
        actions.append("Flattened nested archive root")

    report = "Auto-Fix Report:\n" + "".join(f"  - {a}\n" for a in actions)
    report += "\nResult: Project is ready for deployment."
    logger.info(f"Auto-fix for project {project.id}: {len(actions)} actions")

    return AutoFixResult(
        status=OperationStatus.SUCCESS,
        report=report,
        ready_for_deploy=True,
        actions=actions,
    )


# ==========================================================================
# QA
# ==========================================================================

def run_qa_on_project(project: Project) -> QaResult:
    """Run the QA checklist and build a text report."""
    checks = [
        ("Source analysis", project.normalized_status == OperationStatus.SUCCESS),
        ("Auto-fix applied", project.auto_fix_status == OperationStatus.SUCCESS),
        ("Deploy readiness", bool(project.ready_for_deploy)),
    ]
    passed = all(ok for _, ok in checks)

    lines = [
        f'QA Report for "{project.name}"',
        f"Generated: {datetime.now(timezone.utc).isoformat()}",
        f"Source: {SourceType(project.source_type).value} - {project.source_value}",
        "",
    ]
    lines += [f"{'[x]' if ok else '[ ]'} {name}" for name, ok in checks]
    lines += ["", f"Status: {'PASSED' if passed else 'FAILED'}"]

    return QaResult(passed=passed, report="\n".join(lines))


# ==========================================================================
# Deploy
# ==========================================================================

def generate_deploy_url(project: Project) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", project.name.lower()).strip("-") or "app"
    return f"https://{slug}-{str(project.id)[:8]}.{settings.DEPLOY_DOMAIN}"


def deploy_project(project: Project, force: bool = False) -> DeployResult:
    """
    Deploy a project.

    Args:
        project: Project to deploy
        force: Skip the QA gate (redeploy of an already deployed project)
    """
    if not force and project.status != ProjectStatus.QA_PASSED:
        return DeployResult(
            success=False,
            deployed_url=None,
            error="Project must pass QA before deployment",
        )

    return DeployResult(success=True, deployed_url=generate_deploy_url(project))


async def redeploy_project(project_id: UUID, store_scope=project_store_scope) -> bool:
    """
    Redeploy operation used by the self-healing trigger.

    Raises:
        ProjectNotFoundError: If the project does not exist
    """
    async with store_scope() as store:
        project = await store.get(project_id)
        result = deploy_project(project, force=True)
        if result.success:
            await store.update(
                project_id,
                status=ProjectStatus.DEPLOYED,
                deployed_url=result.deployed_url,
            )
        else:
            logger.error(f"Redeploy of {project_id} failed: {result.error}")
    return result.success
