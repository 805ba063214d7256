"""
Pipeline Stages - derives the six-step pipeline view of a project.

The stored record carries several independent status fields written by
different collaborators. This module reconstructs one state per step from
them. It is pure: no I/O, no mutation, and it never raises, unknown values
fall through to PENDING.
"""

import enum
from dataclasses import dataclass
from typing import Any, Optional


class PipelineStep(str, enum.Enum):
    """Fixed pipeline steps, in display order."""
    BUILD = "build"
    ANALYSIS = "analysis"
    FIXING = "fixing"
    QA = "qa"
    DEPLOY = "deploy"
    MONITOR = "monitor"


class StepState(str, enum.Enum):
    """Visual/logical state of a step."""
    PENDING = "pending"
    CURRENT = "current"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


STEP_LABELS = {
    PipelineStep.BUILD: "Build Started",
    PipelineStep.ANALYSIS: "AI Analysis",
    PipelineStep.FIXING: "Auto-Fixing",
    PipelineStep.QA: "QA Check",
    PipelineStep.DEPLOY: "Deployment",
    PipelineStep.MONITOR: "Monitoring",
}

QA_FAILURE_MARKERS = ("Status: FAILED", "Result: FAIL")

# Statuses from which fixing counts as resolved whatever auto_fix_status says
PAST_FIXING_STATUSES = frozenset(
    {"qa_passed", "qa_running", "qa_failed", "deploying", "deployed"}
)
PAST_QA_STATUSES = frozenset({"deploying", "deployed", "deploy_failed"})

AUTO_READY_MESSAGE = "Fixed automatically - ready to deploy"


def _field_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, str):
        return value
    return str(value)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


@dataclass(frozen=True)
class ProjectSnapshot:
    """Immutable view of the fields the deriver reads."""
    status: Optional[str] = None
    normalized_status: Optional[str] = None
    auto_fix_status: Optional[str] = None
    ready_for_deploy: bool = False
    qa_report: str = ""

    @classmethod
    def from_project(cls, project: Any) -> "ProjectSnapshot":
        """Build a snapshot from an ORM row, schema, snapshot or plain object."""
        if isinstance(project, cls):
            return project
        if isinstance(project, dict):
            get = project.get
        else:
            def get(name, default=None):
                return getattr(project, name, default)

        qa_report = get("qa_report")
        return cls(
            status=_field_value(get("status")),
            normalized_status=_field_value(get("normalized_status")) or "none",
            auto_fix_status=_field_value(get("auto_fix_status")) or "none",
            ready_for_deploy=_flag(get("ready_for_deploy")),
            qa_report=qa_report if isinstance(qa_report, str) else "",
        )


# ==========================================================================
# Named rules
# ==========================================================================

def qa_report_failed(report: Optional[str]) -> bool:
    """True if the QA report text records a failure."""
    if not isinstance(report, str):
        return False
    return any(marker in report for marker in QA_FAILURE_MARKERS)


def fixing_superseded(snapshot: ProjectSnapshot) -> bool:
    """Fixing is treated as resolved once QA or a later stage was reached."""
    return snapshot.status in PAST_FIXING_STATUSES


def deployed_despite_qa_failure(snapshot: ProjectSnapshot) -> bool:
    """The project went on to deploy while its QA report records a failure."""
    return snapshot.status in PAST_QA_STATUSES and qa_report_failed(snapshot.qa_report)


# ==========================================================================
# Per-step rules
# ==========================================================================

def _build_state(s: ProjectSnapshot) -> StepState:
    if s.normalized_status in ("success", "failed"):
        return StepState.COMPLETED
    return StepState.CURRENT


def _analysis_state(s: ProjectSnapshot) -> StepState:
    if s.normalized_status == "success":
        return StepState.COMPLETED
    if s.normalized_status == "failed":
        return StepState.FAILED
    # The pipeline visibly moved on without an explicit analysis record
    if s.status != "registered" or s.auto_fix_status != "none":
        return StepState.COMPLETED
    return StepState.CURRENT


def _fixing_state(s: ProjectSnapshot) -> StepState:
    if fixing_superseded(s):
        return StepState.COMPLETED
    if s.auto_fix_status == "success":
        return StepState.COMPLETED
    if s.auto_fix_status == "running":
        return StepState.RUNNING
    if s.auto_fix_status == "failed":
        return StepState.FAILED
    if s.normalized_status == "success":
        return StepState.CURRENT
    return StepState.PENDING


def _qa_state(s: ProjectSnapshot) -> StepState:
    if s.status == "qa_passed":
        return StepState.COMPLETED
    if s.status in PAST_QA_STATUSES:
        if deployed_despite_qa_failure(s):
            return StepState.FAILED
        return StepState.COMPLETED
    if s.status == "qa_running":
        return StepState.RUNNING
    if s.status == "qa_failed":
        return StepState.FAILED
    if s.auto_fix_status == "success":
        return StepState.CURRENT
    return StepState.PENDING


_DEPLOY_STATES = {
    "deployed": StepState.COMPLETED,
    "deploying": StepState.RUNNING,
    "deploy_failed": StepState.FAILED,
    "qa_passed": StepState.CURRENT,
}


def _deploy_state(s: ProjectSnapshot) -> StepState:
    return _DEPLOY_STATES.get(s.status, StepState.PENDING)


def _monitor_state(s: ProjectSnapshot) -> StepState:
    # Monitoring stays active once deployed; it never completes
    if s.status == "deployed":
        return StepState.CURRENT
    return StepState.PENDING


_STEP_RULES = {
    PipelineStep.BUILD: _build_state,
    PipelineStep.ANALYSIS: _analysis_state,
    PipelineStep.FIXING: _fixing_state,
    PipelineStep.QA: _qa_state,
    PipelineStep.DEPLOY: _deploy_state,
    PipelineStep.MONITOR: _monitor_state,
}


# ==========================================================================
# Public API
# ==========================================================================

def derive_step_state(step: Any, project: Any) -> StepState:
    """
    Derive the state of a single step.

    Args:
        step: PipelineStep or its string value
        project: Project row, ProjectSnapshot, dict or any object with the
            status attributes

    Returns:
        StepState, PENDING for unknown steps
    """
    try:
        rule = _STEP_RULES[PipelineStep(_field_value(step))]
    except ValueError:
        return StepState.PENDING
    return rule(ProjectSnapshot.from_project(project))


def derive_pipeline(project: Any) -> dict[PipelineStep, StepState]:
    """State of every step, in pipeline order."""
    snapshot = ProjectSnapshot.from_project(project)
    return {step: rule(snapshot) for step, rule in _STEP_RULES.items()}


def current_step(project: Any) -> Optional[PipelineStep]:
    """First step that is running, failed or waiting for action."""
    for step, state in derive_pipeline(project).items():
        if state in (StepState.RUNNING, StepState.FAILED, StepState.CURRENT):
            return step
    return None


def auto_ready_message(project: Any) -> Optional[str]:
    """Banner shown when analysis and auto-fix made the project deployable."""
    snapshot = ProjectSnapshot.from_project(project)
    if (
        snapshot.normalized_status == "success"
        and snapshot.auto_fix_status == "success"
        and snapshot.ready_for_deploy
    ):
        return AUTO_READY_MESSAGE
    return None
