"""
Launchpad Pipeline
==================

Pipeline status model of a project and the machinery around it.

Components:
- stages: derives the six-step pipeline view from the stored status fields
- SelfHealingTrigger: health classification and bounded redeploys
- MonitoringService: per-project health-check watchers
- adapters: simulated analyzer, auto-fixer, QA runner and deploy adapter
"""

from launchpad.core.pipeline.stages import (
    PipelineStep,
    StepState,
    derive_pipeline,
    derive_step_state,
)
from launchpad.core.pipeline.self_healing import (
    HealthPolicy,
    HealthSample,
    SelfHealingTrigger,
)
from launchpad.core.pipeline.monitor import HealthProbe, MonitoringService

__all__ = [
    "PipelineStep",
    "StepState",
    "derive_pipeline",
    "derive_step_state",
    "HealthPolicy",
    "HealthSample",
    "SelfHealingTrigger",
    "HealthProbe",
    "MonitoringService",
]
