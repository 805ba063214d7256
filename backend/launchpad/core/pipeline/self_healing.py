"""
Self-Healing Trigger - reacts to degraded deployments.

State machine, persisted on the project record:

    healthy --(check fails)--> recovering --(redeploy ok)--> healthy
    recovering --(redeploy fails, attempts left)--> recovering
    recovering --(attempts exhausted)--> degraded

degraded is terminal until reset() is called by an operator.
"""

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import structlog

from launchpad.core.config import settings
from launchpad.core.models import (
    RECOVERY_FAILED,
    RECOVERY_TRIGGERED,
    HealthState,
)
from launchpad.core.store import ProjectStore, project_store_scope

logger = structlog.get_logger(__name__)

RedeployFn = Callable[[UUID], Awaitable[bool]]
StoreScope = Callable[[], AbstractAsyncContextManager[ProjectStore]]


@dataclass(frozen=True)
class HealthSample:
    """One health-check observation of a deployed project."""
    reachable: bool
    latency_ms: float
    error_rate: float


@dataclass(frozen=True)
class HealthPolicy:
    """Thresholds a sample must stay within to count as healthy."""
    max_latency_ms: float = 5000.0
    max_error_rate: float = 0.5

    @classmethod
    def from_settings(cls) -> "HealthPolicy":
        return cls(
            max_latency_ms=settings.HEALTH_MAX_LATENCY_MS,
            max_error_rate=settings.HEALTH_MAX_ERROR_RATE,
        )

    def is_healthy(self, sample: Optional[HealthSample]) -> bool:
        # No sample means the probe failed at the transport level
        if sample is None:
            return False
        return (
            sample.reachable
            and sample.latency_ms < self.max_latency_ms
            and sample.error_rate < self.max_error_rate
        )


@dataclass
class EvaluationResult:
    """
    Outcome of one evaluate() call.

    state is None when the cycle was skipped because another check or a
    reset held the project; the stored state is then mid-transition.
    """
    project_id: UUID
    state: Optional[HealthState]
    healthy_check: bool
    redeploy_attempted: bool = False
    redeploy_succeeded: Optional[bool] = None
    skipped: bool = False


class SelfHealingTrigger:
    """
    Classifies health samples and drives bounded redeploys.

    One asyncio.Lock per project serializes the read-modify-write of the
    recovery fields. A cycle that finds the lock held is skipped, so two
    overlapping checks never trigger two redeploys for one failure.
    """

    def __init__(
        self,
        redeploy: RedeployFn,
        store_scope: StoreScope = project_store_scope,
        policy: Optional[HealthPolicy] = None,
        max_retries: Optional[int] = None,
        failure_threshold: Optional[int] = None,
        redeploy_timeout: Optional[float] = None,
    ):
        self.redeploy = redeploy
        self.store_scope = store_scope
        self.policy = policy or HealthPolicy.from_settings()
        self.max_retries = max(
            1, max_retries if max_retries is not None else settings.SELF_HEALING_MAX_RETRIES
        )
        self.failure_threshold = max(
            1,
            failure_threshold
            if failure_threshold is not None
            else settings.SELF_HEALING_FAILURE_THRESHOLD,
        )
        self.redeploy_timeout = (
            redeploy_timeout if redeploy_timeout is not None else settings.REDEPLOY_TIMEOUT_SECONDS
        )
        self._locks: dict[UUID, asyncio.Lock] = {}

    def _lock_for(self, project_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = self._locks[project_id] = asyncio.Lock()
        return lock

    def forget(self, project_id: UUID) -> None:
        """Drop the lock of a project that is no longer monitored."""
        lock = self._locks.get(project_id)
        if lock is not None and not lock.locked():
            del self._locks[project_id]

    async def evaluate(
        self,
        project_id: UUID,
        sample: Optional[HealthSample],
    ) -> EvaluationResult:
        """
        Fold one health sample into the project's self-healing state.

        Args:
            project_id: Monitored project
            sample: Health observation, None if the probe itself failed

        Returns:
            EvaluationResult describing the transition

        Raises:
            ProjectNotFoundError: If the project no longer exists
        """
        lock = self._lock_for(project_id)
        healthy = self.policy.is_healthy(sample)

        if lock.locked():
            logger.info("health_check_skipped_in_progress", project_id=str(project_id))
            return EvaluationResult(
                project_id=project_id,
                state=None,
                healthy_check=healthy,
                skipped=True,
            )

        async with lock:
            now = datetime.now(timezone.utc)
            async with self.store_scope() as store:
                project = await store.get(project_id)
                state = project.health_state

                if state == HealthState.DEGRADED:
                    await store.update(project_id, last_health_check_at=now)
                    logger.debug("health_check_ignored_degraded", project_id=str(project_id))
                    return EvaluationResult(
                        project_id=project_id,
                        state=HealthState.DEGRADED,
                        healthy_check=healthy,
                    )

                if not project.deployed_url:
                    logger.debug("health_check_skipped_not_deployed", project_id=str(project_id))
                    return EvaluationResult(
                        project_id=project_id, state=state, healthy_check=healthy, skipped=True
                    )

                if healthy:
                    fields = {"last_health_check_at": now, "consecutive_failures": 0}
                    if state == HealthState.RECOVERING:
                        fields.update(
                            health_state=HealthState.HEALTHY,
                            recovery_attempts=0,
                            last_deploy_status=None,
                        )
                        logger.info("project_recovered", project_id=str(project_id))
                    await store.update(project_id, **fields)
                    return EvaluationResult(
                        project_id=project_id, state=HealthState.HEALTHY, healthy_check=True
                    )

                failures = project.consecutive_failures + 1
                logger.warning(
                    "health_check_failed",
                    project_id=str(project_id),
                    project_name=project.name,
                    consecutive_failures=failures,
                    threshold=self.failure_threshold,
                    reachable=sample.reachable if sample else False,
                    latency_ms=sample.latency_ms if sample else None,
                    error_rate=sample.error_rate if sample else None,
                )

                if state == HealthState.HEALTHY and failures < self.failure_threshold:
                    await store.update(
                        project_id, last_health_check_at=now, consecutive_failures=failures
                    )
                    return EvaluationResult(
                        project_id=project_id, state=HealthState.HEALTHY, healthy_check=False
                    )

                attempt = project.recovery_attempts + 1
                await store.update(
                    project_id,
                    last_health_check_at=now,
                    consecutive_failures=failures,
                    health_state=HealthState.RECOVERING,
                    recovery_attempts=attempt,
                    last_deploy_status=RECOVERY_TRIGGERED,
                )

            logger.info(
                "self_healing_triggered",
                project_id=str(project_id),
                attempt=attempt,
                max_retries=self.max_retries,
            )
            succeeded = await self._invoke_redeploy(project_id)

            async with self.store_scope() as store:
                if succeeded:
                    await store.update(
                        project_id,
                        health_state=HealthState.HEALTHY,
                        recovery_attempts=0,
                        consecutive_failures=0,
                        last_deploy_status=None,
                    )
                    logger.info("self_healing_succeeded", project_id=str(project_id), attempt=attempt)
                    new_state = HealthState.HEALTHY
                elif attempt >= self.max_retries:
                    await store.update(
                        project_id,
                        health_state=HealthState.DEGRADED,
                        last_deploy_status=RECOVERY_FAILED,
                    )
                    logger.error(
                        "self_healing_exhausted",
                        project_id=str(project_id),
                        attempts=attempt,
                    )
                    new_state = HealthState.DEGRADED
                else:
                    logger.warning(
                        "self_healing_attempt_failed",
                        project_id=str(project_id),
                        attempt=attempt,
                        remaining=self.max_retries - attempt,
                    )
                    new_state = HealthState.RECOVERING

            return EvaluationResult(
                project_id=project_id,
                state=new_state,
                healthy_check=False,
                redeploy_attempted=True,
                redeploy_succeeded=succeeded,
            )

    async def _invoke_redeploy(self, project_id: UUID) -> bool:
        """Run the redeploy with a timeout. Any failure counts as a failed attempt."""
        try:
            result = await asyncio.wait_for(
                self.redeploy(project_id), timeout=self.redeploy_timeout
            )
            return bool(result)
        except asyncio.TimeoutError:
            logger.error(
                "redeploy_timeout",
                project_id=str(project_id),
                timeout_sec=self.redeploy_timeout,
            )
            return False
        except Exception as e:
            logger.error(
                "redeploy_error",
                project_id=str(project_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def reset(self, project_id: UUID) -> HealthState:
        """
        Manually clear a degraded or recovering project back to healthy.

        Raises:
            ProjectNotFoundError: If the project does not exist
        """
        async with self._lock_for(project_id):
            async with self.store_scope() as store:
                await store.update(
                    project_id,
                    health_state=HealthState.HEALTHY,
                    recovery_attempts=0,
                    consecutive_failures=0,
                    last_deploy_status=None,
                )
        logger.info("self_healing_reset", project_id=str(project_id))
        return HealthState.HEALTHY
