"""
Monitoring Service - periodic health checks of deployed projects.

Keeps one watcher task per monitored project, keyed by project id, so a
hung redeploy for one project never delays checks of another, and removing
a project cancels exactly its own watcher.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Optional
from uuid import UUID

import aiohttp
import structlog

from launchpad.core.config import settings
from launchpad.core.pipeline.self_healing import (
    EvaluationResult,
    HealthSample,
    SelfHealingTrigger,
    StoreScope,
)
from launchpad.core.store import ProjectNotFoundError, project_store_scope

logger = structlog.get_logger(__name__)

ProbeFn = Callable[[str], Awaitable[HealthSample]]


class ProbeError(Exception):
    """Raised when a deployed URL cannot be reached at all."""


class HealthProbe:
    """Single HTTP GET against a deployed URL."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.HEALTH_CHECK_TIMEOUT_SECONDS

    async def check(self, url: str) -> HealthSample:
        """
        Probe a deployed URL.

        Returns:
            HealthSample; non-success responses give error_rate 1.0

        Raises:
            ProbeError: On connection errors or timeout
        """
        start = time.monotonic()
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    latency_ms = (time.monotonic() - start) * 1000
                    return HealthSample(
                        reachable=True,
                        latency_ms=round(latency_ms, 2),
                        error_rate=0.0 if resp.status < 400 else 1.0,
                    )
        except asyncio.TimeoutError as e:
            raise ProbeError(f"Timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise ProbeError(str(e)) from e

    __call__ = check


class MonitoringService:
    """
    Arena of per-project watcher tasks.

    sync() reconciles the arena with the store: every project with a
    deployed_url gets a watcher, watchers of vanished projects are cancelled.
    start() runs sync() on the check interval until stop().
    """

    def __init__(
        self,
        trigger: SelfHealingTrigger,
        probe: Optional[ProbeFn] = None,
        store_scope: StoreScope = project_store_scope,
        interval: Optional[float] = None,
    ):
        self.trigger = trigger
        self.probe = probe or HealthProbe()
        self.store_scope = store_scope
        self.interval = interval if interval is not None else settings.HEALTH_CHECK_INTERVAL_SECONDS
        self._watchers: dict[UUID, asyncio.Task] = {}
        self._supervisor: Optional[asyncio.Task] = None

    @property
    def watched(self) -> set[UUID]:
        return {pid for pid, task in self._watchers.items() if not task.done()}

    @property
    def is_running(self) -> bool:
        return self._supervisor is not None and not self._supervisor.done()

    # ==========================================================================
    # Arena management
    # ==========================================================================

    def watch(self, project_id: UUID) -> bool:
        """Start a watcher for a project. Returns False if one is already running."""
        task = self._watchers.get(project_id)
        if task is not None and not task.done():
            return False
        self._watchers[project_id] = asyncio.create_task(
            self._watch_loop(project_id), name=f"monitor:{project_id}"
        )
        logger.info("monitor_watch_started", project_id=str(project_id))
        return True

    async def unwatch(self, project_id: UUID) -> bool:
        """Cancel a project's watcher. Returns False if none was running."""
        task = self._watchers.pop(project_id, None)
        self.trigger.forget(project_id)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        logger.info("monitor_watch_stopped", project_id=str(project_id))
        return True

    async def sync(self) -> set[UUID]:
        """Reconcile watchers with the monitorable projects in the store."""
        async with self.store_scope() as store:
            projects = await store.list_monitorable()

        wanted = {project.id for project in projects}
        for project_id in wanted:
            self.watch(project_id)
        for project_id in set(self._watchers) - wanted:
            await self.unwatch(project_id)

        logger.debug("monitor_synced", watched=len(wanted))
        return wanted

    # ==========================================================================
    # Checks
    # ==========================================================================

    async def check_now(self, project_id: UUID) -> Optional[EvaluationResult]:
        """
        Run one probe + evaluate cycle for a project.

        Returns:
            EvaluationResult, or None if the project has no deployed_url

        Raises:
            ProjectNotFoundError: If the project no longer exists
        """
        async with self.store_scope() as store:
            project = await store.get(project_id)
            url = project.deployed_url

        if not url:
            return None

        start = time.monotonic()
        try:
            sample: Optional[HealthSample] = await self.probe(url)
        except Exception as e:
            # Fail closed: an unreachable deployment is a failed check
            logger.warning(
                "health_probe_error",
                project_id=str(project_id),
                url=url,
                error=str(e),
                error_type=type(e).__name__,
                response_time_ms=round((time.monotonic() - start) * 1000, 2),
            )
            sample = None

        return await self.trigger.evaluate(project_id, sample)

    async def _watch_loop(self, project_id: UUID) -> None:
        while True:
            try:
                await self.check_now(project_id)
            except ProjectNotFoundError:
                logger.info("monitor_project_gone", project_id=str(project_id))
                self._watchers.pop(project_id, None)
                self.trigger.forget(project_id)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "monitor_check_error",
                    project_id=str(project_id),
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            await asyncio.sleep(self.interval)

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def _supervise(self) -> None:
        logger.info("monitor_started", interval_sec=self.interval)
        while True:
            try:
                await self.sync()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "monitor_sync_error",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.is_running:
            return
        self._supervisor = asyncio.create_task(self._supervise(), name="monitor:supervisor")

    async def stop(self) -> None:
        """Cancel the supervisor and every watcher."""
        tasks = list(self._watchers.values())
        if self._supervisor is not None:
            tasks.append(self._supervisor)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._watchers.clear()
        self._supervisor = None
        logger.info("monitor_stopped")
