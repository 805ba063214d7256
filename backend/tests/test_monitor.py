"""
Monitoring service tests: probe handling and the per-project watcher arena.
"""

import asyncio

import pytest

from launchpad.core.models import HealthState, ProjectStatus
from launchpad.core.pipeline.monitor import HealthProbe, MonitoringService, ProbeError
from launchpad.core.pipeline.self_healing import HealthSample, SelfHealingTrigger

HEALTHY = HealthSample(reachable=True, latency_ms=80, error_rate=0.0)
DOWN = HealthSample(reachable=False, latency_ms=0, error_rate=1.0)


class FakeProbe:
    """Probe returning a fixed sample (or raising) and recording URLs."""

    def __init__(self, result=HEALTHY, block: bool = False):
        self.result = result
        self.block = block
        self.urls: list[str] = []
        self.called = asyncio.Event()

    async def __call__(self, url: str) -> HealthSample:
        self.urls.append(url)
        self.called.set()
        if self.block:
            # Park the watcher inside the probe until it is cancelled
            await asyncio.Event().wait()
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
async def monitor(trigger, probe, store_scope):
    service = MonitoringService(trigger, probe=probe, store_scope=store_scope, interval=3600)
    yield service
    await service.stop()


@pytest.fixture
async def deployed(make_project):
    return await make_project(
        status=ProjectStatus.DEPLOYED,
        deployed_url="https://shop-frontend-1234abcd.vercel.app",
    )


# ==========================================================================
# Single Checks
# ==========================================================================

class TestCheckNow:

    async def test_healthy_check(self, monitor, probe, redeploy, deployed):
        result = await monitor.check_now(deployed.id)

        assert result.state == HealthState.HEALTHY
        assert probe.urls == [deployed.deployed_url]
        assert redeploy.calls == []

    async def test_probe_error_fails_closed(self, monitor, probe, redeploy, deployed, store):
        probe.result = ProbeError("connection refused")

        result = await monitor.check_now(deployed.id)

        assert not result.healthy_check
        assert redeploy.calls == [deployed.id]
        project = await store.get(deployed.id)
        assert project.health_state == HealthState.HEALTHY

    async def test_not_deployed_is_not_probed(self, monitor, probe, make_project):
        project = await make_project()

        assert await monitor.check_now(project.id) is None
        assert probe.urls == []

    async def test_hung_redeploy_does_not_block_other_projects(self, store_scope, make_project):
        started = asyncio.Event()
        release = asyncio.Event()

        async def hung_redeploy(project_id):
            started.set()
            await release.wait()
            return True

        broken = await make_project(
            name="Broken Shop",
            status=ProjectStatus.DEPLOYED,
            deployed_url="https://broken-shop-1111aaaa.vercel.app",
        )
        healthy = await make_project(
            name="Healthy Shop",
            status=ProjectStatus.DEPLOYED,
            deployed_url="https://healthy-shop-2222bbbb.vercel.app",
        )
        samples = {broken.deployed_url: DOWN, healthy.deployed_url: HEALTHY}

        async def probe(url: str) -> HealthSample:
            return samples[url]

        trigger = SelfHealingTrigger(hung_redeploy, store_scope=store_scope, redeploy_timeout=30)
        service = MonitoringService(trigger, probe=probe, store_scope=store_scope, interval=3600)

        stuck = asyncio.create_task(service.check_now(broken.id))
        await asyncio.wait_for(started.wait(), timeout=2)

        result = await asyncio.wait_for(service.check_now(healthy.id), timeout=2)

        assert result.state == HealthState.HEALTHY
        assert not stuck.done()

        release.set()
        assert (await stuck).state == HealthState.HEALTHY


# ==========================================================================
# Watcher Arena
# ==========================================================================

class TestArena:

    @pytest.fixture
    def probe(self) -> FakeProbe:
        return FakeProbe(block=True)

    async def test_sync_watches_deployed_projects_only(self, monitor, probe, deployed, make_project):
        await make_project(name="Not Deployed")

        watched = await monitor.sync()
        await asyncio.wait_for(probe.called.wait(), timeout=2)

        assert watched == {deployed.id}
        assert monitor.watched == {deployed.id}

    async def test_sync_drops_deleted_projects(self, monitor, probe, deployed, store, db_session):
        await monitor.sync()
        await asyncio.wait_for(probe.called.wait(), timeout=2)

        await store.delete(deployed.id)
        await db_session.commit()
        watched = await monitor.sync()

        assert watched == set()
        assert monitor.watched == set()

    async def test_watch_is_idempotent(self, monitor, deployed):
        assert monitor.watch(deployed.id)
        assert not monitor.watch(deployed.id)

    async def test_unwatch(self, monitor, deployed):
        monitor.watch(deployed.id)

        assert await monitor.unwatch(deployed.id)
        assert not await monitor.unwatch(deployed.id)
        assert monitor.watched == set()

    async def test_watcher_exits_when_project_is_gone(self, monitor, deployed, store, db_session):
        await store.delete(deployed.id)
        await db_session.commit()

        monitor.watch(deployed.id)
        task = monitor._watchers[deployed.id]
        await asyncio.wait_for(task, timeout=2)

        assert monitor.watched == set()

    async def test_start_and_stop(self, monitor, probe, deployed):
        monitor.start()
        assert monitor.is_running
        await asyncio.wait_for(probe.called.wait(), timeout=2)

        await monitor.stop()

        assert not monitor.is_running
        assert monitor.watched == set()


# ==========================================================================
# HTTP Probe
# ==========================================================================

class TestHealthProbe:

    async def test_unreachable_url_raises_probe_error(self):
        probe = HealthProbe(timeout=2)

        with pytest.raises(ProbeError):
            await probe.check("http://127.0.0.1:9/")
