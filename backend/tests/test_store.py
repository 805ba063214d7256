"""
Project store tests.
"""

from uuid import uuid4

import pytest

from launchpad.core.models import HealthState, OperationStatus, ProjectStatus, SourceType
from launchpad.core.store import ProjectNotFoundError


class TestProjectStore:

    async def test_create_sets_initial_state(self, store):
        project = await store.create(
            name="Shop Frontend",
            source_type=SourceType.REPLIT,
            source_value="https://replit.com/@acme/shop",
        )

        assert project.status == ProjectStatus.REGISTERED
        assert project.normalized_status == OperationStatus.NONE
        assert project.auto_fix_status == OperationStatus.NONE
        assert project.ready_for_deploy is False
        assert project.health_state == HealthState.HEALTHY
        assert project.recovery_attempts == 0
        assert project.created_at is not None

    async def test_get_unknown_project(self, store):
        with pytest.raises(ProjectNotFoundError) as exc_info:
            await store.get(uuid4())
        assert isinstance(exc_info.value, LookupError)

    async def test_update(self, store, make_project):
        project = await make_project()

        updated = await store.update(project.id, status=ProjectStatus.QA_RUNNING, qa_report="")

        assert updated.status == ProjectStatus.QA_RUNNING
        assert updated.qa_report == ""

    @pytest.mark.parametrize("field", ["id", "source_type", "source_value", "created_at"])
    async def test_immutable_fields_rejected(self, store, make_project, field):
        project = await make_project()

        with pytest.raises(ValueError):
            await store.update(project.id, **{field: None})

    async def test_unknown_field_rejected(self, store, make_project):
        project = await make_project()

        with pytest.raises(ValueError):
            await store.update(project.id, flavour="vanilla")

    async def test_update_unknown_project(self, store):
        with pytest.raises(ProjectNotFoundError):
            await store.update(uuid4(), name="Ghost")

    async def test_list_monitorable(self, store, make_project):
        deployed = await make_project(deployed_url="https://shop-1234abcd.vercel.app")
        await make_project(name="Draft")

        monitorable = await store.list_monitorable()

        assert [p.id for p in monitorable] == [deployed.id]
        assert len(await store.list()) == 2

    async def test_delete(self, store, make_project):
        project = await make_project()

        await store.delete(project.id)

        with pytest.raises(ProjectNotFoundError):
            await store.get(project.id)

    async def test_scope_commits_for_other_sessions(self, store_scope, store, make_project):
        project = await make_project()

        async with store_scope() as scoped:
            await scoped.update(project.id, health_state=HealthState.DEGRADED)

        assert (await store.get(project.id)).health_state == HealthState.DEGRADED

    async def test_scope_rolls_back_on_error(self, store_scope, store, make_project):
        project = await make_project()

        with pytest.raises(RuntimeError):
            async with store_scope() as scoped:
                await scoped.update(project.id, name="Renamed")
                raise RuntimeError("boom")

        assert (await store.get(project.id)).name == "Shop Frontend"
