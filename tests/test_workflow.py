"""Tests for the end-to-end provisioning workflow."""

import pytest

from service_provisioner.errors import StepFailedError, TeamNotFoundError, UnsupportedBranchScopeError
from service_provisioner.workflow import ServiceProvisioner


class TestFullRun:
    @pytest.mark.asyncio
    async def test_new_service(self, make_context, fake_provider):
        """Test a complete run for a new service on an empty organization."""
        context = make_context()

        await ServiceProvisioner(context).run()

        repo = fake_provider.repositories["acme/proj-orders-api"]
        assert sorted(fake_provider.branches(repo)) == ["develop", "master"]
        assert set(fake_provider.pipeline_defs) == {"orders-api", "orders-api-develop", "orders-api-master"}
        assert len(fake_provider.policies[(repo.id, "develop")]) == 6
        assert len(fake_provider.policies[(repo.id, "master")]) == 6
        assert fake_provider.topics[repo.full_name] == ["proj"]
        assert ("proj-Developer", "push") in fake_provider.bindings
        builds = [c for c in fake_provider.calls if c.startswith("queue_build")]
        assert builds == ["queue_build:refs/heads/master", "queue_build:refs/heads/develop"]

    @pytest.mark.asyncio
    async def test_second_run_creates_nothing(self, make_context, fake_provider):
        """Test that re-running only recreates policies and queues builds."""
        await ServiceProvisioner(make_context()).run()
        created = [c for c in fake_provider.calls if c.startswith("create_")]

        await ServiceProvisioner(make_context()).run()

        assert [c for c in fake_provider.calls if c.startswith("create_")] == created

    @pytest.mark.asyncio
    async def test_deployment_type(self, make_context, fake_provider):
        await ServiceProvisioner(make_context("deployment")).run()

        assert "orders-api" not in fake_provider.pipeline_defs
        assert not any(c.startswith("queue_build") for c in fake_provider.calls)
        repo = fake_provider.repositories["acme/proj-orders-api"]
        policy_types = [p.type for p in fake_provider.policies[(repo.id, "develop")]]
        assert "BuildValidation" not in policy_types

    @pytest.mark.asyncio
    async def test_trigger_type_gets_no_builds(self, make_context, fake_provider):
        await ServiceProvisioner(make_context("trigger")).run()
        assert "orders-api" in fake_provider.pipeline_defs
        assert not any(c.startswith("queue_build") for c in fake_provider.calls)

    @pytest.mark.asyncio
    async def test_no_policies(self, make_context, fake_provider):
        await ServiceProvisioner(make_context(no_policies=True)).run()
        assert fake_provider.policies == {}


class TestFailures:
    @pytest.mark.asyncio
    async def test_missing_team_stops_before_changes(self, make_context, fake_provider):
        fake_provider.teams.discard("dev-team")

        with pytest.raises(StepFailedError) as exc_info:
            await ServiceProvisioner(make_context()).run()

        assert exc_info.value.step == "check teams"
        assert isinstance(exc_info.value.cause, TeamNotFoundError)
        assert fake_provider.repositories == {}

    @pytest.mark.asyncio
    async def test_invalid_branch_pattern_names_step(self, make_context, definition):
        context = make_context(definition=definition.model_copy(update={"policy_branches": ["hotfix*"]}))

        with pytest.raises(StepFailedError, match="reconcile policies") as exc_info:
            await ServiceProvisioner(context).run()

        assert isinstance(exc_info.value.cause, UnsupportedBranchScopeError)


class TestOnlyUpdatePolicies:
    @pytest.mark.asyncio
    async def test_missing_repository(self, make_context):
        with pytest.raises(StepFailedError, match="not found"):
            await ServiceProvisioner(make_context(only_update_policies=True)).run()

    @pytest.mark.asyncio
    async def test_replaces_policies_only(self, make_context, fake_provider):
        await ServiceProvisioner(make_context()).run()
        repo = fake_provider.repositories["acme/proj-orders-api"]
        old_ids = {p.id for p in fake_provider.policies[(repo.id, "develop")]}
        calls_before = len(fake_provider.calls)

        await ServiceProvisioner(make_context(only_update_policies=True)).run()

        new_calls = fake_provider.calls[calls_before:]
        assert all(c.startswith("delete_policy") for c in new_calls)
        assert len(new_calls) == 12
        new_ids = {p.id for p in fake_provider.policies[(repo.id, "develop")]}
        assert len(new_ids) == 6
        assert not new_ids & old_ids
