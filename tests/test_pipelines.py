"""Tests for pipeline provisioning."""

from unittest.mock import patch

import pytest
import pytest_asyncio

from service_provisioner.errors import ProviderApiError
from service_provisioner.models.schemas import DeployDecision, PipelineKind, PipelineSpec
from service_provisioner.services.pipelines import PipelineProvisioner
from service_provisioner.services.repository import RepositoryProvisioner


@pytest_asyncio.fixture
async def provisioned(make_context):
    """A context whose repository has been created and populated."""
    context = make_context()
    repositories = RepositoryProvisioner(context)
    repo = await repositories.provision()
    await repositories.populate(repo)
    return context


class TestBuildPipeline:
    @pytest.mark.asyncio
    async def test_created_once(self, provisioned, fake_provider):
        """Test that the build pipeline is looked up by name before creating."""
        pipelines = PipelineProvisioner(provisioned)

        first = await pipelines.create_build_pipeline()
        second = await pipelines.create_build_pipeline()

        assert first == second
        assert provisioned.build_pipeline_id == first
        assert fake_provider.calls.count("create_pipeline:orders-api") == 1
        assert fake_provider.pipeline_defs["orders-api"].kind == PipelineKind.BUILD

    @pytest.mark.asyncio
    async def test_uses_configured_folder(self, make_context, definition, fake_provider):
        context = make_context(definition=definition.model_copy(update={"build_pipeline_folder_path": "\\builds"}))
        context.repository = await RepositoryProvisioner(context).provision()

        await PipelineProvisioner(context).create_build_pipeline()

        assert fake_provider.pipeline_defs["orders-api"].folder == "\\builds"


class TestDeployDecision:
    @pytest.mark.asyncio
    async def test_cached_decision_avoids_clone(self, provisioned):
        """Test that a known decision is returned without cloning."""
        with patch("service_provisioner.services.pipelines.GitService.clone") as mock_clone:
            assert PipelineProvisioner(provisioned).should_create_deploy_pipelines() == DeployDecision.YES
        mock_clone.assert_not_called()

    @pytest.mark.asyncio
    async def test_clones_repository_when_decision_unknown(self, provisioned, settings):
        provisioned.deploy_decision = DeployDecision.UNKNOWN
        pipelines = PipelineProvisioner(provisioned)

        assert pipelines.should_create_deploy_pipelines() == DeployDecision.YES
        assert provisioned.deploy_decision == DeployDecision.YES
        assert list(settings.work_dir.iterdir()) == []


class TestDeployPipelines:
    @pytest.mark.asyncio
    async def test_develop_and_master(self, provisioned, fake_provider):
        created = await PipelineProvisioner(provisioned).create_deploy_pipelines()

        assert [p.name for p in created] == ["orders-api-develop", "orders-api-master"]
        assert fake_provider.pipeline_defs["orders-api-master"].kind == PipelineKind.DEPLOY_MASTER

    @pytest.mark.asyncio
    async def test_no_master_deployment(self, provisioned):
        provisioned.no_master_deployment = True
        created = await PipelineProvisioner(provisioned).create_deploy_pipelines()
        assert [p.name for p in created] == ["orders-api-develop"]

    @pytest.mark.asyncio
    async def test_no_deployment(self, provisioned, fake_provider):
        provisioned.no_deployment = True
        assert await PipelineProvisioner(provisioned).create_deploy_pipelines() == []
        assert "create_pipeline:orders-api-develop" not in fake_provider.calls

    @pytest.mark.asyncio
    async def test_lib_implies_no_deployment(self, make_context):
        context = make_context(lib=True)
        assert context.no_deployment
        assert await PipelineProvisioner(context).create_deploy_pipelines() == []

    @pytest.mark.asyncio
    async def test_decision_no_skips(self, provisioned):
        provisioned.deploy_decision = DeployDecision.NO
        assert await PipelineProvisioner(provisioned).create_deploy_pipelines() == []

    @pytest.mark.asyncio
    async def test_existing_deploy_pipeline_is_kept(self, provisioned, fake_provider):
        pipelines = PipelineProvisioner(provisioned)
        await pipelines.create_deploy_pipelines()
        await pipelines.create_deploy_pipelines()
        assert fake_provider.calls.count("create_pipeline:orders-api-develop") == 1


class TestPipelineFolder:
    @pytest.mark.asyncio
    async def test_empty_folder_deleted(self, provisioned, fake_provider):
        assert await PipelineProvisioner(provisioned).remove_empty_pipeline_folder() is True
        assert "delete_pipeline_folder:\\orders-api" in fake_provider.calls

    @pytest.mark.asyncio
    async def test_folder_with_pipelines_kept(self, provisioned, fake_provider):
        await fake_provider.create_pipeline(
            provisioned.repository,
            PipelineSpec(name="other", kind=PipelineKind.BUILD, yaml_path="x.yml", branch="master",
                         folder="\\orders-api"),
        )
        assert await PipelineProvisioner(provisioned).remove_empty_pipeline_folder() is False
        assert "delete_pipeline_folder:\\orders-api" not in fake_provider.calls

    @pytest.mark.asyncio
    async def test_missing_folder_tolerated(self, provisioned, fake_provider):
        async def _not_found(folder):
            raise ProviderApiError("not found", status_code=404)

        fake_provider.delete_pipeline_folder = _not_found
        assert await PipelineProvisioner(provisioned).remove_empty_pipeline_folder() is False
