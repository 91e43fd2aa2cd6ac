"""Build and deployment pipeline provisioning."""

import logging

from ..context import ProvisioningContext
from ..errors import ProviderApiError
from ..models.schemas import NO_AUTO_BUILD_TYPES, DeployDecision, Pipeline, PipelineKind, PipelineSpec
from .git import GitService
from .repository import select_remote_url
from .skeleton import deploy_decision_for

logger = logging.getLogger(__name__)

BUILD_PIPELINE_YAML = "azure-pipelines.yml"
BUILD_PIPELINE_BRANCH = "master"

_DEPLOY_KINDS = {
    "develop": PipelineKind.DEPLOY_DEVELOP,
    "master": PipelineKind.DEPLOY_MASTER,
}


class PipelineProvisioner:
    """Creates the build pipeline and, when needed, the deployment pipelines."""

    def __init__(self, context: ProvisioningContext):
        self.context = context

    @property
    def provider(self):
        return self.context.provider

    async def create_build_pipeline(self) -> int:
        """Create the build pipeline unless one with the service name exists."""
        name = self.context.service.name
        existing = await self.provider.find_pipeline(name)
        if existing:
            logger.info("Pipeline %s already created. Skip... (id:%s)", name, existing.id)
            self.context.build_pipeline_id = existing.id
            return existing.id

        folder = self.context.definition.build_pipeline_folder_path
        logger.info("Create build pipeline: %s%s", name, f" with path {folder}" if folder else "")
        pipeline = await self.provider.create_pipeline(
            self.context.repository,
            PipelineSpec(
                name=name,
                kind=PipelineKind.BUILD,
                yaml_path=BUILD_PIPELINE_YAML,
                branch=BUILD_PIPELINE_BRANCH,
                folder=folder,
            ),
        )
        self.context.build_pipeline_id = pipeline.id
        return pipeline.id

    def should_create_deploy_pipelines(self) -> DeployDecision:
        """
        Decide whether deployment pipelines are needed.

        Uses the decision cached on the run when known. Otherwise clones the
        repository into a scratch directory, looks for the deploy marker and
        caches the answer.
        """
        if self.context.deploy_decision != DeployDecision.UNKNOWN:
            return self.context.deploy_decision

        settings = self.context.settings
        remote = select_remote_url(
            self.context.repository,
            token=settings.git_token_for(self.context.service.provider),
            no_ssh=settings.no_ssh,
        )
        with self.context.scratch_dir("deploy-check") as scratch:
            clone_dir = scratch / "clone"
            GitService.clone(remote, clone_dir)
            self.context.deploy_decision = deploy_decision_for(clone_dir)
        return self.context.deploy_decision

    async def create_deploy_pipeline(self, branch: str) -> Pipeline:
        """Create the '<service>-<branch>' deployment pipeline if missing."""
        name = f"{self.context.service.name}-{branch}"
        existing = await self.provider.find_pipeline(name)
        if existing:
            logger.info("Pipeline %s already created. Skip... (id:%s)", name, existing.id)
            return existing

        folder = self.context.definition.deploy_pipeline_folder_path
        logger.info("Create deployment pipeline: %s%s", name, f" with path {folder}" if folder else "")
        return await self.provider.create_pipeline(
            self.context.repository,
            PipelineSpec(
                name=name,
                kind=_DEPLOY_KINDS.get(branch, PipelineKind.DEPLOY_DEVELOP),
                yaml_path=f"azure-pipelines-{branch}.yml",
                branch=f"refs/heads/{branch}",
                folder=folder,
            ),
        )

    async def create_deploy_pipelines(self) -> list[Pipeline]:
        """Create the develop and master deployment pipelines as the run allows."""
        context = self.context
        if context.no_deployment:
            logger.info("Skipping creation of deployment pipelines")
            return []
        if context.service.type in NO_AUTO_BUILD_TYPES:
            logger.info("Skipping deployment pipelines for %s services", context.service.type)
            return []
        if self.should_create_deploy_pipelines() != DeployDecision.YES:
            logger.info("No %s deployment marker in the repository, no deployment pipelines", context.service.name)
            return []

        pipelines = [await self.create_deploy_pipeline("develop")]
        if context.no_master_deployment:
            logger.info("Skipping creation of master deployment pipeline")
        else:
            pipelines.append(await self.create_deploy_pipeline("master"))
        return pipelines

    async def remove_empty_pipeline_folder(self) -> bool:
        r"""Delete the '\<service>' pipeline folder when it holds no pipelines."""
        name = self.context.service.name
        folder = f"\\{name}"
        blocking = await self.provider.list_pipelines_in_folder(folder)
        if blocking:
            logger.info(
                "Won't delete folder %s which contains the following pipelines:\n%s",
                name,
                "\n".join(f"   - {p}" for p in blocking),
            )
            return False
        logger.info("Delete empty folder %s", name)
        try:
            await self.provider.delete_pipeline_folder(folder)
        except ProviderApiError as e:
            if e.status_code != 404:
                raise
            logger.info("No pipeline folder %s to delete", name)
            return False
        return True
