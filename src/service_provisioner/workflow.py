"""End-to-end provisioning of a new service."""

import inspect
import logging
from typing import Any, Callable

import httpx

from .context import ProvisioningContext
from .errors import ProvisioningError, RepositoryNotFoundError, StepFailedError
from .services import (
    AccessBinder,
    BuildLauncher,
    PipelineProvisioner,
    PolicyReconciler,
    RepositoryProvisioner,
)

logger = logging.getLogger(__name__)


class ServiceProvisioner:
    """
    Drives one provisioning run.

    Steps run strictly in order and each one is idempotent, so a failed run
    is recovered by running it again. There is no rollback.
    """

    def __init__(
        self,
        context: ProvisioningContext,
        repositories: RepositoryProvisioner | None = None,
        pipelines: PipelineProvisioner | None = None,
        policies: PolicyReconciler | None = None,
        builds: BuildLauncher | None = None,
        access: AccessBinder | None = None,
    ):
        self.context = context
        self.repositories = repositories or RepositoryProvisioner(context)
        self.pipelines = pipelines or PipelineProvisioner(context)
        self.policies = policies or PolicyReconciler(context)
        self.builds = builds or BuildLauncher(context)
        self.access = access or AccessBinder(context)

    async def _step(self, name: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Run one step, naming it in the error if it fails."""
        logger.debug("Step: %s", name)
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                result = await result
            return result
        except StepFailedError:
            raise
        except (ProvisioningError, httpx.HTTPError) as e:
            raise StepFailedError(name, e) from e

    async def run(self) -> None:
        context = self.context
        service = context.service
        logger.info("Provisioning %s service %s (%s) on %s", service.type, service.name, service.project, service.provider)

        await self._step("check teams", self.access.check_teams)

        if context.only_update_policies:
            await self.update_policies()
            return

        repo = await self._step("provision repository", self.repositories.provision)
        await self._step("populate repository", self.repositories.populate, repo)

        if service.has_build_pipeline:
            await self._step("create build pipeline", self.pipelines.create_build_pipeline)
        await self._step("remove empty pipeline folder", self.pipelines.remove_empty_pipeline_folder)

        await self._step("tag repository", self.repositories.tag, repo)
        if self.access.applies:
            await self._step("bind teams", self.access.bind_teams, repo)

        await self._step("create deployment pipelines", self.pipelines.create_deploy_pipelines)

        if context.no_policies:
            logger.info("Skipping branch policies")
        else:
            await self._step("reconcile policies", self.policies.reconcile)

        if service.auto_builds and context.build_pipeline_id is not None:
            await self.launch_builds(context.build_pipeline_id)
        else:
            logger.info("No builds queued for %s services", service.type)

    async def update_policies(self) -> None:
        """Re-apply branch policies to an existing repository."""
        context = self.context
        repo = await self._step("find repository", self.repositories.find)
        if repo is None:
            raise StepFailedError(
                "find repository",
                RepositoryNotFoundError(f"Git repo {context.repository_path} not found"),
            )
        if context.service.has_build_pipeline:
            await self._step("create build pipeline", self.pipelines.create_build_pipeline)
        await self._step("reconcile policies", self.policies.reconcile)

    async def launch_builds(self, pipeline_id: int) -> None:
        master_id = await self._step("queue master build", self.builds.queue_master_build, pipeline_id)
        develop_id = await self._step(
            "queue develop build", self.builds.queue_develop_build, pipeline_id, master_id
        )
        await self._step(
            "wait for builds", self.builds.wait_for_builds_completion, master_id, develop_id
        )
