"""Provider interface shared by the Azure Repos and GitHub backends."""

import logging
from abc import ABC, abstractmethod
from typing import Any

from ..models.schemas import BuildRun, Pipeline, PipelineSpec, Policy, PolicyScope, Repository
from .azure_devops import AzureDevOpsClient

logger = logging.getLogger(__name__)


class GitProvider(ABC):
    """
    Repository, pipeline, policy and team operations over one hosting backend.

    Both variants build and deploy through Azure Pipelines, so pipeline and
    build operations are implemented here against the shared Azure DevOps
    client. Variants only describe how their repositories are referenced by
    a pipeline definition.
    """

    name: str = ""
    supports_team_binding: bool = False

    def __init__(self, pipelines: AzureDevOpsClient):
        self.pipelines = pipelines

    # Repositories

    @abstractmethod
    def repository_path(self, service_name: str) -> str:
        """Name the repository of a service is looked up and created under."""

    @abstractmethod
    async def find_repository(self, name: str) -> Repository | None:
        ...

    @abstractmethod
    async def create_repository(self, name: str) -> Repository:
        ...

    @abstractmethod
    async def is_populated(self, repo: Repository) -> bool:
        ...

    async def add_topics(self, repo: Repository, topics: list[str]) -> None:
        """Tag the repository. Backends without topics ignore this."""
        return None

    # Teams

    async def find_team(self, team: str) -> str | None:
        return None

    async def bind_team(self, repo: Repository, team: str, permission: str) -> bool:
        raise NotImplementedError(f"{self.name} does not support team binding")

    # Policies

    @abstractmethod
    async def resolve_reviewer_id(self, reviewer: str, project: str) -> str:
        ...

    @abstractmethod
    async def list_policies(self, repo: Repository, scope: PolicyScope) -> list[Policy]:
        ...

    @abstractmethod
    async def create_policy(self, repo: Repository, policy: Policy) -> Policy:
        ...

    @abstractmethod
    async def delete_policy(self, repo: Repository, policy: Policy) -> None:
        ...

    async def create_policy_set(
        self, repo: Repository, scope: PolicyScope, policies: list[Policy]
    ) -> list[Policy]:
        """Create the full policy set of one branch, in order."""
        created = []
        for policy in policies:
            logger.info("Create %s branch policy on %s", getattr(policy.type, "value", policy.type), scope.ref_name)
            created.append(await self.create_policy(repo, policy))
        return created

    # Pipelines

    @abstractmethod
    async def pipeline_repository(self, repo: Repository) -> dict[str, Any]:
        """Repository descriptor embedded in a build definition."""

    async def find_pipeline(self, name: str) -> Pipeline | None:
        definitions = await self.pipelines.list_definitions(name=name)
        for definition in definitions:
            if definition.get("name") == name:
                return _pipeline_from_definition(definition)
        return None

    async def create_pipeline(self, repo: Repository, spec: PipelineSpec) -> Pipeline:
        """Create a YAML pipeline, then enable build status reporting on commits."""
        repository = await self.pipeline_repository(repo)
        repository["defaultBranch"] = spec.branch
        body = {
            "name": spec.name,
            "path": spec.folder or "\\",
            "repository": repository,
            "process": {"type": 2, "yamlFilename": spec.yaml_path},
            "triggers": [
                {
                    "triggerType": "continuousIntegration",
                    "settingsSourceType": 2,
                    "branchFilters": [],
                    "pathFilters": [],
                    "batchChanges": False,
                    "maxConcurrentBuildsPerBranch": 1,
                }
            ],
        }
        definition = await self.pipelines.create_definition(body)

        # Manually created definitions do not report their status on commits
        definition.setdefault("repository", {}).setdefault("properties", {})["reportBuildStatus"] = "true"
        definition = await self.pipelines.update_definition(definition["id"], definition)

        pipeline = _pipeline_from_definition(definition)
        pipeline.kind = spec.kind
        return pipeline

    async def list_pipelines_in_folder(self, folder: str) -> list[str]:
        definitions = await self.pipelines.list_definitions(path=folder)
        return [d["name"] for d in definitions if d.get("path") == folder]

    async def delete_pipeline_folder(self, folder: str) -> None:
        await self.pipelines.delete_folder(folder)

    # Builds

    async def queue_build(self, pipeline_id: int, branch_ref: str) -> BuildRun:
        build = await self.pipelines.queue_build(pipeline_id, branch_ref)
        return _build_from_json(build)

    async def get_build(self, build_id: int) -> BuildRun:
        return _build_from_json(await self.pipelines.get_build(build_id))

    async def get_timeline_states(self, build_id: int, step_names: list[str]) -> list[str]:
        """States of the named timeline records of a build."""
        timeline = await self.pipelines.get_timeline(build_id)
        records = (timeline or {}).get("records") or []
        return [r.get("state") for r in records if r.get("name") in step_names]


def _pipeline_from_definition(definition: dict) -> Pipeline:
    return Pipeline(
        id=definition["id"],
        name=definition["name"],
        folder=definition.get("path"),
        repository_id=(definition.get("repository") or {}).get("id"),
    )


def _build_from_json(build: dict) -> BuildRun:
    return BuildRun(
        id=build["id"],
        pipeline_id=(build.get("definition") or {}).get("id"),
        branch_ref=build.get("sourceBranch"),
        result=build.get("result"),
        web_url=((build.get("_links") or {}).get("web") or {}).get("href"),
    )
