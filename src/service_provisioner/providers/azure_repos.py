"""Azure Repos backend."""

import logging
from typing import Any

from ..errors import ProviderApiError
from ..models.schemas import Policy, PolicyScope, PolicyType, Repository
from .azure_devops import AzureDevOpsClient
from .base import GitProvider

logger = logging.getLogger(__name__)

# Azure DevOps policy type ids and display names
POLICY_TYPES: dict[PolicyType, tuple[str, str]] = {
    PolicyType.REQUIRED_REVIEWER: ("fd2167ab-b0be-447a-8ec8-39368250530e", "Required reviewers"),
    PolicyType.NO_LABEL_ALTERATION: ("cbdc66da-9728-4af8-aada-9a5a32e4a226", "Status"),
    PolicyType.MIN_APPROVER_COUNT: ("fa4e907d-c16b-4a4c-9dfa-4906e5d171dd", "Minimum number of reviewers"),
    PolicyType.RESOLVED_COMMENTS_REQUIRED: ("c6a1889d-b943-4856-b76f-9e46bb6b0df2", "Comment requirements"),
    PolicyType.MERGE_STRATEGY: ("fa4e907d-c16b-4a4c-9dfa-4916e5d171ab", "Require a merge strategy"),
    PolicyType.BUILD_VALIDATION: ("0609b952-1397-4640-95ec-e00a01b2c241", "Build"),
}
_POLICY_TYPES_BY_ID = {type_id: policy_type for policy_type, (type_id, _) in POLICY_TYPES.items()}


def policy_configuration(policy: Policy) -> dict[str, Any]:
    """Render a policy as an Azure DevOps policy configuration."""
    type_id, display_name = POLICY_TYPES[policy.type]
    scope = policy.scope
    return {
        "isEnabled": True,
        "isBlocking": True,
        "type": {"id": type_id, "displayName": display_name},
        "settings": {
            **policy.settings,
            "scope": [
                {
                    "repositoryId": scope.repository_id,
                    "refName": scope.ref_name,
                    "matchKind": scope.match_kind.value.capitalize(),
                }
            ],
        },
    }


class AzureReposProvider(GitProvider):
    """Repositories hosted in Azure Repos, in the same project as the pipelines."""

    name = "azdo"

    def __init__(self, client: AzureDevOpsClient):
        super().__init__(client)
        self.client = client

    def repository_path(self, service_name: str) -> str:
        return service_name

    @staticmethod
    def _repository(data: dict) -> Repository:
        return Repository(
            id=data["id"],
            name=data["name"],
            full_name=data["name"],
            provider="azdo",
            remote_url=data["remoteUrl"],
            ssh_url=data.get("sshUrl"),
            web_url=data.get("webUrl"),
        )

    async def find_repository(self, name: str) -> Repository | None:
        data = await self.client.get_repository(name)
        return self._repository(data) if data else None

    async def create_repository(self, name: str) -> Repository:
        return self._repository(await self.client.create_repository(name))

    async def is_populated(self, repo: Repository) -> bool:
        # A freshly pushed skeleton has at least master and develop
        refs = await self.client.list_refs(repo.id)
        return len(refs) > 1

    async def resolve_reviewer_id(self, reviewer: str, project: str) -> str:
        """
        Resolve a reviewer to an Azure DevOps identity id.

        Accepted forms:
            user@example.com -> user
            Project/Team     -> team of another project
            Team             -> team of the current project
        """
        if "@" in reviewer:
            reviewer_id = await self.client.find_user_id(reviewer)
        elif "/" in reviewer:
            team_project, team = reviewer.rsplit("/", 1)
            reviewer_id = await self.client.find_team_id(team_project, team)
        else:
            reviewer_id = await self.client.find_team_id(project, reviewer)
        if not reviewer_id:
            raise ProviderApiError(f"Cannot resolve reviewer '{reviewer}'")
        logger.info("%s id: %s", reviewer, reviewer_id)
        return reviewer_id

    async def list_policies(self, repo: Repository, scope: PolicyScope) -> list[Policy]:
        configurations = await self.client.list_policies(repo.id, scope.ref_name)
        policies = []
        for configuration in configurations:
            policy_type = _POLICY_TYPES_BY_ID.get((configuration.get("type") or {}).get("id"))
            settings = dict(configuration.get("settings") or {})
            settings.pop("scope", None)
            policies.append(
                Policy(
                    type=policy_type or (configuration.get("type") or {}).get("displayName", "Unknown"),
                    scope=scope,
                    settings=settings,
                    id=str(configuration["id"]),
                )
            )
        return policies

    async def create_policy(self, repo: Repository, policy: Policy) -> Policy:
        created = await self.client.create_policy(policy_configuration(policy))
        return policy.model_copy(update={"id": str(created.get("id"))})

    async def delete_policy(self, repo: Repository, policy: Policy) -> None:
        await self.client.delete_policy(policy.id)

    async def pipeline_repository(self, repo: Repository) -> dict[str, Any]:
        return {
            "id": repo.id,
            "name": repo.name,
            "type": "TfsGit",
            "url": repo.remote_url,
            "properties": {},
        }
