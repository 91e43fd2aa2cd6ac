"""GitHub backend: REST for repositories and teams, GraphQL for branch rules."""

import logging
import re
from typing import Any

import httpx

from ..errors import ProviderApiError
from ..models.schemas import Policy, PolicyScope, PolicyType, Repository
from .azure_devops import AzureDevOpsClient
from .base import GitProvider

logger = logging.getLogger(__name__)

TEAMS_QUERY = """
query findTeam($org: String!, $name: String!, $endCursor: String) {
  organization(login: $org) {
    teams(first: 100, after: $endCursor, query: $name) {
      nodes { name id slug }
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""

IS_EMPTY_QUERY = """
query isEmpty($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) { isEmpty }
}
"""

BRANCH_RULES_QUERY = """
query branchRules($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    branchProtectionRules(first: 100) {
      nodes {
        id
        pattern
        requiresApprovingReviews
        requiredApprovingReviewCount
        requiresCodeOwnerReviews
        requiresStatusChecks
        requiredStatusCheckContexts
        requiresConversationResolution
      }
    }
  }
}
"""

CREATE_BRANCH_RULE_MUTATION = """
mutation createRule($input: CreateBranchProtectionRuleInput!) {
  createBranchProtectionRule(input: $input) {
    branchProtectionRule { id pattern }
  }
}
"""

DELETE_BRANCH_RULE_MUTATION = """
mutation deleteRule($id: ID!) {
  deleteBranchProtectionRule(input: {branchProtectionRuleId: $id}) { clientMutationId }
}
"""


def team_slug(team: str) -> str:
    """GitHub team slug: lowercased, whitespace removed."""
    return re.sub(r"\s+", "", team).lower()


class GitHubClient:
    """Simple async client for the GitHub REST and GraphQL APIs."""

    def __init__(self, token: str, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = "https://api.github.com"
        self.headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "service-provisioner",
        }
        if token:
            self.headers["Authorization"] = f"token {token}"
        self.transport = transport
        self.timeout = httpx.Timeout(connect=5.0, read=60.0, write=10.0, pool=5.0)

    async def request(self, method: str, path: str, *, json: Any = None, allow_404: bool = False) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport, headers=self.headers) as client:
            response = await client.request(method, f"{self.base_url}{path}", json=json)
        if allow_404 and response.status_code == 404:
            return None
        if response.is_error:
            raise ProviderApiError(
                f"{method} {path} failed with HTTP {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()

    async def graphql(self, query: str, variables: dict[str, Any]) -> dict:
        data = await self.request("POST", "/graphql", json={"query": query, "variables": variables})
        if data.get("errors"):
            messages = "; ".join(e.get("message", "") for e in data["errors"])
            raise ProviderApiError(f"GitHub GraphQL error: {messages}")
        return data.get("data") or {}

    async def find_team(self, org: str, name: str) -> dict | None:
        """Find a team by its exact name, following pagination."""
        cursor = None
        while True:
            data = await self.graphql(TEAMS_QUERY, {"org": org, "name": name, "endCursor": cursor})
            teams = ((data.get("organization") or {}).get("teams")) or {}
            for node in teams.get("nodes") or []:
                if node.get("name") == name:
                    return node
            page_info = teams.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return None
            cursor = page_info.get("endCursor")


class GitHubProvider(GitProvider):
    """
    Repositories hosted in a GitHub organization, built by Azure Pipelines
    through a GitHub service connection.
    """

    name = "github"
    supports_team_binding = True

    def __init__(
        self,
        client: GitHubClient,
        pipelines: AzureDevOpsClient,
        org: str,
        project: str,
        service_connection: str | None = None,
    ):
        super().__init__(pipelines)
        self.client = client
        self.org = org
        self.project = project
        self.service_connection = service_connection or org
        self._service_connection_id: str | None = None

    def repository_path(self, service_name: str) -> str:
        return f"{self.org}/{self.project}-{service_name}"

    @staticmethod
    def _repository(data: dict) -> Repository:
        return Repository(
            id=data["node_id"],
            name=data["name"],
            full_name=data["full_name"],
            provider="github",
            remote_url=data["clone_url"],
            ssh_url=data.get("ssh_url"),
            web_url=data.get("html_url"),
        )

    async def find_repository(self, name: str) -> Repository | None:
        data = await self.client.request("GET", f"/repos/{name}", allow_404=True)
        return self._repository(data) if data else None

    async def create_repository(self, name: str) -> Repository:
        owner, repo_name = name.split("/", 1)
        data = await self.client.request(
            "POST", f"/orgs/{owner}/repos", json={"name": repo_name, "private": True}
        )
        return self._repository(data)

    async def is_populated(self, repo: Repository) -> bool:
        owner, name = repo.full_name.split("/", 1)
        data = await self.client.graphql(IS_EMPTY_QUERY, {"owner": owner, "name": name})
        return (data.get("repository") or {}).get("isEmpty") is False

    async def add_topics(self, repo: Repository, topics: list[str]) -> None:
        await self.client.request("PUT", f"/repos/{repo.full_name}/topics", json={"names": topics})

    async def find_team(self, team: str) -> str | None:
        node = await self.client.find_team(self.org, team)
        return node.get("id") if node else None

    async def bind_team(self, repo: Repository, team: str, permission: str) -> bool:
        """Grant a team a permission on the repository. Returns False if the team is missing."""
        node = await self.client.find_team(self.org, team)
        if not node:
            logger.warning("Team %s not found", team)
            return False
        slug = node.get("slug") or team_slug(team)
        logger.info("Adding %s permissions for %s repo to %s team", permission, repo.name, team)
        await self.client.request(
            "PUT",
            f"/orgs/{self.org}/teams/{slug}/repos/{repo.full_name}",
            json={"permission": permission},
        )
        return True

    async def resolve_reviewer_id(self, reviewer: str, project: str) -> str:
        # Reviews are enforced through CODEOWNERS; the rule only needs the name
        return reviewer

    async def list_policies(self, repo: Repository, scope: PolicyScope) -> list[Policy]:
        owner, name = repo.full_name.split("/", 1)
        data = await self.client.graphql(BRANCH_RULES_QUERY, {"owner": owner, "name": name})
        rules = (((data.get("repository") or {}).get("branchProtectionRules")) or {}).get("nodes") or []
        return [
            Policy(
                type=PolicyType.BRANCH_PROTECTION_RULE,
                scope=scope,
                settings={k: v for k, v in rule.items() if k not in ("id", "pattern")},
                id=rule["id"],
            )
            for rule in rules
            if rule.get("pattern") == scope.pattern
        ]

    async def create_policy(self, repo: Repository, policy: Policy) -> Policy:
        return (await self.create_policy_set(repo, policy.scope, [policy]))[0]

    async def create_policy_set(
        self, repo: Repository, scope: PolicyScope, policies: list[Policy]
    ) -> list[Policy]:
        """Fold the whole policy set of a branch into one branch protection rule."""
        rule = branch_rule_input(repo.id, scope, policies)
        logger.info('Create branch rule for "%s" pattern', scope.pattern)
        data = await self.client.graphql(CREATE_BRANCH_RULE_MUTATION, {"input": rule})
        created = (data.get("createBranchProtectionRule") or {}).get("branchProtectionRule") or {}
        settings = {k: v for k, v in rule.items() if k not in ("repositoryId", "pattern")}
        return [
            Policy(type=PolicyType.BRANCH_PROTECTION_RULE, scope=scope, settings=settings, id=created.get("id"))
        ]

    async def delete_policy(self, repo: Repository, policy: Policy) -> None:
        await self.client.graphql(DELETE_BRANCH_RULE_MUTATION, {"id": policy.id})

    async def _get_service_connection_id(self) -> str:
        if self._service_connection_id is None:
            endpoint_id = await self.pipelines.find_service_endpoint_id(self.service_connection)
            if not endpoint_id:
                raise ProviderApiError(
                    f"No service connection named '{self.service_connection}' in Azure DevOps project"
                )
            self._service_connection_id = endpoint_id
        return self._service_connection_id

    async def pipeline_repository(self, repo: Repository) -> dict[str, Any]:
        return {
            "id": repo.full_name,
            "name": repo.full_name,
            "type": "GitHub",
            "url": repo.remote_url,
            "properties": {"connectedServiceId": await self._get_service_connection_id()},
        }


def branch_rule_input(repository_id: str, scope: PolicyScope, policies: list[Policy]) -> dict[str, Any]:
    """
    Map a computed policy set onto a GitHub branch protection rule.

    Reviewer policies turn on code owner reviews, the approver count becomes
    the required approving review count, build validation requires the
    pipeline status check and resolved comments require conversation
    resolution. Label and merge strategy policies have no rule equivalent.
    """
    by_type: dict[PolicyType, list[Policy]] = {}
    for policy in policies:
        by_type.setdefault(policy.type, []).append(policy)

    min_approvers = by_type.get(PolicyType.MIN_APPROVER_COUNT)
    approver_count = min_approvers[0].settings.get("minimumApproverCount", 0) if min_approvers else 0
    requires_reviewers = PolicyType.REQUIRED_REVIEWER in by_type

    contexts = [
        p.settings["displayName"]
        for p in by_type.get(PolicyType.BUILD_VALIDATION, [])
        if p.settings.get("displayName")
    ]

    return {
        "repositoryId": repository_id,
        "pattern": scope.pattern,
        "requiresApprovingReviews": bool(approver_count) or requires_reviewers,
        "requiredApprovingReviewCount": approver_count,
        "requiresCodeOwnerReviews": requires_reviewers,
        "dismissesStaleReviews": True,
        "isAdminEnforced": True,
        "requiresStatusChecks": bool(contexts),
        "requiresStrictStatusChecks": bool(contexts),
        "requiredStatusCheckContexts": contexts,
        "requiresConversationResolution": PolicyType.RESOLVED_COMMENTS_REQUIRED in by_type,
    }
