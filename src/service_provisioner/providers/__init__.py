"""Hosting backends for the service provisioner."""

import httpx

from ..config import ProjectDefinition, Settings
from ..errors import UnsupportedProviderError
from .azure_devops import AzureDevOpsClient
from .azure_repos import AzureReposProvider
from .base import GitProvider
from .github import GitHubClient, GitHubProvider

__all__ = [
    "AzureDevOpsClient",
    "AzureReposProvider",
    "GitHubClient",
    "GitHubProvider",
    "GitProvider",
    "create_provider",
]


def create_provider(
    provider: str,
    project: str,
    settings: Settings,
    definition: ProjectDefinition,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GitProvider:
    """
    Create the provider variant for a backend name.

    Raises:
        UnsupportedProviderError if the name is not 'azdo' or 'github'
    """
    pipelines = AzureDevOpsClient(
        org_name=definition.azdo_org_name,
        project=project,
        token=settings.azdo_api_token,
        transport=transport,
    )
    if provider == "azdo":
        return AzureReposProvider(pipelines)
    if provider == "github":
        if not definition.github_org:
            raise UnsupportedProviderError("githubOrg must be defined in the project definition to use github")
        return GitHubProvider(
            client=GitHubClient(settings.github_api_token, transport=transport),
            pipelines=pipelines,
            org=definition.github_org,
            project=project,
            service_connection=definition.github_service_connection,
        )
    raise UnsupportedProviderError(f"Please specify supported git provider: azdo or github (got '{provider}')")
