"""Async client for the Azure DevOps REST API (Repos, Pipelines, Policies)."""

from typing import Any
from urllib.parse import quote

import httpx

from ..errors import ProviderApiError

API_VERSION = "7.0"


class AzureDevOpsClient:
    """Simple async client for one Azure DevOps project."""

    def __init__(
        self,
        org_name: str,
        project: str,
        token: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.org_name = org_name
        self.project = project
        self.base_url = f"https://dev.azure.com/{org_name}"
        self.project_url = f"{self.base_url}/{quote(project)}/_apis"
        self.identities_url = f"https://vssps.dev.azure.com/{org_name}/_apis/identities"
        self.headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        self.auth = httpx.BasicAuth("", token) if token else None
        self.transport = transport
        self.timeout = httpx.Timeout(connect=5.0, read=60.0, write=10.0, pool=5.0)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        api_version: str = API_VERSION,
        allow_404: bool = False,
    ) -> Any:
        params = {**(params or {}), 'api-version': api_version}
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, auth=self.auth, headers=self.headers
        ) as client:
            response = await client.request(method, url, params=params, json=json)
        if allow_404 and response.status_code == 404:
            return None
        if response.is_error:
            raise ProviderApiError(
                f'{method} {url} failed with HTTP {response.status_code}: {response.text[:500]}',
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()

    # Projects and identities

    async def get_project(self) -> dict:
        return await self._request('GET', f'{self.base_url}/_apis/projects/{quote(self.project)}')

    async def find_team_id(self, project: str, team: str) -> str | None:
        data = await self._request(
            'GET',
            f'{self.base_url}/_apis/projects/{quote(project)}/teams/{quote(team)}',
            allow_404=True,
        )
        return data.get('id') if data else None

    async def find_user_id(self, email: str) -> str | None:
        data = await self._request(
            'GET',
            self.identities_url,
            params={'searchFilter': 'General', 'filterValue': email},
        )
        identities = (data or {}).get('value') or []
        return identities[0].get('id') if identities else None

    async def find_service_endpoint_id(self, name: str) -> str | None:
        data = await self._request('GET', f'{self.project_url}/serviceendpoint/endpoints')
        for endpoint in data.get('value', []):
            if endpoint.get('name') == name:
                return endpoint.get('id')
        return None

    # Git repositories

    async def get_repository(self, name: str) -> dict | None:
        return await self._request('GET', f'{self.project_url}/git/repositories/{quote(name)}', allow_404=True)

    async def create_repository(self, name: str) -> dict:
        project = await self.get_project()
        return await self._request(
            'POST',
            f'{self.project_url}/git/repositories',
            json={'name': name, 'project': {'id': project['id']}},
        )

    async def list_refs(self, repository_id: str) -> list[dict]:
        data = await self._request('GET', f'{self.project_url}/git/repositories/{repository_id}/refs')
        return data.get('value', [])

    # Build definitions and folders

    async def list_definitions(self, name: str | None = None, path: str | None = None) -> list[dict]:
        params = {}
        if name:
            params['name'] = name
        if path:
            params['path'] = path
        data = await self._request('GET', f'{self.project_url}/build/definitions', params=params)
        return data.get('value', [])

    async def create_definition(self, body: dict) -> dict:
        return await self._request('POST', f'{self.project_url}/build/definitions', json=body)

    async def update_definition(self, definition_id: int, body: dict) -> dict:
        return await self._request('PUT', f'{self.project_url}/build/definitions/{definition_id}', json=body)

    async def delete_folder(self, path: str) -> None:
        await self._request(
            'DELETE',
            f'{self.project_url}/build/folders',
            params={'path': path},
            api_version='7.0-preview.2',
        )

    # Builds

    async def queue_build(self, definition_id: int, source_branch: str) -> dict:
        return await self._request(
            'POST',
            f'{self.project_url}/build/builds',
            json={'definition': {'id': definition_id}, 'sourceBranch': source_branch},
        )

    async def get_build(self, build_id: int) -> dict:
        return await self._request('GET', f'{self.project_url}/build/builds/{build_id}')

    async def get_timeline(self, build_id: int) -> dict | None:
        return await self._request(
            'GET', f'{self.project_url}/build/builds/{build_id}/timeline', allow_404=True
        )

    # Branch policies

    async def list_policies(self, repository_id: str, ref_name: str) -> list[dict]:
        data = await self._request(
            'GET',
            f'{self.project_url}/git/policy/configurations',
            params={'repositoryId': repository_id, 'refName': ref_name},
        )
        return data.get('value', [])

    async def create_policy(self, configuration: dict) -> dict:
        return await self._request('POST', f'{self.project_url}/policy/configurations', json=configuration)

    async def delete_policy(self, policy_id: int | str) -> None:
        await self._request('DELETE', f'{self.project_url}/policy/configurations/{policy_id}')
