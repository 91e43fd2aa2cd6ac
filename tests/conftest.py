"""Shared fixtures: an in-memory provider backed by local bare git repositories."""

import stat
import subprocess
from pathlib import Path

import pytest

from service_provisioner.config import ProjectDefinition, Settings
from service_provisioner.context import ProvisioningContext
from service_provisioner.models.schemas import (
    BuildRun,
    Pipeline,
    PipelineSpec,
    Policy,
    PolicyScope,
    Repository,
    ServiceDefinition,
)
from service_provisioner.providers.base import GitProvider

SCAFFOLD_SCRIPT = """#!/bin/sh
out=""
while [ $# -gt 0 ]; do
  case "$1" in
    --outputDir) out="$2"; shift ;;
  esac
  shift
done
mkdir -p "$out"
echo "# generated" > "$out/README.md"
echo "trigger: none" > "$out/azure-pipelines.yml"
{deploy}
exit 0
"""


class FakeProvider(GitProvider):
    """In-memory provider. Repositories are real bare repositories under remotes_dir."""

    def __init__(self, remotes_dir: Path, name: str = "github", supports_team_binding: bool = True):
        super().__init__(pipelines=None)
        self.name = name
        self.supports_team_binding = supports_team_binding
        self.remotes_dir = remotes_dir
        self.repositories: dict[str, Repository] = {}
        self.pipeline_defs: dict[str, Pipeline] = {}
        self.folders: set[str] = set()
        self.policies: dict[tuple[str, str], list[Policy]] = {}
        self.teams: set[str] = set()
        self.bindings: list[tuple[str, str]] = []
        self.topics: dict[str, list[str]] = {}
        self.builds: dict[int, BuildRun] = {}
        self.build_results: dict[int, str] = {}
        self.timeline_states: list[str] = ["completed", "completed"]
        self.calls: list[str] = []
        self._next_id = 1

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def repository_path(self, service_name: str) -> str:
        return f"acme/proj-{service_name}"

    async def find_repository(self, name: str) -> Repository | None:
        return self.repositories.get(name)

    async def create_repository(self, name: str) -> Repository:
        self.calls.append(f"create_repository:{name}")
        path = self.remotes_dir / f"{name.replace('/', '_')}.git"
        subprocess.run(
            ["git", "init", "--bare", "--initial-branch", "master", str(path)],
            check=True,
            capture_output=True,
        )
        repo = Repository(
            id=f"repo-{self._id()}",
            name=name.rsplit("/", 1)[-1],
            full_name=name,
            provider=self.name,
            remote_url=str(path),
        )
        self.repositories[name] = repo
        return repo

    async def is_populated(self, repo: Repository) -> bool:
        return len(self.branches(repo)) > 1

    def branches(self, repo: Repository) -> list[str]:
        result = subprocess.run(
            ["git", "for-each-ref", "--format=%(refname:short)", "refs/heads"],
            cwd=repo.remote_url,
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout.split()

    async def add_topics(self, repo: Repository, topics: list[str]) -> None:
        self.topics[repo.full_name] = topics

    async def find_team(self, team: str) -> str | None:
        return f"team-{team}" if team in self.teams else None

    async def bind_team(self, repo: Repository, team: str, permission: str) -> bool:
        if team not in self.teams:
            return False
        self.bindings.append((team, permission))
        return True

    async def resolve_reviewer_id(self, reviewer: str, project: str) -> str:
        return f"id-{reviewer}"

    async def list_policies(self, repo: Repository, scope: PolicyScope) -> list[Policy]:
        return list(self.policies.get((repo.id, scope.pattern), []))

    async def create_policy(self, repo: Repository, policy: Policy) -> Policy:
        created = policy.model_copy(update={"id": f"policy-{self._id()}"})
        self.policies.setdefault((repo.id, policy.scope.pattern), []).append(created)
        return created

    async def delete_policy(self, repo: Repository, policy: Policy) -> None:
        self.calls.append(f"delete_policy:{policy.id}")
        key = (repo.id, policy.scope.pattern)
        self.policies[key] = [p for p in self.policies.get(key, []) if p.id != policy.id]

    async def pipeline_repository(self, repo: Repository) -> dict:
        return {"id": repo.id, "type": "Fake"}

    async def find_pipeline(self, name: str) -> Pipeline | None:
        return self.pipeline_defs.get(name)

    async def create_pipeline(self, repo: Repository, spec: PipelineSpec) -> Pipeline:
        self.calls.append(f"create_pipeline:{spec.name}")
        pipeline = Pipeline(
            id=self._id(), name=spec.name, kind=spec.kind, folder=spec.folder, repository_id=repo.id
        )
        self.pipeline_defs[spec.name] = pipeline
        return pipeline

    async def list_pipelines_in_folder(self, folder: str) -> list[str]:
        return [p.name for p in self.pipeline_defs.values() if p.folder == folder]

    async def delete_pipeline_folder(self, folder: str) -> None:
        self.calls.append(f"delete_pipeline_folder:{folder}")
        self.folders.discard(folder)

    async def queue_build(self, pipeline_id: int, branch_ref: str) -> BuildRun:
        self.calls.append(f"queue_build:{branch_ref}")
        build_id = self._id()
        build = BuildRun(
            id=build_id,
            pipeline_id=pipeline_id,
            branch_ref=branch_ref,
            web_url=f"https://dev.azure.com/acme/proj/_build/results?buildId={build_id}",
        )
        self.builds[build_id] = build
        return build

    async def get_build(self, build_id: int) -> BuildRun:
        return self.builds[build_id].model_copy(update={"result": self.build_results.get(build_id)})

    async def get_timeline_states(self, build_id: int, step_names: list[str]) -> list[str]:
        return list(self.timeline_states)


def write_scaffold(directory: Path, deploy: bool = True) -> Path:
    """Write a scaffold command that generates a minimal skeleton."""
    script = directory / ("scaffold_deploy.sh" if deploy else "scaffold.sh")
    marker = 'echo "trigger: none" > "$out/azure-pipelines-master.yml"' if deploy else ""
    script.write_text(SCAFFOLD_SCRIPT.format(deploy=marker))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def settings(tmp_path):
    """Settings with no tokens, instant polling and a private work directory."""
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    return Settings(
        azdo_api_token="",
        github_api_token="",
        azdo_git_token="",
        github_git_token="",
        no_ssh=False,
        project_definitions_dir=tmp_path / "projectDefinitions",
        scaffold_command=str(write_scaffold(tmp_path)),
        work_dir=work_dir,
        build_poll_interval=0,
        quality_gate_poll_interval=0,
        quality_gate_timeout=5,
        open_browser=False,
    )


@pytest.fixture
def definition():
    return ProjectDefinition.model_validate(
        {
            "azdoOrgUrl": "https://dev.azure.com/acme",
            "githubOrg": "acme",
            "architectTeam": "proj-Architect",
            "requiredReviewers": [{"name": "lead@acme.com", "creatorVoteCounts": "true", "path": "/src;/docs"}],
            "minReviewers": 2,
        }
    )


@pytest.fixture
def fake_provider(tmp_path):
    remotes_dir = tmp_path / "remotes"
    remotes_dir.mkdir()
    provider = FakeProvider(remotes_dir)
    provider.teams.update({"dev-team", "proj-Architect", "proj-Developer"})
    return provider


@pytest.fixture
def make_context(settings, definition, fake_provider):
    """Factory for run contexts over the fake provider."""

    def _make(service_type: str = "service", **kwargs) -> ProvisioningContext:
        service_fields = {
            "name": "orders-api",
            "type": service_type,
            "project": "proj",
            "provider": "github",
            "dev_team": "dev-team",
        }
        for key in ("lib", "test_service", "source_branch"):
            if key in kwargs:
                service_fields[key] = kwargs.pop(key)
        return ProvisioningContext(
            service=ServiceDefinition(**service_fields),
            settings=kwargs.pop("settings", settings),
            definition=kwargs.pop("definition", definition),
            provider=fake_provider,
            **kwargs,
        )

    return _make
