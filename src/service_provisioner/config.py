"""Configuration management for the service provisioner."""

import json
import logging
import os
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ProjectDefinitionError, SettingsError
from .models.schemas import ReviewerSpec, TeamPermission

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_DEFINITION = "__default__"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() not in ("", "0", "false", "no")


class Settings(BaseModel):
    """Runtime settings loaded from environment variables."""

    azdo_api_token: str = Field(default_factory=lambda: os.environ.get("AZURE_DEVOPS_EXT_PAT", ""))
    github_api_token: str = Field(default_factory=lambda: os.environ.get("GITHUB_TOKEN", ""))

    # Tokens embedded in git remote URLs when pushing/cloning
    azdo_git_token: str = Field(default_factory=lambda: os.environ.get("TOKEN", ""))
    github_git_token: str = Field(default_factory=lambda: os.environ.get("GHTOKEN", ""))
    no_ssh: bool = Field(default_factory=lambda: _env_flag("NO_SSH"))

    project_definitions_dir: Path = Field(
        default_factory=lambda: Path(os.environ.get("PROJECT_DEFINITIONS_DIR", "projectDefinitions"))
    )
    scaffold_command: str = Field(default_factory=lambda: os.environ.get("SCAFFOLD_COMMAND", "scaffold_app.sh"))
    work_dir: Path | None = Field(
        default_factory=lambda: Path(os.environ["WORK_DIR"]) if os.environ.get("WORK_DIR") else None
    )

    build_poll_interval: float = 60.0
    build_poll_max_cycles: int = 30
    quality_gate_poll_interval: float = 10.0
    quality_gate_timeout: float = Field(
        default_factory=lambda: float(os.environ.get("QUALITY_GATE_TIMEOUT", "3600"))
    )
    open_browser: bool = Field(default_factory=lambda: _env_flag("OPEN_BROWSER"))
    log_level: str = Field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))

    def git_token_for(self, provider: str) -> str:
        """Get the token used in git remote URLs for a provider."""
        if provider == "github":
            return self.github_git_token
        return self.azdo_git_token


def load_settings() -> Settings:
    """
    Load settings from the environment.

    Raises:
        SettingsError if a variable cannot be parsed
    """
    try:
        return Settings()
    except (ValueError, ValidationError) as e:
        raise SettingsError(f"Invalid settings: {e}") from e


class ProjectDefinition(BaseModel):
    """
    Project-specific provisioning configuration.

    Loaded once at startup from a JSON file in the project definitions
    directory and passed by reference to every component.
    """

    model_config = ConfigDict(populate_by_name=True)

    azdo_org_url: str = Field(alias="azdoOrgUrl")
    github_org: str | None = Field(default=None, alias="githubOrg")
    github_service_connection: str | None = Field(default=None, alias="githubServiceConnection")
    architect_team: str | None = Field(default=None, alias="architectTeam")

    # Handed to the scaffold of GitHub services to write CODEOWNERS
    codeowners: str | None = Field(default=None, alias="codeowners")
    consensus: str | None = Field(default=None, alias="consensus")

    required_reviewers: list[ReviewerSpec] = Field(default_factory=list, alias="requiredReviewers")
    min_reviewers: int = Field(default=0, alias="minReviewers")
    allow_no_fast_forward: bool = Field(default=True, alias="allowNoFastForward")
    allow_squash: bool = Field(default=True, alias="allowSquash")
    allow_rebase: bool = Field(default=False, alias="allowRebase")
    allow_rebase_merge: bool = Field(default=False, alias="allowRebaseMerge")
    policy_branches: list[str] = Field(default_factory=lambda: ["develop", "master"], alias="policyBranches")
    replace_policies: bool = Field(default=True, alias="replacePolicies")

    build_pipeline_folder_path: str | None = Field(default=None, alias="buildPipelineFolderPath")
    deploy_pipeline_folder_path: str | None = Field(default=None, alias="deployPipelineFolderPath")

    quality_gate_steps: list[str] = Field(
        default_factory=lambda: ["Build script", "Run SonarQube Analysis with quality gate"],
        alias="qualityGateSteps",
    )
    team_permissions: list[TeamPermission] = Field(
        default_factory=lambda: [
            TeamPermission(team="FusionOperatePipelines-User", permission="push"),
            TeamPermission(team="FusionOperateInsights-User", permission="pull"),
            TeamPermission(team="{project}-Architect", permission="maintain"),
            TeamPermission(team="{project}-Developer", permission="push"),
            TeamPermission(team="{project}-ProductOwner", permission="triage"),
            TeamPermission(team="{project}-Stakeholder", permission="triage"),
        ],
        alias="teamPermissions",
    )

    @property
    def azdo_org_name(self) -> str:
        """
        Derive the Azure DevOps organization name from its URL.

        Handles both URL forms:
            https://fusionfabric.visualstudio.com -> fusionfabric
            https://dev.azure.com/fusionfabric    -> fusionfabric
        """
        url = self.azdo_org_url.rstrip("/")
        match = re.match(r"https://([^.]+)\.visualstudio\.com", url)
        if match:
            return match.group(1)
        match = re.match(r"https://dev\.azure\.com/([^/]+)", url)
        if match:
            return match.group(1)
        return url.rsplit("/", 1)[-1]

    def teams_for(self, project: str) -> list[TeamPermission]:
        """Team permissions with the '{project}' placeholder expanded."""
        return [
            TeamPermission(team=tp.team.format(project=project), permission=tp.permission)
            for tp in self.team_permissions
        ]


def find_project_definition(directory: Path, project: str, dev_team: str | None = None) -> Path:
    """
    Locate the project definition file to use.

    Lookup order: '<project>--<team>.json', '<project>.json', '__default__.json'.
    """
    candidates = []
    if dev_team:
        candidates.append(directory / f"{project}--{dev_team}.json")
    candidates.append(directory / f"{project}.json")
    candidates.append(directory / f"{DEFAULT_PROJECT_DEFINITION}.json")

    for candidate in candidates:
        if candidate.exists():
            logger.info("Use project definition: %s", candidate)
            return candidate

    raise ProjectDefinitionError(
        f"No project definition found for project '{project}' in {directory}"
    )


def load_project_definition(directory: Path, project: str, dev_team: str | None = None) -> ProjectDefinition:
    """Load and validate the project definition for a project/team."""
    path = find_project_definition(directory, project, dev_team)
    try:
        return ProjectDefinition.model_validate(json.loads(path.read_text()))
    except json.JSONDecodeError as e:
        raise ProjectDefinitionError(f"Failed to parse {path}: {e}") from e
    except ValidationError as e:
        raise ProjectDefinitionError(f"Invalid project definition {path}: {e}") from e
