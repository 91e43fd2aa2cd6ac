"""Pydantic models shared by the provisioning services."""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_SERVICE_NAME_LENGTH = 33
SERVICE_NAME_PATTERN = re.compile(r"^[-a-z0-9]+$")

SERVICE_TYPES = (
    "service",
    "worker",
    "job",
    "ui",
    "library",
    "test",
    "deployment",
    "trigger",
)

# Types that never get builds queued automatically
NO_AUTO_BUILD_TYPES = ("deployment", "trigger")

PROVIDERS = ("azdo", "github")


class DeployDecision(str, Enum):
    """Whether deployment pipelines are needed for a service."""
    UNKNOWN = "unknown"
    YES = "yes"
    NO = "no"


class PipelineKind(str, Enum):
    BUILD = "build"
    DEPLOY_DEVELOP = "deploy-develop"
    DEPLOY_MASTER = "deploy-master"


class MatchKind(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"


class PolicyType(str, Enum):
    REQUIRED_REVIEWER = "RequiredReviewer"
    NO_LABEL_ALTERATION = "NoLabelAlteration"
    MIN_APPROVER_COUNT = "MinApproverCount"
    RESOLVED_COMMENTS_REQUIRED = "ResolvedCommentsRequired"
    MERGE_STRATEGY = "MergeStrategy"
    BUILD_VALIDATION = "BuildValidation"
    # GitHub keeps a branch's whole policy set in a single rule
    BRANCH_PROTECTION_RULE = "BranchProtectionRule"


class ServiceDefinition(BaseModel):
    """The service to provision, as requested on the command line."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    project: str
    provider: str
    dev_team: str | None = None
    source_branch: str = "develop"
    lib: bool = False
    test_service: bool = False

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if len(value) > MAX_SERVICE_NAME_LENGTH:
            raise ValueError(
                f"Service name is too long ({len(value)}). Max possible length is "
                f"{MAX_SERVICE_NAME_LENGTH} characters, to accommodate PR temporary helm "
                "release names which are limited to 53 characters"
            )
        if not SERVICE_NAME_PATTERN.match(value):
            raise ValueError(
                "The service name may only contain lowercase, numbers and hyphen "
                "characters. Example: my-new-service"
            )
        return value

    @field_validator("type")
    @classmethod
    def _check_type(cls, value: str) -> str:
        if value not in SERVICE_TYPES:
            raise ValueError(f"Unsupported service type '{value}'. Supported: {', '.join(SERVICE_TYPES)}")
        return value

    @field_validator("project")
    @classmethod
    def _check_project(cls, value: str) -> str:
        if not value:
            raise ValueError("project must be defined (example: FFDC)")
        return value

    @field_validator("provider")
    @classmethod
    def _check_provider(cls, value: str) -> str:
        if not value:
            raise ValueError("Git provider must be specified. Acceptable values are azdo or github")
        return value

    @property
    def auto_builds(self) -> bool:
        """Whether master and develop builds are queued after provisioning."""
        return self.type not in NO_AUTO_BUILD_TYPES

    @property
    def has_build_pipeline(self) -> bool:
        return self.type != "deployment"


class Repository(BaseModel):
    """A hosted git repository, normalized across providers."""
    id: str
    name: str
    full_name: str
    provider: str
    remote_url: str
    ssh_url: str | None = None
    web_url: str | None = None
    is_empty: bool | None = None


class PipelineSpec(BaseModel):
    """What to create when a pipeline is missing."""
    name: str
    kind: PipelineKind
    yaml_path: str
    branch: str
    folder: str | None = None


class Pipeline(BaseModel):
    id: int
    name: str
    kind: PipelineKind | None = None
    folder: str | None = None
    repository_id: str | None = None


class PolicyScope(BaseModel):
    """The (repository, branch, match kind) triple a policy applies to."""

    model_config = ConfigDict(frozen=True)

    repository_id: str
    branch: str
    match_kind: MatchKind = MatchKind.EXACT

    @property
    def ref_name(self) -> str:
        return f"refs/heads/{self.branch}"

    @property
    def pattern(self) -> str:
        """Branch pattern as written in GitHub branch protection rules."""
        if self.match_kind == MatchKind.PREFIX:
            return f"{self.branch}/*"
        return self.branch


class Policy(BaseModel):
    type: PolicyType | str
    scope: PolicyScope
    settings: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


class BuildRun(BaseModel):
    id: int
    pipeline_id: int | None = None
    branch_ref: str | None = None
    result: str | None = None
    web_url: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.result is not None


class ReviewerSpec(BaseModel):
    """A required reviewer entry from the project definition."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    creator_vote_counts: bool = Field(default=False, alias="creatorVoteCounts")
    paths: list[str] = Field(default_factory=list, alias="path")

    @field_validator("creator_vote_counts", mode="before")
    @classmethod
    def _coerce_vote_counts(cls, value: Any) -> bool:
        return value is True or str(value).lower() == "true"

    @field_validator("paths", mode="before")
    @classmethod
    def _split_paths(cls, value: Any) -> list[str]:
        if value in (None, "", "null"):
            return []
        if isinstance(value, str):
            return [p for p in value.split(";") if p]
        return list(value)


class TeamPermission(BaseModel):
    """A team to grant access to the repository, with its permission level."""
    team: str
    permission: str
