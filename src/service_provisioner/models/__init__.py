"""Models and schemas for the service provisioner."""

from .schemas import (
    BuildRun,
    DeployDecision,
    MatchKind,
    Pipeline,
    PipelineKind,
    PipelineSpec,
    Policy,
    PolicyScope,
    PolicyType,
    Repository,
    ReviewerSpec,
    ServiceDefinition,
    TeamPermission,
)

__all__ = [
    "BuildRun",
    "DeployDecision",
    "MatchKind",
    "Pipeline",
    "PipelineKind",
    "PipelineSpec",
    "Policy",
    "PolicyScope",
    "PolicyType",
    "Repository",
    "ReviewerSpec",
    "ServiceDefinition",
    "TeamPermission",
]
