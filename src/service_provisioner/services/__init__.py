"""Provisioning services for the service provisioner."""

from .access import AccessBinder
from .builds import BuildLauncher
from .git import GitError, GitService, PushError
from .pipelines import PipelineProvisioner
from .policies import PolicyReconciler, policy_scope
from .repository import RepositoryProvisioner, select_remote_url
from .skeleton import SkeletonGenerator, deploy_decision_for

__all__ = [
    "AccessBinder",
    "BuildLauncher",
    "GitError",
    "GitService",
    "PushError",
    "PipelineProvisioner",
    "PolicyReconciler",
    "policy_scope",
    "RepositoryProvisioner",
    "select_remote_url",
    "SkeletonGenerator",
    "deploy_decision_for",
]
