"""Branch policy computation and replace-or-skip reconciliation."""

import logging
from itertools import groupby

from ..context import ProvisioningContext
from ..errors import UnsupportedBranchScopeError
from ..models.schemas import MatchKind, Policy, PolicyScope, PolicyType

logger = logging.getLogger(__name__)

BUILD_VALIDATION_FILE_PATTERNS = [
    "/*",
    "!/azure-pipelines-develop.yml",
    "!/azure-pipelines-master.yml",
]


def policy_scope(repository_id: str, branch: str) -> PolicyScope:
    """
    Resolve a configured policy branch into a scope.

    'release/*' matches every branch starting with 'release', 'develop'
    matches exactly. Any other wildcard is rejected.

    Raises:
        UnsupportedBranchScopeError for wildcards not of the 'name/*' form
    """
    if branch.endswith("/*") and "*" not in branch[:-2]:
        return PolicyScope(repository_id=repository_id, branch=branch[:-2], match_kind=MatchKind.PREFIX)
    if "*" in branch:
        raise UnsupportedBranchScopeError(f"Unsupported branch policy scope: '{branch}'")
    return PolicyScope(repository_id=repository_id, branch=branch, match_kind=MatchKind.EXACT)


class PolicyReconciler:
    """
    Computes the policy set of each protected branch and applies it.

    The rule is all-or-nothing per branch: in replace mode every existing
    policy of every target branch is deleted before the full set is
    created; otherwise a branch bearing any policy is left untouched.
    """

    def __init__(self, context: ProvisioningContext):
        self.context = context

    @property
    def provider(self):
        return self.context.provider

    def scopes(self) -> list[PolicyScope]:
        repository_id = self.context.repository.id
        return [policy_scope(repository_id, branch) for branch in self.context.definition.policy_branches]

    async def compute_policies(self, scope: PolicyScope) -> list[Policy]:
        """Build the ordered policy set for one branch."""
        definition = self.context.definition
        service = self.context.service
        policies: list[Policy] = []

        for reviewer in definition.required_reviewers:
            if not reviewer.name:
                continue
            logger.info("Retrieve %s id", reviewer.name)
            reviewer_id = await self.provider.resolve_reviewer_id(reviewer.name, service.project)
            settings = {
                "addedFilesOnly": False,
                "creatorVoteCounts": reviewer.creator_vote_counts,
                "minimumApproverCount": 1,
                "requiredReviewerIds": [reviewer_id],
            }
            if reviewer.paths:
                settings["filenamePatterns"] = list(reviewer.paths)
            policies.append(Policy(type=PolicyType.REQUIRED_REVIEWER, scope=scope, settings=settings))

        if policies:
            policies.append(
                Policy(
                    type=PolicyType.NO_LABEL_ALTERATION,
                    scope=scope,
                    settings={
                        "statusGenre": "ci-service",
                        "statusName": "no-label-alteration",
                        "invalidateOnSourceUpdate": False,
                        "policyApplicability": 1,
                    },
                )
            )

        if definition.min_reviewers:
            policies.append(
                Policy(
                    type=PolicyType.MIN_APPROVER_COUNT,
                    scope=scope,
                    settings={
                        "minimumApproverCount": definition.min_reviewers,
                        "creatorVoteCounts": False,
                        "allowDownvotes": False,
                        "resetOnSourcePush": True,
                    },
                )
            )

        if service.has_build_pipeline:
            if self.context.build_pipeline_id is None:
                logger.warning("No build pipeline id known, no build validation policy on %s", scope.branch)
            else:
                policies.append(
                    Policy(
                        type=PolicyType.BUILD_VALIDATION,
                        scope=scope,
                        settings={
                            "buildDefinitionId": self.context.build_pipeline_id,
                            "displayName": service.name,
                            "filenamePatterns": list(BUILD_VALIDATION_FILE_PATTERNS),
                            "manualQueueOnly": False,
                            "queueOnSourceUpdateOnly": True,
                            "validDuration": 2160.0,
                        },
                    )
                )

        policies.append(Policy(type=PolicyType.RESOLVED_COMMENTS_REQUIRED, scope=scope))
        policies.append(
            Policy(
                type=PolicyType.MERGE_STRATEGY,
                scope=scope,
                settings={
                    "useSquashMerge": False,
                    "allowNoFastForward": definition.allow_no_fast_forward,
                    "allowSquash": definition.allow_squash,
                    "allowRebase": definition.allow_rebase,
                    "allowRebaseMerge": definition.allow_rebase_merge,
                },
            )
        )
        return policies

    async def delete_policies(self, scopes: list[PolicyScope]) -> int:
        """Delete every existing policy on the given branches."""
        repo = self.context.repository
        deleted = 0
        for scope in scopes:
            for policy in await self.provider.list_policies(repo, scope):
                logger.info("Delete policy %s", policy.id)
                await self.provider.delete_policy(repo, policy)
                deleted += 1
        return deleted

    async def reconcile(self) -> list[Policy]:
        """
        Apply the computed policy sets and return the created policies.

        Every policy set is computed before anything is deleted, so a
        reviewer that cannot be resolved leaves existing policies in place.

        Raises:
            UnsupportedBranchScopeError before any change if a branch pattern is invalid
        """
        repo = self.context.repository
        scopes = self.scopes()

        if self.context.replace_policies:
            targets = scopes
        else:
            targets = []
            for scope in scopes:
                if await self.provider.list_policies(repo, scope):
                    logger.info("Policies already exist on %s. Won't recreate them", scope.ref_name)
                else:
                    targets.append(scope)

        pending = []
        for scope in targets:
            pending.extend(await self.compute_policies(scope))
        self.context.pending_policies.extend(pending)

        if self.context.replace_policies:
            await self.delete_policies(scopes)
        return await self.create_pending_policies()

    async def create_pending_policies(self) -> list[Policy]:
        """Create the pending policies branch by branch, then clear them."""
        repo = self.context.repository
        created: list[Policy] = []
        for scope, group in groupby(self.context.pending_policies, key=lambda p: p.scope):
            created.extend(await self.provider.create_policy_set(repo, scope, list(group)))
        self.context.pending_policies.clear()
        return created
