"""Repository provisioning: find or create, then populate from a skeleton."""

import logging
import re
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from ..context import ProvisioningContext
from ..models.schemas import DeployDecision, Repository
from .git import GitService
from .skeleton import SkeletonGenerator, deploy_decision_for

logger = logging.getLogger(__name__)

INITIAL_BRANCH = "master"
SECOND_BRANCH = "develop"


def with_token(url: str, token: str) -> str:
    """Embed a token as the userinfo of an HTTPS URL, replacing any existing one."""
    parts = urlsplit(url)
    host = parts.netloc.rsplit("@", 1)[-1]
    return urlunsplit((parts.scheme, f"{token}@{host}", parts.path, parts.query, parts.fragment))


def select_remote_url(repo: Repository, token: str = "", no_ssh: bool = False) -> str:
    """
    Pick the remote URL used to push to or clone a repository.

    Precedence: explicit access token, then the plain HTTPS URL when SSH is
    disabled, then the SSH URL.
    """
    if token:
        return with_token(repo.remote_url, token)
    if no_ssh or not repo.ssh_url:
        return repo.remote_url
    return repo.ssh_url


class RepositoryProvisioner:
    """Creates the service repository once and pushes the initial skeleton."""

    def __init__(self, context: ProvisioningContext, generator: SkeletonGenerator | None = None):
        self.context = context
        self.generator = generator or SkeletonGenerator(
            context.settings.scaffold_command,
            codeowners=context.definition.codeowners,
            consensus=context.definition.consensus,
        )

    def remote_url_for(self, repo: Repository) -> str:
        settings = self.context.settings
        return select_remote_url(
            repo,
            token=settings.git_token_for(self.context.service.provider),
            no_ssh=settings.no_ssh,
        )

    async def find(self) -> Repository | None:
        repo = await self.context.provider.find_repository(self.context.repository_path)
        if repo:
            self.context.repository = repo
        return repo

    async def provision(self) -> Repository:
        """Return the existing repository unchanged, or create an empty one."""
        name = self.context.repository_path
        repo = await self.context.provider.find_repository(name)
        if repo:
            logger.info("Git repo %s already created. Skip...", name)
        else:
            logger.info("Create git repo %s", name)
            repo = await self.context.provider.create_repository(name)
        self.context.repository = repo
        return repo

    async def populate(self, repo: Repository, skeleton_dir: Path | None = None) -> DeployDecision:
        """
        Push the initial skeleton to an empty repository.

        Generates the skeleton into a scratch directory unless one is given.
        Returns the deploy decision read off the skeleton, or the current
        (possibly unknown) decision when the repository was already populated.

        Raises:
            PushError if the initial push fails
        """
        if await self.context.provider.is_populated(repo):
            logger.info("Git repo already populated. Skip...")
            return self.context.deploy_decision

        if skeleton_dir is not None:
            self._push_skeleton(repo, skeleton_dir)
            return self.context.deploy_decision

        with self.context.scratch_dir("scaffold") as scratch:
            app_dir = self.generator.generate(self.context.service, scratch / "app")
            self._push_skeleton(repo, app_dir)
        return self.context.deploy_decision

    def _push_skeleton(self, repo: Repository, skeleton_dir: Path) -> None:
        self.context.deploy_decision = deploy_decision_for(skeleton_dir)
        logger.info("Initialize and push git repo")
        git = GitService(skeleton_dir)
        git.init(initial_branch=INITIAL_BRANCH)
        git.ensure_identity()
        git.add_remote(self.remote_url_for(repo))
        git.commit_all("Creation")
        git.push_all()
        # The first push alone does not reliably trigger pipeline detection
        git.create_branch(SECOND_BRANCH)
        git.push_branch(SECOND_BRANCH)

    async def tag(self, repo: Repository) -> None:
        """Add the project as a repository topic."""
        topic = re.sub(r"\s+", "", self.context.service.project).lower()
        await self.context.provider.add_topics(repo, [topic])
