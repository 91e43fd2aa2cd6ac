"""Git operations service."""

import logging
import re
import subprocess
from pathlib import Path

from ..errors import ProvisioningError

logger = logging.getLogger(__name__)

FALLBACK_USER_EMAIL = "admin@azuredevops.com"
FALLBACK_USER_NAME = "Repo Initializer script"


class GitError(ProvisioningError):
    """Raised when a git operation fails."""
    pass


class PushError(GitError):
    """Raised when pushing the initial content to the remote fails."""
    pass


def redact(text: str) -> str:
    """Hide credentials embedded in 'https://<token>@host' URLs."""
    return re.sub(r"://[^/@\s]+@", "://***@", text)


class GitService:
    """Service for git operations."""

    def __init__(self, working_dir: Path):
        self.working_dir = working_dir

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        result = subprocess.run(
            ["git", *args],
            cwd=self.working_dir,
            capture_output=True,
            text=True,
            check=True
        )
        for line in (result.stdout + result.stderr).splitlines():
            logger.debug("   | %s", redact(line))
        return result

    def init(self, initial_branch: str | None = None) -> None:
        """Initialize a repository in the working directory."""
        args = ["init"]
        if initial_branch:
            args.extend(["--initial-branch", initial_branch])
        try:
            self._run(*args)
        except subprocess.CalledProcessError as e:
            raise GitError(f"Failed to initialize repository: {e.stderr}") from e

    def has_identity(self) -> bool:
        """Check if a committer email is configured."""
        result = subprocess.run(
            ["git", "config", "user.email"],
            cwd=self.working_dir,
            capture_output=True,
            text=True
        )
        return result.returncode == 0 and bool(result.stdout.strip())

    def ensure_identity(self) -> None:
        """Set a repository-local committer identity if none is configured."""
        if self.has_identity():
            return
        try:
            self._run("config", "user.email", FALLBACK_USER_EMAIL)
            self._run("config", "user.name", FALLBACK_USER_NAME)
        except subprocess.CalledProcessError as e:
            raise GitError(f"Failed to configure committer identity: {e.stderr}") from e

    def add_remote(self, url: str, name: str = "origin") -> None:
        try:
            self._run("remote", "add", name, url)
        except subprocess.CalledProcessError as e:
            raise GitError(f"Failed to add remote {name}: {redact(e.stderr)}") from e

    def commit_all(self, message: str) -> None:
        """Stage every file and commit."""
        try:
            self._run("add", "-A")
            self._run("commit", "-m", message)
        except subprocess.CalledProcessError as e:
            raise GitError(f"Failed to commit: {e.stderr or e.stdout}") from e

    def create_branch(self, branch_name: str, checkout: bool = True) -> None:
        """Create a new git branch."""
        try:
            if checkout:
                self._run("checkout", "-b", branch_name)
            else:
                self._run("branch", branch_name)
        except subprocess.CalledProcessError as e:
            raise GitError(f"Failed to create branch: {e.stderr}") from e

    def push_all(self, remote: str = "origin") -> None:
        """Push every local branch and set upstreams."""
        try:
            self._run("push", "-u", remote, "--all")
        except subprocess.CalledProcessError as e:
            raise PushError(f"Failed to push to {remote}: {redact(e.stderr)}") from e

    def push_branch(self, branch_name: str, remote: str = "origin") -> None:
        try:
            self._run("push", "--set-upstream", remote, branch_name)
        except subprocess.CalledProcessError as e:
            raise PushError(f"Failed to push branch {branch_name}: {redact(e.stderr)}") from e

    @classmethod
    def clone(cls, url: str, destination: Path, depth: int | None = 1) -> "GitService":
        """Clone a repository and return a service bound to the clone."""
        cmd = ["git", "clone", "--quiet"]
        if depth:
            cmd.extend(["--depth", str(depth)])
        cmd.extend([url, str(destination)])
        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            raise GitError(f"Failed to clone {redact(url)}: {redact(e.stderr)}") from e
        return cls(destination)
