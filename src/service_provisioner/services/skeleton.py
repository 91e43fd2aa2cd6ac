"""Adapter for the external skeleton generator."""

import logging
import subprocess
from pathlib import Path

from ..errors import SkeletonError
from ..models.schemas import DeployDecision, ServiceDefinition

logger = logging.getLogger(__name__)

# Present in skeletons of services that get deployment pipelines
DEPLOY_MARKER = "azure-pipelines-master.yml"


def deploy_decision_for(directory: Path) -> DeployDecision:
    """Read the deploy decision off a skeleton or a clone of it."""
    if (directory / DEPLOY_MARKER).is_file():
        return DeployDecision.YES
    return DeployDecision.NO


class SkeletonGenerator:
    """Runs the scaffold command that produces a new service's initial tree."""

    def __init__(self, command: str, codeowners: str | None = None, consensus: str | None = None):
        self.command = command
        self.codeowners = codeowners
        self.consensus = consensus

    def build_command(self, service: ServiceDefinition, output_dir: Path) -> list[str]:
        cmd = [
            self.command,
            "--provider", service.provider,
            "--project", service.project,
            "--name", service.name,
            "--type", service.type,
            "--outputDir", str(output_dir),
            "--srcbranch", service.source_branch,
        ]
        if service.provider == "github":
            cmd.extend(["--codeowners", self.codeowners or "", "--consensus", self.consensus or ""])
        if service.lib:
            cmd.append("--lib")
        if service.test_service:
            cmd.append("--testService")
        return cmd

    def generate(self, service: ServiceDefinition, output_dir: Path) -> Path:
        """Generate the skeleton into output_dir and return it."""
        cmd = self.build_command(service, output_dir)
        logger.info("Generate %s skeleton for %s", service.type, service.name)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except FileNotFoundError as e:
            raise SkeletonError(f"Skeleton generator not found: {self.command}") from e
        except subprocess.CalledProcessError as e:
            raise SkeletonError(f"Skeleton generation failed: {e.stderr or e.stdout}") from e
        for line in result.stdout.splitlines():
            logger.debug("   | %s", line)
        if not output_dir.is_dir():
            raise SkeletonError(f"Skeleton generator did not create {output_dir}")
        return output_dir
