"""Per-run provisioning state shared by every step."""

import logging
import shutil
import tempfile
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from .config import ProjectDefinition, Settings
from .models.schemas import DeployDecision, Policy, Repository, ServiceDefinition
from .providers.base import GitProvider

logger = logging.getLogger(__name__)


@dataclass
class ProvisioningContext:
    """
    Everything one provisioning run knows.

    Built once at startup and threaded through every component. The deploy
    decision and the pending policy list live here rather than in globals or
    files so a run never depends on leftovers from another run.
    """

    service: ServiceDefinition
    settings: Settings
    definition: ProjectDefinition
    provider: GitProvider

    no_deployment: bool = False
    no_master_deployment: bool = False
    no_policies: bool = False
    only_update_policies: bool = False

    deploy_decision: DeployDecision = DeployDecision.UNKNOWN
    repository: Repository | None = None
    build_pipeline_id: int | None = None
    pending_policies: list[Policy] = field(default_factory=list)
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    def __post_init__(self) -> None:
        # --lib and --testService services are never deployed automatically
        if self.service.lib or self.service.test_service:
            self.no_deployment = True

    @property
    def replace_policies(self) -> bool:
        return self.only_update_policies or self.definition.replace_policies

    @property
    def repository_path(self) -> str:
        return self.provider.repository_path(self.service.name)

    @contextmanager
    def scratch_dir(self, purpose: str) -> Iterator[Path]:
        """Private working directory for this run, removed on exit."""
        directory = Path(
            tempfile.mkdtemp(prefix=f"{purpose}-{self.run_id}-", dir=self.settings.work_dir)
        )
        try:
            yield directory
        finally:
            shutil.rmtree(directory, ignore_errors=True)
            logger.debug("Removed scratch directory %s", directory)
