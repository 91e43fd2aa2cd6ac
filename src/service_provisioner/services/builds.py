"""Queueing of the first builds and bounded waits on their progress."""

import asyncio
import logging
import math
import webbrowser

from ..context import ProvisioningContext
from ..errors import QualityGateTimeoutError
from ..models.schemas import BuildRun

logger = logging.getLogger(__name__)

MASTER_REF = "refs/heads/master"
DEVELOP_REF = "refs/heads/develop"
STEP_COMPLETED = "completed"


class BuildLauncher:
    """
    Queues the master and develop builds of a freshly provisioned service.

    The develop build only starts once the master build has passed its
    quality gate, so its analysis compares against a master baseline.
    """

    def __init__(self, context: ProvisioningContext):
        self.context = context

    @property
    def provider(self):
        return self.context.provider

    async def queue_build(self, pipeline_id: int, ref: str) -> int:
        """Queue a build and return its id without waiting."""
        build = await self.provider.queue_build(pipeline_id, ref)
        logger.info("Queued build %s on %s", build.id, ref)
        return build.id

    async def queue_master_build(self, pipeline_id: int) -> int:
        """Queue the master build and ask for the pipeline permissions to be granted."""
        logger.info("Queue master build to enable the quality gate")
        build = await self.provider.queue_build(pipeline_id, MASTER_REF)
        url = build.web_url or f"build {build.id}"
        logger.warning("Please grant permission to the resources used by the pipeline: %s", url)
        if self.context.settings.open_browser and build.web_url:
            webbrowser.open(build.web_url)
        return build.id

    async def wait_for_quality_gate(self, build_id: int) -> None:
        """
        Wait until the quality-gate steps of a build have completed.

        Raises:
            QualityGateTimeoutError if the steps are not completed in time
        """
        settings = self.context.settings
        steps = self.context.definition.quality_gate_steps
        interval = settings.quality_gate_poll_interval
        checks = max(1, math.ceil(settings.quality_gate_timeout / interval)) if interval > 0 else 1
        logger.info("Waiting for the quality gate of build %s", build_id)
        for _ in range(checks):
            await asyncio.sleep(interval)
            states = await self.provider.get_timeline_states(build_id, steps)
            logger.debug("Quality gate steps of build %s: %s", build_id, states)
            if len(states) >= len(steps) and all(state == STEP_COMPLETED for state in states):
                logger.info("Quality gate completed for build %s", build_id)
                return
        raise QualityGateTimeoutError(
            f"Quality gate steps {steps} of build {build_id} not completed after "
            f"{settings.quality_gate_timeout:.0f}s"
        )

    async def queue_develop_build(self, pipeline_id: int, master_build_id: int) -> int:
        """Queue the develop build once the master build passed its quality gate."""
        await self.wait_for_quality_gate(master_build_id)
        logger.info("Queue develop build")
        return await self.queue_build(pipeline_id, DEVELOP_REF)

    async def wait_for_builds_completion(self, master_id: int, develop_id: int) -> dict[int, BuildRun]:
        """
        Poll both builds until they complete or the cycle limit is reached.

        Never raises on timeout: the limit is logged and whatever is known
        about the builds is returned.
        """
        settings = self.context.settings
        pending = {master_id, develop_id}
        results: dict[int, BuildRun] = {}

        for _ in range(settings.build_poll_max_cycles):
            if not pending:
                break
            await asyncio.sleep(settings.build_poll_interval)
            for build_id in sorted(pending):
                build = await self.provider.get_build(build_id)
                results[build_id] = build
                if build.is_completed:
                    logger.info("Build %s completed: %s", build_id, build.result)
                    pending.discard(build_id)

        if pending:
            logger.warning(
                "Builds %s still running after %d checks, not waiting any longer",
                ", ".join(str(b) for b in sorted(pending)),
                settings.build_poll_max_cycles,
            )
        return results
