"""Team access on the service repository."""

import logging

from ..context import ProvisioningContext
from ..errors import TeamNotFoundError
from ..models.schemas import Repository, TeamPermission

logger = logging.getLogger(__name__)


class AccessBinder:
    """Checks the owning teams exist and grants the configured team permissions."""

    def __init__(self, context: ProvisioningContext):
        self.context = context

    @property
    def applies(self) -> bool:
        return self.context.provider.supports_team_binding

    def required_teams(self) -> list[str]:
        teams = []
        if self.context.service.dev_team:
            teams.append(self.context.service.dev_team)
        if self.context.definition.architect_team:
            teams.append(self.context.definition.architect_team)
        return teams

    async def check_teams(self) -> None:
        """
        Make sure the dev team and the architect team exist.

        Raises:
            TeamNotFoundError for the first missing team
        """
        if not self.applies:
            return
        for team in self.required_teams():
            if not await self.context.provider.find_team(team):
                raise TeamNotFoundError(f"Team {team} doesn't exist")
            logger.info("Team %s found", team)

    async def bind_teams(self, repo: Repository) -> list[TeamPermission]:
        """Grant every configured team its permission. Returns the bindings applied."""
        if not self.applies:
            return []
        bound = []
        for binding in self.context.definition.teams_for(self.context.service.project):
            if await self.context.provider.bind_team(repo, binding.team, binding.permission):
                bound.append(binding)
        return bound
