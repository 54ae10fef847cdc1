"""
Collaborator contracts for rule persistence and plan limits.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from ..editing.limits import PlanLimits
from ..rules.models import Rule


class RuleStore(ABC):
    """Persistence for a link's rules.

    Implementations raise ``PersistenceError`` for any failed call.
    """

    @abstractmethod
    async def list(self, short_url: str) -> List[Rule]:
        """All rules of a link, ascending by priority."""

    @abstractmethod
    async def create(self, short_url: str, payload: Dict[str, Any]) -> Rule:
        """Create a rule; the returned rule carries the server-assigned id."""

    @abstractmethod
    async def update(self, short_url: str, rule_id: str, patch: Dict[str, Any]) -> Rule:
        """Apply a patch to an existing rule."""

    @abstractmethod
    async def delete(self, short_url: str, rule_id: str) -> None:
        """Delete a rule."""


class PlanLimitsProvider(ABC):
    """Source of plan ceilings for the acting identity."""

    @abstractmethod
    async def get_limits(self) -> PlanLimits:
        """Current limits; None fields mean unlimited."""
