"""
Editing session for one link's rules.
"""

from typing import Optional

from shared.errors import PersistenceError
from shared.logging import get_logger, set_link_context
from shared.metrics import MetricsCollector
from ..adapters.base import RuleStore, PlanLimitsProvider
from .limits import LimitPolicy, PlanLimits
from .reconciler import RuleSetReconciler, SaveReport
from .working_copy import WorkingCopy


class RuleEditorSession:
    """Loads a link's rules into a working copy and saves edits back.

    Limits come from ``plan_provider`` when given, else from ``limits``,
    else no ceilings apply.
    """

    def __init__(self, short_url: str, store: RuleStore,
                 plan_provider: Optional[PlanLimitsProvider] = None,
                 limits: Optional[PlanLimits] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.short_url = short_url
        self.store = store
        self.plan_provider = plan_provider
        self.limits = limits or PlanLimits()
        self.reconciler = RuleSetReconciler(store, metrics=metrics)
        self.logger = get_logger("link_rules.editor_session")
        self._working_copy: Optional[WorkingCopy] = None

    @property
    def working_copy(self) -> WorkingCopy:
        if self._working_copy is None:
            raise RuntimeError("Session is not loaded; call load() first")
        return self._working_copy

    @property
    def loaded(self) -> bool:
        return self._working_copy is not None

    async def load(self) -> WorkingCopy:
        """Fetch rules and plan limits and start a fresh working copy."""
        set_link_context(self.short_url)

        rules = await self.store.list(self.short_url)
        if self.plan_provider is not None:
            self.limits = await self.plan_provider.get_limits()

        self._working_copy = WorkingCopy(rules, LimitPolicy(self.limits))
        self.logger.info(
            "Rules loaded",
            short_url=self.short_url,
            rules=len(rules),
            max_rules=self.limits.max_rules_per_link,
            max_conditions=self.limits.max_conditions_per_rule
        )
        return self._working_copy

    async def save(self) -> SaveReport:
        """Persist the working copy.

        On any outcome past validation the persisted rules are fetched again
        and become the new committed snapshot, so partially applied saves
        are reflected. If that refresh fails, edits are kept and the error is
        attached to the report.

        Raises:
            ValidationError: if the working copy is invalid; nothing is sent.
        """
        copy = self.working_copy
        if not copy.has_changes:
            return SaveReport()

        report = await self.reconciler.save(
            self.short_url, copy.committed, copy.rules, self.limits
        )

        try:
            refreshed = await self.store.list(self.short_url)
        except PersistenceError as e:
            self.logger.error(
                "Failed to reload rules after save",
                short_url=self.short_url,
                error=e.message
            )
            report.refresh_error = e
        else:
            copy.commit(refreshed)

        if not report.ok:
            self.logger.warning(
                "Save completed with failures",
                short_url=self.short_url,
                failed=[r.rule_id for r in report.failures]
            )
        return report

    def discard(self) -> None:
        self.working_copy.discard()
