"""
Reconciliation of a working copy with persisted rules.

A save is planned as a diff between the committed snapshot and the
working copy, validated as a whole, then applied as independent
create/update/delete calls. There is no cross-call transaction: a failed
call is reported and the others still run, so callers should reload the
rule set afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from shared.errors import PersistenceError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..adapters.base import RuleStore
from ..rules.models import Rule
from .limits import PlanLimits
from .normalize import build_create_payload, build_update_patch, rule_content
from .validation import ValidPlan, validate_rule_set


class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ReconciliationPlan:
    """Calls needed to bring storage in line with a working copy."""
    creates: Tuple[Rule, ...] = ()
    updates: Tuple[Tuple[Rule, Rule], ...] = ()  # (persisted, edited)
    deletes: Tuple[Rule, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)

    def summary(self) -> Dict[str, List[str]]:
        return {
            "creates": [r.rule_id for r in self.creates],
            "updates": [local.rule_id for _, local in self.updates],
            "deletes": [r.rule_id for r in self.deletes],
        }


@dataclass
class OperationResult:
    """Outcome of one persistence call."""
    kind: OperationKind
    rule_id: str
    success: bool
    rule: Optional[Rule] = None
    error: Optional[PersistenceError] = None


@dataclass
class SaveReport:
    """Per-operation outcomes of a save."""
    results: List[OperationResult] = field(default_factory=list)
    refresh_error: Optional[PersistenceError] = None

    @property
    def ok(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def failures(self) -> List[OperationResult]:
        return [r for r in self.results if not r.success]

    @property
    def created_ids(self) -> Dict[str, str]:
        """Temporary id -> server-assigned id for every successful create."""
        return {
            r.rule_id: r.rule.rule_id
            for r in self.results
            if r.kind == OperationKind.CREATE and r.success and r.rule is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "results": [
                {
                    "kind": r.kind.value,
                    "rule_id": r.rule_id,
                    "success": r.success,
                    "error": r.error.to_response().model_dump() if r.error else None,
                }
                for r in self.results
            ],
        }


class RuleSetReconciler:
    """Diffs, validates and applies rule set edits."""

    def __init__(self, store: RuleStore, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("link_rules.reconciler")

    @staticmethod
    def diff(original: Sequence[Rule], local: Sequence[Rule]) -> ReconciliationPlan:
        """Classify rules into creates, updates and deletes by id.

        Updates are rules present on both sides whose content differs,
        priority included.
        """
        original_by_id = {rule.rule_id: rule for rule in original}
        local_ids = {rule.rule_id for rule in local}

        creates = []
        updates = []
        for rule in local:
            persisted = original_by_id.get(rule.rule_id)
            if persisted is None:
                creates.append(rule)
            elif rule_content(persisted) != rule_content(rule):
                updates.append((persisted, rule))

        deletes = [rule for rule in original if rule.rule_id not in local_ids]
        return ReconciliationPlan(tuple(creates), tuple(updates), tuple(deletes))

    @staticmethod
    def validate(local: Sequence[Rule], limits: Optional[PlanLimits] = None) -> ValidPlan:
        """Validate the entire working copy; raises ValidationError."""
        return validate_rule_set(local, limits)

    async def apply(self, short_url: str, plan: ReconciliationPlan) -> SaveReport:
        """Issue every call in the plan, sequentially.

        Deletes go first so that a server-side rules-per-link ceiling is not
        tripped by a create that replaces a deleted rule.
        """
        report = SaveReport()

        for rule in plan.deletes:
            report.results.append(await self._run(
                OperationKind.DELETE, rule.rule_id,
                self.store.delete(short_url, rule.rule_id)
            ))

        for persisted, local in plan.updates:
            report.results.append(await self._run(
                OperationKind.UPDATE, local.rule_id,
                self.store.update(short_url, local.rule_id, build_update_patch(persisted, local))
            ))

        for rule in plan.creates:
            report.results.append(await self._run(
                OperationKind.CREATE, rule.rule_id,
                self.store.create(short_url, build_create_payload(rule))
            ))

        self.logger.info(
            "Rule set reconciled",
            short_url=short_url,
            operations=len(report.results),
            failures=len(report.failures)
        )
        return report

    async def save(self, short_url: str, original: Sequence[Rule], local: Sequence[Rule],
                   limits: Optional[PlanLimits] = None) -> SaveReport:
        """Validate, diff and apply.

        Raises:
            ValidationError: before any call is issued if any rule is invalid
                or a plan ceiling is exceeded.
        """
        valid = self.validate(local, limits)
        plan = self.diff(original, valid.rules)
        if plan.is_empty:
            return SaveReport()
        return await self.apply(short_url, plan)

    async def _run(self, kind: OperationKind, rule_id: str, call) -> OperationResult:
        try:
            result = await call
        except PersistenceError as e:
            self.logger.warning(
                "Rule operation failed",
                operation=kind.value,
                rule_id=rule_id,
                error=e.message
            )
            self._record(kind, "error")
            return OperationResult(kind, rule_id, success=False, error=e)

        self._record(kind, "ok")
        return OperationResult(kind, rule_id, success=True, rule=result)

    def _record(self, kind: OperationKind, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_rule_operation(kind.value, status)
