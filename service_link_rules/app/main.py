"""
Link Rules service.

Evaluates a short link's conditional redirect rules for one visit and
previews the persistence calls a rule set edit would produce.
"""

from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from shared.base_service import BaseService
from shared.errors import ValidationError
from shared.logging import set_link_context
from shared.retry import RetryConfig

from .adapters.base import RuleStore
from .adapters.http_store import HttpRuleStore
from .adapters.memory_store import InMemoryRuleStore
from .editing.limits import limits_for_plan
from .editing.normalize import rule_from_payload
from .editing.reconciler import RuleSetReconciler
from .editing.working_copy import new_temporary_id
from .rules.engine import RuleEngine
from .rules.models import (
    Link, RequestContext, ActionOutcome,
    EvaluateRequest, EvaluateResponse, PreviewRequest, PreviewResponse
)
from .rules.summary import rule_summary


def outcome_to_dict(outcome: ActionOutcome) -> Dict[str, Any]:
    data = {k: v for k, v in asdict(outcome).items() if v is not None}
    data["type"] = outcome.type.value
    return data


class LinkRulesService(BaseService):
    """Link Rules service implementation."""

    def __init__(self, store: Optional[RuleStore] = None):
        super().__init__("link-rules", 8020)

        self.store = store or self._create_store()
        self.rule_engine = RuleEngine(metrics=self.metrics)
        self.reconciler = RuleSetReconciler(self.store, metrics=self.metrics)

        self._setup_link_rules_routes()

    def _create_store(self) -> RuleStore:
        if self.config.persistence_backend == "memory":
            self.logger.info("Using in-memory rule store")
            return InMemoryRuleStore()

        return HttpRuleStore(
            self.config.api_base_url,
            timeout=self.config.request_timeout_seconds,
            retry_config=RetryConfig(
                max_attempts=self.config.retry_max_attempts,
                base_delay=self.config.retry_base_delay
            ),
            api_token=self.config.api_token
        )

    def _setup_link_rules_routes(self):
        """Set up link rules routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "link-rules",
                "message": "Link Rules - conditional redirect rule engine",
                "version": "1.0.0",
                "capabilities": ["evaluation", "reconciliation_preview"],
                "persistence_backend": self.config.persistence_backend
            }

        @self.app.post("/links/{short_url}/evaluate", response_model=EvaluateResponse)
        async def evaluate(short_url: str, request: EvaluateRequest):
            """Evaluate a link's rules against one visit."""
            set_link_context(short_url)

            context_args = dict(
                country=request.country,
                ip=request.ip,
                is_bot=request.is_bot,
                is_vpn=request.is_vpn,
                timestamp=request.timestamp or datetime.now(timezone.utc),
                prior_access_count=request.prior_access_count
            )
            if request.device is not None:
                ctx = RequestContext(device_class=request.device.value, **context_args)
            else:
                ctx = RequestContext.from_user_agent(request.user_agent, **context_args)

            rules = await self.store.list(short_url)
            result = self.rule_engine.evaluate(
                rules,
                Link(short_url=short_url, long_url=request.long_url),
                ctx,
                skip_action_types=request.skip_action_types
            )

            return EvaluateResponse(
                allowed=result.allowed,
                branch=result.branch,
                matched_rule_id=result.matched_rule_id,
                action=outcome_to_dict(result.outcome),
                evaluation_time_ms=result.evaluation_time_ms
            )

        @self.app.post("/links/{short_url}/rules/preview", response_model=PreviewResponse)
        async def preview(short_url: str, request: PreviewRequest):
            """Validate a desired rule set and list the calls a save would issue."""
            set_link_context(short_url)

            plan_name = request.plan or self.config.default_plan
            try:
                limits = limits_for_plan(plan_name)
            except ValueError as e:
                raise ValidationError(str(e), details={"field": "plan"}) from e

            local = []
            seen_ids = set()
            for index, payload in enumerate(request.rules):
                rule = rule_from_payload(payload)
                if not rule.rule_id:
                    rule = replace(rule, rule_id=new_temporary_id())
                elif rule.rule_id in seen_ids:
                    raise ValidationError(
                        f"Rule {index + 1}: duplicate rule id {rule.rule_id}",
                        details={"rule_index": index, "field": "id"}
                    )
                seen_ids.add(rule.rule_id)
                local.append(rule)

            original = await self.store.list(short_url)
            valid = self.reconciler.validate(local, limits)
            plan = self.reconciler.diff(original, valid.rules)

            return PreviewResponse(
                **plan.summary(),
                summaries={rule.rule_id: rule_summary(rule) for rule in valid.rules}
            )


def create_app(store: Optional[RuleStore] = None):
    """Create link rules service application."""
    service = LinkRulesService(store=store)
    return service.app


if __name__ == "__main__":
    service = LinkRulesService()
    service.run()
