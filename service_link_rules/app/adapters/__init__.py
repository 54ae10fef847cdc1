"""
Adapters for the collaborators the rule editor depends on.

- base: Abstract RuleStore and PlanLimitsProvider contracts.
- http_store: Rule persistence against the dashboard REST API.
- memory_store: In-process rule persistence for local runs.
- plan_client: Plan limits from the subscription API or a static plan.
"""
