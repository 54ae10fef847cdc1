"""
Rules engine package.

Defines the link rule model and the evaluation engine that decides, for
each visit to a short link, which action runs: redirect, block, password
gate or notify. Rules are walked in ascending priority; the first rule
whose conditions match (or that carries an else-branch) is terminal.

Modules of interest:
- models: Rule, RuleCondition, Action and the wire payload models.
- conditions: Single-condition evaluation against a request context.
- matcher: AND/OR combination of a rule's conditions.
- engine: Priority walk and terminal action selection.
- actions: Action resolution, including redirect template expansion.
- device: User-agent based device classification.
- summary: Human-readable rule summaries.

Evaluation is synchronous and never mutates its inputs, so a single
engine instance can be shared across concurrent requests.
"""
