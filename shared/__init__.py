"""
Shared utilities for the Link Rules service.

This package aggregates common building blocks consumed by the service
and its adapters:

- config: Service configuration via pydantic-settings
- logging: Structured logging with link/rule correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators for outbound HTTP calls
- base_service: FastAPI service scaffold

Do not import from service_link_rules into shared/.
"""
