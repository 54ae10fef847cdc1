"""
Plan limit providers.
"""

import httpx
from typing import Any, Optional

from shared.errors import ExternalServiceError
from shared.logging import get_logger
from shared.retry import retry_on_exception, RetryConfig, RetryError
from ..editing.limits import PlanLimits, limits_for_plan
from .base import PlanLimitsProvider


def _limit(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"Invalid limit value: {value!r}")
    return value


class HttpPlanLimitsProvider(PlanLimitsProvider):
    """Reads the acting identity's ceilings from the subscription status endpoint."""

    def __init__(self, base_url: str, timeout: float = 10.0,
                 retry_config: Optional[RetryConfig] = None,
                 api_token: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_token = api_token
        self.logger = get_logger("link_rules.plan_client")
        self.retry_config = retry_config or RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)
        self._fetch = retry_on_exception(
            (httpx.TransportError,), config=self.retry_config
        )(self._fetch_once)

    async def _fetch_once(self) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(f"{self.base_url}/subscription/status", headers=headers)

    async def get_limits(self) -> PlanLimits:
        try:
            response = await self._fetch()
        except RetryError as e:
            self.logger.error("Subscription service unreachable", error=str(e.last_exception))
            raise ExternalServiceError(
                "subscription",
                "Subscription service unavailable",
                details={"error": str(e.last_exception)}
            ) from e
        except httpx.HTTPError as e:
            self.logger.error("Subscription service HTTP error", error=str(e))
            raise ExternalServiceError("subscription", str(e)) from e

        if response.status_code != 200:
            raise ExternalServiceError(
                "subscription",
                f"Subscription service error: {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            limits = response.json()["data"]["limits"]
            result = PlanLimits(
                max_rules_per_link=_limit(limits.get("rulesPerLink")),
                max_conditions_per_rule=_limit(limits.get("conditionsPerRule"))
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ExternalServiceError(
                "subscription",
                "Malformed subscription status response",
                details={"error": str(e)}
            ) from e

        self.logger.debug(
            "Plan limits fetched",
            max_rules=result.max_rules_per_link,
            max_conditions=result.max_conditions_per_rule
        )
        return result


class StaticPlanLimitsProvider(PlanLimitsProvider):
    """Fixed limits, either explicit or from a named plan preset."""

    def __init__(self, plan: Optional[str] = None, limits: Optional[PlanLimits] = None):
        if limits is None:
            limits = limits_for_plan(plan) if plan else PlanLimits()
        self.limits = limits

    async def get_limits(self) -> PlanLimits:
        return self.limits
