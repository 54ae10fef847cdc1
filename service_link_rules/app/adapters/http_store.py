"""
Dashboard API client for link rule persistence.
"""

import httpx
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from shared.errors import PersistenceError
from shared.logging import get_logger
from shared.retry import retry_on_exception, RetryConfig, RetryError
from ..editing.normalize import rule_from_payload
from ..rules.models import Rule
from .base import RuleStore


class HttpRuleStore(RuleStore):
    """Client for the ``/link/{short_url}/rules`` endpoints.

    Responses are expected in the ``{"success": ..., "data": ...}``
    envelope. Transport failures are retried; HTTP error statuses are not.
    Creates are only retried when the connection was never established.
    """

    def __init__(self, base_url: str, timeout: float = 10.0,
                 retry_config: Optional[RetryConfig] = None,
                 api_token: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_token = api_token
        self.logger = get_logger("link_rules.http_store")

        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=True
        )
        self._send = retry_on_exception(
            (httpx.TransportError,), config=self.retry_config
        )(self._send_once)
        # A POST that timed out may already have been stored
        self._send_create = retry_on_exception(
            (httpx.ConnectError, httpx.ConnectTimeout), config=self.retry_config
        )(self._send_once)

    def _rules_url(self, short_url: str, rule_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/link/{short_url}/rules"
        if rule_id is not None:
            url = f"{url}/{rule_id}"
        return url

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def _send_once(self, method: str, url: str,
                         payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            call = getattr(client, method)
            kwargs: Dict[str, Any] = {"headers": self._headers()}
            if payload is not None:
                kwargs["json"] = payload
            return await call(url, **kwargs)

    async def _request(self, operation: str, method: str, url: str,
                       payload: Optional[Dict[str, Any]] = None,
                       rule_id: Optional[str] = None) -> httpx.Response:
        send = self._send_create if method == "post" else self._send
        try:
            return await send(method, url, payload)
        except RetryError as e:
            self.logger.error(
                "Rules API unreachable",
                operation=operation,
                url=url,
                attempts=e.attempts,
                error=str(e.last_exception)
            )
            raise PersistenceError(
                operation,
                f"Rules API unreachable: {e.last_exception}",
                rule_id=rule_id
            ) from e
        except httpx.HTTPError as e:
            self.logger.error("Rules API HTTP error", operation=operation, url=url, error=str(e))
            raise PersistenceError(operation, str(e), rule_id=rule_id) from e

    def _raise_for_status(self, operation: str, response: httpx.Response,
                          rule_id: Optional[str] = None) -> None:
        if response.is_success:
            return

        message = f"Rules API returned {response.status_code}"
        details: Dict[str, Any] = {}
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error") or message
            if body.get("validation"):
                details["validation"] = body["validation"]

        self.logger.warning(
            "Rules API rejected request",
            operation=operation,
            status_code=response.status_code,
            rule_id=rule_id,
            message=message
        )
        raise PersistenceError(
            operation, message, rule_id=rule_id,
            status_code=response.status_code, details=details
        )

    def _data(self, operation: str, response: httpx.Response,
              rule_id: Optional[str] = None) -> Any:
        try:
            body = response.json()
        except ValueError as e:
            raise PersistenceError(operation, "Response is not JSON", rule_id=rule_id) from e
        if not isinstance(body, dict) or body.get("success") is False:
            message = body.get("message", "Request failed") if isinstance(body, dict) else "Unexpected response"
            raise PersistenceError(operation, message, rule_id=rule_id)
        return body.get("data")

    def _parse_rule(self, operation: str, data: Any, rule_id: Optional[str] = None) -> Rule:
        try:
            return rule_from_payload(data)
        except (PydanticValidationError, ValueError, TypeError, KeyError) as e:
            raise PersistenceError(operation, f"Malformed rule in response: {e}", rule_id=rule_id) from e

    async def list(self, short_url: str) -> List[Rule]:
        response = await self._request("list", "get", self._rules_url(short_url))

        # A link without rules, or an API without the endpoint, is an empty set
        if response.status_code == 404:
            return []
        self._raise_for_status("list", response)

        data = self._data("list", response) or []
        if not isinstance(data, list):
            raise PersistenceError("list", "Expected a list of rules")
        rules = [self._parse_rule("list", item) for item in data]
        return sorted(rules, key=lambda r: r.priority)

    async def create(self, short_url: str, payload: Dict[str, Any]) -> Rule:
        response = await self._request("create", "post", self._rules_url(short_url), payload)
        self._raise_for_status("create", response)
        rule = self._parse_rule("create", self._data("create", response))
        self.logger.info("Rule created", short_url=short_url, rule_id=rule.rule_id)
        return rule

    async def update(self, short_url: str, rule_id: str, patch: Dict[str, Any]) -> Rule:
        url = self._rules_url(short_url, rule_id)
        response = await self._request("update", "put", url, patch, rule_id=rule_id)
        self._raise_for_status("update", response, rule_id)
        rule = self._parse_rule("update", self._data("update", response, rule_id), rule_id)
        self.logger.info("Rule updated", short_url=short_url, rule_id=rule_id)
        return rule

    async def delete(self, short_url: str, rule_id: str) -> None:
        url = self._rules_url(short_url, rule_id)
        response = await self._request("delete", "delete", url, rule_id=rule_id)
        self._raise_for_status("delete", response, rule_id)
        self.logger.info("Rule deleted", short_url=short_url, rule_id=rule_id)
