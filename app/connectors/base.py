"""
app/connectors/base.py

Shared HTTP mechanics for billing provider connectors.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from app.config import ExternalHTTPSettings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

ERROR_KINDS = frozenset(
    {
        "authentication",
        "rate_limit",
        "invalid_request",
        "api_connection",
        "api_error",
        "permission",
        "unknown",
    }
)


class BillingAPIError(RuntimeError):
    """
    Raised when the billing provider cannot be queried.

    ``kind`` is one of :data:`ERROR_KINDS`; ``retriable`` tells the caller
    whether trying again later can succeed.
    """

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        retriable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind if kind in ERROR_KINDS else "unknown"
        self.retriable = retriable
        self.status_code = status_code


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message") or f"HTTP {response.status_code}"
    return f"HTTP {response.status_code}"


def map_http_error(response: requests.Response) -> BillingAPIError:
    """
    Translate a failed provider response into a :class:`BillingAPIError`.
    """

    status_code = response.status_code
    message = _error_message(response)
    if status_code == 401:
        return BillingAPIError(
            "authentication", f"Authentication failed: {message}", status_code=status_code
        )
    if status_code == 403:
        return BillingAPIError("permission", f"Permission denied: {message}", status_code=status_code)
    if status_code == 429:
        return BillingAPIError(
            "rate_limit", f"Rate limit exceeded: {message}", retriable=True, status_code=status_code
        )
    if status_code in (400, 402, 404):
        if "permission" in message.lower():
            return BillingAPIError("permission", f"Permission denied: {message}", status_code=status_code)
        return BillingAPIError("invalid_request", f"Invalid request: {message}", status_code=status_code)
    if status_code >= 500:
        return BillingAPIError(
            "api_error", f"Billing API error: {message}", retriable=True, status_code=status_code
        )
    return BillingAPIError("unknown", message, status_code=status_code)


class BaseHTTPConnector:
    """
    Rate-limited JSON client with exponential backoff on transient failures.
    """

    source: str

    def __init__(
        self,
        *,
        source: str,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.source = source
        self._session = session or requests.Session()
        self._timeout_seconds = http_settings.timeout_seconds
        self._max_retries = max(0, http_settings.max_retries)
        self._backoff_initial_seconds = http_settings.backoff_initial_seconds
        self._backoff_multiplier = http_settings.backoff_multiplier
        self._min_request_interval_seconds = (
            1.0 / http_settings.rate_limit_per_second if http_settings.rate_limit_per_second > 0 else 0.0
        )
        self._last_request_monotonic: float = 0.0

    def _request_json(
        self,
        *,
        method: str,
        url: str,
        params: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Execute an HTTP request and return parsed JSON.
        """

        response = self._request(method=method, url=url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as exc:
            raise BillingAPIError("api_error", f"{self.source}: response was not valid JSON.") from exc

    def _request(
        self,
        *,
        method: str,
        url: str,
        params: Any = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """
        Execute an HTTP request, retrying 429/5xx and connection failures.
        """

        last_error: BillingAPIError | None = None
        for attempt in range(self._max_retries + 1):
            self._apply_rate_limit()
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    params=params,
                    headers=headers,
                    timeout=self._timeout_seconds,
                )
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = BillingAPIError(
                    "api_connection",
                    f"Connection error: {exc}",
                    retriable=True,
                )
            else:
                if response.status_code < 400:
                    return response
                last_error = map_http_error(response)
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    logger.error(
                        "Billing request failed source=%s status=%s url=%s kind=%s",
                        self.source,
                        response.status_code,
                        url,
                        last_error.kind,
                    )
                    raise last_error

            if attempt >= self._max_retries:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Billing request retry source=%s attempt=%s/%s wait_seconds=%.2f url=%s",
                self.source,
                attempt + 1,
                self._max_retries,
                backoff_seconds,
                url,
            )
            time.sleep(backoff_seconds)

        logger.error(
            "Billing request exhausted retries source=%s url=%s error=%s",
            self.source,
            url,
            last_error,
        )
        if last_error is None:
            last_error = BillingAPIError("unknown", f"No request was sent to {url}")
        raise last_error

    def _apply_rate_limit(self) -> None:
        """
        Enforce minimum interval between outbound requests.
        """

        if self._min_request_interval_seconds <= 0:
            return

        now = time.monotonic()
        elapsed = now - self._last_request_monotonic
        remaining = self._min_request_interval_seconds - elapsed
        if remaining > 0:
            time.sleep(remaining)
        self._last_request_monotonic = time.monotonic()
