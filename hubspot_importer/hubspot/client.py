"""
HubSpot CRM client.

Responsibilities:
- Normalize and attach the private-app bearer token
- Create single records and batches of up to 100 records
- Translate HTTP failures into the HubSpotError taxonomy, keeping the
  parsed error body so callers can find the offending property
- Optionally honour 429 Retry-After before giving up
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

import httpx

from ..config.loader import HUBSPOT_API_BASE, MAX_BATCH_SIZE, OBJECT_TYPES

logger = logging.getLogger(__name__)

_BEARER_PREFIX_RE = re.compile(r"^Bearer\b\s*", re.IGNORECASE)
_DEFAULT_RETRY_AFTER = 10.0
_MAX_RETRY_WAIT = 30.0


class HubSpotError(Exception):
    """HubSpot request failed.

    Attributes:
        status_code: HTTP status (None for transport failures)
        body: Parsed JSON error body, raw response text, or None
    """

    def __init__(self, message: str, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


class HubSpotValidationError(HubSpotError):
    """400 / 422: invalid property names or values."""


class HubSpotAuthError(HubSpotError):
    """401 / 403: missing, expired or under-scoped token."""


class HubSpotRateLimitError(HubSpotError):
    """429: too many requests."""

    def __init__(
        self,
        message: str,
        status_code: int | None = 429,
        body: Any = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code, body)
        self.retry_after = retry_after


class HubSpotNetworkError(HubSpotError):
    """Connection, DNS or timeout failure before a response arrived."""


class HubSpotBatchError(HubSpotError):
    """Batch call returned per-input errors (207 multi-status)."""


class BatchTooLargeError(ValueError):
    """More than 100 inputs passed to a single batch call."""


def normalize_auth(token: str | None) -> str | None:
    """Return an ``Authorization`` header value for a raw token or ``Bearer ...`` string."""
    raw = (token or "").strip()
    raw = _BEARER_PREFIX_RE.sub("", raw).strip()
    if not raw:
        return None
    return f"Bearer {raw}"


def redact_authorization(value: str | None) -> str:
    """Mask a bearer header for logging, keeping the last four characters."""
    if not value:
        return "<missing>"
    trimmed = value.strip()
    if not trimmed.lower().startswith("bearer "):
        return trimmed
    token = trimmed[7:].strip()
    suffix = token[-4:] if len(token) > 4 else token
    return f"Bearer ***{suffix}"


def check_batch_size(count: int) -> None:
    if count > MAX_BATCH_SIZE:
        raise BatchTooLargeError(
            f"Batch size must not exceed {MAX_BATCH_SIZE} items (got {count})"
        )


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def error_from_response(response: httpx.Response) -> HubSpotError:
    """Build the HubSpotError subclass matching an error response."""
    status = response.status_code
    body: Any
    try:
        body = response.json()
    except ValueError:
        body = response.text[:2000] if response.text else None

    detail = ""
    if isinstance(body, dict):
        detail = str(body.get("message") or "")
    elif isinstance(body, str):
        detail = body[:500]
    message = detail or f"HubSpot API error ({status})"

    if status in (400, 422):
        return HubSpotValidationError(message, status, body)
    if status in (401, 403):
        return HubSpotAuthError(message, status, body)
    if status == 429:
        return HubSpotRateLimitError(message, status, body, retry_after=_parse_retry_after(response))
    return HubSpotError(message, status, body)


def _success_body(response: httpx.Response) -> dict[str, Any]:
    """Parse a 2xx body; anything but a JSON object is a HubSpotError.

    The error carries no body: proxy pages must not be searched for
    property names.
    """
    status = response.status_code
    try:
        data = response.json()
    except ValueError as e:
        logger.debug("non-JSON %s body: %s", status, response.text[:200])
        raise HubSpotError(f"HubSpot returned a non-JSON response ({status})", status) from e
    if not isinstance(data, dict):
        raise HubSpotError(f"HubSpot returned an unexpected response ({status})", status)
    return data


class HubSpotClient:
    """Async client for the HubSpot CRM v3 object endpoints.

    One client (and its connection pool) is shared by all workers of an
    import run. Use as an async context manager so the pool is closed.
    """

    def __init__(
        self,
        token: str | None,
        *,
        base_url: str = HUBSPOT_API_BASE,
        timeout: float = 30.0,
        rate_limit_retries: int = 0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        authorization = normalize_auth(token)
        if authorization is None:
            raise ValueError("HUBSPOT_PRIVATE_APP_TOKEN is required")
        self.base_url = base_url.rstrip("/")
        self.rate_limit_retries = rate_limit_retries
        self._authorization = authorization
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": authorization,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> HubSpotClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request, mapping failures to HubSpotError."""
        logger.debug(
            "%s %s auth=%s", method, endpoint, redact_authorization(self._authorization)
        )
        for attempt in range(self.rate_limit_retries + 1):
            try:
                response = await self._client.request(
                    method, endpoint, params=params, json=json_data
                )
            except httpx.HTTPError as e:
                # transport failures, undecodable content, redirect loops
                raise HubSpotNetworkError(str(e) or type(e).__name__) from e

            if response.status_code == 429 and attempt < self.rate_limit_retries:
                retry_after = _parse_retry_after(response) or _DEFAULT_RETRY_AFTER
                wait_secs = min(retry_after, _MAX_RETRY_WAIT)
                logger.info(
                    "HubSpot 429 on %s, retrying in %ss (attempt %d/%d)",
                    endpoint,
                    wait_secs,
                    attempt + 1,
                    self.rate_limit_retries,
                )
                await asyncio.sleep(wait_secs)
                continue

            if response.status_code >= 400:
                raise error_from_response(response)

            if not response.content:
                return {}
            return _success_body(response)

        # Unreachable: the last attempt either returns or raises
        raise HubSpotRateLimitError("HubSpot rate limit retries exhausted")

    @staticmethod
    def _object_path(object_type: str) -> str:
        if object_type not in OBJECT_TYPES:
            raise ValueError(f"Unsupported HubSpot object type: {object_type}")
        return f"/crm/v3/objects/{object_type}"

    async def create_one(self, object_type: str, properties: dict[str, str]) -> dict[str, Any]:
        """
        Create a single record.

        Args:
            object_type: contacts, companies or deals
            properties: HubSpot property name -> value

        Returns:
            Created record with HubSpot ID
        """
        data = await self._request(
            "POST",
            self._object_path(object_type),
            json_data={"properties": properties},
        )
        return {
            "id": data.get("id"),
            "properties": data.get("properties", {}),
        }

    async def batch_create(
        self, object_type: str, property_sets: list[dict[str, str]]
    ) -> dict[str, Any]:
        """
        Batch create records (up to 100 per call).

        The batch is treated as atomic: a multi-status response with
        per-input errors raises HubSpotBatchError so the caller can fall
        back to single-record creates.

        Raises:
            BatchTooLargeError: More than 100 property sets (no request made)
        """
        check_batch_size(len(property_sets))
        path = self._object_path(object_type)
        inputs = [{"properties": p} for p in property_sets]
        data = await self._request(
            "POST",
            f"{path}/batch/create",
            json_data={"inputs": inputs},
        )
        errors = data.get("errors") or []
        if errors:
            first = errors[0] if isinstance(errors[0], dict) else {}
            raise HubSpotBatchError(
                str(first.get("message") or f"{len(errors)} batch input(s) failed"),
                207,
                data,
            )
        return {
            "status": data.get("status", "COMPLETE"),
            "results": [
                {"id": r.get("id"), "properties": r.get("properties", {})}
                for r in data.get("results", [])
            ],
            "errors": errors,
        }

    async def health_check(self) -> dict[str, Any]:
        """Fetch one contact to confirm the token works."""
        return await self._request("GET", "/crm/v3/objects/contacts", params={"limit": 1})
