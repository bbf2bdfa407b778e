"""Base Dashboard API Client.

Transport pipeline shared by all dashboard resource clients: request
construction (base URL, path normalization, version collapsing), dispatch
over httpx, error normalization and bounded transport-level retry.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlparse

import httpx

from ..config import ApiConfig, DashboardConfig
from .error_normalizer import (
    DashboardAPIError,
    EnhancedError,
    ErrorKind,
    normalize_error,
)
from .models import PaginatedResponse, ResourceId
from .request_params import (
    DEFAULT_DATE_FIELDS,
    format_request_params,
    parse_api_dates,
    parse_api_dates_list,
)
from .retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)

DEFAULT_PAGE_SIZE = 50


@dataclass
class RequestDescriptor:
    """One logical request; retry_count is advanced by the pipeline only."""

    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    body: Any = None
    retry_count: int = 0


class DashboardAPIClient:
    """Base API client with path normalization, error taxonomy and retry."""

    def __init__(
        self,
        config: Optional[ApiConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the API client.

        Args:
            config: API connection settings (defaults apply when omitted)
            retry_policy: Transport retry policy, may be shared with
                AsyncOperation instances
            transport: Optional httpx transport (e.g. httpx.MockTransport)
        """
        self.config = config or ApiConfig()
        self.base_url = self.config.base_url
        self.retry_policy = retry_policy or RetryPolicy()
        self._transport = transport
        self._session: Optional[httpx.AsyncClient] = None

        version = self.config.api_version
        base_path = urlparse(self.base_url).path.rstrip("/")
        self._version_segment = f"/{version}" if version else ""
        self._base_carries_version = bool(version) and base_path.endswith(
            self._version_segment
        )

    @classmethod
    def from_config(
        cls,
        config: DashboardConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "DashboardAPIClient":
        """Build a client from the top-level configuration."""
        policy = retry_policy or RetryPolicy(
            max_retries=config.retry.max_retries,
            base_delay_ms=config.retry.base_delay_ms,
        )
        return cls(config=config.api, retry_policy=policy, transport=transport)

    @property
    def session(self) -> httpx.AsyncClient:
        """Get or create the HTTP session."""
        if self._session is None or self._session.is_closed:
            self._session = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout_seconds),
                headers=self.config.headers,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._session

    def normalize_path(self, path: str) -> str:
        """Normalize an endpoint path for the backend's routing conventions.

        - ensures a leading slash
        - collapses repeated version prefixes (/v1/v1/x -> /v1/x)
        - drops the version prefix when the base URL already carries it
        - appends one trailing slash to bare resource paths (no query string,
          no file extension)

        Absolute URLs are returned unchanged. Idempotent.
        """
        if _ABSOLUTE_URL.match(path):
            return path

        path_part, separator, query = path.partition("?")
        if not path_part.startswith("/"):
            path_part = f"/{path_part}"

        segment = self._version_segment
        if segment:
            path_part = re.sub(
                rf"^(?:{re.escape(segment)})+(?=/|$)", segment, path_part
            )
            if self._base_carries_version and (
                path_part == segment or path_part.startswith(f"{segment}/")
            ):
                path_part = path_part[len(segment):] or "/"

        if not separator and not path_part.endswith("/"):
            last_segment = path_part.rsplit("/", 1)[-1]
            if "." not in last_segment:
                path_part = f"{path_part}/"

        if separator:
            return f"{path_part}?{query}"
        return path_part

    def build_url(self, path: str) -> str:
        """Full request URL for an endpoint path."""
        if _ABSOLUTE_URL.match(path):
            return path
        return f"{self.base_url}{self.normalize_path(path)}"

    async def send(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Send a request, retrying transient failures with backoff.

        The same descriptor is re-sent on every retry so its retry_count
        reflects the total number of retries for this request.

        Args:
            descriptor: Request to send

        Returns:
            The successful (status < 400) response, unchanged

        Raises:
            DashboardAPIError: With the normalized error once the failure is
                non-retryable or retries are exhausted
        """
        method = descriptor.method.upper()
        url = self.build_url(descriptor.path)
        params = format_request_params(descriptor.params)

        while True:
            logger.debug(f"{method} {url} params={params} retry={descriptor.retry_count}")
            try:
                response = await self.session.request(
                    method,
                    url,
                    params=params or None,
                    json=descriptor.body,
                )
            except Exception as e:
                error = normalize_error(e, url=url, method=method)
            else:
                if response.status_code < 400:
                    return response
                error = normalize_error(response, url=url, method=method)

            if self.retry_policy.should_retry(error, descriptor.retry_count):
                delay_ms = self.retry_policy.delay_for(descriptor.retry_count)
                descriptor.retry_count += 1
                logger.warning(
                    f"{method} {url} failed with {error.error_code}, retrying in "
                    f"{delay_ms}ms ({descriptor.retry_count}/{self.retry_policy.max_retries})"
                )
                await asyncio.sleep(delay_ms / 1000.0)
                continue

            logger.error(f"{method} {url} failed with {error.error_code}: {error.message}")
            raise DashboardAPIError(error)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        """Build a descriptor and send it through the pipeline."""
        descriptor = RequestDescriptor(
            method=method, path=path, params=params, body=json
        )
        return await self.send(descriptor)

    async def get(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        return await self.request("GET", path, params=params)

    async def post(
        self, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        return await self.request("POST", path, params=params, json=json)

    async def put(
        self, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        return await self.request("PUT", path, params=params, json=json)

    async def patch(
        self, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        return await self.request("PATCH", path, params=params, json=json)

    async def delete(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        return await self.request("DELETE", path, params=params)

    def _decode(self, response: httpx.Response) -> Any:
        """Decode a JSON body, normalizing malformed payloads."""
        try:
            return response.json()
        except ValueError as e:
            request = response.request
            raise DashboardAPIError(
                normalize_error(e, url=str(request.url), method=request.method)
            )

    async def request_json(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """Send a request and return its decoded JSON body."""
        response = await self.request(method, path, params=params, json=json)
        return self._decode(response)

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request_json("GET", path, params=params)

    def _malformed(self, path: str, payload: Any, expected: str) -> DashboardAPIError:
        return DashboardAPIError(
            EnhancedError(
                message=f"Malformed response: expected {expected}",
                error_code=ErrorKind.CLIENT_ERROR.value,
                original_error=payload,
                request_url=self.build_url(path),
                request_method="GET",
            )
        )

    async def get_paginated(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        date_fields: Sequence[str] = DEFAULT_DATE_FIELDS,
    ) -> PaginatedResponse:
        """Fetch one page from a list endpoint.

        Args:
            path: List endpoint path
            params: Query parameters; page defaults to 1, page_size to 50
            date_fields: Item fields to parse into datetimes

        Returns:
            PaginatedResponse with date fields parsed

        Raises:
            DashboardAPIError: If the request fails or the payload is not a
                paginated object
        """
        query: Dict[str, Any] = {"page": 1, "page_size": DEFAULT_PAGE_SIZE}
        query.update(params or {})

        data = await self.get_json(path, params=query)
        if not isinstance(data, dict) or not isinstance(data.get("items", []), list):
            raise self._malformed(path, data, "a paginated object")

        items = parse_api_dates_list(data.get("items") or [], date_fields)
        return PaginatedResponse(
            items=items,
            total=data.get("total", len(items)),
            page=data.get("page", query["page"]),
            page_size=data.get("page_size", query["page_size"]),
        )

    async def get_item(
        self,
        path: str,
        item_id: ResourceId,
        params: Optional[Dict[str, Any]] = None,
        date_fields: Sequence[str] = DEFAULT_DATE_FIELDS,
    ) -> Dict[str, Any]:
        """Fetch a single item by ID with date fields parsed."""
        item_path = f"{path.rstrip('/')}/{item_id}"
        data = await self.get_json(item_path, params=params)
        if not isinstance(data, dict):
            raise self._malformed(item_path, data, "an object")
        return parse_api_dates(data, date_fields) or {}

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.is_closed:
            await self._session.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    def __del__(self):
        """Warn when the session was never closed."""
        session = getattr(self, "_session", None)
        if session is not None and not session.is_closed:
            logger.warning(f"{type(self).__name__} was not properly closed")
