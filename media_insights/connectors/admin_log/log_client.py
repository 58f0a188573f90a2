# ============================================================================
# media_insights/connectors/admin_log/log_client.py
# ============================================================================
# Async client for the admin log endpoint.
#
# Streams a named log (`log` = preview audit log, `medialog` = media
# operations) page by page, following the continuation cursor, and hands
# every page to a callback before requesting the next one.
#
# Configuration (priority order):
#   1. Constructor arguments
#   2. config.yml `admin_api` section
#   3. settings.admin_api_* / settings.log_page_* / settings.http_*
# ============================================================================

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import urljoin

import httpx

from media_insights.config import settings
from media_insights.core.constants import FULL_HISTORY_SINCE, MEDIA_LOG
from media_insights.core.shared.config_loader import config_loader
from media_insights.utils.time_utils import event_timestamp, timestamp_to_duration

logger = logging.getLogger("media_insights.connectors.log_client")

LogPageCallback = Callable[[List[Dict[str, Any]]], Union[None, Awaitable[None]]]


class LogFetchError(RuntimeError):
    """Raised when the first page of a log cannot be fetched."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LogClient:
    """Async client for the admin log endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        page_size: Optional[int] = None,
        page_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        api_config = config_loader.get_admin_api_config()

        self.base_url = (base_url or (api_config.base_url if api_config else settings.admin_api_base_url)).rstrip("/")
        self.token = token or (api_config.token if api_config and api_config.token else settings.admin_api_token)
        self.page_size = page_size or (api_config.page_size if api_config else settings.log_page_size)
        if page_delay is not None:
            self.page_delay = page_delay
        else:
            self.page_delay = api_config.page_delay if api_config else settings.log_page_delay
        self.timeout = timeout or (api_config.timeout if api_config else settings.http_timeout)
        if max_retries is not None:
            self.max_retries = max_retries
        else:
            self.max_retries = api_config.max_retries if api_config else settings.http_max_retries

        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            verify=settings.http_verify_ssl,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def log_url(self, log_name: str, org: str, repo: str, ref: str) -> str:
        """Endpoint URL of a log. The media log takes a trailing slash."""
        separator = "/" if log_name == MEDIA_LOG else ""
        return f"{self.base_url}/{log_name}/{org}/{repo}/{ref}{separator}"

    async def _get(self, url: str, params: Optional[dict]) -> httpx.Response:
        """GET with retries on transport errors."""
        retries = max(0, int(self.max_retries))
        attempt = 0
        while True:
            try:
                return await self._client.get(url, params=params, headers=self._headers())
            except httpx.RequestError:
                if attempt >= retries:
                    raise
                sleep_for = min(2 ** attempt * 0.5, 6.0)
                await asyncio.sleep(sleep_for)
                attempt += 1

    async def stream_log(
        self,
        log_name: str,
        org: str,
        repo: str,
        ref: str,
        since: Optional[int],
        on_page: LogPageCallback,
        page_size: Optional[int] = None,
    ) -> int:
        """
        Stream a log page by page.

        Args:
            log_name: `log` or `medialog`
            org: Site organization
            repo: Site repository
            ref: Branch ref
            since: Epoch ms lower bound, or None for the full history
            on_page: Callback (sync or async) receiving each non-empty page
            page_size: Entries per page (defaults to the client's)

        Returns:
            Number of entries delivered to on_page

        Raises:
            LogFetchError: If the first page fails
        """
        base = self.log_url(log_name, org, repo, ref)
        base_params: Dict[str, Any] = {
            "since": timestamp_to_duration(since) if since else FULL_HISTORY_SINCE,
            "limit": page_size or self.page_size,
        }
        params: Optional[Dict[str, Any]] = base_params
        next_url: Optional[str] = base
        page_number = 0
        delivered = 0

        while next_url:
            try:
                response = await self._get(next_url, params)
                if response.status_code >= 400:
                    raise LogFetchError(
                        f"{log_name} API error: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                data = response.json()
                if not isinstance(data, dict):
                    raise ValueError(f"unexpected {log_name} payload type {type(data).__name__}")
            except (httpx.RequestError, ValueError, LogFetchError) as e:
                if page_number == 0:
                    if isinstance(e, LogFetchError):
                        raise
                    raise LogFetchError(f"{log_name} API request failed: {e}") from e
                logger.warning(
                    f"Stopping {log_name} stream for {org}/{repo} after page {page_number}: {e}"
                )
                break

            page_number += 1
            entries = data.get("entries") or data.get("data") or []
            if since:
                entries = [e for e in entries if event_timestamp(e) >= since]

            if entries:
                delivered += len(entries)
                result = on_page(entries)
                if inspect.isawaitable(result):
                    await result
            elif not (data.get("entries") or data.get("data")):
                break

            next_url, params = self._next_request(base, base_params, data)
            if next_url and self.page_delay:
                await asyncio.sleep(self.page_delay)

        logger.debug(f"Fetched {delivered} {log_name} entries for {org}/{repo} in {page_number} page(s)")
        return delivered

    @staticmethod
    def _next_request(base: str, base_params: Dict[str, Any], data: Dict[str, Any]):
        """Resolve the next page from `links.next` or `nextToken`."""
        links = data.get("links") or {}
        next_link = links.get("next") if isinstance(links, dict) else None
        if isinstance(next_link, str) and next_link.strip():
            url = next_link if next_link.startswith("http") else urljoin(base, next_link)
            return url, None

        token = data.get("nextToken")
        if token:
            return base, {**base_params, "nextToken": token}
        return None, None

