# ============================================================================
# media_insights/connectors/content/source_client.py
# ============================================================================
# Async client for page markdown sources.
#
# Fetches `<doc>.md` for a page. Failures are logged and reported as None;
# a missing page never fails a build.
# ============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from media_insights.config import settings
from media_insights.core.indexing.paths import markdown_path
from media_insights.core.shared.config_loader import config_loader

logger = logging.getLogger("media_insights.connectors.source_client")


class SourceClient:
    """Async client for the page source endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        api_config = config_loader.get_source_api_config()

        self.base_url = (base_url or (api_config.base_url if api_config else settings.source_api_base_url)).rstrip("/")
        self.token = token or (api_config.token if api_config and api_config.token else settings.source_api_token)
        self.timeout = timeout or (api_config.timeout if api_config else settings.http_timeout)
        self.max_retries = max_retries if max_retries is not None else settings.http_max_retries

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            verify=settings.http_verify_ssl,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict:
        headers = {"Accept": "text/markdown, text/plain, */*"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def source_path(self, doc: str, org: str, repo: str) -> str:
        return f"/source/{org}/{repo}{markdown_path(doc)}"

    async def fetch_markdown(self, doc: str, org: str, repo: str) -> Optional[str]:
        """
        Fetch a page's markdown.

        Args:
            doc: Normalized page path
            org: Site organization
            repo: Site repository

        Returns:
            Markdown text, or None if the page could not be fetched
        """
        path = self.source_path(doc, org, repo)
        retries = max(0, int(self.max_retries))
        attempt = 0

        while True:
            try:
                response = await self._client.get(path, headers=self._headers())
                if response.status_code >= 400:
                    logger.debug(f"Markdown fetch for {doc} returned HTTP {response.status_code}")
                    return None
                return response.text
            except httpx.RequestError as e:
                if attempt >= retries:
                    logger.warning(f"Markdown fetch for {doc} failed: {e}")
                    return None
                await asyncio.sleep(min(2 ** attempt * 0.5, 6.0))
                attempt += 1
