"""
Linked-content resolver.

Parses page markdown for content that the media log never sees: PDFs, SVGs
and icons, fragment includes, and external media (YouTube, Vimeo, remote
images, DAM assets). The result is a usage map from each discovered item to
the pages that reference it.

Usage:
    from media_insights.connectors.content.linked_content import build_usage_map

    usage_map = await build_usage_map(page_events, "org", "repo", source_client)
    usage_map.pdfs["/docs/guide.pdf"]   # ["/docs/intro", "/index"]
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Union

from media_insights.core.constants import (
    FRAGMENTS_PATH,
    ICON_DOC_EXCLUDE,
    ICON_RE,
    ICONS_PATH,
    MD_AUTOLINK_RE,
    MD_LINK_RE,
)
from media_insights.core.indexing.media_types import get_external_media_type, is_external_url
from media_insights.core.indexing.paths import (
    is_pdf,
    is_svg,
    normalize_page_path,
    strip_query,
    to_path,
)
from media_insights.utils.time_utils import event_timestamp

logger = logging.getLogger("media_insights.connectors.linked_content")

DEFAULT_MAX_CONCURRENT_FETCHES = 10

ProgressCallback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


@dataclass
class ExternalMediaUsage:
    """Pages referencing one external media URL."""
    pages: List[str] = field(default_factory=list)
    latest_timestamp: int = 0


@dataclass
class UsageMap:
    """Linked content discovered in page markdown, keyed by path or URL."""
    pdfs: Dict[str, List[str]] = field(default_factory=dict)
    svgs: Dict[str, List[str]] = field(default_factory=dict)
    fragments: Dict[str, List[str]] = field(default_factory=dict)
    external_media: Dict[str, ExternalMediaUsage] = field(default_factory=dict)
    parsed_pages: Set[str] = field(default_factory=set)
    failed_pages: Set[str] = field(default_factory=set)

    def pages_for(self, path: str) -> List[str]:
        """Referencing pages of a PDF, SVG or fragment path."""
        if is_pdf(path):
            return self.pdfs.get(path, [])
        if is_svg(path):
            return self.svgs.get(path, [])
        return self.fragments.get(path, [])

    def linked_paths(self) -> Set[str]:
        return set(self.pdfs) | set(self.svgs) | set(self.fragments)


# =============================================================================
# MARKDOWN EXTRACTION
# =============================================================================

def extract_urls(markdown: Optional[str]) -> List[str]:
    """Link targets and autolinks, in document order."""
    if not markdown or not isinstance(markdown, str):
        return []
    from_links = [m.group(1).strip() for m in MD_LINK_RE.finditer(markdown)]
    from_autolinks = [m.group(1).strip() for m in MD_AUTOLINK_RE.finditer(markdown)]
    return from_links + from_autolinks


def _unique(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(item for item in items if item))


def extract_icon_references(markdown: Optional[str]) -> List[str]:
    """`:name:` placeholders as icon SVG paths."""
    if not markdown or not isinstance(markdown, str):
        return []
    return _unique(
        f"{ICONS_PATH}{m.group(1)}.svg"
        for m in ICON_RE.finditer(markdown)
        if m.group(1).lower() not in ICON_DOC_EXCLUDE
    )


def extract_fragment_references(markdown: Optional[str]) -> List[str]:
    return _unique(to_path(u) for u in extract_urls(markdown) if FRAGMENTS_PATH in u)


def extract_same_origin_links(markdown: Optional[str], predicate: Callable[[str], bool]) -> List[str]:
    """Same-origin link targets matching predicate, as site paths."""
    return _unique(
        to_path(u) for u in extract_urls(markdown)
        if predicate(strip_query(u)) and not is_external_url(u)
    )


def extract_external_media_urls(markdown: Optional[str]) -> List[str]:
    return _unique(u for u in extract_urls(markdown) if get_external_media_type(u) is not None)


# =============================================================================
# USAGE MAP
# =============================================================================

async def _bounded_gather(items: List[str], fn: Callable[[int, str], Awaitable[Any]], concurrency: int) -> List[Any]:
    """
    Run fn over items with at most `concurrency` in flight.

    When there are fewer items than the bound, all run at once.
    """
    if len(items) < concurrency:
        return await asyncio.gather(*(fn(i, item) for i, item in enumerate(items)))

    semaphore = asyncio.Semaphore(concurrency)

    async def run(i: int, item: str):
        async with semaphore:
            return await fn(i, item)

    return await asyncio.gather(*(run(i, item) for i, item in enumerate(items)))


def _add_reference(target: Dict[str, List[str]], key: str, page: str) -> None:
    pages = target.setdefault(key, [])
    if page not in pages:
        pages.append(page)


async def build_usage_map(
    page_events: Iterable[Dict[str, Any]],
    org: str,
    repo: str,
    source_client,
    on_progress: Optional[ProgressCallback] = None,
    max_concurrent_fetches: int = DEFAULT_MAX_CONCURRENT_FETCHES,
) -> UsageMap:
    """
    Resolve linked content for a set of pages.

    Args:
        page_events: Audit events of the pages to parse (one page may repeat)
        org: Site organization
        repo: Site repository
        source_client: Client exposing `fetch_markdown(doc, org, repo)`
        on_progress: Optional progress callback
        max_concurrent_fetches: Upper bound on parallel markdown fetches

    Returns:
        UsageMap of PDFs, SVGs, fragments and external media
    """
    latest_by_page: Dict[str, int] = {}
    for event in page_events:
        page = normalize_page_path(event.get("path"))
        if not page:
            continue
        timestamp = event_timestamp(event)
        if timestamp >= latest_by_page.get(page, -1):
            latest_by_page[page] = timestamp

    pages = list(latest_by_page)
    usage_map = UsageMap()
    logger.info(f"Parsing {len(pages)} unique pages for content usage")

    async def fetch(i: int, page: str):
        if on_progress is not None:
            try:
                result = on_progress({"message": f"Parsing page {i + 1}/{len(pages)}: {page}"})
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")
        return page, await source_client.fetch_markdown(page, org, repo)

    results = await _bounded_gather(pages, fetch, max(1, max_concurrent_fetches))

    for page, markdown in results:
        if markdown is None:
            usage_map.failed_pages.add(page)
            continue
        usage_map.parsed_pages.add(page)

        for fragment in extract_fragment_references(markdown):
            _add_reference(usage_map.fragments, fragment, page)
        for pdf in extract_same_origin_links(markdown, is_pdf):
            _add_reference(usage_map.pdfs, pdf, page)
        for svg in extract_same_origin_links(markdown, is_svg):
            _add_reference(usage_map.svgs, svg, page)
        for icon in extract_icon_references(markdown):
            _add_reference(usage_map.svgs, icon, page)

        page_timestamp = latest_by_page.get(page, 0)
        for url in extract_external_media_urls(markdown):
            usage = usage_map.external_media.setdefault(url, ExternalMediaUsage())
            if page not in usage.pages:
                usage.pages.append(page)
            usage.latest_timestamp = max(usage.latest_timestamp, page_timestamp)

    if usage_map.failed_pages:
        logger.warning(f"Failed to fetch markdown for {len(usage_map.failed_pages)} pages")

    logger.info(
        f"Content usage: {len(usage_map.pdfs)} PDFs, {len(usage_map.svgs)} SVGs, "
        f"{len(usage_map.fragments)} fragments, {len(usage_map.external_media)} external media"
    )
    return usage_map
