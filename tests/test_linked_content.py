"""
Tests for markdown extraction, the page source client and usage map building.
"""

import asyncio

import httpx
import pytest

from media_insights.connectors.content.linked_content import (
    build_usage_map,
    extract_external_media_urls,
    extract_fragment_references,
    extract_icon_references,
    extract_same_origin_links,
    extract_urls,
)
from media_insights.connectors.content.source_client import SourceClient
from media_insights.core.indexing.paths import is_pdf, is_svg
from tests.conftest import FakeSourceClient

MARKDOWN = """
# Welcome :rocket: and :svg:

[Guide](/docs/guide.pdf) and [again](https://main--site--org.aem.page/docs/guide.pdf?download=1)
[Logo](/images/logo.svg)
[Nav](https://main--site--org.aem.page/fragments/nav)
[External PDF](https://cdn.example.com/whitepaper.pdf)
[Video](https://www.youtube.com/watch?v=abc)
[About](https://example.com/about)
<https://images.unsplash.com/photo-1>
</fragments/footer>
"""


class TestExtraction:

    def test_extract_urls_in_document_order(self):
        urls = extract_urls("[a](/x) text [b]( /y ) <https://z.example.com/q>")
        assert urls == ["/x", "/y", "https://z.example.com/q"]

    def test_icons_skip_syntax_tokens(self):
        assert extract_icon_references(MARKDOWN) == ["/icons/rocket.svg"]

    def test_fragments(self):
        assert extract_fragment_references(MARKDOWN) == ["/fragments/nav", "/fragments/footer"]

    def test_same_origin_pdfs_are_deduplicated_paths(self):
        assert extract_same_origin_links(MARKDOWN, is_pdf) == ["/docs/guide.pdf"]
        assert extract_same_origin_links(MARKDOWN, is_svg) == ["/images/logo.svg"]

    def test_external_media(self):
        assert extract_external_media_urls(MARKDOWN) == [
            "https://cdn.example.com/whitepaper.pdf",
            "https://www.youtube.com/watch?v=abc",
            "https://images.unsplash.com/photo-1",
        ]

    def test_empty_markdown(self):
        assert extract_urls(None) == []
        assert extract_icon_references("") == []


class TestSourceClient:

    @pytest.mark.asyncio
    async def test_fetches_markdown_path(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, text="# Page")

        client = SourceClient(base_url="https://source.example.com", token="tok",
                              transport=httpx.MockTransport(handler))

        markdown = await client.fetch_markdown("/docs/intro", "org", "site")

        assert markdown == "# Page"
        assert seen[0].url.path == "/source/org/site/docs/intro.md"
        assert seen[0].headers["Authorization"] == "Bearer tok"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_http_error_returns_none(self):
        client = SourceClient(base_url="https://source.example.com",
                              transport=httpx.MockTransport(lambda request: httpx.Response(404)))

        assert await client.fetch_markdown("/missing", "org", "site") is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_transport_error_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = SourceClient(base_url="https://source.example.com", max_retries=0,
                              transport=httpx.MockTransport(handler))

        assert await client.fetch_markdown("/a", "org", "site") is None
        await client.aclose()


class TestBuildUsageMap:

    @pytest.mark.asyncio
    async def test_usage_map_from_pages(self):
        source = FakeSourceClient(pages={"/a": MARKDOWN, "/b": "[Guide](/docs/guide.pdf)"}, default=None)
        events = [
            {"path": "/a.md", "timestamp": 100},
            {"path": "/a", "timestamp": 300},
            {"path": "/b", "timestamp": 200},
            {"path": "/gone", "timestamp": 200},
        ]

        usage_map = await build_usage_map(events, "org", "site", source)

        assert sorted(source.fetched) == ["/a", "/b", "/gone"]
        assert usage_map.parsed_pages == {"/a", "/b"}
        assert usage_map.failed_pages == {"/gone"}
        assert usage_map.pdfs == {"/docs/guide.pdf": ["/a", "/b"]}
        assert set(usage_map.svgs) == {"/images/logo.svg", "/icons/rocket.svg"}
        assert set(usage_map.fragments) == {"/fragments/nav", "/fragments/footer"}
        video = usage_map.external_media["https://www.youtube.com/watch?v=abc"]
        assert video.pages == ["/a"]
        assert video.latest_timestamp == 300
        assert usage_map.pages_for("/docs/guide.pdf") == ["/a", "/b"]

    @pytest.mark.asyncio
    async def test_non_numeric_page_timestamp_is_tolerated(self):
        source = FakeSourceClient(pages={"/a": "[Video](https://www.youtube.com/watch?v=abc)"})
        events = [{"path": "/a", "timestamp": "soon"}]

        usage_map = await build_usage_map(events, "org", "site", source)

        assert usage_map.parsed_pages == {"/a"}
        assert usage_map.external_media["https://www.youtube.com/watch?v=abc"].latest_timestamp == 0

    @pytest.mark.asyncio
    async def test_empty_markdown_is_parsed_not_failed(self):
        usage_map = await build_usage_map([{"path": "/a", "timestamp": 1}], "org", "site", FakeSourceClient())
        assert usage_map.parsed_pages == {"/a"}
        assert usage_map.failed_pages == set()

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        in_flight = {"now": 0, "max": 0}

        class SlowSource:
            async def fetch_markdown(self, doc, org, repo):
                in_flight["now"] += 1
                in_flight["max"] = max(in_flight["max"], in_flight["now"])
                await asyncio.sleep(0.01)
                in_flight["now"] -= 1
                return ""

        events = [{"path": f"/p{i}", "timestamp": i} for i in range(12)]
        await build_usage_map(events, "org", "site", SlowSource(), max_concurrent_fetches=3)

        assert in_flight["max"] <= 3

    @pytest.mark.asyncio
    async def test_progress_callback_may_be_async(self):
        messages = []

        async def on_progress(event):
            messages.append(event["message"])

        await build_usage_map([{"path": "/a", "timestamp": 1}], "org", "site", FakeSourceClient(),
                              on_progress=on_progress)

        assert messages == ["Parsing page 1/1: /a"]
