"""
Tests for path normalization, media type detection and time helpers.
"""

import pytest

from media_insights.core.constants import (
    TYPE_DOCUMENT,
    TYPE_FRAGMENT,
    TYPE_IMAGE,
    TYPE_UNKNOWN,
    TYPE_VIDEO,
)
from media_insights.core.indexing.media_types import (
    detect_media_type,
    extract_name,
    get_dedupe_key,
    get_external_media_type,
    is_external_url,
    linked_content_type,
)
from media_insights.core.indexing.paths import (
    doc_depth,
    is_linked_content_path,
    is_page,
    markdown_path,
    normalize_page_path,
    to_absolute_file_path,
    to_path,
)
from media_insights.utils.time_utils import format_elapsed, timestamp_to_duration


class TestPagePaths:
    """Page identity and classification."""

    @pytest.mark.parametrize("raw", ["/a", "/a.md", "/a?x=1", "a", "/a#top"])
    def test_spellings_collapse(self, raw):
        assert normalize_page_path(raw) == "/a"

    def test_root_and_trailing_slash_map_to_index(self):
        assert normalize_page_path("/") == "/index"
        assert normalize_page_path("/docs/") == "/docs/index"

    def test_empty_path(self):
        assert normalize_page_path(None) == ""
        assert normalize_page_path("") == ""

    def test_page_classification(self):
        assert is_page("/docs/intro")
        assert is_page("/docs/intro.md")
        assert not is_page("/media/hero")
        assert not is_page("/fragments/footer")
        assert not is_page("/docs/guide.pdf")
        assert not is_page(None)

    def test_file_paths_are_absolute(self):
        assert to_absolute_file_path("docs/guide.pdf?v=2") == "/docs/guide.pdf"
        assert to_absolute_file_path("/icons/a.svg") == "/icons/a.svg"

    def test_to_path(self):
        assert to_path("https://main--site--org.aem.page/docs/a.pdf") == "/docs/a.pdf"
        assert to_path("docs/a.pdf?download=1") == "/docs/a.pdf"

    def test_markdown_path(self):
        assert markdown_path("/docs/intro") == "/docs/intro.md"
        assert markdown_path("/") == "/index.md"

    def test_linked_content_paths(self):
        assert is_linked_content_path("/docs/a.pdf")
        assert is_linked_content_path("/icons/a.svg")
        assert is_linked_content_path("/fragments/footer")
        assert not is_linked_content_path("/media/hero.png")

    def test_doc_depth(self):
        assert doc_depth("/a") == 1
        assert doc_depth("/a/b/c") == 3
        assert doc_depth("") == 0


class TestMediaTypes:
    """Type detection for media-log entries and linked content."""

    def test_content_type_wins(self):
        assert detect_media_type({"contentType": "video/mp4", "path": "https://x/a.png"}) == TYPE_VIDEO

    def test_extension_fallback(self):
        assert detect_media_type({"path": "https://x/a.JPG?w=100"}) == TYPE_IMAGE
        assert detect_media_type({"path": "https://x/a.pdf"}) == TYPE_DOCUMENT
        assert detect_media_type({"path": "https://x/a"}) == TYPE_UNKNOWN

    def test_linked_content_type(self):
        assert linked_content_type("/a.pdf") == TYPE_DOCUMENT
        assert linked_content_type("/icons/a.svg") == TYPE_IMAGE
        assert linked_content_type("/fragments/nav") == TYPE_FRAGMENT

    def test_name_prefers_original_filename(self):
        assert extract_name({"originalFilename": "uploads/Hero Image.png", "path": "https://x/media_1.png"}) == "Hero Image.png"
        assert extract_name({"path": "https://x/media_1.png?width=10"}) == "media_1.png"
        assert extract_name({}) == ""


class TestExternalMedia:
    """External URL classification."""

    def test_same_origin_is_not_external(self):
        assert not is_external_url("https://main--site--org.aem.page/a.png")
        assert not is_external_url("https://main--site--org.aem.live/a.png")
        assert not is_external_url("/a.png")
        assert is_external_url("https://cdn.example.com/a.png")

    def test_extension_classification(self):
        info = get_external_media_type("https://cdn.example.com/img/photo.webp?w=200")
        assert info.type == TYPE_IMAGE
        assert info.name == "photo.webp"
        assert get_external_media_type("https://cdn.example.com/clip.mp4").type == TYPE_VIDEO
        assert get_external_media_type("https://cdn.example.com/doc.pdf").type == TYPE_DOCUMENT

    def test_video_hosts(self):
        info = get_external_media_type("https://www.youtube.com/watch?v=abc")
        assert info.type == TYPE_VIDEO
        assert info.name == "www.youtube.com"
        assert get_external_media_type("https://youtu.be/abc").type == TYPE_VIDEO
        assert get_external_media_type("https://player.vimeo.com/video/1").type == TYPE_VIDEO

    def test_unsplash_is_image(self):
        info = get_external_media_type("https://images.unsplash.com/photo-123")
        assert info.type == TYPE_IMAGE
        assert info.name == "photo-123"

    def test_dam_requires_asset_urn(self):
        assert get_external_media_type("https://delivery-p1.adobeaemcloud.com/some/page") is None
        info = get_external_media_type(
            "https://delivery-p1.adobeaemcloud.com/adobe/assets/urn:aaid:aem:1234/as/clip.mov"
        )
        assert info.type == TYPE_VIDEO
        assert info.name == "clip.mov"

    def test_plain_links_are_not_media(self):
        assert get_external_media_type("https://example.com/about") is None


class TestDedupeKey:
    def test_library_uploads_keyed_by_filename(self):
        a = get_dedupe_key("https://main--site--org.aem.page/media_abc.png?width=200")
        b = get_dedupe_key("https://main--site--org.aem.live/docs/media_abc.png")
        assert a == b == "media_abc.png"

    def test_other_urls_keyed_by_pathname(self):
        assert get_dedupe_key("https://cdn.example.com/img/a.png?x=1") == "/img/a.png"

    def test_empty(self):
        assert get_dedupe_key(None) == ""


class TestTimeHelpers:
    NOW = 1_700_000_000_000

    def test_hours_under_one_day(self):
        assert timestamp_to_duration(self.NOW - 90 * 60 * 1000, now=self.NOW) == "2h"
        assert timestamp_to_duration(self.NOW - 1000, now=self.NOW) == "1h"

    def test_days_capped(self):
        day = 24 * 60 * 60 * 1000
        assert timestamp_to_duration(self.NOW - 3 * day - 1, now=self.NOW) == "4d"
        assert timestamp_to_duration(self.NOW - 400 * day, now=self.NOW) == "90d"

    def test_format_elapsed(self):
        assert format_elapsed(3.21) == "3.2s"
