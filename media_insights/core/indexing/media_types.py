"""
Media type detection and identity helpers.

Classifies media-log entries, linked content paths and external URLs into
the index's type vocabulary, and derives display names and dedupe keys.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from media_insights.core.constants import (
    CATEGORY_IMG,
    EXTERNAL_EXTENSION_RE,
    EXTERNAL_EXTENSIONS,
    EXTERNAL_HOST_PATTERNS,
    SAME_ORIGIN_DOMAINS,
    TYPE_DOCUMENT,
    TYPE_FRAGMENT,
    TYPE_IMAGE,
    TYPE_LINK,
    TYPE_UNKNOWN,
    TYPE_VIDEO,
)
from media_insights.core.indexing.paths import is_fragment, is_pdf, is_svg, strip_query

# Library uploads carry this marker in their delivery filename
MEDIA_UNDERSCORE_PREFIX = "media_"

_IMAGE_EXTENSIONS = set(EXTERNAL_EXTENSIONS["image"]) | set(EXTERNAL_EXTENSIONS["svg"])
_VIDEO_EXTENSIONS = set(EXTERNAL_EXTENSIONS["video"])
_DOCUMENT_EXTENSIONS = set(EXTERNAL_EXTENSIONS["pdf"])


@dataclass(frozen=True)
class ExternalMediaInfo:
    """Classification of an external media URL."""
    type: str
    name: str


def _extension(value: str) -> str:
    segment = strip_query(value).split("/")[-1]
    if "." not in segment:
        return ""
    return segment.rsplit(".", 1)[-1].lower()


def type_from_extension(value: Optional[str]) -> str:
    ext = _extension(value or "")
    if ext in _IMAGE_EXTENSIONS:
        return TYPE_IMAGE
    if ext in _VIDEO_EXTENSIONS:
        return TYPE_VIDEO
    if ext in _DOCUMENT_EXTENSIONS:
        return TYPE_DOCUMENT
    return TYPE_UNKNOWN


def detect_media_type(entry: Dict[str, Any]) -> str:
    """
    Type of a media-log entry.

    Uses the content type when present, falling back to the extension of
    the delivery URL.
    """
    content_type = entry.get("contentType") or ""
    if content_type.startswith("image/"):
        return TYPE_IMAGE
    if content_type.startswith("video/"):
        return TYPE_VIDEO
    if content_type == "application/pdf":
        return TYPE_DOCUMENT
    return type_from_extension(entry.get("path"))


def linked_content_type(path: str) -> str:
    if is_pdf(path):
        return TYPE_DOCUMENT
    if is_svg(path):
        return TYPE_IMAGE
    if is_fragment(path):
        return TYPE_FRAGMENT
    return TYPE_UNKNOWN


def extract_name(entry: Dict[str, Any]) -> str:
    """Display name: original filename if known, else last URL segment."""
    if not entry:
        return ""
    original = entry.get("originalFilename")
    if original:
        return original.split("/")[-1]
    path = entry.get("path")
    if not path:
        return ""
    return strip_query(path).split("/")[-1]


def is_external_url(url: Optional[str]) -> bool:
    if not url or not url.startswith("http"):
        return False
    return not any(domain in url for domain in SAME_ORIGIN_DOMAINS)


def get_external_media_type(url: Optional[str]) -> Optional[ExternalMediaInfo]:
    """
    Classify an external URL as media.

    Extension matches win; otherwise the host table is consulted.

    Returns:
        ExternalMediaInfo, or None if the URL is not external media
    """
    if not is_external_url(url):
        return None

    try:
        parsed = urlparse(url)
    except ValueError:
        return None

    path_part = parsed.path
    host = parsed.hostname or ""
    last_segment = path_part.split("/")[-1]

    match = EXTERNAL_EXTENSION_RE.search(path_part.lower())
    if match:
        ext = match.group(1).lower()
        if ext in _DOCUMENT_EXTENSIONS:
            media_type = TYPE_DOCUMENT
        elif ext in _IMAGE_EXTENSIONS:
            media_type = TYPE_IMAGE
        elif ext in _VIDEO_EXTENSIONS:
            media_type = TYPE_VIDEO
        else:
            media_type = TYPE_LINK
        return ExternalMediaInfo(type=media_type, name=last_segment or host)

    for pattern in EXTERNAL_HOST_PATTERNS:
        if not pattern["host"].search(host):
            continue
        if pattern.get("path_contains") and pattern["path_contains"] not in parsed.path:
            continue

        if pattern.get("type_from_path"):
            ext = _extension(last_segment)
            if ext in _VIDEO_EXTENSIONS:
                return ExternalMediaInfo(type=TYPE_VIDEO, name=last_segment)
            if ext in _DOCUMENT_EXTENSIONS:
                return ExternalMediaInfo(type=TYPE_DOCUMENT, name=last_segment)
            if ext in _IMAGE_EXTENSIONS:
                return ExternalMediaInfo(type=TYPE_IMAGE, name=last_segment)

        if pattern["type"] == CATEGORY_IMG:
            return ExternalMediaInfo(type=TYPE_IMAGE, name=last_segment or host)
        if pattern["type"] == TYPE_VIDEO:
            return ExternalMediaInfo(type=TYPE_VIDEO, name=host)
        return ExternalMediaInfo(type=TYPE_LINK, name=host)

    return None


def get_dedupe_key(url: Optional[str]) -> str:
    """
    Key used to collapse the same asset across delivery URLs.

    Library uploads (`media_<hash>.<ext>`) are keyed by filename so that
    different hosts serving the same upload collapse; everything else is
    keyed by URL pathname.
    """
    if not url:
        return ""
    try:
        pathname = urlparse(url).path
    except ValueError:
        return url.split("?")[0]
    if not pathname:
        return url.split("?")[0]
    filename = pathname.split("/")[-1]
    if MEDIA_UNDERSCORE_PREFIX in filename:
        return filename
    return pathname


def media_path_from_url(url: Optional[str]) -> str:
    """Site path of a media URL, used to spot self-referencing uploads."""
    if not url:
        return ""
    if url.startswith("http"):
        try:
            return urlparse(url).path
        except ValueError:
            return strip_query(url)
    return strip_query(url)
