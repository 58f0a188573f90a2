"""
Path helpers for page and file classification.

Page paths coming from the audit log, the media log and page markdown are
spelled in several ways (`/a`, `/a.md`, `/a?x=1`, `/`). Everything that keys
entries by page goes through normalize_page_path so that those spellings
collapse to one identity.

Usage:
    from media_insights.core.indexing.paths import normalize_page_path, is_page

    normalize_page_path("/docs/intro.md")   # "/docs/intro"
    is_page("/media/hero.png")              # False
"""

from typing import Optional
from urllib.parse import urlparse

from media_insights.core.constants import FRAGMENTS_PATH, MEDIA_PATH


def strip_query(path: Optional[str]) -> str:
    """Drop query string and fragment from a path or URL."""
    if not path:
        return ""
    return path.split("?")[0].split("#")[0]


def _last_segment(path: str) -> str:
    return path.rstrip("/").split("/")[-1] if path else ""


def has_extension(path: str) -> bool:
    """True when the last path segment carries a file extension."""
    return "." in _last_segment(strip_query(path))


def normalize_page_path(path: Optional[str]) -> str:
    """
    Normalize a page path to its canonical identity.

    Strips query/fragment, ensures a leading slash, strips a trailing `.md`
    and maps the site root (or a trailing slash) to `/index`.

    Args:
        path: Raw page path, possibly with `.md` suffix or query string

    Returns:
        Canonical page path, or empty string for empty input
    """
    clean = strip_query(path).strip()
    if not clean:
        return ""
    if not clean.startswith("/"):
        clean = f"/{clean}"
    if clean.endswith(".md"):
        clean = clean[:-3]
    if clean.endswith("/"):
        clean = f"{clean}index"
    return clean


def is_page(path: Optional[str]) -> bool:
    """
    Classify a path as a page.

    A page either ends in `.md` or has no extension on its last segment
    and is not under `/media/`. Fragments are never pages.
    """
    if not path or not isinstance(path, str):
        return False
    clean = strip_query(path)
    if FRAGMENTS_PATH in clean:
        return False
    if clean.endswith(".md"):
        return True
    return not has_extension(clean) and not clean.startswith(MEDIA_PATH)


def to_absolute_file_path(path: Optional[str]) -> str:
    """Strip query/fragment and ensure a leading slash."""
    clean = strip_query(path).strip()
    if not clean:
        return ""
    return clean if clean.startswith("/") else f"/{clean}"


def to_path(href: str) -> str:
    """Convert an href (absolute URL or relative path) to a site path."""
    if not href:
        return ""
    if href.startswith("http"):
        try:
            return urlparse(href).path or "/"
        except ValueError:
            return href
    href = strip_query(href)
    return href if href.startswith("/") else f"/{href}"


def markdown_path(doc: str) -> str:
    """Source path of a page's markdown."""
    return f"{normalize_page_path(doc)}.md"


def is_pdf(path: Optional[str]) -> bool:
    return bool(path) and strip_query(path).lower().endswith(".pdf")


def is_svg(path: Optional[str]) -> bool:
    return bool(path) and strip_query(path).lower().endswith(".svg")


def is_fragment(path: Optional[str]) -> bool:
    return bool(path) and FRAGMENTS_PATH in path


def is_linked_content_path(path: Optional[str]) -> bool:
    """PDFs, SVGs and fragments are tracked as linked content."""
    return is_pdf(path) or is_svg(path) or is_fragment(path)


def doc_depth(doc: Optional[str]) -> int:
    """Number of path segments of a referencing page."""
    if not doc:
        return 0
    return len([segment for segment in doc.split("/") if segment])

