"""
Shared constants for media indexing.

Groups the fixed values used across the indexer: log names, operation tags,
path conventions, media type labels, external media classification tables
and persisted file names.
"""

import re
from typing import Dict, FrozenSet, List, Pattern, Tuple


# =============================================================================
# LOGS & OPERATIONS
# =============================================================================

AUDIT_LOG = "log"
MEDIA_LOG = "medialog"

# Route tag of audit entries produced by a page preview
PREVIEW_ROUTE = "preview"
DELETE_METHOD = "DELETE"

OPERATION_AUDITLOG = "auditlog-parsed"
OPERATION_EXTLINKS = "extlinks-parsed"
OPERATION_MARKDOWN = "markdown-parsed"

# Media-log operations that break a page/media association
UNLINK_OPERATIONS: FrozenSet[str] = frozenset({"unlink", "delete"})

# Full builds request the whole history
FULL_HISTORY_SINCE = "36500d"
MAX_SINCE_DAYS = 90


# =============================================================================
# STATUS & TYPES
# =============================================================================

STATUS_REFERENCED = "referenced"
STATUS_UNUSED = "unused"
STATUS_DISCOVERING = "discovering"

TYPE_IMAGE = "image"
TYPE_VIDEO = "video"
TYPE_DOCUMENT = "document"
TYPE_FRAGMENT = "fragment"
TYPE_LINK = "link"
TYPE_UNKNOWN = "unknown"

BUILD_MODE_FULL = "full"
BUILD_MODE_INCREMENTAL = "incremental"


# =============================================================================
# PATHS
# =============================================================================

FRAGMENTS_PATH = "/fragments/"
MEDIA_PATH = "/media/"
ICONS_PATH = "/icons/"

SAME_ORIGIN_DOMAINS: Tuple[str, ...] = (".aem.page", ".aem.live")

# Icon placeholders that are markdown syntax rather than icon files
ICON_DOC_EXCLUDE: FrozenSet[str] = frozenset({"svg", "pdf", "image", "link", "syntax"})


# =============================================================================
# MARKDOWN PATTERNS
# =============================================================================

MD_LINK_RE: Pattern = re.compile(r"\[[^\]]*\]\(([^)]+)\)", re.IGNORECASE)
MD_AUTOLINK_RE: Pattern = re.compile(r"<(https?://[^>]+|/[^>\s]*)>")
ICON_RE: Pattern = re.compile(r":([a-zA-Z0-9-]+):")


# =============================================================================
# EXTERNAL MEDIA
# =============================================================================

EXTERNAL_EXTENSIONS: Dict[str, List[str]] = {
    "pdf": ["pdf"],
    "svg": ["svg"],
    "image": ["jpg", "jpeg", "png", "gif", "webp", "avif", "bmp"],
    "video": ["mp4", "webm", "mov", "avi", "m4v"],
}

_ALL_EXTERNAL_EXTENSIONS = "|".join(
    ext for exts in EXTERNAL_EXTENSIONS.values() for ext in exts
)
EXTERNAL_EXTENSION_RE: Pattern = re.compile(
    rf"\.({_ALL_EXTERNAL_EXTENSIONS})([?#]|$)", re.IGNORECASE
)

CATEGORY_IMG = "img"

# Host table for external media that carries no file extension.
# path_contains restricts the match; type_from_path derives the type from the
# last path segment's extension.
EXTERNAL_HOST_PATTERNS: List[Dict] = [
    {"host": re.compile(r"adobeaemcloud\.com$", re.IGNORECASE), "path_contains": "urn:aaid:aem", "type_from_path": True, "type": TYPE_LINK},
    {"host": re.compile(r"youtube\.com$", re.IGNORECASE), "type": TYPE_VIDEO},
    {"host": re.compile(r"youtu\.be$", re.IGNORECASE), "type": TYPE_VIDEO},
    {"host": re.compile(r"vimeo\.com$", re.IGNORECASE), "type": TYPE_VIDEO},
    {"host": re.compile(r"player\.vimeo\.com$", re.IGNORECASE), "type": TYPE_VIDEO},
    {"host": re.compile(r"unsplash\.com$", re.IGNORECASE), "type": CATEGORY_IMG},
    {"host": re.compile(r"images\.unsplash\.com$", re.IGNORECASE), "type": CATEGORY_IMG},
]


# =============================================================================
# PERSISTED INDEX
# =============================================================================

INDEX_FILE = "index.json"
META_FILE = "index-meta.json"
LOCK_FILE = "index-lock.json"

SHEET_MEDIA = "media"
SHEET_USAGE = "usage"

# Field order of a persisted media row
MEDIA_FIELDS: Tuple[str, ...] = (
    "hash", "url", "name", "timestamp", "user", "operation", "type", "doc", "status",
)

REFRESHED_BY = "media-indexer"
