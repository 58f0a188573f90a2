"""
Media entry model and factories.

A MediaEntry is one row of the `media` table: one (asset, referencing page)
pair, or the asset alone when nothing references it.
"""

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

from media_insights.core.constants import (
    FRAGMENTS_PATH,
    MEDIA_FIELDS,
    OPERATION_AUDITLOG,
    OPERATION_EXTLINKS,
    OPERATION_MARKDOWN,
    STATUS_REFERENCED,
    STATUS_UNUSED,
)
from media_insights.core.indexing.media_types import (
    detect_media_type,
    extract_name,
    get_external_media_type,
    linked_content_type,
)
from media_insights.utils.time_utils import event_timestamp


@dataclass
class MediaEntry:
    """One row of the media table."""
    hash: str
    url: str = ""
    name: str = ""
    timestamp: int = 0
    user: str = ""
    operation: str = ""
    type: str = ""
    doc: str = ""
    status: str = STATUS_REFERENCED

    @property
    def key(self) -> str:
        return f"{self.hash}|{self.doc}"

    @property
    def is_orphan(self) -> bool:
        return not self.doc

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the persisted field order."""
        data = asdict(self)
        return {name: data[name] for name in MEDIA_FIELDS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MediaEntry":
        return cls(
            hash=str(data.get("hash") or ""),
            url=data.get("url") or "",
            name=data.get("name") or "",
            timestamp=event_timestamp(data),
            user=data.get("user") or "",
            operation=data.get("operation") or "",
            type=data.get("type") or "",
            doc=data.get("doc") or "",
            status=data.get("status") or (STATUS_REFERENCED if data.get("doc") else STATUS_UNUSED),
        )

    def as_orphan(self) -> "MediaEntry":
        """Copy of this row detached from its page."""
        return replace(self, doc="", status=STATUS_UNUSED)


def from_media_event(event: Dict[str, Any], doc: str = "") -> MediaEntry:
    """Build a row from a media-log entry, referenced when a page is given."""
    return MediaEntry(
        hash=str(event.get("mediaHash") or ""),
        url=event.get("path") or "",
        name=extract_name(event),
        timestamp=event_timestamp(event),
        user=event.get("user") or "",
        operation=event.get("operation") or "",
        type=detect_media_type(event),
        doc=doc,
        status=STATUS_REFERENCED if doc else STATUS_UNUSED,
    )


def preview_url(path: str, org: str, repo: str, ref: str = "main") -> str:
    """Delivery URL of a site file on the preview host."""
    url_path = path
    if path.startswith(FRAGMENTS_PATH) and path.endswith(".html"):
        url_path = path[: -len(".html")]
    return f"https://{ref}--{repo}--{org}.aem.page{url_path}"


def linked_content_entry(
    file_path: str,
    doc: str,
    file_event: Optional[Dict[str, Any]],
    status: str,
    org: str,
    repo: str,
    ref: str = "main",
) -> MediaEntry:
    """Row for a PDF, SVG or fragment discovered through the audit log or markdown."""
    file_event = file_event or {}
    return MediaEntry(
        hash=file_path,
        url=preview_url(file_path, org, repo, ref),
        name=file_path.split("/")[-1] or file_path,
        timestamp=event_timestamp(file_event),
        user=file_event.get("user") or "",
        operation=OPERATION_AUDITLOG,
        type=linked_content_type(file_path),
        doc=doc or "",
        status=status,
    )


def external_media_entry(url: str, doc: str, latest_page_timestamp: int = 0) -> Optional[MediaEntry]:
    """Row for external media referenced from a page, or None if not media."""
    info = get_external_media_type(url)
    if info is None:
        return None
    return MediaEntry(
        hash=url,
        url=url,
        name=info.name,
        timestamp=latest_page_timestamp,
        user="",
        operation=OPERATION_EXTLINKS,
        type=info.type,
        doc=doc or "",
        status=STATUS_REFERENCED,
    )


def is_linked_content_entry(entry: MediaEntry) -> bool:
    return entry.operation == OPERATION_AUDITLOG


def is_external_entry(entry: MediaEntry) -> bool:
    return entry.operation in (OPERATION_EXTLINKS, OPERATION_MARKDOWN)


def is_media_log_entry(entry: MediaEntry) -> bool:
    """Rows that came from the media-operations log."""
    return not is_linked_content_entry(entry) and not is_external_entry(entry)
