"""
Sheet serialization for the persisted index.

The index is stored in the tabular JSON layout used by the content
platform: single sheets (`{total, limit, offset, data, ":type": "sheet"}`)
and multi-sheets holding several named tables.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from media_insights.core.constants import SHEET_MEDIA, SHEET_USAGE
from media_insights.core.indexing.entries import MediaEntry

logger = logging.getLogger("media_insights.sheets")


def create_sheet(rows: List[Dict[str, Any]], sheet_type: str = "sheet") -> Dict[str, Any]:
    return {
        "total": len(rows),
        "limit": len(rows),
        "offset": 0,
        "data": rows,
        ":type": sheet_type,
    }


def create_multi_sheet(sheets: Mapping[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
    """Combine named tables into one multi-sheet document."""
    payload: Dict[str, Any] = {
        ":version": 3,
        ":names": list(sheets.keys()),
        ":type": "multi-sheet",
    }
    for name, rows in sheets.items():
        payload[name] = {
            "total": len(rows),
            "limit": len(rows),
            "offset": 0,
            "data": rows,
        }
    return payload


def read_sheet(payload: Any, name: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Extract rows from a sheet or multi-sheet document.

    Args:
        payload: Parsed JSON document
        name: Table name when reading a multi-sheet

    Returns:
        List of row dicts (empty when the table is absent)
    """
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []

    if name and payload.get(":type") == "multi-sheet":
        table = payload.get(name) or {}
        rows = table.get("data") if isinstance(table, dict) else None
        return rows if isinstance(rows, list) else []

    rows = payload.get("data")
    return rows if isinstance(rows, list) else []


# =============================================================================
# MEDIA & USAGE TABLES
# =============================================================================

def media_rows(entries: Iterable[MediaEntry]) -> List[Dict[str, Any]]:
    return [entry.to_dict() for entry in entries]


def parse_media_rows(rows: Iterable[Dict[str, Any]]) -> List[MediaEntry]:
    entries = []
    for row in rows:
        if not isinstance(row, dict) or not row.get("hash"):
            logger.warning(f"Skipping malformed media row: {row!r}")
            continue
        entries.append(MediaEntry.from_dict(row))
    return entries


def usage_rows(usage_index: Mapping[str, Set[str]]) -> List[Dict[str, str]]:
    """Reverse index rows `{page, hashes}` with hashes as a JSON array string."""
    return [
        {"page": page, "hashes": json.dumps(sorted(hashes))}
        for page, hashes in sorted(usage_index.items())
    ]


def parse_usage_rows(rows: Iterable[Dict[str, Any]]) -> Dict[str, Set[str]]:
    """Parse usage rows, skipping malformed ones with a warning."""
    usage: Dict[str, Set[str]] = {}
    for row in rows:
        if not isinstance(row, dict) or not row.get("page"):
            logger.warning(f"Skipping malformed usage row: {row!r}")
            continue
        raw = row.get("hashes")
        try:
            hashes = json.loads(raw) if isinstance(raw, str) else raw
        except json.JSONDecodeError:
            logger.warning(f"Skipping usage row with unparseable hashes for {row['page']}")
            continue
        if not isinstance(hashes, list):
            logger.warning(f"Skipping usage row with invalid hashes for {row['page']}")
            continue
        usage.setdefault(row["page"], set()).update(str(h) for h in hashes)
    return usage


def index_document(entries: List[MediaEntry], usage_index: Mapping[str, Set[str]]) -> Dict[str, Any]:
    """Multi-sheet document holding the media and usage tables."""
    return create_multi_sheet({
        SHEET_MEDIA: media_rows(entries),
        SHEET_USAGE: usage_rows(usage_index),
    })
