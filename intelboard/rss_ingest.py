# intelboard/rss_ingest.py
from __future__ import annotations

import feedparser
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _parse_ts(entry) -> Optional[datetime]:
    if getattr(entry, "published_parsed", None):
        return datetime(*entry.published_parsed[:6], tzinfo=timezone.utc)
    if getattr(entry, "updated_parsed", None):
        return datetime(*entry.updated_parsed[:6], tzinfo=timezone.utc)
    return None


def fetch_rss(source: Dict[str, str], limit: int = 35) -> List[Dict[str, Any]]:
    """
    Fetch RSS and normalize entries to a common row shape.
    Expected source keys:
      - source_name
      - url (a feed URL, or the feed document itself)
      - credibility (optional, high/medium/low)
      - category (optional fallback category)
    Returns list of dict rows: ts, title, summary, source_url, source_name,
    credibility, category. ts is None when the entry carries no date.
    """
    url = source["url"]
    source_name = source.get("source_name", "RSS")

    feed = feedparser.parse(url)

    rows: List[Dict[str, Any]] = []
    for e in feed.entries[:limit]:
        title = getattr(e, "title", "") or ""
        link = getattr(e, "link", "") or ""
        summary = getattr(e, "summary", "") or ""

        rows.append(
            {
                "ts": _parse_ts(e),
                "title": str(title),
                "summary": str(summary),
                "source_url": str(link),
                "source_name": str(source_name),
                "credibility": source.get("credibility", "medium"),
                "category": source.get("category", ""),
            }
        )

    return rows
