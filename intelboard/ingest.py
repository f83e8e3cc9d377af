# intelboard/ingest.py
from __future__ import annotations

import hashlib
import logging
import re
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from intelboard import config
from intelboard.db import create_item, existing_item_ids
from intelboard.feed import ChangeFeed
from intelboard.geo import lookup_candidates
from intelboard.rss_ingest import fetch_rss
from intelboard.schema import (
    ActorType,
    Category,
    ConfidenceLevel,
    IntelItem,
    SourceCredibility,
    ThreatLevel,
)

logger = logging.getLogger(__name__)


def _safe_str(x) -> str:
    return "" if x is None else str(x)


def _hash_id(*parts: str) -> str:
    h = hashlib.sha256()
    for p in parts:
        h.update(_safe_str(p).encode("utf-8", errors="ignore"))
        h.update(b"|")
    return h.hexdigest()[:24]


def _norm(s: str) -> str:
    s = (_safe_str(s)).strip()
    s = re.sub(r"\s+", " ", s)
    return s


def _strip_html(s: str) -> str:
    return _norm(re.sub(r"<[^>]+>", " ", _safe_str(s)))


@lru_cache(maxsize=None)
def _keyword_re(keyword: str) -> re.Pattern:
    # word start, allow short inflections (sanction -> sanctions, attack -> attacked)
    return re.compile(rf"\b{re.escape(keyword)}\w{{0,3}}\b")


def keyword_hits(text: str, keywords: List[str]) -> List[str]:
    low = _safe_str(text).lower()
    return [k for k in keywords if _keyword_re(k).search(low)]


# geo candidates
STOP_PLACES = {
    "monday","tuesday","wednesday","thursday","friday","saturday","sunday",
    "today","yesterday","breaking","analysis","update","exclusive","report",
    "video","live","fighting","talks","stall","says","say","the","a","an",
}

PLACE_PATTERNS = [
    r"\bin\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,3})\b",
    r"\bnear\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,3})\b",
    r"\bat\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,3})\b",
    r"\bfrom\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,3})\b",
]


def extract_place_candidates(title: str, summary: str) -> List[str]:
    text = f"{_safe_str(title)} {_safe_str(summary)}"
    text = re.sub(r"\s+", " ", text).strip()

    cands: List[str] = []

    for pat in PLACE_PATTERNS:
        for m in re.finditer(pat, text):
            p = _norm(m.group(1))
            if p and p.lower() not in STOP_PLACES:
                cands.append(p)

    # Capitalized sequences (conservative)
    seqs = re.findall(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,2})\b", text)
    for s in seqs:
        s = _norm(s)
        if len(s) >= 3 and s.lower() not in STOP_PLACES:
            cands.append(s)

    # Upper-case abbreviations (US, UK)
    for s in re.findall(r"\b([A-Z]{2,3})\b", text):
        cands.append(s)

    out: List[str] = []
    seen = set()
    for c in cands:
        k = c.lower()
        if k not in seen:
            seen.add(k)
            out.append(c)
    return out[:10]


def choose_best_geo(title: str, summary: str) -> Optional[Dict[str, Any]]:
    cands = extract_place_candidates(title, summary)
    return lookup_candidates(cands)


# classification
def classify(
    title: str,
    summary: str,
    credibility: str = "medium",
    fallback_category: str = "",
) -> Dict[str, Any]:
    """Keyword heuristics: category, threat level, actor type and confidence."""
    text = f"{title} {summary}"

    best_cat, best_hits = None, 0
    for cat, words in config.CATEGORY_KEYWORDS.items():
        n = len(keyword_hits(text, words))
        if n > best_hits:
            best_cat, best_hits = cat, n
    if best_cat is None:
        best_cat = fallback_category or Category.DIPLOMACY.value

    w = config.WEIGHTS
    triggers = keyword_hits(text, config.SEVERITY_TRIGGERS)
    severity = min(100, w["severity_base"] + len(triggers) * w["severity_per_hit"])
    if severity >= 80:
        threat = ThreatLevel.CRITICAL
    elif severity >= 50:
        threat = ThreatLevel.HIGH
    elif severity >= 35:
        threat = ThreatLevel.ELEVATED
    else:
        threat = ThreatLevel.LOW

    confidence = min(100, w["confidence_base"] + (best_hits + len(triggers)) * w["confidence_per_hit"])

    low = text.lower()
    if "breaking" in low:
        level = ConfidenceLevel.BREAKING
    elif credibility == SourceCredibility.HIGH.value:
        level = ConfidenceLevel.VERIFIED
    else:
        level = ConfidenceLevel.DEVELOPING

    if keyword_hits(text, config.NON_STATE_HINTS):
        actor = ActorType.NON_STATE
    elif keyword_hits(text, config.STATE_ACTOR_HINTS):
        actor = ActorType.STATE
    else:
        actor = ActorType.ORGANIZATION

    return {
        "category": Category(best_cat),
        "threat_level": threat,
        "severity": severity,
        "confidence_score": round(confidence / 100.0, 2),
        "confidence_level": level,
        "actor_type": actor,
    }


def build_tags(category: str, title: str, summary: str, geo_hit: Optional[Dict[str, Any]]) -> List[str]:
    tags: List[str] = []
    if category:
        tags.append(category)

    text = f"{title} {summary}"
    tags.extend(keyword_hits(text, config.SEVERITY_TRIGGERS))
    for words in config.CATEGORY_KEYWORDS.values():
        tags.extend(keyword_hits(text, words))

    if geo_hit:
        label = (geo_hit.get("label") or geo_hit.get("query") or "").strip().lower()
        if label:
            tags.append(f"geo:{label}")

        code = (geo_hit.get("country_code") or "").strip().lower()
        if code:
            tags.append(f"country:{code}")

    out = []
    seen = set()
    for t in tags:
        t = t.strip()
        if t and t not in seen:
            seen.add(t)
            out.append(t)
    return out


def entry_to_item(row: Dict[str, Any]) -> Tuple[Optional[IntelItem], bool]:
    """
    Turn one normalized feed row into an IntelItem.
    Returns (item, geo_ok); item is None when the row has no date or no
    resolvable location.
    """
    ts = row.get("ts")
    if ts is None:
        return None, False

    title = _norm(row.get("title", ""))
    summary = _strip_html(row.get("summary", ""))
    source_name = row.get("source_name", "")
    link = row.get("source_url", "")

    geo_hit = choose_best_geo(title, summary)
    if not geo_hit:
        return None, False

    credibility = row.get("credibility") or SourceCredibility.MEDIUM.value
    cls = classify(title, summary, credibility=credibility, fallback_category=row.get("category", ""))
    tags = build_tags(cls["category"].value, title, summary, geo_hit)

    item_id = _hash_id(source_name, link, title, ts.isoformat())
    item = IntelItem(
        id=item_id,
        title=title,
        summary=summary,
        url=link,
        source=source_name,
        source_credibility=credibility,
        published_at=ts,
        lat=geo_hit["lat"],
        lon=geo_hit["lon"],
        country=geo_hit["country"],
        region=geo_hit["region"],
        tags=tags,
        confidence_score=cls["confidence_score"],
        confidence_level=cls["confidence_level"],
        threat_level=cls["threat_level"],
        actor_type=cls["actor_type"],
        category=cls["category"],
        token=f"IR-{ts:%y%m%d}-{item_id[:4].upper()}",
    )
    return item, True


def ingest_all(
    sources: Optional[List[Dict[str, str]]] = None,
    user_id: Optional[str] = None,
    limit_per_feed: int = 35,
    db_path=None,
    feed: Optional[ChangeFeed] = None,
) -> List[IntelItem]:
    """Fetch every source and create items not already stored. Returns the new items."""
    sources = config.RSS_SOURCES if sources is None else sources
    user_id = user_id or config.IMPORT_USER_ID

    rows: List[Dict[str, Any]] = []
    for src in sources:
        rows.extend(fetch_rss(src, limit=limit_per_feed))

    items: List[IntelItem] = []
    geo_ok = 0
    geo_miss = 0
    for r in rows:
        item, ok = entry_to_item(r)
        if ok:
            geo_ok += 1
        else:
            geo_miss += 1
        if item is not None:
            items.append(item)

    # dedupe within the batch, then against the store
    unique: Dict[str, IntelItem] = {}
    for it in items:
        unique.setdefault(it.id, it)
    stored = existing_item_ids(unique.keys(), db_path=db_path)

    created = []
    for it in unique.values():
        if it.id in stored:
            continue
        created.append(create_item(it, user_id, db_path=db_path, feed=feed))

    logger.info("ingest: fetched=%d geo_ok=%d geo_miss=%d created=%d", len(rows), geo_ok, geo_miss, len(created))
    return created


def main():
    created = ingest_all(limit_per_feed=35)
    if not created:
        print("[INGEST] No new items.")
        return
    print(f"[INGEST] Created items: {len(created)}")


if __name__ == "__main__":
    main()
