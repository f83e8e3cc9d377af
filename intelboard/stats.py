# intelboard/stats.py
from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from intelboard.config import PRIORITY_ALERT_LIMIT, RECENT_WINDOW
from intelboard.schema import ConfidenceLevel, IntelItem, SourceCredibility, ThreatLevel

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class Stats(BaseModel):
    total: int = 0
    last_24h: int = 0
    critical_items: List[IntelItem] = Field(default_factory=list)
    high_items: List[IntelItem] = Field(default_factory=list)
    verified_count: int = 0
    breaking_count: int = 0
    avg_confidence: float = 0.0
    regions: List[Tuple[str, int]] = Field(default_factory=list)
    categories: List[Tuple[str, int]] = Field(default_factory=list)
    threat_levels: Dict[str, int] = Field(default_factory=dict)
    source_credibility: Dict[str, int] = Field(default_factory=dict)

    @property
    def critical_count(self) -> int:
        return len(self.critical_items)

    @property
    def high_count(self) -> int:
        return len(self.high_items)

    @property
    def verified_rate(self) -> int:
        """Share of verified reports, rounded percent."""
        if not self.total:
            return 0
        return round(self.verified_count / self.total * 100)


def summarize(
    items: Iterable[IntelItem],
    top_regions: Optional[int] = 5,
    now: Optional[datetime] = None,
) -> Stats:
    """
    Single pass over the visible items.

    top_regions truncates the region ranking (None = keep all). Ties in the
    ranking keep first-seen order.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    total = 0
    last_24h = 0
    verified = 0
    breaking = 0
    confidence_sum = 0.0
    critical: List[IntelItem] = []
    high: List[IntelItem] = []
    regions: Counter = Counter()
    categories: Counter = Counter()
    threat_levels: Counter = Counter()
    credibility: Counter = Counter()

    for item in items:
        total += 1
        confidence_sum += item.confidence_score

        ts = item.published_at
        if ts is not None and now - ts <= RECENT_WINDOW:
            last_24h += 1

        if item.threat_level == ThreatLevel.CRITICAL:
            critical.append(item)
        elif item.threat_level == ThreatLevel.HIGH:
            high.append(item)

        if item.confidence_level == ConfidenceLevel.VERIFIED:
            verified += 1
        elif item.confidence_level == ConfidenceLevel.BREAKING:
            breaking += 1

        regions[item.region] += 1
        categories[item.category.value] += 1
        threat_levels[item.threat_level.value] += 1
        credibility[item.source_credibility.value] += 1

    denom = total or 1
    return Stats(
        total=total,
        last_24h=last_24h,
        critical_items=critical,
        high_items=high,
        verified_count=verified,
        breaking_count=breaking,
        avg_confidence=confidence_sum / total if total else 0.0,
        regions=regions.most_common(top_regions),
        categories=list(categories.items()),
        threat_levels={lvl.value: threat_levels[lvl.value] for lvl in ThreatLevel},
        source_credibility={c.value: round(credibility[c.value] / denom * 100) for c in SourceCredibility},
    )


def priority_alerts(stats: Stats, limit: int = PRIORITY_ALERT_LIMIT) -> List[IntelItem]:
    """Critical and high items, newest first. Missing timestamps sort last."""
    pool = stats.critical_items + stats.high_items
    pool = sorted(pool, key=lambda it: it.published_at or _OLDEST, reverse=True)
    return pool[:limit]
