# intelboard/filters.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from intelboard.config import TIME_WINDOWS
from intelboard.schema import FilterState, IntelItem, TimeRange


def _in_set(value: str, selected: List[str]) -> bool:
    # empty selection = no constraint
    return not selected or value in selected


def _matches_search(item: IntelItem, query: str) -> bool:
    q = query.strip().lower()
    if not q:
        return True
    if q in item.title.lower() or q in item.summary.lower():
        return True
    return any(q in t.lower() for t in item.tags)


def _matches_time(item: IntelItem, filters: FilterState, now: datetime) -> bool:
    bounded = filters.time_range != TimeRange.ALL or filters.date_from or filters.date_to
    if not bounded:
        return True

    ts = item.published_at
    if ts is None:
        return False

    if filters.time_range != TimeRange.ALL:
        if now - ts > TIME_WINDOWS[filters.time_range.value]:
            return False
    if filters.date_from and ts < filters.date_from:
        return False
    if filters.date_to and ts > filters.date_to:
        return False
    return True


def matches(item: IntelItem, filters: FilterState, now: Optional[datetime] = None) -> bool:
    """True when the item satisfies every non-empty constraint in `filters`."""
    if now is None:
        now = datetime.now(timezone.utc)

    if not _in_set(item.category.value, filters.categories):
        return False
    if not _in_set(item.region, filters.regions):
        return False
    if not _in_set(item.country, filters.countries):
        return False
    if not _in_set(item.source, filters.sources):
        return False
    if not _in_set(item.threat_level.value, filters.threat_levels):
        return False
    if not _in_set(item.confidence_level.value, filters.confidence_levels):
        return False
    if not _in_set(item.actor_type.value, filters.actor_types):
        return False
    if filters.tags and set(filters.tags).isdisjoint(item.tags):
        return False

    if not _matches_search(item, filters.search_query):
        return False

    return _matches_time(item, filters, now)


def apply_filters(
    items: Iterable[IntelItem],
    filters: FilterState,
    now: Optional[datetime] = None,
) -> List[IntelItem]:
    """Filter a collection, keeping input order. `now` is fixed for the whole pass."""
    if now is None:
        now = datetime.now(timezone.utc)
    return [it for it in items if matches(it, filters, now=now)]
