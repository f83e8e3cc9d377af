# intelboard/timeline.py
from __future__ import annotations

from datetime import date
from typing import Iterable, List, Tuple

from intelboard.errors import TimestampError
from intelboard.schema import IntelItem


def group_by_day(items: Iterable[IntelItem]) -> List[Tuple[date, List[IntelItem]]]:
    """
    Bucket items by UTC calendar day of publication.
    Days are newest first; items within a day are newest first.
    Raises TimestampError on the first item without a timestamp.
    """
    items = list(items)
    for it in items:
        if it.published_at is None:
            raise TimestampError(it.id)

    ordered = sorted(items, key=lambda it: it.published_at, reverse=True)

    groups: List[Tuple[date, List[IntelItem]]] = []
    for it in ordered:
        day = it.published_at.date()
        if groups and groups[-1][0] == day:
            groups[-1][1].append(it)
        else:
            groups.append((day, [it]))
    return groups
