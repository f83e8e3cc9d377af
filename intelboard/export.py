# intelboard/export.py
from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

import pandas as pd

from intelboard.schema import IntelItem

CSV_COLUMNS = [
    "ID",
    "Title",
    "Summary",
    "Category",
    "Threat Level",
    "Confidence",
    "Country",
    "Region",
    "Source",
    "Source Credibility",
    "Published At",
    "Tags",
]


def items_to_frame(items: Iterable[IntelItem]) -> pd.DataFrame:
    rows = []
    for it in items:
        rows.append(
            {
                "ID": it.id,
                "Title": it.title,
                "Summary": it.summary,
                "Category": it.category.value,
                "Threat Level": it.threat_level.value,
                "Confidence": it.confidence_level.value,
                "Country": it.country,
                "Region": it.region,
                "Source": it.source,
                "Source Credibility": it.source_credibility.value,
                "Published At": it.published_at.isoformat() if it.published_at else "",
                "Tags": ", ".join(it.tags),
            }
        )
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def to_csv(items: Iterable[IntelItem]) -> str:
    return items_to_frame(items).to_csv(index=False)


def to_json(items: Iterable[IntelItem]) -> str:
    return json.dumps([it.to_record() for it in items], indent=2, ensure_ascii=False)


def from_json(text: str) -> List[IntelItem]:
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("Expected a JSON array of intel items")
    return [IntelItem.model_validate(rec) for rec in data]


def export_filename(prefix: str = "intel-report", ext: str = "csv", today: Optional[date] = None) -> str:
    if today is None:
        today = datetime.now(timezone.utc).date()
    return f"{prefix}-{today.isoformat()}.{ext}"
