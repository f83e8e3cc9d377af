# intelboard/geo.py
from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from rapidfuzz import fuzz, process

from intelboard.config import THREAT_WEIGHTS
from intelboard.schema import REGIONS, IntelItem

_GEO_PATH = Path(__file__).resolve().parent / "data" / "countries.csv"
_GEO_DF: Optional[pd.DataFrame] = None
_GEO_SET = None
_FUZZY_CHOICES: Optional[List[str]] = None
_FUZZY_INDEX: Optional[List[int]] = None

# short aliases (US, UK) only match exactly
_MIN_FUZZY_LEN = 4

_REGION_NORM = {}


def _norm(s: str) -> str:
    s = "" if s is None else str(s)
    s = s.strip().lower()
    # remove simple punctuation that often appears in headlines
    s = re.sub(r"[\,\.\;\:\(\)\[\]\{\}\!\?\"\'`]", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def _load_geo() -> pd.DataFrame:
    global _GEO_DF, _GEO_SET, _FUZZY_CHOICES, _FUZZY_INDEX
    if _GEO_DF is not None:
        return _GEO_DF
    df = pd.read_csv(_GEO_PATH, dtype={"alias": str, "country": str, "country_code": str, "region": str})

    df["alias_norm"] = df["alias"].fillna("").astype(str).apply(_norm)
    df = df[df["alias_norm"] != ""].copy()
    df = df.drop_duplicates(subset=["alias_norm"]).reset_index(drop=True)

    fuzzy = df[df["alias_norm"].str.len() >= _MIN_FUZZY_LEN]
    _GEO_SET = set(df["alias_norm"])
    _FUZZY_CHOICES = fuzzy["alias_norm"].tolist()
    _FUZZY_INDEX = fuzzy.index.tolist()
    _GEO_DF = df
    return df


def _row_to_hit(query: str, row: pd.Series) -> Dict[str, Any]:
    return {
        "query": query,
        "label": str(row.get("alias") or query),
        "lat": float(row["lat"]),
        "lon": float(row["lon"]),
        "country": str(row.get("country") or ""),
        "country_code": str(row.get("country_code") or ""),
        "region": str(row.get("region") or ""),
    }


def lookup_place_exact(name: str) -> Optional[Dict[str, Any]]:
    if not name:
        return None

    df = _load_geo()
    key = _norm(name)
    if not key or key not in _GEO_SET:
        return None

    hit = df[df["alias_norm"] == key].head(1)
    if hit.empty:
        return None

    return _row_to_hit(name, hit.iloc[0])


def lookup_candidates(cands: List[str]) -> Optional[Dict[str, Any]]:
    """First candidate that resolves, exact match before fuzzy."""
    if not cands:
        return None

    df = _load_geo()
    for c in cands:
        hit = lookup_place_exact(c)
        if hit:
            return hit

        key = _norm(c)
        if len(key) < _MIN_FUZZY_LEN:
            continue
        match = process.extractOne(
            key,
            _FUZZY_CHOICES,
            scorer=fuzz.WRatio,
            score_cutoff=90,
        )
        if match:
            _, _, idx = match
            return _row_to_hit(c, df.loc[_FUZZY_INDEX[idx]])
    return None


def resolve_region(name: str) -> Optional[str]:
    """Snap free-text region input to the fixed region list."""
    if not _REGION_NORM:
        _REGION_NORM.update({_norm(r): r for r in REGIONS})
    key = _norm(name)
    if not key:
        return None
    if key in _REGION_NORM:
        return _REGION_NORM[key]
    match = process.extractOne(key, list(_REGION_NORM), scorer=fuzz.WRatio, score_cutoff=85)
    if match:
        return _REGION_NORM[match[0]]
    return None


# ----------------------------
# Map layer input
# ----------------------------
def recency_factor(hours_old: Optional[float]) -> float:
    # 0h => 1.0, 24h => 0.5, 72h => 0.25
    if hours_old is None:
        return 0.0
    return 1.0 / (1.0 + max(0.0, hours_old) / 24.0)


def map_points(items: Iterable[IntelItem], now: Optional[datetime] = None) -> pd.DataFrame:
    """One row per item for markers, clustering and the weighted heatmap."""
    if now is None:
        now = datetime.now(timezone.utc)

    rows = []
    for it in items:
        hours = None
        if it.published_at is not None:
            hours = (now - it.published_at).total_seconds() / 3600.0
        rows.append(
            {
                "id": it.id,
                "title": it.title,
                "lat": it.lat,
                "lon": it.lon,
                "category": it.category.value,
                "threat_level": it.threat_level.value,
                "hours_old": hours,
                "weight": THREAT_WEIGHTS[it.threat_level.value] * recency_factor(hours),
            }
        )

    cols = ["id", "title", "lat", "lon", "category", "threat_level", "hours_old", "weight"]
    df = pd.DataFrame(rows, columns=cols)
    df["lat"] = pd.to_numeric(df["lat"], errors="coerce")
    df["lon"] = pd.to_numeric(df["lon"], errors="coerce")
    df = df.dropna(subset=["lat", "lon"])
    # null island is a geocoding miss, not a place
    df = df[~((df["lat"] == 0) & (df["lon"] == 0))]
    return df.reset_index(drop=True)
