# intelboard/schema.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from dateutil import parser
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Category(str, Enum):
    SECURITY = "security"
    DIPLOMACY = "diplomacy"
    ECONOMY = "economy"
    CONFLICT = "conflict"
    HUMANITARIAN = "humanitarian"
    TECHNOLOGY = "technology"


class ThreatLevel(str, Enum):
    LOW = "low"
    ELEVATED = "elevated"
    HIGH = "high"
    CRITICAL = "critical"


class ConfidenceLevel(str, Enum):
    VERIFIED = "verified"
    DEVELOPING = "developing"
    BREAKING = "breaking"


class ActorType(str, Enum):
    STATE = "state"
    NON_STATE = "non-state"
    ORGANIZATION = "organization"


class SourceCredibility(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TimeRange(str, Enum):
    LAST_HOUR = "1h"
    LAST_24H = "24h"
    LAST_7D = "7d"
    ALL = "all"


class AnalysisType(str, Enum):
    SUMMARY = "summary"
    THREAT_ASSESSMENT = "threat-assessment"
    TREND_PREDICTION = "trend-prediction"
    RELATED_EVENTS = "related-events"


class NotificationMethod(str, Enum):
    IN_APP = "in_app"
    EMAIL = "email"
    BOTH = "both"


class NotificationType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ALERT = "alert"
    SUCCESS = "success"


class Role(str, Enum):
    ANALYST = "analyst"
    EXECUTIVE = "executive"


TOKEN_MAX_LEN = 16

REGIONS = [
    "Europe",
    "North America",
    "South America",
    "Asia Pacific",
    "Middle East",
    "Africa",
    "Central Asia",
    "South Asia",
    "Oceania",
    "Arctic",
    "Caucasus",
]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Lenient timestamp parsing for stored/imported records.
    Returns an aware UTC datetime, or None when the value is missing or
    cannot be parsed. Naive values are taken as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            dt = parser.parse(raw)
        except (ValueError, OverflowError):
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class IntelItem(BaseModel):
    """
    A single geotagged intelligence report.

    Wire/export keys are camelCase (publishedAt, threatLevel, ...); both
    spellings are accepted on input.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    summary: str = ""
    url: str = ""
    source: str
    source_credibility: SourceCredibility = SourceCredibility.MEDIUM

    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    country: str = ""
    region: str = ""

    tags: List[str] = Field(default_factory=list)
    confidence_score: float = Field(0.5, ge=0.0, le=1.0)
    confidence_level: ConfidenceLevel = ConfidenceLevel.DEVELOPING
    threat_level: ThreatLevel = ThreatLevel.LOW
    actor_type: ActorType = ActorType.ORGANIZATION
    category: Category
    sub_category: Optional[str] = None

    # None means missing or unparseable upstream
    published_at: Optional[datetime] = None
    token: Optional[str] = Field(None, max_length=TOKEN_MAX_LEN, pattern=r"^[A-Za-z0-9-]+$")

    @field_validator("published_at", mode="before")
    @classmethod
    def _parse_published_at(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("tags must not contain duplicates")
        return value

    def display_token(self) -> str:
        return self.token or f"EVT-{self.id[:8].upper()}"

    def to_record(self) -> dict:
        """camelCase JSON-ready dict, as exported and sent to the analysis proxy."""
        return self.model_dump(mode="json", by_alias=True)


class FilterState(BaseModel):
    """
    Transient dashboard filter. Lists are OR within a field, AND across
    fields; an empty list means no constraint on that field.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    search_query: str = ""
    categories: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    countries: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    threat_levels: List[str] = Field(default_factory=list)
    confidence_levels: List[str] = Field(default_factory=list)
    actor_types: List[str] = Field(default_factory=list)
    time_range: TimeRange = TimeRange.ALL
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    @field_validator("date_from", "date_to")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def has_active_filters(self) -> bool:
        return bool(
            self.search_query.strip()
            or self.categories
            or self.regions
            or self.countries
            or self.tags
            or self.sources
            or self.threat_levels
            or self.confidence_levels
            or self.actor_types
            or self.time_range != TimeRange.ALL
            or self.date_from
            or self.date_to
        )

    @classmethod
    def reset(cls, time_range: TimeRange = TimeRange.LAST_24H) -> "FilterState":
        # the dashboard's reset button lands on the last 24h window
        return cls(time_range=time_range)


class Watchlist(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    filters: FilterState = Field(default_factory=FilterState)
    is_shared: bool = False
    created_at: datetime = Field(default_factory=_utc_now)


class AlertConditions(BaseModel):
    categories: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    threat_levels: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)


class AlertRule(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    name: str = Field(..., min_length=1)
    conditions: AlertConditions = Field(default_factory=AlertConditions)
    notification_method: NotificationMethod = NotificationMethod.IN_APP
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utc_now)


class Comment(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    news_item_id: str
    user_id: str
    content: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=_utc_now)


class Notification(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    news_item_id: Optional[str] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=_utc_now)
