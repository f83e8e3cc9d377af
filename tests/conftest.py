from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from intelboard.feed import ChangeFeed, default_feed
from intelboard.schema import IntelItem

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

_ids = count(1)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_item():
    def _make(hours_ago=1.0, **overrides):
        n = next(_ids)
        data = {
            "id": f"item-{n:04d}",
            "title": f"Report {n}",
            "summary": "Routine situation update.",
            "url": f"https://example.com/{n}",
            "source": "Reuters",
            "lat": 50.45,
            "lon": 30.52,
            "country": "Ukraine",
            "region": "Europe",
            "tags": [],
            "confidence_score": 0.7,
            "category": "security",
        }
        if hours_ago is not None:
            data["published_at"] = NOW - timedelta(hours=hours_ago)
        data.update(overrides)
        return IntelItem(**data)

    return _make


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "intel.duckdb"


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def default_feed_events():
    """Everything published on the process-wide feed during the test."""
    seen = []
    unsubscribe = default_feed.subscribe(seen.append)
    yield seen
    unsubscribe()
