import pytest

from intelboard.stats import priority_alerts, summarize


def test_summarize_empty_collection():
    stats = summarize([])

    assert stats.total == 0
    assert stats.last_24h == 0
    assert stats.avg_confidence == 0
    assert stats.regions == []
    assert stats.categories == []
    assert stats.critical_count == 0
    assert stats.verified_rate == 0
    assert stats.source_credibility == {"high": 0, "medium": 0, "low": 0}
    assert priority_alerts(stats) == []


def test_average_confidence_is_arithmetic_mean(make_item, now):
    items = [make_item(confidence_score=s) for s in (0.9, 0.7, 0.5)]

    assert summarize(items, now=now).avg_confidence == pytest.approx(0.7)


def test_counts_by_threat_and_confidence(make_item, now):
    items = [
        make_item(hours_ago=2, threat_level="critical", confidence_level="verified"),
        make_item(hours_ago=3, threat_level="critical", confidence_level="breaking"),
        make_item(hours_ago=40, threat_level="high", confidence_level="verified"),
        make_item(hours_ago=None, threat_level="low"),
    ]
    stats = summarize(items, now=now)

    assert stats.total == 4
    assert stats.last_24h == 2
    assert stats.critical_count == 2
    assert stats.high_count == 1
    assert stats.verified_count == 2
    assert stats.breaking_count == 1
    assert stats.verified_rate == 50
    assert stats.threat_levels == {"low": 1, "elevated": 0, "high": 1, "critical": 2}


def test_region_ranking_is_sorted_truncated_and_stable(make_item, now):
    regions = ["Africa", "Europe", "Europe", "Oceania", "Arctic", "Africa", "Caucasus", "South Asia", "Europe"]
    items = [make_item(region=r) for r in regions]

    top = summarize(items, now=now).regions
    assert top == [("Europe", 3), ("Africa", 2), ("Oceania", 1), ("Arctic", 1), ("Caucasus", 1)]

    everything = summarize(items, top_regions=None, now=now).regions
    assert len(everything) == 6
    assert everything[-1] == ("South Asia", 1)


def test_category_table_keeps_first_seen_order(make_item, now):
    items = [make_item(category=c) for c in ("economy", "conflict", "conflict", "economy", "conflict")]

    assert summarize(items, now=now).categories == [("economy", 2), ("conflict", 3)]


def test_source_credibility_percentages(make_item, now):
    items = [make_item(source_credibility=c) for c in ("high", "high", "medium", "low")]

    assert summarize(items, now=now).source_credibility == {"high": 50, "medium": 25, "low": 25}


def test_summarize_does_not_mutate_input(make_item, now):
    items = [make_item(region="Europe"), make_item(region="Africa")]
    before = list(items)

    summarize(items, now=now)

    assert items == before


def test_priority_alerts_merge_critical_and_high_newest_first(make_item, now):
    items = [
        make_item(hours_ago=10, threat_level="critical", title="c-old"),
        make_item(hours_ago=1, threat_level="high", title="h-new"),
        make_item(hours_ago=5, threat_level="low", title="low"),
        make_item(hours_ago=3, threat_level="critical", title="c-mid"),
        make_item(hours_ago=None, threat_level="high", title="h-undated"),
        make_item(hours_ago=20, threat_level="high", title="h-old"),
        make_item(hours_ago=30, threat_level="critical", title="c-oldest"),
    ]
    stats = summarize(items, now=now)

    alerts = priority_alerts(stats)
    assert [a.title for a in alerts] == ["h-new", "c-mid", "c-old", "h-old", "c-oldest"]

    assert [a.title for a in priority_alerts(stats, limit=2)] == ["h-new", "c-mid"]
    assert priority_alerts(stats, limit=10)[-1].title == "h-undated"
