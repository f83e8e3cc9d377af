from datetime import timedelta

from intelboard.filters import apply_filters, matches
from intelboard.schema import FilterState, TimeRange


def test_empty_filter_matches_everything(make_item, now):
    items = [make_item(category="economy"), make_item(hours_ago=500, region="Africa"), make_item(hours_ago=None)]
    assert apply_filters(items, FilterState(), now=now) == items


def test_24h_window_keeps_recent_critical_and_drops_old_low(make_item, now):
    a = make_item(hours_ago=1, threat_level="critical")
    b = make_item(hours_ago=30, threat_level="low")

    assert apply_filters([a, b], FilterState(time_range=TimeRange.LAST_24H), now=now) == [a]
    assert apply_filters([a, b], FilterState(categories=[]), now=now) == [a, b]


def test_time_windows_use_duration_since_publication(make_item, now):
    recent = make_item(hours_ago=0.5)
    edge = make_item(hours_ago=24)
    week = make_item(hours_ago=24 * 6)

    assert matches(recent, FilterState(time_range="1h"), now=now)
    assert not matches(edge, FilterState(time_range="1h"), now=now)
    assert matches(edge, FilterState(time_range="24h"), now=now)
    assert matches(week, FilterState(time_range="7d"), now=now)
    assert not matches(make_item(hours_ago=24 * 8), FilterState(time_range="7d"), now=now)


def test_missing_timestamp_fails_closed_for_bounded_ranges(make_item, now):
    undated = make_item(hours_ago=None)
    garbled = make_item(hours_ago=None, published_at="not a date")

    assert garbled.published_at is None
    for item in (undated, garbled):
        assert matches(item, FilterState(), now=now)
        assert not matches(item, FilterState(time_range="24h"), now=now)
        assert not matches(item, FilterState(date_from=now - timedelta(days=365)), now=now)


def test_facets_are_or_within_and_across(make_item, now):
    a = make_item(category="conflict", region="Middle East")
    b = make_item(category="economy", region="Middle East")
    c = make_item(category="conflict", region="Europe")
    items = [a, b, c]

    f = FilterState(categories=["conflict", "economy"])
    assert apply_filters(items, f, now=now) == [a, b, c]

    f = FilterState(categories=["conflict", "economy"], regions=["Middle East"])
    assert apply_filters(items, f, now=now) == [a, b]

    f = FilterState(categories=["conflict"], regions=["Middle East"])
    assert apply_filters(items, f, now=now) == [a]


def test_enum_facets(make_item, now):
    item = make_item(threat_level="high", confidence_level="verified", actor_type="non-state", source="AP")

    assert matches(item, FilterState(threat_levels=["high", "critical"]), now=now)
    assert not matches(item, FilterState(threat_levels=["low"]), now=now)
    assert matches(item, FilterState(confidence_levels=["verified"]), now=now)
    assert not matches(item, FilterState(confidence_levels=["breaking"]), now=now)
    assert matches(item, FilterState(actor_types=["non-state"]), now=now)
    assert not matches(item, FilterState(actor_types=["state"]), now=now)
    assert matches(item, FilterState(sources=["AP"]), now=now)
    assert not matches(item, FilterState(sources=["Reuters"]), now=now)


def test_unknown_values_never_match_a_non_empty_set(make_item, now):
    item = make_item(category="security", region="Europe")

    assert not matches(item, FilterState(categories=["unknown"]), now=now)
    assert not matches(item, FilterState(regions=["Atlantis"]), now=now)


def test_search_is_case_insensitive_across_title_summary_and_tags(make_item, now):
    item = make_item(title="Port strike in Rotterdam", summary="Dockworkers walk out.", tags=["Logistics"])

    assert matches(item, FilterState(search_query="ROTTERDAM"), now=now)
    assert matches(item, FilterState(search_query="dockworkers"), now=now)
    assert matches(item, FilterState(search_query="logis"), now=now)
    assert matches(item, FilterState(search_query="   "), now=now)
    assert not matches(item, FilterState(search_query="hamburg"), now=now)


def test_country_and_tag_facets(make_item, now):
    item = make_item(country="Ukraine", tags=["drones", "energy"])

    assert matches(item, FilterState(countries=["Ukraine", "Poland"]), now=now)
    assert not matches(item, FilterState(countries=["Poland"]), now=now)
    assert matches(item, FilterState(tags=["energy"]), now=now)
    assert not matches(item, FilterState(tags=["ports"]), now=now)


def test_absolute_date_range_is_inclusive(make_item, now):
    item = make_item(hours_ago=48)
    ts = item.published_at

    assert matches(item, FilterState(date_from=ts, date_to=ts), now=now)
    assert not matches(item, FilterState(date_from=ts + timedelta(seconds=1)), now=now)
    assert not matches(item, FilterState(date_to=ts - timedelta(seconds=1)), now=now)


def test_adding_constraints_never_grows_the_match_set(make_item, now):
    items = [
        make_item(hours_ago=h, category=c, region=r, threat_level=t)
        for h, c, r, t in [
            (1, "conflict", "Europe", "critical"),
            (5, "economy", "Africa", "low"),
            (30, "conflict", "Africa", "high"),
            (200, "technology", "Europe", "elevated"),
        ]
    ]
    steps = [
        FilterState(),
        FilterState(categories=["conflict", "technology"]),
        FilterState(categories=["conflict", "technology"], regions=["Europe"]),
        FilterState(categories=["conflict", "technology"], regions=["Europe"], time_range="7d"),
        FilterState(categories=["conflict", "technology"], regions=["Europe"], time_range="24h"),
    ]

    previous = None
    for f in steps:
        got = {it.id for it in apply_filters(items, f, now=now)}
        if previous is not None:
            assert got <= previous
        previous = got
    assert len(previous) == 1


def test_apply_filters_evaluates_against_a_single_instant(make_item, now, monkeypatch):
    import intelboard.filters as filters_mod

    calls = []

    class _Clock(filters_mod.datetime):
        @classmethod
        def now(cls, tz=None):
            calls.append(tz)
            return now

    monkeypatch.setattr(filters_mod, "datetime", _Clock)
    items = [make_item(hours_ago=h) for h in (1, 2, 3)]

    assert apply_filters(items, FilterState(time_range="24h")) == items
    assert len(calls) == 1
