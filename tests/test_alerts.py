import pytest

from intelboard.alerts import notifications_for_item, rule_matches
from intelboard.schema import AlertConditions, AlertRule


def _rule(**conditions):
    return AlertRule(user_id="alice", name="r", conditions=AlertConditions(**conditions))


@pytest.mark.parametrize(
    "conditions, expected",
    [
        ({}, True),
        ({"categories": ["security", "conflict"]}, True),
        ({"categories": ["economy"]}, False),
        ({"regions": ["Europe"], "threat_levels": ["high"]}, True),
        ({"regions": ["Europe"], "threat_levels": ["critical"]}, False),
        ({"keywords": ["PORT"]}, True),
        ({"keywords": ["naval"]}, True),
        ({"keywords": ["refinery"]}, False),
        ({"keywords": ["  "]}, True),
    ],
)
def test_rule_matches(make_item, conditions, expected):
    item = make_item(title="Port blockade", threat_level="high", tags=["naval"])

    assert rule_matches(_rule(**conditions), item) is expected


def test_only_active_in_app_rules_notify(make_item):
    item = make_item(title="Port blockade")
    rules = [
        AlertRule(user_id="a", name="in app"),
        AlertRule(user_id="b", name="both", notification_method="both"),
        AlertRule(user_id="c", name="email", notification_method="email"),
        AlertRule(user_id="d", name="off", is_active=False),
    ]

    notes = notifications_for_item(rules, item)

    assert [n.user_id for n in notes] == ["a", "b"]
    assert all(n.news_item_id == item.id and not n.is_read for n in notes)
    assert notes[0].title == "Alert: in app"
