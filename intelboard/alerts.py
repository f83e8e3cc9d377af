# intelboard/alerts.py
from __future__ import annotations

from typing import List

from intelboard.schema import AlertRule, IntelItem, Notification, NotificationMethod, NotificationType

# methods that produce an in-app notification; email delivery is not wired up
IN_APP_METHODS = {NotificationMethod.IN_APP.value, NotificationMethod.BOTH.value}


def _in(value: str, selected: List[str]) -> bool:
    return not selected or value in selected


def rule_matches(rule: AlertRule, item: IntelItem) -> bool:
    """
    Same semantics as the dashboard filter: every non-empty condition must
    hold, any value within a condition is enough. Keywords match
    case-insensitively against title, summary and tags.
    """
    c = rule.conditions
    if not _in(item.category.value, c.categories):
        return False
    if not _in(item.region, c.regions):
        return False
    if not _in(item.threat_level.value, c.threat_levels):
        return False
    keywords = [k.strip().lower() for k in c.keywords if k.strip()]
    if keywords:
        text = " ".join([item.title, item.summary, *item.tags]).lower()
        if not any(k in text for k in keywords):
            return False
    return True


def notification_for(rule: AlertRule, item: IntelItem) -> Notification:
    return Notification(
        user_id=rule.user_id,
        title=f"Alert: {rule.name}",
        message=f"[{item.threat_level.value.upper()}] {item.title} ({item.region or item.country or 'unknown'})",
        type=NotificationType.ALERT,
        news_item_id=item.id,
    )


def notifications_for_item(rules: List[AlertRule], item: IntelItem) -> List[Notification]:
    """One notification per active in-app rule the item satisfies."""
    out = []
    for rule in rules:
        if not rule.is_active or rule.notification_method.value not in IN_APP_METHODS:
            continue
        if rule_matches(rule, item):
            out.append(notification_for(rule, item))
    return out
