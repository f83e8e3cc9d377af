# intelboard/db.py
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

import duckdb
import pandas as pd

from intelboard import config
from intelboard.alerts import notifications_for_item
from intelboard.errors import NotFoundError, OwnershipError
from intelboard.feed import ChangeEvent, ChangeFeed, ChangeType, LiveCollection, default_feed
from intelboard.schema import (
    AlertConditions,
    AlertRule,
    Comment,
    FilterState,
    IntelItem,
    Notification,
    Role,
    Watchlist,
)

PathLike = Union[str, Path, None]

# "leave unchanged" for optional columns where None is a real value
_UNSET: Any = object()

# Canonical column order for intel_items (insert by name, keep this list as truth)
ITEM_COLUMNS: List[str] = [
    "id",
    "user_id",
    "title",
    "summary",
    "url",
    "source",
    "source_credibility",
    "published_at",
    "lat",
    "lon",
    "country",
    "region",
    "tags",
    "confidence_score",
    "confidence_level",
    "threat_level",
    "actor_type",
    "category",
    "sub_category",
    "token",
    "created_at",
    "updated_at",
]

# attribute name by wire alias, so updates accept either spelling
_ITEM_FIELDS = {}
for _name, _field in IntelItem.model_fields.items():
    _ITEM_FIELDS[_name] = _name
    if _field.alias:
        _ITEM_FIELDS[_field.alias] = _name


def connect(db_path: PathLike = None) -> duckdb.DuckDBPyConnection:
    con = duckdb.connect(str(db_path or config.DB_PATH))

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS intel_items (
          id VARCHAR PRIMARY KEY,
          user_id VARCHAR NOT NULL,
          title VARCHAR,
          summary VARCHAR,
          url VARCHAR,
          source VARCHAR,
          source_credibility VARCHAR,
          published_at TIMESTAMP,
          lat DOUBLE,
          lon DOUBLE,
          country VARCHAR,
          region VARCHAR,
          tags VARCHAR[],
          confidence_score DOUBLE,
          confidence_level VARCHAR,
          threat_level VARCHAR,
          actor_type VARCHAR,
          category VARCHAR,
          sub_category VARCHAR,
          token VARCHAR,
          created_at TIMESTAMP,
          updated_at TIMESTAMP
        );
        """
    )
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS watchlists (
          id VARCHAR PRIMARY KEY,
          user_id VARCHAR NOT NULL,
          name VARCHAR,
          description VARCHAR,
          filters VARCHAR,
          is_shared BOOLEAN,
          created_at TIMESTAMP
        );
        """
    )
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS alert_rules (
          id VARCHAR PRIMARY KEY,
          user_id VARCHAR NOT NULL,
          name VARCHAR,
          conditions VARCHAR,
          notification_method VARCHAR,
          is_active BOOLEAN,
          created_at TIMESTAMP
        );
        """
    )
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS comments (
          id VARCHAR PRIMARY KEY,
          news_item_id VARCHAR NOT NULL,
          user_id VARCHAR NOT NULL,
          content VARCHAR,
          created_at TIMESTAMP
        );
        """
    )
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS user_roles (
          user_id VARCHAR PRIMARY KEY,
          role VARCHAR
        );
        """
    )
    con.execute("CREATE SEQUENCE IF NOT EXISTS item_change_seq START 1;")
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS item_changes (
          seq BIGINT PRIMARY KEY DEFAULT nextval('item_change_seq'),
          change_type VARCHAR NOT NULL,
          item_id VARCHAR NOT NULL,
          changed_at TIMESTAMP
        );
        """
    )
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS notifications (
          id VARCHAR PRIMARY KEY,
          user_id VARCHAR NOT NULL,
          title VARCHAR,
          message VARCHAR,
          type VARCHAR,
          news_item_id VARCHAR,
          is_read BOOLEAN,
          created_at TIMESTAMP
        );
        """
    )

    return con


def _naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # duckdb TIMESTAMP is naive; we always store UTC
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _now() -> datetime:
    return _naive_utc(datetime.now(timezone.utc))


def _rows(con: duckdb.DuckDBPyConnection, q: str, params: Optional[list] = None) -> List[Dict[str, Any]]:
    cur = con.execute(q, params or [])
    cols = [d[0] for d in cur.description]
    return [dict(zip(cols, r)) for r in cur.fetchall()]


def _item_row(item: IntelItem, user_id: str, created_at: datetime, updated_at: datetime) -> list:
    d = item.model_dump()
    d["user_id"] = user_id
    d["published_at"] = _naive_utc(item.published_at)
    d["source_credibility"] = item.source_credibility.value
    d["confidence_level"] = item.confidence_level.value
    d["threat_level"] = item.threat_level.value
    d["actor_type"] = item.actor_type.value
    d["category"] = item.category.value
    d["created_at"] = created_at
    d["updated_at"] = updated_at
    return [d[c] for c in ITEM_COLUMNS]


def _publish(feed: Optional[ChangeFeed], event: ChangeEvent) -> None:
    # an empty feed is falsy (__len__), so test for None explicitly
    (feed if feed is not None else default_feed).publish(event)


def _log_change(con: duckdb.DuckDBPyConnection, change_type: ChangeType, item_id: str) -> None:
    con.execute(
        "INSERT INTO item_changes (change_type, item_id, changed_at) VALUES (?, ?, ?)",
        [change_type.value, item_id, _now()],
    )


def _owner_of(con: duckdb.DuckDBPyConnection, table: str, record_id: str) -> str:
    row = con.execute(f"SELECT user_id FROM {table} WHERE id = ?", [record_id]).fetchone()
    if row is None:
        raise NotFoundError(f"{table}: no record with id {record_id!r}")
    return row[0]


def _check_owner(con: duckdb.DuckDBPyConnection, table: str, record_id: str, user_id: str) -> None:
    if _owner_of(con, table, record_id) != user_id:
        raise OwnershipError(f"{table}: {record_id!r} belongs to another user")


# ----------------------------
# Intelligence items
# ----------------------------
def create_item(
    item: IntelItem,
    user_id: str,
    db_path: PathLike = None,
    feed: Optional[ChangeFeed] = None,
) -> IntelItem:
    con = connect(db_path)
    try:
        now = _now()
        placeholders = ", ".join("?" for _ in ITEM_COLUMNS)
        con.execute(
            f"INSERT INTO intel_items ({', '.join(ITEM_COLUMNS)}) VALUES ({placeholders})",
            _item_row(item, user_id, now, now),
        )
        _log_change(con, ChangeType.INSERT, item.id)

        rules = [_rule_from_row(r) for r in _rows(con, "SELECT * FROM alert_rules WHERE is_active")]
        for note in notifications_for_item(rules, item):
            _insert_notification(con, note)
    finally:
        con.close()

    _publish(feed, ChangeEvent(type=ChangeType.INSERT, new=item))
    return item


def get_item(item_id: str, db_path: PathLike = None) -> IntelItem:
    con = connect(db_path)
    try:
        rows = _rows(con, "SELECT * FROM intel_items WHERE id = ?", [item_id])
    finally:
        con.close()
    if not rows:
        raise NotFoundError(f"intel_items: no record with id {item_id!r}")
    return IntelItem.model_validate(rows[0])


def update_item(
    item_id: str,
    user_id: str,
    changes: Dict[str, Any],
    db_path: PathLike = None,
    feed: Optional[ChangeFeed] = None,
) -> IntelItem:
    """Apply a partial update (snake_case or camelCase keys). Creator only."""
    normalized: Dict[str, Any] = {}
    for key, value in changes.items():
        name = _ITEM_FIELDS.get(key)
        if name is None:
            raise ValueError(f"Unknown item field: {key!r}")
        if name == "id":
            raise ValueError("Item id cannot be changed")
        normalized[name] = value

    con = connect(db_path)
    try:
        _check_owner(con, "intel_items", item_id, user_id)
        rows = _rows(con, "SELECT * FROM intel_items WHERE id = ?", [item_id])
        current = IntelItem.model_validate(rows[0])
        updated = IntelItem.model_validate({**current.model_dump(), **normalized})

        row = _item_row(updated, user_id, rows[0]["created_at"], _now())
        assignments = ", ".join(f"{c} = ?" for c in ITEM_COLUMNS if c != "id")
        con.execute(
            f"UPDATE intel_items SET {assignments} WHERE id = ?",
            row[1:] + [item_id],
        )
        _log_change(con, ChangeType.UPDATE, item_id)
    finally:
        con.close()

    _publish(feed, ChangeEvent(type=ChangeType.UPDATE, new=updated))
    return updated


def delete_item(
    item_id: str,
    user_id: str,
    db_path: PathLike = None,
    feed: Optional[ChangeFeed] = None,
) -> None:
    con = connect(db_path)
    try:
        _check_owner(con, "intel_items", item_id, user_id)
        con.execute("DELETE FROM comments WHERE news_item_id = ?", [item_id])
        con.execute("DELETE FROM intel_items WHERE id = ?", [item_id])
        _log_change(con, ChangeType.DELETE, item_id)
    finally:
        con.close()

    _publish(feed, ChangeEvent(type=ChangeType.DELETE, old_id=item_id))


def query_items(db_path: PathLike = None) -> List[IntelItem]:
    """All items, newest publication first."""
    con = connect(db_path)
    try:
        rows = _rows(con, "SELECT * FROM intel_items ORDER BY published_at DESC NULLS LAST, created_at DESC")
    finally:
        con.close()
    return [IntelItem.model_validate(r) for r in rows]


def existing_item_ids(ids: Iterable[str], db_path: PathLike = None) -> Set[str]:
    ids = [str(i) for i in ids]
    if not ids:
        return set()
    con = connect(db_path)
    try:
        rows = con.execute(
            "SELECT id FROM intel_items WHERE id IN (SELECT * FROM UNNEST(?))", [ids]
        ).fetchall()
    finally:
        con.close()
    return {r[0] for r in rows}


def latest_change_seq(db_path: PathLike = None) -> int:
    con = connect(db_path)
    try:
        row = con.execute("SELECT COALESCE(MAX(seq), 0) FROM item_changes").fetchone()
    finally:
        con.close()
    return int(row[0])


def changes_since(seq: int, db_path: PathLike = None) -> Tuple[int, List[ChangeEvent]]:
    """
    Logged changes after `seq`, oldest first, plus the newest sequence read.
    INSERT/UPDATE events carry the item as it is stored now; a change whose
    item has since been deleted is skipped, the later DELETE covers it.
    """
    con = connect(db_path)
    try:
        log = con.execute(
            "SELECT seq, change_type, item_id FROM item_changes WHERE seq > ? ORDER BY seq",
            [seq],
        ).fetchall()
        ids = sorted({r[2] for r in log if r[1] != ChangeType.DELETE.value})
        current = {}
        if ids:
            rows = _rows(con, "SELECT * FROM intel_items WHERE id IN (SELECT * FROM UNNEST(?))", [ids])
            current = {r["id"]: IntelItem.model_validate(r) for r in rows}
    finally:
        con.close()

    events: List[ChangeEvent] = []
    for _, change_type, item_id in log:
        ctype = ChangeType(change_type)
        if ctype == ChangeType.DELETE:
            events.append(ChangeEvent(type=ctype, old_id=item_id))
        elif item_id in current:
            events.append(ChangeEvent(type=ctype, new=current[item_id]))
    last = log[-1][0] if log else seq
    return last, events


def sync_live(live: LiveCollection, db_path: PathLike = None) -> int:
    """Apply store changes the collection has not seen yet; returns how many."""
    last, events = changes_since(live.seq, db_path=db_path)
    for event in events:
        live.apply(event)
    live.seq = last
    return len(events)


def open_live_collection(db_path: PathLike = None, feed: Optional[ChangeFeed] = None) -> LiveCollection:
    """
    Snapshot of the store attached to `feed` (default: the process feed).
    The collection is held weakly by the feed; keep a reference to it.
    """
    seq = latest_change_seq(db_path=db_path)
    live = LiveCollection(query_items(db_path=db_path))
    live.seq = seq
    live.attach(feed if feed is not None else default_feed)
    return live


def items_frame(db_path: PathLike = None) -> pd.DataFrame:
    con = connect(db_path)
    try:
        df = con.execute("SELECT * FROM intel_items ORDER BY published_at DESC NULLS LAST").df()
    finally:
        con.close()
    return df


# ----------------------------
# Watchlists
# ----------------------------
def _watchlist_from_row(row: Dict[str, Any]) -> Watchlist:
    row = dict(row)
    row["filters"] = FilterState.model_validate(json.loads(row["filters"] or "{}"))
    row["created_at"] = row["created_at"].replace(tzinfo=timezone.utc)
    return Watchlist.model_validate(row)


def create_watchlist(watchlist: Watchlist, db_path: PathLike = None) -> Watchlist:
    con = connect(db_path)
    try:
        con.execute(
            "INSERT INTO watchlists (id, user_id, name, description, filters, is_shared, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                watchlist.id,
                watchlist.user_id,
                watchlist.name,
                watchlist.description,
                watchlist.filters.model_dump_json(by_alias=True),
                watchlist.is_shared,
                _naive_utc(watchlist.created_at),
            ],
        )
    finally:
        con.close()
    return watchlist


def list_watchlists(user_id: str, db_path: PathLike = None) -> List[Watchlist]:
    """Own watchlists plus anything shared, newest first."""
    con = connect(db_path)
    try:
        rows = _rows(
            con,
            "SELECT * FROM watchlists WHERE user_id = ? OR is_shared ORDER BY created_at DESC",
            [user_id],
        )
    finally:
        con.close()
    return [_watchlist_from_row(r) for r in rows]


def update_watchlist(
    watchlist_id: str,
    user_id: str,
    name: Optional[str] = None,
    description: Optional[str] = _UNSET,
    filters: Optional[FilterState] = None,
    is_shared: Optional[bool] = None,
    db_path: PathLike = None,
) -> Watchlist:
    con = connect(db_path)
    try:
        _check_owner(con, "watchlists", watchlist_id, user_id)
        sets, params = [], []
        if name is not None:
            sets.append("name = ?")
            params.append(name)
        if description is not _UNSET:
            sets.append("description = ?")
            params.append(description)
        if filters is not None:
            sets.append("filters = ?")
            params.append(filters.model_dump_json(by_alias=True))
        if is_shared is not None:
            sets.append("is_shared = ?")
            params.append(is_shared)
        if sets:
            con.execute(f"UPDATE watchlists SET {', '.join(sets)} WHERE id = ?", params + [watchlist_id])
        rows = _rows(con, "SELECT * FROM watchlists WHERE id = ?", [watchlist_id])
    finally:
        con.close()
    return _watchlist_from_row(rows[0])


def delete_watchlist(watchlist_id: str, user_id: str, db_path: PathLike = None) -> None:
    con = connect(db_path)
    try:
        _check_owner(con, "watchlists", watchlist_id, user_id)
        con.execute("DELETE FROM watchlists WHERE id = ?", [watchlist_id])
    finally:
        con.close()


# ----------------------------
# Alert rules (matched against new items in create_item)
# ----------------------------
def _rule_from_row(row: Dict[str, Any]) -> AlertRule:
    row = dict(row)
    row["conditions"] = AlertConditions.model_validate(json.loads(row["conditions"] or "{}"))
    row["created_at"] = row["created_at"].replace(tzinfo=timezone.utc)
    return AlertRule.model_validate(row)


def create_alert_rule(rule: AlertRule, db_path: PathLike = None) -> AlertRule:
    con = connect(db_path)
    try:
        con.execute(
            "INSERT INTO alert_rules (id, user_id, name, conditions, notification_method, is_active, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                rule.id,
                rule.user_id,
                rule.name,
                rule.conditions.model_dump_json(),
                rule.notification_method.value,
                rule.is_active,
                _naive_utc(rule.created_at),
            ],
        )
    finally:
        con.close()
    return rule


def list_alert_rules(user_id: str, db_path: PathLike = None) -> List[AlertRule]:
    con = connect(db_path)
    try:
        rows = _rows(con, "SELECT * FROM alert_rules WHERE user_id = ? ORDER BY created_at DESC", [user_id])
    finally:
        con.close()
    return [_rule_from_row(r) for r in rows]


def set_alert_rule_active(rule_id: str, user_id: str, is_active: bool, db_path: PathLike = None) -> AlertRule:
    con = connect(db_path)
    try:
        _check_owner(con, "alert_rules", rule_id, user_id)
        con.execute("UPDATE alert_rules SET is_active = ? WHERE id = ?", [is_active, rule_id])
        rows = _rows(con, "SELECT * FROM alert_rules WHERE id = ?", [rule_id])
    finally:
        con.close()
    return _rule_from_row(rows[0])


def delete_alert_rule(rule_id: str, user_id: str, db_path: PathLike = None) -> None:
    con = connect(db_path)
    try:
        _check_owner(con, "alert_rules", rule_id, user_id)
        con.execute("DELETE FROM alert_rules WHERE id = ?", [rule_id])
    finally:
        con.close()


# ----------------------------
# Comments
# ----------------------------
def add_comment(comment: Comment, db_path: PathLike = None) -> Comment:
    con = connect(db_path)
    try:
        _owner_of(con, "intel_items", comment.news_item_id)
        con.execute(
            "INSERT INTO comments (id, news_item_id, user_id, content, created_at) VALUES (?, ?, ?, ?, ?)",
            [comment.id, comment.news_item_id, comment.user_id, comment.content, _naive_utc(comment.created_at)],
        )
    finally:
        con.close()
    return comment


def list_comments(news_item_id: str, db_path: PathLike = None) -> List[Comment]:
    """Oldest first, as a conversation reads."""
    con = connect(db_path)
    try:
        rows = _rows(
            con,
            "SELECT * FROM comments WHERE news_item_id = ? ORDER BY created_at ASC",
            [news_item_id],
        )
    finally:
        con.close()
    out = []
    for r in rows:
        r["created_at"] = r["created_at"].replace(tzinfo=timezone.utc)
        out.append(Comment.model_validate(r))
    return out


def delete_comment(comment_id: str, user_id: str, db_path: PathLike = None) -> None:
    con = connect(db_path)
    try:
        _check_owner(con, "comments", comment_id, user_id)
        con.execute("DELETE FROM comments WHERE id = ?", [comment_id])
    finally:
        con.close()


# ----------------------------
# Notifications
# ----------------------------
def _insert_notification(con: duckdb.DuckDBPyConnection, note: Notification) -> None:
    con.execute(
        "INSERT INTO notifications (id, user_id, title, message, type, news_item_id, is_read, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        [
            note.id,
            note.user_id,
            note.title,
            note.message,
            note.type.value,
            note.news_item_id,
            note.is_read,
            _naive_utc(note.created_at),
        ],
    )


def create_notification(note: Notification, db_path: PathLike = None) -> Notification:
    con = connect(db_path)
    try:
        _insert_notification(con, note)
    finally:
        con.close()
    return note


def list_notifications(
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
    db_path: PathLike = None,
) -> List[Notification]:
    """Newest first."""
    q = "SELECT * FROM notifications WHERE user_id = ?"
    if unread_only:
        q += " AND NOT is_read"
    q += " ORDER BY created_at DESC LIMIT ?"
    con = connect(db_path)
    try:
        rows = _rows(con, q, [user_id, limit])
    finally:
        con.close()
    out = []
    for r in rows:
        r["created_at"] = r["created_at"].replace(tzinfo=timezone.utc)
        out.append(Notification.model_validate(r))
    return out


def unread_count(user_id: str, db_path: PathLike = None) -> int:
    con = connect(db_path)
    try:
        row = con.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND NOT is_read", [user_id]
        ).fetchone()
    finally:
        con.close()
    return int(row[0])


def mark_notification_read(notification_id: str, user_id: str, db_path: PathLike = None) -> None:
    con = connect(db_path)
    try:
        _check_owner(con, "notifications", notification_id, user_id)
        con.execute("UPDATE notifications SET is_read = TRUE WHERE id = ?", [notification_id])
    finally:
        con.close()


def mark_all_notifications_read(user_id: str, db_path: PathLike = None) -> int:
    """Returns how many were unread."""
    con = connect(db_path)
    try:
        n = con.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND NOT is_read", [user_id]
        ).fetchone()[0]
        con.execute("UPDATE notifications SET is_read = TRUE WHERE user_id = ? AND NOT is_read", [user_id])
    finally:
        con.close()
    return int(n)


# ----------------------------
# Roles
# ----------------------------
def get_role(user_id: str, db_path: PathLike = None) -> Role:
    con = connect(db_path)
    try:
        row = con.execute("SELECT role FROM user_roles WHERE user_id = ?", [user_id]).fetchone()
    finally:
        con.close()
    return Role(row[0]) if row else Role.ANALYST


def set_role(user_id: str, role: Role, db_path: PathLike = None) -> None:
    con = connect(db_path)
    try:
        con.execute("DELETE FROM user_roles WHERE user_id = ?", [user_id])
        con.execute("INSERT INTO user_roles (user_id, role) VALUES (?, ?)", [user_id, Role(role).value])
    finally:
        con.close()
