"""
Realtime change feed for the item store.

The store publishes one ChangeEvent per insert/update/delete. Open
dashboard sessions subscribe and apply events to a LiveCollection so every
session converges on the same set of items. Writers in other processes
(the RSS importer) only reach a session through the store's change log,
which db.sync_live replays; LiveCollection.seq is the last log entry seen.
"""
from __future__ import annotations

import logging
import types
import weakref
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, model_validator

from intelboard.schema import IntelItem

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    type: ChangeType
    new: Optional[IntelItem] = None
    old_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_payload(self) -> "ChangeEvent":
        if self.type == ChangeType.DELETE:
            if not self.old_id:
                raise ValueError("DELETE events need old_id")
        elif self.new is None:
            raise ValueError(f"{self.type.value} events need the new item")
        return self

    @property
    def item_id(self) -> str:
        return self.new.id if self.new is not None else self.old_id


Handler = Callable[[ChangeEvent], None]


class ChangeFeed:
    """
    In-process fan-out of store changes.

    Bound-method handlers are held weakly, so a LiveCollection that belongs to
    a closed dashboard session drops off the feed once it is garbage collected.
    Plain functions are held strongly until unsubscribed.
    """

    def __init__(self) -> None:
        self._refs: List[Callable[[], Optional[Handler]]] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a function that unsubscribes it."""
        if isinstance(handler, types.MethodType):
            ref = weakref.WeakMethod(handler)
        else:
            def ref() -> Handler:
                return handler
        self._refs.append(ref)

        def _unsubscribe() -> None:
            if ref in self._refs:
                self._refs.remove(ref)

        return _unsubscribe

    def _live_handlers(self) -> List[Handler]:
        handlers = []
        for ref in list(self._refs):
            handler = ref()
            if handler is None:
                self._refs.remove(ref)
            else:
                handlers.append(handler)
        return handlers

    def publish(self, event: ChangeEvent) -> None:
        # at most one callback per handler per event
        for handler in self._live_handlers():
            try:
                handler(event)
            except Exception:
                logger.exception("feed: handler error for %s %s", event.type.value, event.item_id)

    def __len__(self) -> int:
        return len(self._live_handlers())


# process-wide feed used by the store unless one is passed explicitly
default_feed = ChangeFeed()


class LiveCollection:
    """Local copy of the item collection, keyed by id, newest insert first."""

    def __init__(self, items: Optional[List[IntelItem]] = None) -> None:
        # last store change-log sequence applied, see db.sync_live
        self.seq = 0
        self._order: List[str] = []
        self._by_id: Dict[str, IntelItem] = {}
        for it in items or []:
            if it.id not in self._by_id:
                self._order.append(it.id)
            self._by_id[it.id] = it

    def apply(self, event: ChangeEvent) -> None:
        if event.type == ChangeType.INSERT:
            item = event.new
            if item.id in self._by_id:
                return
            self._order.insert(0, item.id)
            self._by_id[item.id] = item
        elif event.type == ChangeType.UPDATE:
            item = event.new
            if item.id in self._by_id:
                self._by_id[item.id] = item
        elif event.type == ChangeType.DELETE:
            if event.old_id in self._by_id:
                del self._by_id[event.old_id]
                self._order.remove(event.old_id)

    def attach(self, feed: ChangeFeed) -> Callable[[], None]:
        return feed.subscribe(self.apply)

    def items(self) -> List[IntelItem]:
        return [self._by_id[i] for i in self._order]

    def get(self, item_id: str) -> Optional[IntelItem]:
        return self._by_id.get(item_id)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._by_id
