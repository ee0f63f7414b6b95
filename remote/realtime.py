from __future__ import annotations

"""
Change-notification feed.

The hosted database posts a webhook for every INSERT/UPDATE/DELETE on the
watched tables. The application turns each payload into a ChangeEvent and
publishes it here; subscribers registered under a channel name get a callback.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from .query import RowFilter

logger = logging.getLogger(__name__)

EVENTS = ("INSERT", "UPDATE", "DELETE")


class ChangeEvent(BaseModel):
    type: str = Field(..., description="INSERT | UPDATE | DELETE")
    table: str
    schema_name: str = Field("public", alias="schema")
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None

    model_config = {"populate_by_name": True}


@dataclass(eq=False)
class Subscription:
    channel: str
    table: str
    callback: Callable[[ChangeEvent], None]
    event: str = "*"
    row_filter: Optional[RowFilter] = None
    closed: bool = field(default=False)

    def wants(self, change: ChangeEvent) -> bool:
        if self.closed or change.table != self.table:
            return False
        if self.event != "*" and self.event != change.type:
            return False
        if self.row_filter is None:
            return True
        row = change.old_record if change.type == "DELETE" else change.record
        return self.row_filter.matches(row)


class ChangeFeed:
    def __init__(self):
        self._channels: Dict[str, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, channel: str, table: str, callback: Callable[[ChangeEvent], None],
                  event: str = "*", row_filter: Optional[RowFilter] = None) -> Subscription:
        if event != "*" and event not in EVENTS:
            raise ValueError(f"Unknown event type: {event}")
        sub = Subscription(channel=channel, table=table, callback=callback, event=event, row_filter=row_filter)
        with self._lock:
            self._channels.setdefault(channel, []).append(sub)
        logger.debug("Subscribed to %s", channel)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        sub.closed = True
        with self._lock:
            subs = self._channels.get(sub.channel, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._channels.pop(sub.channel, None)
        logger.debug("Removed channel %s", sub.channel)

    def channels(self) -> Dict[str, int]:
        with self._lock:
            return {name: len(subs) for name, subs in self._channels.items()}

    def publish(self, change: ChangeEvent) -> int:
        with self._lock:
            targets = [s for subs in self._channels.values() for s in subs if s.wants(change)]
        for sub in targets:
            # a callback may tear down another subscription in this batch
            if sub.closed:
                continue
            logger.debug("Change received on %s: %s %s", sub.channel, change.type, change.table)
            sub.callback(change)
        return len(targets)
