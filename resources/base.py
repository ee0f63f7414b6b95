from __future__ import annotations

"""
Resource hooks: a fetched view of one remote table that stays fresh.

Lifecycle per instance:

    mount()      open one change stream, then fetch
    <change>     every notification on the stream triggers a full fetch
    set_params() close the stream, bump the generation, reopen, fetch
    unmount()    bump the generation, close the stream

Overlapping fetches are not queued or fenced against each other: the last one
to resolve wins. Only fetches started under an older generation (parameters
changed or the hook was unmounted meanwhile) are discarded when they resolve.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, NamedTuple, Optional

from remote.client import RemoteError
from remote.query import RowFilter
from remote.realtime import ChangeEvent, Subscription

logger = logging.getLogger(__name__)


class FetchResult(NamedTuple):
    data: Any
    error: Optional[str]


class ResourceHook:
    table = ""
    event = "*"
    noun = "records"
    params: tuple = ()
    keep_data_on_error = True

    def __init__(self, client):
        self.client = client
        self.data: Any = self.empty()
        self.error: Optional[str] = None
        self.generation = 0
        self.is_mounted = False
        self.fetched = False
        self._in_flight = 0
        self._subscription: Optional[Subscription] = None
        self._lock = threading.Lock()

    # ---------- per-resource ----------
    def empty(self) -> Any:
        return []

    def ready(self) -> bool:
        return True

    def query(self) -> Any:
        raise NotImplementedError

    def channel(self) -> Optional[str]:
        return None

    def row_filter(self) -> Optional[RowFilter]:
        return None

    # ---------- state ----------
    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def state(self) -> str:
        if self.loading:
            return "loading"
        if self.error:
            return "errored"
        return "ready" if self.fetched else "idle"

    def snapshot(self) -> dict:
        return {"data": self.data, "loading": self.loading, "error": self.error}

    # ---------- operations ----------
    def fetch(self) -> FetchResult:
        with self._lock:
            generation = self.generation
            if not self.ready():
                self.data = self.empty()
                self.error = None
                self.fetched = True
                return FetchResult(self.data, None)
            self._in_flight += 1

        # the query runs unlocked: a change notification may start another fetch meanwhile
        try:
            data = self.query()
        except RemoteError as e:
            data, message = None, e.message or f"Failed to fetch {self.noun}"
        else:
            message = None

        with self._lock:
            if generation != self.generation:
                logger.debug("Ignoring stale %s response", self.noun)
                return FetchResult(data, message)
            self._in_flight -= 1
            if message is not None:
                logger.error("Error fetching %s: %s", self.noun, message)
                self.error = message
                if not self.keep_data_on_error:
                    self.data = self.empty()
            else:
                self.data = data
                self.error = None
            self.fetched = True
            return FetchResult(self.data, self.error)

    def refetch(self) -> FetchResult:
        return self.fetch()

    def subscribe(self) -> Optional[Subscription]:
        channel = self.channel()
        if channel is None:
            return None
        return self.client.subscribe(channel, self.table, self._on_change,
                                     event=self.event, row_filter=self.row_filter())

    def teardown(self, subscription: Optional[Subscription]) -> None:
        if subscription is not None:
            self.client.unsubscribe(subscription)

    def _on_change(self, change: ChangeEvent) -> None:
        logger.debug("%s change received: %s", self.table, change.type)
        self.fetch()

    # ---------- lifecycle ----------
    def _advance(self) -> None:
        with self._lock:
            self.generation += 1
            self._in_flight = 0
        self.teardown(self._subscription)
        self._subscription = None

    def mount(self) -> "ResourceHook":
        if not self.is_mounted:
            self.is_mounted = True
            self._advance()
            self._subscription = self.subscribe()
            self.fetch()
        return self

    def unmount(self) -> None:
        if self.is_mounted:
            self.is_mounted = False
            self._advance()

    def rescope(self) -> None:
        if self.is_mounted:
            self._advance()
            self._subscription = self.subscribe()
            self.fetch()

    def set_params(self, **params) -> None:
        for name, value in params.items():
            if name not in self.params:
                raise AttributeError(f"{type(self).__name__} has no parameter {name!r}")
            setattr(self, name, value)
        self.rescope()

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription


class OwnedResourceHook(ResourceHook):
    """Hook over rows owned by the signed-in identity; empty when signed out."""

    def __init__(self, client, auth):
        super().__init__(client)
        self.auth = auth
        self._auth_unsubscribe = None

    @property
    def user_id(self) -> Optional[str]:
        return self.auth.user_id

    def ready(self) -> bool:
        return self.user_id is not None

    def mount(self) -> "OwnedResourceHook":
        if not self.is_mounted:
            self._auth_unsubscribe = self.auth.on_change(lambda identity: self.rescope())
        return super().mount()

    def unmount(self) -> None:
        super().unmount()
        if self._auth_unsubscribe is not None:
            self._auth_unsubscribe()
            self._auth_unsubscribe = None


@contextmanager
def mounted(hook: ResourceHook) -> Iterator[ResourceHook]:
    hook.mount()
    try:
        yield hook
    finally:
        hook.unmount()
