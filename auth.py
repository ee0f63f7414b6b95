from __future__ import annotations

import logging
from typing import Callable, List, Optional

from remote.client import Identity, RemoteError, Session

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[Identity]], None]


class AuthError(Exception):
    pass


class AuthContext:
    """Current signed-in identity, passed explicitly to hooks and workflows.

    The context also pins the client's access token so data calls run as the
    signed-in user. Listeners registered with on_change are told whenever the
    identity changes (sign-in, sign-out, restore).
    """

    def __init__(self, client):
        self.client = client
        self.session: Optional[Session] = None
        self._listeners: List[Listener] = []

    @property
    def identity(self) -> Optional[Identity]:
        return self.session.user if self.session else None

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.id if self.identity else None

    def on_change(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, session: Optional[Session]) -> None:
        before = self.user_id
        self.session = session
        self.client.access_token = session.access_token if session else None
        if self.user_id != before:
            for listener in list(self._listeners):
                listener(self.identity)

    def restore(self, access_token: Optional[str]) -> Optional[Identity]:
        """Rebuild the session from a bearer token; an invalid token leaves it signed out."""
        if not access_token:
            self._set(None)
            return None
        try:
            identity = self.client.get_user(access_token)
        except RemoteError as e:
            logger.info("Discarding session token: %s", e)
            self._set(None)
            return None
        self._set(Session(access_token=access_token, user=identity))
        return identity

    def sign_up(self, email: str, password: str, full_name: str = "") -> Identity:
        identity = self.client.sign_up(email, password, full_name)
        if not identity.identities:
            raise AuthError("An account with this email already exists.")
        logger.info("Signed up %s", identity.id)
        return identity

    def sign_in(self, email: str, password: str) -> Session:
        session = self.client.sign_in(email, password)
        self._set(session)
        return session

    def sign_out(self) -> None:
        if self.session is None:
            return
        try:
            self.client.sign_out()
        finally:
            self._set(None)
