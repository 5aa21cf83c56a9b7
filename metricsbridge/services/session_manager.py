"""In-memory session tokens with lookup-time expiry."""

import secrets
import time
from dataclasses import dataclass

from metricsbridge.core.rwlock import ReadWriteLock
from metricsbridge.core.user_store import normalize_username

SESSION_TIMEOUT_SECONDS = 24 * 60 * 60


@dataclass
class Session:
    """One login; ``is_admin`` is the admin flag captured at login time."""
    token: str
    username: str
    display_name: str
    is_admin: bool
    created_at: float
    last_access: float

    def to_dict(self):
        return {
            "username": self.username,
            "displayName": self.display_name,
            "isAdmin": self.is_admin,
        }


class SessionManager:
    """Turn verified credentials into short-lived opaque tokens.

    The admin flag is snapshotted when the session is created. Changing a
    user's admin status takes effect at that user's next login.
    Expired sessions are dropped when they are next looked up; there is no
    background sweeper.
    """

    def __init__(self, user_store, *, timeout_seconds=SESSION_TIMEOUT_SECONDS, clock=time.time,
                 token_factory=None):
        self.user_store = user_store
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._token_factory = token_factory or (lambda: secrets.token_urlsafe(32))
        self._lock = ReadWriteLock()
        self._sessions = {}

    def _is_expired(self, session, now):
        return now - session.last_access >= self.timeout_seconds

    def create_session(self, username, password):
        """Return a new token, or None when the credentials do not verify."""
        if not self.user_store.authenticate(username, password):
            return None
        user = self.user_store.get_user(username)
        if user is None:
            return None
        now = self._clock()
        token = self._token_factory()
        session = Session(
            token=token,
            username=user.username,
            display_name=str(username).strip(),
            is_admin=user.is_admin,
            created_at=now,
            last_access=now,
        )
        with self._lock.write_lock():
            self._sessions[token] = session
        return token

    def get_session(self, token):
        """Return the live session for ``token`` without refreshing it."""
        if not token:
            return None
        now = self._clock()
        with self._lock.read_lock():
            session = self._sessions.get(token)
            if session is None:
                return None
            if not self._is_expired(session, now):
                return session
        self._drop_if_expired(token, now)
        return None

    def touch(self, token):
        """Return the live session for ``token`` and refresh its access time."""
        if not token:
            return None
        now = self._clock()
        with self._lock.write_lock():
            session = self._sessions.get(token)
            if session is None:
                return None
            if self._is_expired(session, now):
                del self._sessions[token]
                return None
            session.last_access = max(session.last_access, now)
            return session

    def _drop_if_expired(self, token, now):
        with self._lock.write_lock():
            session = self._sessions.get(token)
            if session is not None and self._is_expired(session, now):
                del self._sessions[token]

    def is_op(self, token):
        session = self.get_session(token)
        return session is not None and session.is_admin

    def invalidate_session(self, token):
        if not token:
            return
        with self._lock.write_lock():
            self._sessions.pop(token, None)

    def invalidate_user_sessions(self, username):
        """Drop every session owned by ``username``; returns how many were removed."""
        key = normalize_username(username)
        with self._lock.write_lock():
            doomed = [token for token, session in self._sessions.items() if normalize_username(session.username) == key]
            for token in doomed:
                del self._sessions[token]
        return len(doomed)

    def active_session_count(self):
        now = self._clock()
        with self._lock.read_lock():
            return sum(1 for session in self._sessions.values() if not self._is_expired(session, now))
