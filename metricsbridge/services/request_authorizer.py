"""Ordered authorization strategies applied to every API request."""

import functools
import hmac
from dataclasses import dataclass
from typing import Optional

from flask import g

from metricsbridge.core.response_helpers import forbidden_response, unauthorized_response

SESSION_HEADER = "X-Session-Token"
BEARER_PREFIX = "Bearer "
QUERY_TOKEN_PARAM = "token"
API_PREFIX = "/api/"
EXEMPT_PATHS = frozenset({"/api/login", "/api/logout", "/api/session", "/api/test"})


@dataclass(frozen=True)
class AuthContext:
    """Identity resolved for one request."""
    method: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    is_admin: bool = False
    session_token: Optional[str] = None

    @property
    def is_session(self):
        return self.method == "session"


def _tokens_match(supplied, expected):
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def session_token_strategy(session_manager):
    """Authorize a live session named by the ``X-Session-Token`` header."""

    def strategy(req):
        token = (req.headers.get(SESSION_HEADER) or "").strip()
        if not token:
            return None
        session = session_manager.touch(token)
        if session is None:
            return None
        return AuthContext(
            method="session",
            username=session.username,
            display_name=session.display_name,
            is_admin=session.is_admin,
            session_token=token,
        )

    return strategy


def bearer_token_strategy(fallback_token):
    """Legacy shared secret in ``Authorization: Bearer``; never grants admin."""

    def strategy(req):
        if not fallback_token:
            return None
        header = req.headers.get("Authorization") or ""
        if not header.startswith(BEARER_PREFIX):
            return None
        if not _tokens_match(header[len(BEARER_PREFIX):].strip(), fallback_token):
            return None
        return AuthContext(method="bearer")

    return strategy


def query_token_strategy(fallback_token):
    """Legacy shared secret in the ``token`` query parameter; never grants admin."""

    def strategy(req):
        if not fallback_token:
            return None
        supplied = req.args.get(QUERY_TOKEN_PARAM)
        if not supplied or not _tokens_match(supplied, fallback_token):
            return None
        return AuthContext(method="query")

    return strategy


class RequestAuthorizer:
    """First-match-wins chain of authorization strategies."""

    def __init__(self, strategies):
        self.strategies = list(strategies)

    @classmethod
    def build(cls, session_manager, fallback_token=""):
        return cls([
            session_token_strategy(session_manager),
            bearer_token_strategy(fallback_token),
            query_token_strategy(fallback_token),
        ])

    @staticmethod
    def is_protected(path):
        return path.startswith(API_PREFIX) and path not in EXEMPT_PATHS

    def authorize(self, req):
        """Return the ``AuthContext`` from the first matching strategy, or None."""
        for strategy in self.strategies:
            context = strategy(req)
            if context is not None:
                return context
        return None


def current_auth():
    return g.get("auth")


def login_required(view):
    """Require a session identity (the legacy token has no user to act as)."""

    @functools.wraps(view)
    def wrapped_view(*args, **kwargs):
        auth = current_auth()
        if auth is None:
            return unauthorized_response()
        if not auth.is_session:
            return forbidden_response("A user session is required")
        return view(*args, **kwargs)

    return wrapped_view


def make_admin_required(session_manager, log_action=None):
    """Build a decorator that rejects callers without a live admin session with 403."""

    def admin_required(view):
        @functools.wraps(view)
        def wrapped_view(*args, **kwargs):
            auth = current_auth()
            if auth is None:
                return unauthorized_response()
            if not auth.is_session or not session_manager.is_op(auth.session_token):
                if log_action is not None:
                    log_action(view.__name__, actor=auth.username, rejection_message="Admin privileges required.")
                return forbidden_response()
            return view(*args, **kwargs)

        return wrapped_view

    return admin_required
