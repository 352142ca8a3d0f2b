from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from fastapi import Request

from tracker.auth.errors import FatalError
from tracker.auth.models import Session, User
from tracker.auth.session import SessionError, SessionStore

logger = logging.getLogger(__name__)


class UserLookup(Protocol):
    def get(self, user_id: int) -> Optional[User]: ...


@dataclass
class RequestContext:
    """Per-request state every handler starts from."""

    request_id: str
    session: Session
    user: Optional[User] = None

    @property
    def is_authenticated(self) -> bool:
        return self.session.authenticated and self.user is not None


def request_id_of(request: Request) -> str:
    return str(getattr(request.state, "request_id", "") or "-")


def load_request_context(request: Request, *, sessions: SessionStore, users: UserLookup) -> RequestContext:
    """
    Decode the session cookie and, for signed-in sessions, load the user.

    Raises FatalError when the session store or the user lookup fails. A session
    pointing at a user that no longer exists is treated as signed out.
    """
    rid = request_id_of(request)
    try:
        session = sessions.load(request.cookies.get(sessions.cookie_name))
    except SessionError as e:
        raise FatalError("Error getting user session", cause=e) from e

    if not session.authenticated:
        return RequestContext(request_id=rid, session=session)

    try:
        user_id = int(session.user_id or "")
    except ValueError:
        logger.warning("Session marked authenticated without a valid user id; signing out")
        session.clear_login()
        return RequestContext(request_id=rid, session=session)

    try:
        user = users.get(user_id)
    except Exception as e:
        raise FatalError("Error getting user account info", cause=e) from e

    if user is None:
        logger.warning("Session user %s no longer exists; signing out", user_id)
        session.clear_login()
    return RequestContext(request_id=rid, session=session, user=user)


def get_request_context(request: Request) -> RequestContext:
    """FastAPI dependency; collaborators come from `app.state.deps`."""
    deps = request.app.state.deps
    return load_request_context(request, sessions=deps.sessions, users=deps.users)
