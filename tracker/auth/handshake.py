"""
Twitter sign-in handshake (OAuth 1.0a, two legs).

Per session, for this flow only:

    Anonymous --initiate_login--> PendingVerification --complete_login--> Authenticated

A callback is only accepted when the `oauth_token` it carries is the request token this
same session asked for. Validation failures leave the session untouched; the user starts
over from `initiate_login`. Once authenticated, both steps just redirect home.
"""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, Tuple

from tracker.auth.errors import FatalError, UserError
from tracker.auth.models import AccessCredential, ExternalIdentity, PendingAuthRequest, Session, User
from tracker.auth.session import SessionError

logger = logging.getLogger(__name__)


class ProviderClient(Protocol):
    def get_request_token_and_url(self, callback_url: str) -> Tuple[PendingAuthRequest, str]: ...

    def exchange_token(self, pending: PendingAuthRequest, verifier: str) -> AccessCredential: ...

    def fetch_profile(self, credential: AccessCredential) -> ExternalIdentity: ...


class UserResolver(Protocol):
    def find_or_create(self, identity: ExternalIdentity, credential: AccessCredential) -> User: ...


class SessionPersister(Protocol):
    def persist(self, session: Session) -> str: ...


@dataclass(frozen=True)
class Redirect:
    url: str
    session_cookie: Optional[str] = None  # Signed session to send back, when it changed


class TwitterHandshake:
    def __init__(
        self,
        *,
        provider: ProviderClient,
        users: UserResolver,
        sessions: SessionPersister,
        home_url: str = "/",
    ):
        self._provider = provider
        self._users = users
        self._sessions = sessions
        self._home_url = home_url

    def initiate_login(self, session: Session, callback_url: str) -> Redirect:
        """Send the user to Twitter, remembering the request token in their session."""
        if session.authenticated:
            return Redirect(self._home_url)

        try:
            pending, url = self._provider.get_request_token_and_url(callback_url)
        except Exception as e:
            raise FatalError("Error generating Twitter redirect URL", cause=e) from e

        updated = session.copy()
        updated.pending_auth_request = pending
        try:
            cookie = self._sessions.persist(updated)
        except SessionError as e:
            raise FatalError("Error saving session", cause=e) from e

        session.pending_auth_request = pending
        return Redirect(url, session_cookie=cookie)

    def complete_login(self, session: Session, params: Mapping[str, str]) -> Redirect:
        """Handle Twitter's redirect back: verify, exchange, resolve the user, log in."""
        if session.authenticated:
            return Redirect(self._home_url)

        pending = session.pending_auth_request
        if pending is None:
            raise UserError("No token detected in your session")

        verifier = params.get("oauth_verifier") or ""
        returned_token = params.get("oauth_token") or ""
        if not verifier:
            raise UserError("No oauth_verifier returned in callback")
        if not returned_token:
            raise UserError("No oauth_token returned in callback")
        if not hmac.compare_digest(returned_token.encode("utf-8"), pending.token.encode("utf-8")):
            raise UserError("Twitter oauth_token mismatch")

        try:
            credential = self._provider.exchange_token(pending, verifier)
        except Exception as e:
            raise FatalError("Error obtaining access token", cause=e) from e

        try:
            identity = self._provider.fetch_profile(credential)
        except Exception as e:
            raise FatalError("Error getting Twitter user info", cause=e) from e

        try:
            user = self._users.find_or_create(identity, credential)
        except Exception as e:
            raise FatalError("Error finding or creating user", cause=e) from e

        # Only touch the caller's session once the new state has been signed.
        updated = session.copy()
        updated.authenticated = True
        updated.user_id = str(user.id)
        updated.pending_auth_request = None
        try:
            cookie = self._sessions.persist(updated)
        except SessionError as e:
            raise FatalError("Error saving session after being logged in", cause=e) from e

        session.authenticated = updated.authenticated
        session.user_id = updated.user_id
        session.pending_auth_request = None
        logger.info("User %s signed in as @%s", user.id, identity.screen_name)
        return Redirect(self._home_url, session_cookie=cookie)
