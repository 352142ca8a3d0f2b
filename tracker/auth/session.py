from __future__ import annotations

import json
from typing import Any, Dict, Optional

from itsdangerous import BadData, URLSafeTimedSerializer

from tracker.auth.config import AuthConfig
from tracker.auth.models import PendingAuthRequest, Session

SESSION_SALT = "tracker-session-v1"


class SessionError(Exception):
    """The session store cannot read or write sessions."""


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-tracker_session" if cfg.cookie_secure else "tracker_session"


def _session_to_dict(session: Session) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"authenticated": bool(session.authenticated)}
    if session.user_id:
        payload["user_id"] = session.user_id
    pending = session.pending_auth_request
    if pending is not None:
        payload["twitter_token"] = {"token": pending.token, "secret": pending.token_secret}
    flashes = {k: v for k, v in session.flashes.items() if v}
    if flashes:
        payload["flashes"] = flashes
    return payload


def _session_from_dict(data: Dict[str, Any]) -> Session:
    pending = None
    raw_token = data.get("twitter_token")
    if isinstance(raw_token, dict) and raw_token.get("token"):
        pending = PendingAuthRequest(token=str(raw_token["token"]), token_secret=str(raw_token.get("secret") or ""))

    flashes: Dict[str, list] = {}
    raw_flashes = data.get("flashes")
    if isinstance(raw_flashes, dict):
        for category, messages in raw_flashes.items():
            if isinstance(messages, list):
                flashes[str(category)] = [str(m) for m in messages]

    user_id = data.get("user_id")
    return Session(
        authenticated=data.get("authenticated") is True,
        user_id=str(user_id) if user_id else None,
        pending_auth_request=pending,
        flashes=flashes,
    )


class SessionStore:
    """Signed-cookie session store. The whole session lives in the cookie."""

    def __init__(self, cfg: AuthConfig):
        self._cfg = cfg

    @property
    def cookie_name(self) -> str:
        return session_cookie_name(self._cfg)

    def _serializer(self) -> URLSafeTimedSerializer:
        if not self._cfg.session_secret:
            raise SessionError("Session signing is not configured (AUTH_SESSION_SECRET)")
        return URLSafeTimedSerializer(secret_key=self._cfg.session_secret, salt=SESSION_SALT)

    def load(self, value: Optional[str]) -> Session:
        """
        Decode a session cookie.

        A missing, tampered, expired or malformed cookie yields a fresh anonymous session.
        Raises SessionError only when the store itself is unusable.
        """
        s = self._serializer()
        if not value:
            return Session()
        try:
            raw = s.loads(value, max_age=self._cfg.session_ttl_seconds)
            data = json.loads(raw)
        except (BadData, ValueError):
            return Session()
        if not isinstance(data, dict):
            return Session()
        return _session_from_dict(data)

    def persist(self, session: Session) -> str:
        """Sign the session and return the cookie value to send back."""
        s = self._serializer()
        try:
            raw = json.dumps(_session_to_dict(session), separators=(",", ":"), sort_keys=True)
            return s.dumps(raw)
        except (TypeError, ValueError) as e:
            raise SessionError(f"Could not encode session: {e}") from e

    def cookie_kwargs(self, value: str) -> dict:
        return {
            "key": self.cookie_name,
            "value": value,
            "max_age": self._cfg.session_ttl_seconds,
            "httponly": True,
            "secure": self._cfg.cookie_secure,
            "samesite": "lax",
            "path": "/",
        }

    def clear_cookie_kwargs(self) -> dict:
        return {
            "key": self.cookie_name,
            "value": "",
            "max_age": 0,
            "httponly": True,
            "secure": self._cfg.cookie_secure,
            "samesite": "lax",
            "path": "/",
        }
