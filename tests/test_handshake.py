from __future__ import annotations

import pytest

from tracker.auth.errors import FatalError, UserError
from tracker.auth.handshake import TwitterHandshake
from tracker.auth.models import PendingAuthRequest, Session
from tracker.auth.session import SessionError, SessionStore

CALLBACK = "http://tracker.test/connect/twitter/callback"


class _BrokenSessions:
    def persist(self, session: Session) -> str:
        raise SessionError("signing key missing")


def _handshake(provider, users, sessions) -> TwitterHandshake:  # type: ignore[no-untyped-def]
    return TwitterHandshake(provider=provider, users=users, sessions=sessions)


@pytest.fixture
def sessions(auth_config) -> SessionStore:  # type: ignore[no-untyped-def]
    return SessionStore(auth_config)


def _pending_session(token: str = "req-token-1") -> Session:
    return Session(pending_auth_request=PendingAuthRequest(token=token, token_secret="req-secret-1"))


def test_initiate_stores_request_token_and_redirects_to_twitter(provider, users, sessions) -> None:
    session = Session()
    result = _handshake(provider, users, sessions).initiate_login(session, CALLBACK)

    assert result.url.startswith("https://api.twitter.test/oauth/authenticate")
    assert provider.calls == [("request_token", (CALLBACK,))]
    assert session.pending_auth_request == PendingAuthRequest(token="req-token-1", token_secret="req-secret-1")
    assert session.authenticated is False

    # The signed cookie carries the pending token.
    assert result.session_cookie
    restored = sessions.load(result.session_cookie)
    assert restored.pending_auth_request is not None
    assert restored.pending_auth_request.token == "req-token-1"


def test_initiate_when_authenticated_never_calls_provider(provider, users, sessions) -> None:
    session = Session(authenticated=True, user_id="1")
    result = _handshake(provider, users, sessions).initiate_login(session, CALLBACK)

    assert result.url == "/"
    assert result.session_cookie is None
    assert provider.calls == []


def test_initiate_provider_failure_is_fatal(provider, users, sessions) -> None:
    provider.fail_request_token = True
    session = Session()
    with pytest.raises(FatalError) as ei:
        _handshake(provider, users, sessions).initiate_login(session, CALLBACK)
    assert ei.value.status_code == 500
    assert ei.value.message == "Error generating Twitter redirect URL"
    assert session.pending_auth_request is None


def test_initiate_session_save_failure_is_fatal(provider, users) -> None:
    session = _pending_session("req-token-0")
    before = session.copy()
    with pytest.raises(FatalError) as ei:
        _handshake(provider, users, _BrokenSessions()).initiate_login(session, CALLBACK)
    assert ei.value.message == "Error saving session"
    assert isinstance(ei.value.cause, SessionError)
    # The unsaved request token never reaches the caller's session.
    assert session == before


def test_reinitiate_replaces_pending_token(provider, users, sessions) -> None:
    hs = _handshake(provider, users, sessions)
    session = Session()
    hs.initiate_login(session, CALLBACK)
    hs.initiate_login(session, CALLBACK)
    assert session.pending_auth_request is not None
    assert session.pending_auth_request.token == "req-token-2"


@pytest.mark.parametrize(
    "params",
    [
        {},
        {"oauth_verifier": "v", "oauth_token": "req-token-1"},
        {"oauth_verifier": "v", "oauth_token": "anything"},
    ],
)
def test_complete_without_pending_token_is_user_error(provider, users, sessions, params) -> None:
    session = Session()
    with pytest.raises(UserError) as ei:
        _handshake(provider, users, sessions).complete_login(session, params)
    assert ei.value.status_code == 400
    assert ei.value.message == "No token detected in your session"
    assert provider.count("exchange") == 0


def test_complete_missing_verifier_is_checked_before_token_comparison(provider, users, sessions) -> None:
    session = _pending_session()
    # Token is also wrong; the verifier check must win.
    with pytest.raises(UserError) as ei:
        _handshake(provider, users, sessions).complete_login(session, {"oauth_token": "other"})
    assert ei.value.message == "No oauth_verifier returned in callback"
    assert provider.calls == []


def test_complete_missing_token_is_user_error(provider, users, sessions) -> None:
    session = _pending_session()
    with pytest.raises(UserError) as ei:
        _handshake(provider, users, sessions).complete_login(session, {"oauth_verifier": "v"})
    assert ei.value.message == "No oauth_token returned in callback"
    assert provider.calls == []


@pytest.mark.parametrize(
    "returned",
    ["req-token-2", "REQ-TOKEN-1", "req-token-1x", " req-token", " req-token-1", "req-token-1\n", "  req-token-1\t"],
)
def test_complete_token_mismatch_never_exchanges(provider, users, sessions, returned) -> None:
    session = _pending_session("req-token-1")
    before = session.copy()
    with pytest.raises(UserError) as ei:
        _handshake(provider, users, sessions).complete_login(
            session, {"oauth_verifier": "v", "oauth_token": returned}
        )
    assert ei.value.message == "Twitter oauth_token mismatch"
    assert provider.count("exchange") == 0
    # Still pending verification; the user can start over.
    assert session == before
    assert session.authenticated is False


def test_complete_passes_callback_values_through_unmodified(provider, users, sessions) -> None:
    session = _pending_session()
    _handshake(provider, users, sessions).complete_login(
        session, {"oauth_verifier": " v-1\n", "oauth_token": "req-token-1"}
    )
    name, (pending, verifier) = [c for c in provider.calls if c[0] == "exchange"][0]
    assert verifier == " v-1\n"
    assert session.authenticated is True


def test_round_trip_authenticates_and_binds_user(provider, users, sessions) -> None:
    hs = _handshake(provider, users, sessions)
    session = Session()
    hs.initiate_login(session, CALLBACK)
    assert session.pending_auth_request is not None
    token = session.pending_auth_request.token

    result = hs.complete_login(session, {"oauth_verifier": "verifier-1", "oauth_token": token})

    assert result.url == "/"
    assert session.authenticated is True
    assert session.pending_auth_request is None
    user = users.by_id[int(session.user_id or "0")]
    assert user.twitter_id == "42"
    assert users.credentials[user.id].token == "access-token"

    # Exchange used the stored token (with its secret) and the verifier from the callback.
    name, (pending, verifier) = [c for c in provider.calls if c[0] == "exchange"][0]
    assert pending == PendingAuthRequest(token=token, token_secret="req-secret-1")
    assert verifier == "verifier-1"

    restored = sessions.load(result.session_cookie)
    assert restored.authenticated is True
    assert restored.user_id == str(user.id)
    assert restored.pending_auth_request is None


def test_complete_twice_is_a_noop_redirect(provider, users, sessions) -> None:
    hs = _handshake(provider, users, sessions)
    session = _pending_session()
    hs.complete_login(session, {"oauth_verifier": "v", "oauth_token": "req-token-1"})
    assert provider.count("exchange") == 1

    again = hs.complete_login(session, {"oauth_verifier": "v", "oauth_token": "req-token-1"})
    assert again.url == "/"
    assert again.session_cookie is None
    assert provider.count("exchange") == 1


def test_exchange_failure_is_fatal_and_leaves_session_unauthenticated(provider, users, sessions) -> None:
    provider.fail_exchange = True
    session = _pending_session()
    with pytest.raises(FatalError) as ei:
        _handshake(provider, users, sessions).complete_login(
            session, {"oauth_verifier": "v", "oauth_token": "req-token-1"}
        )
    assert ei.value.status_code == 500
    assert ei.value.message == "Error obtaining access token"
    assert session.authenticated is False
    assert session.user_id is None
    assert users.by_id == {}


def test_profile_failure_is_fatal(provider, users, sessions) -> None:
    provider.fail_profile = True
    session = _pending_session()
    with pytest.raises(FatalError) as ei:
        _handshake(provider, users, sessions).complete_login(
            session, {"oauth_verifier": "v", "oauth_token": "req-token-1"}
        )
    assert ei.value.message == "Error getting Twitter user info"
    assert session.authenticated is False


def test_user_resolution_failure_is_fatal(provider, users, sessions) -> None:
    users.fail_find_or_create = True
    session = _pending_session()
    with pytest.raises(FatalError) as ei:
        _handshake(provider, users, sessions).complete_login(
            session, {"oauth_verifier": "v", "oauth_token": "req-token-1"}
        )
    assert ei.value.message == "Error finding or creating user"
    assert session.authenticated is False


def test_session_save_failure_after_login_keeps_session_unauthenticated(provider, users) -> None:
    session = _pending_session()
    with pytest.raises(FatalError) as ei:
        _handshake(provider, users, _BrokenSessions()).complete_login(
            session, {"oauth_verifier": "v", "oauth_token": "req-token-1"}
        )
    assert ei.value.message == "Error saving session after being logged in"
    assert session.authenticated is False
    assert session.pending_auth_request is not None
