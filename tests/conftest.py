"""
Pytest config.

Pins the repo root on sys.path so `import tracker` works even when a global `pytest`
entrypoint is used without installing the package, and provides in-memory stand-ins for
Twitter, Postgres and the osu! API.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from tracker.auth.config import AuthConfig, load_auth_config  # noqa: E402
from tracker.auth.models import AccessCredential, ExternalIdentity, PendingAuthRequest, User  # noqa: E402
from tracker.db.players import OsuPlayer  # noqa: E402
from tracker.osu.client import OsuApiError, OsuUser, OsuUserNotFound, load_osu_config  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-purposes-only"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Config loaders are cached; never let a test see another test's environment."""
    monkeypatch.delenv("DB_AUTO_MIGRATE", raising=False)
    load_auth_config.cache_clear()
    load_osu_config.cache_clear()


def make_auth_config(**overrides) -> AuthConfig:  # type: ignore[no-untyped-def]
    values = dict(
        consumer_key="ck",
        consumer_secret="cs",
        twitter_api_base_url="https://api.twitter.test",
        twitter_timeout_seconds=5.0,
        domain="tracker.test",
        environment="development",
        public_base_url=None,
        session_secret=TEST_SECRET,
        session_ttl_seconds=3600,
        cookie_secure=False,
    )
    values.update(overrides)
    return AuthConfig(**values)


class FakeProvider:
    """Twitter stand-in that records every call."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, tuple]] = []
        self.issued = 0
        self.fail_request_token = False
        self.fail_exchange = False
        self.fail_profile = False

    def get_request_token_and_url(self, callback_url: str) -> Tuple[PendingAuthRequest, str]:
        self.calls.append(("request_token", (callback_url,)))
        if self.fail_request_token:
            raise RuntimeError("twitter down")
        self.issued += 1
        token = f"req-token-{self.issued}"
        return PendingAuthRequest(token=token, token_secret=f"req-secret-{self.issued}"), (
            f"https://api.twitter.test/oauth/authenticate?oauth_token={token}"
        )

    def exchange_token(self, pending: PendingAuthRequest, verifier: str) -> AccessCredential:
        self.calls.append(("exchange", (pending, verifier)))
        if self.fail_exchange:
            raise RuntimeError("exchange rejected")
        return AccessCredential(token="access-token", secret="access-secret", user_id="42", screen_name="peppy")

    def fetch_profile(self, credential: AccessCredential) -> ExternalIdentity:
        self.calls.append(("profile", (credential,)))
        if self.fail_profile:
            raise RuntimeError("profile unavailable")
        return ExternalIdentity(provider_user_id="42", screen_name="peppy", display_name="Dean Herbert")

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)


class FakeUsers:
    """In-memory users table."""

    def __init__(self) -> None:
        self.by_id: Dict[int, User] = {}
        self.credentials: Dict[int, AccessCredential] = {}
        self.fail_find_or_create = False
        self.fail_get = False
        self.fail_writes = False
        self.writes: List[tuple] = []
        self.players = FakePlayers()

    def find_or_create(self, identity: ExternalIdentity, credential: AccessCredential) -> User:
        if self.fail_find_or_create:
            raise RuntimeError("db down")
        for user in self.by_id.values():
            if user.twitter_id == identity.provider_user_id:
                user.screen_name = identity.screen_name
                self.credentials[user.id] = credential
                return user
        user = User(
            id=len(self.by_id) + 1,
            twitter_id=identity.provider_user_id,
            screen_name=identity.screen_name,
            display_name=identity.display_name,
            profile_image_url=identity.profile_image_url,
            tweets_enabled=False,
            osu_player_id=None,
            osu_mode=0,
        )
        self.by_id[user.id] = user
        self.credentials[user.id] = credential
        return user

    def get(self, user_id: int) -> Optional[User]:
        if self.fail_get:
            raise RuntimeError("db down")
        return self.by_id.get(user_id)

    def set_tweets_enabled(self, user_id: int, enabled: bool) -> None:
        if self.fail_writes:
            raise RuntimeError("db down")
        self.writes.append(("tweets", user_id, enabled))
        self.by_id[user_id].tweets_enabled = enabled

    def link_osu_player(self, user_id: int, *, osu_user_id: int, username: str, mode: int) -> OsuPlayer:
        if self.fail_writes:
            raise RuntimeError("db down")
        self.writes.append(("link", user_id, osu_user_id, mode))
        player = self.players.upsert(osu_user_id, username)
        user = self.by_id[user_id]
        user.osu_player_id = player.id
        user.osu_mode = mode
        return player


class FakePlayers:
    def __init__(self) -> None:
        self.by_id: Dict[int, OsuPlayer] = {}
        self.fail_get = False

    def upsert(self, osu_user_id: int, username: str) -> OsuPlayer:
        for p in self.by_id.values():
            if p.osu_user_id == osu_user_id:
                p.username = username
                return p
        p = OsuPlayer(id=len(self.by_id) + 100, osu_user_id=osu_user_id, username=username)
        self.by_id[p.id] = p
        return p

    def get(self, player_id: int) -> Optional[OsuPlayer]:
        if self.fail_get:
            raise RuntimeError("db down")
        return self.by_id.get(player_id)


class FakeOsu:
    def __init__(self) -> None:
        self.players = {"cookiezi": OsuUser(user_id=124493, username="Cookiezi", country="KR")}
        self.calls: List[Tuple[str, int]] = []
        self.fail = False

    def get_user(self, username: str, mode: int) -> OsuUser:
        self.calls.append((username, mode))
        if self.fail:
            raise OsuApiError("osu! api down")
        user = self.players.get(username.lower())
        if user is None:
            raise OsuUserNotFound(username)
        return user


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def users() -> FakeUsers:
    return FakeUsers()


@pytest.fixture
def osu() -> FakeOsu:
    return FakeOsu()


@pytest.fixture
def make_config():  # type: ignore[no-untyped-def]
    return make_auth_config


@pytest.fixture
def auth_config() -> AuthConfig:
    return make_auth_config()


@pytest.fixture
def app(auth_config, provider, users, osu):  # type: ignore[no-untyped-def]
    from tracker.api.web import create_app

    return create_app(auth_config=auth_config, provider=provider, users=users, players=users.players, osu=osu)


@pytest.fixture
def client(app):  # type: ignore[no-untyped-def]
    from fastapi.testclient import TestClient

    return TestClient(app, follow_redirects=False)
