from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional


@dataclass(frozen=True)
class PendingAuthRequest:
    """Request token issued by Twitter while the user is away approving the app."""

    token: str
    token_secret: str


@dataclass(frozen=True)
class AccessCredential:
    """Access token obtained after the verifier was exchanged."""

    token: str
    secret: str
    user_id: Optional[str] = None
    screen_name: Optional[str] = None


@dataclass(frozen=True)
class ExternalIdentity:
    """Twitter account as returned by verify_credentials."""

    provider_user_id: str
    screen_name: str
    display_name: Optional[str] = None
    profile_image_url: Optional[str] = None


@dataclass
class Session:
    """Per-browser state carried in the signed session cookie."""

    authenticated: bool = False
    user_id: Optional[str] = None
    pending_auth_request: Optional[PendingAuthRequest] = None
    flashes: Dict[str, List[str]] = field(default_factory=dict)

    def copy(self) -> "Session":
        return replace(self, flashes={k: list(v) for k, v in self.flashes.items()})

    def add_flash(self, message: str, category: str) -> None:
        self.flashes.setdefault(category, []).append(message)

    def pop_flashes(self, category: str) -> List[str]:
        return self.flashes.pop(category, [])

    def clear_login(self) -> None:
        self.authenticated = False
        self.user_id = None


@dataclass
class User:
    """Tracker account, keyed by the Twitter user id."""

    id: int
    twitter_id: str
    screen_name: str
    display_name: Optional[str]
    profile_image_url: Optional[str]
    tweets_enabled: bool
    osu_player_id: Optional[int]
    osu_mode: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
