from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

CALLBACK_PATH = "/connect/twitter/callback"


@dataclass(frozen=True)
class AuthConfig:
    # Twitter application credentials
    consumer_key: Optional[str]
    consumer_secret: Optional[str]
    twitter_api_base_url: str
    twitter_timeout_seconds: float

    # Deployment
    domain: str
    environment: str
    public_base_url: Optional[str]  # Overrides scheme + domain when set

    # Session configuration
    session_secret: Optional[str]  # Required for session signing
    session_ttl_seconds: int
    cookie_secure: bool

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def twitter_enabled(self) -> bool:
        return bool(self.consumer_key and self.consumer_secret)

    @property
    def callback_base_url(self) -> str:
        """Base URL Twitter redirects back to (https only in production)."""
        if self.public_base_url:
            return self.public_base_url.rstrip("/")
        protocol = "https://" if self.is_production else "http://"
        return protocol + self.domain

    @property
    def callback_url(self) -> str:
        return self.callback_base_url + CALLBACK_PATH


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    Twitter sign-in is available when TWITTER_CONSUMER_KEY and TWITTER_CONSUMER_SECRET are set.
    Sessions cannot be read or written without AUTH_SESSION_SECRET.
    """
    environment = (os.getenv("ENVIRONMENT", "") or "development").strip().lower()
    public_base_url = _env_str("AUTH_PUBLIC_BASE_URL")

    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies in production or behind an https base URL.
        cookie_secure = environment == "production" or (public_base_url or "").startswith("https://")

    ttl = int(_env_float("AUTH_SESSION_TTL_SECONDS", 7 * 24 * 3600))  # 7d default
    if ttl <= 60:
        ttl = 60

    timeout = _env_float("TWITTER_HTTP_TIMEOUT_SECONDS", 10.0)
    if timeout <= 0:
        timeout = 10.0

    return AuthConfig(
        consumer_key=_env_str("TWITTER_CONSUMER_KEY"),
        consumer_secret=_env_str("TWITTER_CONSUMER_SECRET"),
        twitter_api_base_url=(_env_str("TWITTER_API_BASE_URL") or "https://api.twitter.com").rstrip("/"),
        twitter_timeout_seconds=timeout,
        domain=_env_str("DOMAIN") or "localhost:8080",
        environment=environment,
        public_base_url=public_base_url,
        session_secret=_env_str("AUTH_SESSION_SECRET"),
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
    )
