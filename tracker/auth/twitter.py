from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from authlib.integrations.requests_client import OAuth1Session, OAuthError

from tracker.auth.config import AuthConfig
from tracker.auth.models import AccessCredential, ExternalIdentity, PendingAuthRequest

logger = logging.getLogger(__name__)

REQUEST_TOKEN_PATH = "/oauth/request_token"
AUTHENTICATE_PATH = "/oauth/authenticate"
ACCESS_TOKEN_PATH = "/oauth/access_token"
VERIFY_CREDENTIALS_PATH = "/1.1/account/verify_credentials.json"


class ProviderError(Exception):
    """Twitter could not be reached or rejected the request."""


class TwitterClient:
    """
    Twitter OAuth 1.0a client.

    Each call builds a fresh OAuth1Session, so one instance is safe to share between
    concurrent requests.
    """

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        *,
        api_base_url: str = "https://api.twitter.com",
        timeout: float = 10.0,
        session_factory: Callable[..., OAuth1Session] = OAuth1Session,
    ):
        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._base = api_base_url.rstrip("/")
        self._timeout = timeout
        self._session_factory = session_factory

    @classmethod
    def from_config(cls, cfg: AuthConfig) -> "TwitterClient":
        if not cfg.twitter_enabled:
            raise ValueError("Twitter consumer key/secret not configured")
        return cls(
            cfg.consumer_key or "",
            cfg.consumer_secret or "",
            api_base_url=cfg.twitter_api_base_url,
            timeout=cfg.twitter_timeout_seconds,
        )

    def _session(self, **kwargs: Any) -> OAuth1Session:
        return self._session_factory(self._consumer_key, self._consumer_secret, **kwargs)

    def get_request_token_and_url(self, callback_url: str) -> Tuple[PendingAuthRequest, str]:
        """Obtain a request token and the URL the user must visit to approve it."""
        client = self._session(redirect_uri=callback_url)
        try:
            token = client.fetch_request_token(self._base + REQUEST_TOKEN_PATH, timeout=self._timeout)
        except (OAuthError, requests.RequestException, ValueError) as e:
            raise ProviderError(f"Request token failed: {e}") from e
        finally:
            client.close()

        key = str(token.get("oauth_token") or "")
        secret = str(token.get("oauth_token_secret") or "")
        if not key or not secret:
            raise ProviderError("Request token response missing oauth_token/oauth_token_secret")
        # Twitter reports whether it accepted our callback; anything else means the
        # user would be sent to an out-of-band PIN page.
        confirmed = str(token.get("oauth_callback_confirmed") or "true").lower()
        if confirmed != "true":
            raise ProviderError("Twitter did not confirm the OAuth callback URL")

        url = client.create_authorization_url(self._base + AUTHENTICATE_PATH, request_token=key)
        return PendingAuthRequest(token=key, token_secret=secret), url

    def exchange_token(self, pending: PendingAuthRequest, verifier: str) -> AccessCredential:
        """Exchange an approved request token + verifier for an access token."""
        client = self._session(token=pending.token, token_secret=pending.token_secret)
        try:
            token = client.fetch_access_token(self._base + ACCESS_TOKEN_PATH, verifier=verifier, timeout=self._timeout)
        except (OAuthError, requests.RequestException, ValueError) as e:
            raise ProviderError(f"Access token exchange failed: {e}") from e
        finally:
            client.close()

        key = str(token.get("oauth_token") or "")
        secret = str(token.get("oauth_token_secret") or "")
        if not key or not secret:
            raise ProviderError("Access token response missing oauth_token/oauth_token_secret")
        return AccessCredential(
            token=key,
            secret=secret,
            user_id=str(token.get("user_id") or "") or None,
            screen_name=str(token.get("screen_name") or "") or None,
        )

    def fetch_profile(self, credential: AccessCredential) -> ExternalIdentity:
        """Read-only profile lookup for the account that owns `credential`."""
        client = self._session(token=credential.token, token_secret=credential.secret)
        try:
            r = client.get(
                self._base + VERIFY_CREDENTIALS_PATH,
                params={"skip_status": "true", "include_entities": "false"},
                timeout=self._timeout,
            )
            if r.status_code >= 400:
                # Avoid leaking response bodies; include minimal context.
                raise ProviderError(f"verify_credentials failed (status={r.status_code})")
            data = r.json()
        except (OAuthError, requests.RequestException, ValueError) as e:
            raise ProviderError(f"verify_credentials failed: {e}") from e
        finally:
            client.close()

        if not isinstance(data, dict):
            raise ProviderError("Invalid verify_credentials response")
        return identity_from_profile(data)


def identity_from_profile(data: Dict[str, Any]) -> ExternalIdentity:
    user_id = str(data.get("id_str") or data.get("id") or "").strip()
    screen_name = str(data.get("screen_name") or "").strip()
    if not user_id or not screen_name:
        raise ProviderError("verify_credentials response missing id/screen_name")
    image: Optional[str] = data.get("profile_image_url_https") or data.get("profile_image_url")
    return ExternalIdentity(
        provider_user_id=user_id,
        screen_name=screen_name,
        display_name=str(data.get("name") or "").strip() or None,
        profile_image_url=str(image) if image else None,
    )
