from __future__ import annotations

import logging
from typing import Optional

from tracker.auth.models import AccessCredential, ExternalIdentity, User
from tracker.db.connection import ConnectionFactory
from tracker.db.players import OsuPlayer, upsert_player

logger = logging.getLogger(__name__)

_USER_COLUMNS = (
    "id, twitter_id, screen_name, display_name, profile_image_url, "
    "tweets_enabled, osu_player_id, osu_mode, created_at, updated_at"
)


def _user_from_row(row) -> User:  # type: ignore[no-untyped-def]
    (
        user_id,
        twitter_id,
        screen_name,
        display_name,
        profile_image_url,
        tweets_enabled,
        osu_player_id,
        osu_mode,
        created_at,
        updated_at,
    ) = row
    return User(
        id=int(user_id),
        twitter_id=str(twitter_id),
        screen_name=str(screen_name),
        display_name=display_name,
        profile_image_url=profile_image_url,
        tweets_enabled=bool(tweets_enabled),
        osu_player_id=int(osu_player_id) if osu_player_id is not None else None,
        osu_mode=int(osu_mode or 0),
        created_at=created_at,
        updated_at=updated_at,
    )


class UserStore:
    """Users table access. Opens one connection per call."""

    def __init__(self, connect: ConnectionFactory):
        self._connect = connect

    def find_or_create(self, identity: ExternalIdentity, credential: AccessCredential) -> User:
        """
        Resolve the user for a Twitter identity, creating it on first sign-in.

        Profile fields and the access token are refreshed on every sign-in. A single
        upsert, so concurrent first sign-ins resolve to the same row.
        """
        with self._connect() as conn:
            with conn.transaction():
                row = conn.execute(
                    f"""
                    INSERT INTO users (twitter_id, screen_name, display_name, profile_image_url,
                                       twitter_token, twitter_secret)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (twitter_id) DO UPDATE SET
                      screen_name = EXCLUDED.screen_name,
                      display_name = EXCLUDED.display_name,
                      profile_image_url = EXCLUDED.profile_image_url,
                      twitter_token = EXCLUDED.twitter_token,
                      twitter_secret = EXCLUDED.twitter_secret,
                      updated_at = now()
                    RETURNING {_USER_COLUMNS};
                    """,
                    (
                        identity.provider_user_id,
                        identity.screen_name,
                        identity.display_name,
                        identity.profile_image_url,
                        credential.token,
                        credential.secret,
                    ),
                ).fetchone()
        if not row:
            raise ValueError("Failed to find or create user")
        return _user_from_row(row)

    def get(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s;",
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return _user_from_row(row)

    def set_tweets_enabled(self, user_id: int, enabled: bool) -> None:
        with self._connect() as conn:
            with conn.transaction():
                conn.execute(
                    "UPDATE users SET tweets_enabled = %s, updated_at = now() WHERE id = %s;",
                    (enabled, user_id),
                )

    def link_osu_player(self, user_id: int, *, osu_user_id: int, username: str, mode: int) -> OsuPlayer:
        """Find or create the osu! player and point the user at it with `mode`, atomically."""
        with self._connect() as conn:
            with conn.transaction():
                player = upsert_player(conn, osu_user_id=osu_user_id, username=username)
                conn.execute(
                    "UPDATE users SET osu_player_id = %s, osu_mode = %s, updated_at = now() WHERE id = %s;",
                    (player.id, mode, user_id),
                )
        logger.info("User %s linked osu! player %s (mode=%d)", user_id, player.osu_user_id, mode)
        return player
