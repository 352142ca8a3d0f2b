"""
Account settings: tweet posting toggle and the linked osu! player.

Form problems are reported to the user as flash messages on the settings page, not as
HTTP errors; only failures to read or toggle the account itself abort the request.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from tracker.auth.errors import FatalError
from tracker.auth.models import Session, User
from tracker.db.players import OsuPlayer
from tracker.osu.client import OSU_MODES, OsuApiError, OsuUser, OsuUserNotFound, is_valid_mode

logger = logging.getLogger(__name__)

SETTINGS_ERROR = "settings_error"
SETTINGS_SUCCESS = "settings_success"


class SettingsUsers(Protocol):
    def set_tweets_enabled(self, user_id: int, enabled: bool) -> None: ...

    def link_osu_player(self, user_id: int, *, osu_user_id: int, username: str, mode: int) -> OsuPlayer: ...


class SettingsPlayers(Protocol):
    def get(self, player_id: int) -> Optional[OsuPlayer]: ...


class OsuLookup(Protocol):
    def get_user(self, username: str, mode: int) -> OsuUser: ...


def parse_mode(raw: Optional[str]) -> Optional[int]:
    try:
        mode = int((raw or "").strip())
    except ValueError:
        return None
    return mode if is_valid_mode(mode) else None


class SettingsService:
    def __init__(self, *, users: SettingsUsers, players: SettingsPlayers, osu: OsuLookup):
        self._users = users
        self._players = players
        self._osu = osu

    def view(self, session: Session, user: User) -> Dict[str, Any]:
        """Settings page data. Consumes the pending flash messages."""
        player: Optional[OsuPlayer] = None
        if user.osu_player_id is not None:
            try:
                player = self._players.get(user.osu_player_id)
            except Exception as e:
                raise FatalError("Error getting osu! player information from database", cause=e) from e

        return {
            "ok": True,
            "user": {
                "screenName": user.screen_name,
                "name": user.display_name,
                "picture": user.profile_image_url,
                "tweetsEnabled": user.tweets_enabled,
                "osuMode": user.osu_mode,
            },
            "osuPlayer": (
                {"userId": player.osu_user_id, "username": player.username} if player is not None else None
            ),
            "modes": list(OSU_MODES),
            "errorFlash": session.pop_flashes(SETTINGS_ERROR),
            "successFlash": session.pop_flashes(SETTINGS_SUCCESS),
        }

    def set_tweet_posting(self, user: User, enabled: bool) -> None:
        if user.tweets_enabled == enabled:
            return
        try:
            self._users.set_tweets_enabled(user.id, enabled)
        except Exception as e:
            action = "enabling" if enabled else "disabling"
            raise FatalError(f"Error saving user when {action} tweets", cause=e) from e
        user.tweets_enabled = enabled

    def update_osu_account(self, session: Session, user: User, form: Mapping[str, str]) -> bool:
        """
        Link the osu! player named in the form, tracked in the chosen mode.

        The outcome is queued as a flash on `session`. Returns True when the link was saved.
        """
        if not user.tweets_enabled:
            return False

        mode = parse_mode(form.get("game_mode"))
        if mode is None:
            session.add_flash("Invalid mode", SETTINGS_ERROR)
            return False

        player_name = (form.get("osu_username") or "").strip()
        if not player_name:
            session.add_flash("Invalid osu! username", SETTINGS_ERROR)
            return False

        try:
            osu_user = self._osu.get_user(player_name, mode)
        except OsuUserNotFound:
            session.add_flash("osu! player not found", SETTINGS_ERROR)
            return False
        except OsuApiError:
            logger.exception("osu! API lookup failed for user %s", user.id)
            session.add_flash("Error getting user information", SETTINGS_ERROR)
            return False

        try:
            player = self._users.link_osu_player(
                user.id, osu_user_id=osu_user.user_id, username=osu_user.username, mode=mode
            )
        except Exception:
            logger.exception("Saving osu! settings failed for user %s", user.id)
            session.add_flash("Error saving settings", SETTINGS_ERROR)
            return False

        user.osu_player_id = player.id
        user.osu_mode = mode
        session.add_flash("Settings updated", SETTINGS_SUCCESS)
        return True
