from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from tracker.db.connection import ConnectionFactory

_PLAYER_COLUMNS = "id, osu_user_id, username, last_checked"


@dataclass
class OsuPlayer:
    """osu! account linked by at least one user."""

    id: int
    osu_user_id: int
    username: str
    last_checked: Optional[datetime] = None


def _player_from_row(row) -> OsuPlayer:  # type: ignore[no-untyped-def]
    player_id, osu_user_id, username, last_checked = row
    return OsuPlayer(id=int(player_id), osu_user_id=int(osu_user_id), username=str(username), last_checked=last_checked)


def upsert_player(conn, *, osu_user_id: int, username: str) -> OsuPlayer:  # type: ignore[no-untyped-def]
    """
    Find or create the player row for an osu! user id.

    Keeps the stored username current (osu! allows renames). Runs on the caller's
    connection so it can share a transaction.
    """
    row = conn.execute(
        f"""
        INSERT INTO osu_players (osu_user_id, username)
        VALUES (%s, %s)
        ON CONFLICT (osu_user_id) DO UPDATE SET username = EXCLUDED.username
        RETURNING {_PLAYER_COLUMNS};
        """,
        (osu_user_id, username),
    ).fetchone()
    if not row:
        raise ValueError("Failed to save osu! player")
    return _player_from_row(row)


class PlayerStore:
    def __init__(self, connect: ConnectionFactory):
        self._connect = connect

    def get(self, player_id: int) -> Optional[OsuPlayer]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_PLAYER_COLUMNS} FROM osu_players WHERE id = %s;",
                (player_id,),
            ).fetchone()
        if not row:
            return None
        return _player_from_row(row)
